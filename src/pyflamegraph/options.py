"""Per-run configuration consumed by the pipeline."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from .config import DEFAULT_MIN_WIDTH, DEFAULT_OUTPUT
from .errors import ConfigError
from .privilege import Privilege

# Color palettes understood by flamegraph.pl --colors
PALETTES = (
    "hot", "mem", "io", "wakeup", "chain", "java", "js", "perl",
    "red", "green", "blue", "aqua", "yellow", "purple", "orange",
)


class Direction(Enum):
    NORMAL = "normal"
    INVERTED = "inverted"


@dataclass(frozen=True)
class Appearance:
    title: Optional[str] = None
    subtitle: Optional[str] = None
    deterministic: bool = False
    direction: Direction = Direction.NORMAL
    reverse: bool = False
    notes: Optional[str] = None
    min_width: float = DEFAULT_MIN_WIDTH
    image_width: Optional[int] = None
    palette: Optional[str] = None
    skip_after: Tuple[str, ...] = ()
    flame_chart: bool = False

    def check(self):
        if self.flame_chart and self.reverse:
            raise ConfigError("a flame chart cannot be stack-reversed")
        if self.palette is not None and self.palette not in PALETTES:
            raise ConfigError(
                f"unknown palette '{self.palette}' (choose from {', '.join(PALETTES)})"
            )
        if self.min_width < 0:
            raise ConfigError("minimum width cannot be negative")
        if self.image_width is not None and self.image_width <= 0:
            raise ConfigError("image width must be positive")


@dataclass(frozen=True)
class Options:
    output: Path = Path(DEFAULT_OUTPUT)
    open: bool = False
    privilege: Privilege = field(default_factory=Privilege.none)
    frequency: Optional[int] = None
    custom_cmd: Optional[str] = None
    ignore_status: bool = False
    no_inline: bool = False
    compression_level: Optional[int] = None
    post_process: Optional[str] = None
    verbose: bool = False
    appearance: Appearance = field(default_factory=Appearance)

    def check(self):
        """Reject contradictory options before anything is spawned"""
        if self.frequency is not None and self.custom_cmd is not None:
            raise ConfigError("Cannot pass both a custom command and a frequency.")
        if self.frequency is not None and self.frequency <= 0:
            raise ConfigError("sampling frequency must be positive")
        if self.custom_cmd is not None and not self.custom_cmd.strip():
            raise ConfigError("custom sampler command is empty")
        if self.compression_level is not None and self.compression_level < 0:
            raise ConfigError("compression level cannot be negative")
        self.appearance.check()
