import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from ..config import Settings
from ..errors import IOFailure
from ..options import Options
from ..privilege import Privilege
from ..supervisor import run_sampler
from ..workload import Workload


@dataclass
class SamplerHandle:
    """What ``start`` leaves behind for ``collect``"""
    output: Optional[Path] = None
    privileged: bool = False
    # True when ``output`` is ours to delete after collection
    owned: bool = False


@dataclass
class RawTrace:
    data: bytes
    side_file: Optional[Path] = None
    # Folder name from ``pyflamegraph.collapse.FOLDERS``
    format: str = "perf"
    needs_demangle: bool = False
    notes: List[str] = field(default_factory=list)


class SamplerBackend(ABC):
    """A platform profiler that can sample a workload and hand back its output"""

    name = "abstract"
    format = "perf"
    needs_demangle = False

    def __init__(self, settings: Settings, run: Callable = run_sampler):
        self.settings = settings
        self.run = run

    @abstractmethod
    def check_tools(self, workload: Workload):
        """Raise ToolMissing when a required program cannot be found"""

    def validate(self, workload: Workload, options: Options):
        """Raise ConfigError for options this backend cannot honour"""

    @abstractmethod
    def start(
        self,
        workload: Workload,
        privilege: Privilege,
        frequency: Optional[int] = None,
        custom_cmd: Optional[str] = None,
        verbose: bool = False,
        ignore_status: bool = False,
        compression_level: Optional[int] = None,
    ) -> SamplerHandle:
        """Run the sampler to completion"""

    @abstractmethod
    def collect(self, handle: SamplerHandle, disable_inline: bool, privilege: Privilege) -> RawTrace:
        """Turn what the sampler recorded into raw profiler text"""

    def cleanup(self, handle: SamplerHandle):
        """Remove temporary artifacts of ``handle``; safe to call more than once"""
        if handle.owned and handle.output is not None:
            remove_artifact(handle.output)
            handle.owned = False


def remove_artifact(path: Path):
    try:
        if path.is_dir():
            shutil.rmtree(path)
        elif path.exists():
            path.unlink()
    except OSError as e:
        raise IOFailure(f"unable to remove temporary file '{path}': {e}") from e
