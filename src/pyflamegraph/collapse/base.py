import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


def reencode_lossy(data: bytes) -> Tuple[bytes, bool]:
    """Replace invalid UTF-8 sequences; return the new bytes and whether any changed"""
    reencoded = data.decode("utf-8", errors="replace").encode("utf-8")
    return reencoded, reencoded != data


def clean_frame(name: str) -> str:
    # ';' separates frames and a trailing ' <n>' is the count in folded lines
    return name.replace(";", ":").replace("\n", " ").strip()


def parse_folded_line(line: str) -> Tuple[Optional[str], Optional[int]]:
    """Parse a folded format line into stack trace and value"""
    if not line.strip():
        return None, None

    parts = line.rstrip().rsplit(" ", 1)
    if len(parts) != 2:
        return None, None

    stack_trace = parts[0]
    try:
        return stack_trace, int(parts[1])
    except ValueError:
        return None, None


def parse_folded(data: bytes) -> Dict[str, int]:
    """Read folded stacks, summing counts of repeated stacks"""
    stacks = defaultdict(int)
    for line in data.decode("utf-8", errors="replace").splitlines():
        stack, count = parse_folded_line(line)
        if stack is not None:
            stacks[stack] += count
    return dict(stacks)


def format_folded(stacks: Mapping[str, int]) -> bytes:
    """Folded format: stack_frame1;stack_frame2;... count, one line per stack, sorted"""
    lines = [f"{stack} {count}\n" for stack, count in sorted(stacks.items()) if count > 0]
    return "".join(lines).encode("utf-8")


class Folder(ABC):
    """Collapses one profiler's stack output into folded stacks"""

    name = "abstract"

    def __init__(self):
        self.stacks = defaultdict(int)

    def add(self, frames: Sequence[str], count: int = 1):
        """Record ``count`` samples of ``frames`` (root first)"""
        if frames:
            self.stacks[";".join(clean_frame(f) for f in frames)] += count

    @abstractmethod
    def fold(self, data: bytes):
        """Parse ``data`` and ``add`` every sample it contains"""

    def collapse(self, data: bytes) -> bytes:
        self.stacks = defaultdict(int)
        self.fold(data)
        logger.debug(
            "%s: %d unique stacks, %d samples",
            self.name, len(self.stacks), sum(self.stacks.values()),
        )
        if not self.stacks and data.strip():
            logger.warning("%s: no samples found in %d bytes of profiler output", self.name, len(data))
        return format_folded(self.stacks)


def decode_text(data: bytes, source: str) -> str:
    """Decode profiler text output, replacing malformed bytes instead of failing"""
    reencoded, altered = reencode_lossy(data)
    if altered:
        print(f"Lossily converted invalid utf-8 found in {source} output")
    return reencoded.decode("utf-8")


def total_samples(stacks: Mapping[str, int], prefix: Iterable[str] = ()) -> int:
    """Sum of counts of all stacks starting with the frames in ``prefix``"""
    prefix = list(prefix)
    total = 0
    for stack, count in stacks.items():
        frames = stack.split(";")
        if frames[:len(prefix)] == prefix:
            total += count
    return total
