"""Turn raw profiler output into folded stacks (``root;...;leaf <count>`` lines)."""

from typing import Iterable

from ..errors import ConfigError
from .base import Folder, format_folded, parse_folded, parse_folded_line, reencode_lossy, total_samples
from .dtrace import DTraceFolder
from .perf import PerfFolder
from .xctrace import XctraceFolder

FOLDERS = {
    "perf": PerfFolder,
    "dtrace": DTraceFolder,
    "xctrace": XctraceFolder,
}


def get_folder(fmt: str, skip_after: Iterable[str] = ()) -> Folder:
    try:
        folder_class = FOLDERS[fmt]
    except KeyError:
        raise ConfigError(f"no collapser for '{fmt}' output") from None

    skip_after = tuple(skip_after)
    if folder_class is PerfFolder:
        return PerfFolder(skip_after=skip_after)
    if skip_after:
        raise ConfigError("--skip-after is only supported with perf")
    return folder_class()


__all__ = [
    "DTraceFolder",
    "FOLDERS",
    "Folder",
    "PerfFolder",
    "XctraceFolder",
    "format_folded",
    "get_folder",
    "parse_folded",
    "parse_folded_line",
    "reencode_lossy",
    "total_samples",
]
