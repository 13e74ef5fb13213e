"""What to profile: a command to launch, running processes, or a recorded trace."""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Tuple, Union

from .errors import ConfigError


@dataclass(frozen=True)
class Command:
    """Launch ``argv`` under the sampler"""
    argv: Tuple[str, ...]

    def __init__(self, argv: Iterable[str]):
        argv = tuple(str(arg) for arg in argv)
        if not argv:
            raise ConfigError("no command given to profile")
        object.__setattr__(self, "argv", argv)


@dataclass(frozen=True)
class Pid:
    """Attach to already running processes"""
    pids: Tuple[int, ...]

    def __init__(self, pids: Iterable[int]):
        unique = []
        for pid in pids:
            pid = int(pid)
            if pid <= 0:
                raise ConfigError(f"invalid pid: {pid}")
            if pid not in unique:
                unique.append(pid)
        if not unique:
            raise ConfigError("no process id given to profile")
        object.__setattr__(self, "pids", tuple(unique))


@dataclass(frozen=True)
class ReadPerf:
    """Skip sampling and read a previously recorded trace"""
    path: Path

    def __init__(self, path: Union[str, Path]):
        object.__setattr__(self, "path", Path(path))


Workload = Union[Command, Pid, ReadPerf]
