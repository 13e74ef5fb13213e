"""Flame graphs for commands, running processes or recorded perf traces."""

__version__ = "0.6.8"

from .errors import (
    ConfigError,
    FlamegraphError,
    IOFailure,
    ParseFailure,
    PostProcessFailure,
    RenderFailure,
    SamplingFailure,
    SpawnFailure,
    ToolMissing,
)
from .options import Appearance, Direction, Options
from .pipeline import generate_flamegraph_for_workload
from .privilege import Privilege
from .workload import Command, Pid, ReadPerf, Workload

__all__ = [
    "Appearance",
    "Command",
    "ConfigError",
    "Direction",
    "FlamegraphError",
    "IOFailure",
    "Options",
    "ParseFailure",
    "Pid",
    "PostProcessFailure",
    "Privilege",
    "ReadPerf",
    "RenderFailure",
    "SamplingFailure",
    "SpawnFailure",
    "ToolMissing",
    "Workload",
    "generate_flamegraph_for_workload",
]
