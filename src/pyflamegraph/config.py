"""Environment lookups and fixed defaults, read once per run."""

import os
import shutil
import sys
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ToolMissing

# Sampling defaults
DEFAULT_FREQUENCY = 997
DWARF_STACK_SIZE = 16384
USTACK_FRAMES = 100

# Conventional artifact names, relative to the working directory
PERF_DEFAULT_OUTPUT = "perf.data"
DTRACE_STACKS_FILE = "cargo-flamegraph.stacks"
XCTRACE_TRACE_BUNDLE = "cargo-flamegraph.trace"

DEFAULT_OUTPUT = "flamegraph.svg"
DEFAULT_MIN_WIDTH = 0.01

BACKEND_ENV = "PYFLAMEGRAPH_BACKEND"


@dataclass(frozen=True)
class Settings:
    """Tool overrides and identity taken from the environment"""
    platform: str = sys.platform
    perf: Optional[str] = None
    dtrace: Optional[str] = None
    blondie: Optional[str] = None
    xcrun: Optional[str] = None
    flamegraph_pl: Optional[str] = None
    demangler: Optional[str] = None
    arch_preference: Optional[str] = None
    user: Optional[str] = None
    backend: Optional[str] = None


def load_settings(environ: Optional[Mapping[str, str]] = None, platform: Optional[str] = None) -> Settings:
    """Build Settings from environment variables (``os.environ`` by default)"""
    if environ is None:
        environ = os.environ

    def get(name):
        value = environ.get(name)
        return value if value else None

    return Settings(
        platform=platform or sys.platform,
        perf=get("PERF"),
        dtrace=get("DTRACE"),
        blondie=get("BLONDIE"),
        xcrun=get("XCRUN"),
        flamegraph_pl=get("FLAMEGRAPH_PL"),
        demangler=get("DEMANGLER"),
        arch_preference=get("ARCHPREFERENCE"),
        user=get("USER"),
        backend=get(BACKEND_ENV),
    )


def find_tool(override: Optional[str], default: str) -> Optional[str]:
    """Resolve a program from an explicit override, then PATH"""
    return shutil.which(override or default)


def require_tool(override: Optional[str], default: str, override_var: str) -> str:
    path = find_tool(override, default)
    if path is None:
        raise ToolMissing(override or default, override_var)
    return path
