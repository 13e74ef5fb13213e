"""Platform sampling backends.

Exactly one backend serves a given platform: perf on Linux, dtrace
everywhere else. On macOS, ``PYFLAMEGRAPH_BACKEND=xctrace`` selects
Instruments instead.
"""

from ..config import BACKEND_ENV, Settings
from ..errors import ConfigError
from .base import RawTrace, SamplerBackend, SamplerHandle
from .dtrace import DTraceBackend
from .perf import PerfBackend
from .xctrace import XctraceBackend

BACKENDS = {
    "perf": PerfBackend,
    "dtrace": DTraceBackend,
    "xctrace": XctraceBackend,
}


def backend_class_for(settings: Settings):
    if settings.platform.startswith("linux"):
        default, allowed = "perf", ("perf",)
    elif settings.platform == "darwin":
        default, allowed = "dtrace", ("dtrace", "xctrace")
    else:
        default, allowed = "dtrace", ("dtrace",)

    name = settings.backend or default
    if name not in allowed:
        raise ConfigError(
            f"{BACKEND_ENV}={name} is not available on {settings.platform} "
            f"(choose from {', '.join(allowed)})"
        )
    return BACKENDS[name]


def get_backend(settings: Settings, **kwargs) -> SamplerBackend:
    return backend_class_for(settings)(settings, **kwargs)


__all__ = [
    "BACKENDS",
    "DTraceBackend",
    "PerfBackend",
    "RawTrace",
    "SamplerBackend",
    "SamplerHandle",
    "XctraceBackend",
    "backend_class_for",
    "get_backend",
]
