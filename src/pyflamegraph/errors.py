"""Error taxonomy for a flamegraph run.

Every failure that ends a run is a ``FlamegraphError`` subclass; the command
line front end prints the message and exits non-zero.
"""

from typing import Optional


class FlamegraphError(Exception):
    """Base class for all errors raised by the pipeline"""


class ConfigError(FlamegraphError):
    """Options are contradictory or not supported by the active backend"""


class ToolMissing(FlamegraphError):
    """A required external program could not be found"""

    def __init__(self, tool: str, override_var: Optional[str] = None):
        message = f"could not find '{tool}'"
        if override_var:
            message += f" (install it or set {override_var} to its path)"
        super().__init__(message)
        self.tool = tool
        self.override_var = override_var


class SpawnFailure(FlamegraphError):
    """An external program could not be started"""


class SamplingFailure(FlamegraphError):
    """The sampler exited with an unexpected status"""

    def __init__(self, message: str, exit_code: Optional[int] = None):
        if exit_code is not None:
            message = f"{message} (exit code {exit_code})"
        super().__init__(message)
        self.exit_code = exit_code


class ParseFailure(FlamegraphError):
    """Raw profiler output could not be interpreted"""


class IOFailure(FlamegraphError):
    """A temporary artifact could not be created, read or removed"""


class PostProcessFailure(FlamegraphError):
    """The post-process filter exited with a non-zero status"""


class RenderFailure(FlamegraphError):
    """The flame graph image could not be generated"""
