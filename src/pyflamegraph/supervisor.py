"""Run the sampler in the foreground and classify how it ended.

Ctrl+C sends SIGINT to every process in the foreground process group. While
the sampler runs we swallow it ourselves, so the sampler (and the program it
launched) can stop cleanly and we carry on to build the flame graph from what
was recorded.
"""

import logging
import os
import shlex
import signal
import subprocess
from contextlib import contextmanager
from typing import Mapping, Optional, Sequence

from .errors import SamplingFailure, SpawnFailure

logger = logging.getLogger(__name__)


def print_command(argv: Sequence[str], verbose: bool):
    if verbose:
        print(f"Running: {shlex.join(argv)}")


class PlainExit:
    """Exit classification for platforms without POSIX signals"""

    @contextmanager
    def forwarding_interrupts(self):
        yield

    def terminated_by_error(self, returncode: int) -> bool:
        return returncode != 0


class SignalForwarding(PlainExit):
    """POSIX: interrupts reach the child, SIGINT/SIGTERM count as a clean stop"""

    STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)

    @contextmanager
    def forwarding_interrupts(self):
        previous = signal.signal(signal.SIGINT, lambda signum, frame: None)
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, previous)

    def terminated_by_error(self, returncode: int) -> bool:
        # Popen reports death by signal N as -N
        if returncode < 0 and -returncode in self.STOP_SIGNALS:
            return False
        return returncode != 0


def default_policy():
    if os.name == "posix" and hasattr(signal, "SIGTERM"):
        return SignalForwarding()
    return PlainExit()


def run_sampler(
    argv: Sequence[str],
    verbose: bool = False,
    ignore_status: bool = False,
    env: Optional[Mapping[str, str]] = None,
    policy=None,
) -> int:
    """Spawn ``argv``, wait for it and return its return code.

    Raises SpawnFailure if it cannot be started, SamplingFailure if it ended
    with an unexpected status and ``ignore_status`` is False.
    """
    if policy is None:
        policy = default_policy()

    print_command(argv, verbose)
    with policy.forwarding_interrupts():
        try:
            process = subprocess.Popen(list(argv), env=dict(env) if env is not None else None)
        except OSError as e:
            raise SpawnFailure(f"could not spawn {argv[0]}: {e}") from e
        returncode = process.wait()

    logger.debug("%s exited with %s", argv[0], returncode)
    if not ignore_status and policy.terminated_by_error(returncode):
        raise SamplingFailure("failed to sample program", returncode)
    return returncode
