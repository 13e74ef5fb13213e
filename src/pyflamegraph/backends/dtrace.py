"""dtrace backend, with a blondie fallback where dtrace is not installed."""

import logging
import os
import subprocess
from pathlib import Path
from typing import List, Optional

from ..collapse.base import reencode_lossy
from ..config import DEFAULT_FREQUENCY, DTRACE_STACKS_FILE, USTACK_FRAMES, find_tool
from ..errors import ConfigError, IOFailure, SpawnFailure, ToolMissing
from ..privilege import Privilege
from ..supervisor import run_sampler
from ..workload import Command, Pid, ReadPerf, Workload
from .base import RawTrace, SamplerBackend, SamplerHandle, remove_artifact
from .macho import arch_hint_for_binary, parse_arch_preference

logger = logging.getLogger(__name__)


def dtrace_script(frequency: Optional[int], custom_cmd: Optional[str]) -> str:
    if custom_cmd is not None:
        return custom_cmd
    return (
        f"profile-{frequency or DEFAULT_FREQUENCY} /pid == $target/ "
        f"{{ @[ustack({USTACK_FRAMES})] = count(); }}"
    )


def escape_command(argv) -> str:
    """Join a command for ``dtrace -c``, which splits on unescaped spaces"""
    return " ".join(arg.replace(" ", "\\ ") for arg in argv)


class DTraceBackend(SamplerBackend):
    name = "dtrace"
    format = "dtrace"

    def __init__(self, settings, run=run_sampler, stacks_file: str = DTRACE_STACKS_FILE):
        super().__init__(settings, run)
        self.stacks_file = Path(stacks_file)

    @property
    def is_macos(self):
        return self.settings.platform == "darwin"

    @property
    def is_windows(self):
        return self.settings.platform.startswith("win")

    def dtrace(self) -> Optional[str]:
        return find_tool(self.settings.dtrace, "dtrace")

    def blondie(self) -> Optional[str]:
        return find_tool(self.settings.blondie, "blondie_dtrace")

    def sampler(self, workload: Workload) -> str:
        """The program that will record stacks for ``workload``"""
        dtrace = self.dtrace()
        if dtrace is not None:
            return dtrace
        # blondie can only launch commands, not attach to running ones
        if self.is_windows and isinstance(workload, Command):
            blondie = self.blondie()
            if blondie is not None:
                logger.info("dtrace not found, sampling with %s", blondie)
                return blondie
        raise ToolMissing(self.settings.dtrace or "dtrace", "DTRACE")

    def check_tools(self, workload):
        if not isinstance(workload, ReadPerf):
            self.sampler(workload)

    def validate(self, workload, options):
        if options.no_inline:
            raise ConfigError("--no-inline is only supported on Linux")
        if options.compression_level is not None:
            raise ConfigError("a compression level is only supported by perf")
        if options.appearance.skip_after:
            raise ConfigError("--skip-after is only supported with perf")

    def arch_prefix(self, workload: Workload, verbose: bool) -> List[str]:
        """``arch -arch ...`` to pin the architecture dtrace runs as on macOS"""
        if not self.is_macos:
            return []

        if self.settings.arch_preference:
            archs = parse_arch_preference(self.settings.arch_preference)
        elif isinstance(workload, Command):
            binary = workload.argv[0]
            hint, warning = arch_hint_for_binary(binary)
            if warning:
                print(f"warning: {warning}")
            if hint is None:
                return []
            if verbose:
                print(f"setting ARCHPREFERENCE={hint} based on architecture derived from {binary}")
            archs = [hint]
        else:
            return []

        prefix = ["arch"]
        for arch in archs:
            prefix.extend(["-arch", arch])
        return prefix if archs else []

    def build_command(self, workload: Workload, privilege: Privilege,
                      frequency: Optional[int] = None, custom_cmd: Optional[str] = None,
                      verbose: bool = False) -> List[str]:
        command = self.arch_prefix(workload, verbose)
        command += [
            self.sampler(workload),
            "-x", f"ustackframes={USTACK_FRAMES}",
            "-n", dtrace_script(frequency, custom_cmd),
            "-o", str(self.stacks_file),
        ]
        if isinstance(workload, Command):
            command.extend(["-c", escape_command(workload.argv)])
        elif isinstance(workload, Pid):
            for pid in workload.pids:
                command.extend(["-p", str(pid)])
        return privilege.wrap(command)

    def start(self, workload, privilege, frequency=None, custom_cmd=None,
              verbose=False, ignore_status=False, compression_level=None):
        if isinstance(workload, ReadPerf):
            return SamplerHandle(output=workload.path)

        command = self.build_command(workload, privilege, frequency, custom_cmd, verbose)
        # dtrace -o appends, so a stale file from an interrupted run would be mixed in
        remove_artifact(self.stacks_file)
        handle = SamplerHandle(output=self.stacks_file, privileged=privilege.elevate, owned=True)
        try:
            self.run(command, verbose=verbose, ignore_status=ignore_status)
        except BaseException:
            self.cleanup(handle)
            raise
        return handle

    def fix_ownership(self, handle: SamplerHandle, privilege: Privilege):
        """Make a stacks file written by a privileged sampler readable by us"""
        if not handle.privileged or os.name != "posix" or not self.settings.user:
            return
        command = privilege.wrap(["chown", self.settings.user, str(handle.output)])
        try:
            subprocess.run(command, check=False)
        except OSError as e:
            raise SpawnFailure(f"could not spawn chown: {e}") from e

    def collect(self, handle, disable_inline, privilege):
        if disable_inline:
            raise ConfigError("--no-inline is only supported on Linux")

        path = handle.output
        try:
            self.fix_ownership(handle, privilege)
            try:
                data = path.read_bytes()
            except OSError as e:
                raise IOFailure(f"failed to open dtrace output file '{path}': {e}") from e
        finally:
            self.cleanup(handle)

        # dtrace intermittently writes invalid UTF-8 into the stacks file
        data, altered = reencode_lossy(data)
        notes = [f"Lossily converted invalid utf-8 found in {path}"] if altered else []
        return RawTrace(data=data, side_file=path, format=self.format, notes=notes)
