"""macOS Instruments backend driven through ``xcrun xctrace``."""

import logging
import subprocess
from pathlib import Path
from typing import List

from ..config import XCTRACE_TRACE_BUNDLE, require_tool
from ..errors import ConfigError, SamplingFailure, SpawnFailure
from ..privilege import Privilege
from ..supervisor import print_command, run_sampler
from ..workload import Command, Pid, ReadPerf, Workload
from .base import RawTrace, SamplerBackend, SamplerHandle, remove_artifact

logger = logging.getLogger(__name__)

TEMPLATE = "Time Profiler"
TIME_PROFILE_XPATH = '/trace-toc/*/data/table[@schema="time-profile"]'


class XctraceBackend(SamplerBackend):
    name = "xctrace"
    format = "xctrace"
    # Instruments may export symbols still mangled
    needs_demangle = True

    def __init__(self, settings, run=run_sampler, trace_bundle: str = XCTRACE_TRACE_BUNDLE):
        super().__init__(settings, run)
        self.trace_bundle = Path(trace_bundle)

    def xcrun(self) -> str:
        return require_tool(self.settings.xcrun, "xcrun", "XCRUN")

    def check_tools(self, workload):
        self.xcrun()

    def validate(self, workload, options):
        if options.frequency is not None:
            raise ConfigError("xctrace does not support a custom sampling frequency")
        if options.custom_cmd is not None:
            raise ConfigError("xctrace does not support a custom sampler command")
        if options.no_inline:
            raise ConfigError("--no-inline is only supported on Linux")
        if options.compression_level is not None:
            raise ConfigError("a compression level is only supported by perf")
        if options.appearance.skip_after:
            raise ConfigError("--skip-after is only supported with perf")
        if isinstance(workload, Pid) and len(workload.pids) > 1:
            raise ConfigError("xctrace can only attach to a single pid")

    def build_record_command(self, workload: Workload, privilege: Privilege) -> List[str]:
        command = [
            self.xcrun(), "xctrace", "record",
            "--template", TEMPLATE,
            "--output", str(self.trace_bundle),
        ]
        if isinstance(workload, Command):
            command.extend(["--target-stdout", "-", "--launch", "--"])
            command.extend(workload.argv)
        elif isinstance(workload, Pid):
            if len(workload.pids) != 1:
                raise ConfigError("xctrace can only attach to a single pid")
            command.extend(["--attach", str(workload.pids[0])])
        return privilege.wrap(command)

    def start(self, workload, privilege, frequency=None, custom_cmd=None,
              verbose=False, ignore_status=False, compression_level=None):
        if isinstance(workload, ReadPerf):
            return SamplerHandle(output=workload.path)
        if frequency is not None or custom_cmd is not None:
            raise ConfigError("xctrace does not support a custom frequency or command")

        command = self.build_record_command(workload, privilege)
        # xctrace refuses to overwrite an existing bundle
        remove_artifact(self.trace_bundle)
        handle = SamplerHandle(output=self.trace_bundle, privileged=privilege.elevate, owned=True)
        try:
            self.run(command, verbose=verbose, ignore_status=ignore_status)
        except BaseException:
            self.cleanup(handle)
            raise
        return handle

    def build_export_command(self, handle: SamplerHandle, privilege: Privilege) -> List[str]:
        return privilege.wrap([
            self.xcrun(), "xctrace", "export",
            "--input", str(handle.output),
            "--xpath", TIME_PROFILE_XPATH,
        ])

    def collect(self, handle, disable_inline, privilege):
        if disable_inline:
            raise ConfigError("--no-inline is only supported on Linux")

        command = self.build_export_command(handle, privilege)
        print_command(command, logger.isEnabledFor(logging.DEBUG))
        try:
            try:
                result = subprocess.run(command, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
            except OSError as e:
                raise SpawnFailure(f"unable to call xctrace export: {e}") from e
        finally:
            self.cleanup(handle)

        if result.returncode != 0:
            message = result.stderr.decode("utf-8", errors="replace").strip()
            raise SamplingFailure(f"unable to run 'xctrace export': {message}", result.returncode)

        return RawTrace(
            data=result.stdout,
            side_file=handle.output,
            format=self.format,
            needs_demangle=self.needs_demangle,
        )
