"""Linux ``perf record`` / ``perf script`` backend."""

import logging
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import List, Optional

from tqdm import tqdm

from ..config import DEFAULT_FREQUENCY, DWARF_STACK_SIZE, PERF_DEFAULT_OUTPUT, require_tool
from ..errors import ConfigError, SamplingFailure, SpawnFailure
from ..privilege import Privilege
from ..supervisor import print_command
from ..workload import Command, Pid, ReadPerf, Workload
from .base import RawTrace, SamplerBackend, SamplerHandle

logger = logging.getLogger(__name__)

READ_CHUNK = 64 * 1024


def record_arguments(frequency: Optional[int], custom_cmd: Optional[str],
                     compression_level: Optional[int] = None):
    """Split the ``perf`` arguments and find a ``-o`` output override.

    Returns ``(args, output)`` where ``output`` is None when perf writes to
    its default ``perf.data``.
    """
    if custom_cmd is not None:
        tokens = custom_cmd.split()
    else:
        tokens = [
            "record",
            "-F", str(frequency or DEFAULT_FREQUENCY),
            "--call-graph", f"dwarf,{DWARF_STACK_SIZE}",
            "-g",
        ]
        if compression_level is not None:
            tokens.append(f"--compression-level={compression_level}")

    output = None
    for i, token in enumerate(tokens):
        if token == "-o":
            if i + 1 >= len(tokens):
                raise ConfigError("missing '-o' argument in custom perf command")
            output = tokens[i + 1]
    return tokens, output


class PerfBackend(SamplerBackend):
    name = "perf"
    format = "perf"

    def perf(self) -> str:
        return require_tool(self.settings.perf, "perf", "PERF")

    def check_tools(self, workload: Workload):
        self.perf()

    def build_record_command(self, workload: Workload, privilege: Privilege,
                             frequency: Optional[int] = None, custom_cmd: Optional[str] = None,
                             compression_level: Optional[int] = None):
        args, output = record_arguments(frequency, custom_cmd, compression_level)
        command = privilege.wrap([self.perf()] + args)

        if isinstance(workload, Command):
            command.extend(workload.argv)
        elif isinstance(workload, Pid):
            command.extend(["-p", ",".join(str(pid) for pid in workload.pids)])
        return command, output

    def start(self, workload, privilege, frequency=None, custom_cmd=None,
              verbose=False, ignore_status=False, compression_level=None):
        if isinstance(workload, ReadPerf):
            return SamplerHandle(output=workload.path)

        command, output = self.build_record_command(
            workload, privilege, frequency, custom_cmd, compression_level
        )
        self.run(command, verbose=verbose, ignore_status=ignore_status)
        return SamplerHandle(
            output=Path(output) if output else None,
            privileged=privilege.elevate,
        )

    def build_script_command(self, handle: SamplerHandle, disable_inline: bool,
                             privilege: Privilege) -> List[str]:
        # Elevated again so privileged kernel symbols resolve from /proc/kallsyms
        command = privilege.wrap([self.perf(), "script"])
        # Read perf.data even if another uid owns it
        command.append("--force")
        if disable_inline:
            command.append("--no-inline")
        if handle.output is not None:
            command.extend(["-i", str(handle.output)])
        return command

    def collect(self, handle, disable_inline, privilege):
        command = self.build_script_command(handle, disable_inline, privilege)
        print_command(command, logger.isEnabledFor(logging.DEBUG))
        print("Running perf script, this may take a while...")

        with tempfile.TemporaryFile() as stderr:
            try:
                process = subprocess.Popen(command, stdout=subprocess.PIPE, stderr=stderr)
            except OSError as e:
                raise SpawnFailure(f"unable to call perf script: {e}") from e

            chunks = []
            try:
                with tqdm(unit="B", unit_scale=True, desc="perf script", file=sys.stderr,
                          leave=False) as progress:
                    while True:
                        chunk = process.stdout.read(READ_CHUNK)
                        if not chunk:
                            break
                        chunks.append(chunk)
                        progress.update(len(chunk))
            except BaseException:
                # Ctrl+C or a read error; do not leave perf script running
                process.kill()
                process.wait()
                raise
            process.stdout.close()
            returncode = process.wait()

            if returncode != 0:
                stderr.seek(0)
                message = stderr.read().decode("utf-8", errors="replace").strip()
                raise SamplingFailure(f"unable to run 'perf script': {message}", returncode)

        return RawTrace(
            data=b"".join(chunks),
            side_file=handle.output or Path(PERF_DEFAULT_OUTPUT),
            format=self.format,
        )
