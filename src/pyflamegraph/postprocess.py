"""Pipe folded stacks through a user supplied filter command."""

import logging
import shlex
import subprocess
import threading

from .errors import ConfigError, PostProcessFailure, SpawnFailure

logger = logging.getLogger(__name__)


def split_command(command: str):
    try:
        argv = shlex.split(command)
    except ValueError as e:
        raise ConfigError(f"unable to parse post-process command: {e}") from e
    if not argv:
        raise ConfigError("unable to parse post-process command: it is empty")
    return argv


def post_process(command: str, folded: bytes) -> bytes:
    """Run ``command`` with ``folded`` on stdin and return its stdout.

    stdout is drained on a separate thread while we write stdin, otherwise a
    filter that writes as it reads would fill the pipe and block us both.
    """
    argv = split_command(command)
    try:
        process = subprocess.Popen(argv, stdin=subprocess.PIPE, stdout=subprocess.PIPE)
    except OSError as e:
        raise SpawnFailure(f"unable to execute {argv}: {e}") from e

    result = {}

    def drain():
        try:
            result["stdout"] = process.stdout.read()
        except OSError as e:
            result["error"] = e

    reader = threading.Thread(target=drain, name="post-process-reader", daemon=True)
    reader.start()

    try:
        try:
            process.stdin.write(folded)
        except BrokenPipeError:
            # The filter stopped reading early; its exit status decides
            logger.debug("post-process command closed its stdin early")
        except OSError as e:
            raise PostProcessFailure(
                f"unable to write the folded stacks to the post-process command: {e}"
            ) from e
        finally:
            try:
                process.stdin.close()
            except OSError as e:
                # The filter stopped reading; its exit status decides
                logger.debug("closing post-process stdin failed: %s", e)
    finally:
        returncode = process.wait()
        reader.join()
        process.stdout.close()

    if returncode != 0:
        raise PostProcessFailure(f"post-process exited with a non zero exit code ({returncode})")
    if "error" in result:
        raise PostProcessFailure(
            f"unable to read the processed stacks from the post-process command: {result['error']}"
        )
    return result["stdout"]
