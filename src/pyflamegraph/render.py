"""Render folded stacks to an SVG with Brendan Gregg's ``flamegraph.pl``."""

import logging
import os
import subprocess
import tempfile
import webbrowser
from pathlib import Path
from typing import List

from .collapse.base import parse_folded, total_samples
from .config import Settings, find_tool, require_tool
from .errors import IOFailure, RenderFailure, SpawnFailure, ToolMissing
from .options import Appearance, Direction

logger = logging.getLogger(__name__)


def current_umask() -> int:
    umask = os.umask(0)
    os.umask(umask)
    return umask


def flamegraph_arguments(appearance: Appearance) -> List[str]:
    args = []
    if appearance.title:
        args.extend(["--title", appearance.title])
    if appearance.subtitle:
        args.extend(["--subtitle", appearance.subtitle])
    if appearance.deterministic:
        args.append("--hash")
    if appearance.direction is Direction.INVERTED:
        args.append("--inverted")
    if appearance.reverse:
        args.append("--reverse")
    if appearance.flame_chart:
        args.append("--flamechart")
    if appearance.notes:
        args.extend(["--notes", appearance.notes])
    args.extend(["--minwidth", str(appearance.min_width)])
    if appearance.image_width is not None:
        args.extend(["--width", str(appearance.image_width)])
    if appearance.palette:
        args.extend(["--colors", appearance.palette])
    return args


class FlamegraphRenderer:
    def __init__(self, settings: Settings):
        self.settings = settings

    def command(self) -> List[str]:
        script = require_tool(self.settings.flamegraph_pl, "flamegraph.pl", "FLAMEGRAPH_PL")
        if script.endswith(".pl"):
            perl = find_tool(None, "perl")
            if perl is None:
                raise ToolMissing("perl")
            return [perl, script]
        return [script]

    def check_tools(self):
        self.command()

    def render(self, folded: bytes, appearance: Appearance, output: Path) -> Path:
        """Write the flame graph for ``folded`` to ``output``.

        The SVG goes to a temporary file next to ``output`` first, so a failed
        render leaves an existing ``output`` untouched.
        """
        stacks = parse_folded(folded)
        if not stacks:
            raise RenderFailure("No stack counts found")
        logger.debug("rendering %d samples in %d stacks", total_samples(stacks), len(stacks))

        command = self.command() + flamegraph_arguments(appearance)
        output = Path(output)

        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{output.name}.", suffix=".tmp", dir=output.parent)
        except OSError as e:
            raise IOFailure(f"unable to create {output} output file: {e}") from e

        try:
            with os.fdopen(fd, "wb") as tmp:
                try:
                    process = subprocess.Popen(
                        command, stdin=subprocess.PIPE, stdout=tmp, stderr=subprocess.PIPE
                    )
                except OSError as e:
                    raise SpawnFailure(f"unable to execute {command[0]}: {e}") from e
                _, stderr = process.communicate(folded)

            if process.returncode != 0:
                message = stderr.decode("utf-8", errors="replace").strip()
                raise RenderFailure(
                    f"unable to generate a flamegraph from the collapsed stack data: {message}"
                )
            # mkstemp creates 0600 files; give the output the usual umask mode
            os.chmod(tmp_name, 0o666 & ~current_umask())
            os.replace(tmp_name, output)
        finally:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
        return output


def open_in_viewer(path: Path) -> bool:
    """Hand ``path`` to the default program; failures only warn"""
    try:
        opened = webbrowser.open(Path(path).resolve().as_uri())
    except webbrowser.Error as e:
        logger.warning("failed to open '%s': %s", path, e)
        return False
    if not opened:
        logger.warning("failed to open '%s': no viewer available", path)
    return opened
