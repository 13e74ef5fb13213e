"""Collapse dtrace ``ustack()`` aggregations (also written by blondie).

Each aggregated stack is listed leaf first, one ``module`function+offset``
frame per line, followed by its sample count on a line of its own.
"""

import logging
import re

from .base import Folder, decode_text

logger = logging.getLogger(__name__)

COUNT_PATTERN = re.compile(r"^\s*(\d+)\s*$")
OFFSET_PATTERN = re.compile(r"\+0x[0-9a-fA-F]+$")


def frame_name(line: str) -> str:
    return OFFSET_PATTERN.sub("", line.strip())


class DTraceFolder(Folder):
    name = "dtrace"

    def fold(self, data: bytes):
        frames = []
        for line in decode_text(data, "dtrace").splitlines():
            if not line.strip():
                # Stacks are followed by their count; anything else ending at a
                # blank line is the probe header
                frames = []
                continue

            match = COUNT_PATTERN.match(line)
            if match and frames:
                self.add(list(reversed(frames)), int(match.group(1)))
                frames = []
                continue

            frames.append(frame_name(line))

        if frames:
            logger.warning("ignoring %d trailing dtrace frames without a sample count", len(frames))
