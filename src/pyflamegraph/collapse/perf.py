"""Collapse ``perf script`` output.

Each sample is a header line followed by one indented line per frame, leaf
first, and ends at a blank line::

    myapp 12345/12345 [003] 1234.567890:     250000 cpu-clock:uhH:
            55d0c1a2b3c4 compute+0x14 (/usr/bin/myapp)
            55d0c1a2b000 main+0x2f (/usr/bin/myapp)
"""

import logging
import os
import re
from typing import Iterable, List, Optional

from .base import Folder, decode_text

logger = logging.getLogger(__name__)

# The pid is anchored on the optional [cpu] and the timestamp after it, so comms
# holding a numeric word ("worker 2") stay whole
TIMED_HEADER_PATTERN = re.compile(
    r"^(?P<comm>\S.*?)\s+(?P<pid>-?\d+)(?:/(?P<tid>\d+))?\s+(?:\[\d+\]\s+)?\d+\.\d+:"
)
HEADER_PATTERN = re.compile(r"^(?P<comm>\S.*?)\s+(?P<pid>-?\d+)(?:/(?P<tid>\d+))?\s")
TIMESTAMP_PATTERN = re.compile(r"\s\d+\.\d+:\s*")
FRAME_PATTERN = re.compile(r"^\s+(?P<addr>[0-9a-fA-F]+)\s+(?P<symbol>.*?)(?:\s+\((?P<module>(?:[^()]|\([^()]*\))*)\))?\s*$")
OFFSET_PATTERN = re.compile(r"\+0x[0-9a-fA-F]+$")
DELETED_PATTERN = re.compile(r"\s+\(deleted\)$")


def event_name(header: str) -> Optional[str]:
    """``cpu-clock`` from ``... 1234.567890: 250000 cpu-clock:uhH:``"""
    match = TIMESTAMP_PATTERN.search(header)
    if not match:
        return None
    for token in header[match.end():].split():
        if token.isdigit():
            continue
        return token.rstrip(":").split(":")[0]
    return None


def frame_name(symbol: str, module: Optional[str]) -> str:
    if module:
        # Mappings of unlinked files read "/path/lib.so (deleted)"
        module = DELETED_PATTERN.sub("", module)
    symbol = OFFSET_PATTERN.sub("", symbol.strip())
    if symbol in ("", "[unknown]"):
        if module and module != "[unknown]":
            return f"[{os.path.basename(module)}]"
        return "[unknown]"
    return symbol


class PerfFolder(Folder):
    name = "perf"

    def __init__(self, skip_after: Iterable[str] = (), include_pname: bool = True):
        super().__init__()
        self.skip_after = set(skip_after)
        self.include_pname = include_pname

    def fold(self, data: bytes):
        self.event_filter = None
        self.comm = None
        self.frames = []
        self.in_sample = False
        self.skipping = False

        for line in decode_text(data, "perf script").splitlines():
            self.on_line(line)
        self.end_sample()

    def on_line(self, line: str):
        if not line.strip():
            self.end_sample()
            return
        if line.startswith("#"):
            return

        # Without -g perf pads comms to 16 columns, so headers may be indented too
        if not line[0].isspace() or TIMED_HEADER_PATTERN.match(line.lstrip()):
            self.end_sample()
            self.start_sample(line.lstrip())
            return

        if not self.in_sample or self.skipping:
            return

        match = FRAME_PATTERN.match(line)
        if not match:
            logger.debug("ignoring unrecognized perf script line: %r", line)
            return
        name = frame_name(match.group("symbol"), match.group("module"))
        self.frames.append(name)
        if name in self.skip_after:
            # Everything below the boundary frame is dropped
            self.skipping = True

    def start_sample(self, header: str):
        match = TIMED_HEADER_PATTERN.match(header) or HEADER_PATTERN.match(header)
        if not match:
            logger.debug("ignoring unrecognized perf script header: %r", header)
            return

        event = event_name(header)
        if event is not None:
            if self.event_filter is None:
                self.event_filter = event
            elif event != self.event_filter:
                # Only the first event type is counted
                return

        self.comm = match.group("comm").strip()
        self.frames = []
        self.in_sample = True
        self.skipping = False

    def end_sample(self):
        if not self.in_sample:
            return

        stack: List[str] = list(reversed(self.frames))
        if self.include_pname and not self.skipping:
            stack.insert(0, self.comm)
        self.add(stack)

        self.in_sample = False
        self.skipping = False
        self.frames = []
