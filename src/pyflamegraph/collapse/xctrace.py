"""Collapse an ``xctrace export`` of the Time Profiler ``time-profile`` table.

Every ``<row>`` is one sample. Elements that repeat are written out once with
an ``id`` and referred to afterwards with ``ref``::

    <row>
      <sample-time id="1" fmt="00:00.230.138">230138083</sample-time>
      <backtrace id="9">
        <frame id="10" name="compute" addr="0x100003f60"/>
        <frame id="12" name="main" addr="0x100003f20"/>
      </backtrace>
    </row>
    <row>...<backtrace ref="9"/></row>

Frames in a backtrace are listed leaf first.
"""

import io
import logging
import xml.etree.ElementTree as ET
from typing import Dict, List

from ..errors import ParseFailure
from .base import Folder

logger = logging.getLogger(__name__)


class XctraceFolder(Folder):
    name = "xctrace"

    def fold(self, data: bytes):
        self.frames_by_id: Dict[str, str] = {}
        self.backtraces_by_id: Dict[str, List[str]] = {}

        try:
            for _, element in ET.iterparse(io.BytesIO(data), events=("end",)):
                if element.tag == "row":
                    self.on_row(element)
                    element.clear()
        except ET.ParseError as e:
            raise ParseFailure(f"unable to parse xctrace export: {e}") from e

    def resolve_frame(self, frame) -> str:
        ref = frame.get("ref")
        if ref is not None:
            try:
                return self.frames_by_id[ref]
            except KeyError:
                raise ParseFailure(f"xctrace export refers to unknown frame id {ref}") from None

        name = frame.get("name") or frame.get("addr") or "[unknown]"
        if frame.get("id") is not None:
            self.frames_by_id[frame.get("id")] = name
        return name

    def resolve_backtrace(self, backtrace) -> List[str]:
        ref = backtrace.get("ref")
        if ref is not None:
            try:
                return self.backtraces_by_id[ref]
            except KeyError:
                raise ParseFailure(f"xctrace export refers to unknown backtrace id {ref}") from None

        frames = [self.resolve_frame(frame) for frame in backtrace.findall("frame")]
        if backtrace.get("id") is not None:
            self.backtraces_by_id[backtrace.get("id")] = frames
        return frames

    def on_row(self, row):
        backtrace = row.find("backtrace")
        if backtrace is None:
            # Idle samples carry a <sentinel/> instead of a backtrace
            return
        frames = self.resolve_backtrace(backtrace)
        self.add(list(reversed(frames)))
