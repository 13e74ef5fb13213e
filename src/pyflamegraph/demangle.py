"""Demangle symbol names inside an xctrace XML export.

Instruments may export Rust and C++ symbols still mangled. The export is
rewritten in a streaming SAX pass that replaces every ``frame/@name`` with its
demangled form and writes everything else back unchanged (re-escaped).
Names are demangled in one batch by an external demangler (``rustfilt`` or
``c++filt``), which reads one symbol per line on stdin.
"""

import io
import logging
import subprocess
import xml.sax
from typing import Callable, Dict, Iterable, Optional, Set
from xml.sax.saxutils import XMLGenerator
from xml.sax.xmlreader import AttributesImpl

from .config import Settings, find_tool
from .errors import ParseFailure, SpawnFailure

logger = logging.getLogger(__name__)

DEMANGLERS = ("rustfilt", "c++filt")
SYMBOL_ELEMENTS = {"frame": "name"}
MANGLED_PREFIXES = ("_Z", "__Z", "_R", "__R")

DemangleFn = Callable[[Iterable[str]], Dict[str, str]]


def looks_mangled(name: str) -> bool:
    return name.startswith(MANGLED_PREFIXES)


def find_demangler(settings: Settings) -> Optional[str]:
    if settings.demangler:
        return find_tool(settings.demangler, settings.demangler)
    for tool in DEMANGLERS:
        path = find_tool(None, tool)
        if path is not None:
            return path
    return None


class Demangler:
    """Batch front end to a line-oriented demangler program"""

    def __init__(self, tool: Optional[str]):
        self.tool = tool
        if tool is None:
            logger.warning(
                "no demangler found (install rustfilt or c++filt, or set DEMANGLER); "
                "symbols will be shown mangled"
            )

    @classmethod
    def from_settings(cls, settings: Settings):
        return cls(find_demangler(settings))

    def __call__(self, names: Iterable[str]) -> Dict[str, str]:
        names = sorted(set(names))
        if not names or self.tool is None:
            return {name: name for name in names}

        try:
            result = subprocess.run(
                [self.tool],
                input="\n".join(names) + "\n",
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                universal_newlines=True,
            )
        except OSError as e:
            raise SpawnFailure(f"unable to execute demangler {self.tool}: {e}") from e

        demangled = result.stdout.splitlines()
        if result.returncode != 0 or len(demangled) != len(names):
            logger.warning("%s failed to demangle symbols, keeping them mangled", self.tool)
            return {name: name for name in names}
        return dict(zip(names, demangled))


class SymbolCollector(xml.sax.handler.ContentHandler):
    def __init__(self):
        super().__init__()
        self.symbols: Set[str] = set()

    def startElement(self, name, attrs):
        attribute = SYMBOL_ELEMENTS.get(name)
        if attribute is not None:
            value = attrs.get(attribute)
            if value is not None and looks_mangled(value):
                self.symbols.add(value)


class SymbolRewriter(XMLGenerator):
    """Copies the document, replacing symbol attributes along the way"""

    def __init__(self, out, mapping: Dict[str, str]):
        super().__init__(out, encoding="utf-8", short_empty_elements=True)
        self.mapping = mapping

    def startElement(self, name, attrs):
        attribute = SYMBOL_ELEMENTS.get(name)
        if attribute is not None and attrs.get(attribute) in self.mapping:
            values = dict(attrs.items())
            values[attribute] = self.mapping[values[attribute]]
            attrs = AttributesImpl(values)
        super().startElement(name, attrs)


def parse(data: bytes, handler):
    parser = xml.sax.make_parser()
    # Never fetch DTDs or external entities
    parser.setFeature(xml.sax.handler.feature_external_ges, False)
    parser.setContentHandler(handler)
    try:
        parser.parse(io.BytesIO(data))
    except xml.sax.SAXException as e:
        raise ParseFailure(f"unable to parse xctrace export: {e}") from e


def demangle_xml(data: bytes, demangle: DemangleFn) -> bytes:
    collector = SymbolCollector()
    parse(data, collector)
    if not collector.symbols:
        return data

    mapping = {
        mangled: demangled
        for mangled, demangled in demangle(collector.symbols).items()
        if demangled and demangled != mangled
    }
    if not mapping:
        return data
    logger.debug("demangled %d of %d symbols", len(mapping), len(collector.symbols))

    out = io.BytesIO()
    parse(data, SymbolRewriter(out, mapping))
    return out.getvalue()
