"""Sample a workload and turn the result into a flame graph."""

import logging
from pathlib import Path
from typing import Optional

from .backends import SamplerBackend, get_backend
from .collapse import get_folder
from .config import Settings, load_settings
from .demangle import DemangleFn, Demangler, demangle_xml
from .options import Options
from .postprocess import post_process, split_command
from .render import FlamegraphRenderer, open_in_viewer
from .workload import Workload

logger = logging.getLogger(__name__)


def generate_flamegraph_for_workload(
    workload: Workload,
    options: Options,
    settings: Optional[Settings] = None,
    backend: Optional[SamplerBackend] = None,
    renderer: Optional[FlamegraphRenderer] = None,
    demangler: Optional[DemangleFn] = None,
) -> Path:
    """Run the whole pipeline for ``workload`` and return the written output path.

    Everything that can be checked without running anything (options, the
    backend's support for them, required programs) is checked before the
    sampler is started.
    """
    options.check()
    if settings is None:
        settings = load_settings()
    if backend is None:
        backend = get_backend(settings)
    if renderer is None:
        renderer = FlamegraphRenderer(settings)

    backend.validate(workload, options)
    get_folder(backend.format, options.appearance.skip_after)
    if options.post_process is not None:
        split_command(options.post_process)
    backend.check_tools(workload)
    renderer.check_tools()

    handle = backend.start(
        workload,
        options.privilege,
        frequency=options.frequency,
        custom_cmd=options.custom_cmd,
        verbose=options.verbose,
        ignore_status=options.ignore_status,
        compression_level=options.compression_level,
    )
    try:
        raw = backend.collect(handle, options.no_inline, options.privilege)
    finally:
        backend.cleanup(handle)
    logger.debug("collected %d bytes of %s output", len(raw.data), raw.format)
    for note in raw.notes:
        print(note)

    data = raw.data
    if raw.needs_demangle:
        if demangler is None:
            demangler = Demangler.from_settings(settings)
        data = demangle_xml(data, demangler)

    folded = get_folder(raw.format, options.appearance.skip_after).collapse(data)
    if options.post_process is not None:
        folded = post_process(options.post_process, folded)

    output = Path(options.output)
    print(f"writing flamegraph to {str(output)!r}")
    renderer.render(folded, options.appearance, output)

    if options.open:
        open_in_viewer(output)
    return output
