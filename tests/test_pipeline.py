import shlex
import sys

import pytest

from pyflamegraph import pipeline
from pyflamegraph.backends.base import RawTrace, SamplerBackend, SamplerHandle
from pyflamegraph.collapse import parse_folded, total_samples
from pyflamegraph.config import Settings
from pyflamegraph.errors import ConfigError, ParseFailure, PostProcessFailure, ToolMissing
from pyflamegraph.options import Appearance, Options
from pyflamegraph.pipeline import generate_flamegraph_for_workload
from pyflamegraph.render import FlamegraphRenderer
from pyflamegraph.workload import Command

# a;b;c 5 and a;b;d 3 in dtrace's leaf-first layout
DTRACE_STACKS = b"  c\n  b\n  a\n  5\n\n  d\n  b\n  a\n  3\n"


class FakeBackend(SamplerBackend):
    name = "fake"
    format = "dtrace"

    def __init__(self, raw=None, collect_error=None):
        super().__init__(Settings(), run=None)
        self.raw = raw or RawTrace(data=DTRACE_STACKS, format="dtrace")
        self.collect_error = collect_error
        self.started = []
        self.cleaned = []

    def check_tools(self, workload):
        pass

    def start(self, workload, privilege, frequency=None, custom_cmd=None,
              verbose=False, ignore_status=False, compression_level=None):
        self.started.append(workload)
        return SamplerHandle()

    def collect(self, handle, disable_inline, privilege):
        if self.collect_error is not None:
            raise self.collect_error
        return self.raw

    def cleanup(self, handle):
        self.cleaned.append(handle)


class FakeRenderer:
    def __init__(self):
        self.rendered = []

    def check_tools(self):
        pass

    def render(self, folded, appearance, output):
        self.rendered.append(folded)
        output.write_bytes(b"<svg/>")
        return output


def run(options, backend=None, renderer=None, **kwargs):
    return generate_flamegraph_for_workload(
        Command(["./app"]),
        options,
        settings=Settings(),
        backend=backend if backend is not None else FakeBackend(),
        renderer=renderer if renderer is not None else FakeRenderer(),
        **kwargs,
    )


def test_samples_reach_the_renderer(tmp_path, capsys):
    renderer = FakeRenderer()
    backend = FakeBackend()
    output = run(Options(output=tmp_path / "fg.svg"), backend=backend, renderer=renderer)

    assert output == tmp_path / "fg.svg"
    assert output.read_bytes() == b"<svg/>"
    assert renderer.rendered == [b"a;b;c 5\na;b;d 3\n"]
    assert total_samples(parse_folded(renderer.rendered[0]), ["a", "b"]) == 8
    assert backend.started == [Command(["./app"])]
    assert len(backend.cleaned) == 1
    assert f"writing flamegraph to '{tmp_path / 'fg.svg'}'" in capsys.readouterr().out


def test_invalid_options_spawn_nothing(tmp_path):
    backend = FakeBackend()
    with pytest.raises(ConfigError):
        run(Options(output=tmp_path / "fg.svg", frequency=99, custom_cmd="record"), backend=backend)
    assert backend.started == []


def test_skip_after_needs_perf_output(tmp_path):
    backend = FakeBackend()
    options = Options(output=tmp_path / "fg.svg", appearance=Appearance(skip_after=("main",)))
    with pytest.raises(ConfigError, match="skip-after"):
        run(options, backend=backend)
    assert backend.started == []


def test_missing_renderer_is_found_before_sampling(tmp_path, on_path):
    backend = FakeBackend()
    with pytest.raises(ToolMissing, match="flamegraph.pl"):
        run(Options(output=tmp_path / "fg.svg"), backend=backend,
            renderer=FlamegraphRenderer(Settings()))
    assert backend.started == []


def test_failed_post_process_renders_nothing(tmp_path):
    renderer = FakeRenderer()
    output = tmp_path / "fg.svg"
    failing = f"{shlex.quote(sys.executable)} -c 'import sys; sys.stdin.read(); sys.exit(1)'"
    with pytest.raises(PostProcessFailure):
        run(Options(output=output, post_process=failing), renderer=renderer)
    assert renderer.rendered == []
    assert not output.exists()


def test_post_process_output_is_rendered(tmp_path):
    renderer = FakeRenderer()
    only_c = f"{shlex.quote(sys.executable)} -c " + shlex.quote(
        "import sys; sys.stdout.writelines(l for l in sys.stdin if ';c ' in l)"
    )
    run(Options(output=tmp_path / "fg.svg", post_process=only_c), renderer=renderer)
    assert renderer.rendered == [b"a;b;c 5\n"]


def test_cleanup_runs_when_collect_fails(tmp_path):
    backend = FakeBackend(collect_error=ParseFailure("bad trace"))
    with pytest.raises(ParseFailure):
        run(Options(output=tmp_path / "fg.svg"), backend=backend)
    assert len(backend.cleaned) == 1


def test_xml_traces_are_demangled(tmp_path):
    export = (
        b"<node><row><backtrace id='1'>"
        b"<frame id='2' name='_ZN3app4workEv'/><frame id='3' name='main'/>"
        b"</backtrace></row></node>"
    )
    backend = FakeBackend(raw=RawTrace(data=export, format="xctrace", needs_demangle=True))
    backend.format = "xctrace"
    renderer = FakeRenderer()
    run(
        Options(output=tmp_path / "fg.svg"),
        backend=backend,
        renderer=renderer,
        demangler=lambda names: {name: "app::work" for name in names},
    )
    assert renderer.rendered == [b"main;app::work 1\n"]


def test_open_after_render(tmp_path, monkeypatch):
    opened = []
    monkeypatch.setattr(pipeline, "open_in_viewer", opened.append)
    run(Options(output=tmp_path / "fg.svg", open=True))
    assert opened == [tmp_path / "fg.svg"]


def test_backend_notes_are_printed(tmp_path, capsys):
    note = "Lossily converted invalid utf-8 found in cargo-flamegraph.stacks"
    backend = FakeBackend(raw=RawTrace(data=DTRACE_STACKS, format="dtrace", notes=[note]))
    run(Options(output=tmp_path / "fg.svg"), backend=backend)
    assert note in capsys.readouterr().out.splitlines()
