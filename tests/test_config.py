import pytest

from pyflamegraph.config import Settings, find_tool, load_settings, require_tool
from pyflamegraph.errors import ToolMissing


def test_load_settings_reads_overrides():
    settings = load_settings(
        {"PERF": "/opt/perf", "FLAMEGRAPH_PL": "/opt/fg.pl", "USER": "bob",
         "PYFLAMEGRAPH_BACKEND": "xctrace", "DTRACE": ""},
        platform="darwin",
    )
    assert settings == Settings(
        platform="darwin", perf="/opt/perf", flamegraph_pl="/opt/fg.pl",
        user="bob", backend="xctrace",
    )


def test_override_wins_over_default(on_path):
    on_path("perf", "perf-5.15")
    assert find_tool("perf-5.15", "perf") == "/usr/bin/perf-5.15"
    assert find_tool(None, "perf") == "/usr/bin/perf"


def test_require_tool_names_the_override_variable(on_path):
    with pytest.raises(ToolMissing, match="set PERF to its path") as info:
        require_tool(None, "perf", "PERF")
    assert info.value.tool == "perf"
