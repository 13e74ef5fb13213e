import logging

import pytest

from pyflamegraph.collapse import PerfFolder, get_folder, parse_folded
from pyflamegraph.collapse.perf import event_name, frame_name
from pyflamegraph.errors import ConfigError

PERF_SCRIPT = b"""\
# ========
# captured on    : Mon Oct 19 10:00:00 2026
# ========
#
myapp 4242/4242 [002] 100.000001:     1010101 cpu-clock:uhH:
\t    55d0c1a2b3c4 compute+0x14 (/usr/bin/myapp)
\t    55d0c1a2b000 main+0x2f (/usr/bin/myapp)
\t    7f0000001000 __libc_start_main+0xf3 (/usr/lib/libc.so.6)

myapp 4242/4242 [002] 100.001011:     1010101 cpu-clock:uhH:
\t    55d0c1a2b3c4 compute+0x20 (/usr/bin/myapp)
\t    55d0c1a2b000 main+0x2f (/usr/bin/myapp)
\t    7f0000001000 __libc_start_main+0xf3 (/usr/lib/libc.so.6)

myapp 4242/4243 [003] 100.002021:     1010101 cpu-clock:uhH:
\t    7f00deadbeef [unknown] (/usr/lib/libfoo.so)
\t    55d0c1a2b000 main+0x2f (/usr/bin/myapp)
\t    7f0000001000 __libc_start_main+0xf3 (/usr/lib/libc.so.6)

myapp 4242/4242 [002] 100.003031:          1 page-faults:u:
\t    55d0c1a2b3c4 compute+0x14 (/usr/bin/myapp)
"""


def collapse(data, **kwargs):
    return PerfFolder(**kwargs).collapse(data).decode()


def test_collapse():
    assert collapse(PERF_SCRIPT) == (
        "myapp;__libc_start_main;main;[libfoo.so] 1\n"
        "myapp;__libc_start_main;main;compute 2\n"
    )


def test_collapse_is_deterministic():
    folder = PerfFolder()
    assert folder.collapse(PERF_SCRIPT) == folder.collapse(PERF_SCRIPT)
    assert PerfFolder().collapse(PERF_SCRIPT) == folder.collapse(PERF_SCRIPT)


def test_skip_after_makes_the_boundary_the_root():
    assert collapse(PERF_SCRIPT, skip_after=["main"]) == "main;[libfoo.so] 1\nmain;compute 2\n"


def test_skip_after_keeps_stacks_without_the_boundary():
    assert collapse(PERF_SCRIPT, skip_after=["not_there"]) == collapse(PERF_SCRIPT)


def test_without_process_name():
    assert collapse(PERF_SCRIPT, include_pname=False).startswith("__libc_start_main;main;")


def test_process_names_with_spaces():
    data = b"Web Content 77/78 [000] 5.000000: 1 cycles:\n\t 1 f+0x1 (/x)\n\n"
    assert collapse(data) == "Web Content;f 1\n"


def test_event_name():
    assert event_name("myapp 1/1 [000] 1.000001: 250000 cpu-clock:uhH:") == "cpu-clock"
    assert event_name("myapp 1/1 [000] 1.000001: cycles:") == "cycles"
    assert event_name("myapp 1/1 [000]") is None


def test_frame_name():
    assert frame_name("std::vector<int>::push_back+0x1a", "/bin/app") == "std::vector<int>::push_back"
    assert frame_name("[unknown]", "/usr/lib/libz.so.1") == "[libz.so.1]"
    assert frame_name("[unknown]", "[unknown]") == "[unknown]"


def test_folded_output_parses_back():
    stacks = parse_folded(PerfFolder().collapse(PERF_SCRIPT))
    assert sum(stacks.values()) == 3


def test_skip_after_only_for_perf():
    assert isinstance(get_folder("perf", ["main"]), PerfFolder)
    with pytest.raises(ConfigError):
        get_folder("dtrace", ["main"])
    with pytest.raises(ConfigError):
        get_folder("gprof")


def test_comm_with_numeric_word():
    data = (
        b"worker 2 12345/12346 [001] 10.000001: 250000 cpu-clock:uhH:\n"
        b"\t55d0 compute+0x14 (/usr/bin/x)\n"
        b"\t55d1 main+0x2 (/usr/bin/x)\n\n"
    )
    assert collapse(data) == "worker 2;main;compute 1\n"


def test_deleted_module_frames():
    data = (
        b"app 1/1 [000] 1.000001: 1 cycles:\n"
        b"\t7f00deadbeef [unknown] (/usr/lib/libfoo.so (deleted))\n"
        b"\t55d1 main+0x2 (/usr/bin/app)\n\n"
    )
    assert collapse(data) == "app;main;[libfoo.so] 1\n"
    assert frame_name("[unknown]", "/tmp/jit (deleted)") == "[jit]"


def test_padded_comm_headers():
    data = (
        b"             app  4242 [000]   100.000001:     1010101 cycles:\n"
        b"\t    55d0 compute+0x14 (/usr/bin/app)\n"
        b"\t    55d1 main+0x2 (/usr/bin/app)\n\n"
        b"             app  4242 [000]   100.000002:     1010101 cycles:\n"
        b"\t    55d1 main+0x2 (/usr/bin/app)\n\n"
    )
    assert collapse(data) == "app;main 1\napp;main;compute 1\n"


def test_unrecognized_output_warns(caplog):
    with caplog.at_level(logging.WARNING):
        assert collapse(b"this is not perf script output\n") == ""
    assert "no samples found" in caplog.text
