"""Make ``src/`` importable and provide fakes shared across the suite.

The suite never needs perf, dtrace, xctrace or flamegraph.pl installed:
samplers are replaced by a recording ``run`` callable and external programs
by small Python scripts written into ``tmp_path``.
"""

import os
import stat
import sys
import textwrap

import pytest

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
SRC_DIR = os.path.join(PROJECT_ROOT, "src")

if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from pyflamegraph.config import Settings  # noqa: E402


class RecordingRun:
    """Stands in for ``run_sampler``: remembers commands, spawns nothing"""

    def __init__(self, returncode=0, side_effect=None):
        self.calls = []
        self.returncode = returncode
        self.side_effect = side_effect

    def __call__(self, argv, verbose=False, ignore_status=False, env=None, policy=None):
        self.calls.append(list(argv))
        if self.side_effect is not None:
            self.side_effect(argv)
        return self.returncode

    @property
    def argv(self):
        assert len(self.calls) == 1
        return self.calls[0]


@pytest.fixture
def recording_run():
    return RecordingRun()


@pytest.fixture
def linux_settings():
    return Settings(platform="linux", user="alice")


@pytest.fixture
def macos_settings():
    return Settings(platform="darwin", user="alice")


@pytest.fixture
def on_path(monkeypatch):
    """Pretend the given program names are installed under /usr/bin"""
    import shutil

    installed = set()

    def which(name, *args, **kwargs):
        if name in installed:
            return f"/usr/bin/{name}"
        if os.path.isabs(name) and os.path.exists(name):
            return name
        return None

    monkeypatch.setattr(shutil, "which", which)

    def install(*names):
        installed.update(names)

    return install


@pytest.fixture
def make_script(tmp_path):
    """Write an executable Python script and return its path"""

    def make(name, body):
        path = tmp_path / name
        path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body))
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return make


@pytest.fixture
def make_run():
    return RecordingRun
