"""
Shared fixtures: fake litert_lm_main binaries written as shell scripts.
"""

import os
import stat

import pytest


def write_script(path, stdout="", stderr="", exit_code=0, sleep=None):
    lines = ["#!/bin/sh"]
    if sleep is not None:
        lines.append(f"exec sleep {sleep}")
    if stdout:
        lines += ["cat <<'__STDOUT__'", stdout.rstrip("\n"), "__STDOUT__"]
    if stderr:
        lines += ["cat >&2 <<'__STDERR__'", stderr.rstrip("\n"), "__STDERR__"]
    lines.append(f"exit {exit_code}")
    path.write_text("\n".join(lines) + "\n")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def fake_binary(tmp_path):
    """Factory creating an executable that mimics litert_lm_main output."""
    counter = {"n": 0}

    def make(stdout="", stderr="", exit_code=0, sleep=None):
        counter["n"] += 1
        path = tmp_path / f"litert_lm_main_{counter['n']}"
        return write_script(path, stdout, stderr, exit_code, sleep)

    return make


@pytest.fixture
def echo_binary(tmp_path):
    """Executable that prints its arguments, one per line, after a marker."""
    path = tmp_path / "litert_lm_echo"
    path.write_text(
        "#!/bin/sh\n"
        "echo 'I0000 00:00:00.000 engine.cc:1] Loading model'\n"
        "echo 'Response:'\n"
        'for arg in "$@"; do printf "%s\\n" "$arg"; done\n'
        "exit 0\n"
    )
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return str(path)


@pytest.fixture
def non_executable(tmp_path):
    path = tmp_path / "not_a_binary"
    path.write_text("just text\n")
    os.chmod(path, 0o644)
    return str(path)


@pytest.fixture
def script_binary(tmp_path):
    """Factory creating an executable from a raw shell script body."""
    counter = {"n": 0}

    def make(body):
        counter["n"] += 1
        path = tmp_path / f"litert_lm_script_{counter['n']}"
        path.write_text("#!/bin/sh\n" + body.rstrip("\n") + "\n")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return make
