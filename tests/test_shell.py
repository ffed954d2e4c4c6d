import shlex
import sys

import pytest

from saber_code.config import Config
from saber_code.errors import ToolExecutionError
from saber_code.tools import ToolEnvironment, create_registry
from saber_code.tools.shell import TIMEOUT_EXIT_CODE, block_reason, truncate_output


def _env(tmp_path, **settings):
    return ToolEnvironment.for_root(tmp_path, configuration=Config(root_path=tmp_path, **settings))


def test_safe_command(tmp_path):
    (tmp_path / "sample.txt").write_text("content", encoding="utf-8")
    result = create_registry().run("shell", _env(tmp_path), {"command": "echo hello && ls"})
    assert result["exit_code"] == 0
    assert "hello" in result["stdout"]
    assert "sample.txt" in result["stdout"]
    assert result["timed_out"] is False


def test_nonzero_exit_is_a_result(tmp_path):
    result = create_registry().run("shell", _env(tmp_path), {"command": "echo oops >&2; exit 3"})
    assert result["exit_code"] == 3
    assert result["stderr"].strip() == "oops"


def test_timeout_returns_structured_result(tmp_path):
    result = create_registry().run("shell", _env(tmp_path, shell_timeout=1.0), {"command": "sleep 5"})
    assert result["exit_code"] == TIMEOUT_EXIT_CODE
    assert result["timed_out"] is True
    assert "Timed out after" in result["stderr"]


def test_per_call_timeout(tmp_path):
    result = create_registry().run("shell", _env(tmp_path), {"command": "sleep 5", "timeout": 1})
    assert result["timed_out"] is True


def test_output_truncation(tmp_path):
    py = shlex.quote(sys.executable)
    result = create_registry().run(
        "shell", _env(tmp_path, shell_max_output=1000),
        {"command": f"{py} -c \"print('a' * 9001)\""},
    )
    assert "...(truncated)..." in result["stdout"]
    assert len(result["stdout"]) <= 1000


def test_blocked_command(tmp_path):
    with pytest.raises(ToolExecutionError, match="Blocked"):
        create_registry().run("shell", _env(tmp_path), {"command": "rm  -rf /"})


def test_cwd_inside_project(tmp_path):
    (tmp_path / "sub").mkdir()
    result = create_registry().run("shell", _env(tmp_path), {"command": "pwd", "cwd": "sub"})
    assert result["stdout"].strip().endswith("sub")


def test_cwd_escape_rejected(tmp_path):
    with pytest.raises(ToolExecutionError, match="outside project root"):
        create_registry().run("shell", _env(tmp_path), {"command": "pwd", "cwd": "../.."})


def test_block_reason_ignores_quoting():
    assert block_reason("r'm' -rf /", ["rm -rf /"])
    assert block_reason("ls -la", ["rm -rf /"]) is None


def test_truncate_output_keeps_head_and_tail():
    text = "HEAD" + "x" * 500 + "TAIL"
    out = truncate_output(text, 100)
    assert out.startswith("HEAD")
    assert out.endswith("TAIL")
    assert len(out) <= 100
