"""Tests for slash-command routing in the interactive chat."""

from saber_code.command_router import _resolve_command, handle_command


def _run(command, agent, config, console):
    return handle_command(command, console=console, agent=agent, config=config)


def test_resolve_aliases_and_prefixes():
    assert _resolve_command("/q") == "/quit"
    assert _resolve_command("/h") == "/help"
    assert _resolve_command("/lo") == "/load"
    assert _resolve_command("/CONTEXT") == "/context"
    assert _resolve_command("/c") == "/c"  # ambiguous: /context, /clear


def test_quit(agent, config, mock_console):
    assert _run("/quit", agent, config, mock_console) == "quit"


def test_unknown_command(agent, config, mock_console):
    assert _run("/frobnicate", agent, config, mock_console) == ""
    assert "Unknown" in mock_console.print.call_args[0][0]


def test_load_and_clear(agent, config, mock_console, tmp_path):
    (tmp_path / "a.py").write_text("x = 1")
    (tmp_path / "b.py").write_text("y = 2")
    _run("/load *.py", agent, config, mock_console)
    assert [f.path for f in agent.context.get_files()] == ["a.py", "b.py"]
    _run("/clear", agent, config, mock_console)
    assert agent.context.get_files() == []


def test_tool_runs_with_json_args(agent, config, mock_console, tmp_path):
    _run('/tool write {"path": "t.txt", "content": "hi"}', agent, config, mock_console)
    assert (tmp_path / "t.txt").read_text() == "hi"
    assert agent.context.get_changes()[0].path == "t.txt"


def test_tool_errors_are_reported_not_raised(agent, config, mock_console):
    assert _run('/tool write {"path": 1}', agent, config, mock_console) == ""
    assert _run("/tool write {not json", agent, config, mock_console) == ""
    assert mock_console.print.called


def test_infinite_line_is_a_validation_error(agent, config, mock_console, tmp_path):
    (tmp_path / "f.txt").write_text("a\n")
    args = '{"path": "f.txt", "operation": "insert", "line": Infinity, "new_text": "b"}'
    assert _run(f"/tool edit {args}", agent, config, mock_console) == ""
    assert (tmp_path / "f.txt").read_text() == "a\n"
