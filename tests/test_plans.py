"""Tests for plan generation, persistence and execution."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from saber_code.errors import PlanNotFoundError, PlanParseError, PlanValidationError
from saber_code.plans import Plan, PlanExecutionResult, PlanManager, Step, slugify


class FixedClock:
    def __init__(self, start=datetime(2024, 3, 5, 14, 30, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        current = self.now
        self.now += timedelta(seconds=1)
        return current


@pytest.fixture
def manager(config, agent):
    return PlanManager(config, agent, clock=FixedClock())


def _plan_json(goal, steps):
    return json.dumps({"goal": goal, "steps": steps})


class TestCreate:
    def test_returns_unsaved_record(self, manager, backend, config):
        backend.replies.append(_plan_json("Read the readme", [
            {"tool": "read", "args": {"path": "README.md"}},
        ]))
        record = manager.create("read the readme")
        assert record.plan.goal == "Read the readme"
        assert record.plan.steps == [Step("read", {"path": "README.md"})]
        assert record.plan.created_at == "2024-03-05T14:30:00+00:00"
        assert record.filename == "read-the-readme-20240305-143000.json"
        assert record.path.parent == config.plans_path
        assert not config.plans_path.exists()

    def test_prompt_lists_tools_and_goal(self, manager, backend):
        backend.replies.append(_plan_json("g", [{"tool": "list", "args": {}}]))
        manager.create("tidy the project")
        prompt = backend.requests[0][-1]["content"]
        assert prompt.startswith("Goal: tidy the project")
        for name in ("read", "write", "edit", "list", "search", "glob", "shell"):
            assert f"- {name}(" in prompt

    def test_fenced_and_sloppy_output_is_repaired(self, manager, backend):
        backend.replies.append(
            "Here you go:\n```json\n{goal: 'List files', steps: [{tool: 'list', args: {path: 'src'},},],}\n```"
        )
        record = manager.create("list files")
        assert record.plan.steps == [Step("list", {"path": "src"})]

    def test_missing_goal_defaults_to_input(self, manager, backend):
        backend.replies.append('{"steps": [{"tool": "list", "args": {}}]}')
        assert manager.create("my goal").plan.goal == "my goal"

    def test_camel_case_args_normalized(self, manager, backend):
        backend.replies.append(_plan_json("g", [
            {"tool": "edit", "args": {"path": "a.js", "oldText": "x", "newText": "y"}},
        ]))
        args = manager.create("g").plan.steps[0].args
        assert args == {"path": "a.js", "old_text": "x", "new_text": "y"}

    def test_unparseable_output(self, manager, backend):
        backend.replies.append("I am not sure what you mean.")
        with pytest.raises(PlanParseError) as exc:
            manager.create("do something")
        assert exc.value.raw == "I am not sure what you mean."

    def test_placeholder_rejected_with_step_index(self, manager, backend):
        raw = _plan_json("Fix bug", [
            {"tool": "read", "args": {"path": "src/app.py"}},
            {"tool": "write", "args": {"path": "...", "content": "x"}},
        ])
        backend.replies.append(raw)
        with pytest.raises(PlanValidationError) as exc:
            manager.create("fix bug")
        assert any("steps[1]" in v and "'...'" in v for v in exc.value.violations)
        assert exc.value.raw == raw
        assert f"Raw: {raw}" in str(exc.value)

    def test_every_violation_reported(self, manager, backend):
        backend.replies.append(_plan_json("<goal string>", [
            {"args": {"path": "a"}},
            {"tool": "read"},
            {"tool": "teleport", "args": {"path": "<path>"}},
        ]))
        with pytest.raises(PlanValidationError) as exc:
            manager.create("x")
        violations = exc.value.violations
        assert len(violations) == 5
        assert violations[0].startswith("goal is a placeholder")
        assert "steps[0] is missing 'tool'" in violations
        assert "steps[1] is missing 'args'" in violations
        assert "steps[2].tool 'teleport' is not a known tool" in violations
        assert "steps[2].args.path contains placeholder '<path>'" in violations

    def test_empty_steps_rejected(self, manager, backend):
        backend.replies.append(_plan_json("Real goal", []))
        with pytest.raises(PlanValidationError, match="steps is empty"):
            manager.create("real goal")


class TestPersistence:
    def _save(self, manager, backend, goal):
        backend.replies.append(_plan_json(goal, [{"tool": "list", "args": {}}]))
        record = manager.create(goal)
        manager.save(record)
        return record

    def test_save_writes_plan_file(self, manager, backend):
        record = self._save(manager, backend, "First goal")
        data = json.loads(record.path.read_text())
        assert data == {
            "goal": "First goal",
            "steps": [{"tool": "list", "args": {}}],
            "createdAt": "2024-03-05T14:30:00+00:00",
        }

    def test_list_and_latest(self, manager, backend, config):
        first = self._save(manager, backend, "zzz first")
        second = self._save(manager, backend, "aaa second")
        (config.plans_path / "notes.txt").write_text("ignored")
        (config.plans_path / "random.json").write_text("{}")
        assert manager.list_plans() == [first.path, second.path]
        assert manager.load().path == second.path

    def test_load_by_name_and_missing(self, manager, backend):
        record = self._save(manager, backend, "goal")
        assert manager.load(record.filename).plan.goal == "goal"
        assert manager.load("missing-20000101-000000.json") is None

    def test_load_when_empty(self, manager):
        assert manager.load() is None
        assert manager.list_plans() == []

    def test_clear(self, manager, backend):
        a = self._save(manager, backend, "one")
        self._save(manager, backend, "two")
        assert manager.clear(a.filename) == 1
        assert len(manager.list_plans()) == 1
        assert manager.clear() == 1
        assert manager.list_plans() == []

    def test_clear_leaves_non_plan_files(self, manager, config, tmp_dir):
        config.plans_path.mkdir()
        notes = config.plans_path / "notes.txt"
        notes.write_text("keep me")
        readme = tmp_dir / "README.md"
        readme.write_text("# project")
        assert manager.clear("notes.txt") == 0
        assert manager.clear("README.md") == 0
        assert manager.clear(str(readme)) == 0
        assert manager.clear() == 0
        assert notes.read_text() == "keep me"
        assert readme.exists()


class TestExecute:
    def _three_step_plan(self):
        return Plan(goal="g", steps=[
            Step("write", {"path": "a.txt", "content": "A"}),
            Step("read", {"path": "missing.txt"}),
            Step("write", {"path": "c.txt", "content": "C"}),
        ])

    def test_stops_at_first_failure(self, manager, tmp_path):
        outcome = manager.execute(self._three_step_plan())
        assert len(outcome.results) == 2
        assert outcome.failed_at == 1
        assert outcome.results[0].ok and not outcome.results[1].ok
        assert "missing.txt" in outcome.results[1].error
        assert outcome.status == PlanExecutionResult.STOPPED_AT_FAILURE
        assert not (tmp_path / "c.txt").exists()

    def test_continue_on_error(self, manager, tmp_path):
        outcome = manager.execute(self._three_step_plan(), continue_on_error=True)
        assert [r.ok for r in outcome.results] == [True, False, True]
        assert [r.index for r in outcome.results] == [0, 1, 2]
        assert outcome.failed_at is None
        assert outcome.status == PlanExecutionResult.COMPLETED_WITH_FAILURES
        assert (tmp_path / "c.txt").read_text() == "C"

    def test_validation_errors_captured(self, manager):
        plan = Plan(goal="g", steps=[Step("write", {"path": 3})])
        outcome = manager.execute(plan)
        assert outcome.failed_at == 0
        assert "Expected string for 'path'" in outcome.results[0].error

    def test_unknown_tool_captured(self, manager):
        outcome = manager.execute({"goal": "g", "steps": [{"tool": "teleport", "args": {}}]})
        assert outcome.failed_at == 0
        assert "unknown tool" in outcome.results[0].error

    def test_writes_logged_as_recent_changes(self, manager, agent):
        manager.execute(Plan(goal="g", steps=[Step("write", {"path": "n.txt", "content": "x"})]))
        assert [(c.path, c.operation) for c in agent.context.get_changes()] == [("n.txt", "write")]

    def test_latest_saved_plan_by_default(self, manager, backend, tmp_path):
        backend.replies.append(_plan_json("make file", [
            {"tool": "write", "args": {"path": "made.txt", "content": "ok"}},
        ]))
        manager.save(manager.create("make file"))
        outcome = manager.execute()
        assert outcome.status == PlanExecutionResult.COMPLETED
        assert (tmp_path / "made.txt").read_text() == "ok"

    def test_no_plan_available(self, manager):
        with pytest.raises(PlanNotFoundError):
            manager.execute()
        with pytest.raises(PlanNotFoundError):
            manager.execute("nope-20240101-000000.json")

    def test_divide_end_to_end(self, manager, backend, agent, tmp_path):
        source = "function divide(a,b){return a/b;}"
        (tmp_path / "math.js").write_text(source)
        agent.add_file("math.js")
        fixed = "function divide(a,b){if(b===0){throw new Error('Division by zero');}return a/b;}"
        backend.replies.append(_plan_json("add error handling to divide", [
            {"tool": "edit", "args": {
                "path": "math.js", "operation": "replace",
                "old_text": source, "new_text": fixed,
            }},
        ]))

        record = manager.create("add error handling to divide")
        assert "function divide(a,b){return a/b;}" in backend.requests[0][-1]["content"]
        manager.save(record)
        outcome = manager.execute(record.path)

        assert all(r.ok for r in outcome.results)
        assert outcome.status == PlanExecutionResult.COMPLETED
        assert "b===0" in (tmp_path / "math.js").read_text()


@pytest.mark.parametrize("goal,expected", [
    ("Add error handling to divide()", "add-error-handling-to-divide"),
    ("   ", "plan"),
    ("x" * 80, "x" * 50),
])
def test_slugify(goal, expected):
    assert slugify(goal) == expected
