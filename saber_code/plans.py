"""Plan lifecycle: generate, repair, validate, persist and execute tool-call plans."""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from .errors import PlanNotFoundError, PlanParseError, PlanValidationError
from .logger import get_logger
from .plan_json import GOAL_PLACEHOLDERS, find_placeholders, parse_plan_text

_log = get_logger(__name__)

__all__ = [
    "Step", "Plan", "StepResult", "PlanExecutionResult", "PlanRecord",
    "PlanManager", "slugify",
]

PLAN_FILE_RE = re.compile(r"^(?P<slug>[a-z0-9-]+)-(?P<stamp>\d{8}-\d{6})\.json$")
STAMP_FORMAT = "%Y%m%d-%H%M%S"
MAX_SLUG_LENGTH = 50

PLAN_PROMPT = """\
Produce a JSON plan for the goal above with exactly this structure (no markdown, no extra text):
{{
  "goal": "Add a zero check to divide in src/math.js",
  "steps": [
    {{"tool": "read", "args": {{"path": "src/math.js"}}}},
    {{"tool": "edit", "args": {{"path": "src/math.js", "operation": "replace",
      "old_text": "return a / b;",
      "new_text": "if (b === 0) throw new Error('Division by zero');\\n  return a / b;"}}}},
    {{"tool": "shell", "args": {{"command": "npm test"}}}}
  ]
}}
Available tools (use only these names):
{tools}
Use real paths and the exact text from the project context. Never write placeholders."""

_CAMEL_RE = re.compile(r"(?<=[a-z0-9])([A-Z])")


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (text or "").lower()).strip("-")
    slug = slug[:MAX_SLUG_LENGTH].strip("-")
    return slug or "plan"


def _snake_keys(args: Dict[str, Any]) -> Dict[str, Any]:
    return {_CAMEL_RE.sub(r"_\1", key).lower(): value for key, value in args.items()}


@dataclass(frozen=True)
class Step:
    tool: str
    args: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"tool": self.tool, "args": dict(self.args)}


@dataclass
class Plan:
    goal: str
    steps: List[Step] = field(default_factory=list)
    created_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "goal": self.goal,
            "steps": [s.to_dict() for s in self.steps],
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Plan":
        steps = data.get("steps")
        if not isinstance(steps, list):
            steps = []
        return cls(
            goal=str(data.get("goal") or ""),
            steps=[
                Step(tool=s.get("tool", ""), args=dict(s.get("args") or {}))
                for s in steps if isinstance(s, dict)
            ],
            created_at=str(data.get("createdAt") or ""),
        )


@dataclass(frozen=True)
class StepResult:
    index: int
    tool: str
    args: Dict[str, Any]
    ok: bool
    result: Any = None
    error: Optional[str] = None


@dataclass
class PlanExecutionResult:
    plan: Plan
    results: List[StepResult] = field(default_factory=list)
    failed_at: Optional[int] = None

    COMPLETED = "completed"
    COMPLETED_WITH_FAILURES = "completed_with_failures"
    STOPPED_AT_FAILURE = "stopped_at_failure"

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def status(self) -> str:
        if self.failed_at is not None:
            return self.STOPPED_AT_FAILURE
        if self.ok:
            return self.COMPLETED
        return self.COMPLETED_WITH_FAILURES


@dataclass
class PlanRecord:
    """A plan paired with its file path. Created unsaved by ``PlanManager.create``."""
    plan: Plan
    path: Path

    @property
    def filename(self) -> str:
        return self.path.name


class PlanManager:
    def __init__(self, config, agent, clock: Optional[Callable[[], datetime]] = None):
        self.config = config
        self.agent = agent
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def plans_dir(self) -> Path:
        return self.config.plans_path

    # ── Generation ──

    def _prompt(self, goal: str) -> str:
        context = self.agent.get_context_for_prompt(self.config.max_context_tokens // 2)
        instructions = PLAN_PROMPT.format(tools=self.agent.tools.describe())
        return f"Goal: {goal}\n\n{instructions}\n\n---\nProject context:\n{context or '(none)'}"

    def _normalize(self, data: Dict[str, Any], goal: str, now: datetime) -> Dict[str, Any]:
        if not isinstance(data.get("steps"), list):
            data["steps"] = []
        if data.get("goal") is None:
            data["goal"] = goal
        for step in data["steps"]:
            if isinstance(step, dict) and isinstance(step.get("args"), dict):
                step["args"] = _snake_keys(step["args"])
        data["createdAt"] = now.isoformat()
        return data

    def validate(self, data: Dict[str, Any]) -> List[str]:
        """Every problem with a parsed plan; empty when the plan is usable."""
        violations: List[str] = []
        goal = data.get("goal")
        if not isinstance(goal, str) or not goal.strip():
            violations.append("goal is empty")
        elif goal.strip().lower() in GOAL_PLACEHOLDERS:
            violations.append(f"goal is a placeholder: {goal!r}")

        steps = data.get("steps") or []
        if not steps:
            violations.append("steps is empty")
        for i, step in enumerate(steps):
            where = f"steps[{i}]"
            if not isinstance(step, dict):
                violations.append(f"{where} is not an object")
                continue
            tool = step.get("tool")
            if not tool:
                violations.append(f"{where} is missing 'tool'")
            elif not self.agent.tools.has(tool):
                violations.append(f"{where}.tool '{tool}' is not a known tool")
            args = step.get("args")
            if args is None:
                violations.append(f"{where} is missing 'args'")
                continue
            if not isinstance(args, dict):
                violations.append(f"{where}.args is not an object")
                continue
            for key, value in args.items():
                for marker in sorted(set(find_placeholders(value))):
                    violations.append(f"{where}.args.{key} contains placeholder {marker!r}")
        return violations

    def create(self, goal: str, model: Optional[str] = None) -> PlanRecord:
        """Ask the model for a plan. The returned record is not written yet."""
        raw = self.agent.chat(self._prompt(goal), stream=False, model=model)
        data = parse_plan_text(raw)
        now = self.clock()
        data = self._normalize(data, goal, now)

        violations = self.validate(data)
        if violations:
            _log.warning("Generated plan rejected: %s", "; ".join(violations))
            raise PlanValidationError(violations, raw)

        plan = Plan.from_dict(data)
        path = self.plans_dir / f"{slugify(plan.goal)}-{now.strftime(STAMP_FORMAT)}.json"
        _log.info("Plan created for %r with %d step(s)", plan.goal, len(plan.steps))
        return PlanRecord(plan=plan, path=path)

    # ── Persistence ──

    def save(self, record: PlanRecord) -> Path:
        record.path.parent.mkdir(parents=True, exist_ok=True)
        record.path.write_text(json.dumps(record.plan.to_dict(), indent=2), encoding="utf-8")
        _log.info("Plan saved: %s", record.path)
        return record.path

    def list_plans(self) -> List[Path]:
        """Plan files, oldest first. Files not matching the naming scheme are ignored."""
        if not self.plans_dir.is_dir():
            return []
        found = []
        for fp in self.plans_dir.iterdir():
            m = PLAN_FILE_RE.match(fp.name)
            if m and fp.is_file():
                found.append((m.group("stamp"), fp.name, fp))
        return [fp for _stamp, _name, fp in sorted(found)]

    def _resolve(self, path: Union[str, Path]) -> Path:
        fp = Path(path).expanduser()
        if fp.is_absolute() or fp.exists():
            return fp
        return self.plans_dir / fp

    def load(self, path: Union[str, Path, None] = None) -> Optional[PlanRecord]:
        if path is None:
            plans = self.list_plans()
            if not plans:
                return None
            fp = plans[-1]
        else:
            fp = self._resolve(path)
        if not fp.is_file():
            return None
        raw = fp.read_text(encoding="utf-8")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PlanParseError(f"Invalid plan file {fp}: {e.msg}", raw)
        if not isinstance(data, dict):
            raise PlanParseError(f"Invalid plan file {fp}: not a JSON object", raw)
        return PlanRecord(plan=Plan.from_dict(data), path=fp)

    def clear(self, path: Union[str, Path, None] = None) -> int:
        """Delete one plan file, or every plan file. Returns how many were removed."""
        if path is None:
            targets = self.list_plans()
        else:
            fp = Path(path).expanduser()
            if not fp.is_absolute():
                fp = self.plans_dir / fp
            if fp.parent.resolve() != self.plans_dir.resolve() or not PLAN_FILE_RE.match(fp.name):
                _log.warning("Refusing to remove %s: not a plan file", fp)
                return 0
            targets = [fp]
        removed = 0
        for fp in targets:
            if fp.is_file():
                fp.unlink()
                removed += 1
        _log.info("Removed %d plan file(s)", removed)
        return removed

    # ── Execution ──

    def _resolve_plan(self, source) -> Plan:
        if isinstance(source, Plan):
            return source
        if isinstance(source, PlanRecord):
            return source.plan
        if isinstance(source, dict):
            return Plan.from_dict(source)
        record = self.load(source)
        if record is None:
            raise PlanNotFoundError(str(source) if source is not None else None)
        return record.plan

    def execute(self, source=None, continue_on_error: bool = False) -> PlanExecutionResult:
        """Run the plan's steps in order.

        Step failures are captured in the result and never raised. Without
        ``continue_on_error`` execution stops at the first failure.
        """
        plan = self._resolve_plan(source)
        outcome = PlanExecutionResult(plan=plan)

        for i, step in enumerate(plan.steps):
            args = dict(step.args)
            try:
                result = self.agent.run_tool(step.tool, args)
            except Exception as e:
                _log.warning("Step %d (%s) failed: %s", i, step.tool, e)
                outcome.results.append(
                    StepResult(index=i, tool=step.tool, args=args, ok=False, error=str(e))
                )
                if not continue_on_error:
                    outcome.failed_at = i
                    return outcome
                continue
            _log.info("Step %d (%s) ok", i, step.tool)
            outcome.results.append(
                StepResult(index=i, tool=step.tool, args=args, ok=True, result=result)
            )
        return outcome
