"""Tool registry: schema-described tools, argument validation, dispatch."""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from ..errors import ToolRegistrationError, UnknownToolError, ValidationError
from ..logger import get_logger
from .environment import ToolEnvironment

_log = get_logger(__name__)

__all__ = ["ArgKind", "ArgSpec", "ToolSpec", "ToolRegistry", "validate_args", "create_registry"]


class ArgKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    LIST = "list"
    MAP = "map"


def _is_number(value) -> bool:
    # bool is an int subclass but never a number argument
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return isinstance(value, int) or math.isfinite(value)


_KIND_CHECKS: Dict[ArgKind, Callable[[Any], bool]] = {
    ArgKind.STRING: lambda v: isinstance(v, str),
    ArgKind.NUMBER: _is_number,
    ArgKind.BOOLEAN: lambda v: isinstance(v, bool),
    ArgKind.LIST: lambda v: isinstance(v, list),
    ArgKind.MAP: lambda v: isinstance(v, dict),
}


def _type_name(value) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, float) and not math.isfinite(value):
        return "non-finite number"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "list"
    if isinstance(value, dict):
        return "map"
    return type(value).__name__


@dataclass(frozen=True)
class ArgSpec:
    kind: ArgKind
    description: str = ""
    enum: Optional[tuple] = None
    items: Optional[ArgKind] = None
    required: bool = False

    def describe(self) -> str:
        text = self.kind.value
        if self.items:
            text += f"[{self.items.value}]"
        if self.enum:
            text += " (" + "|".join(str(v) for v in self.enum) + ")"
        if not self.required:
            text += ", optional"
        return text


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    schema: Mapping[str, ArgSpec] = field(default_factory=dict)
    execute: Optional[Callable[[ToolEnvironment, Dict[str, Any]], Any]] = None
    writes: bool = False

    def signature(self) -> str:
        args = ", ".join(f"{key}: {spec.describe()}" for key, spec in self.schema.items())
        return f"{self.name}({args})"


def validate_args(spec: ToolSpec, args: Mapping[str, Any]) -> List[str]:
    """Check ``args`` against every schema entry and return all violations."""
    errors: List[str] = []
    for key, arg in spec.schema.items():
        value = args.get(key)
        if value is None:
            if arg.required:
                errors.append(f"Missing required argument '{key}' ({arg.kind.value})")
            continue
        if not _KIND_CHECKS[arg.kind](value):
            errors.append(f"Expected {arg.kind.value} for '{key}', got {_type_name(value)}")
            continue
        if arg.kind is ArgKind.LIST and arg.items:
            item_check = _KIND_CHECKS[arg.items]
            for i, item in enumerate(value):
                if not item_check(item):
                    errors.append(
                        f"Expected {arg.items.value} in '{key}[{i}]', got {_type_name(item)}"
                    )
        if arg.enum is not None and value not in arg.enum:
            allowed = ", ".join(str(v) for v in arg.enum)
            errors.append(f"Expected one of [{allowed}] for '{key}', got {value!r}")
    return errors


class ToolRegistry:
    def __init__(self, tools: Iterable[ToolSpec] = ()):
        self._tools: Dict[str, ToolSpec] = {}
        self.register_all(tools)

    def register(self, spec: ToolSpec) -> "ToolRegistry":
        if not spec.name:
            raise ToolRegistrationError("Tool must have a name")
        if not callable(spec.execute):
            raise ToolRegistrationError(f"Tool '{spec.name}' has no execute function")
        if spec.name in self._tools:
            raise ToolRegistrationError(f"Tool '{spec.name}' is already registered")
        self._tools[spec.name] = spec
        return self

    def register_all(self, specs: Iterable[ToolSpec]) -> "ToolRegistry":
        for spec in specs:
            self.register(spec)
        return self

    def get(self, name: str) -> Optional[ToolSpec]:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def names(self) -> List[str]:
        return list(self._tools)

    def list(self) -> List[ToolSpec]:
        return list(self._tools.values())

    def writes(self, name: str) -> bool:
        spec = self._tools.get(name)
        return bool(spec and spec.writes)

    def describe(self) -> str:
        """One line per tool, used when prompting for plans."""
        return "\n".join(
            f"- {spec.signature()}: {spec.description}" for spec in self._tools.values()
        )

    def validate(self, name: str, args: Optional[Mapping[str, Any]]) -> List[str]:
        spec = self.get(name)
        if spec is None:
            return [f"Unknown tool: {name}"]
        if args is not None and not isinstance(args, Mapping):
            return [f"Arguments must be a map, got {_type_name(args)}"]
        return validate_args(spec, args or {})

    def run(self, name: str, environment: ToolEnvironment, args: Optional[Mapping[str, Any]] = None):
        """Validate, then execute. Failures raised by the tool propagate unchanged."""
        spec = self.get(name)
        if spec is None:
            raise UnknownToolError(name)
        errors = self.validate(name, args)
        if errors:
            _log.info("Rejected %s call: %s", name, "; ".join(errors))
            raise ValidationError(name, errors)
        _log.info("Running tool %s", name)
        return spec.execute(environment, dict(args or {}))


def create_registry(extra: Iterable[ToolSpec] = ()) -> ToolRegistry:
    """Registry holding the built-in tools plus any ``extra`` specs."""
    from .file_ops import FILE_TOOLS
    from .search import SEARCH_TOOLS
    from .shell import SHELL_TOOL

    registry = ToolRegistry(FILE_TOOLS + SEARCH_TOOLS + (SHELL_TOOL,))
    return registry.register_all(extra)
