"""Structured error types for the agent system."""

from typing import List, Optional


class AgentError(Exception):
    """Base error for all agent operations."""
    pass


class ToolError(AgentError):
    """Error raised around tool dispatch or execution."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        self.message = message
        super().__init__(f"{tool_name} error: {message}")


class UnknownToolError(ToolError):
    """Raised when a tool name is not registered."""

    def __init__(self, tool_name: str):
        super().__init__(tool_name, f"unknown tool '{tool_name}'")


class ValidationError(ToolError):
    """Arguments violate the tool's schema. Raised before any side effect."""

    def __init__(self, tool_name: str, errors: List[str]):
        self.errors = list(errors)
        super().__init__(tool_name, "; ".join(self.errors))


class ToolExecutionError(ToolError):
    """A validated tool call failed in its own logic."""
    pass


class ToolRegistrationError(AgentError):
    """Raised for duplicate tool names or specs without an execute function."""
    pass


class FileAccessError(AgentError):
    """Raised by the file access capability (missing file, path escape, ...)."""
    pass


class PlanError(AgentError):
    """Base error for plan generation and loading."""
    pass


def _with_raw(message: str, raw: str) -> str:
    if not raw:
        return message
    preview = raw[:500] + ("..." if len(raw) > 500 else "")
    return f"{message}\nRaw: {preview}"


class PlanParseError(PlanError):
    """The model output contained no recoverable JSON object."""

    def __init__(self, message: str, raw: str = ""):
        self.raw = raw
        super().__init__(_with_raw(message, raw))


class PlanValidationError(PlanError):
    """Structurally valid plan that fails goal/steps/placeholder checks."""

    def __init__(self, violations: List[str], raw: str = ""):
        self.violations = list(violations)
        self.raw = raw
        lines = "\n".join(f"  - {v}" for v in self.violations)
        super().__init__(_with_raw(
            f"Plan validation failed ({len(self.violations)} violation(s)):\n{lines}", raw
        ))


class PlanNotFoundError(PlanError):
    """No plan could be resolved for execution."""

    def __init__(self, path: Optional[str] = None):
        self.path = path
        if path:
            message = f"Plan not found: {path}"
        else:
            message = 'No plan to execute. Create one with "saber-code plan <goal>".'
        super().__init__(message)


class BackendError(AgentError):
    """Model backend failure."""
    pass


class BackendUnreachableError(BackendError):
    """The backend could not be reached."""

    def __init__(self, base_url: str, detail: str = ""):
        self.base_url = base_url
        message = f"Model backend is not reachable at {base_url}. Start it with: ollama serve"
        if detail:
            message += f"\n{detail}"
        super().__init__(message)


class BackendTimeoutError(BackendError):
    """The backend exceeded its timeout."""

    def __init__(self, model: str, timeout: float):
        self.model = model
        self.timeout = timeout
        super().__init__(
            f"Model backend timed out after {timeout:g}s: {model} is too slow. "
            f"Try a smaller model."
        )
