from .environment import FileAccess, ToolEnvironment
from .registry import ArgKind, ArgSpec, ToolRegistry, ToolSpec, create_registry, validate_args

__all__ = [
    "ArgKind", "ArgSpec", "ToolSpec", "ToolRegistry", "validate_args",
    "create_registry", "FileAccess", "ToolEnvironment",
]
