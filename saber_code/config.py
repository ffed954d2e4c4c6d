"""
Configuration: immutable settings built once at startup.

Loading priority for the settings file:
  1. Project dir .saber-code.yml
  2. Git root .saber-code.yml
  3. Global ~/.saber-code/config.yml

Environment variables (and .env files) override file values. The resulting
Config is frozen and passed by reference to the Agent, PlanManager and tools.
"""

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import yaml
from dotenv import load_dotenv

from .logger import get_logger

_log = get_logger(__name__)

CONFIG_DIR = Path.home() / ".saber-code"
CONFIG_FILE = CONFIG_DIR / "config.yml"
HISTORY_FILE = CONFIG_DIR / "history.txt"
PROJECT_CONFIG_NAME = ".saber-code.yml"

DEFAULT_MODEL_TIMEOUTS = {
    "codellama:70b": 300,
    "llama2:70b": 300,
    "wizardcoder:15b": 180,
    "codellama:13b": 120,
}

DEFAULT_BLOCKED_COMMANDS = (
    "rm -rf /", "rm -rf /*", "mkfs", "dd if=", "> /dev/sda",
    ":(){:|:&};:",  # fork bomb
)


# ── Field metadata and validation ──


@dataclass(frozen=True)
class ConfigFieldSpec:
    """Configuration field specification with validation rules."""
    key: str
    field_name: str
    description: str
    value_type: str  # "str", "int", "float", "bool", "list", "map", "path"
    default: Any
    validator: Optional[Callable[[Any], Tuple[bool, Any, str]]] = None  # (valid, coerced, error)


def _validate_int_range(value: Any, min_val: int, max_val: int) -> Tuple[bool, int, str]:
    if isinstance(value, bool):
        return False, 0, "Must be an integer"
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return False, 0, "Must be an integer"
    if parsed < min_val or parsed > max_val:
        return False, max(min_val, min(max_val, parsed)), f"Must be between {min_val} and {max_val}"
    return True, parsed, ""


def _validate_float_range(value: Any, min_val: float, max_val: float) -> Tuple[bool, float, str]:
    if isinstance(value, bool):
        return False, 0.0, "Must be a number"
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return False, 0.0, "Must be a number"
    if parsed < min_val or parsed > max_val:
        return False, max(min_val, min(max_val, parsed)), f"Must be between {min_val} and {max_val}"
    return True, parsed, ""


def _validate_bool(value: Any) -> Tuple[bool, bool, str]:
    if isinstance(value, bool):
        return True, value, ""
    if isinstance(value, str):
        val_lower = value.strip().lower()
        if val_lower in ("1", "true", "yes", "on"):
            return True, True, ""
        if val_lower in ("0", "false", "no", "off"):
            return True, False, ""
    return False, False, "Must be true/false, yes/no, on/off, or 1/0"


def _validate_non_empty_str(value: Any) -> Tuple[bool, str, str]:
    if value is None or isinstance(value, (dict, list)):
        return False, "", "Must be a string"
    text = str(value).strip()
    if not text:
        return False, "", "Must not be empty"
    return True, text, ""


def _validate_url(value: Any) -> Tuple[bool, str, str]:
    ok, text, err = _validate_non_empty_str(value)
    if not ok:
        return ok, text, err
    if not text.startswith(("http://", "https://")):
        text = "http://" + text
    return True, text.rstrip("/"), ""


def _validate_str_list(value: Any) -> Tuple[bool, Tuple[str, ...], str]:
    if isinstance(value, str):
        items = [value]
    elif isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        return False, (), "Must be a list of strings"
    return True, tuple(item for item in items if item.strip()), ""


def _validate_timeout_map(value: Any) -> Tuple[bool, Mapping[str, float], str]:
    if not isinstance(value, dict):
        return False, MappingProxyType({}), "Must be a mapping of model name to seconds"
    cleaned: Dict[str, float] = {}
    for name, seconds in value.items():
        ok, parsed, _ = _validate_float_range(seconds, 1, 3600)
        if ok:
            cleaned[str(name)] = parsed
    return True, MappingProxyType(cleaned), ""


def _validate_log_file(value: Any) -> Tuple[bool, Any, str]:
    if value is None or isinstance(value, bool):
        return True, value, ""
    if isinstance(value, str) and value.strip():
        return True, value.strip(), ""
    return False, None, "Must be a path, true, false or null"


CONFIG_FIELDS: Dict[str, ConfigFieldSpec] = {spec.key: spec for spec in (
    ConfigFieldSpec("base-url", "base_url", "Model backend base URL", "str",
                    "http://localhost:11434", _validate_url),
    ConfigFieldSpec("model", "model", "Default model name", "str",
                    "qwen2.5-coder:32b-instruct", _validate_non_empty_str),
    ConfigFieldSpec("provider", "provider", "litellm provider prefix for the backend", "str",
                    "ollama_chat", _validate_non_empty_str),
    ConfigFieldSpec("timeout", "timeout", "Default backend timeout in seconds", "float",
                    120.0, lambda v: _validate_float_range(v, 1, 3600)),
    ConfigFieldSpec("model-timeouts", "model_timeouts", "Per-model timeouts in seconds", "map",
                    DEFAULT_MODEL_TIMEOUTS, _validate_timeout_map),
    ConfigFieldSpec("temperature", "temperature", "Sampling temperature", "float",
                    0.7, lambda v: _validate_float_range(v, 0.0, 2.0)),
    ConfigFieldSpec("top-p", "top_p", "Nucleus sampling threshold", "float",
                    0.9, lambda v: _validate_float_range(v, 0.0, 1.0)),
    ConfigFieldSpec("max-output-tokens", "max_output_tokens", "Maximum tokens generated per reply", "int",
                    2048, lambda v: _validate_int_range(v, 16, 131072)),
    ConfigFieldSpec("max-context-tokens", "max_context_tokens", "Context budget in estimated tokens", "int",
                    8000, lambda v: _validate_int_range(v, 200, 1_000_000)),
    ConfigFieldSpec("max-conversation-messages", "max_conversation_messages", "Message history ceiling", "int",
                    50, lambda v: _validate_int_range(v, 1, 10_000)),
    ConfigFieldSpec("max-recent-changes", "max_recent_changes", "Recent change log ceiling", "int",
                    20, lambda v: _validate_int_range(v, 1, 10_000)),
    ConfigFieldSpec("max-files-in-context", "max_files_in_context", "Loaded file ceiling", "int",
                    20, lambda v: _validate_int_range(v, 1, 1000)),
    ConfigFieldSpec("max-search-results", "max_search_results", "Default search result count", "int",
                    50, lambda v: _validate_int_range(v, 1, 200)),
    ConfigFieldSpec("chars-per-token", "chars_per_token", "Characters per estimated token", "int",
                    4, lambda v: _validate_int_range(v, 1, 16)),
    ConfigFieldSpec("plans-dir", "plans_dir", "Plan directory, relative to the project root", "str",
                    "_saber_code_plans", _validate_non_empty_str),
    ConfigFieldSpec("shell-timeout", "shell_timeout", "Shell command timeout in seconds", "float",
                    60.0, lambda v: _validate_float_range(v, 1, 3600)),
    ConfigFieldSpec("shell-max-output", "shell_max_output", "Captured characters per shell stream", "int",
                    64000, lambda v: _validate_int_range(v, 1000, 10 * 1024 * 1024)),
    ConfigFieldSpec("blocked-commands", "blocked_commands", "Shell commands that are refused", "list",
                    DEFAULT_BLOCKED_COMMANDS, _validate_str_list),
    ConfigFieldSpec("verbose", "verbose", "Enable INFO logging", "bool",
                    False, _validate_bool),
    ConfigFieldSpec("log-file", "log_file", "Log file path (false disables)", "path",
                    None, _validate_log_file),
)}

# env var -> config key; later entries win over earlier ones for the same key
ENV_OVERRIDES = (
    ("OLLAMA_HOST", "base-url"),
    ("SABER_CODE_BASE_URL", "base-url"),
    ("SABER_MODEL", "model"),
    ("SABER_CODE_MODEL", "model"),
    ("SABER_CODE_TIMEOUT", "timeout"),
    ("SABER_CODE_MAX_TOKENS", "max-context-tokens"),
    ("SABER_CODE_MAX_FILES", "max-files-in-context"),
    ("SABER_CODE_MAX_CONVERSATION", "max-conversation-messages"),
    ("SABER_CODE_VERBOSE", "verbose"),
)


def validate_config_value(key: str, value: Any) -> Tuple[bool, Any, str]:
    """
    Validate a configuration value.

    Returns:
        (is_valid, coerced_value, error_message)
    """
    spec = CONFIG_FIELDS.get(key)
    if spec is None:
        return False, value, f"Unknown configuration key: {key}"
    if spec.validator:
        return spec.validator(value)
    return True, value, ""


@dataclass(frozen=True)
class Config:
    root_path: Path = field(default_factory=Path.cwd)
    base_url: str = "http://localhost:11434"
    model: str = "qwen2.5-coder:32b-instruct"
    provider: str = "ollama_chat"
    timeout: float = 120.0
    model_timeouts: Mapping[str, float] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_MODEL_TIMEOUTS))
    )
    temperature: float = 0.7
    top_p: float = 0.9
    max_output_tokens: int = 2048
    max_context_tokens: int = 8000
    max_conversation_messages: int = 50
    max_recent_changes: int = 20
    max_files_in_context: int = 20
    max_search_results: int = 50
    chars_per_token: int = 4
    plans_dir: str = "_saber_code_plans"
    shell_timeout: float = 60.0
    shell_max_output: int = 64000
    blocked_commands: Tuple[str, ...] = DEFAULT_BLOCKED_COMMANDS
    verbose: bool = False
    log_file: Any = None
    config_source: str = ""

    @classmethod
    def load(cls, project_dir: str = ".", overrides: Optional[Dict[str, Any]] = None) -> "Config":
        """Build the configuration for ``project_dir``.

        ``overrides`` uses config keys (``"model"``, ``"max-context-tokens"``)
        and is applied last, after files and environment variables.
        """
        project_path = Path(project_dir).resolve()

        for env_path in (CONFIG_DIR / ".env", project_path / ".env"):
            if env_path.exists():
                load_dotenv(env_path, override=False)

        values: Dict[str, Any] = {}
        source = ""
        git_root = cls._find_git_root(project_path)
        for candidate in (
            project_path / PROJECT_CONFIG_NAME,
            (git_root / PROJECT_CONFIG_NAME) if git_root and git_root != project_path else None,
            CONFIG_FILE,
        ):
            if candidate and candidate.exists():
                cls._apply_values(values, cls._read_yaml(candidate), str(candidate))
                source = str(candidate)
                break

        env_values = {}
        for env_var, key in ENV_OVERRIDES:
            raw = os.environ.get(env_var)
            if raw:
                env_values[key] = raw
        cls._apply_values(values, env_values, "environment")

        if overrides:
            cls._apply_values(values, overrides, "overrides")

        return cls(root_path=project_path, config_source=source, **values)

    @staticmethod
    def _read_yaml(filepath: Path) -> dict:
        try:
            with open(filepath, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            _log.warning("Ignoring unreadable config %s: %s", filepath, e)
            return {}
        if not isinstance(data, dict):
            _log.warning("Ignoring config %s: top level must be a mapping", filepath)
            return {}
        return data

    @staticmethod
    def _apply_values(target: Dict[str, Any], data: Dict[str, Any], origin: str) -> None:
        for key, raw in data.items():
            spec = CONFIG_FIELDS.get(key)
            if spec is None:
                _log.warning("Unknown config key '%s' in %s", key, origin)
                continue
            ok, value, error = validate_config_value(key, raw)
            if not ok:
                _log.warning("Invalid %s=%r in %s (%s); using default", key, raw, origin, error)
                continue
            target[spec.field_name] = value

    @staticmethod
    def _find_git_root(path: Path) -> Optional[Path]:
        current = path
        while True:
            if (current / ".git").exists():
                return current
            if current.parent == current:
                return None
            current = current.parent

    def replace(self, **changes) -> "Config":
        """Return a copy with field-name changes applied."""
        return dataclasses.replace(self, **changes)

    @property
    def plans_path(self) -> Path:
        return self.root_path / self.plans_dir

    def timeout_for(self, model: str) -> float:
        return float(self.model_timeouts.get(model, self.timeout))

    def summary(self) -> dict:
        return {
            "Model": self.model,
            "Provider": self.provider,
            "Backend": self.base_url,
            "Timeout": f"{self.timeout_for(self.model):g}s",
            "Context budget": f"{self.max_context_tokens:,} tokens",
            "History": f"{self.max_conversation_messages} messages",
            "Files in context": self.max_files_in_context,
            "Recent changes": self.max_recent_changes,
            "Shell timeout": f"{self.shell_timeout:g}s",
            "Plans": str(self.plans_path),
            "Project": str(self.root_path),
            "Config": self.config_source or "(defaults)",
        }
