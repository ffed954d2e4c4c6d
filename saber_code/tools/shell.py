"""Shell tool: run one command with a wall-clock timeout and bounded output."""

import os
import re
import signal
import subprocess
from typing import Any, Dict, Iterable, Optional

from ..errors import FileAccessError, ToolExecutionError
from ..logger import get_logger
from .environment import ToolEnvironment
from .registry import ArgKind, ArgSpec, ToolSpec

_log = get_logger(__name__)

DEFAULT_TIMEOUT = 60
DEFAULT_MAX_OUTPUT = 64000
TIMEOUT_EXIT_CODE = 124
TRUNCATION_MARKER = "\n...(truncated)...\n"


def _canonicalize(command: str) -> str:
    """Lowercase, drop quoting noise and collapse whitespace."""
    normalized = command.lower().replace("\\\n", " ")
    normalized = re.sub(r"[\'\"`\\]", "", normalized)
    return re.sub(r"\s+", " ", normalized).strip()


def block_reason(command: str, blocked: Iterable[str]) -> Optional[str]:
    canonical = _canonicalize(command)
    compact = canonical.replace(" ", "")
    for rule in blocked:
        rule_canonical = _canonicalize(rule)
        if not rule_canonical:
            continue
        if rule_canonical in canonical or rule_canonical.replace(" ", "") in compact:
            return f"matches blocked command '{rule}'"
    return None


def truncate_output(text: str, limit: int) -> str:
    """Keep the head and tail of ``text`` so the total stays within ``limit`` chars."""
    if limit <= 0 or len(text) <= limit:
        return text
    keep = max(0, limit - len(TRUNCATION_MARKER))
    head = keep // 2
    tail = keep - head
    return text[:head] + TRUNCATION_MARKER + (text[-tail:] if tail else "")


def _kill(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        proc.kill()


def run_command(env: ToolEnvironment, args: Dict[str, Any]) -> Dict[str, Any]:
    """Run ``command`` through bash in the project root (or ``cwd``).

    A non-zero exit is a normal result. A timeout kills the whole process group
    and returns exit code 124 with ``timed_out`` set.
    """
    command = args["command"]
    timeout = args.get("timeout") or env.setting("shell_timeout", DEFAULT_TIMEOUT)
    max_output = env.setting("shell_max_output", DEFAULT_MAX_OUTPUT)
    blocked = env.setting("blocked_commands", ()) or ()

    reason = block_reason(command, blocked)
    if reason:
        _log.warning("Command blocked: %s", reason)
        raise ToolExecutionError("shell", f"Blocked: {reason}")

    cwd = env.root_path
    if args.get("cwd"):
        try:
            cwd = env.file_access.resolve(args["cwd"])
        except FileAccessError as e:
            raise ToolExecutionError("shell", str(e))
        if not cwd.is_dir():
            raise ToolExecutionError("shell", f"Not a directory: {args['cwd']}")

    _log.info("Executing command: %s", command[:100])
    try:
        proc = subprocess.Popen(
            ["bash", "-c", command],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            text=True,
            errors="replace",
            cwd=str(cwd),
            env={**os.environ, "TERM": "dumb"},
            start_new_session=True,
        )
    except OSError as e:
        raise ToolExecutionError("shell", f"Cannot start command: {e}")

    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill(proc)
        stdout, stderr = proc.communicate()
        _log.warning("Command timed out after %ss: %s", timeout, command[:100])
        return {
            "command": command,
            "exit_code": TIMEOUT_EXIT_CODE,
            "stdout": truncate_output(stdout or "", max_output),
            "stderr": f"Timed out after {timeout}s",
            "timed_out": True,
        }

    return {
        "command": command,
        "exit_code": proc.returncode,
        "stdout": truncate_output(stdout or "", max_output),
        "stderr": truncate_output(stderr or "", max_output),
        "timed_out": False,
    }


SHELL_TOOL = ToolSpec(
    name="shell",
    description="Run a shell command; returns exit_code, stdout and stderr.",
    schema={
        "command": ArgSpec(ArgKind.STRING, "Command line", required=True),
        "cwd": ArgSpec(ArgKind.STRING, "Working directory inside the project"),
        "timeout": ArgSpec(ArgKind.NUMBER, "Seconds before the command is killed"),
    },
    execute=run_command,
)
