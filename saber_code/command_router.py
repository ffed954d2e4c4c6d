"""Slash-command routing and handlers for the interactive chat."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Callable

from rich.console import Console

from .agent import Agent
from .config import Config
from .errors import AgentError
from .rendering import (
    ACCENT as THEME_ACCENT,
    DIM as THEME_DIM,
    SUCCESS as THEME_SUCCESS,
    WARN as THEME_WARN,
    render_context,
    render_error,
    render_tool_result,
)

_SLASH_ALIASES = {"/h": "/help", "/?": "/help", "/exit": "/quit", "/q": "/quit"}

SLASH_COMMANDS = {
    "/load": "Load files matching glob patterns into context",
    "/context": "Show loaded files and the context size",
    "/clear": "Clear files, history and recent changes",
    "/tool": "Run a tool: /tool NAME {json args}",
    "/help": "Show this help",
    "/quit": "Exit",
}


@dataclass
class CommandContext:
    console: Console
    agent: Agent
    config: Config


CommandHandler = Callable[[CommandContext, str], str]


def _resolve_command(raw_cmd: str) -> str:
    """Resolve abbreviated slash commands via exact/alias/prefix matching."""
    cmd = raw_cmd.lower()
    if cmd in SLASH_COMMANDS:
        return cmd
    if cmd in _SLASH_ALIASES:
        return _SLASH_ALIASES[cmd]
    matches = [candidate for candidate in SLASH_COMMANDS if candidate.startswith(cmd)]
    if len(matches) == 1:
        return matches[0]
    return cmd


def handle_command(command: str, *, console: Console, agent: Agent, config: Config) -> str:
    """Handle one slash command string. Returns "quit" when the session should end."""
    parts = command.strip().split(None, 1)
    if not parts:
        return ""
    cmd = _resolve_command(parts[0])
    rest = parts[1] if len(parts) > 1 else ""

    handler = COMMAND_HANDLERS.get(cmd)
    if not handler:
        console.print(f"  [{THEME_WARN}]Unknown: {cmd}. Try /help[/{THEME_WARN}]")
        return ""
    ctx = CommandContext(console=console, agent=agent, config=config)
    return handler(ctx, rest)


def _cmd_quit(ctx: CommandContext, rest: str) -> str:
    ctx.console.print(f"[{THEME_DIM}]Goodbye![/{THEME_DIM}]")
    return "quit"


def _cmd_help(ctx: CommandContext, rest: str) -> str:
    for name, description in SLASH_COMMANDS.items():
        ctx.console.print(f"  [{THEME_ACCENT}]{name:<10}[/{THEME_ACCENT}] {description}")
    return ""


def _cmd_load(ctx: CommandContext, rest: str) -> str:
    patterns = rest.split()
    if not patterns:
        ctx.console.print(f"  [{THEME_WARN}]Usage: /load GLOB [GLOB ...][/{THEME_WARN}]")
        return ""
    loaded = ctx.agent.load_files(patterns)
    if not loaded:
        ctx.console.print(f"  [{THEME_WARN}]No files matched.[/{THEME_WARN}]")
        return ""
    for path in loaded:
        ctx.console.print(f"  [{THEME_SUCCESS}]✓[/{THEME_SUCCESS}] {path}")
    return ""


def _cmd_context(ctx: CommandContext, rest: str) -> str:
    render_context(ctx.console, ctx.agent)
    return ""


def _cmd_clear(ctx: CommandContext, rest: str) -> str:
    ctx.agent.clear_context()
    ctx.console.print(f"  [{THEME_SUCCESS}]✓[/{THEME_SUCCESS}] Context cleared")
    return ""


def _cmd_tool(ctx: CommandContext, rest: str) -> str:
    parts = rest.split(None, 1)
    if not parts:
        names = ", ".join(ctx.agent.tools.names())
        ctx.console.print(f"  [{THEME_WARN}]Usage: /tool NAME {{json args}}[/{THEME_WARN}]")
        ctx.console.print(f"  [{THEME_DIM}]Tools: {names}[/{THEME_DIM}]")
        return ""
    name = parts[0]
    try:
        args = json.loads(parts[1]) if len(parts) > 1 else {}
    except json.JSONDecodeError as e:
        render_error(ctx.console, f"Arguments must be a JSON object: {e.msg}")
        return ""
    try:
        result = ctx.agent.run_tool(name, args)
    except AgentError as e:
        render_error(ctx.console, str(e))
        return ""
    render_tool_result(ctx.console, name, result)
    return ""


COMMAND_HANDLERS: dict[str, CommandHandler] = {
    "/load": _cmd_load,
    "/context": _cmd_context,
    "/clear": _cmd_clear,
    "/tool": _cmd_tool,
    "/help": _cmd_help,
    "/quit": _cmd_quit,
}
