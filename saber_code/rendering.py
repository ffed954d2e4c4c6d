"""Terminal rendering of replies, plans, execution results and tool output."""

import json
from typing import Any, Dict, List

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

ACCENT = "#7FA6D9"
BORDER = "#3B4252"
DIM = "dim"
TEXT = "#E6EDF3"
SUCCESS = "green"
WARN = "yellow"
ERROR = "red"

__all__ = [
    "render_error", "render_plan", "render_execution", "render_tool_result",
    "render_search", "render_plan_list", "render_models", "render_context",
    "show_config_panel",
]

TOOL_ICONS = {
    "read": "▸", "write": "◆", "edit": "✎", "list": "≡",
    "search": "⊙", "glob": "⊙", "shell": "$",
}


def _preview(value: Any, limit: int = 200) -> str:
    text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
    text = text.replace("\n", "\\n")
    return text if len(text) <= limit else text[:limit - 3] + "..."


def render_error(console: Console, message: str):
    panel = Panel(
        f"[{ERROR}]{escape(message)}[/{ERROR}]",
        title=f"[bold {ERROR}]Error[/bold {ERROR}]",
        title_align="left",
        border_style=ERROR,
        padding=(0, 2),
    )
    console.print()
    console.print(panel)


def render_plan(console: Console, plan, path=None):
    table = Table(show_header=True, border_style=BORDER, box=None, padding=(0, 2))
    table.add_column("#", style=DIM, justify="right")
    table.add_column("Tool", style=f"bold {ACCENT}")
    table.add_column("Arguments", style=TEXT, overflow="fold")
    for i, step in enumerate(plan.steps):
        icon = TOOL_ICONS.get(step.tool, "·")
        table.add_row(str(i), f"{icon} {escape(step.tool)}", escape(_preview(step.args, 160)))
    subtitle = f"[{DIM}]{path}[/{DIM}]" if path else None
    console.print(Panel(table, title=f"[bold {ACCENT}] Plan: {escape(plan.goal)} [/bold {ACCENT}]",
                        title_align="left", subtitle=subtitle, subtitle_align="left",
                        border_style=BORDER, padding=(0, 1)))


def render_execution(console: Console, outcome):
    for r in outcome.results:
        if r.ok:
            console.print(f"  [{SUCCESS}]✓[/{SUCCESS}] [{DIM}]{r.index}[/{DIM}] {r.tool}")
        else:
            console.print(f"  [{ERROR}]✗[/{ERROR}] [{DIM}]{r.index}[/{DIM}] {r.tool}: {escape(r.error or '')}")
    done = sum(1 for r in outcome.results if r.ok)
    total = len(outcome.plan.steps)
    status = outcome.status.replace("_", " ")
    color = SUCCESS if outcome.status == outcome.COMPLETED else (
        WARN if outcome.status == outcome.COMPLETED_WITH_FAILURES else ERROR
    )
    console.print(f"\n  [{color}]{status}[/{color}] [{DIM}]({done}/{total} steps ok)[/{DIM}]")
    if outcome.failed_at is not None:
        console.print(
            f"  [{DIM}]Stopped at step {outcome.failed_at}. "
            f"Re-run with --continue-on-error to run the rest.[/{DIM}]"
        )


def render_tool_result(console: Console, name: str, result: Any):
    if name == "shell" and isinstance(result, dict):
        if result.get("stdout"):
            console.print(result["stdout"], markup=False, highlight=False, end="")
        if result.get("stderr"):
            console.print(f"[{WARN}]{escape(result['stderr'])}[/{WARN}]", highlight=False)
        code = result.get("exit_code")
        color = SUCCESS if code == 0 else ERROR
        console.print(f"  [{color}]{escape(f'[exit code: {code}]')}[/{color}]")
        return
    if name == "search" and isinstance(result, dict):
        render_search(console, result)
        return
    if name == "read" and isinstance(result, dict) and "content" in result:
        console.print(result["content"], markup=False, highlight=False)
        return
    console.print_json(json.dumps(result, default=str, ensure_ascii=False))


def render_search(console: Console, result: Dict[str, Any]):
    matches: List[Dict[str, Any]] = result.get("matches", [])
    if not matches:
        console.print(f"  [{DIM}]No matches for: {escape(result.get('pattern', ''))}[/{DIM}]")
        return
    for m in matches:
        console.print(
            f"  [{ACCENT}]{escape(m['path'])}[/{ACCENT}][{DIM}]:{m['line_number']}[/{DIM}]  {escape(m['line'])}",
            highlight=False,
        )
    console.print(f"\n  [{DIM}]Found {result.get('total', len(matches))} match(es)[/{DIM}]")


def render_plan_list(console: Console, entries):
    """``entries`` are (path, plan or None, error or None), oldest first."""
    if not entries:
        console.print(f"  [{DIM}]No saved plans.[/{DIM}]")
        return
    for i, (fp, plan, error) in enumerate(reversed(entries)):
        marker = f" [{SUCCESS}](latest)[/{SUCCESS}]" if i == 0 else ""
        console.print(f"  [{ACCENT}]{escape(fp.name)}[/{ACCENT}]{marker}", highlight=False)
        if plan is None:
            console.print(f"    [{ERROR}]✗ {escape(error or 'unreadable')}[/{ERROR}]")
            continue
        created = plan.created_at.replace("T", " ")[:19] or "unknown"
        console.print(
            f"    {escape(plan.goal or '(no goal)')} "
            f"[{DIM}]· {len(plan.steps)} step(s) · created {created}[/{DIM}]",
            highlight=False,
        )


def render_models(console: Console, models, current: str):
    table = Table(show_header=True, border_style=BORDER, box=None, padding=(0, 2))
    table.add_column("", width=2)
    table.add_column("Model", style=f"bold {ACCENT}")
    table.add_column("Size", style=DIM, justify="right")
    for m in models:
        marker = f"[{SUCCESS}]●[/{SUCCESS}]" if m.name == current else ""
        size = f"{m.size / 1e9:.1f} GB" if m.size else ""
        table.add_row(marker, m.name, size)
    console.print(table)


def render_context(console: Console, agent):
    files = agent.context.get_files()
    changes = agent.context.get_changes()
    messages = agent.context.get_messages()
    table = Table(show_header=False, border_style=BORDER, box=None, padding=(0, 2))
    table.add_column("Key", style=f"bold {ACCENT}", min_width=14)
    table.add_column("Value", style=TEXT)
    table.add_row("Files", ", ".join(f.path for f in files) or "(none)")
    table.add_row("Recent changes", str(len(changes)))
    table.add_row("Messages", str(len(messages)))
    table.add_row("Estimated tokens",
                  f"{agent.context.token_count():,} / {agent.config.max_context_tokens:,}")
    console.print(Panel(table, title=f"[bold {ACCENT}] Context [/bold {ACCENT}]",
                        title_align="left", border_style=BORDER, padding=(0, 1)))


def show_config_panel(console: Console, config):
    table = Table(show_header=False, border_style=BORDER, padding=(0, 2), box=None)
    table.add_column("Key", style=f"bold {ACCENT}", min_width=14)
    table.add_column("Value", style=TEXT)
    for key, value in config.summary().items():
        table.add_row(key, str(value))
    console.print(Panel(table, title=f"[bold {ACCENT}] Configuration [/bold {ACCENT}]",
                        title_align="left", border_style=BORDER, padding=(0, 1)))
