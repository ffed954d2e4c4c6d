"""
saber-code v1.0.0: local-model coding assistant for your terminal.

Command: saber-code [chat|ask|plan|exec|plans|search|models|config]
"""

import os
import sys

import click
from rich.console import Console

from . import __version__
from .agent import Agent
from .config import CONFIG_DIR, HISTORY_FILE, Config
from .errors import AgentError, PlanParseError
from .llm import ModelBackend
from .logger import setup_logger
from .plans import PlanManager
from .rendering import (
    render_error,
    render_execution,
    render_models,
    render_plan,
    render_plan_list,
    render_search,
    show_config_panel,
)

console = Console()
BANNER = (
    f"[bold #7FA6D9]saber-code[/bold #7FA6D9] "
    f"[dim]v{__version__} · local-model coding assistant[/dim]"
)


def _load_config(ctx: click.Context) -> Config:
    opts = ctx.obj or {}
    overrides = {}
    if opts.get("model"):
        overrides["model"] = opts["model"]
    if opts.get("verbose"):
        overrides["verbose"] = True
    config = Config.load(opts.get("project_dir", "."), overrides=overrides)
    setup_logger(verbose=config.verbose, log_file=config.log_file)
    return config


def _fail(error: Exception) -> None:
    render_error(console, str(error))
    sys.exit(1)


def _stream_reply(agent: Agent, message: str) -> None:
    reply = agent.chat(message, stream=True)
    with reply:
        for chunk in reply:
            console.print(chunk, end="", markup=False, highlight=False)
    console.print()


@click.group(invoke_without_command=True)
@click.option("--project-dir", "-d", default=".", help="Project directory")
@click.option("--model", "-m", default=None, help="Model name override")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(__version__, prog_name="saber-code")
@click.pass_context
def cli(ctx, project_dir, model, verbose):
    """saber-code: local-model coding assistant for your terminal."""
    ctx.obj = {"project_dir": project_dir, "model": model, "verbose": verbose}
    if ctx.invoked_subcommand is None:
        ctx.invoke(chat)


@cli.command()
@click.option("--load", "-l", "patterns", multiple=True, help="Glob of files to load first")
@click.pass_context
def chat(ctx, patterns):
    """Start an interactive session."""
    config = _load_config(ctx)
    console.print(BANNER)
    console.print(f"[dim]{config.model} @ {config.base_url} · /help for commands[/dim]")

    agent = Agent(config)
    if patterns:
        for path in agent.load_files(patterns):
            console.print(f"  [green]✓[/green] {path}")

    from .command_router import handle_command

    from prompt_toolkit import PromptSession
    from prompt_toolkit.history import FileHistory

    os.environ.setdefault("PROMPT_TOOLKIT_NO_CPR", "1")
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    session = PromptSession(history=FileHistory(str(HISTORY_FILE)), multiline=False)

    while True:
        try:
            user_input = session.prompt("› ").strip()
        except (EOFError, KeyboardInterrupt):
            console.print("\n[dim]Goodbye![/dim]")
            break

        if not user_input:
            continue

        if user_input.startswith("/"):
            try:
                result = handle_command(user_input, console=console, agent=agent, config=config)
            except AgentError as error:
                render_error(console, str(error))
                continue
            if result == "quit":
                break
            continue

        try:
            _stream_reply(agent, user_input)
        except KeyboardInterrupt:
            console.print("\n[yellow]  Interrupted.[/yellow]")
        except AgentError as error:
            render_error(console, str(error))


@cli.command()
@click.argument("message", nargs=-1, required=True)
@click.option("--load", "-l", "patterns", multiple=True, help="Glob of files to load first")
@click.option("--no-stream", is_flag=True, help="Print the reply once it is complete")
@click.pass_context
def ask(ctx, message, patterns, no_stream):
    """Run a single query."""
    config = _load_config(ctx)
    agent = Agent(config)
    try:
        if patterns:
            agent.load_files(patterns)
        if no_stream:
            console.print(agent.chat(" ".join(message)), markup=False, highlight=False)
        else:
            _stream_reply(agent, " ".join(message))
    except AgentError as error:
        _fail(error)


@cli.command()
@click.argument("goal", nargs=-1, required=True)
@click.option("--load", "-l", "patterns", multiple=True, help="Glob of files to load as context")
@click.option("--execute", "-x", "run_now", is_flag=True, help="Execute the plan after saving it")
@click.option("--yes", "-y", is_flag=True, help="Do not ask before executing")
@click.option("--continue-on-error", is_flag=True, help="Keep going after a failed step")
@click.pass_context
def plan(ctx, goal, patterns, run_now, yes, continue_on_error):
    """Generate a plan for GOAL and save it."""
    config = _load_config(ctx)
    agent = Agent(config)
    manager = PlanManager(config, agent)
    goal_text = " ".join(goal)
    try:
        if patterns:
            agent.load_files(patterns)
        with console.status("[dim]Generating plan...[/dim]"):
            record = manager.create(goal_text)
        render_plan(console, record.plan, record.path)
        manager.save(record)
        console.print(f"  [green]✓[/green] Saved {record.path}")

        if not run_now:
            console.print("[dim]  Run it with: saber-code exec[/dim]")
            return
        if not yes and not click.confirm("Execute this plan now?", default=False):
            return
        outcome = manager.execute(record.plan, continue_on_error=continue_on_error)
    except AgentError as error:
        _fail(error)
        return
    render_execution(console, outcome)
    if not outcome.ok:
        sys.exit(1)


@cli.command("exec")
@click.argument("plan_path", required=False)
@click.option("--continue-on-error", is_flag=True, help="Keep going after a failed step")
@click.pass_context
def exec_cmd(ctx, plan_path, continue_on_error):
    """Execute a saved plan (the latest one by default)."""
    config = _load_config(ctx)
    manager = PlanManager(config, Agent(config))
    try:
        outcome = manager.execute(plan_path, continue_on_error=continue_on_error)
    except AgentError as error:
        _fail(error)
        return
    render_execution(console, outcome)
    if not outcome.ok:
        sys.exit(1)


@cli.command()
@click.option("--clear", "clear_all", is_flag=True, help="Delete all saved plans")
@click.pass_context
def plans(ctx, clear_all):
    """List saved plans."""
    config = _load_config(ctx)
    manager = PlanManager(config, Agent(config))
    if clear_all:
        removed = manager.clear()
        console.print(f"  [green]✓[/green] Removed {removed} plan(s)")
        return
    entries = []
    for fp in manager.list_plans():
        try:
            entries.append((fp, manager.load(fp).plan, None))
        except (PlanParseError, OSError, UnicodeDecodeError) as error:
            entries.append((fp, None, str(error).splitlines()[0]))
    render_plan_list(console, entries)


@cli.command()
@click.argument("pattern")
@click.option("--glob", "-g", "glob_pattern", default=None, help="Restrict to files matching glob")
@click.option("--max-results", "-n", type=int, default=None)
@click.pass_context
def search(ctx, pattern, glob_pattern, max_results):
    """Search the project for PATTERN."""
    config = _load_config(ctx)
    agent = Agent(config)
    try:
        result = agent.run_tool("search", {
            "pattern": pattern, "glob": glob_pattern, "max_results": max_results,
        })
    except AgentError as error:
        _fail(error)
        return
    render_search(console, result)


@cli.command()
@click.pass_context
def models(ctx):
    """List models available on the backend."""
    config = _load_config(ctx)
    try:
        available = ModelBackend(config).list_models()
    except AgentError as error:
        _fail(error)
        return
    render_models(console, available, config.model)


@cli.command("config")
@click.pass_context
def config_cmd(ctx):
    """Show configuration."""
    show_config_panel(console, _load_config(ctx))


if __name__ == "__main__":
    cli()
