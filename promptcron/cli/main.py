"""
promptcron CLI entry point.

Commands:
    promptcron run          — Start the scheduler and run until interrupted
    promptcron validate     — Check the configuration and every cadence
    promptcron test-prompt  — Run one prompt right now and print the answer
    promptcron version      — Show the version
"""

from __future__ import annotations

import asyncio
import logging
import signal
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional
from zoneinfo import ZoneInfo

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from promptcron.core.config import PromptCronConfig
from promptcron.core.errors import PromptCronError
from promptcron.core.types import TaskStatus

app = typer.Typer(
    name="promptcron",
    help="promptcron — run LLM prompts on cron schedules, with MCP tools.",
    add_completion=False,
)

console = Console()

DEFAULT_TEST_PROMPT = (
    "List all files in the current directory and describe what each file does."
)

CONFIG_OPTION = typer.Option(
    None, "--config", "-c", help="Config file (default: ./promptcron.toml)"
)


def load_config(config_path: Path | None) -> PromptCronConfig:
    return PromptCronConfig.load(project_path=config_path)


def build_connection(config: PromptCronConfig):
    from promptcron.tools.mcp_client import McpToolConnection

    return McpToolConnection(
        command=config.mcp.command,
        args=config.mcp.args,
        allowed_directories=config.mcp.allowed_directories,
    )


def build_executor(config: PromptCronConfig):
    from promptcron.llm.claude import AnthropicExecutor

    return AnthropicExecutor(
        api_key=config.require_api_key(),
        model=config.anthropic.model,
        max_tokens=config.anthropic.max_tokens,
        temperature=config.anthropic.temperature,
        max_tool_rounds=config.anthropic.max_tool_rounds,
    )


def _setup_logging(config: PromptCronConfig, verbose: bool) -> logging.Logger:
    from promptcron.core.logs import parse_level, setup_logging

    level = logging.DEBUG if verbose else parse_level(config.logging.level)
    return setup_logging(log_dir=config.get_log_dir(), console_level=level)


def _tasks_table(tasks: list[TaskStatus]) -> Table:
    table = Table(title="Active tasks")
    table.add_column("Name", style="cyan")
    table.add_column("Cron")
    table.add_column("Next run")
    for task in tasks:
        next_run = task.next_run.strftime("%Y-%m-%d %H:%M:%S %Z") if task.next_run else "-"
        table.add_row(task.name, task.cadence, next_run)
    return table


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Commands
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@app.command()
def version() -> None:
    """Show the promptcron version."""
    from promptcron import __version__

    console.print(f"promptcron {__version__}")


@app.command()
def validate(config: Optional[Path] = CONFIG_OPTION) -> None:
    """Validate the configuration and every schedule's cron expression."""
    from promptcron.scheduler.cadence import next_fire_time, validate_cadence

    try:
        cfg = load_config(config)
    except PromptCronError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)

    now = datetime.now(ZoneInfo(cfg.scheduler.timezone))
    table = Table(title="Schedules")
    table.add_column("Name", style="cyan")
    table.add_column("Cron")
    table.add_column("Enabled")
    table.add_column("Next run")
    table.add_column("Output")

    invalid = 0
    for job in cfg.schedules:
        if validate_cadence(job.cron):
            next_run = next_fire_time(job.cron, now).strftime("%Y-%m-%d %H:%M:%S %Z")
        else:
            invalid += 1
            next_run = "[red]invalid cron[/red]"
        table.add_row(
            job.name,
            job.cron,
            "yes" if job.enabled else "no",
            next_run if job.enabled else "-",
            job.output_path or "-",
        )

    console.print(table)
    if invalid:
        console.print(f"[red]{invalid} schedule(s) with an invalid cron expression[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Configuration OK[/green] ({len(cfg.schedules)} schedule(s))")


@app.command()
def run(
    config: Optional[Path] = CONFIG_OPTION,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """Start the scheduler and run until SIGINT or SIGTERM."""
    try:
        asyncio.run(_run(config, verbose))
    except PromptCronError as e:
        logging.getLogger("promptcron").error(f"Fatal error during startup: {e}")
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)


async def _run(config_path: Path | None, verbose: bool) -> None:
    from promptcron.scheduler.engine import Scheduler

    config = load_config(config_path)
    logger = _setup_logging(config, verbose)
    logger.info("Starting promptcron")

    definitions = config.definitions()
    if not definitions:
        logger.warning("No schedules configured. Add [[schedules]] to promptcron.toml")
        console.print("[yellow]No schedules configured.[/yellow]")
        return

    executor = build_executor(config)
    connection = build_connection(config)
    try:
        await connection.connect()
    except PromptCronError as e:
        logger.error(f"Failed to connect to MCP server: {e}")
        raise PromptCronError.configuration(
            "MCP server connection failed. Ensure the server is installed and accessible."
        ) from e

    scheduler = Scheduler(
        executor,
        connection,
        tz=config.scheduler.timezone,
        execution_timeout=config.scheduler.execution_timeout,
    )
    try:
        scheduler.start(definitions)
    except PromptCronError:
        await connection.disconnect()
        raise

    console.print(_tasks_table(scheduler.get_active_tasks()))

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            pass  # no signal handlers on this platform; Ctrl+C cancels instead

    logger.info("Scheduler is running. Press Ctrl+C to stop.")
    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down gracefully...")
        running = scheduler.running_jobs()
        if running:
            console.print(
                f"[yellow]Waiting for running job(s): {', '.join(sorted(running))}[/yellow]"
            )
        await scheduler.shutdown()
        await connection.disconnect()
        logger.info("Shutdown complete")


@app.command("test-prompt")
def test_prompt(
    prompt: Optional[List[str]] = typer.Argument(None, help="Prompt text"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="Load prompt from a file"),
    save: bool = typer.Option(False, "--save", help="Save output to outputs/"),
    config: Optional[Path] = CONFIG_OPTION,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """Run a single prompt through Claude with MCP tools and print the response."""
    if file is not None:
        try:
            text = file.read_text(encoding="utf-8")
        except OSError as e:
            console.print(f"[red]Failed to read prompt file {file}: {e}[/red]")
            raise typer.Exit(1)
    elif prompt:
        text = " ".join(prompt)
    else:
        text = DEFAULT_TEST_PROMPT

    try:
        asyncio.run(_test_prompt(text, save, config, verbose))
    except PromptCronError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)


async def _test_prompt(
    prompt: str, save: bool, config_path: Path | None, verbose: bool
) -> None:
    from promptcron.scheduler.output import FileOutputSink, resolve_output_path

    config = load_config(config_path)
    logger = _setup_logging(config, verbose)
    logger.info(f"Testing prompt: {prompt!r}")

    executor = build_executor(config)
    connection = build_connection(config)
    await connection.connect()
    try:
        tools = connection.list_tools()
        logger.info(f"Available MCP tools: {', '.join(t.name for t in tools) or 'none'}")

        started = time.monotonic()
        result = await executor.execute(prompt, connection)
        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"Prompt executed successfully in {duration_ms}ms")
    finally:
        await connection.disconnect()

    console.print(Panel(prompt, title="Prompt"))
    console.print(Panel(result, title="Response"))

    if save:
        now = datetime.now(timezone.utc)
        path = resolve_output_path("outputs/test-prompt-{timestamp}.txt", "test-prompt", now)
        sink = FileOutputSink()
        sink.ensure_dir(path.parent)
        sink.write_file(
            path,
            f"Prompt: {prompt}\n\nResponse:\n{result}\n\n"
            f"Timestamp: {now.isoformat()}\nDuration: {duration_ms}ms",
        )
        logger.info(f"Output saved to {path}")
        console.print(f"[dim]Saved to {path}[/dim]")
