"""CLI entry point for the ai-dev-team workflow engine."""

import asyncio
import json
import signal
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import click
import structlog

from ai_dev_team.agents import build_default_agents
from ai_dev_team.config.settings import DevTeamSettings
from ai_dev_team.engine.orchestrator import WorkflowOrchestrator
from ai_dev_team.engine.recovery import ErrorRecovery
from ai_dev_team.engine.types import RecoveryAction, RecoveryOptions, WorkflowContext
from ai_dev_team.exceptions import AiDevTeamError, ConfigurationError
from ai_dev_team.providers.openai_compatible import OpenAICompatibleProvider
from ai_dev_team.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)

DEFAULT_CONFIG = "ai-dev-team.yaml"


@click.group()
@click.option("--config", default=None, help=f"Path to configuration file (default: {DEFAULT_CONFIG} if present)")
@click.option("--log-level", default="INFO", help="Logging level")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.pass_context
def cli(ctx: click.Context, config: str | None, log_level: str, json_logs: bool) -> None:
    """ai-dev-team: drive AI development agents through a recoverable workflow."""
    configure_logging(log_level, json_output=json_logs)

    try:
        if config is not None:
            settings = DevTeamSettings.from_yaml(config)
        elif Path(DEFAULT_CONFIG).exists():
            settings = DevTeamSettings.from_yaml(DEFAULT_CONFIG)
        else:
            settings = DevTeamSettings()
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)

    ctx.obj = {"settings": settings}


def _run(command: str, coro_factory: Callable[[], Awaitable[int]]) -> None:
    """Run an async command and translate its outcome into an exit code."""
    try:
        code = asyncio.run(coro_factory())
    except AiDevTeamError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug(f"{command}_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)
    sys.exit(code)


def _build(settings: DevTeamSettings, with_agents: bool) -> tuple[WorkflowOrchestrator, OpenAICompatibleProvider | None]:
    provider = OpenAICompatibleProvider.from_settings(settings.llm) if with_agents else None
    agents = build_default_agents(settings, provider) if provider else {}
    return WorkflowOrchestrator.from_settings(settings, agents), provider


async def _drive(
    settings: DevTeamSettings,
    operation: Callable[[WorkflowOrchestrator], Awaitable[bool]],
    load: bool = True,
) -> int:
    """Run a workflow operation with progress output and SIGINT-to-pause."""
    orchestrator, provider = _build(settings, with_agents=True)
    orchestrator.progress.add_listener(lambda _info: click.echo(orchestrator.progress_tracker.bar_text()))
    orchestrator.state_changes.add_listener(lambda state: click.echo(f"-> {state.value}"))

    loop = asyncio.get_running_loop()
    handles_sigint = True
    try:
        loop.add_signal_handler(signal.SIGINT, _request_pause, orchestrator)
    except (NotImplementedError, RuntimeError):
        handles_sigint = False
        log.debug("signal_handler_unavailable")

    try:
        if load:
            await orchestrator.load()
        ok = await operation(orchestrator)
    finally:
        if handles_sigint:
            loop.remove_signal_handler(signal.SIGINT)
        orchestrator.dispose()
        if provider:
            await provider.close()

    _echo_status(orchestrator.get_status(), orchestrator.recovery)
    return 0 if ok else 1


def _request_pause(orchestrator: WorkflowOrchestrator) -> None:
    if orchestrator.pause():
        click.echo("\nPausing after the current step...", err=True)


def _echo_status(context: WorkflowContext | None, recovery: ErrorRecovery) -> None:
    if context is None:
        click.echo("No workflow.")
        return
    click.echo(f"State:       {context.state.value}")
    click.echo(f"Step:        {context.current_step}/{context.total_steps}")
    if context.current_step_description:
        click.echo(f"Operation:   {context.current_step_description}")
    click.echo(f"Project:     {context.project_path}")
    click.echo(f"Workspace:   {context.workspace_path}")
    click.echo(f"Checkpoints: {len(context.checkpoints)}")
    if context.last_error:
        click.echo(f"Last error:  {context.last_error}")
    options = context.data.get("recovery_options")
    if options:
        actions = recovery.available_actions(RecoveryOptions(**options))
        click.echo(f"Recovery:    {', '.join(a.value for a in actions)}")
        if options.get("custom_action"):
            click.echo(f"Suggested:   {options['custom_action']}")


@cli.command()
@click.argument("project", type=click.Path(exists=True, dir_okay=False))
@click.argument("workspace", type=click.Path(file_okay=False))
@click.pass_context
def start(ctx: click.Context, project: str, workspace: str) -> None:
    """Start a new workflow for PROJECT, writing into WORKSPACE."""
    settings = ctx.obj["settings"]
    Path(workspace).mkdir(parents=True, exist_ok=True)
    _run(
        "start",
        lambda: _drive(settings, lambda o: o.start(Path(project).resolve(), Path(workspace).resolve()), load=False),
    )


@cli.command()
@click.pass_context
def resume(ctx: click.Context) -> None:
    """Resume a paused workflow."""
    _run("resume", lambda: _drive(ctx.obj["settings"], lambda o: o.resume()))


@cli.command()
@click.argument("action", type=click.Choice([a.value for a in RecoveryAction]))
@click.option("--index", type=int, default=None, help="Checkpoint index for rollback")
@click.pass_context
def recover(ctx: click.Context, action: str, index: int | None) -> None:
    """Apply a recovery ACTION to a failed workflow."""
    _run("recover", lambda: _drive(ctx.obj["settings"], lambda o: o.recover(action, index)))


async def _inspect(settings: DevTeamSettings, operation: Callable[[WorkflowOrchestrator], Awaitable[Any]]) -> Any:
    orchestrator, _ = _build(settings, with_agents=False)
    try:
        await orchestrator.load()
        return await operation(orchestrator)
    finally:
        orchestrator.dispose()


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print the raw context as JSON")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show the current workflow status."""

    async def run() -> int:
        orchestrator, _ = _build(ctx.obj["settings"], with_agents=False)
        try:
            context = await orchestrator.load()
        finally:
            orchestrator.dispose()
        if as_json:
            click.echo(json.dumps(context.model_dump(mode="json") if context else None, indent=2))
        else:
            _echo_status(context, orchestrator.recovery)
        return 0

    _run("status", run)


@cli.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show statistics of the last run."""

    async def run() -> int:
        orchestrator, _ = _build(ctx.obj["settings"], with_agents=False)
        try:
            await orchestrator.load()
            result = orchestrator.get_stats()
        finally:
            orchestrator.dispose()
        click.echo(json.dumps(result.model_dump(mode="json") if result else None, indent=2))
        return 0

    _run("stats", run)


@cli.command()
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def reset(ctx: click.Context, yes: bool) -> None:
    """Discard the stored workflow."""
    if not yes:
        click.confirm("Discard the stored workflow and its statistics?", abort=True)

    async def run() -> int:
        await _inspect(ctx.obj["settings"], lambda o: o.reset())
        click.echo("Workflow reset.")
        return 0

    _run("reset", run)


@cli.command()
@click.option("--index", type=int, default=None, help="Checkpoint index (default: latest)")
@click.pass_context
def rollback(ctx: click.Context, index: int | None) -> None:
    """Roll the stored workflow back to a checkpoint."""

    async def run() -> int:
        ok = await _inspect(ctx.obj["settings"], lambda o: o.rollback(index))
        click.echo("Rolled back." if ok else "Rollback failed: no such checkpoint.", err=not ok)
        return 0 if ok else 1

    _run("rollback", run)


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Check that the stored workflow's project and workspace still exist."""

    async def run() -> int:
        ok = await _inspect(ctx.obj["settings"], lambda o: o.validate())
        click.echo("Workflow is valid." if ok else "Workflow validation failed.", err=not ok)
        return 0 if ok else 1

    _run("validate", run)


if __name__ == "__main__":
    cli()
