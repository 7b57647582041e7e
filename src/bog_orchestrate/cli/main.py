"""Main CLI for bog-orchestrate."""

import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..core.config import MergeStrategy, load_config
from ..core.orchestrator import Orchestrator
from ..core.ownership import load_ownership
from ..core.plan import StatusKind
from ..core.skim import run_skim_lifecycle
from ..errors import ErrorTranslator, OrchestrateError
from ..llm.provider_selector import build_default_provider
from ..utils.rich_logging import setup_rich_logging


console = Console()


def _load_context(ctx):
    """Load config and ownership once per invocation (pre-flight)."""
    root = ctx.obj["path"]
    config = load_config(ctx.obj["config_path"])
    ownership_path = ctx.obj["ownership_path"] or (root / config.ownership_file)
    directory = load_ownership(ownership_path)
    return root, config, directory


_STATUS_STYLES = {StatusKind.SUCCESS: "green", StatusKind.FAILED: "red"}


def _status_cell(result) -> str:
    style = _STATUS_STYLES.get(result.status.kind, "yellow")
    return f"[{style}]{escape(result.status.describe())}[/]"


def _print_results(agent_results, violations, merged: bool, cleanup_warnings) -> None:
    if agent_results:
        table = Table(title="Agent Results")
        table.add_column("#", style="dim")
        table.add_column("Agent", style="cyan")
        table.add_column("Status")
        table.add_column("Files", justify="right")
        for result in agent_results:
            table.add_row(
                str(result.task_index),
                result.agent,
                _status_cell(result),
                str(len(result.files_modified)),
            )
        console.print(table)

    for agent, agent_violations in violations:
        console.print(f"\n[bold yellow]Violations by {agent}:[/]")
        for v in agent_violations:
            console.print(f"  - {v.path}: {v.reason}")

    for warning in cleanup_warnings:
        console.print(f"[dim]cleanup warning: {warning.path}: {warning.message}[/]")

    if merged:
        console.print("\n[bold green]OK[/] changes merged")
    else:
        console.print("\n[bold red]FAIL[/] no changes merged")


def _fail(error: Exception) -> None:
    translator = ErrorTranslator()
    console.print(translator.format_for_cli(translator.translate(error)))
    sys.exit(1)


@click.group()
@click.option("--path", "-p", default=".", type=click.Path(file_okay=False), help="Repository root")
@click.option("--config", "-c", "config_path", default=None, type=click.Path(dir_okay=False),
              help="Orchestration config (YAML)")
@click.option("--ownership", "-o", "ownership_path", default=None, type=click.Path(dir_okay=False),
              help="Ownership declarations (default: <path>/ownership.yaml)")
@click.option("--log-level", default="INFO",
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
@click.pass_context
def cli(ctx, path, config_path, ownership_path, log_level):
    """bog-orchestrate - delegate code changes to agents that stay inside their files."""
    ctx.ensure_object(dict)
    ctx.obj["path"] = Path(path).resolve()
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["ownership_path"] = Path(ownership_path) if ownership_path else None
    setup_rich_logging(log_level=log_level, use_colors=sys.stderr.isatty())


@cli.command()
@click.argument("request")
@click.option("--max-replans", type=int, default=None, help="Replan attempts after violations")
@click.option("--merge-strategy", type=click.Choice(["incremental", "all-or-nothing"]), default=None)
@click.option("--plan-only", is_flag=True, help="Print the validated plan and stop")
@click.pass_context
def run(ctx, request, max_replans, merge_strategy, plan_only):
    """Plan REQUEST, run each task in its own worktree, then merge or reject."""
    try:
        root, config, directory = _load_context(ctx)
        provider = build_default_provider(config)
        orchestrator = Orchestrator(root, directory, provider, config)

        if plan_only:
            plan = orchestrator.plan_only(request)
            click.echo(json.dumps(plan.model_dump(), indent=2))
            return

        result = orchestrator.run(
            request,
            max_replan_attempts=max_replans,
            merge_strategy=MergeStrategy.parse(merge_strategy) if merge_strategy else None,
        )
    except OrchestrateError as e:
        _fail(e)
        return

    console.print(f"[bold]Plan:[/] {result.plan.summary}  [dim](attempts: {result.attempts})[/]")
    _print_results(result.agent_results, result.violations, result.merged, result.cleanup_warnings)
    if result.error is not None:
        console.print(f"[red]{escape(str(result.error))}[/]")
    if not result.merged:
        sys.exit(1)


@cli.command()
@click.argument("skimsystem")
@click.option("--action", default=None, help="Integration action passed to the runner")
@click.pass_context
def skim(ctx, skimsystem, action):
    """Collect SKIMSYSTEM's pending change requests and delegate them to owners."""
    try:
        root, config, directory = _load_context(ctx)
        provider = build_default_provider(config)
        result = run_skim_lifecycle(root, directory, skimsystem, provider, config, action=action)
    except OrchestrateError as e:
        _fail(e)
        return

    if result.integration_output.strip():
        console.print(result.integration_output.rstrip(), markup=False)
    for packet in result.work_packets:
        console.print(
            f"  {packet.subsystem} ({packet.agent}): {packet.item_count} request(s) "
            f"across {len(packet.groups)} file(s)"
        )
    if not result.work_packets:
        console.print("No pending change requests.")
    _print_results(result.agent_results, result.violations, result.merged, result.cleanup_warnings)
    if result.error is not None:
        console.print(f"[red]{escape(str(result.error))}[/]")
    if not result.merged:
        sys.exit(1)


@cli.command()
@click.pass_context
def agents(ctx):
    """List registered agents with their role and owned files."""
    try:
        _, _, directory = _load_context(ctx)
    except OrchestrateError as e:
        _fail(e)
        return

    table = Table(title="Registered Agents")
    table.add_column("Agent", style="cyan")
    table.add_column("Role")
    table.add_column("Units")
    table.add_column("Files")
    for agent in directory.registered_agents():
        role = directory.agent_role(agent)
        units = directory.agent_subsystems(agent) or directory.agent_skimsystems(agent)
        table.add_row(agent, role.value, ", ".join(units), ", ".join(directory.agent_file_globs(agent)))
    console.print(table)


if __name__ == "__main__":
    cli()
