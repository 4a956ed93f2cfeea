"""CLI interface for the blocking dependency engine."""

import json
import logging
from functools import wraps
from pathlib import Path

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from blockplan import ordering
from blockplan.analysis import plan_waves
from blockplan.config import ConfigError, EngineConfig, load_config
from blockplan.edits import LinkError, add_link, remove_link, retarget_link
from blockplan.filters import IssueFilter
from blockplan.graph import DependencyGraph
from blockplan.model import BlockingModel, build_blocking_model
from blockplan.models import Diagnostic, DiagnosticReason, Edge, Issue
from blockplan.payload import GraphPayload, PayloadError, dump_payload, load_payload

console = Console()
err_console = Console(stderr=True)

PAYLOAD_PATH = click.Path(exists=True, dir_okay=False, path_type=Path)


def get_config(ctx: click.Context) -> EngineConfig:
    """Get config from context."""
    return ctx.obj["config"]


@click.group()
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Config file (default: nearest .blockplan.yml)",
)
@click.option("-v", "--verbose", is_flag=True, help="Log each dropped link and debug detail")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """Blockplan - blocking dependency analysis for issue graphs.

    FILE arguments are YAML or JSON payloads, either {issues, edges} or
    the component list printed by `bd graph --all --json`.
    """
    ctx.ensure_object(dict)
    _configure_logging(verbose)
    try:
        ctx.obj["config"] = load_config(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e))


def _configure_logging(verbose: bool) -> None:
    package_logger = logging.getLogger("blockplan")
    package_logger.handlers = [RichHandler(console=err_console, show_path=False)]
    package_logger.setLevel(logging.DEBUG if verbose else logging.ERROR)


def filter_options(func):
    """Add the -p/-a/-l issue filter options."""

    @click.option("-p", "--priority", type=click.IntRange(0, 4), help="Only this priority")
    @click.option("-a", "--assignee", help="Only issues whose assignee contains this text")
    @click.option("-l", "--label", help="Only issues with this label")
    @wraps(func)
    def wrapper(*args, priority, assignee, label, **kwargs):
        kwargs["filters"] = IssueFilter(priority=priority, assignee=assignee, label=label)
        return func(*args, **kwargs)

    return wrapper


def _load(ctx: click.Context, path: Path) -> GraphPayload:
    try:
        return load_payload(path, get_config(ctx))
    except PayloadError as e:
        raise click.ClickException(f"Invalid payload {path}: {e}")


def _model(ctx: click.Context, path: Path, filters: IssueFilter | None = None) -> BlockingModel:
    model = build_blocking_model(_load(ctx, path), filters)
    _print_diagnostics(model.diagnostics, model.excluded_edges)
    return model


def _print_diagnostics(diagnostics: tuple[Diagnostic, ...], excluded_edges: tuple[Edge, ...]) -> None:
    """Summarize dropped links as non-fatal warnings.

    A cycle drops every link on it, so cyclic links are counted from
    excluded_edges rather than from the one diagnostic per cycle.
    """
    labels = {
        DiagnosticReason.UNKNOWN_ENDPOINT: ("link to an unknown issue", "links to unknown issues"),
        DiagnosticReason.SELF_LOOP: ("self-blocking link", "self-blocking links"),
    }
    cycles = sum(1 for d in diagnostics if d.reason == DiagnosticReason.CYCLE)
    if excluded_edges:
        links = len(excluded_edges)
        err_console.print(
            f"[yellow]Warning: {links} cyclic link{'' if links == 1 else 's'} ignored "
            f"({cycles} cycle{'' if cycles == 1 else 's'})[/yellow]"
        )
    for reason, (singular, plural) in labels.items():
        count = sum(1 for d in diagnostics if d.reason == reason)
        if count:
            err_console.print(f"[yellow]Warning: {count} {singular if count == 1 else plural} ignored[/yellow]")


@cli.command()
@click.argument("file", type=PAYLOAD_PATH)
@click.option(
    "-f",
    "--format",
    "output_format",
    type=click.Choice(["table", "json", "yaml"]),
    default="table",
    help="Output format",
)
@filter_options
@click.pass_context
def analyze(ctx: click.Context, file: Path, output_format: str, filters: IssueFilter) -> None:
    """Print the full blocking model for FILE."""
    model = _model(ctx, file, filters)

    if output_format == "json":
        click.echo(json.dumps(model.to_dict(), indent=2))
        return
    if output_format == "yaml":
        click.echo(yaml.safe_dump(model.to_dict(), default_flow_style=False, sort_keys=False), nl=False)
        return

    console.print(
        f"[bold]{len(model.issues)}[/bold] issues, [bold]{len(model.edges)}[/bold] links, "
        f"[bold]{len(model.ready_items)}[/bold] ready, "
        f"[bold]{len(model.parallel_groups)}[/bold] phases"
    )
    if model.critical_path:
        console.print(f"Critical path: {_chain(model.critical_path)}")
    _print_phases(model)


@cli.command()
@click.argument("file", type=PAYLOAD_PATH)
@filter_options
@click.pass_context
def ready(ctx: click.Context, file: Path, filters: IssueFilter) -> None:
    """List issues with no open blocker."""
    model = _model(ctx, file, filters)
    if not model.ready_items:
        console.print("No ready issues found.")
        return
    _print_issue_table(model.ready_items, model)


@cli.command()
@click.argument("file", type=PAYLOAD_PATH)
@filter_options
@click.pass_context
def order(ctx: click.Context, file: Path, filters: IssueFilter) -> None:
    """List all issues in a dependency-safe completion order."""
    model = _model(ctx, file, filters)
    if not model.completion_order:
        console.print("No issues found.")
        return
    _print_issue_table(model.completion_order, model, numbered=True)


@cli.command("critical-path")
@click.argument("file", type=PAYLOAD_PATH)
@filter_options
@click.pass_context
def critical_path(ctx: click.Context, file: Path, filters: IssueFilter) -> None:
    """Show the longest chain of blocking links."""
    model = _model(ctx, file, filters)
    if not model.critical_path:
        console.print("No issues found.")
        return
    console.print(f"Critical path ({len(model.critical_path)}): {_chain(model.critical_path)}")
    _print_issue_table(model.critical_path, model, numbered=True)


@cli.command()
@click.argument("file", type=PAYLOAD_PATH)
@filter_options
@click.pass_context
def phases(ctx: click.Context, file: Path, filters: IssueFilter) -> None:
    """Group issues into phases that can be worked in parallel."""
    model = _model(ctx, file, filters)
    if not model.parallel_groups:
        console.print("No issues found.")
        return
    _print_phases(model)


@cli.command()
@click.argument("file", type=PAYLOAD_PATH)
@click.option(
    "-n",
    "--capacity",
    type=click.IntRange(min=1),
    default=None,
    help="Max issues worked at once (default: wave_capacity from config)",
)
@filter_options
@click.pass_context
def plan(ctx: click.Context, file: Path, capacity: int | None, filters: IssueFilter) -> None:
    """Schedule open issues into capacity-limited waves."""
    payload = filters.apply(_load(ctx, file))
    graph = DependencyGraph.build(payload.issues, payload.edges)
    _print_diagnostics(graph.diagnostics, graph.excluded_edges)

    wave_plan = plan_waves(
        graph, ordering.order(graph).completion_order, capacity or get_config(ctx).wave_capacity
    )
    if not wave_plan.waves:
        console.print("Nothing left to do.")
        return

    console.print(
        f"{wave_plan.total_items} open issues in {wave_plan.total_waves} waves "
        f"(capacity {wave_plan.capacity})"
    )
    console.print(f"Average throughput: {wave_plan.average_throughput:.1f} issues/wave")
    for index, wave in enumerate(wave_plan.waves, start=1):
        console.print(f"[bold]Wave {index}[/bold]: " + ", ".join(f"[cyan]{i.id}[/cyan]" for i in wave))


@cli.command()
@click.argument("file", type=PAYLOAD_PATH)
@click.argument("issue_id")
@click.pass_context
def show(ctx: click.Context, file: Path, issue_id: str) -> None:
    """Show an issue with its blockers and what it unblocks."""
    payload = _load(ctx, file)
    graph = DependencyGraph.build(payload.issues, payload.edges)
    issue = graph.get(issue_id)
    if issue is None:
        raise click.ClickException(f"Issue {issue_id} not found")

    console.print(f"[bold cyan]{issue.id}[/bold cyan]: {issue.title}")
    console.print(f"Status: {issue.status.value}  Priority: P{issue.priority}")
    if issue.assignee:
        console.print(f"Assignee: {issue.assignee}")
    if issue.labels:
        console.print(f"Labels: {', '.join(sorted(issue.labels))}")

    blockers = sorted(graph.get_blockers(issue_id), key=graph.sort_key)
    if blockers:
        open_ids = set(graph.open_blockers(issue_id))
        marked = [b if b in open_ids else f"{b} (closed)" for b in blockers]
        console.print(f"Blocked by: {', '.join(marked)}")
    transitive = graph.get_transitive_blockers(issue_id)
    if len(transitive) > len(blockers):
        console.print(f"All blockers: {', '.join(transitive)}")
    blocked = sorted(graph.get_blocked_by_this(issue_id), key=graph.sort_key)
    if blocked:
        console.print(f"Blocks: {', '.join(blocked)}")
    console.print(f"Unblocks {graph.fan_out_counts()[issue_id]} issue(s) transitively")


@cli.group()
def link() -> None:
    """Edit blocking links in a payload file."""
    pass


def _apply_edit(ctx: click.Context, file: Path, edit, *args: str) -> None:
    payload = _load(ctx, file)
    try:
        updated = edit(payload, *args)
    except LinkError as e:
        raise click.ClickException(str(e))
    dump_payload(updated, file)
    model = build_blocking_model(updated)
    _print_diagnostics(model.diagnostics, model.excluded_edges)
    console.print(f"{len(model.ready_items)} ready, {len(model.parallel_groups)} phases")


@link.command("add")
@click.argument("file", type=PAYLOAD_PATH)
@click.argument("source")
@click.argument("target")
@click.pass_context
def link_add(ctx: click.Context, file: Path, source: str, target: str) -> None:
    """Mark SOURCE as blocking TARGET."""
    _apply_edit(ctx, file, add_link, source, target)
    console.print(f"[cyan]{source}[/cyan] now blocks [cyan]{target}[/cyan]")


@link.command("rm")
@click.argument("file", type=PAYLOAD_PATH)
@click.argument("source")
@click.argument("target")
@click.pass_context
def link_rm(ctx: click.Context, file: Path, source: str, target: str) -> None:
    """Remove link: SOURCE no longer blocks TARGET."""
    _apply_edit(ctx, file, remove_link, source, target)
    console.print(f"[cyan]{source}[/cyan] no longer blocks [cyan]{target}[/cyan]")


@link.command("retarget")
@click.argument("file", type=PAYLOAD_PATH)
@click.argument("source")
@click.argument("old_target")
@click.argument("new_target")
@click.pass_context
def link_retarget(
    ctx: click.Context, file: Path, source: str, old_target: str, new_target: str
) -> None:
    """Move the SOURCE -> OLD_TARGET link to NEW_TARGET."""
    _apply_edit(ctx, file, retarget_link, source, old_target, new_target)
    console.print(f"[cyan]{source}[/cyan] now blocks [cyan]{new_target}[/cyan] instead of [cyan]{old_target}[/cyan]")


def _chain(issues: tuple[Issue, ...]) -> str:
    return " -> ".join(f"[cyan]{issue.id}[/cyan]" for issue in issues)


def _print_phases(model: BlockingModel) -> None:
    for index, group in enumerate(model.parallel_groups, start=1):
        console.print(f"\n[bold]Phase {index}[/bold] ({len(group)})")
        _print_issue_table(group, model)


def _print_issue_table(issues: tuple[Issue, ...], model: BlockingModel, numbered: bool = False) -> None:
    """Print issues as a formatted table."""
    table = Table()
    if numbered:
        table.add_column("#", justify="right")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("P", justify="center")
    table.add_column("Status")
    table.add_column("Title")
    table.add_column("Unblocks", justify="right")

    for index, issue in enumerate(issues, start=1):
        row = [
            issue.id,
            str(issue.priority),
            issue.status.value,
            issue.title[:50],
            str(model.fan_out.get(issue.id, 0)),
        ]
        table.add_row(*([str(index)] if numbered else []), *row)
    console.print(table)


if __name__ == "__main__":
    cli()
