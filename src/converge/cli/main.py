"""Main CLI entry point."""

import json
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from converge.config import ConfigValidationError, EngineSettings, load_settings
from converge.engine import Action, ApplyEvent, Lifecycle, PlanResult, Reconciler
from converge.handlers.registry import build_registry
from converge.utils.errors import ReconcileError
from converge.utils.logging import get_logger, setup_logging

# State goes to stdout, so everything for humans goes to stderr
console = Console(stderr=True)
logger = get_logger(__name__)

ACTION_STYLES = {
    Action.CREATE: ('+', 'green'),
    Action.UPDATE: ('~', 'yellow'),
    Action.REPLACE: ('-/+', 'magenta'),
    Action.DELETE: ('-', 'red'),
    Action.NOOP: ('=', 'dim'),
}


@click.group()
@click.option('--config', 'config_path', type=click.Path(dir_okay=False), help='Settings file (default: ./converge.yaml)')
@click.option('--log-level', type=click.Choice(['debug', 'info', 'warning', 'error']), help='Override the configured log level')
@click.pass_context
def cli(ctx, config_path, log_level):
    """Single-resource reconciliation engine."""
    ctx.ensure_object(dict)

    try:
        settings = load_settings(config_path)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    except ConfigValidationError as e:
        console.print("[red]Configuration validation failed:[/red]\n")
        console.print(str(e))
        sys.exit(1)

    if log_level:
        settings.log_level = log_level

    setup_logging(settings.log_level, settings.log_dir)
    ctx.obj['settings'] = settings


def create_reconciler(settings: EngineSettings) -> Reconciler:
    """Create a reconciler over the built-in handlers."""
    try:
        return Reconciler(build_registry(settings), settings)
    except ReconcileError as e:
        console.print(f"[red]Error:[/red] {e.to_user_message()}")
        sys.exit(1)


def read_blob(path: Optional[str]) -> Optional[bytes]:
    """Read an input file; None when no path was given."""
    if path is None:
        return None
    return Path(path).read_bytes()


def build_lifecycle(prevent_destroy: bool, ignore_changes: Tuple[str, ...]) -> Lifecycle:
    return Lifecycle(prevent_destroy=prevent_destroy, ignore_changes=list(ignore_changes))


def render_plan(plan: PlanResult) -> None:
    """Print a plan as a rich table."""
    symbol, color = ACTION_STYLES[plan.action]
    console.print(Panel.fit(
        f"[bold {color}]{symbol} {plan.action.value}[/bold {color}] {plan.resource_type}\n"
        f"{plan.reason or ''}",
        title="Plan",
        border_style=color,
    ))

    if not plan.diff:
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Attribute", style="cyan")
    table.add_column("Before")
    table.add_column("After")
    table.add_column("Note")

    for name, diff in plan.diff.items():
        table.add_row(
            name,
            json.dumps(diff.before) if diff.before is not None else "",
            json.dumps(diff.after) if diff.after is not None else "",
            "[magenta]forces replacement[/magenta]" if diff.forces_replacement else diff.action,
        )

    console.print(table)


lifecycle_options = [
    click.option('--prevent-destroy', is_flag=True, help='Fail instead of planning delete or replace'),
    click.option('--ignore-changes', multiple=True, help='Attribute whose changes alone never trigger an update'),
]


def with_lifecycle_options(func):
    for option in reversed(lifecycle_options):
        func = option(func)
    return func


@cli.command('types')
@click.pass_context
def list_types(ctx):
    """List registered resource types."""
    reconciler = create_reconciler(ctx.obj['settings'])

    table = Table(title="Resource Types", show_header=True, header_style="bold cyan")
    table.add_column("Type", style="cyan")
    table.add_column("Immutable")
    table.add_column("Mutable")

    for type_name in reconciler.registry.types():
        handler = reconciler.registry.get(type_name)
        mutable = handler.mutable_fields
        table.add_row(
            type_name,
            ", ".join(handler.immutable_fields) or "-",
            "(whole config)" if mutable is None else ", ".join(mutable) or "-",
        )

    console.print(table)


@cli.command()
@click.argument('resource_type')
@click.option('--desired', type=click.Path(exists=True, dir_okay=False), help='Desired config JSON; omit to plan deletion')
@click.option('--prior', type=click.Path(exists=True, dir_okay=False), help='Prior state JSON; omit when nothing is tracked')
@click.option('--format', 'output_format', type=click.Choice(['table', 'json']), default='table', help='Output format')
@with_lifecycle_options
@click.pass_context
def plan(ctx, resource_type, desired, prior, output_format, prevent_destroy, ignore_changes):
    """Show what apply would do for one resource."""
    reconciler = create_reconciler(ctx.obj['settings'])

    try:
        result = reconciler.plan(
            resource_type,
            read_blob(desired),
            read_blob(prior),
            lifecycle=build_lifecycle(prevent_destroy, ignore_changes),
        )
    except ReconcileError as e:
        console.print(f"[red]Plan failed:[/red] {e.to_user_message()}")
        sys.exit(1)

    if output_format == 'json':
        click.echo(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        render_plan(result)


@cli.command()
@click.argument('resource_type')
@click.option('--desired', type=click.Path(exists=True, dir_okay=False), help='Desired config JSON; omit to delete')
@click.option('--prior', type=click.Path(exists=True, dir_okay=False), help='Prior state JSON; omit when nothing is tracked')
@click.option('--out', type=click.Path(dir_okay=False), help='Write the new state here instead of stdout')
@click.option('--timeout', type=float, help='Deadline in seconds (default from settings)')
@with_lifecycle_options
@click.pass_context
def apply(ctx, resource_type, desired, prior, out, timeout, prevent_destroy, ignore_changes):
    """Converge one resource and emit its new state."""
    reconciler = create_reconciler(ctx.obj['settings'])

    def on_event(event: ApplyEvent):
        symbol, color = ACTION_STYLES[event.action]
        if event.status == 'started':
            console.print(f"[{color}]{symbol}[/{color}] {event.resource_type}: {event.action.value}...")
        elif event.status == 'completed':
            console.print(f"[green]✓[/green] {event.resource_type}: {event.action.value} ({event.duration:.2f}s)")

    result = reconciler.apply(
        resource_type,
        read_blob(desired),
        read_blob(prior),
        lifecycle=build_lifecycle(prevent_destroy, ignore_changes),
        callback=on_event,
        timeout=timeout,
    )

    # The new state must be persisted even when apply failed
    if result.new_state is not None:
        if out:
            Path(out).write_bytes(result.new_state)
        else:
            click.echo(result.new_state.decode('utf-8'))

    if result.is_failed():
        console.print(f"[red]✗ Apply failed:[/red] {result.error.to_user_message()}")
        if result.prior_deleted:
            console.print("[yellow]The prior object was deleted; the resource is now untracked.[/yellow]")
        sys.exit(1)


def main():
    """Console script entry point."""
    cli(obj={})


if __name__ == '__main__':
    main()
