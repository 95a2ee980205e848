"""articyflow CLI - typer application entry point."""

from __future__ import annotations

import atexit
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from articyflow.database import ExportLoadError, FlowDatabase
from articyflow.flow import (
    FlowConfigError,
    FlowSettings,
    IterationConfig,
    advanced_next_flow_state,
    advanced_startup_flow_state,
    load_flow_settings,
)
from articyflow.nodes import PinnedNode
from articyflow.observability import (
    close_file_logging,
    configure_logging,
    flow_log_context,
    get_logger,
)
from articyflow.script import ScriptError, script_dispatch

if TYPE_CHECKING:
    from articyflow.flow import AdvancedFlowState, FlowBranch
    from articyflow.nodes import FlowNode

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="articyflow",
    help="articyflow: step through exported articy:draft flows.",
    no_args_is_help=True,
)
console = Console()
log = get_logger(__name__)

# Upper bound on committed steps for a single play session
DEFAULT_MAX_STEPS = 200

StopAtOption = Annotated[
    list[str] | None,
    typer.Option(
        "--stop-at",
        "-s",
        help="Node type that ends a branch (repeatable). Default: DialogueFragment.",
    ),
]


def _is_interactive_tty() -> bool:
    """Check if stdin/stdout are connected to a TTY."""
    return sys.stdin.isatty() and sys.stdout.isatty()


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity: -v for INFO, -vv for DEBUG.",
        ),
    ] = 0,
    log_dir: Annotated[
        Path | None,
        typer.Option(
            "--log-dir",
            help="Also write a JSONL debug log (debug.jsonl) to this directory.",
            envvar="ARTICYFLOW_LOG_DIR",
        ),
    ] = None,
) -> None:
    """articyflow: step through exported articy:draft flows."""
    configure_logging(verbosity=verbose, log_dir=log_dir)
    if log_dir is not None:
        atexit.register(close_file_logging)


def _load_database(export: Path) -> FlowDatabase:
    """Load an export, exit with error if it cannot be read."""
    try:
        return FlowDatabase.from_file(export)
    except ExportLoadError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None


def _iteration_config(
    stop_at: list[str] | None, settings: FlowSettings | None = None
) -> IterationConfig:
    """Build the iteration config.

    Stop types given on the command line win over ARTICYFLOW_STOP_AT and the
    settings file.
    """
    if stop_at:
        return IterationConfig(stop_at_types=list(stop_at))
    settings = settings if settings is not None else FlowSettings()
    return settings.iteration_config()


def _node_label(node: FlowNode) -> str:
    """Short human-readable label for a node."""
    if isinstance(node, PinnedNode):
        for text in (node.menu_text, node.text, node.display_name):
            if text:
                return text
    return f"{node.type_name} {node.id}"


def _print_stop(node: FlowNode | None, db: FlowDatabase) -> None:
    if node is None:
        return
    if isinstance(node, PinnedNode) and node.text:
        speaker = ""
        if node.speaker:
            model = db.get_model(node.speaker)
            name = model.properties.get("DisplayName") if model else None
            speaker = f"[bold cyan]{escape(str(name or node.speaker))}:[/bold cyan] "
        console.print(f"{speaker}{escape(node.text)}")
    else:
        console.print(f"[dim]({node.type_name} {node.id})[/dim]")


def _branch_table(branches: list[FlowBranch], title: str) -> Table:
    table = Table(title=title)
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Destination", style="bold")
    table.add_column("Type", style="dim")
    table.add_column("Steps", justify="right", style="dim")

    for branch in branches:
        destination = branch.destination()
        table.add_row(
            str(branch.index),
            escape(_node_label(destination)),
            destination.type_name,
            str(len(branch.path)),
        )
    return table


def _print_action(action: Any) -> None:
    console.print(f"[dim]action:[/dim] {escape(repr(action))}")


@app.command()
def version() -> None:
    """Show version information."""
    from articyflow import __version__

    console.print(f"articyflow v{__version__}")


@app.command()
def inspect(
    export: Annotated[Path, typer.Argument(help="Exported JSON file.")],
) -> None:
    """Summarize an export: objects, variables and script methods."""
    db = _load_database(export)

    console.print()
    console.print(f"[bold]Project:[/bold] {db.data.project.name or '(unnamed)'}")
    console.print()

    table = Table(title="Objects by Type")
    table.add_column("Type", style="cyan")
    table.add_column("Count", justify="right")
    for type_name, count in db.count_by_type().items():
        table.add_row(type_name, str(count))
    console.print(table)

    if db.data.global_variables:
        variables = Table(title="Global Variables")
        variables.add_column("Namespace", style="cyan")
        variables.add_column("Variables", justify="right")
        for namespace in db.data.global_variables:
            variables.add_row(namespace.namespace, str(len(namespace.variables)))
        console.print(variables)

    missing = db.verify_script_methods()
    if missing:
        console.print(
            f"[yellow]⚠[/yellow] {len(missing)} script method(s) not registered: "
            + ", ".join(missing)
        )
    console.print()


@app.command()
def branches(
    export: Annotated[Path, typer.Argument(help="Exported JSON file.")],
    start: Annotated[str, typer.Argument(help="Id of the node to start from.")],
    stop_at: StopAtOption = None,
) -> None:
    """List the branches available when starting at START."""
    db = _load_database(export)
    config = _iteration_config(stop_at)

    try:
        with flow_log_context(export=str(export), start=start):
            state, node = advanced_startup_flow_state(db, start, config)
    except ScriptError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None

    if state.id is None:
        console.print(f"[red]Error:[/red] Unknown start node '{start}'")
        raise typer.Exit(1)

    console.print()
    console.print(f"[bold]At:[/bold] {escape(_node_label(node)) if node else state.id}")
    if not state.branches:
        console.print("[dim]No branches available.[/dim]")
        return
    console.print(_branch_table(state.branches, f"Branches ({len(state.branches)})"))


def _next_choice(state: AdvancedFlowState, choices: list[int]) -> int | None:
    """Pick the next branch: single branch, queued choice, or prompt."""
    if len(state.branches) == 1:
        return 0
    if choices:
        return choices.pop(0)
    if not _is_interactive_tty():
        return None
    return typer.prompt("Choose", type=int)


@app.command()
def play(
    export: Annotated[
        Path | None, typer.Argument(help="Exported JSON file (or 'export' in --config).")
    ] = None,
    start: Annotated[
        str | None, typer.Argument(help="Start node id (or 'start' in --config).")
    ] = None,
    stop_at: StopAtOption = None,
    choose: Annotated[
        list[int] | None,
        typer.Option("--choose", "-c", help="Branch to take at a fork (repeatable)."),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Flow settings file or directory (flow.yaml)."),
    ] = None,
    max_steps: Annotated[
        int, typer.Option("--max-steps", help="Stop after this many committed steps.")
    ] = DEFAULT_MAX_STEPS,
) -> None:
    """Step through the flow from START, printing each stop and its options."""
    settings: FlowSettings | None = None
    if config_file is not None:
        try:
            settings = load_flow_settings(config_file)
        except FlowConfigError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            raise typer.Exit(1) from None

    export_path = export or (settings.export if settings else None)
    start_id = start or (settings.start if settings else None)
    if export_path is None or start_id is None:
        console.print("[red]Error:[/red] Both EXPORT and START are required (or set in --config).")
        raise typer.Exit(1)

    db = _load_database(export_path)
    config = _iteration_config(stop_at, settings)

    with flow_log_context(export=str(export_path), start=start_id):
        log.info("play_started", stop_at=config.stop_at_types)
        _play(db, start_id, config, list(choose or []), max_steps)


def _play(
    db: FlowDatabase,
    start_id: str,
    config: IterationConfig,
    pending: list[int],
    max_steps: int,
) -> None:
    try:
        with script_dispatch(db=db, dispatch=_print_action) as context:
            state, node = advanced_startup_flow_state(db, start_id, config, context=context)
        if state.id is None:
            console.print(f"[red]Error:[/red] Unknown start node '{start_id}'")
            raise typer.Exit(1)

        for _ in range(max_steps):
            _print_stop(node, db)
            if not state.branches:
                console.print("[dim]End of flow.[/dim]")
                return

            if len(state.branches) > 1:
                for branch in state.branches:
                    label = escape(_node_label(branch.destination()))
                    console.print(f"  [cyan]{branch.index}[/cyan] {label}")

            choice = _next_choice(state, pending)
            if choice is None:
                console.print("[yellow]No choice given, stopping.[/yellow]")
                return
            if not 0 <= choice < len(state.branches):
                console.print(f"[red]Error:[/red] No branch {choice}")
                raise typer.Exit(1)

            with script_dispatch(db=db, dispatch=_print_action) as context:
                state, node = advanced_next_flow_state(db, state, config, choice, context=context)
    except ScriptError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None

    console.print(f"[yellow]Stopped after {max_steps} steps.[/yellow]")


if __name__ == "__main__":
    app()
