"""plugroute CLI"""

import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from plugroute.config.loader import ConfigError, load_config
from plugroute.config.validator import ConfigValidator
from plugroute.definitions.registry import RegistryLoadError
from plugroute.errors import RouterError
from plugroute.router.invoker import Invoker

app = typer.Typer(name="plugroute", help="Route requests to agent, command and skill definitions")
console = Console()
err_console = Console(stderr=True)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to plugroute.yaml"),
    dirs: Optional[List[Path]] = typer.Option(None, "--dir", "-d", help="Definition root (repeatable)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Load and query agent/command/skill definitions"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )
    ctx.obj = {"config_path": config, "dirs": dirs or [], "invoker": None}


def _get_invoker(ctx: typer.Context) -> Invoker:
    """Build the invoker once per CLI run, exiting on config or load errors"""
    if ctx.obj["invoker"] is not None:
        return ctx.obj["invoker"]

    try:
        config = load_config(ctx.obj["config_path"])
    except ConfigError as e:
        err_console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=2)

    if ctx.obj["dirs"]:
        config.loading.definition_dirs = list(ctx.obj["dirs"])

    invoker = Invoker.from_config(config)
    if invoker.load_error is not None:
        _print_load_error(invoker.load_error)
        raise typer.Exit(code=1)

    ctx.obj["invoker"] = invoker
    return invoker


def _print_load_error(error: RegistryLoadError):
    err_console.print("[red]LOAD_FAILED[/red]: registry could not be loaded")
    for e in error.errors:
        err_console.print(f"  [red]✗[/red] {e.message}")


@app.command("list")
def list_definitions(
    ctx: typer.Context,
    kind: Optional[str] = typer.Option(None, "--kind", "-k", help="Filter: agent, command or skill"),
):
    """List all loaded definitions"""
    registry = _get_invoker(ctx).registry
    definitions = registry.by_kind(kind) if kind else registry.all()

    if not definitions:
        console.print("[yellow]No definitions found.[/yellow]")
        return

    table = Table(title=f"Definitions ({len(definitions)})")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Kind", no_wrap=True)
    table.add_column("Tier", style="magenta", no_wrap=True)
    table.add_column("Tools", style="green")
    table.add_column("Description")
    for d in definitions:
        description = d.trigger_description
        if len(description) > 60:
            description = description[:57] + "..."
        table.add_row(d.id, d.kind.value, d.model_tier, ", ".join(sorted(d.allowed_tools)) or "-", description)
    console.print(table)


@app.command("show")
def show_definition(
    ctx: typer.Context,
    definition_id: str = typer.Argument(..., help="Definition id"),
):
    """Show one definition's header and body"""
    try:
        definition = _get_invoker(ctx).registry.get(definition_id)
    except RouterError as e:
        err_console.print(f"[red]{e.code}[/red]: {e.message}")
        raise typer.Exit(code=1)

    console.print(f"[bold cyan]{definition.id}[/bold cyan] ({definition.kind.value})")
    console.print(f"[dim]{definition.origin}[/dim]")
    console.print(f"Tier: [magenta]{definition.model_tier}[/magenta]")
    console.print(f"Tools: [green]{', '.join(sorted(definition.allowed_tools)) or '-'}[/green]")
    console.print(f"Description: {definition.trigger_description}")
    console.print()
    console.print(definition.body, markup=False, highlight=False)


@app.command("match")
def match_intent(
    ctx: typer.Context,
    intent: str = typer.Argument(..., help="Free-text request"),
    tools: Optional[List[str]] = typer.Option(None, "--tool", "-t", help="Required tool (repeatable)"),
    tier: Optional[str] = typer.Option(None, "--tier", help="Preferred model tier"),
):
    """Rank definitions for an intent"""
    invoker = _get_invoker(ctx)
    request = invoker.make_request(intent, tools, tier)

    try:
        result = invoker.match(request)
    except RouterError as e:
        console.print(f"[red]{e.code}[/red]: {e.message}")
        raise typer.Exit(code=1)

    table = Table(title=f"Ranking for: {intent}")
    table.add_column("#", justify="right")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Score", justify="right")
    table.add_column("Text", justify="right")
    table.add_column("Bonus", justify="right")
    for i, c in enumerate(result.candidates, start=1):
        style = "bold green" if i == 1 else None
        table.add_row(str(i), c.id, f"{c.score:.3f}", f"{c.text_score:.3f}", f"{c.bonus:.3f}", style=style)
    console.print(table)
    console.print(f"[green]Winner[/green]: {result.winner_id}")


@app.command("resolve")
def resolve_intent(
    ctx: typer.Context,
    intent: str = typer.Argument(..., help="Free-text request"),
    tools: Optional[List[str]] = typer.Option(None, "--tool", "-t", help="Required tool (repeatable)"),
    tier: Optional[str] = typer.Option(None, "--tier", help="Preferred model tier"),
):
    """Print the host JSON response for an intent"""
    response = _get_invoker(ctx).handle(intent, tools, tier)
    typer.echo(json.dumps(response, indent=2))
    if "error" in response:
        raise typer.Exit(code=1)


@app.command("authorize")
def authorize_tools(
    ctx: typer.Context,
    definition_id: str = typer.Argument(..., help="Definition id"),
    tools: List[str] = typer.Argument(..., help="Tools the model wants to use"),
):
    """Test whether a definition may use the given tools"""
    invoker = _get_invoker(ctx)
    try:
        result = invoker.authorize(definition_id, tools)
    except RouterError as e:
        err_console.print(f"[red]{e.code}[/red]: {e.message}")
        raise typer.Exit(code=1)

    if result.allowed:
        console.print("[green]ALLOWED[/green]")
    else:
        console.print(f"[red]FORBIDDEN[/red]: missing {', '.join(sorted(result.missing_tools))}")
        raise typer.Exit(code=1)


@app.command("validate")
def validate(ctx: typer.Context):
    """Validate configuration and every definition"""
    config_path = ctx.obj["config_path"]
    if config_path:
        try:
            raw = yaml.safe_load(Path(config_path).read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            err_console.print(f"[red]Cannot read {config_path}: {e}[/red]")
            raise typer.Exit(code=2)
        results = ConfigValidator.test_configuration(raw)
        for name, outcome in results["tests"].items():
            mark = "[green]✓[/green]" if outcome["valid"] else "[red]✗[/red]"
            console.print(f"{mark} {name}")
            for message in outcome.get("errors", []) + outcome.get("warnings_errors", []):
                console.print(f"    {message}")
        if not results["overall_valid"]:
            raise typer.Exit(code=1)

    registry = _get_invoker(ctx).registry
    console.print(f"[green]✓[/green] {len(registry)} definitions loaded")
