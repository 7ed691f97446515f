"""
nouns command-line interface.

Commands operate on serialized definitions (the JSON produced by
``nouns.stringify``):

    nouns inspect startup.json
    nouns codegen startup.json -o generated/startup.py
    nouns context --host startups.do
"""

from __future__ import annotations

import json
import logging
import platform
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from nouns._version import get_version
from nouns.core.codegen import generate_module
from nouns.core.config import CONFIG_FILENAME, NounsConfig, load_config
from nouns.core.errors import NounsError
from nouns.core.factory import Definition
from nouns.core.query.resolution import resolve_context
from nouns.core.serialize import parse

logger = logging.getLogger(__name__)
console = Console(highlight=False)

app = typer.Typer(
    help="""nouns - declarative entity definitions

Commands:
  • inspect   Show the fields of a serialized definition
  • codegen   Generate a Python module from a serialized definition
  • context   Show the resolved context URL
""",
    no_args_is_help=True,
)

_state: dict[str, Path | None] = {"config": None}


def version_callback(value: bool) -> None:
    """Display version and environment information."""
    if value:
        typer.echo(f"nouns {get_version()}")
        typer.echo(f"Python {platform.python_version()} ({platform.python_implementation()})")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version information",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    config: Path | None = typer.Option(
        None, "--config", "-c", help=f"Path to {CONFIG_FILENAME} (default: ./{CONFIG_FILENAME})"
    ),
) -> None:
    """nouns CLI main callback for global options."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    _state["config"] = config


def _config() -> NounsConfig:
    return load_config(_state["config"])


def _load_definition(path: Path) -> Definition:
    if not path.exists():
        typer.echo(f"File not found: {path}", err=True)
        raise typer.Exit(code=1)
    try:
        return parse(path.read_text())
    except json.JSONDecodeError as e:
        typer.echo(f"Invalid JSON in {path}: {e}", err=True)
        raise typer.Exit(code=1) from e
    except NounsError as e:
        typer.echo(f"Invalid definition in {path}: {e}", err=True)
        raise typer.Exit(code=1) from e


@app.command("inspect")
def inspect_command(
    file: Path = typer.Argument(..., help="Serialized definition (JSON)"),
) -> None:
    """Show the fields of a serialized definition."""
    definition = _load_definition(file)

    header = f"{definition.type} v{definition.version}"
    if definition.extends:
        header += f" (extends {definition.extends})"
    console.print(f"[bold]{escape(header)}[/bold]")
    if definition.context:
        console.print(f"Context: [cyan]{escape(definition.context)}[/cyan]")
    console.print()

    if not definition.fields:
        console.print("[yellow]No fields.[/yellow]")
        return

    table = Table(title="Fields")
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Source")
    table.add_column("Type")
    table.add_column("Detail")
    table.add_column("Issues", style="red")
    for name, field in definition.fields.items():
        detail = field.cascade.to_grammar() if field.cascade else field.description
        table.add_row(
            name,
            field.source.value,
            field.type.value,
            escape(detail),
            escape("; ".join(field.issues)),
        )
    console.print(table)

    functions = sorted(definition.functions)
    if functions:
        console.print()
        console.print(f"Functions: {', '.join(functions)}")


@app.command("codegen")
def codegen_command(
    file: Path = typer.Argument(..., help="Serialized definition (JSON)"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the module here instead of stdout"),
    export_name: str | None = typer.Option(None, "--export-name", "-e", help="Name of the exported namespace"),
) -> None:
    """Generate a Python module from a serialized definition."""
    definition = _load_definition(file)
    codegen_config = _config().codegen

    source = generate_module(definition, export_name=export_name or codegen_config.export_name)

    target = output or codegen_config.get_output_path(Path.cwd())
    if target is None:
        typer.echo(source, nl=False)
        return

    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(source)
    typer.echo(f"Wrote {target}")


@app.command("context")
def context_command(
    host: str | None = typer.Option(None, "--host", help="Request host to resolve against"),
    override: str | None = typer.Option(None, "--override", help="Explicit context URL"),
) -> None:
    """Show the resolved context URL."""
    typer.echo(resolve_context(override, host=host, config=_config()))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
