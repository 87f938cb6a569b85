"""
prefab CLI - inspect configuration and the scope trees of test modules.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from prefab.config import PrefabConfig, PrefabConfigLoader
from prefab.discovery import collect_scopes
from prefab.errors import ConfigurationError
from prefab.log import configure_logging
from prefab.scope import Scope

app = typer.Typer(
    name="prefab",
    help="Prefabricated, transaction-isolated fixtures for nested test groups",
    add_completion=False,
)
config_app = typer.Typer(help="Show or create prefab configuration.")
app.add_typer(config_app, name="config")

console = Console()


def version_callback(value: bool) -> None:
    """Display version information."""
    if value:
        from prefab import __version__

        console.print(f"[bold blue]prefab[/bold blue] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level for lifecycle events"),
) -> None:
    """prefab - fixtures built once per test group, isolated per test."""
    try:
        configure_logging(log_level)
    except ConfigurationError as e:
        raise typer.BadParameter(str(e), param_hint="--log-level") from e


@config_app.command("show")
def config_show(
    config_path: str = typer.Option(None, "--config", "-c", help="YAML configuration file"),
) -> None:
    """Print the effective configuration."""
    config = _load_config(config_path)

    table = Table(title="prefab configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_column("Description", style="dim")
    for name, field_info in PrefabConfig.model_fields.items():
        value = getattr(config, name)
        table.add_row(name, "[green]on[/green]" if value else "off", field_info.description or "")
    console.print(table)


@config_app.command("init")
def config_init(
    path: str = typer.Argument(PrefabConfigLoader.DEFAULT_FILENAME, help="File to create"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
) -> None:
    """Write a sample configuration file."""
    target = Path(path)
    if target.exists() and not force:
        console.print(f"[red]Error:[/red] {target} already exists (use --force)")
        raise typer.Exit(1)
    target.write_text(PrefabConfigLoader.generate_sample_config())
    console.print(f"[green]✓[/green] Configuration written to {target}")


@app.command()
def tree(
    path: str = typer.Argument(..., help="Test module to inspect"),
    prefix: str = typer.Option("Test", "--prefix", help="Class name prefix of test groups"),
) -> None:
    """Show the scope tree of a test module with its fixtures and hooks."""
    target = Path(path)
    if not target.is_file():
        console.print(f"[red]Error:[/red] Path not found: {path}")
        raise typer.Exit(1)

    try:
        scopes = collect_scopes(target, prefix=prefix)
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    if not scopes:
        console.print(f"[yellow]No test classes found in {path}[/yellow]")
        return

    root = Tree(f"[bold]{target.name}[/bold]")
    for scope in scopes:
        _add_scope(root, scope)
    console.print(root)


def _add_scope(parent: Tree, scope: Scope) -> None:
    label = f"[bold blue]{scope.name.rsplit('.', 1)[-1]}[/bold blue]"
    hooks = []
    if scope.before_callbacks:
        hooks.append(f"{len(scope.before_callbacks)} before")
    if scope.after_callbacks:
        hooks.append(f"{len(scope.after_callbacks)} after")
    if hooks:
        label += f" [dim]({', '.join(hooks)} hooks)[/dim]"
    branch = parent.add(label)

    if scope.state is not None:
        for name in scope.state.descriptors:
            inherited = scope.parent.owner_of(name) if scope.parent else None
            suffix = " [yellow](shadows parent)[/yellow]" if inherited else ""
            branch.add(f"[green]fab[/green] {name}{suffix}")
    for child in scope.children:
        _add_scope(branch, child)


def _load_config(config_path: str | None) -> PrefabConfig:
    if config_path is None:
        default = Path(PrefabConfigLoader.DEFAULT_FILENAME)
        if not default.exists():
            return PrefabConfig()
        config_path = str(default)
    try:
        return PrefabConfigLoader.from_yaml(config_path)
    except (FileNotFoundError, ConfigurationError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


if __name__ == "__main__":
    app()
