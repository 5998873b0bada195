"""
LogeTogo API - Main CLI Application

Command-line interface for running and inspecting the API server.
"""
import json
from pathlib import Path
from typing import Optional

import typer
from fastapi.routing import APIRoute
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import AppConfig, DeploymentMode
from core.errors import ConfigurationError

# Initialize app
app = typer.Typer(
    name="logetogo",
    help="LogeTogo API - Smart real-estate platform for Togo",
    add_completion=False,
)

console = Console()


def _load_config(
    mode: Optional[str] = None,
    host: Optional[str] = None,
    port: Optional[int] = None,
) -> AppConfig:
    """Resolve configuration from the environment, then apply CLI overrides."""
    try:
        config = AppConfig.from_environment()
        if mode:
            config.mode = DeploymentMode.parse(mode)
    except ConfigurationError as e:
        _fail(e)

    if host:
        config.server.host = host
    if port:
        config.server.port = port
    return config


def _fail(error: ConfigurationError) -> None:
    console.print(f"[red]Error: {error.message}[/red]")
    for suggestion in error.suggestions:
        console.print(f"  - {suggestion}")
    raise typer.Exit(1)


def _build_app(config: AppConfig):
    from api.main import create_app

    try:
        return create_app(config)
    except ConfigurationError as e:
        _fail(e)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Server host (default: HOST)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Server port (default: PORT)"),
    mode: Optional[str] = typer.Option(None, "--mode", "-m", help="Deployment mode (default: APP_ENV)"),
):
    """Start the LogeTogo API server."""
    from api.main import run

    config = _load_config(mode, host, port)
    console.print(Panel.fit(
        f"[bold blue]{config.name}[/bold blue] v{config.version}\n"
        f"{config.server.address} ({config.mode.value})",
        border_style="blue",
    ))
    raise typer.Exit(run(config))


@app.command("config")
def show_config(
    mode: Optional[str] = typer.Option(None, "--mode", "-m", help="Deployment mode (default: APP_ENV)"),
):
    """Show the resolved configuration with secrets masked."""
    config = _load_config(mode)
    try:
        warnings = config.validate()
    except ConfigurationError as e:
        _fail(e)

    table = Table(title="LogeTogo API Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in config.to_dict().items():
        table.add_row(key, str(value))

    console.print(table)
    for warning in warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")


@app.command()
def schema(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the schema to a file"),
    mode: Optional[str] = typer.Option(None, "--mode", "-m", help="Deployment mode (default: APP_ENV)"),
):
    """Dump the OpenAPI schema as JSON."""
    api = _build_app(_load_config(mode))
    document = json.dumps(api.openapi(), indent=2, default=str)

    if output:
        output.write_text(document)
        console.print(f"[green]Schema saved to {output}[/green]")
    else:
        console.print_json(document)


@app.command()
def routes(
    mode: Optional[str] = typer.Option(None, "--mode", "-m", help="Deployment mode (default: APP_ENV)"),
):
    """List the registered routes."""
    config = _load_config(mode)
    api = _build_app(config)

    table = Table(title=f"Routes ({config.mode.value})")
    table.add_column("Method", style="cyan")
    table.add_column("Path", style="green")
    table.add_column("Auth")
    table.add_column("Summary")

    rows = []
    for route in api.routes:
        if not isinstance(route, APIRoute):
            continue
        requires_auth = getattr(route.endpoint, "__requires_auth__", False)
        for method in sorted(route.methods):
            rows.append((method, route.path, "bearer" if requires_auth else "", route.summary or ""))

    for row in sorted(rows, key=lambda r: (r[1], r[0])):
        table.add_row(*row)

    console.print(table)
    console.print(f"\n{len(rows)} routes")


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
