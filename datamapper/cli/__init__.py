"""
Command Line Interface for datamapper.
"""

import asyncio
import importlib
from types import ModuleType
from typing import List, Optional

import typer
import uvicorn
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import get_settings
from ..connections import connect, connection_from_url
from ..errors import DataMapperError
from ..log import configure_logging
from ..migration import MigrationHandler
from ..model import Model

app = typer.Typer(help="datamapper - connection-agnostic models over file, memory, MySQL and Postgres")
console = Console()


def load_models(module_name: str) -> List[Model]:
    """Import ``module_name`` and return the Models it defines, in definition order."""
    try:
        module: ModuleType = importlib.import_module(module_name)
    except ImportError as e:
        console.print(f"❌ Could not import {module_name}: {e}")
        raise typer.Exit(code=1)
    return [value for value in vars(module).values() if isinstance(value, Model)]


@app.callback()
def setup() -> None:
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)


@app.command()
def config():
    """Show the effective configuration."""
    settings = get_settings()

    table = Table(title="datamapper settings", show_header=True, header_style="bold magenta")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    for name, value in settings.model_dump().items():
        table.add_row(name, "" if value is None else str(value))

    console.print(table)


@app.command()
def migrate(
    module: str = typer.Argument(..., help="Module defining Models and registering migrations"),
    database_url: Optional[str] = typer.Option(None, help="Override DATAMAPPER_DATABASE_URL"),
):
    """Initialise every Model in MODULE and run pending migrations."""
    settings = get_settings()
    models = load_models(module)
    url = database_url or settings.database_url

    async def run() -> List[str]:
        connection = await connect(url, prefix=settings.table_prefix)
        try:
            for model in models:
                await model.init(connection=connection)
                console.print(f"✅ Initialised {model.table} (v{model.version})")
            return await MigrationHandler.run_migrations(connection=connection)
        finally:
            await connection.close()

    try:
        ran = asyncio.run(run())
    except DataMapperError as e:
        console.print(f"❌ {e.code}: {e.message}")
        raise typer.Exit(code=1)

    if ran:
        for name in ran:
            console.print(f"✅ Migration {name} complete")
    else:
        console.print("No pending migrations")


@app.command()
def serve(
    module: str = typer.Argument(..., help="Module defining the Models to serve"),
    host: Optional[str] = typer.Option(None, help="Host to bind the server to"),
    port: Optional[int] = typer.Option(None, help="Port to run the API server on"),
):
    """Serve CRUD routes for every Model in MODULE."""
    from ..api import create_app

    settings = get_settings()
    models = load_models(module)
    if not models:
        console.print(f"❌ No models found in {module}")
        raise typer.Exit(code=1)

    try:
        connection = connection_from_url(settings.database_url, prefix=settings.table_prefix)
    except DataMapperError as e:
        console.print(f"❌ {e.code}: {e.message}")
        raise typer.Exit(code=1)

    bind_host = host or settings.api_host
    bind_port = port or settings.api_port
    rprint(Panel.fit(f"🚀 Serving {len(models)} models on http://{bind_host}:{bind_port}", style="bold blue"))
    uvicorn.run(create_app(models, connection), host=bind_host, port=bind_port)


@app.command()
def version():
    """Show version information."""
    from .. import __version__

    rprint(Panel.fit(f"datamapper v{__version__}", style="bold green"))


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
