"""
Command Line Interface for the change graph engine.
"""

from contextlib import contextmanager
from typing import Iterator, Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..db.base import get_engine, get_session_local, init_database
from ..errors import NotFoundError
from ..events import EventBus
from ..graph import (
    GraphService,
    PackageInstaller,
    builtin_packages,
    compute_checksum,
    get_builtin_package,
)
from ..logging_config import configure_logging
from ..primitives import TenantContext
from ..services import ProjectService
from ..storage import SqlSchemaStorage

app = typer.Typer(help="Change graph engine - record type schema changes and graph integrity")
console = Console()


@contextmanager
def _open_storage(tenant: str, user: Optional[str]) -> Iterator[SqlSchemaStorage]:
    session = get_session_local()()
    try:
        yield SqlSchemaStorage(session, TenantContext(tenant_id=tenant, user_id=user))
    finally:
        session.close()


@app.command()
def init_db():
    """Create every table in the configured database."""
    init_database(get_engine())
    console.print("✅ Database initialized")


@app.command()
def create_project(
    name: str = typer.Argument(..., help="Project name"),
    tenant: str = typer.Option(..., help="Tenant ID"),
    description: Optional[str] = typer.Option(None, help="Project description"),
    user: Optional[str] = typer.Option(None, help="Acting user ID"),
):
    """Create a project to hold record types and changes."""
    with _open_storage(tenant, user) as storage:
        project = ProjectService(storage).create_project(name, description)
        console.print(f"✅ Created project {project.name} ({project.id})")


@app.command()
def list_packages():
    """List the built-in graph packages."""
    table = Table(title="Built-in Packages", show_header=True, header_style="bold cyan")
    table.add_column("Key", style="yellow")
    table.add_column("Name")
    table.add_column("Version", style="green")
    table.add_column("Record Types", style="blue")
    table.add_column("Checksum", style="magenta")

    for pkg in builtin_packages():
        table.add_row(
            pkg.key,
            pkg.name,
            pkg.version,
            str(len(pkg.record_types)),
            compute_checksum(pkg)[:12],
        )

    console.print(table)


@app.command()
def install(
    package_key: str = typer.Argument(..., help="Built-in package key, e.g. itsm-lite"),
    project_id: str = typer.Option(..., help="Project to install into"),
    tenant: str = typer.Option(..., help="Tenant ID"),
    user: Optional[str] = typer.Option(None, help="Acting user ID"),
):
    """Install a built-in package into a project."""
    try:
        pkg = get_builtin_package(package_key)
    except NotFoundError as exc:
        console.print(f"❌ {exc.message}")
        raise typer.Exit(code=1)

    bus = EventBus()
    try:
        with _open_storage(tenant, user) as storage:
            result = PackageInstaller(storage, bus).install_package(pkg, project_id)
    finally:
        bus.close()

    if result.installed:
        console.print(f"✅ Installed {pkg.key} {pkg.version}")
    else:
        console.print(f"❌ Not installed: {result.reason}")
        raise typer.Exit(code=1)


@app.command()
def validate(
    tenant: str = typer.Option(..., help="Tenant ID"),
):
    """Validate the tenant's current graph."""
    with _open_storage(tenant, None) as storage:
        service = GraphService(storage)
        summary = service.get_graph_summary()

    console.print(
        f"Nodes: {summary.node_count}  Edges: {summary.edge_count}  "
        f"Packages: {summary.package_count}"
    )
    if not summary.errors:
        console.print("🟢 Graph is valid")
        return

    table = Table(title="Graph Violations", show_header=True, header_style="bold red")
    table.add_column("Code", style="red")
    table.add_column("Node", style="yellow")
    table.add_column("Message")
    for error in summary.errors:
        table.add_row(error.code, error.node_key or "", error.message)
    console.print(table)
    raise typer.Exit(code=1)


@app.command()
def version():
    """Show version information."""
    from .. import __version__

    rprint(Panel.fit(f"changegraph v{__version__}", style="bold green"))


def main():
    """Main CLI entry point."""
    configure_logging()
    app()


if __name__ == "__main__":
    main()
