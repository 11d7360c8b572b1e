"""
Shipyard CLI - Inspect the Releases of declarative infrastructure deliveries.
"""

import logging
from typing import Optional

import typer
from rich.console import Console

from .errors import ShipyardError
from .formatters import TerraformStyleFormatter
from .forge.state import FileReleaseStore
from .settings import get_settings

# Setup
app = typer.Typer(
    name="shipyard",
    help="Declarative infrastructure delivery releases",
    add_completion=False,
)
console = Console()


def configure_logging():
    """Configure logging based on settings."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# Configure logging on module import
configure_logging()


def _get_store() -> FileReleaseStore:
    """Open the release store configured by SY_STATE_DIR."""
    return FileReleaseStore(get_settings().state_dir)


def _handle_command_error(e: Exception, command_type: str) -> None:
    """Print a command error and exit.

    Raises:
        SystemExit: Always exits with code 1
    """
    console.print(f"\n[bold red]✗ {command_type.capitalize()} failed:[/bold red] {e}")
    raise typer.Exit(code=1)


@app.command()
def releases(
    project: str = typer.Argument(..., help="Project name"),
    workspace: str = typer.Argument(..., help="Workspace name"),
    stack: str = typer.Argument(..., help="Stack name"),
):
    """List every Release of a project stack in a workspace."""
    try:
        found = _get_store().list_releases(project, workspace, stack)
    except ShipyardError as e:
        _handle_command_error(e, "releases")

    if not found:
        console.print(f"[dim]No releases for {project}/{workspace}/{stack}[/dim]")
        return

    console.print(TerraformStyleFormatter(console).releases_table(found))


@app.command()
def show(
    project: str = typer.Argument(..., help="Project name"),
    workspace: str = typer.Argument(..., help="Workspace name"),
    stack: str = typer.Argument(..., help="Stack name"),
    revision: Optional[int] = typer.Option(None, "--revision", "-r", help="Revision to show (default: latest)"),
):
    """Show one Release with its recorded action outcomes."""
    store = _get_store()
    try:
        if revision is None:
            release = store.get_latest_release(project, workspace, stack)
        else:
            release = store.get_release(project, workspace, stack, revision)
    except ShipyardError as e:
        _handle_command_error(e, "show")

    if release is None:
        console.print(f"[bold red]✗ No releases for {project}/{workspace}/{stack}[/bold red]")
        raise typer.Exit(code=1)

    console.print(TerraformStyleFormatter(console).format_release(release), markup=False, emoji=False)


@app.command()
def state(
    project: str = typer.Argument(..., help="Project name"),
    workspace: str = typer.Argument(..., help="Workspace name"),
    stack: str = typer.Argument(..., help="Stack name"),
):
    """List the resources of the latest recorded State in apply order."""
    try:
        release = _get_store().get_latest_release(project, workspace, stack)
    except ShipyardError as e:
        _handle_command_error(e, "state")

    if release is None or not release.state.resources:
        console.print(f"[dim]No resources recorded for {project}/{workspace}/{stack}[/dim]")
        return

    console.print(f"[bold blue]State of {release.describe()}[/bold blue]")
    for resource in release.state.resources:
        deps = f" (depends on: {', '.join(resource.depends_on)})" if resource.depends_on else ""
        console.print(f"  {resource.type.value:<10} {resource.id}{deps}", markup=False, emoji=False)


@app.command()
def version():
    """Show Shipyard version."""
    from . import __version__

    console.print(f"Shipyard version: [bold]{__version__}[/bold]")


if __name__ == "__main__":
    app()
