"""libvault CLI — install and inspect content-type libraries."""

import asyncio

import click
from rich.console import Console
from rich.table import Table

from libvault import __version__
from libvault.config import Settings, load_settings
from libvault.errors import FileMissingError, LibraryError, RollbackError
from libvault.manager import LibraryManager, make_url_resolver
from libvault.models.library import FullLibraryIdentity, InstallOptions, InstallType, parse_uber_name
from libvault.storage.file_store import FileLibraryStore
from libvault.utils.log import configure_logging

console = Console()


def _manager(settings: Settings) -> LibraryManager:
    return LibraryManager(
        FileLibraryStore(settings.store_dir),
        make_url_resolver(settings.base_url),
        copy_concurrency=settings.copy_concurrency,
        default_language=settings.default_language,
    )


def _parse_name(name: str, full: bool = False):
    try:
        library = parse_uber_name(name)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e
    if full and not isinstance(library, FullLibraryIdentity):
        raise click.BadParameter(f"'{name}' needs a patch version (NAME-MAJOR.MINOR.PATCH)")
    return library


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_path", default=None, type=click.Path(exists=True, dir_okay=False),
              help="YAML settings file")
@click.option("--verbose", "-v", is_flag=True, help="Log progress")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool):
    """libvault — install and inspect content-type libraries.

    Libraries are identified as NAME-MAJOR.MINOR, e.g. H5P.Example-1.2.
    """
    try:
        settings = load_settings(config_path)
    except ValueError as e:
        raise click.UsageError(str(e)) from e
    configure_logging("INFO" if verbose else settings.log_level)
    ctx.obj = settings


# ── Install ──────────────────────────────────────────────────────────


@main.command()
@click.argument("source_dir", type=click.Path(exists=True, file_okay=False))
@click.option("--restricted", is_flag=True, help="Only users with special permission may use it")
@click.pass_obj
def install(settings: Settings, source_dir: str, restricted: bool):
    """Install or patch a library from an extracted directory.

    SOURCE_DIR must contain library.json at its root.
    """
    manager = _manager(settings)
    try:
        outcome = asyncio.run(
            manager.install_from_directory(source_dir, InstallOptions(restricted=restricted))
        )
    except FileMissingError as e:
        console.print(f"[red]Install failed.[/] Library {e.library} is missing files:")
        for path in e.files:
            console.print(f"  [red]x[/] {path}")
        raise SystemExit(1)
    except RollbackError as e:
        console.print(f"[red]Install failed and could not be rolled back:[/] {e}")
        raise SystemExit(2)
    except LibraryError as e:
        console.print(f"[red]Install failed:[/] {e}")
        raise SystemExit(1)

    if outcome.type == InstallType.NEW:
        console.print(f"  [green]Installed[/] {outcome.new_version.full_name}")
    elif outcome.type == InstallType.PATCH:
        console.print(
            f"  [green]Updated[/] {outcome.old_version.full_name} -> {outcome.new_version.full_name}"
        )
    else:
        console.print("[yellow]Nothing to do:[/] the same or a newer patch is already installed.")


# ── Inspect ──────────────────────────────────────────────────────────


@main.command(name="list")
@click.argument("machine_names", nargs=-1)
@click.pass_obj
def list_libraries(settings: Settings, machine_names: tuple):
    """List installed libraries, optionally only MACHINE_NAMES."""
    manager = _manager(settings)
    installed = asyncio.run(manager.list_installed_libraries(list(machine_names)))

    if not installed:
        console.print("[yellow]No libraries installed.[/]")
        return

    table = Table(title=f"Installed libraries ({sum(len(v) for v in installed.values())})")
    table.add_column("Machine name", style="cyan")
    table.add_column("Version")
    table.add_column("Runnable", justify="center")
    table.add_column("Title")

    for machine_name, records in installed.items():
        for record in records:
            runnable = "[green]Y[/]" if record.runnable else "[dim]N[/]"
            version = f"{record.major_version}.{record.minor_version}.{record.patch_version}"
            table.add_row(machine_name, version, runnable, record.title[:50])

    console.print(table)


@main.command()
@click.argument("library")
@click.pass_obj
def files(settings: Settings, library: str):
    """List the files of LIBRARY (NAME-MAJOR.MINOR)."""
    name = _parse_name(library)
    manager = _manager(settings)
    try:
        paths = asyncio.run(manager.list_files(name))
    except LibraryError as e:
        console.print(f"[red]{e}[/]")
        raise SystemExit(1)
    for path in paths:
        console.print(f"  {path}")


@main.command()
@click.argument("library")
@click.pass_obj
def languages(settings: Settings, library: str):
    """List the language codes LIBRARY is translated to."""
    name = _parse_name(library)
    codes = asyncio.run(_manager(settings).list_languages(name))
    if not codes:
        console.print(f"[yellow]Library {name.uber_name} is not installed.[/]")
        raise SystemExit(1)
    console.print(", ".join(codes))


@main.command(name="upgrade-check")
@click.argument("library")
@click.pass_obj
def upgrade_check(settings: Settings, library: str):
    """Check whether LIBRARY (NAME-MAJOR.MINOR.PATCH) or newer is installed."""
    name = _parse_name(library, full=True)
    if asyncio.run(_manager(settings).library_has_upgrade(name)):
        console.print(f"  [green]{name.full_name} or newer is installed[/]")
    else:
        console.print(f"  [yellow]Nothing as new as {name.full_name} is installed[/]")


if __name__ == "__main__":
    main()
