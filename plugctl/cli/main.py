"""plugctl command line interface"""

import json
import logging
from pathlib import Path
from typing import List, Optional, Tuple

import click
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from plugctl import __version__
from plugctl.config import load_settings
from plugctl.core.constants import DEFAULT_INDEX_NAME
from plugctl.core.environment import Paths, default_paths
from plugctl.core.exceptions import PluginError, ReceiptNotFoundError
from plugctl.core.index import (
    Plugin,
    load_plugin_by_name,
    load_plugin_from_file,
    load_plugin_list_from_fs,
    parse_canonical_name,
)
from plugctl.core.installation import InstallOutcome, Installer, list_installed_plugins
from plugctl.core.installation import receipt as receipts
from plugctl.core.migration import do_migration, is_migrated
from plugctl.cli.overview import render_overview

logger = logging.getLogger(__name__)

console = Console()


def _print_error(subject: str, error: Exception) -> None:
    console.print(f"[red]Error: {escape(subject)}: {escape(str(error))}[/red]")
    hint = getattr(error, "hint", None)
    if hint:
        console.print(f"[dim]Hint: {escape(hint)}[/dim]")


def _load_from_index(paths: Paths, reference: str) -> Tuple[str, Plugin]:
    index_name, name = parse_canonical_name(reference)
    return index_name, load_plugin_by_name(paths.index_plugins_path(index_name), name)


@click.group()
@click.version_option(version=__version__, prog_name="plugctl")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, verbose: bool):
    """plugctl - package manager for kubectl plugins"""
    settings = load_settings()
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(levelname)s: %(message)s'
    )
    paths = default_paths()
    ctx.obj = {
        "paths": paths,
        "installer": Installer(paths, settings=settings),
    }


@cli.command()
@click.argument("names", nargs=-1)
@click.option("--manifest", "manifest_file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Install from a local manifest instead of the index")
@click.option("--archive", "archive_file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Use a local archive instead of downloading the artifact")
@click.option("--head", "force_head", is_flag=True, help="Install the HEAD version")
@click.option("--force", is_flag=True, help="Reinstall even if the version is already installed")
@click.pass_context
def install(ctx, names: Tuple[str, ...], manifest_file: Optional[Path], archive_file: Optional[Path],
            force_head: bool, force: bool):
    """Install plugins by name (INDEX/NAME for other indexes)"""
    paths: Paths = ctx.obj["paths"]
    installer: Installer = ctx.obj["installer"]

    if manifest_file and names:
        raise click.UsageError("specify either --manifest or plugin names, not both")
    if not manifest_file and not names:
        raise click.UsageError("no plugins specified")
    if archive_file and len(names) > 1:
        raise click.UsageError("--archive can only be used with a single plugin")

    targets: List[Tuple[str, str, Plugin]] = []
    failed = False
    if manifest_file:
        try:
            plugin = load_plugin_from_file(manifest_file)
            targets.append((plugin.name, DEFAULT_INDEX_NAME, plugin))
        except PluginError as e:
            _print_error(str(manifest_file), e)
            ctx.exit(1)
    else:
        for reference in names:
            try:
                index_name, plugin = _load_from_index(paths, reference)
                targets.append((reference, index_name, plugin))
            except PluginError as e:
                _print_error(reference, e)
                failed = True

    for reference, index_name, plugin in targets:
        try:
            result = installer.install(
                plugin,
                index_name=index_name,
                force_head=force_head,
                force=force,
                archive_file=archive_file,
            )
        except PluginError as e:
            _print_error(reference, e)
            failed = True
            continue

        if result.outcome == InstallOutcome.ALREADY_INSTALLED:
            console.print(f"[yellow]{escape(reference)} is already installed[/yellow]")
            continue
        console.print(f"[green]Installed plugin: {escape(reference)}[/green]")
        if plugin.spec.caveats:
            console.print(f"Caveats:\n{escape(plugin.spec.caveats.strip())}")

    if failed:
        ctx.exit(1)


@cli.command()
@click.argument("names", nargs=-1, required=True)
@click.pass_context
def uninstall(ctx, names: Tuple[str, ...]):
    """Uninstall plugins"""
    installer: Installer = ctx.obj["installer"]
    failed = False
    for reference in names:
        try:
            _, name = parse_canonical_name(reference)
            installer.uninstall(name)
        except PluginError as e:
            _print_error(reference, e)
            failed = True
            continue
        console.print(f"[green]Uninstalled plugin: {escape(reference)}[/green]")
    if failed:
        ctx.exit(1)


@cli.command()
@click.argument("names", nargs=-1)
@click.pass_context
def upgrade(ctx, names: Tuple[str, ...]):
    """Upgrade installed plugins (all of them when no names are given)"""
    paths: Paths = ctx.obj["paths"]
    installer: Installer = ctx.obj["installer"]

    if names:
        references = list(names)
    else:
        references = [receipts.canonical_name(r) for r in receipts.load_all(paths.install_receipts_path())]

    failed = False
    for reference in references:
        try:
            index_name, plugin = _load_from_index(paths, reference)
            result = installer.upgrade(plugin, index_name=index_name)
        except PluginError as e:
            _print_error(reference, e)
            failed = True
            continue

        if result.outcome == InstallOutcome.ALREADY_UPGRADED:
            console.print(f"[dim]{escape(reference)} is already up to date[/dim]")
        else:
            console.print(f"[green]Upgraded plugin: {escape(reference)}[/green]")
    if failed:
        ctx.exit(1)


def _installed_rows(paths: Paths) -> List[dict]:
    rows = []
    for name, version in list_installed_plugins(paths.install_path()).items():
        index_name = DEFAULT_INDEX_NAME
        try:
            index_name = receipts.load(paths.plugin_receipt_path(name)).status.source.name
        except ReceiptNotFoundError:
            logger.debug(f"No receipt for {name}")
        except PluginError as e:
            logger.warning(f"Unreadable receipt for {name}: {e}")
        rows.append({"name": name, "version": version, "index": index_name})
    return rows


@cli.command("list")
@click.option("-o", "--output", "output_format", default="table",
              type=click.Choice(["table", "name", "json", "yaml"]), help="Output format")
@click.pass_context
def list_plugins(ctx, output_format: str):
    """List installed plugins"""
    paths: Paths = ctx.obj["paths"]
    rows = _installed_rows(paths)

    if output_format == "name":
        names = sorted(
            r["name"] if r["index"] == DEFAULT_INDEX_NAME else f"{r['index']}/{r['name']}" for r in rows
        )
        for name in names:
            click.echo(name)
        return
    if output_format == "json":
        click.echo(json.dumps(rows, indent=2))
        return
    if output_format == "yaml":
        click.echo(yaml.safe_dump(rows, sort_keys=False), nl=False)
        return

    if not rows:
        console.print("[yellow]No plugins installed[/yellow]")
        return

    table = Table(title=f"Installed plugins ({len(rows)})")
    table.add_column("Plugin", style="cyan", no_wrap=True)
    table.add_column("Version")
    table.add_column("Index", style="magenta")
    for row in rows:
        table.add_row(row["name"], row["version"][:12], row["index"])
    console.print(table)


@cli.command()
@click.pass_context
def migrate(ctx):
    """Migrate a legacy layout (single index, no receipts)"""
    paths: Paths = ctx.obj["paths"]
    if is_migrated(paths):
        console.print("[green]Already migrated[/green]")
        return

    try:
        report = do_migration(paths, installer=ctx.obj["installer"])
    except PluginError as e:
        _print_error("migration", e)
        ctx.exit(1)

    for name in report.reinstalled:
        console.print(f"[green]Reinstalled {escape(name)}[/green]")
    for name, reason in report.skipped.items():
        console.print(f"[yellow]Skipped {escape(name)}: {escape(reason)}[/yellow]")
    for name, error in report.failed.items():
        console.print(f"[red]Failed {escape(name)}: {escape(error)}[/red]")
    if report.failed:
        ctx.exit(1)


@cli.command()
@click.option("--plugins-dir", required=True,
              type=click.Path(exists=True, file_okay=False, path_type=Path),
              help="Directory containing the plugin manifests")
def overview(plugins_dir: Path):
    """Print a markdown overview of the plugins in an index"""
    click.echo(render_overview(load_plugin_list_from_fs(plugins_dir)))


@cli.command()
@click.pass_context
def version(ctx):
    """Show version and directory information"""
    paths: Paths = ctx.obj["paths"]
    installer: Installer = ctx.obj["installer"]

    table = Table(title="plugctl")
    table.add_column("Option", style="cyan")
    table.add_column("Value")
    table.add_row("Version", __version__)
    table.add_row("BasePath", str(paths.base_path()))
    table.add_row("IndexPath", str(paths.index_path(DEFAULT_INDEX_NAME)))
    table.add_row("InstallPath", str(paths.install_path()))
    table.add_row("BinPath", str(paths.bin_path()))
    table.add_row("DetectedPlatform", f"{installer.os_name}/{installer.arch}")
    console.print(table)


if __name__ == "__main__":
    cli()
