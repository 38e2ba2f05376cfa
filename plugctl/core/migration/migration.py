"""
Migration from the legacy layout

The legacy layout has a single index at <root>/index/plugins and no
receipts. Migrating moves the index to <root>/index/default and
reinstalls every plugin so it gets a receipt.
"""

import logging
import os
import uuid
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from plugctl.core.constants import DEFAULT_INDEX_NAME, MANIFEST_EXTENSION, SELF_PLUGIN_NAME
from plugctl.core.environment import Paths
from plugctl.core.exceptions import InstallationError, PluginError
from plugctl.core.index.scanner import load_plugin_by_name
from plugctl.core.index.validation import is_safe_plugin_name
from plugctl.core.installation.installer import Installer

logger = logging.getLogger(__name__)


class MigrationReport(BaseModel):
    """What a migration run did"""
    already_migrated: bool = False
    index_moved: bool = False
    reinstalled: List[str] = Field(default_factory=list)
    skipped: Dict[str, str] = Field(default_factory=dict, description="plugin -> reason")
    failed: Dict[str, str] = Field(default_factory=dict, description="plugin -> error")


def _legacy_plugin_dirs(paths: Paths) -> List[str]:
    """Plugin directories in the install root, excluding plugctl itself"""
    store = paths.install_path()
    if not store.is_dir():
        return []
    return [
        entry.name for entry in sorted(os.scandir(store), key=lambda e: e.name)
        if entry.is_dir() and is_safe_plugin_name(entry.name) and entry.name != SELF_PLUGIN_NAME
    ]


def is_migrated(paths: Paths) -> bool:
    """
    Whether the layout is current

    A completed migration leaves a marker behind. Without one, the layout
    is current if there is no legacy index and every installed plugin has
    a receipt. The receipts directory alone says nothing, since any
    install creates it.
    """
    if paths.migration_marker_path().exists():
        return True
    if paths.legacy_index_plugins_path().is_dir():
        return False
    return all(paths.plugin_receipt_path(name).exists() for name in _legacy_plugin_dirs(paths))


def migrate_index(paths: Paths) -> bool:
    """
    Move a legacy single index into the default index slot

    Returns:
        True if the index was moved

    Raises:
        InstallationError: If the index directory cannot be moved
    """
    legacy = paths.legacy_index_plugins_path()
    target = paths.index_path(DEFAULT_INDEX_NAME)
    if not legacy.is_dir() or target.exists():
        return False

    index_base = paths.index_base()
    tmp = index_base.with_name(f".index-migration-{uuid.uuid4().hex[:8]}")
    logger.info(f"Moving legacy index {index_base} to {target}")
    try:
        os.rename(index_base, tmp)
        index_base.mkdir()
        os.rename(tmp, target)
    except OSError as e:
        raise InstallationError(f"failed to move index {index_base} to {target}: {e}") from e
    return True


def _is_installation_consistent(installer: Installer, name: str) -> bool:
    """A legacy installation counts only if its bin symlink exists"""
    return os.path.islink(installer.bin_link_path(name))


def _plugins_to_reinstall(paths: Paths, report: MigrationReport) -> List[str]:
    index_dir = paths.index_plugins_path(DEFAULT_INDEX_NAME)
    plugins = []
    for name in _legacy_plugin_dirs(paths):
        if paths.plugin_receipt_path(name).exists():
            logger.info(f"Skipping plugin {name}, because it already has a receipt")
            report.skipped[name] = "already has a receipt"
            continue
        if not os.path.lexists(index_dir / f"{name}{MANIFEST_EXTENSION}"):
            logger.info(f"Skipping plugin {name}, because it is missing in the index")
            report.skipped[name] = "missing in the index"
            continue
        plugins.append(name)
    return plugins


def do_migration(paths: Paths, installer: Optional[Installer] = None) -> MigrationReport:
    """
    Bring a legacy layout up to date

    Best effort: a plugin that fails to uninstall or reinstall is recorded
    in the report and the remaining plugins are still processed.

    Args:
        paths: Layout to migrate
        installer: Installer to reinstall with (defaults to one on paths)

    Returns:
        MigrationReport

    Raises:
        InstallationError: If the index cannot be moved or the marker written
    """
    report = MigrationReport()
    if is_migrated(paths):
        logger.info("Already migrated")
        report.already_migrated = True
        return report

    installer = installer or Installer(paths)
    report.index_moved = migrate_index(paths)

    plugins = _plugins_to_reinstall(paths, report)
    logger.info(f"Going to re-install the following plugins: {plugins}")

    index_dir = paths.index_plugins_path(DEFAULT_INDEX_NAME)
    for name in plugins:
        if not _is_installation_consistent(installer, name):
            logger.info(f"Skipping inconsistent plugin installation {name}")
            report.skipped[name] = "no bin symlink"
            continue

        try:
            plugin = load_plugin_by_name(index_dir, name)
        except PluginError as e:
            logger.warning(f"Cannot read manifest of {name}, skipping reinstall: {e}")
            report.failed[name] = str(e)
            continue

        try:
            installer.uninstall(name)
        except PluginError as e:
            logger.warning(f"Uninstalling of {name} failed, skipping reinstall: {e}")
            report.failed[name] = str(e)
            continue

        try:
            installer.install(plugin, index_name=DEFAULT_INDEX_NAME)
        except PluginError as e:
            logger.warning(f"Reinstalling {name} failed: {e}")
            report.failed[name] = str(e)
            continue
        report.reinstalled.append(name)

    marker = paths.migration_marker_path()
    try:
        marker.parent.mkdir(parents=True, exist_ok=True)
        marker.touch()
    except OSError as e:
        raise InstallationError(f"failed to write migration marker {marker}: {e}") from e
    logger.info(
        f"Migration done: {len(report.reinstalled)} reinstalled, "
        f"{len(report.skipped)} skipped, {len(report.failed)} failed"
    )
    return report
