"""
Installation orchestrator

Drives one plugin through

    RESOLVING -> DOWNLOADING -> EXTRACTING -> PLANNING -> STAGING -> COMMITTING -> INSTALLED

and ends in ABORTED on any error. All work before COMMITTING happens in a
staging directory inside the install root, so a failed download or a
broken manifest never touches a previously installed version. The commit
is a directory rename followed by an atomic symlink swap; the receipt is
written last. A crash between the rename and the symlink swap leaves a
version directory without a receipt or bin link. The next install of that
version notices and commits it again.
"""

import logging
import os
import shutil
import stat
import tempfile
import threading
import uuid
from enum import Enum
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field

from plugctl.config import Settings, load_settings
from plugctl.core.constants import (
    BIN_PREFIX,
    DEFAULT_INDEX_NAME,
    HEAD_VERSION,
    PLUGIN_DESCRIPTOR,
    SELF_PLUGIN_NAME,
)
from plugctl.core.download.downloader import Downloader
from plugctl.core.download.fetcher import Fetcher, FileFetcher, HTTPFetcher
from plugctl.core.download.verifier import InsecureVerifier, Sha256Verifier
from plugctl.core.environment import Paths, default_paths, is_windows, runtime_platform
from plugctl.core.exceptions import (
    InstallationError,
    NotASymlinkError,
    NotInstalledError,
    PluginError,
    ReceiptNotFoundError,
    UnsafePluginNameError,
)
from plugctl.core.index.models import Plugin, dump_model
from plugctl.core.index.validation import is_safe_plugin_name
from plugctl.core.installation import receipt as receipts
from plugctl.core.installation.lock import InstallLock
from plugctl.core.installation.move import move_all_files, move_to_install_dir
from plugctl.core.installation.platform import get_download_target
from plugctl.core.installation.registry import find_installed_plugin_version

logger = logging.getLogger(__name__)


class InstallState(str, Enum):
    """States of one install attempt"""
    RESOLVING = "RESOLVING"
    DOWNLOADING = "DOWNLOADING"
    EXTRACTING = "EXTRACTING"
    PLANNING = "PLANNING"
    STAGING = "STAGING"
    COMMITTING = "COMMITTING"
    INSTALLED = "INSTALLED"
    ABORTED = "ABORTED"


class InstallOutcome(str, Enum):
    """What a successful install/upgrade call did"""
    INSTALLED = "installed"
    ALREADY_INSTALLED = "already_installed"
    UPGRADED = "upgraded"
    ALREADY_UPGRADED = "already_upgraded"


class InstallResult(BaseModel):
    """Result of an install or upgrade"""
    plugin: str
    version: str
    outcome: InstallOutcome
    install_dir: Path
    bin_link: Path
    previous_version: Optional[str] = None
    states: List[InstallState] = Field(default_factory=list)


class _Lifecycle:
    """Tracks the current state and stamps it on errors"""

    def __init__(self, plugin_name: str):
        self.plugin_name = plugin_name
        self.state: Optional[InstallState] = None
        self.history: List[InstallState] = []

    def enter(self, state: InstallState) -> None:
        logger.debug(f"{self.plugin_name}: {self.state.value if self.state else 'START'} -> {state.value}")
        self.state = state
        self.history.append(state)

    def abort(self, error: PluginError) -> None:
        if error.phase is None and self.state is not None:
            error.phase = self.state.value
        self.history.append(InstallState.ABORTED)
        logger.error(f"Installing {self.plugin_name} aborted: {error}")


def plugin_name_to_bin(name: str, windows: bool) -> str:
    """Symlink name in the bin directory: dashes become underscores"""
    name = BIN_PREFIX + name.replace("-", "_")
    if windows:
        name += ".exe"
    return name


def remove_link(path: Path) -> None:
    """
    Remove a symlink if it exists

    Raises:
        NotASymlinkError: If something other than a symlink occupies path
        InstallationError: If the link cannot be read or removed
    """
    try:
        st = os.lstat(path)
    except FileNotFoundError:
        logger.debug(f"No file found at {path}")
        return
    except OSError as e:
        raise InstallationError(f"failed to read the symlink in {path}: {e}") from e

    if not stat.S_ISLNK(st.st_mode):
        raise NotASymlinkError(f"file {path} is not a symlink (mode={stat.filemode(st.st_mode)})")
    try:
        os.remove(path)
    except OSError as e:
        raise InstallationError(f"failed to remove the symlink in {path}: {e}") from e
    logger.debug(f"Removed symlink from {path}")


def create_or_update_link(link: Path, target: Path) -> None:
    """
    Point link at target, replacing an existing symlink atomically

    Raises:
        NotASymlinkError: If a regular file or directory occupies link
        InstallationError: If the link cannot be created
    """
    link.parent.mkdir(parents=True, exist_ok=True)
    if os.path.lexists(link) and not os.path.islink(link):
        raise NotASymlinkError(f"file {link} is not a symlink, refusing to replace it")

    tmp_link = link.with_name(f".{link.name}.tmp-{uuid.uuid4().hex[:8]}")
    try:
        os.symlink(target, tmp_link)
        os.replace(tmp_link, link)
    except OSError as e:
        if os.path.lexists(tmp_link):
            os.remove(tmp_link)
        raise InstallationError(f"failed to link {link} to {target}: {e}") from e
    logger.debug(f"Linked {link} -> {target}")


class Installer:
    """Install, upgrade and uninstall plugins in a Paths layout"""

    def __init__(
        self,
        paths: Optional[Paths] = None,
        fetcher: Optional[Fetcher] = None,
        os_name: Optional[str] = None,
        arch: Optional[str] = None,
        settings: Optional[Settings] = None
    ):
        """
        Initialize installer

        Args:
            paths: Directory layout (defaults to PLUGCTL_ROOT)
            fetcher: Byte source for artifacts (defaults to HTTPFetcher)
            os_name: Target os label override
            arch: Target arch label override
            settings: Settings (loaded from disk when omitted)
        """
        self.paths = paths or default_paths()
        self.settings = settings or load_settings()
        runtime_os, runtime_arch = runtime_platform()
        self.os_name = os_name or runtime_os
        self.arch = arch or runtime_arch
        self._fetcher = fetcher

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _lock(self, plugin_name: str) -> InstallLock:
        return InstallLock(
            self.paths.locks_path() / f"{plugin_name}.lock",
            timeout=self.settings.lock_timeout
        )

    def _fetcher_for(self, archive_file: Optional[Path]) -> Fetcher:
        if archive_file is not None:
            return FileFetcher(archive_file)
        if self._fetcher is None:
            self._fetcher = HTTPFetcher(
                timeout=self.settings.fetch_timeout,
                max_size=self.settings.max_download_size,
                max_retries=self.settings.http_retries
            )
        return self._fetcher

    def bin_link_path(self, plugin_name: str) -> Path:
        return self.paths.bin_path() / plugin_name_to_bin(plugin_name, is_windows(self.os_name))

    @staticmethod
    def _check_name(name: str) -> None:
        if not is_safe_plugin_name(name):
            raise UnsafePluginNameError(f"the plugin name {name!r} is not allowed")

    @staticmethod
    def _check_index(index_name: str) -> None:
        if not is_safe_plugin_name(index_name):
            raise UnsafePluginNameError(f"the index name {index_name!r} is not allowed")

    def _is_intact(self, name: str, link: Path, bin_target: Path) -> bool:
        """Receipt written and bin link pointing at bin_target"""
        if not self.paths.plugin_receipt_path(name).exists():
            return False
        return os.path.islink(link) and os.readlink(link) == str(bin_target)

    # ------------------------------------------------------------------
    # install / upgrade
    # ------------------------------------------------------------------

    def install(
        self,
        plugin: Plugin,
        *,
        index_name: str = DEFAULT_INDEX_NAME,
        force_head: bool = False,
        force: bool = False,
        archive_file: Optional[Path] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> InstallResult:
        """
        Install a plugin for the target platform

        Installing the version that is already present is a no-op
        (InstallOutcome.ALREADY_INSTALLED) unless force is set or its
        receipt or bin link is missing. Any other installed version is
        replaced.

        Args:
            plugin: Manifest to install
            index_name: Index the manifest came from (recorded in the receipt)
            force_head: Install the platform's HEAD reference
            force: Reinstall even if the same version is present
            archive_file: Use this local file instead of fetching the uri
            cancel_event: Aborts download/extraction when set

        Returns:
            InstallResult

        Raises:
            PluginError: Subclass describing the failure, with phase set
        """
        self._check_name(plugin.name)
        self._check_index(index_name)
        with self._lock(plugin.name):
            return self._install(
                plugin,
                index_name=index_name,
                force_head=force_head,
                force=force,
                archive_file=archive_file,
                cancel_event=cancel_event,
                upgrading=False
            )

    def upgrade(
        self,
        plugin: Plugin,
        *,
        index_name: Optional[str] = None,
        force_head: bool = False,
        archive_file: Optional[Path] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> InstallResult:
        """
        Upgrade an installed plugin to the version its manifest resolves to

        Args:
            index_name: Defaults to the index recorded in the plugin's receipt

        Raises:
            NotInstalledError: If the plugin is not installed
        """
        self._check_name(plugin.name)
        with self._lock(plugin.name):
            _, installed = find_installed_plugin_version(self.paths.install_path(), plugin.name)
            if not installed:
                raise NotInstalledError(f"can't upgrade, the plugin {plugin.name!r} is not installed")

            if index_name is None:
                try:
                    existing = receipts.load(self.paths.plugin_receipt_path(plugin.name))
                    index_name = existing.status.source.name
                except ReceiptNotFoundError:
                    index_name = DEFAULT_INDEX_NAME
            self._check_index(index_name)

            return self._install(
                plugin,
                index_name=index_name,
                force_head=force_head,
                force=False,
                archive_file=archive_file,
                cancel_event=cancel_event,
                upgrading=True
            )

    def _install(
        self,
        plugin: Plugin,
        *,
        index_name: str,
        force_head: bool,
        force: bool,
        archive_file: Optional[Path],
        cancel_event: Optional[threading.Event],
        upgrading: bool
    ) -> InstallResult:
        name = plugin.name
        lifecycle = _Lifecycle(name)
        staging_dir: Optional[Path] = None

        try:
            lifecycle.enter(InstallState.RESOLVING)
            version, uri, file_operations, bin_entry = get_download_target(
                plugin, force_head, os_name=self.os_name, arch=self.arch
            )
            if not is_safe_plugin_name(version):
                raise InstallationError(f"resolved version {version!r} of {name!r} is not usable as a directory name")
            if not bin_entry:
                raise InstallationError(f"the matching platform of {name!r} declares no bin entry point")

            install_dir = self.paths.plugin_version_install_path(name, version)
            link = self.bin_link_path(name)
            bin_target = Path(os.path.normpath(install_dir / bin_entry))
            if os.path.commonpath([str(install_dir), str(bin_target)]) != str(install_dir) \
                    or bin_target == install_dir:
                raise InstallationError(f"bin {bin_entry!r} of {name!r} is not inside the install directory")

            current_version, installed = find_installed_plugin_version(self.paths.install_path(), name)
            same_version = installed and current_version == version
            if same_version and not force and self._is_intact(name, link, bin_target):
                logger.info(f"{name} is already at version {version}")
                outcome = InstallOutcome.ALREADY_UPGRADED if upgrading else InstallOutcome.ALREADY_INSTALLED
                return InstallResult(
                    plugin=name,
                    version=version,
                    outcome=outcome,
                    install_dir=install_dir,
                    bin_link=link,
                    previous_version=current_version,
                    states=list(lifecycle.history)
                )

            if same_version and not force:
                logger.info(f"{name} version {version} is missing its receipt or bin link, reinstalling")
            logger.info(f"Installing {name} version {version} from {uri}")
            self.paths.install_path().mkdir(parents=True, exist_ok=True)
            staging_dir = Path(tempfile.mkdtemp(prefix=f".staging-{name}-", dir=self.paths.install_path()))
            download_dir = staging_dir / "download"
            assembled_dir = staging_dir / "assembled"
            assembled_dir.mkdir()

            verifier = InsecureVerifier() if version == HEAD_VERSION else Sha256Verifier(version)
            downloader = Downloader(verifier, self._fetcher_for(archive_file))

            lifecycle.enter(InstallState.DOWNLOADING)
            data = downloader.fetch(uri, cancel_event=cancel_event)

            lifecycle.enter(InstallState.EXTRACTING)
            downloader.extract(data, download_dir, cancel_event=cancel_event)

            lifecycle.enter(InstallState.PLANNING)
            move_all_files(str(download_dir), str(assembled_dir), file_operations)

            lifecycle.enter(InstallState.STAGING)
            staged_bin = assembled_dir / bin_target.relative_to(install_dir)
            if not os.path.lexists(staged_bin):
                raise InstallationError(f"bin {bin_entry!r} of {name!r} is missing after applying the file operations")
            descriptor = assembled_dir / PLUGIN_DESCRIPTOR
            if not descriptor.exists():
                descriptor.write_text(yaml.safe_dump(dump_model(plugin), sort_keys=False), encoding="utf-8")

            lifecycle.enter(InstallState.COMMITTING)
            self._commit(assembled_dir, install_dir, link, bin_target, replaced=same_version)

            self.paths.install_receipts_path().mkdir(parents=True, exist_ok=True)
            receipts.store(receipts.receipt_from_plugin(plugin, index_name), self.paths.plugin_receipt_path(name))

            if installed and current_version != version:
                self._remove_version(name, current_version)

            lifecycle.enter(InstallState.INSTALLED)
            logger.info(f"Installed {name} version {version} to {install_dir}")

            if upgrading:
                outcome = InstallOutcome.UPGRADED
            else:
                outcome = InstallOutcome.INSTALLED
            return InstallResult(
                plugin=name,
                version=version,
                outcome=outcome,
                install_dir=install_dir,
                bin_link=link,
                previous_version=current_version if installed else None,
                states=list(lifecycle.history)
            )

        except PluginError as e:
            lifecycle.abort(e)
            raise
        except OSError as e:
            error = InstallationError(f"failed to install {name}: {e}")
            lifecycle.abort(error)
            raise error from e
        finally:
            if staging_dir is not None:
                shutil.rmtree(staging_dir, ignore_errors=True)

    def _commit(
        self,
        assembled_dir: Path,
        install_dir: Path,
        link: Path,
        bin_target: Path,
        replaced: bool
    ) -> None:
        move_to_install_dir(assembled_dir, install_dir)
        try:
            create_or_update_link(link, bin_target)
        except PluginError:
            if not replaced:
                # nothing points at the new directory yet
                shutil.rmtree(install_dir, ignore_errors=True)
            raise

    def _remove_version(self, name: str, version: str) -> None:
        old_dir = self.paths.plugin_version_install_path(name, version)
        logger.info(f"Removing previous version {version} of {name}")
        try:
            shutil.rmtree(old_dir)
        except OSError as e:
            logger.warning(f"Failed to remove previous version directory {old_dir}: {e}")

    # ------------------------------------------------------------------
    # uninstall
    # ------------------------------------------------------------------

    def uninstall(self, name: str) -> None:
        """
        Remove a plugin's symlink, install directory and receipt

        Raises:
            InstallationError: When asked to remove plugctl itself
            UnsafePluginNameError: If the name is not safe
            NotInstalledError: If neither receipt nor install directory exist
            NotASymlinkError: If the bin entry is not a symlink (left untouched)
        """
        if name == SELF_PLUGIN_NAME:
            raise InstallationError(
                f"removing {SELF_PLUGIN_NAME} is not allowed through {SELF_PLUGIN_NAME}. "
                f"Please run:\n\t rm -r {self.paths.base_path()}"
            )
        self._check_name(name)

        with self._lock(name):
            receipt_path = self.paths.plugin_receipt_path(name)
            plugin_dir = self.paths.plugin_install_path(name)
            if not receipt_path.exists() and not plugin_dir.exists():
                raise NotInstalledError(f"the plugin {name!r} is not installed")

            logger.info(f"Uninstalling {name}")
            remove_link(self.bin_link_path(name))

            logger.debug(f"Deleting path {plugin_dir}")
            try:
                if plugin_dir.exists():
                    shutil.rmtree(plugin_dir)
            except OSError as e:
                raise InstallationError(f"could not remove plugin directory {plugin_dir}: {e}") from e

            try:
                receipt_path.unlink(missing_ok=True)
            except OSError as e:
                raise InstallationError(f"could not remove plugin receipt {receipt_path}: {e}") from e
            logger.info(f"Uninstalled {name}")
