"""Filesystem layout and target platform detection"""

import os
import platform
from pathlib import Path
from typing import Optional, Tuple

from plugctl.config import ARCH_ENV, OS_ENV, get_root_directory
from plugctl.core.constants import MANIFEST_EXTENSION


class Paths:
    """Directory layout rooted at a base directory

    <base>/
        bin/                    one symlink per installed plugin
        store/<name>/<version>/ install directories
        receipts/<name>.yaml    install receipts
        index/<index>/plugins/  plugin manifests per index
        locks/                  per-plugin lock files
    """

    def __init__(self, base: Path):
        # symlink targets are built from base, so it must not be relative
        self.base = Path(base).expanduser().absolute()

    def base_path(self) -> Path:
        return self.base

    def bin_path(self) -> Path:
        return self.base / "bin"

    def install_path(self) -> Path:
        return self.base / "store"

    def install_receipts_path(self) -> Path:
        return self.base / "receipts"

    def locks_path(self) -> Path:
        return self.base / "locks"

    def index_base(self) -> Path:
        return self.base / "index"

    def index_path(self, name: str) -> Path:
        return self.index_base() / name

    def index_plugins_path(self, name: str) -> Path:
        return self.index_path(name) / "plugins"

    def legacy_index_plugins_path(self) -> Path:
        """Single-index layout used before per-index directories existed"""
        return self.index_base() / "plugins"

    def plugin_install_path(self, plugin_name: str) -> Path:
        return self.install_path() / plugin_name

    def plugin_version_install_path(self, plugin_name: str, version: str) -> Path:
        return self.plugin_install_path(plugin_name) / version

    def plugin_receipt_path(self, plugin_name: str) -> Path:
        return self.install_receipts_path() / f"{plugin_name}{MANIFEST_EXTENSION}"

    def migration_marker_path(self) -> Path:
        """Written once a legacy layout migration has run to completion"""
        return self.install_receipts_path() / ".migrated"


def default_paths() -> Paths:
    """Paths rooted at PLUGCTL_ROOT (or ~/.plugctl)"""
    return Paths(get_root_directory())


_OS_ALIASES = {
    "linux": "linux",
    "darwin": "darwin",
    "windows": "windows",
    "win32": "windows",
    "freebsd": "freebsd",
}

_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "x64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "armv7l": "arm",
    "armv6l": "arm",
}


def runtime_platform() -> Tuple[str, str]:
    """
    Target (os, arch) labels used for platform matching

    Values follow the os/arch labels used in manifests (linux, darwin,
    windows / amd64, arm64, 386, arm). PLUGCTL_OS and PLUGCTL_ARCH
    override the detected values.

    Returns:
        Tuple of (os, arch)
    """
    os_name = os.environ.get(OS_ENV)
    if not os_name:
        system = platform.system().lower()
        os_name = _OS_ALIASES.get(system, system)

    arch = os.environ.get(ARCH_ENV)
    if not arch:
        machine = platform.machine().lower()
        arch = _ARCH_ALIASES.get(machine, machine)

    return os_name, arch


def is_windows(os_name: Optional[str] = None) -> bool:
    """Whether the target os is windows (honors PLUGCTL_OS)"""
    if os_name is None:
        os_name, _ = runtime_platform()
    return os_name == "windows"
