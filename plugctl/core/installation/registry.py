"""Installed-plugin registry derived from the install directory"""

import logging
import os
from pathlib import Path
from typing import Dict, Tuple

from plugctl.core.constants import PLUGIN_DESCRIPTOR
from plugctl.core.exceptions import InstallationError, UnsafePluginNameError
from plugctl.core.index.validation import is_safe_plugin_name

logger = logging.getLogger(__name__)


def contains_plugin_descriptors(path: Path) -> bool:
    """Recursively check whether path holds a plugin descriptor file"""
    for _, _, files in os.walk(path):
        if PLUGIN_DESCRIPTOR in files:
            return True
    return False


def find_installed_plugin_version(install_path: Path, plugin_name: str) -> Tuple[str, bool]:
    """
    Find the installed version directory of a plugin

    Args:
        install_path: Install root (one directory per plugin)
        plugin_name: Plugin to look up

    Returns:
        Tuple of (version, installed); ("", False) when not installed

    Raises:
        UnsafePluginNameError: If the name is not safe to use in a path
        InstallationError: If the plugin directory cannot be read
    """
    if not is_safe_plugin_name(plugin_name):
        raise UnsafePluginNameError(f"the plugin name {plugin_name!r} is not allowed")

    plugin_dir = Path(install_path) / plugin_name
    logger.debug(f"Searching for installed versions of {plugin_name} in {install_path}")
    try:
        entries = sorted(os.scandir(plugin_dir), key=lambda e: e.name)
    except FileNotFoundError:
        return "", False
    except NotADirectoryError:
        return "", False
    except OSError as e:
        raise InstallationError(f"could not read directory {plugin_dir}: {e}") from e

    for entry in entries:
        if not entry.is_dir(follow_symlinks=False) or entry.name.startswith("."):
            continue
        if contains_plugin_descriptors(Path(entry.path)):
            return entry.name, True
    return "", False


def list_installed_plugins(install_path: Path) -> Dict[str, str]:
    """
    Map every installed plugin name to its version

    Recomputed from disk on every call; directories without a descriptor
    are not considered installed.
    """
    install_path = Path(install_path)
    installed: Dict[str, str] = {}
    if not install_path.is_dir():
        return installed

    for entry in sorted(os.scandir(install_path), key=lambda e: e.name):
        if not entry.is_dir() or not is_safe_plugin_name(entry.name):
            continue
        version, ok = find_installed_plugin_version(install_path, entry.name)
        if ok:
            installed[entry.name] = version
    return installed
