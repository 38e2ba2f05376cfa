"""Installation: platform resolution, file planning, commit, receipts

Components:
- platform: selector matching and version resolution
- move: file operation planning and relocation
- installer: install/upgrade/uninstall state machine
- receipt: receipt persistence
- registry: installed-version lookup from disk
- lock: per-plugin inter-process lock
"""

from plugctl.core.installation.installer import (
    InstallOutcome,
    InstallResult,
    InstallState,
    Installer,
    plugin_name_to_bin,
    remove_link,
)
from plugctl.core.installation.lock import InstallLock
from plugctl.core.installation.platform import (
    get_download_target,
    get_matching_platform,
    match_platform,
    resolve_version,
)
from plugctl.core.installation.registry import (
    find_installed_plugin_version,
    list_installed_plugins,
)

__all__ = [
    "InstallLock",
    "InstallOutcome",
    "InstallResult",
    "InstallState",
    "Installer",
    "find_installed_plugin_version",
    "get_download_target",
    "get_matching_platform",
    "list_installed_plugins",
    "match_platform",
    "plugin_name_to_bin",
    "remove_link",
    "resolve_version",
]
