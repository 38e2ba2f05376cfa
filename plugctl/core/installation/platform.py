"""Platform matching and version resolution"""

import logging
from typing import List, Optional, Sequence, Tuple

from plugctl.core.constants import HEAD_VERSION
from plugctl.core.environment import runtime_platform
from plugctl.core.exceptions import NoMatchingPlatformError, NoVersionResolvableError
from plugctl.core.index.models import FileOperation, Platform, Plugin

logger = logging.getLogger(__name__)


def match_platform(
    platforms: Sequence[Platform],
    os_name: str,
    arch: str
) -> Tuple[Optional[Platform], bool]:
    """
    Find the first platform whose selector matches {os, arch}

    Args:
        platforms: Platforms in manifest declaration order
        os_name: Target os label
        arch: Target arch label

    Returns:
        Tuple of (platform, found); (None, False) when nothing matches

    Raises:
        SelectorError: If a selector is malformed
    """
    env_labels = {"os": os_name, "arch": arch}
    logger.debug(f"Matching platform for labels {env_labels}")

    for i, platform in enumerate(platforms):
        selector = platform.selector
        if selector is None:
            continue
        selector.validate_selector()
        if selector.matches(env_labels):
            logger.debug(f"Found matching platform with index {i}")
            return platform, True
    return None, False


def get_matching_platform(
    plugin: Plugin,
    os_name: Optional[str] = None,
    arch: Optional[str] = None
) -> Tuple[Optional[Platform], bool]:
    """match_platform against the runtime (or overridden) os/arch"""
    runtime_os, runtime_arch = runtime_platform()
    return match_platform(plugin.spec.platforms, os_name or runtime_os, arch or runtime_arch)


def resolve_version(platform: Platform, force_head: bool) -> Tuple[str, str]:
    """
    Decide between a HEAD install and a checksummed install

    Args:
        platform: Selected platform
        force_head: Caller explicitly asked for HEAD

    Returns:
        Tuple of (version, uri); version is "HEAD" or the lower-cased sha256

    Raises:
        NoVersionResolvableError: If HEAD is forced but the platform has none
    """
    if force_head and platform.head:
        return HEAD_VERSION, platform.head
    if platform.head and not platform.sha256 and not platform.uri:
        return HEAD_VERSION, platform.head
    if force_head:
        raise NoVersionResolvableError("can't force HEAD, with no HEAD specified")
    return platform.sha256.lower(), platform.uri


def get_download_target(
    plugin: Plugin,
    force_head: bool,
    os_name: Optional[str] = None,
    arch: Optional[str] = None
) -> Tuple[str, str, List[FileOperation], str]:
    """
    Resolve what to download for a plugin on the target platform

    Returns:
        Tuple of (version, uri, file_operations, bin)

    Raises:
        NoMatchingPlatformError: If no platform matches
        NoVersionResolvableError: If HEAD is forced but unavailable
        SelectorError: If a selector is malformed
    """
    platform, found = get_matching_platform(plugin, os_name=os_name, arch=arch)
    if not found:
        target_os, target_arch = runtime_platform()
        raise NoMatchingPlatformError(
            f"plugin {plugin.name!r} does not offer an installation for "
            f"os={os_name or target_os} arch={arch or target_arch}"
        )

    version, uri = resolve_version(platform, force_head)
    logger.debug(f"Matching plugin version is {version}")
    return version, uri, list(platform.files), platform.bin
