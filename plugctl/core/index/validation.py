"""Plugin name validation"""

from pathlib import PurePosixPath, PureWindowsPath


def is_safe_plugin_name(name: str) -> bool:
    """
    Check whether a plugin name can be used to build filesystem paths

    A safe name is non-empty, contains no path separators or NUL bytes,
    does not start with a dot and contains no traversal sequence.

    Args:
        name: Plugin name from a manifest or the command line

    Returns:
        True if the name is safe
    """
    if not name or not name.strip():
        return False
    if "/" in name or "\\" in name or "\x00" in name:
        return False
    if name.startswith(".") or ".." in name:
        return False
    if PurePosixPath(name).is_absolute() or PureWindowsPath(name).is_absolute():
        return False
    if PureWindowsPath(name).drive:
        return False
    return True
