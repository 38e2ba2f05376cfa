"""Shared constants"""

CURRENT_API_VERSION = "plugctl.dev/v1alpha2"
PLUGIN_KIND = "Plugin"
MANIFEST_EXTENSION = ".yaml"

# Name of the manager's own plugin entry; it cannot uninstall itself.
SELF_PLUGIN_NAME = "plugctl"

# Index name used when a plugin is referenced without an index prefix.
DEFAULT_INDEX_NAME = "default"

# Version recorded for unverified installs sourced from Platform.head.
HEAD_VERSION = "HEAD"

# Marker file that identifies a committed install directory.
PLUGIN_DESCRIPTOR = "plugin.yaml"

# Prefix of the symlink created in the bin directory.
BIN_PREFIX = "kubectl-"
