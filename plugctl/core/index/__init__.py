"""Plugin index: manifest models and readers"""

from plugctl.core.index.models import (
    FileOperation,
    LabelSelector,
    LabelSelectorRequirement,
    ObjectMeta,
    Platform,
    Plugin,
    PluginSpec,
    Receipt,
    ReceiptStatus,
    SourceIndex,
)
from plugctl.core.index.scanner import (
    load_plugin_by_name,
    load_plugin_from_file,
    load_plugin_list_from_fs,
    parse_canonical_name,
    read_receipt_from_file,
)
from plugctl.core.index.validation import is_safe_plugin_name

__all__ = [
    "FileOperation",
    "LabelSelector",
    "LabelSelectorRequirement",
    "ObjectMeta",
    "Platform",
    "Plugin",
    "PluginSpec",
    "Receipt",
    "ReceiptStatus",
    "SourceIndex",
    "is_safe_plugin_name",
    "load_plugin_by_name",
    "load_plugin_from_file",
    "load_plugin_list_from_fs",
    "parse_canonical_name",
    "read_receipt_from_file",
]
