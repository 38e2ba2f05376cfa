"""Read plugin manifests and receipts from the filesystem"""

import logging
from pathlib import Path
from typing import List, Tuple, Type, TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from plugctl.core.constants import DEFAULT_INDEX_NAME, MANIFEST_EXTENSION
from plugctl.core.exceptions import ManifestError, ReceiptNotFoundError, UnsafePluginNameError
from plugctl.core.index.models import Plugin, Receipt
from plugctl.core.index.validation import is_safe_plugin_name

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _read_yaml_model(path: Path, model: Type[ModelT]) -> ModelT:
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    if not isinstance(raw, dict):
        raise ManifestError(f"{path} does not contain a YAML mapping")
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise ManifestError(f"failed to parse {path}: {e}") from e


def load_plugin_from_file(path: Path) -> Plugin:
    """
    Load a plugin manifest

    Args:
        path: Path to a manifest YAML file

    Returns:
        Parsed Plugin

    Raises:
        ManifestError: If the file is missing or unreadable
    """
    try:
        plugin = _read_yaml_model(Path(path), Plugin)
    except FileNotFoundError as e:
        raise ManifestError(f"manifest {path} does not exist") from e
    except (OSError, yaml.YAMLError) as e:
        raise ManifestError(f"failed to read manifest {path}: {e}") from e

    if not is_safe_plugin_name(plugin.name):
        raise UnsafePluginNameError(f"plugin name {plugin.name!r} in {path} is not allowed")
    return plugin


def load_plugin_by_name(plugins_dir: Path, name: str) -> Plugin:
    """
    Load <plugins_dir>/<name>.yaml

    Raises:
        UnsafePluginNameError: If name is not safe to use in a path
        ManifestError: If the manifest is missing, unreadable, or names another plugin
    """
    if not is_safe_plugin_name(name):
        raise UnsafePluginNameError(f"plugin name {name!r} is not allowed")

    logger.debug(f"Reading plugin {name} from {plugins_dir}")
    plugin = load_plugin_from_file(Path(plugins_dir) / f"{name}{MANIFEST_EXTENSION}")
    if plugin.name != name:
        raise ManifestError(f"plugin manifest for {name!r} declares name {plugin.name!r}")
    return plugin


def load_plugin_list_from_fs(plugins_dir: Path) -> List[Plugin]:
    """Load every manifest in a directory, sorted by name, skipping broken ones"""
    plugins_dir = Path(plugins_dir)
    if not plugins_dir.is_dir():
        return []

    plugins = []
    for path in sorted(plugins_dir.glob(f"*{MANIFEST_EXTENSION}")):
        try:
            plugins.append(load_plugin_from_file(path))
        except (ManifestError, UnsafePluginNameError) as e:
            logger.warning(f"Skipping manifest {path.name}: {e}")
    return sorted(plugins, key=lambda p: p.name)


def read_receipt_from_file(path: Path) -> Receipt:
    """
    Raises:
        ReceiptNotFoundError: If the receipt file does not exist
        ManifestError: If it cannot be parsed
    """
    try:
        return _read_yaml_model(Path(path), Receipt)
    except FileNotFoundError as e:
        raise ReceiptNotFoundError(f"receipt {path} does not exist") from e
    except (OSError, yaml.YAMLError) as e:
        raise ManifestError(f"failed to read receipt {path}: {e}") from e


def parse_canonical_name(value: str) -> Tuple[str, str]:
    """Split 'index/name' (or 'name' for the default index) into (index, name)"""
    if "/" not in value:
        return DEFAULT_INDEX_NAME, value
    index_name, _, name = value.partition("/")
    if not index_name or not name or "/" in name:
        raise UnsafePluginNameError(f"invalid plugin reference {value!r}, expected INDEX/NAME")
    if not is_safe_plugin_name(index_name):
        raise UnsafePluginNameError(f"the index name {index_name!r} is not allowed")
    return index_name, name
