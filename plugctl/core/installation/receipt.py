"""Receipt store: persisted record of an installed plugin"""

import logging
from pathlib import Path
from typing import List

import yaml

from plugctl.core.constants import DEFAULT_INDEX_NAME, MANIFEST_EXTENSION
from plugctl.core.exceptions import InstallationError, ManifestError
from plugctl.core.index.models import Plugin, Receipt, ReceiptStatus, SourceIndex, dump_model
from plugctl.core.index.scanner import read_receipt_from_file

logger = logging.getLogger(__name__)


def receipt_from_plugin(plugin: Plugin, index_name: str = DEFAULT_INDEX_NAME) -> Receipt:
    """Bind a manifest snapshot to the index it was installed from"""
    return Receipt(
        plugin=plugin,
        status=ReceiptStatus(source=SourceIndex(name=index_name)),
    )


def store(receipt: Receipt, dest: Path) -> None:
    """
    Write a receipt as YAML

    The caller has to ensure that the destination directory exists.

    Raises:
        InstallationError: If the file cannot be written
    """
    content = yaml.safe_dump(dump_model(receipt), sort_keys=False)
    try:
        with open(dest, "w", encoding="utf-8") as f:
            f.write(content)
    except OSError as e:
        raise InstallationError(f"failed to write plugin receipt {dest}: {e}") from e
    logger.debug(f"Stored receipt for {receipt.name} at {dest}")


def load(path: Path) -> Receipt:
    """
    Read a receipt

    Raises:
        ReceiptNotFoundError: If the file is absent ("never installed")
        ManifestError: If it exists but cannot be parsed
    """
    return read_receipt_from_file(path)


def load_all(receipts_dir: Path) -> List[Receipt]:
    """Read every receipt in a directory, skipping unreadable ones"""
    receipts_dir = Path(receipts_dir)
    if not receipts_dir.is_dir():
        return []

    receipts = []
    for path in sorted(receipts_dir.glob(f"*{MANIFEST_EXTENSION}")):
        try:
            receipts.append(load(path))
        except ManifestError as e:
            logger.warning(f"Skipping unreadable receipt {path.name}: {e}")
    return receipts


def canonical_name(receipt: Receipt) -> str:
    """'name' for the default index, otherwise 'index/name'"""
    index_name = receipt.status.source.name
    if not index_name or index_name == DEFAULT_INDEX_NAME:
        return receipt.plugin.name
    return f"{index_name}/{receipt.plugin.name}"
