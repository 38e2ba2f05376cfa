"""Content sniffing and archive extraction with path traversal protection"""

import io
import logging
import os
import shutil
import tarfile
import threading
import zipfile
from pathlib import Path
from typing import Callable, Dict, Optional

from plugctl.core.exceptions import (
    ExtractionError,
    ExtractionPathEscapeError,
    OperationCancelledError,
    UnsupportedArchiveTypeError,
)

logger = logging.getLogger(__name__)

ZIP_TYPE = "application/zip"
GZIP_TYPE = "application/x-gzip"
BINARY_TYPE = "application/octet-stream"
TEXT_TYPE = "text/plain"

# Only this many leading bytes are inspected for content detection
SNIFF_LENGTH = 512

_ZIP_SIGNATURES = (b"PK\x03\x04", b"PK\x05\x06")
_GZIP_SIGNATURE = b"\x1f\x8b\x08"
_BINARY_BYTES = frozenset(
    list(range(0x00, 0x09)) + [0x0B] + list(range(0x0E, 0x1B)) + list(range(0x1C, 0x20))
)

Extractor = Callable[[Path, bytes, Optional[threading.Event]], None]


def detect_content_type(data: bytes) -> str:
    """
    Detect the content type from magic numbers in a bounded prefix

    Args:
        data: Artifact bytes (only the first SNIFF_LENGTH bytes are read)

    Returns:
        One of application/zip, application/x-gzip,
        application/octet-stream, text/plain
    """
    head = data[:SNIFF_LENGTH]
    if head.startswith(_ZIP_SIGNATURES):
        return ZIP_TYPE
    if head.startswith(_GZIP_SIGNATURE):
        return GZIP_TYPE
    if any(byte in _BINARY_BYTES for byte in head):
        return BINARY_TYPE
    return TEXT_TYPE


def _entry_target(dest_root: str, name: str) -> Optional[Path]:
    """
    Destination for an archive entry, or None for the root itself

    Raises:
        ExtractionPathEscapeError: If the entry resolves outside dest_root
    """
    normalized = name.replace("\\", "/")
    target = os.path.normpath(os.path.join(dest_root, normalized))
    if target == dest_root:
        return None
    if os.path.commonpath([dest_root, target]) != dest_root:
        raise ExtractionPathEscapeError(
            f"archive entry {name!r} would be extracted outside of {dest_root}"
        )
    return Path(target)


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError("extraction cancelled")


def _guarded(extract: Callable[[str], None], dest: Path) -> None:
    """Run an extraction; on failure remove everything it added to dest"""
    dest.mkdir(parents=True, exist_ok=True)
    dest_root = os.path.realpath(dest)
    existing = set(os.listdir(dest_root))
    try:
        extract(dest_root)
    except Exception:
        for entry in os.listdir(dest_root):
            if entry in existing:
                continue
            path = os.path.join(dest_root, entry)
            if os.path.isdir(path) and not os.path.islink(path):
                shutil.rmtree(path, ignore_errors=True)
            else:
                try:
                    os.remove(path)
                except OSError as e:
                    logger.warning(f"Failed to clean up {path}: {e}")
        raise


def extract_zip(dest: Path, data: bytes, cancel_event: Optional[threading.Event] = None) -> None:
    """
    Extract a zip archive into dest

    Args:
        dest: Destination directory, created on demand
        data: Zip bytes
        cancel_event: Checked between entries

    Raises:
        ExtractionPathEscapeError: If any entry escapes dest (no output is kept)
        ExtractionError: If the archive is corrupt
    """
    def _extract(dest_root: str) -> None:
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as zf:
                for info in zf.infolist():
                    _check_cancelled(cancel_event)
                    target = _entry_target(dest_root, info.filename)
                    if target is None:
                        continue

                    if info.is_dir():
                        target.mkdir(parents=True, exist_ok=True)
                        continue

                    target.parent.mkdir(parents=True, exist_ok=True)
                    with zf.open(info) as source, open(target, "wb") as out:
                        shutil.copyfileobj(source, out)

                    mode = (info.external_attr >> 16) & 0o777
                    if mode:
                        os.chmod(target, mode)
                    logger.debug(f"Extracted {info.filename}")
        except (zipfile.BadZipFile, zipfile.LargeZipFile) as e:
            raise ExtractionError(f"invalid zip archive: {e}") from e
        except OSError as e:
            raise ExtractionError(f"failed to extract zip archive: {e}") from e

    logger.info(f"Extracting zip archive to {dest}")
    _guarded(_extract, Path(dest))


def extract_tar_gz(dest: Path, data: bytes, cancel_event: Optional[threading.Event] = None) -> None:
    """
    Extract a gzip-compressed tar archive into dest

    Only regular files and directories are accepted; parent directories
    are created even when the archive has no directory entries.

    Raises:
        ExtractionPathEscapeError: If any entry escapes dest (no output is kept)
        ExtractionError: On corrupt archives or unsupported entry types
    """
    def _extract(dest_root: str) -> None:
        try:
            with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as tf:
                for member in tf:
                    _check_cancelled(cancel_event)
                    target = _entry_target(dest_root, member.name)
                    if target is None:
                        continue

                    if member.isdir():
                        target.mkdir(parents=True, exist_ok=True)
                        continue
                    if not member.isreg():
                        raise ExtractionError(
                            f"unsupported tar entry type for {member.name!r} (type={member.type!r})"
                        )

                    target.parent.mkdir(parents=True, exist_ok=True)
                    source = tf.extractfile(member)
                    if source is None:
                        raise ExtractionError(f"cannot read tar entry {member.name!r}")
                    with source, open(target, "wb") as out:
                        shutil.copyfileobj(source, out)
                    os.chmod(target, member.mode & 0o777)
                    logger.debug(f"Extracted {member.name}")
        except tarfile.TarError as e:
            raise ExtractionError(f"invalid tar.gz archive: {e}") from e
        except (EOFError, OSError) as e:
            # gzip.BadGzipFile is an OSError
            raise ExtractionError(f"failed to extract tar.gz archive: {e}") from e

    logger.info(f"Extracting tar.gz archive to {dest}")
    _guarded(_extract, Path(dest))


EXTRACTORS: Dict[str, Extractor] = {
    ZIP_TYPE: extract_zip,
    GZIP_TYPE: extract_tar_gz,
}


def extract_archive(
    dest: Path,
    data: bytes,
    extractors: Optional[Dict[str, Extractor]] = None,
    cancel_event: Optional[threading.Event] = None
) -> str:
    """
    Pick an extractor by sniffed content type and run it

    Returns:
        The detected content type

    Raises:
        UnsupportedArchiveTypeError: If no extractor handles the content type
    """
    extractors = EXTRACTORS if extractors is None else extractors
    content_type = detect_content_type(data)
    logger.debug(f"Detected content type {content_type}")

    extractor = extractors.get(content_type)
    if extractor is None:
        raise UnsupportedArchiveTypeError(
            f"content type {content_type!r} of the downloaded file is not a supported archive"
        )
    extractor(Path(dest), data, cancel_event)
    return content_type
