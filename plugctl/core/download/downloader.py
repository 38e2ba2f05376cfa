"""Downloader: fetch, verify, then unpack an artifact"""

import logging
import os
import threading
from pathlib import Path
from typing import Dict, Optional

from plugctl.core.download.extractor import (
    EXTRACTORS,
    Extractor,
    detect_content_type,
    extract_archive,
)
from plugctl.core.download.fetcher import Fetcher
from plugctl.core.download.verifier import Verifier
from plugctl.core.exceptions import (
    ExtractionError,
    UnsupportedArchiveTypeError,
    VerificationError,
)

logger = logging.getLogger(__name__)

VERIFY_CHUNK_SIZE = 64 * 1024


class Downloader:
    """Compose a Fetcher, a Verifier and the archive extractors"""

    def __init__(
        self,
        verifier: Verifier,
        fetcher: Fetcher,
        extractors: Optional[Dict[str, Extractor]] = None,
        raw_file_name: Optional[str] = None
    ):
        """
        Initialize downloader

        Args:
            verifier: Integrity check applied before any extraction
            fetcher: Source of the artifact bytes
            extractors: Content type -> extractor mapping (defaults to zip and tar.gz)
            raw_file_name: When set, content no extractor handles is written
                as a single executable file with this name instead of failing
        """
        self.verifier = verifier
        self.fetcher = fetcher
        self.extractors = dict(EXTRACTORS if extractors is None else extractors)
        self.raw_file_name = raw_file_name

    def fetch(self, uri: str, cancel_event: Optional[threading.Event] = None) -> bytes:
        """
        Fetch uri and run the verifier over the bytes

        Raises:
            FetchError: If fetching fails
            VerificationError: If the bytes are rejected
        """
        data = self.fetcher.get(uri, cancel_event=cancel_event)
        for offset in range(0, len(data), VERIFY_CHUNK_SIZE):
            self.verifier.write(data[offset:offset + VERIFY_CHUNK_SIZE])
        try:
            self.verifier.verify()
        except VerificationError as e:
            raise VerificationError(f"failed to verify download from {uri}: {e}", hint=e.hint) from e
        return data

    def extract(
        self,
        data: bytes,
        dest: Path,
        cancel_event: Optional[threading.Event] = None
    ) -> None:
        """
        Unpack verified bytes into dest

        Raises:
            UnsupportedArchiveTypeError: If the content is no known archive
                and no raw_file_name was configured
            ExtractionError: If extraction fails or an entry escapes dest
        """
        try:
            extract_archive(dest, data, extractors=self.extractors, cancel_event=cancel_event)
        except UnsupportedArchiveTypeError:
            if not self.raw_file_name:
                raise
            self._write_raw_file(data, Path(dest))

    def get(
        self,
        uri: str,
        dest: Path,
        cancel_event: Optional[threading.Event] = None
    ) -> None:
        """
        Resolve uri to verified bytes and unpack them into dest

        Args:
            uri: Artifact location
            dest: Destination directory
            cancel_event: Checked between download chunks and archive entries
        """
        data = self.fetch(uri, cancel_event=cancel_event)
        self.extract(data, dest, cancel_event=cancel_event)

    def _write_raw_file(self, data: bytes, dest: Path) -> None:
        name = self.raw_file_name or ""
        if not name or "/" in name or "\\" in name or name in (".", ".."):
            raise ExtractionError(f"invalid file name for raw download: {name!r}")

        logger.info(f"Content type {detect_content_type(data)} is not an archive, saving as {name}")
        dest.mkdir(parents=True, exist_ok=True)
        target = dest / name
        try:
            target.write_bytes(data)
            os.chmod(target, 0o755)
        except OSError as e:
            raise ExtractionError(f"failed to write {target}: {e}") from e
