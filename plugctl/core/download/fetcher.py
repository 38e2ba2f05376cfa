"""Fetchers: get the raw bytes behind a URI"""

import logging
import threading
import time
from pathlib import Path
from typing import Optional, Protocol

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from plugctl.core.exceptions import FetchError, OperationCancelledError

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 200 * 1024 * 1024  # 200MB
DEFAULT_TIMEOUT = 300  # 5 minutes
CHUNK_SIZE = 64 * 1024


class Fetcher(Protocol):
    """Anything that can turn a URI into bytes"""

    def get(self, uri: str, cancel_event: Optional[threading.Event] = None) -> bytes:
        ...


class HTTPFetcher:
    """Fetch artifacts over http(s) with a streaming size limit"""

    def __init__(
        self,
        timeout: int = DEFAULT_TIMEOUT,
        max_size: int = DEFAULT_MAX_SIZE,
        max_retries: int = 0,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize fetcher

        Args:
            timeout: Request timeout in seconds
            max_size: Maximum artifact size in bytes
            max_retries: Transport-level retries; 0 leaves retrying to the caller
            session: Pre-configured session (tests inject fakes here)
        """
        self.timeout = timeout
        self.max_size = max_size

        if session is None:
            session = requests.Session()
            if max_retries:
                retry_strategy = Retry(
                    total=max_retries,
                    backoff_factor=1,
                    status_forcelist=[429, 500, 502, 503, 504],
                    allowed_methods=["GET"]
                )
                adapter = HTTPAdapter(max_retries=retry_strategy)
                session.mount("http://", adapter)
                session.mount("https://", adapter)
        self.session = session

    def get(self, uri: str, cancel_event: Optional[threading.Event] = None) -> bytes:
        """
        Download uri into memory

        Raises:
            FetchError: On transport errors, bad status, or size overflow
            OperationCancelledError: If cancel_event is set mid-download
        """
        logger.info(f"Fetching {uri}")
        start_time = time.time()

        try:
            response = self.session.get(uri, stream=True, timeout=self.timeout)
            response.raise_for_status()

            content_length = response.headers.get("Content-Length")
            if content_length:
                try:
                    declared_size = int(content_length)
                except ValueError as e:
                    raise FetchError(f"invalid Content-Length {content_length!r} from {uri}") from e
            else:
                declared_size = 0
            if declared_size > self.max_size:
                raise FetchError(
                    f"artifact too large: {declared_size / 1024 / 1024:.2f}MB "
                    f"(max: {self.max_size / 1024 / 1024:.0f}MB)"
                )

            buffer = bytearray()
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if cancel_event is not None and cancel_event.is_set():
                    raise OperationCancelledError(f"download of {uri} cancelled")
                if not chunk:
                    continue
                buffer.extend(chunk)
                if len(buffer) > self.max_size:
                    raise FetchError(
                        f"download exceeded size limit: {len(buffer) / 1024 / 1024:.2f}MB"
                    )
        except requests.RequestException as e:
            raise FetchError(f"failed to fetch {uri}: {e}") from e

        elapsed = time.time() - start_time
        logger.info(f"Fetched {len(buffer) / 1024:.2f}KB in {elapsed:.2f}s")
        return bytes(buffer)

    def close(self):
        """Close the session"""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class FileFetcher:
    """Read a local file regardless of the requested URI"""

    def __init__(self, path: Path):
        self.path = Path(path)

    def get(self, uri: str, cancel_event: Optional[threading.Event] = None) -> bytes:
        logger.info(f"Reading {self.path} instead of {uri}")
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelledError(f"read of {self.path} cancelled")
        try:
            return self.path.read_bytes()
        except OSError as e:
            raise FetchError(f"failed to read {self.path}: {e}") from e
