"""Artifact acquisition: fetchers, verifiers, extractors

Components:
- fetcher: HTTP and local-file byte sources
- verifier: sha256 and no-op integrity checks
- extractor: content sniffing, zip and tar.gz extraction
- downloader: fetch -> verify -> extract
"""

from plugctl.core.download.downloader import Downloader
from plugctl.core.download.extractor import (
    EXTRACTORS,
    detect_content_type,
    extract_archive,
    extract_tar_gz,
    extract_zip,
)
from plugctl.core.download.fetcher import FileFetcher, HTTPFetcher
from plugctl.core.download.verifier import InsecureVerifier, Sha256Verifier

__all__ = [
    "Downloader",
    "EXTRACTORS",
    "FileFetcher",
    "HTTPFetcher",
    "InsecureVerifier",
    "Sha256Verifier",
    "detect_content_type",
    "extract_archive",
    "extract_tar_gz",
    "extract_zip",
]
