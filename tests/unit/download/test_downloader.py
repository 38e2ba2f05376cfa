from __future__ import annotations

import hashlib
import os
from pathlib import Path

import pytest

from plugctl.core.download.downloader import Downloader
from plugctl.core.download.verifier import InsecureVerifier, Sha256Verifier
from plugctl.core.exceptions import UnsupportedArchiveTypeError, VerificationError


class _StaticFetcher:
    def __init__(self, data: bytes):
        self.data = data

    def get(self, uri, cancel_event=None) -> bytes:
        return self.data


def test_get_verifies_then_extracts(tmp_path: Path, make_tar_gz) -> None:
    data = make_tar_gz({"foo": "#!/bin/sh\n"})
    downloader = Downloader(Sha256Verifier(hashlib.sha256(data).hexdigest()), _StaticFetcher(data))

    downloader.get("https://example.com/foo.tar.gz", tmp_path)

    assert (tmp_path / "foo").read_text() == "#!/bin/sh\n"


def test_failed_verification_writes_nothing(tmp_path: Path, make_zip) -> None:
    data = make_zip({"foo": "x"})
    downloader = Downloader(Sha256Verifier("0" * 64), _StaticFetcher(data))
    dest = tmp_path / "dest"

    with pytest.raises(VerificationError, match="example.com"):
        downloader.get("https://example.com/foo.zip", dest)
    assert not dest.exists()


def test_unsupported_content_without_raw_fallback(tmp_path: Path) -> None:
    downloader = Downloader(InsecureVerifier(), _StaticFetcher(b"#!/bin/sh\necho hi\n"))
    with pytest.raises(UnsupportedArchiveTypeError):
        downloader.get("https://example.com/foo", tmp_path)


def test_unsupported_content_saved_as_raw_file(tmp_path: Path) -> None:
    downloader = Downloader(
        InsecureVerifier(),
        _StaticFetcher(b"#!/bin/sh\necho hi\n"),
        raw_file_name="kubectl-foo",
    )
    downloader.get("https://example.com/foo", tmp_path)

    target = tmp_path / "kubectl-foo"
    assert target.read_bytes() == b"#!/bin/sh\necho hi\n"
    assert os.access(target, os.X_OK)


def test_custom_extractors_replace_defaults(tmp_path: Path, make_zip) -> None:
    calls = []

    def fake_zip(dest, data, cancel_event=None):
        calls.append(dest)

    downloader = Downloader(
        InsecureVerifier(),
        _StaticFetcher(make_zip({"a": "a"})),
        extractors={"application/zip": fake_zip},
    )
    downloader.get("https://example.com/a.zip", tmp_path)

    assert calls == [tmp_path]
    assert list(tmp_path.iterdir()) == []
