from __future__ import annotations

import hashlib
import io
import tarfile
import zipfile
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import pytest

from plugctl.config import Settings
from plugctl.core.environment import Paths
from plugctl.core.index.models import Plugin

FileMap = Dict[str, Union[str, bytes]]


def _as_bytes(content: Union[str, bytes]) -> bytes:
    return content.encode("utf-8") if isinstance(content, str) else content


def build_zip(files: FileMap, mode: int = 0o755) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, content in files.items():
            info = zipfile.ZipInfo(name)
            if name.endswith("/"):
                info.external_attr = (0o40755 << 16) | 0x10
                zf.writestr(info, b"")
            else:
                info.external_attr = (0o100000 | mode) << 16
                zf.writestr(info, _as_bytes(content))
    return buf.getvalue()


def build_tar_gz(files: FileMap, mode: int = 0o755) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tf:
        for name, content in files.items():
            if name.endswith("/"):
                info = tarfile.TarInfo(name.rstrip("/"))
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tf.addfile(info)
                continue
            data = _as_bytes(content)
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = mode
            tf.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def sha256_of(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@pytest.fixture
def make_zip() -> Callable[..., bytes]:
    return build_zip


@pytest.fixture
def make_tar_gz() -> Callable[..., bytes]:
    return build_tar_gz


@pytest.fixture
def make_plugin() -> Callable[..., Plugin]:
    def _make(
        name: str = "foo",
        sha256: str = "",
        uri: str = "https://example.com/foo.tar.gz",
        head: str = "",
        files: Optional[List[dict]] = None,
        bin: str = "foo",
        os_name: str = "linux",
        arch: str = "amd64",
        version: str = "v1.0.0",
        homepage: str = "",
        short_description: str = "",
    ) -> Plugin:
        return Plugin.model_validate({
            "apiVersion": "plugctl.dev/v1alpha2",
            "kind": "Plugin",
            "metadata": {"name": name},
            "spec": {
                "version": version,
                "homepage": homepage,
                "shortDescription": short_description,
                "platforms": [{
                    "selector": {"matchLabels": {"os": os_name, "arch": arch}},
                    "uri": uri,
                    "sha256": sha256,
                    "head": head,
                    "files": files if files is not None else [{"from": "*", "to": "."}],
                    "bin": bin,
                }],
            },
        })
    return _make


@pytest.fixture
def paths(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Paths:
    root = tmp_path / "root"
    root.mkdir()
    monkeypatch.setenv("PLUGCTL_ROOT", str(root))
    monkeypatch.setenv("PLUGCTL_OS", "linux")
    monkeypatch.setenv("PLUGCTL_ARCH", "amd64")
    return Paths(root)


@pytest.fixture
def settings() -> Settings:
    return Settings(lock_timeout=0.0)
