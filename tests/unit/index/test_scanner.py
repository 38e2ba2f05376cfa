from __future__ import annotations

from pathlib import Path

import pytest

from plugctl.core.exceptions import ManifestError, UnsafePluginNameError
from plugctl.core.index.scanner import (
    load_plugin_by_name,
    load_plugin_from_file,
    load_plugin_list_from_fs,
    parse_canonical_name,
)


def _manifest(name: str) -> str:
    return (
        "apiVersion: plugctl.dev/v1alpha2\n"
        "kind: Plugin\n"
        f"metadata:\n  name: {name}\n"
        "spec:\n  version: v1.0.0\n  shortDescription: test plugin\n"
    )


def test_load_plugin_by_name(tmp_path: Path) -> None:
    (tmp_path / "foo.yaml").write_text(_manifest("foo"))
    assert load_plugin_by_name(tmp_path, "foo").spec.version == "v1.0.0"


def test_load_plugin_by_name_rejects_mismatch_and_unsafe(tmp_path: Path) -> None:
    (tmp_path / "foo.yaml").write_text(_manifest("bar"))
    with pytest.raises(ManifestError, match="declares name"):
        load_plugin_by_name(tmp_path, "foo")
    with pytest.raises(UnsafePluginNameError):
        load_plugin_by_name(tmp_path, "../foo")


def test_load_plugin_from_file_errors(tmp_path: Path) -> None:
    with pytest.raises(ManifestError, match="does not exist"):
        load_plugin_from_file(tmp_path / "missing.yaml")

    (tmp_path / "list.yaml").write_text("- a\n- b\n")
    with pytest.raises(ManifestError):
        load_plugin_from_file(tmp_path / "list.yaml")

    (tmp_path / "nometa.yaml").write_text("kind: Plugin\n")
    with pytest.raises(ManifestError):
        load_plugin_from_file(tmp_path / "nometa.yaml")

    (tmp_path / "evil.yaml").write_text(_manifest("../evil"))
    with pytest.raises(UnsafePluginNameError):
        load_plugin_from_file(tmp_path / "evil.yaml")


def test_load_plugin_list_skips_broken(tmp_path: Path) -> None:
    (tmp_path / "zeta.yaml").write_text(_manifest("zeta"))
    (tmp_path / "alpha.yaml").write_text(_manifest("alpha"))
    (tmp_path / "broken.yaml").write_text("metadata: [")
    (tmp_path / "README.md").write_text("ignored")

    assert [p.name for p in load_plugin_list_from_fs(tmp_path)] == ["alpha", "zeta"]
    assert load_plugin_list_from_fs(tmp_path / "missing") == []


def test_parse_canonical_name() -> None:
    assert parse_canonical_name("foo") == ("default", "foo")
    assert parse_canonical_name("custom/foo") == ("custom", "foo")
    with pytest.raises(UnsafePluginNameError):
        parse_canonical_name("a/b/c")
    with pytest.raises(UnsafePluginNameError):
        parse_canonical_name("/foo")


def test_parse_canonical_name_rejects_unsafe_index() -> None:
    with pytest.raises(UnsafePluginNameError, match="index name"):
        parse_canonical_name("../foo")
    with pytest.raises(UnsafePluginNameError, match="index name"):
        parse_canonical_name(".hidden/foo")
