from __future__ import annotations

import hashlib
import os
from pathlib import Path

import yaml

from plugctl.core.download.fetcher import FileFetcher
from plugctl.core.index.models import dump_model
from plugctl.core.installation.installer import Installer
from plugctl.core.installation.registry import list_installed_plugins
from plugctl.core.migration import do_migration, is_migrated, migrate_index


def _legacy_install(paths, name: str, version: str = "old") -> None:
    version_dir = paths.plugin_version_install_path(name, version)
    version_dir.mkdir(parents=True)
    (version_dir / "plugin.yaml").write_text("kind: Plugin\n")
    (version_dir / "foo").write_text("#!/bin/sh\n")
    paths.bin_path().mkdir(parents=True, exist_ok=True)
    os.symlink(version_dir / "foo", paths.bin_path() / f"kubectl-{name}")


def _legacy_manifest(paths, plugin) -> None:
    index_dir = paths.legacy_index_plugins_path()
    index_dir.mkdir(parents=True, exist_ok=True)
    (index_dir / f"{plugin.name}.yaml").write_text(yaml.safe_dump(dump_model(plugin)))


def test_is_migrated(paths) -> None:
    assert is_migrated(paths)

    paths.install_receipts_path().mkdir(parents=True)
    paths.legacy_index_plugins_path().mkdir(parents=True)
    assert not is_migrated(paths)

    paths.legacy_index_plugins_path().rmdir()
    _legacy_install(paths, "foo")
    assert not is_migrated(paths)

    paths.plugin_receipt_path("foo").write_text("kind: Receipt\n")
    assert is_migrated(paths)

    paths.plugin_receipt_path("foo").unlink()
    paths.migration_marker_path().touch()
    assert is_migrated(paths)


def test_migrate_index_moves_legacy_index(paths) -> None:
    paths.legacy_index_plugins_path().mkdir(parents=True)
    (paths.legacy_index_plugins_path() / "foo.yaml").write_text("x")
    (paths.index_base() / ".git").mkdir()

    assert migrate_index(paths)
    assert (paths.index_plugins_path("default") / "foo.yaml").read_text() == "x"
    assert (paths.index_path("default") / ".git").is_dir()
    assert not paths.legacy_index_plugins_path().exists()
    assert not migrate_index(paths)


def test_do_migration(paths, settings, tmp_path: Path, make_tar_gz, make_plugin) -> None:
    data = make_tar_gz({"foo": "#!/bin/sh\necho migrated\n"})
    archive = tmp_path / "foo.tar.gz"
    archive.write_bytes(data)
    sha = hashlib.sha256(data).hexdigest()

    _legacy_manifest(paths, make_plugin(name="foo", sha256=sha))
    _legacy_manifest(paths, make_plugin(name="bad", sha256="0" * 64))
    _legacy_manifest(paths, make_plugin(name="unlinked", sha256=sha))
    _legacy_install(paths, "foo")
    _legacy_install(paths, "bad")
    _legacy_install(paths, "notindexed")
    _legacy_install(paths, "plugctl")
    paths.plugin_version_install_path("unlinked", "old").mkdir(parents=True)

    installer = Installer(paths, fetcher=FileFetcher(archive), settings=settings)
    report = do_migration(paths, installer=installer)

    assert report.index_moved
    assert report.reinstalled == ["foo"]
    assert set(report.skipped) == {"notindexed", "unlinked"}
    assert set(report.failed) == {"bad"}

    assert is_migrated(paths)
    assert paths.plugin_receipt_path("foo").exists()
    assert list_installed_plugins(paths.install_path())["foo"] == sha
    assert os.readlink(paths.bin_path() / "kubectl-foo") == str(
        paths.plugin_version_install_path("foo", sha) / "foo"
    )
    assert paths.plugin_install_path("plugctl").exists()

    again = do_migration(paths, installer=installer)
    assert again.already_migrated
    assert again.reinstalled == []


def test_install_before_migration_does_not_block_it(paths, settings, tmp_path: Path, make_tar_gz, make_plugin) -> None:
    data = make_tar_gz({"foo": "#!/bin/sh\necho migrated\n"})
    archive = tmp_path / "foo.tar.gz"
    archive.write_bytes(data)
    sha = hashlib.sha256(data).hexdigest()

    foo = make_plugin(name="foo", sha256=sha)
    _legacy_manifest(paths, foo)
    _legacy_manifest(paths, make_plugin(name="bar", sha256=sha))
    _legacy_install(paths, "bar")

    installer = Installer(paths, fetcher=FileFetcher(archive), settings=settings)
    installer.install(foo, archive_file=archive)
    assert paths.install_receipts_path().is_dir()
    assert not is_migrated(paths)

    report = do_migration(paths, installer=installer)

    assert not report.already_migrated
    assert report.index_moved
    assert report.reinstalled == ["bar"]
    assert report.skipped == {"foo": "already has a receipt"}
    assert report.failed == {}
    assert paths.plugin_receipt_path("bar").exists()
    assert paths.migration_marker_path().exists()
    assert is_migrated(paths)
