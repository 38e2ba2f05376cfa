from __future__ import annotations

import sys
from pathlib import Path

import pytest

from plugctl.core.exceptions import InstallLockedError
from plugctl.core.installation.lock import InstallLock


def test_lock_creates_parent_and_releases(tmp_path: Path) -> None:
    lock = InstallLock(tmp_path / "locks" / "foo.lock")
    with lock:
        assert lock.locked
        assert (tmp_path / "locks" / "foo.lock").exists()
    assert not lock.locked

    with InstallLock(tmp_path / "locks" / "foo.lock"):
        pass


@pytest.mark.skipif(sys.platform == "win32", reason="flock semantics")
def test_second_holder_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "foo.lock"
    with InstallLock(path):
        with pytest.raises(InstallLockedError) as excinfo:
            InstallLock(path, timeout=0.2).acquire()
        assert excinfo.value.hint

    with InstallLock(path, timeout=0.2):
        pass


def test_locks_are_per_plugin(tmp_path: Path) -> None:
    with InstallLock(tmp_path / "foo.lock"):
        with InstallLock(tmp_path / "bar.lock") as other:
            assert other.locked
