"""File operation planner: map unpacked archive contents into an install layout"""

import errno
import glob
import logging
import os
import posixpath
import re
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from plugctl.core.exceptions import (
    GlobNoMatchError,
    InstallationError,
    MoveError,
    MovePathEscapeError,
)
from plugctl.core.index.models import FileOperation

logger = logging.getLogger(__name__)

_GLOB_MAGIC = re.compile(r"[*?\[]")


@dataclass(frozen=True)
class Move:
    """A concrete source -> destination relocation"""
    from_path: Path
    to_path: Path


def _has_glob(pattern: str) -> bool:
    return _GLOB_MAGIC.search(pattern) is not None


def _is_subpath(parent: str, child: str) -> bool:
    parent = os.path.normpath(parent)
    child = os.path.normpath(child)
    try:
        return os.path.commonpath([parent, child]) == parent
    except ValueError:
        # different drives
        return False


def is_move_allowed(from_dir: str, to_dir: str, move: Move) -> bool:
    """A move must read from inside from_dir and write inside to_dir"""
    return _is_subpath(from_dir, str(move.from_path)) and _is_subpath(to_dir, str(move.to_path))


def _check_clean(op: FileOperation) -> None:
    if op.to and posixpath.normpath(op.to) != op.to:
        raise MoveError(
            f"the provided path is not clean, {op.to!r} should be {posixpath.normpath(op.to)!r}"
        )


def get_direct_move(
    from_dir: str,
    to_dir: str,
    op: FileOperation
) -> Tuple[Optional[Move], bool]:
    """
    Plan a literal (non-glob) file operation

    Args:
        from_dir: Unpacked archive root
        to_dir: Assembled install layout
        op: File operation from the manifest

    Returns:
        Tuple of (move, found); (None, False) when op.from is a glob

    Raises:
        MovePathEscapeError: If source or destination leaves its directory
        MoveError: If the declared source does not exist
    """
    if _has_glob(op.from_):
        return None, False

    from_dir = os.path.abspath(from_dir)
    to_dir = os.path.abspath(to_dir)

    from_path = os.path.normpath(os.path.join(from_dir, op.from_))
    if from_path == from_dir or not _is_subpath(from_dir, from_path):
        raise MovePathEscapeError(f"can't move {op.from_!r}, it is not a path inside {from_dir}")

    to_path = os.path.normpath(os.path.join(to_dir, op.to))
    if not op.to or to_path == to_dir:
        to_path = os.path.join(to_dir, os.path.basename(from_path))

    move = Move(from_path=Path(from_path), to_path=Path(to_path))
    if not is_move_allowed(from_dir, to_dir, move):
        raise MovePathEscapeError(
            f"can't move {op.from_!r} to {op.to!r}, target is not inside {to_dir}"
        )

    if not os.path.lexists(from_path):
        raise MoveError(f"file {op.from_!r} declared by the manifest is not in the archive")

    return move, True


def _glob_base(from_dir: str, pattern: str) -> str:
    """Directory formed by the leading non-glob segments of pattern"""
    literal = []
    for part in pattern.replace("\\", "/").split("/"):
        if _has_glob(part):
            break
        literal.append(part)
    return os.path.normpath(os.path.join(from_dir, *literal)) if literal else from_dir


def find_move_targets(from_dir: str, to_dir: str, op: FileOperation) -> List[Move]:
    """
    Plan the moves for one file operation

    A literal op.from yields exactly one move (renamed to op.to when set).
    A glob yields one move per match, sorted; op.to then names the target
    directory and each match keeps its path relative to the pattern's
    literal prefix.

    Returns:
        Planned moves; nothing is touched on disk

    Raises:
        GlobNoMatchError: If a glob matches nothing
        MovePathEscapeError: If any move would leave from_dir or to_dir
        MoveError: If op.to is not clean or a literal source is missing
    """
    _check_clean(op)
    from_dir = os.path.abspath(from_dir)
    to_dir = os.path.abspath(to_dir)

    move, found = get_direct_move(from_dir, to_dir, op)
    if found:
        return [move]

    new_dir = os.path.normpath(os.path.join(to_dir, op.to))
    if not _is_subpath(to_dir, new_dir):
        raise MovePathEscapeError(f"can't move into {op.to!r}, it is not inside {to_dir}")

    pattern = os.path.join(from_dir, op.from_)
    matches = sorted(glob.glob(pattern, include_hidden=True))
    if not matches:
        raise GlobNoMatchError(
            f"no files in the plugin archive matched the glob pattern={op.from_}"
        )

    base = _glob_base(from_dir, op.from_)
    moves = []
    for match in matches:
        match = os.path.normpath(match)
        target = os.path.normpath(os.path.join(new_dir, os.path.relpath(match, base)))
        move = Move(from_path=Path(match), to_path=Path(target))
        if not is_move_allowed(from_dir, to_dir, move):
            raise MovePathEscapeError(
                f"can't move, move target {match} -> {target} is not a subpath "
                f"from={from_dir!r}, to={to_dir!r}"
            )
        moves.append(move)
    return moves


def move_files(moves: Sequence[Move]) -> None:
    """
    Apply moves in order; the first failure aborts the rest

    Already applied moves are left in place.

    Raises:
        MoveError: If a move fails
    """
    for move in moves:
        logger.debug(f"Move file from {move.from_path} to {move.to_path}")
        try:
            move.to_path.parent.mkdir(parents=True, exist_ok=True)
            os.replace(move.from_path, move.to_path)
        except OSError as e:
            raise MoveError(f"could not move file from {move.from_path} to {move.to_path}: {e}") from e


def move_all_files(from_dir: str, to_dir: str, ops: Sequence[FileOperation]) -> List[Move]:
    """Plan and apply every file operation, one operation at a time"""
    applied: List[Move] = []
    for op in ops:
        moves = find_move_targets(from_dir, to_dir, op)
        move_files(moves)
        applied.extend(moves)
    logger.info(f"Moved {len(applied)} file(s) into {to_dir}")
    return applied


def _rename_or_copy(src: Path, dst: Path) -> None:
    try:
        os.rename(src, dst)
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise
        logger.debug(f"Cross-device rename of {src}, copying instead")
        shutil.copytree(src, dst, symlinks=True)
        shutil.rmtree(src)


def move_to_install_dir(src: Path, install_dir: Path) -> None:
    """
    Relocate an assembled layout to its final install directory

    An existing install_dir (forced reinstall) is set aside first and
    restored if the relocation fails.

    Raises:
        InstallationError: If the layout cannot be put in place
    """
    src = Path(src)
    install_dir = Path(install_dir)
    install_dir.parent.mkdir(parents=True, exist_ok=True)

    previous = None
    if os.path.lexists(install_dir):
        previous = install_dir.with_name(f".{install_dir.name}.old-{uuid.uuid4().hex[:8]}")
        os.rename(install_dir, previous)

    try:
        _rename_or_copy(src, install_dir)
    except OSError as e:
        if previous is not None:
            if os.path.lexists(install_dir):
                shutil.rmtree(install_dir, ignore_errors=True)
            os.rename(previous, install_dir)
        raise InstallationError(f"could not move {src} to {install_dir}: {e}") from e

    if previous is not None:
        shutil.rmtree(previous, ignore_errors=True)
    logger.debug(f"Moved {src} to {install_dir}")
