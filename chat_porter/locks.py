"""Checks whether the editor still holds a workspace database open.

Writing into a `workspaceStorage/<id>` folder while the editor runs would race
with its own SQLite writes, so an import refuses to touch locked targets.
If a probe cannot prove a file is free, it reports it as locked.
"""

from __future__ import annotations

import errno
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable


DATABASE_GLOB = "*.vscdb"


class StorageLockedError(RuntimeError):
    """Raised when workspace database files appear to be in use."""

    def __init__(self, locked: list["LockedPath"]) -> None:
        self.locked = locked
        details = "\n".join(f"- {lp.path}: {lp.reason}" for lp in locked)
        super().__init__(
            "Workspace storage appears to be in use by another process.\n"
            "Close the editor (and any other app using these files) and retry.\n"
            f"Locked paths:\n{details}"
        )


@dataclass(frozen=True, slots=True)
class LockedPath:
    path: Path
    reason: str


def storage_db_paths(storage_dir: Path) -> list[Path]:
    """Returns every `*.vscdb` in `storage_dir` plus its WAL/SHM sidecars."""
    paths: list[Path] = []
    if not storage_dir.is_dir():
        return paths
    for db in sorted(storage_dir.glob(DATABASE_GLOB)):
        paths.append(db)
        paths.append(db.with_name(db.name + "-wal"))
        paths.append(db.with_name(db.name + "-shm"))
    return paths


def find_locked_paths(paths: Iterable[Path]) -> list[LockedPath]:
    return [lp for lp in (probe_path_lock(p) for p in paths) if lp is not None]


def assert_paths_unlocked(paths: Iterable[Path]) -> None:
    """Raises `StorageLockedError` if any of `paths` is locked."""
    locked = find_locked_paths(paths)
    if locked:
        raise StorageLockedError(locked)


def probe_path_lock(path: Path) -> LockedPath | None:
    """Returns lock info if `path` is locked, else None.

    Missing files are unlocked. POSIX tries a non-blocking `fcntl.lockf`
    (the advisory lock SQLite uses); Windows opens the file with no sharing,
    which fails while the editor holds any handle on it.
    """
    if not path.exists():
        return None
    if sys.platform.startswith("win"):
        return _probe_windows(path)
    return _probe_posix(path)


def _probe_posix(path: Path) -> LockedPath | None:
    import fcntl  # pylint: disable=import-outside-toplevel

    try:
        fd = os.open(path, os.O_RDWR)
    except OSError as exc:
        return LockedPath(path=path, reason=f"cannot open for writing (errno={exc.errno})")
    try:
        fcntl.lockf(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError as exc:
        if exc.errno in (errno.EACCES, errno.EAGAIN):
            return LockedPath(path=path, reason=f"held by another process (errno={exc.errno})")
        return LockedPath(path=path, reason=f"lockf error (errno={exc.errno})")
    else:
        fcntl.lockf(fd, fcntl.LOCK_UN)
        return None
    finally:
        os.close(fd)


# * Win32 constants for CreateFileW.
_GENERIC_READ = 0x80000000
_SHARE_NONE = 0
_OPEN_EXISTING = 3
_FILE_ATTRIBUTE_NORMAL = 0x80
_SHARING_ERRORS = {32: "sharing violation", 33: "lock violation"}


def _probe_windows(path: Path) -> LockedPath | None:
    import ctypes  # pylint: disable=import-outside-toplevel
    from ctypes import wintypes  # pylint: disable=import-outside-toplevel

    kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
    create_file = kernel32.CreateFileW
    create_file.argtypes = [
        wintypes.LPCWSTR,
        wintypes.DWORD,
        wintypes.DWORD,
        wintypes.LPVOID,
        wintypes.DWORD,
        wintypes.DWORD,
        wintypes.HANDLE,
    ]
    create_file.restype = wintypes.HANDLE
    kernel32.CloseHandle.argtypes = [wintypes.HANDLE]
    kernel32.CloseHandle.restype = wintypes.BOOL

    handle = create_file(str(path), _GENERIC_READ, _SHARE_NONE, None, _OPEN_EXISTING, _FILE_ATTRIBUTE_NORMAL, None)
    if handle == wintypes.HANDLE(-1).value:
        winerr = ctypes.get_last_error()
        what = _SHARING_ERRORS.get(winerr, "CreateFileW failed")
        return LockedPath(path=path, reason=f"{what} (winerr={winerr})")
    kernel32.CloseHandle(handle)
    return None
