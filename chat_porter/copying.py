"""File plumbing shared by the merge executor and the archiver."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path


PARTIAL_SUFFIX = ".chat-porter-partial"


@dataclass(frozen=True, slots=True)
class CopyPlan:
    """Regular files and directories of a workspace folder, relative to it."""

    dirs: tuple[Path, ...]
    files: tuple[Path, ...]
    total_bytes: int


def build_copy_plan(src_dir: Path) -> CopyPlan:
    """Lists `src_dir` depth-first, each directory's entries in name order.

    Symlinks are left out; workspace storage has no use for them and archives
    refuse them.

    Raises:
        OSError: If a directory cannot be listed.
    """
    dirs: list[Path] = []
    files: list[Path] = []
    total_bytes = 0

    pending = [Path()]
    while pending:
        rel_dir = pending.pop()
        dirs.append(rel_dir)
        subdirs: list[Path] = []
        with os.scandir(src_dir / rel_dir) as it:
            for item in sorted(it, key=lambda e: e.name):
                if item.is_symlink():
                    continue
                if item.is_dir():
                    subdirs.append(rel_dir / item.name)
                elif item.is_file():
                    files.append(rel_dir / item.name)
                    try:
                        total_bytes += item.stat().st_size
                    except OSError:
                        # ! Size is informational only; the copy reports real errors.
                        pass
        # * Reversed so the stack pops subfolders in name order.
        pending.extend(reversed(subdirs))

    return CopyPlan(dirs=tuple(dirs), files=tuple(files), total_bytes=total_bytes)


def copy_file(src: Path, dst: Path, *, chunk_size: int = 4 * 1024 * 1024) -> int:
    """Copies `src` over `dst` and returns bytes copied.

    The data goes to a sibling temp file first, so an interrupted copy never
    leaves a truncated `dst` behind.
    """
    tmp = _partial_path(dst)
    copied = 0
    try:
        with src.open("rb") as rfh, tmp.open("wb") as wfh:
            for chunk in iter(lambda: rfh.read(chunk_size), b""):
                wfh.write(chunk)
                copied += len(chunk)
        _finish(src, tmp, dst)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise
    return copied


def write_bytes_like(src: Path, dst: Path, data: bytes) -> int:
    """Writes `data` over `dst` with `src` timestamps; same temp-file rule as `copy_file`."""
    tmp = _partial_path(dst)
    try:
        tmp.write_bytes(data)
        _finish(src, tmp, dst)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise
    return len(data)


def _partial_path(dst: Path) -> Path:
    dst.parent.mkdir(parents=True, exist_ok=True)
    return dst.with_name(dst.name + PARTIAL_SUFFIX)


def _finish(src: Path, tmp: Path, dst: Path) -> None:
    # * Preserve timestamps and other metadata.
    shutil.copystat(src, tmp, follow_symlinks=True)
    os.replace(tmp, dst)
