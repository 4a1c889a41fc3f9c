"""Export archives: one `.tar.gz` holding `workspaceStorage/<id>` folders.

Layout:

  manifest.json
  <folder_id>/workspace.json
  <folder_id>/state.vscdb
  <folder_id>/chatSessions/*.json
  ...

Extraction validates every member before anything is written.
"""

from __future__ import annotations

import io
import json
import os
import socket
import sys
import tarfile
import time
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Sequence

from tqdm import tqdm

from chat_porter.copying import build_copy_plan
from chat_porter.workspace_index import WorkspaceEntry


ARCHIVE_SUFFIX = ".tar.gz"
MANIFEST_NAME = "manifest.json"
MANIFEST_FORMAT = 1
DEFAULT_MAX_EXTRACT_BYTES = 10 * 1024 * 1024 * 1024
MAX_MEMBER_NAME = 1024


class ArchiveError(RuntimeError):
    """Raised when an export archive cannot be written or safely extracted."""


@dataclass(frozen=True, slots=True)
class ArchiveStats:
    archive_path: Path
    workspaces: int
    files: int
    total_bytes: int


def create_export_archive(
    entries: Sequence[WorkspaceEntry],
    archive_path: Path,
    *,
    overwrite: bool = False,
) -> ArchiveStats:
    """Writes `entries` into a gzip-compressed tar.

    Raises:
        FileExistsError: If `archive_path` exists and `overwrite` is False.
        ArchiveError: If writing fails.
    """
    if archive_path.exists() and not overwrite:
        raise FileExistsError(f"Archive already exists: {archive_path}")

    plans = [(entry, build_copy_plan(entry.location)) for entry in entries]
    total_files = sum(len(plan.files) for _, plan in plans)
    total_bytes = sum(plan.total_bytes for _, plan in plans)

    archive_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = archive_path.with_name(archive_path.name + ".partial")
    try:
        with tarfile.open(tmp_path, "w:gz") as tar, tqdm(
            total=total_files,
            unit="file",
            desc="Export",
            leave=False,
            disable=not sys.stderr.isatty(),
        ) as pbar:
            _add_manifest(tar, entries)
            for entry, plan in plans:
                # * Empty folders still need their directory member.
                tar.add(entry.location, arcname=entry.folder_id, recursive=False)
                for rel_dir in plan.dirs:
                    if rel_dir.parts:
                        tar.add(entry.location / rel_dir, arcname=_arcname(entry, rel_dir), recursive=False)
                for rel_file in plan.files:
                    tar.add(entry.location / rel_file, arcname=_arcname(entry, rel_file), recursive=False)
                    pbar.update(1)
        os.replace(tmp_path, archive_path)
    except (OSError, tarfile.TarError) as exc:
        tmp_path.unlink(missing_ok=True)
        raise ArchiveError(f"Failed to write archive {archive_path}: {exc}") from exc

    return ArchiveStats(
        archive_path=archive_path,
        workspaces=len(plans),
        files=total_files,
        total_bytes=total_bytes,
    )


def _arcname(entry: WorkspaceEntry, rel: Path) -> str:
    return str(PurePosixPath(entry.folder_id, *rel.parts))


def _add_manifest(tar: tarfile.TarFile, entries: Sequence[WorkspaceEntry]) -> None:
    payload = {
        "format": MANIFEST_FORMAT,
        "created_at": time.strftime("%Y-%m-%dT%H:%M:%S%z"),
        "source_host": socket.gethostname(),
        "workspaces": [
            {"folder_id": e.folder_id, "address": e.raw_address, "label": e.descriptor.label}
            for e in entries
        ],
    }
    data = json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")
    info = tarfile.TarInfo(MANIFEST_NAME)
    info.size = len(data)
    info.mtime = int(time.time())
    info.mode = 0o644
    tar.addfile(info, io.BytesIO(data))


def read_manifest(extracted_dir: Path) -> dict | None:
    """Returns the archive manifest, or None for archives without one."""
    try:
        payload = json.loads((extracted_dir / MANIFEST_NAME).read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, RecursionError):
        return None
    return payload if isinstance(payload, dict) else None


def extract_export_archive(
    archive_path: Path,
    target_dir: Path,
    *,
    max_size_bytes: int = DEFAULT_MAX_EXTRACT_BYTES,
) -> Path:
    """Extracts an export archive into `target_dir`.

    Raises:
        ArchiveError: If the archive is missing, unreadable, or unsafe.
    """
    if not archive_path.is_file():
        raise ArchiveError(f"Archive not found: {archive_path}")

    try:
        with tarfile.open(archive_path, "r:*") as tar:
            members = tar.getmembers()
            _validate_members(members, target_dir, max_size_bytes)
            target_dir.mkdir(parents=True, exist_ok=True)
            with tqdm(
                total=len(members),
                unit="file",
                desc="Extract",
                leave=False,
                disable=not sys.stderr.isatty(),
            ) as pbar:
                for member in members:
                    _extract_member(tar, member, target_dir)
                    pbar.update(1)
    except (OSError, tarfile.TarError, EOFError) as exc:
        raise ArchiveError(f"Failed to extract archive {archive_path}: {exc}") from exc
    return target_dir


def _validate_members(members: Sequence[tarfile.TarInfo], target_dir: Path, max_size_bytes: int) -> None:
    total = 0
    target_resolved = target_dir.resolve()
    for member in members:
        name = member.name
        if len(name) > MAX_MEMBER_NAME:
            raise ArchiveError(f"Archive member name too long: {name[:50]}...")
        if name.startswith(("/", "\\")) or PurePosixPath(name).is_absolute() or (len(name) > 1 and name[1] == ":"):
            raise ArchiveError(f"Archive contains absolute path: {name}")
        if ".." in PurePosixPath(name.replace("\\", "/")).parts:
            raise ArchiveError(f"Archive contains path traversal: {name}")
        if not (member.isfile() or member.isdir()):
            # ! Links and device nodes have no place in workspace storage.
            raise ArchiveError(f"Archive contains unsupported member type: {name}")
        try:
            (target_resolved / name).resolve().relative_to(target_resolved)
        except ValueError:
            raise ArchiveError(f"Archive member would extract outside target: {name}") from None
        if member.isfile():
            total += member.size
    if total > max_size_bytes:
        raise ArchiveError(
            f"Archive uncompressed size ({total} bytes) exceeds limit ({max_size_bytes} bytes)."
        )


def _extract_member(tar: tarfile.TarFile, member: tarfile.TarInfo, target_dir: Path) -> None:
    dest = target_dir / member.name
    if member.isdir():
        dest.mkdir(parents=True, exist_ok=True)
        return
    src = tar.extractfile(member)
    if src is None:
        raise ArchiveError(f"Cannot read archive member: {member.name}")
    dest.parent.mkdir(parents=True, exist_ok=True)
    with src, dest.open("wb") as fh:
        while True:
            chunk = src.read(4 * 1024 * 1024)
            if not chunk:
                break
            fh.write(chunk)
    # * Keep file mtimes; permissions are left to the umask.
    os.utime(dest, (member.mtime, member.mtime))
