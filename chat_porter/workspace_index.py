"""Discovery of `workspaceStorage/<id>` folders and their workspace addresses."""

from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator

from chat_porter.address import AddressDescriptor, decode_address, parse_address


DESCRIPTOR_FILE = "workspace.json"
CHAT_SESSIONS_DIR = "chatSessions"

# * `folder` for folder workspaces, `configuration`/`workspace` for .code-workspace files.
ADDRESS_FIELDS = ("folder", "configuration", "workspace")


@dataclass(frozen=True, slots=True)
class WorkspaceEntry:
    """One opaque `workspaceStorage/<id>` folder with a readable address."""

    folder_id: str
    location: Path
    raw_address: str
    descriptor: AddressDescriptor

    @property
    def address_key(self) -> str:
        """Equality key: the percent-decoded address."""
        return decode_address(self.raw_address)

    @property
    def chat_session_count(self) -> int:
        sessions = self.location / CHAT_SESSIONS_DIR
        if not sessions.is_dir():
            return 0
        return sum(1 for p in sessions.iterdir() if p.is_file())


def read_workspace_entry(folder: Path) -> WorkspaceEntry | None:
    """Reads `folder/workspace.json`; returns None when there is no usable address."""
    meta = folder / DESCRIPTOR_FILE
    try:
        payload = json.loads(meta.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, RecursionError):
        # ! Missing or malformed metadata is expected for non-project folders.
        return None
    if not isinstance(payload, dict):
        return None

    raw = _first_address(payload)
    if raw is None:
        return None
    return WorkspaceEntry(
        folder_id=folder.name,
        location=folder,
        raw_address=raw,
        descriptor=parse_address(raw),
    )


def _first_address(payload: dict) -> str | None:
    for field in ADDRESS_FIELDS:
        value = payload.get(field)
        if isinstance(value, str) and value:
            return value
    return None


def scan_storage_root(storage_root: Path, *, max_workers: int | None = None) -> list[WorkspaceEntry]:
    """Reads every immediate subfolder of `storage_root` in parallel.

    Returns:
        Entries in folder-name order (stable across runs).

    Raises:
        FileNotFoundError: If `storage_root` does not exist.
        NotADirectoryError: If `storage_root` is not a directory.
    """
    if not storage_root.exists():
        raise FileNotFoundError(f"Workspace storage root does not exist: {storage_root}")
    if not storage_root.is_dir():
        raise NotADirectoryError(f"Workspace storage root is not a folder: {storage_root}")

    folders = sorted((p for p in storage_root.iterdir() if p.is_dir()), key=lambda p: p.name)
    if not folders:
        return []

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        # * map() keeps input order even though reads finish out of order.
        results = list(pool.map(read_workspace_entry, folders))
    return [entry for entry in results if entry is not None]


class WorkspaceIndex:
    """Read-only snapshot of the workspaces found under one storage root."""

    def __init__(self, entries: Iterable[WorkspaceEntry], storage_root: Path | None = None) -> None:
        self.storage_root = storage_root
        self.entries: tuple[WorkspaceEntry, ...] = tuple(entries)
        self._by_address: dict[str, WorkspaceEntry] = {}
        for entry in self.entries:
            # * Duplicate addresses: the first folder in enumeration order wins.
            self._by_address.setdefault(entry.address_key, entry)

    @classmethod
    def build(cls, storage_root: Path, *, max_workers: int | None = None) -> "WorkspaceIndex":
        return cls(scan_storage_root(storage_root, max_workers=max_workers), storage_root=storage_root)

    def lookup_exact(self, raw_address: str) -> WorkspaceEntry | None:
        return self._by_address.get(decode_address(raw_address))

    def duplicates(self) -> dict[str, list[WorkspaceEntry]]:
        """Returns addresses claimed by more than one folder."""
        grouped: dict[str, list[WorkspaceEntry]] = {}
        for entry in self.entries:
            grouped.setdefault(entry.address_key, []).append(entry)
        return {key: items for key, items in grouped.items() if len(items) > 1}

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[WorkspaceEntry]:
        return iter(self.entries)
