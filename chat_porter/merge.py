"""Merge exported workspace folders into local `workspaceStorage/<id>` folders.

The chat database (`state.vscdb`) is copied as an opaque blob. For mapped
(non-exact) assignments, chat-session documents are rewritten so references to
the old workspace address point at the local one; otherwise the editor treats
those sessions as orphaned.

The copy is not transactional: a failure stops the assignment where it is and
leaves already-written files in place.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable

from chat_porter.address import decode_address, encode_address
from chat_porter.copying import build_copy_plan, copy_file, write_bytes_like
from chat_porter.session import Assignment
from chat_porter.workspace_index import CHAT_SESSIONS_DIR, DESCRIPTOR_FILE


REWRITABLE_SUFFIXES = (".json", ".jsonl")
DATABASE_SUFFIX = ".vscdb"
SQLITE_SIDECARS = ("-wal", "-shm")


class OutcomeStatus(str, Enum):
    IMPORTED_EXACT = "imported-exact"
    IMPORTED_MAPPED = "imported-mapped"
    SKIPPED = "skipped"
    FAILED = "failed"


class MergeAction(str, Enum):
    COPY = "copy"
    REWRITE = "rewrite"
    REMOVE = "remove"


@dataclass(frozen=True, slots=True)
class MergeOperation:
    """One file-level step; `relative_path` is relative to both folders."""

    action: MergeAction
    relative_path: Path


@dataclass(frozen=True, slots=True)
class MergeOutcome:
    assignment: Assignment
    status: OutcomeStatus
    dry_run: bool
    operations: tuple[MergeOperation, ...]
    applied: int
    references_rewritten: int
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is not OutcomeStatus.FAILED

    def count(self, action: MergeAction) -> int:
        return sum(1 for op in self.operations if op.action is action)


def plan_merge(assignment: Assignment) -> tuple[MergeOperation, ...]:
    """Enumerates the operations `execute_assignment` would apply.

    Order: top-level files, then `chatSessions/`, then other subfolders, then
    removal of target SQLite sidecars that would no longer match the copied DB.
    The exported `workspace.json` is never part of the plan.

    Raises:
        OSError: If the exported folder cannot be listed.
    """
    src_dir = assignment.exported.entry.location
    dst_dir = assignment.target.location

    files: list[MergeOperation] = []
    chat: list[MergeOperation] = []
    others: list[MergeOperation] = []

    for child in sorted(src_dir.iterdir(), key=lambda p: p.name):
        if child.is_dir():
            plan = build_copy_plan(child)
            for rel in plan.files:
                rel_path = Path(child.name) / rel
                if child.name == CHAT_SESSIONS_DIR:
                    chat.append(MergeOperation(_chat_action(rel_path, assignment.is_exact_match), rel_path))
                else:
                    others.append(MergeOperation(MergeAction.COPY, rel_path))
            continue
        if child.name == DESCRIPTOR_FILE:
            continue
        files.append(MergeOperation(MergeAction.COPY, Path(child.name)))

    removals: list[MergeOperation] = []
    for op in files:
        if op.relative_path.suffix != DATABASE_SUFFIX:
            continue
        for suffix in SQLITE_SIDECARS:
            sidecar = Path(op.relative_path.name + suffix)
            if not (src_dir / sidecar).exists() and (dst_dir / sidecar).exists():
                removals.append(MergeOperation(MergeAction.REMOVE, sidecar))

    return tuple(files + chat + others + removals)


def _chat_action(rel_path: Path, is_exact_match: bool) -> MergeAction:
    if not is_exact_match and rel_path.suffix.lower() in REWRITABLE_SUFFIXES:
        return MergeAction.REWRITE
    return MergeAction.COPY


def execute_assignment(assignment: Assignment, *, dry_run: bool = False) -> MergeOutcome:
    """Copies one exported folder into its target.

    With `dry_run`, nothing is created, modified or deleted; the outcome lists
    the planned operations and how many references would be rewritten.
    Any `OSError` turns the outcome into FAILED; it is never raised.
    """
    success_status = (
        OutcomeStatus.IMPORTED_EXACT if assignment.is_exact_match else OutcomeStatus.IMPORTED_MAPPED
    )
    try:
        operations = plan_merge(assignment)
    except OSError as exc:
        return MergeOutcome(
            assignment=assignment,
            status=OutcomeStatus.FAILED,
            dry_run=dry_run,
            operations=(),
            applied=0,
            references_rewritten=0,
            error=f"cannot list {assignment.exported.entry.location}: {exc}",
        )

    src_dir = assignment.exported.entry.location
    dst_dir = assignment.target.location
    old_address = assignment.exported.entry.raw_address
    new_address = assignment.target.raw_address

    applied = 0
    references = 0
    for op in operations:
        try:
            references += _apply(op, src_dir, dst_dir, old_address, new_address, dry_run=dry_run)
        except OSError as exc:
            return MergeOutcome(
                assignment=assignment,
                status=OutcomeStatus.FAILED,
                dry_run=dry_run,
                operations=operations,
                applied=applied,
                references_rewritten=references,
                error=f"{op.action.value} {op.relative_path.as_posix()}: {exc}",
            )
        applied += 1

    return MergeOutcome(
        assignment=assignment,
        status=success_status,
        dry_run=dry_run,
        operations=operations,
        applied=applied,
        references_rewritten=references,
    )


def execute_all(assignments: Iterable[Assignment], *, dry_run: bool = False, progress=None) -> list[MergeOutcome]:
    """Runs assignments sequentially; a failed one does not stop the rest."""
    outcomes: list[MergeOutcome] = []
    for assignment in assignments:
        outcomes.append(execute_assignment(assignment, dry_run=dry_run))
        if progress is not None:
            progress.update(1)
    return outcomes


def _apply(
    op: MergeOperation,
    src_dir: Path,
    dst_dir: Path,
    old_address: str,
    new_address: str,
    *,
    dry_run: bool,
) -> int:
    src = src_dir / op.relative_path
    dst = dst_dir / op.relative_path

    if op.action is MergeAction.REMOVE:
        if not dry_run:
            dst.unlink(missing_ok=True)
        return 0

    if op.action is MergeAction.COPY:
        if not dry_run:
            copy_file(src, dst)
        return 0

    # * Keep undecodable bytes intact through the text round-trip.
    text = src.read_bytes().decode("utf-8", errors="surrogateescape")
    rewritten, count = _substitute(text, old_address, new_address)
    if not dry_run:
        write_bytes_like(src, dst, rewritten.encode("utf-8", errors="surrogateescape"))
    return count


def rewrite_references(document: str, old_address: str, new_address: str) -> str:
    """Replaces `old_address` with `new_address` in raw, encoded and decoded forms.

    Each form of the old address is replaced by the same form of the new one.
    Substitution is a single pass, so replaced text is never matched again.
    """
    return _substitute(document, old_address, new_address)[0]


def count_references(document: str, old_address: str) -> int:
    """Counts occurrences of `old_address` in any of its three forms."""
    pattern = _variants_pattern(_address_variants(old_address))
    if pattern is None:
        return 0
    return len(pattern.findall(document))


def _substitute(document: str, old_address: str, new_address: str) -> tuple[str, int]:
    if old_address == new_address:
        return document, 0
    replacements: dict[str, str] = {}
    for old, new in zip(_address_variants(old_address), _address_variants(new_address)):
        if old and old != new:
            # * The raw form wins when two forms of the old address coincide.
            replacements.setdefault(old, new)
    pattern = _variants_pattern(replacements)
    if pattern is None:
        return document, 0
    return pattern.subn(lambda m: replacements[m.group(0)], document)


def _address_variants(address: str) -> list[str]:
    return [address, encode_address(address), decode_address(address)]


def _variants_pattern(variants: Iterable[str]) -> re.Pattern[str] | None:
    unique = sorted({v for v in variants if v}, key=len, reverse=True)
    if not unique:
        return None
    # * Longest first so the alternation prefers the most specific form.
    return re.compile("|".join(re.escape(v) for v in unique))
