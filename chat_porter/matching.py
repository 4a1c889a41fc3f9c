"""Matching exported workspaces to local workspaces.

Exact matches are found by address equality. Anything else gets a ranked list
of local candidates, computed only when the operator reaches that item since
the pool shrinks as other items consume targets.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Collection, Iterable, Sequence

from chat_porter.address import AddressDescriptor
from chat_porter.workspace_index import WorkspaceEntry, WorkspaceIndex


PROJECT_NAME_WEIGHT = 100
KIND_WEIGHT = 50
GROUP_NAME_WEIGHT = 25


class MatchStatus(str, Enum):
    MATCHED = "matched"
    UNMATCHED = "unmatched"


@dataclass(slots=True)
class ExportedProject:
    """A workspace folder from the extracted archive, with its match state."""

    entry: WorkspaceEntry
    status: MatchStatus
    target: WorkspaceEntry | None = None

    @property
    def project_name(self) -> str:
        return self.entry.descriptor.project_name or self.entry.folder_id

    @property
    def label(self) -> str:
        return self.entry.descriptor.label


@dataclass(frozen=True, slots=True)
class MatchCandidate:
    entry: WorkspaceEntry
    score: int


def similarity_score(exported: AddressDescriptor, local: AddressDescriptor) -> int:
    score = 0
    if exported.project_name is not None and exported.project_name == local.project_name:
        score += PROJECT_NAME_WEIGHT
    if exported.kind == local.kind:
        score += KIND_WEIGHT
    if exported.group_name is not None and exported.group_name == local.group_name:
        score += GROUP_NAME_WEIGHT
    return score


def rank_candidates(
    exported: WorkspaceEntry,
    pool: Iterable[WorkspaceEntry],
    used_targets: Collection[str] = (),
) -> list[MatchCandidate]:
    """Scores every unused local entry against `exported`, best first.

    Args:
        exported: Entry being mapped.
        pool: Local entries in enumeration order.
        used_targets: Folder ids already assigned in this run.

    Returns:
        Candidates sorted by descending score; ties keep `pool` order.
    """
    candidates = [
        MatchCandidate(entry=local, score=similarity_score(exported.descriptor, local.descriptor))
        for local in pool
        if local.folder_id not in used_targets
    ]
    # * sorted() is stable, which is the only tie-breaker.
    return sorted(candidates, key=lambda c: c.score, reverse=True)


def match_exports(exported: Sequence[WorkspaceEntry], local: WorkspaceIndex) -> list[ExportedProject]:
    projects: list[ExportedProject] = []
    for entry in exported:
        target = local.lookup_exact(entry.raw_address)
        if target is not None:
            projects.append(ExportedProject(entry=entry, status=MatchStatus.MATCHED, target=target))
        else:
            projects.append(ExportedProject(entry=entry, status=MatchStatus.UNMATCHED))
    return projects


def mapping_order_key(project: ExportedProject) -> tuple[int, str, str]:
    """Exact matches first, then by project name."""
    status_rank = 0 if project.status is MatchStatus.MATCHED else 1
    return (status_rank, project.project_name.lower(), project.entry.folder_id)
