"""Operator-driven selection and mapping of exported workspaces.

The session is a small state machine:

  AWAITING_BULK_SELECTION -> AWAITING_MAPPING -> READY_TO_EXECUTE -> EXECUTING -> DONE
                                                              \\-> ABORTED

Assignments are only created by the exact-match shortcut during bulk selection
or by an explicit pick during mapping. Both paths go through `_assign`, which
owns the used-target set, so one local folder never receives two exports.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Protocol, Sequence

from chat_porter.matching import (
    ExportedProject,
    MatchCandidate,
    MatchStatus,
    mapping_order_key,
    rank_candidates,
)
from chat_porter.workspace_index import WorkspaceEntry


class SessionState(str, Enum):
    AWAITING_BULK_SELECTION = "awaiting-bulk-selection"
    AWAITING_MAPPING = "awaiting-mapping"
    READY_TO_EXECUTE = "ready-to-execute"
    EXECUTING = "executing"
    DONE = "done"
    ABORTED = "aborted"


class SessionStateError(RuntimeError):
    """Raised when a session transition is invoked in the wrong state."""


class SelectionUI(Protocol):
    """What the session needs from a user interface."""

    def present_for_selection(self, items: Sequence[ExportedProject]) -> Sequence[ExportedProject]:
        ...

    def present_for_mapping(
        self,
        project: ExportedProject,
        candidates: Sequence[MatchCandidate],
    ) -> MatchCandidate | None:
        ...

    def confirm_assignments(self, assignments: Sequence["Assignment"]) -> bool:
        ...


@dataclass(frozen=True, slots=True)
class Assignment:
    exported: ExportedProject
    target: WorkspaceEntry
    is_exact_match: bool


@dataclass(frozen=True, slots=True)
class SkippedProject:
    project: ExportedProject
    reason: str


SKIP_NOT_SELECTED = "not selected"
SKIP_NO_TARGET = "no target chosen"
SKIP_ABORTED = "aborted before execution"
SKIP_INVALID_TARGET = "picked target was not offered"


class MappingSession:
    def __init__(
        self,
        projects: Iterable[ExportedProject],
        local_entries: Iterable[WorkspaceEntry],
        ui: SelectionUI,
    ) -> None:
        self.projects: list[ExportedProject] = sorted(projects, key=mapping_order_key)
        self.local_entries: tuple[WorkspaceEntry, ...] = tuple(local_entries)
        self.ui = ui
        self.state = SessionState.AWAITING_BULK_SELECTION
        self.assignments: list[Assignment] = []
        self.skipped: list[SkippedProject] = []
        self.used_targets: set[str] = set()
        self._pending_mapping: list[ExportedProject] = []

    def select(self) -> SessionState:
        """Runs bulk selection; exact matches are assigned immediately."""
        self._require(SessionState.AWAITING_BULK_SELECTION)

        chosen = self.ui.present_for_selection(list(self.projects))
        chosen_ids = {id(p) for p in chosen}

        for project in self.projects:
            if id(project) not in chosen_ids:
                self.skipped.append(SkippedProject(project, SKIP_NOT_SELECTED))
                continue
            if (
                project.status is MatchStatus.MATCHED
                and project.target is not None
                and project.target.folder_id not in self.used_targets
            ):
                self._assign(project, project.target, is_exact_match=True)
                continue
            # * Unmatched, or an exact target already claimed by a duplicate export.
            self._pending_mapping.append(project)

        self._pending_mapping.sort(key=mapping_order_key)
        self.state = (
            SessionState.AWAITING_MAPPING if self._pending_mapping else SessionState.READY_TO_EXECUTE
        )
        return self.state

    def candidates_for(self, project: ExportedProject) -> list[MatchCandidate]:
        """Ranked candidates for `project` from the targets still available."""
        return rank_candidates(project.entry, self.local_entries, self.used_targets)

    def map_unmatched(self) -> SessionState:
        """Asks the UI for a target for every selected, unassigned project."""
        self._require(SessionState.AWAITING_MAPPING)

        while self._pending_mapping:
            project = self._pending_mapping.pop(0)
            candidates = self.candidates_for(project)
            picked = self.ui.present_for_mapping(project, candidates) if candidates else None
            if picked is None:
                self.skipped.append(SkippedProject(project, SKIP_NO_TARGET))
                continue
            if picked not in candidates:
                # ! Only offered targets are assignable.
                self.skipped.append(SkippedProject(project, SKIP_INVALID_TARGET))
                continue
            self._assign(project, picked.entry, is_exact_match=False)

        self.state = SessionState.READY_TO_EXECUTE
        return self.state

    def confirm(self) -> bool:
        """Asks for confirmation; on refusal every assignment is discarded."""
        self._require(SessionState.READY_TO_EXECUTE)

        if self.assignments and self.ui.confirm_assignments(list(self.assignments)):
            self.state = SessionState.EXECUTING
            return True

        for assignment in self.assignments:
            self.skipped.append(SkippedProject(assignment.exported, SKIP_ABORTED))
        self.assignments.clear()
        self.used_targets.clear()
        self.state = SessionState.ABORTED
        return False

    def run(self) -> list[Assignment]:
        """Drives the session up to confirmation.

        Returns:
            Finalized assignments (empty when the operator aborted).
        """
        if self.select() is SessionState.AWAITING_MAPPING:
            self.map_unmatched()
        if not self.confirm():
            return []
        return list(self.assignments)

    def finish(self) -> None:
        self._require(SessionState.EXECUTING)
        self.state = SessionState.DONE

    def _assign(self, project: ExportedProject, target: WorkspaceEntry, *, is_exact_match: bool) -> None:
        project.target = target
        self.used_targets.add(target.folder_id)
        self.assignments.append(
            Assignment(exported=project, target=target, is_exact_match=is_exact_match)
        )

    def _require(self, expected: SessionState) -> None:
        if self.state is not expected:
            raise SessionStateError(f"Expected session state {expected.value}, got {self.state.value}")
