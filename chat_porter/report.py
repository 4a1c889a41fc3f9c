"""Run summary: per-project outcomes grouped for display."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from chat_porter.matching import ExportedProject
from chat_porter.merge import MergeOutcome, OutcomeStatus
from chat_porter.session import SkippedProject


@dataclass(frozen=True, slots=True)
class ReportItem:
    project_name: str
    host_label: str
    status: OutcomeStatus
    detail: str | None = None


@dataclass(slots=True)
class RunReport:
    imported_exact: int = 0
    imported_mapped: int = 0
    skipped: int = 0
    failed: int = 0
    dry_run: bool = False
    items: list[ReportItem] = field(default_factory=list)

    def add_outcome(self, outcome: MergeOutcome) -> None:
        self.dry_run = self.dry_run or outcome.dry_run
        if outcome.status is OutcomeStatus.IMPORTED_EXACT:
            self.imported_exact += 1
        elif outcome.status is OutcomeStatus.IMPORTED_MAPPED:
            self.imported_mapped += 1
        else:
            self.failed += 1
            self.items.append(_item(outcome.assignment.exported, OutcomeStatus.FAILED, outcome.error))

    def add_skipped(self, project: ExportedProject, reason: str | None = None) -> None:
        self.skipped += 1
        self.items.append(_item(project, OutcomeStatus.SKIPPED, reason))

    @property
    def imported(self) -> int:
        return self.imported_exact + self.imported_mapped

    @property
    def has_failures(self) -> bool:
        return self.failed > 0

    def items_with_status(self, status: OutcomeStatus) -> list[ReportItem]:
        return [item for item in self.items if item.status is status]


def _item(project: ExportedProject, status: OutcomeStatus, detail: str | None) -> ReportItem:
    return ReportItem(
        project_name=project.project_name,
        host_label=project.label,
        status=status,
        detail=detail,
    )


def build_report(outcomes: Iterable[MergeOutcome], skipped: Iterable[SkippedProject]) -> RunReport:
    report = RunReport()
    for outcome in outcomes:
        report.add_outcome(outcome)
    for item in skipped:
        report.add_skipped(item.project, item.reason)
    return report
