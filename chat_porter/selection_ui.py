"""`SelectionUI` implementations: interactive console and non-interactive auto mode."""

from __future__ import annotations

from typing import Sequence

from chat_porter.console import dim, info, warn
from chat_porter.matching import PROJECT_NAME_WEIGHT, ExportedProject, MatchCandidate, MatchStatus
from chat_porter.prompts import ask, parse_selection, prompt_selection, prompt_yes_no
from chat_porter.session import Assignment


MAX_CANDIDATES_SHOWN = 15


def describe_project(project: ExportedProject) -> str:
    status = "exact" if project.status is MatchStatus.MATCHED else "no match"
    return f"{project.project_name} [{project.label}] ({status}) {dim(project.entry.descriptor.normalized_path)}"


def describe_assignment(assignment: Assignment) -> str:
    kind = "exact" if assignment.is_exact_match else "mapped"
    target = assignment.target
    return (
        f"{assignment.exported.project_name} [{assignment.exported.label}] -> "
        f"{target.descriptor.project_name or target.folder_id} [{target.descriptor.label}] ({kind}) "
        f"{dim(target.folder_id)}"
    )


class ConsoleSelectionUI:
    """Prompts on stdin/stdout."""

    def present_for_selection(self, items: Sequence[ExportedProject]) -> Sequence[ExportedProject]:
        info(f"Workspaces in archive: {len(items)}")
        for n, project in enumerate(items, start=1):
            print(f"  {n:3d}  {describe_project(project)}")
        indices = prompt_selection("Workspaces to import", len(items))
        return [items[i] for i in indices]

    def present_for_mapping(
        self,
        project: ExportedProject,
        candidates: Sequence[MatchCandidate],
    ) -> MatchCandidate | None:
        print()
        info(f"No exact match for {project.project_name} [{project.label}]")
        print(f"  {dim(project.entry.raw_address)}")
        shown = list(candidates[:MAX_CANDIDATES_SHOWN])
        for n, candidate in enumerate(shown, start=1):
            d = candidate.entry.descriptor
            print(f"  {n:3d}  score={candidate.score:3d}  {d.project_name or candidate.entry.folder_id} [{d.label}] {dim(d.normalized_path)}")
        if len(candidates) > len(shown):
            print(dim(f"  ... {len(candidates) - len(shown)} more with lower scores"))
        print("    0  Skip this workspace")

        def pick(raw: str) -> MatchCandidate | None:
            if raw in ("", "0"):
                return None
            picked = parse_selection(raw, len(shown))
            if len(picked) != 1:
                raise ValueError("Pick exactly one target.")
            return shown[picked[0]]

        return ask("Target (default: 0): ", pick)

    def confirm_assignments(self, assignments: Sequence[Assignment]) -> bool:
        print()
        info("Planned imports:")
        for assignment in assignments:
            print(f"  {describe_assignment(assignment)}")
        return prompt_yes_no("Proceed?", default=False)


class AutoSelectionUI:
    """Non-interactive choices for `--yes` runs.

    Selects everything, maps an unmatched workspace only to its best candidate
    and only when that candidate scores at least `min_score`.
    """

    def __init__(self, min_score: int = PROJECT_NAME_WEIGHT) -> None:
        self.min_score = min_score

    def present_for_selection(self, items: Sequence[ExportedProject]) -> Sequence[ExportedProject]:
        return list(items)

    def present_for_mapping(
        self,
        project: ExportedProject,
        candidates: Sequence[MatchCandidate],
    ) -> MatchCandidate | None:
        if not candidates or candidates[0].score < self.min_score:
            warn(f"No confident target for {project.project_name} [{project.label}]; skipping.")
            return None
        if len(candidates) > 1 and candidates[1].score == candidates[0].score:
            warn(f"Ambiguous target for {project.project_name} [{project.label}]; skipping.")
            return None
        return candidates[0]

    def confirm_assignments(self, assignments: Sequence[Assignment]) -> bool:
        return True
