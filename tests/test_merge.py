"""Tests for the merge executor and reference rewriting."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from chat_porter.matching import ExportedProject, MatchStatus
from chat_porter.merge import (
    MergeAction,
    OutcomeStatus,
    count_references,
    execute_all,
    execute_assignment,
    plan_merge,
    rewrite_references,
)
from chat_porter.session import Assignment
from chat_porter.workspace_index import WorkspaceEntry, read_workspace_entry


OLD = "file:///c%3A/dev/app"
NEW = "file:///d%3A/work/app"


def _workspace(root: Path, folder_id: str, address: str) -> WorkspaceEntry:
    folder = root / folder_id
    folder.mkdir(parents=True)
    (folder / "workspace.json").write_text(json.dumps({"folder": address}), encoding="utf-8")
    entry = read_workspace_entry(folder)
    assert entry is not None
    return entry


def _assignment(exported: WorkspaceEntry, target: WorkspaceEntry, *, exact: bool) -> Assignment:
    status = MatchStatus.MATCHED if exact else MatchStatus.UNMATCHED
    project = ExportedProject(entry=exported, status=status, target=target if exact else None)
    return Assignment(exported=project, target=target, is_exact_match=exact)


def _snapshot(root: Path) -> dict[str, bytes]:
    return {p.relative_to(root).as_posix(): p.read_bytes() for p in sorted(root.rglob("*")) if p.is_file()}


def _populate_export(folder: Path, address: str) -> None:
    (folder / "state.vscdb").write_bytes(b"SQLite format 3\x00opaque")
    sessions = folder / "chatSessions"
    sessions.mkdir()
    decoded = address.replace("%3A", ":")
    (sessions / "s1.json").write_text(
        json.dumps(
            {
                "workspace": address,
                "file": f"{decoded}/src/main.py",
                "note": f"see {address}/README.md",
            }
        ),
        encoding="utf-8",
    )
    (sessions / "s2.jsonl").write_bytes(
        json.dumps({"root": address}).encode("utf-8") + b"\n" + b"\xff raw " + decoded.encode("utf-8") + b"\n"
    )
    (sessions / "notes.txt").write_text("plain text", encoding="utf-8")
    (folder / "images").mkdir()
    (folder / "images" / "logo.png").write_bytes(b"\x89PNG")


def _populate_target(folder: Path) -> None:
    (folder / "state.vscdb").write_bytes(b"old db")
    (folder / "state.vscdb-wal").write_bytes(b"stale wal")
    (folder / "state.vscdb-shm").write_bytes(b"stale shm")
    (folder / "keep.txt").write_text("untouched", encoding="utf-8")


class PlanMergeTest(unittest.TestCase):
    def test_plan_order_and_actions(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            exported = _workspace(root / "archive", "e1", OLD)
            target = _workspace(root / "local", "l1", NEW)
            _populate_export(exported.location, OLD)
            _populate_target(target.location)

            ops = plan_merge(_assignment(exported, target, exact=False))
            self.assertEqual(
                [(op.action, op.relative_path.as_posix()) for op in ops],
                [
                    (MergeAction.COPY, "state.vscdb"),
                    (MergeAction.COPY, "chatSessions/notes.txt"),
                    (MergeAction.REWRITE, "chatSessions/s1.json"),
                    (MergeAction.REWRITE, "chatSessions/s2.jsonl"),
                    (MergeAction.COPY, "images/logo.png"),
                    (MergeAction.REMOVE, "state.vscdb-wal"),
                    (MergeAction.REMOVE, "state.vscdb-shm"),
                ],
            )

    def test_exact_plan_never_rewrites(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            exported = _workspace(root / "archive", "e1", OLD)
            target = _workspace(root / "local", "l1", OLD)
            _populate_export(exported.location, OLD)

            ops = plan_merge(_assignment(exported, target, exact=True))
            self.assertEqual(sum(1 for op in ops if op.action is MergeAction.REWRITE), 0)
            self.assertNotIn(Path("workspace.json"), [op.relative_path for op in ops])


class ExecuteAssignmentTest(unittest.TestCase):
    def test_mapped_import_rewrites_every_reference(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            exported = _workspace(root / "archive", "e1", OLD)
            target = _workspace(root / "local", "l1", NEW)
            _populate_export(exported.location, OLD)
            _populate_target(target.location)
            target_meta = (target.location / "workspace.json").read_bytes()

            outcome = execute_assignment(_assignment(exported, target, exact=False))

            self.assertEqual(outcome.status, OutcomeStatus.IMPORTED_MAPPED)
            self.assertTrue(outcome.ok)
            self.assertEqual(outcome.applied, len(outcome.operations))
            self.assertEqual(outcome.references_rewritten, 5)

            dst = target.location
            for name in ("s1.json", "s2.jsonl"):
                text = (dst / "chatSessions" / name).read_bytes().decode("utf-8", errors="surrogateescape")
                self.assertEqual(count_references(text, OLD), 0, name)
            s1 = (dst / "chatSessions" / "s1.json").read_text(encoding="utf-8")
            self.assertEqual(count_references(s1, NEW), 3)
            self.assertIn("file:///d:/work/app/src/main.py", s1)
            self.assertEqual(json.loads(s1)["workspace"], NEW)

            # * Undecodable bytes survive the rewrite.
            s2 = (dst / "chatSessions" / "s2.jsonl").read_bytes()
            self.assertIn(b"\xff raw file:///d:/work/app", s2)

            self.assertEqual((dst / "workspace.json").read_bytes(), target_meta)
            self.assertEqual((dst / "state.vscdb").read_bytes(), b"SQLite format 3\x00opaque")
            self.assertEqual((dst / "chatSessions" / "notes.txt").read_text(encoding="utf-8"), "plain text")
            self.assertEqual((dst / "images" / "logo.png").read_bytes(), b"\x89PNG")
            self.assertFalse((dst / "state.vscdb-wal").exists())
            self.assertFalse((dst / "state.vscdb-shm").exists())
            self.assertEqual((dst / "keep.txt").read_text(encoding="utf-8"), "untouched")

    def test_exact_import_copies_documents_byte_for_byte(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            address = "vscode-remote://wsl%2Bubuntu/home/u/app"
            exported = _workspace(root / "archive", "e1", address)
            target = _workspace(root / "local", "l1", address)
            _populate_export(exported.location, address)

            outcome = execute_assignment(_assignment(exported, target, exact=True))

            self.assertEqual(outcome.status, OutcomeStatus.IMPORTED_EXACT)
            self.assertEqual(outcome.references_rewritten, 0)
            for name in ("s1.json", "s2.jsonl", "notes.txt"):
                self.assertEqual(
                    (target.location / "chatSessions" / name).read_bytes(),
                    (exported.location / "chatSessions" / name).read_bytes(),
                )

    def test_dry_run_touches_nothing(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            exported = _workspace(root / "archive", "e1", OLD)
            target = _workspace(root / "local", "l1", NEW)
            _populate_export(exported.location, OLD)
            _populate_target(target.location)
            assignment = _assignment(exported, target, exact=False)
            before = _snapshot(target.location)

            outcome = execute_assignment(assignment, dry_run=True)

            self.assertEqual(_snapshot(target.location), before)
            self.assertTrue(outcome.dry_run)
            self.assertEqual(outcome.status, OutcomeStatus.IMPORTED_MAPPED)
            self.assertEqual(outcome.operations, plan_merge(assignment))
            self.assertEqual(outcome.references_rewritten, 5)
            self.assertEqual(outcome.count(MergeAction.REMOVE), 2)

    def test_failure_is_reported_not_raised(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            broken = _workspace(root / "archive", "e1", OLD)
            healthy = _workspace(root / "archive", "e2", NEW)
            target_a = _workspace(root / "local", "l1", OLD)
            target_b = _workspace(root / "local", "l2", NEW)
            _populate_export(healthy.location, NEW)
            (broken.location / "workspace.json").unlink()
            broken.location.rmdir()

            class _Progress:
                updates = 0

                def update(self, n: int) -> None:
                    self.updates += n

            progress = _Progress()
            outcomes = execute_all(
                [
                    _assignment(broken, target_a, exact=True),
                    _assignment(healthy, target_b, exact=True),
                ],
                progress=progress,
            )

            self.assertEqual([o.status for o in outcomes], [OutcomeStatus.FAILED, OutcomeStatus.IMPORTED_EXACT])
            self.assertFalse(outcomes[0].ok)
            self.assertIsNotNone(outcomes[0].error)
            self.assertEqual(progress.updates, 2)
            self.assertTrue((target_b.location / "state.vscdb").exists())


class RewriteReferencesTest(unittest.TestCase):
    def test_each_form_maps_to_the_same_form(self) -> None:
        old = "vscode-remote://wsl%2Bubuntu/home/u/app"
        new = "vscode-remote://wsl%2Bdebian/srv/app"
        doc = f'{{"a": "{old}/x", "b": "vscode-remote://wsl+ubuntu/home/u/app/y"}}'
        out = rewrite_references(doc, old, new)
        self.assertEqual(out, f'{{"a": "{new}/x", "b": "vscode-remote://wsl+debian/srv/app/y"}}')

    def test_replacement_is_single_pass(self) -> None:
        out = rewrite_references("x file:///a y", "file:///a", "file:///a/b")
        self.assertEqual(out, "x file:///a/b y")

    def test_identical_addresses_leave_document_alone(self) -> None:
        self.assertEqual(rewrite_references("keep " + OLD, OLD, OLD), "keep " + OLD)

    def test_raw_form_wins_when_forms_coincide(self) -> None:
        old = "vscode-remote://wsl+ubuntu/home/u/app"
        new = "vscode-remote://wsl%2Bdebian/srv/app"
        self.assertEqual(rewrite_references(old, old, new), new)

    def test_count_references(self) -> None:
        old = "vscode-remote://wsl%2Bubuntu/home/u/app"
        doc = f"{old} {old}/src vscode-remote://wsl+ubuntu/home/u/app"
        self.assertEqual(count_references(doc, old), 3)
        self.assertEqual(count_references("nothing here", old), 0)


if __name__ == "__main__":
    unittest.main()
