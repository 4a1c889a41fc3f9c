"""CLI for chat-porter."""

from __future__ import annotations

import argparse
import sys
import tempfile
import time
from pathlib import Path

from tqdm import tqdm

from chat_porter.archive import (
    ARCHIVE_SUFFIX,
    ArchiveError,
    create_export_archive,
    extract_export_archive,
    read_manifest,
)
from chat_porter.console import debug, dim, error, info, init_console, success, warn
from chat_porter.editor_paths import (
    DEFAULT_EDITOR,
    EDITOR_PRODUCT_DIRS,
    UserDirNotFoundError,
    resolve_user_dir,
    workspace_storage_root,
)
from chat_porter.locks import StorageLockedError, assert_paths_unlocked, storage_db_paths
from chat_porter.matching import PROJECT_NAME_WEIGHT, MatchStatus, match_exports
from chat_porter.merge import MergeAction, MergeOutcome, OutcomeStatus, execute_all
from chat_porter.prompts import is_interactive, prompt_choice, prompt_selection, prompt_yes_no
from chat_porter.report import RunReport, build_report
from chat_porter.selection_ui import AutoSelectionUI, ConsoleSelectionUI
from chat_porter.session import SKIP_ABORTED, Assignment, MappingSession, SessionState
from chat_porter.tui import run_tui, tui_config_to_argv
from chat_porter.workspace_index import WorkspaceEntry, WorkspaceIndex


EXIT_OK = 0
EXIT_FAILED_ITEMS = 1
EXIT_ERROR = 2
EXIT_INTERRUPTED = 130


def main(argv: list[str] | None = None) -> int:
    try:
        if argv is None:
            argv = sys.argv[1:]
        if not argv and is_interactive():
            tui_cfg = run_tui()
            if tui_cfg is None:
                return EXIT_OK
            argv = tui_config_to_argv(tui_cfg)

        args = _build_parser().parse_args(argv)
        init_console(verbose=args.verbose)

        try:
            storage_root = _resolve_storage_root(args)
            debug(f"Workspace storage: {storage_root}")
            if args.cmd == "list":
                return _cmd_list(storage_root)
            if args.cmd == "export":
                return _cmd_export(
                    storage_root=storage_root,
                    output=args.output,
                    export_all=args.all,
                    overwrite=args.overwrite,
                )
            if args.cmd == "import":
                return _cmd_import(
                    storage_root=storage_root,
                    archive=args.archive,
                    dry_run=args.dry_run,
                    assume_yes=args.yes,
                    min_score=args.min_score,
                    unsafe_db=args.unsafe_db,
                )
        except (ArchiveError, StorageLockedError, UserDirNotFoundError) as exc:
            error(str(exc))
            return EXIT_ERROR
        except (FileExistsError, FileNotFoundError, PermissionError, NotADirectoryError, ValueError) as exc:
            error(str(exc))
            return EXIT_ERROR

        raise RuntimeError(f"Unhandled command: {args.cmd}")
    except KeyboardInterrupt:
        # * Handle Ctrl+C gracefully in all interactive stages (menu, prompts, copying).
        print(file=sys.stderr, flush=True)
        warn("Interrupted by user (Ctrl+C).")
        return EXIT_INTERRUPTED


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chat-porter",
        description="Move editor chat history between machines whose workspace ids differ.",
    )
    parser.add_argument(
        "--editor",
        choices=tuple(EDITOR_PRODUCT_DIRS),
        default=DEFAULT_EDITOR,
        help=f"Editor whose storage is used (default: {DEFAULT_EDITOR}).",
    )
    parser.add_argument(
        "--user-dir",
        type=Path,
        default=None,
        help="Override the editor User directory (default: $CHAT_PORTER_USER_DIR or auto-detect).",
    )
    parser.add_argument(
        "--storage-root",
        type=Path,
        default=None,
        help="Override the workspaceStorage directory directly.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Print per-file details.")

    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("list", help="List workspaces known to the editor on this machine.")

    export_cmd = sub.add_parser("export", help="Write workspace chat history into an archive.")
    export_cmd.add_argument("--output", "-o", type=Path, required=True, help=f"Archive path ({ARCHIVE_SUFFIX}).")
    export_cmd.add_argument(
        "--all",
        action="store_true",
        help="Export every workspace with chat data without asking.",
    )
    export_cmd.add_argument("--overwrite", action="store_true", help="Replace an existing archive.")

    import_cmd = sub.add_parser("import", help="Import workspace chat history from an archive.")
    import_cmd.add_argument("archive", type=Path, help="Archive written by `export`.")
    import_cmd.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be copied and rewritten without touching any file.",
    )
    import_cmd.add_argument(
        "--yes",
        action="store_true",
        help="Non-interactive: import everything, map unmatched workspaces to a confident best candidate.",
    )
    import_cmd.add_argument(
        "--min-score",
        type=int,
        default=PROJECT_NAME_WEIGHT,
        help=f"Lowest candidate score accepted by --yes (default: {PROJECT_NAME_WEIGHT}).",
    )
    import_cmd.add_argument(
        "--unsafe-db",
        action="store_true",
        help="Skip the check that target databases are not in use (unsafe).",
    )
    return parser


def _resolve_storage_root(args: argparse.Namespace) -> Path:
    if args.storage_root is not None:
        return args.storage_root.expanduser()
    return workspace_storage_root(resolve_user_dir(args.user_dir, args.editor))


def _cmd_list(storage_root: Path) -> int:
    index = WorkspaceIndex.build(storage_root)
    info(f"Workspace storage: {storage_root}")
    info(f"Workspaces: {len(index)}")
    for entry in index:
        d = entry.descriptor
        chats = entry.chat_session_count
        print(f"  {entry.folder_id}  {d.label:<18}  {d.normalized_path}  {dim(f'chats={chats}')}")

    for address, entries in index.duplicates().items():
        ids = ", ".join(e.folder_id for e in entries)
        warn(f"Several storage folders claim {address}: {ids}")
    return EXIT_OK


def _has_chat_data(entry: WorkspaceEntry) -> bool:
    return entry.chat_session_count > 0 or (entry.location / "state.vscdb").exists()


def _cmd_export(*, storage_root: Path, output: Path, export_all: bool, overwrite: bool) -> int:
    index = WorkspaceIndex.build(storage_root)
    candidates = [entry for entry in index if _has_chat_data(entry)]
    if not candidates:
        warn(f"No workspaces with chat data found in {storage_root}.")
        return EXIT_OK

    if export_all:
        selected = candidates
    elif is_interactive():
        info(f"Workspaces with chat data: {len(candidates)}")
        for n, entry in enumerate(candidates, start=1):
            d = entry.descriptor
            print(f"  {n:3d}  {d.project_name or entry.folder_id} [{d.label}] {dim(d.normalized_path)}")
        selected = [candidates[i] for i in prompt_selection("Workspaces to export", len(candidates))]
    else:
        raise ValueError("Non-interactive export needs --all.")

    if not selected:
        warn("Nothing selected; no archive written.")
        return EXIT_OK

    stats = create_export_archive(selected, output, overwrite=overwrite)
    success("OK")
    info(f"Archive: {stats.archive_path}")
    mib = stats.total_bytes / (1024 * 1024)
    info(f"Workspaces: {stats.workspaces}, files={stats.files}, bytes={mib:.2f} MiB")
    return EXIT_OK


def _cmd_import(
    *,
    storage_root: Path,
    archive: Path,
    dry_run: bool,
    assume_yes: bool,
    min_score: int,
    unsafe_db: bool,
) -> int:
    if not (assume_yes or dry_run or is_interactive()):
        # ! Import writes into live storage; only an explicit --yes may skip confirmation.
        raise ValueError("Non-interactive import needs --yes.")

    local_index = WorkspaceIndex.build(storage_root)
    info(f"Local workspaces: {len(local_index)} ({storage_root})")

    with tempfile.TemporaryDirectory(prefix="chat-porter-") as tmp:
        extracted = extract_export_archive(archive, Path(tmp))
        manifest = read_manifest(extracted)
        if manifest is not None:
            debug(f"Archive created {manifest.get('created_at')} on {manifest.get('source_host')}")

        exported_index = WorkspaceIndex.build(extracted)
        if not exported_index:
            warn("Archive contains no workspaces.")
            return EXIT_OK

        projects = match_exports(exported_index.entries, local_index)
        exact = sum(1 for p in projects if p.status is MatchStatus.MATCHED)
        info(f"Archive workspaces: {len(projects)} (exact matches: {exact}, unmatched: {len(projects) - exact})")

        if assume_yes or not is_interactive():
            ui = AutoSelectionUI(min_score=min_score)
        else:
            ui = ConsoleSelectionUI()
        session = MappingSession(projects, local_index.entries, ui)
        assignments = session.run()

        if session.state is SessionState.ABORTED:
            if any(s.reason == SKIP_ABORTED for s in session.skipped):
                warn("Aborted; nothing was imported.")
            else:
                warn("Nothing to import.")
            _print_report(build_report([], session.skipped))
            return EXIT_OK

        if not dry_run:
            _handle_target_lock_dialog(assignments=assignments, unsafe_db=unsafe_db, assume_yes=assume_yes)

        with tqdm(
            total=len(assignments),
            unit="workspace",
            desc="Dry run" if dry_run else "Import",
            leave=False,
            disable=not sys.stderr.isatty(),
        ) as pbar:
            outcomes = execute_all(assignments, dry_run=dry_run, progress=pbar)
        session.finish()

    for outcome in outcomes:
        _print_outcome(outcome)
    report = build_report(outcomes, session.skipped)
    _print_report(report)
    return EXIT_FAILED_ITEMS if report.has_failures else EXIT_OK


def _handle_target_lock_dialog(*, assignments: list[Assignment], unsafe_db: bool, assume_yes: bool) -> None:
    if unsafe_db:
        warn("Skipping database lock check (--unsafe-db).")
        return

    db_paths = [p for a in assignments for p in storage_db_paths(a.target.location)]
    while True:
        try:
            assert_paths_unlocked(db_paths)
            debug("LOCK CHECK: OK")
            return
        except StorageLockedError as exc:
            # * In auto-confirm mode, we do not continue unsafely without explicit flag.
            if assume_yes or not is_interactive():
                raise
            warn(str(exc))
            choice = prompt_choice(
                "Target workspace DB is locked. What next?",
                {
                    "r": "Retry lock check (after closing the editor)",
                    "u": "Continue anyway (may corrupt chat state)",
                    "a": "Abort",
                },
                default="r",
            )
            if choice == "r":
                time.sleep(0.25)
                continue
            if choice == "u":
                if prompt_yes_no("Proceed with locked databases?", default=False):
                    return
                continue
            raise


def _print_outcome(outcome: MergeOutcome) -> None:
    exported = outcome.assignment.exported
    target = outcome.assignment.target
    name = f"{exported.project_name} [{exported.label}]"
    if not outcome.ok:
        error(f"FAILED {name}: {outcome.error}")
        return

    verb = "Would import" if outcome.dry_run else "Imported"
    kind = "exact" if outcome.assignment.is_exact_match else "mapped"
    success(f"{verb} {name} -> {target.folder_id} ({kind})")
    info(
        f"  files={outcome.count(MergeAction.COPY)}"
        f" rewritten={outcome.count(MergeAction.REWRITE)}"
        f" references={outcome.references_rewritten}"
        f" removed={outcome.count(MergeAction.REMOVE)}"
    )
    for op in outcome.operations:
        debug(f"    {op.action.value:<7} {op.relative_path.as_posix()}")


def _print_report(report: RunReport) -> None:
    print()
    info("Summary (dry run)" if report.dry_run else "Summary")
    print(f"  Imported (exact):  {report.imported_exact}")
    print(f"  Imported (mapped): {report.imported_mapped}")
    print(f"  Skipped:           {report.skipped}")
    print(f"  Failed:            {report.failed}")
    for item in report.items:
        line = f"  {item.status.value}: {item.project_name} [{item.host_label}]"
        if item.detail:
            line += f" - {item.detail}"
        if item.status is OutcomeStatus.FAILED:
            error(line)
        else:
            print(dim(line))
