"""Text UI menu for running chat-porter without CLI arguments."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from chat_porter.archive import ARCHIVE_SUFFIX
from chat_porter.console import info
from chat_porter.editor_paths import DEFAULT_EDITOR, EDITOR_PRODUCT_DIRS
from chat_porter.prompts import prompt_choice, prompt_text, prompt_yes_no


@dataclass(frozen=True, slots=True)
class TuiRunConfig:
    cmd: str
    editor: str
    user_dir: Path | None
    archive: Path | None
    overwrite: bool
    dry_run: bool
    export_all: bool


def run_tui() -> TuiRunConfig | None:
    """Runs an interactive menu and returns the selected configuration."""
    info("chat-porter")
    print()

    cmd = prompt_choice(
        "What do you want to do?",
        {
            "1": "Export chat history of this machine into an archive (export)",
            "2": "Import chat history from an archive (import)",
            "3": "List workspaces known to the editor (list)",
            "0": "Exit",
        },
        default="2",
    )
    if cmd == "0":
        return None

    editors = {str(n): name for n, name in enumerate(EDITOR_PRODUCT_DIRS, start=1)}
    default_key = next(k for k, v in editors.items() if v == DEFAULT_EDITOR)
    editor = editors[prompt_choice("Editor?", editors, default=default_key)]

    user_dir_raw = prompt_text("Editor User dir (leave empty for auto)", default="")
    user_dir = Path(user_dir_raw).expanduser().resolve() if user_dir_raw else None

    if cmd == "3":
        return TuiRunConfig(
            cmd="list",
            editor=editor,
            user_dir=user_dir,
            archive=None,
            overwrite=False,
            dry_run=False,
            export_all=False,
        )

    if cmd == "1":
        archive_raw = prompt_text("Archive to write", default=str(Path.cwd() / f"chat-export{ARCHIVE_SUFFIX}"))
        export_all = prompt_yes_no("Export every workspace with chat data? (--all)", default=True)
        overwrite = prompt_yes_no("Overwrite the archive if it exists?", default=False)
        return TuiRunConfig(
            cmd="export",
            editor=editor,
            user_dir=user_dir,
            archive=Path(archive_raw).expanduser().resolve(),
            overwrite=overwrite,
            dry_run=False,
            export_all=export_all,
        )

    archive_raw = prompt_text("Archive to import")
    dry_run = prompt_yes_no("Dry run only (show what would be copied)?", default=False)
    return TuiRunConfig(
        cmd="import",
        editor=editor,
        user_dir=user_dir,
        archive=Path(archive_raw).expanduser().resolve(),
        overwrite=False,
        dry_run=dry_run,
        export_all=False,
    )


def tui_config_to_argv(cfg: TuiRunConfig) -> list[str]:
    argv: list[str] = ["--editor", cfg.editor]
    if cfg.user_dir is not None:
        argv += ["--user-dir", str(cfg.user_dir)]

    argv.append(cfg.cmd)
    if cfg.cmd == "export":
        argv += ["--output", str(cfg.archive)]
        if cfg.export_all:
            argv.append("--all")
        if cfg.overwrite:
            argv.append("--overwrite")
    elif cfg.cmd == "import":
        argv.append(str(cfg.archive))
        if cfg.dry_run:
            argv.append("--dry-run")
    return argv
