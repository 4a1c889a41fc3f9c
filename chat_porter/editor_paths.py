"""Helpers to locate editor user data directories across platforms."""

from __future__ import annotations

import os
import sys
from pathlib import Path


# * CLI name -> product directory name under the platform config dir.
EDITOR_PRODUCT_DIRS: dict[str, str] = {
    "code": "Code",
    "code-insiders": "Code - Insiders",
    "vscodium": "VSCodium",
    "cursor": "Cursor",
}

DEFAULT_EDITOR = "code"

ENV_USER_DIR = "CHAT_PORTER_USER_DIR"


class UserDirNotFoundError(RuntimeError):
    """Raised when the platform gives no way to locate the editor User dir."""


def default_user_dir(editor: str = DEFAULT_EDITOR) -> Path:
    """Returns the default `User` directory of `editor` for the current OS.

    Args:
        editor: One of `EDITOR_PRODUCT_DIRS` keys.

    Returns:
        Absolute path to `.../<Product>/User`.

    Raises:
        ValueError: If the editor is unknown.
        UserDirNotFoundError: If required env vars are missing.
    """
    try:
        product = EDITOR_PRODUCT_DIRS[editor]
    except KeyError:
        raise ValueError(
            f"Unknown editor: {editor}. Expected one of: {', '.join(EDITOR_PRODUCT_DIRS)}"
        ) from None

    if sys.platform.startswith("win"):
        appdata = os.environ.get("APPDATA")
        if not appdata:
            raise UserDirNotFoundError(f"APPDATA is not set; cannot locate {product} User dir.")
        return Path(appdata) / product / "User"

    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / product / "User"

    # * Assume Linux / other Unix-like.
    return Path.home() / ".config" / product / "User"


def resolve_user_dir(user_dir: Path | None, editor: str = DEFAULT_EDITOR) -> Path:
    """Resolves the User dir: explicit value, then `CHAT_PORTER_USER_DIR`, then default."""
    if user_dir is not None:
        return user_dir.expanduser()
    from_env = os.environ.get(ENV_USER_DIR, "").strip()
    if from_env:
        return Path(from_env).expanduser()
    return default_user_dir(editor)


def workspace_storage_root(user_dir: Path) -> Path:
    """Returns `workspaceStorage` directory under the User dir."""
    return user_dir / "workspaceStorage"
