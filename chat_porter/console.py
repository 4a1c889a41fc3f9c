"""Console output helpers (color + consistent formatting).

All user-facing logging goes through these functions: results on stdout,
warnings, errors and `--verbose` details on stderr.
"""

from __future__ import annotations

import os
import sys
from typing import TextIO

from colorama import Fore, Style, just_fix_windows_console


_INITIALIZED = False
_VERBOSE = False


def init_console(*, verbose: bool = False) -> None:
    """Enables ANSI handling on Windows terminals and sets verbosity."""
    global _INITIALIZED, _VERBOSE
    _VERBOSE = verbose
    if not _INITIALIZED:
        _INITIALIZED = True
        just_fix_windows_console()


def _supports_color(stream: TextIO) -> bool:
    if os.environ.get("NO_COLOR", "").strip():
        return False
    return hasattr(stream, "isatty") and stream.isatty()


def style(text: str, *, fg: str = "", bold: bool = False, stream: TextIO | None = None) -> str:
    """Wraps `text` in colorama codes when `stream` (default stdout) is a color terminal."""
    if not _supports_color(stream or sys.stdout):
        return text
    return f"{Style.BRIGHT if bold else ''}{fg}{text}{Style.RESET_ALL}"


def dim(text: str) -> str:
    return style(text, fg=Fore.LIGHTBLACK_EX)


def _emit(text: str, *, fg: str, bold: bool = True, to_stderr: bool = False) -> None:
    stream = sys.stderr if to_stderr else sys.stdout
    print(style(text, fg=fg, bold=bold, stream=stream), file=stream, flush=True)


def info(text: str) -> None:
    _emit(text, fg=Fore.CYAN)


def success(text: str) -> None:
    _emit(text, fg=Fore.GREEN)


def debug(text: str) -> None:
    if _VERBOSE:
        _emit(text, fg=Fore.LIGHTBLACK_EX, bold=False, to_stderr=True)


def warn(text: str) -> None:
    _emit(text, fg=Fore.YELLOW, to_stderr=True)


def error(text: str) -> None:
    _emit(text, fg=Fore.RED, to_stderr=True)
