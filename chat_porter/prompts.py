"""Interactive prompts for CLI/TUI flows.

Every prompt is a question plus a parser; an answer the parser rejects with
`ValueError` prints the reason and asks again.
"""

from __future__ import annotations

import sys
from typing import Callable, TypeVar


T = TypeVar("T")

_YES = ("y", "yes")
_NO = ("n", "no")


def is_interactive() -> bool:
    """Returns True when stdin/stdout are interactive terminals."""
    return sys.stdin.isatty() and sys.stdout.isatty()


def ask(question: str, parse: Callable[[str], T]) -> T:
    """Repeats `question` until `parse` accepts the stripped answer."""
    while True:
        raw = input(question).strip()
        try:
            return parse(raw)
        except ValueError as exc:
            print(f"{exc}\n")


def prompt_choice(prompt: str, choices: dict[str, str], default: str | None = None) -> str:
    """Prompts user to choose one key from `choices`.

    Args:
        prompt: Prompt text.
        choices: Mapping of key -> description.
        default: Default choice key (must exist in `choices`) or None.

    Returns:
        Selected key.
    """
    if default is not None and default not in choices:
        raise ValueError("Default choice must be present in choices.")

    print(prompt)
    for key, desc in choices.items():
        print(f"  [{key}] {desc}")

    def parse(raw: str) -> str:
        if not raw and default is not None:
            return default
        if raw not in choices:
            raise ValueError(f"Invalid choice, expected one of: {', '.join(choices)}")
        return raw

    suffix = f" (default: {default})" if default is not None else ""
    return ask(f"Select{suffix}: ", parse)


def prompt_yes_no(prompt: str, default: bool = False) -> bool:
    def parse(raw: str) -> bool:
        answer = raw.lower()
        if not answer:
            return default
        if answer in _YES:
            return True
        if answer in _NO:
            return False
        raise ValueError("Please answer 'y' or 'n'.")

    return ask(f"{prompt} [{'Y/n' if default else 'y/N'}]: ", parse)


def prompt_text(prompt: str, default: str | None = None) -> str:
    """Prompts for free-form text; quotes around pasted paths are stripped."""

    def parse(raw: str) -> str:
        value = _strip_wrapping_quotes(raw)
        if value:
            return value
        if default is None:
            raise ValueError("Value is required.")
        return _strip_wrapping_quotes(default)

    suffix = f" (default: {default})" if default else ""
    return ask(f"{prompt}{suffix}: ", parse)


def prompt_selection(prompt: str, count: int, default: str = "all") -> list[int]:
    """Prompts for a set of 1-based item numbers.

    Accepts `all`, `none`, single numbers and ranges, e.g. `1,3-5`.

    Returns:
        Sorted 0-based indices.
    """
    return ask(
        f"{prompt} (numbers/ranges, 'all' or 'none'; default: {default}): ",
        lambda raw: parse_selection(raw or default, count),
    )


def parse_selection(text: str, count: int) -> list[int]:
    """Parses `1,3-5` style input into sorted 0-based indices.

    Raises:
        ValueError: On malformed or out-of-range input.
    """
    text = text.strip().lower()
    if text in ("all", "*"):
        return list(range(count))
    if text in ("", "none", "-"):
        return []

    selected: set[int] = set()
    for part in text.replace(" ", ",").split(","):
        if not part:
            continue
        start_raw, sep, end_raw = part.partition("-")
        try:
            start = int(start_raw)
            end = int(end_raw) if sep else start
        except ValueError:
            raise ValueError(f"Not a number or range: {part}") from None
        if start > end:
            start, end = end, start
        if start < 1 or end > count:
            raise ValueError(f"Out of range (1-{count}): {part}")
        selected.update(range(start - 1, end))
    return sorted(selected)


def _strip_wrapping_quotes(text: str) -> str:
    # * Pasted Windows paths often arrive as "C:\...".
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        return text[1:-1].strip()
    return text
