"""Module entrypoint for `python -m chat_porter`."""

from __future__ import annotations

import sys

from chat_porter.cli import main


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
