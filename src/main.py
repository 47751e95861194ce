"""Script entry point.

Why it exists:
- Target of the `bulkpayout` console script.
- Keeps a plain `python -m main` entry point for development.
"""

from __future__ import annotations

import sys

# Windows terminals default to cp1252; Rich output needs utf-8.
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8")
    sys.stderr.reconfigure(encoding="utf-8")

from cli.main import run


def main() -> None:
    run()


if __name__ == "__main__":
    main()
