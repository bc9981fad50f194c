"""Run the `amanakshar` CLI with `python -m main` from `src/`.

Same entry point as the installed `amanakshar` script.
"""

from __future__ import annotations

import sys

# Hindi output needs UTF-8 even where the console defaults to cp1252.
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8")
    sys.stderr.reconfigure(encoding="utf-8")

from cli.main import run


def main() -> None:
    run()


if __name__ == "__main__":
    main()
