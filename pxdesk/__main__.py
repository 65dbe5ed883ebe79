"""
Module entrypoint for the pxdesk CLI.

This file exists so that `python -m pxdesk ...` works when the console-script
wrapper is not installed.
"""

from __future__ import annotations

from pxdesk.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
