"""Module entrypoint for ``python -m line_build_core``."""

from __future__ import annotations

from line_build_core.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
