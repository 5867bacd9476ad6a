"""Command-line interface and plain-text rendering."""

from line_build_core.ui.cli import CLIError, build_parser, run_cli
from line_build_core.ui.render import CLIRenderer, create_renderer

__all__ = ["CLIError", "CLIRenderer", "build_parser", "create_renderer", "run_cli"]
