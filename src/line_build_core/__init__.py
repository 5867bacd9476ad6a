"""
line-build-core — package root

File: src/line_build_core/__init__.py

Purpose
- Package root for the line-build graph guard and dual-engine validator.

What should be included in this file
- Package docstring and version export only.
- Import boundary rules: subpackages are imported explicitly by callers.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
