from __future__ import annotations

"""
Pytest configuration helpers.

Ensures the repository root and this directory are importable regardless of
how pytest was invoked.
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
TESTS = Path(__file__).resolve().parent

for path in (ROOT, TESTS):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))
