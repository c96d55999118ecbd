"""Pytest configuration for test discovery, env, and fixtures.

This file ensures that:
- `src/` is importable
- Integration tests can read credentials from `conf/secrets.yml`
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure src directory is in path for imports
repo_root = Path(__file__).parent.parent
src_path = repo_root / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from vector_kb.config import load_secrets_into_env  # noqa: E402


def pytest_sessionstart(session: object) -> None:
    # Only fills variables that are unset, never overrides the environment
    load_secrets_into_env(repo_root / "conf" / "secrets.yml")
