"""Pytest global setup for an isolated agentwatch data directory."""

from __future__ import annotations

import atexit
import os
import shutil
import tempfile
from pathlib import Path

_TEST_ROOT = Path(tempfile.mkdtemp(prefix="agentwatch-pytest-"))

# Keep tests away from the real ~/.agentwatch
os.environ["AGENTWATCH_DATA_DIR"] = str(_TEST_ROOT / "data")


@atexit.register
def _cleanup_test_state() -> None:
    shutil.rmtree(_TEST_ROOT, ignore_errors=True)
