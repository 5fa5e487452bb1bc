"""Test helper that normalizes sys.path and environment defaults."""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


_DEFAULT_ENV_VARS: dict[str, str] = {
    "TEZDM_ENCRYPTION_SECRET": "test-secret",
    "TEZDM_API_BASE_URL": "https://api.tezdm.test/v1",
    "TEZDM_STORAGE_PATH": str(
        Path(tempfile.mkdtemp(prefix="tezdm-tests-")) / "credentials.sqlite3"
    ),
}

for key, value in _DEFAULT_ENV_VARS.items():
    os.environ.setdefault(key, value)
