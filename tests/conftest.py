from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Import the local src tree, not an installed copy.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

_CONNECTION_ENV = (
    "ZONEGUARD_DATABASE_URL",
    "DB_USER",
    "DB_PASSWORD",
    "DB_HOST",
    "DB_NAME",
    "DB_PORT",
)


@pytest.fixture(autouse=True)
def _clean_connection_env(monkeypatch):
    """Keep the caller's database settings out of unit tests."""
    for name in _CONNECTION_ENV:
        monkeypatch.delenv(name, raising=False)
