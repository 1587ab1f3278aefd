# ruff: noqa: E402
# tests/conftest.py
from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure project root importable
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _isolate_transfer_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Autouse: a developer's .env or shell must not change session defaults under test.
    Proxy variables are dropped too so mocked transfers never get routed elsewhere.
    """
    for name in (
        "TRANSFER_CONNECT_TIMEOUT_SEC",
        "TRANSFER_TIMEOUT_SEC",
        "TRANSFER_CA_BUNDLE",
        "TRANSFER_MAX_REDIRECTS",
        "TRANSFER_CHUNK_SIZE",
        "TRANSFER_BOM_REMOVING",
        "HTTP_PROXY",
        "HTTPS_PROXY",
        "ALL_PROXY",
        "http_proxy",
        "https_proxy",
        "all_proxy",
    ):
        monkeypatch.delenv(name, raising=False)
