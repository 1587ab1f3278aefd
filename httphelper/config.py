from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import certifi
from dotenv import load_dotenv


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name, str(default)).strip()
    try:
        return int(v)
    except ValueError as err:
        raise ValueError(f"Environment variable {name} must be an integer; got {v!r}") from err


def _getenv_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip()


def _getenv_bool(name: str, default: bool) -> bool:
    """
    Read a loosely-typed boolean from the environment.

    Treats "1", "true", "yes", "on" (case-insensitive) as True;
    "0", "false", "no", "off", "" as False. If unset, returns default.
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off", ""}:
        return False
    # Fallback: any other non-empty value -> True
    return True


# Load .env from project root if present
ROOT = Path(__file__).resolve().parents[1]
load_dotenv(ROOT / ".env", override=False)


@dataclass(frozen=True)
class TransferConfig:
    connect_timeout_sec: int
    timeout_sec: int
    ca_bundle: str
    max_redirects: int
    chunk_size: int
    bom_removing: bool


def load_settings() -> TransferConfig:
    """
    Read the transfer defaults from the environment at call time.

    A malformed value raises ValueError here, not at import.
    """
    return TransferConfig(
        connect_timeout_sec=_getenv_int("TRANSFER_CONNECT_TIMEOUT_SEC", 10),
        timeout_sec=_getenv_int("TRANSFER_TIMEOUT_SEC", 30),
        ca_bundle=_getenv_str("TRANSFER_CA_BUNDLE", certifi.where()),
        max_redirects=_getenv_int("TRANSFER_MAX_REDIRECTS", 20),
        chunk_size=_getenv_int("TRANSFER_CHUNK_SIZE", 65_536),
        bom_removing=_getenv_bool("TRANSFER_BOM_REMOVING", False),
    )


__all__ = [
    "TransferConfig",
    "load_settings",
]
