# httphelper/transfer/__init__.py
"""
Option-table HTTP transfers: a fluent session over an httpx-backed engine.

Caller-facing API:
  - TransferSession: configure with chained setters, execute(), read diagnostics
  - parse_cookie(header_text) -> "a=1; b=2" | None

Other public entry points (advanced/internal use):
  - HttpxEngine, TransferInfo
  - Option, Info, ProxyType, IpResolve, Param
  - ErrorCode, strerror
  - ProgressSnapshot
"""

from .cookies import (
    load_cookie_file,
    parse_cookie,
    save_cookie_jar,
)
from .engine import (
    HttpxEngine,
    TransferAborted,
    TransferInfo,
)
from .errors import (
    ErrorCode,
    strerror,
)
from .options import (
    Info,
    IpResolve,
    Option,
    Param,
    ProxyType,
)
from .progress import ProgressSnapshot
from .session import TransferSession

__all__ = [
    # caller-facing
    "TransferSession",
    "parse_cookie",
    # engine
    "HttpxEngine",
    "TransferInfo",
    "TransferAborted",
    # identifiers
    "Option",
    "Info",
    "ProxyType",
    "IpResolve",
    "Param",
    # errors
    "ErrorCode",
    "strerror",
    # progress / cookies
    "ProgressSnapshot",
    "load_cookie_file",
    "save_cookie_jar",
]
