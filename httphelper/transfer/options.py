# httphelper/transfer/options.py
from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

# --------------------------------------------------------------------------------------
# Identifiers
# --------------------------------------------------------------------------------------


class Option(str, Enum):
    """Symbolic transfer option identifiers accepted by the engine."""

    URL = "URL"
    POST = "POST"
    POSTFIELDS = "POSTFIELDS"
    CUSTOMREQUEST = "CUSTOMREQUEST"
    HTTPHEADER = "HTTPHEADER"
    COOKIE = "COOKIE"
    COOKIEJAR = "COOKIEJAR"
    COOKIEFILE = "COOKIEFILE"
    REFERER = "REFERER"
    USERAGENT = "USERAGENT"
    ENCODING = "ENCODING"
    CONNECTTIMEOUT = "CONNECTTIMEOUT"
    TIMEOUT = "TIMEOUT"
    PROXY = "PROXY"
    PROXYTYPE = "PROXYTYPE"
    PROXYUSERNAME = "PROXYUSERNAME"
    PROXYPASSWORD = "PROXYPASSWORD"
    SSL_VERIFYPEER = "SSL_VERIFYPEER"
    SSL_VERIFYHOST = "SSL_VERIFYHOST"
    SSL_VERIFYSTATUS = "SSL_VERIFYSTATUS"
    PROXY_SSL_VERIFYPEER = "PROXY_SSL_VERIFYPEER"
    PROXY_SSL_VERIFYHOST = "PROXY_SSL_VERIFYHOST"
    IPRESOLVE = "IPRESOLVE"
    INTERFACE = "INTERFACE"
    AUTOREFERER = "AUTOREFERER"
    FOLLOWLOCATION = "FOLLOWLOCATION"
    VERBOSE = "VERBOSE"
    HEADER = "HEADER"
    NOBODY = "NOBODY"
    RETURNTRANSFER = "RETURNTRANSFER"
    CAINFO = "CAINFO"
    NOPROGRESS = "NOPROGRESS"
    PROGRESSFUNCTION = "PROGRESSFUNCTION"


class Info(str, Enum):
    """Post-transfer values the engine can report."""

    HTTP_CODE = "HTTP_CODE"
    TOTAL_TIME = "TOTAL_TIME"
    CONNECT_TIME = "CONNECT_TIME"
    LOCAL_IP = "LOCAL_IP"
    LOCAL_PORT = "LOCAL_PORT"
    SIZE_DOWNLOAD = "SIZE_DOWNLOAD"
    SPEED_DOWNLOAD = "SPEED_DOWNLOAD"
    EFFECTIVE_URL = "EFFECTIVE_URL"


class ProxyType(str, Enum):
    HTTP = "http"
    HTTPS = "https"
    SOCKS4 = "socks4"
    SOCKS5 = "socks5"


class IpResolve(str, Enum):
    WHATEVER = "whatever"
    V4 = "v4"
    V6 = "v6"


class Param(str, Enum):
    """Session-level parameters, keyed by their exported name."""

    SLEEP_MIN_SECONDS = "sleepMinSeconds"
    SLEEP_MAX_SECONDS = "sleepMaxSeconds"
    BOM_REMOVING = "bomRemoving"


# --------------------------------------------------------------------------------------
# Validators
# --------------------------------------------------------------------------------------


def _is_str(value: Any) -> bool:
    return isinstance(value, str)


def _is_flag(value: Any) -> bool:
    # bool, or the 0/1 integers older callers pass
    return isinstance(value, bool) or (isinstance(value, int) and value in (0, 1))


def _is_seconds(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return value >= 0


def _is_verify_host(value: Any) -> bool:
    return isinstance(value, int) and value in (0, 1, 2)


def _is_post_body(value: Any) -> bool:
    if value is None or isinstance(value, (str, bytes)):
        return True
    if isinstance(value, Mapping):
        return bool(value) and all(isinstance(k, str) for k in value)
    return False


def _is_header_list(value: Any) -> bool:
    if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple)):
        return False
    for line in value:
        if not isinstance(line, str) or ":" not in line:
            return False
        # names must be plain ASCII tokens; values may carry any text
        name = line.partition(":")[0].strip()
        if not name or not name.isascii() or " " in name:
            return False
    return True


def _is_enum_of(enum_cls: type[Enum]) -> Callable[[Any], bool]:
    def check(value: Any) -> bool:
        try:
            enum_cls(value)
        except ValueError:
            return False
        return True

    return check


def _is_existing_file(value: Any) -> bool:
    return isinstance(value, (str, os.PathLike)) and os.path.isfile(value)


def _is_path(value: Any) -> bool:
    return isinstance(value, (str, os.PathLike))


def _is_callback(value: Any) -> bool:
    return value is None or callable(value)


VALIDATORS: dict[Option, Callable[[Any], bool]] = {
    Option.URL: _is_str,
    Option.POST: _is_flag,
    Option.POSTFIELDS: _is_post_body,
    Option.CUSTOMREQUEST: lambda v: v is None or (isinstance(v, str) and bool(v)),
    Option.HTTPHEADER: _is_header_list,
    Option.COOKIE: _is_str,
    Option.COOKIEJAR: lambda v: _is_path(v) and bool(str(v)),
    Option.COOKIEFILE: _is_path,
    Option.REFERER: _is_str,
    Option.USERAGENT: _is_str,
    Option.ENCODING: _is_str,
    Option.CONNECTTIMEOUT: _is_seconds,
    Option.TIMEOUT: _is_seconds,
    Option.PROXY: _is_str,
    Option.PROXYTYPE: _is_enum_of(ProxyType),
    Option.PROXYUSERNAME: _is_str,
    Option.PROXYPASSWORD: _is_str,
    Option.SSL_VERIFYPEER: _is_flag,
    Option.SSL_VERIFYHOST: _is_verify_host,
    Option.SSL_VERIFYSTATUS: _is_flag,
    Option.PROXY_SSL_VERIFYPEER: _is_flag,
    Option.PROXY_SSL_VERIFYHOST: _is_verify_host,
    Option.IPRESOLVE: _is_enum_of(IpResolve),
    Option.INTERFACE: _is_str,
    Option.AUTOREFERER: _is_flag,
    Option.FOLLOWLOCATION: _is_flag,
    Option.VERBOSE: _is_flag,
    Option.HEADER: _is_flag,
    Option.NOBODY: _is_flag,
    Option.RETURNTRANSFER: _is_flag,
    Option.CAINFO: _is_existing_file,
    Option.NOPROGRESS: _is_flag,
    Option.PROGRESSFUNCTION: _is_callback,
}


def is_valid(option: Option, value: Any) -> bool:
    check = VALIDATORS.get(option)
    return check is not None and check(value)


def coerce_option(key: Option | str) -> Option:
    """Resolve an Option member or its name; raises ValueError for unknown names."""
    if isinstance(key, Option):
        return key
    return Option(str(key).strip().upper())


def coerce_param(key: Param | str) -> Param:
    """Resolve a Param member or its exported name; raises ValueError otherwise."""
    if isinstance(key, Param):
        return key
    return Param(key)


__all__ = [
    "Option",
    "Info",
    "ProxyType",
    "IpResolve",
    "Param",
    "VALIDATORS",
    "is_valid",
    "coerce_option",
    "coerce_param",
]
