# httphelper/transfer/cookies.py
from __future__ import annotations

import logging
import os
import re
from http.cookiejar import LoadError, MozillaCookieJar
from urllib.parse import parse_qsl, quote_plus

import httpx

log = logging.getLogger(__name__)

_SET_COOKIE_RE = re.compile(r"^Set-Cookie:[ \t]*([^;\r\n]*)", re.IGNORECASE | re.MULTILINE)


def parse_cookie(header_text: str) -> str | None:
    """
    Collapse the Set-Cookie lines of a response header block into one Cookie value.

    Only the leading name=value pair of each line is kept (attributes after the
    first ';' are dropped). A cookie set twice keeps its last value.

    >>> parse_cookie("Set-Cookie: a=1; Path=/\\r\\nSet-Cookie: b=2; Path=/\\r\\n")
    'a=1; b=2'

    Returns None when the text has no Set-Cookie line.
    """
    matches = _SET_COOKIE_RE.findall(header_text or "")
    if not matches:
        return None

    cookies: dict[str, str] = {}
    for item in matches:
        for name, value in parse_qsl(item.strip(), keep_blank_values=True):
            cookies[name] = value

    return "; ".join(f"{quote_plus(name)}={quote_plus(value)}" for name, value in cookies.items())


# --------------------------------------------------------------------------------------
# Cookie files (Netscape format)
# --------------------------------------------------------------------------------------


def load_cookie_file(path: str | os.PathLike | None) -> httpx.Cookies:
    """
    Build a cookie store, seeded from a Netscape-format file when one is given.

    A missing or empty path just starts an empty store; an unreadable file is
    logged and ignored, the same way a missing one is.
    """
    jar = MozillaCookieJar()
    if path and os.path.isfile(path):
        try:
            jar.load(os.fspath(path), ignore_discard=True, ignore_expires=True)
        except (LoadError, OSError) as exc:
            log.warning("cookies: could not load %s: %s", path, exc)
    return httpx.Cookies(jar)


def save_cookie_jar(cookies: httpx.Cookies, path: str | os.PathLike) -> int:
    """Write every cookie in the store to a Netscape-format file. Returns the count."""
    jar = MozillaCookieJar(os.fspath(path))
    count = 0
    for cookie in cookies.jar:
        jar.set_cookie(cookie)
        count += 1
    jar.save(ignore_discard=True, ignore_expires=True)
    return count


__all__ = [
    "parse_cookie",
    "load_cookie_file",
    "save_cookie_jar",
]
