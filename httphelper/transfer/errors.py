# httphelper/transfer/errors.py
"""
Transfer error codes.

Numbering follows the libcurl easy-interface codes so that codes persisted
or logged by older callers keep their meaning. ``classify`` maps an httpx
exception (and whatever it wraps) onto one of these codes.
"""

from __future__ import annotations

import socket
import ssl
from enum import IntEnum

import httpx


class ErrorCode(IntEnum):
    OK = 0
    UNSUPPORTED_PROTOCOL = 1
    FAILED_INIT = 2
    URL_MALFORMAT = 3
    COULDNT_RESOLVE_PROXY = 5
    COULDNT_RESOLVE_HOST = 6
    COULDNT_CONNECT = 7
    WRITE_ERROR = 23
    READ_ERROR = 26
    OPERATION_TIMEDOUT = 28
    SSL_CONNECT_ERROR = 35
    ABORTED_BY_CALLBACK = 42
    TOO_MANY_REDIRECTS = 47
    GOT_NOTHING = 52
    SEND_ERROR = 55
    RECV_ERROR = 56
    PEER_FAILED_VERIFICATION = 60
    BAD_CONTENT_ENCODING = 61
    SSL_CACERT_BADFILE = 77
    PROXY = 97


_MESSAGES: dict[int, str] = {
    ErrorCode.OK: "No error",
    ErrorCode.UNSUPPORTED_PROTOCOL: "Unsupported protocol",
    ErrorCode.FAILED_INIT: "Failed initialization",
    ErrorCode.URL_MALFORMAT: "URL using bad/illegal format or missing URL",
    ErrorCode.COULDNT_RESOLVE_PROXY: "Couldn't resolve proxy name",
    ErrorCode.COULDNT_RESOLVE_HOST: "Couldn't resolve host name",
    ErrorCode.COULDNT_CONNECT: "Couldn't connect to server",
    ErrorCode.WRITE_ERROR: "Failed writing received data to disk/application",
    ErrorCode.READ_ERROR: "Failed to open/read local data from file/application",
    ErrorCode.OPERATION_TIMEDOUT: "Timeout was reached",
    ErrorCode.SSL_CONNECT_ERROR: "SSL connect error",
    ErrorCode.ABORTED_BY_CALLBACK: "Operation was aborted by an application callback",
    ErrorCode.TOO_MANY_REDIRECTS: "Number of redirects hit maximum amount",
    ErrorCode.GOT_NOTHING: "Server returned nothing (no headers, no data)",
    ErrorCode.SEND_ERROR: "Failed sending data to the peer",
    ErrorCode.RECV_ERROR: "Failure when receiving data from the peer",
    ErrorCode.PEER_FAILED_VERIFICATION: "SSL peer certificate or SSH remote key was not OK",
    ErrorCode.BAD_CONTENT_ENCODING: "Unrecognized or bad HTTP Content or Transfer-Encoding",
    ErrorCode.SSL_CACERT_BADFILE: "Problem with the SSL CA cert (path? access rights?)",
    ErrorCode.PROXY: "Proxy handshake error",
}

# Substrings seen in resolver errors across platforms (glibc, macOS, Windows)
_RESOLVE_HINTS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated with hostname",
)


def strerror(code: int) -> str:
    """Human-readable text for an error code; unknown codes get a generic text."""
    return _MESSAGES.get(int(code), "Unknown error")


def _causes(exc: BaseException):
    seen: set[int] = set()
    cur: BaseException | None = exc
    while cur is not None and id(cur) not in seen:
        seen.add(id(cur))
        yield cur
        cur = cur.__cause__ or cur.__context__


def _classify_connect(exc: BaseException) -> ErrorCode:
    for cause in _causes(exc):
        if isinstance(cause, ssl.SSLCertVerificationError):
            return ErrorCode.PEER_FAILED_VERIFICATION
        if isinstance(cause, ssl.SSLError):
            return ErrorCode.SSL_CONNECT_ERROR
        if isinstance(cause, socket.gaierror):
            return ErrorCode.COULDNT_RESOLVE_HOST

    text = str(exc).lower()
    if "certificate verify failed" in text:
        return ErrorCode.PEER_FAILED_VERIFICATION
    if "ssl" in text or "tls" in text:
        return ErrorCode.SSL_CONNECT_ERROR
    if any(hint in text for hint in _RESOLVE_HINTS):
        return ErrorCode.COULDNT_RESOLVE_HOST
    return ErrorCode.COULDNT_CONNECT


def classify(exc: BaseException) -> ErrorCode:
    """Map an exception raised during a transfer onto an ErrorCode."""
    if isinstance(exc, httpx.TimeoutException):
        return ErrorCode.OPERATION_TIMEDOUT
    if isinstance(exc, httpx.UnsupportedProtocol):
        return ErrorCode.UNSUPPORTED_PROTOCOL
    if isinstance(exc, httpx.InvalidURL):
        return ErrorCode.URL_MALFORMAT
    if isinstance(exc, httpx.TooManyRedirects):
        return ErrorCode.TOO_MANY_REDIRECTS
    if isinstance(exc, httpx.DecodingError):
        return ErrorCode.BAD_CONTENT_ENCODING
    if isinstance(exc, httpx.ProxyError):
        return ErrorCode.PROXY
    if isinstance(exc, httpx.ConnectError):
        return _classify_connect(exc)
    if isinstance(exc, httpx.RemoteProtocolError):
        if "without sending" in str(exc).lower():
            return ErrorCode.GOT_NOTHING
        return ErrorCode.RECV_ERROR
    if isinstance(exc, httpx.WriteError):
        return ErrorCode.SEND_ERROR
    if isinstance(exc, httpx.ReadError):
        return ErrorCode.RECV_ERROR
    if isinstance(exc, httpx.TransportError):
        return ErrorCode.COULDNT_CONNECT
    if isinstance(exc, ssl.SSLError):
        return ErrorCode.SSL_CACERT_BADFILE
    return ErrorCode.RECV_ERROR


def describe(exc: BaseException, code: ErrorCode) -> str:
    """Error text for the last failure: the exception detail, or the generic text."""
    detail = str(exc).strip()
    return detail or strerror(code)


__all__ = [
    "ErrorCode",
    "strerror",
    "classify",
    "describe",
]
