# httphelper/transfer/engine.py
from __future__ import annotations

import codecs
import ipaddress
import logging
import os
import ssl
import sys
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import certifi
import httpx

from .. import config
from .cookies import load_cookie_file, save_cookie_jar
from .errors import ErrorCode, classify, describe, strerror
from .options import Info, IpResolve, Option, ProxyType, is_valid

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], Any]

# --------------------------------------------------------------------------------------
# Results
# --------------------------------------------------------------------------------------


@dataclass
class TransferInfo:
    http_code: int = 0
    total_time: float = 0.0
    connect_time: float = 0.0
    local_ip: str = ""
    local_port: int = 0
    size_download: int = 0
    speed_download: float = 0.0  # bytes per second
    effective_url: str = ""


class TransferAborted(Exception):
    """Raised inside a transfer when the progress callback asks to stop."""


# --------------------------------------------------------------------------------------
# Helpers
# --------------------------------------------------------------------------------------


def _is_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def _limit(value: Any) -> float | None:
    # 0 means "no limit", as with the classic transfer option tables
    if not value:
        return None
    return float(value)


def _header_block(response: httpx.Response) -> str:
    status = f"{response.http_version} {response.status_code} {response.reason_phrase}".rstrip()
    # raw keeps the header names as the server sent them
    lines = [status] + [
        f"{k.decode('latin-1')}: {v.decode('latin-1')}" for k, v in response.headers.raw
    ]
    return "\r\n".join(lines) + "\r\n\r\n"


_TEXT_SUBTYPES = frozenset({"json", "xml", "javascript", "x-javascript", "x-www-form-urlencoded"})


def _is_text(response: httpx.Response) -> bool:
    content_type = response.headers.get("Content-Type")
    if not content_type:
        return True
    mime, _, params = content_type.partition(";")
    mime = mime.strip().lower()
    if mime.startswith("text/") or "charset=" in params.lower():
        return True
    subtype = mime.partition("/")[2]
    return subtype.rpartition("+")[2] in _TEXT_SUBTYPES


def _render(head: str, body: bytes, response: httpx.Response) -> str | bytes:
    """Text bodies decode with their declared charset; everything else stays bytes."""
    if _is_text(response):
        encoding = response.charset_encoding or "utf-8"
        try:
            return head + body.decode(encoding)
        except (LookupError, UnicodeDecodeError):
            log.debug("body is not valid %s; returning bytes", encoding)
    return head.encode("latin-1", errors="replace") + body


def _write_stdout(data: bytes) -> None:
    sys.stdout.flush()
    buffer = getattr(sys.stdout, "buffer", None)
    if buffer is None:
        # text-only stream (io.StringIO and friends)
        sys.stdout.write(data.decode("utf-8", errors="replace"))
        sys.stdout.flush()
        return
    buffer.write(data)
    buffer.flush()


class _ConnectTrace:
    """httpcore trace hook: records when the TCP connect finished and the local address."""

    def __init__(self, started: float) -> None:
        self.started = started
        self.connect_time = 0.0
        self.client_addr: tuple | None = None

    def __call__(self, event_name: str, info: dict) -> None:
        if event_name != "connection.connect_tcp.complete":
            return
        self.connect_time = time.perf_counter() - self.started
        stream = info.get("return_value")
        if stream is not None:
            self.client_addr = stream.get_extra_info("client_addr")


# --------------------------------------------------------------------------------------
# Engine
# --------------------------------------------------------------------------------------


class HttpxEngine:
    """
    Option-table transfer engine on top of httpx.

    Options are validated and stored by setopt(); nothing touches the network
    until perform(), which builds a client for that one transfer from the
    current table. perform() never raises for transport failures: it returns
    False and keeps the code/message for errno()/error().

    Cookies picked up while COOKIEFILE or COOKIEJAR is set live as long as the
    engine, across perform() calls and reset().
    """

    SUPPORTED_OPTIONS: frozenset[Option] = frozenset(
        opt for opt in Option if opt is not Option.SSL_VERIFYSTATUS  # no OCSP stapling in httpx
    )
    SUPPORTED_PROXY_TYPES: frozenset[ProxyType] = frozenset(
        {ProxyType.HTTP, ProxyType.HTTPS, ProxyType.SOCKS5}
    )

    def __init__(self, *, max_redirects: int | None = None, chunk_size: int | None = None) -> None:
        settings = config.load_settings()
        self.max_redirects = settings.max_redirects if max_redirects is None else max_redirects
        self.chunk_size = settings.chunk_size if chunk_size is None else chunk_size
        self._options: dict[Option, Any] = {}
        self._cookies: httpx.Cookies | None = None
        self._info = TransferInfo()
        self._errno = ErrorCode.OK
        self._error = ""
        self._closed = False

    # ---- option table ----------------------------------------------------------------

    def supports(self, option: Option) -> bool:
        return option in self.SUPPORTED_OPTIONS

    def accepts(self, option: Option, value: Any) -> bool:
        """Whether setopt() would take this value. Changes nothing."""
        if self._closed or not self.supports(option) or not is_valid(option, value):
            return False
        if option is Option.PROXYTYPE and ProxyType(value) not in self.SUPPORTED_PROXY_TYPES:
            return False
        if option is Option.INTERFACE and not _is_ip(value):
            return False
        return True

    def setopt(self, option: Option, value: Any) -> bool:
        """Store one option. Returns False when the value is not acceptable."""
        if not self.accepts(option, value):
            return False

        if option is Option.COOKIEFILE:
            loaded = load_cookie_file(value)
            if self._cookies is None:
                self._cookies = loaded
            else:
                for cookie in loaded.jar:
                    self._cookies.jar.set_cookie(cookie)
        elif option is Option.COOKIEJAR and self._cookies is None:
            self._cookies = httpx.Cookies()

        self._options[option] = value
        return True

    def unsetopt(self, option: Option) -> None:
        self._options.pop(option, None)

    def reset(self) -> None:
        """Forget every option. The cookie store and last results stay."""
        self._options.clear()

    # ---- transfer --------------------------------------------------------------------

    def perform(
        self, progress: ProgressCallback | None = None, *, strip_bom: bool = False
    ) -> str | bytes | bool:
        """
        Run one transfer with the current options.

        Returns the response (with header blocks when HEADER is set), True when
        RETURNTRANSFER is off and the raw bytes went to stdout, or False on
        failure. Text content types come back as str; anything else, or text
        that does not decode, comes back as the untouched bytes.

        strip_bom drops a leading UTF-8 byte-order mark from a returned body
        before it is decoded.
        """
        self._info = TransferInfo()
        self._errno, self._error = ErrorCode.OK, ""

        if self._closed:
            return self._fail(ErrorCode.FAILED_INIT, "Transfer handle is closed")
        url = self._options.get(Option.URL)
        if not url:
            return self._fail(ErrorCode.URL_MALFORMAT, "No URL set")

        try:
            client = self._build_client()
        except (ssl.SSLError, OSError) as exc:
            return self._fail(ErrorCode.SSL_CACERT_BADFILE, describe(exc, ErrorCode.SSL_CACERT_BADFILE))
        except ValueError as exc:
            # httpx.Proxy rejects unknown proxy schemes with ValueError
            return self._fail(
                ErrorCode.COULDNT_RESOLVE_PROXY, describe(exc, ErrorCode.COULDNT_RESOLVE_PROXY)
            )

        started = time.perf_counter()
        total = _limit(self._options.get(Option.TIMEOUT))
        deadline = started + total if total is not None else None
        trace = _ConnectTrace(started)
        chain: list[httpx.Response] = []
        try:
            with client:
                try:
                    body = self._transfer(
                        client, url, trace, chain, self._progress_callback(progress), deadline
                    )
                finally:
                    self._keep_cookies(client)
        except TransferAborted:
            return self._fail(ErrorCode.ABORTED_BY_CALLBACK, strerror(ErrorCode.ABORTED_BY_CALLBACK))
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            code = classify(exc)
            return self._fail(code, describe(exc, code))
        finally:
            self._record_info(started, trace, chain)

        self._info.size_download = len(body)
        if self._info.total_time > 0:
            self._info.speed_download = len(body) / self._info.total_time

        head = ""
        if self._options.get(Option.HEADER):
            head = "".join(_header_block(r) for r in chain)

        if not self._options.get(Option.RETURNTRANSFER):
            try:
                _write_stdout(head.encode("latin-1", errors="replace") + body)
            except OSError as exc:
                return self._fail(ErrorCode.WRITE_ERROR, describe(exc, ErrorCode.WRITE_ERROR))
            return True

        if strip_bom and not head and body.startswith(codecs.BOM_UTF8):
            body = body[len(codecs.BOM_UTF8):]
        return _render(head, body, chain[-1])

    # ---- introspection ---------------------------------------------------------------

    def getinfo(self, info: Info) -> Any:
        mapping = {
            Info.HTTP_CODE: self._info.http_code,
            Info.TOTAL_TIME: self._info.total_time,
            Info.CONNECT_TIME: self._info.connect_time,
            Info.LOCAL_IP: self._info.local_ip,
            Info.LOCAL_PORT: self._info.local_port,
            Info.SIZE_DOWNLOAD: self._info.size_download,
            Info.SPEED_DOWNLOAD: self._info.speed_download,
            Info.EFFECTIVE_URL: self._info.effective_url,
        }
        return mapping[Info(info)]

    def errno(self) -> int:
        return int(self._errno)

    def error(self) -> str:
        return self._error

    @staticmethod
    def strerror(code: int) -> str:
        return strerror(code)

    # ---- lifecycle -------------------------------------------------------------------

    def close(self) -> None:
        """Release the handle, writing the cookie jar first when one is configured."""
        if self._closed:
            return
        self._closed = True
        jar_path = self._options.get(Option.COOKIEJAR)
        if jar_path and self._cookies is not None:
            try:
                count = save_cookie_jar(self._cookies, jar_path)
                log.debug("cookies: wrote %d cookie(s) to %s", count, jar_path)
            except OSError as exc:
                log.warning("cookies: could not write %s: %s", jar_path, exc)

    # ----------------------------------------------------------------------------------
    # Internals
    # ----------------------------------------------------------------------------------

    def _fail(self, code: ErrorCode, message: str) -> bool:
        self._errno, self._error = code, message
        log.debug("transfer failed: code=%d message=%s", int(code), message)
        return False

    def _progress_callback(self, override: ProgressCallback | None) -> ProgressCallback | None:
        if self._options.get(Option.NOPROGRESS, True):
            return None
        return override or self._options.get(Option.PROGRESSFUNCTION)

    def _build_client(self) -> httpx.Client:
        transport = httpx.HTTPTransport(
            verify=self._ssl_context(Option.SSL_VERIFYPEER, Option.SSL_VERIFYHOST),
            proxy=self._proxy(),
            local_address=self._local_address(),
            retries=0,
        )
        hooks = {"request": [_log_request], "response": [_log_response]}
        return httpx.Client(
            transport=transport,
            timeout=self._timeout(),
            cookies=self._cookies,
            follow_redirects=False,
            event_hooks=hooks if self._options.get(Option.VERBOSE) else None,
        )

    def _ssl_context(self, peer: Option, host: Option) -> ssl.SSLContext:
        cafile = self._options.get(Option.CAINFO)
        ctx = ssl.create_default_context(cafile=os.fspath(cafile) if cafile else certifi.where())
        verify_peer = bool(self._options.get(peer, True))
        verify_host = int(self._options.get(host, 2))
        if not verify_peer or verify_host == 0:
            ctx.check_hostname = False
        if not verify_peer:
            ctx.verify_mode = ssl.CERT_NONE
        return ctx

    def _proxy(self) -> httpx.Proxy | None:
        address = self._options.get(Option.PROXY)
        if not address:
            return None
        if "://" not in address:
            scheme = ProxyType(self._options.get(Option.PROXYTYPE, ProxyType.HTTP)).value
            address = f"{scheme}://{address}"

        user = self._options.get(Option.PROXYUSERNAME)
        auth = (user, self._options.get(Option.PROXYPASSWORD) or "") if user else None
        ssl_context = None
        if address.startswith("https://"):
            ssl_context = self._ssl_context(Option.PROXY_SSL_VERIFYPEER, Option.PROXY_SSL_VERIFYHOST)
        return httpx.Proxy(address, auth=auth, ssl_context=ssl_context)

    def _local_address(self) -> str | None:
        interface = self._options.get(Option.INTERFACE)
        if interface:
            return interface
        resolve = IpResolve(self._options.get(Option.IPRESOLVE, IpResolve.WHATEVER))
        if resolve is IpResolve.V4:
            return "0.0.0.0"
        if resolve is IpResolve.V6:
            return "::"
        return None

    def _timeout(self) -> httpx.Timeout:
        total = _limit(self._options.get(Option.TIMEOUT))
        if Option.CONNECTTIMEOUT in self._options:
            connect = _limit(self._options[Option.CONNECTTIMEOUT])
        else:
            connect = total
        if total is not None and connect is not None:
            connect = min(connect, total)
        return httpx.Timeout(total, connect=connect)

    def _method(self) -> str:
        custom = self._options.get(Option.CUSTOMREQUEST)
        if custom:
            return custom.upper()
        if self._options.get(Option.NOBODY):
            return "HEAD"
        if self._options.get(Option.POST) or self._options.get(Option.POSTFIELDS) is not None:
            return "POST"
        return "GET"

    def _headers(self) -> list[tuple[str, bytes]]:
        base: dict[str, str] = {}
        if self._options.get(Option.USERAGENT):
            base["User-Agent"] = self._options[Option.USERAGENT]
        if self._options.get(Option.REFERER):
            base["Referer"] = self._options[Option.REFERER]
        if self._options.get(Option.COOKIE):
            base["Cookie"] = self._options[Option.COOKIE]
        # "" keeps httpx's own Accept-Encoding (every encoding it can decode)
        if self._options.get(Option.ENCODING):
            base["Accept-Encoding"] = self._options[Option.ENCODING]

        custom: list[tuple[str, str]] = []
        for line in self._options.get(Option.HTTPHEADER) or []:
            name, _, value = line.partition(":")
            custom.append((name.strip(), value.strip()))
        overridden = {name.lower() for name, _ in custom}
        merged = [(k, v) for k, v in base.items() if k.lower() not in overridden] + custom
        # values go out as UTF-8 bytes; httpx would otherwise insist on ASCII
        return [(k, v.encode("utf-8")) for k, v in merged]

    def _transfer(
        self,
        client: httpx.Client,
        url: str,
        trace: _ConnectTrace,
        chain: list[httpx.Response],
        progress: ProgressCallback | None,
        deadline: float | None,
    ) -> bytes:
        method = self._method()
        fields = self._options.get(Option.POSTFIELDS)
        content = data = None
        if fields is not None and method not in ("GET", "HEAD"):
            if isinstance(fields, Mapping):
                data = dict(fields)
            else:
                content = fields

        request = client.build_request(
            method,
            url,
            headers=self._headers(),
            content=content,
            data=data,
            extensions={"trace": trace},
        )
        follow = bool(self._options.get(Option.FOLLOWLOCATION))
        auto_referer = bool(self._options.get(Option.AUTOREFERER))

        while True:
            response = client.send(request, stream=True, follow_redirects=False)
            chain.append(response)
            try:
                body = self._read_body(response, progress, deadline)
            finally:
                response.close()

            if not follow or response.next_request is None:
                return body
            if len(chain) > self.max_redirects:
                raise httpx.TooManyRedirects(
                    f"Maximum ({self.max_redirects}) redirects followed", request=request
                )
            self._check_deadline(deadline, request)
            request = response.next_request
            if auto_referer:
                request.headers["Referer"] = str(response.url)

    def _read_body(
        self,
        response: httpx.Response,
        progress: ProgressCallback | None,
        deadline: float | None,
    ) -> bytes:
        try:
            expected = int(response.headers.get("Content-Length") or 0)
        except ValueError:
            expected = 0
        chunks: list[bytes] = []
        for chunk in response.iter_bytes(chunk_size=self.chunk_size):
            chunks.append(chunk)
            self._check_deadline(deadline, response.request)
            if progress is not None and progress(expected, response.num_bytes_downloaded):
                raise TransferAborted()
        return b"".join(chunks)

    def _check_deadline(self, deadline: float | None, request: httpx.Request) -> None:
        # httpx timeouts are per read/connect; TIMEOUT bounds the whole transfer
        if deadline is None or time.perf_counter() <= deadline:
            return
        raise httpx.ReadTimeout(
            f"Operation timed out after {self._options[Option.TIMEOUT]} seconds", request=request
        )

    def _keep_cookies(self, client: httpx.Client) -> None:
        if self._cookies is None:
            return
        for cookie in client.cookies.jar:
            self._cookies.jar.set_cookie(cookie)

    def _record_info(
        self, started: float, trace: _ConnectTrace, chain: list[httpx.Response]
    ) -> None:
        self._info.total_time = time.perf_counter() - started
        self._info.connect_time = trace.connect_time
        if trace.client_addr:
            self._info.local_ip = str(trace.client_addr[0])
            self._info.local_port = int(trace.client_addr[1])
        if chain:
            self._info.http_code = chain[-1].status_code
            self._info.effective_url = str(chain[-1].url)


# --------------------------------------------------------------------------------------
# Verbose tracing
# --------------------------------------------------------------------------------------


def _log_request(request: httpx.Request) -> None:
    log.info("> %s %s", request.method, request.url)
    for name, value in request.headers.multi_items():
        log.info("> %s: %s", name, value)


def _log_response(response: httpx.Response) -> None:
    log.info("< %s %d %s", response.http_version, response.status_code, response.reason_phrase)
    for name, value in response.headers.multi_items():
        log.info("< %s: %s", name, value)


__all__ = [
    "HttpxEngine",
    "TransferInfo",
    "TransferAborted",
]
