# httphelper/transfer/session.py
from __future__ import annotations

import os
import time
from collections.abc import Callable, Mapping
from typing import Any
from urllib.parse import urlencode, urlsplit

from .. import config
from ..exceptions import ConfigurationError
from . import pacing
from .cookies import parse_cookie
from .engine import HttpxEngine, ProgressCallback
from .options import Info, IpResolve, Option, Param, ProxyType, coerce_option, coerce_param
from .progress import ProgressSnapshot


class TransferSession:
    """
    Fluent wrapper around one transfer engine handle.

    Example:
        with TransferSession() as session:
            result = (
                session.set_post(False)
                .set_return(True)
                .set_header(False)
                .set_user_agent("Mozilla/5.0 (X11; Linux x86_64)")
                .set_url("https://www.example.com/search?q=hello+world")
                .execute()
            )
            if result is False:
                print(session.get_error_message())

    Every setter validates through the engine and raises ConfigurationError
    when the value is refused; accepted values are recorded in options.
    execute() never raises for transfer failures, it returns False.
    """

    def __init__(self, engine: HttpxEngine | None = None) -> None:
        settings = config.load_settings()
        self._engine = engine if engine is not None else HttpxEngine()
        self._options: dict[Option, Any] = {}
        self._params: dict[str, Any] = {}
        self._sleep_min_seconds: int | None = None
        self._sleep_max_seconds: int | None = None
        self._bom_removing = False
        self._progress = ProgressSnapshot()

        self.set_connect_time_out(settings.connect_timeout_sec)
        self.set_time_out(settings.timeout_sec)
        if not os.path.isfile(settings.ca_bundle):
            raise ConfigurationError(f"Root certificate bundle not found: {settings.ca_bundle}")
        self.set_ca_info(settings.ca_bundle)
        self._bom_removing = settings.bom_removing

    # ----------------------------------------------------------------------------------
    # Bulk export / import
    # ----------------------------------------------------------------------------------

    def export_options(self) -> dict[Option, Any]:
        return dict(self._options)

    def export_params(self) -> dict[str, Any]:
        return dict(self._params)

    def import_options(self, options: Mapping[Option | str, Any]) -> None:
        """
        Replace the whole option set; every entry is validated like a setter call.

        Nothing changes unless every entry is accepted.
        """
        if not options:
            raise ConfigurationError("No options to import")
        resolved: list[tuple[Option, Any]] = []
        for key, value in options.items():
            try:
                option = coerce_option(key)
            except ValueError as err:
                raise ConfigurationError(f"Unknown option {key!r}") from err
            if not self._engine.accepts(option, value):
                raise ConfigurationError(f"Could not set option {option.value} = {value!r}")
            resolved.append((option, value))

        self._engine.reset()
        self._options = {}
        for option, value in resolved:
            self._set_option(option, value)

    def import_params(self, params: Mapping[Param | str, Any]) -> None:
        """
        Set session parameters (pause bounds, BOM removing) by name.

        Parameters not named keep their current value. Nothing changes unless
        the merged result is valid.
        """
        if not params:
            raise ConfigurationError("No parameters to import")
        setters: dict[Param, Callable[[Any], Any]] = {
            Param.SLEEP_MIN_SECONDS: self._set_sleep_min_seconds,
            Param.SLEEP_MAX_SECONDS: self._set_sleep_max_seconds,
            Param.BOM_REMOVING: self.set_bom_removing,
        }
        resolved: dict[Param, Any] = {}
        for name, value in params.items():
            try:
                resolved[coerce_param(name)] = value
            except ValueError as err:
                raise ConfigurationError(f"Could not set parameter {name} = {value!r}") from err

        self._check_pause(
            resolved.get(Param.SLEEP_MIN_SECONDS, self._sleep_min_seconds),
            resolved.get(Param.SLEEP_MAX_SECONDS, self._sleep_max_seconds),
        )
        bom = resolved.get(Param.BOM_REMOVING, self._bom_removing)
        if not isinstance(bom, bool):
            raise ConfigurationError(f"BOM removing must be a bool; got {bom!r}")

        for param, value in resolved.items():
            setters[param](value)

    # ----------------------------------------------------------------------------------
    # Option plumbing
    # ----------------------------------------------------------------------------------

    def _set_option(self, option: Option, value: Any) -> None:
        if self._engine.setopt(option, value):
            self._options[option] = value
            return
        raise ConfigurationError(f"Could not set option {option.value} = {value!r}")

    def _unset_option(self, option: Option) -> None:
        self._engine.unsetopt(option)
        self._options.pop(option, None)

    # ----------------------------------------------------------------------------------
    # Setters
    # ----------------------------------------------------------------------------------

    def set_encoding(self, value: str) -> TransferSession:
        """Accept-Encoding to request; "" asks for every encoding the engine can decode."""
        self._set_option(Option.ENCODING, value)
        return self

    def set_connect_time_out(self, value: int | float) -> TransferSession:
        self._set_option(Option.CONNECTTIMEOUT, value)
        return self

    def set_time_out(self, value: int | float) -> TransferSession:
        self._set_option(Option.TIMEOUT, value)
        return self

    def set_http_header(self, value: list[str]) -> TransferSession:
        """Extra request headers as "Name: value" lines; they replace same-named defaults."""
        self._set_option(Option.HTTPHEADER, value)
        return self

    def set_url(self, value: str) -> TransferSession:
        self._set_option(Option.URL, value)
        return self

    def set_user_agent(self, value: str) -> TransferSession:
        self._set_option(Option.USERAGENT, value)
        return self

    def set_cookie(self, value: str) -> TransferSession:
        self._set_option(Option.COOKIE, value)
        return self

    def set_post(self, value: bool) -> TransferSession:
        """
        Switch between POST and GET.

        set_post(False) also drops any pending POST body. Both forms drop a
        custom method such as the one set_delete() installs.
        """
        self._set_option(Option.POST, value)
        if not value:
            self._unset_option(Option.POSTFIELDS)
        self._unset_option(Option.CUSTOMREQUEST)
        return self

    def set_post_fields(self, value: str | bytes | Mapping[str, Any] | None) -> TransferSession:
        """
        Set the POST body: a raw string, or a mapping sent form-encoded.

        An empty mapping, or one with non-string keys, is almost certainly a
        caller mistake and raises ConfigurationError.
        """
        if isinstance(value, Mapping):
            if not value:
                raise ConfigurationError("POST fields mapping is empty")
            bad = [k for k in value if not isinstance(k, str)]
            if bad:
                raise ConfigurationError(f"POST field names must be strings; got {bad!r}")
        self._set_option(Option.POSTFIELDS, value)
        return self

    def set_delete(self, value: bool) -> TransferSession:
        if value:
            self._set_option(Option.CUSTOMREQUEST, "DELETE")
        else:
            self._unset_option(Option.CUSTOMREQUEST)
        return self

    def set_referer(self, value: str) -> TransferSession:
        self._set_option(Option.REFERER, value)
        return self

    def set_return(self, value: bool) -> TransferSession:
        """Return the response from execute() instead of writing it to stdout."""
        self._set_option(Option.RETURNTRANSFER, value)
        return self

    def set_header(self, value: bool) -> TransferSession:
        """Include the response status line and headers in the result."""
        self._set_option(Option.HEADER, value)
        return self

    def set_no_body(self, value: bool) -> TransferSession:
        self._set_option(Option.NOBODY, value)
        return self

    def set_follow_location(self, value: bool) -> TransferSession:
        self._set_option(Option.FOLLOWLOCATION, value)
        return self

    def set_proxy(self, value: str) -> TransferSession:
        """Proxy address as "host:port" (scheme taken from the proxy type) or a full URL."""
        self._set_option(Option.PROXY, value)
        return self

    def set_proxy_type(self, value: ProxyType | str) -> TransferSession:
        self._set_option(Option.PROXYTYPE, value)
        return self

    def set_proxy_user(self, value: str) -> TransferSession:
        self._set_option(Option.PROXYUSERNAME, value)
        return self

    def set_proxy_password(self, value: str) -> TransferSession:
        self._set_option(Option.PROXYPASSWORD, value)
        return self

    def set_verbose(self, value: bool) -> TransferSession:
        self._set_option(Option.VERBOSE, value)
        return self

    def set_ssl_no_verify(self, value: bool) -> TransferSession:
        """
        Turn certificate checking on or off.

        Despite the name, True means verify: the peer certificate is checked
        and the host name must match it strictly. False disables both. The
        certificate-status (OCSP) check follows along when the engine has it.
        """
        self._set_option(Option.SSL_VERIFYPEER, value)
        self._set_option(Option.SSL_VERIFYHOST, 2 if value else 0)
        if self._engine.supports(Option.SSL_VERIFYSTATUS):
            self._set_option(Option.SSL_VERIFYSTATUS, value)
        return self

    def set_proxy_ssl_no_verify(self, value: bool) -> TransferSession:
        """Same as set_ssl_no_verify() for the connection to an HTTPS proxy."""
        if self._engine.supports(Option.PROXY_SSL_VERIFYPEER):
            self._set_option(Option.PROXY_SSL_VERIFYPEER, value)
        if self._engine.supports(Option.PROXY_SSL_VERIFYHOST):
            self._set_option(Option.PROXY_SSL_VERIFYHOST, 2 if value else 0)
        return self

    def set_ip_resolve(self, value: IpResolve | str) -> TransferSession:
        self._set_option(Option.IPRESOLVE, value)
        return self

    def set_interface(self, value: str) -> TransferSession:
        """Local address to send from."""
        self._set_option(Option.INTERFACE, value)
        return self

    def set_auto_referer(self, value: bool) -> TransferSession:
        self._set_option(Option.AUTOREFERER, value)
        return self

    def set_cookie_jar(self, value: str | os.PathLike) -> TransferSession:
        """File the collected cookies are written to when the session is closed."""
        self._set_option(Option.COOKIEJAR, value)
        return self

    def set_cookie_file(self, value: str | os.PathLike) -> TransferSession:
        """Read cookies from a Netscape-format file; "" just turns cookie handling on."""
        self._set_option(Option.COOKIEFILE, value)
        return self

    def set_ca_info(self, value: str | os.PathLike) -> TransferSession:
        if not os.path.isfile(value):
            raise ConfigurationError(f"Certificate file not found: {value}")
        self._set_option(Option.CAINFO, value)
        return self

    def set_progress_function(self, value: ProgressCallback | None) -> TransferSession:
        """
        Call value(download_total, downloaded) while the body is read.
        A truthy return aborts the transfer. None switches progress reporting off.
        """
        self._set_option(Option.PROGRESSFUNCTION, value)
        self._set_option(Option.NOPROGRESS, value is None)
        return self

    # ----------------------------------------------------------------------------------
    # Session parameters
    # ----------------------------------------------------------------------------------

    @staticmethod
    def _check_pause(min_seconds: Any, max_seconds: Any) -> None:
        reason = pacing.validate_bounds(min_seconds, max_seconds)
        if reason:
            raise ConfigurationError(reason)

    def _set_sleep_max_seconds(self, value: int | None) -> TransferSession:
        self._check_pause(None, value)
        self._sleep_max_seconds = value
        self._params[Param.SLEEP_MAX_SECONDS.value] = value
        return self

    def _set_sleep_min_seconds(self, value: int | None) -> TransferSession:
        self._check_pause(value, None)
        self._sleep_min_seconds = value
        self._params[Param.SLEEP_MIN_SECONDS.value] = value
        return self

    def set_pause(self, min_seconds: int | None, max_seconds: int | None) -> TransferSession:
        """Wait a random whole number of seconds in [min, max] before each execute()."""
        self._check_pause(min_seconds, max_seconds)
        self._set_sleep_min_seconds(min_seconds)
        self._set_sleep_max_seconds(max_seconds)
        return self

    def set_bom_removing(self, value: bool) -> TransferSession:
        """Strip a leading UTF-8 byte-order mark from text results."""
        if not isinstance(value, bool):
            raise ConfigurationError(f"BOM removing must be a bool; got {value!r}")
        self._bom_removing = value
        self._params[Param.BOM_REMOVING.value] = value
        return self

    # ----------------------------------------------------------------------------------
    # Execution
    # ----------------------------------------------------------------------------------

    def execute(self) -> str | bytes | bool:
        """
        Run the transfer.

        Returns the response text (bytes for binary or undecodable content),
        True when the response was written to stdout (set_return(False)), or
        False on failure. A HEAD request yields "", so compare against False
        rather than testing truthiness.
        """
        pacing.pause(self._sleep_min_seconds, self._sleep_max_seconds)

        self._progress.reset()
        self._progress.start_time = time.time()
        result = self._engine.perform(progress=self._on_progress, strip_bom=self._bom_removing)
        self._progress.end_time = time.time()
        return result

    def _on_progress(self, download_total: int, downloaded: int) -> bool:
        self._progress.downloaded_bytes = downloaded
        self._progress.download_time_check = time.time()
        callback = self._options.get(Option.PROGRESSFUNCTION)
        return bool(callback(download_total, downloaded)) if callback else False

    # ----------------------------------------------------------------------------------
    # Diagnostics
    # ----------------------------------------------------------------------------------

    @property
    def progress(self) -> ProgressSnapshot:
        return self._progress

    def get_query(self) -> str:
        """The POST body if one is set, else the query string of the URL, else ""."""
        fields = self._options.get(Option.POSTFIELDS)
        if isinstance(fields, Mapping):
            return urlencode(fields)
        if isinstance(fields, bytes):
            return fields.decode("utf-8", errors="replace")
        if fields is not None:
            return fields
        url = self._options.get(Option.URL)
        return urlsplit(url).query if url else ""

    def get_connection_time(self) -> float:
        return self._engine.getinfo(Info.CONNECT_TIME)

    def get_total_time(self) -> float:
        return self._engine.getinfo(Info.TOTAL_TIME)

    def get_local_ip(self) -> str:
        return self._engine.getinfo(Info.LOCAL_IP)

    def get_local_port(self) -> int:
        return self._engine.getinfo(Info.LOCAL_PORT)

    def get_download_speed(self) -> float:
        """Average download speed of the last transfer in megabytes per second."""
        return round(self._engine.getinfo(Info.SPEED_DOWNLOAD) / 1024**2, 4)

    def get_http_code(self) -> int:
        return self._engine.getinfo(Info.HTTP_CODE)

    def get_error_code(self) -> int:
        """Code of the last error, or 0 if the last transfer succeeded."""
        return self._engine.errno()

    def get_error_message(self) -> str:
        return self._engine.error()

    def get_error_message_by_code(self, code: int) -> str:
        return self._engine.strerror(code)

    def get_execution_time(self) -> float:
        """Seconds between the start and end of the last execute(); 0.0 before the first."""
        return self._progress.elapsed

    @staticmethod
    def parse_cookie(header_text: str) -> str | None:
        return parse_cookie(header_text)

    # ----------------------------------------------------------------------------------
    # Lifecycle
    # ----------------------------------------------------------------------------------

    def close(self) -> None:
        self._engine.close()

    def __enter__(self) -> TransferSession:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = [
    "TransferSession",
]
