# tests/test_transfer_session.py
from __future__ import annotations

import contextlib
import types
from collections.abc import Iterator

import pytest

session_mod = pytest.importorskip("httphelper.transfer.session")
engine_mod = pytest.importorskip("httphelper.transfer.engine")
options_mod = pytest.importorskip("httphelper.transfer.options")
exceptions_mod = pytest.importorskip("httphelper.exceptions")

Option = options_mod.Option
Param = options_mod.Param
ConfigurationError = exceptions_mod.ConfigurationError


# -------------------------------- test utilities --------------------------------------


@contextlib.contextmanager
def fake_clock(monkeypatch) -> Iterator[types.SimpleNamespace]:
    """
    Freeze time and capture sleeps.

    - Overrides time.monotonic()/perf_counter()/time.time so the session sees our clock.
    - Overrides time.sleep(dt) to *advance* the frozen clock by dt and accumulate total slept time.
    """
    t = {"now": 1_000_000.0, "slept": 0.0}
    epoch0 = 1_700_000_000.0

    def monotonic():
        return t["now"]

    def time_time():
        return epoch0 + (t["now"] - 1_000_000.0)

    def sleep(dt):
        dt = float(dt)
        if dt <= 0:
            return
        t["slept"] += dt
        t["now"] += dt

    monkeypatch.setattr("time.monotonic", monotonic)
    monkeypatch.setattr("time.perf_counter", monotonic)
    monkeypatch.setattr("time.time", time_time)
    monkeypatch.setattr("time.sleep", sleep)

    ns = types.SimpleNamespace(
        now=lambda: t["now"],
        advance=lambda dt: t.__setitem__("now", t["now"] + float(dt)),
        slept=lambda: t["slept"],
        reset_slept=lambda: t.__setitem__("slept", 0.0),
    )
    yield ns


class CannedEngine(engine_mod.HttpxEngine):
    """Engine that validates options for real but returns a fixed result from perform()."""

    def __init__(self, result="ok", on_perform=None, info=None):
        super().__init__()
        self.result = result
        self.on_perform = on_perform
        self.info = info or {}
        self.performed = 0
        self.strip_bom = None

    def perform(self, progress=None, *, strip_bom=False):
        self.performed += 1
        self.strip_bom = strip_bom
        if self.on_perform is not None:
            self.on_perform()
        return self.result

    def getinfo(self, info):
        if info in self.info:
            return self.info[info]
        return super().getinfo(info)


@pytest.fixture
def session():
    s = session_mod.TransferSession(engine=CannedEngine())
    try:
        yield s
    finally:
        s.close()


# -------------------------------- construction ----------------------------------------


def test_defaults_are_recorded_as_options(session):
    opts = session.export_options()
    assert opts[Option.CONNECTTIMEOUT] == 10
    assert opts[Option.TIMEOUT] == 30
    assert Option.CAINFO in opts
    assert session.export_params() == {}


def test_missing_ca_bundle_fails_construction(monkeypatch, tmp_path):
    monkeypatch.setenv("TRANSFER_CA_BUNDLE", str(tmp_path / "missing.pem"))
    with pytest.raises(ConfigurationError):
        session_mod.TransferSession(engine=CannedEngine())


def test_setters_chain_and_latest_value_wins(session):
    returned = session.set_url("https://a.test/one").set_user_agent("UA/1").set_url(
        "https://a.test/two"
    )
    assert returned is session
    opts = session.export_options()
    assert opts[Option.URL] == "https://a.test/two"
    assert opts[Option.USERAGENT] == "UA/1"


def test_rejected_value_is_not_recorded(session):
    with pytest.raises(ConfigurationError):
        session.set_time_out(-1)
    with pytest.raises(ConfigurationError):
        session.set_http_header("X-Not-A-List: 1")
    opts = session.export_options()
    assert opts[Option.TIMEOUT] == 30
    assert Option.HTTPHEADER not in opts


def test_socks4_proxy_type_is_refused(session):
    session.set_proxy_type(options_mod.ProxyType.SOCKS5)
    with pytest.raises(ConfigurationError):
        session.set_proxy_type(options_mod.ProxyType.SOCKS4)
    assert session.export_options()[Option.PROXYTYPE] == options_mod.ProxyType.SOCKS5


def test_interface_must_be_an_address(session):
    session.set_interface("127.0.0.1")
    with pytest.raises(ConfigurationError):
        session.set_interface("eth0")
    assert session.export_options()[Option.INTERFACE] == "127.0.0.1"


def test_ca_info_requires_existing_file(session, tmp_path):
    with pytest.raises(ConfigurationError):
        session.set_ca_info(tmp_path / "nope.pem")
    bundle = tmp_path / "ca.pem"
    bundle.write_text("")
    session.set_ca_info(str(bundle))
    assert session.export_options()[Option.CAINFO] == str(bundle)


# -------------------------------- POST handling ---------------------------------------


@pytest.mark.parametrize("body", [None, "", "a=1&b=2", {"a": "1", "b": 2}])
def test_post_fields_accepts_valid_shapes(session, body):
    session.set_post_fields(body)
    assert session.export_options()[Option.POSTFIELDS] == body


@pytest.mark.parametrize("body", [{}, {1: "x"}, {"a": "1", 2: "b"}])
def test_post_fields_rejects_malformed_mappings(session, body):
    with pytest.raises(ConfigurationError):
        session.set_post_fields(body)
    assert Option.POSTFIELDS not in session.export_options()


def test_set_post_false_clears_body_and_custom_method(session):
    session.set_post(True).set_post_fields({"q": "x"}).set_delete(True)
    assert session.export_options()[Option.CUSTOMREQUEST] == "DELETE"

    session.set_post(False)
    opts = session.export_options()
    assert opts[Option.POST] is False
    assert Option.POSTFIELDS not in opts
    assert Option.CUSTOMREQUEST not in opts


def test_set_post_true_clears_custom_method_but_keeps_body(session):
    session.set_post_fields("raw").set_delete(True).set_post(True)
    opts = session.export_options()
    assert opts[Option.POSTFIELDS] == "raw"
    assert Option.CUSTOMREQUEST not in opts


# -------------------------------- TLS verification pairing ----------------------------


def test_ssl_no_verify_sets_peer_and_strict_host(session):
    session.set_ssl_no_verify(True)
    opts = session.export_options()
    assert opts[Option.SSL_VERIFYPEER] is True
    assert opts[Option.SSL_VERIFYHOST] == 2
    # httpx has no certificate-status check, so the step is skipped
    assert Option.SSL_VERIFYSTATUS not in opts

    session.set_ssl_no_verify(False)
    opts = session.export_options()
    assert opts[Option.SSL_VERIFYPEER] is False
    assert opts[Option.SSL_VERIFYHOST] == 0


def test_ssl_status_forwarded_when_engine_supports_it(monkeypatch, session):
    monkeypatch.setattr(engine_mod.HttpxEngine, "SUPPORTED_OPTIONS", frozenset(Option))
    session.set_ssl_no_verify(False)
    assert session.export_options()[Option.SSL_VERIFYSTATUS] is False


def test_proxy_ssl_no_verify_skipped_without_engine_support(monkeypatch, session):
    missing = {Option.PROXY_SSL_VERIFYPEER, Option.PROXY_SSL_VERIFYHOST}
    monkeypatch.setattr(
        engine_mod.HttpxEngine,
        "SUPPORTED_OPTIONS",
        frozenset(o for o in Option if o not in missing),
    )
    session.set_proxy_ssl_no_verify(False)
    opts = session.export_options()
    assert not missing & set(opts)


def test_proxy_ssl_no_verify_pairs_peer_and_host(session):
    session.set_proxy_ssl_no_verify(False)
    opts = session.export_options()
    assert opts[Option.PROXY_SSL_VERIFYPEER] is False
    assert opts[Option.PROXY_SSL_VERIFYHOST] == 0


def test_follow_location_is_forwarded(session):
    session.set_follow_location(True)
    assert session.export_options()[Option.FOLLOWLOCATION] is True


# -------------------------------- bulk import / export --------------------------------


def test_import_options_round_trip(session):
    session.set_url("https://a.test/?x=1").set_referer("https://ref.test/").set_verbose(True)
    exported = session.export_options()

    other = session_mod.TransferSession(engine=CannedEngine())
    other.set_user_agent("stale")
    other.import_options(exported)
    assert other.export_options() == exported
    assert Option.USERAGENT not in other.export_options()


def test_import_options_accepts_names(session):
    session.import_options({"URL": "https://a.test/", "timeout": 5})
    assert session.export_options() == {Option.URL: "https://a.test/", Option.TIMEOUT: 5}


def test_import_options_rejects_empty_and_unknown(session):
    with pytest.raises(ConfigurationError):
        session.import_options({})
    with pytest.raises(ConfigurationError):
        session.import_options({"NO_SUCH_OPTION": 1})
    with pytest.raises(ConfigurationError):
        session.import_options({Option.URL: 42})


def test_import_params_empty_and_unknown_fail(session):
    with pytest.raises(ConfigurationError):
        session.import_params({})
    with pytest.raises(ConfigurationError):
        session.import_params({"unknownField": 1})


def test_import_params_sets_bom_removing():
    engine = CannedEngine()
    s = session_mod.TransferSession(engine=engine)
    s.import_params({"bomRemoving": True})
    assert s.export_params() == {"bomRemoving": True}
    s.execute()
    assert engine.strip_bom is True


def test_import_params_pause_bounds(session):
    session.import_params({Param.SLEEP_MIN_SECONDS: 1, "sleepMaxSeconds": 3})
    assert session.export_params() == {"sleepMinSeconds": 1, "sleepMaxSeconds": 3}
    with pytest.raises(ConfigurationError):
        session.import_params({"sleepMinSeconds": 5, "sleepMaxSeconds": 2})


def test_set_pause_records_params_and_validates(session):
    session.set_pause(2, 4)
    assert session.export_params() == {"sleepMinSeconds": 2, "sleepMaxSeconds": 4}
    with pytest.raises(ConfigurationError):
        session.set_pause(4, 2)
    with pytest.raises(ConfigurationError):
        session.set_pause(-1, 2)


def test_rejected_import_params_leave_pause_untouched(monkeypatch):
    with fake_clock(monkeypatch) as clk:
        s = session_mod.TransferSession(engine=CannedEngine()).set_pause(1, 2)
        with pytest.raises(ConfigurationError):
            s.import_params({"sleepMinSeconds": 5})
        with pytest.raises(ConfigurationError):
            s.import_params({"sleepMaxSeconds": 0, "bomRemoving": True})
        with pytest.raises(ConfigurationError):
            s.import_params({"bomRemoving": "yes", "sleepMinSeconds": 0})

        assert s.export_params() == {"sleepMinSeconds": 1, "sleepMaxSeconds": 2}
        assert s.execute() == "ok"
        assert 1.0 <= clk.slept() <= 2.0


def test_import_params_merges_with_current_values(session):
    session.set_pause(1, 4)
    session.import_params({"sleepMinSeconds": 3})
    assert session.export_params() == {"sleepMinSeconds": 3, "sleepMaxSeconds": 4}


def test_rejected_import_options_keep_current_options(session):
    session.set_url("https://keep.test/")
    before = session.export_options()

    with pytest.raises(ConfigurationError):
        session.import_options({Option.URL: "https://new.test/", Option.TIMEOUT: -1})
    with pytest.raises(ConfigurationError):
        session.import_options({"URL": "https://new.test/", "PROXYTYPE": "socks4"})

    assert session.export_options() == before
    assert session._engine._options[Option.CAINFO] == before[Option.CAINFO]


# -------------------------------- execute: pacing / BOM / timing ----------------------


def test_pause_happens_before_transfer(monkeypatch):
    seen = {}
    with fake_clock(monkeypatch) as clk:
        engine = CannedEngine(on_perform=lambda: seen.setdefault("slept", clk.slept()))
        s = session_mod.TransferSession(engine=engine).set_pause(2, 2)
        s.execute()
    assert seen["slept"] == pytest.approx(2.0)
    assert engine.performed == 1


def test_pause_stays_within_bounds(monkeypatch):
    with fake_clock(monkeypatch) as clk:
        s = session_mod.TransferSession(engine=CannedEngine()).set_pause(2, 3)
        for _ in range(10):
            clk.reset_slept()
            s.execute()
            assert 2.0 <= clk.slept() <= 3.0


def test_no_pause_without_both_bounds(monkeypatch):
    with fake_clock(monkeypatch) as clk:
        s = session_mod.TransferSession(engine=CannedEngine())
        s.execute()
        s.set_pause(None, None)
        s.execute()
        assert clk.slept() == 0.0


def test_bom_removing_flag_reaches_the_engine():
    engine = CannedEngine(result="<html>")
    s = session_mod.TransferSession(engine=engine)
    s.execute()
    assert engine.strip_bom is False
    s.set_bom_removing(True)
    assert s.execute() == "<html>"
    assert engine.strip_bom is True
    assert s.export_params() == {"bomRemoving": True}


def test_bom_removing_leaves_failures_alone():
    s = session_mod.TransferSession(engine=CannedEngine(result=False)).set_bom_removing(True)
    assert s.execute() is False


def test_execution_time_brackets_the_transfer(monkeypatch):
    with fake_clock(monkeypatch) as clk:
        engine = CannedEngine(on_perform=lambda: clk.advance(1.5))
        s = session_mod.TransferSession(engine=engine).set_pause(1, 1)
        assert s.get_execution_time() == 0.0
        s.execute()
        snap = s.progress
        assert s.get_execution_time() == pytest.approx(snap.end_time - snap.start_time)
        assert s.get_execution_time() == pytest.approx(1.5)


# -------------------------------- diagnostics -----------------------------------------


def test_get_query_prefers_post_body(session):
    assert session.get_query() == ""
    session.set_url("https://a.test/search?q=hello+world&page=2")
    assert session.get_query() == "q=hello+world&page=2"
    session.set_post_fields({"a": "1", "b": "x y"})
    assert session.get_query() == "a=1&b=x+y"
    session.set_post(False)
    assert session.get_query() == "q=hello+world&page=2"


def test_download_speed_is_megabytes_rounded():
    info = {options_mod.Info.SPEED_DOWNLOAD: 1024 * 1024 * 2.5 + 123}
    s = session_mod.TransferSession(engine=CannedEngine(info=info))
    assert s.get_download_speed() == pytest.approx(2.5001)


def test_error_message_by_code():
    s = session_mod.TransferSession(engine=CannedEngine())
    assert s.get_error_message_by_code(28) == "Timeout was reached"
    assert s.get_error_message_by_code(9999) == "Unknown error"
    assert s.get_error_code() == 0


def test_parse_cookie_is_reachable_from_the_session():
    assert session_mod.TransferSession.parse_cookie("Set-Cookie: a=1\r\n") == "a=1"
