from unittest.mock import MagicMock

import pytest

from servicekit import (
    BreakerOpenError,
    BreakerRegistry,
    BreakerSettings,
    BreakerTimeoutError,
    HTTPClient,
    Method,
    RawResponse,
    ResponseError,
)


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


SMALL = BreakerSettings(
    timeout_ms=1000,
    max_concurrent_requests=10,
    error_percent_threshold=50,
    request_volume_threshold=4,
    sleep_window_ms=5000,
    rolling_window_ms=10000,
)


def _fail():
    raise RuntimeError("upstream down")


def _trip(registry, name="svc"):
    for _ in range(SMALL.request_volume_threshold):
        with pytest.raises(RuntimeError):
            registry.execute(name, _fail)


def test_opens_after_error_threshold_and_rejects_without_calling():
    registry = BreakerRegistry(clock=FakeClock())
    registry.configure("svc", SMALL)
    _trip(registry)
    assert registry.state("svc") == "open"

    fn = MagicMock(return_value=1)
    with pytest.raises(BreakerOpenError):
        registry.execute("svc", fn)
    fn.assert_not_called()


def test_stays_closed_below_request_volume():
    registry = BreakerRegistry(clock=FakeClock())
    registry.configure("svc", SMALL)
    for _ in range(SMALL.request_volume_threshold - 1):
        with pytest.raises(RuntimeError):
            registry.execute("svc", _fail)
    assert registry.state("svc") == "closed"
    assert registry.execute("svc", lambda: "ok") == "ok"


def test_stays_closed_below_error_percentage():
    registry = BreakerRegistry(clock=FakeClock())
    registry.configure("svc", SMALL)
    for _ in range(3):
        registry.execute("svc", lambda: None)
    with pytest.raises(RuntimeError):
        registry.execute("svc", _fail)
    assert registry.get_stats("svc")["error_percentage"] == 25.0  # noqa: PLR2004
    assert registry.state("svc") == "closed"


def test_opens_when_successes_fill_window_at_threshold():
    registry = BreakerRegistry(clock=FakeClock())
    registry.configure("svc", BreakerSettings())
    for _ in range(4):
        with pytest.raises(RuntimeError):
            registry.execute("svc", _fail)
    for _ in range(16):
        registry.execute("svc", lambda: None)
    assert registry.state("svc") == "open"

    fn = MagicMock(return_value=1)
    with pytest.raises(BreakerOpenError):
        registry.execute("svc", fn)
    fn.assert_not_called()


class _Abort(BaseException):
    pass


def _abort():
    raise _Abort()


def test_base_exception_releases_slot():
    registry = BreakerRegistry(clock=FakeClock())
    registry.configure("svc", BreakerSettings(max_concurrent_requests=1))
    with pytest.raises(_Abort):
        registry.execute("svc", _abort)
    assert registry.get_stats("svc")["in_flight"] == 0
    assert registry.execute("svc", lambda: "next") == "next"


def test_base_exception_while_half_open_reopens_circuit():
    clock = FakeClock()
    registry = BreakerRegistry(clock=clock)
    registry.configure("svc", SMALL)
    _trip(registry)
    clock.now += 6
    with pytest.raises(_Abort):
        registry.execute("svc", _abort)
    assert registry.state("svc") == "open"
    clock.now += 6
    assert registry.execute("svc", lambda: "probe") == "probe"
    assert registry.state("svc") == "closed"


def test_old_outcomes_leave_the_window():
    clock = FakeClock()
    registry = BreakerRegistry(clock=clock)
    registry.configure("svc", SMALL)
    for _ in range(3):
        with pytest.raises(RuntimeError):
            registry.execute("svc", _fail)
    clock.now += 11
    with pytest.raises(RuntimeError):
        registry.execute("svc", _fail)
    assert registry.state("svc") == "closed"
    assert registry.get_stats("svc")["requests"] == 1


def test_half_open_probe_success_closes():
    clock = FakeClock()
    registry = BreakerRegistry(clock=clock)
    registry.configure("svc", SMALL)
    _trip(registry)
    clock.now += 4
    with pytest.raises(BreakerOpenError):
        registry.execute("svc", lambda: "early")
    clock.now += 2
    assert registry.execute("svc", lambda: "probe") == "probe"
    assert registry.state("svc") == "closed"


def test_half_open_probe_failure_reopens():
    clock = FakeClock()
    registry = BreakerRegistry(clock=clock)
    registry.configure("svc", SMALL)
    _trip(registry)
    clock.now += 6
    with pytest.raises(RuntimeError):
        registry.execute("svc", _fail)
    assert registry.state("svc") == "open"
    with pytest.raises(BreakerOpenError):
        registry.execute("svc", lambda: None)


def test_only_one_probe_while_half_open():
    clock = FakeClock()
    registry = BreakerRegistry(clock=clock)
    registry.configure("svc", SMALL)
    _trip(registry)
    clock.now += 6

    def _probe():
        with pytest.raises(BreakerOpenError):
            registry.execute("svc", lambda: "second")
        return "first"

    assert registry.execute("svc", _probe) == "first"
    assert registry.state("svc") == "closed"


def test_max_concurrency_rejects():
    registry = BreakerRegistry(clock=FakeClock())
    registry.configure("svc", BreakerSettings(max_concurrent_requests=1))

    def _outer():
        with pytest.raises(BreakerOpenError):
            registry.execute("svc", lambda: "inner")
        return "outer"

    assert registry.execute("svc", _outer) == "outer"
    assert registry.get_stats("svc")["in_flight"] == 0


def test_slow_call_counts_as_timeout():
    clock = FakeClock()
    registry = BreakerRegistry(clock=clock)
    registry.configure("svc", SMALL)

    def _slow():
        clock.now += 2
        return "late"

    with pytest.raises(BreakerTimeoutError):
        registry.execute("svc", _slow)
    assert registry.get_stats("svc")["error_percentage"] == 100.0  # noqa: PLR2004


def test_invalid_settings_rejected():
    with pytest.raises(ValueError):
        BreakerRegistry().configure("svc", BreakerSettings(max_concurrent_requests=0))


def test_unknown_name_defaults_to_closed():
    registry = BreakerRegistry()
    assert registry.state("nobody") == "closed"
    assert registry.execute("auto", lambda: 7) == 7  # noqa: PLR2004


class FakeTransport:
    def __init__(self, response):
        self.response = response
        self.requests = []

    def send(self, request):
        self.requests.append(request)
        return self.response

    def close(self):
        pass


def test_client_wraps_rejection_as_service_unavailable():
    registry = BreakerRegistry(clock=FakeClock())
    transport = FakeTransport(RawResponse(500, b'{"message": "boom"}'))
    client = HTTPClient(
        api_url="https://api.test", client_name="users", transport=transport, breaker=registry
    )
    for _ in range(SMALL.request_volume_threshold):
        with pytest.raises(ResponseError) as exc:
            client.call_client_with_circuit_breaker("users", Method.GET, settings=SMALL)
        assert exc.value.status_code == 500  # noqa: PLR2004

    with pytest.raises(ResponseError) as exc:
        client.call_client_with_circuit_breaker("users", Method.GET, settings=SMALL)
    assert exc.value.status_code == 503  # noqa: PLR2004
    assert isinstance(exc.value.error, BreakerOpenError)
    assert len(transport.requests) == SMALL.request_volume_threshold


def test_client_success_through_breaker():
    registry = BreakerRegistry(clock=FakeClock())
    transport = FakeTransport(RawResponse(200, b'{"id": 1}'))
    client = HTTPClient(api_url="https://api.test", transport=transport, breaker=registry)
    assert client.call_client_with_circuit_breaker("users/1", Method.GET) == {"id": 1}
    assert registry.state("https://api.test") == "closed"
