"""Per-name circuit breakers for outbound calls.

Each registered name gets a ``pybreaker.CircuitBreaker`` holding its state and
notifying listeners, plus a rolling window of call outcomes used to trip it on
error rate:

    CLOSED -> (error % >= threshold over >= volume calls in window) -> OPEN
    OPEN -> (sleep window elapsed, next call) -> HALF_OPEN (single probe)
    HALF_OPEN -> (probe succeeds) -> CLOSED
    HALF_OPEN -> (probe fails) -> OPEN

Calls run on the caller's thread; the registry lock only guards bookkeeping and
is never held while the call runs.
"""

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Protocol, TypeVar

import pybreaker

from .errors import BreakerOpenError, BreakerTimeoutError
from .state import CircuitCounters
from .types import BreakerSettings

logger = logging.getLogger("servicekit")

T = TypeVar("T")


class Breaker(Protocol):
    def configure(self, name: str, settings: BreakerSettings) -> None: ...

    def execute(self, name: str, fn: Callable[[], T]) -> T: ...


class _LoggingListener(pybreaker.CircuitBreakerListener):
    def state_change(self, cb, old_state, new_state):
        old = getattr(old_state, "name", old_state)
        new = getattr(new_state, "name", new_state)
        logger.warning(f"circuit={cb.name} state {old} -> {new}")


@dataclass
class _Circuit:
    settings: BreakerSettings
    breaker: pybreaker.CircuitBreaker
    counters: CircuitCounters


class BreakerRegistry:
    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        listeners: Iterable[pybreaker.CircuitBreakerListener] | None = None,
    ):
        """Initialize a BreakerRegistry.

        Args:
            clock (Callable[[], float]): monotonic seconds source
            listeners (Iterable[CircuitBreakerListener] | None): extra pybreaker
                listeners attached to every breaker created here
        """
        self._clock = clock
        self._listeners = list(listeners or [])
        self._circuits: dict[str, _Circuit] = {}
        self._lock = threading.Lock()

    def configure(self, name: str, settings: BreakerSettings | None = None) -> None:
        settings = settings or BreakerSettings()
        if settings.max_concurrent_requests <= 0:
            raise ValueError(
                f"max_concurrent_requests must be > 0, got {settings.max_concurrent_requests}"
            )
        with self._lock:
            circuit = self._circuits.get(name)
            if circuit is None:
                breaker = pybreaker.CircuitBreaker(
                    fail_max=max(1, settings.request_volume_threshold),
                    reset_timeout=settings.sleep_window_ms / 1000,
                    listeners=[_LoggingListener(), *self._listeners],
                    name=name,
                )
                self._circuits[name] = _Circuit(settings, breaker, CircuitCounters())
                logger.debug(f"circuit={name} configured: {settings}")
            elif circuit.settings != settings:
                # state is kept; only thresholds change
                circuit.settings = settings
                circuit.breaker.reset_timeout = settings.sleep_window_ms / 1000
                logger.debug(f"circuit={name} reconfigured: {settings}")

    def execute(self, name: str, fn: Callable[[], T]) -> T:
        circuit = self._circuits.get(name)
        if circuit is None:
            self.configure(name)
            circuit = self._circuits[name]
        probe = self._acquire(name, circuit)
        started = self._clock()
        succeeded = False
        try:
            result = fn()
            elapsed_ms = (self._clock() - started) * 1000
            if elapsed_ms > circuit.settings.timeout_ms:
                raise BreakerTimeoutError(
                    f"circuit={name} call took {elapsed_ms:.0f}ms "
                    f"(timeout {circuit.settings.timeout_ms}ms)"
                )
            succeeded = True
        finally:
            # runs for BaseException too, so in_flight and the probe flag never leak
            self._release(circuit, succeeded=succeeded, probe=probe)
        return result

    def state(self, name: str) -> str:
        """Current state name: ``closed``, ``open`` or ``half-open``."""
        circuit = self._circuits.get(name)
        if circuit is None:
            return pybreaker.STATE_CLOSED
        with self._lock:
            return circuit.breaker.current_state

    def get_stats(self, name: str) -> dict:
        with self._lock:
            circuit = self._circuits[name]
            counters = circuit.counters
            counters.prune(self._clock(), circuit.settings.rolling_window_ms / 1000)
            return {
                "state": circuit.breaker.current_state,
                "requests": len(counters.outcomes),
                "error_percentage": counters.error_percentage(),
                "in_flight": counters.in_flight,
            }

    def reset(self) -> None:
        """Drop every registered circuit (for tests)."""
        with self._lock:
            self._circuits.clear()

    # internal
    def _acquire(self, name: str, circuit: _Circuit) -> bool:
        settings, counters, breaker = circuit.settings, circuit.counters, circuit.breaker
        with self._lock:
            now = self._clock()
            state = breaker.current_state
            if state == pybreaker.STATE_OPEN:
                if now - (counters.opened_at or now) < settings.sleep_window_ms / 1000:
                    raise BreakerOpenError(f"circuit={name} is open")
                breaker.half_open()
                state = pybreaker.STATE_HALF_OPEN
            probe = False
            if state == pybreaker.STATE_HALF_OPEN:
                if counters.probe_in_flight:
                    raise BreakerOpenError(f"circuit={name} is half-open; probe in flight")
                probe = True
            if counters.in_flight >= settings.max_concurrent_requests:
                raise BreakerOpenError(
                    f"circuit={name} max concurrency "
                    f"({settings.max_concurrent_requests}) reached"
                )
            counters.in_flight += 1
            counters.probe_in_flight = counters.probe_in_flight or probe
            return probe

    def _release(self, circuit: _Circuit, succeeded: bool, probe: bool) -> None:
        settings, counters, breaker = circuit.settings, circuit.counters, circuit.breaker
        with self._lock:
            counters.in_flight -= 1
            now = self._clock()
            if probe:
                counters.probe_in_flight = False
                if succeeded:
                    counters.reset()
                    breaker.close()
                else:
                    self._trip(circuit, now)
                return
            if breaker.current_state != pybreaker.STATE_CLOSED:
                # finished after the circuit tripped; nothing to account
                return
            counters.record(now, succeeded, settings.rolling_window_ms / 1000)
            # checked after every outcome, successes included
            if (
                len(counters.outcomes) >= settings.request_volume_threshold
                and counters.error_percentage() >= settings.error_percent_threshold
            ):
                logger.warning(
                    f"circuit={breaker.name} error rate {counters.error_percentage():.1f}% "
                    f"over {len(counters.outcomes)} calls; opening"
                )
                self._trip(circuit, now)

    def _trip(self, circuit: _Circuit, now: float) -> None:
        circuit.counters.outcomes.clear()
        circuit.counters.opened_at = now
        circuit.breaker.open()


DEFAULT_REGISTRY = BreakerRegistry()
