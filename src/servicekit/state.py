from collections import deque
from dataclasses import dataclass, field


@dataclass
class CircuitCounters:
    # (timestamp, succeeded) per finished call, oldest first
    outcomes: deque = field(default_factory=deque)
    opened_at: float | None = None
    probe_in_flight: bool = False
    in_flight: int = 0

    def record(self, now: float, succeeded: bool, window: float) -> None:
        self.outcomes.append((now, succeeded))
        self.prune(now, window)

    def prune(self, now: float, window: float) -> None:
        while self.outcomes and self.outcomes[0][0] <= now - window:
            self.outcomes.popleft()

    def error_percentage(self) -> float:
        if not self.outcomes:
            return 0.0
        failures = sum(1 for _, ok in self.outcomes if not ok)
        return failures * 100.0 / len(self.outcomes)

    def reset(self) -> None:
        self.outcomes.clear()
        self.opened_at = None
        self.probe_in_flight = False
