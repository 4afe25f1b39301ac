"""Adaptive timeout policy shared by every sub-scan."""

import time
from collections.abc import Callable
from enum import StrEnum

# Fraction of the remaining overall budget an operation may claim.
BUDGET_SHARE = 0.9


class Responsiveness(StrEnum):
    """Target latency bucket measured by the initial HTTP probe."""

    RESPONSIVE = "responsive"
    NORMAL = "normal"
    SLOW = "slow"


class Operation(StrEnum):
    """Operations that draw a timeout from the policy."""

    GENERAL = "general"
    PORT_SCAN = "port_scan"
    UDP_SCAN = "udp_scan"
    SERVICE_PROBE = "service_probe"
    VULN_SCAN = "vuln_scan"
    HTTP = "http"
    ALTERNATIVE = "alternative"


RESPONSIVENESS_MULTIPLIERS = {
    Responsiveness.RESPONSIVE: 0.75,
    Responsiveness.NORMAL: 1.0,
    Responsiveness.SLOW: 1.5,
}

# Heavy operations against slow targets replace the slow multiplier.
SLOW_OPERATION_MULTIPLIERS = {
    Operation.PORT_SCAN: 1.75,
    Operation.UDP_SCAN: 1.75,
    Operation.VULN_SCAN: 2.0,
}


def timeout_multiplier(operation: Operation, category: Responsiveness) -> float:
    """Return the combined multiplier for an operation under a responsiveness category."""
    if category is Responsiveness.SLOW:
        return SLOW_OPERATION_MULTIPLIERS.get(operation, RESPONSIVENESS_MULTIPLIERS[category])
    return RESPONSIVENESS_MULTIPLIERS[category]


def adaptive_timeout(
    operation: Operation | str,
    base: float,
    category: Responsiveness | str,
    elapsed: float,
    overall_budget: float,
) -> float:
    """
    Compute a timeout for one operation.

    ``base × multiplier(operation, category)``, capped at 90% of what is left
    of ``overall_budget`` after ``elapsed``. All values share one unit (the
    caller's choice). Never negative.
    """
    operation = Operation(operation)
    category = Responsiveness(category)
    scaled = base * timeout_multiplier(operation, category)
    remaining = max(0.0, overall_budget - elapsed)
    return max(0.0, min(scaled, remaining * BUDGET_SHARE))


class ScanClock:
    """Elapsed-time tracker for one scan's overall budget (seconds)."""

    def __init__(self, overall_budget: float, now: Callable[[], float] = time.monotonic):
        self.overall_budget = overall_budget
        self._now = now
        self.started = now()

    def elapsed(self) -> float:
        return self._now() - self.started

    def remaining(self) -> float:
        return max(0.0, self.overall_budget - self.elapsed())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def timeout_for(
        self, operation: Operation | str, base: float, category: Responsiveness | str
    ) -> float:
        """``adaptive_timeout`` evaluated at the current elapsed time."""
        return adaptive_timeout(operation, base, category, self.elapsed(), self.overall_budget)
