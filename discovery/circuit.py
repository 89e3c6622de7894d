from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict

logger = logging.getLogger(__name__)


class DomainFailureLedger:
    """
    Per-hostname failure counters for one run. Counts only ever go up.
    Every read and increment is a single short critical section so concurrent
    visits never lose an update; no caller holds the lock across an await.
    """

    def __init__(self) -> None:
        self._counts: Dict[str, int] = {}
        self._lock = threading.Lock()

    def count(self, host: str) -> int:
        with self._lock:
            return self._counts.get(host, 0)

    def increment(self, host: str) -> int:
        with self._lock:
            n = self._counts.get(host, 0) + 1
            self._counts[host] = n
            return n

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)


@dataclass(frozen=True)
class CircuitState:
    open: bool
    failures: int


class DomainCircuitBreaker:
    """
    Opens for a host once its failure count reaches the error budget.
    There is no half-open probe and no reset within a run.
    """

    def __init__(self, error_budget: int, ledger: DomainFailureLedger | None = None) -> None:
        if error_budget < 1:
            raise ValueError("error_budget must be a positive integer")
        self.error_budget = error_budget
        self.ledger = ledger if ledger is not None else DomainFailureLedger()

    def check(self, host: str) -> CircuitState:
        failures = self.ledger.count(host)
        return CircuitState(open=failures >= self.error_budget, failures=failures)

    def record_failure(self, host: str) -> int:
        n = self.ledger.increment(host)
        if n == self.error_budget:
            logger.warning("Circuit opened for host=%s after %d failures", host, n)
        return n
