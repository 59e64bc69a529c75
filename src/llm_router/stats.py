"""Invocation outcome statistics.

A StatsCounter is owned by one router or shared explicitly between routers.
"""

import copy
import logging
import threading
from dataclasses import dataclass
from typing import Dict

logger = logging.getLogger(__name__)


@dataclass
class StatsCategory:
    """One named counter with a label and a single-character symbol."""

    description: str
    symbol: str
    count: int = 0


class StatsCounter:
    """Thread-safe tally of invocation outcomes.

    Counters only ever increase; they reset when the process restarts.
    """

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    SWITCH = "SWITCH"
    RETRY = "RETRY"
    CROP = "CROP"
    TOTAL = "TOTAL"

    def __init__(self):
        self._lock = threading.Lock()
        self._categories: Dict[str, StatsCategory] = {
            self.SUCCESS: StatsCategory("LLM invocation succeeded", ">"),
            self.FAILURE: StatsCategory("LLM invocation failed so no data produced", "!"),
            self.SWITCH: StatsCategory(
                "Switched to secondary LLM to try to process request", "+"
            ),
            self.RETRY: StatsCategory(
                "Retried calling LLM due to overload or network issue", "?"
            ),
            self.CROP: StatsCategory(
                "Cropping prompt due to excessive size, before resending", "-"
            ),
        }

    def record_success(self) -> None:
        self._record(self.SUCCESS)

    def record_failure(self) -> None:
        self._record(self.FAILURE)

    def record_switch(self) -> None:
        self._record(self.SWITCH)

    def record_retry(self) -> None:
        self._record(self.RETRY)

    def record_crop(self) -> None:
        self._record(self.CROP)

    def snapshot(self, include_total: bool = False) -> Dict[str, StatsCategory]:
        """Return a deep copy of the counters.

        Args:
            include_total: Add a TOTAL entry equal to SUCCESS + FAILURE

        Returns:
            Dict mapping category name to an independent StatsCategory copy
        """
        with self._lock:
            table = copy.deepcopy(self._categories)

        if include_total:
            table[self.TOTAL] = StatsCategory(
                "Total successes + failures",
                "=",
                table[self.SUCCESS].count + table[self.FAILURE].count,
            )
        return table

    def _record(self, name: str) -> None:
        with self._lock:
            category = self._categories[name]
            category.count += 1
        logger.debug(category.symbol)
