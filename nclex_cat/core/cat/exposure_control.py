"""
Randomesque exposure control and exposure counters.

Over-exposure occurs when a small subset of high-information items is
administered disproportionately often, which compromises item security. The
randomesque method (Kingsbury & Zara, 1989) draws uniformly from the top-K
most informative items rather than always taking the single best one. The
random source is always injected so runs are reproducible under a seed.

Exposure counts are shared across every concurrent session. The production
counter is the atomic SQL increment in ItemBank.record_administration; the
in-memory counter here backs the simulation harness and tests.

References:
    - Kingsbury, G.G., & Zara, A.R. (1989). Procedures for selecting items for
      computerized adaptive tests.
    - Stocking, M.L., & Lewis, C. (1998). Controlling item exposure conditional
      on ability in computerized adaptive testing.
"""

import logging
import random
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

logger = logging.getLogger(__name__)

# Select randomly from the top-K most informative items.
RANDOMESQUE_K = 5

# Exposure rate (administrations per session) above which items are flagged
DEFAULT_EXPOSURE_ALERT_THRESHOLD = 0.15


@dataclass
class ItemCandidate:
    """An item with its computed Fisher information value."""

    item: Any
    information: float


class ExposureCounter(Protocol):
    """Atomic per-item administration counter shared across sessions."""

    def record_administration(self, item_id: int) -> int:
        """Increment the item's counter exactly once and return the new count."""
        ...


def apply_randomesque(
    ranked_items: Sequence[ItemCandidate],
    rng: random.Random,
    k: int = RANDOMESQUE_K,
    monitor: Optional["ExposureMonitor"] = None,
) -> ItemCandidate:
    """
    Select uniformly at random from the top-K ranked items.

    Args:
        ranked_items: Candidates sorted by Fisher information (descending).
        rng: Injected random source.
        k: Number of top items to draw from. k=1 is pure maximum information.
        monitor: Optional ExposureMonitor to track selection rates.

    Returns:
        The selected ItemCandidate.

    Raises:
        ValueError: If ranked_items is empty or k is not positive.
    """
    if not ranked_items:
        raise ValueError("Cannot select from empty ranked_items list")
    if k <= 0:
        raise ValueError(f"k must be positive, got {k}")

    top_k = list(ranked_items[: min(k, len(ranked_items))])
    selected = rng.choice(top_k)

    if monitor is not None:
        monitor.record_selection(selected.item.id)

    logger.debug(
        f"Randomesque selection: chose item {selected.item.id} from top-{len(top_k)} "
        f"(info={selected.information:.4f})"
    )

    return selected


class InMemoryExposureCounter:
    """
    Thread-safe in-process ExposureCounter.

    Only for the simulation harness and tests. Live exams count exposure in
    the item bank so every worker process sees the same totals.
    """

    def __init__(self, initial: Optional[Dict[int, int]] = None):
        self._lock = threading.Lock()
        self._counts: Dict[int, int] = dict(initial or {})

    def record_administration(self, item_id: int) -> int:
        with self._lock:
            count = self._counts.get(item_id, 0) + 1
            self._counts[item_id] = count
            return count

    def get(self, item_id: int) -> int:
        with self._lock:
            return self._counts.get(item_id, 0)

    def snapshot(self) -> Dict[int, int]:
        """Copy of all counts."""
        with self._lock:
            return dict(self._counts)

    @property
    def total(self) -> int:
        with self._lock:
            return sum(self._counts.values())


class ExposureMonitor:
    """
    Tracks per-item exposure rates and alerts on over-exposure.

    Thread-safe. Exposure rate is the share of exam sessions that saw the
    item:
        rate_i = selections_i / sessions

    Items exceeding the alert_threshold are logged as warnings.

    Example usage:
        monitor = ExposureMonitor(alert_threshold=0.15)

        monitor.record_session()
        selected = apply_randomesque(ranked, rng, k=5, monitor=monitor)

        overexposed = monitor.check_and_alert()

    Attributes:
        alert_threshold: Exposure rate above which items are flagged (0.0-1.0).
    """

    def __init__(self, alert_threshold: float = DEFAULT_EXPOSURE_ALERT_THRESHOLD):
        """
        Initialize the exposure monitor.

        Raises:
            ValueError: If alert_threshold is not in range [0.0, 1.0].
        """
        if not (0.0 <= alert_threshold <= 1.0):
            raise ValueError(
                f"alert_threshold must be in [0.0, 1.0], got {alert_threshold}"
            )

        self._lock = threading.Lock()
        self._item_counts: Dict[int, int] = {}
        self._sessions = 0
        self.alert_threshold = alert_threshold

    def record_session(self) -> None:
        """Record that an exam session started."""
        with self._lock:
            self._sessions += 1

    def record_selection(self, item_id: int) -> None:
        """Record that an item was administered in the current session."""
        with self._lock:
            self._item_counts[item_id] = self._item_counts.get(item_id, 0) + 1

    def get_exposure_rate(self, item_id: int) -> float:
        """Exposure rate for one item, 0.0 before any session is recorded."""
        with self._lock:
            if self._sessions == 0:
                return 0.0
            return self._item_counts.get(item_id, 0) / self._sessions

    def get_exposure_rates(self) -> Dict[int, float]:
        """Exposure rates for every item selected at least once."""
        with self._lock:
            return self._rates_locked()

    def get_overexposed_items(self) -> List[Tuple[int, float]]:
        """(item_id, rate) pairs above the threshold, highest rate first."""
        rates = self.get_exposure_rates()
        return self._overexposed(rates)

    def check_and_alert(self) -> List[Tuple[int, float]]:
        """
        Check for overexposed items and log warnings.

        Snapshots rates under the lock and logs outside it.

        Returns:
            List of (item_id, exposure_rate) tuples for overexposed items.
        """
        with self._lock:
            rates = self._rates_locked()
            sessions = self._sessions
        overexposed = self._overexposed(rates)

        if overexposed:
            logger.warning(
                f"Exposure alert: {len(overexposed)} items exceed "
                f"{self.alert_threshold:.1%} of {sessions} sessions"
            )
            for item_id, rate in overexposed[:10]:
                logger.warning(f"  Item {item_id}: {rate:.1%} exposure")
            if len(overexposed) > 10:
                logger.warning(f"  ... and {len(overexposed) - 10} more items")

        return overexposed

    @property
    def sessions(self) -> int:
        with self._lock:
            return self._sessions

    def reset(self) -> None:
        """Reset all counters."""
        with self._lock:
            self._item_counts.clear()
            self._sessions = 0
        logger.info("ExposureMonitor counters reset")

    def _rates_locked(self) -> Dict[int, float]:
        if self._sessions == 0:
            return {}
        return {
            item_id: count / self._sessions
            for item_id, count in self._item_counts.items()
        }

    def _overexposed(self, rates: Dict[int, float]) -> List[Tuple[int, float]]:
        overexposed = [
            (item_id, rate) for item_id, rate in rates.items() if rate > self.alert_threshold
        ]
        overexposed.sort(key=lambda x: x[1], reverse=True)
        return overexposed
