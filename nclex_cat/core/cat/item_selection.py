"""
Maximum Fisher Information (MFI) item selection under the 3PL model.

Selects the next item from the eligible pool that is most informative at the
current ability estimate:

    I_i(theta) = a_i^2 * (P_i - c_i)^2 * (1 - P_i) / (P_i * (1 - c_i)^2)

The selection pipeline:
1. Drop administered items, inactive items and items in categories at their
   maximum
2. Restrict to the mandatory categories when a content deadline is binding,
   relaxing to every eligible category if the mandatory ones have run dry
3. Compute Fisher information for each remaining item at current theta
4. Rank by information, then least exposed, then id
5. Draw uniformly from the top-K (randomesque exposure control)

References:
    - Lord, F.M. (1980). Applications of item response theory to practical
      testing problems.
    - van der Linden, W.J. (1998). Bayesian item selection criteria for
      adaptive testing.
"""

import logging
import random
from typing import Any, Collection, List, Optional, Protocol, Sequence, runtime_checkable

from nclex_cat.core.cat.content_balancing import CategoryEligibility, get_item_category
from nclex_cat.core.cat.errors import NoEligibleItems
from nclex_cat.core.cat.exposure_control import (
    RANDOMESQUE_K,
    ExposureMonitor,
    ItemCandidate,
    apply_randomesque,
)
from nclex_cat.core.cat.irt import fisher_information_3pl

logger = logging.getLogger(__name__)


@runtime_checkable
class CalibratedItem(Protocol):
    """Protocol for items with calibrated 3PL parameters.

    Satisfied by the Item ORM model and by simulation items.
    """

    @property
    def id(self) -> int:
        ...

    @property
    def category(self) -> Any:
        ...

    @property
    def discrimination(self) -> float:
        ...

    @property
    def difficulty(self) -> float:
        ...

    @property
    def guessing(self) -> float:
        ...

    @property
    def times_administered(self) -> int:
        ...


def rank_candidates(
    items: Sequence[CalibratedItem], theta: float
) -> List[ItemCandidate]:
    """
    Rank items by Fisher information at theta.

    Ties on information break by lowest times_administered, then lowest id,
    so the ranking is a total order.
    """
    candidates = [
        ItemCandidate(
            item=item,
            information=fisher_information_3pl(
                theta, item.discrimination, item.difficulty, item.guessing
            ),
        )
        for item in items
    ]
    candidates.sort(
        key=lambda c: (-c.information, c.item.times_administered or 0, c.item.id)
    )
    return candidates


def select_next_item(
    item_pool: Sequence[CalibratedItem],
    theta_estimate: float,
    eligibility: CategoryEligibility,
    excluded_ids: Collection[int],
    rng: random.Random,
    randomesque_k: int = RANDOMESQUE_K,
    monitor: Optional[ExposureMonitor] = None,
) -> CalibratedItem:
    """
    Select the next item using Maximum Fisher Information with constraints.

    Args:
        item_pool: Candidate items (id, category, 3PL parameters,
            times_administered).
        theta_estimate: Current ability estimate.
        eligibility: Category eligibility from the content balancer.
        excluded_ids: Items already administered or presented in this session.
        rng: Injected random source for the top-K draw.
        randomesque_k: Number of top items to draw from. Set to 1 to disable
            randomesque selection.
        monitor: Optional ExposureMonitor to track selection rates.

    Returns:
        The selected item from the pool.

    Raises:
        NoEligibleItems: If no item remains after balancing and exclusion.
    """
    available = [
        item
        for item in item_pool
        if item.id not in excluded_ids
        and getattr(item, "is_active", True)
        and get_item_category(item) in eligibility.eligible
    ]

    pool_categories = eligibility.pool_categories
    constrained = [
        item for item in available if get_item_category(item) in pool_categories
    ]

    if not constrained and eligibility.mandatory and available:
        logger.warning(
            f"No items left in mandatory categories "
            f"{sorted(c.value for c in eligibility.mandatory)}; "
            f"relaxing to {len(eligibility.eligible)} eligible categories"
        )
        constrained = available

    if not constrained:
        raise NoEligibleItems(
            "No eligible items remaining after filtering",
            context={
                "pool_size": len(item_pool),
                "excluded": len(excluded_ids),
                "eligible_categories": len(eligibility.eligible),
            },
        )

    candidates = rank_candidates(constrained, theta_estimate)
    selected = apply_randomesque(candidates, rng, k=randomesque_k, monitor=monitor)

    logger.debug(
        f"Item selection: theta={theta_estimate:.3f}, "
        f"eligible={len(candidates)}, "
        f"selected item {selected.item.id} "
        f"(a={selected.item.discrimination:.2f}, "
        f"b={selected.item.difficulty:.2f}, "
        f"c={selected.item.guessing:.2f}, "
        f"info={selected.information:.4f})"
    )

    return selected.item
