"""
Content balancing against the NCLEX test plan.

Each Client Needs category has a (min, max) percentage-of-exam range. The
percentages resolve to item counts against the exam length bounds:

    min_count = floor(min_pct * min_items / 100)
    max_count = ceil(max_pct * max_items / 100)

Selection is a small deadline-scheduling problem over those quotas. A
category is eligible while its count is below max_count. When the total
outstanding minimum deficit fills every slot left before min_items, the
deficit categories become mandatory and the item pool is restricted to them,
so the minimums are always met by the time the exam is allowed to stop.

References:
    - NCSBN (2023). NCLEX-RN Test Plan.
    - van der Linden, W.J. (2005). Linear Models for Optimal Test Design.
    - Stocking, M.L., & Swanson, L. (1993). A method for severely constrained
      item selection in adaptive testing.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Mapping, Optional

from nclex_cat.core.cat.errors import InvalidTestPlan, NoEligibleCategory
from nclex_cat.models.models import NCLEXCategory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategoryQuota:
    """Percent-of-exam range for one category."""

    min_pct: float
    max_pct: float


@dataclass(frozen=True)
class ResolvedQuota:
    """Item-count range for one category for a given exam length."""

    min_count: int
    max_count: int


TestPlan = Dict[NCLEXCategory, CategoryQuota]

# NCLEX-RN Client Needs distribution (percent of exam)
DEFAULT_TEST_PLAN: TestPlan = {
    NCLEXCategory.MANAGEMENT_OF_CARE: CategoryQuota(17, 23),
    NCLEXCategory.SAFETY_AND_INFECTION_CONTROL: CategoryQuota(9, 15),
    NCLEXCategory.HEALTH_PROMOTION_AND_MAINTENANCE: CategoryQuota(6, 12),
    NCLEXCategory.PSYCHOSOCIAL_INTEGRITY: CategoryQuota(6, 12),
    NCLEXCategory.BASIC_CARE_AND_COMFORT: CategoryQuota(6, 12),
    NCLEXCategory.PHARMACOLOGICAL_AND_PARENTERAL_THERAPIES: CategoryQuota(12, 18),
    NCLEXCategory.REDUCTION_OF_RISK_POTENTIAL: CategoryQuota(9, 15),
    NCLEXCategory.PHYSIOLOGICAL_ADAPTATION: CategoryQuota(11, 17),
}


@dataclass(frozen=True)
class CategoryEligibility:
    """
    Categories open for the next item.

    Attributes:
        eligible: Categories still below their maximum count.
        mandatory: Categories that must be served now to meet their minimum
            before min_items. Empty when no deadline is binding.
    """

    eligible: FrozenSet[NCLEXCategory]
    mandatory: FrozenSet[NCLEXCategory]

    @property
    def pool_categories(self) -> FrozenSet[NCLEXCategory]:
        """Categories the item pool is restricted to for this turn."""
        return self.mandatory if self.mandatory else self.eligible


def parse_test_plan(raw: Mapping[str, Any]) -> TestPlan:
    """
    Build a TestPlan from its JSON form ``{category: {"min": pct, "max": pct}}``.

    Categories absent from ``raw`` get a (0, 0) quota and are never
    administered.

    Raises:
        InvalidTestPlan: On unknown categories or malformed ranges.
    """
    plan: TestPlan = {category: CategoryQuota(0, 0) for category in NCLEXCategory}
    for key, bounds in raw.items():
        try:
            category = NCLEXCategory(key)
        except ValueError as e:
            raise InvalidTestPlan(f"Unknown test plan category '{key}'", original_error=e)
        if isinstance(bounds, CategoryQuota):
            plan[category] = bounds
            continue
        try:
            plan[category] = CategoryQuota(float(bounds["min"]), float(bounds["max"]))
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidTestPlan(
                f"Test plan entry for '{key}' must have numeric 'min' and 'max'",
                original_error=e,
            )
    return plan


def plan_to_dict(plan: TestPlan) -> Dict[str, Dict[str, float]]:
    """Serialize a TestPlan to its JSON form."""
    return {
        category.value: {"min": quota.min_pct, "max": quota.max_pct}
        for category, quota in plan.items()
    }


def resolve_quotas(
    plan: TestPlan, min_items: int, max_items: int
) -> Dict[NCLEXCategory, ResolvedQuota]:
    """Convert percentage quotas into item counts for the exam length bounds."""
    return {
        category: ResolvedQuota(
            min_count=math.floor(quota.min_pct * min_items / 100),
            max_count=math.ceil(quota.max_pct * max_items / 100),
        )
        for category, quota in plan.items()
    }


def validate_test_plan(
    plan: TestPlan, min_items: int, max_items: int
) -> Dict[NCLEXCategory, ResolvedQuota]:
    """
    Check that a test plan can be satisfied and return its resolved quotas.

    A plan is feasible when every range is well-formed, the minimums fit in
    min_items and the maximums can fill max_items.

    Raises:
        InvalidTestPlan: If the plan is infeasible.
    """
    for category, quota in plan.items():
        if quota.min_pct < 0 or quota.max_pct > 100 or quota.min_pct > quota.max_pct:
            raise InvalidTestPlan(
                f"Invalid quota range for {category.value}",
                context={"min": quota.min_pct, "max": quota.max_pct},
            )

    quotas = resolve_quotas(plan, min_items, max_items)
    total_min = sum(q.min_count for q in quotas.values())
    total_max = sum(q.max_count for q in quotas.values())

    if total_min > min_items:
        raise InvalidTestPlan(
            "Category minimums exceed the minimum exam length",
            context={"total_min": total_min, "min_items": min_items},
        )
    if total_max < max_items:
        raise InvalidTestPlan(
            "Category maximums cannot fill the maximum exam length",
            context={"total_max": total_max, "max_items": max_items},
        )
    return quotas


def category_deficits(
    category_counts: Mapping[NCLEXCategory, int],
    quotas: Mapping[NCLEXCategory, ResolvedQuota],
) -> Dict[NCLEXCategory, int]:
    """Items still needed per category to reach its minimum (zero-deficit omitted)."""
    deficits = {}
    for category, quota in quotas.items():
        missing = quota.min_count - category_counts.get(category, 0)
        if missing > 0:
            deficits[category] = missing
    return deficits


def eligible_categories(
    category_counts: Mapping[NCLEXCategory, int],
    quotas: Mapping[NCLEXCategory, ResolvedQuota],
    items_administered: int,
    min_items: int,
    max_items: int,
) -> CategoryEligibility:
    """
    Compute which categories may supply the next item.

    Args:
        category_counts: Items administered so far per category.
        quotas: Resolved item-count quotas.
        items_administered: Total items administered so far.
        min_items: Minimum exam length.
        max_items: Maximum exam length.

    Returns:
        CategoryEligibility with the eligible and mandatory sets.

    Raises:
        NoEligibleCategory: If no category is below its maximum, or the
            outstanding minimums no longer fit in the remaining capacity.
    """
    eligible = frozenset(
        category
        for category, quota in quotas.items()
        if category_counts.get(category, 0) < quota.max_count
    )
    if not eligible:
        raise NoEligibleCategory(
            "Every category has reached its maximum",
            context={"items_administered": items_administered},
        )

    deficits = category_deficits(category_counts, quotas)
    total_deficit = sum(deficits.values())
    remaining_capacity = max_items - items_administered
    if total_deficit > remaining_capacity:
        raise NoEligibleCategory(
            "Outstanding category minimums exceed remaining exam capacity",
            context={
                "total_deficit": total_deficit,
                "remaining_capacity": remaining_capacity,
            },
        )

    slots_before_min = min_items - items_administered
    mandatory: FrozenSet[NCLEXCategory] = frozenset()
    if deficits and total_deficit >= slots_before_min:
        mandatory = frozenset(deficits)
        logger.debug(
            f"Deadline binding: {total_deficit} deficit items for "
            f"{max(slots_before_min, 0)} slots, mandatory={sorted(c.value for c in mandatory)}"
        )

    return CategoryEligibility(eligible=eligible, mandatory=mandatory)


def is_content_satisfied(
    category_counts: Mapping[NCLEXCategory, int],
    quotas: Mapping[NCLEXCategory, ResolvedQuota],
) -> bool:
    """True when every category has reached its minimum count."""
    for category, quota in quotas.items():
        count = category_counts.get(category, 0)
        if count < quota.min_count:
            logger.debug(
                f"Content minimum not met: {category.value} has {count}/{quota.min_count}"
            )
            return False
    return True


def is_within_quotas(
    category_counts: Mapping[NCLEXCategory, int],
    quotas: Mapping[NCLEXCategory, ResolvedQuota],
) -> bool:
    """True when every category count lies inside its [min, max] range."""
    return all(
        quota.min_count <= category_counts.get(category, 0) <= quota.max_count
        for category, quota in quotas.items()
    )


def get_item_category(item: Any) -> Optional[NCLEXCategory]:
    """
    Extract the category from an item's ``category`` attribute.

    Accepts both NCLEXCategory members and their string values.
    """
    category = getattr(item, "category", None)
    if category is None:
        return None
    if isinstance(category, NCLEXCategory):
        return category
    return NCLEXCategory(category)
