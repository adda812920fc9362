"""
Per-exam configuration.

An ExamConfig is built from application settings, optionally overridden per
exam, validated once, and stored with the session as a JSON snapshot so a
running exam never changes rules underneath the candidate.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from nclex_cat.core.cat.content_balancing import (
    DEFAULT_TEST_PLAN,
    ResolvedQuota,
    TestPlan,
    parse_test_plan,
    plan_to_dict,
    validate_test_plan,
)
from nclex_cat.core.cat.errors import CATError, InvalidExamConfig
from nclex_cat.core.cat.exposure_control import RANDOMESQUE_K
from nclex_cat.core.cat.irt import THETA_MAX, THETA_MIN
from nclex_cat.core.cat.stopping_rules import (
    CUT_SCORE,
    MAX_ITEMS,
    MIN_ITEMS,
    SE_THRESHOLD,
)
from nclex_cat.models.models import NCLEXCategory

# Keys accepted in a request-level override, camelCase aliases included
_OVERRIDE_KEYS = {
    "min_items": "min_items",
    "minItems": "min_items",
    "max_items": "max_items",
    "maxItems": "max_items",
    "se_threshold": "se_threshold",
    "seThreshold": "se_threshold",
    "cut_score": "cut_score",
    "cutScore": "cut_score",
    "test_plan": "test_plan",
    "testPlan": "test_plan",
    "exposure_top_k": "exposure_top_k",
    "exposureTopK": "exposure_top_k",
}


@dataclass(frozen=True)
class ExamConfig:
    """
    Rules for one exam.

    Raises InvalidExamConfig or InvalidTestPlan on construction when values
    are out of range or the test plan is infeasible for the length bounds.
    """

    min_items: int = MIN_ITEMS
    max_items: int = MAX_ITEMS
    se_threshold: float = SE_THRESHOLD
    cut_score: float = CUT_SCORE
    test_plan: TestPlan = field(default_factory=lambda: dict(DEFAULT_TEST_PLAN))
    exposure_top_k: int = RANDOMESQUE_K
    quotas: Dict[NCLEXCategory, ResolvedQuota] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if self.min_items < 1:
            raise InvalidExamConfig(f"min_items must be >= 1, got {self.min_items}")
        if self.max_items < self.min_items:
            raise InvalidExamConfig(
                "max_items must be >= min_items",
                context={"min_items": self.min_items, "max_items": self.max_items},
            )
        if self.se_threshold <= 0:
            raise InvalidExamConfig(
                f"se_threshold must be positive, got {self.se_threshold}"
            )
        if not (THETA_MIN <= self.cut_score <= THETA_MAX):
            raise InvalidExamConfig(
                f"cut_score must be within [{THETA_MIN}, {THETA_MAX}], got {self.cut_score}"
            )
        if self.exposure_top_k < 1:
            raise InvalidExamConfig(
                f"exposure_top_k must be >= 1, got {self.exposure_top_k}"
            )
        quotas = validate_test_plan(self.test_plan, self.min_items, self.max_items)
        object.__setattr__(self, "quotas", quotas)

    @classmethod
    def from_settings(
        cls, settings: Any, overrides: Optional[Mapping[str, Any]] = None
    ) -> "ExamConfig":
        """
        Build the default exam config from Settings, then apply overrides.

        Args:
            settings: Application Settings (CAT_* fields).
            overrides: Optional per-exam values, snake_case or camelCase.
        """
        values: Dict[str, Any] = {
            "min_items": settings.CAT_MIN_ITEMS,
            "max_items": settings.CAT_MAX_ITEMS,
            "se_threshold": settings.CAT_SE_THRESHOLD,
            "cut_score": settings.CAT_CUT_SCORE,
            "test_plan": settings.CAT_TEST_PLAN,
            "exposure_top_k": settings.CAT_EXPOSURE_TOP_K,
        }
        for key, value in (overrides or {}).items():
            if value is None:
                continue
            if key not in _OVERRIDE_KEYS:
                raise InvalidExamConfig(f"Unknown exam config option '{key}'")
            values[_OVERRIDE_KEYS[key]] = value
        return cls.from_dict(values)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExamConfig":
        """Rebuild a config from its JSON snapshot."""
        try:
            return cls(
                min_items=int(data["min_items"]),
                max_items=int(data["max_items"]),
                se_threshold=float(data["se_threshold"]),
                cut_score=float(data["cut_score"]),
                test_plan=parse_test_plan(data["test_plan"]),
                exposure_top_k=int(data["exposure_top_k"]),
            )
        except CATError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidExamConfig("Malformed exam config", original_error=e)

    def to_dict(self) -> Dict[str, Any]:
        """JSON snapshot stored with the session."""
        return {
            "min_items": self.min_items,
            "max_items": self.max_items,
            "se_threshold": self.se_threshold,
            "cut_score": self.cut_score,
            "test_plan": plan_to_dict(self.test_plan),
            "exposure_top_k": self.exposure_top_k,
        }
