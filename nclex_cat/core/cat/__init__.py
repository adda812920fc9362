"""
CAT (Computerized Adaptive Testing) engine for NCLEX-style exams.

3PL ability estimation, content-balanced maximum information item selection
with randomesque exposure control, stopping rules and final scoring.
"""

from .ability_estimation import (
    AbilityEstimate,
    estimate_ability,
    estimate_ability_eap,
    estimate_ability_mle,
)
from .content_balancing import (
    DEFAULT_TEST_PLAN,
    CategoryQuota,
    eligible_categories,
    is_content_satisfied,
    parse_test_plan,
    validate_test_plan,
)
from .engine import (
    CATSession,
    CATSessionManager,
    CATStepResult,
    ResponseRecord,
)
from .errors import (
    CATError,
    ConcurrentModification,
    EstimatorNonConvergence,
    InvalidExamConfig,
    InvalidSessionState,
    InvalidTestPlan,
    ItemBankUnavailable,
    ItemMismatch,
    NoEligibleCategory,
    NoEligibleItems,
    SessionNotFound,
)
from .exam_config import ExamConfig
from .exposure_control import (
    ExposureMonitor,
    InMemoryExposureCounter,
    apply_randomesque,
)
from .irt import fisher_information_3pl, probability_3pl
from .item_selection import select_next_item
from .scoring import ExamScore, score_session
from .stopping_rules import StoppingDecision, check_stopping_criteria

__all__ = [
    "AbilityEstimate",
    "estimate_ability",
    "estimate_ability_eap",
    "estimate_ability_mle",
    "DEFAULT_TEST_PLAN",
    "CategoryQuota",
    "eligible_categories",
    "is_content_satisfied",
    "parse_test_plan",
    "validate_test_plan",
    "CATSession",
    "CATSessionManager",
    "CATStepResult",
    "ResponseRecord",
    "CATError",
    "ConcurrentModification",
    "EstimatorNonConvergence",
    "InvalidExamConfig",
    "InvalidSessionState",
    "InvalidTestPlan",
    "ItemBankUnavailable",
    "ItemMismatch",
    "NoEligibleCategory",
    "NoEligibleItems",
    "SessionNotFound",
    "ExamConfig",
    "ExposureMonitor",
    "InMemoryExposureCounter",
    "apply_randomesque",
    "fisher_information_3pl",
    "probability_3pl",
    "select_next_item",
    "ExamScore",
    "score_session",
    "StoppingDecision",
    "check_stopping_criteria",
]
