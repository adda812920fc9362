"""
Stopping rules for NCLEX-style pass/fail Computerized Adaptive Testing.

Evaluated after every response, once the exam has reached its minimum length
and every test-plan category has reached its minimum count.

Stopping Rules (evaluated in priority order, first rule that fires wins):
    1. Confidence interval: the 95% interval around theta lies entirely
       above the cut score (passed) or entirely below it (failed)
    2. Precision: SE <= SE_THRESHOLD, classify by theta vs the cut score
    3. Exhaustion: MAX_ITEMS reached without a decision (inconclusive)

An exam that reaches MAX_ITEMS with a category minimum still unmet also ends
inconclusive; it can never complete with the test plan unsatisfied.

References:
    - Kingsbury, G. G., & Weiss, D. J. (1983). A comparison of IRT-based
      adaptive mastery testing and a sequential mastery testing procedure.
      In D. J. Weiss (Ed.), New horizons in testing.
    - Eggen, T. J. H. M. (1999). Item selection in adaptive testing with the
      sequential probability ratio test. Applied Psychological Measurement,
      23(3), 249-261.
    - NCSBN (2023). NCLEX Examination Candidate Bulletin: passing standard
      and the 95% confidence interval rule.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from nclex_cat.models.models import ExamOutcome

logger = logging.getLogger(__name__)

# SE(theta) target for the precision rule
SE_THRESHOLD = 0.30

# Exam length bounds (NCLEX-RN)
MIN_ITEMS = 60
MAX_ITEMS = 145

# Passing standard on the theta scale
CUT_SCORE = 0.0

# Two-sided 95% normal quantile
CONFIDENCE_Z = 1.96

REASON_CONFIDENCE_INTERVAL = "confidence_interval"
REASON_PRECISION = "precision"
REASON_MAX_ITEMS = "max_items"
REASON_CONTENT_UNSATISFIED = "content_unsatisfied"


@dataclass
class StoppingDecision:
    """
    Result of evaluating stopping criteria after a response.

    Attributes:
        should_stop: Whether the exam should terminate.
        result: Classification when stopping (passed, failed or inconclusive),
            otherwise None.
        reason: Rule that fired, otherwise None.
        details: Diagnostic values (theta, se, bounds, item counts).
    """

    should_stop: bool
    result: Optional[ExamOutcome]
    reason: Optional[str]
    details: Dict[str, Any]


def check_stopping_criteria(
    theta: float,
    se: float,
    num_items: int,
    content_satisfied: bool,
    cut_score: float = CUT_SCORE,
    se_threshold: float = SE_THRESHOLD,
    min_items: int = MIN_ITEMS,
    max_items: int = MAX_ITEMS,
) -> StoppingDecision:
    """
    Decide whether the exam should stop and with what classification.

    Args:
        theta: Current ability estimate.
        se: Current standard error of theta.
        num_items: Responses recorded so far.
        content_satisfied: Whether every category has reached its minimum.
        cut_score: Passing theta threshold.
        se_threshold: SE at or below which the precision rule fires.
        min_items: Minimum exam length.
        max_items: Maximum exam length.

    Returns:
        StoppingDecision.

    Raises:
        ValueError: If se or num_items is negative.
    """
    if se < 0:
        raise ValueError(f"Standard error must be non-negative, got {se}")
    if num_items < 0:
        raise ValueError(f"Number of items must be non-negative, got {num_items}")

    lower = theta - CONFIDENCE_Z * se
    upper = theta + CONFIDENCE_Z * se
    details: Dict[str, Any] = {
        "theta": theta,
        "se": se,
        "ci_lower": lower,
        "ci_upper": upper,
        "cut_score": cut_score,
        "num_items": num_items,
        "se_threshold": se_threshold,
        "min_items_met": num_items >= min_items,
        "at_max_items": num_items >= max_items,
        "content_satisfied": content_satisfied,
    }

    if num_items < min_items:
        logger.debug(
            f"Continuing: {num_items}/{min_items} items administered (below minimum)"
        )
        return StoppingDecision(False, None, None, details)

    if not content_satisfied:
        if num_items >= max_items:
            logger.warning(
                f"Stopping inconclusive: reached {num_items} items with category "
                f"minimums unmet"
            )
            return StoppingDecision(
                True, ExamOutcome.INCONCLUSIVE, REASON_CONTENT_UNSATISFIED, details
            )
        logger.debug("Continuing: category minimums not yet met")
        return StoppingDecision(False, None, None, details)

    if lower > cut_score:
        logger.info(
            f"Stopping passed: CI lower bound {lower:.3f} above cut {cut_score:.3f} "
            f"after {num_items} items"
        )
        return StoppingDecision(
            True, ExamOutcome.PASSED, REASON_CONFIDENCE_INTERVAL, details
        )
    if upper < cut_score:
        logger.info(
            f"Stopping failed: CI upper bound {upper:.3f} below cut {cut_score:.3f} "
            f"after {num_items} items"
        )
        return StoppingDecision(
            True, ExamOutcome.FAILED, REASON_CONFIDENCE_INTERVAL, details
        )

    if se <= se_threshold:
        result = ExamOutcome.PASSED if theta >= cut_score else ExamOutcome.FAILED
        logger.info(
            f"Stopping {result.value}: SE={se:.4f} <= {se_threshold:.4f}, "
            f"theta={theta:.3f} after {num_items} items"
        )
        return StoppingDecision(True, result, REASON_PRECISION, details)

    if num_items >= max_items:
        logger.info(
            f"Stopping inconclusive: reached maximum items ({num_items}/{max_items})"
        )
        return StoppingDecision(
            True, ExamOutcome.INCONCLUSIVE, REASON_MAX_ITEMS, details
        )

    logger.debug(
        f"Continuing: theta={theta:.3f}, CI=[{lower:.3f}, {upper:.3f}], "
        f"SE={se:.4f}, items={num_items}"
    )
    return StoppingDecision(False, None, None, details)
