"""
Final scoring and readiness classification for a terminal exam session.

    passing_probability = 1 / (1 + exp(-1.7 * a_avg * (theta - cut)))

a_avg is the mean discrimination of the administered items and only scales
the display curve; it plays no part in the likelihood. The 1.7 constant is
the usual logistic-to-normal-ogive scaling factor.

    confidence_percent = round(100 * (1 - se / REFERENCE_SE)), clamped to [0, 100]

REFERENCE_SE is the standard error before any evidence, the N(0, 1) prior SD.

All values derive from the session; nothing here mutates it.
"""

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple

from nclex_cat.core.cat.ability_estimation import PRIOR_SD
from nclex_cat.core.cat.irt import clamp_theta
from nclex_cat.core.cat.stopping_rules import CONFIDENCE_Z
from nclex_cat.models.models import ExamOutcome, NCLEXCategory

if TYPE_CHECKING:
    from nclex_cat.core.cat.engine import CATSession

LOGISTIC_SCALING = 1.7
REFERENCE_SE = PRIOR_SD

# Readiness tiers keyed on passing probability, highest first
READINESS_TIERS: List[Tuple[float, str]] = [
    (0.85, "exam_ready"),
    (0.70, "nearly_ready"),
    (0.55, "developing"),
]
READINESS_FLOOR_TIER = "needs_preparation"

# Category proficiency tiers keyed on accuracy percent, highest first
PROFICIENCY_TIERS: List[Tuple[float, str]] = [
    (85.0, "mastered"),
    (70.0, "proficient"),
    (50.0, "developing"),
]
PROFICIENCY_FLOOR_TIER = "needs_improvement"

# Ability trend across a candidate's finished exams
TREND_WINDOW = 3
TREND_MARGIN = 0.3
TREND_IMPROVING = "improving"
TREND_STABLE = "stable"
TREND_DECLINING = "declining"


@dataclass
class CategoryScore:
    """Per-category performance."""

    category: NCLEXCategory
    correct: int
    total: int
    accuracy: float  # percent
    proficiency: str


@dataclass
class ExamScore:
    """Derived result values for a finished (or in-flight) session."""

    result: Optional[ExamOutcome]
    passed: bool
    final_ability: float
    standard_error: float
    confidence_percent: int
    passing_probability: float
    readiness_tier: str
    confidence_interval: Tuple[float, float]
    total_questions: int
    correct_count: int
    accuracy: float  # percent
    average_time_seconds: Optional[float]
    category_breakdown: List[CategoryScore] = field(default_factory=list)


def passing_probability(theta: float, cut_score: float, mean_discrimination: float) -> float:
    """Logistic readiness indicator; 0.5 exactly at the cut score."""
    logit = LOGISTIC_SCALING * mean_discrimination * (theta - cut_score)
    if logit >= 0:
        return 1.0 / (1.0 + math.exp(-logit))
    exp_logit = math.exp(logit)
    return exp_logit / (1.0 + exp_logit)


def confidence_percent(se: float, reference_se: float = REFERENCE_SE) -> int:
    """Precision gained relative to the starting SE, as a 0-100 percentage."""
    raw = round(100 * (1.0 - se / reference_se))
    return max(0, min(100, raw))


def readiness_tier(probability: float) -> str:
    for threshold, tier in READINESS_TIERS:
        if probability >= threshold:
            return tier
    return READINESS_FLOOR_TIER


def proficiency_tier(accuracy_percent: float) -> str:
    for threshold, tier in PROFICIENCY_TIERS:
        if accuracy_percent >= threshold:
            return tier
    return PROFICIENCY_FLOOR_TIER


def ability_trend(thetas_newest_first: Sequence[float]) -> str:
    """
    Compare the newest TREND_WINDOW final abilities with the oldest ones.

    Fewer than TREND_WINDOW exams is always "stable". The windows overlap
    when there are fewer than twice that many exams.
    """
    if len(thetas_newest_first) < TREND_WINDOW:
        return TREND_STABLE
    recent = sum(thetas_newest_first[:TREND_WINDOW]) / TREND_WINDOW
    older = sum(thetas_newest_first[-TREND_WINDOW:]) / TREND_WINDOW
    if recent > older + TREND_MARGIN:
        return TREND_IMPROVING
    if recent < older - TREND_MARGIN:
        return TREND_DECLINING
    return TREND_STABLE


def score_session(session: "CATSession", cut_score: float) -> ExamScore:
    """
    Compute the result values for a session.

    Args:
        session: Session to score, normally terminal.
        cut_score: Passing theta threshold the exam ran with.

    Returns:
        ExamScore.
    """
    responses = session.responses
    total = len(responses)
    correct = sum(1 for r in responses if r.correct)

    mean_a = (
        sum(r.discrimination for r in responses) / total if total else 1.0
    )
    probability = passing_probability(session.theta, cut_score, mean_a)

    timed = [r.time_spent_seconds for r in responses if r.time_spent_seconds is not None]
    average_time = round(sum(timed) / len(timed), 1) if timed else None

    return ExamScore(
        result=session.result,
        passed=session.result == ExamOutcome.PASSED,
        final_ability=session.theta,
        standard_error=session.se,
        confidence_percent=confidence_percent(session.se),
        passing_probability=round(probability, 4),
        readiness_tier=readiness_tier(probability),
        confidence_interval=(
            clamp_theta(session.theta - CONFIDENCE_Z * session.se),
            clamp_theta(session.theta + CONFIDENCE_Z * session.se),
        ),
        total_questions=total,
        correct_count=correct,
        accuracy=round(100.0 * correct / total, 1) if total else 0.0,
        average_time_seconds=average_time,
        category_breakdown=category_breakdown(session),
    )


def category_breakdown(session: "CATSession") -> List[CategoryScore]:
    """Per-category correct/total/accuracy in category enum order."""
    totals: Dict[NCLEXCategory, List[int]] = {}
    for r in session.responses:
        counts = totals.setdefault(r.category, [0, 0])
        counts[1] += 1
        if r.correct:
            counts[0] += 1

    breakdown = []
    for category in NCLEXCategory:
        if category not in totals:
            continue
        n_correct, n_total = totals[category]
        accuracy = round(100.0 * n_correct / n_total, 1)
        breakdown.append(
            CategoryScore(
                category=category,
                correct=n_correct,
                total=n_total,
                accuracy=accuracy,
                proficiency=proficiency_tier(accuracy),
            )
        )
    return breakdown
