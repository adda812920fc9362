"""
Tests for final scoring and readiness classification.
"""

from datetime import datetime, timezone

import pytest

from nclex_cat.core.cat.engine import CATSession, ResponseRecord
from nclex_cat.core.cat.exam_config import ExamConfig
from nclex_cat.core.cat.scoring import (
    TREND_DECLINING,
    TREND_IMPROVING,
    TREND_STABLE,
    ability_trend,
    category_breakdown,
    confidence_percent,
    passing_probability,
    proficiency_tier,
    readiness_tier,
    score_session,
)
from nclex_cat.models.models import ExamOutcome, NCLEXCategory, SessionState

MOC = NCLEXCategory.MANAGEMENT_OF_CARE
PA = NCLEXCategory.PHYSIOLOGICAL_ADAPTATION


def _response(sequence, category, correct, seconds, a=1.0):
    return ResponseRecord(
        sequence=sequence,
        item_id=sequence,
        correct=correct,
        theta_before=0.0,
        theta_after=0.0,
        se_after=1.0,
        category=category,
        difficulty=0.0,
        discrimination=a,
        guessing=0.2,
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        time_spent_seconds=seconds,
    )


@pytest.fixture
def finished_session():
    session = CATSession(candidate_id="cand-1", config=ExamConfig())
    session.state = SessionState.COMPLETED
    session.result = ExamOutcome.PASSED
    session.theta = 1.0
    session.se = 0.3
    session.responses = [
        _response(1, MOC, True, 30),
        _response(2, MOC, False, 50),
        _response(3, PA, True, None),
        _response(4, PA, True, 40),
    ]
    return session


class TestPassingProbability:
    def test_half_at_cut_score(self):
        assert passing_probability(0.5, 0.5, 1.2) == pytest.approx(0.5)

    def test_logistic_with_scaling(self):
        assert passing_probability(1.0, 0.0, 1.0) == pytest.approx(0.8455, abs=1e-4)

    def test_symmetry(self):
        above = passing_probability(0.7, 0.0, 1.3)
        below = passing_probability(-0.7, 0.0, 1.3)
        assert above + below == pytest.approx(1.0)


class TestConfidencePercent:
    @pytest.mark.parametrize(
        "se, expected", [(0.3, 70), (1.0, 0), (999.0, 0), (0.0, 100), (0.25, 75)]
    )
    def test_values(self, se, expected):
        assert confidence_percent(se) == expected


class TestTiers:
    @pytest.mark.parametrize(
        "probability, tier",
        [
            (0.95, "exam_ready"),
            (0.85, "exam_ready"),
            (0.8, "nearly_ready"),
            (0.6, "developing"),
            (0.3, "needs_preparation"),
        ],
    )
    def test_readiness(self, probability, tier):
        assert readiness_tier(probability) == tier

    @pytest.mark.parametrize(
        "accuracy, tier",
        [
            (100.0, "mastered"),
            (85.0, "mastered"),
            (70.0, "proficient"),
            (50.0, "developing"),
            (49.9, "needs_improvement"),
        ],
    )
    def test_proficiency(self, accuracy, tier):
        assert proficiency_tier(accuracy) == tier


class TestAbilityTrend:
    @pytest.mark.parametrize(
        "thetas, trend",
        [
            ([], TREND_STABLE),
            ([2.0, -2.0], TREND_STABLE),
            ([1.0, 1.0, 1.0, 0.0, 0.0, 0.0], TREND_IMPROVING),
            ([-1.0, -1.0, -1.0, 0.0, 0.0, 0.0], TREND_DECLINING),
            ([0.2, 0.2, 0.2, 0.0, 0.0, 0.0], TREND_STABLE),
        ],
    )
    def test_values(self, thetas, trend):
        assert ability_trend(thetas) == trend

    def test_three_exams_compare_with_themselves(self):
        assert ability_trend([3.0, 0.0, -3.0]) == TREND_STABLE

    def test_windows_overlap_with_four_exams(self):
        # newest three average 1.0, oldest three average 0.0
        assert ability_trend([2.0, 1.0, 0.0, -1.0]) == TREND_IMPROVING


class TestScoreSession:
    def test_summary_values(self, finished_session):
        score = score_session(finished_session, cut_score=0.0)
        assert score.result == ExamOutcome.PASSED
        assert score.passed is True
        assert score.final_ability == pytest.approx(1.0)
        assert score.standard_error == pytest.approx(0.3)
        assert score.confidence_percent == 70
        assert score.total_questions == 4
        assert score.correct_count == 3
        assert score.accuracy == pytest.approx(75.0)
        assert score.average_time_seconds == pytest.approx(40.0)
        assert score.passing_probability == pytest.approx(0.8455, abs=1e-4)
        assert score.readiness_tier == "nearly_ready"

    def test_confidence_interval(self, finished_session):
        lower, upper = score_session(finished_session, 0.0).confidence_interval
        assert lower == pytest.approx(1.0 - 1.96 * 0.3)
        assert upper == pytest.approx(1.0 + 1.96 * 0.3)

    def test_confidence_interval_clamped_to_theta_range(self, finished_session):
        finished_session.se = 999.0
        assert score_session(finished_session, 0.0).confidence_interval == (-4.0, 4.0)

    def test_failed_session_is_not_passed(self, finished_session):
        finished_session.result = ExamOutcome.FAILED
        assert score_session(finished_session, 0.0).passed is False

    def test_empty_session(self):
        session = CATSession(candidate_id="cand-2", config=ExamConfig())
        score = score_session(session, 0.0)
        assert score.total_questions == 0
        assert score.accuracy == 0.0
        assert score.average_time_seconds is None
        assert score.category_breakdown == []


def test_category_breakdown(finished_session):
    breakdown = category_breakdown(finished_session)
    assert [entry.category for entry in breakdown] == [MOC, PA]
    moc, pa = breakdown
    assert (moc.correct, moc.total, moc.accuracy, moc.proficiency) == (1, 2, 50.0, "developing")
    assert (pa.correct, pa.total, pa.accuracy, pa.proficiency) == (2, 2, 100.0, "mastered")
