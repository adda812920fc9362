"""
Tests for the CATSessionManager state machine.
"""

import random
from datetime import timedelta

import pytest

from nclex_cat.core.cat.ability_estimation import METHOD_EAP, PRIOR_SD, SE_SENTINEL
from nclex_cat.core.cat.engine import (
    REASON_ABANDONED,
    REASON_NO_ELIGIBLE_ITEMS,
    CATSessionManager,
)
from nclex_cat.core.cat.errors import InvalidSessionState, ItemMismatch
from nclex_cat.core.cat.exam_config import ExamConfig
from nclex_cat.core.cat.exposure_control import ExposureMonitor, InMemoryExposureCounter
from nclex_cat.core.cat.simulation import SimulatedItem
from nclex_cat.core.cat.stopping_rules import (
    REASON_CONFIDENCE_INTERVAL,
    REASON_MAX_ITEMS,
    REASON_PRECISION,
)
from nclex_cat.models.models import ExamOutcome, NCLEXCategory, SessionState


def build_bank(per_category, a=1.0, b=0.75, c=0.2, categories=None, spread=0.0):
    """Identical-parameter items, or difficulties spread evenly across [-spread, spread]."""
    items = []
    item_id = 1
    for category in categories or list(NCLEXCategory):
        for i in range(per_category):
            difficulty = b
            if spread and per_category > 1:
                difficulty = -spread + 2 * spread * i / (per_category - 1)
            items.append(SimulatedItem(item_id, category, a, difficulty, c))
            item_id += 1
    return items


def run_exam(manager, bank, answer, candidate_id="cand-1"):
    """Drive a session to completion; ``answer(n)`` gives the nth response."""
    session = manager.begin(manager.initialize(candidate_id, session_id=1))
    steps = []
    while not session.is_terminal:
        item = manager.choose_next_item(session, bank)
        if item is None:
            break
        steps.append(manager.record_response(session, item, answer(len(steps))))
    return session, steps


@pytest.fixture
def short_config():
    return ExamConfig(min_items=10, max_items=50, se_threshold=0.3, cut_score=0.0)


class TestLifecycle:
    def test_initialize_and_begin(self, short_config):
        monitor = ExposureMonitor()
        manager = CATSessionManager(short_config, random.Random(0), monitor=monitor)
        session = manager.initialize("cand-1")
        assert session.state == SessionState.NOT_STARTED
        assert all(count == 0 for count in session.category_counts.values())
        assert len(session.category_counts) == 8

        manager.begin(session)
        assert session.state == SessionState.IN_PROGRESS
        assert session.theta == 0.0
        assert session.se == SE_SENTINEL
        assert session.started_at is not None
        assert monitor.sessions == 1

    def test_begin_twice_raises(self, short_config):
        manager = CATSessionManager(short_config, random.Random(0))
        session = manager.begin(manager.initialize("cand-1"))
        with pytest.raises(InvalidSessionState):
            manager.begin(session)

    def test_choose_before_begin_raises(self, short_config):
        manager = CATSessionManager(short_config, random.Random(0))
        session = manager.initialize("cand-1")
        with pytest.raises(InvalidSessionState):
            manager.choose_next_item(session, build_bank(2))

    def test_second_choice_while_item_pending_raises(self, short_config):
        manager = CATSessionManager(short_config, random.Random(0))
        session = manager.begin(manager.initialize("cand-1"))
        bank = build_bank(2)
        manager.choose_next_item(session, bank)
        with pytest.raises(InvalidSessionState, match="awaiting a response"):
            manager.choose_next_item(session, bank)

    def test_response_for_wrong_item_raises(self, short_config):
        manager = CATSessionManager(short_config, random.Random(0))
        session = manager.begin(manager.initialize("cand-1"))
        bank = build_bank(2)
        presented = manager.choose_next_item(session, bank)
        other = next(item for item in bank if item.id != presented.id)
        with pytest.raises(ItemMismatch):
            manager.record_response(session, other, True)
        assert session.responses == []

    def test_response_without_pending_item_raises(self, short_config):
        manager = CATSessionManager(short_config, random.Random(0))
        session = manager.begin(manager.initialize("cand-1"))
        with pytest.raises(ItemMismatch):
            manager.record_response(session, build_bank(1)[0], True)

    def test_abandon_keeps_responses(self, short_config):
        manager = CATSessionManager(short_config, random.Random(0))
        session = manager.begin(manager.initialize("cand-1"))
        bank = build_bank(2)
        manager.record_response(session, manager.choose_next_item(session, bank), True)
        manager.choose_next_item(session, bank)

        manager.abandon(session)
        assert session.state == SessionState.ABANDONED
        assert session.result == ExamOutcome.ABANDONED
        assert session.stop_reason == REASON_ABANDONED
        assert session.current_item_id is None
        assert len(session.responses) == 1
        assert session.completed_at is not None

        with pytest.raises(InvalidSessionState):
            manager.abandon(session)
        with pytest.raises(InvalidSessionState):
            manager.choose_next_item(session, bank)

    def test_finalize_requires_terminal_session(self, short_config):
        manager = CATSessionManager(short_config, random.Random(0))
        session = manager.begin(manager.initialize("cand-1"))
        with pytest.raises(InvalidSessionState, match="once it has finished"):
            manager.finalize(session)


class TestAllCorrectScenario:
    """48 identical items (a=1, b=0.75, c=0.2); every answer correct."""

    @pytest.fixture
    def outcome(self, short_config):
        manager = CATSessionManager(short_config, random.Random(42))
        return run_exam(manager, build_bank(6), lambda n: True)

    def test_passes_at_minimum_length(self, outcome):
        session, steps = outcome
        assert session.state == SessionState.COMPLETED
        assert session.result == ExamOutcome.PASSED
        assert session.stop_reason == REASON_CONFIDENCE_INTERVAL
        assert len(session.responses) == 10
        assert steps[-1].should_stop

    def test_theta_rises_with_every_correct_answer(self, outcome):
        _, steps = outcome
        thetas = [step.theta for step in steps]
        assert all(later > earlier for earlier, later in zip(thetas, thetas[1:]))

    def test_standard_error_never_rises(self, outcome):
        _, steps = outcome
        errors = [step.se for step in steps]
        assert all(later <= earlier + 1e-9 for earlier, later in zip(errors, errors[1:]))
        assert errors[-1] < errors[0]

    def test_content_minimums_met(self, outcome):
        session, _ = outcome
        for category, quota in session.config.quotas.items():
            assert quota.min_count <= session.category_counts[category] <= quota.max_count

    def test_response_records(self, outcome):
        session, _ = outcome
        assert [r.sequence for r in session.responses] == list(range(1, 11))
        assert len(set(session.administered_item_ids)) == 10
        assert session.responses[0].theta_before == 0.0
        for previous, current in zip(session.responses, session.responses[1:]):
            assert current.theta_before == previous.theta_after
            assert current.timestamp >= previous.timestamp

    def test_finalize(self, short_config, outcome):
        session, _ = outcome
        manager = CATSessionManager(short_config, random.Random(0))
        score = manager.finalize(session)
        assert score.passed is True
        assert score.total_questions == 10
        assert score.accuracy == pytest.approx(100.0)


class TestPrecisionScenario:
    def test_alternating_answers_stop_on_precision(self, short_config):
        bank = build_bank(8, a=1.5, c=0.0, spread=0.2)
        manager = CATSessionManager(short_config, random.Random(3))
        session, _ = run_exam(manager, bank, lambda n: n % 2 == 0)

        assert session.stop_reason == REASON_PRECISION
        assert len(session.responses) < 50
        assert session.se <= 0.3
        assert session.result in (ExamOutcome.PASSED, ExamOutcome.FAILED)


class TestStandardErrorTrail:
    """Incorrect-heavy answers on a=1, c=0.25 items (I, C, I, C, I, I)."""

    ANSWERS = [False, True, False, True, False, False]

    def test_mixed_answers_never_raise_standard_error(self, short_config):
        bank = build_bank(9, a=1.0, c=0.25, spread=2.0)
        manager = CATSessionManager(short_config, random.Random(5))
        session = manager.begin(manager.initialize("cand-1", session_id=1))

        for is_correct in self.ANSWERS:
            previous_min = session.min_se
            item = manager.choose_next_item(session, bank)
            step = manager.record_response(session, item, is_correct)

            # Six such items carry less information than the prior, so MLE is never reported
            assert step.estimation_method == METHOD_EAP
            assert step.se <= PRIOR_SD
            assert session.se <= previous_min
            assert session.min_se == session.se

        assert session.state == SessionState.IN_PROGRESS
        assert session.theta < 0.0


class TestMaxItemsScenario:
    def test_uninformative_items_end_inconclusive(self):
        config = ExamConfig(min_items=10, max_items=20, se_threshold=0.3)
        bank = build_bank(4, a=0.5, b=0.0, c=0.0)
        manager = CATSessionManager(config, random.Random(9))
        session, _ = run_exam(manager, bank, lambda n: n % 2 == 0)

        assert session.result == ExamOutcome.INCONCLUSIVE
        assert session.stop_reason == REASON_MAX_ITEMS
        assert len(session.responses) == 20


class TestExhaustedPool:
    def test_empty_pool_ends_inconclusive(self):
        config = ExamConfig(min_items=10, max_items=20)
        bank = build_bank(3, categories=[NCLEXCategory.MANAGEMENT_OF_CARE])
        manager = CATSessionManager(config, random.Random(0))
        session, _ = run_exam(manager, bank, lambda n: True)

        assert session.state == SessionState.COMPLETED
        assert session.result == ExamOutcome.INCONCLUSIVE
        assert session.stop_reason == REASON_NO_ELIGIBLE_ITEMS
        assert len(session.responses) == 3


class TestDeterminismAndExposure:
    def test_same_seed_same_exam(self, short_config):
        runs = []
        for _ in range(2):
            manager = CATSessionManager(short_config, random.Random(2024))
            session, _ = run_exam(manager, build_bank(6), lambda n: n % 3 != 0)
            runs.append(
                (session.administered_item_ids, session.theta, session.se, session.result)
            )
        assert runs[0] == runs[1]

    def test_no_item_repeats(self, short_config):
        bank = build_bank(8, a=1.5, c=0.0, spread=0.2)
        manager = CATSessionManager(short_config, random.Random(1))
        session, _ = run_exam(manager, bank, lambda n: n % 2 == 0)
        ids = session.administered_item_ids
        assert len(ids) == len(set(ids))

    def test_exposure_counted_once_per_presentation(self, short_config):
        counter = InMemoryExposureCounter()
        manager = CATSessionManager(short_config, random.Random(0), exposure_counter=counter)
        session, _ = run_exam(manager, build_bank(6), lambda n: True)
        assert counter.total == len(session.responses)
        assert all(counter.get(item_id) == 1 for item_id in session.administered_item_ids)


def test_out_of_order_timestamp_is_clamped(short_config):
    manager = CATSessionManager(short_config, random.Random(0))
    session = manager.begin(manager.initialize("cand-1"))
    bank = build_bank(2)

    first = manager.record_response(session, manager.choose_next_item(session, bank), True)
    earlier = first.response.timestamp - timedelta(minutes=5)
    second = manager.record_response(
        session, manager.choose_next_item(session, bank), False, answered_at=earlier
    )
    assert second.response.timestamp == first.response.timestamp


def test_time_spent_is_recorded(short_config):
    manager = CATSessionManager(short_config, random.Random(0))
    session = manager.begin(manager.initialize("cand-1"))
    item = manager.choose_next_item(session, build_bank(2))
    step = manager.record_response(session, item, True, time_spent_seconds=42)
    assert step.response.time_spent_seconds == 42
    assert step.items_administered == 1
    assert session.category_counts[item.category] == 1
