"""
CATSessionManager: state machine for one adaptive exam.

    NOT_STARTED -> IN_PROGRESS -> COMPLETED (passed | failed | inconclusive)
                              \\-> ABANDONED

Each turn presents one item (content balancer, then item selector) and later
ingests the candidate's response (ability estimator, then stopping rules).
The manager performs no I/O: all state lives in the CATSession it is handed,
the random source is injected, and exposure counting is delegated to an
injected ExposureCounter at the storage boundary.
"""
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from nclex_cat.core.cat.ability_estimation import (
    SE_SENTINEL,
    AbilityEstimate,
    estimate_ability,
)
from nclex_cat.core.cat.content_balancing import (
    eligible_categories,
    get_item_category,
    is_content_satisfied,
)
from nclex_cat.core.cat.errors import (
    InvalidSessionState,
    ItemMismatch,
    NoEligibleCategory,
    NoEligibleItems,
)
from nclex_cat.core.cat.exam_config import ExamConfig
from nclex_cat.core.cat.exposure_control import ExposureCounter, ExposureMonitor
from nclex_cat.core.cat.item_selection import CalibratedItem, select_next_item
from nclex_cat.core.cat.scoring import ExamScore, score_session
from nclex_cat.core.cat.stopping_rules import StoppingDecision, check_stopping_criteria
from nclex_cat.core.datetime_utils import utc_now
from nclex_cat.models.models import ExamOutcome, NCLEXCategory, SessionState

logger = logging.getLogger(__name__)

REASON_ABANDONED = "abandoned"
REASON_NO_ELIGIBLE_ITEMS = "no_eligible_items"
REASON_NO_ELIGIBLE_CATEGORY = "no_eligible_category"


@dataclass
class ResponseRecord:
    """One answered item, in administration order."""

    sequence: int  # 1-based
    item_id: int
    correct: bool
    theta_before: float
    theta_after: float
    se_after: float
    category: NCLEXCategory
    difficulty: float  # b
    discrimination: float  # a
    guessing: float  # c
    timestamp: datetime
    time_spent_seconds: Optional[int] = None


@dataclass
class CATSession:
    """In-memory representation of an adaptive exam session."""

    candidate_id: str
    config: ExamConfig
    session_id: Optional[int] = None
    state: SessionState = SessionState.NOT_STARTED
    theta: float = 0.0
    se: float = SE_SENTINEL
    min_se: float = SE_SENTINEL  # running minimum of se
    responses: List[ResponseRecord] = field(default_factory=list)
    category_counts: Dict[NCLEXCategory, int] = field(default_factory=dict)
    current_item_id: Optional[int] = None  # presented, not yet answered
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    result: Optional[ExamOutcome] = None
    stop_reason: Optional[str] = None
    version: int = 1

    @property
    def administered_item_ids(self) -> List[int]:
        """Answered item IDs in administration order."""
        return [r.item_id for r in self.responses]

    @property
    def is_terminal(self) -> bool:
        return self.state in (SessionState.COMPLETED, SessionState.ABANDONED)


@dataclass
class CATStepResult:
    """Result after processing a single response."""

    response: ResponseRecord
    theta: float
    se: float
    estimation_method: str
    items_administered: int
    should_stop: bool
    result: Optional[ExamOutcome]
    stop_reason: Optional[str]


class CATSessionManager:
    """
    Orchestrator for NCLEX adaptive exam sessions.

    Manages:
    - Session initialization and start
    - Next-item selection under the test plan with randomesque exposure control
    - Response processing and ability re-estimation (MLE with EAP fallback)
    - Stopping criteria evaluation and classification
    - Abandonment and forced termination
    - Final scoring
    """

    def __init__(
        self,
        config: ExamConfig,
        rng: random.Random,
        exposure_counter: Optional[ExposureCounter] = None,
        monitor: Optional[ExposureMonitor] = None,
    ):
        self.config = config
        self.rng = rng
        self.exposure_counter = exposure_counter
        self.monitor = monitor

    def initialize(
        self, candidate_id: str, session_id: Optional[int] = None
    ) -> CATSession:
        """Create a NOT_STARTED session with every category count at zero."""
        return CATSession(
            candidate_id=candidate_id,
            config=self.config,
            session_id=session_id,
            category_counts={category: 0 for category in NCLEXCategory},
        )

    def begin(self, session: CATSession) -> CATSession:
        """
        Move a session to IN_PROGRESS with theta 0 and the SE sentinel.

        Raises:
            InvalidSessionState: If the session is not NOT_STARTED.
        """
        if session.state != SessionState.NOT_STARTED:
            raise InvalidSessionState(
                f"Cannot start a session in state '{session.state.value}'",
                context={"session_id": session.session_id},
            )
        session.state = SessionState.IN_PROGRESS
        session.theta = 0.0
        session.se = SE_SENTINEL
        session.min_se = SE_SENTINEL
        session.started_at = utc_now()

        if self.monitor is not None:
            self.monitor.record_session()

        logger.info(
            f"Started CAT session {session.session_id} for candidate "
            f"{session.candidate_id} (min={self.config.min_items}, "
            f"max={self.config.max_items}, cut={self.config.cut_score:.2f})"
        )
        return session

    def choose_next_item(
        self, session: CATSession, item_pool: Sequence[CalibratedItem]
    ) -> Optional[CalibratedItem]:
        """
        Present the next item and mark it as the session's pending item.

        Exposure is counted here, once per presentation. When the pool or
        the test plan admits no item the session is terminated as
        inconclusive and None is returned.

        Raises:
            InvalidSessionState: If the session is not IN_PROGRESS or an item
                is already pending.
        """
        self.require_in_progress(session)
        if session.current_item_id is not None:
            raise InvalidSessionState(
                f"Item {session.current_item_id} is still awaiting a response",
                context={"session_id": session.session_id},
            )

        try:
            eligibility = eligible_categories(
                session.category_counts,
                self.config.quotas,
                items_administered=len(session.responses),
                min_items=self.config.min_items,
                max_items=self.config.max_items,
            )
            item = select_next_item(
                item_pool,
                theta_estimate=session.theta,
                eligibility=eligibility,
                excluded_ids=set(session.administered_item_ids),
                rng=self.rng,
                randomesque_k=self.config.exposure_top_k,
                monitor=self.monitor,
            )
        except (NoEligibleItems, NoEligibleCategory) as e:
            reason = (
                REASON_NO_ELIGIBLE_CATEGORY
                if isinstance(e, NoEligibleCategory)
                else REASON_NO_ELIGIBLE_ITEMS
            )
            counts = {c.value: n for c, n in session.category_counts.items()}
            logger.warning(
                f"Session {session.session_id}: {e}; terminating inconclusive "
                f"after {len(session.responses)} items, category counts {counts}"
            )
            self.terminate(session, ExamOutcome.INCONCLUSIVE, reason)
            return None

        if self.exposure_counter is not None:
            self.exposure_counter.record_administration(item.id)
        session.current_item_id = item.id
        return item

    def record_response(
        self,
        session: CATSession,
        item: CalibratedItem,
        is_correct: bool,
        time_spent_seconds: Optional[int] = None,
        answered_at: Optional[datetime] = None,
    ) -> CATStepResult:
        """
        Ingest the response to the pending item and advance one turn.

        This method mutates the session in place: it appends the response,
        updates the category count, re-estimates theta and SE, and completes
        the session when a stopping rule fires.

        Raises:
            InvalidSessionState: If the session is not IN_PROGRESS.
            ItemMismatch: If ``item`` is not the pending item.
        """
        self.require_in_progress(session)
        if session.current_item_id is None or session.current_item_id != item.id:
            raise ItemMismatch(
                f"Response for item {item.id} but pending item is "
                f"{session.current_item_id}",
                context={"session_id": session.session_id},
            )

        category = get_item_category(item)
        if category is None:
            raise ValueError(f"Item {item.id} has no category")

        theta_before = session.theta
        history = [
            (r.discrimination, r.difficulty, r.guessing, r.correct)
            for r in session.responses
        ]
        history.append(
            (item.discrimination, item.difficulty, item.guessing, bool(is_correct))
        )
        estimate: AbilityEstimate = estimate_ability(history)

        timestamp = answered_at or utc_now()
        if session.responses and timestamp < session.responses[-1].timestamp:
            timestamp = session.responses[-1].timestamp

        record = ResponseRecord(
            sequence=len(session.responses) + 1,
            item_id=item.id,
            correct=bool(is_correct),
            theta_before=theta_before,
            theta_after=estimate.theta,
            se_after=estimate.se,
            category=category,
            difficulty=item.difficulty,
            discrimination=item.discrimination,
            guessing=item.guessing,
            timestamp=timestamp,
            time_spent_seconds=time_spent_seconds,
        )
        session.responses.append(record)
        session.category_counts[category] = session.category_counts.get(category, 0) + 1
        session.current_item_id = None
        session.theta = estimate.theta
        session.se = estimate.se
        if estimate.se > session.min_se:
            logger.warning(
                f"Session {session.session_id}: SE rose to {estimate.se:.4f} "
                f"above running minimum {session.min_se:.4f} ({estimate.method})"
            )
        session.min_se = min(session.min_se, estimate.se)

        decision = self.should_stop(session)
        if decision.should_stop:
            assert decision.result is not None and decision.reason is not None
            self.terminate(session, decision.result, decision.reason)

        logger.debug(
            f"Session {session.session_id}: Response #{record.sequence} "
            f"(item {item.id}, correct={is_correct}) -> "
            f"theta={estimate.theta:.3f}, SE={estimate.se:.3f} ({estimate.method}), "
            f"stop={decision.should_stop}"
        )

        return CATStepResult(
            response=record,
            theta=estimate.theta,
            se=estimate.se,
            estimation_method=estimate.method,
            items_administered=len(session.responses),
            should_stop=decision.should_stop,
            result=decision.result,
            stop_reason=decision.reason,
        )

    def should_stop(self, session: CATSession) -> StoppingDecision:
        """Evaluate the stopping rules against the session's current state."""
        return check_stopping_criteria(
            theta=session.theta,
            se=session.se,
            num_items=len(session.responses),
            content_satisfied=is_content_satisfied(
                session.category_counts, self.config.quotas
            ),
            cut_score=self.config.cut_score,
            se_threshold=self.config.se_threshold,
            min_items=self.config.min_items,
            max_items=self.config.max_items,
        )

    def terminate(
        self, session: CATSession, result: ExamOutcome, reason: str
    ) -> CATSession:
        """
        Complete the session with a classification.

        Raises:
            InvalidSessionState: If the session is not IN_PROGRESS.
        """
        self.require_in_progress(session)
        session.state = SessionState.COMPLETED
        session.result = result
        session.stop_reason = reason
        session.current_item_id = None
        session.completed_at = utc_now()

        logger.info(
            f"Session {session.session_id} completed: result={result.value}, "
            f"reason={reason}, theta={session.theta:.3f}, SE={session.se:.3f}, "
            f"items={len(session.responses)}"
        )
        return session

    def abandon(self, session: CATSession) -> CATSession:
        """
        Abandon an in-progress session (external cancel or timeout).

        Responses recorded so far are kept; no further items or responses
        are accepted.

        Raises:
            InvalidSessionState: If the session is not IN_PROGRESS.
        """
        self.require_in_progress(session)
        session.state = SessionState.ABANDONED
        session.result = ExamOutcome.ABANDONED
        session.stop_reason = REASON_ABANDONED
        session.current_item_id = None
        session.completed_at = utc_now()

        logger.info(
            f"Session {session.session_id} abandoned after "
            f"{len(session.responses)} items"
        )
        return session

    def finalize(self, session: CATSession) -> ExamScore:
        """
        Score a terminal session.

        Raises:
            InvalidSessionState: If the session has not finished.
        """
        if not session.is_terminal:
            raise InvalidSessionState(
                f"Session is '{session.state.value}'; results are available "
                f"once it has finished",
                context={"session_id": session.session_id},
            )
        return score_session(session, self.config.cut_score)

    @staticmethod
    def require_in_progress(session: CATSession) -> None:
        """Raise InvalidSessionState unless the session is IN_PROGRESS."""
        if session.state != SessionState.IN_PROGRESS:
            raise InvalidSessionState(
                f"Session is '{session.state.value}', expected 'in_progress'",
                context={"session_id": session.session_id},
            )
