"""
Persistence-aware exam orchestration.

ExamService runs one turn of an adaptive exam per call: load the session,
let CATSessionManager advance it, then compare-and-set the session row and
commit. Exposure increments run in the same transaction as the session write,
so a turn that loses a version race leaves no trace in the item bank.
"""
import logging
import random
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from sqlalchemy.orm import Session

from nclex_cat.core.cat.engine import CATSession, CATSessionManager
from nclex_cat.core.cat.errors import ConcurrentModification, ItemMismatch
from nclex_cat.core.cat.exam_config import ExamConfig
from nclex_cat.core.cat.exposure_control import ExposureMonitor
from nclex_cat.core.cat.scoring import ExamScore, ability_trend, confidence_percent
from nclex_cat.core.db_error_handling import handle_db_error
from nclex_cat.core.question_utils import SelectedAnswer, is_answer_correct
from nclex_cat.models.models import Item, SessionState
from nclex_cat.services.item_bank import ItemBank
from nclex_cat.services.session_store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class SessionSnapshot:
    """Session state after a turn, with the pending item if any."""

    session: CATSession
    current_item: Optional[Item] = None
    last_response_correct: Optional[bool] = None


@dataclass
class NextItem:
    """The item to present, or the final score once the exam has ended."""

    session: CATSession
    item: Optional[Item] = None
    score: Optional[ExamScore] = None

    @property
    def complete(self) -> bool:
        return self.item is None


@dataclass
class ExamResultView:
    """A terminal session together with its computed score."""

    session: CATSession
    score: ExamScore


@dataclass
class AbilitySummary:
    """A candidate's latest final ability and its trend across exams."""

    ability: float
    confidence_percent: int
    trend: str
    tests_completed: int


# Finished exams consulted for the ability trend
ABILITY_HISTORY_LIMIT = 10
HISTORY_STATES = (SessionState.COMPLETED, SessionState.ABANDONED)


class ExamService:
    """Runs exam turns against the item bank and session store."""

    def __init__(
        self,
        db: Session,
        settings: Any,
        rng: Optional[random.Random] = None,
        monitor: Optional[ExposureMonitor] = None,
    ):
        self.db = db
        self.settings = settings
        self.rng = rng if rng is not None else random.Random()
        self.monitor = monitor
        self.item_bank = ItemBank(db)
        self.store = SessionStore(db)

    def _manager(self, config: ExamConfig) -> CATSessionManager:
        # The monitor is fed after commit, so lost turns are never counted
        return CATSessionManager(config, self.rng, exposure_counter=self.item_bank)

    def _record_exposure(self, item: Optional[Item], new_session: bool = False) -> None:
        if self.monitor is None:
            return
        if new_session:
            self.monitor.record_session()
        if item is not None:
            self.monitor.record_selection(item.id)

    def _present_next(
        self, manager: CATSessionManager, session: CATSession
    ) -> Optional[Item]:
        pool = self.item_bank.eligible_items(exclude_ids=session.administered_item_ids)
        return manager.choose_next_item(session, pool)

    def start_session(
        self, candidate_id: str, exam_config: Optional[Mapping[str, Any]] = None
    ) -> SessionSnapshot:
        """
        Create and begin an exam, presenting its first item.

        Args:
            candidate_id: Candidate identifier.
            exam_config: Optional per-exam overrides of the default config.

        Raises:
            InvalidExamConfig, InvalidTestPlan: If the overrides are invalid.
            ItemBankUnavailable: If the store fails; nothing is committed.
        """
        config = ExamConfig.from_settings(self.settings, exam_config)
        manager = self._manager(config)
        session = manager.initialize(candidate_id)
        manager.begin(session)

        with handle_db_error(self.db, "start exam session"):
            self.store.create(session)
            item = self._present_next(manager, session)
            self.store.save(session, expected_version=session.version)
            self.db.commit()

        self._record_exposure(item, new_session=True)
        return SessionSnapshot(session=session, current_item=item)

    def get_next_item(self, session_id: int) -> NextItem:
        """
        Return the item the candidate should answer next.

        Idempotent while an item is pending: the pending item is returned
        without reselecting. Once the exam has ended the final score is
        returned instead.
        """
        with handle_db_error(self.db, "get next item"):
            session = self.store.load(session_id)
            manager = self._manager(session.config)

            if session.is_terminal:
                return NextItem(session=session, score=manager.finalize(session))

            if session.current_item_id is not None:
                pending = self.item_bank.get_item(session.current_item_id)
                return NextItem(session=session, item=pending)

            expected_version = session.version
            item = self._present_next(manager, session)
            self.store.save(session, expected_version=expected_version)
            self.db.commit()

        if item is None:
            return NextItem(session=session, score=manager.finalize(session))
        self._record_exposure(item)
        return NextItem(session=session, item=item)

    def get_session(self, session_id: int) -> SessionSnapshot:
        """
        Current session state with its pending item, if any.

        Read-only: never selects an item or writes.

        Raises:
            SessionNotFound: Unknown session.
        """
        with handle_db_error(self.db, "load exam session"):
            session = self.store.load(session_id)
            pending = None
            if not session.is_terminal and session.current_item_id is not None:
                pending = self.item_bank.get_item(session.current_item_id)
        return SessionSnapshot(session=session, current_item=pending)

    def get_history(self, candidate_id: str, limit: int = 10) -> List[ExamResultView]:
        """A candidate's completed and abandoned exams, newest first."""
        sessions = self.store.list_for_candidate(candidate_id, HISTORY_STATES, limit)
        return [
            ExamResultView(session=s, score=self._manager(s.config).finalize(s))
            for s in sessions
        ]

    def get_ability(self, candidate_id: str) -> AbilitySummary:
        """
        Latest final ability over the candidate's recent completed exams.

        The trend compares the newest exams with the oldest of the last
        ABILITY_HISTORY_LIMIT. Abandoned exams are ignored.
        """
        sessions = self.store.list_for_candidate(
            candidate_id, [SessionState.COMPLETED], ABILITY_HISTORY_LIMIT
        )
        if not sessions:
            return AbilitySummary(
                ability=0.0,
                confidence_percent=0,
                trend=ability_trend([]),
                tests_completed=0,
            )
        latest = sessions[0]
        return AbilitySummary(
            ability=latest.theta,
            confidence_percent=confidence_percent(latest.se),
            trend=ability_trend([s.theta for s in sessions]),
            tests_completed=len(sessions),
        )

    def submit_response(
        self,
        session_id: int,
        item_id: int,
        selected_answer: SelectedAnswer,
        time_spent_seconds: Optional[int] = None,
        expected_version: Optional[int] = None,
    ) -> SessionSnapshot:
        """
        Key and record the answer to the pending item.

        Raises:
            SessionNotFound: Unknown session.
            InvalidSessionState: The session has ended.
            ItemMismatch: ``item_id`` is not the pending item.
            ConcurrentModification: ``expected_version`` is stale, or another
                request recorded this turn first.
        """
        with handle_db_error(self.db, "submit response"):
            session = self.store.load(session_id)
            if expected_version is not None and expected_version != session.version:
                raise ConcurrentModification(
                    "Exam session has moved past the expected version",
                    context={
                        "session_id": session_id,
                        "expected_version": expected_version,
                        "current_version": session.version,
                    },
                )

            manager = self._manager(session.config)
            manager.require_in_progress(session)
            item = self.item_bank.get_item(item_id)
            if item is None:
                raise ItemMismatch(
                    f"Item {item_id} does not exist",
                    context={"session_id": session_id},
                )

            correct = is_answer_correct(item, selected_answer)
            loaded_version = session.version
            step = manager.record_response(
                session, item, correct, time_spent_seconds=time_spent_seconds
            )
            self.store.save(
                session,
                expected_version=loaded_version,
                selected_answers={item.id: selected_answer},
            )
            self.db.commit()

        if step.should_stop and self.monitor is not None:
            self.monitor.check_and_alert()

        return SessionSnapshot(session=session, last_response_correct=correct)

    def abandon_session(self, session_id: int) -> SessionSnapshot:
        """Abandon an in-progress exam, keeping its responses."""
        with handle_db_error(self.db, "abandon exam session"):
            session = self.store.load(session_id)
            expected_version = session.version
            self._manager(session.config).abandon(session)
            self.store.save(session, expected_version=expected_version)
            self.db.commit()
        return SessionSnapshot(session=session)

    def get_result(self, session_id: int) -> ExamResultView:
        """
        Score a finished exam.

        Raises:
            InvalidSessionState: If the exam is still running.
        """
        with handle_db_error(self.db, "load exam result"):
            session = self.store.load(session_id)
        score = self._manager(session.config).finalize(session)
        return ExamResultView(session=session, score=score)
