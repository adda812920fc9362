"""
Durable session store.

Maps the engine's in-memory CATSession to the ``exam_sessions`` and
``exam_responses`` tables. Writes use optimistic concurrency: the session row
is updated only if its version still matches the version the caller loaded,
and new response rows are inserted under the (session_id, sequence) and
(session_id, item_id) unique constraints. Either check failing means another
request won the turn and raises ConcurrentModification.

The store never commits; the caller commits or rolls back the whole turn.
"""
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from nclex_cat.core.cat.engine import CATSession, ResponseRecord
from nclex_cat.core.cat.errors import ConcurrentModification, SessionNotFound
from nclex_cat.core.cat.exam_config import ExamConfig
from nclex_cat.core.datetime_utils import ensure_timezone_aware, optional_timezone_aware
from nclex_cat.core.db_error_handling import handle_db_error
from nclex_cat.models.models import (
    ExamOutcome,
    ExamResponse,
    ExamSession,
    NCLEXCategory,
    SessionState,
)

logger = logging.getLogger(__name__)


def _counts_to_json(counts: Mapping[NCLEXCategory, int]) -> Dict[str, int]:
    return {category.value: int(n) for category, n in counts.items()}


def _counts_from_json(raw: Optional[Mapping[str, Any]]) -> Dict[NCLEXCategory, int]:
    counts = {category: 0 for category in NCLEXCategory}
    for key, n in (raw or {}).items():
        counts[NCLEXCategory(key)] = int(n)
    return counts


class SessionStore:
    """Loads and saves CATSession state with compare-and-set writes."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, session: CATSession) -> CATSession:
        """Insert a new session row and assign its id. Does not commit."""
        with handle_db_error(self.db, "create exam session"):
            row = ExamSession(
                candidate_id=session.candidate_id,
                state=session.state,
                theta=session.theta,
                se=session.se,
                min_se=session.min_se,
                category_counts=_counts_to_json(session.category_counts),
                current_item_id=session.current_item_id,
                config=session.config.to_dict(),
                version=session.version,
            )
            if session.started_at is not None:
                row.started_at = session.started_at
            self.db.add(row)
            self.db.flush()
            session.session_id = row.id
        return session

    def load(self, session_id: int) -> CATSession:
        """
        Rebuild a CATSession from storage.

        Raises:
            SessionNotFound: If no session has this id.
        """
        with handle_db_error(self.db, "load exam session"):
            row = self.db.scalars(
                select(ExamSession)
                .where(ExamSession.id == session_id)
                .execution_options(populate_existing=True)
            ).first()
            if row is None:
                raise SessionNotFound(
                    f"Exam session {session_id} not found",
                    context={"session_id": session_id},
                )
            response_rows = self.db.scalars(
                select(ExamResponse)
                .where(ExamResponse.session_id == session_id)
                .order_by(ExamResponse.sequence)
                .execution_options(populate_existing=True)
            ).all()

        responses = [
            ResponseRecord(
                sequence=r.sequence,
                item_id=r.item_id,
                correct=r.is_correct,
                theta_before=r.theta_before,
                theta_after=r.theta_after,
                se_after=r.se_after,
                category=NCLEXCategory(r.category),
                difficulty=r.difficulty,
                discrimination=r.discrimination,
                guessing=r.guessing,
                timestamp=ensure_timezone_aware(r.answered_at),
                time_spent_seconds=r.time_spent_seconds,
            )
            for r in response_rows
        ]

        return CATSession(
            candidate_id=row.candidate_id,
            config=ExamConfig.from_dict(row.config),
            session_id=row.id,
            state=SessionState(row.state),
            theta=row.theta,
            se=row.se,
            min_se=row.min_se,
            responses=responses,
            category_counts=_counts_from_json(row.category_counts),
            current_item_id=row.current_item_id,
            started_at=optional_timezone_aware(row.started_at),
            completed_at=optional_timezone_aware(row.completed_at),
            result=ExamOutcome(row.result) if row.result is not None else None,
            stop_reason=row.stop_reason,
            version=row.version,
        )

    def list_for_candidate(
        self,
        candidate_id: str,
        states: Iterable[SessionState],
        limit: int,
    ) -> List[CATSession]:
        """
        A candidate's sessions in the given states, newest first.

        Served by the (candidate_id, state) index; ties on start time are
        broken by id so the order is stable.
        """
        with handle_db_error(self.db, "list candidate exam sessions"):
            session_ids = self.db.scalars(
                select(ExamSession.id)
                .where(
                    ExamSession.candidate_id == candidate_id,
                    ExamSession.state.in_(list(states)),
                )
                .order_by(ExamSession.started_at.desc(), ExamSession.id.desc())
                .limit(limit)
            ).all()
        return [self.load(session_id) for session_id in session_ids]

    def save(
        self,
        session: CATSession,
        expected_version: int,
        selected_answers: Optional[Mapping[int, Any]] = None,
    ) -> CATSession:
        """
        Compare-and-set the session row and append new response rows.

        Args:
            session: Session state to persist.
            expected_version: Version the caller loaded.
            selected_answers: Raw answers keyed by item id, stored alongside
                new responses.

        Raises:
            ConcurrentModification: If the row moved past expected_version or
                a response for the same sequence or item already exists.
        """
        if session.session_id is None:
            raise ValueError("Cannot save a session that was never created")
        answers = selected_answers or {}

        with handle_db_error(self.db, "save exam session"):
            result = self.db.execute(
                update(ExamSession)
                .where(
                    ExamSession.id == session.session_id,
                    ExamSession.version == expected_version,
                )
                .values(
                    state=session.state,
                    theta=session.theta,
                    se=session.se,
                    min_se=session.min_se,
                    category_counts=_counts_to_json(session.category_counts),
                    current_item_id=session.current_item_id,
                    completed_at=session.completed_at,
                    result=session.result,
                    stop_reason=session.stop_reason,
                    version=expected_version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.info(
                    f"Version conflict on session {session.session_id} "
                    f"(expected version {expected_version})"
                )
                raise ConcurrentModification(
                    "Exam session was modified concurrently",
                    context={
                        "session_id": session.session_id,
                        "expected_version": expected_version,
                    },
                )

            persisted = self.db.scalar(
                select(func.coalesce(func.max(ExamResponse.sequence), 0)).where(
                    ExamResponse.session_id == session.session_id
                )
            )
            for record in session.responses:
                if record.sequence <= persisted:
                    continue
                self.db.add(
                    ExamResponse(
                        session_id=session.session_id,
                        item_id=record.item_id,
                        sequence=record.sequence,
                        is_correct=record.correct,
                        selected_answer=answers.get(record.item_id),
                        theta_before=record.theta_before,
                        theta_after=record.theta_after,
                        se_after=record.se_after,
                        category=record.category,
                        difficulty=record.difficulty,
                        discrimination=record.discrimination,
                        guessing=record.guessing,
                        answered_at=record.timestamp,
                        time_spent_seconds=record.time_spent_seconds,
                    )
                )
            try:
                self.db.flush()
            except IntegrityError as e:
                raise ConcurrentModification(
                    "Response already recorded for this turn",
                    original_error=e,
                    context={"session_id": session.session_id},
                )

        session.version = expected_version + 1
        return session
