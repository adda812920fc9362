"""
Adaptive exam endpoints.

Each call is one turn of the exam and commits on its own. Engine errors
propagate to the application's CATError handler, which maps them to HTTP
status codes.
"""
import logging
import random
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from nclex_cat.core.cat.engine import CATSession
from nclex_cat.core.cat.exposure_control import ExposureMonitor
from nclex_cat.core.config import settings
from nclex_cat.core.error_responses import ErrorMessages, raise_bad_request
from nclex_cat.core.question_utils import item_to_response, normalize_answer
from nclex_cat.models import get_db
from nclex_cat.models.models import Item
from nclex_cat.schemas.exam_sessions import (
    ExamResultResponse,
    ExamSessionResponse,
    NextItemResponse,
    StartExamRequest,
    SubmitResponseRequest,
)
from nclex_cat.services.exam_service import ExamResultView, ExamService

logger = logging.getLogger(__name__)

router = APIRouter()

# Process-wide state shared by every request
_rng = random.Random()
exposure_monitor = ExposureMonitor(settings.CAT_EXPOSURE_ALERT_THRESHOLD)


def get_rng() -> random.Random:
    """Random source for item selection. Overridden with a seeded one in tests."""
    return _rng


def get_exam_service(
    db: Session = Depends(get_db), rng: random.Random = Depends(get_rng)
) -> ExamService:
    return ExamService(db, settings, rng=rng, monitor=exposure_monitor)


def session_to_response(
    session: CATSession,
    current_item: Optional[Item] = None,
    last_response_correct: Optional[bool] = None,
) -> ExamSessionResponse:
    """Build the session snapshot payload."""
    item_payload = None
    if current_item is not None:
        item_payload = item_to_response(current_item, len(session.responses) + 1)

    return ExamSessionResponse(
        id=session.session_id,
        candidate_id=session.candidate_id,
        state=session.state.value,
        theta=session.theta,
        se=session.se,
        items_administered=len(session.responses),
        result=session.result.value if session.result else None,
        stop_reason=session.stop_reason,
        started_at=session.started_at,
        completed_at=session.completed_at,
        version=session.version,
        current_item=item_payload,
        last_response_correct=last_response_correct,
    )


def result_to_response(view: ExamResultView) -> ExamResultResponse:
    """Build the camelCase result payload from a scored session."""
    session, score = view.session, view.score
    lower, upper = score.confidence_interval
    return ExamResultResponse(
        passed=score.passed,
        final_ability=score.final_ability,
        standard_error=score.standard_error,
        confidence=score.confidence_percent,
        total_questions=score.total_questions,
        responses=[
            {
                "question_id": r.item_id,
                "is_correct": r.correct,
                "ability_after": r.theta_after,
                "difficulty": r.difficulty,
                "category_name": r.category.display_name,
                "time_spent_seconds": r.time_spent_seconds,
            }
            for r in session.responses
        ],
        completed_at=session.completed_at,
        result=score.result.value if score.result else None,
        stop_reason=session.stop_reason,
        passing_probability=score.passing_probability,
        readiness_tier=score.readiness_tier,
        confidence_interval={"lower": lower, "upper": upper},
        category_breakdown=[
            {
                "category": c.category.value,
                "category_name": c.category.display_name,
                "correct": c.correct,
                "total": c.total,
                "accuracy": c.accuracy,
                "proficiency": c.proficiency,
            }
            for c in score.category_breakdown
        ],
        accuracy=score.accuracy,
        average_time_seconds=score.average_time_seconds,
    )


@router.post(
    "", response_model=ExamSessionResponse, status_code=status.HTTP_201_CREATED
)
def start_exam(
    request: StartExamRequest,
    service: ExamService = Depends(get_exam_service),
):
    """
    Start a new adaptive exam and present its first item.

    Raises:
        HTTPException 422: If the config overrides are invalid or infeasible.
        HTTPException 503: If the item bank is unavailable.
    """
    overrides = (
        request.config.model_dump(exclude_none=True)
        if request.config is not None
        else None
    )
    snapshot = service.start_session(request.candidate_id, overrides)
    logger.info(
        f"Exam {snapshot.session.session_id} started",
        extra={
            "session_id": snapshot.session.session_id,
            "candidate_id": request.candidate_id,
        },
    )
    return session_to_response(snapshot.session, snapshot.current_item)


@router.get("/{session_id}", response_model=ExamSessionResponse)
def get_exam(
    session_id: int,
    service: ExamService = Depends(get_exam_service),
):
    """
    Current state of an exam, with the pending item if one has been presented.

    Read-only: unlike next-item, this never selects an item.
    """
    snapshot = service.get_session(session_id)
    return session_to_response(snapshot.session, snapshot.current_item)


@router.get("/{session_id}/next-item", response_model=NextItemResponse)
def get_next_item(
    session_id: int,
    service: ExamService = Depends(get_exam_service),
):
    """
    Return the pending item, selecting one if none is pending.

    Repeated calls return the same item until it is answered. Once the exam
    has ended, ``complete`` is true and the final result is returned.
    """
    next_item = service.get_next_item(session_id)
    session = next_item.session

    if next_item.complete:
        assert next_item.score is not None
        return NextItemResponse(
            session_id=session_id,
            complete=True,
            result=result_to_response(ExamResultView(session, next_item.score)),
        )

    return NextItemResponse(
        session_id=session_id,
        complete=False,
        item=item_to_response(next_item.item, len(session.responses) + 1),
    )


@router.post("/{session_id}/responses", response_model=ExamSessionResponse)
def submit_response(
    session_id: int,
    request: SubmitResponseRequest,
    service: ExamService = Depends(get_exam_service),
):
    """
    Answer the pending item.

    Raises:
        HTTPException 400: Empty answer, or an item other than the pending one.
        HTTPException 409: The exam has ended, or another request won the turn.
    """
    if not normalize_answer(request.selected_answer):
        raise_bad_request(ErrorMessages.EMPTY_ANSWER)

    snapshot = service.submit_response(
        session_id,
        item_id=request.item_id,
        selected_answer=request.selected_answer,
        time_spent_seconds=request.time_spent_seconds,
        expected_version=request.expected_version,
    )
    return session_to_response(
        snapshot.session, last_response_correct=snapshot.last_response_correct
    )


@router.post("/{session_id}/abandon", response_model=ExamSessionResponse)
def abandon_exam(
    session_id: int,
    service: ExamService = Depends(get_exam_service),
):
    """Abandon an in-progress exam. Responses so far are kept."""
    snapshot = service.abandon_session(session_id)
    return session_to_response(snapshot.session)


@router.get("/{session_id}/result", response_model=ExamResultResponse)
def get_result(
    session_id: int,
    service: ExamService = Depends(get_exam_service),
):
    """
    Final result of a finished exam, serialized in camelCase.

    Raises:
        HTTPException 409: If the exam is still in progress.
    """
    return result_to_response(service.get_result(session_id))
