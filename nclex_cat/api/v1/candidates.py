"""
Per-candidate exam history and ability endpoints.
"""
from typing import List

from fastapi import APIRouter, Depends, Query

from nclex_cat.api.v1.exams import get_exam_service
from nclex_cat.schemas.exam_sessions import AbilitySummaryResponse, ExamHistoryEntry
from nclex_cat.services.exam_service import ExamService

router = APIRouter()


@router.get("/{candidate_id}/exams", response_model=List[ExamHistoryEntry])
def get_exam_history(
    candidate_id: str,
    limit: int = Query(10, ge=1, le=50, description="Maximum exams to return"),
    service: ExamService = Depends(get_exam_service),
):
    """
    A candidate's completed and abandoned exams, newest first.

    Exams still in progress are not listed.
    """
    return [
        ExamHistoryEntry(
            session_id=view.session.session_id,
            state=view.session.state.value,
            result=view.score.result.value if view.score.result else None,
            passed=view.score.passed,
            correct_count=view.score.correct_count,
            total_questions=view.score.total_questions,
            final_ability=view.score.final_ability,
            standard_error=view.score.standard_error,
            passing_probability=view.score.passing_probability,
            stop_reason=view.session.stop_reason,
            started_at=view.session.started_at,
            completed_at=view.session.completed_at,
        )
        for view in service.get_history(candidate_id, limit=limit)
    ]


@router.get("/{candidate_id}/ability", response_model=AbilitySummaryResponse)
def get_ability(
    candidate_id: str,
    service: ExamService = Depends(get_exam_service),
):
    """Latest final ability and its trend over recent completed exams."""
    summary = service.get_ability(candidate_id)
    return AbilitySummaryResponse(
        ability=summary.ability,
        confidence=summary.confidence_percent,
        trend=summary.trend,
        tests_completed=summary.tests_completed,
    )
