"""
Pydantic schemas for request/response validation.
"""
from .exam_sessions import (
    ExamConfigRequest,
    StartExamRequest,
    ExamItemResponse,
    ExamSessionResponse,
    SubmitResponseRequest,
    ExamResultResponse,
    NextItemResponse,
)

__all__ = [
    "ExamConfigRequest",
    "StartExamRequest",
    "ExamItemResponse",
    "ExamSessionResponse",
    "SubmitResponseRequest",
    "ExamResultResponse",
    "NextItemResponse",
]
