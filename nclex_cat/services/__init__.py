"""
Services that persist exam state.
"""
from .exam_service import ExamResultView, ExamService, NextItem, SessionSnapshot
from .item_bank import ItemBank
from .session_store import SessionStore

__all__ = [
    "ExamService",
    "ExamResultView",
    "NextItem",
    "SessionSnapshot",
    "ItemBank",
    "SessionStore",
]
