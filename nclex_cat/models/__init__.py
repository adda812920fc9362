"""
Models package for the NCLEX CAT engine.
"""
from .base import Base, engine, SessionLocal, get_db
from .models import (
    Item,
    ExamSession,
    ExamResponse,
    NCLEXCategory,
    ItemType,
    SessionState,
    ExamOutcome,
)

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "get_db",
    "Item",
    "ExamSession",
    "ExamResponse",
    "NCLEXCategory",
    "ItemType",
    "SessionState",
    "ExamOutcome",
]
