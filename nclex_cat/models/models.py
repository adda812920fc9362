"""
Database models for the NCLEX CAT engine.

Items are the calibrated item bank. Exam sessions and their responses are the
durable session store; only the session controller writes them.
"""
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import enum

from .base import Base


class NCLEXCategory(str, enum.Enum):
    """NCLEX Client Needs categories."""

    MANAGEMENT_OF_CARE = "management_of_care"
    SAFETY_AND_INFECTION_CONTROL = "safety_and_infection_control"
    HEALTH_PROMOTION_AND_MAINTENANCE = "health_promotion_and_maintenance"
    PSYCHOSOCIAL_INTEGRITY = "psychosocial_integrity"
    BASIC_CARE_AND_COMFORT = "basic_care_and_comfort"
    PHARMACOLOGICAL_AND_PARENTERAL_THERAPIES = "pharmacological_and_parenteral_therapies"
    REDUCTION_OF_RISK_POTENTIAL = "reduction_of_risk_potential"
    PHYSIOLOGICAL_ADAPTATION = "physiological_adaptation"

    @property
    def display_name(self) -> str:
        return CATEGORY_DISPLAY_NAMES[self]


CATEGORY_DISPLAY_NAMES = {
    NCLEXCategory.MANAGEMENT_OF_CARE: "Management of Care",
    NCLEXCategory.SAFETY_AND_INFECTION_CONTROL: "Safety and Infection Control",
    NCLEXCategory.HEALTH_PROMOTION_AND_MAINTENANCE: "Health Promotion and Maintenance",
    NCLEXCategory.PSYCHOSOCIAL_INTEGRITY: "Psychosocial Integrity",
    NCLEXCategory.BASIC_CARE_AND_COMFORT: "Basic Care and Comfort",
    NCLEXCategory.PHARMACOLOGICAL_AND_PARENTERAL_THERAPIES: "Pharmacological and Parenteral Therapies",
    NCLEXCategory.REDUCTION_OF_RISK_POTENTIAL: "Reduction of Risk Potential",
    NCLEXCategory.PHYSIOLOGICAL_ADAPTATION: "Physiological Adaptation",
}


class ItemType(str, enum.Enum):
    """How a candidate answers an item and how the answer is keyed."""

    MULTIPLE_CHOICE = "multiple_choice"
    SELECT_ALL = "select_all"
    ORDERED_RESPONSE = "ordered_response"


class SessionState(str, enum.Enum):
    """Exam session lifecycle state."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class ExamOutcome(str, enum.Enum):
    """Final classification of an exam session."""

    PASSED = "passed"
    FAILED = "failed"
    INCONCLUSIVE = "inconclusive"
    ABANDONED = "abandoned"


class Item(Base):
    """Calibrated NCLEX item with 3PL parameters."""

    __tablename__ = "items"

    id = Column(Integer, primary_key=True, index=True)
    category = Column(Enum(NCLEXCategory), nullable=False)
    item_type = Column(
        Enum(ItemType), default=ItemType.MULTIPLE_CHOICE, nullable=False
    )
    stem = Column(Text, nullable=False)
    options = Column(JSON, nullable=False)  # [{"key": "A", "text": "..."}, ...]
    correct_answers = Column(JSON, nullable=False)  # option keys, ordered for ordered_response
    rationale = Column(Text)

    # 3PL parameters
    discrimination = Column(Float, nullable=False)  # a
    difficulty = Column(Float, nullable=False)  # b
    guessing = Column(Float, default=0.0, nullable=False)  # c

    # Only ever changed by an atomic SQL increment
    times_administered = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_items_category_active", "category", "is_active"),
        CheckConstraint("discrimination > 0", name="ck_items_discrimination_positive"),
        CheckConstraint(
            "guessing >= 0 AND guessing < 1", name="ck_items_guessing_range"
        ),
        CheckConstraint(
            "times_administered >= 0", name="ck_items_times_administered_nonnegative"
        ),
    )


class ExamSession(Base):
    """One candidate's adaptive exam."""

    __tablename__ = "exam_sessions"

    id = Column(Integer, primary_key=True, index=True)
    candidate_id = Column(String(100), nullable=False, index=True)
    state = Column(
        Enum(SessionState), default=SessionState.NOT_STARTED, nullable=False, index=True
    )
    theta = Column(Float, default=0.0, nullable=False)
    se = Column(Float, nullable=False)
    min_se = Column(Float, nullable=False)  # running minimum of se
    category_counts = Column(JSON, nullable=False)  # {category value: count}
    current_item_id = Column(
        Integer, ForeignKey("items.id"), nullable=True
    )  # presented, not yet answered
    config = Column(JSON, nullable=False)  # exam config snapshot
    started_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    completed_at = Column(DateTime(timezone=True))
    result = Column(Enum(ExamOutcome), nullable=True)
    stop_reason = Column(String(50), nullable=True)

    # Optimistic concurrency token, bumped on every write
    version = Column(Integer, default=1, nullable=False)

    responses = relationship(
        "ExamResponse",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ExamResponse.sequence",
    )

    __table_args__ = (
        Index("ix_exam_sessions_candidate_state", "candidate_id", "state"),
    )


class ExamResponse(Base):
    """Append-only record of one answered item."""

    __tablename__ = "exam_responses"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(
        Integer,
        ForeignKey("exam_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)  # 1-based administration order
    is_correct = Column(Boolean, nullable=False)
    selected_answer = Column(JSON, nullable=True)
    theta_before = Column(Float, nullable=False)
    theta_after = Column(Float, nullable=False)
    se_after = Column(Float, nullable=False)
    category = Column(Enum(NCLEXCategory), nullable=False)

    # Item parameters at administration time
    difficulty = Column(Float, nullable=False)
    discrimination = Column(Float, nullable=False)
    guessing = Column(Float, nullable=False)

    answered_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    time_spent_seconds = Column(Integer, nullable=True)

    session = relationship("ExamSession", back_populates="responses")

    __table_args__ = (
        UniqueConstraint("session_id", "item_id", name="uq_exam_responses_session_item"),
        UniqueConstraint(
            "session_id", "sequence", name="uq_exam_responses_session_sequence"
        ),
    )
