"""
Pydantic schemas for adaptive exam endpoints.

Session and item payloads use snake_case like the rest of the API. The result
payload is consumed by the result-rendering client and is serialized in
camelCase.
"""
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import Dict, List, Optional, Union
from datetime import datetime


class CategoryRange(BaseModel):
    """Percent-of-exam range for one test plan category."""

    min: float = Field(..., ge=0, le=100, description="Minimum percent of the exam")
    max: float = Field(..., ge=0, le=100, description="Maximum percent of the exam")

    @model_validator(mode="after")
    def check_order(self) -> "CategoryRange":
        if self.min > self.max:
            raise ValueError(f"min ({self.min}) must not exceed max ({self.max})")
        return self


class ExamConfigRequest(BaseModel):
    """Per-exam overrides of the default CAT configuration."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    min_items: Optional[int] = Field(None, ge=1, description="Minimum exam length")
    max_items: Optional[int] = Field(None, ge=1, description="Maximum exam length")
    se_threshold: Optional[float] = Field(
        None, gt=0, description="SE at or below which the precision rule fires"
    )
    cut_score: Optional[float] = Field(
        None, ge=-4.0, le=4.0, description="Passing standard on the theta scale"
    )
    test_plan: Optional[Dict[str, CategoryRange]] = Field(
        None, description="Category quotas: {category: {min, max}} in percent"
    )
    exposure_top_k: Optional[int] = Field(
        None, ge=1, description="Randomesque exposure control top-K"
    )


class StartExamRequest(BaseModel):
    """Schema for starting an adaptive exam."""

    candidate_id: str = Field(
        ..., min_length=1, max_length=100, description="Candidate identifier"
    )
    config: Optional[ExamConfigRequest] = Field(
        None, description="Optional overrides of the default exam configuration"
    )


class ItemOption(BaseModel):
    """One answer option of an item."""

    key: str = Field(..., description="Option key submitted as the answer")
    text: str = Field(..., description="Option text")


class ExamItemResponse(BaseModel):
    """An item as presented to the candidate (no answer key)."""

    id: int = Field(..., description="Item ID")
    category: str = Field(..., description="NCLEX Client Needs category")
    category_name: str = Field(..., description="Category display name")
    item_type: str = Field(
        ..., description="multiple_choice, select_all or ordered_response"
    )
    stem: str = Field(..., description="Item text")
    options: List[ItemOption] = Field(..., description="Answer options")
    sequence: int = Field(..., description="1-based position of this item in the exam")


class ExamSessionResponse(BaseModel):
    """Snapshot of an exam session."""

    id: int = Field(..., description="Exam session ID")
    candidate_id: str = Field(..., description="Candidate identifier")
    state: str = Field(
        ..., description="Session state (in_progress, completed, abandoned)"
    )
    theta: float = Field(..., description="Current ability estimate")
    se: float = Field(..., description="Standard error of the ability estimate")
    items_administered: int = Field(..., description="Responses recorded so far")
    result: Optional[str] = Field(
        None, description="passed, failed, inconclusive or abandoned once finished"
    )
    stop_reason: Optional[str] = Field(None, description="Rule that ended the exam")
    started_at: Optional[datetime] = Field(None, description="Session start timestamp")
    completed_at: Optional[datetime] = Field(
        None, description="Session completion timestamp"
    )
    version: int = Field(..., description="Concurrency token for the next write")
    current_item: Optional[ExamItemResponse] = Field(
        None, description="Item awaiting a response"
    )
    last_response_correct: Optional[bool] = Field(
        None, description="Whether the response just submitted was correct"
    )


class SubmitResponseRequest(BaseModel):
    """Schema for answering the pending item."""

    item_id: int = Field(..., description="ID of the item being answered")
    selected_answer: Union[str, List[str]] = Field(
        ..., description="Option key, or ordered list of keys for multi-answer items"
    )
    time_spent_seconds: Optional[int] = Field(
        None, ge=0, description="Time spent on the item in seconds"
    )
    expected_version: Optional[int] = Field(
        None, ge=1, description="Session version the client last saw"
    )


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ResultResponseEntry(_CamelModel):
    """One answered item in the result trajectory."""

    question_id: int
    is_correct: bool
    ability_after: float
    difficulty: float
    category_name: str
    time_spent_seconds: Optional[int] = None


class CategoryBreakdownEntry(_CamelModel):
    """Per-category performance."""

    category: str
    category_name: str
    correct: int
    total: int
    accuracy: float
    proficiency: str


class ConfidenceIntervalResponse(_CamelModel):
    """95% confidence interval on theta."""

    lower: float
    upper: float


class ExamResultResponse(_CamelModel):
    """Final exam result."""

    passed: bool
    final_ability: float
    standard_error: float
    confidence: int = Field(..., description="Precision gained, 0-100")
    total_questions: int
    responses: List[ResultResponseEntry]
    completed_at: Optional[datetime] = None

    result: Optional[str] = None
    stop_reason: Optional[str] = None
    passing_probability: float
    readiness_tier: str
    confidence_interval: ConfidenceIntervalResponse
    category_breakdown: List[CategoryBreakdownEntry]
    accuracy: float
    average_time_seconds: Optional[float] = None


class NextItemResponse(BaseModel):
    """Either the pending item or the terminal result."""

    session_id: int = Field(..., description="Exam session ID")
    complete: bool = Field(..., description="Whether the exam has finished")
    item: Optional[ExamItemResponse] = Field(None, description="Item to answer")
    result: Optional[ExamResultResponse] = Field(
        None, description="Final result when complete"
    )


class ExamHistoryEntry(BaseModel):
    """One finished exam in a candidate's history."""

    session_id: int = Field(..., description="Exam session ID")
    state: str = Field(..., description="completed or abandoned")
    result: Optional[str] = Field(
        None, description="passed, failed, inconclusive or abandoned"
    )
    passed: bool = Field(..., description="Whether the exam was passed")
    correct_count: int = Field(..., description="Items answered correctly")
    total_questions: int = Field(..., description="Items answered")
    final_ability: float = Field(..., description="Final ability estimate")
    standard_error: float = Field(..., description="Final standard error")
    passing_probability: float = Field(
        ..., description="Probability of passing at the final ability"
    )
    stop_reason: Optional[str] = Field(None, description="Rule that ended the exam")
    started_at: Optional[datetime] = Field(None, description="Session start timestamp")
    completed_at: Optional[datetime] = Field(
        None, description="Session completion timestamp"
    )


class AbilitySummaryResponse(BaseModel):
    """A candidate's latest ability and its trend."""

    ability: float = Field(..., description="Final ability of the newest completed exam")
    confidence: int = Field(..., description="Precision gained, 0-100")
    trend: str = Field(..., description="improving, stable or declining")
    tests_completed: int = Field(
        ..., description="Completed exams considered, at most 10"
    )
