from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import date, datetime

Feedback = Literal["good", "bad"]


class StudyRecord(BaseModel):
    performance: int
    timestamp: datetime


class ItemState(BaseModel):
    id: str
    question: str = ""
    answer: str = ""
    is_generated: bool = False
    # Algorithm-specific: FSRS stability, Leitner box, SM-2 ease factor
    stability: Optional[float] = None
    difficulty: Optional[float] = None
    interval: int = 0
    due_date: Optional[date] = None
    repetitions: int = 0
    # Kept as a plain string so corrupted values survive a load
    algorithm: Optional[str] = None
    study_history: List[StudyRecord] = Field(default_factory=list)


class SchedulingResult(BaseModel):
    stability: float
    difficulty: float
    interval: int
    due_date: date
    repetitions: int


class RetentionSample(BaseModel):
    algorithm: str
    item_id: str
    performance: int
    retention: float
    timestamp: datetime


class AlgorithmStats(BaseModel):
    name: str
    count: int
    avg_retention: float
    avg_performance: float
    retention_rate: float


class VariantRecord(BaseModel):
    id: str
    name: str
    template: str
    quality_score: float = 0.8
    usage_count: int = 0
    positive_feedback: int = 0
    negative_feedback: int = 0
    is_default: bool = False


class QualityRecord(BaseModel):
    variant_id: str
    item_id: str
    feedback: Optional[Feedback] = None
    auto_quality_score: float = 0.0


class VariantStats(BaseModel):
    id: str
    name: str
    quality: float
    usage: int
    positive: int
    negative: int
    effectiveness: float


class ItemRequest(BaseModel):
    question: str
    answer: str


class ReviewRequest(BaseModel):
    performance: int = Field(ge=1, le=4)


class FeedbackRequest(BaseModel):
    feedback: Feedback


class VariantRequest(BaseModel):
    name: str
    template: str


class GenerationRequest(BaseModel):
    notes: str
    difficulty: Literal["mixed", "easy", "medium", "hard"] = "mixed"


class GenerationResult(BaseModel):
    variant_id: str
    generated_text: str


class MasteryResponse(BaseModel):
    level: int
    label: str


class GenerationPrompt(BaseModel):
    variant_id: str
    variant_name: str
    prompt: str
