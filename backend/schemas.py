from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator


SENTINEL_RATING = 0
SENTINEL_FEEDBACK = "Unable to generate feedback."


class QuestionAnswerPair(BaseModel):
    question: str = Field(min_length=1)
    answer: str = Field(min_length=1)


class Evaluation(BaseModel):
    rating: int = Field(ge=0, le=10)
    feedback: str = Field(min_length=1)

    @property
    def degraded(self) -> bool:
        """True for the fallback evaluation produced when scoring could not be parsed."""
        return self.rating == SENTINEL_RATING

    @classmethod
    def sentinel(cls) -> "Evaluation":
        return cls(rating=SENTINEL_RATING, feedback=SENTINEL_FEEDBACK)


class JobContext(BaseModel):
    position: str = Field(min_length=1)
    description: str = Field(min_length=10)
    experience: int = Field(ge=0)
    tech_stack: str = Field(min_length=1)

    @field_validator("position", "tech_stack")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class AnswerRecord(BaseModel):
    user_id: str
    interview_id: Optional[int] = None
    question_text: str
    correct_answer_text: str
    user_answer_text: str
    feedback: str
    rating: int
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class InterviewCreate(JobContext):
    user_id: str = Field(min_length=1)


class InterviewUpdate(JobContext):
    pass
