from enum import Enum
from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from satcoach.core.config import settings, HARD_QUESTION_CAP


class Section(str, Enum):
    READING = "Reading"
    MATH = "Math"


class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"
    INSANE = "Insane"


def _match_enum(enum_cls, v):
    """Accept enum values case-insensitively ("math" → Math)."""
    if isinstance(v, str):
        wanted = v.strip().lower()
        for member in enum_cls:
            if member.value.lower() == wanted:
                return member
    return v


class GenerateRequest(BaseModel):
    """Request for one adaptive question set."""
    model_config = ConfigDict(populate_by_name=True)

    section: Section = Field(description="Reading or Math")
    topic: str = Field(min_length=1, description="Transitions, linear equations, ...")
    count: int = Field(default=settings.DEFAULT_QUESTIONS, description="Clamped to 1..10")
    difficulty: Difficulty = Difficulty.MEDIUM
    recent_mistakes: List[str] = Field(default_factory=list, alias="recentMistakes")

    @field_validator("section", mode="before")
    @classmethod
    def normalize_section(cls, v):
        return _match_enum(Section, v)

    @field_validator("difficulty", mode="before")
    @classmethod
    def normalize_difficulty(cls, v):
        if v is None:
            return Difficulty.MEDIUM
        return _match_enum(Difficulty, v)

    @field_validator("topic", mode="before")
    @classmethod
    def strip_topic(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("count", mode="before")
    @classmethod
    def default_count(cls, v):
        return settings.DEFAULT_QUESTIONS if v is None else v

    @field_validator("count", mode="after")
    @classmethod
    def clamp_count(cls, v: int) -> int:
        return max(1, min(v, settings.MAX_QUESTIONS, HARD_QUESTION_CAP))

    @field_validator("recent_mistakes", mode="before")
    @classmethod
    def default_mistakes(cls, v):
        return [] if v is None else v

    @field_validator("recent_mistakes", mode="after")
    @classmethod
    def drop_blank_mistakes(cls, v: List[str]) -> List[str]:
        return [m for m in v if m.strip()]


class QuestionUnit(BaseModel):
    """A single generated multiple-choice question."""
    model_config = ConfigDict(populate_by_name=True)

    question: str
    options: List[str] = Field(alias="multipleChoiceOptions", min_length=4, max_length=4)
    correct_answer: Literal["A", "B", "C", "D"] = Field(alias="correctAnswer")
    incorrect_explanations: Dict[str, str] = Field(alias="incorrectExplanations")
    correct_explanation: str = Field(alias="correctExplanation")


class GenerateResponse(BaseModel):
    """Non-streaming response: exactly `count` questions."""
    questions: List[QuestionUnit]


class ErrorResponse(BaseModel):
    error: str
    raw: Optional[str] = None
