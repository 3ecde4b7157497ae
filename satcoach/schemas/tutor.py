"""
Pydantic schemas for the tutor endpoints (explain, coach, classify).
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


def _truncate(v, limit: int):
    if v is None:
        return ""
    return str(v).strip()[:limit]


class ExplainRequest(BaseModel):
    """Teaching explanation for a topic the student keeps missing."""
    section: str = Field(min_length=1)
    topic: str = Field(min_length=1)
    examples: str = ""

    @field_validator("section", mode="before")
    @classmethod
    def cap_section(cls, v):
        return _truncate(v, 100)

    @field_validator("topic", mode="before")
    @classmethod
    def cap_topic(cls, v):
        return _truncate(v, 200)

    @field_validator("examples", mode="before")
    @classmethod
    def cap_examples(cls, v):
        return _truncate(v, 5000)


class ExplainResponse(BaseModel):
    explanation: str


class CoachRequest(BaseModel):
    """Diagnosis of one missed question."""
    model_config = ConfigDict(populate_by_name=True)

    question: str = Field(min_length=1)
    section: str = ""
    topic: str = ""
    student_answer: str = Field(default="", alias="studentAnswer")

    @field_validator("question", mode="before")
    @classmethod
    def cap_question(cls, v):
        return _truncate(v, 8000)

    @field_validator("section", mode="before")
    @classmethod
    def cap_section(cls, v):
        return _truncate(v, 100)

    @field_validator("topic", mode="before")
    @classmethod
    def cap_topic(cls, v):
        return _truncate(v, 200)

    @field_validator("student_answer", mode="before")
    @classmethod
    def letters_only(cls, v):
        return "".join(ch for ch in _truncate(v, 20).upper() if ch in "ABCD")


class CoachResponse(BaseModel):
    structured: Optional[Dict[str, Any]] = None
    raw: str = ""
    error: Optional[str] = None


class ClassifyRequest(BaseModel):
    """Missed questions to group by section/topic."""
    questions: List[str]

    @field_validator("questions", mode="before")
    @classmethod
    def drop_non_strings(cls, v):
        if isinstance(v, list):
            return [q for q in v if isinstance(q, str)]
        return v

    @field_validator("questions", mode="after")
    @classmethod
    def require_questions(cls, v: List[str]) -> List[str]:
        kept = [q for q in v if q.strip()]
        if not kept:
            raise ValueError("No questions provided")
        return kept


class ClassifyResponse(BaseModel):
    groups: List[Any]
