from __future__ import annotations

import enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Difficulty(str, enum.Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


# ---------------------------------------------------------------------------
# QUIZ
# ---------------------------------------------------------------------------


class QuizRequest(BaseModel):
    content: str = Field(min_length=1, description="Procedure (POP) text to quiz on.")
    num_questions: int = Field(default=4, ge=1, le=20)
    difficulty: Difficulty = Difficulty.MEDIUM


class QuizQuestion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: str = Field(min_length=1)
    options: List[str] = Field(min_length=2)
    correct_answer_index: int = Field(alias="correctAnswerIndex", ge=0)
    explanation: str

    @model_validator(mode="after")
    def _answer_in_options(self) -> "QuizQuestion":
        if self.correct_answer_index >= len(self.options):
            raise ValueError("correctAnswerIndex points outside the options list")
        return self


# ---------------------------------------------------------------------------
# LESSON OUTLINE
# ---------------------------------------------------------------------------


class LessonOutlineRequest(BaseModel):
    topic: str = Field(min_length=1)
    pop_text: str = ""
    rdc_reference: str = "RDC 978"


class KeyPoint(BaseModel):
    topic: str
    description: str


class LessonOutline(BaseModel):
    title: str
    objectives: List[str]
    key_points: List[KeyPoint]
    duration_minutes: int = Field(ge=0)


# ---------------------------------------------------------------------------
# EFFECTIVENESS
# ---------------------------------------------------------------------------


class EffectivenessRequest(BaseModel):
    module_id: Optional[str] = None
    module_title: Optional[str] = None
    error_rate_before: float = Field(ge=0, le=100)
    error_rate_after: float = Field(ge=0, le=100)
    non_conformities: int = Field(default=0, ge=0)
    feedback: str = ""

    @model_validator(mode="after")
    def _module_reference(self) -> "EffectivenessRequest":
        if not self.module_id and not self.module_title:
            raise ValueError("module_id or module_title is required")
        return self


class EffectivenessSummary(BaseModel):
    summary: str
    trends: List[str]
    suggestions: List[str]
