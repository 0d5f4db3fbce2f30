from __future__ import annotations

import logging
from typing import List

from pydantic import TypeAdapter, ValidationError

from ...errors import validation_error
from .client import GenerativeContentClient, invalid_response
from .schemas import Difficulty, EffectivenessSummary, LessonOutline, QuizQuestion

logger = logging.getLogger(__name__)

MAX_QUIZ_QUESTIONS = 20

_LANGUAGE_NOTE = "Answer in Brazilian Portuguese."

QUIZ_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "question": {"type": "STRING"},
            "options": {"type": "ARRAY", "items": {"type": "STRING"}},
            "correctAnswerIndex": {"type": "INTEGER"},
            "explanation": {"type": "STRING"},
        },
        "required": ["question", "options", "correctAnswerIndex", "explanation"],
    },
}

LESSON_OUTLINE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "title": {"type": "STRING"},
        "objectives": {"type": "ARRAY", "items": {"type": "STRING"}},
        "key_points": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "topic": {"type": "STRING"},
                    "description": {"type": "STRING"},
                },
            },
        },
        "duration_minutes": {"type": "INTEGER"},
    },
    "required": ["title", "objectives", "key_points", "duration_minutes"],
}

EFFECTIVENESS_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "summary": {"type": "STRING"},
        "trends": {"type": "ARRAY", "items": {"type": "STRING"}},
        "suggestions": {"type": "ARRAY", "items": {"type": "STRING"}},
    },
    "required": ["summary", "trends", "suggestions"],
}

_quiz_adapter = TypeAdapter(List[QuizQuestion])


def generate_quiz(
    client: GenerativeContentClient,
    *,
    content: str,
    num_questions: int = 4,
    difficulty: Difficulty = Difficulty.MEDIUM,
) -> List[QuizQuestion]:
    """
    Multiple-choice questions checking knowledge of a procedure text.
    """
    if not content or not content.strip():
        raise validation_error("content", "Paste the procedure text to generate a quiz from.")
    if not 1 <= num_questions <= MAX_QUIZ_QUESTIONS:
        raise validation_error(
            "num_questions",
            f"Number of questions must be between 1 and {MAX_QUIZ_QUESTIONS}.",
        )

    prompt = (
        "You are a clinical laboratory education and quality assurance specialist.\n"
        f"Write {num_questions} {Difficulty(difficulty).value.lower()} multiple-choice questions "
        "that check knowledge of the standard operating procedure below. Focus on patient "
        "safety, sample rejection criteria and critical values. "
        f"{_LANGUAGE_NOTE}\n\n"
        f'Procedure:\n"""\n{content.strip()}\n"""'
    )
    raw = client.generate_json(prompt, QUIZ_SCHEMA)

    try:
        questions = _quiz_adapter.validate_python(raw)
    except ValidationError as exc:
        raise invalid_response("The generated quiz did not match the expected format.") from exc
    if not questions:
        raise invalid_response("The content service returned no questions.")
    return questions[:num_questions]


def generate_lesson_outline(
    client: GenerativeContentClient,
    *,
    topic: str,
    pop_text: str = "",
    rdc_reference: str = "RDC 978",
) -> LessonOutline:
    if not topic or not topic.strip():
        raise validation_error("topic", "A lesson topic is required.")

    prompt = (
        f"Write a technical lesson plan on: {topic.strip()}.\n"
        f"Regulatory reference: {rdc_reference}.\n"
        "Use the procedure below as the technical basis. "
        f"{_LANGUAGE_NOTE}\n\n"
        f'Procedure:\n"""\n{pop_text.strip()}\n"""'
    )
    raw = client.generate_json(prompt, LESSON_OUTLINE_SCHEMA)
    try:
        return LessonOutline.model_validate(raw)
    except ValidationError as exc:
        raise invalid_response("The generated lesson plan did not match the expected format.") from exc


def summarize_effectiveness(
    client: GenerativeContentClient,
    *,
    module_title: str,
    error_rate_before: float,
    error_rate_after: float,
    non_conformities: int = 0,
    feedback: str = "",
) -> EffectivenessSummary:
    """
    Qualitative reading of before/after error rates plus trainee feedback.
    """
    prompt = (
        f'Analyse the effectiveness of the training "{module_title}".\n'
        f"Error rate before: {error_rate_before}%. Error rate after: {error_rate_after}%. "
        f"Non-conformities: {non_conformities}.\n"
        f'Feedback: "{feedback}"\n'
        f"{_LANGUAGE_NOTE}"
    )
    raw = client.generate_json(prompt, EFFECTIVENESS_SCHEMA)
    try:
        return EffectivenessSummary.model_validate(raw)
    except ValidationError as exc:
        raise invalid_response("The generated analysis did not match the expected format.") from exc
