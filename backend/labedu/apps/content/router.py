from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_read_db
from ...security import require_system_roles
from ..organization import models as org_models
from ..training import catalog
from . import schemas, services
from .client import GenerativeContentClient, get_content_client

router = APIRouter(prefix="/content", tags=["content"])

_require_author = require_system_roles(
    org_models.SystemRole.INSTRUCTOR,
    org_models.SystemRole.UNIT_MANAGER,
)


@router.post("/quiz", response_model=List[schemas.QuizQuestion])
def generate_quiz(
    payload: schemas.QuizRequest,
    client: GenerativeContentClient = Depends(get_content_client),
    current: org_models.Employee = Depends(_require_author),
):
    return services.generate_quiz(
        client,
        content=payload.content,
        num_questions=payload.num_questions,
        difficulty=payload.difficulty,
    )


@router.post("/lesson-outline", response_model=schemas.LessonOutline)
def generate_lesson_outline(
    payload: schemas.LessonOutlineRequest,
    client: GenerativeContentClient = Depends(get_content_client),
    current: org_models.Employee = Depends(_require_author),
):
    return services.generate_lesson_outline(
        client,
        topic=payload.topic,
        pop_text=payload.pop_text,
        rdc_reference=payload.rdc_reference,
    )


@router.post("/effectiveness", response_model=schemas.EffectivenessSummary)
def summarize_effectiveness(
    payload: schemas.EffectivenessRequest,
    db: Session = Depends(get_read_db),
    client: GenerativeContentClient = Depends(get_content_client),
    current: org_models.Employee = Depends(_require_author),
):
    title = payload.module_title
    if payload.module_id:
        title = catalog.get_module(db, payload.module_id).title
    return services.summarize_effectiveness(
        client,
        module_title=title,
        error_rate_before=payload.error_rate_before,
        error_rate_after=payload.error_rate_after,
        non_conformities=payload.non_conformities,
        feedback=payload.feedback,
    )
