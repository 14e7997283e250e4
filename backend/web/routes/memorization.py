"""
Memorization record API routes.

Why:
    Memorization coordinators file and evaluate students' memorization
    submissions for their class. The handlers only resolve the actor, decide
    `Capability.MANAGE_MEMORIZATION` through the engine (admins bypass) and
    map service errors to HTTP.

Notes:
    - A student may read their own history and progress in a class.
    - A co-instructor or class guardian without the coordinator kind gets 403.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from authorization.domain import Capability
from authorization.errors import ErrorKind
from wiring import get_classroom, get_engine, get_memorization
from .privileges import _actor, _class_or_404
from .security import _csrf_guard, _json_private, _private_error

memorization_router = APIRouter(tags=["Memorization"])
logger = logging.getLogger("mamal.web.memorization")


class RecordCreatePayload(BaseModel):
    enrollment_id: str = Field(..., min_length=1, max_length=100)
    content: str = Field(..., min_length=1, max_length=500)
    study_area_id: Optional[str] = Field(default=None, max_length=100)
    verse_start: Optional[int] = Field(default=None, ge=1)
    verse_end: Optional[int] = Field(default=None, ge=1)


class EvaluationPayload(BaseModel):
    status: str = Field(..., min_length=1, max_length=32)
    score: float = Field(..., ge=0, le=100)
    notes: Optional[str] = Field(default=None, max_length=2000)


def _require_manager(request: Request, class_id: str):
    """Return (actor, error_response) ensuring the caller may manage memorization here."""
    actor = _actor(request)
    if actor is None:
        return None, _private_error({"error": ErrorKind.UNAUTHORIZED.value}, status_code=401)
    if not get_engine().can(actor, Capability.MANAGE_MEMORIZATION, class_id):
        return None, _private_error({"error": ErrorKind.FORBIDDEN.value}, status_code=403)
    return actor, None


def _service_error(exc: Exception):
    detail = str(exc) or "bad_request"
    if isinstance(exc, LookupError):
        return _private_error({"error": "not_found", "detail": detail}, status_code=404)
    return _private_error({"error": "bad_request", "detail": detail}, status_code=400)


@memorization_router.get("/api/classes/{class_id}/memorization")
async def list_records(request: Request, class_id: str):
    """All memorization records of the class, newest first."""
    _, err = _require_manager(request, class_id)
    if err:
        return err
    missing = _class_or_404(class_id)
    if missing:
        return missing
    return _json_private(get_memorization().list_class_records(class_id))


@memorization_router.get("/api/classes/{class_id}/memorization/pending")
async def list_pending(request: Request, class_id: str):
    _, err = _require_manager(request, class_id)
    if err:
        return err
    missing = _class_or_404(class_id)
    if missing:
        return missing
    return _json_private(get_memorization().list_pending(class_id))


@memorization_router.post("/api/classes/{class_id}/memorization")
async def create_record(request: Request, class_id: str, payload: RecordCreatePayload):
    """File a memorization submission for an enrollment of the class.

    Behavior:
        - 201 with the new `pending` record
        - 400 invalid_study_area | invalid_verse_end | invalid_content
        - 404 when the class or the enrollment (within this class) is unknown
    """
    _, err = _require_manager(request, class_id)
    if err:
        return err
    csrf = _csrf_guard(request)
    if csrf:
        return csrf
    missing = _class_or_404(class_id)
    if missing:
        return missing
    try:
        record = get_memorization().create_record(
            class_id=class_id,
            enrollment_id=payload.enrollment_id,
            content=payload.content,
            study_area_id=payload.study_area_id,
            verse_start=payload.verse_start,
            verse_end=payload.verse_end,
        )
    except (ValueError, LookupError) as exc:
        return _service_error(exc)
    return _json_private(record, status_code=201)


@memorization_router.patch("/api/classes/{class_id}/memorization/{record_id}/evaluation")
async def evaluate_record(request: Request, class_id: str, record_id: str, payload: EvaluationPayload):
    """Evaluate a submission as `completed` or `need_revision` with a 0-100 score."""
    actor, err = _require_manager(request, class_id)
    if err:
        return err
    csrf = _csrf_guard(request)
    if csrf:
        return csrf
    try:
        record = get_memorization().evaluate_record(
            class_id=class_id,
            record_id=record_id,
            evaluator_id=actor.user_id,
            status=payload.status,
            score=payload.score,
            notes=payload.notes,
        )
    except (ValueError, LookupError) as exc:
        return _service_error(exc)
    return _json_private(record)


@memorization_router.get("/api/classes/{class_id}/enrollments/{enrollment_id}/memorization")
async def student_memorization(request: Request, class_id: str, enrollment_id: str):
    """History and per-study-area progress of one enrollment.

    Permissions:
        Memorization managers of the class (admins included) and the enrolled
        student themselves.
    """
    actor = _actor(request)
    if actor is None:
        return _private_error({"error": ErrorKind.UNAUTHORIZED.value}, status_code=401)
    enrollment = get_classroom().get_enrollment(enrollment_id)
    own = bool(enrollment) and enrollment.get("user_id") == actor.user_id
    if not own and not get_engine().can(actor, Capability.MANAGE_MEMORIZATION, class_id):
        return _private_error({"error": ErrorKind.FORBIDDEN.value}, status_code=403)
    if not enrollment or enrollment.get("class_id") != class_id:
        return _private_error({"error": "not_found"}, status_code=404)
    service = get_memorization()
    return _json_private(
        {
            "records": service.student_history(enrollment_id),
            "progress": service.progress(enrollment_id),
        }
    )
