"""
Admin record API routes (users, terms, classes, enrollments, groups, study areas).

Why:
    Plain CRUD glue so the privilege protocol has something to act on. Rules
    live in the services; this adapter only enforces the admin role, CSRF on
    writes, and maps service errors to the JSON error contract:
    `ValueError` -> 400 (409 for duplicates), `LookupError` -> 404.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field
from pydantic.functional_validators import field_validator

from wiring import get_classroom, get_users
from .security import _csrf_guard, _json_private, _private_error

admin_router = APIRouter(tags=["Admin"])


class UserCreatePayload(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    name: str = Field(..., min_length=1, max_length=200)
    role: str = Field(..., min_length=1, max_length=32)


class UserUpdatePayload(BaseModel):
    active: Optional[bool] = None
    role: Optional[str] = Field(default=None, max_length=32)


class TermCreatePayload(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    active: bool = True


class ClassCreatePayload(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    code: str = Field(..., min_length=1, max_length=50)
    term_id: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=2000)
    max_students: int = Field(default=30, ge=1, le=1000)

    @field_validator("description")
    @classmethod
    def _strip_empty(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v if v else None
        return v


class EnrollmentCreatePayload(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=100)


class EnrollmentUpdatePayload(BaseModel):
    status: str = Field(..., min_length=1, max_length=32)


class GroupCreatePayload(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    group_number: int = Field(..., ge=1)


class StudyAreaCreatePayload(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)


def _require_admin(request: Request) -> Optional[Response]:
    user = getattr(request.state, "user", None)
    if not user:
        return _private_error({"error": "unauthorized"}, status_code=401)
    if user.get("role") != "admin":
        return _private_error({"error": "forbidden"}, status_code=403)
    return None


def _guard_write(request: Request) -> Optional[Response]:
    return _require_admin(request) or _csrf_guard(request)


def _bad_request(exc: ValueError) -> Response:
    detail = str(exc) or "invalid_input"
    if detail.startswith("duplicate_"):
        return _private_error({"error": "conflict", "detail": detail}, status_code=409)
    return _private_error({"error": "bad_request", "detail": detail}, status_code=400)


def _not_found(exc: LookupError) -> Response:
    return _private_error({"error": "not_found", "detail": str(exc).strip("'")}, status_code=404)


def _no_content() -> Response:
    return Response(status_code=204, headers={"Cache-Control": "private, no-store"})


# --- Users -------------------------------------------------------------------------

@admin_router.get("/api/admin/users")
async def list_users(request: Request, role: Optional[str] = None, include_inactive: bool = False):
    err = _require_admin(request)
    if err:
        return err
    try:
        users = get_users().list_users(role=role, active_only=not include_inactive)
    except ValueError as exc:
        return _bad_request(exc)
    return _json_private(users)


@admin_router.post("/api/admin/users")
async def create_user(request: Request, payload: UserCreatePayload):
    err = _guard_write(request)
    if err:
        return err
    try:
        user = get_users().create_user(email=payload.email, name=payload.name, role=payload.role)
    except ValueError as exc:
        return _bad_request(exc)
    return _json_private(user, status_code=201)


@admin_router.patch("/api/admin/users/{user_id}")
async def update_user(request: Request, user_id: str, payload: UserUpdatePayload):
    """Soft-disable/re-enable a user and/or change the global role."""
    err = _guard_write(request)
    if err:
        return err
    users = get_users()
    user = request.state.user
    try:
        result = users.get_user(user_id)
        if result is None:
            raise LookupError("user_not_found")
        if payload.role is not None:
            result = users.change_role(user.get("role"), user_id, payload.role)
        if payload.active is not None:
            result = users.set_active(user_id, payload.active)
    except PermissionError:
        return _private_error({"error": "forbidden"}, status_code=403)
    except ValueError as exc:
        return _bad_request(exc)
    except LookupError as exc:
        return _not_found(exc)
    return _json_private(result)


# --- Terms and classes ---------------------------------------------------------------

@admin_router.post("/api/admin/terms")
async def create_term(request: Request, payload: TermCreatePayload):
    err = _guard_write(request)
    if err:
        return err
    try:
        term = get_classroom().create_term(name=payload.name, active=payload.active)
    except ValueError as exc:
        return _bad_request(exc)
    return _json_private(term, status_code=201)


@admin_router.get("/api/admin/classes")
async def list_classes(request: Request, term_id: Optional[str] = None):
    err = _require_admin(request)
    if err:
        return err
    return _json_private(get_classroom().list_classes(term_id=term_id))


@admin_router.post("/api/admin/classes")
async def create_class(request: Request, payload: ClassCreatePayload):
    err = _guard_write(request)
    if err:
        return err
    try:
        klass = get_classroom().create_class(
            name=payload.name,
            code=payload.code,
            term_id=payload.term_id,
            description=payload.description,
            max_students=payload.max_students,
        )
    except ValueError as exc:
        return _bad_request(exc)
    except LookupError as exc:
        return _not_found(exc)
    return _json_private(klass, status_code=201)


@admin_router.delete("/api/admin/classes/{class_id}")
async def delete_class(request: Request, class_id: str):
    """Delete a class; its groups, study areas, enrollments and privileges go with it."""
    err = _guard_write(request)
    if err:
        return err
    try:
        get_classroom().delete_class(class_id)
    except LookupError as exc:
        return _not_found(exc)
    return _no_content()


# --- Enrollments -------------------------------------------------------------------

@admin_router.post("/api/admin/classes/{class_id}/enrollments")
async def enroll_student(request: Request, class_id: str, payload: EnrollmentCreatePayload):
    err = _guard_write(request)
    if err:
        return err
    try:
        enrollment = get_classroom().enroll_student(user_id=payload.user_id, class_id=class_id)
    except ValueError as exc:
        return _bad_request(exc)
    except LookupError as exc:
        return _not_found(exc)
    return _json_private(enrollment, status_code=201)


@admin_router.patch("/api/admin/enrollments/{enrollment_id}")
async def update_enrollment(request: Request, enrollment_id: str, payload: EnrollmentUpdatePayload):
    err = _guard_write(request)
    if err:
        return err
    try:
        enrollment = get_classroom().set_enrollment_status(enrollment_id, payload.status)
    except ValueError as exc:
        return _bad_request(exc)
    except LookupError as exc:
        return _not_found(exc)
    return _json_private(enrollment)


@admin_router.delete("/api/admin/enrollments/{enrollment_id}")
async def remove_enrollment(request: Request, enrollment_id: str):
    err = _guard_write(request)
    if err:
        return err
    try:
        get_classroom().remove_enrollment(enrollment_id)
    except LookupError as exc:
        return _not_found(exc)
    return _no_content()


# --- Groups and study areas -----------------------------------------------------------

@admin_router.post("/api/admin/classes/{class_id}/groups")
async def create_group(request: Request, class_id: str, payload: GroupCreatePayload):
    err = _guard_write(request)
    if err:
        return err
    try:
        group = get_classroom().create_group(class_id=class_id, name=payload.name, group_number=payload.group_number)
    except ValueError as exc:
        return _bad_request(exc)
    except LookupError as exc:
        return _not_found(exc)
    return _json_private(group, status_code=201)


@admin_router.post("/api/admin/classes/{class_id}/study-areas")
async def create_study_area(request: Request, class_id: str, payload: StudyAreaCreatePayload):
    err = _guard_write(request)
    if err:
        return err
    try:
        area = get_classroom().create_study_area(
            class_id=class_id, name=payload.name, description=payload.description
        )
    except ValueError as exc:
        return _bad_request(exc)
    except LookupError as exc:
        return _not_found(exc)
    return _json_private(area, status_code=201)
