"""
Privilege API routes (admin and general-leader protocol).

Why:
    Thin adapter over the authorization core. Every handler resolves the
    acting user from `request.state.user` (set by the auth middleware from a
    freshly re-read user record), performs the caller-side role check, and
    translates `AssignmentResult` errors into HTTP responses.

Notes:
    - Admin-only: instructor privileges and the general leader.
    - General leader of the class: all other student privileges.
    - Storage failures surface as 503 via the app's InfrastructureError handler.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field

from authorization.engine import Actor
from authorization.errors import AssignmentResult, ErrorKind
from identity_access.domain import UserRole
from wiring import get_assignments, get_classroom, get_engine, get_queries, get_users
from .security import _csrf_guard, _json_private, _private_error

privileges_router = APIRouter(tags=["Privileges"])
logger = logging.getLogger("mamal.web.privileges")

# Error kind -> HTTP status
ERROR_STATUS = {
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.PROTECTED_GRANT: 403,
    ErrorKind.NOT_ENROLLED: 400,
    ErrorKind.MISSING_SCOPE: 400,
    ErrorKind.INVALID_ROLE_KIND: 400,
    ErrorKind.DUPLICATE_GRANT: 409,
    ErrorKind.INFRASTRUCTURE: 503,
}


class InstructorGrantPayload(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=100)
    role_kind: str = Field(..., min_length=1, max_length=64)


class GeneralLeaderPayload(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=100)


class StudentGrantPayload(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=100)
    role_kind: str = Field(..., min_length=1, max_length=64)
    group_id: Optional[str] = Field(default=None, max_length=100)
    study_area_id: Optional[str] = Field(default=None, max_length=100)


def _actor(request: Request) -> Optional[Actor]:
    user = getattr(request.state, "user", None)
    if not user or not user.get("sub"):
        return None
    return Actor(user_id=str(user["sub"]), role=str(user.get("role") or ""))


def _require_admin(request: Request):
    """Return (actor, error_response) ensuring caller has the admin role."""
    actor = _actor(request)
    if actor is None:
        return None, _private_error({"error": ErrorKind.UNAUTHORIZED.value}, status_code=401)
    if not actor.is_admin:
        return None, _private_error({"error": ErrorKind.FORBIDDEN.value}, status_code=403)
    return actor, None


def _result_response(result: AssignmentResult, *, success_status: int = 200) -> Response:
    if result.ok:
        if success_status == 204:
            return Response(status_code=204, headers={"Cache-Control": "private, no-store"})
        return _json_private(result.privilege or {}, status_code=success_status)
    kind = result.error or ErrorKind.FORBIDDEN
    return _private_error({"error": kind.value}, status_code=ERROR_STATUS.get(kind, 400))


def _class_or_404(class_id: str):
    if get_classroom().get_class(class_id) is None:
        return _private_error({"error": "not_found"}, status_code=404)
    return None


# --- Admin: instructor privileges ------------------------------------------------

@privileges_router.get("/api/admin/instructor-privileges")
async def list_instructor_privileges(request: Request):
    """List active instructors with their per-class privileges (admin only)."""
    _, err = _require_admin(request)
    if err:
        return err
    return _json_private(get_queries().instructors_with_privileges())


@privileges_router.post("/api/admin/classes/{class_id}/instructor-privileges")
async def assign_instructor_privilege(request: Request, class_id: str, payload: InstructorGrantPayload):
    """Grant an instructor role kind in a class.

    Behavior:
        - 201 with the new privilege row
        - 400 invalid_role_kind, or invalid_user when the target is not an active instructor
        - 404 when the class does not exist
        - 409 duplicate_grant when the same kind is already held
    """
    actor, err = _require_admin(request)
    if err:
        return err
    csrf = _csrf_guard(request)
    if csrf:
        return csrf
    missing = _class_or_404(class_id)
    if missing:
        return missing
    target = get_users().get_active_user(payload.user_id)
    if not target or target.get("role") != UserRole.INSTRUCTOR.value:
        return _private_error({"error": "bad_request", "detail": "invalid_user"}, status_code=400)
    result = get_assignments().assign_instructor_privilege(
        actor_id=actor.user_id, target_id=payload.user_id, class_id=class_id, role_kind=payload.role_kind
    )
    return _result_response(result, success_status=201)


@privileges_router.delete("/api/admin/classes/{class_id}/instructor-privileges/{user_id}/{role_kind}")
async def remove_instructor_privilege(request: Request, class_id: str, user_id: str, role_kind: str):
    """Revoke an instructor role kind; idempotent (204 even when nothing was held)."""
    actor, err = _require_admin(request)
    if err:
        return err
    csrf = _csrf_guard(request)
    if csrf:
        return csrf
    result = get_assignments().remove_instructor_privilege(
        actor_id=actor.user_id, target_id=user_id, class_id=class_id, role_kind=role_kind
    )
    return _result_response(result, success_status=204)


# --- Admin: general leader ---------------------------------------------------------

@privileges_router.get("/api/admin/classes/general-leaders")
async def list_general_leaders(request: Request):
    _, err = _require_admin(request)
    if err:
        return err
    return _json_private(get_queries().classes_with_general_leader())


@privileges_router.put("/api/admin/classes/{class_id}/general-leader")
async def assign_general_leader(request: Request, class_id: str, payload: GeneralLeaderPayload):
    """Make a student the class's general leader, replacing any current one (admin only)."""
    actor, err = _require_admin(request)
    if err:
        return err
    csrf = _csrf_guard(request)
    if csrf:
        return csrf
    missing = _class_or_404(class_id)
    if missing:
        return missing
    result = get_assignments().assign_general_leader(
        actor_id=actor.user_id, target_id=payload.user_id, class_id=class_id
    )
    return _result_response(result)


@privileges_router.delete("/api/admin/classes/{class_id}/general-leader")
async def revoke_general_leader(request: Request, class_id: str):
    actor, err = _require_admin(request)
    if err:
        return err
    csrf = _csrf_guard(request)
    if csrf:
        return csrf
    result = get_assignments().revoke_general_leader(actor_id=actor.user_id, class_id=class_id)
    return _result_response(result, success_status=204)


# --- General leader: student privileges ----------------------------------------------

@privileges_router.get("/api/classes/{class_id}/student-privileges")
async def list_student_privileges(request: Request, class_id: str):
    """Summary of student privilege holders plus members (general leader or admin)."""
    actor = _actor(request)
    if actor is None:
        return _private_error({"error": ErrorKind.UNAUTHORIZED.value}, status_code=401)
    if not (actor.is_admin or get_engine().is_general_leader(actor.user_id, class_id)):
        return _private_error({"error": ErrorKind.FORBIDDEN.value}, status_code=403)
    queries = get_queries()
    return _json_private(
        {
            "summary": queries.class_privilege_summary(class_id),
            "members": queries.class_members_with_privileges(class_id),
        }
    )


@privileges_router.post("/api/classes/{class_id}/student-privileges")
async def assign_student_privilege(request: Request, class_id: str, payload: StudentGrantPayload):
    """Grant a student privilege; the caller must be the class's general leader.

    Behavior:
        - 201 with the new privilege row (any previous holder is replaced)
        - 400 not_enrolled | missing_scope | invalid_role_kind
        - 403 forbidden (not the general leader) | protected_grant (general_leader requested)
    """
    actor = _actor(request)
    if actor is None:
        return _private_error({"error": ErrorKind.UNAUTHORIZED.value}, status_code=401)
    csrf = _csrf_guard(request)
    if csrf:
        return csrf
    result = get_assignments().assign_student_privilege(
        actor_id=actor.user_id,
        target_id=payload.user_id,
        class_id=class_id,
        role_kind=payload.role_kind,
        group_id=payload.group_id,
        study_area_id=payload.study_area_id,
    )
    return _result_response(result, success_status=201)


@privileges_router.delete("/api/classes/{class_id}/student-privileges/{user_id}/{role_kind}")
async def remove_student_privilege(request: Request, class_id: str, user_id: str, role_kind: str):
    actor = _actor(request)
    if actor is None:
        return _private_error({"error": ErrorKind.UNAUTHORIZED.value}, status_code=401)
    csrf = _csrf_guard(request)
    if csrf:
        return csrf
    result = get_assignments().remove_student_privilege(
        actor_id=actor.user_id, target_id=user_id, class_id=class_id, role_kind=role_kind
    )
    return _result_response(result, success_status=204)


# --- Caller's own standing ---------------------------------------------------------

@privileges_router.get("/api/classes/{class_id}/privileges/me")
async def my_privileges(request: Request, class_id: str):
    """Return the caller's instructor kinds, student kinds and capabilities in a class."""
    actor = _actor(request)
    if actor is None:
        return _private_error({"error": ErrorKind.UNAUTHORIZED.value}, status_code=401)
    engine = get_engine()
    return _json_private(
        {
            "class_id": class_id,
            "role": actor.role,
            "instructor": sorted(k.value for k in engine.list_instructor_privileges(actor.user_id, class_id)),
            "student": sorted(k.value for k in engine.list_student_privileges(actor.user_id, class_id)),
            "capabilities": {cap.value: allowed for cap, allowed in engine.capabilities(actor, class_id).items()},
        }
    )
