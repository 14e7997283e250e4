"""
Classroom domain constants.

Only an `active` enrollment confers standing in a class; the other statuses
keep the record for history without granting anything.
"""

from __future__ import annotations

from enum import Enum


class EnrollmentStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    GRADUATED = "graduated"
    DROPPED = "dropped"


def parse_status(value: object) -> EnrollmentStatus:
    if isinstance(value, EnrollmentStatus):
        return value
    if isinstance(value, str):
        try:
            return EnrollmentStatus(value.strip().lower())
        except ValueError:
            pass
    raise ValueError("invalid_status")


class MemorizationStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    NEED_REVISION = "need_revision"


# Outcomes an evaluator may record; the other statuses are set by the workflow.
EVALUATION_OUTCOMES = frozenset({MemorizationStatus.COMPLETED, MemorizationStatus.NEED_REVISION})


def parse_evaluation_outcome(value: object) -> MemorizationStatus:
    if isinstance(value, str):
        try:
            status = MemorizationStatus(value.strip().lower().replace("-", "_"))
        except ValueError:
            status = None
        if status in EVALUATION_OUTCOMES:
            return status  # type: ignore[return-value]
    raise ValueError("invalid_status")


DEFAULT_MAX_STUDENTS = 30
MAX_SCORE = 100

__all__ = [
    "DEFAULT_MAX_STUDENTS",
    "EVALUATION_OUTCOMES",
    "EnrollmentStatus",
    "MAX_SCORE",
    "MemorizationStatus",
    "parse_evaluation_outcome",
    "parse_status",
]
