"""Memorization (hafalan) record service.

Why:
    Memorization submissions are plain records keyed by enrollment. The only
    rules are referential: the enrollment, and the optional study area, must
    belong to the class the record is filed under, and an evaluation may only
    touch a record of that class.

Permissions:
    None enforced here. Routes decide with
    `AuthorizationEngine.can(actor, Capability.MANAGE_MEMORIZATION, class_id)`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Dict, List, Optional

from storage.ports import RecordStoreProtocol

from classroom.domain import MAX_SCORE, MemorizationStatus, parse_evaluation_outcome

logger = logging.getLogger("mamal.classroom")

_GENERAL = "general"


def _normalize_content(value: object) -> str:
    if not isinstance(value, str):
        raise ValueError("invalid_content")
    trimmed = value.strip()
    if not trimmed or len(trimmed) > 500:
        raise ValueError("invalid_content")
    return trimmed


def _normalize_verse(value: object, field: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"invalid_{field}")
    return value


def _normalize_score(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("invalid_score")
    if value < 0 or value > MAX_SCORE:
        raise ValueError("invalid_score")
    return round(float(value), 2)


def _normalize_notes(value: object) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str) or len(value) > 2000:
        raise ValueError("invalid_notes")
    return value.strip() or None


@dataclass
class MemorizationService:
    """Use cases for memorization records (framework-independent)."""

    store: RecordStoreProtocol

    def create_record(
        self,
        *,
        class_id: str,
        enrollment_id: str,
        content: object,
        study_area_id: Optional[str] = None,
        verse_start: object = None,
        verse_end: object = None,
    ) -> dict:
        """File a new submission as `pending`.

        Behavior:
            - `enrollment_not_found` unless the enrollment belongs to the class.
            - `invalid_study_area` when the study area is not one of the class's.
            - `invalid_verse_end` when the range runs backwards.
        """
        enrollment = self.store.find("enrollments", id=enrollment_id, class_id=class_id) if enrollment_id else None
        if not enrollment:
            raise LookupError("enrollment_not_found")
        if study_area_id and not self.store.find("study_areas", id=study_area_id, class_id=class_id):
            raise ValueError("invalid_study_area")
        start = _normalize_verse(verse_start, "verse_start")
        end = _normalize_verse(verse_end, "verse_end")
        if start is not None and end is not None and end < start:
            raise ValueError("invalid_verse_end")
        record = self.store.create(
            "hafalan_records",
            {
                "enrollment_id": enrollment_id,
                "class_id": class_id,
                "study_area_id": study_area_id or None,
                "content": _normalize_content(content),
                "verse_start": start,
                "verse_end": end,
                "status": MemorizationStatus.PENDING.value,
            },
        )
        logger.info("memorization record created id=%s class=%s", record["id"][-6:], class_id[-6:])
        return record

    def evaluate_record(
        self,
        *,
        class_id: str,
        record_id: str,
        evaluator_id: str,
        status: object,
        score: object,
        notes: object = None,
    ) -> dict:
        """Record the outcome (`completed` or `need_revision`) and score of a submission."""
        outcome = parse_evaluation_outcome(status)
        values = {
            "status": outcome.value,
            "score": _normalize_score(score),
            "notes": _normalize_notes(notes),
            "evaluated_by": evaluator_id or None,
            "evaluated_at": datetime.now(timezone.utc).isoformat(),
        }
        if not record_id or not self.store.update_many("hafalan_records", values, id=record_id, class_id=class_id):
            raise LookupError("record_not_found")
        logger.info("memorization record evaluated id=%s status=%s", record_id[-6:], outcome.value)
        return self.store.find("hafalan_records", id=record_id) or {}

    def get_record(self, record_id: str) -> Optional[dict]:
        return self.store.find("hafalan_records", id=record_id)

    def list_class_records(self, class_id: str) -> List[dict]:
        """All records of the class, newest first, with student and study area names."""
        records = self.store.find_many("hafalan_records", class_id=class_id)
        records.sort(key=lambda r: r.get("created_at") or "", reverse=True)
        return [self._describe(r) for r in records]

    def list_pending(self, class_id: str) -> List[dict]:
        """Pending records of the class, oldest first (the evaluation queue)."""
        records = self.store.find_many(
            "hafalan_records", class_id=class_id, status=MemorizationStatus.PENDING.value
        )
        records.sort(key=lambda r: r.get("created_at") or "")
        return [self._describe(r) for r in records]

    def student_history(self, enrollment_id: str) -> List[dict]:
        records = self.store.find_many("hafalan_records", enrollment_id=enrollment_id)
        records.sort(key=lambda r: r.get("created_at") or "", reverse=True)
        return [self._describe(r, with_student=False) for r in records]

    def progress(self, enrollment_id: str) -> Dict[str, dict]:
        """Per-study-area totals for one enrollment.

        Records without a study area are counted under "general". The average
        score only covers completed records.
        """
        buckets: Dict[str, dict] = {}
        score_sums: Dict[str, float] = {}
        for record in self.store.find_many("hafalan_records", enrollment_id=enrollment_id):
            key = record.get("study_area_id") or _GENERAL
            if key not in buckets:
                buckets[key] = {"name": self._study_area_name(record) or "Umum", "total": 0, "completed": 0}
                score_sums[key] = 0.0
            buckets[key]["total"] += 1
            if record.get("status") == MemorizationStatus.COMPLETED.value:
                buckets[key]["completed"] += 1
                score_sums[key] += float(record.get("score") or 0)
        for key, bucket in buckets.items():
            done = bucket["completed"]
            bucket["average_score"] = round(score_sums[key] / done, 2) if done else 0.0
        return buckets

    def _study_area_name(self, record: dict) -> Optional[str]:
        if not record.get("study_area_id"):
            return None
        area = self.store.find("study_areas", id=record["study_area_id"])
        return area.get("name") if area else None

    def _describe(self, record: dict, *, with_student: bool = True) -> dict:
        out = dict(record)
        out["study_area_name"] = self._study_area_name(record)
        if with_student:
            enrollment = self.store.find("enrollments", id=record["enrollment_id"]) or {}
            user = self.store.find("users", id=enrollment["user_id"]) if enrollment.get("user_id") else None
            out["user_id"] = enrollment.get("user_id")
            out["student_name"] = (user or {}).get("name")
        return out


__all__ = ["MemorizationService"]
