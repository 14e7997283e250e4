"""
Memorization records: filing, evaluation, queues and per-student progress.

Focus:
    Records are scoped to the class of their enrollment, evaluation only
    accepts a final outcome with a 0-100 score, and removing an enrollment or
    class removes its records.
"""
from __future__ import annotations

import pytest

from classroom.services.memorization import MemorizationService
from classroom.services.records import ClassroomService


@pytest.fixture
def service(store):
    return MemorizationService(store)


def _file(service, world, n=1, **kwargs):
    kwargs.setdefault("content", "Al-Mulk 1-10")
    return service.create_record(class_id=world.c1, enrollment_id=world.enrollments[n], **kwargs)


def test_create_record_starts_pending(service, world):
    record = _file(service, world, study_area_id=world.fiqh, verse_start=1, verse_end=10, content="  Al-Mulk ")
    assert record["status"] == "pending"
    assert record["content"] == "Al-Mulk"
    assert record["class_id"] == world.c1
    assert record["study_area_id"] == world.fiqh
    assert record["score"] is None and record["evaluated_by"] is None


def test_create_record_requires_enrollment_of_the_class(service, world):
    with pytest.raises(LookupError) as excinfo:
        service.create_record(class_id=world.c1, enrollment_id=world.enrollments[5], content="An-Naba")
    assert str(excinfo.value) == "enrollment_not_found"
    with pytest.raises(LookupError):
        service.create_record(class_id=world.c1, enrollment_id="", content="An-Naba")


@pytest.mark.parametrize(
    "kwargs, detail",
    [
        ({"content": "   "}, "invalid_content"),
        ({"content": "x" * 501}, "invalid_content"),
        ({"verse_start": 0}, "invalid_verse_start"),
        ({"verse_start": 10, "verse_end": 3}, "invalid_verse_end"),
        ({"verse_end": True}, "invalid_verse_end"),
    ],
)
def test_create_record_validation(service, world, kwargs, detail):
    with pytest.raises(ValueError) as excinfo:
        _file(service, world, **kwargs)
    assert str(excinfo.value) == detail


def test_create_record_refuses_study_area_of_other_class(service, store, world):
    other_area = ClassroomService(store).create_study_area(class_id=world.c2, name="Tajwid")["id"]
    with pytest.raises(ValueError) as excinfo:
        _file(service, world, study_area_id=other_area)
    assert str(excinfo.value) == "invalid_study_area"


def test_evaluate_record_sets_outcome_score_and_evaluator(service, world):
    record = _file(service, world)
    evaluated = service.evaluate_record(
        class_id=world.c1, record_id=record["id"], evaluator_id=world.i1, status="completed", score=87.5, notes=" Lancar "
    )
    assert evaluated["status"] == "completed"
    assert evaluated["score"] == 87.5
    assert evaluated["notes"] == "Lancar"
    assert evaluated["evaluated_by"] == world.i1
    assert evaluated["evaluated_at"]


@pytest.mark.parametrize(
    "status, score, detail",
    [
        ("pending", 80, "invalid_status"),
        ("in_progress", 80, "invalid_status"),
        ("done", 80, "invalid_status"),
        ("completed", 101, "invalid_score"),
        ("completed", -1, "invalid_score"),
        ("completed", True, "invalid_score"),
        ("need_revision", "80", "invalid_score"),
    ],
)
def test_evaluate_record_validation(service, world, status, score, detail):
    record = _file(service, world)
    with pytest.raises(ValueError) as excinfo:
        service.evaluate_record(
            class_id=world.c1, record_id=record["id"], evaluator_id=world.i1, status=status, score=score
        )
    assert str(excinfo.value) == detail
    assert service.get_record(record["id"])["status"] == "pending"


def test_evaluate_accepts_hyphenated_outcome(service, world):
    record = _file(service, world)
    evaluated = service.evaluate_record(
        class_id=world.c1, record_id=record["id"], evaluator_id=world.i1, status="need-revision", score=40
    )
    assert evaluated["status"] == "need_revision"


def test_evaluate_record_of_other_class_is_not_found(service, world):
    record = _file(service, world)
    with pytest.raises(LookupError) as excinfo:
        service.evaluate_record(
            class_id=world.c2, record_id=record["id"], evaluator_id=world.i1, status="completed", score=90
        )
    assert str(excinfo.value) == "record_not_found"
    assert service.get_record(record["id"])["status"] == "pending"


def test_pending_queue_is_oldest_first(service, store, world):
    newer = _file(service, world, n=1, content="Al-Mulk")
    older = _file(service, world, n=2, content="An-Naba")
    done = _file(service, world, n=3, content="Yasin")
    store.update_many("hafalan_records", {"created_at": "2025-01-02T00:00:00+00:00"}, id=newer["id"])
    store.update_many("hafalan_records", {"created_at": "2025-01-01T00:00:00+00:00"}, id=older["id"])
    service.evaluate_record(class_id=world.c1, record_id=done["id"], evaluator_id=world.i1, status="completed", score=90)

    pending = service.list_pending(world.c1)
    assert [r["id"] for r in pending] == [older["id"], newer["id"]]
    assert pending[0]["student_name"] == "Santri 2"
    assert pending[0]["user_id"] == world.s[2]


def test_class_records_are_newest_first_with_names(service, store, world):
    first = _file(service, world, n=1, study_area_id=world.fiqh)
    second = _file(service, world, n=2)
    store.update_many("hafalan_records", {"created_at": "2025-01-01T00:00:00+00:00"}, id=first["id"])
    store.update_many("hafalan_records", {"created_at": "2025-01-05T00:00:00+00:00"}, id=second["id"])

    records = service.list_class_records(world.c1)
    assert [r["id"] for r in records] == [second["id"], first["id"]]
    assert records[1]["study_area_name"] == "Fiqh"
    assert records[0]["study_area_name"] is None
    assert service.list_class_records(world.c2) == []


def test_student_history_and_progress(service, world):
    a = _file(service, world, study_area_id=world.fiqh)
    b = _file(service, world, study_area_id=world.fiqh)
    _file(service, world, study_area_id=world.fiqh)
    c = _file(service, world)
    _file(service, world, n=2)
    for record, score in ((a, 80), (b, 91)):
        service.evaluate_record(
            class_id=world.c1, record_id=record["id"], evaluator_id=world.i1, status="completed", score=score
        )
    service.evaluate_record(
        class_id=world.c1, record_id=c["id"], evaluator_id=world.i1, status="need_revision", score=30
    )

    history = service.student_history(world.enrollments[1])
    assert len(history) == 4
    assert all(r["enrollment_id"] == world.enrollments[1] for r in history)

    progress = service.progress(world.enrollments[1])
    assert progress[world.fiqh] == {"name": "Fiqh", "total": 3, "completed": 2, "average_score": 85.5}
    assert progress["general"] == {"name": "Umum", "total": 1, "completed": 0, "average_score": 0.0}
    assert service.progress(world.enrollments[4]) == {}


def test_removing_enrollment_or_class_removes_records(service, store, world):
    _file(service, world, n=1)
    kept = _file(service, world, n=2)
    classroom = ClassroomService(store)

    classroom.remove_enrollment(world.enrollments[1])
    assert store.find_many("hafalan_records", enrollment_id=world.enrollments[1]) == []
    assert service.get_record(kept["id"]) is not None

    classroom.delete_class(world.c1)
    assert store.find_many("hafalan_records", class_id=world.c1) == []
