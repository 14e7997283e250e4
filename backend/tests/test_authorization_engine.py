"""
Authorization engine: row predicates, enrollment gating and capabilities.
"""
from __future__ import annotations

import pytest

from authorization.domain import Capability, InstructorRole, StudentRole
from authorization.engine import Actor, AuthorizationEngine
from classroom.services.records import ClassroomService


def _grant_instructor(store, user_id, class_id, kind):
    store.create("instructor_privileges", {"user_id": user_id, "class_id": class_id, "role_kind": kind})


def _grant_student(store, enrollment_id, class_id, kind, **scope):
    store.create(
        "student_privileges",
        {"enrollment_id": enrollment_id, "class_id": class_id, "role_kind": kind, **scope},
    )


def test_instructor_predicates_have_no_inheritance(store, world):
    engine = AuthorizationEngine(store)
    _grant_instructor(store, world.i1, world.c1, "class_guardian")
    assert engine.has_instructor_privilege(world.i1, world.c1, InstructorRole.CLASS_GUARDIAN)
    assert engine.has_instructor_privilege(world.i1, world.c1, "class_guardian")
    assert not engine.has_instructor_privilege(world.i1, world.c1, InstructorRole.CLASS_COORDINATOR)
    assert not engine.has_instructor_privilege(world.i1, world.c2, InstructorRole.CLASS_GUARDIAN)
    assert engine.has_any_instructor_privilege(world.i1, world.c1)
    assert not engine.has_any_instructor_privilege(world.i2, world.c1)
    assert engine.list_instructor_privileges(world.i1, world.c1) == {InstructorRole.CLASS_GUARDIAN}


def test_queries_are_total_for_unknown_ids(store, world):
    engine = AuthorizationEngine(store)
    assert engine.has_instructor_privilege("nobody", "nowhere", "co_instructor") is False
    assert engine.has_any_instructor_privilege("", world.c1) is False
    assert engine.list_instructor_privileges("nobody", world.c1) == set()
    assert engine.resolve_active_enrollment("nobody", world.c1) is None
    assert engine.has_student_privilege("nobody", "nowhere", "secretary") is False
    assert engine.list_student_privileges(world.s[1], "nowhere") == set()


def test_unknown_role_kind_is_a_validation_error(store, world):
    engine = AuthorizationEngine(store)
    with pytest.raises(ValueError):
        engine.has_instructor_privilege(world.i1, world.c1, "headmaster")
    with pytest.raises(ValueError):
        engine.has_student_privilege(world.s[1], world.c1, "class_guardian")


def test_student_privilege_resolves_through_active_enrollment(store, world):
    engine = AuthorizationEngine(store)
    _grant_student(store, world.enrollments[1], world.c1, "secretary")
    assert engine.is_actively_enrolled(world.s[1], world.c1)
    assert engine.has_student_privilege(world.s[1], world.c1, StudentRole.SECRETARY)
    assert engine.list_student_privileges(world.s[1], world.c1) == {StudentRole.SECRETARY}
    # Enrolled in c2 only: no standing in c1 even for a foreign student.
    assert not engine.is_actively_enrolled(world.s[5], world.c1)


@pytest.mark.parametrize("status", ["inactive", "graduated", "dropped"])
def test_enrollment_gating_ignores_stale_rows(store, world, status):
    engine = AuthorizationEngine(store)
    _grant_student(store, world.enrollments[1], world.c1, "general_leader")
    assert engine.is_general_leader(world.s[1], world.c1)
    ClassroomService(store).set_enrollment_status(world.enrollments[1], status)
    assert not engine.is_general_leader(world.s[1], world.c1)
    assert engine.list_student_privileges(world.s[1], world.c1) == set()
    assert store.find_many("student_privileges", enrollment_id=world.enrollments[1])


CAPABILITY_MATRIX = [
    ("memorization_coordinator", Capability.MANAGE_MEMORIZATION, True),
    ("class_guardian", Capability.MANAGE_MEMORIZATION, False),
    ("achievement_coordinator", Capability.MANAGE_ACHIEVEMENTS, True),
    ("class_guardian", Capability.EVALUATE_CLASS, True),
    ("class_coordinator", Capability.EVALUATE_CLASS, True),
    ("co_instructor", Capability.EVALUATE_CLASS, False),
    ("co_instructor", Capability.MANAGE_ATTENDANCE, True),
    ("class_guardian", Capability.MANAGE_ATTENDANCE, True),
    ("class_coordinator", Capability.MANAGE_ATTENDANCE, True),
    ("memorization_coordinator", Capability.MANAGE_ATTENDANCE, False),
    ("class_guardian", Capability.MANAGE_GROUPS, True),
    ("class_coordinator", Capability.MANAGE_GROUPS, False),
    ("class_guardian", Capability.ASSIGN_STUDENT_PRIVILEGES, False),
]


@pytest.mark.parametrize("kind,capability,expected", CAPABILITY_MATRIX)
def test_instructor_capabilities(store, world, kind, capability, expected):
    engine = AuthorizationEngine(store)
    _grant_instructor(store, world.i1, world.c1, kind)
    assert engine.has_capability(world.i1, world.c1, capability) is expected
    assert engine.has_capability(world.i1, world.c2, capability) is False


def test_general_leader_capabilities(store, world):
    engine = AuthorizationEngine(store)
    _grant_student(store, world.enrollments[1], world.c1, "general_leader")
    assert engine.can_manage_attendance(world.s[1], world.c1)
    assert engine.can_assign_student_privileges(world.s[1], world.c1)
    assert engine.can_manage_groups(world.s[1], world.c1)
    assert not engine.can_evaluate_class(world.s[1], world.c1)
    assert not engine.can_manage_memorization(world.s[1], world.c1)
    assert not engine.can_manage_achievements(world.s[1], world.c1)


def test_admin_bypasses_every_capability(store, world):
    engine = AuthorizationEngine(store)
    admin = Actor(user_id=world.admin, role="admin")
    for cap in Capability:
        assert engine.can(admin, cap, world.c1)
        # No privilege rows: the row-only check still says no.
        assert not engine.has_capability(world.admin, world.c1, cap)


def test_can_without_actor_or_for_plain_members(store, world):
    engine = AuthorizationEngine(store)
    assert engine.can(None, Capability.MANAGE_GROUPS, world.c1) is False
    student = Actor(user_id=world.s[2], role="mahasiswa")
    assert engine.capabilities(student, world.c1) == {cap: False for cap in Capability}
    with pytest.raises(ValueError):
        engine.can(student, "launch_rockets", world.c1)
