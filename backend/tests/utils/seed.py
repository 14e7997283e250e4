"""
Seed helpers: build a small, realistic class through the real services.

World layout:
    - admin, two instructors (i1, i2), five students (s1..s5)
    - one term with two classes (c1, c2); s1..s4 enrolled in c1, s5 in c2
    - c1 has groups g1, g2 and study area fiqh; c2 has group g_other
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

from classroom.services.records import ClassroomService
from identity_access.users import UserDirectory


@dataclass
class World:
    admin: str
    i1: str
    i2: str
    s: Dict[int, str]
    term: str
    c1: str
    c2: str
    g1: str
    g2: str
    fiqh: str
    g_other: str
    enrollments: Dict[int, str] = field(default_factory=dict)


def seed_world(store) -> World:
    users = UserDirectory(store)
    classroom = ClassroomService(store)

    admin = users.create_user(email="admin@example.org", name="Admin", role="admin")["id"]
    i1 = users.create_user(email="i1@example.org", name="Ustadz Ahmad", role="dosen")["id"]
    i2 = users.create_user(email="i2@example.org", name="Ustadzah Siti", role="dosen")["id"]
    students = {
        n: users.create_user(email=f"s{n}@example.org", name=f"Santri {n}", role="mahasiswa")["id"]
        for n in range(1, 6)
    }

    term = classroom.create_term(name="2025/2026 Ganjil")["id"]
    c1 = classroom.create_class(name="Kelas A", code="KA-01", term_id=term)["id"]
    c2 = classroom.create_class(name="Kelas B", code="KB-01", term_id=term)["id"]

    enrollments = {}
    for n in range(1, 5):
        enrollments[n] = classroom.enroll_student(user_id=students[n], class_id=c1)["id"]
    enrollments[5] = classroom.enroll_student(user_id=students[5], class_id=c2)["id"]

    g1 = classroom.create_group(class_id=c1, name="Kelompok 1", group_number=1)["id"]
    g2 = classroom.create_group(class_id=c1, name="Kelompok 2", group_number=2)["id"]
    fiqh = classroom.create_study_area(class_id=c1, name="Fiqh")["id"]
    g_other = classroom.create_group(class_id=c2, name="Kelompok 1", group_number=1)["id"]

    return World(
        admin=admin,
        i1=i1,
        i2=i2,
        s=students,
        term=term,
        c1=c1,
        c2=c2,
        g1=g1,
        g2=g2,
        fiqh=fiqh,
        g_other=g_other,
        enrollments=enrollments,
    )


__all__ = ["World", "seed_world"]
