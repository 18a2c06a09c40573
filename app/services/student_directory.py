"""
Read-only lookups over users / students.

Accounts and profiles are written by the user-management side of the portal;
this module only turns rows into StudentSnapshot / recipient id lists.
"""

from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.db.tables import users, students
from app.models.models import StudentSnapshot, UserRole


def _snapshot(row) -> StudentSnapshot:
    return StudentSnapshot(
        student_id=row.user_id,
        role=row.role,
        cgpa=row.cgpa,
        backlogs=row.backlogs if row.backlogs is not None else 0,
        year=row.year,
        branch=row.branch,
    )


def _snapshot_query():
    return (
        select(users.c.user_id, users.c.role, students.c.cgpa, students.c.backlogs,
               students.c.year, students.c.branch)
        .select_from(users.outerjoin(students, students.c.user_id == users.c.user_id))
    )


def load_student(db: Session, user_id: int) -> StudentSnapshot:
    """Snapshot of one account. Non-student accounts come back with their real role."""
    row = db.execute(_snapshot_query().where(users.c.user_id == user_id)).first()
    if row is None:
        raise NotFoundError("Student not found")
    return _snapshot(row)


def list_active_students(db: Session) -> List[StudentSnapshot]:
    """All approved, active student accounts."""
    rows = db.execute(
        _snapshot_query().where(
            users.c.role == UserRole.student.value,
            users.c.is_active.is_(True),
            users.c.is_approved.is_(True),
        ).order_by(users.c.user_id)
    ).all()
    return [_snapshot(r) for r in rows]

