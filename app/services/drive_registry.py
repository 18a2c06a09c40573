"""
Drive Registry - owns drives and their applicant rosters.

Tables: drives, drive_applicants (see app/db/tables.py)

Every method takes the caller's SQLAlchemy session so a whole action
(e.g. "apply" = application insert + roster append) commits or rolls back
as one transaction.

COUNTERS:
shortlisted_count / selected_count mirror the roster. They are maintained
by relative UPDATE statements (count = count + 1, clamped decrement) keyed
by the old -> new roster status, so concurrent status changes on different
students of the same drive never lose an update. recount_counters() is the
slower alternative that rebuilds both counters from the roster; it is used
to repair drives, not on the hot path.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import select, insert, update, delete, func, case, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    AuthorizationError, DuplicateError, InvalidTransitionError, NotFoundError, ValidationError,
)
from app.db.tables import drives, drive_applicants, applications, application_timeline
from app.models.models import (
    Actor, ApplicantEntry, ApplicantStatus, Drive, DriveStatus, Eligibility, StudentSnapshot, UserRole,
)
from app.schemas.schemas import DriveCreate, DriveUpdate
from app.services.branches import ALL_BRANCHES, normalize_branch, normalize_branches
from app.services.eligibility import is_eligible
from app.utils.timeutils import to_naive_utc, utcnow

logger = logging.getLogger(__name__)

# Drive lifecycle: closed and cancelled are terminal
DRIVE_TRANSITIONS = {
    DriveStatus.draft.value: {DriveStatus.active.value, DriveStatus.cancelled.value},
    DriveStatus.active.value: {DriveStatus.closed.value, DriveStatus.cancelled.value},
    DriveStatus.closed.value: set(),
    DriveStatus.cancelled.value: set(),
}

COUNTER_COLUMNS = {
    ApplicantStatus.shortlisted.value: "shortlisted_count",
    ApplicantStatus.selected.value: "selected_count",
}


def can_manage_drive(actor: Actor, drive: Drive) -> bool:
    """Admins manage everything, companies their own drives, TPOs any TPO-posted drive."""
    if actor.role == UserRole.admin.value:
        return True
    if actor.role == UserRole.company.value:
        return drive.posted_by == actor.user_id
    if actor.role == UserRole.tpo.value:
        return drive.posted_by == actor.user_id or drive.posted_by_role == UserRole.tpo.value
    return False


def _eligibility_from_input(eligibility) -> dict:
    branches = normalize_branches(eligibility.allowed_branches)
    return {
        "min_cgpa": eligibility.min_cgpa,
        # No branch list means the drive is open to every branch
        "allowed_branches": branches or [ALL_BRANCHES],
        "max_backlogs": eligibility.max_backlogs,
        "min_year": eligibility.min_year,
    }


def _is_active_company_violation(exc: IntegrityError) -> bool:
    return "uq_drives_active_company" in str(exc.orig) or "drives.company_name" in str(exc.orig)


class DriveRegistry:

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------

    def _to_drive(self, row, applicants: Optional[List[ApplicantEntry]] = None) -> Drive:
        return Drive(
            drive_id=row.drive_id,
            company_name=row.company_name,
            position=row.position,
            description=row.description,
            ctc=row.ctc,
            location=row.location,
            job_type=row.job_type,
            work_mode=row.work_mode,
            requirements=row.requirements or [],
            external_application_url=row.external_application_url,
            deadline=row.deadline,
            eligibility=Eligibility(
                min_cgpa=row.min_cgpa,
                allowed_branches=set(row.allowed_branches or []),
                max_backlogs=row.max_backlogs,
                min_year=row.min_year,
            ),
            status=row.status,
            is_visible=row.is_visible,
            priority=row.priority,
            applicants=applicants or [],
            shortlisted_count=row.shortlisted_count,
            selected_count=row.selected_count,
            posted_by=row.posted_by,
            posted_by_role=row.posted_by_role,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def get_applicants(self, db: Session, drive_id: int) -> List[ApplicantEntry]:
        rows = db.execute(
            select(drive_applicants)
            .where(drive_applicants.c.drive_id == drive_id)
            .order_by(drive_applicants.c.entry_id)
        ).all()
        return [ApplicantEntry(student_id=r.student_id, applied_at=r.applied_at, status=r.status) for r in rows]

    def get(self, db: Session, drive_id: int, with_applicants: bool = True) -> Drive:
        row = db.execute(select(drives).where(drives.c.drive_id == drive_id)).first()
        if row is None:
            raise NotFoundError("Drive not found")
        applicants = self.get_applicants(db, drive_id) if with_applicants else []
        return self._to_drive(row, applicants)

    def list_drives(
        self,
        db: Session,
        status: Optional[str] = None,
        company: Optional[str] = None,
        branch: Optional[str] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> Tuple[List[Drive], int]:
        """Visible drives, newest first, with optional filters."""
        conditions = [drives.c.is_visible.is_(True)]
        if status:
            conditions.append(drives.c.status == status)
        if company:
            conditions.append(drives.c.company_name.ilike(f"%{company}%"))

        query = select(drives).where(and_(*conditions)).order_by(
            drives.c.created_at.desc(), drives.c.drive_id.desc()
        )
        offset = (page - 1) * page_size

        if branch:
            # JSON array membership is not portable SQL, so branch filtering happens here
            code = normalize_branch(branch)
            rows = [r for r in db.execute(query).all() if code in (r.allowed_branches or [])]
            total = len(rows)
            rows = rows[offset:offset + page_size]
        else:
            total = db.execute(select(func.count()).select_from(drives).where(and_(*conditions))).scalar_one()
            rows = db.execute(query.offset(offset).limit(page_size)).all()

        return [self._to_drive(r, self.get_applicants(db, r.drive_id)) for r in rows], total

    def list_open_drives(self, db: Session) -> List[Drive]:
        """Active, visible drives whose deadline is still ahead, with rosters."""
        rows = db.execute(
            select(drives).where(
                drives.c.status == DriveStatus.active.value,
                drives.c.is_visible.is_(True),
                drives.c.deadline > utcnow(),
            ).order_by(
                case((drives.c.priority == "high", 0), (drives.c.priority == "medium", 1), else_=2),
                drives.c.created_at.desc(),
            )
        ).all()
        return [self._to_drive(r, self.get_applicants(db, r.drive_id)) for r in rows]

    # ------------------------------------------------------------
    # Create / update / lifecycle
    # ------------------------------------------------------------

    def _ensure_no_active_drive(self, db: Session, company_name: str, exclude_id: Optional[int] = None):
        query = select(drives.c.drive_id).where(
            drives.c.company_name == company_name,
            drives.c.status == DriveStatus.active.value,
        )
        if exclude_id is not None:
            query = query.where(drives.c.drive_id != exclude_id)
        if db.execute(query).first():
            raise DuplicateError("An active drive already exists for this company.")

    def create(self, db: Session, data: DriveCreate, creator: Actor) -> Drive:
        """
        Create a drive.

        Only companies and TPOs create drives. A second ACTIVE drive for the
        same company name (exact, case-sensitive) is rejected; the partial
        unique index uq_drives_active_company backs the pre-check against
        concurrent creates.
        """
        if creator.role not in (UserRole.company.value, UserRole.tpo.value):
            raise AuthorizationError("Only companies and TPOs can create drives")
        if not data.company_name.strip():
            raise ValidationError("Company name is required")

        if data.status == DriveStatus.active:
            self._ensure_no_active_drive(db, data.company_name)

        now = utcnow()
        values = {
            "company_name": data.company_name,
            "position": data.position,
            "description": data.description,
            "ctc": data.ctc,
            "location": data.location,
            "job_type": data.job_type.value,
            "work_mode": data.work_mode.value,
            "requirements": list(data.requirements),
            "external_application_url": data.external_application_url,
            "deadline": to_naive_utc(data.deadline),
            "status": data.status.value,
            "is_visible": True,
            "priority": data.priority.value,
            "shortlisted_count": 0,
            "selected_count": 0,
            "posted_by": creator.user_id,
            "posted_by_role": creator.role,
            "created_at": now,
            "updated_at": now,
            **_eligibility_from_input(data.eligibility),
        }
        try:
            result = db.execute(insert(drives).values(**values))
            db.flush()
        except IntegrityError as exc:
            if _is_active_company_violation(exc):
                raise DuplicateError("An active drive already exists for this company.") from exc
            raise

        drive_id = result.inserted_primary_key[0]
        logger.info("Drive %s created for %s (%s) by user %s",
                    drive_id, data.company_name, data.position, creator.user_id)
        return self.get(db, drive_id, with_applicants=False)

    def update(self, db: Session, drive_id: int, changes: DriveUpdate, actor: Actor) -> Drive:
        drive = self.get(db, drive_id, with_applicants=False)
        if not can_manage_drive(actor, drive):
            raise AuthorizationError("Access denied")

        values = {}
        for field in ["position", "description", "ctc", "location", "requirements",
                      "external_application_url", "is_visible"]:
            value = getattr(changes, field)
            if value is not None:
                values[field] = value
        for field in ["job_type", "work_mode", "priority"]:
            value = getattr(changes, field)
            if value is not None:
                values[field] = value.value
        if changes.deadline is not None:
            values["deadline"] = to_naive_utc(changes.deadline)
        if changes.eligibility is not None:
            values.update(_eligibility_from_input(changes.eligibility))

        if not values:
            raise ValidationError("No fields to update")

        values["updated_at"] = utcnow()
        db.execute(update(drives).where(drives.c.drive_id == drive_id).values(**values))
        return self.get(db, drive_id)

    def set_status(self, db: Session, drive_id: int, new_status: DriveStatus, actor: Actor) -> Drive:
        drive = self.get(db, drive_id, with_applicants=False)
        if not can_manage_drive(actor, drive):
            raise AuthorizationError("Access denied")

        old = drive.status.value
        new = new_status.value
        if new not in DRIVE_TRANSITIONS[old]:
            raise InvalidTransitionError(f"Cannot change drive status from '{old}' to '{new}'")
        if new == DriveStatus.active.value:
            self._ensure_no_active_drive(db, drive.company_name, exclude_id=drive_id)

        try:
            result = db.execute(
                update(drives)
                .where(drives.c.drive_id == drive_id, drives.c.status == old)
                .values(status=new, updated_at=utcnow())
            )
            db.flush()
        except IntegrityError as exc:
            if _is_active_company_violation(exc):
                raise DuplicateError("An active drive already exists for this company.") from exc
            raise
        if result.rowcount == 0:
            raise InvalidTransitionError("Drive status changed concurrently, please retry")

        logger.info("Drive %s status %s -> %s by user %s", drive_id, old, new, actor.user_id)
        return self.get(db, drive_id)

    def close(self, db: Session, drive_id: int, actor: Actor) -> Drive:
        return self.set_status(db, drive_id, DriveStatus.closed, actor)

    def cancel(self, db: Session, drive_id: int, actor: Actor) -> Drive:
        return self.set_status(db, drive_id, DriveStatus.cancelled, actor)

    def delete(self, db: Session, drive_id: int, actor: Actor) -> int:
        """Delete a drive together with every application on it. Returns the number of applications removed."""
        drive = self.get(db, drive_id, with_applicants=False)
        if not can_manage_drive(actor, drive):
            raise AuthorizationError("Access denied")

        app_ids = select(applications.c.application_id).where(applications.c.drive_id == drive_id)
        db.execute(delete(application_timeline).where(application_timeline.c.application_id.in_(app_ids)))
        deleted = db.execute(delete(applications).where(applications.c.drive_id == drive_id)).rowcount
        db.execute(delete(drive_applicants).where(drive_applicants.c.drive_id == drive_id))
        db.execute(delete(drives).where(drives.c.drive_id == drive_id))

        logger.info("Deleted drive %s and %s applications", drive_id, deleted)
        return deleted

    # ------------------------------------------------------------
    # Roster
    # ------------------------------------------------------------

    def add_applicant(self, db: Session, drive_id: int, student_id: int, applied_at=None) -> ApplicantEntry:
        """Append a pending roster entry. The (drive, student) unique constraint rejects repeats."""
        applied_at = applied_at or utcnow()
        try:
            db.execute(insert(drive_applicants).values(
                drive_id=drive_id,
                student_id=student_id,
                applied_at=applied_at,
                status=ApplicantStatus.pending.value,
            ))
            db.flush()
        except IntegrityError as exc:
            raise DuplicateError("Student has already applied for this drive") from exc
        return ApplicantEntry(student_id=student_id, applied_at=applied_at, status=ApplicantStatus.pending)

    def update_applicant_status(
        self, db: Session, drive_id: int, student_id: int, status: ApplicantStatus
    ) -> Tuple[str, str]:
        """
        Change one roster entry and move the counters by the old -> new delta.

        The entry is updated only if it still holds the status we read, so two
        concurrent changes of the same entry cannot both adjust the counters.
        """
        row = db.execute(
            select(drive_applicants.c.status).where(
                drive_applicants.c.drive_id == drive_id,
                drive_applicants.c.student_id == student_id,
            )
        ).first()
        if row is None:
            raise NotFoundError("Application not found")

        old = row.status
        new = status.value
        if old == new:
            return old, new

        result = db.execute(
            update(drive_applicants)
            .where(
                drive_applicants.c.drive_id == drive_id,
                drive_applicants.c.student_id == student_id,
                drive_applicants.c.status == old,
            )
            .values(status=new)
        )
        if result.rowcount == 0:
            raise InvalidTransitionError("Applicant status changed concurrently, please retry")

        self._apply_counter_delta(db, drive_id, old, new)
        return old, new

    def _apply_counter_delta(self, db: Session, drive_id: int, old: str, new: str):
        values = {}
        old_column = COUNTER_COLUMNS.get(old)
        new_column = COUNTER_COLUMNS.get(new)
        if old_column:
            column = drives.c[old_column]
            values[old_column] = case((column > 0, column - 1), else_=0)
        if new_column:
            values[new_column] = drives.c[new_column] + 1
        if values:
            values["updated_at"] = utcnow()
            db.execute(update(drives).where(drives.c.drive_id == drive_id).values(**values))

    def recount_counters(self, db: Session, drive_id: int) -> Tuple[int, int]:
        """Rebuild shortlisted_count / selected_count from the roster."""
        counts = dict(db.execute(
            select(drive_applicants.c.status, func.count())
            .where(drive_applicants.c.drive_id == drive_id)
            .group_by(drive_applicants.c.status)
        ).all())
        shortlisted = counts.get(ApplicantStatus.shortlisted.value, 0)
        selected = counts.get(ApplicantStatus.selected.value, 0)
        db.execute(
            update(drives).where(drives.c.drive_id == drive_id)
            .values(shortlisted_count=shortlisted, selected_count=selected)
        )
        return shortlisted, selected

    # ------------------------------------------------------------
    # Eligibility views
    # ------------------------------------------------------------

    def eligible_students(self, drive: Drive, candidates: List[StudentSnapshot]) -> List[StudentSnapshot]:
        """Students who pass the drive's rule, ignoring whether they already applied."""
        return [
            s for s in candidates
            if is_eligible(drive.eligibility, s, (), drive.status, drive.deadline)
        ]
