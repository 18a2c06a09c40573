"""
Application Ledger - one record per (student, drive) with a status state
machine and an ordered timeline of process steps.

Tables: applications, application_timeline (see app/db/tables.py)

STATE MACHINE:
    (apply)      -> applied
    applied      -> shortlisted | rejected          (company / TPO / admin)
    shortlisted  -> selected | rejected             (company / TPO / admin)
    pending      -> withdrawn                       (student, own record)

Once review has started a student can no longer withdraw.

A status change and its timeline update are written in the caller's
transaction, and the status write is conditional on the status that was
read, so a reader never sees one without the other and two concurrent
transitions of the same record cannot both succeed.
"""

import logging
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy import select, insert, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import AuthorizationError, DuplicateError, InvalidTransitionError, NotFoundError
from app.db.tables import applications, application_timeline
from app.models.models import (
    Actor, Application, ApplicantStatus, ApplicationStatus, InterviewSchedule, TimelineStep, UserRole,
    STAFF_ROLES,
)
from app.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


STEP_APPLIED = "Applied"
STEP_APTITUDE = "Aptitude & Coding Round"
STEP_TECHNICAL = "Technical Round"
STEP_HR = "HR Round"
STEP_FINAL = "Final Result"

TIMELINE_TEMPLATE = [STEP_APPLIED, STEP_APTITUDE, STEP_TECHNICAL, STEP_HR, STEP_FINAL]

STAFF_TRANSITIONS: Dict[str, Set[str]] = {
    ApplicationStatus.applied.value: {ApplicationStatus.shortlisted.value, ApplicationStatus.rejected.value},
    ApplicationStatus.shortlisted.value: {ApplicationStatus.selected.value, ApplicationStatus.rejected.value},
}

STUDENT_TRANSITIONS: Dict[str, Set[str]] = {
    ApplicationStatus.pending.value: {ApplicationStatus.withdrawn.value},
}

# Application status -> drive roster status
ROSTER_STATUS = {
    ApplicationStatus.pending.value: ApplicantStatus.pending,
    ApplicationStatus.applied.value: ApplicantStatus.pending,
    ApplicationStatus.shortlisted.value: ApplicantStatus.shortlisted,
    ApplicationStatus.rejected.value: ApplicantStatus.rejected,
    ApplicationStatus.selected.value: ApplicantStatus.selected,
}

# Timeline step completed by entering a status, and the note written on it
STATUS_STEPS = {
    ApplicationStatus.shortlisted.value: (STEP_APTITUDE, "Shortlisted for next round"),
    ApplicationStatus.selected.value: (STEP_FINAL, "Selected for the position"),
    ApplicationStatus.rejected.value: (STEP_FINAL, "Application rejected"),
}

CURRENT_ROUND_NOTE = "Current round - In progress"


def allowed_transitions(role: str, status: str) -> Set[str]:
    table = STUDENT_TRANSITIONS if role == UserRole.student.value else STAFF_TRANSITIONS
    return table.get(status, set())


class ApplicationLedger:

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------

    def _timeline(self, db: Session, application_id: int) -> List[TimelineStep]:
        rows = db.execute(
            select(application_timeline)
            .where(application_timeline.c.application_id == application_id)
            .order_by(application_timeline.c.position)
        ).all()
        return [TimelineStep(step=r.step, date=r.date, completed=r.completed, notes=r.notes) for r in rows]

    def _to_application(self, db: Session, row) -> Application:
        return Application(
            application_id=row.application_id,
            student_id=row.student_id,
            drive_id=row.drive_id,
            company_id=row.company_id,
            status=row.status,
            feedback=row.feedback or "",
            notes=row.notes,
            interview_schedule=row.interview_schedule,
            timeline=self._timeline(db, row.application_id),
            applied_at=row.applied_at,
            last_updated=row.last_updated,
            updated_by=row.updated_by,
        )

    def get(self, db: Session, application_id: int) -> Application:
        row = db.execute(select(applications).where(applications.c.application_id == application_id)).first()
        if row is None:
            raise NotFoundError("Application not found")
        return self._to_application(db, row)

    def find(self, db: Session, student_id: int, drive_id: int) -> Optional[Application]:
        row = db.execute(
            select(applications).where(
                applications.c.student_id == student_id,
                applications.c.drive_id == drive_id,
            )
        ).first()
        return self._to_application(db, row) if row else None

    def _list(self, db: Session, condition, status: Optional[str], page: int, page_size: int):
        query = select(applications).where(condition)
        count_query = select(func.count()).select_from(applications).where(condition)
        if status:
            query = query.where(applications.c.status == status)
            count_query = count_query.where(applications.c.status == status)

        total = db.execute(count_query).scalar_one()
        rows = db.execute(
            query.order_by(applications.c.applied_at.desc(), applications.c.application_id.desc())
            .offset((page - 1) * page_size).limit(page_size)
        ).all()
        return [self._to_application(db, r) for r in rows], total

    def list_for_student(self, db: Session, student_id: int, status: Optional[str] = None,
                         page: int = 1, page_size: int = 10) -> Tuple[List[Application], int]:
        return self._list(db, applications.c.student_id == student_id, status, page, page_size)

    def list_for_drive(self, db: Session, drive_id: int, status: Optional[str] = None,
                       page: int = 1, page_size: int = 10) -> Tuple[List[Application], int]:
        return self._list(db, applications.c.drive_id == drive_id, status, page, page_size)

    # ------------------------------------------------------------
    # Create
    # ------------------------------------------------------------

    def create(self, db: Session, student_id: int, drive_id: int, company_id: int) -> Application:
        """
        Insert an 'applied' record and seed its timeline.

        The (student, drive) unique constraint is the real guard against
        double applies; IntegrityError is reported as DuplicateError.
        """
        now = utcnow()
        try:
            result = db.execute(insert(applications).values(
                student_id=student_id,
                drive_id=drive_id,
                company_id=company_id,
                status=ApplicationStatus.applied.value,
                feedback="",
                applied_at=now,
                last_updated=now,
            ))
            db.flush()
        except IntegrityError as exc:
            raise DuplicateError("You have already applied to this drive") from exc

        application_id = result.inserted_primary_key[0]
        db.execute(insert(application_timeline), [
            {
                "application_id": application_id,
                "position": position,
                "step": step,
                "date": now,
                "completed": step == STEP_APPLIED,
                "notes": None,
            }
            for position, step in enumerate(TIMELINE_TEMPLATE)
        ])
        logger.info("Application %s created: student %s -> drive %s", application_id, student_id, drive_id)
        return self.get(db, application_id)

    # ------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------

    def _write_status(self, db: Session, application: Application, new_status: str, actor: Actor,
                      extra: Optional[dict] = None):
        values = {
            "status": new_status,
            "last_updated": utcnow(),
            "updated_by": actor.user_id,
            **(extra or {}),
        }
        result = db.execute(
            update(applications)
            .where(
                applications.c.application_id == application.application_id,
                applications.c.status == application.status.value,
            )
            .values(**values)
        )
        if result.rowcount == 0:
            raise InvalidTransitionError("Application status changed concurrently, please retry")

    def _set_step(self, db: Session, application_id: int, step: str,
                  completed: Optional[bool] = None, notes: Optional[str] = None):
        values = {"date": utcnow()}
        if completed is not None:
            values["completed"] = completed
        if notes is not None:
            values["notes"] = notes
        db.execute(
            update(application_timeline)
            .where(
                application_timeline.c.application_id == application_id,
                application_timeline.c.step == step,
            )
            .values(**values)
        )

    def transition(self, db: Session, application_id: int, new_status: ApplicationStatus, actor: Actor,
                   feedback: Optional[str] = None, notes: Optional[str] = None) -> Tuple[Application, str]:
        """
        Move an application to new_status if the state machine allows it for
        this actor's role. Returns (updated application, old status).
        """
        application = self.get(db, application_id)
        old = application.status.value
        new = new_status.value

        if actor.role == UserRole.student.value:
            if application.student_id != actor.user_id:
                raise AuthorizationError("Access denied")
        elif actor.role not in STAFF_ROLES:
            raise AuthorizationError("Access denied")

        if new not in allowed_transitions(actor.role, old):
            if actor.role == UserRole.student.value:
                raise InvalidTransitionError("Cannot withdraw application at this stage")
            raise InvalidTransitionError(f"Cannot change application status from '{old}' to '{new}'")

        extra = {}
        if feedback:
            extra["feedback"] = feedback
        if notes:
            extra["notes"] = notes
        self._write_status(db, application, new, actor, extra)

        if new in STATUS_STEPS:
            step, note = STATUS_STEPS[new]
            self._set_step(db, application_id, step, completed=True, notes=note)

        logger.info("Application %s: %s -> %s by user %s", application_id, old, new, actor.user_id)
        return self.get(db, application_id), old

    def withdraw(self, db: Session, application_id: int, actor: Actor) -> Application:
        application, _ = self.transition(db, application_id, ApplicationStatus.withdrawn, actor)
        return application

    def schedule_interview(self, db: Session, application_id: int, schedule: InterviewSchedule,
                           actor: Actor) -> Application:
        """Attach an interview schedule and flag the Technical Round."""
        application = self.get(db, application_id)
        if application.status.value not in (ApplicationStatus.applied.value, ApplicationStatus.shortlisted.value):
            raise InvalidTransitionError(
                f"Cannot schedule an interview for an application that is '{application.status.value}'"
            )

        self._write_status(db, application, application.status.value, actor, {
            "interview_schedule": schedule.model_dump(mode="json"),
        })
        self._set_step(db, application_id, STEP_TECHNICAL, completed=False, notes="Interview scheduled")
        return self.get(db, application_id)

    def advance_round(self, db: Session, application_id: int, actor: Actor) -> Application:
        """
        Complete the current interview round of a shortlisted application and
        open the next one. The final step is only completed by selection or
        rejection.
        """
        application = self.get(db, application_id)
        if application.status.value != ApplicationStatus.shortlisted.value:
            raise InvalidTransitionError("Only shortlisted applications can move to the next round")

        rounds = [s for s in application.timeline if s.step != STEP_FINAL]
        current = next((i for i, s in enumerate(rounds) if not s.completed), None)
        if current is None:
            raise InvalidTransitionError("All interview rounds are already completed")

        self._write_status(db, application, application.status.value, actor)
        self._set_step(db, application_id, rounds[current].step, completed=True, notes="Completed")
        if current + 1 < len(rounds):
            self._set_step(db, application_id, rounds[current + 1].step, notes=CURRENT_ROUND_NOTE)
        return self.get(db, application_id)
