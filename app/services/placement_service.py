"""
Placement Service - the inbound actions of the drive / application lifecycle.

Each action is one unit of work:
1. Primary writes (drives, rosters, applications, timelines) run in ONE
   PostgreSQL transaction via get_db_session(); any error rolls all of
   them back and reaches the caller.
2. After commit, notifications and chat enrollment run through
   run_side_effect(), which logs and drops their failures.

    apply_to_drive            evaluate -> application + roster -> notify, join chat
    create_drive              drive -> notify students/staff, create chat groups
    update_application_status ledger transition + roster counters -> notify
    schedule_interview        schedule + timeline -> notify
    get_eligible_drives       open drives filtered by the eligibility rule
"""

import logging
from typing import List, Optional, Tuple

from app.core.exceptions import AuthorizationError, IneligibleError, NotFoundError, ValidationError
from app.db.postgres import get_db_session
from app.models.models import (
    Actor, Application, ApplicationStatus, Drive, DriveStatus, InterviewSchedule, StudentSnapshot, UserRole,
)
from app.schemas.schemas import DriveCreate, DriveUpdate
from app.services.application_ledger import ApplicationLedger, ROSTER_STATUS
from app.services.chat_service import ChatEnrollmentService
from app.services.drive_registry import DriveRegistry, can_manage_drive
from app.services.eligibility import evaluate, is_eligible
from app.services.notification_service import (
    NotificationService, APPLICATION_SUBMITTED, INTERVIEW_SCHEDULED, NEW_DRIVE, STATUS_EVENTS,
)
from app.services.side_effects import run_side_effect
from app.services.student_directory import list_active_students, load_student

logger = logging.getLogger(__name__)


class PlacementService:

    def __init__(
        self,
        registry: DriveRegistry = None,
        ledger: ApplicationLedger = None,
        notifications: NotificationService = None,
        chat: ChatEnrollmentService = None,
    ):
        self.registry = registry or DriveRegistry()
        self.ledger = ledger or ApplicationLedger()
        self._notifications = notifications
        self._chat = chat

    # Mongo-backed collaborators are created lazily so a Mongo outage only
    # affects the side effects, never the primary action.
    @property
    def notifications(self) -> NotificationService:
        if self._notifications is None:
            self._notifications = NotificationService()
        return self._notifications

    @property
    def chat(self) -> ChatEnrollmentService:
        if self._chat is None:
            self._chat = ChatEnrollmentService()
        return self._chat

    def _notify(self, event_type: str, **payload):
        run_side_effect(event_type, lambda: self.notifications.notify(event_type, payload))

    # ------------------------------------------------------------
    # Drives
    # ------------------------------------------------------------

    def create_drive(self, data: DriveCreate, creator: Actor) -> Drive:
        with get_db_session() as db:
            drive = self.registry.create(db, data, creator)

        if drive.status == DriveStatus.active:
            self._notify(NEW_DRIVE, drive_id=drive.drive_id)
        run_side_effect("create_chat_groups", lambda: self.chat.create_groups_for_drive(drive, creator.user_id))
        return drive

    def update_drive(self, drive_id: int, changes: DriveUpdate, actor: Actor) -> Drive:
        with get_db_session() as db:
            return self.registry.update(db, drive_id, changes, actor)

    def change_drive_status(self, drive_id: int, status: DriveStatus, actor: Actor) -> Drive:
        with get_db_session() as db:
            old = self.registry.get(db, drive_id, with_applicants=False).status
            drive = self.registry.set_status(db, drive_id, status, actor)

        if old == DriveStatus.draft and drive.status == DriveStatus.active:
            self._notify(NEW_DRIVE, drive_id=drive.drive_id)
        return drive

    def delete_drive(self, drive_id: int, actor: Actor) -> int:
        with get_db_session() as db:
            return self.registry.delete(db, drive_id, actor)

    def get_drive(self, drive_id: int) -> Drive:
        with get_db_session() as db:
            return self.registry.get(db, drive_id)

    def list_drives(self, **filters) -> Tuple[List[Drive], int]:
        with get_db_session() as db:
            return self.registry.list_drives(db, **filters)

    # ------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------

    def apply_to_drive(self, drive_id: int, student_id: int) -> Application:
        """
        Submit an application.

        The application insert and the roster append share a transaction and
        both carry a (student, drive) unique constraint, so a retry after a
        failure, or a concurrent duplicate request, ends in DuplicateError
        rather than a second record.
        """
        with get_db_session() as db:
            drive = self.registry.get(db, drive_id)
            student = load_student(db, student_id)

            result = evaluate(drive.eligibility, student, drive.applicants, drive.status, drive.deadline)
            if not result.eligible:
                raise IneligibleError(result.reasons)

            application = self.ledger.create(db, student_id, drive_id, company_id=drive.posted_by)
            self.registry.add_applicant(db, drive_id, student_id, applied_at=application.applied_at)

        self._notify(APPLICATION_SUBMITTED, application_id=application.application_id)
        run_side_effect(
            "join_chat_group",
            lambda: self.chat.add_student_to_group(drive_id, student_id, student.branch),
        )
        return application

    def check_eligibility(self, drive_id: int, student_id: int):
        with get_db_session() as db:
            drive = self.registry.get(db, drive_id)
            student = load_student(db, student_id)
        return evaluate(drive.eligibility, student, drive.applicants, drive.status, drive.deadline)

    def get_eligible_drives(self, student: StudentSnapshot) -> List[Tuple[Drive, bool]]:
        """
        Open drives whose rule the student passes, each flagged with whether
        the student already applied.
        """
        if student.role != UserRole.student.value:
            raise AuthorizationError("Access denied")
        if student.cgpa is None or student.branch is None or student.year is None:
            raise ValidationError(
                "Student profile incomplete. Please update your profile with CGPA, branch, year, and backlogs."
            )

        with get_db_session() as db:
            open_drives = self.registry.list_open_drives(db)

        eligible = []
        for drive in open_drives:
            if is_eligible(drive.eligibility, student, (), drive.status, drive.deadline):
                applied = any(a.student_id == student.student_id for a in drive.applicants)
                eligible.append((drive, applied))
        return eligible

    def get_eligible_students(self, drive_id: int, actor: Actor) -> List[StudentSnapshot]:
        with get_db_session() as db:
            drive = self.registry.get(db, drive_id, with_applicants=False)
            if not can_manage_drive(actor, drive):
                raise AuthorizationError("Access denied")
            candidates = list_active_students(db)
        return self.registry.eligible_students(drive, candidates)

    # ------------------------------------------------------------
    # Application lifecycle
    # ------------------------------------------------------------

    def _authorize_staff(self, db, application: Application, actor: Actor) -> Drive:
        drive = self.registry.get(db, application.drive_id, with_applicants=False)
        if actor.role == UserRole.student.value or not can_manage_drive(actor, drive):
            raise AuthorizationError("Access denied")
        return drive

    def update_application_status(
        self,
        application_id: int,
        new_status: ApplicationStatus,
        actor: Actor,
        feedback: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Application:
        """
        Company / TPO decision on an application. The ledger transition and
        the roster status + counters move together in one transaction.
        """
        with get_db_session() as db:
            application = self.ledger.get(db, application_id)
            self._authorize_staff(db, application, actor)

            updated, old = self.ledger.transition(db, application_id, new_status, actor, feedback, notes)
            self.registry.update_applicant_status(
                db, updated.drive_id, updated.student_id, ROSTER_STATUS[new_status.value]
            )

        event = STATUS_EVENTS.get(new_status.value)
        if event and old != new_status.value:
            self._notify(event, application_id=application_id, extra={"feedback": feedback, "notes": notes})
        return updated

    def shortlist_student(self, drive_id: int, student_id: int, new_status: ApplicationStatus,
                          actor: Actor) -> Application:
        """Same as update_application_status, addressed by (drive, student)."""
        with get_db_session() as db:
            application = self.ledger.find(db, student_id, drive_id)
        if application is None:
            raise NotFoundError("Application not found")
        return self.update_application_status(application.application_id, new_status, actor)

    def withdraw_application(self, application_id: int, actor: Actor) -> Application:
        with get_db_session() as db:
            return self.ledger.withdraw(db, application_id, actor)

    def schedule_interview(self, application_id: int, schedule: InterviewSchedule, actor: Actor) -> Application:
        with get_db_session() as db:
            application = self.ledger.get(db, application_id)
            self._authorize_staff(db, application, actor)
            updated = self.ledger.schedule_interview(db, application_id, schedule, actor)

        self._notify(INTERVIEW_SCHEDULED, application_id=application_id,
                     extra=schedule.model_dump(mode="json"))
        return updated

    def advance_round(self, application_id: int, actor: Actor) -> Application:
        with get_db_session() as db:
            application = self.ledger.get(db, application_id)
            self._authorize_staff(db, application, actor)
            return self.ledger.advance_round(db, application_id, actor)

    def get_application(self, application_id: int, actor: Actor) -> Application:
        with get_db_session() as db:
            application = self.ledger.get(db, application_id)
            if actor.role == UserRole.student.value:
                if application.student_id != actor.user_id:
                    raise AuthorizationError("Access denied")
            else:
                self._authorize_staff(db, application, actor)
            return application

    def list_my_applications(self, student_id: int, status: Optional[str] = None,
                             page: int = 1, page_size: int = 10):
        with get_db_session() as db:
            return self.ledger.list_for_student(db, student_id, status, page, page_size)

    def list_drive_applications(self, drive_id: int, actor: Actor, status: Optional[str] = None,
                                page: int = 1, page_size: int = 10):
        with get_db_session() as db:
            drive = self.registry.get(db, drive_id, with_applicants=False)
            if not can_manage_drive(actor, drive):
                raise AuthorizationError("Access denied")
            return self.ledger.list_for_drive(db, drive_id, status, page, page_size)


_service: PlacementService = None


def get_placement_service() -> PlacementService:
    """FastAPI dependency - one shared, stateless service."""
    global _service
    if _service is None:
        _service = PlacementService()
    return _service
