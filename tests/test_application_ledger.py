"""
Tests for ApplicationLedger: the status state machine, timeline updates,
interview scheduling and round advancement.
"""

from datetime import datetime

import pytest
from sqlalchemy import update

from app.core.exceptions import AuthorizationError, DuplicateError, InvalidTransitionError
from app.db.postgres import get_db_session
from app.db.tables import applications
from app.models.models import Actor, ApplicationStatus, InterviewSchedule
from app.services.application_ledger import (
    ApplicationLedger, TIMELINE_TEMPLATE, STEP_APPLIED, STEP_APTITUDE, STEP_TECHNICAL, STEP_HR, STEP_FINAL,
    CURRENT_ROUND_NOTE, allowed_transitions,
)
from app.services.drive_registry import DriveRegistry


@pytest.fixture
def ledger():
    return ApplicationLedger()


@pytest.fixture
def setup(ledger, drive_data, company, make_student):
    """A drive with one fresh application; returns (application, student Actor)."""
    with get_db_session() as db:
        drive = DriveRegistry().create(db, drive_data(), company)
    student_id = make_student()
    with get_db_session() as db:
        application = ledger.create(db, student_id, drive.drive_id, company.user_id)
    return application, Actor(user_id=student_id, role="student")


def _transition(ledger, application_id, status, actor, **kwargs):
    with get_db_session() as db:
        return ledger.transition(db, application_id, status, actor, **kwargs)


def test_create_seeds_timeline(setup):
    application, _ = setup
    assert application.status == ApplicationStatus.applied
    assert [s.step for s in application.timeline] == TIMELINE_TEMPLATE
    assert [s.completed for s in application.timeline] == [True, False, False, False, False]


def test_duplicate_application_is_rejected(ledger, setup, company):
    application, student = setup
    with pytest.raises(DuplicateError):
        with get_db_session() as db:
            ledger.create(db, student.user_id, application.drive_id, company.user_id)


def test_shortlist_then_select(ledger, setup, company):
    application, _ = setup

    shortlisted, old = _transition(ledger, application.application_id, ApplicationStatus.shortlisted, company)
    assert old == "applied"
    assert shortlisted.status == ApplicationStatus.shortlisted
    assert shortlisted.step(STEP_APTITUDE).completed
    assert shortlisted.step(STEP_APTITUDE).notes == "Shortlisted for next round"
    assert shortlisted.updated_by == company.user_id

    selected, _ = _transition(ledger, application.application_id, ApplicationStatus.selected, company,
                              feedback="Strong system design")
    assert selected.status == ApplicationStatus.selected
    assert selected.feedback == "Strong system design"
    assert selected.step(STEP_FINAL).completed


def test_rejected_is_terminal(ledger, setup, company):
    application, _ = setup
    _transition(ledger, application.application_id, ApplicationStatus.rejected, company)
    with pytest.raises(InvalidTransitionError):
        _transition(ledger, application.application_id, ApplicationStatus.selected, company)


def test_cannot_skip_shortlisting(ledger, setup, company):
    application, _ = setup
    with pytest.raises(InvalidTransitionError):
        _transition(ledger, application.application_id, ApplicationStatus.selected, company)


def test_student_cannot_withdraw_after_apply(ledger, setup):
    application, student = setup
    with pytest.raises(InvalidTransitionError, match="Cannot withdraw application at this stage"):
        with get_db_session() as db:
            ledger.withdraw(db, application.application_id, student)


def test_student_withdraws_pending_application(ledger, setup):
    application, student = setup
    with get_db_session() as db:
        db.execute(
            update(applications)
            .where(applications.c.application_id == application.application_id)
            .values(status="pending")
        )
    with get_db_session() as db:
        withdrawn = ledger.withdraw(db, application.application_id, student)
    assert withdrawn.status == ApplicationStatus.withdrawn


def test_student_cannot_touch_someone_elses_application(ledger, setup, make_student):
    application, _ = setup
    other = Actor(user_id=make_student(), role="student")
    with pytest.raises(AuthorizationError):
        with get_db_session() as db:
            ledger.withdraw(db, application.application_id, other)


def test_allowed_transitions_table():
    assert allowed_transitions("company", "applied") == {"shortlisted", "rejected"}
    assert allowed_transitions("tpo", "shortlisted") == {"selected", "rejected"}
    assert allowed_transitions("admin", "selected") == set()
    assert allowed_transitions("student", "pending") == {"withdrawn"}
    assert allowed_transitions("student", "applied") == set()


def test_schedule_interview(ledger, setup, company):
    application, _ = setup
    schedule = InterviewSchedule(date=datetime(2026, 11, 2, 10), time="10:00", venue="Block A",
                                 type="online", link="https://meet.example.com/x")
    with get_db_session() as db:
        scheduled = ledger.schedule_interview(db, application.application_id, schedule, company)

    assert scheduled.status == ApplicationStatus.applied
    assert scheduled.interview_schedule.venue == "Block A"
    assert scheduled.interview_schedule.type.value == "online"
    assert scheduled.step(STEP_TECHNICAL).notes == "Interview scheduled"
    assert not scheduled.step(STEP_TECHNICAL).completed


def test_no_interview_for_rejected_application(ledger, setup, company):
    application, _ = setup
    _transition(ledger, application.application_id, ApplicationStatus.rejected, company)
    schedule = InterviewSchedule(date=datetime(2026, 11, 2), time="10:00", venue="Block A")
    with pytest.raises(InvalidTransitionError):
        with get_db_session() as db:
            ledger.schedule_interview(db, application.application_id, schedule, company)


def test_advance_round_walks_rounds_but_not_final(ledger, setup, company):
    application, _ = setup
    with pytest.raises(InvalidTransitionError):
        with get_db_session() as db:
            ledger.advance_round(db, application.application_id, company)

    _transition(ledger, application.application_id, ApplicationStatus.shortlisted, company)

    with get_db_session() as db:
        advanced = ledger.advance_round(db, application.application_id, company)
    assert advanced.step(STEP_TECHNICAL).completed
    assert advanced.step(STEP_HR).notes == CURRENT_ROUND_NOTE

    with get_db_session() as db:
        advanced = ledger.advance_round(db, application.application_id, company)
    assert advanced.step(STEP_HR).completed
    assert not advanced.step(STEP_FINAL).completed
    assert advanced.step(STEP_APPLIED).completed

    with pytest.raises(InvalidTransitionError, match="already completed"):
        with get_db_session() as db:
            ledger.advance_round(db, application.application_id, company)


def test_listing(ledger, setup, company):
    application, student = setup
    with get_db_session() as db:
        mine, total = ledger.list_for_student(db, student.user_id)
        shortlisted, none = ledger.list_for_drive(db, application.drive_id, status="shortlisted")
    assert total == 1 and mine[0].application_id == application.application_id
    assert shortlisted == [] and none == 0
