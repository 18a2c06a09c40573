"""
Tests for DriveRegistry: creation rules, status lifecycle, roster counters
and cascading delete.
"""

import pydantic
import pytest
from sqlalchemy import update

from app.core.exceptions import AuthorizationError, DuplicateError, InvalidTransitionError, NotFoundError
from app.db.postgres import get_db_session
from app.db.tables import drives
from app.models.models import Actor, ApplicantStatus, DriveStatus
from app.schemas.schemas import DriveUpdate, EligibilityIn
from app.services.application_ledger import ApplicationLedger
from app.services.drive_registry import DriveRegistry, can_manage_drive
from app.services.student_directory import list_active_students


@pytest.fixture
def registry():
    return DriveRegistry()


def _create(registry, data, actor):
    with get_db_session() as db:
        return registry.create(db, data, actor)


def test_create_normalizes_branches(registry, drive_data, company):
    drive = _create(registry, drive_data(allowed_branches=["Computer Science", "CSE", "IT"]), company)
    assert drive.eligibility.allowed_branches == {"CSE", "IT"}
    assert drive.status == DriveStatus.active
    assert drive.posted_by == company.user_id
    assert drive.shortlisted_count == 0 and drive.selected_count == 0


def test_empty_branch_list_means_all(registry, drive_data, company):
    drive = _create(registry, drive_data(allowed_branches=[]), company)
    assert drive.eligibility.allowed_branches == {"All"}


def test_students_cannot_create_drives(registry, drive_data, make_student):
    student = Actor(user_id=make_student(), role="student")
    with pytest.raises(AuthorizationError):
        _create(registry, drive_data(), student)


def test_second_active_drive_for_company_is_rejected(registry, drive_data, company, tpo):
    _create(registry, drive_data(), company)
    with pytest.raises(DuplicateError):
        _create(registry, drive_data(position="Data Analyst"), tpo)


def test_draft_drive_does_not_count_as_active(registry, drive_data, company):
    active = _create(registry, drive_data(), company)
    draft = _create(registry, drive_data(status=DriveStatus.draft), company)
    assert draft.status == DriveStatus.draft

    with pytest.raises(DuplicateError):
        with get_db_session() as db:
            registry.set_status(db, draft.drive_id, DriveStatus.active, company)

    with get_db_session() as db:
        registry.close(db, active.drive_id, company)
    with get_db_session() as db:
        published = registry.set_status(db, draft.drive_id, DriveStatus.active, company)
    assert published.status == DriveStatus.active


def test_company_name_uniqueness_is_case_sensitive(registry, drive_data, company):
    _create(registry, drive_data(company_name="Acme"), company)
    other = _create(registry, drive_data(company_name="ACME"), company)
    assert other.status == DriveStatus.active


def test_terminal_statuses_cannot_change(registry, drive_data, company):
    drive = _create(registry, drive_data(), company)
    with get_db_session() as db:
        registry.cancel(db, drive.drive_id, company)
    with pytest.raises(InvalidTransitionError):
        with get_db_session() as db:
            registry.set_status(db, drive.drive_id, DriveStatus.active, company)


def test_only_owner_manages_company_drive(registry, drive_data, company, make_user, admin, tpo):
    drive = _create(registry, drive_data(), company)
    stranger = Actor(user_id=make_user("company"), role="company")

    assert can_manage_drive(company, drive)
    assert can_manage_drive(admin, drive)
    assert not can_manage_drive(stranger, drive)
    assert not can_manage_drive(tpo, drive)

    with pytest.raises(AuthorizationError):
        with get_db_session() as db:
            registry.update(db, drive.drive_id, DriveUpdate(ctc="20 LPA"), stranger)


def test_tpos_share_tpo_posted_drives(registry, drive_data, tpo, make_user):
    drive = _create(registry, drive_data(), tpo)
    other_tpo = Actor(user_id=make_user("tpo"), role="tpo")
    assert can_manage_drive(other_tpo, drive)


def test_update_rewrites_eligibility(registry, drive_data, company):
    drive = _create(registry, drive_data(), company)
    with get_db_session() as db:
        updated = registry.update(db, drive.drive_id, DriveUpdate(
            ctc="15 LPA",
            eligibility=EligibilityIn(min_cgpa=6, allowed_branches=["Data Science"], max_backlogs=1, min_year=2),
        ), company)
    assert updated.ctc == "15 LPA"
    assert updated.eligibility.allowed_branches == {"DS"}
    assert updated.eligibility.max_backlogs == 1


def test_update_rejects_non_http_url():
    with pytest.raises(pydantic.ValidationError):
        DriveUpdate(external_application_url="ftp://x")
    assert DriveUpdate(external_application_url="").external_application_url is None


def test_counters_follow_roster(registry, drive_data, company, make_student):
    drive = _create(registry, drive_data(), company)
    a, b = make_student(), make_student()
    with get_db_session() as db:
        registry.add_applicant(db, drive.drive_id, a)
        registry.add_applicant(db, drive.drive_id, b)

    with get_db_session() as db:
        registry.update_applicant_status(db, drive.drive_id, a, ApplicantStatus.shortlisted)
        registry.update_applicant_status(db, drive.drive_id, b, ApplicantStatus.shortlisted)
        drive = registry.get(db, drive.drive_id)
    assert (drive.shortlisted_count, drive.selected_count) == (2, 0)

    with get_db_session() as db:
        old, new = registry.update_applicant_status(db, drive.drive_id, a, ApplicantStatus.selected)
        registry.update_applicant_status(db, drive.drive_id, b, ApplicantStatus.rejected)
        drive = registry.get(db, drive.drive_id)
    assert (old, new) == ("shortlisted", "selected")
    assert (drive.shortlisted_count, drive.selected_count) == (0, 1)

    with get_db_session() as db:
        assert registry.recount_counters(db, drive.drive_id) == (0, 1)


def test_recount_repairs_drifted_counters(registry, drive_data, company, make_student):
    drive = _create(registry, drive_data(), company)
    student = make_student()
    with get_db_session() as db:
        registry.add_applicant(db, drive.drive_id, student)
        registry.update_applicant_status(db, drive.drive_id, student, ApplicantStatus.shortlisted)
        db.execute(update(drives).where(drives.c.drive_id == drive.drive_id).values(shortlisted_count=7))

    with get_db_session() as db:
        registry.recount_counters(db, drive.drive_id)
        assert registry.get(db, drive.drive_id).shortlisted_count == 1


def test_roster_rejects_repeat_applicant(registry, drive_data, company, make_student):
    drive = _create(registry, drive_data(), company)
    student = make_student()
    with get_db_session() as db:
        registry.add_applicant(db, drive.drive_id, student)

    with pytest.raises(DuplicateError):
        with get_db_session() as db:
            registry.add_applicant(db, drive.drive_id, student)

    with get_db_session() as db:
        assert len(registry.get_applicants(db, drive.drive_id)) == 1


def test_delete_cascades_to_applications(registry, drive_data, company, make_student):
    ledger = ApplicationLedger()
    drive = _create(registry, drive_data(), company)
    student = make_student()
    with get_db_session() as db:
        application = ledger.create(db, student, drive.drive_id, company.user_id)
        registry.add_applicant(db, drive.drive_id, student)

    with get_db_session() as db:
        assert registry.delete(db, drive.drive_id, company) == 1

    with get_db_session() as db:
        with pytest.raises(NotFoundError):
            ledger.get(db, application.application_id)
        with pytest.raises(NotFoundError):
            registry.get(db, drive.drive_id)


def test_list_filters_and_paginates(registry, drive_data, company, tpo):
    _create(registry, drive_data(company_name="Acme", allowed_branches=["CSE"]), company)
    _create(registry, drive_data(company_name="Globex", allowed_branches=["IT"]), tpo)
    _create(registry, drive_data(company_name="Initech", allowed_branches=["Information Technology"]), tpo)

    with get_db_session() as db:
        by_branch, total = registry.list_drives(db, branch="Information Technology")
        by_company, _ = registry.list_drives(db, company="glob")
        page, all_total = registry.list_drives(db, page=2, page_size=2)

    assert total == 2
    assert {d.company_name for d in by_branch} == {"Globex", "Initech"}
    assert [d.company_name for d in by_company] == ["Globex"]
    assert all_total == 3 and len(page) == 1


def test_eligible_students_ignores_roster(registry, drive_data, company, make_student):
    drive = _create(registry, drive_data(), company)
    good = make_student(cgpa=9.0)
    make_student(cgpa=5.0)
    make_student(cgpa=9.0, is_approved=False)
    with get_db_session() as db:
        registry.add_applicant(db, drive.drive_id, good)
        candidates = list_active_students(db)

    assert [s.student_id for s in registry.eligible_students(drive, candidates)] == [good]


def test_listing_reports_application_count(registry, drive_data, company, tpo, make_student):
    applied = _create(registry, drive_data(company_name="Acme"), company)
    _create(registry, drive_data(company_name="Globex"), tpo)
    with get_db_session() as db:
        registry.add_applicant(db, applied.drive_id, make_student())

    with get_db_session() as db:
        listed, total = registry.list_drives(db)
        by_branch, _ = registry.list_drives(db, branch="CSE", page_size=1)

    assert total == 2
    assert {d.company_name: d.application_count for d in listed} == {"Acme": 1, "Globex": 0}
    assert len(by_branch) == 1
