"""
Drive Routes

POST   /drives                       - Create drive (company / TPO)
GET    /drives                       - List visible drives with filters
GET    /drives/eligible              - Open drives the student is eligible for
GET    /drives/{drive_id}            - Drive details with roster
GET    /drives/{drive_id}/eligibility - Current student's eligibility with reasons
PUT    /drives/{drive_id}            - Update drive (owner / admin)
PATCH  /drives/{drive_id}/status     - Publish, close or cancel
DELETE /drives/{drive_id}            - Delete drive and its applications
POST   /drives/{drive_id}/apply      - Apply (student only)
PATCH  /drives/{drive_id}/shortlist  - Set a student's status on this drive
GET    /drives/{drive_id}/applications      - Applications received
GET    /drives/{drive_id}/eligible-students - Students passing the rule
"""

from fastapi import APIRouter, Depends, Query
from typing import List, Optional

from app.core.auth import as_actor, get_current_student, get_current_staff
from app.core.config import get_settings
from app.db.postgres import get_db_session
from app.models.models import ApplicationStatus, Drive, DriveStatus
from app.schemas.schemas import (
    DriveCreate, DriveUpdate, DriveStatusChange, DriveStatusAction, DriveResponse, DriveListResponse,
    EligibilityOut, ApplicantOut, EligibleDriveResponse, EligibleDriveListResponse, ShortlistRequest,
    DriveDeleteResponse, EligibleStudentResponse, EligibilityCheckResponse, ApplicationResponse,
    ApplicationListResponse, ErrorResponse,
)
from app.services.placement_service import PlacementService, get_placement_service
from app.services.student_directory import load_student
from app.api.routes.application_routes import to_application_response

router = APIRouter(prefix="/drives", tags=["Drives"])

settings = get_settings()

STATUS_ACTIONS = {
    DriveStatusAction.publish: DriveStatus.active,
    DriveStatusAction.close: DriveStatus.closed,
    DriveStatusAction.cancel: DriveStatus.cancelled,
}


def to_drive_response(drive: Drive, include_applicants: bool = False) -> DriveResponse:
    return DriveResponse(
        drive_id=drive.drive_id, company_name=drive.company_name, position=drive.position,
        description=drive.description, ctc=drive.ctc, location=drive.location,
        job_type=drive.job_type, work_mode=drive.work_mode, requirements=drive.requirements,
        external_application_url=drive.external_application_url, deadline=drive.deadline,
        eligibility=EligibilityOut(
            min_cgpa=drive.eligibility.min_cgpa,
            allowed_branches=sorted(drive.eligibility.allowed_branches),
            max_backlogs=drive.eligibility.max_backlogs,
            min_year=drive.eligibility.min_year,
        ),
        status=drive.status.value, is_visible=drive.is_visible, priority=drive.priority,
        application_count=drive.application_count,
        shortlisted_count=drive.shortlisted_count, selected_count=drive.selected_count,
        posted_by=drive.posted_by, created_at=drive.created_at,
        applicants=[
            ApplicantOut(student_id=a.student_id, applied_at=a.applied_at, status=a.status.value)
            for a in drive.applicants
        ] if include_applicants else None,
    )


@router.post("", response_model=DriveResponse, status_code=201)
async def create_drive(
    data: DriveCreate,
    user: dict = Depends(get_current_staff),
    service: PlacementService = Depends(get_placement_service),
):
    """Create a drive. Companies and TPOs only; one active drive per company."""
    drive = service.create_drive(data, as_actor(user))
    return to_drive_response(drive)


@router.get("", response_model=DriveListResponse)
async def list_drives(
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=50),
    status: Optional[DriveStatus] = Query(None),
    company: Optional[str] = Query(None, description="Search in company name"),
    branch: Optional[str] = Query(None, description="Branch name or code"),
    service: PlacementService = Depends(get_placement_service),
):
    """List visible drives, newest first."""
    drives, total = service.list_drives(
        status=status.value if status else None, company=company, branch=branch,
        page=page, page_size=page_size,
    )
    return DriveListResponse(
        drives=[to_drive_response(d) for d in drives], total=total, page=page, page_size=page_size
    )


@router.get("/eligible", response_model=EligibleDriveListResponse)
async def get_eligible_drives(
    student: dict = Depends(get_current_student),
    service: PlacementService = Depends(get_placement_service),
):
    """Open drives the current student is eligible for, flagged when already applied."""
    with get_db_session() as db:
        snapshot = load_student(db, student["user_id"])
    results = service.get_eligible_drives(snapshot)
    return EligibleDriveListResponse(
        drives=[EligibleDriveResponse(drive=to_drive_response(d), applied=applied) for d, applied in results],
        total_eligible=len(results),
    )


@router.get("/{drive_id}", response_model=DriveResponse)
async def get_drive(drive_id: int, service: PlacementService = Depends(get_placement_service)):
    """Drive details including the applicant roster."""
    return to_drive_response(service.get_drive(drive_id), include_applicants=True)


@router.put("/{drive_id}", response_model=DriveResponse)
async def update_drive(
    drive_id: int,
    changes: DriveUpdate,
    user: dict = Depends(get_current_staff),
    service: PlacementService = Depends(get_placement_service),
):
    return to_drive_response(service.update_drive(drive_id, changes, as_actor(user)))


@router.patch("/{drive_id}/status", response_model=DriveResponse)
async def change_drive_status(
    drive_id: int,
    change: DriveStatusChange,
    user: dict = Depends(get_current_staff),
    service: PlacementService = Depends(get_placement_service),
):
    """Publish a draft, close or cancel a drive."""
    drive = service.change_drive_status(drive_id, STATUS_ACTIONS[change.action], as_actor(user))
    return to_drive_response(drive)


@router.delete("/{drive_id}", response_model=DriveDeleteResponse)
async def delete_drive(
    drive_id: int,
    user: dict = Depends(get_current_staff),
    service: PlacementService = Depends(get_placement_service),
):
    """Delete a drive. Cascades to its applications."""
    deleted = service.delete_drive(drive_id, as_actor(user))
    return DriveDeleteResponse(message="Drive deleted successfully", deleted_applications=deleted)


@router.get("/{drive_id}/eligibility", response_model=EligibilityCheckResponse)
async def check_eligibility(
    drive_id: int,
    student: dict = Depends(get_current_student),
    service: PlacementService = Depends(get_placement_service),
):
    """Every rule the current student fails for this drive (empty when eligible)."""
    result = service.check_eligibility(drive_id, student["user_id"])
    return EligibilityCheckResponse(eligible=result.eligible, reasons=result.reasons)


@router.post(
    "/{drive_id}/apply",
    response_model=ApplicationResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def apply_to_drive(
    drive_id: int,
    student: dict = Depends(get_current_student),
    service: PlacementService = Depends(get_placement_service),
):
    """Apply to a drive. Rejected with every failed eligibility rule listed."""
    application = service.apply_to_drive(drive_id, student["user_id"])
    return to_application_response(application)


@router.patch("/{drive_id}/shortlist", response_model=ApplicationResponse)
async def shortlist_student(
    drive_id: int,
    data: ShortlistRequest,
    user: dict = Depends(get_current_staff),
    service: PlacementService = Depends(get_placement_service),
):
    application = service.shortlist_student(
        drive_id, data.student_id, ApplicationStatus(data.status.value), as_actor(user)
    )
    return to_application_response(application)


@router.get("/{drive_id}/applications", response_model=ApplicationListResponse)
async def get_drive_applications(
    drive_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=50),
    status: Optional[ApplicationStatus] = Query(None),
    user: dict = Depends(get_current_staff),
    service: PlacementService = Depends(get_placement_service),
):
    applications, total = service.list_drive_applications(
        drive_id, as_actor(user), status.value if status else None, page, page_size
    )
    return ApplicationListResponse(
        applications=[to_application_response(a) for a in applications],
        total=total, page=page, page_size=page_size,
    )


@router.get("/{drive_id}/eligible-students", response_model=List[EligibleStudentResponse])
async def get_eligible_students(
    drive_id: int,
    user: dict = Depends(get_current_staff),
    service: PlacementService = Depends(get_placement_service),
):
    students = service.get_eligible_students(drive_id, as_actor(user))
    return [
        EligibleStudentResponse(
            student_id=s.student_id, branch=s.branch,
            year=str(s.year) if s.year is not None else None,
            cgpa=s.cgpa, backlogs=s.backlogs,
        )
        for s in students
    ]
