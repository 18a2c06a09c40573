"""
Application Routes

GET    /applications/mine                 - Current student's applications
GET    /applications/{id}                 - Application details with timeline
PATCH  /applications/{id}/status          - Shortlist / reject / select (staff)
POST   /applications/{id}/interview       - Schedule interview (staff)
POST   /applications/{id}/advance         - Move to next interview round (staff)
DELETE /applications/{id}                 - Withdraw (student, before review)
"""

from fastapi import APIRouter, Depends, Query
from typing import Optional

from app.core.auth import as_actor, get_current_user, get_current_student, get_current_staff
from app.core.config import get_settings
from app.models.models import Application, ApplicationStatus, InterviewSchedule
from app.schemas.schemas import (
    ApplicationResponse, ApplicationListResponse, ApplicationStatusUpdate, InterviewScheduleRequest,
    TimelineStepOut,
)
from app.services.placement_service import PlacementService, get_placement_service

router = APIRouter(prefix="/applications", tags=["Applications"])

settings = get_settings()


def to_application_response(application: Application) -> ApplicationResponse:
    return ApplicationResponse(
        application_id=application.application_id,
        student_id=application.student_id,
        drive_id=application.drive_id,
        company_id=application.company_id,
        status=application.status.value,
        feedback=application.feedback,
        notes=application.notes,
        interview_schedule=(
            application.interview_schedule.model_dump(mode="json") if application.interview_schedule else None
        ),
        timeline=[
            TimelineStepOut(step=s.step, date=s.date, completed=s.completed, notes=s.notes)
            for s in application.timeline
        ],
        applied_at=application.applied_at,
        last_updated=application.last_updated,
    )


@router.get("/mine", response_model=ApplicationListResponse)
async def get_my_applications(
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=50),
    status: Optional[ApplicationStatus] = Query(None),
    student: dict = Depends(get_current_student),
    service: PlacementService = Depends(get_placement_service),
):
    applications, total = service.list_my_applications(
        student["user_id"], status.value if status else None, page, page_size
    )
    return ApplicationListResponse(
        applications=[to_application_response(a) for a in applications],
        total=total, page=page, page_size=page_size,
    )


@router.get("/{application_id}", response_model=ApplicationResponse)
async def get_application(
    application_id: int,
    user: dict = Depends(get_current_user),
    service: PlacementService = Depends(get_placement_service),
):
    return to_application_response(service.get_application(application_id, as_actor(user)))


@router.patch("/{application_id}/status", response_model=ApplicationResponse)
async def update_application_status(
    application_id: int,
    update: ApplicationStatusUpdate,
    user: dict = Depends(get_current_staff),
    service: PlacementService = Depends(get_placement_service),
):
    """Apply a company / TPO decision. Drive counters follow in the same transaction."""
    application = service.update_application_status(
        application_id, ApplicationStatus(update.status.value), as_actor(user),
        feedback=update.feedback, notes=update.notes,
    )
    return to_application_response(application)


@router.post("/{application_id}/interview", response_model=ApplicationResponse)
async def schedule_interview(
    application_id: int,
    data: InterviewScheduleRequest,
    user: dict = Depends(get_current_staff),
    service: PlacementService = Depends(get_placement_service),
):
    schedule = InterviewSchedule(**data.model_dump())
    return to_application_response(service.schedule_interview(application_id, schedule, as_actor(user)))


@router.post("/{application_id}/advance", response_model=ApplicationResponse)
async def advance_round(
    application_id: int,
    user: dict = Depends(get_current_staff),
    service: PlacementService = Depends(get_placement_service),
):
    return to_application_response(service.advance_round(application_id, as_actor(user)))


@router.delete("/{application_id}", response_model=ApplicationResponse)
async def withdraw_application(
    application_id: int,
    student: dict = Depends(get_current_student),
    service: PlacementService = Depends(get_placement_service),
):
    """Withdraw an application that has not been reviewed yet."""
    return to_application_response(service.withdraw_application(application_id, as_actor(student)))
