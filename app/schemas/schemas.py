"""
Pydantic Schemas - Request/Response Validation

All API request and response schemas in one file for simplicity.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Any, Dict
from datetime import datetime
from enum import Enum

from app.models.models import (
    DriveStatus, InterviewType, NotificationPriority, NotificationType,
)


# ============================================================
# ENUMS
# ============================================================

class JobType(str, Enum):
    full_time = "Full-time"
    part_time = "Part-time"
    internship = "Internship"
    contract = "Contract"


class WorkMode(str, Enum):
    on_site = "On-site"
    remote = "Remote"
    hybrid = "Hybrid"


class Priority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class StaffDecision(str, Enum):
    """Statuses a company / TPO may set on an application."""
    shortlisted = "shortlisted"
    rejected = "rejected"
    selected = "selected"


class DriveStatusAction(str, Enum):
    publish = "publish"
    close = "close"
    cancel = "cancel"


# ============================================================
# DRIVE SCHEMAS
# ============================================================

class EligibilityIn(BaseModel):
    min_cgpa: float = Field(0, ge=0, le=10)
    allowed_branches: List[str] = []
    max_backlogs: int = Field(0, ge=0)
    min_year: int = Field(1, ge=1, le=4)


class DriveCreate(BaseModel):
    company_name: str = Field(..., min_length=1, max_length=200)
    position: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    ctc: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    deadline: datetime
    eligibility: EligibilityIn
    job_type: JobType = JobType.full_time
    work_mode: WorkMode = WorkMode.on_site
    requirements: List[str] = []
    external_application_url: Optional[str] = None
    priority: Priority = Priority.medium
    status: DriveStatus = DriveStatus.active

    @field_validator("external_application_url")
    @classmethod
    def check_url(cls, v):
        if v and not (v.startswith("http://") or v.startswith("https://")):
            raise ValueError("External application URL must be a valid HTTP/HTTPS URL")
        return v or None

    @field_validator("status")
    @classmethod
    def check_initial_status(cls, v):
        if v not in (DriveStatus.draft, DriveStatus.active):
            raise ValueError("A drive can only be created as draft or active")
        return v


class DriveUpdate(BaseModel):
    position: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    ctc: Optional[str] = None
    location: Optional[str] = None
    deadline: Optional[datetime] = None
    eligibility: Optional[EligibilityIn] = None
    job_type: Optional[JobType] = None
    work_mode: Optional[WorkMode] = None
    requirements: Optional[List[str]] = None
    external_application_url: Optional[str] = None
    priority: Optional[Priority] = None
    is_visible: Optional[bool] = None

    @field_validator("external_application_url")
    @classmethod
    def check_url(cls, v):
        if v and not (v.startswith("http://") or v.startswith("https://")):
            raise ValueError("External application URL must be a valid HTTP/HTTPS URL")
        return v or None


class DriveStatusChange(BaseModel):
    action: DriveStatusAction


class EligibilityOut(BaseModel):
    min_cgpa: float
    allowed_branches: List[str]
    max_backlogs: int
    min_year: int


class ApplicantOut(BaseModel):
    student_id: int
    applied_at: datetime
    status: str


class DriveResponse(BaseModel):
    drive_id: int
    company_name: str
    position: str
    description: str
    ctc: str
    location: str
    job_type: str
    work_mode: str
    requirements: List[str] = []
    external_application_url: Optional[str] = None
    deadline: datetime
    eligibility: EligibilityOut
    status: str
    is_visible: bool
    priority: str
    application_count: int
    shortlisted_count: int
    selected_count: int
    posted_by: int
    created_at: datetime
    applicants: Optional[List[ApplicantOut]] = None


class DriveListResponse(BaseModel):
    drives: List[DriveResponse]
    total: int
    page: int
    page_size: int


class EligibleDriveResponse(BaseModel):
    drive: DriveResponse
    applied: bool


class EligibleDriveListResponse(BaseModel):
    drives: List[EligibleDriveResponse]
    total_eligible: int


class ShortlistRequest(BaseModel):
    student_id: int
    status: StaffDecision


class DriveDeleteResponse(BaseModel):
    message: str
    deleted_applications: int


class EligibleStudentResponse(BaseModel):
    student_id: int
    branch: Optional[str] = None
    year: Optional[str] = None
    cgpa: Optional[float] = None
    backlogs: int


class EligibilityCheckResponse(BaseModel):
    eligible: bool
    reasons: List[str] = []


# ============================================================
# APPLICATION SCHEMAS
# ============================================================

class ApplicationStatusUpdate(BaseModel):
    status: StaffDecision
    feedback: Optional[str] = None
    notes: Optional[str] = None


class InterviewScheduleRequest(BaseModel):
    date: datetime
    time: str = Field(..., min_length=1)
    venue: str = Field(..., min_length=1)
    type: InterviewType = InterviewType.offline
    link: Optional[str] = None
    instructions: Optional[str] = None


class TimelineStepOut(BaseModel):
    step: str
    date: datetime
    completed: bool
    notes: Optional[str] = None


class ApplicationResponse(BaseModel):
    application_id: int
    student_id: int
    drive_id: int
    company_id: int
    status: str
    feedback: str = ""
    notes: Optional[str] = None
    interview_schedule: Optional[Dict[str, Any]] = None
    timeline: List[TimelineStepOut] = []
    applied_at: datetime
    last_updated: datetime


class ApplicationListResponse(BaseModel):
    applications: List[ApplicationResponse]
    total: int
    page: int
    page_size: int


# ============================================================
# NOTIFICATION / CHAT SCHEMAS
# ============================================================

class NotificationResponse(BaseModel):
    id: str
    title: str
    message: str
    type: NotificationType
    priority: NotificationPriority
    read: bool
    action_url: Optional[str] = None
    related_entity: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    total: int
    unread_count: int
    page: int
    page_size: int


class NotificationIds(BaseModel):
    ids: List[str] = []


class ChatGroupResponse(BaseModel):
    id: str
    drive_id: int
    department: str
    name: str
    member_count: int
    unread_count: int = 0


# ============================================================
# GENERIC SCHEMAS
# ============================================================

class MessageResponse(BaseModel):
    message: str
    success: bool = True

class ErrorResponse(BaseModel):
    detail: str
    reasons: List[str] = []
