"""
Domain Models - internal data structures passed between services.

Rows coming out of PostgreSQL / documents out of MongoDB are converted to
these models at the repository seam, so services never touch raw rows.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union

from pydantic import BaseModel, Field


# ============================================================
# ENUMS
# ============================================================

class UserRole(str, Enum):
    student = "student"
    company = "company"
    tpo = "tpo"
    admin = "admin"


STAFF_ROLES = {UserRole.company.value, UserRole.tpo.value, UserRole.admin.value}


class DriveStatus(str, Enum):
    draft = "draft"
    active = "active"
    closed = "closed"
    cancelled = "cancelled"


class ApplicantStatus(str, Enum):
    pending = "pending"
    shortlisted = "shortlisted"
    rejected = "rejected"
    selected = "selected"


class ApplicationStatus(str, Enum):
    pending = "pending"
    applied = "applied"
    shortlisted = "shortlisted"
    rejected = "rejected"
    selected = "selected"
    withdrawn = "withdrawn"


class NotificationType(str, Enum):
    info = "info"
    success = "success"
    warning = "warning"
    error = "error"


class NotificationPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class InterviewType(str, Enum):
    online = "online"
    offline = "offline"


# ============================================================
# ACTORS
# ============================================================

class Actor(BaseModel):
    """Caller identity attached by the auth layer."""
    user_id: int
    role: str


class StudentSnapshot(BaseModel):
    """Read-only view of a student used by the eligibility rules."""
    student_id: Optional[int] = None
    role: str = UserRole.student.value
    cgpa: Optional[float] = None
    backlogs: int = 0
    year: Union[int, str, None] = None
    branch: Optional[str] = None


# ============================================================
# DRIVE
# ============================================================

class Eligibility(BaseModel):
    min_cgpa: float = Field(0, ge=0, le=10)
    allowed_branches: Set[str] = Field(default_factory=set)
    max_backlogs: int = Field(0, ge=0)
    min_year: int = Field(1, ge=1, le=4)


class ApplicantEntry(BaseModel):
    student_id: int
    applied_at: datetime
    status: ApplicantStatus = ApplicantStatus.pending


class Drive(BaseModel):
    drive_id: int
    company_name: str
    position: str
    description: str
    ctc: str
    location: str
    job_type: str = "Full-time"
    work_mode: str = "On-site"
    requirements: List[str] = []
    external_application_url: Optional[str] = None
    deadline: datetime
    eligibility: Eligibility
    status: DriveStatus
    is_visible: bool = True
    priority: str = "medium"
    applicants: List[ApplicantEntry] = []
    shortlisted_count: int = 0
    selected_count: int = 0
    posted_by: int
    posted_by_role: str
    created_at: datetime
    updated_at: datetime

    @property
    def application_count(self) -> int:
        return len(self.applicants)


# ============================================================
# APPLICATION
# ============================================================

class TimelineStep(BaseModel):
    step: str
    date: datetime
    completed: bool = False
    notes: Optional[str] = None


class InterviewSchedule(BaseModel):
    date: datetime
    time: str
    venue: str
    type: InterviewType = InterviewType.offline
    link: Optional[str] = None
    instructions: Optional[str] = None


class Application(BaseModel):
    application_id: int
    student_id: int
    drive_id: int
    company_id: int
    status: ApplicationStatus
    feedback: str = ""
    notes: Optional[str] = None
    interview_schedule: Optional[InterviewSchedule] = None
    timeline: List[TimelineStep] = []
    applied_at: datetime
    last_updated: datetime
    updated_by: Optional[int] = None

    def step(self, name: str) -> Optional[TimelineStep]:
        for entry in self.timeline:
            if entry.step == name:
                return entry
        return None


# ============================================================
# NOTIFICATION / CHAT (MongoDB documents)
# ============================================================

class RelatedEntity(BaseModel):
    type: str
    id: Optional[int] = None


class Notification(BaseModel):
    id: Optional[str] = None
    user: int
    title: str
    message: str
    type: NotificationType = NotificationType.info
    priority: NotificationPriority = NotificationPriority.low
    read: bool = False
    action_url: Optional[str] = None
    related_entity: Optional[RelatedEntity] = None
    metadata: Dict[str, Any] = {}
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ChatMember(BaseModel):
    user: int
    joined_at: datetime
    last_read_at: Optional[datetime] = None
    unread_count: int = 0


class ChatGroup(BaseModel):
    id: Optional[str] = None
    drive_id: int
    department: str
    name: str
    members: List[ChatMember] = []
    created_by: int
    created_at: Optional[datetime] = None

    def is_member(self, user_id: int) -> bool:
        return any(m.user == user_id for m in self.members)
