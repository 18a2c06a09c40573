"""
Models module - Pydantic models for internal data.

Difference from schemas:
- Models: what services pass to each other (Drive, Application, ...)
- Schemas: API contract (what client sends/receives)
"""

from app.models.models import (
    Actor, ApplicantEntry, ApplicantStatus, Application, ApplicationStatus,
    ChatGroup, ChatMember, Drive, DriveStatus, Eligibility, InterviewSchedule,
    InterviewType, Notification, NotificationPriority, NotificationType,
    RelatedEntity, StudentSnapshot, TimelineStep, UserRole, STAFF_ROLES,
)

__all__ = [
    "Actor", "ApplicantEntry", "ApplicantStatus", "Application", "ApplicationStatus",
    "ChatGroup", "ChatMember", "Drive", "DriveStatus", "Eligibility", "InterviewSchedule",
    "InterviewType", "Notification", "NotificationPriority", "NotificationType",
    "RelatedEntity", "StudentSnapshot", "TimelineStep", "UserRole", "STAFF_ROLES",
]
