"""
Notification & Chat Routes

GET    /notifications        - Current user's notifications (paginated)
PATCH  /notifications/read   - Mark given (or all) notifications read
DELETE /notifications        - Delete given (or all) notifications
GET    /chat/groups          - Drive chat groups the user belongs to
PATCH  /chat/groups/{drive_id}/{department}/read - Reset unread counter
"""

from fastapi import APIRouter, Depends, Query
from typing import List, Optional

from app.core.auth import get_current_user
from app.core.exceptions import NotFoundError
from app.schemas.schemas import (
    NotificationResponse, NotificationListResponse, NotificationIds, ChatGroupResponse, MessageResponse,
)
from app.services.chat_service import ChatEnrollmentService
from app.services.notification_service import NotificationService

router = APIRouter(tags=["Notifications"])


def get_notification_service() -> NotificationService:
    return NotificationService()


def get_chat_service() -> ChatEnrollmentService:
    return ChatEnrollmentService()


@router.get("/notifications", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    read: Optional[bool] = Query(None),
    user: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    result = service.get_user_notifications(user["user_id"], page, page_size, read)
    return NotificationListResponse(
        notifications=[
            NotificationResponse(
                id=n.id, title=n.title, message=n.message, type=n.type, priority=n.priority,
                read=n.read, action_url=n.action_url,
                related_entity=n.related_entity.model_dump() if n.related_entity else None,
                created_at=n.created_at, expires_at=n.expires_at,
            )
            for n in result["notifications"]
        ],
        total=result["total"], unread_count=result["unread_count"], page=page, page_size=page_size,
    )


@router.patch("/notifications/read", response_model=MessageResponse)
async def mark_notifications_read(
    data: NotificationIds,
    user: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    count = service.mark_as_read(user["user_id"], data.ids)
    return MessageResponse(message=f"{count} notifications marked as read")


@router.delete("/notifications", response_model=MessageResponse)
async def delete_notifications(
    data: NotificationIds,
    user: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    count = service.delete_notifications(user["user_id"], data.ids)
    return MessageResponse(message=f"{count} notifications deleted")


@router.get("/chat/groups", response_model=List[ChatGroupResponse], tags=["Chat"])
async def my_chat_groups(
    user: dict = Depends(get_current_user),
    service: ChatEnrollmentService = Depends(get_chat_service),
):
    groups = service.get_user_groups(user["user_id"])
    return [
        ChatGroupResponse(
            id=g.id, drive_id=g.drive_id, department=g.department, name=g.name,
            member_count=len(g.members),
            unread_count=next((m.unread_count for m in g.members if m.user == user["user_id"]), 0),
        )
        for g in groups
    ]


@router.patch("/chat/groups/{drive_id}/{department}/read", response_model=ChatGroupResponse, tags=["Chat"])
async def mark_chat_group_read(
    drive_id: int,
    department: str,
    user: dict = Depends(get_current_user),
    service: ChatEnrollmentService = Depends(get_chat_service),
):
    """Reset the caller's unread counter in one drive group."""
    group = service.mark_as_read(drive_id, department, user["user_id"])
    if group is None:
        raise NotFoundError("Chat group not found")
    return ChatGroupResponse(
        id=group.id, drive_id=group.drive_id, department=group.department, name=group.name,
        member_count=len(group.members), unread_count=0,
    )
