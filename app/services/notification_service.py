"""
Notification Service - materializes notification records in MongoDB.

Collection: notifications (one document per recipient)

Delivery (push, email, websockets) is NOT done here; a notification is
"sent" once its document exists.

FAN-OUT:
notify(event_type, payload) maps a domain event to its recipients and
content. Broadcasts ("new_drive" to every student) go through ONE
insert_many call, never one insert per recipient.

notify() never raises: a failed notification is logged and an empty list
is returned, so the business action that triggered it is unaffected.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import DESCENDING
from pymongo.collection import Collection

from app.core.config import get_settings
from app.core.exceptions import ValidationError
from app.db.mongodb import get_collection, COLLECTIONS
from app.db.postgres import execute_raw_sql
from app.models.models import Notification, NotificationPriority, NotificationType
from app.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

settings = get_settings()


# ============================================================
# EVENT CATALOG
# ============================================================

NEW_DRIVE = "new_drive"
APPLICATION_SUBMITTED = "application_submitted"
APPLICATION_SHORTLISTED = "application_shortlisted"
APPLICATION_SELECTED = "application_selected"
APPLICATION_REJECTED = "application_rejected"
INTERVIEW_SCHEDULED = "interview_scheduled"

# event -> (title, message template, type, priority)
APPLICATION_EVENTS = {
    APPLICATION_SUBMITTED: (
        "Application Submitted",
        "Your application for {position} at {company_name} has been submitted successfully.",
        NotificationType.success, NotificationPriority.medium,
    ),
    APPLICATION_SHORTLISTED: (
        "Application Shortlisted!",
        "Congratulations! Your application for {position} at {company_name} has been shortlisted.",
        NotificationType.success, NotificationPriority.high,
    ),
    APPLICATION_SELECTED: (
        "Application Selected!",
        "You have been selected for {position} at {company_name}!",
        NotificationType.success, NotificationPriority.high,
    ),
    APPLICATION_REJECTED: (
        "Application Update",
        "Your application for {position} at {company_name} was not selected.",
        NotificationType.info, NotificationPriority.medium,
    ),
    INTERVIEW_SCHEDULED: (
        "Interview Scheduled",
        "An interview has been scheduled for your application at {company_name}. "
        "Check your application details for more information.",
        NotificationType.warning, NotificationPriority.high,
    ),
}

# Application status -> event sent to the applicant
STATUS_EVENTS = {
    "shortlisted": APPLICATION_SHORTLISTED,
    "selected": APPLICATION_SELECTED,
    "rejected": APPLICATION_REJECTED,
}


def serialize_notification(doc: dict) -> Optional[Notification]:
    """Convert a MongoDB document to a Notification model."""
    if doc is None:
        return None
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return Notification(**doc)


class NotificationService:
    """
    Creates, lists and updates notification documents.
    """

    def __init__(self, collection: Collection = None):
        self.collection: Collection = collection if collection is not None else get_collection(
            COLLECTIONS["notifications"]
        )

    # ------------------------------------------------------------
    # Low-level writes
    # ------------------------------------------------------------

    def _document(self, data: Dict[str, Any]) -> dict:
        if not data.get("user"):
            raise ValueError("Notification requires an owning user")
        now = utcnow()
        notification = Notification(**data)
        doc = notification.model_dump(mode="python", exclude={"id"})
        doc["type"] = notification.type.value
        doc["priority"] = notification.priority.value
        doc["created_at"] = doc.get("created_at") or now
        doc["expires_at"] = doc.get("expires_at") or now + timedelta(days=settings.notification_expiry_days)
        return doc

    def create_notification(self, data: Dict[str, Any]) -> Notification:
        doc = self._document(data)
        result = self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return serialize_notification(doc)

    def create_bulk_notifications(self, items: List[Dict[str, Any]]) -> List[Notification]:
        """Insert many notifications with a single insert_many."""
        if not items:
            return []
        docs = [self._document(item) for item in items]
        result = self.collection.insert_many(docs)
        for doc, inserted_id in zip(docs, result.inserted_ids):
            doc["_id"] = inserted_id
        return [serialize_notification(d) for d in docs]

    # ------------------------------------------------------------
    # Domain events
    # ------------------------------------------------------------

    def create_application_notification(self, application_id: int, event_type: str,
                                        extra: Optional[dict] = None) -> Optional[Notification]:
        """Notify the applicant about an application event. Unknown events create nothing."""
        if event_type not in APPLICATION_EVENTS:
            return None

        rows = execute_raw_sql("""
            SELECT a.application_id, a.student_id, d.drive_id, d.position, d.company_name
            FROM applications a JOIN drives d ON a.drive_id = d.drive_id
            WHERE a.application_id = :aid
        """, {"aid": application_id})
        if not rows:
            return None
        r = rows[0]

        title, template, ntype, priority = APPLICATION_EVENTS[event_type]
        metadata = {
            "application_id": r["application_id"],
            "drive_id": r["drive_id"],
            "position": r["position"],
            "company_name": r["company_name"],
        }
        if extra:
            metadata.update({k: v for k, v in extra.items() if v is not None})

        return self.create_notification({
            "user": r["student_id"],
            "title": title,
            "message": template.format(position=r["position"], company_name=r["company_name"]),
            "type": ntype,
            "priority": priority,
            "action_url": f"/applications/{application_id}",
            "related_entity": {"type": "application", "id": application_id},
            "metadata": metadata,
        })

    def create_drive_notification(self, drive_id: int, event_type: str) -> List[Notification]:
        """Broadcast a new drive to all approved active students."""
        if event_type != NEW_DRIVE:
            return []

        rows = execute_raw_sql(
            "SELECT drive_id, position, company_name FROM drives WHERE drive_id = :did",
            {"did": drive_id},
        )
        if not rows:
            return []
        drive = rows[0]

        students = execute_raw_sql("""
            SELECT user_id FROM users
            WHERE role = 'student' AND is_active = :yes AND is_approved = :yes
            ORDER BY user_id
        """, {"yes": True})

        return self.create_bulk_notifications([
            {
                "user": s["user_id"],
                "title": "New Job Drive Available",
                "message": f"A new {drive['position']} position is available at {drive['company_name']}. Apply now!",
                "type": NotificationType.info,
                "priority": NotificationPriority.medium,
                "action_url": f"/drives/{drive_id}",
                "related_entity": {"type": "drive", "id": drive_id},
                "metadata": {"drive_id": drive_id, "position": drive["position"],
                             "company_name": drive["company_name"]},
            }
            for s in students
        ])

    def create_staff_drive_notification(self, drive_id: int) -> List[Notification]:
        """Tell active TPOs and admins that a drive was created."""
        rows = execute_raw_sql(
            "SELECT drive_id, position, company_name FROM drives WHERE drive_id = :did",
            {"did": drive_id},
        )
        if not rows:
            return []
        drive = rows[0]

        staff = execute_raw_sql("""
            SELECT user_id FROM users
            WHERE (role = 'tpo' AND is_active = :yes AND is_approved = :yes)
               OR (role = 'admin' AND is_active = :yes)
            ORDER BY user_id
        """, {"yes": True})

        return self.create_bulk_notifications([
            {
                "user": u["user_id"],
                "title": "New Drive Created",
                "message": f"A new drive \"{drive['position']}\" at {drive['company_name']} has been created.",
                "type": NotificationType.info,
                "priority": NotificationPriority.medium,
                "action_url": f"/drives/{drive_id}",
                "related_entity": {"type": "drive", "id": drive_id},
            }
            for u in staff
        ])

    def notify(self, event_type: str, payload: Dict[str, Any]) -> List[Notification]:
        """
        Materialize the notifications for one domain event.

        payload carries "drive_id" for new_drive and "application_id" (plus
        optional "extra") for application events. Never raises.
        """
        try:
            if event_type == NEW_DRIVE:
                drive_id = payload["drive_id"]
                created = self.create_drive_notification(drive_id, NEW_DRIVE)
                created += self.create_staff_drive_notification(drive_id)
                return created
            if event_type in APPLICATION_EVENTS:
                created = self.create_application_notification(
                    payload["application_id"], event_type, payload.get("extra")
                )
                return [created] if created else []
            logger.warning("Unknown notification event '%s'", event_type)
            return []
        except Exception:
            logger.exception("Failed to create '%s' notifications for %s", event_type, payload)
            return []

    # ------------------------------------------------------------
    # Inbox
    # ------------------------------------------------------------

    def get_user_notifications(self, user_id: int, page: int = 1, page_size: int = 20,
                               read: Optional[bool] = None) -> dict:
        query = {"user": user_id}
        if read is not None:
            query["read"] = read

        cursor = (
            self.collection.find(query)
            .sort("created_at", DESCENDING)
            .skip((page - 1) * page_size)
            .limit(page_size)
        )
        return {
            "notifications": [serialize_notification(d) for d in cursor],
            "total": self.collection.count_documents(query),
            "unread_count": self.collection.count_documents({"user": user_id, "read": False}),
        }

    def _owned(self, user_id: int, ids: Optional[List[str]]) -> dict:
        query = {"user": user_id}
        if ids:
            try:
                query["_id"] = {"$in": [ObjectId(i) for i in ids]}
            except InvalidId as exc:
                raise ValidationError("Invalid notification id") from exc
        return query

    def mark_as_read(self, user_id: int, ids: Optional[List[str]] = None) -> int:
        """Mark the given (or all) notifications of a user as read."""
        result = self.collection.update_many(self._owned(user_id, ids), {"$set": {"read": True}})
        return result.modified_count

    def delete_notifications(self, user_id: int, ids: Optional[List[str]] = None) -> int:
        result = self.collection.delete_many(self._owned(user_id, ids))
        return result.deleted_count
