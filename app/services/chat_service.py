"""
Chat Enrollment Service - drive chat groups in MongoDB.

Collection: chat_groups
- One group per (drive_id, department), enforced by a unique index
- department is a branch code or "All"
- members are embedded: {user, joined_at, last_read_at, unread_count}

Messaging itself lives elsewhere; this service only provisions groups and
manages membership.
"""

import logging
from typing import List, Optional

from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from app.db.mongodb import get_collection, COLLECTIONS
from app.models.models import ChatGroup, Drive
from app.services.branches import ALL_BRANCHES, normalize_branch
from app.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


def serialize_group(doc: dict) -> Optional[ChatGroup]:
    """Convert a MongoDB document to a ChatGroup model."""
    if doc is None:
        return None
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return ChatGroup(**doc)


def _member(user_id: int, last_read_at=None) -> dict:
    return {"user": user_id, "joined_at": utcnow(), "last_read_at": last_read_at, "unread_count": 0}


class ChatEnrollmentService:

    def __init__(self, collection: Collection = None):
        self.collection: Collection = collection if collection is not None else get_collection(
            COLLECTIONS["chat_groups"]
        )

    def create_groups_for_drive(self, drive: Drive, creator_id: int) -> List[ChatGroup]:
        """
        Create one group per allowed branch (or a single "All" group) with
        the creator as first member.

        A group that already exists is skipped silently; any other database
        error propagates.
        """
        branches = sorted(drive.eligibility.allowed_branches) or [ALL_BRANCHES]
        groups = []
        for branch in branches:
            now = utcnow()
            doc = {
                "drive_id": drive.drive_id,
                "department": branch,
                "name": f"{branch} {drive.company_name} {drive.position}",
                "members": [_member(creator_id, last_read_at=now)],
                "created_by": creator_id,
                "created_at": now,
            }
            try:
                result = self.collection.insert_one(doc)
            except DuplicateKeyError:
                logger.debug("Chat group %s/%s already exists", drive.drive_id, branch)
                continue
            doc["_id"] = result.inserted_id
            groups.append(serialize_group(doc))

        logger.info("Created %d chat groups for drive %s", len(groups), drive.drive_id)
        return groups

    def find_group_for(self, drive_id: int, branch: Optional[str]) -> Optional[dict]:
        """The branch-specific group of a drive, else its "All" group."""
        department = normalize_branch(branch)
        group = None
        if department:
            group = self.collection.find_one({"drive_id": drive_id, "department": department})
        if group is None:
            group = self.collection.find_one({"drive_id": drive_id, "department": ALL_BRANCHES})
        return group

    def add_student_to_group(self, drive_id: int, student_id: int, branch: Optional[str]) -> Optional[ChatGroup]:
        """
        Enroll a student into the matching group of a drive.

        The $push only applies when the student is not already a member, so
        repeated or concurrent calls leave exactly one membership entry.
        Returns None when the drive has no matching group.
        """
        group = self.find_group_for(drive_id, branch)
        if group is None:
            return None

        self.collection.update_one(
            {"_id": group["_id"], "members.user": {"$ne": student_id}},
            {"$push": {"members": _member(student_id)}},
        )
        return serialize_group(self.collection.find_one({"_id": group["_id"]}))

    def get_user_groups(self, user_id: int) -> List[ChatGroup]:
        cursor = self.collection.find({"members.user": user_id}).sort("created_at", -1)
        return [serialize_group(d) for d in cursor]

    def mark_as_read(self, drive_id: int, department: str, user_id: int) -> Optional[ChatGroup]:
        result = self.collection.update_one(
            {"drive_id": drive_id, "department": department, "members.user": user_id},
            {"$set": {"members.$.unread_count": 0, "members.$.last_read_at": utcnow()}},
        )
        if result.matched_count == 0:
            return None
        return serialize_group(self.collection.find_one({"drive_id": drive_id, "department": department}))
