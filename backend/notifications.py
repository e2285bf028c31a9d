# Notification Sink
#
# Notifications live inside the recipient's user document. They are read
# by clients only and play no part in access decisions.

import datetime
import logging
from datetime import timezone
from typing import Optional, List

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.database import Database

from errors import ValidationFailedError

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """The notification record could not be delivered"""


def build_notification(message: str, related_project_id: Optional[str] = None) -> dict:
    return {
        "message": message,
        "read": False,
        "timestamp": datetime.datetime.now(timezone.utc),
        "relatedProjectId": related_project_id,
    }


def notify(db: Database, user_id: str, message: str, related_project_id: Optional[str] = None) -> dict:
    """Appends a notification to a user's profile."""
    try:
        user_obj_id = ObjectId(str(user_id))
    except InvalidId:
        raise NotificationError(f"Invalid recipient id {user_id!r}")

    notification = build_notification(message, related_project_id)
    result = db.users.update_one({"_id": user_obj_id}, {"$push": {"notifications": notification}})
    if result.matched_count == 0:
        raise NotificationError(f"Recipient {user_id} not found")

    logger.debug("Notification delivered to %s", user_id)
    return notification


def list_notifications(profile: dict) -> List[dict]:
    """Newest first. Each item keeps its stored index for mark_read."""
    indexed = [dict(n, index=i) for i, n in enumerate(profile.get("notifications") or [])]
    epoch = datetime.datetime.min.replace(tzinfo=timezone.utc)

    def _key(n):
        ts = n.get("timestamp") or epoch
        # Stored timestamps may come back naive from the driver
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts

    return sorted(indexed, key=_key, reverse=True)


def count_unread(profile: dict) -> int:
    return sum(1 for n in (profile.get("notifications") or []) if not n.get("read"))


def mark_read(db: Database, profile: dict, index: int) -> dict:
    """Marks the notification at its stored index as read."""
    notifications = profile.get("notifications") or []
    if index < 0 or index >= len(notifications):
        raise ValidationFailedError("Notification not found.")

    db.users.update_one(
        {"_id": ObjectId(str(profile["_id"]))},
        {"$set": {f"notifications.{index}.read": True}},
    )
    notification = dict(notifications[index])
    notification["read"] = True
    return notification
