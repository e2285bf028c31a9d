"""
Unit Tests for the notification sink
"""
import datetime
from datetime import timezone

import pytest
from bson import ObjectId

import notifications
from errors import ValidationFailedError
from identity import resolve_profile


class TestNotify:
    """Test delivering notifications"""

    def test_appends_unread_record(self, mongo_db, student):
        notifications.notify(mongo_db, student["_id"], "Assigned to project", "p-1")

        stored = resolve_profile(mongo_db, student["_id"])["notifications"]
        assert len(stored) == 1
        assert stored[0]["message"] == "Assigned to project"
        assert stored[0]["read"] is False
        assert stored[0]["relatedProjectId"] == "p-1"

    def test_unknown_recipient(self, mongo_db):
        with pytest.raises(notifications.NotificationError):
            notifications.notify(mongo_db, str(ObjectId()), "hello")

    def test_malformed_recipient(self, mongo_db):
        with pytest.raises(notifications.NotificationError):
            notifications.notify(mongo_db, "nobody", "hello")


class TestReadingNotifications:
    """Test listing, counting and marking as read"""

    @pytest.fixture
    def inbox_owner(self, insert_user):
        base = datetime.datetime(2024, 3, 1, tzinfo=timezone.utc)
        return insert_user("student", notifications=[
            {"message": "first", "read": True, "timestamp": base},
            {"message": "second", "read": False, "timestamp": base + datetime.timedelta(days=1)},
            {"message": "third", "read": False, "timestamp": base + datetime.timedelta(days=2)},
        ])

    def test_newest_first_with_stored_index(self, inbox_owner):
        listed = notifications.list_notifications(inbox_owner)
        assert [n["message"] for n in listed] == ["third", "second", "first"]
        assert [n["index"] for n in listed] == [2, 1, 0]

    def test_naive_timestamps_sort(self):
        profile = {"notifications": [
            {"message": "old", "timestamp": datetime.datetime(2024, 1, 1)},
            {"message": "new", "timestamp": datetime.datetime(2024, 2, 1, tzinfo=timezone.utc)},
        ]}
        assert [n["message"] for n in notifications.list_notifications(profile)] == ["new", "old"]

    def test_count_unread(self, inbox_owner):
        assert notifications.count_unread(inbox_owner) == 2
        assert notifications.count_unread({"notifications": None}) == 0

    def test_mark_read(self, mongo_db, inbox_owner):
        marked = notifications.mark_read(mongo_db, inbox_owner, 1)
        assert marked["read"] is True

        stored = resolve_profile(mongo_db, inbox_owner["_id"])
        assert [n["read"] for n in stored["notifications"]] == [True, True, False]

    @pytest.mark.parametrize("index", [-1, 3])
    def test_mark_read_out_of_range(self, mongo_db, inbox_owner, index):
        with pytest.raises(ValidationFailedError):
            notifications.mark_read(mongo_db, inbox_owner, index)
