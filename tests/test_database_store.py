"""
Tests for database_store.py against the throwaway SQLite database.
"""
import pytest
from sqlalchemy.exc import IntegrityError

import database_store as data_store
from app import db
from conftest import make_bus


def test_create_and_find_user(app):
    with app.app_context():
        created = data_store.create_user("21CS001", "student", "secret-pass", name="Asha")
        assert created["role"] == "student"
        assert created["name"] == "Asha"

        user = data_store.get_user_by_identifier("21CS001", "student")
        assert user.check_password("secret-pass")
        assert data_store.get_user_by_identifier("21CS001", "driver") is None


def test_create_user_rejects_unknown_role(app):
    with app.app_context():
        with pytest.raises(ValueError):
            data_store.create_user("x", "parent", "secret-pass")


def test_duplicate_account_rolls_back(app):
    with app.app_context():
        data_store.create_user("21CS001", "student", "secret-pass")
        with pytest.raises(IntegrityError):
            data_store.create_user("21CS001", "student", "other-pass")

        # the session is usable again after the failed insert
        assert [u["identifier"] for u in data_store.get_users_by_role("student")] == ["21CS001"]
        assert data_store.get_user_by_identifier("21CS001", "student").check_password("secret-pass")


def test_upsert_user_creates_then_resets(app):
    with app.app_context():
        user, created = data_store.upsert_user("D1", "driver", "first-pass", name="Ravi")
        assert created
        assert user["name"] == "Ravi"

        user, created = data_store.upsert_user("D1", "driver", "second-pass")
        assert not created
        assert user["name"] == "Ravi"
        assert data_store.get_user_by_identifier("D1", "driver").check_password("second-pass")


def test_set_user_password(app):
    with app.app_context():
        user = data_store.create_user("D1", "driver", "old-pass")
        assert data_store.set_user_password(user["id"], "new-pass")
        assert data_store.get_user_by_identifier("D1", "driver").check_password("new-pass")
        assert not data_store.set_user_password(9999, "whatever")


def test_notification_lifecycle(app):
    with app.app_context():
        user = data_store.create_user("21CS001", "student", "secret-pass")
        first = data_store.send_notification(user["id"], "Bus delayed", "Running 10 minutes late", type="warning")
        data_store.send_notification(user["id"], "Trip started", "Your bus has left")

        notifications = data_store.get_notifications_for_user(user["id"])
        assert [n["title"] for n in notifications] == ["Trip started", "Bus delayed"]
        assert data_store.get_unread_count(user["id"]) == 2

        assert data_store.mark_as_read(first["id"], user["id"])
        assert data_store.get_unread_count(user["id"]) == 1
        assert data_store.mark_all_as_read(user["id"]) == 1
        assert data_store.get_unread_count(user["id"]) == 0

        assert data_store.clear_notifications(user["id"]) == 2
        assert data_store.get_notifications_for_user(user["id"]) == []


def test_mark_as_read_only_for_owner(app):
    with app.app_context():
        owner = data_store.create_user("21CS001", "student", "secret-pass")
        other = data_store.create_user("21CS002", "student", "secret-pass")
        notification = data_store.send_notification(owner["id"], "Hello", "Hi")
        assert not data_store.mark_as_read(notification["id"], other["id"])


def test_send_notification_rejects_unknown_type(app):
    with app.app_context():
        user = data_store.create_user("21CS001", "student", "secret-pass")
        with pytest.raises(ValueError):
            data_store.send_notification(user["id"], "Hello", "Hi", type="urgent")


def test_notify_role_reaches_every_admin(app):
    with app.app_context():
        data_store.create_user("second@pec.edu", "admin", "secret-pass")
        data_store.create_user("21CS001", "student", "secret-pass")
        assert data_store.notify_role("admin", "Emergency", "Breakdown on B1", type="error") == 2
        for admin in data_store.get_users_by_role("admin"):
            assert data_store.get_unread_count(admin["id"]) == 1


def test_trip_transitions(app):
    with app.app_context():
        assert data_store.get_trip_status("D1") == "idle"
        with pytest.raises(data_store.TripStateError):
            data_store.end_trip("D1")

        assert data_store.start_trip("D1", bus_no="B1") == "started"
        with pytest.raises(data_store.TripStateError):
            data_store.start_trip("D1")

        assert data_store.end_trip("D1") == "completed"
        assert data_store.get_trip_status("D1") == "completed"
        assert data_store.start_trip("D1") == "started"
        assert data_store.get_trip_status("D2") == "idle"


def test_latest_bus_status_wins(app):
    with app.app_context():
        data_store.update_bus_status("B1", "Breakdown", reported_by="D1")
        data_store.update_bus_status("B1", "Maintenance", reported_by="D1")
        data_store.update_bus_status("B2", "Running", reported_by="D2")
        assert data_store.get_bus_status_overrides() == {"B1": "Maintenance", "B2": "Running"}

        buses = data_store.apply_bus_status_overrides([make_bus("B1"), make_bus("B3", status="Stopped")])
        assert [bus.status for bus in buses] == ["Maintenance", "Stopped"]


def test_update_bus_status_rejects_unknown_status(app):
    with app.app_context():
        with pytest.raises(ValueError):
            data_store.update_bus_status("B1", "Flying")


def test_feedback_is_listed_newest_first(app):
    with app.app_context():
        data_store.create_feedback("21CS001", "Bus was on time", bus_no="B1")
        data_store.create_feedback("21CS002", "Seats are broken")
        feedback = data_store.get_all_feedback()
        assert [f["roll_number"] for f in feedback] == ["21CS002", "21CS001"]
        assert feedback[0]["bus_no"] == ""


def test_notify_role_is_all_or_nothing(app, monkeypatch):
    with app.app_context():
        data_store.create_user("second@pec.edu", "admin", "secret-pass")

        def failing_commit():
            raise RuntimeError("disk full")

        monkeypatch.setattr(db.session, "commit", failing_commit)
        with pytest.raises(RuntimeError):
            data_store.notify_role("admin", "Emergency", "Breakdown on B1", type="error")
        monkeypatch.undo()

        for admin in data_store.get_users_by_role("admin"):
            assert data_store.get_notifications_for_user(admin["id"]) == []


def test_notify_role_rejects_unknown_type_before_writing(app):
    with app.app_context():
        with pytest.raises(ValueError):
            data_store.notify_role("admin", "Hello", "Hi", type="urgent")
        admin = data_store.get_users_by_role("admin")[0]
        assert data_store.get_unread_count(admin["id"]) == 0
