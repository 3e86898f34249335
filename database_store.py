"""
Database-backed store for the bus dashboard.
CRUD helpers for accounts, notifications, driver trips, reported bus
status and student feedback. Remote sheet data is never stored here.
"""

from app import db
from models import (User, Notification, TripLog, BusStatusUpdate, Feedback,
                    ROLES, NOTIFICATION_TYPES, TRIP_STARTED, TRIP_COMPLETED)
from records import BUS_STATUSES
from dataclasses import replace
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

TRIP_IDLE = 'idle'


class TripStateError(Exception):
    """Raised for a trip transition that is not allowed"""


def _user_to_dict(user):
    return {
        'id': user.id,
        'identifier': user.identifier,
        'role': user.role,
        'name': user.display_name,
        'active': user.active
    }

def _commit(action):
    """Commit the session, rolling back if the write fails"""
    try:
        db.session.commit()
    except Exception as e:
        logger.error(f"Error {action}: {e}")
        db.session.rollback()
        raise

# Database operations for users
def create_user(identifier, role, password, name=None):
    """Create a login account"""
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")
    user = User(identifier=identifier, role=role, name=name)
    user.set_password(password)
    db.session.add(user)
    _commit(f"creating {role} account {identifier}")
    logger.info(f"Created {role} account: {identifier}")
    return _user_to_dict(user)

def get_user_by_identifier(identifier, role):
    """Get the account for an identifier within a role"""
    return User.query.filter_by(identifier=identifier, role=role).first()

def set_user_password(user_id, password):
    """Reset a user's password"""
    user = db.session.get(User, user_id)
    if user:
        user.set_password(password)
        _commit(f"updating password for user {user_id}")
        logger.info(f"Password updated for user {user_id}")
        return True
    return False

def upsert_user(identifier, role, password, name=None):
    """Create the account, or reactivate it and reset its password.
    Returns (user dict, created)"""
    user = get_user_by_identifier(identifier, role)
    if user is None:
        return create_user(identifier, role, password, name=name), True

    if name:
        user.name = name
    user.active = True
    set_user_password(user.id, password)
    return _user_to_dict(user), False

def get_users_by_role(role):
    """Get all active accounts for a role"""
    users = User.query.filter_by(role=role, active=True).order_by(User.id).all()
    return [_user_to_dict(user) for user in users]

# Database operations for notifications
def _notification_to_dict(notification):
    return {
        'id': notification.id,
        'title': notification.title,
        'message': notification.message,
        'type': notification.type,
        'is_read': notification.is_read,
        'action_url': notification.action_url,
        'created_at': notification.created_at.isoformat() if notification.created_at else None
    }

def _add_notification(user_id, title, message, type, action_url):
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {type}")
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
        action_url=action_url,
        is_read=False
    )
    db.session.add(notification)
    return notification

def send_notification(user_id, title, message, type='info', action_url=None):
    """Create an unread notification for one user"""
    notification = _add_notification(user_id, title, message, type, action_url)
    _commit(f"sending notification to user {user_id}")
    logger.info(f"Sent notification '{title}' to user {user_id}")
    return _notification_to_dict(notification)

def notify_role(role, title, message, type='info', action_url=None):
    """Send the same notification to every active user with a role.
    Every recipient is written in one commit."""
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {type}")
    recipients = get_users_by_role(role)
    for user in recipients:
        _add_notification(user['id'], title, message, type, action_url)
    _commit(f"notifying {role} accounts")
    logger.info(f"Sent notification '{title}' to {len(recipients)} {role} accounts")
    return len(recipients)

def get_notifications_for_user(user_id):
    """Get a user's notifications, newest first"""
    notifications = (Notification.query.filter_by(user_id=user_id)
                     .order_by(Notification.created_at.desc(), Notification.id.desc()).all())
    return [_notification_to_dict(n) for n in notifications]

def get_unread_count(user_id):
    return Notification.query.filter_by(user_id=user_id, is_read=False).count()

def mark_as_read(notification_id, user_id):
    """Mark one of the user's notifications as read"""
    notification = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
    if notification:
        notification.is_read = True
        _commit(f"marking notification {notification_id} as read")
        return True
    return False

def mark_all_as_read(user_id):
    """Mark every unread notification of a user as read"""
    updated = Notification.query.filter_by(user_id=user_id, is_read=False).update({'is_read': True})
    _commit(f"marking notifications read for user {user_id}")
    return updated

def clear_notifications(user_id):
    """Delete all of a user's notifications"""
    deleted = Notification.query.filter_by(user_id=user_id).delete()
    _commit(f"clearing notifications for user {user_id}")
    logger.info(f"Cleared {deleted} notifications for user {user_id}")
    return deleted

# Database operations for driver trips
def _current_trip(driver_id):
    return (TripLog.query.filter_by(driver_id=driver_id)
            .order_by(TripLog.id.desc()).first())

def get_trip_status(driver_id):
    """idle, started or completed - from the driver's latest trip"""
    trip = _current_trip(driver_id)
    if not trip:
        return TRIP_IDLE
    return trip.status

def start_trip(driver_id, bus_no=None):
    """Start a trip; a driver cannot have two trips running"""
    if get_trip_status(driver_id) == TRIP_STARTED:
        raise TripStateError('Trip already started')
    trip = TripLog(driver_id=driver_id, bus_no=bus_no, status=TRIP_STARTED, started_at=datetime.now())
    db.session.add(trip)
    _commit(f"starting trip for driver {driver_id}")
    logger.info(f"Trip started by driver {driver_id} on bus {bus_no}")
    return TRIP_STARTED

def end_trip(driver_id):
    """Complete the running trip"""
    trip = _current_trip(driver_id)
    if not trip or trip.status != TRIP_STARTED:
        raise TripStateError('No trip in progress')
    trip.status = TRIP_COMPLETED
    trip.ended_at = datetime.now()
    _commit(f"ending trip for driver {driver_id}")
    logger.info(f"Trip completed by driver {driver_id}")
    return TRIP_COMPLETED

# Database operations for reported bus status
def update_bus_status(bus_no, status, reported_by=None):
    """Record a driver-reported bus status"""
    if status not in BUS_STATUSES:
        raise ValueError(f"Invalid bus status: {status}")
    update = BusStatusUpdate(bus_no=bus_no, status=status, reported_by=reported_by)
    db.session.add(update)
    _commit(f"updating status of bus {bus_no}")
    logger.info(f"Bus {bus_no} status updated to {status} by {reported_by}")
    return status

def get_bus_status_overrides():
    """Latest reported status per bus number"""
    overrides = {}
    for update in BusStatusUpdate.query.order_by(BusStatusUpdate.id).all():
        overrides[update.bus_no] = update.status
    return overrides

def apply_bus_status_overrides(buses):
    """Return buses with the latest reported status in place of the sheet status"""
    overrides = get_bus_status_overrides()
    return [replace(bus, status=overrides[bus.bus_id]) if bus.bus_id in overrides else bus
            for bus in buses]

# Database operations for feedback
def create_feedback(roll_number, message, bus_no=None):
    feedback = Feedback(roll_number=roll_number, bus_no=bus_no, message=message)
    db.session.add(feedback)
    _commit(f"saving feedback from {roll_number}")
    logger.info(f"Feedback recorded from student {roll_number}")
    return feedback.id

def get_all_feedback():
    """All feedback, newest first"""
    entries = Feedback.query.order_by(Feedback.created_at.desc(), Feedback.id.desc()).all()
    return [{
        'id': entry.id,
        'roll_number': entry.roll_number,
        'bus_no': entry.bus_no or '',
        'message': entry.message,
        'created_at': entry.created_at.isoformat() if entry.created_at else None
    } for entry in entries]
