from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash

from app import db
from flask_login import UserMixin

ROLE_STUDENT = 'student'
ROLE_DRIVER = 'driver'
ROLE_ADMIN = 'admin'
ROLES = (ROLE_STUDENT, ROLE_DRIVER, ROLE_ADMIN)

NOTIFICATION_TYPES = ('info', 'warning', 'success', 'error')

TRIP_STARTED = 'started'
TRIP_COMPLETED = 'completed'


class User(UserMixin, db.Model):
    __tablename__ = 'users'
    __table_args__ = (db.UniqueConstraint('role', 'identifier', name='uq_users_role_identifier'),)
    id = db.Column(db.Integer, primary_key=True)
    identifier = db.Column(db.String(120), nullable=False)  # roll no, driver id or admin email
    role = db.Column(db.String(20), nullable=False)  # student, driver or admin
    name = db.Column(db.String(120))
    password_hash = db.Column(db.String(256), nullable=False)
    active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    def set_password(self, password):
        """Set password hash"""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        """Check if provided password matches hash"""
        return check_password_hash(self.password_hash, password)

    @property
    def is_active(self):
        """Override UserMixin is_active property"""
        return self.active

    @property
    def display_name(self):
        return self.name or f"{self.role.capitalize()} {self.identifier}"

    def __repr__(self):
        return f'<User {self.role}:{self.identifier}>'

# In-app notifications
class Notification(db.Model):
    __tablename__ = 'notifications'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey(User.id), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(20), default='info')  # info, warning, success, error
    is_read = db.Column(db.Boolean, default=False)
    action_url = db.Column(db.String(500))

    created_at = db.Column(db.DateTime, default=datetime.now)

    user = db.relationship(User, backref=db.backref('notifications', cascade='all, delete-orphan'))

# Driver trips - at most one 'started' trip per driver
class TripLog(db.Model):
    __tablename__ = 'trip_logs'
    id = db.Column(db.Integer, primary_key=True)
    driver_id = db.Column(db.String(50), nullable=False, index=True)
    bus_no = db.Column(db.String(50))
    status = db.Column(db.String(20), default=TRIP_STARTED)  # started, completed
    started_at = db.Column(db.DateTime, default=datetime.now)
    ended_at = db.Column(db.DateTime)

# Bus status reported by drivers, latest wins over the sheet value
class BusStatusUpdate(db.Model):
    __tablename__ = 'bus_status_updates'
    id = db.Column(db.Integer, primary_key=True)
    bus_no = db.Column(db.String(50), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False)  # Running, Stopped, Breakdown, Maintenance
    reported_by = db.Column(db.String(50))

    created_at = db.Column(db.DateTime, default=datetime.now)

class Feedback(db.Model):
    __tablename__ = 'feedback'
    id = db.Column(db.Integer, primary_key=True)
    roll_number = db.Column(db.String(50), nullable=False)
    bus_no = db.Column(db.String(50))
    message = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.now)
