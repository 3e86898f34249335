"""
Shared fixtures for the bus dashboard tests.

The app reads its database URI at import, so a throwaway SQLite file is
configured before anything imports it. Sheet providers are replaced with
in-memory rosters; no test touches the network.
"""
import os
import sys
import tempfile

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

_db_dir = tempfile.mkdtemp(prefix="pec-bus-tests-")
os.environ["SQLALCHEMY_DATABASE_URI"] = "sqlite:///" + os.path.join(_db_dir, "test.db")
os.environ.setdefault("SESSION_SECRET", "test-secret")

import pytest

from app import app as flask_app, db, ensure_default_admin
import routes  # noqa: F401  registers the views
import database_store
import sheet_api
from records import Student, Bus, Driver, Route

ADMIN_EMAIL = flask_app.config["DEFAULT_ADMIN_EMAIL"]
ADMIN_PASSWORD = flask_app.config["DEFAULT_ADMIN_PASSWORD"]
USER_PASSWORD = "secret-pass"


# ── record factories ───────────────────────────────────────────────────────────

def make_student(roll, bus="B1", year="1st", name=None, department="CSE", route_name="North"):
    return Student(
        roll_number=roll,
        year=year,
        assigned_bus_id=bus,
        name=name or f"Student {roll}",
        department=department,
        route_name=route_name,
    )


def make_students(count, bus="B1", year="1st", prefix="R"):
    return [make_student(f"{prefix}{bus}-{i}", bus=bus, year=year) for i in range(count)]


def make_bus(bus_id="B1", capacity=40, route_name="North", driver="Ravi", status="Running"):
    return Bus(bus_id=bus_id, capacity=capacity, route_name=route_name,
               driver_assigned=driver, status=status)


def make_driver(driver_id="D1", bus_no="B1", route="North", name="Ravi"):
    return Driver(driver_id=driver_id, name=name, contact="9876543210",
                  bus_no=bus_no, route=route, license_no="TN01-2020")


# ── fixtures ───────────────────────────────────────────────────────────────────

@pytest.fixture
def app():
    flask_app.config.update(TESTING=True, WTF_CSRF_ENABLED=False)
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        ensure_default_admin()
    yield flask_app
    with flask_app.app_context():
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


class FakeSheets:
    """In-memory stand-in for the sheet collections"""

    def __init__(self):
        self.students = []
        self.buses = []
        self.drivers = []
        self.routes = []
        self.failing = set()

    def _serve(self, name):
        if name in self.failing:
            raise sheet_api.DataUnavailableError(name, "simulated outage")
        return list(getattr(self, name))


@pytest.fixture
def sheets(monkeypatch):
    fake = FakeSheets()
    monkeypatch.setattr(sheet_api, "get_all_students", lambda: fake._serve("students"))
    monkeypatch.setattr(sheet_api, "get_buses", lambda: fake._serve("buses"))
    monkeypatch.setattr(sheet_api, "get_drivers", lambda: fake._serve("drivers"))
    monkeypatch.setattr(sheet_api, "get_routes", lambda: fake._serve("routes"))
    return fake


def create_account(app, identifier, role, password=USER_PASSWORD, name=None):
    with app.app_context():
        return database_store.create_user(identifier, role, password, name=name)


def login(client, identifier, role, password=USER_PASSWORD):
    return client.post("/login", data={
        "identifier": identifier,
        "password": password,
        "role": role,
    })


@pytest.fixture
def admin_client(app, client):
    login(client, ADMIN_EMAIL, "admin", password=ADMIN_PASSWORD)
    return client


@pytest.fixture
def student_client(app, client):
    create_account(app, "21CS001", "student")
    login(client, "21CS001", "student")
    return client


@pytest.fixture
def driver_client(app, client):
    create_account(app, "D1", "driver")
    login(client, "D1", "driver")
    return client
