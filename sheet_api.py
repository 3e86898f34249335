"""
Client for the sheet-backed JSON collections (students, drivers, buses,
routes, admins). Every collection is a GET endpoint returning a JSON list
of rows keyed by the sheet's column headers.
"""

import os
import logging
from concurrent.futures import ThreadPoolExecutor
from functools import partial

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

import load_analysis
from records import Student, Driver, Bus, Route, Admin

logger = logging.getLogger(__name__)

API_ENDPOINTS = {
    'ADMIN': os.environ.get('SHEETDB_ADMIN_URL', 'https://sheetdb.io/api/v1/0f6urid3bwu34'),
    'ROUTES': os.environ.get('SHEETDB_ROUTES_URL', 'https://sheetdb.io/api/v1/8qa6al4l8k3m5'),
    'BUSES': os.environ.get('SHEETDB_BUSES_URL', 'https://sheetdb.io/api/v1/kg3nesuu85sc9'),
    'DRIVERS': os.environ.get('SHEETDB_DRIVERS_URL', 'https://sheetdb.io/api/v1/kkjjnms5jrxvg'),
    'STUDENTS_CSE': os.environ.get('SHEETDB_STUDENTS_CSE_URL', 'https://sheetdb.io/api/v1/dnwg7wehqdtue'),
    'STUDENTS_CSBS': os.environ.get('SHEETDB_STUDENTS_CSBS_URL', 'https://sheetdb.io/api/v1/667d72shtkr7r'),
}

DEPARTMENT_ENDPOINTS = {
    'CSE': 'STUDENTS_CSE',
    'CSBS': 'STUDENTS_CSBS',
}

REQUEST_TIMEOUT = float(os.environ.get('SHEETDB_TIMEOUT', '15'))
RETRY_TOTAL = 3
RETRY_BACKOFF = 0.6


class DataUnavailableError(Exception):
    """A collection could not be fetched; callers must not treat it as empty"""

    def __init__(self, endpoint, reason):
        super().__init__(f"Could not fetch {endpoint}: {reason}")
        self.endpoint = endpoint
        self.reason = reason


def make_session():
    session = requests.Session()
    retry = Retry(
        total=RETRY_TOTAL,
        backoff_factor=RETRY_BACKOFF,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset(["GET"])
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({'Accept': 'application/json'})
    return session


session = make_session()


def fetch_collection(endpoint):
    """Fetch every row of a collection as a list of dicts"""
    try:
        response = session.get(endpoint, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as e:
        logger.error(f"Error fetching data from {endpoint}: {e}")
        raise DataUnavailableError(endpoint, str(e))

    if not isinstance(data, list):
        logger.error(f"Unexpected payload from {endpoint}: {type(data).__name__}")
        raise DataUnavailableError(endpoint, 'response is not a list')
    return data


def _fetch_records(key, record_type):
    return [record_type.from_sheet_row(row) for row in fetch_collection(API_ENDPOINTS[key])]


def get_students_by_department(department):
    """Roster for a single department (CSE or CSBS)"""
    key = DEPARTMENT_ENDPOINTS.get(department)
    if key is None:
        raise ValueError(f"Unknown department: {department}")
    return _fetch_records(key, Student)


def get_all_students():
    """Roster across all departments, CSE first"""
    rosters = fetch_together(*[partial(get_students_by_department, department)
                               for department in DEPARTMENT_ENDPOINTS])
    students = []
    for roster in rosters:
        students.extend(roster)
    return students


def get_drivers():
    return _fetch_records('DRIVERS', Driver)


def get_buses():
    return _fetch_records('BUSES', Bus)


def get_routes():
    return _fetch_records('ROUTES', Route)


def get_admins():
    return _fetch_records('ADMIN', Admin)


def get_student_by_roll_no(roll_no):
    for student in get_all_students():
        if student.roll_number == roll_no:
            return student
    return None


def get_driver_by_id(driver_id):
    for driver in get_drivers():
        if driver.driver_id == driver_id:
            return driver
    return None


def fetch_together(*fetchers):
    """
    Run provider calls concurrently and return their results in order.
    All of them must succeed: the first failure is raised once every call
    has finished, so no partial result set ever reaches the caller.
    """
    with ThreadPoolExecutor(max_workers=len(fetchers)) as executor:
        futures = [executor.submit(fetcher) for fetcher in fetchers]
        errors = [future.exception() for future in futures]

    for error in errors:
        if error is not None:
            raise error
    return [future.result() for future in futures]


def fetch_roster_and_fleet():
    """Fetch the roster and the fleet concurrently, as one atomic pair"""
    students, buses = fetch_together(get_all_students, get_buses)
    return students, buses


def get_bus_load_analysis(year_filter=None):
    """Fetch roster and fleet, then run the load analysis"""
    students, buses = fetch_roster_and_fleet()
    return load_analysis.analyze(students, buses, year_filter)
