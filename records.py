"""
Record types for the rows served by the sheet collections.
Column names follow the spreadsheet headers; attributes are snake_case.
"""

from dataclasses import dataclass, asdict

BUS_STATUS_RUNNING = 'Running'
BUS_STATUS_STOPPED = 'Stopped'
BUS_STATUS_BREAKDOWN = 'Breakdown'
BUS_STATUS_MAINTENANCE = 'Maintenance'

BUS_STATUSES = (
    BUS_STATUS_RUNNING,
    BUS_STATUS_STOPPED,
    BUS_STATUS_BREAKDOWN,
    BUS_STATUS_MAINTENANCE,
)


class MalformedRecordError(ValueError):
    """A sheet row could not be converted into a record"""


def _text(row, column):
    value = row.get(column)
    if value is None:
        return ''
    return str(value)


def _parse_capacity(row):
    value = row.get('Capacity')
    if isinstance(value, bool):
        raise MalformedRecordError(f"Bus {row.get('Bus No')!r} has non-numeric capacity {value!r}")
    if isinstance(value, int):
        return value
    # JSON numbers can arrive as 40.0
    if isinstance(value, float) and value.is_integer():
        return int(value)
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise MalformedRecordError(f"Bus {row.get('Bus No')!r} has non-numeric capacity {value!r}")


@dataclass(frozen=True)
class Student:
    roll_number: str
    year: str
    assigned_bus_id: str
    name: str = ''
    department: str = ''
    route_name: str = ''
    route_number: str = ''
    serial_no: str = ''

    @classmethod
    def from_sheet_row(cls, row):
        return cls(
            roll_number=_text(row, 'Roll No'),
            year=_text(row, 'Year'),
            assigned_bus_id=_text(row, 'Bus No'),
            name=_text(row, 'Name'),
            department=_text(row, 'Department'),
            route_name=_text(row, 'Route Name'),
            route_number=_text(row, 'Route Number'),
            serial_no=_text(row, 'Serial No'),
        )

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class Bus:
    bus_id: str
    capacity: int
    route_name: str = ''
    driver_assigned: str = ''
    route_number: str = ''
    status: str = BUS_STATUS_STOPPED

    @classmethod
    def from_sheet_row(cls, row):
        return cls(
            bus_id=_text(row, 'Bus No'),
            capacity=_parse_capacity(row),
            route_name=_text(row, 'Route Name'),
            driver_assigned=_text(row, 'Driver Assigned'),
            route_number=_text(row, 'Route Number'),
            status=_text(row, 'Status') or BUS_STATUS_STOPPED,
        )

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class Driver:
    driver_id: str
    name: str = ''
    contact: str = ''
    bus_no: str = ''
    route: str = ''
    license_no: str = ''

    @classmethod
    def from_sheet_row(cls, row):
        return cls(
            driver_id=_text(row, 'Driver ID'),
            name=_text(row, 'Name'),
            contact=_text(row, 'Contact'),
            bus_no=_text(row, 'Bus No'),
            route=_text(row, 'Route'),
            license_no=_text(row, 'License No'),
        )

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class Route:
    route_number: str
    route_name: str = ''
    stops: str = ''
    distance: str = ''
    avg_time: str = ''

    @classmethod
    def from_sheet_row(cls, row):
        return cls(
            route_number=_text(row, 'Route Number'),
            route_name=_text(row, 'Route Name'),
            stops=_text(row, 'Stops'),
            distance=_text(row, 'Distance'),
            avg_time=_text(row, 'Avg Time'),
        )

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class Admin:
    admin_id: str
    name: str = ''
    email: str = ''
    role: str = ''

    @classmethod
    def from_sheet_row(cls, row):
        return cls(
            admin_id=_text(row, 'Admin ID'),
            name=_text(row, 'Name'),
            email=_text(row, 'Email'),
            role=_text(row, 'Role'),
        )

    def to_dict(self):
        return asdict(self)
