"""
Bus load analysis for the admin dashboard.

Joins the student roster against the fleet, computes how full each bus is
and classifies it into an occupancy band with a recommendation.
Pure functions only; fetching the data is the caller's job (see sheet_api).
"""

from dataclasses import dataclass, asdict
import logging

logger = logging.getLogger(__name__)

# Occupancy bands - both bounds are exclusive, 30 and 90 are still 'ok'
OVERCROWDED_ABOVE = 90
UNDERUTILIZED_BELOW = 30

STATUS_OK = 'ok'
STATUS_WARNING = 'warning'
STATUS_ERROR = 'error'

RECOMMENDATION_OVERCROWDED = 'Extra bus required - Overcrowded'
RECOMMENDATION_UNDERUTILIZED = 'Bus can be reduced - Underutilized'
RECOMMENDATION_OPTIMAL = 'Optimal capacity'


class InvalidInputError(ValueError):
    """Raised when a bus record breaks the capacity contract"""


@dataclass(frozen=True)
class LoadReportRow:
    bus_id: str
    capacity: int
    assigned_student_count: int
    occupancy_percent: int
    status: str
    recommendation: str
    route_name: str
    driver_assigned: str

    def to_dict(self):
        return asdict(self)


def filter_by_year(students, year_filter=None):
    """Keep students whose year matches exactly (case-sensitive, untrimmed)"""
    if year_filter is None:
        return list(students)
    return [student for student in students if student.year == year_filter]


def group_students_by_bus(students, bus_ids):
    """
    Join students to buses on assigned_bus_id.

    Returns (groups, unmatched): groups maps every bus id in bus_ids to the
    list of students assigned to it (possibly empty); unmatched holds the
    students whose bus id is not in bus_ids.
    """
    groups = {bus_id: [] for bus_id in bus_ids}
    unmatched = []
    for student in students:
        assigned = groups.get(student.assigned_bus_id)
        if assigned is None:
            unmatched.append(student)
        else:
            assigned.append(student)
    return groups, unmatched


def occupancy_percent(occupancy, capacity):
    """
    Occupancy as a whole percentage, rounded half up (92.5 -> 93).
    Always 0 for a zero-capacity bus.
    """
    if capacity <= 0:
        return 0
    # floor(100 * occupancy / capacity + 0.5) in integer arithmetic
    return (200 * occupancy + capacity) // (2 * capacity)


def classify(percent):
    """Return (status, recommendation) for an occupancy percentage"""
    if percent > OVERCROWDED_ABOVE:
        return STATUS_ERROR, RECOMMENDATION_OVERCROWDED
    if percent < UNDERUTILIZED_BELOW:
        return STATUS_WARNING, RECOMMENDATION_UNDERUTILIZED
    return STATUS_OK, RECOMMENDATION_OPTIMAL


def _validate_capacity(bus):
    capacity = bus.capacity
    if isinstance(capacity, bool) or not isinstance(capacity, int):
        raise InvalidInputError(f"Bus {bus.bus_id!r} has non-integer capacity {capacity!r}")
    if capacity < 0:
        raise InvalidInputError(f"Bus {bus.bus_id!r} has negative capacity {capacity}")


def analyze(students, buses, year_filter=None):
    """
    Produce one LoadReportRow per bus, in fleet order.

    Students assigned to a bus id missing from buses are left out of every
    row. Raises InvalidInputError for a negative or non-integer capacity.
    """
    buses = list(buses)
    for bus in buses:
        _validate_capacity(bus)

    selected = filter_by_year(students, year_filter)
    groups, unmatched = group_students_by_bus(selected, [bus.bus_id for bus in buses])

    rows = []
    for bus in buses:
        occupancy = len(groups[bus.bus_id])
        percent = occupancy_percent(occupancy, bus.capacity)
        status, recommendation = classify(percent)
        rows.append(LoadReportRow(
            bus_id=bus.bus_id,
            capacity=bus.capacity,
            assigned_student_count=occupancy,
            occupancy_percent=percent,
            status=status,
            recommendation=recommendation,
            route_name=bus.route_name,
            driver_assigned=bus.driver_assigned,
        ))

    logger.info(f"Load analysis: {len(rows)} buses, {len(selected)} students "
                f"(year={year_filter!r}, unmatched={len(unmatched)})")
    return rows


def find_unmatched_students(students, buses, year_filter=None):
    """Students (after the year filter) whose bus is not in the fleet"""
    selected = filter_by_year(students, year_filter)
    _, unmatched = group_students_by_bus(selected, [bus.bus_id for bus in buses])
    return unmatched


def summarize(rows):
    """Status counts and totals for a load report"""
    summary = {
        'total_buses': len(rows),
        STATUS_OK: 0,
        STATUS_WARNING: 0,
        STATUS_ERROR: 0,
        'total_capacity': 0,
        'total_assigned': 0,
    }
    for row in rows:
        summary[row.status] += 1
        summary['total_capacity'] += row.capacity
        summary['total_assigned'] += row.assigned_student_count
    return summary
