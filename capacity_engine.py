"""
Capacity Engine
Works out, for a person and a date window, how the calendar splits into
weekends, holidays and work days, how much of that work time is committed to
each project, and how much capacity is left.

Features:
  - Regional holiday calendars (nationwide + per-office holidays)
  - Per-day over-allocation check for new assignments (advisory)
  - Period summary with per-project effective days and available capacity
  - Team roll-up where each member keeps their own holiday calendar

Everything here is pure: callers pass in snapshots of persons, projects,
assignments and holidays, and get fresh values back.
"""

import math
from datetime import date, datetime, timedelta

import pandas as pd


# ── Constants ────────────────────────────────────────────────────────────────

NATIONAL_REGION = "NACIONAL"
NATIONAL_ALIASES = {"", "NACIONAL", "NATIONAL"}
# Keys a raw holiday record may carry its region under, checked in order.
REGION_KEYS = ["region", "regionCode", "region_code", "comunidad_autonoma"]

WORKDAY = "workday"
WEEKEND = "weekend"
HOLIDAY = "holiday"

MAX_DAILY_ALLOCATION = 100
MIN_PERCENTAGE = 1
DEFAULT_PERCENTAGE = 100

UNKNOWN_PROJECT_LABEL = "Unknown project"


class InvalidRangeError(ValueError):
    """Raised when a date window starts after it ends."""

    def __init__(self, start, end):
        self.start = start
        self.end = end
        super().__init__(
            f"Start date {start:%Y-%m-%d} is after end date {end:%Y-%m-%d}")


# ── Date Helpers ─────────────────────────────────────────────────────────────

def norm_date(d):
    """Normalise to a calendar date (time of day dropped)."""
    if d is pd.NaT:
        raise TypeError("norm_date got NaT")
    if isinstance(d, datetime):  # pd.Timestamp included
        return d.date()
    if isinstance(d, date):
        return d
    if isinstance(d, str):
        return parse_date(d)
    raise TypeError(f"norm_date expected date, got {type(d).__name__}: {d!r}")


def parse_date(val, context=""):
    """Parse a date from a record field; handles date, datetime, Timestamp and string."""
    ctx = f" ({context})" if context else ""
    if val is None or val is pd.NaT or (isinstance(val, float) and math.isnan(val)):
        raise ValueError(f"Date is blank{ctx}")
    if isinstance(val, date):
        return norm_date(val)
    if isinstance(val, str):
        val = val.strip()
        if not val:
            raise ValueError(f"Date is blank{ctx}")
        for fmt in ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y"):
            try:
                return datetime.strptime(val, fmt).date()
            except ValueError:
                pass
        raise ValueError(f"Cannot parse date{ctx}: {val!r}. Expected YYYY-MM-DD or DD/MM/YYYY")
    raise ValueError(f"Cannot parse date{ctx}: {val!r}")


def iter_days(start, end):
    """Yield every calendar day between start and end (inclusive)."""
    d, end_d = norm_date(start), norm_date(end)
    while d <= end_d:
        yield d
        d += timedelta(days=1)


def get_week_start(day):
    """Get the Monday of the week containing the given date."""
    day = norm_date(day)
    return day - timedelta(days=day.weekday())


def _check_range(start, end):
    start, end = norm_date(start), norm_date(end)
    if start > end:
        raise InvalidRangeError(start, end)
    return start, end


# ── Calendar Classifier ──────────────────────────────────────────────────────

def normalize_region(value):
    """Map every spelling of 'nationwide' to NATIONAL_REGION; strip the rest."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return NATIONAL_REGION
    region = str(value).strip()
    if region.upper() in NATIONAL_ALIASES:
        return NATIONAL_REGION
    return region


def holiday_region(holiday):
    """Normalised region of a holiday record, whichever key it was stored under."""
    for key in REGION_KEYS:
        if key in holiday:
            region = normalize_region(holiday[key])
            if region != NATIONAL_REGION:
                return region
    return NATIONAL_REGION


def _applies_to(holiday, office):
    region = holiday_region(holiday)
    return region == NATIONAL_REGION or region == (office or "").strip()


def is_weekend(day):
    """True on Saturday and Sunday."""
    return norm_date(day).weekday() >= 5


def holiday_labels(office, holidays):
    """Map each holiday date applying to `office` to its label. First label on a date wins."""
    labels = {}
    for h in holidays or []:
        if _applies_to(h, office):
            labels.setdefault(norm_date(h["date"]), h.get("label") or "")
    return labels


def holiday_dates(office, holidays):
    """Set of dates that are holidays for someone working out of `office`."""
    return set(holiday_labels(office, holidays))


def is_holiday(day, office, holidays):
    """True if a nationwide or office-specific holiday falls exactly on this day."""
    return norm_date(day) in holiday_dates(office, holidays)


def holiday_name(day, office, holidays):
    """Label of the holiday that applies on this day, or '' if none."""
    return holiday_labels(office, holidays).get(norm_date(day), "")


def classify_day(day, office, holidays):
    """Classify a day as WEEKEND, HOLIDAY or WORKDAY. Weekend wins over holiday."""
    if is_weekend(day):
        return WEEKEND
    if is_holiday(day, office, holidays):
        return HOLIDAY
    return WORKDAY


def _classify(day, holiday_set):
    # Same rule as classify_day, against a precomputed holiday set.
    if day.weekday() >= 5:
        return WEEKEND
    if day in holiday_set:
        return HOLIDAY
    return WORKDAY


def is_working_day(day, office=None, holidays=None):
    """Check if a date is a working day (not weekend, not a holiday for this office)."""
    return classify_day(day, office, holidays) == WORKDAY


def count_working_days(start, end, office=None, holidays=None):
    """Count working days between start and end (inclusive)."""
    holiday_set = holiday_dates(office, holidays)
    return sum(1 for d in iter_days(start, end) if _classify(d, holiday_set) == WORKDAY)


def holidays_in_range(start, end, office, holidays, include_weekends=False):
    """Holidays applying to `office` inside the window, sorted by date.
    Weekend holidays are skipped unless include_weekends is set."""
    start, end = norm_date(start), norm_date(end)
    found = []
    for h in holidays or []:
        d = norm_date(h["date"])
        if not (start <= d <= end) or not _applies_to(h, office):
            continue
        if d.weekday() >= 5 and not include_weekends:
            continue
        found.append({"date": d, "label": h.get("label") or "",
                      "region": holiday_region(h)})
    found.sort(key=lambda h: h["date"])
    return found


# ── Assignment Overlap Validator ─────────────────────────────────────────────

def _person_assignments(person_id, assignments):
    """The person's assignments with dates coerced to calendar dates."""
    rows = []
    for a in assignments or []:
        if a["person_id"] != person_id:
            continue
        rows.append((norm_date(a["start_date"]), norm_date(a["end_date"]), a))
    return rows


def daily_allocation(person_id, start, end, assignments):
    """Total allocated percentage per day for one person across [start, end]."""
    start, end = _check_range(start, end)
    mine = _person_assignments(person_id, assignments)
    totals = {}
    for d in iter_days(start, end):
        totals[d] = sum(a["percentage"] for a_start, a_end, a in mine if a_start <= d <= a_end)
    return totals


def validate_new_assignment(person_id, start, end, new_percentage, existing):
    """Check that adding `new_percentage` over [start, end] keeps every day at or below 100%.

    Returns {"valid": True} or, on the first day that would go over,
    {"valid": False, "conflict_date": day, "total_percentage": total}.
    Whether to block the write is up to the caller.
    """
    start, end = _check_range(start, end)
    mine = _person_assignments(person_id, existing)
    for d in iter_days(start, end):
        total = sum(a["percentage"] for a_start, a_end, a in mine if a_start <= d <= a_end)
        total += new_percentage
        if total > MAX_DAILY_ALLOCATION:
            return {"valid": False, "conflict_date": d, "total_percentage": total}
    return {"valid": True}


def find_overallocations(person_id, start, end, assignments):
    """List (day, total_percentage) for every day already above 100% in the window."""
    return [(d, total) for d, total in daily_allocation(person_id, start, end, assignments).items()
            if total > MAX_DAILY_ALLOCATION]


def validate_assignment(assignment, existing, persons=None, projects=None):
    """Validate a proposed assignment before it is written. Returns (errors, warnings) lists."""
    errors = []
    warnings = []

    person_id = assignment.get("person_id")
    project_id = assignment.get("project_id")

    if persons is not None and person_id not in {p["id"] for p in persons}:
        errors.append(f"Person '{person_id}' not found.")
    if projects is not None and project_id not in {p["id"] for p in projects}:
        errors.append(f"Project '{project_id}' not found.")

    percentage = assignment.get("percentage")
    if not isinstance(percentage, int) or isinstance(percentage, bool):
        errors.append(f"Percentage {percentage!r} must be a whole number.")
        return errors, warnings
    if not MIN_PERCENTAGE <= percentage <= MAX_DAILY_ALLOCATION:
        errors.append(f"Percentage {percentage} must be between "
                      f"{MIN_PERCENTAGE} and {MAX_DAILY_ALLOCATION}.")

    start = norm_date(assignment["start_date"])
    end = norm_date(assignment["end_date"])
    if start > end:
        errors.append(f"Start date {start:%Y-%m-%d} is after end date {end:%Y-%m-%d}.")
        return errors, warnings

    others = [a for a in existing or [] if a.get("id") is None or a.get("id") != assignment.get("id")]
    result = validate_new_assignment(person_id, start, end, percentage, others)
    if not result["valid"]:
        errors.append(f"{result['conflict_date']:%d/%m/%Y} would be at "
                      f"{result['total_percentage']}% (over {MAX_DAILY_ALLOCATION}% capacity).")

    if is_weekend(start):
        warnings.append(f"Assignment starts on a weekend ({start:%d/%m/%Y}).")
    if is_weekend(end):
        warnings.append(f"Assignment ends on a weekend ({end:%d/%m/%Y}).")

    for a_start, a_end, a in _person_assignments(person_id, others):
        if a["project_id"] == project_id and a_start <= end and start <= a_end:
            warnings.append(f"Overlaps existing assignment to the same project "
                            f"({a_start:%d/%m/%Y} - {a_end:%d/%m/%Y}).")
            break

    return errors, warnings


# ── Period Summarizer ────────────────────────────────────────────────────────

def project_label(project_id, projects):
    """'CODE - Name' for a project id, or UNKNOWN_PROJECT_LABEL."""
    for p in projects or []:
        if p["id"] == project_id:
            return f"{p['code']} - {p['name']}"
    return UNKNOWN_PROJECT_LABEL


def summarize(person_id, office, start, end, assignments, holidays, projects):
    """Break a period down into weekend/holiday/work days and per-project effective days.

    Raises InvalidRangeError if start is after end. Figures are left unrounded;
    rounding belongs to whoever displays them.
    """
    start, end = _check_range(start, end)
    holiday_set = holiday_dates(office, holidays)

    total_days = 0
    weekend_days = 0
    holiday_days = 0
    for d in iter_days(start, end):
        total_days += 1
        kind = _classify(d, holiday_set)
        if kind == WEEKEND:
            weekend_days += 1
        elif kind == HOLIDAY:
            holiday_days += 1
    work_days = total_days - weekend_days - holiday_days

    per_project = {}
    total_assigned = 0.0
    for a_start, a_end, a in _person_assignments(person_id, assignments):
        clip_start = max(a_start, start)
        clip_end = min(a_end, end)
        if clip_start > clip_end:
            continue
        assignment_work_days = sum(1 for d in iter_days(clip_start, clip_end)
                                   if _classify(d, holiday_set) == WORKDAY)
        effective_days = assignment_work_days * a["percentage"] / 100

        bucket = per_project.setdefault(a["project_id"], {
            "project_id": a["project_id"],
            "label": project_label(a["project_id"], projects),
            "effective_days": 0.0,
            "percentage": a["percentage"],
        })
        bucket["effective_days"] += effective_days
        bucket["percentage"] = a["percentage"]
        total_assigned += effective_days

    unassigned_days = max(0.0, work_days - total_assigned)
    available = (unassigned_days / work_days) * 100 if work_days > 0 else 0.0

    return {
        "person_id": person_id,
        "start_date": start,
        "end_date": end,
        "total_days": total_days,
        "weekend_days": weekend_days,
        "holiday_days": holiday_days,
        "work_days": work_days,
        "per_project": list(per_project.values()),
        "total_assigned_days": total_assigned,
        "unassigned_days": unassigned_days,
        "available_capacity": min(100.0, max(0.0, available)),
    }


def summarize_team(members, start, end, assignments, holidays, projects):
    """Summarise a whole team; each member is counted against their own office calendar."""
    start, end = _check_range(start, end)

    member_summaries = []
    member_holidays = {}
    per_project = {}
    work_days = 0
    total_assigned = 0.0
    for member in members:
        s = summarize(member["id"], member.get("office"), start, end,
                      assignments, holidays, projects)
        member_summaries.append(s)
        member_holidays[member["id"]] = {"name": member.get("name", ""),
                                         "holiday_days": s["holiday_days"]}
        work_days += s["work_days"]
        total_assigned += s["total_assigned_days"]
        for entry in s["per_project"]:
            bucket = per_project.setdefault(entry["project_id"], {
                "project_id": entry["project_id"],
                "label": entry["label"],
                "effective_days": 0.0,
                "percentage": entry["percentage"],
            })
            bucket["effective_days"] += entry["effective_days"]
            bucket["percentage"] = entry["percentage"]

    total_days = (end - start).days + 1
    weekend_days = sum(1 for d in iter_days(start, end) if d.weekday() >= 5)
    unassigned_days = max(0.0, work_days - total_assigned)
    available = (unassigned_days / work_days) * 100 if work_days > 0 else 0.0

    return {
        "start_date": start,
        "end_date": end,
        "total_days": total_days,
        "weekend_days": weekend_days,
        "member_holidays": member_holidays,
        "total_holiday_days": sum(m["holiday_days"] for m in member_holidays.values()),
        "work_days": work_days,
        "per_project": list(per_project.values()),
        "total_assigned_days": total_assigned,
        "unassigned_days": unassigned_days,
        "available_capacity": min(100.0, max(0.0, available)),
        "members": member_summaries,
    }
