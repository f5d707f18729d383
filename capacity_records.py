"""
Record loading for the capacity engine.

Snapshots of persons, projects, assignments and holidays arrive from the
database layer either as lists of dicts or as pandas DataFrames, with the
English field names or the original Spanish column names. Everything is
normalised here once (ISO dates parsed, nationwide holidays mapped to a
single region sentinel, percentages coerced to int) so the engine never has
to branch on raw spellings.
"""

import math

import pandas as pd

from capacity_engine import (
    DEFAULT_PERCENTAGE,
    MAX_DAILY_ALLOCATION,
    MIN_PERCENTAGE,
    NATIONAL_REGION,
    normalize_region,
    parse_date,
)


# ── Column Aliases ───────────────────────────────────────────────────────────

PERSON_COLUMNS = {
    "id": ["person_id"],
    "name": ["nombre", "person_name"],
    "office": ["oficina", "region"],
}

PROJECT_COLUMNS = {
    "id": ["project_id"],
    "code": ["codigo_inicial", "project_code"],
    "name": ["denominacion", "project_name"],
    "type": ["tipologia", "project_type", "projecttype"],
}

ASSIGNMENT_COLUMNS = {
    "id": ["assignment_id"],
    "person_id": ["personid", "person"],
    "project_id": ["projectid", "project"],
    "start_date": ["startdate", "start", "fecha_inicio"],
    "end_date": ["enddate", "end", "fecha_fin"],
    "percentage": ["allocated_percentage", "allocatedpercentage", "hours_allocated", "porcentaje"],
}

HOLIDAY_COLUMNS = {
    "id": ["holiday_id"],
    "date": ["fecha"],
    "label": ["festivo", "name", "description"],
    "region": ["comunidad_autonoma", "region_code", "regioncode"],
    "country": ["pais"],
}


# ── Helpers ──────────────────────────────────────────────────────────────────

def clean_str(val):
    """Return stripped string or empty string for NaN/None."""
    if val is None or val is pd.NaT or (isinstance(val, float) and math.isnan(val)):
        return ""
    return str(val).strip()


def clean_id(val):
    """Record identity: None when blank, stripped string, or int for whole numbers."""
    if val is None or (isinstance(val, float) and math.isnan(val)):
        return None
    if isinstance(val, str):
        return val.strip() or None
    if isinstance(val, float) and val.is_integer():
        return int(val)
    if hasattr(val, "item"):  # numpy scalar
        return val.item()
    return val


def _key(name):
    return str(name).strip().lower().replace(" ", "_")


def normalize_columns(df, expected, aliases=None):
    """Rename DataFrame columns to the expected names, ignoring case, spacing
    and known aliases. Returns the set of expected columns still missing."""
    lookup = {}
    for canonical in expected:
        lookup[_key(canonical)] = canonical
        for alias in (aliases or {}).get(canonical, []):
            lookup.setdefault(_key(alias), canonical)

    # Exact (case-insensitive) names claim their slot before any alias does.
    exact = {_key(c): c for c in expected}
    renames = {}
    taken = set()
    for col in df.columns:
        if _key(col) in exact and exact[_key(col)] not in taken:
            renames[col] = exact[_key(col)]
            taken.add(exact[_key(col)])
    for col in df.columns:
        if col in renames:
            continue
        canonical = lookup.get(_key(col))
        if canonical and canonical not in taken:
            renames[col] = canonical
            taken.add(canonical)
    df.rename(columns=renames, inplace=True)
    return set(expected) - set(df.columns)


def _to_frame(records, columns, required, sheet):
    """Turn records into a DataFrame with canonical columns, or None if unusable."""
    if isinstance(records, pd.DataFrame):
        df = records.copy()
    else:
        df = pd.DataFrame(list(records or []))
    if df.empty:
        return None
    missing = normalize_columns(df, set(columns), columns)
    missing_required = missing & required
    if missing_required:
        print(f"  ERROR: {sheet} records are missing field(s): {', '.join(sorted(missing_required))}. "
              f"Found: {', '.join(str(c) for c in df.columns)}")
        return None
    for col in missing:
        df[col] = None
    return df.astype(object).where(pd.notna(df), None)


def _is_blank(row, columns):
    return all(clean_str(row.get(c)) == "" for c in columns)


def parse_percentage(val, context=""):
    """Allocated percentage as int; blank means DEFAULT_PERCENTAGE."""
    ctx = f" ({context})" if context else ""
    if clean_str(val) == "":
        return DEFAULT_PERCENTAGE
    try:
        number = float(str(val).strip().rstrip("%"))
    except ValueError:
        raise ValueError(f"Cannot parse percentage{ctx}: {val!r}")
    if math.isnan(number):
        return DEFAULT_PERCENTAGE
    if not number.is_integer():
        print(f"  WARNING: Percentage {number:g}{ctx} is not a whole number, rounding.")
    return int(round(number))


def _dedupe(records, sheet):
    seen = set()
    unique = []
    for rec in records:
        if rec["id"] is not None and rec["id"] in seen:
            print(f"  WARNING: {sheet}: duplicate id '{rec['id']}', keeping the first.")
            continue
        seen.add(rec["id"])
        unique.append(rec)
    return unique


# ── Loaders ──────────────────────────────────────────────────────────────────

def load_persons(records):
    """Load persons as {id, name, office} dicts."""
    df = _to_frame(records, PERSON_COLUMNS, {"id", "name"}, "Persons")
    if df is None:
        return []
    persons = []
    for pos, row in enumerate(df.to_dict("records"), start=1):
        if _is_blank(row, PERSON_COLUMNS):
            continue
        person_id = clean_id(row["id"])
        if person_id is None:
            print(f"  WARNING: Persons row {pos}: no id for '{clean_str(row['name'])}', skipping.")
            continue
        persons.append({
            "id": person_id,
            "name": clean_str(row["name"]),
            "office": clean_str(row["office"]),
        })
    return _dedupe(persons, "Persons")


def load_projects(records):
    """Load projects as {id, code, name, type} dicts. Type is optional and may be blank."""
    df = _to_frame(records, PROJECT_COLUMNS, {"id", "code", "name"}, "Projects")
    if df is None:
        return []
    projects = []
    for pos, row in enumerate(df.to_dict("records"), start=1):
        if _is_blank(row, PROJECT_COLUMNS):
            continue
        project_id = clean_id(row["id"])
        if project_id is None:
            print(f"  WARNING: Projects row {pos}: no id for '{clean_str(row['code'])}', skipping.")
            continue
        projects.append({
            "id": project_id,
            "code": clean_str(row["code"]),
            "name": clean_str(row["name"]),
            "type": clean_str(row["type"]),
        })
    return _dedupe(projects, "Projects")


def load_assignments(records):
    """Load assignments. Dates and percentages that cannot be parsed raise ValueError."""
    df = _to_frame(records, ASSIGNMENT_COLUMNS,
                   {"person_id", "project_id", "start_date", "end_date"}, "Assignments")
    if df is None:
        return []
    assignments = []
    for pos, row in enumerate(df.to_dict("records"), start=1):
        if _is_blank(row, ASSIGNMENT_COLUMNS):
            continue
        person_id = clean_id(row["person_id"])
        project_id = clean_id(row["project_id"])
        if person_id is None or project_id is None:
            print(f"  WARNING: Assignments row {pos}: missing person or project, skipping.")
            continue
        assignments.append({
            "id": clean_id(row["id"]),
            "person_id": person_id,
            "project_id": project_id,
            "start_date": parse_date(row["start_date"], context=f"Assignments row {pos}, 'start_date'"),
            "end_date": parse_date(row["end_date"], context=f"Assignments row {pos}, 'end_date'"),
            "percentage": parse_percentage(row["percentage"], context=f"Assignments row {pos}"),
        })
    return _dedupe(assignments, "Assignments")


def load_holidays(records):
    """Load holidays; blank or 'NACIONAL' regions become NATIONAL_REGION."""
    df = _to_frame(records, HOLIDAY_COLUMNS, {"date"}, "Holidays")
    if df is None:
        return []
    holidays = []
    for pos, row in enumerate(df.to_dict("records"), start=1):
        if _is_blank(row, HOLIDAY_COLUMNS):
            continue
        holidays.append({
            "id": clean_id(row["id"]),
            "date": parse_date(row["date"], context=f"Holidays row {pos}, 'date'"),
            "label": clean_str(row["label"]),
            "region": normalize_region(row["region"]),
            "country": clean_str(row["country"]),
        })
    return holidays


def load_data(persons, projects, assignments, holidays):
    """Load all four snapshots. Returns (persons, projects, assignments, holidays)."""
    persons = load_persons(persons)
    projects = load_projects(projects)
    assignments = load_assignments(assignments)
    holidays = load_holidays(holidays)

    print(f"  Persons: {len(persons)}")
    print(f"  Projects: {len(projects)}")
    print(f"  Assignments: {len(assignments)}")
    if holidays:
        regional = len([h for h in holidays if h["region"] != NATIONAL_REGION])
        print(f"  Holidays: {len(holidays)} ({len(holidays) - regional} national, {regional} regional)")

    return persons, projects, assignments, holidays


# ── Validation ───────────────────────────────────────────────────────────────

def validate_records(persons, projects, assignments, holidays=None):
    """Cross-check loaded records. Returns (errors, warnings) lists."""
    errors = []
    warnings = []

    person_ids = {p["id"] for p in persons}
    project_ids = {p["id"] for p in projects}

    for a in assignments:
        ref = f"Assignment {a['id']}" if a.get("id") is not None else "Assignment"
        if a["person_id"] not in person_ids:
            errors.append(f"{ref}: person '{a['person_id']}' not found.")
        if a["project_id"] not in project_ids:
            errors.append(f"{ref}: project '{a['project_id']}' not found.")
        if a["start_date"] > a["end_date"]:
            errors.append(f"{ref}: start date {a['start_date']:%Y-%m-%d} is after "
                          f"end date {a['end_date']:%Y-%m-%d}.")
        if not MIN_PERCENTAGE <= a["percentage"] <= MAX_DAILY_ALLOCATION:
            warnings.append(f"{ref}: percentage {a['percentage']} is outside "
                            f"{MIN_PERCENTAGE}-{MAX_DAILY_ALLOCATION}.")

    if holidays:
        for h in sorted(holidays, key=lambda h: h["date"]):
            if h["date"].weekday() >= 5:
                warnings.append(f"Holiday {h['date']:%Y-%m-%d} ({h['label'] or 'unnamed'}) "
                                f"falls on a weekend (has no effect).")
        regions = {h["region"] for h in holidays}
        offices = sorted({p["office"] for p in persons if p["office"]})
        for office in offices:
            if office not in regions:
                warnings.append(f"Office '{office}' has no regional holidays; "
                                f"only national holidays will apply.")

    return errors, warnings
