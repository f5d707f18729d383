"""
Capacity reports built on top of the engine: day-by-day and week-by-week
breakdowns as DataFrames, and the console summary for a person or a team.
Rounding to one decimal happens here and only here.
"""

import numpy as np
import pandas as pd

from capacity_engine import (
    HOLIDAY,
    WEEKEND,
    WORKDAY,
    daily_allocation,
    get_week_start,
    holiday_labels,
    iter_days,
    norm_date,
)


# ── Constants ────────────────────────────────────────────────────────────────

# Lower bounds (exclusive) of the available-capacity bands, highest first.
CAPACITY_BANDS = [
    (50, "high"),
    (20, "medium"),
]
LOWEST_BAND = "low"

DAILY_COLUMNS = ["date", "weekday", "day_type", "holiday_name",
                 "allocated_percentage", "assigned_days", "unassigned_days"]

# Weekly staffing buckets, matched in order against the lower-cased project type.
TYPE_BUCKETS = [
    ("billable_days", ["facturable", "cliente", "billable", "client"]),
    ("product_days", ["producto", "str", "product"]),
    ("management_days", ["management", "gestión", "gestion"]),
    ("support_days", ["sam", "soporte", "support"]),
    ("internal_days", ["otros", "interno", "internal", "other"]),
]
AVAILABILITY_COLUMN = "availability_days"
TYPE_COLUMNS = [column for column, _ in TYPE_BUCKETS] + [AVAILABILITY_COLUMN]

WEEKLY_COLUMNS = (["week", "week_start", "work_days", "holiday_days",
                   "assigned_days", "unassigned_days"] + TYPE_COLUMNS + ["utilisation"])


def capacity_status(available_capacity):
    """Band an available-capacity percentage as 'high', 'medium' or 'low'."""
    for floor, band in CAPACITY_BANDS:
        if available_capacity > floor:
            return band
    return LOWEST_BAND


def type_column(project_type):
    """Weekly bucket for a project type. Untyped or unrecognised work counts as availability."""
    text = str(project_type or "").strip().lower()
    for column, keywords in TYPE_BUCKETS:
        if any(k in text for k in keywords):
            return column
    return AVAILABILITY_COLUMN


def _share(part, whole):
    return (part / whole) * 100 if whole > 0 else 0.0


# ── Breakdowns ───────────────────────────────────────────────────────────────

def daily_breakdown(person_id, office, start, end, assignments, holidays):
    """One row per calendar day: day type, holiday name, allocation and assigned days.
    Raises InvalidRangeError if start is after end."""
    allocation = daily_allocation(person_id, start, end, assignments)
    labels = holiday_labels(office, holidays)

    rows = []
    for d in iter_days(start, end):
        if d.weekday() >= 5:
            day_type = WEEKEND
        elif d in labels:
            day_type = HOLIDAY
        else:
            day_type = WORKDAY
        rows.append({
            "date": d,
            "weekday": d.strftime("%a"),
            "day_type": day_type,
            "holiday_name": labels.get(d, ""),
            "allocated_percentage": allocation[d],
        })

    df = pd.DataFrame(rows, columns=DAILY_COLUMNS[:5])
    is_work = (df["day_type"] == WORKDAY).to_numpy()
    assigned = df["allocated_percentage"].to_numpy(dtype=float) / 100
    df["assigned_days"] = np.where(is_work, assigned, 0.0)
    df["unassigned_days"] = np.where(is_work, np.clip(1.0 - assigned, 0.0, None), 0.0)
    return df


def _type_days(person_id, daily, assignments, projects):
    """Work days per type bucket, one row per row of the daily frame."""
    types = {p["id"]: p.get("type") for p in projects or []}
    mine = [(norm_date(a["start_date"]), norm_date(a["end_date"]),
             type_column(types.get(a["project_id"])), a["percentage"])
            for a in assignments or [] if a["person_id"] == person_id]
    split = pd.DataFrame(0.0, index=daily.index, columns=TYPE_COLUMNS)
    for i, d, day_type in zip(daily.index, daily["date"], daily["day_type"]):
        if day_type != WORKDAY:
            continue
        for a_start, a_end, column, percentage in mine:
            if a_start <= d <= a_end:
                split.at[i, column] += percentage / 100
    split[AVAILABILITY_COLUMN] += daily["unassigned_days"]
    return split


def weekly_breakdown(person_id, office, start, end, assignments, holidays, projects=None):
    """Aggregate the daily breakdown per Monday-start week, labelled W01, W02, ...

    Work days are also split by the type of the project they are assigned to;
    free time and work on untyped projects land in availability_days.
    """
    daily = daily_breakdown(person_id, office, start, end, assignments, holidays)
    daily = daily.join(_type_days(person_id, daily, assignments, projects))
    daily["week_start"] = daily["date"].map(get_week_start)
    daily["is_work"] = daily["day_type"] == WORKDAY
    daily["is_holiday"] = daily["day_type"] == HOLIDAY

    weekly = daily.groupby("week_start", sort=True).agg(
        work_days=("is_work", "sum"),
        holiday_days=("is_holiday", "sum"),
        assigned_days=("assigned_days", "sum"),
        unassigned_days=("unassigned_days", "sum"),
        **{column: (column, "sum") for column in TYPE_COLUMNS},
    ).reset_index()

    work = weekly["work_days"].to_numpy(dtype=float)
    assigned = weekly["assigned_days"].to_numpy(dtype=float)
    weekly["utilisation"] = np.divide(assigned * 100, work,
                                      out=np.zeros_like(assigned), where=work > 0)
    weekly["work_days"] = weekly["work_days"].astype(int)
    weekly["holiday_days"] = weekly["holiday_days"].astype(int)
    weekly["week"] = [f"W{i:02d}" for i in range(1, len(weekly) + 1)]
    return weekly[WEEKLY_COLUMNS]


# ── Console Summary ──────────────────────────────────────────────────────────

def _period_lines(summary, holiday_days, work_days, members=1):
    total = summary["total_days"]
    person_days = total * members
    return [
        f"  Period:        {summary['start_date']:%d/%m/%Y} - {summary['end_date']:%d/%m/%Y}",
        f"  Calendar days: {total}",
        f"  Weekends:      {summary['weekend_days']} ({_share(summary['weekend_days'], total):.1f}%)",
        f"  Holidays:      {holiday_days} ({_share(holiday_days, person_days):.1f}%)",
        f"  Work days:     {work_days} ({_share(work_days, person_days):.1f}%)",
    ]


def _allocation_lines(summary):
    work_days = summary["work_days"]
    lines = []
    if summary["per_project"]:
        lines.append("  By project:")
        for entry in summary["per_project"]:
            lines.append(f"    {entry['label']}: {entry['effective_days']:.1f} days at "
                         f"{entry['percentage']}% ({_share(entry['effective_days'], work_days):.1f}% of period)")
    else:
        lines.append("  By project:    none")
    lines.append(f"  Unassigned:    {summary['unassigned_days']:.1f} days "
                 f"({_share(summary['unassigned_days'], work_days):.1f}% of period)")
    if summary["total_assigned_days"] > work_days:
        lines.append(f"  WARNING: {summary['total_assigned_days']:.1f} days assigned against "
                     f"{work_days} work days (over-allocated)")
    available = summary["available_capacity"]
    lines.append(f"  Available:     {available:.1f}% ({capacity_status(available)})")
    return lines


def format_summary(summary, person_name=""):
    """Report lines for a single-person summary."""
    title = "  CAPACITY SUMMARY"
    if person_name:
        title += f" - {person_name}"
    lines = ["=" * 60, title, "=" * 60]
    lines += _period_lines(summary, summary["holiday_days"], summary["work_days"])
    lines += _allocation_lines(summary)
    lines.append("=" * 60)
    return lines


def format_team_summary(summary, team_name=""):
    """Report lines for a team summary, with holidays per member."""
    title = "  TEAM CAPACITY SUMMARY"
    if team_name:
        title += f" - {team_name}"
    lines = ["=" * 60, title, "=" * 60]
    lines += _period_lines(summary, summary["total_holiday_days"], summary["work_days"],
                           members=max(1, len(summary["member_holidays"])))
    lines.append(f"  Members:       {len(summary['member_holidays'])}")
    for info in summary["member_holidays"].values():
        if info["holiday_days"]:
            lines.append(f"    {info['name']}: {info['holiday_days']} holiday day"
                         f"{'s' if info['holiday_days'] != 1 else ''}")
    lines += _allocation_lines(summary)
    lines.append("=" * 60)
    return lines


def print_summary(summary, person_name=""):
    """Print a single-person summary to console."""
    print()
    for line in format_summary(summary, person_name):
        print(line)
    print()


def print_team_summary(summary, team_name=""):
    """Print a team summary to console."""
    print()
    for line in format_team_summary(summary, team_name):
        print(line)
    print()
