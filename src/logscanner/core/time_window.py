"""Time-window parsing helpers.

Converts user-friendly time window selectors into inclusive UTC datetime
bounds suitable for ``QueryRequest.start_date`` / ``end_date``.
"""

from __future__ import annotations

import re
from datetime import UTC, date, datetime, timedelta

_WEEK_RE = re.compile(r"^(?P<y>\d{4})-W(?P<w>\d{2})$")
_MONTH_RE = re.compile(r"^(?P<y>\d{4})-(?P<m>\d{2})$")
_HOUR_RE = re.compile(r"^(?P<d>\d{4}-\d{2}-\d{2})T(?P<h>\d{2})$")
_YEAR_RE = re.compile(r"^\d{4}$")

_TICK = timedelta(microseconds=1)


def parse_iso_dt(s: str) -> datetime:
    """Parse ISO8601 datetime. If tz is missing, assume UTC."""
    dt = datetime.fromisoformat(s.strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _inclusive(start: datetime, end_exclusive: datetime) -> tuple[datetime, datetime]:
    return start, end_exclusive - _TICK


def range_for_date(s: str) -> tuple[datetime, datetime]:
    """Return the UTC day for an ISO date string."""
    d = date.fromisoformat(s)
    start = datetime(d.year, d.month, d.day, tzinfo=UTC)
    return _inclusive(start, start + timedelta(days=1))


def range_for_hour(s: str) -> tuple[datetime, datetime]:
    """Return the UTC hour for a YYYY-MM-DDTHH selector."""
    m = _HOUR_RE.match(s)
    if not m:
        raise ValueError("hour must look like YYYY-MM-DDTHH (e.g., 2025-12-29T10)")
    d = date.fromisoformat(m.group("d"))
    start = datetime(d.year, d.month, d.day, int(m.group("h")), tzinfo=UTC)
    return _inclusive(start, start + timedelta(hours=1))


def range_for_week(s: str) -> tuple[datetime, datetime]:
    """Return the UTC ISO week for a YYYY-Www selector."""
    m = _WEEK_RE.match(s)
    if not m:
        raise ValueError("week must look like YYYY-Www (e.g., 2025-W52)")
    start_date = date.fromisocalendar(int(m.group("y")), int(m.group("w")), 1)  # Monday
    start = datetime(start_date.year, start_date.month, start_date.day, tzinfo=UTC)
    return _inclusive(start, start + timedelta(days=7))


def range_for_month(s: str) -> tuple[datetime, datetime]:
    """Return the UTC month for a YYYY-MM selector."""
    m = _MONTH_RE.match(s)
    if not m:
        raise ValueError("month must look like YYYY-MM (e.g., 2025-12)")
    y = int(m.group("y"))
    mo = int(m.group("m"))
    start = datetime(y, mo, 1, tzinfo=UTC)
    if mo == 12:
        end = datetime(y + 1, 1, 1, tzinfo=UTC)
    else:
        end = datetime(y, mo + 1, 1, tzinfo=UTC)
    return _inclusive(start, end)


def range_for_year(s: str) -> tuple[datetime, datetime]:
    """Return the UTC year for a YYYY selector."""
    if not _YEAR_RE.match(s):
        raise ValueError("year must look like YYYY (e.g., 2025)")
    y = int(s)
    return _inclusive(datetime(y, 1, 1, tzinfo=UTC), datetime(y + 1, 1, 1, tzinfo=UTC))


def resolve_time_window(
    *,
    since: str | None = None,
    until: str | None = None,
    date_: str | None = None,
    hour: str | None = None,
    week: str | None = None,
    month: str | None = None,
    year: str | None = None,
) -> tuple[datetime | None, datetime | None]:
    """Resolve inclusive UTC bounds; selectors win over explicit since/until."""
    if date_:
        return range_for_date(date_)
    if hour:
        return range_for_hour(hour)
    if week:
        return range_for_week(week)
    if month:
        return range_for_month(month)
    if year:
        return range_for_year(year)

    s = parse_iso_dt(since) if since else None
    u = parse_iso_dt(until) if until else None
    return s, u
