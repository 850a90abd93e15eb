"""
School-week date helpers.

All dates travel through the API as ISO strings (YYYY-MM-DD); these helpers
take and return `datetime.date` unless the name says otherwise.
"""
import re
from datetime import date, datetime, timedelta

DAY_NAMES = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']

_ISO_DATE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
_MONTH_DAY = re.compile(r'^(\d{1,2})[/-](\d{1,2})$')
_NEXT_DAY = re.compile(r'^next\s+(\w+)$')

# Python weekday numbers (Monday = 0)
_DAY_ALIASES = {
    'mon': 0, 'monday': 0,
    'tue': 1, 'tues': 1, 'tuesday': 1,
    'wed': 2, 'wednesday': 2,
    'thu': 3, 'thur': 3, 'thurs': 3, 'thursday': 3,
    'fri': 4, 'friday': 4,
    'sat': 5, 'saturday': 5,
    'sun': 6, 'sunday': 6,
}


def is_iso_date(value) -> bool:
    return parse_iso_date(value) is not None


def parse_iso_date(value):
    """'2025-03-14' -> date, anything else -> None."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _ISO_DATE.match(value.strip()):
        return None
    try:
        return datetime.strptime(value.strip(), '%Y-%m-%d').date()
    except ValueError:
        return None


def monday_of_week(d: date) -> date:
    """The Monday on or before d (Sunday belongs to the week that started 6 days earlier)."""
    return d - timedelta(days=d.weekday())


def week_dates(d: date) -> list:
    """ISO strings for Monday..Friday of d's week."""
    monday = monday_of_week(d)
    return [(monday + timedelta(days=i)).isoformat() for i in range(5)]


def batch_week_start(d: date) -> date:
    """Monday for a batch run: weekends roll forward to the coming week."""
    if d.weekday() >= 5:
        return d + timedelta(days=7 - d.weekday())
    return monday_of_week(d)


def next_school_day(d: date) -> date:
    """The next weekday after d."""
    nxt = d + timedelta(days=1)
    while nxt.weekday() >= 5:
        nxt += timedelta(days=1)
    return nxt


def day_name(d: date) -> str:
    return DAY_NAMES[d.weekday()]


def date_for_day_name(name: str, week: list):
    """Map 'Tuesday' (or 'tue') to its ISO date within a Mon-Fri list."""
    if not isinstance(name, str):
        return None
    idx = _DAY_ALIASES.get(name.strip().lower())
    if idx is None or idx >= len(week):
        return None
    return week[idx]


def parse_natural_date(text: str, today: date = None):
    """
    Parse quick-entry due dates: 'today', 'tmrw', 'fri', 'next mon', '3/14',
    or an ISO date. Returns an ISO string or None.
    """
    if not text:
        return None
    s = text.strip().lower()
    today = today or date.today()

    if _ISO_DATE.match(s):
        return s if parse_iso_date(s) else None
    if s in ('today', 'tod'):
        return today.isoformat()
    if s in ('tomorrow', 'tmrw', 'tmr'):
        return (today + timedelta(days=1)).isoformat()

    match = _NEXT_DAY.match(s)
    if match and match.group(1) in _DAY_ALIASES:
        diff = (_DAY_ALIASES[match.group(1)] - today.weekday()) % 7 or 7
        return (today + timedelta(days=diff + 7)).isoformat()

    if s in _DAY_ALIASES:
        diff = (_DAY_ALIASES[s] - today.weekday()) % 7
        return (today + timedelta(days=diff)).isoformat()

    match = _MONTH_DAY.match(s)
    if match:
        month, day = int(match.group(1)), int(match.group(2))
        try:
            candidate = date(today.year, month, day)
            if candidate < today:
                candidate = date(today.year + 1, month, day)
        except ValueError:
            return None
        return candidate.isoformat()

    return None
