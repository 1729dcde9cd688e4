"""Shared normalization conventions used by every adapter."""
import calendar
import html
import re
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence, Union
from urllib.parse import quote

from bs4 import BeautifulSoup

from processor.models import RawEvent


DEFAULT_WINDOW_DAYS = 90
MAX_DESCRIPTION_LENGTH = 2000
SIX_MONTHS = timedelta(days=183)

MONTHS = {
    'jan': 1, 'january': 1, 'feb': 2, 'february': 2, 'mar': 3, 'march': 3,
    'apr': 4, 'april': 4, 'may': 5, 'jun': 6, 'june': 6, 'jul': 7, 'july': 7,
    'aug': 8, 'august': 8, 'sep': 9, 'sept': 9, 'september': 9,
    'oct': 10, 'october': 10, 'nov': 11, 'november': 11, 'dec': 12, 'december': 12,
}

_TWELVE_HOUR_RE = re.compile(r'(\d{1,2}):(\d{2})\s*(am|pm)', re.IGNORECASE)
_TWENTY_FOUR_HOUR_RE = re.compile(r'^([01]?\d|2[0-3]):([0-5]\d)$')


@dataclass(frozen=True)
class DateWindow:
    """Inclusive [min_date, max_date] window around now."""
    min_date: datetime
    max_date: datetime

    def contains(self, value: Union[str, date, datetime]) -> bool:
        """
        Check whether a date falls inside the window, by calendar day.

        Args:
            value: YYYY-MM-DD string, date or datetime

        Returns:
            True if the day is within the window
        """
        if isinstance(value, str):
            day = datetime.strptime(value, '%Y-%m-%d').date()
        elif isinstance(value, datetime):
            day = value.date()
        else:
            day = value
        return self.min_date.date() <= day <= self.max_date.date()


def build_date_window(days: Optional[int] = None,
                      now: Optional[datetime] = None) -> DateWindow:
    """
    Compute the lookback/lookahead window [now - days, now + days].

    Args:
        days: Window half-width in days (default: 90)
        now: Reference time (default: current time)

    Returns:
        DateWindow
    """
    if days is None:
        days = DEFAULT_WINDOW_DAYS
    now = now or datetime.now()
    span = timedelta(days=days)
    return DateWindow(min_date=now - span, max_date=now + span)


def infer_year(month: int, day: int, now: Optional[datetime] = None) -> int:
    """
    Infer the year for a month/day that a source printed without one.

    Picks the year that places the date within six months of now: a candidate
    more than six months ahead belongs to last year, one more than six months
    behind belongs to next year.

    Args:
        month: Month number (1-12)
        day: Day of month
        now: Reference time (default: current time)

    Returns:
        Inferred year
    """
    now = now or datetime.now()
    current_year = now.year
    # Feb 29 in a non-leap year is clamped for the distance check only
    last_day = calendar.monthrange(current_year, month)[1]
    candidate = datetime(current_year, month, min(day, last_day), tzinfo=now.tzinfo)
    diff = candidate - now

    if diff > SIX_MONTHS:
        return current_year - 1
    if diff < -SIX_MONTHS:
        return current_year + 1
    return current_year


def format_date(year: int, month: int, day: int) -> Optional[str]:
    """Format a date as YYYY-MM-DD, or None if the date does not exist."""
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def parse_12_hour_time(text: str) -> Optional[str]:
    """
    Find a 12-hour time anywhere in the text and convert it to 24-hour HH:MM.

    Matches "4:00 pm", "7:15 PM", "12:00 am", also inside prose such as
    "3:00 PM Hash Standard Time".

    Args:
        text: Text to search

    Returns:
        Zero-padded "HH:MM", or None when no time is present
    """
    if not text:
        return None
    match = _TWELVE_HOUR_RE.search(text)
    if not match:
        return None

    hours = int(match.group(1))
    minutes = match.group(2)
    meridiem = match.group(3).lower()

    if hours < 1 or hours > 12 or int(minutes) > 59:
        return None
    if meridiem == 'pm' and hours != 12:
        hours += 12
    if meridiem == 'am' and hours == 12:
        hours = 0

    return f"{hours:02d}:{minutes}"


def normalize_time(text: str) -> Optional[str]:
    """
    Normalize a time to 24-hour HH:MM.

    Args:
        text: "HH:MM" (24-hour) or "h:mm AM/PM"

    Returns:
        "HH:MM" or None if parsing fails
    """
    if not text:
        return None
    match = _TWENTY_FOUR_HOUR_RE.match(text.strip())
    if match:
        return f"{int(match.group(1)):02d}:{match.group(2)}"
    return parse_12_hour_time(text)


def split_multi_day(event: RawEvent, dates: Sequence[str], series_id: str,
                    start_times: Optional[Sequence[str]] = None) -> List[RawEvent]:
    """
    Split one source event spanning several days into per-day records.

    Args:
        event: Template record (its date is replaced per day)
        dates: YYYY-MM-DD dates covered by the event, in order
        series_id: Identifier taken from the source's own event id
        start_times: Optional per-day start times (falls back to the first one)

    Returns:
        One record for a single-day event; otherwise one record per day,
        all sharing series_id and titled "<title> (Day k)"
    """
    if not dates:
        return []
    start_times = list(start_times or [])

    if len(dates) == 1:
        start_time = start_times[0] if start_times else event.start_time
        return [replace(event, date=dates[0], start_time=start_time or None)]

    records = []
    for index, day in enumerate(dates):
        label = f"Day {index + 1}"
        title = f"{event.title} ({label})" if event.title else label
        if index < len(start_times) and start_times[index]:
            start_time = start_times[index]
        elif start_times and start_times[0]:
            start_time = start_times[0]
        else:
            start_time = event.start_time
        records.append(replace(
            event,
            date=day,
            title=title,
            start_time=start_time,
            series_id=series_id,
            external_links=list(event.external_links),
        ))
    return records


def dates_in_range(start: date, end: date) -> List[str]:
    """All YYYY-MM-DD dates from start to end inclusive."""
    days = []
    current = start
    while current <= end:
        days.append(current.isoformat())
        current += timedelta(days=1)
    return days


def decode_entities(text: str) -> str:
    """
    Decode HTML/XML character entities (named, decimal, hex).

    Non-breaking spaces, as entity or literal, become regular spaces.
    """
    if not text:
        return text
    return html.unescape(text).replace('\u00a0', ' ')


def strip_html_tags(markup: str, br_replacement: str = ' ') -> str:
    """
    Reduce an HTML fragment to clean text.

    Script and style blocks are removed with their content, <br> becomes
    br_replacement, NBSP becomes a space and whitespace is collapsed.

    Args:
        markup: HTML fragment
        br_replacement: Text substituted for each <br> (default: space)

    Returns:
        Cleaned text
    """
    if not markup:
        return ''
    soup = BeautifulSoup(markup, 'html.parser')
    for element in soup.find_all(['script', 'style']):
        element.decompose()
    for br in soup.find_all('br'):
        br.replace_with(br_replacement)

    text = soup.get_text().replace('\u00a0', ' ')
    text = re.sub(r'[ \t\r\f\v]+', ' ', text)
    text = re.sub(r' *\n *', '\n', text)
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text.strip()


def truncate(text: Optional[str], limit: int = MAX_DESCRIPTION_LENGTH) -> Optional[str]:
    if text is None:
        return None
    return text[:limit]


def clean_description(markup: Optional[str], br_replacement: str = '\n') -> Optional[str]:
    """
    Prepare free text for storage as a description.

    Args:
        markup: Raw text or HTML
        br_replacement: Separator for line-break markup

    Returns:
        Cleaned, truncated text, or None when nothing is left
    """
    if not markup:
        return None
    return truncate(strip_html_tags(markup, br_replacement)) or None


def google_maps_search_url(query: str) -> str:
    """Build a Google Maps search URL for a location string."""
    return f"https://www.google.com/maps/search/?api=1&query={quote(query, safe='')}"


_RUN_NUMBER_RE = re.compile(r'#\s*(\d+)')
_HARES_RE = re.compile(r'^\s*(?:hares?|who)\s*[:\-]\s*(.+?)\s*$', re.IGNORECASE | re.MULTILINE)


def extract_run_number(text: Optional[str]) -> Optional[int]:
    """Pull a run number written as "#123" out of free text."""
    if not text:
        return None
    match = _RUN_NUMBER_RE.search(text)
    return int(match.group(1)) if match else None


def extract_hares(text: Optional[str]) -> Optional[str]:
    """
    Find a "Hare(s): ..." or "Who: ..." line in a description.

    Args:
        text: Plain-text description

    Returns:
        The hare names, or None when no such line exists
    """
    if not text:
        return None
    match = _HARES_RE.search(text)
    if not match:
        return None
    return match.group(1).strip() or None
