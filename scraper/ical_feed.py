"""iCalendar (.ics) feed adapter."""
import logging
import re
import time
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple, Union

from dateutil import tz

from processor.config import SourceConfigError
from processor.models import ErrorDetails, RawEvent, ScrapeResult, Source, SourceType
from processor.normalize import (
    build_date_window,
    clean_description,
    dates_in_range,
    extract_hares,
    google_maps_search_url,
    split_multi_day,
)
from scraper.base import (
    AdapterFetchError,
    SourceAdapter,
    build_result,
    compile_kennel_patterns,
    compile_skip_patterns,
    matches_any,
    record_parse_error,
    resolve_kennel_tag,
)

logger = logging.getLogger(__name__)

_SUMMARY_TITLE_RE = re.compile(r"^[A-Za-z0-9 .'-]+(?:\s*#[\d.A-Za-z]+)?:\s*(.+)$")
_RUN_NUMBER_RE = re.compile(r'#(\d+)')
_DATE_VALUE_RE = re.compile(r'^(\d{4})(\d{2})(\d{2})$')
_DATE_TIME_VALUE_RE = re.compile(r'^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})?(Z)?$')

# A property is stored as (params, value)
Property = Tuple[Dict[str, str], str]


def unfold_lines(text: str) -> List[str]:
    """Join folded content lines (continuations start with a space or tab)."""
    lines: List[str] = []
    for line in text.splitlines():
        if line[:1] in (' ', '\t') and lines:
            lines[-1] += line[1:]
        elif line.strip():
            lines.append(line.rstrip('\r'))
    return lines


def ics_unescape(value: str) -> str:
    return (
        value.replace('\\n', '\n')
        .replace('\\N', '\n')
        .replace('\\,', ',')
        .replace('\\;', ';')
        .replace('\\\\', '\\')
    )


def parse_content_line(line: str) -> Tuple[str, Dict[str, str], str]:
    """
    Split "NAME;PARAM=x;PARAM2=y:value" into its parts.

    Colons inside quoted parameter values do not end the name section.
    """
    in_quotes = False
    split_at = -1
    for index, char in enumerate(line):
        if char == '"':
            in_quotes = not in_quotes
        elif char == ':' and not in_quotes:
            split_at = index
            break
    if split_at < 0:
        raise ValueError(f'Malformed content line: {line[:80]}')

    head, value = line[:split_at], line[split_at + 1:]
    name, *raw_params = head.split(';')
    params = {}
    for raw_param in raw_params:
        key, _, param_value = raw_param.partition('=')
        params[key.upper()] = param_value.strip('"')
    return name.upper(), params, value


def parse_calendar(text: str) -> Tuple[Dict[str, Property], List[Dict[str, Property]]]:
    """
    Parse an iCalendar document into calendar-level properties and VEVENTs.

    Nested components inside a VEVENT (VALARM) are ignored.

    Raises:
        ValueError: If the text is not an iCalendar document
    """
    lines = unfold_lines(text)
    if not lines or lines[0].strip().upper() != 'BEGIN:VCALENDAR':
        raise ValueError('Not an iCalendar document (missing BEGIN:VCALENDAR)')

    calendar_props: Dict[str, Property] = {}
    vevents: List[Dict[str, Property]] = []
    stack: List[str] = []
    current: Optional[Dict[str, Property]] = None

    for line in lines:
        upper = line.strip().upper()
        if upper.startswith('BEGIN:'):
            component = upper[6:]
            stack.append(component)
            if component == 'VEVENT':
                current = {}
            continue
        if upper.startswith('END:'):
            component = upper[4:]
            if stack and stack[-1] == component:
                stack.pop()
            if component == 'VEVENT' and current is not None:
                vevents.append(current)
                current = None
            continue

        try:
            name, params, value = parse_content_line(line)
        except ValueError:
            logger.debug(f"Ignoring malformed iCalendar line: {line[:80]}")
            continue
        if stack and stack[-1] == 'VEVENT' and current is not None:
            current.setdefault(name, (params, value))
        elif stack == ['VCALENDAR']:
            calendar_props.setdefault(name, (params, value))

    return calendar_props, vevents


def parse_ical_datetime(value: str, params: Dict[str, str],
                        calendar_tz: Optional[str] = None) -> Union[date, datetime]:
    """
    Parse a DTSTART/DTEND value.

    Returns a date for VALUE=DATE values, otherwise a datetime holding the
    event's local wall-clock time: TZID times as written, UTC times converted
    to the calendar's X-WR-TIMEZONE when one is declared.

    Raises:
        ValueError: If the value is not a valid date or date-time
    """
    value = value.strip()
    date_match = _DATE_VALUE_RE.match(value)
    if params.get('VALUE') == 'DATE' or date_match:
        if not date_match:
            raise ValueError(f'Invalid DATE value "{value}"')
        return date(*(int(part) for part in date_match.groups()))

    match = _DATE_TIME_VALUE_RE.match(value)
    if not match:
        raise ValueError(f'Invalid DATE-TIME value "{value}"')
    year, month, day, hour, minute = (int(part) for part in match.groups()[:5])
    second = int(match.group(6) or 0)
    parsed = datetime(year, month, day, hour, minute, second)

    if match.group(7):
        parsed = parsed.replace(tzinfo=tz.UTC)
        zone = tz.gettz(calendar_tz) if calendar_tz else None
        if zone is not None:
            parsed = parsed.astimezone(zone)
    elif params.get('TZID'):
        zone = tz.gettz(params['TZID'])
        if zone is not None:
            parsed = parsed.replace(tzinfo=zone)
    return parsed


def parse_ical_summary(summary: str, patterns: List[tuple],
                       default_tag: Optional[str] = None
                       ) -> Tuple[Optional[str], Optional[int], Optional[str]]:
    """
    Split a SUMMARY into kennel tag, run number and title.

        "SFH3 #2285: A Very Heated Rivalry" -> ("SFH3", 2285, "A Very Heated Rivalry")
        "BARH3 #446"                        -> ("BARH3", 446, None)
        "FHAC-U: BAWC 5"                    -> ("FHAC-U", None, "BAWC 5")

    The kennel tag comes from the configured patterns, else default_tag.
    """
    kennel_tag = resolve_kennel_tag(summary, patterns, default_tag)
    run_match = _RUN_NUMBER_RE.search(summary)
    run_number = int(run_match.group(1)) if run_match else None
    title_match = _SUMMARY_TITLE_RE.match(summary)
    title = (title_match.group(1).strip() or None) if title_match else None
    return kennel_tag, run_number, title


def _geo_url(geo: Optional[str]) -> Optional[str]:
    if not geo:
        return None
    parts = re.split(r'[;,]', geo)
    if len(parts) != 2:
        return None
    try:
        lat, lon = float(parts[0]), float(parts[1])
    except ValueError:
        return None
    return google_maps_search_url(f"{lat},{lon}")


class ICalFeedAdapter(SourceAdapter):
    """Fetches events from a public .ics feed."""

    source_type = SourceType.ICAL_FEED

    def fetch(self, source: Source, days: Optional[int] = None) -> ScrapeResult:
        try:
            config = self.load_config(source, {})
            patterns = compile_kennel_patterns(config.get('kennelPatterns'))
            skip_patterns = compile_skip_patterns(config.get('skipPatterns'))
        except SourceConfigError as e:
            return self.fetch_failure(str(e), url=source.url)

        window = build_date_window(self.window_days(source, days))
        default_tag = config.get('defaultKennelTag')

        logger.info(f"Fetching iCal feed {source.url}")
        fetch_start = time.monotonic()
        try:
            response = self.fetch_page(source.url, headers={'Accept': 'text/calendar'})
        except AdapterFetchError as e:
            return self.fetch_failure(f"iCal fetch failed: {e.message}", url=e.url, status=e.status)
        fetch_duration_ms = int((time.monotonic() - fetch_start) * 1000)
        ics_text = response.text

        events: List[RawEvent] = []
        errors: List[str] = []
        error_details = ErrorDetails()

        try:
            calendar_props, vevents = parse_calendar(ics_text)
        except ValueError as e:
            record_parse_error(errors, error_details, 0, str(e), raw_text=ics_text[:2000])
            return build_result(events, errors, error_details)

        calendar_tz = calendar_props.get('X-WR-TIMEZONE', ({}, ''))[1].strip() or None
        skipped_pattern = 0
        skipped_date_range = 0

        for index, vevent in enumerate(vevents, start=1):
            summary = ics_unescape(vevent.get('SUMMARY', ({}, ''))[1]).strip()
            status = vevent.get('STATUS', ({}, ''))[1].strip().upper()
            if status == 'CANCELLED' or not summary:
                continue
            if matches_any(summary, skip_patterns):
                skipped_pattern += 1
                continue

            try:
                parsed = self._build_events(vevent, summary, patterns, default_tag, calendar_tz)
            except ValueError as e:
                start = vevent.get('DTSTART', ({}, ''))[1]
                record_parse_error(
                    errors, error_details, index, str(e),
                    section='vevent',
                    raw_text=f"SUMMARY:{summary}\nDTSTART:{start}",
                    partial_data={'title': summary, 'date': start or None},
                )
                continue

            for event in parsed:
                if window.contains(event.date):
                    events.append(event)
                else:
                    skipped_date_range += 1

        logger.info(f"Parsed {len(events)} events from {len(vevents)} VEVENTs")
        return build_result(
            events, errors, error_details,
            diagnostic_context={
                'url': source.url,
                'itemsFound': len(vevents),
                'eventsParsed': len(events),
                'skippedPattern': skipped_pattern,
                'skippedDateRange': skipped_date_range,
                'fetchDurationMs': fetch_duration_ms,
                'contentBytes': len(ics_text),
            },
        )

    def _build_events(self, vevent: Dict[str, Property], summary: str,
                      patterns: List[tuple], default_tag: Optional[str],
                      calendar_tz: Optional[str]) -> List[RawEvent]:
        if 'DTSTART' not in vevent:
            raise ValueError('VEVENT has no DTSTART')
        start_params, start_value = vevent['DTSTART']
        start = parse_ical_datetime(start_value, start_params, calendar_tz)

        kennel_tag, run_number, title = parse_ical_summary(summary, patterns, default_tag)
        if not kennel_tag:
            raise ValueError(f'No kennel pattern matched "{summary}" and no defaultKennelTag configured')

        raw_description = ics_unescape(vevent.get('DESCRIPTION', ({}, ''))[1])
        description = clean_description(raw_description)
        location = ics_unescape(vevent.get('LOCATION', ({}, ''))[1]).strip() or None
        location_url = _geo_url(vevent.get('GEO', ({}, ''))[1])
        if location_url is None and location:
            location_url = google_maps_search_url(location)

        if isinstance(start, datetime):
            start_date, start_time = start.date(), start.strftime('%H:%M')
        else:
            start_date, start_time = start, None

        template = RawEvent(
            date=start_date.isoformat(),
            kennel_tag=kennel_tag,
            run_number=run_number,
            title=title or summary,
            description=description,
            hares=extract_hares(raw_description),
            location=location,
            location_url=location_url,
            start_time=start_time,
            source_url=vevent.get('URL', ({}, ''))[1].strip() or None,
        )

        dates = [template.date]
        if not isinstance(start, datetime) and 'DTEND' in vevent:
            end_params, end_value = vevent['DTEND']
            end = parse_ical_datetime(end_value, end_params, calendar_tz)
            if isinstance(end, datetime):
                end = end.date()
            # DTEND of an all-day event is exclusive
            last_day = end - timedelta(days=1)
            if last_day > start:
                dates = dates_in_range(start, last_day)

        uid = vevent.get('UID', ({}, ''))[1].strip() or f"{kennel_tag}-{template.date}"
        return split_multi_day(template, dates, series_id=uid)
