"""Google Calendar API v3 adapter."""
import logging
import re
import time
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from processor.config import SourceConfigError
from processor.models import ErrorDetails, RawEvent, ScrapeResult, Source, SourceType
from processor.normalize import (
    build_date_window,
    clean_description,
    extract_hares,
    extract_run_number,
    google_maps_search_url,
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

CALENDAR_API_BASE = 'https://www.googleapis.com/calendar/v3/calendars'
PAGE_SIZE = 250

_DATE_TIME_RE = re.compile(r'^(\d{4}-\d{2}-\d{2})T(\d{2}):(\d{2})')


def extract_date_time(start: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """
    Read the local date and start time from a Calendar API start object.

    Timed events carry an offset-qualified dateTime whose local part is used
    as-is; all-day events carry a plain date and no time.
    """
    if not isinstance(start, dict):
        return None, None
    date_time = start.get('dateTime')
    if isinstance(date_time, str) and date_time:
        match = _DATE_TIME_RE.match(date_time)
        if match:
            return match.group(1), f"{match.group(2)}:{match.group(3)}"
        return date_time[:10], None
    return start.get('date'), None


class GoogleCalendarAdapter(SourceAdapter):
    """Fetches events from a public Google Calendar. source.url is the calendar ID."""

    source_type = SourceType.GOOGLE_CALENDAR

    def fetch(self, source: Source, days: Optional[int] = None) -> ScrapeResult:
        try:
            config = self.load_config(source, {})
            patterns = compile_kennel_patterns(config.get('kennelPatterns'))
            skip_patterns = compile_skip_patterns(config.get('skipPatterns'))
        except SourceConfigError as e:
            return self.fetch_failure(str(e), url=source.url)

        api_key = self.settings.google_api_key
        if not api_key:
            return self.fetch_failure('Missing GOOGLE_API_KEY environment variable')

        window = build_date_window(self.window_days(source, days))
        default_tag = config.get('defaultKennelTag')

        url = f"{CALENDAR_API_BASE}/{quote(source.url, safe='')}/events"
        params = {
            'key': api_key,
            'timeMin': window.min_date.strftime('%Y-%m-%dT00:00:00Z'),
            'timeMax': window.max_date.strftime('%Y-%m-%dT23:59:59Z'),
            'singleEvents': 'true',
            'orderBy': 'startTime',
            'maxResults': str(PAGE_SIZE),
        }

        events: List[RawEvent] = []
        errors: List[str] = []
        error_details = ErrorDetails()
        items_found = 0
        pages = 0
        skipped_pattern = 0
        skipped_date_range = 0
        fetch_start = time.monotonic()

        logger.info(f"Fetching Google Calendar {source.url}")
        while True:
            try:
                response = self.fetch_page(url, params=params)
                data = response.json()
            except AdapterFetchError as e:
                message = f"Google Calendar API: {e.message}"
                errors.append(message)
                error_details.add_fetch(message, url=url, status=e.status)
                break
            except ValueError as e:
                message = f"Google Calendar API returned invalid JSON: {e}"
                errors.append(message)
                error_details.add_fetch(message, url=url)
                break

            if not isinstance(data, dict) or not isinstance(data.get('items') or [], list):
                message = 'Google Calendar API returned an unexpected response shape'
                errors.append(message)
                error_details.add_fetch(message, url=url)
                break

            pages += 1
            items = data.get('items') or []
            for index, item in enumerate(items):
                row = items_found + index
                if not isinstance(item, dict):
                    record_parse_error(errors, error_details, row, 'Calendar item is not an object',
                                       section='calendar_events', raw_text=str(item))
                    continue
                summary = str(item.get('summary') or '')
                if item.get('status') == 'cancelled' or not summary:
                    continue
                if matches_any(summary, skip_patterns):
                    skipped_pattern += 1
                    continue
                try:
                    event = self._build_event(item, patterns, default_tag)
                except (ValueError, TypeError, KeyError, AttributeError) as e:
                    start = item.get('start') if isinstance(item.get('start'), dict) else {}
                    record_parse_error(
                        errors, error_details, row, str(e),
                        section='calendar_events',
                        raw_text=f"Summary: {summary}\nStart: {start.get('dateTime') or start.get('date') or ''}",
                        partial_data={'title': summary},
                    )
                    continue
                if not window.contains(event.date):
                    skipped_date_range += 1
                    continue
                events.append(event)
            items_found += len(items)

            page_token = data.get('nextPageToken')
            if not page_token:
                break
            params['pageToken'] = page_token

        logger.info(f"Parsed {len(events)} events from {items_found} calendar items")
        return build_result(
            events, errors, error_details,
            diagnostic_context={
                'calendarId': source.url,
                'pagesProcessed': pages,
                'itemsFound': items_found,
                'eventsParsed': len(events),
                'skippedPattern': skipped_pattern,
                'skippedDateRange': skipped_date_range,
                'fetchDurationMs': int((time.monotonic() - fetch_start) * 1000),
            },
        )

    def _build_event(self, item: Dict[str, Any], patterns, default_tag) -> RawEvent:
        summary = str(item['summary'])
        date_str, start_time = extract_date_time(item.get('start') or {})
        if not date_str:
            raise ValueError('Event has no start date')

        kennel_tag = resolve_kennel_tag(summary, patterns, default_tag)
        if not kennel_tag:
            raise ValueError(f'No kennel pattern matched "{summary}" and no defaultKennelTag configured')

        description = clean_description(item.get('description'))
        location = item.get('location') or None
        return RawEvent(
            date=date_str,
            kennel_tag=kennel_tag,
            run_number=extract_run_number(summary) or extract_run_number(description),
            title=summary,
            description=description,
            hares=extract_hares(description),
            location=location,
            location_url=google_maps_search_url(location) if location else None,
            start_time=start_time,
            source_url=item.get('htmlLink'),
        )
