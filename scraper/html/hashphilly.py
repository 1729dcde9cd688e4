"""Philly H3 next-hash page: a single upcoming trail as label:value text."""
import logging
import re
from typing import List, Optional

from bs4 import BeautifulSoup

from processor.models import ErrorDetails, RawEvent, ScrapeResult, Source, SourceType
from processor.normalize import (
    MONTHS,
    build_date_window,
    format_date,
    google_maps_search_url,
    parse_12_hour_time,
)
from processor.structure_hash import generate_structure_hash
from scraper.base import AdapterFetchError, SourceAdapter, build_result

logger = logging.getLogger(__name__)

DEFAULT_URL = 'https://hashphilly.com/nexthash/'
DEFAULT_KENNEL_TAG = 'Philly H3'

_DATE_RE = re.compile(r'([A-Za-z]+)\s+(\d{1,2}),?\s*(\d{4})')


def parse_philly_date(text: str) -> Optional[str]:
    """Parse "Sat, Feb 14, 2026" or "February 14, 2026" into YYYY-MM-DD."""
    match = _DATE_RE.search(text or '')
    if not match:
        return None
    month = MONTHS.get(match.group(1).lower())
    if not month:
        return None
    return format_date(int(match.group(3)), month, int(match.group(2)))


def _label_value(text: str, label: str) -> Optional[str]:
    match = re.search(rf'{label}:\s*(.+?)(?:\n|$)', text, re.IGNORECASE)
    return match.group(1).strip() if match else None


class HashPhillyAdapter(SourceAdapter):
    """Reads Trail Number, Date, Time and Location fields from the next-hash page."""

    source_type = SourceType.HTML_SCRAPER

    def fetch(self, source: Source, days: Optional[int] = None) -> ScrapeResult:
        config = source.config if isinstance(source.config, dict) else {}
        kennel_tag = config.get('kennelTag') or DEFAULT_KENNEL_TAG
        url = source.url or DEFAULT_URL

        logger.info(f"Fetching Philly next-hash page {url}")

        try:
            response = self.fetch_page(url)
        except AdapterFetchError as e:
            return self.fetch_failure(e.message, url=e.url, status=e.status)

        html = response.text
        structure_hash = generate_structure_hash(html)
        soup = BeautifulSoup(html, 'html.parser')
        body = soup.body or soup
        text = body.get_text('\n')

        errors: List[str] = []
        error_details = ErrorDetails()

        trail_number = re.search(r'Trail\s*Number:\s*(\d+)', text, re.IGNORECASE)
        date_text = _label_value(text, 'Date')
        time_text = _label_value(text, 'Time')
        location = _label_value(text, 'Location')
        fields_found = [
            name for name, value in (
                ('trailNumber', trail_number), ('date', date_text),
                ('time', time_text), ('location', location),
            ) if value
        ]

        if not date_text:
            message = 'No date found on page'
            errors.append(message)
            error_details.add_parse(0, message, section='main', field='date')
            return build_result([], errors, error_details, structure_hash=structure_hash,
                                diagnostic_context={'fieldsFound': fields_found})

        date_str = parse_philly_date(date_text)
        if not date_str:
            message = f'Could not parse date: "{date_text}"'
            errors.append(message)
            error_details.add_parse(0, message, section='main', field='date',
                                    raw_text=date_text, partial_data={'kennelTag': kennel_tag})
            return build_result([], errors, error_details, structure_hash=structure_hash,
                                diagnostic_context={'fieldsFound': fields_found})

        event = RawEvent(
            date=date_str,
            kennel_tag=kennel_tag,
            run_number=int(trail_number.group(1)) if trail_number else None,
            location=location,
            location_url=google_maps_search_url(location) if location else None,
            start_time=parse_12_hour_time(time_text),
            source_url=url,
        )
        window = build_date_window(self.window_days(source, days))
        events = [event] if window.contains(event.date) else []
        return build_result(
            events, errors, error_details,
            structure_hash=structure_hash,
            diagnostic_context={'fieldsFound': fields_found, 'eventsParsed': len(events)},
        )
