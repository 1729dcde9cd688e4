"""Generic HTML adapter: schema.org Event records embedded as JSON-LD."""
import json
import logging
import re
import time
from typing import Any, Dict, Iterator, List, Optional, Tuple

from bs4 import BeautifulSoup

from processor.models import ErrorDetails, RawEvent, ScrapeResult, Source, SourceType
from processor.normalize import build_date_window, clean_description, google_maps_search_url
from processor.structure_hash import generate_structure_hash
from scraper.base import AdapterFetchError, SourceAdapter, build_result, record_parse_error

logger = logging.getLogger(__name__)

_ISO_START_RE = re.compile(r'^(\d{4}-\d{2}-\d{2})(?:[T ](\d{2}):(\d{2}))?')


def _is_event(node: Dict[str, Any]) -> bool:
    node_type = node.get('@type')
    types = node_type if isinstance(node_type, list) else [node_type]
    return any(isinstance(value, str) and value.endswith('Event') for value in types)


def iter_json_ld_events(data: Any) -> Iterator[Dict[str, Any]]:
    """Yield every schema.org *Event node in a JSON-LD document, including @graph members."""
    if isinstance(data, list):
        for item in data:
            yield from iter_json_ld_events(item)
    elif isinstance(data, dict):
        if _is_event(data):
            yield data
        if '@graph' in data:
            yield from iter_json_ld_events(data['@graph'])


def split_start_date(value: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Local date and HH:MM time from a schema.org startDate, ignoring any offset.

    Raises:
        ValueError: If the value is not an ISO 8601 date
    """
    match = _ISO_START_RE.match(value.strip() if isinstance(value, str) else '')
    if not match:
        raise ValueError(f'Unparseable startDate "{value}"')
    start_time = f"{match.group(2)}:{match.group(3)}" if match.group(2) else None
    return match.group(1), start_time


def _text(value: Any) -> Optional[str]:
    return (value.strip() or None) if isinstance(value, str) else None


def location_text(location: Any) -> Optional[str]:
    """Flatten a schema.org location (string, Place, or list of them)."""
    if isinstance(location, list):
        parts = [location_text(item) for item in location]
        return ', '.join(part for part in parts if part) or None
    if isinstance(location, str):
        return location.strip() or None
    if not isinstance(location, dict):
        return None

    parts = [location.get('name')]
    address = location.get('address')
    if isinstance(address, dict):
        parts.extend(address.get(key) for key in
                     ('streetAddress', 'addressLocality', 'addressRegion', 'postalCode'))
    elif isinstance(address, str):
        parts.append(address)
    parts = [part.strip() for part in parts if isinstance(part, str) and part.strip()]
    return ', '.join(dict.fromkeys(parts)) or None


class GenericHtmlAdapter(SourceAdapter):
    """Default HTML adapter. Config: {"kennelTag": "..."} (optional)."""

    source_type = SourceType.HTML_SCRAPER

    def fetch(self, source: Source, days: Optional[int] = None) -> ScrapeResult:
        config = source.config if isinstance(source.config, dict) else {}
        kennel_tag = config.get('kennelTag')
        window = build_date_window(self.window_days(source, days))

        logger.info(f"Fetching {source.url}")
        fetch_start = time.monotonic()
        try:
            response = self.fetch_page(source.url)
        except AdapterFetchError as e:
            return self.fetch_failure(e.message, url=e.url, status=e.status)
        fetch_duration_ms = int((time.monotonic() - fetch_start) * 1000)

        html = response.text
        structure_hash = generate_structure_hash(html)
        soup = BeautifulSoup(html, 'html.parser')

        events: List[RawEvent] = []
        errors: List[str] = []
        error_details = ErrorDetails()
        items_found = 0
        skipped_date_range = 0

        for block_index, script in enumerate(soup.find_all('script', type='application/ld+json')):
            raw = script.string or script.get_text()
            try:
                data = json.loads(raw)
            except ValueError as e:
                record_parse_error(
                    errors, error_details, block_index, f"Invalid JSON-LD block: {e}",
                    section='json-ld', raw_text=raw,
                )
                continue

            for node in iter_json_ld_events(data):
                row = items_found
                items_found += 1
                try:
                    event = self._build_event(node, kennel_tag, source.url)
                except (ValueError, TypeError) as e:
                    record_parse_error(
                        errors, error_details, row, str(e),
                        section='json-ld',
                        raw_text=json.dumps(node)[:2000],
                        partial_data={'title': node.get('name')},
                    )
                    continue
                if not window.contains(event.date):
                    skipped_date_range += 1
                    continue
                events.append(event)

        logger.info(f"Parsed {len(events)} events from {items_found} JSON-LD event nodes")
        return build_result(
            events, errors, error_details,
            structure_hash=structure_hash,
            diagnostic_context={
                'itemsFound': items_found,
                'eventsParsed': len(events),
                'skippedDateRange': skipped_date_range,
                'fetchDurationMs': fetch_duration_ms,
                'contentBytes': len(html),
            },
        )

    @staticmethod
    def _build_event(node: Dict[str, Any], kennel_tag: Optional[str], page_url: str) -> RawEvent:
        date_str, start_time = split_start_date(node.get('startDate'))

        organizer = node.get('organizer')
        organizer_name = _text(organizer.get('name')) if isinstance(organizer, dict) else None
        tag = kennel_tag or organizer_name
        if not tag:
            raise ValueError('No kennelTag configured and event has no organizer name')

        location = location_text(node.get('location'))
        return RawEvent(
            date=date_str,
            kennel_tag=tag,
            title=_text(node.get('name')),
            description=clean_description(_text(node.get('description'))),
            location=location,
            location_url=google_maps_search_url(location) if location else None,
            start_time=start_time,
            source_url=_text(node.get('url')) or page_url,
        )
