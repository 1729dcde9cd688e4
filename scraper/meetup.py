"""Meetup.com public group events adapter."""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from processor.config import SourceConfigError
from processor.models import ErrorDetails, RawEvent, ScrapeResult, Source, SourceType
from processor.normalize import build_date_window, clean_description, google_maps_search_url
from scraper.base import AdapterFetchError, SourceAdapter, build_result, record_parse_error

logger = logging.getLogger(__name__)

MEETUP_API_BASE = 'https://api.meetup.com'
EVENT_FIELDS = 'id,name,status,time,local_date,local_time,duration,description,venue,link'


def venue_location(venue: Optional[Dict[str, Any]]) -> Optional[str]:
    """Join venue name, street, city and state."""
    if not venue:
        return None
    parts = [venue.get(key) for key in ('name', 'address_1', 'city', 'state')]
    parts = [part for part in parts if part]
    return ', '.join(parts) if parts else None


class MeetupAdapter(SourceAdapter):
    """Reads upcoming and recent events of a public Meetup group."""

    source_type = SourceType.MEETUP

    def fetch(self, source: Source, days: Optional[int] = None) -> ScrapeResult:
        try:
            config = self.load_config(source, {'groupUrlname': 'string', 'kennelTag': 'string'})
        except SourceConfigError as e:
            return self.fetch_failure(str(e), url=source.url)

        window = build_date_window(self.window_days(source, days))
        group = config['groupUrlname']
        api_url = f"{MEETUP_API_BASE}/{quote(group, safe='')}/events"

        logger.info(f"Fetching Meetup events for {group}")
        try:
            response = self.fetch_page(
                api_url,
                headers={'Accept': 'application/json'},
                params={'status': 'upcoming,past', 'page': '100', 'only': EVENT_FIELDS},
            )
            raw_events = response.json()
        except AdapterFetchError as e:
            return self.fetch_failure(
                f'Meetup API error for group "{group}": {e.message}', url=e.url, status=e.status
            )
        except ValueError as e:
            return self.fetch_failure(f"Meetup API returned invalid JSON: {e}", url=api_url)
        if not isinstance(raw_events, list):
            return self.fetch_failure('Meetup API returned a non-list response', url=api_url)

        events: List[RawEvent] = []
        errors: List[str] = []
        error_details = ErrorDetails()
        skipped_date_range = 0

        for index, item in enumerate(raw_events):
            try:
                local_date = item.get('local_date')
                if not local_date:
                    raise ValueError('Event has no local_date')
                if not window.contains(local_date):
                    skipped_date_range += 1
                    continue
                location = venue_location(item.get('venue'))
                events.append(RawEvent(
                    date=local_date,
                    kennel_tag=config['kennelTag'],
                    title=item.get('name') or None,
                    description=clean_description(item.get('description'), br_replacement=' '),
                    location=location,
                    location_url=google_maps_search_url(location) if location else None,
                    start_time=item.get('local_time') or None,
                    source_url=item.get('link'),
                ))
            except (ValueError, AttributeError) as e:
                event_id = item.get('id') if isinstance(item, dict) else None
                record_parse_error(
                    errors, error_details, index, f'Failed to parse event "{event_id}": {e}',
                )

        return build_result(
            events, errors, error_details,
            diagnostic_context={
                'groupUrlname': group,
                'itemsFound': len(raw_events),
                'eventsParsed': len(events),
                'skippedDateRange': skipped_date_range,
            },
        )
