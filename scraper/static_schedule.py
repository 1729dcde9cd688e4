"""Static schedule adapter: recurring runs generated from an RRULE, no network I/O."""
import logging
from datetime import datetime, time as dt_time
from typing import List, Optional

from dateutil import parser as date_parser
from dateutil.rrule import rrulestr

from processor.config import SourceConfigError
from processor.models import RawEvent, ScrapeResult, Source, SourceType
from processor.normalize import build_date_window, google_maps_search_url, normalize_time
from scraper.base import SourceAdapter

logger = logging.getLogger(__name__)


def generate_occurrences(rule: str, window_start: datetime, window_end: datetime,
                         anchor: Optional[datetime] = None) -> List[str]:
    """
    Expand an RRULE over a date window.

    Args:
        rule: RRULE body, e.g. "FREQ=WEEKLY;BYDAY=SA" or "FREQ=MONTHLY;BYDAY=2SA"
        window_start: First day of the window
        window_end: Last day of the window
        anchor: Series start for INTERVAL alignment (default: window start)

    Returns:
        YYYY-MM-DD dates, in order

    Raises:
        ValueError: If the rule cannot be parsed
    """
    rule = rule.strip()
    if rule.upper().startswith('RRULE:'):
        rule = rule[6:]
    start = datetime.combine(window_start.date(), dt_time.min)
    end = datetime.combine(window_end.date(), dt_time.max)
    dtstart = datetime.combine(anchor.date(), dt_time.min) if anchor else start

    recurrence = rrulestr(rule, dtstart=dtstart)
    return [occurrence.date().isoformat() for occurrence in recurrence.between(start, end, inc=True)]


class StaticScheduleAdapter(SourceAdapter):
    """Generates events for kennels that run on a fixed schedule with no scrapeable site."""

    source_type = SourceType.STATIC_SCHEDULE

    def fetch(self, source: Source, days: Optional[int] = None) -> ScrapeResult:
        try:
            config = self.load_config(source, {'kennelTag': 'string', 'rrule': 'string'})
        except SourceConfigError as e:
            return self.fetch_failure(str(e), url=source.url)

        window_days = self.window_days(source, days)
        window = build_date_window(window_days)

        try:
            anchor = date_parser.isoparse(config['anchorDate']) if config.get('anchorDate') else None
            occurrences = generate_occurrences(config['rrule'], window.min_date, window.max_date, anchor)
        except (ValueError, TypeError) as e:
            return self.fetch_failure(f'Invalid RRULE "{config["rrule"]}": {e}')

        start_time = normalize_time(config['startTime']) if config.get('startTime') else None
        location = config.get('defaultLocation')
        events = [
            RawEvent(
                date=occurrence,
                kennel_tag=config['kennelTag'],
                title=config.get('defaultTitle'),
                description=config.get('defaultDescription'),
                location=location,
                location_url=google_maps_search_url(location) if location else None,
                start_time=start_time,
                source_url=source.url or None,
            )
            for occurrence in occurrences
        ]

        logger.info(f"Generated {len(events)} occurrences for {config['kennelTag']}")
        return ScrapeResult(
            events=events,
            errors=[],
            diagnostic_context={
                'rrule': config['rrule'],
                'eventsParsed': len(events),
                'windowDays': window_days,
                'windowStart': window.min_date.isoformat(),
                'windowEnd': window.max_date.isoformat(),
            },
        )
