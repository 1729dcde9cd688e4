"""RSS 2.0 / Atom feed adapter."""
import logging
from datetime import date
from typing import List, Optional

import feedparser

from processor.config import SourceConfigError
from processor.models import ErrorDetails, RawEvent, ScrapeResult, Source, SourceType
from processor.normalize import build_date_window, clean_description
from scraper.base import AdapterFetchError, SourceAdapter, build_result, record_parse_error

logger = logging.getLogger(__name__)


def entry_date(entry) -> Optional[str]:
    """
    Date of a feed entry from its published (else updated) timestamp, in UTC.

    Returns:
        YYYY-MM-DD, or None when the entry carries no date at all

    Raises:
        ValueError: If the entry has a date string feedparser could not read
    """
    parsed = entry.get('published_parsed') or entry.get('updated_parsed')
    if parsed:
        return date(parsed.tm_year, parsed.tm_mon, parsed.tm_mday).isoformat()
    raw = entry.get('published') or entry.get('updated')
    if raw:
        raise ValueError(f'Unparseable entry date "{raw}"')
    return None


class RssFeedAdapter(SourceAdapter):
    """Assigns every entry of a feed to one configured kennel."""

    source_type = SourceType.RSS_FEED

    def fetch(self, source: Source, days: Optional[int] = None) -> ScrapeResult:
        try:
            config = self.load_config(source, {'kennelTag': 'string'})
        except SourceConfigError as e:
            return self.fetch_failure(str(e), url=source.url)

        window = build_date_window(self.window_days(source, days))

        logger.info(f"Fetching RSS feed {source.url}")
        try:
            response = self.fetch_page(source.url)
        except AdapterFetchError as e:
            return self.fetch_failure(
                f"Failed to fetch RSS feed: {e.message}", url=e.url, status=e.status
            )

        feed = feedparser.parse(response.content)
        events: List[RawEvent] = []
        errors: List[str] = []
        error_details = ErrorDetails()
        skipped_date_range = 0

        if feed.bozo and not feed.entries:
            record_parse_error(
                errors, error_details, 0,
                f"Malformed feed: {feed.get('bozo_exception')}",
                raw_text=response.text[:2000],
            )
            return build_result(events, errors, error_details)

        for index, entry in enumerate(feed.entries):
            title = (entry.get('title') or '').strip() or None
            try:
                date_str = entry_date(entry)
                if date_str is None:
                    continue
                if not window.contains(date_str):
                    skipped_date_range += 1
                    continue
                content = entry.get('content')
                raw_content = content[0].get('value') if content else entry.get('summary')
                events.append(RawEvent(
                    date=date_str,
                    kennel_tag=config['kennelTag'],
                    title=title,
                    description=clean_description(raw_content, br_replacement=' '),
                    source_url=(entry.get('link') or '').strip() or None,
                ))
            except ValueError as e:
                record_parse_error(
                    errors, error_details, index, str(e),
                    partial_data={'title': title},
                )

        logger.info(f"Parsed {len(events)} events from {len(feed.entries)} feed entries")
        return build_result(
            events, errors, error_details,
            diagnostic_context={
                'feedTitle': feed.feed.get('title'),
                'itemsFound': len(feed.entries),
                'eventsParsed': len(events),
                'skippedDateRange': skipped_date_range,
                'contentBytes': len(response.content),
            },
        )
