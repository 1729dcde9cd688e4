"""Hash Rego (hashrego.com) adapter: events index plus per-event detail pages."""
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from bs4 import BeautifulSoup

from processor.config import SourceConfigError
from processor.models import ErrorDetails, ExternalLink, RawEvent, ScrapeResult, Source, SourceType
from processor.normalize import build_date_window, dates_in_range, split_multi_day, truncate
from processor.structure_hash import generate_structure_hash
from scraper.base import AdapterFetchError, SourceAdapter, build_result, record_parse_error

logger = logging.getLogger(__name__)

BASE_URL = 'https://hashrego.com'
INDEX_URL = f'{BASE_URL}/events'

_FULL_DATE_RE = re.compile(r'^(\d{1,2})/(\d{1,2})/(\d{2,4})')
_SHORT_DATE_RE = re.compile(r'^(\d{1,2})/(\d{1,2})$')
_TIME_RE = re.compile(r'(\d{1,2}):(\d{2})\s*(AM|PM)', re.IGNORECASE)
_RANGE_RE = re.compile(
    r'(\d{1,2})/(\d{1,2})\s+\d{1,2}:\d{2}\s*(?:AM|PM)\s+to\s+'
    r'(\d{1,2})/(\d{1,2})\s+\d{1,2}:\d{2}\s*(?:AM|PM)',
    re.IGNORECASE,
)
_PER_DAY_TIME_RE = re.compile(r'(\d{1,2}):(\d{2})\s+(?:show|go|start)', re.IGNORECASE)
_MAPS_RE = re.compile(r'maps\.google\.com/maps\?q=([^)\s"]+)')
_ADDRESS_RE = re.compile(
    r'(\d+\s+[\w\s]+(?:St|Ave|Rd|Blvd|Dr|Ln|Way|Pl|Ct|Pkwy|Hwy|Cir)[^,]*,'
    r'\s*\w[\w\s]*,?\s*[A-Z]{2}\s*\d{5})',
    re.IGNORECASE,
)
_EXTRACTED_FIELDS_RE = re.compile(
    r'\*\*(?:Hare\(s\)|Hares|Cost|Where|When):?\*\*:?\s*[^\n]*', re.IGNORECASE
)
_PLAIN_FIELDS_RE = re.compile(
    r'^(?:Hare\(s\)|Hares|Cost|Where|When):?\s+[^\n]*', re.IGNORECASE | re.MULTILINE
)


@dataclass
class IndexEntry:
    """One row of the hashrego.com/events table."""
    slug: str
    kennel_slug: str
    title: str
    start_date: str
    start_time: str = ''
    event_type: str = ''
    cost: str = ''


@dataclass
class ParsedEvent:
    """Fields read from an event detail page."""
    title: str
    kennel_slug: str
    dates: List[str] = field(default_factory=list)
    start_times: List[str] = field(default_factory=list)
    location: Optional[str] = None
    location_url: Optional[str] = None
    hares: Optional[str] = None
    description: Optional[str] = None
    cost: Optional[str] = None


def event_url(slug: str) -> str:
    return f"{BASE_URL}/events/{slug}"


def parse_events_index(html: str) -> List[IndexEntry]:
    """
    Parse the events index table.

    Columns: Event Name | Type | Host Kennel | Start Date | Cost | Rego'd Hashers.
    Rows without an event link or a kennel link are skipped.
    """
    soup = BeautifulSoup(html, 'html.parser')
    entries = []
    for row in soup.select('#eventListTable tbody tr'):
        cells = row.find_all('td')
        if len(cells) < 6:
            continue

        event_link = cells[0].find('a')
        slug_match = re.match(r'^/events/([^/]+)', event_link.get('href', '')) if event_link else None
        if not slug_match:
            continue

        kennel_link = cells[2].find('a')
        kennel_match = re.match(r'^/kennels/([^/]+)', kennel_link.get('href', '')) if kennel_link else None
        if not kennel_match:
            continue

        # Date and time are separated by <br>
        date_parts = [part.strip() for part in cells[3].get_text('\n').split('\n') if part.strip()]

        entries.append(IndexEntry(
            slug=slug_match.group(1),
            kennel_slug=kennel_match.group(1),
            title=event_link.get_text(strip=True),
            start_date=date_parts[0] if date_parts else '',
            start_time=date_parts[1] if len(date_parts) > 1 else '',
            event_type=cells[1].get_text(strip=True),
            cost=cells[4].get_text(strip=True),
        ))
    return entries


def parse_hashrego_date(text: str, reference_year: Optional[int] = None) -> Optional[str]:
    """
    Parse "MM/DD/YY", "MM/DD/YYYY" or, given a reference year, "MM/DD".

    Returns:
        YYYY-MM-DD, or None
    """
    text = (text or '').strip()
    match = _FULL_DATE_RE.match(text)
    if match:
        month, day, year = (int(part) for part in match.groups())
        if year < 100:
            year += 2000
    else:
        match = _SHORT_DATE_RE.match(text)
        if not match or not reference_year:
            return None
        month, day = (int(part) for part in match.groups())
        year = reference_year
    if month < 1 or month > 12 or day < 1 or day > 31:
        return None
    return f"{year:04d}-{month:02d}-{day:02d}"


def parse_hashrego_time(text: str) -> Optional[str]:
    """
    Parse "HH:MM AM/PM" into 24-hour "HH:MM".

    11:59 PM is the site's "no time set" placeholder and yields None.
    """
    match = _TIME_RE.search(text or '')
    if not match:
        return None
    hours = int(match.group(1))
    minutes = int(match.group(2))
    meridiem = match.group(3).upper()
    if meridiem == 'PM' and hours != 12:
        hours += 12
    if meridiem == 'AM' and hours == 12:
        hours = 0
    if hours == 23 and minutes == 59:
        return None
    return f"{hours:02d}:{minutes:02d}"


def _extract_field(text: str, name: str) -> Optional[str]:
    escaped = re.escape(name)
    match = re.search(rf'\*\*{escaped}:?\*\*:?\s*(.+?)(?:\n|$)', text, re.IGNORECASE)
    if match:
        return match.group(1).strip()
    match = re.search(rf'(?:^|\n)\s*{escaped}:?\s+(.+?)(?:\n|$)', text, re.IGNORECASE)
    return match.group(1).strip() if match else None


def _clean_detail_description(text: str) -> Optional[str]:
    cleaned = _EXTRACTED_FIELDS_RE.sub('', text or '')
    cleaned = _PLAIN_FIELDS_RE.sub('', cleaned)
    cleaned = re.sub(r'//maps\.google\.com\S+', '', cleaned)
    cleaned = re.sub(r'\n{3,}', '\n\n', cleaned).strip()
    if len(cleaned) < 10:
        return None
    return truncate(cleaned)


def _extract_dates(description: str, entry: Optional[IndexEntry]):
    if entry is None:
        return [], []

    range_match = _RANGE_RE.search(description)
    year_match = re.search(r'\d{1,2}/\d{1,2}/(\d{2,4})', entry.start_date)
    if range_match and year_match:
        year = int(year_match.group(1))
        if year < 100:
            year += 2000
        start_month, start_day, end_month, end_day = (int(part) for part in range_match.groups())
        try:
            start = date(year, start_month, start_day)
            end = date(year, end_month, end_day)
        except ValueError:
            start = end = None
        if start and end and end >= start:
            dates = dates_in_range(start, end)
            start_times = []
            for time_match in _PER_DAY_TIME_RE.finditer(description):
                hours, minutes = int(time_match.group(1)), int(time_match.group(2))
                # Weekend schedules list evening times without a meridiem
                if 1 <= hours <= 9:
                    hours += 12
                start_times.append(f"{hours:02d}:{minutes:02d}")
            return dates, start_times

    start_date = parse_hashrego_date(entry.start_date)
    if not start_date:
        return [], []
    start_time = parse_hashrego_time(entry.start_time)
    return [start_date], [start_time] if start_time else []


def parse_event_detail(html: str, slug: str, entry: Optional[IndexEntry] = None) -> ParsedEvent:
    """
    Read title, kennel, dates and descriptive fields from an event page.

    The description lives in the og:description meta tag as markdown-like
    text with **Field:** lines.
    """
    soup = BeautifulSoup(html, 'html.parser')

    og_title = soup.find('meta', attrs={'property': 'og:title'})
    title = re.sub(r'^\d{2}/\d{2}\s+', '', (og_title.get('content', '') if og_title else '')).strip()
    if not title and soup.title:
        title = soup.title.get_text(strip=True)
    if not title and entry:
        title = entry.title

    kennel_link = soup.find('a', href=re.compile(r'^/kennels/'))
    kennel_match = re.search(r'/kennels/([^/]+)', kennel_link['href']) if kennel_link else None
    kennel_slug = kennel_match.group(1) if kennel_match else (entry.kennel_slug if entry else '')

    og_description = soup.find('meta', attrs={'property': 'og:description'})
    raw_description = og_description.get('content', '') if og_description else ''

    hares = _extract_field(raw_description, 'Hare(s)') or _extract_field(raw_description, 'Hares')
    cost = _extract_field(raw_description, 'Cost') or (entry.cost if entry else None)
    address_match = _ADDRESS_RE.search(raw_description)
    address = address_match.group(1).strip() if address_match else None
    location = _extract_field(raw_description, 'Where') or address

    maps_match = _MAPS_RE.search(raw_description)
    location_url = f"https://maps.google.com/maps?q={maps_match.group(1)}" if maps_match else None

    dates, start_times = _extract_dates(raw_description, entry)

    return ParsedEvent(
        title=title,
        kennel_slug=kennel_slug,
        dates=dates,
        start_times=start_times,
        location=location,
        location_url=location_url,
        hares=hares,
        description=_clean_detail_description(raw_description),
        cost=cost,
    )


def split_to_raw_events(parsed: ParsedEvent, slug: str) -> List[RawEvent]:
    """One event per date; multi-day events share the slug as series id."""
    if not parsed.dates:
        return []
    url = event_url(slug)
    template = RawEvent(
        date=parsed.dates[0],
        kennel_tag=parsed.kennel_slug,
        title=parsed.title,
        description=parsed.description,
        hares=parsed.hares,
        location=parsed.location,
        location_url=parsed.location_url,
        source_url=url,
        external_links=[ExternalLink(url=url, label='Hash Rego')],
    )
    return split_multi_day(template, parsed.dates, series_id=slug, start_times=parsed.start_times)


def create_from_index(entry: IndexEntry) -> List[RawEvent]:
    """Basic event from index data alone, used when the detail page fails."""
    start_date = parse_hashrego_date(entry.start_date)
    if not start_date:
        return []
    url = event_url(entry.slug)
    return [RawEvent(
        date=start_date,
        kennel_tag=entry.kennel_slug,
        title=entry.title,
        start_time=parse_hashrego_time(entry.start_time),
        source_url=url,
        external_links=[ExternalLink(url=url, label='Hash Rego')],
    )]


class HashRegoAdapter(SourceAdapter):
    """Scrapes hashrego.com listings for the configured kennels."""

    source_type = SourceType.HASHREGO

    def fetch(self, source: Source, days: Optional[int] = None) -> ScrapeResult:
        try:
            config = self.load_config(source, {'kennelSlugs': 'array'})
        except SourceConfigError as e:
            return self.fetch_failure(str(e), url=source.url)

        kennel_slugs = {str(slug).upper() for slug in config['kennelSlugs']}

        window = build_date_window(self.window_days(source, days))
        index_url = source.url or INDEX_URL
        fetch_start = time.monotonic()

        logger.info(f"Fetching Hash Rego index {index_url}")
        try:
            response = self.fetch_page(index_url)
        except AdapterFetchError as e:
            return self.fetch_failure(f"Index fetch failed: {e.message}", url=e.url, status=e.status)
        index_html = response.text
        structure_hash = generate_structure_hash(index_html)

        entries = parse_events_index(index_html)
        matching = [entry for entry in entries if entry.kennel_slug.upper() in kennel_slugs]
        fetch_duration_ms = int((time.monotonic() - fetch_start) * 1000)

        events: List[RawEvent] = []
        errors: List[str] = []
        error_details = ErrorDetails()

        for row, entry in enumerate(matching):
            detail_url = event_url(entry.slug)
            try:
                detail = self.fetch_page(detail_url)
                parsed = parse_event_detail(detail.text, entry.slug, entry)
                produced = split_to_raw_events(parsed, entry.slug)
            except AdapterFetchError as e:
                message = f"Detail fetch failed for {entry.slug}: {e.message}"
                errors.append(message)
                error_details.add_fetch(message, url=detail_url, status=e.status)
                produced = self._fallback(entry, row, errors, error_details)
            except ValueError as e:
                record_parse_error(
                    errors, error_details, row, f"Error processing {entry.slug}: {e}",
                    section=entry.slug,
                    raw_text=f"Slug: {entry.slug}\nTitle: {entry.title}\nDate: {entry.start_date}",
                    partial_data={'kennelTag': entry.kennel_slug, 'title': entry.title},
                )
                produced = self._fallback(entry, row, errors, error_details)

            events.extend(event for event in produced if window.contains(event.date))

        logger.info(f"Parsed {len(events)} events from {len(matching)} Hash Rego listings")
        return build_result(
            events, errors, error_details,
            structure_hash=structure_hash,
            diagnostic_context={
                'itemsFound': len(entries),
                'matchingEntries': len(matching),
                'kennelSlugsConfigured': list(config['kennelSlugs']),
                'eventsParsed': len(events),
                'fetchDurationMs': fetch_duration_ms,
                'contentBytes': len(index_html),
            },
        )

    @staticmethod
    def _fallback(entry: IndexEntry, row: int, errors: List[str],
                  error_details: ErrorDetails) -> List[RawEvent]:
        try:
            return create_from_index(entry)
        except ValueError as e:
            record_parse_error(errors, error_details, row, f"Index data for {entry.slug}: {e}",
                               section=entry.slug)
            return []
