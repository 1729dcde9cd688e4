"""MultiHash platform hareline table (sfh3.com/runs)."""
import logging
import re
import time
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from processor.config import SourceConfigError
from processor.models import ErrorDetails, RawEvent, ScrapeResult, Source, SourceType
from processor.normalize import build_date_window, format_date
from processor.structure_hash import generate_structure_hash
from scraper.base import (
    AdapterFetchError,
    SourceAdapter,
    build_result,
    compile_kennel_patterns,
    compile_skip_patterns,
    matches_any,
    record_parse_error,
)
from scraper.ical_feed import parse_ical_summary

logger = logging.getLogger(__name__)

DEFAULT_URL = 'https://www.sfh3.com/runs?kennels=all'

_DATE_RE = re.compile(r'(\d{1,2})/(\d{1,2})/(\d{4})')
_MAPS_HREF_RE = re.compile(r'maps\.google|google\.\w+/maps|goo\.gl/maps', re.IGNORECASE)
_LEADING_KENNEL_RE = re.compile(r'^([A-Za-z0-9-]+)\s*[#:]')


@dataclass
class HarelineRow:
    date_text: str
    title: str
    run_number: Optional[int] = None
    hare: Optional[str] = None
    location_text: Optional[str] = None
    location_url: Optional[str] = None
    detail_url: Optional[str] = None


def parse_multihash_date(text: str) -> Optional[str]:
    """Parse "Monday 3/3/2026", "Mon 3/3/2026" or "03/03/2026"."""
    match = _DATE_RE.search(text or '')
    if not match:
        return None
    month, day, year = (int(part) for part in match.groups())
    return format_date(year, month, day)


def parse_hareline_rows(html: str) -> List[HarelineRow]:
    """
    Parse the first table on the page.

    Columns: Run# | When | Hare | Where | What. The Run# cell may link to the
    run's detail page and the Where cell may link to Google Maps.
    """
    soup = BeautifulSoup(html, 'html.parser')
    table = soup.find('table')
    if table is None:
        return []

    body_rows = table.select('tbody tr')
    target_rows = body_rows or table.find_all('tr')[1:]
    rows = []
    for row in target_rows:
        cells = row.find_all('td')
        if len(cells) < 5:
            continue

        run_text = cells[0].get_text(strip=True)
        detail_link = cells[0].find('a')
        location_link = cells[3].find('a')
        location_href = location_link.get('href') if location_link else None
        date_text = cells[1].get_text(' ', strip=True)
        title = cells[4].get_text(' ', strip=True)
        if not date_text or not title:
            continue

        rows.append(HarelineRow(
            date_text=date_text,
            title=title,
            run_number=int(run_text) if run_text.isdigit() else None,
            hare=cells[2].get_text(' ', strip=True) or None,
            location_text=cells[3].get_text(' ', strip=True) or None,
            location_url=location_href if location_href and _MAPS_HREF_RE.search(location_href) else None,
            detail_url=detail_link.get('href') if detail_link else None,
        ))
    return rows


class MultiHashAdapter(SourceAdapter):
    """
    Hareline table served by the MultiHash platform.

    The What column uses the same "KENNEL #RUN: Title" form as the platform's
    iCal SUMMARY, so kennel tags resolve through the same patterns.
    Config: {kennelPatterns?, defaultKennelTag?, skipPatterns?}.
    """

    source_type = SourceType.HTML_SCRAPER

    def fetch(self, source: Source, days: Optional[int] = None) -> ScrapeResult:
        config = source.config if isinstance(source.config, dict) else {}
        try:
            self.check_patterns(config)
            patterns = compile_kennel_patterns(config.get('kennelPatterns'))
            skip_patterns = compile_skip_patterns(config.get('skipPatterns'))
        except SourceConfigError as e:
            return self.fetch_failure(str(e), url=source.url)
        default_tag = config.get('defaultKennelTag')
        window = build_date_window(self.window_days(source, days))
        url = source.url or DEFAULT_URL

        logger.info(f"Fetching hareline {url}")
        fetch_start = time.monotonic()
        try:
            response = self.fetch_page(url)
        except AdapterFetchError as e:
            return self.fetch_failure(e.message, url=e.url, status=e.status)
        fetch_duration_ms = int((time.monotonic() - fetch_start) * 1000)

        html = response.text
        structure_hash = generate_structure_hash(html)
        rows = parse_hareline_rows(html)

        events: List[RawEvent] = []
        errors: List[str] = []
        error_details = ErrorDetails()
        skipped_pattern = 0
        skipped_date_range = 0

        for index, row in enumerate(rows):
            raw_text = (
                f"Date: {row.date_text} | Title: {row.title} | "
                f"Location: {row.location_text or ''} | Hare: {row.hare or ''}"
            )
            if matches_any(row.title, skip_patterns):
                skipped_pattern += 1
                continue

            date_str = parse_multihash_date(row.date_text)
            if not date_str:
                record_parse_error(
                    errors, error_details, index, f'Could not parse date: "{row.date_text}"',
                    section='hareline', field='date', raw_text=raw_text,
                )
                continue
            if not window.contains(date_str):
                skipped_date_range += 1
                continue

            kennel_tag, run_number, title = parse_ical_summary(row.title, patterns, default_tag)
            if not kennel_tag:
                leading = _LEADING_KENNEL_RE.match(row.title)
                kennel_tag = leading.group(1) if leading else None
            if not kennel_tag:
                record_parse_error(
                    errors, error_details, index, f'No kennel tag for "{row.title}"',
                    section='hareline', field='kennelTag', raw_text=raw_text,
                    partial_data={'date': date_str, 'title': row.title},
                )
                continue

            try:
                events.append(RawEvent(
                    date=date_str,
                    kennel_tag=kennel_tag,
                    run_number=row.run_number or run_number,
                    title=title or row.title,
                    hares=row.hare,
                    location=row.location_text,
                    location_url=row.location_url,
                    source_url=urljoin(url, row.detail_url) if row.detail_url else url,
                ))
            except ValueError as e:
                record_parse_error(errors, error_details, index, str(e),
                                   section='hareline', raw_text=raw_text)

        logger.info(f"Parsed {len(events)} events from {len(rows)} hareline rows")
        return build_result(
            events, errors, error_details,
            structure_hash=structure_hash,
            diagnostic_context={
                'itemsFound': len(rows),
                'eventsParsed': len(events),
                'skippedPattern': skipped_pattern,
                'skippedDateRange': skipped_date_range,
                'fetchDurationMs': fetch_duration_ms,
                'contentBytes': len(html),
            },
        )
