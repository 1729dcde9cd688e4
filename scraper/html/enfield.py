"""Enfield Hash (EH3) run announcements."""
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from bs4 import BeautifulSoup

from processor.models import ErrorDetails, RawEvent, ScrapeResult, Source, SourceType
from processor.normalize import (
    MONTHS,
    build_date_window,
    decode_entities,
    format_date,
    infer_year,
    parse_12_hour_time,
)
from processor.structure_hash import generate_structure_hash
from scraper.base import SourceAdapter, build_result
from scraper.blogger_api import fetch_blogger_posts
from scraper.safe_fetch import fetch_with_url_variants

logger = logging.getLogger(__name__)

DEFAULT_URL = 'https://www.enfieldhash.org/'
KENNEL_TAG = 'EH3'
# Third Wednesday, 7:30 PM
DEFAULT_START_TIME = '19:30'

BROWSER_HEADERS = {
    'User-Agent': (
        'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
        '(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36'
    ),
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
    'Accept-Language': 'en-GB,en;q=0.9',
    'Cache-Control': 'max-age=0',
    'Upgrade-Insecure-Requests': '1',
}

_NUMERIC_DATE_RE = re.compile(r'(\d{1,2})/(\d{1,2})/(\d{4})')
_UK_DATE_RE = re.compile(r'(?<!\d)(\d{1,2})(?:st|nd|rd|th)?\s+([A-Za-z]+)\s+(\d{4})')
_US_DATE_RE = re.compile(r'([A-Za-z]+)\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})')
_NO_YEAR_DATE_RE = re.compile(r'(?<!\d)(\d{1,2})(?:st|nd|rd|th)?\s+([A-Za-z]+)(?!\s+\d{4})')

_LABELS = r'(?:Date|When|Pub|Where|Location|Venue|Station|Hares?|Start|Time|Meet)\s*:'
_STOP = rf'(?={_LABELS}|\n|$)'
_DATE_LABEL_RE = re.compile(rf'(?:Date|When):\s*(.+?){_STOP}', re.IGNORECASE)
_HARE_LABEL_RE = re.compile(rf'Hares?:\s*(.+?){_STOP}', re.IGNORECASE)
_PUB_LABEL_RE = re.compile(rf'(?:Pub|Where|Location|Venue):\s*(.+?){_STOP}', re.IGNORECASE)
_STATION_LABEL_RE = re.compile(rf'Station:\s*(.+?){_STOP}', re.IGNORECASE)
_TIME_LABEL_RE = re.compile(rf'(?:Start|Time|Meet):\s*(.+?){_STOP}', re.IGNORECASE)
_PROSE_STATION_RE = re.compile(r'trail from\s+(.+?)\s+station', re.IGNORECASE)
_PROSE_LOCATION_RE = re.compile(r'running from\s+(.+?)(?:[,.]|$)', re.IGNORECASE | re.MULTILINE)
_PLACEHOLDER_RE = re.compile(r'tba|tbd|tbc|needed|required', re.IGNORECASE)
_RUN_NUMBER_RE = re.compile(r'Run\s+(\d+)', re.IGNORECASE)
_ON_ON_RE = re.compile(r'^on\s*on$', re.IGNORECASE)


@dataclass
class EnfieldPost:
    title: str
    body: str
    url: str


def parse_enfield_date(text: str, now: Optional[datetime] = None) -> Optional[str]:
    """
    Parse a date from Enfield Hash text into YYYY-MM-DD.

    Accepts "18/03/2026", "Wednesday 18th March 2026", "March 18, 2026" and
    the year-less "Wed 25 February", whose year comes from infer_year().
    """
    text = text or ''
    match = _NUMERIC_DATE_RE.search(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        parsed = format_date(year, month, day)
        if parsed:
            return parsed

    match = _UK_DATE_RE.search(text)
    if match and MONTHS.get(match.group(2).lower()):
        parsed = format_date(int(match.group(3)), MONTHS[match.group(2).lower()], int(match.group(1)))
        if parsed:
            return parsed

    match = _US_DATE_RE.search(text)
    if match and MONTHS.get(match.group(1).lower()):
        parsed = format_date(int(match.group(3)), MONTHS[match.group(1).lower()], int(match.group(2)))
        if parsed:
            return parsed

    for match in _NO_YEAR_DATE_RE.finditer(text):
        month = MONTHS.get(match.group(2).lower())
        if not month:
            continue
        day = int(match.group(1))
        parsed = format_date(infer_year(month, day, now), month, day)
        if parsed:
            return parsed
    return None


def _not_placeholder(value: Optional[str]) -> Optional[str]:
    if value and not re.match(r'^(tba|tbd|tbc)', value, re.IGNORECASE):
        return value
    return None


def parse_enfield_body(text: str, now: Optional[datetime] = None) -> dict:
    """
    Pull labeled fields out of a run announcement.

    Handles "Date:", "Hare:", "Pub:" and "Station:" labels, plus prose such as
    "P trail from Gordon Hill station" and "running from The Wonder".

    Returns:
        Dict with any of date, hares, location, station, start_time
    """
    text = text or ''
    fields = {}

    date_label = _DATE_LABEL_RE.search(text)
    fields['date'] = parse_enfield_date(date_label.group(1).strip() if date_label else text, now)

    hare = _HARE_LABEL_RE.search(text)
    if hare and not _PLACEHOLDER_RE.search(hare.group(1)):
        fields['hares'] = hare.group(1).strip()

    pub = _PUB_LABEL_RE.search(text)
    location = pub.group(1).strip() if pub else None
    if not location:
        prose = _PROSE_LOCATION_RE.search(text)
        location = prose.group(1).strip() if prose else None
    fields['location'] = _not_placeholder(location)

    station = _STATION_LABEL_RE.search(text) or _PROSE_STATION_RE.search(text)
    fields['station'] = _not_placeholder(station.group(1).strip() if station else None)

    start = _TIME_LABEL_RE.search(text)
    fields['start_time'] = parse_12_hour_time(start.group(1)) if start else None

    return {key: value for key, value in fields.items() if value}


def extract_posts(html: str, page_url: str) -> List[EnfieldPost]:
    """
    Split the page into posts.

    The current site uses .paragraph-box blocks with an <h1> title and <p>
    paragraphs; older Blogger layouts use .post-outer or .post/.blog-post.
    """
    soup = BeautifulSoup(html, 'html.parser')
    containers = (soup.select('.paragraph-box')
                  or soup.select('.post-outer')
                  or soup.select('.post, .blog-post'))

    posts = []
    for container in containers:
        url = page_url
        heading = container.find('h1')
        title = decode_entities(heading.get_text(strip=True)) if heading else ''
        if not title:
            link = container.select_one('.post-title a, .entry-title a, h3.post-title a')
            if link is not None:
                title = link.get_text(strip=True)
                url = link.get('href') or page_url
            else:
                fallback = container.select_one('.post-title, .entry-title, h3')
                title = fallback.get_text(strip=True) if fallback else ''

        paragraphs = [p.get_text(strip=True) for p in container.find_all('p')]
        if paragraphs:
            body = '\n'.join(text for text in paragraphs if text and not _ON_ON_RE.match(text))
        else:
            body_el = container.select_one('.post-body, .entry-content')
            body = body_el.get_text('\n') if body_el else ''
        posts.append(EnfieldPost(title=title, body=body, url=url))
    return posts


def post_to_event(post: EnfieldPost, now: Optional[datetime] = None) -> Optional[RawEvent]:
    """
    Build an event from one post.

    Returns None for an empty post.

    Raises:
        ValueError: If a non-empty post carries no recognizable date
    """
    fields = parse_enfield_body(post.body, now)
    date_str = fields.get('date') or parse_enfield_date(post.title, now)
    if not date_str:
        if not post.body.strip():
            return None
        raise ValueError(f"No date found in post: {post.title or '(untitled)'}")

    run_match = _RUN_NUMBER_RE.search(post.title)
    run_number = int(run_match.group(1)) if run_match else None
    parts = []
    if run_number:
        parts.append(f"Run #{run_number}")
    if fields.get('station'):
        parts.append(f"Nearest station: {fields['station']}")

    return RawEvent(
        date=date_str,
        kennel_tag=KENNEL_TAG,
        run_number=run_number,
        title=post.title or None,
        description='. '.join(parts) or None,
        hares=fields.get('hares'),
        location=fields.get('location'),
        start_time=fields.get('start_time') or DEFAULT_START_TIME,
        source_url=post.url,
    )


class EnfieldHashAdapter(SourceAdapter):
    """
    Scrapes enfieldhash.org, falling back to the Blogger API when every
    URL variant refuses the request and GOOGLE_API_KEY is set.
    """

    source_type = SourceType.HTML_SCRAPER

    def fetch(self, source: Source, days: Optional[int] = None) -> ScrapeResult:
        base_url = source.url or DEFAULT_URL
        window = build_date_window(self.window_days(source, days))
        error_details = ErrorDetails()

        logger.info(f"Fetching Enfield Hash page {base_url}")
        fetch_start = time.monotonic()
        fetched = fetch_with_url_variants(
            base_url, error_details,
            session=self.session, timeout=self.timeout, headers=BROWSER_HEADERS,
        )

        structure_hash = None
        fetch_method = 'html-scrape'
        if fetched:
            response, fetch_url = fetched
            html = response.text
            structure_hash = generate_structure_hash(html)
            posts = extract_posts(html, fetch_url)
        elif self.settings.google_api_key:
            logger.info(f"HTML fetch failed for {base_url}, trying Blogger API")
            fetch_method = 'blogger-api'
            blogger = fetch_blogger_posts(base_url, self.settings.google_api_key,
                                          session=self.session, timeout=self.timeout)
            if blogger.error:
                error_details.fetch.append(blogger.error)
                return self._all_failed(error_details, fetch_method)
            posts = [
                EnfieldPost(
                    title=decode_entities(post.title),
                    body=BeautifulSoup(post.content, 'html.parser').get_text('\n'),
                    url=post.url or base_url,
                )
                for post in blogger.posts
            ]
        else:
            return self._all_failed(error_details, fetch_method)
        fetch_duration_ms = int((time.monotonic() - fetch_start) * 1000)

        events: List[RawEvent] = []
        errors: List[str] = []
        skipped_date_range = 0
        for index, post in enumerate(posts):
            try:
                event = post_to_event(post)
            except ValueError as e:
                logger.warning(f"Skipping post {index}: {e}")
                errors.append(f"Could not parse date from post: {post.title or '(untitled)'}")
                error_details.add_parse(
                    index, str(e), section='post', field='date',
                    raw_text=f"Title: {post.title}\n\n{post.body}",
                    partial_data={'kennelTag': KENNEL_TAG, 'title': post.title or None},
                )
                continue
            if event is None:
                continue
            if not window.contains(event.date):
                skipped_date_range += 1
                continue
            events.append(event)

        return build_result(
            events, errors, error_details,
            structure_hash=structure_hash,
            diagnostic_context={
                'fetchMethod': fetch_method,
                'postsFound': len(posts),
                'eventsParsed': len(events),
                'skippedDateRange': skipped_date_range,
                'fetchDurationMs': fetch_duration_ms,
            },
        )

    def _all_failed(self, error_details: ErrorDetails, fetch_method: str) -> ScrapeResult:
        last = error_details.fetch[-1] if error_details.fetch else None
        message = last.message if last else 'Fetch failed'
        logger.error(f"{self.name}: {message}")
        return ScrapeResult(
            events=[],
            errors=[message],
            error_details=error_details,
            diagnostic_context={'fetchMethod': fetch_method},
        )
