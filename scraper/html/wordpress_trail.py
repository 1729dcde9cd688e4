"""Trail announcements posted on WordPress kennel sites (ewh3.com, hashphilly.com)."""
import logging
import re
import time
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from processor.models import ErrorDetails, RawEvent, ScrapeResult, Source, SourceType
from processor.normalize import MONTHS, build_date_window, format_date
from processor.structure_hash import generate_structure_hash
from scraper.base import AdapterFetchError, SourceAdapter, build_result
from scraper.wordpress_api import fetch_wordpress_posts

logger = logging.getLogger(__name__)

SITE_DEFAULTS = {
    'ewh3.com': {'kennelTag': 'EWH3', 'defaultStartTime': '18:45'},
    'hashphilly.com': {'kennelTag': 'Philly H3'},
}

ARTICLE_SELECTOR = "article.post, article.type-post, article[class*='post-'], .hentry"

_DATE_TEXT = r'[A-Za-z]+\s+\d{1,2}(?:st|nd|rd|th)?,?\s+\d{4}'
_DATE_RE = re.compile(r'([A-Za-z]+)\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})')
_NUMBERED_TITLE_RE = re.compile(
    rf'^(?P<kennel>[A-Za-z0-9 ]+?)\s*#(?P<run>[\d.]+)\s*:\s*(?P<name>.+?),\s*'
    rf'(?P<date>{_DATE_TEXT}),\s*(?P<metro>.+?)(?:\s*[–—-]\s*(?P=kennel))?$',
    re.IGNORECASE,
)
_UNNUMBERED_TITLE_RE = re.compile(
    rf'^(?P<kennel>[A-Za-z0-9]+)\s+(?P<name>.+?),\s*(?P<date>{_DATE_TEXT}),\s*'
    rf'(?P<metro>.+?)(?:\s*[–—-]\s*(?P=kennel))?$',
    re.IGNORECASE,
)
_METRO_LINES_RE = re.compile(r'^(.+?)\s*\(([^)]+)\)$')
_BODY_LABELS = r'(?:When|Where|Bring|Nearest|Trail Details|Miscellaneous|End Metro|On\s*After|Last Trains|Give Back)'
_HARES_RE = re.compile(rf'Hares?:\s*(.+?)(?={_BODY_LABELS}:|\n|$)', re.IGNORECASE)
_ON_AFTER_RE = re.compile(r'On[- ]?After\*?:\s*(.+?)(?=\n|$)', re.IGNORECASE)
_END_METRO_RE = re.compile(r'End Metro:\s*(.+?)(?=\n|$)', re.IGNORECASE)


@dataclass
class TrailTitle:
    date: Optional[str] = None
    run_number: Optional[float] = None
    trail_name: Optional[str] = None
    metro: Optional[str] = None
    metro_lines: Optional[str] = None

    @property
    def location(self) -> Optional[str]:
        if self.metro and self.metro_lines:
            return f"{self.metro} ({self.metro_lines})"
        return self.metro


def parse_trail_date(text: str) -> Optional[str]:
    """Parse "February 19, 2026", "January 29th, 2026" or "Dec 25 2025"."""
    match = _DATE_RE.search(text or '')
    if not match:
        return None
    month = MONTHS.get(match.group(1).lower())
    if not month:
        return None
    return format_date(int(match.group(3)), month, int(match.group(2)))


def parse_trail_title(title: str) -> Optional[TrailTitle]:
    """
    Parse a trail post title.

    Standard form: "EWH3 #1506: Huaynaputina's Revenge, February 19, 2026,
    NoMa/Gallaudet U (Red Line)". Also handles fractional run numbers and
    the unnumbered "EWH3 Orphan Christmas Trail, Dec 25 2025, Greenbelt".
    Any other title with a date in it yields just the date and the title.

    Returns:
        TrailTitle, or None if the title carries no date
    """
    title = (title or '').strip()
    match = _NUMBERED_TITLE_RE.match(title) or _UNNUMBERED_TITLE_RE.match(title)
    if match:
        metro_raw = match.group('metro').strip()
        metro_match = _METRO_LINES_RE.match(metro_raw)
        run = match.groupdict().get('run')
        try:
            run_number = float(run) if run else None
        except ValueError:
            run_number = None
        return TrailTitle(
            date=parse_trail_date(match.group('date')),
            run_number=run_number,
            trail_name=match.group('name').strip(),
            metro=metro_match.group(1).strip() if metro_match else metro_raw,
            metro_lines=metro_match.group(2).strip() if metro_match else None,
        )

    date_str = parse_trail_date(title)
    if not date_str:
        return None
    return TrailTitle(date=date_str, trail_name=title)


def parse_trail_body(text: str) -> Dict[str, str]:
    """Hares, On After and End Metro fields from a post body."""
    fields = {}
    for key, regex in (('hares', _HARES_RE), ('on_after', _ON_AFTER_RE), ('end_metro', _END_METRO_RE)):
        match = regex.search(text or '')
        if match and match.group(1).strip():
            fields[key] = match.group(1).strip()
    return fields


def site_defaults(url: str) -> Dict[str, str]:
    host = (urlparse(url).hostname or '').lower()
    for domain, defaults in SITE_DEFAULTS.items():
        if host == domain or host.endswith('.' + domain):
            return dict(defaults)
    return {}


class WordPressTrailAdapter(SourceAdapter):
    """
    One event per trail post.

    Reads posts through the WordPress REST API and falls back to the
    article markup of the front page. Config: {kennelTag?, defaultStartTime?},
    defaulted per site.
    """

    source_type = SourceType.HTML_SCRAPER

    def fetch(self, source: Source, days: Optional[int] = None) -> ScrapeResult:
        config = source.config if isinstance(source.config, dict) else {}
        settings = site_defaults(source.url)
        settings.update({key: value for key, value in config.items() if value})
        kennel_tag = settings.get('kennelTag')
        if not kennel_tag:
            return self.fetch_failure(f'{self.name}: no kennelTag configured for {source.url}',
                                      url=source.url)
        window = build_date_window(self.window_days(source, days))

        fetch_start = time.monotonic()
        structure_hash = None
        wordpress = fetch_wordpress_posts(
            source.url, session=self.session, timeout=self.timeout,
            headers={'User-Agent': self.settings.user_agent},
        )
        if wordpress.posts:
            fetch_method = 'wordpress-api'
            posts = [
                (post.title, BeautifulSoup(post.content, 'html.parser').get_text('\n'), post.url)
                for post in wordpress.posts
            ]
        else:
            logger.info(f"WordPress API unavailable for {source.url} "
                        f"({wordpress.error.message if wordpress.error else 'no posts'}), scraping HTML")
            fetch_method = 'html-scrape'
            try:
                response = self.fetch_page(source.url)
            except AdapterFetchError as e:
                return self.fetch_failure(e.message, url=e.url, status=e.status,
                                          diagnostic_context={'fetchMethod': fetch_method})
            structure_hash = generate_structure_hash(response.text)
            posts = self._html_posts(response.text, source.url)
        fetch_duration_ms = int((time.monotonic() - fetch_start) * 1000)

        events: List[RawEvent] = []
        skipped_no_date = 0
        skipped_date_range = 0
        for title, body, post_url in posts:
            parsed = parse_trail_title(title)
            if parsed is None or not parsed.date:
                skipped_no_date += 1
                continue
            if not window.contains(parsed.date):
                skipped_date_range += 1
                continue

            body_fields = parse_trail_body(body)
            parts = [parsed.trail_name] if parsed.trail_name else []
            if body_fields.get('end_metro'):
                parts.append(f"End Metro: {body_fields['end_metro']}")
            if body_fields.get('on_after'):
                parts.append(f"On After: {body_fields['on_after']}")

            events.append(RawEvent(
                date=parsed.date,
                kennel_tag=kennel_tag,
                run_number=int(parsed.run_number) if parsed.run_number else None,
                title=parsed.trail_name,
                description=' | '.join(parts) if len(parts) > 1 else None,
                hares=body_fields.get('hares'),
                location=parsed.location,
                start_time=settings.get('defaultStartTime'),
                source_url=post_url or source.url,
            ))

        return build_result(
            events, [], ErrorDetails(),
            structure_hash=structure_hash,
            diagnostic_context={
                'fetchMethod': fetch_method,
                'postsFound': len(posts),
                'eventsParsed': len(events),
                'skippedNoDate': skipped_no_date,
                'skippedDateRange': skipped_date_range,
                'fetchDurationMs': fetch_duration_ms,
            },
        )

    @staticmethod
    def _html_posts(html: str, page_url: str) -> List[tuple]:
        soup = BeautifulSoup(html, 'html.parser')
        posts = []
        for article in soup.select(ARTICLE_SELECTOR):
            link = article.select_one('.entry-title a, h2.entry-title a, h2 a, h1.entry-title a')
            title = link.get_text(strip=True) if link else ''
            if not title:
                heading = article.select_one('.entry-title, h2')
                title = heading.get_text(strip=True) if heading else ''
            if not title:
                continue
            content = article.select_one('.entry-content, .post-content')
            href = link.get('href') if link else None
            posts.append((
                title,
                content.get_text('\n') if content else '',
                urljoin(page_url, href) if href else page_url,
            ))
        return posts
