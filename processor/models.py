"""Data models for sources, canonical events and scrape results."""
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser

MAX_RAW_TEXT_LENGTH = 2000

_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
_TIME_RE = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')


class SourceType(str, Enum):
    """Closed set of source types an operator can configure."""
    HTML_SCRAPER = 'HTML_SCRAPER'
    GOOGLE_CALENDAR = 'GOOGLE_CALENDAR'
    GOOGLE_SHEETS = 'GOOGLE_SHEETS'
    ICAL_FEED = 'ICAL_FEED'
    RSS_FEED = 'RSS_FEED'
    HASHREGO = 'HASHREGO'
    MEETUP = 'MEETUP'
    STATIC_SCHEDULE = 'STATIC_SCHEDULE'


@dataclass
class Source:
    """Operator-configured origin of event listings."""
    id: str
    url: str
    type: SourceType
    config: Optional[Dict[str, Any]] = None
    trust_level: int = 5
    scrape_freq: str = 'daily'
    last_scrape_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    health_status: str = 'UNKNOWN'
    scrape_days: int = 90
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Source':
        """
        Build a Source from a JSON payload.

        Accepts camelCase or snake_case keys. Timestamps are ISO 8601 strings.
        An unknown type value is kept as a plain string so the registry can
        reject it with a descriptive error.

        Args:
            data: Source payload

        Returns:
            Source object
        """
        def pick(*keys, default=None):
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        raw_type = pick('type', 'sourceType', 'source_type', default='')
        try:
            source_type = SourceType(raw_type)
        except ValueError:
            source_type = raw_type

        return cls(
            id=str(pick('id', default='')),
            url=pick('url', default=''),
            type=source_type,
            config=pick('config'),
            trust_level=int(pick('trustLevel', 'trust_level', default=5)),
            scrape_freq=pick('scrapeFreq', 'scrape_freq', default='daily'),
            last_scrape_at=_parse_timestamp(pick('lastScrapeAt', 'last_scrape_at')),
            last_success_at=_parse_timestamp(pick('lastSuccessAt', 'last_success_at')),
            health_status=pick('healthStatus', 'health_status', default='UNKNOWN'),
            scrape_days=int(pick('scrapeDays', 'scrape_days', default=90)),
            enabled=bool(pick('enabled', default=True)),
        )


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return date_parser.isoparse(str(value))


@dataclass
class ExternalLink:
    """Link to the same event on another platform."""
    url: str
    label: str


@dataclass
class RawEvent:
    """
    Canonical event record produced by every adapter.

    Only date and kennel_tag are required; everything else is best-effort.
    """
    date: str
    kennel_tag: str
    run_number: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None
    hares: Optional[str] = None
    location: Optional[str] = None
    location_url: Optional[str] = None
    start_time: Optional[str] = None
    source_url: Optional[str] = None
    external_links: List[ExternalLink] = field(default_factory=list)
    series_id: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.date, str) or not _DATE_RE.match(self.date):
            raise ValueError(f"Invalid event date: {self.date!r}")
        # Catches impossible days such as 2026-02-30
        datetime.strptime(self.date, '%Y-%m-%d')
        if self.start_time is not None and not _TIME_RE.match(self.start_time):
            raise ValueError(f"Invalid start time: {self.start_time!r}")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase JSON shape, omitting absent fields."""
        data = {
            'date': self.date,
            'kennelTag': self.kennel_tag,
            'runNumber': self.run_number,
            'title': self.title,
            'description': self.description,
            'hares': self.hares,
            'location': self.location,
            'locationUrl': self.location_url,
            'startTime': self.start_time,
            'sourceUrl': self.source_url,
            'seriesId': self.series_id,
        }
        if self.external_links:
            data['externalLinks'] = [
                {'url': link.url, 'label': link.label} for link in self.external_links
            ]
        return {key: value for key, value in data.items() if value is not None}


@dataclass
class FetchError:
    """Failure to retrieve a document."""
    message: str
    url: Optional[str] = None
    status: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'url': self.url, 'status': self.status, 'message': self.message}
        return {key: value for key, value in data.items() if value is not None}


@dataclass
class ParseError:
    """Failure to extract one item, with row-level context."""
    row: int
    error: str
    section: Optional[str] = None
    field: Optional[str] = None
    raw_text: Optional[str] = None
    partial_data: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if self.raw_text is not None:
            self.raw_text = self.raw_text[:MAX_RAW_TEXT_LENGTH]

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'row': self.row,
            'section': self.section,
            'field': self.field,
            'error': self.error,
            'rawText': self.raw_text,
            'partialData': self.partial_data,
        }
        return {key: value for key, value in data.items() if value is not None}


@dataclass
class ErrorDetails:
    """Structured error breakdown split into fetch and parse errors."""
    fetch: List[FetchError] = field(default_factory=list)
    parse: List[ParseError] = field(default_factory=list)

    def add_fetch(self, message: str, url: Optional[str] = None,
                  status: Optional[int] = None) -> FetchError:
        error = FetchError(message=message, url=url, status=status)
        self.fetch.append(error)
        return error

    def add_parse(self, row: int, error: str, **context) -> ParseError:
        parse_error = ParseError(row=row, error=error, **context)
        self.parse.append(parse_error)
        return parse_error

    def to_dict(self) -> Dict[str, Any]:
        data = {}
        if self.fetch:
            data['fetch'] = [error.to_dict() for error in self.fetch]
        if self.parse:
            data['parse'] = [error.to_dict() for error in self.parse]
        return data


def has_any_errors(details: Optional[ErrorDetails]) -> bool:
    """
    Check whether an ErrorDetails envelope carries anything.

    Args:
        details: Envelope to check (may be None)

    Returns:
        True if either the fetch or the parse list is non-empty
    """
    if details is None:
        return False
    return len(details.fetch) > 0 or len(details.parse) > 0


@dataclass
class ScrapeResult:
    """Complete return value of one adapter invocation."""
    events: List[RawEvent] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    error_details: Optional[ErrorDetails] = None
    structure_hash: Optional[str] = None
    diagnostic_context: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-ready dict."""
        data: Dict[str, Any] = {
            'events': [event.to_dict() for event in self.events],
            'errors': list(self.errors),
        }
        if has_any_errors(self.error_details):
            data['errorDetails'] = self.error_details.to_dict()
        if self.structure_hash is not None:
            data['structureHash'] = self.structure_hash
        if self.diagnostic_context is not None:
            data['diagnosticContext'] = self.diagnostic_context
        return data
