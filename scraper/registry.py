"""Maps a source type (and, for HTML sources, a URL) to its adapter."""
import logging
import re
from typing import Dict, List, Optional, Tuple, Type, Union

from processor.models import SourceType
from scraper.base import SourceAdapter
from scraper.google_calendar import GoogleCalendarAdapter
from scraper.google_sheets import GoogleSheetsAdapter
from scraper.hashrego import HashRegoAdapter
from scraper.html.enfield import EnfieldHashAdapter
from scraper.html.generic import GenericHtmlAdapter
from scraper.html.hashphilly import HashPhillyAdapter
from scraper.html.multihash import MultiHashAdapter
from scraper.html.wordpress_trail import WordPressTrailAdapter
from scraper.ical_feed import ICalFeedAdapter
from scraper.meetup import MeetupAdapter
from scraper.rss_feed import RssFeedAdapter
from scraper.static_schedule import StaticScheduleAdapter

logger = logging.getLogger(__name__)

ADAPTERS: Dict[SourceType, Type[SourceAdapter]] = {
    SourceType.HTML_SCRAPER: GenericHtmlAdapter,
    SourceType.GOOGLE_CALENDAR: GoogleCalendarAdapter,
    SourceType.GOOGLE_SHEETS: GoogleSheetsAdapter,
    SourceType.ICAL_FEED: ICalFeedAdapter,
    SourceType.RSS_FEED: RssFeedAdapter,
    SourceType.HASHREGO: HashRegoAdapter,
    SourceType.MEETUP: MeetupAdapter,
    SourceType.STATIC_SCHEDULE: StaticScheduleAdapter,
}

# First match wins: path-scoped patterns go before their domain's catch-all.
HTML_ROUTES: List[Tuple[re.Pattern, Type[SourceAdapter]]] = [
    (re.compile(r'enfieldhash\.org', re.IGNORECASE), EnfieldHashAdapter),
    (re.compile(r'hashphilly\.com/nexthash', re.IGNORECASE), HashPhillyAdapter),
    (re.compile(r'hashphilly\.com', re.IGNORECASE), WordPressTrailAdapter),
    (re.compile(r'ewh3\.com', re.IGNORECASE), WordPressTrailAdapter),
    (re.compile(r'sfh3\.com', re.IGNORECASE), MultiHashAdapter),
]


class UnknownSourceTypeError(ValueError):
    """No adapter is registered for the requested source type."""


def resolve_adapter_class(source_type: Union[SourceType, str],
                          source_url: Optional[str] = None) -> Type[SourceAdapter]:
    """
    Pick the adapter class for a source.

    Args:
        source_type: SourceType or its string value
        source_url: Source URL, used to route HTML sources

    Returns:
        Adapter class

    Raises:
        UnknownSourceTypeError: If the type is not registered
    """
    try:
        source_type = SourceType(source_type)
    except ValueError:
        raise UnknownSourceTypeError(f"Unknown source type: {source_type}")

    if source_type == SourceType.HTML_SCRAPER and source_url:
        for pattern, adapter_class in HTML_ROUTES:
            if pattern.search(source_url):
                return adapter_class

    return ADAPTERS[source_type]


def get_adapter(source_type: Union[SourceType, str], source_url: Optional[str] = None,
                **adapter_kwargs) -> SourceAdapter:
    """Instantiate the adapter for a source; kwargs go to the adapter constructor."""
    adapter_class = resolve_adapter_class(source_type, source_url)
    logger.debug(f"Routing {source_type} {source_url or ''} to {adapter_class.__name__}")
    return adapter_class(**adapter_kwargs)
