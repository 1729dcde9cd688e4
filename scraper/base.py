"""Adapter contract shared by every source type."""
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import requests

from processor.config import (
    Settings,
    SourceConfigError,
    validate_config_patterns,
    validate_source_config,
)
from processor.models import ErrorDetails, ScrapeResult, Source, SourceType, has_any_errors
from scraper.safe_fetch import BlockedURLError, safe_fetch

logger = logging.getLogger(__name__)


class AdapterFetchError(Exception):
    """Primary document could not be retrieved."""

    def __init__(self, message: str, url: Optional[str] = None, status: Optional[int] = None):
        self.message = message
        self.url = url
        self.status = status
        super().__init__(message)


class SourceAdapter(ABC):
    """
    Base class for all source adapters.

    Subclasses implement fetch() and must not raise for network failures,
    bad HTTP status, malformed payloads or unparseable items; those are
    reported through the returned ScrapeResult.
    """

    source_type: Optional[SourceType] = None

    def __init__(self, timeout: Optional[int] = None,
                 session: Optional[requests.Session] = None,
                 settings: Optional[Settings] = None):
        """
        Initialize the adapter.

        Args:
            timeout: HTTP request timeout in seconds (default: TIMEOUT_SECONDS)
            session: Optional requests session shared across calls
            settings: Runtime settings (default: read from the environment)
        """
        self.settings = settings or Settings.from_env()
        self.timeout = timeout if timeout is not None else self.settings.timeout_seconds
        self.session = session

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def fetch(self, source: Source, days: Optional[int] = None) -> ScrapeResult:
        """
        Fetch and normalize events for one source.

        Args:
            source: Source to scrape
            days: Date window half-width (default: the source's scrape_days)

        Returns:
            ScrapeResult
        """

    def window_days(self, source: Source, days: Optional[int]) -> int:
        if days is not None:
            return days
        return source.scrape_days or self.settings.scrape_days

    def load_config(self, source: Source, required_fields: Dict[str, str]) -> Dict[str, Any]:
        """Validate the source config; raises SourceConfigError."""
        config = validate_source_config(source.config, self.name, required_fields)
        self.check_patterns(config)
        return config

    def check_patterns(self, config: Dict[str, Any]) -> None:
        """Reject unusable kennelPatterns/skipPatterns; raises SourceConfigError."""
        problems = validate_config_patterns(self.source_type, config)
        if problems:
            raise SourceConfigError(f"{self.name}: " + '; '.join(problems))

    def _get(self, url: str, headers: Optional[Dict[str, str]] = None,
             **kwargs) -> requests.Response:
        request_headers = {'User-Agent': self.settings.user_agent}
        if headers:
            request_headers.update(headers)
        return safe_fetch(
            url,
            session=self.session,
            timeout=self.timeout,
            headers=request_headers,
            **kwargs
        )

    def fetch_page(self, url: str, headers: Optional[Dict[str, str]] = None,
                   **kwargs) -> requests.Response:
        """
        GET a document, turning every failure into AdapterFetchError.

        Args:
            url: URL to fetch
            headers: Extra request headers
            **kwargs: Passed through to requests

        Returns:
            A 2xx response

        Raises:
            AdapterFetchError: Blocked URL, network error or non-2xx status
        """
        try:
            response = self._get(url, headers=headers, **kwargs)
        except BlockedURLError as e:
            logger.warning(f"Blocked URL {url}: {e.reason}")
            raise AdapterFetchError(str(e), url=url)
        except requests.RequestException as e:
            raise AdapterFetchError(f"Fetch failed: {e}", url=url)

        if not 200 <= response.status_code < 300:
            raise AdapterFetchError(
                f"HTTP {response.status_code}: {response.reason}",
                url=url,
                status=response.status_code,
            )
        return response

    def fetch_failure(self, message: str, url: Optional[str] = None,
                      status: Optional[int] = None,
                      diagnostic_context: Optional[Dict[str, Any]] = None) -> ScrapeResult:
        """Zero-event result carrying one fetch error."""
        logger.error(f"{self.name}: {message}")
        error_details = ErrorDetails()
        error_details.add_fetch(message, url=url, status=status)
        return ScrapeResult(
            events=[],
            errors=[message],
            error_details=error_details,
            diagnostic_context=diagnostic_context,
        )


def build_result(events, errors: List[str], error_details: ErrorDetails,
                 structure_hash: Optional[str] = None,
                 diagnostic_context: Optional[Dict[str, Any]] = None) -> ScrapeResult:
    """Assemble a ScrapeResult, attaching error_details only when non-empty."""
    return ScrapeResult(
        events=list(events),
        errors=errors,
        error_details=error_details if has_any_errors(error_details) else None,
        structure_hash=structure_hash,
        diagnostic_context=diagnostic_context,
    )


def record_parse_error(errors: List[str], error_details: ErrorDetails, row: int,
                       error: str, **context) -> None:
    """Record an item-level failure in both the flat list and the envelope."""
    logger.warning(f"Skipping item {row}: {error}")
    errors.append(f"Item {row}: {error}")
    error_details.add_parse(row, error, **context)


def compile_kennel_patterns(patterns: Optional[Sequence[Sequence[str]]]) -> List[tuple]:
    compiled = []
    for pattern, tag in patterns or []:
        try:
            compiled.append((re.compile(pattern, re.IGNORECASE), tag))
        except re.error as e:
            raise SourceConfigError(f'Invalid kennelPatterns regex "{pattern}": {e}')
    return compiled


def compile_skip_patterns(patterns: Optional[Sequence[str]]) -> List[re.Pattern]:
    compiled = []
    for pattern in patterns or []:
        try:
            compiled.append(re.compile(pattern, re.IGNORECASE))
        except re.error as e:
            raise SourceConfigError(f'Invalid skipPatterns regex "{pattern}": {e}')
    return compiled


def resolve_kennel_tag(text: str, patterns: List[tuple],
                       default: Optional[str] = None) -> Optional[str]:
    """
    Map event text to a kennel tag using configured [regex, tag] pairs.

    Args:
        text: Text to match (usually the event title)
        patterns: Compiled (regex, tag) pairs, first match wins
        default: Tag used when nothing matches

    Returns:
        Kennel tag, or default
    """
    for regex, tag in patterns:
        if regex.search(text or ''):
            return tag
    return default


def matches_any(text: str, patterns: Sequence[re.Pattern]) -> bool:
    """Check text against skip patterns from compile_skip_patterns."""
    return any(pattern.search(text or '') for pattern in patterns)
