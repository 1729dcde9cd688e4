"""WordPress REST API client for sites that block HTML scraping but leave
/wp-json open."""
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import urlencode

import requests

from processor.models import FetchError
from processor.normalize import decode_entities
from scraper.safe_fetch import BlockedURLError, safe_fetch
from scraper.url_variants import build_url_variant_candidates

logger = logging.getLogger(__name__)


@dataclass
class WordPressPost:
    title: str
    content: str
    url: str
    date: str


@dataclass
class WordPressFetchResult:
    posts: List[WordPressPost] = field(default_factory=list)
    error: Optional[FetchError] = None
    fetch_duration_ms: int = 0


def _string(value) -> str:
    return value if isinstance(value, str) else ''


def _rendered(field_value) -> str:
    # Fields come back as {"rendered": "..."} unless a plugin flattens them
    if isinstance(field_value, dict):
        return _string(field_value.get('rendered'))
    return _string(field_value)


def wordpress_endpoints(site_url: str, per_page: int = 10) -> List[str]:
    """
    Posts endpoints to try, for every URL variant of the site: the pretty
    permalink route first, then the query-string route.
    """
    query = urlencode({'per_page': str(per_page), '_fields': 'title,content,link,date'})
    endpoints = []
    for base in build_url_variant_candidates(site_url):
        endpoints.append(f"{base}/wp-json/wp/v2/posts?{query}")
        endpoints.append(f"{base}/?rest_route=/wp/v2/posts&{query}")
    return endpoints


def fetch_wordpress_posts(site_url: str, per_page: int = 10,
                          session: Optional[requests.Session] = None,
                          timeout: int = 30,
                          headers: Optional[Dict[str, str]] = None) -> WordPressFetchResult:
    """
    Fetch recent posts from a WordPress site.

    Moves on to the next endpoint after a 403, 404, network error or a
    non-list body; any other HTTP status ends the attempt. A blocked URL
    ends it too.

    Args:
        site_url: Site root, e.g. "https://www.ewh3.com/"
        per_page: Number of posts to request (default: 10)
        session: Optional requests session
        timeout: Per-request timeout in seconds
        headers: Extra request headers

    Returns:
        WordPressFetchResult with posts, or the last error
    """
    fetch_start = time.monotonic()
    request_headers = {'Accept': 'application/json'}
    request_headers.update(headers or {})
    last_error: Optional[FetchError] = None

    for url in wordpress_endpoints(site_url, per_page):
        try:
            response = safe_fetch(url, session=session, timeout=timeout, headers=request_headers)
        except BlockedURLError as e:
            logger.warning(f"Blocked URL {url}: {e.reason}")
            last_error = FetchError(message=str(e), url=url)
            break
        except requests.RequestException as e:
            last_error = FetchError(message=f"WordPress API fetch error: {e}", url=url)
            continue

        if 200 <= response.status_code < 300:
            try:
                data = response.json()
            except ValueError:
                data = None
            if not isinstance(data, list):
                last_error = FetchError(message='WordPress API returned non-array response', url=url)
                continue

            posts = [
                WordPressPost(
                    title=decode_entities(_rendered(item.get('title'))),
                    content=_rendered(item.get('content')),
                    url=_string(item.get('link')),
                    date=_string(item.get('date')),
                )
                for item in data if isinstance(item, dict)
            ]
            return WordPressFetchResult(
                posts=posts,
                fetch_duration_ms=int((time.monotonic() - fetch_start) * 1000),
            )

        last_error = FetchError(
            message=f"WordPress API HTTP {response.status_code}: {response.reason}",
            url=url,
            status=response.status_code,
        )
        if response.status_code not in (403, 404):
            break

    return WordPressFetchResult(
        error=last_error or FetchError(message='WordPress API fetch failed'),
        fetch_duration_ms=int((time.monotonic() - fetch_start) * 1000),
    )
