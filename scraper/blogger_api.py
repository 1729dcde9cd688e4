"""Blogger API v3 client, used when a Blogspot site refuses server-side requests."""
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

import requests

from processor.models import FetchError
from scraper.safe_fetch import BlockedURLError, safe_fetch

logger = logging.getLogger(__name__)

BLOGGER_API_BASE = 'https://www.googleapis.com/blogger/v3'


@dataclass
class BloggerPost:
    title: str
    content: str
    url: str
    published: str


@dataclass
class BloggerFetchResult:
    posts: List[BloggerPost] = field(default_factory=list)
    blog_id: Optional[str] = None
    error: Optional[FetchError] = None
    fetch_duration_ms: int = 0


def _string(value) -> str:
    return value if isinstance(value, str) else ''


def fetch_blogger_posts(blog_url: str, api_key: Optional[str], max_results: int = 25,
                        session: Optional[requests.Session] = None,
                        timeout: int = 30) -> BloggerFetchResult:
    """
    Fetch recent posts of a Blogger blog.

    Looks up the blog id from its URL, then lists its posts with bodies.

    Args:
        blog_url: Blog URL (custom domain or blogspot.com)
        api_key: Google API key
        max_results: Number of posts to request (default: 25)
        session: Optional requests session
        timeout: Per-request timeout in seconds

    Returns:
        BloggerFetchResult with posts, or an error
    """
    if not api_key:
        return BloggerFetchResult(error=FetchError(message='Missing GOOGLE_API_KEY environment variable'))

    fetch_start = time.monotonic()
    headers = {'X-Goog-Api-Key': api_key}

    def elapsed_ms() -> int:
        return int((time.monotonic() - fetch_start) * 1000)

    lookup_url = f"{BLOGGER_API_BASE}/blogs/byurl"
    try:
        response = safe_fetch(lookup_url, session=session, timeout=timeout,
                              headers=headers, params={'url': blog_url})
        if not 200 <= response.status_code < 300:
            return BloggerFetchResult(
                error=FetchError(
                    message=f"Blogger API blog lookup failed: HTTP {response.status_code} - {response.text[:200]}",
                    url=lookup_url,
                    status=response.status_code,
                ),
                fetch_duration_ms=elapsed_ms(),
            )
        data = response.json()
        blog_id = data.get('id') if isinstance(data, dict) else None
    except BlockedURLError as e:
        return BloggerFetchResult(error=FetchError(message=str(e), url=lookup_url))
    except (requests.RequestException, ValueError) as e:
        return BloggerFetchResult(
            error=FetchError(message=f"Blogger API blog lookup error: {e}", url=lookup_url),
            fetch_duration_ms=elapsed_ms(),
        )
    if not blog_id:
        return BloggerFetchResult(
            error=FetchError(message='Blogger API returned no blog ID', url=lookup_url),
            fetch_duration_ms=elapsed_ms(),
        )

    posts_url = f"{BLOGGER_API_BASE}/blogs/{blog_id}/posts"
    try:
        response = safe_fetch(posts_url, session=session, timeout=timeout, headers=headers,
                              params={'maxResults': str(max_results), 'fetchBodies': 'true'})
        if not 200 <= response.status_code < 300:
            return BloggerFetchResult(
                blog_id=blog_id,
                error=FetchError(
                    message=f"Blogger API posts fetch failed: HTTP {response.status_code} - {response.text[:200]}",
                    url=posts_url,
                    status=response.status_code,
                ),
                fetch_duration_ms=elapsed_ms(),
            )
        data = response.json()
    except BlockedURLError as e:
        return BloggerFetchResult(blog_id=blog_id, error=FetchError(message=str(e), url=posts_url))
    except (requests.RequestException, ValueError) as e:
        return BloggerFetchResult(
            blog_id=blog_id,
            error=FetchError(message=f"Blogger API posts fetch error: {e}", url=posts_url),
            fetch_duration_ms=elapsed_ms(),
        )
    items = (data.get('items') or []) if isinstance(data, dict) else None
    if not isinstance(items, list):
        return BloggerFetchResult(
            blog_id=blog_id,
            error=FetchError(message='Blogger API returned an unexpected response shape', url=posts_url),
            fetch_duration_ms=elapsed_ms(),
        )

    posts = [
        BloggerPost(
            title=_string(item.get('title')),
            content=_string(item.get('content')),
            url=_string(item.get('url')),
            published=_string(item.get('published')),
        )
        for item in items if isinstance(item, dict)
    ]
    logger.info(f"Fetched {len(posts)} posts for blog {blog_id}")
    return BloggerFetchResult(posts=posts, blog_id=blog_id, fetch_duration_ms=elapsed_ms())
