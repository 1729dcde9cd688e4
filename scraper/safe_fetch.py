"""SSRF-safe fetching: URL validation, manual redirect revalidation and
URL-variant fallback."""
import ipaddress
import logging
import re
import socket
from typing import Dict, Optional, Tuple, Union
from urllib.parse import urljoin, urlsplit

import requests

from processor.models import ErrorDetails
from scraper.url_variants import build_url_variant_candidates

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 5
ALLOWED_SCHEMES = {'http', 'https'}

BLOCKED_HOSTNAMES = {'localhost', 'metadata.google.internal', 'metadata.goog'}
BLOCKED_HOST_SUFFIXES = ('.localhost',)

BLOCKED_NETWORKS = [
    ipaddress.ip_network('0.0.0.0/8'),
    ipaddress.ip_network('127.0.0.0/8'),
    ipaddress.ip_network('10.0.0.0/8'),
    ipaddress.ip_network('172.16.0.0/12'),
    ipaddress.ip_network('192.168.0.0/16'),
    ipaddress.ip_network('169.254.0.0/16'),
    ipaddress.ip_network('::/128'),
    ipaddress.ip_network('::1/128'),
    ipaddress.ip_network('fc00::/7'),
    ipaddress.ip_network('fe80::/10'),
]

_OCTAL_RE = re.compile(r'^0[0-7]+$')
_DECIMAL_RE = re.compile(r'^\d+$')
_HEX_RE = re.compile(r'^0x[0-9a-f]+$')
_DOTTED_PART_RE = re.compile(r'^(0x[0-9a-f]+|\d+)$')

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class BlockedURLError(Exception):
    """URL points at a disallowed scheme, internal host or private address."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Blocked URL: {url} ({reason})")


class TooManyRedirectsError(requests.TooManyRedirects):
    """Redirect chain exceeded MAX_REDIRECTS."""


def _decode_ip_literal(host: str) -> Optional[IPAddress]:
    """
    Decode a host that is an IP address in any of the encodings an HTTP
    client would accept: standard v4/v6, a single decimal, octal or hex
    integer, or dotted shorthand with octal/hex parts.
    """
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        pass

    if _OCTAL_RE.match(host):
        value = int(host, 8)
    elif _DECIMAL_RE.match(host):
        # A leading zero with a non-octal digit is not an address
        value = None if len(host) > 1 and host.startswith('0') else int(host, 10)
    elif _HEX_RE.match(host):
        value = int(host, 16)
    else:
        value = None
    if value is not None:
        if value > 0xFFFFFFFF:
            return None
        return ipaddress.IPv4Address(value)

    parts = host.split('.')
    if 1 <= len(parts) <= 4 and all(_DOTTED_PART_RE.match(part) for part in parts):
        try:
            return ipaddress.IPv4Address(socket.inet_aton(host))
        except OSError:
            return None
    return None


def _is_blocked_ip(address: IPAddress) -> bool:
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped
    return any(address.version == network.version and address in network
               for network in BLOCKED_NETWORKS)


def validate_source_url(url: str) -> None:
    """
    Reject URLs that must never be fetched.

    The check is on the literal URL text; host names are not resolved.

    Args:
        url: URL to check

    Raises:
        BlockedURLError: For a non-http(s) scheme, an internal hostname, or a
            host that decodes to a private, loopback, link-local or
            unspecified address
    """
    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError:
        raise BlockedURLError(url, 'invalid URL')

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise BlockedURLError(url, f'protocol "{scheme}:" is not allowed')

    if not host:
        raise BlockedURLError(url, 'missing host')
    host = host.rstrip('.')

    if host in BLOCKED_HOSTNAMES or host.endswith(BLOCKED_HOST_SUFFIXES):
        raise BlockedURLError(url, f'internal hostname {host}')

    address = _decode_ip_literal(host)
    if address is not None and _is_blocked_ip(address):
        raise BlockedURLError(url, f'private IP {address}')


def safe_fetch(url: str, session: Optional[requests.Session] = None,
               timeout: int = 30, headers: Optional[Dict[str, str]] = None,
               method: str = 'GET', **kwargs) -> requests.Response:
    """
    Fetch a URL, revalidating every redirect target.

    Args:
        url: URL to fetch
        session: Optional requests session (default: module-level requests)
        timeout: Per-request timeout in seconds (default: 30)
        headers: Request headers
        method: HTTP method (default: GET)
        **kwargs: Passed through to requests (params, data, ...)

    Returns:
        The final response; a 3xx without Location is returned as-is

    Raises:
        BlockedURLError: If the URL or any redirect target is blocked
        TooManyRedirectsError: If the chain exceeds MAX_REDIRECTS
        requests.RequestException: On network errors
    """
    validate_source_url(url)
    http = session or requests
    current_url = url
    redirect_count = 0

    while True:
        response = http.request(
            method,
            current_url,
            headers=headers,
            timeout=timeout,
            allow_redirects=False,
            **kwargs
        )
        if not 300 <= response.status_code < 400:
            return response

        location = response.headers.get('Location')
        if not location:
            return response
        if redirect_count >= MAX_REDIRECTS:
            raise TooManyRedirectsError(f"Too many redirects (>{MAX_REDIRECTS})")

        current_url = urljoin(current_url, location)
        validate_source_url(current_url)
        redirect_count += 1
        logger.debug(f"Following redirect {redirect_count} to {current_url}")


def fetch_with_url_variants(url: str, error_details: ErrorDetails,
                            session: Optional[requests.Session] = None,
                            timeout: int = 30,
                            headers: Optional[Dict[str, str]] = None
                            ) -> Optional[Tuple[requests.Response, str]]:
    """
    Fetch a page trying www/non-www and http/https variants of its URL.

    Only 403 and 404 move on to the next variant; any other failure is
    recorded and ends the attempt.

    Args:
        url: Base URL
        error_details: Envelope that receives a fetch error per failed attempt
        session: Optional requests session
        timeout: Per-request timeout in seconds
        headers: Request headers

    Returns:
        (response, url that answered) on the first 2xx, otherwise None
    """
    for candidate in build_url_variant_candidates(url):
        try:
            response = safe_fetch(candidate, session=session, timeout=timeout, headers=headers)
        except BlockedURLError as e:
            logger.warning(f"Blocked URL {candidate}: {e.reason}")
            error_details.add_fetch(str(e), url=candidate)
            return None
        except requests.RequestException as e:
            logger.warning(f"Fetch failed for {candidate}: {e}")
            error_details.add_fetch(f"Fetch failed: {e}", url=candidate)
            return None

        if 200 <= response.status_code < 300:
            return response, candidate

        error_details.add_fetch(
            f"HTTP {response.status_code}: {response.reason}",
            url=candidate,
            status=response.status_code,
        )
        if response.status_code not in (403, 404):
            return None
        logger.info(f"HTTP {response.status_code} from {candidate}, trying next URL variant")

    return None
