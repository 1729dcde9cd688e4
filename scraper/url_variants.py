"""Host and protocol variants of a URL for fallback probing."""
from typing import List
from urllib.parse import urlsplit, urlunsplit


def _toggle_www(netloc: str) -> str:
    userinfo, _, hostport = netloc.rpartition('@')
    if hostport.lower().startswith('www.'):
        hostport = hostport[4:]
    else:
        hostport = f"www.{hostport}"
    return f"{userinfo}@{hostport}" if userinfo else hostport


def build_url_variant_candidates(url: str) -> List[str]:
    """
    Build the ordered list of URLs to try for a site that may only answer on
    one host/protocol combination.

    Order: original, www-toggled host, toggled protocol, both toggled.
    Trailing slashes are stripped and duplicates removed.

    Args:
        url: Base URL

    Returns:
        Candidate URLs, the normalized original first
    """
    normalized = url.rstrip('/')
    candidates = [normalized]

    try:
        parts = urlsplit(normalized)
    except ValueError:
        return candidates
    if not parts.scheme or not parts.netloc:
        return candidates

    host_variant = parts._replace(netloc=_toggle_www(parts.netloc))
    candidates.append(urlunsplit(host_variant).rstrip('/'))

    if parts.scheme in ('http', 'https'):
        other_scheme = 'http' if parts.scheme == 'https' else 'https'
        protocol_variant = parts._replace(scheme=other_scheme)
        candidates.append(urlunsplit(protocol_variant).rstrip('/'))
        both_variant = host_variant._replace(scheme=other_scheme)
        candidates.append(urlunsplit(both_variant).rstrip('/'))

    return list(dict.fromkeys(candidates))
