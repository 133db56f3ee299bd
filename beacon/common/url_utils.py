"""URL validation shared by the CLI and the persistent server."""

from __future__ import annotations

from urllib.parse import urlparse

from beacon.common.exceptions import InvalidURLException

AUDITABLE_SCHEMES = frozenset({"http", "https"})


def validate_url(candidate: str) -> str:
    """Return *candidate* stripped of whitespace if it is an auditable URL.

    Raises:
        InvalidURLException: If the token has no http(s) scheme or no host.
    """
    url = candidate.strip()
    try:
        parsed = urlparse(url)
        # Accessing port validates it.
        parsed.port
    except ValueError as e:
        raise InvalidURLException(candidate, str(e)) from e

    if parsed.scheme.lower() not in AUDITABLE_SCHEMES:
        raise InvalidURLException(candidate, "scheme must be http or https")
    if not parsed.hostname:
        raise InvalidURLException(candidate, "missing host")
    return url
