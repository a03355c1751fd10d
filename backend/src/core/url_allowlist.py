"""
Static allowlist for URLs the server is willing to fetch or forward.

Server actions receive image URLs from the browser and hand them to AI services
(or fetch them directly). Only storage and CDN hosts we actually use are
accepted, plus inline image data URIs, which blocks SSRF against internal
addresses and cloud metadata endpoints.
"""
import ipaddress
import re
from urllib.parse import urlsplit

# Hosts matched exactly or as a dot-separated suffix (``v3.fal.media``)
ALLOWED_HOSTS: tuple[str, ...] = (
    "firebasestorage.googleapis.com",
    "storage.googleapis.com",
    "fal.media",
    "fal.ai",
    "replicate.delivery",
    "replicate.com",
)

# Hosts only matched as a suffix (public R2 buckets live at pub-<hash>.r2.dev)
ALLOWED_HOST_SUFFIXES: tuple[str, ...] = (
    "r2.dev",
)

_DATA_IMAGE_URI = re.compile(r"^data:image/[a-z0-9.+-]+(;[a-z0-9=.+-]+)*,", re.IGNORECASE)


class DisallowedUrlError(ValueError):
    """Raised when a URL is not on the allowlist."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"URL is not allowed: {truncate_url(url)}")


def truncate_url(url: str, length: int = 50) -> str:
    """Shorten a URL for log and error messages (data URIs can be megabytes)."""
    return url if len(url) <= length else url[:length] + "..."


def is_private_ip(ip_str: str) -> bool:
    """
    Check if an IP address is private, loopback, or otherwise internal.

    Args:
        ip_str: IP address string (IPv4 or IPv6).

    Returns:
        True if the IP is private/internal, False if public.
    """
    try:
        ip = ipaddress.ip_address(ip_str)
        return (
            ip.is_private
            or ip.is_loopback
            or ip.is_link_local
            or ip.is_multicast
            or ip.is_reserved
            or ip.is_unspecified
        )
    except ValueError:
        # If we can't parse it, block it to be safe
        return True


def _is_ip_literal(hostname: str) -> bool:
    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return True


def is_allowed_host(hostname: str) -> bool:
    """Check a bare hostname against the allowlist."""
    hostname = hostname.lower().rstrip(".")
    if not hostname or _is_ip_literal(hostname):
        return False
    for allowed in ALLOWED_HOSTS:
        if hostname == allowed or hostname.endswith("." + allowed):
            return True
    return any(hostname.endswith("." + suffix) for suffix in ALLOWED_HOST_SUFFIXES)


def is_allowed_url(url: str) -> bool:
    """
    Return True if the URL may be fetched server-side.

    Allowed:
    - ``data:image/*`` URIs
    - ``https`` URLs on an allowlisted storage/CDN host

    Everything else (other schemes, IP literals, localhost, look-alike hosts such
    as ``firebasestorage.googleapis.com.evil.com``, malformed input) is rejected.
    """
    if not url or not isinstance(url, str):
        return False

    url = url.strip()
    if url[:5].lower() == "data:":
        return bool(_DATA_IMAGE_URI.match(url))

    try:
        parsed = urlsplit(url)
        hostname = parsed.hostname
        # Accessing .port validates it and raises on garbage like ":abc"
        parsed.port  # noqa: B018
    except ValueError:
        return False

    if parsed.scheme.lower() != "https" or not hostname:
        return False

    # Credentials in the authority are a classic parser-confusion trick
    if parsed.username is not None or parsed.password is not None:
        return False

    return is_allowed_host(hostname)


def require_allowed_url(url: str) -> str:
    """
    Return the URL unchanged if allowed.

    Raises:
        DisallowedUrlError: If the URL is not on the allowlist.
    """
    if not is_allowed_url(url):
        raise DisallowedUrlError(url)
    return url.strip()
