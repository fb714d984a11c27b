"""
Target URL validation.

Rejects anything the server should never be asked to fetch: non-HTTP(S)
schemes, localhost, and literal private / loopback / link-local addresses.
"""

import ipaddress
import logging
from urllib.parse import urlparse

from .errors import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")
BLOCKED_HOSTNAMES = {"localhost", "localhost.localdomain", "ip6-localhost"}
MAX_URL_LENGTH = 2048


def _is_blocked_ip(hostname: str) -> bool:
    try:
        ip = ipaddress.ip_address(hostname)
    except ValueError:
        return False

    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_unspecified
        or ip.is_multicast
    )


def validate_target_url(url: str) -> str:
    """
    Validate a user-supplied target URL.

    Returns:
        The stripped URL.

    Raises:
        ValidationError: malformed or unsafe URL
    """
    if not isinstance(url, str) or not url.strip():
        raise ValidationError("URL is required")

    url = url.strip()
    if len(url) > MAX_URL_LENGTH:
        raise ValidationError("URL is too long")

    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except ValueError as e:
        raise ValidationError(f"Malformed URL: {e}") from e

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        logger.warning(f"Blocked URL scheme: {parsed.scheme!r}")
        raise ValidationError(f"Unsupported URL scheme: {parsed.scheme or '(none)'}")

    if not hostname:
        raise ValidationError("URL has no host")

    hostname = hostname.lower().rstrip(".")
    if hostname in BLOCKED_HOSTNAMES or hostname.endswith(".localhost"):
        logger.warning(f"Blocked local hostname: {hostname}")
        raise ValidationError("Local addresses are not allowed")

    if _is_blocked_ip(hostname):
        logger.warning(f"Blocked private address: {hostname}")
        raise ValidationError("Private network addresses are not allowed")

    return url
