"""Validation and sanitization for links surfaced from model output.

Any URL that came from the completion model or from stored events must pass
through here before it is handed to a browser.
"""
from __future__ import annotations

import ipaddress
import logging
import webbrowser
from typing import Callable, Optional
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")
BLOCKED_SCHEMES = ("javascript", "data", "vbscript", "file", "about")


def _is_local_or_private_host(hostname: str) -> bool:
    """Return True for localhost names and loopback/private/link-local IPs."""
    host = hostname.strip("[]").lower()
    if host == "localhost" or host.endswith(".localhost"):
        return True
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return False
    return ip.is_loopback or ip.is_private or ip.is_link_local or ip.is_unspecified


def is_valid_url(url: Optional[str]) -> bool:
    """Return True if ``url`` is safe to open in a browser."""
    if not url or not isinstance(url, str):
        return False

    trimmed = url.strip()
    if not trimmed:
        return False

    try:
        parts = urlsplit(trimmed)
    except ValueError:
        logger.warning("Invalid URL format: %s", trimmed)
        return False

    scheme = parts.scheme.lower()
    if scheme in BLOCKED_SCHEMES:
        logger.warning("Blocked URL scheme detected: %s", trimmed)
        return False
    if scheme not in ALLOWED_SCHEMES:
        logger.warning("Invalid protocol: %s", scheme or "<none>")
        return False

    # https://trusted.com@attacker.com
    if "@" in parts.netloc:
        logger.warning("Credentials in URL authority rejected: %s", trimmed)
        return False

    hostname = parts.hostname
    if not hostname:
        logger.warning("Missing hostname: %s", trimmed)
        return False

    try:
        parts.port
    except ValueError:
        logger.warning("Invalid port in URL: %s", trimmed)
        return False

    if _is_local_or_private_host(hostname):
        logger.warning("Local or private URL detected: %s", hostname)
        return False

    return True


def sanitize_url(url: Optional[str]) -> Optional[str]:
    """Return ``url`` rebuilt from its safe components, or None if invalid.

    Fragments and user info are dropped.
    """
    if not is_valid_url(url):
        return None

    parts = urlsplit(url.strip())
    host = parts.hostname
    if ":" in host:
        host = f"[{host}]"
    port = f":{parts.port}" if parts.port is not None else ""
    query = f"?{parts.query}" if parts.query else ""
    path = parts.path or "/"
    return f"{parts.scheme.lower()}://{host}{port}{path}{query}"


def get_display_url(url: str, max_length: int = 50) -> str:
    """Truncate long URLs for display."""
    if len(url) <= max_length:
        return url
    return url[: max_length - 3] + "..."


def open_external_link(url: Optional[str], opener: Callable[[str], object] = webbrowser.open) -> bool:
    """Open ``url`` with ``opener`` if it validates; rejected links are only logged."""
    safe_url = sanitize_url(url)
    if safe_url is None:
        logger.warning("Refusing to open unsafe link: %r", url)
        return False
    opener(safe_url)
    return True
