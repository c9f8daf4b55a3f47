"""API key and IP allow-list checks."""

from __future__ import annotations

import logging
import secrets

from app.settings import Settings

logger = logging.getLogger("xlate.auth")

MIN_KEY_LENGTH = 10


def ip_restricted(allowed: list[str], remote_addr: str | None) -> bool:
    if not allowed:
        return False
    caller = (remote_addr or "").strip().lower()
    return caller not in {ip.strip().lower() for ip in allowed}


def check_authentication(settings: Settings, key: object, remote_addr: str | None) -> str:
    """Return an empty string when the caller may use the API, else the refusal message."""
    message = ""
    if not settings.open:
        message = "API disabled"
    elif not settings.key:
        message = "Empty key, API disabled"
    elif len(settings.key) < MIN_KEY_LENGTH:
        message = "Key is too short, API disabled"
    elif not key:
        message = "Key not provided in the request"
    elif not secrets.compare_digest(str(key).encode("utf-8"), settings.key.encode("utf-8")):
        message = "Authentication failed"
    elif ip_restricted(settings.ips, remote_addr):
        message = f"Your IP address {(remote_addr or '').strip().lower()} is not allowed"
    if message:
        logger.warning("auth_failed remote=%s reason=%s", remote_addr, message)
    return message
