import re
from typing import Iterable, Optional
from urllib.parse import urlsplit

from fastapi import Request

_UNSAFE_FILENAME_RE = re.compile(r'[\\/"]+')


def validate_source_url(url: Optional[str], allowed_hosts: Iterable[str]) -> bool:
    """Accept only http(s) URLs whose hostname is on the allow-list"""
    if not url or not isinstance(url, str):
        return False
    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname
    except ValueError:
        return False
    if parts.scheme.lower() not in ("http", "https") or not hostname:
        return False
    return hostname.lower() in {host.lower() for host in allowed_hosts}


def sanitize_filename(name: Optional[str], default: str = "audio.mp3") -> str:
    """Make a file name safe to put in a Content-Disposition header"""
    return _UNSAFE_FILENAME_RE.sub("_", name or default)


def get_client_ip(request: Request) -> str:
    """Get client IP address with proxy support"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return request.client.host if request.client else "unknown"
