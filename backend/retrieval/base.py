import re
from datetime import datetime, timezone
from urllib.parse import quote

from backend.config import RENDER_WAIT_DEFAULT_MS, RENDER_WAIT_MAX_MS
from backend.errors import InvalidInput
from backend.models import FetchResult

_HTTP_URL = re.compile(r"^https?://", re.IGNORECASE)


def validate_url(url: str | None) -> str:
    if not url or not _HTTP_URL.match(url.strip()):
        raise InvalidInput("Invalid or missing URL")
    return url.strip()


def clamp_wait_ms(wait_ms: int | None) -> int:
    if wait_ms is None:
        return RENDER_WAIT_DEFAULT_MS
    return max(0, min(int(wait_ms), RENDER_WAIT_MAX_MS))


def with_cache_bust(url: str, token: str | None) -> str:
    """Append ``t=<token>`` to *url* so intermediaries cannot serve a cached copy."""
    if not token:
        return url
    # The existing query is left byte-for-byte as the store expects it
    base, sep, fragment = url.partition("#")
    joiner = "&" if "?" in base else "?"
    return f"{base}{joiner}t={quote(str(token), safe='')}{sep}{fragment}"


def fetched(url: str, status: int, html: str, rendered: bool) -> FetchResult:
    return FetchResult(
        ok=True,
        url=url,
        status=status,
        html=html,
        fetched_at=datetime.now(timezone.utc),
        rendered=rendered,
    )


def failed(url: str, error: str, rendered: bool, status: int | None = None) -> FetchResult:
    return FetchResult(ok=False, url=url, status=status, error=error, rendered=rendered)
