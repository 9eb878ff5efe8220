"""Plain HTTP retrieval of server-rendered markup."""

import asyncio
import logging

import httpx

from backend.config import ACCEPT_LANGUAGE, DIRECT_TIMEOUT_SECONDS, USER_AGENT
from backend.models import FetchResult
from backend.retrieval.base import failed, fetched, validate_url, with_cache_bust

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": ACCEPT_LANGUAGE,
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


async def retrieve_direct(
    url: str,
    cache_bust: str | None = None,
    timeout: float = DIRECT_TIMEOUT_SECONDS,
) -> FetchResult:
    """GET *url* and return its markup.

    Raises InvalidInput for non-http(s) URLs. Network errors, timeouts and
    non-2xx responses come back as a failed FetchResult.
    """
    url = validate_url(url)
    target = with_cache_bust(url, cache_bust)

    try:
        async with httpx.AsyncClient(
            headers=DEFAULT_HEADERS,
            timeout=timeout,
            follow_redirects=True,
        ) as client:
            # httpx timeouts are per read, so a trickling body needs an overall cap
            response = await asyncio.wait_for(client.get(target), timeout)
    except (httpx.TimeoutException, asyncio.TimeoutError):
        logger.warning("Direct fetch timed out after %ss: %s", timeout, url)
        return failed(url, f"Timed out after {timeout:g}s", rendered=False)
    except httpx.HTTPError as e:
        logger.warning("Direct fetch failed for %s: %s", url, e)
        return failed(url, str(e) or "Fetch failed", rendered=False)

    if not response.is_success:
        logger.warning("Direct fetch of %s returned HTTP %d", url, response.status_code)
        return failed(
            url, f"HTTP {response.status_code}", rendered=False, status=response.status_code
        )

    return fetched(str(response.url), response.status_code, response.text, rendered=False)
