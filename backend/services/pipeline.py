import asyncio
import logging
import time
from collections.abc import Awaitable

from backend.config import DIRECT_DEADLINE_SECONDS, RENDER_DEADLINE_SECONDS
from backend.errors import ExtractionMiss, RetrievalFailure
from backend.extraction.currency import normalize_currency_code
from backend.extraction.engine import extract_from_html
from backend.extraction.normalize import format_amount
from backend.models import (
    CatalogConfig,
    FetchResult,
    Offer,
    OfferStatus,
    PricesResponse,
    ResolvedItem,
    ResolvedOffer,
)
from backend.retrieval import browser, direct
from backend.services.board import PriceBoard, board as default_board

logger = logging.getLogger(__name__)

PRICE_NOT_FOUND = "Price not found"


async def _bounded(
    fetch: Awaitable[FetchResult], url: str, rendered: bool, timeout: float
) -> FetchResult:
    """Await a retrieval with an outer deadline; a timeout becomes a failed result."""
    try:
        return await asyncio.wait_for(fetch, timeout=timeout)
    except asyncio.TimeoutError:
        tier = "Render" if rendered else "Fetch"
        logger.warning("%s of %s exceeded %ss", tier, url, timeout)
        return FetchResult(ok=False, url=url, rendered=rendered, error=f"{tier} timed out")


async def _resolve_from(
    page: FetchResult, offer: Offer, default_currency: str | None
) -> ResolvedOffer:
    """Extract a price from a retrieval result.

    Raises RetrievalFailure if the page could not be retrieved and
    ExtractionMiss if it was retrieved but holds no recognizable price.
    """
    tier = "rendered" if page.rendered else "static"
    if not page.ok:
        raise RetrievalFailure(page.error or f"{tier} retrieval failed")

    result = await asyncio.to_thread(
        extract_from_html, page.html or "", page.url, offer.selector, default_currency
    )
    if result.amount is None:
        raise ExtractionMiss(f"{PRICE_NOT_FOUND} in {tier} page")

    currency = result.currency or normalize_currency_code(default_currency)
    label = "Detected (rendered)" if page.rendered else "Detected (static)"
    return ResolvedOffer(
        offer=offer,
        status=OfferStatus.RESOLVED,
        amount=result.amount,
        currency=currency,
        source=result.source,
        rendered=page.rendered,
        message=f"{label} via {result.source}: {format_amount(result.amount, currency)}",
    )


async def resolve_offer(
    offer: Offer, default_currency: str | None = None, force: bool = False
) -> ResolvedOffer:
    """Resolve one offer: direct retrieval first, rendered retrieval on any miss."""
    cache_bust = str(int(time.time() * 1000)) if force else None

    first = await _bounded(
        direct.retrieve_direct(offer.url, cache_bust=cache_bust),
        offer.url, rendered=False, timeout=DIRECT_DEADLINE_SECONDS,
    )
    miss = None
    try:
        return await _resolve_from(first, offer, default_currency)
    except ExtractionMiss as e:
        miss = str(e)
        logger.info("%s: %s, trying rendered retrieval", offer.store, e)
    except RetrievalFailure as e:
        logger.info("%s: %s, trying rendered retrieval", offer.store, e)

    second = await _bounded(
        browser.retrieve_rendered(offer.url, wait_selector=offer.selector),
        offer.url, rendered=True, timeout=RENDER_DEADLINE_SECONDS,
    )
    try:
        return await _resolve_from(second, offer, default_currency)
    except ExtractionMiss as e:
        miss = str(e)
        logger.info("%s: %s", offer.store, e)
    except RetrievalFailure as e:
        logger.info("%s: %s", offer.store, e)

    # Direct-tier error first, then render error, then the last miss
    error = first.error or second.error or miss or PRICE_NOT_FOUND
    logger.warning("%s: giving up on %s (%s)", offer.store, offer.url, error)
    return ResolvedOffer(offer=offer, status=OfferStatus.FAILED, message=error, error=error)


async def _run_offer(
    board: PriceBoard,
    item_id: str,
    index: int,
    offer: Offer,
    default_currency: str | None,
    force: bool,
) -> None:
    """Resolve a single offer and publish the result, isolating any failure."""
    run_id = board.begin(item_id, index)
    try:
        resolved = await resolve_offer(offer, default_currency, force=force)
    except Exception as e:
        logger.exception("%s: unexpected error resolving %s", offer.store, offer.url)
        resolved = ResolvedOffer(
            offer=offer, status=OfferStatus.FAILED, message=str(e) or "Failed", error=str(e)
        )
    if not board.complete(item_id, index, run_id, resolved):
        logger.debug("Discarding stale result for %s[%d]", item_id, index)


async def refresh_all(
    catalog: CatalogConfig, force: bool = False, board: PriceBoard = default_board
) -> PricesResponse:
    """Resolve every offer of every item concurrently, from a clean board."""
    board.reset(catalog)
    tasks = [
        _run_offer(board, item.id, index, offer, catalog.currency, force)
        for item in catalog.items
        for index, offer in enumerate(item.offers)
    ]
    await asyncio.gather(*tasks)

    snapshot = board.snapshot()
    resolved = sum(
        1 for item in snapshot.items for o in item.offers if o.status == OfferStatus.RESOLVED
    )
    logger.info("Refresh finished: %d/%d offers priced", resolved, len(tasks))
    return snapshot


async def refresh_offer(
    item_id: str, index: int, force: bool = False, board: PriceBoard = default_board
) -> ResolvedItem:
    """Start an independent run for one offer and return its item afterwards."""
    item = next(i for i in board.catalog.items if i.id == item_id)
    await _run_offer(board, item_id, index, item.offers[index], board.catalog.currency, force)
    return board.item(item_id)
