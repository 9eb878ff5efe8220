import logging

from backend.extraction.document import Document, parse_document
from backend.extraction.strategies import (
    MetaTagStrategy,
    PriceStrategy,
    SelectorHintStrategy,
    StructuredDataStrategy,
    TextScanStrategy,
)
from backend.models import ExtractionResult

logger = logging.getLogger(__name__)

# Priority order; the first strategy returning an amount wins
STRATEGIES: tuple[PriceStrategy, ...] = (
    SelectorHintStrategy(),
    StructuredDataStrategy(),
    MetaTagStrategy(),
    TextScanStrategy(),
)


def extract_price(
    doc: Document,
    selector_hint: str | None = None,
    default_currency: str | None = None,
    strategies: tuple[PriceStrategy, ...] = STRATEGIES,
) -> ExtractionResult:
    """Run each strategy in turn and return the first price found.

    A page without a recognizable price yields an empty result, not an error.
    """
    for strategy in strategies:
        result = strategy.attempt(doc, selector_hint, default_currency)
        if result is not None and result.amount is not None:
            logger.debug("Price %s found via %s", result.amount, strategy.source)
            return result
    return ExtractionResult()


def extract_from_html(
    html: str,
    url: str | None = None,
    selector_hint: str | None = None,
    default_currency: str | None = None,
) -> ExtractionResult:
    return extract_price(parse_document(html, url), selector_hint, default_currency)
