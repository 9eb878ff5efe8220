"""Price extraction strategies, tried in priority order by the engine."""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Iterator

from backend.extraction.currency import normalize_currency_code, resolve_currency
from backend.extraction.document import Document
from backend.extraction.normalize import normalize_price
from backend.models import ExtractionResult

logger = logging.getLogger(__name__)


class PriceStrategy(ABC):
    source: str

    @abstractmethod
    def attempt(
        self, doc: Document, hint: str | None, default_currency: str | None
    ) -> ExtractionResult | None:
        """Return a result with an amount, or None to let the next strategy run."""


class SelectorHintStrategy(PriceStrategy):
    source = "custom selector"

    def attempt(self, doc, hint, default_currency):
        if not hint:
            return None
        raw = doc.read(hint)
        amount = normalize_price(raw)
        if amount is None:
            logger.debug("Selector %r matched no price (%r)", hint, raw)
            return None
        return ExtractionResult(
            amount=amount,
            currency=resolve_currency(raw, doc, default_currency),
            source=self.source,
        )


def _is_product(node: Any) -> bool:
    if not isinstance(node, dict):
        return False
    kind = node.get("@type")
    if isinstance(kind, list):
        return "Product" in kind
    return kind == "Product"


def _as_list(value: Any) -> list:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _candidates(payload: Any) -> Iterator[dict]:
    for node in _as_list(payload):
        if not isinstance(node, dict):
            continue
        yield node
        for child in _as_list(node.get("@graph")):
            if isinstance(child, dict):
                yield child


class StructuredDataStrategy(PriceStrategy):
    source = "structured data"

    def attempt(self, doc, hint, default_currency):
        for block in doc.scripts("application/ld+json"):
            if not block or not block.strip():
                continue
            try:
                payload = json.loads(block)
            except json.JSONDecodeError as e:
                logger.debug("Skipping unparseable JSON-LD block: %s", e)
                continue

            for node in _candidates(payload):
                if not _is_product(node):
                    continue
                for offer in _as_list(node.get("offers")):
                    result = self._from_offer(offer, doc, default_currency)
                    if result:
                        return result
        return None

    def _from_offer(self, offer, doc, default_currency) -> ExtractionResult | None:
        if not isinstance(offer, dict):
            return None
        price_spec = offer.get("priceSpecification")
        if isinstance(price_spec, list):
            price_spec = price_spec[0] if price_spec else None
        if not isinstance(price_spec, dict):
            price_spec = {}

        price = offer.get("price")
        if price is None:
            price = price_spec.get("price")
        if price is None:
            price = offer.get("lowPrice")
        amount = normalize_price(price)
        if amount is None:
            return None

        currency = normalize_currency_code(
            offer.get("priceCurrency") or price_spec.get("priceCurrency")
        )
        if currency is None:
            currency = resolve_currency(None, doc, default_currency)
        return ExtractionResult(amount=amount, currency=currency, source=self.source)


class MetaTagStrategy(PriceStrategy):
    source = "meta tags"

    def attempt(self, doc, hint, default_currency):
        raw = (
            doc.meta_property("product:price:amount")
            or doc.meta_property("og:price:amount")
            or doc.attr(doc.select_one('meta[itemprop="price"]'), "content")
            or doc.text(doc.select_one('[itemprop="price"]'))
        )
        amount = normalize_price(raw)
        if amount is None:
            return None
        currency = resolve_currency(raw, doc, default_currency)
        return ExtractionResult(amount=amount, currency=currency, source=self.source)


PRICE_PATTERN = re.compile(
    r"(?:\$|€|£|¥|₹)\s*\d{1,3}(?:[.,\s]?\d{3})*(?:[.,]\d{2})?"
    r"|\b\d+(?:[.,]\d{2})\s*(?:USD|CAD|EUR|GBP|JPY|INR)\b",
    re.IGNORECASE,
)

SCAN_CONTAINERS = (
    '[class*="price"]',
    '[id*="price"]',
    "[data-price]",
    "div, span, p",
)


class TextScanStrategy(PriceStrategy):
    source = "fallback text scan"

    def attempt(self, doc, hint, default_currency):
        for selector in SCAN_CONTAINERS:
            for node in doc.select(selector):
                text = doc.text(node)
                if not text:
                    continue
                match = PRICE_PATTERN.search(text)
                if not match:
                    continue
                raw = match.group(0)
                amount = normalize_price(raw)
                if amount is None:
                    continue
                return ExtractionResult(
                    amount=amount,
                    currency=resolve_currency(raw, doc, default_currency),
                    source=self.source,
                )
        return None
