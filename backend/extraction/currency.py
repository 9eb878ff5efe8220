import re
from urllib.parse import urlparse

from backend.extraction.document import Document

KNOWN_CURRENCIES = frozenset({
    "USD", "EUR", "GBP", "JPY", "CAD", "AUD", "INR", "CHF",
    "SEK", "NOK", "DKK", "NZD", "CNY", "MXN", "BRL", "ZAR",
})

# Retailers whose "$" prices are not in the configured default currency.
# First match on the page host wins; append rules to extend.
DOMAIN_RULES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"(?:nofrills|yourindependentgrocer|loblaws|provigo|realcanadiansuperstore)\.", re.I), "CAD"),
    (re.compile(r"walmart\.ca$", re.I), "CAD"),
    (re.compile(r"shop\.crs|coop|co-op", re.I), "CAD"),
]

_SYMBOLS = (
    ("€", "EUR"),
    ("£", "GBP"),
    ("¥", "JPY"),
    ("₹", "INR"),
)

_CODE_IN_TEXT = re.compile(r"\b([A-Za-z]{3})\b")


def normalize_currency_code(code: str | None) -> str | None:
    """Return the upper-cased code if it is a recognized ISO 4217 code."""
    if not code:
        return None
    c = str(code).strip().upper()
    return c if c in KNOWN_CURRENCIES else None


def currency_for_host(host: str) -> str | None:
    for pattern, currency in DOMAIN_RULES:
        if pattern.search(host):
            return currency
    return None


def metadata_currency(doc: Document) -> str:
    """Raw currency value from the meta / microdata property family."""
    price_currency = doc.select_one('[itemprop="priceCurrency"]')
    return (
        doc.meta_property("product:price:currency")
        or doc.meta_property("og:price:currency")
        or doc.attr(doc.select_one('meta[itemprop="priceCurrency"]'), "content")
        or doc.attr(price_currency, "content")
        or doc.text(price_currency)
    )


def currency_from_text(text: str | None, default_currency: str | None) -> str | None:
    if not text:
        return None
    for symbol, code in _SYMBOLS:
        if symbol in text:
            return code
    if "$" in text:
        # "$" is shared by USD, CAD, AUD...; defer to the catalog's currency
        return normalize_currency_code(default_currency)
    for match in _CODE_IN_TEXT.finditer(text):
        code = normalize_currency_code(match.group(1))
        if code:
            return code
    return None


def resolve_currency(
    text: str | None, doc: Document, default_currency: str | None = None
) -> str | None:
    """Infer the ISO currency for a price found in *doc*.

    Order: retailer domain rules, symbols in *text*, page metadata, then
    *default_currency*. Codes outside KNOWN_CURRENCIES are never returned.
    """
    try:
        host = urlparse(doc.origin_url()).hostname or ""
    except ValueError:
        host = ""
    if host:
        currency = currency_for_host(host)
        if currency:
            return currency

    currency = currency_from_text(text, default_currency)
    if currency:
        return currency

    return (
        normalize_currency_code(metadata_currency(doc))
        or normalize_currency_code(default_currency)
    )
