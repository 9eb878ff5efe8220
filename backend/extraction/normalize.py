"""Locale-agnostic parsing of raw price strings."""

import math
import re

_NOT_NUMERIC = re.compile(r"[^\d.,-]")
_LEADING_NUMBER = re.compile(r"-?(?:\d+\.?\d*|\.\d+)")


def normalize_price(raw: str | int | float | None) -> float | None:
    """Turn a raw price like ``"1.234,56 €"`` or ``"$1,234.56"`` into a float.

    When both separators appear, whichever comes last is the decimal mark. A
    lone comma is a decimal mark; a lone dot (or none) keeps the usual
    English reading. Returns None for empty, unparseable or negative input.
    """
    if raw is None or isinstance(raw, bool):
        return None
    text = str(raw).strip()
    if not text:
        return None

    cleaned = _NOT_NUMERIC.sub("", text)
    if not cleaned:
        return None

    last_comma = cleaned.rfind(",")
    last_dot = cleaned.rfind(".")

    if last_comma != -1 and last_dot != -1:
        split = max(last_comma, last_dot)
        whole = re.sub(r"[.,]", "", cleaned[:split])
        fraction = re.sub(r"[.,]", "", cleaned[split + 1:])
        normalized = f"{whole}.{fraction}"
    elif last_comma != -1:
        normalized = cleaned.replace(".", "").replace(",", ".", 1)
    else:
        normalized = cleaned.replace(",", "")

    # Parse the leading number only, like a lenient float reader would
    match = _LEADING_NUMBER.match(normalized)
    if not match:
        return None
    try:
        value = float(match.group(0))
    except ValueError:
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return value


def format_amount(amount: float, currency: str | None) -> str:
    if currency:
        return f"{currency} {amount:,.2f}"
    return f"{amount:,.2f}"
