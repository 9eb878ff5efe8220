class PriceCompareError(Exception):
    """Base class for price lookup errors."""


class InvalidInput(PriceCompareError):
    """Malformed URL or configuration; rejected before any work is attempted."""


class RetrievalFailure(PriceCompareError):
    """Network error, timeout or non-2xx response while retrieving a page."""


class ExtractionMiss(PriceCompareError):
    """The page was retrieved but no extraction strategy found a price."""
