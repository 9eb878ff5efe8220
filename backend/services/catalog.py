import logging
from typing import Any

from pydantic import ValidationError

from backend.config import DEFAULT_CURRENCY
from backend.database import delete_setting, load_setting, store_setting
from backend.errors import InvalidInput
from backend.models import CatalogConfig, Item, Offer

logger = logging.getLogger(__name__)

CATALOG_KEY = "catalog"

DEFAULT_CATALOG = CatalogConfig(
    currency=DEFAULT_CURRENCY,
    items=[
        Item(
            id="eggs",
            name="Large Grade A Eggs (12 ct)",
            offers=[
                Offer(
                    store="No Frills",
                    url="https://www.nofrills.ca/en/large-grade-a-eggs/p/20812144001_EA",
                    selector="meta[property='product:price:amount']",
                ),
                Offer(
                    store="Walmart",
                    url="https://www.walmart.ca/en/ip/Great-Value-Large-Eggs/10052944",
                    selector="meta[property='og:price:amount']",
                ),
                Offer(
                    store="Independent",
                    url="https://www.yourindependentgrocer.ca/en/large-grade-a-eggs/p/20812144001_EA",
                    selector="meta[property='product:price:amount']",
                ),
                Offer(
                    store="Co-op (Leduc)",
                    url="https://www.shop.crs/leduc#/product/134084",
                    selector="[class*='price'], [id*='price']",
                ),
            ],
        )
    ],
)


def parse_catalog(raw: Any) -> CatalogConfig:
    """Validate raw configuration input, raising InvalidInput when malformed."""
    if not isinstance(raw, dict) or not isinstance(raw.get("items"), list):
        raise InvalidInput("Missing 'items' array")
    try:
        return CatalogConfig.model_validate(raw)
    except ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(p) for p in first["loc"]) or "top level"
        raise InvalidInput(f"Invalid configuration at {where}: {first['msg']}") from e


async def get_catalog() -> CatalogConfig:
    """Load the catalog from the database, falling back to the default one."""
    raw = await load_setting(CATALOG_KEY)
    if raw:
        try:
            return CatalogConfig.model_validate_json(raw)
        except ValidationError:
            logger.warning("Invalid catalog in database, using default")
    return DEFAULT_CATALOG


async def save_catalog(catalog: CatalogConfig) -> None:
    await store_setting(CATALOG_KEY, catalog.model_dump_json())


async def apply_catalog(raw: Any) -> CatalogConfig:
    """Validate and persist a new catalog. Invalid input leaves the old one in place."""
    catalog = parse_catalog(raw)
    await save_catalog(catalog)
    logger.info(
        "Catalog applied: %d items, %d offers",
        len(catalog.items),
        sum(len(item.offers) for item in catalog.items),
    )
    return catalog


async def reset_catalog() -> CatalogConfig:
    await delete_setting(CATALOG_KEY)
    logger.info("Catalog reset to default")
    return DEFAULT_CATALOG
