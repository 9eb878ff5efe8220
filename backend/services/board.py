"""In-memory view of the latest resolution state of every configured offer."""

import itertools
from datetime import datetime, timezone

from backend.models import (
    CatalogConfig,
    Item,
    OfferStatus,
    PricesResponse,
    ResolvedItem,
    ResolvedOffer,
)


def select_best(offers: list[ResolvedOffer]) -> int | None:
    """Index of the cheapest priced offer; the earliest one wins a tie."""
    priced = [(i, o.amount) for i, o in enumerate(offers) if o.amount is not None]
    if not priced:
        return None
    return min(priced, key=lambda p: p[1])[0]


class PriceBoard:
    """Holds one ResolvedOffer per configured offer.

    Every run is tagged with an increasing id; only the latest run started
    for an offer may write its result, so a slow earlier run never
    overwrites a newer one.
    """

    def __init__(self):
        self._run_ids = itertools.count(1)
        self.catalog: CatalogConfig | None = None
        self._items: dict[str, Item] = {}
        self._offers: dict[str, list[ResolvedOffer]] = {}
        self._latest_run: dict[tuple[str, int], int] = {}
        self.updated_at: datetime | None = None

    def reset(self, catalog: CatalogConfig) -> None:
        self.catalog = catalog
        self._items = {item.id: item for item in catalog.items}
        self._offers = {
            item.id: [ResolvedOffer(offer=offer) for offer in item.offers]
            for item in catalog.items
        }
        self._latest_run.clear()
        self.updated_at = None

    def has_offer(self, item_id: str, index: int) -> bool:
        return item_id in self._offers and 0 <= index < len(self._offers[item_id])

    def begin(self, item_id: str, index: int) -> int:
        """Mark an offer as fetching and return the id of the new run."""
        run_id = next(self._run_ids)
        self._latest_run[(item_id, index)] = run_id
        offers = self._offers[item_id]
        offers[index] = ResolvedOffer(offer=offers[index].offer, status=OfferStatus.FETCHING)
        self._recalc_best(item_id)
        return run_id

    def complete(self, item_id: str, index: int, run_id: int, resolved: ResolvedOffer) -> bool:
        """Store a finished run's result; returns False if the run is stale."""
        if self._latest_run.get((item_id, index)) != run_id:
            return False
        self._offers[item_id][index] = resolved
        self._recalc_best(item_id)
        self.updated_at = datetime.now(timezone.utc)
        return True

    def _recalc_best(self, item_id: str) -> None:
        offers = self._offers[item_id]
        best = select_best(offers)
        self._offers[item_id] = [
            o.model_copy(update={"best": i == best}) for i, o in enumerate(offers)
        ]

    def snapshot(self) -> PricesResponse:
        return PricesResponse(
            currency=self.catalog.currency if self.catalog else None,
            items=[
                ResolvedItem(id=item.id, name=item.name, offers=list(self._offers[item.id]))
                for item in self._items.values()
            ],
            updated_at=self.updated_at,
        )

    def item(self, item_id: str) -> ResolvedItem | None:
        item = self._items.get(item_id)
        if item is None:
            return None
        return ResolvedItem(id=item.id, name=item.name, offers=list(self._offers[item_id]))


board = PriceBoard()
