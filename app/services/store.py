from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Callable, Dict, List, Optional, Sequence, Union

from fastapi import Request
from pydantic import ValidationError

from app.schemas.listing import Listing, ListingCreate, ListingUpdate
from app.services.collection import (
    DocumentNotFound,
    ListingCollection,
    Snapshot,
    SnapshotCallback,
    VersionMismatch,
)

logger = logging.getLogger(__name__)

SEED_FLAG = "jveloce_db_v1_seeded"

DEFAULT_LISTINGS = [
    {
        "id": "mercedes-class-a-2019",
        "brand": "Mercedes",
        "model": "Clase A 200d",
        "year": 2019,
        "fuel": "Diesel",
        "transmission": "Auto",
        "image": "assets/mercedes_a_class.png",
        "logo": "assets/logo_mercedes.png",
        "sold": False,
        "price": "28.500€",
    },
    {
        "id": "peugeot-3008-2016",
        "brand": "Peugeot",
        "model": "3008",
        "year": 2016,
        "fuel": "Diesel",
        "transmission": "Manual",
        "image": "assets/peugeot_3008.png",
        "logo": "assets/logo_peugeot.png",
        "sold": False,
        "price": "18.900€",
    },
    {
        "id": "kia-sportage-2020",
        "brand": "Kia",
        "model": "Sportage",
        "year": 2020,
        "fuel": "Híbrido",
        "transmission": "Auto",
        "image": "assets/kia_sportage.png",
        "logo": "assets/logo_kia_white.png",
        "logo_class": "wide",
        "sold": False,
        "price": "24.200€",
    },
]


class ListingNotFound(Exception):
    pass


class ListingValidationError(Exception):
    pass


class MutationError(Exception):
    pass


class ConflictError(MutationError):
    pass


def make_listing_id(brand: str, model: str, timestamp_ms: Optional[int] = None) -> str:
    """Slug id from brand, model and a millisecond timestamp: 'kia-sportage-1718000000000'."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return re.sub(r"\s+", "-", f"{brand}-{model}-{timestamp_ms}".lower())


class ListingStore:
    """
    Single source of truth for listings.

    Holds one subscription to the backing collection for its whole life and
    fans every snapshot out to the registered observers. Observers that
    register late only see future snapshots.
    """

    def __init__(self, collection: ListingCollection):
        self._collection = collection
        self._observers: List[SnapshotCallback] = []
        self._listings: Snapshot = []
        self._unwatch: Optional[Callable[[], None]] = None
        self._reorder_lock = asyncio.Lock()

    # --- lifecycle ---

    @property
    def started(self) -> bool:
        return self._unwatch is not None

    def start(self) -> None:
        if self._unwatch is None:
            self._unwatch = self._collection.watch(self._on_snapshot)
            logger.info("Listing store subscribed", extra={"listings": len(self._listings)})

    def close(self) -> None:
        if self._unwatch is not None:
            self._unwatch()
            self._unwatch = None
        self._observers.clear()

    async def __aenter__(self) -> "ListingStore":
        self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        self.close()

    # --- fan-out ---

    def _on_snapshot(self, snapshot: Snapshot) -> None:
        self._listings = snapshot
        for observer in list(self._observers):
            try:
                observer(list(snapshot))
            except Exception:
                # One broken observer must not starve the others
                logger.exception("Listing observer failed")

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Register an observer for future snapshots. Returns an unsubscribe function."""
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    # --- reads ---

    @property
    def listings(self) -> Snapshot:
        """The most recent snapshot, in collection order."""
        return list(self._listings)

    async def get(self, listing_id: str) -> Listing:
        listing = await self._collection.get(listing_id)
        if listing is None:
            raise ListingNotFound(listing_id)
        return listing

    def search(self, query: str) -> Snapshot:
        """Case-insensitive substring search over the catalog fields of the current snapshot."""
        term = query.lower().strip()
        if not term:
            return []
        results = []
        for car in self._listings:
            text = " ".join(
                str(value or "")
                for value in (car.brand, car.model, car.year, car.fuel, car.transmission, car.km, car.price)
            ).lower()
            if term in text:
                results.append(car)
        return results

    # --- mutations ---

    async def create(self, payload: ListingCreate) -> Listing:
        if not payload.brand or not payload.model:
            raise ListingValidationError("brand and model are required")
        data = payload.model_dump(exclude={"id"})
        listing_id = payload.id or make_listing_id(payload.brand, payload.model)
        try:
            if await self._collection.get(listing_id) is not None:
                raise ConflictError(f"listing {listing_id} already exists")
            listing = await self._collection.set(listing_id, data)
        except MutationError:
            raise
        except Exception as e:
            logger.exception("Create failed", extra={"listing_id": listing_id})
            raise MutationError(f"Could not create listing {listing_id}: {e}") from e
        logger.info("Listing created", extra={"listing_id": listing_id})
        return listing

    async def update(
        self,
        listing_id: str,
        patch: Union[ListingUpdate, Dict],
        expected_version: Optional[int] = None,
    ) -> Listing:
        if isinstance(patch, dict):
            try:
                patch = ListingUpdate(**patch)
            except ValidationError as e:
                raise ListingValidationError(str(e)) from e
        data = patch.model_dump(exclude_unset=True)
        data.pop("id", None)
        try:
            listing = await self._collection.merge(listing_id, data, expected_version=expected_version)
        except DocumentNotFound:
            raise ListingNotFound(listing_id)
        except VersionMismatch as e:
            raise ConflictError(str(e)) from e
        except Exception as e:
            logger.exception("Update failed", extra={"listing_id": listing_id})
            raise MutationError(f"Could not update listing {listing_id}: {e}") from e
        logger.info("Listing updated", extra={"listing_id": listing_id, "fields": sorted(data)})
        return listing

    async def delete(self, listing_id: str) -> None:
        try:
            await self._collection.delete(listing_id)
        except DocumentNotFound:
            raise ListingNotFound(listing_id)
        except Exception as e:
            logger.exception("Delete failed", extra={"listing_id": listing_id})
            raise MutationError(f"Could not delete listing {listing_id}: {e}") from e
        logger.info("Listing deleted", extra={"listing_id": listing_id})

    async def reorder(self, ordered: Sequence[Union[str, Listing]]) -> Snapshot:
        """
        Persist a new display order.

        `ordered` must name every current listing exactly once. Reorders are
        serialized, and each one rewrites the position of every entry, so the
        resulting order is always total. Returns the listings in their new order.
        """
        ids = [item if isinstance(item, str) else item.id for item in ordered]
        async with self._reorder_lock:
            current = await self._collection.list()
            current_ids = [car.id for car in current]
            if len(set(ids)) != len(ids):
                raise ListingValidationError("reorder contains duplicate ids")
            if set(ids) != set(current_ids):
                missing = sorted(set(current_ids) - set(ids))
                unknown = sorted(set(ids) - set(current_ids))
                raise ListingValidationError(
                    f"reorder must list every listing exactly once (missing={missing}, unknown={unknown})"
                )
            try:
                changed = await self._collection.write_positions(
                    {listing_id: index for index, listing_id in enumerate(ids)}
                )
            except Exception as e:
                logger.exception("Reorder failed")
                raise MutationError(f"Could not reorder listings: {e}") from e
            logger.info("Listings reordered", extra={"changed": changed})
            return await self._collection.list()

    async def seed_defaults(self) -> bool:
        """Write the default listings once per database. Returns True if it seeded."""
        if await self._collection.has_flag(SEED_FLAG):
            return False
        for car in DEFAULT_LISTINGS:
            if await self._collection.get(car["id"]) is None:
                await self._collection.set(car["id"], ListingCreate(**car).model_dump(exclude={"id"}))
        await self._collection.set_flag(SEED_FLAG)
        logger.info("Database initialized with default data", extra={"listings": len(DEFAULT_LISTINGS)})
        return True


def get_store(request: Request) -> ListingStore:
    """FastAPI dependency: the store built in the application lifespan."""
    return request.app.state.store
