from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import sessionmaker

from app.models.listing import AppFlag, ListingRow
from app.schemas.listing import Listing

logger = logging.getLogger(__name__)

Snapshot = List[Listing]
SnapshotCallback = Callable[[Snapshot], None]


class DocumentNotFound(Exception):
    pass


class VersionMismatch(Exception):
    def __init__(self, doc_id: str, expected: int, actual: int):
        super().__init__(f"{doc_id}: expected version {expected}, found {actual}")
        self.doc_id = doc_id
        self.expected = expected
        self.actual = actual


class ListingCollection:
    """
    The 'anuncios' document collection, backed by a SQL table.

    Documents are keyed by their slug id. Order is the `position` column.
    Every committed write pushes a fresh full snapshot to every watcher,
    which gives the real-time subscription semantics the store relies on.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self._watchers: List[SnapshotCallback] = []

    # --- subscription ---

    def watch(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Register a watcher. It gets the current snapshot right away, then one per write."""
        self._watchers.append(callback)
        callback(self._snapshot())

        def unsubscribe() -> None:
            if callback in self._watchers:
                self._watchers.remove(callback)

        return unsubscribe

    def _broadcast(self) -> None:
        if not self._watchers:
            return
        snapshot = self._snapshot()
        logger.debug("Broadcasting snapshot of %d listings to %d watchers", len(snapshot), len(self._watchers))
        # Copy: a watcher may unsubscribe while being notified
        for callback in list(self._watchers):
            callback(list(snapshot))

    def _snapshot(self) -> Snapshot:
        with self._session_factory() as db:
            rows = db.query(ListingRow).order_by(ListingRow.position, ListingRow.id).all()
            return [Listing.model_validate(row) for row in rows]

    # --- reads ---

    async def list(self) -> Snapshot:
        return self._snapshot()

    async def get(self, doc_id: str) -> Optional[Listing]:
        with self._session_factory() as db:
            row = db.get(ListingRow, doc_id)
            return Listing.model_validate(row) if row else None

    # --- writes ---

    @staticmethod
    def _validated(db, row: ListingRow) -> Listing:
        """Flush and read back a pending row. Nothing is committed if it is not a valid listing."""
        try:
            db.flush()
            db.refresh(row)
            return Listing.model_validate(row)
        except Exception:
            db.rollback()
            raise

    async def set(self, doc_id: str, data: Dict[str, Any]) -> Listing:
        """Write a full document. New documents go to the end of the collection."""
        with self._session_factory() as db:
            row = db.get(ListingRow, doc_id)
            if row is None:
                last = db.query(func.max(ListingRow.position)).scalar()
                row = ListingRow(id=doc_id, position=0 if last is None else last + 1, version=0)
                db.add(row)
            for field, value in data.items():
                setattr(row, field, value)
            row.version = (row.version or 0) + 1
            listing = self._validated(db, row)
            db.commit()
        self._broadcast()
        return listing

    async def merge(
        self, doc_id: str, data: Dict[str, Any], expected_version: Optional[int] = None
    ) -> Listing:
        """Merge fields into an existing document; absent fields are left as they are."""
        with self._session_factory() as db:
            row = db.get(ListingRow, doc_id)
            if row is None:
                raise DocumentNotFound(doc_id)
            if expected_version is not None and row.version != expected_version:
                raise VersionMismatch(doc_id, expected_version, row.version)
            for field, value in data.items():
                setattr(row, field, value)
            row.version += 1
            listing = self._validated(db, row)
            db.commit()
        self._broadcast()
        return listing

    async def delete(self, doc_id: str) -> None:
        with self._session_factory() as db:
            row = db.get(ListingRow, doc_id)
            if row is None:
                raise DocumentNotFound(doc_id)
            db.delete(row)
            db.commit()
        self._broadcast()

    async def write_positions(self, positions: Dict[str, int]) -> int:
        """Rewrite the order field in one transaction. Returns how many rows changed."""
        changed = 0
        with self._session_factory() as db:
            rows = db.query(ListingRow).filter(ListingRow.id.in_(list(positions))).all()
            for row in rows:
                target = positions[row.id]
                if row.position != target:
                    row.position = target
                    row.version += 1
                    changed += 1
            if changed:
                db.commit()
        if changed:
            self._broadcast()
        return changed

    # --- one-shot flags ---

    async def has_flag(self, name: str) -> bool:
        with self._session_factory() as db:
            return db.get(AppFlag, name) is not None

    async def set_flag(self, name: str) -> None:
        with self._session_factory() as db:
            if db.get(AppFlag, name) is None:
                db.add(AppFlag(name=name))
                db.commit()
