"""
EditionTracker — the item store and its edition counters.

claim_next_edition() is linearizable: the check against edition_size and
the increment happen under one lock, so two concurrent claims on the last
edition can never both succeed.

current_edition counts editions minted to buyers. Resales never touch it;
they are counted separately in resale_count.
"""

import logging
import threading
from dataclasses import replace
from typing import Dict, List, Optional

from editionledger.core.exceptions import (
    Exhausted,
    InvalidOperation,
    InvariantViolation,
    NotFound,
)
from editionledger.core.models import Item, ItemDescriptor, is_credit_amount, new_id


logger = logging.getLogger(__name__)


class EditionTracker:

    def __init__(self) -> None:
        self._lock:  threading.Lock  = threading.Lock()
        self._items: Dict[str, Item] = {}

    # ── Items ─────────────────────────────────────────────────

    def create_item(self, descriptor: ItemDescriptor, creator_id: str) -> Item:
        """Raises InvalidOperation for a blank title, bad price or edition size."""
        if not descriptor.title or not descriptor.title.strip():
            raise InvalidOperation("Item title is required")
        if not is_credit_amount(descriptor.price):
            raise InvalidOperation("Price must be a positive integer", {"price": descriptor.price})
        if not is_credit_amount(descriptor.edition_size):
            raise InvalidOperation(
                "Edition size must be a positive integer",
                {"edition_size": descriptor.edition_size},
            )
        item = Item(
            item_id=      new_id("item"),
            creator_id=   creator_id,
            title=        descriptor.title.strip(),
            price=        descriptor.price,
            edition_size= descriptor.edition_size,
            category=     descriptor.category,
            description=  descriptor.description,
            content_ref=  descriptor.content_ref,
            metadata_ref= descriptor.metadata_ref,
        )
        with self._lock:
            self._items[item.item_id] = item
        logger.info(
            "created item %s (%d editions at %d) for %s",
            item.item_id, item.edition_size, item.price, creator_id,
        )
        return replace(item)

    def get(self, item_id: str) -> Optional[Item]:
        with self._lock:
            item = self._items.get(item_id)
            return replace(item) if item else None

    def require(self, item_id: str) -> Item:
        item = self.get(item_id)
        if item is None:
            raise NotFound("Item not found", {"item_id": item_id})
        return item

    def items(self) -> List[Item]:
        with self._lock:
            return [replace(item) for item in self._items.values()]

    def set_proof_ref(self, item_id: str, proof_ref: Optional[str]) -> None:
        with self._lock:
            self._get_locked(item_id).proof_ref = proof_ref

    # ── Edition counters ──────────────────────────────────────

    def claim_next_edition(self, item_id: str) -> int:
        """
        Claim the next edition number (1-indexed).
        Raises Exhausted when current_edition == edition_size.
        """
        with self._lock:
            item = self._get_locked(item_id)
            if item.current_edition >= item.edition_size:
                raise Exhausted(
                    "No editions remain",
                    {"item_id": item_id, "edition_size": item.edition_size},
                )
            item.current_edition += 1
            return item.current_edition

    def release_edition(self, item_id: str, edition_number: int) -> None:
        """Undo the most recent claim. Only the latest edition can be released."""
        with self._lock:
            item = self._get_locked(item_id)
            if item.current_edition != edition_number:
                raise InvariantViolation(
                    f"Cannot release edition {edition_number} of {item_id}: "
                    f"current edition is {item.current_edition}"
                )
            item.current_edition -= 1

    def record_resale(self, item_id: str) -> None:
        with self._lock:
            self._get_locked(item_id).resale_count += 1

    def undo_resale(self, item_id: str) -> None:
        with self._lock:
            item = self._get_locked(item_id)
            if item.resale_count <= 0:
                raise InvariantViolation(f"Resale count of {item_id} would go negative")
            item.resale_count -= 1

    # ── Internal ──────────────────────────────────────────────

    def _get_locked(self, item_id: str) -> Item:
        item = self._items.get(item_id)
        if item is None:
            raise NotFound("Item not found", {"item_id": item_id})
        return item
