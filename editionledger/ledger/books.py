"""
ListingBook and BidBook — the open asks and offers on each item.

A record leaves the active state exactly once (sold, accepted, rejected,
cancelled or superseded). The only way back is restore(), which the
settlement journal uses to undo a close that never committed.

Ordering:
    active listings → price ascending, then oldest first
    active bids     → amount descending, then oldest first
Both return fresh lists, so iteration can be restarted freely.
"""

import itertools
import threading
from dataclasses import replace
from typing import Dict, List, Optional

from editionledger.core.exceptions import AlreadyInactive, InvalidOperation, InvariantViolation, NotFound
from editionledger.core.models import (
    Bid,
    BidStatus,
    Listing,
    ListingStatus,
    is_credit_amount,
    new_id,
)
from editionledger.core.time import ledger_timestamp


class ListingBook:

    def __init__(self) -> None:
        self._lock:     threading.Lock     = threading.Lock()
        self._listings: Dict[str, Listing] = {}
        self._order:    Dict[str, int]     = {}
        self._counter = itertools.count()

    def create(self, item_id: str, seller_id: str, price: int, edition_number: Optional[int] = None) -> Listing:
        if not is_credit_amount(price):
            raise InvalidOperation("Price must be a positive integer", {"price": price})
        listing = Listing(
            listing_id=     new_id("lst"),
            item_id=        item_id,
            seller_id=      seller_id,
            price=          price,
            edition_number= edition_number,
        )
        with self._lock:
            self._listings[listing.listing_id] = listing
            self._order[listing.listing_id] = next(self._counter)
            return replace(listing)

    def get(self, listing_id: str) -> Optional[Listing]:
        with self._lock:
            listing = self._listings.get(listing_id)
            return replace(listing) if listing else None

    def require(self, listing_id: str) -> Listing:
        listing = self.get(listing_id)
        if listing is None:
            raise NotFound("Listing not found", {"listing_id": listing_id})
        return listing

    def close(self, listing_id: str, status: str) -> Listing:
        """
        Move an active listing to a closed status.
        Raises AlreadyInactive if it was closed before. Returns the prior snapshot.
        """
        if status == ListingStatus.ACTIVE:
            raise ValueError("close() requires a closed status")
        with self._lock:
            listing = self._get_locked(listing_id)
            if not listing.is_active:
                raise AlreadyInactive(
                    "Listing is no longer active",
                    {"listing_id": listing_id, "status": listing.status},
                )
            previous = replace(listing)
            listing.status = status
            listing.closed_at = ledger_timestamp()
            return previous

    def restore(self, previous: Listing) -> None:
        """Undo a close() that did not commit."""
        with self._lock:
            listing = self._get_locked(previous.listing_id)
            if listing.is_active:
                raise InvariantViolation(f"Listing {previous.listing_id} is already active")
            listing.status = previous.status
            listing.closed_at = previous.closed_at

    def active_for_item(self, item_id: str) -> List[Listing]:
        with self._lock:
            found = [l for l in self._listings.values() if l.item_id == item_id and l.is_active]
            found.sort(key=lambda l: (l.price, self._order[l.listing_id]))
            return [replace(l) for l in found]

    def of_seller(self, seller_id: str, active_only: bool = True) -> List[Listing]:
        with self._lock:
            found = [
                l for l in self._listings.values()
                if l.seller_id == seller_id and (l.is_active or not active_only)
            ]
            found.sort(key=lambda l: self._order[l.listing_id], reverse=True)
            return [replace(l) for l in found]

    def _get_locked(self, listing_id: str) -> Listing:
        listing = self._listings.get(listing_id)
        if listing is None:
            raise NotFound("Listing not found", {"listing_id": listing_id})
        return listing


class BidBook:

    def __init__(self) -> None:
        self._lock:  threading.Lock = threading.Lock()
        self._bids:  Dict[str, Bid] = {}
        self._order: Dict[str, int] = {}
        self._counter = itertools.count()

    def create(self, item_id: str, bidder_id: str, amount: int) -> Bid:
        if not is_credit_amount(amount):
            raise InvalidOperation("Bid amount must be a positive integer", {"amount": amount})
        bid = Bid(bid_id=new_id("bid"), item_id=item_id, bidder_id=bidder_id, amount=amount)
        with self._lock:
            self._bids[bid.bid_id] = bid
            self._order[bid.bid_id] = next(self._counter)
            return replace(bid)

    def get(self, bid_id: str) -> Optional[Bid]:
        with self._lock:
            bid = self._bids.get(bid_id)
            return replace(bid) if bid else None

    def require(self, bid_id: str) -> Bid:
        bid = self.get(bid_id)
        if bid is None:
            raise NotFound("Bid not found", {"bid_id": bid_id})
        return bid

    def set_proof_ref(self, bid_id: str, proof_ref: Optional[str]) -> None:
        with self._lock:
            self._get_locked(bid_id).proof_ref = proof_ref

    def close(self, bid_id: str, status: str) -> Bid:
        """
        Move an active bid to a closed status.
        Raises AlreadyInactive if it was closed before. Returns the prior snapshot.
        """
        if status == BidStatus.ACTIVE:
            raise ValueError("close() requires a closed status")
        with self._lock:
            bid = self._get_locked(bid_id)
            if not bid.is_active:
                raise AlreadyInactive(
                    "Bid is no longer active",
                    {"bid_id": bid_id, "status": bid.status},
                )
            previous = replace(bid)
            bid.status = status
            bid.closed_at = ledger_timestamp()
            return previous

    def restore(self, previous: Bid) -> None:
        """Undo a close() that did not commit."""
        with self._lock:
            bid = self._get_locked(previous.bid_id)
            if bid.is_active:
                raise InvariantViolation(f"Bid {previous.bid_id} is already active")
            bid.status = previous.status
            bid.closed_at = previous.closed_at

    def active_for_item(self, item_id: str) -> List[Bid]:
        with self._lock:
            found = [b for b in self._bids.values() if b.item_id == item_id and b.is_active]
            found.sort(key=lambda b: (-b.amount, self._order[b.bid_id]))
            return [replace(b) for b in found]

    def of_bidder(self, bidder_id: str, active_only: bool = True) -> List[Bid]:
        with self._lock:
            found = [
                b for b in self._bids.values()
                if b.bidder_id == bidder_id and (b.is_active or not active_only)
            ]
            found.sort(key=lambda b: self._order[b.bid_id], reverse=True)
            return [replace(b) for b in found]

    def _get_locked(self, bid_id: str) -> Bid:
        bid = self._bids.get(bid_id)
        if bid is None:
            raise NotFound("Bid not found", {"bid_id": bid_id})
        return bid
