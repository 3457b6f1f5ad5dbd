"""
editionledger/core/models.py

Ledger records.

Mutable records (Account, Item, OwnershipRecord, Listing, Bid) live inside
their repository and are only changed by that repository. Everything a
repository hands out is a snapshot copy, so callers can never mutate
ledger state by accident.

Transaction and ProofRecord are frozen: once written they never change.

Amounts are integer credits. Identifiers are "<prefix>-<uuid4>" strings
except account ids, which come from the identity layer unchanged.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from editionledger.core.time import ledger_timestamp


# Balances are checked against this ceiling on every credit.
MAX_BALANCE = 2 ** 63 - 1


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4()}"


def is_credit_amount(value: Any) -> bool:
    """True for a strictly positive int. bool is rejected."""
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


# ─────────────────────────────────────────────────────────────
# Status vocabularies
# ─────────────────────────────────────────────────────────────

class ListingStatus:
    ACTIVE     = "active"
    SOLD       = "sold"
    CANCELLED  = "cancelled"
    SUPERSEDED = "superseded"


class BidStatus:
    ACTIVE     = "active"
    ACCEPTED   = "accepted"
    REJECTED   = "rejected"
    CANCELLED  = "cancelled"
    SUPERSEDED = "superseded"


class TransactionKind:
    MINT_PURCHASE    = "mint_purchase"
    BID_ACCEPTANCE   = "bid_acceptance"
    LISTING_PURCHASE = "listing_purchase"


_VALID_TRANSACTION_KINDS = {
    TransactionKind.MINT_PURCHASE,
    TransactionKind.BID_ACCEPTANCE,
    TransactionKind.LISTING_PURCHASE,
}


class ProofType:
    MINT     = "mint"
    TRANSFER = "transfer"
    BID      = "bid"


# ─────────────────────────────────────────────────────────────
# Mutable records
# ─────────────────────────────────────────────────────────────

@dataclass
class Account:
    account_id: str
    balance:    int = 0
    created_at: str = field(default_factory=ledger_timestamp)


@dataclass
class ItemDescriptor:
    """What the creator submits at mint time. Content refs are opaque."""
    title:        str
    price:        int
    edition_size: int
    category:     str = "Digital Art"
    description:  str = ""
    content_ref:  str = ""
    metadata_ref: str = ""


@dataclass
class Item:
    item_id:         str
    creator_id:      str
    title:           str
    price:           int
    edition_size:    int
    category:        str
    description:     str = ""
    content_ref:     str = ""
    metadata_ref:    str = ""
    current_edition: int = 0
    resale_count:    int = 0
    proof_ref:       Optional[str] = None
    created_at:      str = field(default_factory=ledger_timestamp)

    @property
    def is_exhausted(self) -> bool:
        return self.current_edition >= self.edition_size

    @property
    def remaining(self) -> int:
        return self.edition_size - self.current_edition


@dataclass
class OwnershipRecord:
    item_id:        str
    edition_number: int
    owner_id:       str
    acquired_at:    str = field(default_factory=ledger_timestamp)


@dataclass
class Listing:
    """
    A standing ask. edition_number is pinned at creation when the seller
    holds an unlisted edition; otherwise it is resolved at purchase time.
    """
    listing_id:     str
    item_id:        str
    seller_id:      str
    price:          int
    edition_number: Optional[int] = None
    status:         str = ListingStatus.ACTIVE
    created_at:     str = field(default_factory=ledger_timestamp)
    closed_at:      Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == ListingStatus.ACTIVE


@dataclass
class Bid:
    bid_id:     str
    item_id:    str
    bidder_id:  str
    amount:     int
    status:     str = BidStatus.ACTIVE
    proof_ref:  Optional[str] = None
    created_at: str = field(default_factory=ledger_timestamp)
    closed_at:  Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == BidStatus.ACTIVE


# ─────────────────────────────────────────────────────────────
# Immutable records
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Transaction:
    """One settled event. Appended to the TransactionLog exactly once."""

    transaction_id: str
    kind:           str
    item_id:        str
    edition_number: int
    buyer_id:       str
    seller_id:      str
    price:          int
    proof_ref:      Optional[str]
    created_at:     str
    source_id:      Optional[str] = None

    @classmethod
    def create(
        cls,
        kind:           str,
        item_id:        str,
        edition_number: int,
        buyer_id:       str,
        seller_id:      str,
        price:          int,
        proof_ref:      Optional[str],
        source_id:      Optional[str] = None,
    ) -> "Transaction":
        if kind not in _VALID_TRANSACTION_KINDS:
            raise ValueError(f"Unknown transaction kind: {kind!r}")
        return cls(
            transaction_id= new_id("tx"),
            kind=           kind,
            item_id=        item_id,
            edition_number= edition_number,
            buyer_id=       buyer_id,
            seller_id=      seller_id,
            price=          price,
            proof_ref=      proof_ref,
            created_at=     ledger_timestamp(),
            source_id=      source_id,
        )

    @property
    def is_certified(self) -> bool:
        return self.proof_ref is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "kind":           self.kind,
            "item_id":        self.item_id,
            "edition_number": self.edition_number,
            "buyer_id":       self.buyer_id,
            "seller_id":      self.seller_id,
            "price":          self.price,
            "proof_ref":      self.proof_ref,
            "created_at":     self.created_at,
            "source_id":      self.source_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        return cls(
            transaction_id= data["transaction_id"],
            kind=           data["kind"],
            item_id=        data["item_id"],
            edition_number= data["edition_number"],
            buyer_id=       data["buyer_id"],
            seller_id=      data["seller_id"],
            price=          data["price"],
            proof_ref=      data.get("proof_ref"),
            created_at=     data["created_at"],
            source_id=      data.get("source_id"),
        )


@dataclass(frozen=True)
class ProofRecord:
    """A certified operation descriptor and the oracle's signature over it."""

    proof_id:          str
    account_id:        str
    proof_type:        str
    descriptor:        Dict[str, Any]
    proof_hash:        str
    signature:         str
    signer_public_key: str
    created_at:        str
