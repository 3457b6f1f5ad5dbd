"""
editionledger/__init__.py

EditionLedger: settlement engine for a limited-edition collectibles market.

Creators mint items with a fixed number of editions. Buyers claim
editions directly, place bids, or buy from resale listings. Every
settlement moves credits and ownership as one atomic step and is
recorded once in a signed, hash-chained transaction log.
"""

__version__ = "0.3.0"

from editionledger.core.config import MarketConfig, MarketMode
from editionledger.core.crypto import SigningKey
from editionledger.core.exceptions import (
    AlreadyInactive,
    ConfigError,
    Conflict,
    Exhausted,
    InsufficientBalance,
    InvalidOperation,
    InvariantViolation,
    MarketError,
    NotFound,
    NotOwner,
    ProofOracleError,
)
from editionledger.core.models import (
    Account,
    Bid,
    BidStatus,
    Item,
    ItemDescriptor,
    Listing,
    ListingStatus,
    OwnershipRecord,
    ProofRecord,
    Transaction,
    TransactionKind,
)
from editionledger.market import ItemDetails, Marketplace, MarketStats
from editionledger.settlement.engine import SettlementCoordinator
from editionledger.settlement.oracle import ProofOracle, SigningProofOracle

__all__ = [
    # Facade
    "Marketplace",
    "ItemDetails",
    "MarketStats",
    "SettlementCoordinator",
    # Config
    "MarketConfig",
    "MarketMode",
    # Records
    "Account",
    "Bid",
    "BidStatus",
    "Item",
    "ItemDescriptor",
    "Listing",
    "ListingStatus",
    "OwnershipRecord",
    "ProofRecord",
    "Transaction",
    "TransactionKind",
    # Proofs
    "ProofOracle",
    "SigningProofOracle",
    "SigningKey",
    # Errors
    "MarketError",
    "InsufficientBalance",
    "Exhausted",
    "NotOwner",
    "NotFound",
    "AlreadyInactive",
    "Conflict",
    "InvalidOperation",
    "ConfigError",
    "ProofOracleError",
    "InvariantViolation",
]
