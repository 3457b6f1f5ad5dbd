"""
EditionLedger repositories — one per entity, each guarding its own state.

Cross-entity changes happen only through the SettlementCoordinator.
"""

from editionledger.ledger.accounts import AccountLedger
from editionledger.ledger.books import BidBook, ListingBook
from editionledger.ledger.editions import EditionTracker
from editionledger.ledger.log import LogEntry, TransactionLog
from editionledger.ledger.ownership import OwnershipRegistry

__all__ = [
    "AccountLedger",
    "BidBook",
    "EditionTracker",
    "ListingBook",
    "LogEntry",
    "OwnershipRegistry",
    "TransactionLog",
]
