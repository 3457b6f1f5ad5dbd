"""
Marketplace — the caller-facing surface of the settlement engine.

Wires the repositories, the proof oracle, the transaction log and the
SettlementCoordinator from one MarketConfig. Mutating calls delegate to
the coordinator; the read-only views below never mutate.

    market = Marketplace(MarketConfig.strict())
    market.open_account("alice", 100)
    market.open_account("bob", 15)
    item = market.mint(ItemDescriptor("Dawn", price=10, edition_size=1), "alice")
    tx = market.buy(item.item_id, "bob")
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from editionledger.core.config import MarketConfig
from editionledger.core.crypto import SigningKey
from editionledger.core.models import (
    Account,
    Bid,
    Item,
    ItemDescriptor,
    Listing,
    OwnershipRecord,
    ProofRecord,
    Transaction,
)
from editionledger.ledger.accounts import AccountLedger
from editionledger.ledger.books import BidBook, ListingBook
from editionledger.ledger.editions import EditionTracker
from editionledger.ledger.log import TransactionLog
from editionledger.ledger.ownership import OwnershipRegistry
from editionledger.settlement.engine import SettlementCoordinator
from editionledger.settlement.oracle import ProofOracle, ProofRegistry, SigningProofOracle


@dataclass
class ItemDetails:
    item:           Item
    listings:       List[Listing] = field(default_factory=list)
    bids:           List[Bid] = field(default_factory=list)
    ownerships:     List[OwnershipRecord] = field(default_factory=list)
    highest_bid:    Optional[int] = None
    lowest_listing: Optional[int] = None

    @property
    def is_minted_out(self) -> bool:
        return self.item.is_exhausted


@dataclass(frozen=True)
class MarketStats:
    total_items:        int
    active_creators:    int
    total_volume:       int
    total_transactions: int


class Marketplace:

    def __init__(
        self,
        config:      Optional[MarketConfig] = None,
        oracle:      Optional[ProofOracle] = None,
        signing_key: Optional[SigningKey] = None,
    ) -> None:
        self.config = config or MarketConfig()
        self.config.validate()
        key = signing_key or SigningKey.generate()

        self.accounts  = AccountLedger()
        self.editions  = EditionTracker()
        self.ownership = OwnershipRegistry()
        self.listings  = ListingBook()
        self.bids      = BidBook()
        self.proofs    = ProofRegistry()
        self.log       = TransactionLog(signing_key=key, log_path=self.config.log_path)
        self.oracle    = oracle or SigningProofOracle(key)

        self.coordinator = SettlementCoordinator(
            accounts=  self.accounts,
            editions=  self.editions,
            ownership= self.ownership,
            listings=  self.listings,
            bids=      self.bids,
            log=       self.log,
            oracle=    self.oracle,
            proofs=    self.proofs,
            config=    self.config,
        )
        self.accounts.open_account(self.config.treasury_account, 0)

    @classmethod
    def from_env(cls, oracle: Optional[ProofOracle] = None) -> "Marketplace":
        return cls(MarketConfig.from_env(), oracle=oracle)

    # ── Operations ────────────────────────────────────────────

    def open_account(self, account_id: str, initial_balance: Optional[int] = None) -> Account:
        return self.coordinator.open_account(account_id, initial_balance)

    def deposit(self, account_id: str, amount: int) -> int:
        return self.coordinator.deposit(account_id, amount)

    def mint(self, descriptor: ItemDescriptor, creator_id: str) -> Item:
        return self.coordinator.mint(descriptor, creator_id)

    def buy(self, item_id: str, buyer_id: str) -> Transaction:
        return self.coordinator.buy(item_id, buyer_id)

    def create_bid(self, item_id: str, bidder_id: str, amount: int) -> Bid:
        return self.coordinator.create_bid(item_id, bidder_id, amount)

    def cancel_bid(self, bid_id: str, account_id: str) -> Bid:
        return self.coordinator.cancel_bid(bid_id, account_id)

    def accept_bid(self, bid_id: str, seller_id: str) -> Transaction:
        return self.coordinator.accept_bid(bid_id, seller_id)

    def reject_bid(self, bid_id: str, seller_id: str) -> Bid:
        return self.coordinator.reject_bid(bid_id, seller_id)

    def create_listing(self, item_id: str, seller_id: str, price: int) -> Listing:
        return self.coordinator.create_listing(item_id, seller_id, price)

    def buy_from_listing(self, listing_id: str, buyer_id: str) -> Transaction:
        return self.coordinator.buy_from_listing(listing_id, buyer_id)

    def deactivate_listing(self, listing_id: str, account_id: Optional[str] = None) -> Listing:
        return self.coordinator.deactivate_listing(listing_id, account_id)

    # ── Views ─────────────────────────────────────────────────

    def balance_of(self, account_id: str) -> int:
        return self.accounts.balance_of(account_id)

    def total_supply(self) -> int:
        return self.accounts.total_supply()

    def get_item(self, item_id: str) -> Item:
        return self.editions.require(item_id)

    def get_bid(self, bid_id: str) -> Bid:
        return self.bids.require(bid_id)

    def get_listing(self, listing_id: str) -> Listing:
        return self.listings.require(listing_id)

    def owner_of(self, item_id: str, edition_number: int) -> Optional[str]:
        return self.ownership.owner_of(item_id, edition_number)

    def holdings_of(self, account_id: str) -> List[Tuple[str, int]]:
        return self.ownership.holdings_of(account_id)

    def active_bids_for(self, item_id: str) -> List[Bid]:
        return self.bids.active_for_item(item_id)

    def active_listings_for(self, item_id: str) -> List[Listing]:
        return self.listings.active_for_item(item_id)

    def listings_of(self, account_id: str, active_only: bool = True) -> List[Listing]:
        return self.listings.of_seller(account_id, active_only)

    def bids_of(self, account_id: str, active_only: bool = True) -> List[Bid]:
        return self.bids.of_bidder(account_id, active_only)

    def history_of(self, account_id: str) -> List[Transaction]:
        return self.log.for_account(account_id)

    def item_details(self, item_id: str) -> ItemDetails:
        """Item-scoped snapshot taken under the item lock."""
        with self.coordinator.item_locks.hold(item_id):
            item = self.editions.require(item_id)
            listings = self.listings.active_for_item(item_id)
            bids = self.bids.active_for_item(item_id)
            ownerships = self.ownership.records_for(item_id)
        return ItemDetails(
            item=           item,
            listings=       listings,
            bids=           bids,
            ownerships=     ownerships,
            highest_bid=    bids[0].amount if bids else None,
            lowest_listing= listings[0].price if listings else None,
        )

    def catalog(
        self,
        category:   Optional[str] = None,
        creator_id: Optional[str] = None,
        available:  Optional[bool] = None,
    ) -> List[Item]:
        items = self.editions.items()
        if category is not None:
            items = [i for i in items if i.category == category]
        if creator_id is not None:
            items = [i for i in items if i.creator_id == creator_id]
        if available is not None:
            items = [i for i in items if (not i.is_exhausted) == available]
        return items

    def stats(self) -> MarketStats:
        items = self.editions.items()
        transactions = self.log.transactions()
        return MarketStats(
            total_items=        len(items),
            active_creators=    len({i.creator_id for i in items}),
            total_volume=       sum(t.price for t in transactions),
            total_transactions= len(transactions),
        )

    def proofs_of(self, account_id: str) -> List[ProofRecord]:
        return self.proofs.for_account(account_id)

    def verify_proof(self, proof_id: str) -> bool:
        return self.proofs.verify(proof_id)

    def uncertified_transactions(self) -> List[Transaction]:
        return [t for t in self.log.transactions() if not t.is_certified]

    def balances(self) -> Dict[str, int]:
        return self.accounts.balances()
