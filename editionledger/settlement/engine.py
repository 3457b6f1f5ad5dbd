"""
SettlementCoordinator — the only component that mutates across entities.

Every settlement intent follows the same shape:

  1. Read and validate outside any lock     → cheap typed failures
  2. Take the item lock                     → serialize per item
  3. Re-validate under the lock             → a changed world is a Conflict
  4. Take the payer and payee account locks → funds cannot move elsewhere
  5. Apply each step, journaling its undo   → any failure rolls back
  6. Append the Transaction to the log      → last fallible step
  7. Release locks
  8. Ask the proof oracle (non-fatal)       → attach the proof ref to the log

Steps 5-6 run inside a SettlementJournal: if anything raises there, every
applied step is undone before the error reaches the caller.
The oracle is never called while a lock is held, so a slow prover cannot
stall other settlements.
"""

import logging
from typing import Optional

from editionledger.core.config import MarketConfig
from editionledger.core.exceptions import (
    AlreadyInactive,
    Conflict,
    Exhausted,
    InsufficientBalance,
    InvalidOperation,
    InvariantViolation,
    NotOwner,
)
from editionledger.core.models import (
    Account,
    Bid,
    BidStatus,
    Item,
    ItemDescriptor,
    Listing,
    ListingStatus,
    ProofRecord,
    Transaction,
    TransactionKind,
    is_credit_amount,
)
from editionledger.ledger.accounts import AccountLedger
from editionledger.ledger.books import BidBook, ListingBook
from editionledger.ledger.editions import EditionTracker
from editionledger.ledger.log import TransactionLog
from editionledger.ledger.ownership import OwnershipRegistry
from editionledger.settlement.journal import SettlementJournal
from editionledger.settlement.locks import LockTable
from editionledger.settlement.oracle import (
    ProofOracle,
    ProofRegistry,
    bid_descriptor,
    edition_mint_descriptor,
    mint_descriptor,
    transfer_descriptor,
)


logger = logging.getLogger(__name__)


class SettlementCoordinator:

    def __init__(
        self,
        accounts:  AccountLedger,
        editions:  EditionTracker,
        ownership: OwnershipRegistry,
        listings:  ListingBook,
        bids:      BidBook,
        log:       TransactionLog,
        oracle:    ProofOracle,
        proofs:    Optional[ProofRegistry] = None,
        config:    Optional[MarketConfig] = None,
    ) -> None:
        self.accounts  = accounts
        self.editions  = editions
        self.ownership = ownership
        self.listings  = listings
        self.bids      = bids
        self.log       = log
        self.oracle    = oracle
        self.proofs    = proofs if proofs is not None else ProofRegistry()
        self.config    = config or MarketConfig()

        self.item_locks = LockTable(
            "item", self.config.lock_timeout, self.config.lock_attempts, self.config.lock_backoff,
        )
        self.account_locks = LockTable(
            "account", self.config.lock_timeout, self.config.lock_attempts, self.config.lock_backoff,
        )

    # ── Accounts ──────────────────────────────────────────────

    def open_account(self, account_id: str, initial_balance: Optional[int] = None) -> Account:
        if initial_balance is None:
            initial_balance = self.config.starting_credits
        return self.accounts.open_account(account_id, initial_balance)

    def deposit(self, account_id: str, amount: int) -> int:
        """Credit external funds (issuance, not a settlement). Returns the new balance."""
        with self.account_locks.hold(account_id):
            self.accounts.credit(account_id, amount)
            balance = self.accounts.balance_of(account_id)
        logger.info("deposited %d to %s", amount, account_id)
        return balance

    # ── Mint ──────────────────────────────────────────────────

    def mint(self, descriptor: ItemDescriptor, creator_id: str) -> Item:
        """
        Create an item with no editions claimed yet. A configured mint fee
        moves from the creator to the treasury account.
        """
        self.accounts.require(creator_id)
        fee = self.config.mint_fee
        treasury = self.config.treasury_account

        with self.account_locks.hold(creator_id, treasury):
            with SettlementJournal(f"mint by {creator_id}") as journal:
                if fee and creator_id != treasury:
                    self.accounts.transfer(creator_id, treasury, fee)
                    journal.record(lambda: self.accounts.transfer(treasury, creator_id, fee), "refund mint fee")
                item = self.editions.create_item(descriptor, creator_id)

        proof_ref = self._certify(
            mint_descriptor(item.item_id, creator_id, item.edition_size, item.price)
        )
        self.editions.set_proof_ref(item.item_id, proof_ref)
        return self.editions.require(item.item_id)

    # ── Intent A: direct mint-purchase ────────────────────────

    def buy(self, item_id: str, buyer_id: str) -> Transaction:
        item = self.editions.require(item_id)
        self.accounts.require(buyer_id)
        if buyer_id == item.creator_id:
            raise InvalidOperation("Creators cannot buy their own item", {"item_id": item_id})
        if item.is_exhausted:
            raise Exhausted("No editions remain", {"item_id": item_id, "edition_size": item.edition_size})

        with self.item_locks.hold(item_id):
            item = self.editions.require(item_id)
            if item.is_exhausted:
                raise Conflict("Last edition was claimed by a concurrent purchase", {"item_id": item_id})

            creator_id, price = item.creator_id, item.price
            with self.account_locks.hold(buyer_id, creator_id):
                with SettlementJournal(f"buy {item_id}") as journal:
                    self.accounts.transfer(buyer_id, creator_id, price)
                    journal.record(lambda: self.accounts.transfer(creator_id, buyer_id, price), "refund buyer")

                    edition = self.editions.claim_next_edition(item_id)
                    journal.record(lambda: self.editions.release_edition(item_id, edition), "release edition")

                    self.ownership.record_initial_ownership(item_id, edition, buyer_id)
                    journal.record(
                        lambda: self.ownership.remove_initial_ownership(item_id, edition, buyer_id),
                        "remove ownership",
                    )
                    self._check_item(item_id)
                    transaction = Transaction.create(
                        kind=           TransactionKind.MINT_PURCHASE,
                        item_id=        item_id,
                        edition_number= edition,
                        buyer_id=       buyer_id,
                        seller_id=      creator_id,
                        price=          price,
                        proof_ref=      None,
                    )
                    self.log.append(transaction)

        logger.info(
            "settled %s: edition %d of %s to %s for %d",
            transaction.transaction_id, edition, item_id, buyer_id, price,
        )
        return self._certify_transaction(
            transaction, edition_mint_descriptor(item_id, edition, creator_id, buyer_id, price),
        )

    # ── Intent B: accept bid ──────────────────────────────────

    def accept_bid(self, bid_id: str, seller_id: str) -> Transaction:
        bid = self.bids.require(bid_id)
        if not bid.is_active:
            raise AlreadyInactive("Bid is no longer active", {"bid_id": bid_id, "status": bid.status})
        self.accounts.require(seller_id)
        if seller_id == bid.bidder_id:
            raise InvalidOperation("Bidders cannot accept their own bid", {"bid_id": bid_id})

        item_id = bid.item_id
        with self.item_locks.hold(item_id):
            bid = self.bids.require(bid_id)
            if not bid.is_active:
                raise Conflict("Bid was closed by a concurrent operation", {"bid_id": bid_id, "status": bid.status})
            edition = self._edition_to_sell(seller_id, item_id)

            bidder_id, amount = bid.bidder_id, bid.amount
            with self.account_locks.hold(bidder_id, seller_id):
                with SettlementJournal(f"accept {bid_id}") as journal:
                    self.accounts.transfer(bidder_id, seller_id, amount)
                    journal.record(lambda: self.accounts.transfer(seller_id, bidder_id, amount), "refund bidder")

                    self._transfer_edition(item_id, edition, seller_id, bidder_id, journal)

                    self._close_bid(bid_id, BidStatus.ACCEPTED, journal)
                    for other in self.bids.active_for_item(item_id):
                        self._close_bid(other.bid_id, BidStatus.SUPERSEDED, journal)

                    self._supersede_stale_listings(item_id, edition, seller_id, journal)
                    self._check_item(item_id)
                    transaction = Transaction.create(
                        kind=           TransactionKind.BID_ACCEPTANCE,
                        item_id=        item_id,
                        edition_number= edition,
                        buyer_id=       bidder_id,
                        seller_id=      seller_id,
                        price=          amount,
                        proof_ref=      None,
                        source_id=      bid_id,
                    )
                    self.log.append(transaction)

        logger.info(
            "settled %s: bid %s accepted, edition %d of %s to %s for %d",
            transaction.transaction_id, bid_id, edition, item_id, bidder_id, amount,
        )
        return self._certify_transaction(
            transaction,
            transfer_descriptor(item_id, edition, seller_id, bidder_id, amount, TransactionKind.BID_ACCEPTANCE),
        )

    # ── Intent C: buy from listing ────────────────────────────

    def buy_from_listing(self, listing_id: str, buyer_id: str) -> Transaction:
        listing = self.listings.require(listing_id)
        if not listing.is_active:
            raise AlreadyInactive(
                "Listing is no longer active", {"listing_id": listing_id, "status": listing.status},
            )
        self.accounts.require(buyer_id)
        if buyer_id == listing.seller_id:
            raise InvalidOperation("Sellers cannot buy their own listing", {"listing_id": listing_id})

        item_id = listing.item_id
        with self.item_locks.hold(item_id):
            listing = self.listings.require(listing_id)
            if not listing.is_active:
                raise Conflict(
                    "Listing was closed by a concurrent operation",
                    {"listing_id": listing_id, "status": listing.status},
                )
            seller_id, price = listing.seller_id, listing.price
            if listing.edition_number is not None:
                edition = listing.edition_number
                if self.ownership.owner_of(item_id, edition) != seller_id:
                    raise NotOwner(
                        "Seller no longer owns the listed edition",
                        {"listing_id": listing_id, "edition_number": edition},
                    )
            else:
                edition = self._edition_to_sell(seller_id, item_id, exclude_listing=listing_id)

            with self.account_locks.hold(buyer_id, seller_id):
                with SettlementJournal(f"buy {listing_id}") as journal:
                    self.accounts.transfer(buyer_id, seller_id, price)
                    journal.record(lambda: self.accounts.transfer(seller_id, buyer_id, price), "refund buyer")

                    self._transfer_edition(item_id, edition, seller_id, buyer_id, journal)
                    self._close_listing(listing_id, ListingStatus.SOLD, journal)
                    self._supersede_stale_listings(item_id, edition, seller_id, journal)
                    self._check_item(item_id)
                    transaction = Transaction.create(
                        kind=           TransactionKind.LISTING_PURCHASE,
                        item_id=        item_id,
                        edition_number= edition,
                        buyer_id=       buyer_id,
                        seller_id=      seller_id,
                        price=          price,
                        proof_ref=      None,
                        source_id=      listing_id,
                    )
                    self.log.append(transaction)

        logger.info(
            "settled %s: listing %s bought, edition %d of %s to %s for %d",
            transaction.transaction_id, listing_id, edition, item_id, buyer_id, price,
        )
        return self._certify_transaction(
            transaction,
            transfer_descriptor(item_id, edition, seller_id, buyer_id, price, TransactionKind.LISTING_PURCHASE),
        )

    # ── Book maintenance ──────────────────────────────────────

    def create_listing(self, item_id: str, seller_id: str, price: int) -> Listing:
        self.editions.require(item_id)
        self.accounts.require(seller_id)

        with self.item_locks.hold(item_id):
            owned = self.ownership.editions_owned(seller_id, item_id)
            pinned = {
                l.edition_number for l in self.listings.active_for_item(item_id)
                if l.seller_id == seller_id
            }
            unlisted = [e for e in owned if e not in pinned]

            if self.config.require_owned_edition_for_listing:
                if not owned:
                    raise NotOwner(
                        "Seller owns no edition of this item",
                        {"item_id": item_id, "account_id": seller_id},
                    )
                if not unlisted:
                    raise InvalidOperation(
                        "Every edition the seller owns is already listed",
                        {"item_id": item_id, "account_id": seller_id},
                    )

            edition = unlisted[0] if unlisted else None
            listing = self.listings.create(item_id, seller_id, price, edition)

        logger.info("listed %s at %d by %s (edition %s)", item_id, price, seller_id, edition)
        return listing

    def deactivate_listing(self, listing_id: str, account_id: Optional[str] = None) -> Listing:
        listing = self.listings.require(listing_id)
        if account_id is not None and account_id != listing.seller_id:
            raise NotOwner("Only the seller can cancel a listing", {"listing_id": listing_id})
        with self.item_locks.hold(listing.item_id):
            self.listings.close(listing_id, ListingStatus.CANCELLED)
        return self.listings.require(listing_id)

    def create_bid(self, item_id: str, bidder_id: str, amount: int) -> Bid:
        if not is_credit_amount(amount):
            raise InvalidOperation("Bid amount must be a positive integer", {"amount": amount})
        self.editions.require(item_id)
        self.accounts.require(bidder_id)

        with self.item_locks.hold(item_id):
            if self.config.require_funded_bids:
                balance = self.accounts.balance_of(bidder_id)
                if balance < amount:
                    raise InsufficientBalance(
                        "Bid exceeds balance",
                        {"account_id": bidder_id, "balance": balance, "required": amount},
                    )
            bid = self.bids.create(item_id, bidder_id, amount)

        proof_ref = self._certify(bid_descriptor(bid.bid_id, item_id, bidder_id, amount))
        self.bids.set_proof_ref(bid.bid_id, proof_ref)
        logger.info("bid %s: %d on %s by %s", bid.bid_id, amount, item_id, bidder_id)
        return self.bids.require(bid.bid_id)

    def cancel_bid(self, bid_id: str, account_id: str) -> Bid:
        bid = self.bids.require(bid_id)
        if bid.bidder_id != account_id:
            raise NotOwner("Only the bidder can cancel a bid", {"bid_id": bid_id})
        with self.item_locks.hold(bid.item_id):
            self.bids.close(bid_id, BidStatus.CANCELLED)
        return self.bids.require(bid_id)

    def reject_bid(self, bid_id: str, seller_id: str) -> Bid:
        """seller_id must own an edition of the item."""
        bid = self.bids.require(bid_id)
        with self.item_locks.hold(bid.item_id):
            if not self.ownership.editions_owned(seller_id, bid.item_id):
                raise NotOwner(
                    "Only an owner of the item can reject its bids",
                    {"bid_id": bid_id, "account_id": seller_id},
                )
            self.bids.close(bid_id, BidStatus.REJECTED)
        return self.bids.require(bid_id)

    # ── Internal ──────────────────────────────────────────────

    def _edition_to_sell(self, seller_id: str, item_id: str, exclude_listing: Optional[str] = None) -> int:
        """
        Lowest edition the seller owns, preferring editions no other active
        listing is pinned to. Raises NotOwner if the seller owns none.
        """
        owned = self.ownership.editions_owned(seller_id, item_id)
        if not owned:
            raise NotOwner(
                "Seller owns no edition of this item",
                {"item_id": item_id, "account_id": seller_id},
            )
        pinned = {
            l.edition_number for l in self.listings.active_for_item(item_id)
            if l.listing_id != exclude_listing
        }
        unpinned = [e for e in owned if e not in pinned]
        return unpinned[0] if unpinned else owned[0]

    def _transfer_edition(
        self, item_id: str, edition: int, seller_id: str, buyer_id: str, journal: SettlementJournal,
    ) -> None:
        previous = self.ownership.transfer(item_id, edition, seller_id, buyer_id)
        journal.record(lambda: self.ownership.restore(previous), "restore ownership")
        self.editions.record_resale(item_id)
        journal.record(lambda: self.editions.undo_resale(item_id), "undo resale count")

    def _close_bid(self, bid_id: str, status: str, journal: SettlementJournal) -> None:
        previous = self.bids.close(bid_id, status)
        journal.record(lambda: self.bids.restore(previous), f"reopen bid {bid_id}")

    def _close_listing(self, listing_id: str, status: str, journal: SettlementJournal) -> None:
        previous = self.listings.close(listing_id, status)
        journal.record(lambda: self.listings.restore(previous), f"reopen listing {listing_id}")

    def _supersede_stale_listings(
        self, item_id: str, edition: int, seller_id: str, journal: SettlementJournal,
    ) -> None:
        """
        Close listings the edition change made unfillable: any listing pinned
        to the edition that moved, and the seller's unpinned listings once
        the seller holds no edition of the item.
        """
        seller_still_owns = bool(self.ownership.editions_owned(seller_id, item_id))
        for listing in self.listings.active_for_item(item_id):
            pinned_here = listing.edition_number == edition
            orphaned = (
                listing.edition_number is None
                and listing.seller_id == seller_id
                and not seller_still_owns
            )
            if pinned_here or orphaned:
                self._close_listing(listing.listing_id, ListingStatus.SUPERSEDED, journal)

    def _certify_transaction(self, transaction: Transaction, descriptor: dict) -> Transaction:
        """
        Certify a committed settlement and attach the proof ref to its log
        entry. Failure leaves the transaction uncertified; it is never undone.
        """
        proof_ref = self._certify(descriptor)
        if proof_ref is None:
            return transaction
        try:
            return self.log.attach_proof(transaction.transaction_id, proof_ref)
        except InvariantViolation:
            raise
        except RuntimeError as exc:
            logger.warning(
                "could not attach proof %s to %s: %s", proof_ref, transaction.transaction_id, exc,
            )
            return transaction

    def _certify(self, descriptor: dict) -> Optional[str]:
        """Ask the oracle for a proof. Failure is logged, never raised."""
        try:
            record = self.oracle.certify(descriptor)
        except Exception as exc:
            logger.warning(
                "proof oracle failed for %s on %s: %s",
                descriptor.get("operation"), descriptor.get("item_id"), exc,
            )
            return None
        if not isinstance(record, ProofRecord):
            logger.warning("proof oracle returned %r, expected a ProofRecord", type(record).__name__)
            return None
        self.proofs.add(record)
        return record.proof_id

    def _check_item(self, item_id: str) -> None:
        item = self.editions.require(item_id)
        if not 0 <= item.current_edition <= item.edition_size:
            self._violation(
                f"Item {item_id} has current_edition {item.current_edition} "
                f"outside 0..{item.edition_size}"
            )
        owned = self.ownership.count_for(item_id)
        if owned != item.current_edition:
            self._violation(
                f"Item {item_id} has {owned} ownership records for {item.current_edition} claimed editions"
            )

    @staticmethod
    def _violation(message: str) -> None:
        logger.critical(message)
        raise InvariantViolation(message)
