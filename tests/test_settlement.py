"""
tests/test_settlement.py

Settlement flows through the Marketplace facade: direct buys, bid
acceptance, listing purchases, rollback on failure and the non-fatal
proof oracle policy.

Run:
    pytest tests/test_settlement.py -v --tb=short
"""

import logging

import pytest

from editionledger import (
    AlreadyInactive,
    BidStatus,
    Exhausted,
    InsufficientBalance,
    InvalidOperation,
    ItemDescriptor,
    ListingStatus,
    MarketConfig,
    Marketplace,
    NotFound,
    NotOwner,
    ProofOracle,
    ProofOracleError,
    TransactionKind,
)


def _mint(market, creator="creator", price=10, size=1, title="Dawn"):
    return market.mint(ItemDescriptor(title=title, price=price, edition_size=size), creator)


@pytest.fixture
def market():
    return Marketplace(MarketConfig.lenient())


class _FailingOracle(ProofOracle):
    def certify(self, descriptor):
        raise ProofOracleError("prover offline")


class _GarbageOracle(ProofOracle):
    def certify(self, descriptor):
        return "not-a-proof"


# ─────────────────────────────────────────────────────────────
# Direct purchase
# ─────────────────────────────────────────────────────────────

class TestBuy:

    def test_single_edition_scenario(self, market):
        market.open_account("creator", 0)
        market.open_account("buyer", 15)
        market.open_account("buyer2", 50)
        item = _mint(market, price=10, size=1)

        tx = market.buy(item.item_id, "buyer")

        assert market.balance_of("buyer") == 5
        assert market.balance_of("creator") == 10
        assert market.get_item(item.item_id).current_edition == 1
        assert tx.kind == TransactionKind.MINT_PURCHASE
        assert tx.edition_number == 1
        assert market.owner_of(item.item_id, 1) == "buyer"

        with pytest.raises(Exhausted):
            market.buy(item.item_id, "buyer2")
        assert market.balance_of("buyer2") == 50

    def test_editions_are_numbered_in_order(self, market):
        market.open_account("creator", 0)
        for name in ("a", "b", "c"):
            market.open_account(name, 10)
        item = _mint(market, price=10, size=3)

        numbers = [market.buy(item.item_id, name).edition_number for name in ("a", "b", "c")]

        assert numbers == [1, 2, 3]
        assert market.item_details(item.item_id).is_minted_out

    def test_insufficient_balance_changes_nothing(self, market):
        market.open_account("creator", 0)
        market.open_account("buyer", 9)
        item = _mint(market, price=10, size=2)

        with pytest.raises(InsufficientBalance):
            market.buy(item.item_id, "buyer")

        assert market.balance_of("buyer") == 9
        assert market.balance_of("creator") == 0
        assert market.get_item(item.item_id).current_edition == 0
        assert market.holdings_of("buyer") == []
        assert len(market.log) == 0

    def test_creator_cannot_buy_own_item(self, market):
        market.open_account("creator", 100)
        item = _mint(market)
        with pytest.raises(InvalidOperation):
            market.buy(item.item_id, "creator")

    def test_unknown_item_and_account(self, market):
        market.open_account("creator", 0)
        market.open_account("buyer", 10)
        item = _mint(market)
        with pytest.raises(NotFound):
            market.buy("item-missing", "buyer")
        with pytest.raises(NotFound):
            market.buy(item.item_id, "nobody")

    def test_buy_is_logged_once(self, market):
        market.open_account("creator", 0)
        market.open_account("buyer", 10)
        item = _mint(market)

        tx = market.buy(item.item_id, "buyer")

        assert market.log.transactions() == [tx]
        assert market.history_of("buyer") == [tx]
        assert market.history_of("creator") == [tx]


# ─────────────────────────────────────────────────────────────
# Bids
# ─────────────────────────────────────────────────────────────

class TestAcceptBid:

    @pytest.fixture
    def owned(self, market):
        """seller owns edition 1 of a one-edition item and has spent down to 0."""
        market.open_account("creator", 0)
        market.open_account("seller", 10)
        market.open_account("bidder", 25)
        market.open_account("rival", 30)
        item = _mint(market, price=10, size=1)
        market.buy(item.item_id, "seller")
        return item

    def test_accept_bid_scenario(self, market, owned):
        bid = market.create_bid(owned.item_id, "bidder", 20)
        rival = market.create_bid(owned.item_id, "rival", 15)

        tx = market.accept_bid(bid.bid_id, "seller")

        assert market.balance_of("bidder") == 5
        assert market.balance_of("seller") == 20
        assert market.owner_of(owned.item_id, 1) == "bidder"
        assert market.get_bid(bid.bid_id).status == BidStatus.ACCEPTED
        assert market.get_bid(rival.bid_id).status == BidStatus.SUPERSEDED
        assert market.active_bids_for(owned.item_id) == []
        assert tx.kind == TransactionKind.BID_ACCEPTANCE
        assert tx.source_id == bid.bid_id

    def test_resale_does_not_consume_an_edition(self, market, owned):
        bid = market.create_bid(owned.item_id, "bidder", 20)
        market.accept_bid(bid.bid_id, "seller")

        item = market.get_item(owned.item_id)
        assert item.current_edition == 1
        assert item.resale_count == 1

    def test_second_accept_is_already_inactive(self, market, owned):
        bid = market.create_bid(owned.item_id, "bidder", 20)
        market.accept_bid(bid.bid_id, "seller")

        with pytest.raises(AlreadyInactive):
            market.accept_bid(bid.bid_id, "seller")
        assert len(market.log) == 2

    def test_non_owner_cannot_accept(self, market, owned):
        bid = market.create_bid(owned.item_id, "bidder", 20)
        with pytest.raises(NotOwner):
            market.accept_bid(bid.bid_id, "rival")
        assert market.get_bid(bid.bid_id).is_active

    def test_unfunded_bid_fails_at_settlement(self, market, owned):
        bid = market.create_bid(owned.item_id, "bidder", 100)

        with pytest.raises(InsufficientBalance):
            market.accept_bid(bid.bid_id, "seller")

        assert market.get_bid(bid.bid_id).is_active
        assert market.owner_of(owned.item_id, 1) == "seller"
        assert market.balance_of("seller") == 0
        assert market.balance_of("bidder") == 25

    def test_bidder_cannot_accept_own_bid(self, market, owned):
        bid = market.create_bid(owned.item_id, "seller", 5)
        with pytest.raises(InvalidOperation):
            market.accept_bid(bid.bid_id, "seller")

    def test_cancel_and_reject(self, market, owned):
        first = market.create_bid(owned.item_id, "bidder", 20)
        second = market.create_bid(owned.item_id, "rival", 15)

        with pytest.raises(NotOwner):
            market.cancel_bid(first.bid_id, "rival")
        assert market.cancel_bid(first.bid_id, "bidder").status == BidStatus.CANCELLED

        with pytest.raises(NotOwner):
            market.reject_bid(second.bid_id, "bidder")
        assert market.reject_bid(second.bid_id, "seller").status == BidStatus.REJECTED

        with pytest.raises(AlreadyInactive):
            market.accept_bid(second.bid_id, "seller")

    def test_reject_requires_an_owned_edition(self, market, owned):
        bid = market.create_bid(owned.item_id, "bidder", 20)

        with pytest.raises(NotOwner):
            market.reject_bid(bid.bid_id, "rival")
        with pytest.raises(NotOwner):
            market.reject_bid(bid.bid_id, "creator")

        assert market.get_bid(bid.bid_id).is_active

    def test_invalid_bid_amount(self, market, owned):
        with pytest.raises(InvalidOperation):
            market.create_bid(owned.item_id, "bidder", 0)

    def test_accepting_supersedes_seller_listing(self, market, owned):
        listing = market.create_listing(owned.item_id, "seller", 30)
        bid = market.create_bid(owned.item_id, "bidder", 20)

        market.accept_bid(bid.bid_id, "seller")

        assert market.get_listing(listing.listing_id).status == ListingStatus.SUPERSEDED
        with pytest.raises(AlreadyInactive):
            market.buy_from_listing(listing.listing_id, "rival")


# ─────────────────────────────────────────────────────────────
# Listings
# ─────────────────────────────────────────────────────────────

class TestListings:

    @pytest.fixture
    def owned(self, market):
        market.open_account("creator", 0)
        market.open_account("seller", 20)
        market.open_account("buyer", 30)
        item = _mint(market, price=10, size=2)
        market.buy(item.item_id, "seller")
        return item

    def test_cancelled_listing_scenario(self, market, owned):
        listing = market.create_listing(owned.item_id, "seller", 8)
        market.deactivate_listing(listing.listing_id)

        with pytest.raises(AlreadyInactive):
            market.buy_from_listing(listing.listing_id, "buyer")
        with pytest.raises(NotFound):
            market.buy_from_listing(listing.listing_id, "buyer")

    def test_buy_from_listing(self, market, owned):
        listing = market.create_listing(owned.item_id, "seller", 8)
        assert listing.edition_number == 1

        tx = market.buy_from_listing(listing.listing_id, "buyer")

        assert tx.kind == TransactionKind.LISTING_PURCHASE
        assert tx.edition_number == 1
        assert market.owner_of(owned.item_id, 1) == "buyer"
        assert market.balance_of("buyer") == 22
        assert market.balance_of("seller") == 18
        assert market.get_listing(listing.listing_id).status == ListingStatus.SOLD
        assert market.get_item(owned.item_id).current_edition == 1

    def test_second_purchase_is_already_inactive(self, market, owned):
        market.open_account("late", 30)
        listing = market.create_listing(owned.item_id, "seller", 8)
        market.buy_from_listing(listing.listing_id, "buyer")

        with pytest.raises(AlreadyInactive):
            market.buy_from_listing(listing.listing_id, "buyer")
        with pytest.raises(AlreadyInactive):
            market.buy_from_listing(listing.listing_id, "late")

        assert market.balance_of("buyer") == 22
        assert market.balance_of("late") == 30
        assert market.balance_of("seller") == 18
        assert len(market.history_of("buyer")) == 1

    def test_only_seller_can_deactivate(self, market, owned):
        listing = market.create_listing(owned.item_id, "seller", 8)
        with pytest.raises(NotOwner):
            market.deactivate_listing(listing.listing_id, "buyer")
        assert market.deactivate_listing(listing.listing_id, "seller").status == ListingStatus.CANCELLED

    def test_seller_cannot_buy_own_listing(self, market, owned):
        listing = market.create_listing(owned.item_id, "seller", 8)
        with pytest.raises(InvalidOperation):
            market.buy_from_listing(listing.listing_id, "seller")

    def test_lenient_listing_without_edition_fails_at_settlement(self, market, owned):
        listing = market.create_listing(owned.item_id, "buyer", 5)
        assert listing.edition_number is None

        with pytest.raises(NotOwner):
            market.buy_from_listing(listing.listing_id, "seller")
        assert market.get_listing(listing.listing_id).is_active

    def test_lowest_listing_first(self, market, owned):
        market.create_listing(owned.item_id, "seller", 12)
        market.create_listing(owned.item_id, "seller", 9)

        details = market.item_details(owned.item_id)
        assert [l.price for l in details.listings] == [9, 12]
        assert details.lowest_listing == 9


class TestStrictMode:

    @pytest.fixture
    def market(self):
        return Marketplace(MarketConfig.strict())

    @pytest.fixture
    def owned(self, market):
        market.open_account("creator", 0)
        market.open_account("seller", 10)
        market.open_account("buyer", 5)
        item = _mint(market, price=10, size=2)
        market.buy(item.item_id, "seller")
        return item

    def test_listing_requires_owned_edition(self, market, owned):
        with pytest.raises(NotOwner):
            market.create_listing(owned.item_id, "buyer", 5)

    def test_listing_requires_unlisted_edition(self, market, owned):
        market.create_listing(owned.item_id, "seller", 5)
        with pytest.raises(InvalidOperation):
            market.create_listing(owned.item_id, "seller", 6)

    def test_bid_must_be_funded(self, market, owned):
        with pytest.raises(InsufficientBalance):
            market.create_bid(owned.item_id, "buyer", 6)
        assert market.create_bid(owned.item_id, "buyer", 5).is_active


# ─────────────────────────────────────────────────────────────
# Mint
# ─────────────────────────────────────────────────────────────

class TestMint:

    def test_mint_fee_goes_to_treasury(self):
        market = Marketplace(MarketConfig.lenient(mint_fee=3))
        market.open_account("creator", 5)

        _mint(market)

        assert market.balance_of("creator") == 2
        assert market.balance_of("treasury") == 3

    def test_unaffordable_mint_fee_leaves_no_item(self):
        market = Marketplace(MarketConfig.lenient(mint_fee=3))
        market.open_account("creator", 1)

        with pytest.raises(InsufficientBalance):
            _mint(market)
        assert market.catalog() == []

    def test_fee_is_charged_before_the_item_exists(self, monkeypatch):
        market = Marketplace(MarketConfig.lenient(mint_fee=3))
        market.open_account("creator", 5)
        treasury_at_create = []
        create_item = market.editions.create_item

        def recording_create(descriptor, creator_id):
            treasury_at_create.append(market.balance_of("treasury"))
            return create_item(descriptor, creator_id)

        monkeypatch.setattr(market.editions, "create_item", recording_create)
        _mint(market)

        assert treasury_at_create == [3]

    def test_rejected_descriptor_refunds_fee(self):
        market = Marketplace(MarketConfig.lenient(mint_fee=3))
        market.open_account("creator", 5)

        with pytest.raises(InvalidOperation):
            _mint(market, size=0)

        assert market.balance_of("creator") == 5
        assert market.balance_of("treasury") == 0
        assert market.catalog() == []

    def test_invalid_descriptor(self, market):
        market.open_account("creator", 0)
        with pytest.raises(InvalidOperation):
            _mint(market, size=0)
        with pytest.raises(InvalidOperation):
            _mint(market, title="   ")

    def test_mint_is_certified(self, market):
        market.open_account("creator", 0)
        item = _mint(market)
        assert item.proof_ref is not None
        assert market.verify_proof(item.proof_ref)


# ─────────────────────────────────────────────────────────────
# Atomicity and conservation
# ─────────────────────────────────────────────────────────────

class TestRollback:

    def test_failed_log_append_rolls_back_buy(self, market, monkeypatch):
        market.open_account("creator", 0)
        market.open_account("buyer", 10)
        item = _mint(market)

        def broken_append(transaction):
            raise RuntimeError("disk full")

        monkeypatch.setattr(market.log, "append", broken_append)

        with pytest.raises(RuntimeError, match="disk full"):
            market.buy(item.item_id, "buyer")

        assert market.balance_of("buyer") == 10
        assert market.balance_of("creator") == 0
        assert market.get_item(item.item_id).current_edition == 0
        assert market.owner_of(item.item_id, 1) is None

    def test_failed_log_append_rolls_back_accept(self, market, monkeypatch):
        market.open_account("creator", 0)
        market.open_account("seller", 10)
        market.open_account("bidder", 20)
        market.open_account("rival", 20)
        item = _mint(market)
        market.buy(item.item_id, "seller")
        listing = market.create_listing(item.item_id, "seller", 30)
        bid = market.create_bid(item.item_id, "bidder", 20)
        rival = market.create_bid(item.item_id, "rival", 10)

        def broken_append(transaction):
            raise RuntimeError("disk full")

        monkeypatch.setattr(market.log, "append", broken_append)

        with pytest.raises(RuntimeError):
            market.accept_bid(bid.bid_id, "seller")

        assert market.balance_of("bidder") == 20
        assert market.balance_of("seller") == 0
        assert market.owner_of(item.item_id, 1) == "seller"
        assert market.get_item(item.item_id).resale_count == 0
        assert market.get_bid(bid.bid_id).is_active
        assert market.get_bid(rival.bid_id).is_active
        assert market.get_listing(listing.listing_id).is_active

    def test_credits_are_conserved(self, market):
        market.open_account("creator", 0)
        market.open_account("a", 40)
        market.open_account("b", 40)
        item = _mint(market, price=10, size=2)
        before = market.total_supply()

        market.buy(item.item_id, "a")
        bid = market.create_bid(item.item_id, "b", 15)
        market.accept_bid(bid.bid_id, "a")
        listing = market.create_listing(item.item_id, "b", 12)
        market.buy_from_listing(listing.listing_id, "a")

        assert market.total_supply() == before
        assert market.stats().total_volume == 10 + 15 + 12


class TestProofPolicy:

    def test_oracle_failure_is_not_fatal(self, caplog):
        market = Marketplace(MarketConfig.lenient(), oracle=_FailingOracle())
        market.open_account("creator", 0)
        market.open_account("buyer", 10)
        item = _mint(market)

        with caplog.at_level(logging.WARNING, logger="editionledger.settlement.engine"):
            tx = market.buy(item.item_id, "buyer")

        assert tx.proof_ref is None
        assert market.owner_of(item.item_id, 1) == "buyer"
        assert market.uncertified_transactions() == [tx]
        assert "prover offline" in caplog.text

    def test_garbage_oracle_result_is_ignored(self):
        market = Marketplace(MarketConfig.lenient(), oracle=_GarbageOracle())
        market.open_account("creator", 0)
        market.open_account("buyer", 10)
        item = _mint(market)

        tx = market.buy(item.item_id, "buyer")

        assert tx.proof_ref is None
        assert len(market.proofs) == 0

    def test_settlement_proofs_verify(self, market):
        market.open_account("creator", 0)
        market.open_account("buyer", 10)
        item = _mint(market)

        tx = market.buy(item.item_id, "buyer")

        assert tx.is_certified
        assert market.verify_proof(tx.proof_ref)
        assert [p.proof_id for p in market.proofs_of("buyer")] == [tx.proof_ref]

    def test_failed_proof_attach_keeps_the_settlement(self, market, monkeypatch, caplog):
        market.open_account("creator", 0)
        market.open_account("buyer", 10)
        item = _mint(market)

        def broken_attach(transaction_id, proof_ref):
            raise RuntimeError("sidecar unwritable")

        monkeypatch.setattr(market.log, "attach_proof", broken_attach)
        with caplog.at_level(logging.WARNING, logger="editionledger.settlement.engine"):
            tx = market.buy(item.item_id, "buyer")

        assert tx.proof_ref is None
        assert market.owner_of(item.item_id, 1) == "buyer"
        assert market.uncertified_transactions() == [tx]
        assert "sidecar unwritable" in caplog.text
