"""
tests/test_market.py

Read-only views of the Marketplace: item details, catalog, stats and
per-account listings, bids and history.
"""

import pytest

from editionledger import ItemDescriptor, MarketConfig, Marketplace


@pytest.fixture
def market():
    market = Marketplace(MarketConfig.lenient(starting_credits=50))
    market.open_account("ana")
    market.open_account("ben")
    market.open_account("cy")
    return market


class TestViews:

    def test_starting_credits(self, market):
        assert market.balance_of("ana") == 50
        assert market.open_account("dee", 5).balance == 5

    def test_deposit(self, market):
        assert market.deposit("ana", 25) == 75

    def test_item_details(self, market):
        item = market.mint(ItemDescriptor("Dawn", price=10, edition_size=2), "ana")
        market.buy(item.item_id, "ben")
        market.create_bid(item.item_id, "cy", 12)
        market.create_bid(item.item_id, "ana", 14)
        market.create_listing(item.item_id, "ben", 20)

        details = market.item_details(item.item_id)
        assert details.highest_bid == 14
        assert details.lowest_listing == 20
        assert [o.owner_id for o in details.ownerships] == ["ben"]
        assert not details.is_minted_out
        assert details.item.remaining == 1

    def test_catalog_filters(self, market):
        dawn = market.mint(ItemDescriptor("Dawn", price=10, edition_size=1, category="Photography"), "ana")
        dusk = market.mint(ItemDescriptor("Dusk", price=10, edition_size=1), "ben")
        market.buy(dawn.item_id, "cy")

        assert [i.item_id for i in market.catalog(category="Photography")] == [dawn.item_id]
        assert [i.item_id for i in market.catalog(creator_id="ben")] == [dusk.item_id]
        assert [i.item_id for i in market.catalog(available=True)] == [dusk.item_id]
        assert [i.item_id for i in market.catalog(available=False)] == [dawn.item_id]

    def test_stats_and_history(self, market):
        dawn = market.mint(ItemDescriptor("Dawn", price=10, edition_size=3), "ana")
        first = market.buy(dawn.item_id, "ben")
        second = market.buy(dawn.item_id, "cy")

        stats = market.stats()
        assert stats.total_items == 1
        assert stats.active_creators == 1
        assert stats.total_volume == 20
        assert stats.total_transactions == 2
        assert market.history_of("ana") == [second, first]
        assert market.holdings_of("ben") == [(dawn.item_id, 1)]

    def test_account_books(self, market):
        dawn = market.mint(ItemDescriptor("Dawn", price=10, edition_size=1), "ana")
        market.buy(dawn.item_id, "ben")
        listing = market.create_listing(dawn.item_id, "ben", 30)
        bid = market.create_bid(dawn.item_id, "cy", 15)

        assert market.listings_of("ben") == [listing]
        assert market.bids_of("cy") == [bid]
        market.cancel_bid(bid.bid_id, "cy")
        assert market.bids_of("cy") == []
        assert len(market.bids_of("cy", active_only=False)) == 1
        assert market.active_listings_for(dawn.item_id) == [listing]
