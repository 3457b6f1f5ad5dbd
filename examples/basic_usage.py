"""
EditionLedger: Basic Usage Example

Demonstrates:
- Opening accounts and minting a limited-edition item
- A direct purchase, a bid acceptance and a listing purchase
- Verifying the persisted transaction log
"""

import tempfile
from pathlib import Path

from editionledger import ItemDescriptor, MarketConfig, Marketplace, MarketError


def main():
    """Basic EditionLedger usage."""

    print("=" * 60)
    print("EditionLedger: Basic Usage Example")
    print("=" * 60)
    print()

    log_path = Path(tempfile.mkdtemp()) / "market.jsonl"
    market = Marketplace(MarketConfig.strict(log_path=str(log_path)))

    # 1. Accounts
    print("1. Opening accounts...")
    market.open_account("studio", 0)
    market.open_account("collector", 100)
    market.open_account("fan", 60)
    print("   studio=0  collector=100  fan=60")
    print()

    # 2. Mint
    print("2. Minting 'Harbour at Dawn' (2 editions at 40)...")
    item = market.mint(
        ItemDescriptor(title="Harbour at Dawn", price=40, edition_size=2, category="Photography"),
        "studio",
    )
    print(f"   {item.item_id}  proof={item.proof_ref}")
    print()

    # 3. Direct purchases
    print("3. Buying both editions...")
    for buyer in ("collector", "fan"):
        tx = market.buy(item.item_id, buyer)
        print(f"   edition {tx.edition_number} -> {buyer} for {tx.price}")
    try:
        market.buy(item.item_id, "collector")
    except MarketError as e:
        print(f"   third buy refused: {e}")
    print()

    # 4. Secondary market
    print("4. Fan bids 15 on the collector's edition; collector accepts...")
    bid = market.create_bid(item.item_id, "fan", 15)
    tx = market.accept_bid(bid.bid_id, "collector")
    print(f"   edition {tx.edition_number} -> fan for {tx.price}")

    print("   Fan lists an edition at 30; collector buys it...")
    listing = market.create_listing(item.item_id, "fan", 30)
    tx = market.buy_from_listing(listing.listing_id, "collector")
    print(f"   edition {tx.edition_number} -> collector for {tx.price}")
    print()

    # 5. State and audit trail
    print("5. Final state")
    for account_id, balance in sorted(market.balances().items()):
        print(f"   {account_id:<10} balance={balance:<4} holdings={market.holdings_of(account_id)}")
    stats = market.stats()
    print(f"   {stats.total_transactions} transactions, volume {stats.total_volume}")

    result = market.log.verify()
    print(f"   log {log_path}: chain_valid={result.chain_valid} "
          f"signatures={result.valid_signatures}/{result.total_entries}")
    print()
    print(f"Verify from the shell:  editionledger verify {log_path}")


if __name__ == "__main__":
    main()
