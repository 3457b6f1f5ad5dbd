"""
EditionLedger Settlement Engine

Turns a buy, accept-bid or buy-from-listing intent into one atomic
transition across balances, editions, ownership and the books.

Critical Invariants:
- Credits only move between accounts during a settlement
- current_edition never exceeds edition_size
- Every claimed edition has exactly one owner
- A closed listing or bid never reopens once committed
- One Transaction per settlement, appended exactly once
"""

from editionledger.settlement.engine import SettlementCoordinator
from editionledger.settlement.oracle import ProofOracle, ProofRegistry, SigningProofOracle

__all__ = ["ProofOracle", "ProofRegistry", "SettlementCoordinator", "SigningProofOracle"]
