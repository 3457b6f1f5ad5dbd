"""
Proof Oracle — external certification of settled operations.

The coordinator calls certify() only after a settlement's state changes
are applied, and treats the returned proof id as opaque. An oracle that
raises (or returns garbage) never undoes a settlement: the failure is
logged and the transaction is recorded without a proof ref.

SigningProofOracle is the in-process implementation: it signs the
canonical descriptor with an Ed25519 key. It stands in for a real
proving service and makes no zero-knowledge claims.
"""

import threading
from typing import Any, Dict, List, Optional

from editionledger.core.canonical import canonical_hash, canonicalize
from editionledger.core.crypto import SigningKey
from editionledger.core.exceptions import ProofOracleError
from editionledger.core.models import ProofRecord, ProofType, new_id
from editionledger.core.time import ledger_timestamp


_VALID_OPERATIONS = {ProofType.MINT, ProofType.TRANSFER, ProofType.BID}


class ProofOracle:
    """Interface. Subclasses return a ProofRecord or raise ProofOracleError."""

    def certify(self, descriptor: Dict[str, Any]) -> ProofRecord:
        raise NotImplementedError


class SigningProofOracle(ProofOracle):

    def __init__(self, signing_key: Optional[SigningKey] = None) -> None:
        self.signing_key = signing_key or SigningKey.generate()

    def certify(self, descriptor: Dict[str, Any]) -> ProofRecord:
        operation = descriptor.get("operation")
        if operation not in _VALID_OPERATIONS:
            raise ProofOracleError(f"Unknown operation in descriptor: {operation!r}")
        account_id = descriptor.get("account_id")
        if not account_id:
            raise ProofOracleError("Descriptor has no account_id")

        proof_hash = canonical_hash(descriptor)
        signature = self.signing_key.sign(canonicalize({"proof_hash": proof_hash, "descriptor": descriptor}))
        return ProofRecord(
            proof_id=          new_id("proof"),
            account_id=        account_id,
            proof_type=        operation,
            descriptor=        dict(descriptor),
            proof_hash=        proof_hash,
            signature=         signature,
            signer_public_key= self.signing_key.public_key_hex,
            created_at=        ledger_timestamp(),
        )


def verify_proof(record: ProofRecord) -> bool:
    """Recompute the hash and check the signature. Never raises."""
    try:
        if canonical_hash(record.descriptor) != record.proof_hash:
            return False
        payload = canonicalize({"proof_hash": record.proof_hash, "descriptor": record.descriptor})
    except (TypeError, ValueError):
        return False
    return SigningKey.verify_detached(payload, record.signature, record.signer_public_key)


class ProofRegistry:
    """Every proof the coordinator obtained, by id and by account."""

    def __init__(self) -> None:
        self._lock:   threading.Lock          = threading.Lock()
        self._proofs: Dict[str, ProofRecord]  = {}

    def add(self, record: ProofRecord) -> None:
        with self._lock:
            self._proofs[record.proof_id] = record

    def get(self, proof_id: str) -> Optional[ProofRecord]:
        with self._lock:
            return self._proofs.get(proof_id)

    def for_account(self, account_id: str) -> List[ProofRecord]:
        with self._lock:
            return [p for p in self._proofs.values() if p.account_id == account_id]

    def verify(self, proof_id: str) -> bool:
        record = self.get(proof_id)
        return record is not None and verify_proof(record)

    def __len__(self) -> int:
        with self._lock:
            return len(self._proofs)


# ─────────────────────────────────────────────────────────────
# Descriptors
# ─────────────────────────────────────────────────────────────

def mint_descriptor(item_id: str, creator_id: str, edition_size: int, price: int) -> Dict[str, Any]:
    return {
        "operation":    ProofType.MINT,
        "account_id":   creator_id,
        "item_id":      item_id,
        "edition_size": edition_size,
        "price":        price,
        "timestamp":    ledger_timestamp(),
    }


def edition_mint_descriptor(
    item_id:        str,
    edition_number: int,
    creator_id:     str,
    buyer_id:       str,
    price:          int,
) -> Dict[str, Any]:
    """A direct purchase mints a fresh edition to the buyer."""
    return {
        "operation":      ProofType.MINT,
        "account_id":     buyer_id,
        "item_id":        item_id,
        "edition_number": edition_number,
        "from":           creator_id,
        "to":             buyer_id,
        "price":          price,
        "timestamp":      ledger_timestamp(),
    }


def transfer_descriptor(
    item_id:        str,
    edition_number: int,
    seller_id:      str,
    buyer_id:       str,
    price:          int,
    kind:           str,
) -> Dict[str, Any]:
    return {
        "operation":      ProofType.TRANSFER,
        "account_id":     buyer_id,
        "item_id":        item_id,
        "edition_number": edition_number,
        "from":           seller_id,
        "to":             buyer_id,
        "price":          price,
        "kind":           kind,
        "timestamp":      ledger_timestamp(),
    }


def bid_descriptor(bid_id: str, item_id: str, bidder_id: str, amount: int) -> Dict[str, Any]:
    return {
        "operation":  ProofType.BID,
        "account_id": bidder_id,
        "bid_id":     bid_id,
        "item_id":    item_id,
        "amount":     amount,
        "timestamp":  ledger_timestamp(),
    }
