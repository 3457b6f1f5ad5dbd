"""
editionledger/ledger/log.py

TransactionLog — append-only, hash-chained, signed record of settlements.

append() MUST, in this exact order:
  1. Acquire lock
  2. Build the entry  — sequence, causal_hash from the previous entry
  3. Sign it          — Ed25519 over the canonical signing dict
  4. Write it         — one JSONL line, when a log file is configured
  5. Advance state    — only after the write is confirmed
  6. Return the signed entry

A raised exception from append() means nothing was recorded. The
settlement coordinator relies on that to roll back a settlement whose
record could not be written.

Chain:
    causal_hash(entry 0) = GENESIS_HASH ("0" * 64)
    causal_hash(entry n) = SHA-256(JCS(entry n-1 signing dict))

Proof refs arrive after a settlement commits, so they are not part of the
signed entry. attach_proof() records them as annotations: in memory and,
with a log file, in a sibling <stem>.proofs.jsonl. Every Transaction view
returned by the log carries its attached proof_ref.
"""

import json
import logging
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from editionledger.core.canonical import canonical_hash, canonicalize
from editionledger.core.crypto import SigningKey
from editionledger.core.exceptions import InvariantViolation
from editionledger.core.models import Transaction
from editionledger.core.time import ledger_timestamp


logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64


class LogFormatError(ValueError):
    """Raised when a log file line cannot be parsed into an entry."""
    pass


# ─────────────────────────────────────────────────────────────
# Entry
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class LogEntry:
    sequence:          int
    causal_hash:       str
    timestamp:         str
    signer_public_key: str
    transaction:       Dict[str, Any]
    signature:         Optional[str] = None

    def to_signing_dict(self) -> Dict[str, Any]:
        return {
            "sequence":          self.sequence,
            "causal_hash":       self.causal_hash,
            "timestamp":         self.timestamp,
            "signer_public_key": self.signer_public_key,
            "transaction":       self.transaction,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_signing_dict()
        data["signature"] = self.signature
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogEntry":
        if not isinstance(data.get("transaction"), dict):
            raise LogFormatError("Malformed log entry: transaction must be an object")
        try:
            return cls(
                sequence=          data["sequence"],
                causal_hash=       data["causal_hash"],
                timestamp=         data["timestamp"],
                signer_public_key= data["signer_public_key"],
                transaction=       data["transaction"],
                signature=         data.get("signature"),
            )
        except (KeyError, TypeError) as exc:
            raise LogFormatError(f"Malformed log entry: {exc}") from exc

    def chain_hash(self) -> str:
        """The causal_hash the next entry must carry."""
        return canonical_hash(self.to_signing_dict())

    def verify_signature(self) -> bool:
        if not self.signature:
            return False
        return SigningKey.verify_detached(
            canonicalize(self.to_signing_dict()),
            self.signature,
            self.signer_public_key,
        )

    def as_transaction(self) -> Transaction:
        return Transaction.from_dict(self.transaction)


# ─────────────────────────────────────────────────────────────
# Verification
# ─────────────────────────────────────────────────────────────

@dataclass
class LogVerification:
    """Returned — not raised — so callers choose between hard fail and report."""
    total_entries:      int = 0
    valid_signatures:   int = 0
    invalid_signatures: int = 0
    violations:         List[str] = field(default_factory=list)

    @property
    def chain_valid(self) -> bool:
        return not self.violations

    def __bool__(self) -> bool:
        return self.chain_valid and self.invalid_signatures == 0


def verify_entries(entries: List[LogEntry]) -> LogVerification:
    """Check sequence, causal chain and signature of every entry."""
    result = LogVerification(total_entries=len(entries))
    seen_ids = set()
    prev: Optional[LogEntry] = None
    for index, entry in enumerate(entries):
        if entry.sequence != index:
            result.violations.append(
                f"sequence gap at index {index}: found sequence {entry.sequence}"
            )
        expected = prev.chain_hash() if prev else GENESIS_HASH
        if entry.causal_hash != expected:
            result.violations.append(
                f"chain break at sequence {entry.sequence}: "
                f"expected ...{expected[-12:]}, got ...{str(entry.causal_hash)[-12:]}"
            )
        tx_id = entry.transaction.get("transaction_id")
        if tx_id in seen_ids:
            result.violations.append(f"duplicate transaction {tx_id} at sequence {entry.sequence}")
        seen_ids.add(tx_id)
        if entry.verify_signature():
            result.valid_signatures += 1
        else:
            result.invalid_signatures += 1
        prev = entry
    return result


def read_log_file(path: Union[str, Path]) -> List[LogEntry]:
    """
    Parse a JSONL log file. Blank lines are skipped.
    Raises LogFormatError on a malformed line, OSError if unreadable.
    """
    entries = []
    with open(path, "r", encoding="utf-8") as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError as exc:
                raise LogFormatError(f"Invalid JSON at line {line_num}: {exc}") from exc
            if not isinstance(data, dict):
                raise LogFormatError(f"Line {line_num} is not a JSON object")
            entries.append(LogEntry.from_dict(data))
    return entries


def proofs_path_for(log_path: Union[str, Path]) -> Path:
    """market.jsonl -> market.proofs.jsonl, beside the log."""
    log_path = Path(log_path)
    return log_path.with_name(f"{log_path.stem}.proofs.jsonl")


def read_proof_annotations(path: Union[str, Path]) -> Dict[str, str]:
    """
    Parse a proof annotation file into {transaction_id: proof_ref}.
    A missing file means no annotations. Raises LogFormatError on a bad line.
    """
    path = Path(path)
    if not path.exists():
        return {}
    refs = {}
    with open(path, "r", encoding="utf-8") as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
                refs[data["transaction_id"]] = data["proof_ref"]
            except (json.JSONDecodeError, KeyError, TypeError) as exc:
                raise LogFormatError(f"Invalid proof annotation at line {line_num}: {exc}") from exc
    return refs


# ─────────────────────────────────────────────────────────────
# Log
# ─────────────────────────────────────────────────────────────

class TransactionLog:
    """
    Thread-safe via internal lock (single process).
    With a log_path, state survives restart by replaying the file on
    construction; a file that fails verification is refused.
    """

    def __init__(
        self,
        signing_key: Optional[SigningKey] = None,
        log_path:    Optional[Union[str, Path]] = None,
    ) -> None:
        self.signing_key = signing_key or SigningKey.generate()

        self._lock:    threading.Lock       = threading.Lock()
        self._entries: List[LogEntry]       = []
        self._by_id:   Dict[str, LogEntry]  = {}
        self._proof_refs: Dict[str, str] = {}
        self._log_file: Optional[Path] = Path(log_path) if log_path else None
        self._proofs_file: Optional[Path] = (
            proofs_path_for(self._log_file) if self._log_file is not None else None
        )

        if self._log_file is not None:
            self._log_file.parent.mkdir(parents=True, exist_ok=True)
            self._restore_state()

    # ── Public API ────────────────────────────────────────────

    def append(self, transaction: Transaction) -> LogEntry:
        with self._lock:
            if transaction.transaction_id in self._by_id:
                raise InvariantViolation(
                    f"Transaction {transaction.transaction_id} is already recorded"
                )
            prev = self._entries[-1] if self._entries else None
            unsigned = LogEntry(
                sequence=          len(self._entries),
                causal_hash=       prev.chain_hash() if prev else GENESIS_HASH,
                timestamp=         ledger_timestamp(),
                signer_public_key= self.signing_key.public_key_hex,
                transaction=       transaction.to_dict(),
            )
            signature = self.signing_key.sign(canonicalize(unsigned.to_signing_dict()))
            entry = LogEntry(**{**unsigned.to_signing_dict(), "signature": signature})

            self._write(entry)

            self._entries.append(entry)
            self._by_id[transaction.transaction_id] = entry
            return entry

    def attach_proof(self, transaction_id: str, proof_ref: str) -> Transaction:
        """
        Attach a proof ref to a recorded transaction. At most once per
        transaction. Returns the annotated view.
        """
        with self._lock:
            entry = self._by_id.get(transaction_id)
            if entry is None:
                raise InvariantViolation(f"Cannot attach a proof to unknown transaction {transaction_id}")
            if transaction_id in self._proof_refs:
                raise InvariantViolation(f"Transaction {transaction_id} already has a proof attached")
            if self._proofs_file is not None:
                line = json.dumps({
                    "transaction_id": transaction_id,
                    "proof_ref":      proof_ref,
                    "attached_at":    ledger_timestamp(),
                })
                try:
                    with open(self._proofs_file, "a", encoding="utf-8") as f:
                        f.write(line + "\n")
                except OSError as exc:
                    raise RuntimeError(f"TransactionLog: proof annotation write failed: {exc}") from exc
            self._proof_refs[transaction_id] = proof_ref
            return self._view_locked(entry)

    def transactions(self) -> List[Transaction]:
        with self._lock:
            return [self._view_locked(e) for e in self._entries]

    def entries(self) -> List[LogEntry]:
        with self._lock:
            return list(self._entries)

    def get(self, transaction_id: str) -> Optional[Transaction]:
        with self._lock:
            entry = self._by_id.get(transaction_id)
            return self._view_locked(entry) if entry else None

    def for_account(self, account_id: str) -> List[Transaction]:
        """Transactions where the account bought or sold, newest first."""
        with self._lock:
            found = [
                self._view_locked(e) for e in reversed(self._entries)
                if account_id in (e.transaction["buyer_id"], e.transaction["seller_id"])
            ]
        return found

    def for_item(self, item_id: str) -> List[Transaction]:
        with self._lock:
            return [
                self._view_locked(e) for e in reversed(self._entries)
                if e.transaction["item_id"] == item_id
            ]

    def head_hash(self) -> str:
        with self._lock:
            return self._entries[-1].chain_hash() if self._entries else GENESIS_HASH

    def verify(self) -> LogVerification:
        return verify_entries(self.entries())

    def verify_chain(self) -> bool:
        return bool(self.verify())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ── Internal ──────────────────────────────────────────────

    def _restore_state(self) -> None:
        if not self._log_file.exists():
            return
        try:
            entries = read_log_file(self._log_file)
        except (OSError, LogFormatError) as exc:
            logger.critical("transaction log %s is unreadable: %s", self._log_file, exc)
            raise InvariantViolation(f"Cannot restore transaction log {self._log_file}: {exc}") from exc

        result = verify_entries(entries)
        if not result:
            logger.critical(
                "transaction log %s failed verification: %s",
                self._log_file, "; ".join(result.violations) or "invalid signatures",
            )
            raise InvariantViolation(
                f"Transaction log {self._log_file} failed verification "
                f"({len(result.violations)} violations, {result.invalid_signatures} bad signatures)"
            )
        self._entries = entries
        self._by_id = {e.transaction["transaction_id"]: e for e in entries}
        self._proof_refs = self._restore_proof_refs()
        logger.info("restored %d transactions from %s", len(entries), self._log_file)

    def _restore_proof_refs(self) -> Dict[str, str]:
        try:
            refs = read_proof_annotations(self._proofs_file)
        except (OSError, LogFormatError) as exc:
            logger.critical("proof annotations %s are unreadable: %s", self._proofs_file, exc)
            raise InvariantViolation(f"Cannot restore proof annotations {self._proofs_file}: {exc}") from exc
        unknown = sorted(set(refs) - set(self._by_id))
        if unknown:
            logger.critical("proof annotations %s name unknown transactions %s", self._proofs_file, unknown)
            raise InvariantViolation(
                f"Proof annotations {self._proofs_file} reference {len(unknown)} unknown transaction(s)"
            )
        return refs

    def _view_locked(self, entry: LogEntry) -> Transaction:
        transaction = entry.as_transaction()
        proof_ref = self._proof_refs.get(transaction.transaction_id)
        return replace(transaction, proof_ref=proof_ref) if proof_ref is not None else transaction

    def _write(self, entry: LogEntry) -> None:
        """State MUST NOT advance if this raises."""
        if self._log_file is None:
            return
        try:
            with open(self._log_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry.to_dict()) + "\n")
        except OSError as exc:
            raise RuntimeError(f"TransactionLog: log write failed: {exc}") from exc
