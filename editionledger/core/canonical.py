"""
Canonical JSON (RFC 8785 / JCS) for everything EditionLedger signs or hashes.

Two payloads go through here: proof descriptors and transaction log
signing dicts. Both must hold only JSON primitives; timestamps are
already strings (see editionledger.core.time).
"""

import hashlib
from typing import Any, Dict

import jcs


def canonicalize(obj: Dict[str, Any]) -> bytes:
    """UTF-8 canonical JSON bytes. Key order of the input never matters."""
    return jcs.canonicalize(obj)


def canonical_hash(obj: Dict[str, Any]) -> str:
    """Lowercase hex SHA-256 of canonicalize(obj)."""
    return hashlib.sha256(canonicalize(obj)).hexdigest()
