"""
editionledger/core/crypto.py

Ed25519 signing keys for proof certification and log entries.

Key contracts:
    public_key_hex      : @property → 64-char lowercase hex
    sign(data)          : bytes → base64url str, no padding
    verify_detached(...) : @staticmethod — needs only a public key hex string
"""

import base64
from pathlib import Path

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_pem_private_key,
)


class SigningKey:
    """
    Ed25519 key pair used by the signing proof oracle and the transaction log.

        SigningKey.generate()              → new random key
        SigningKey.from_file(path)         → load PEM private key
        SigningKey.from_seed(seed)         → load from raw 32-byte seed
        key.public_key_hex                 → 64-char lowercase hex
        key.sign(data)                     → base64url signature
        SigningKey.verify_detached(...)    → bool, no private key needed
    """

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key: Ed25519PrivateKey = private_key
        self._public_key_hex: str = (
            private_key.public_key()
            .public_bytes(Encoding.Raw, PublicFormat.Raw)
            .hex()
        )

    @classmethod
    def generate(cls) -> "SigningKey":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_file(cls, path: Path) -> "SigningKey":
        """
        Load an Ed25519 private key from a PEM file.
        Raises FileNotFoundError if path does not exist.
        Raises ValueError if the file is not an Ed25519 PEM key.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Key file not found: {path}")
        private_key = load_pem_private_key(path.read_bytes(), password=None)
        if not isinstance(private_key, Ed25519PrivateKey):
            raise ValueError(f"Key file {path} does not contain an Ed25519 private key")
        return cls(private_key)

    @classmethod
    def from_seed(cls, seed: bytes) -> "SigningKey":
        if len(seed) != 32:
            raise ValueError(f"Ed25519 seed must be 32 bytes, got {len(seed)}")
        return cls(Ed25519PrivateKey.from_private_bytes(seed))

    @property
    def public_key_hex(self) -> str:
        return self._public_key_hex

    def sign(self, data: bytes) -> str:
        raw_sig = self._private_key.sign(data)
        return base64.urlsafe_b64encode(raw_sig).rstrip(b"=").decode("ascii")

    def verify(self, data: bytes, signature_b64: str) -> bool:
        return SigningKey.verify_detached(data, signature_b64, self._public_key_hex)

    @staticmethod
    def verify_detached(data: bytes, signature_b64: str, public_key_hex: str) -> bool:
        """
        Verify a base64url Ed25519 signature against a public key hex string.

        Returns False for any failure (wrong key, bad encoding, wrong
        length, corrupted signature). Never raises.
        """
        if not isinstance(public_key_hex, str) or len(public_key_hex) != 64:
            return False
        if not isinstance(signature_b64, str) or not signature_b64:
            return False
        try:
            pub = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
            padded_sig = signature_b64 + "=" * (-len(signature_b64) % 4)
            raw_sig = base64.urlsafe_b64decode(padded_sig)
        except ValueError:
            return False
        if len(raw_sig) != 64:
            return False
        try:
            pub.verify(raw_sig, data)
        except InvalidSignature:
            return False
        return True

    def save(self, path: Path) -> None:
        """Write the private key to disk as a PKCS8 PEM file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(
            self._private_key.private_bytes(
                encoding=             Encoding.PEM,
                format=               PrivateFormat.PKCS8,
                encryption_algorithm= NoEncryption(),
            )
        )

    def __repr__(self) -> str:
        return f"SigningKey(public_key_hex={self._public_key_hex[:16]}...)"
