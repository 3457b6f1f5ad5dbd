"""
EditionLedger Exception Hierarchy

Every expected, recoverable settlement outcome inherits from MarketError.
InvariantViolation is deliberately outside that tree: it signals a prior
bug, not a user error, and callers must not treat it as a normal failure.
"""


class MarketError(Exception):
    """Base exception for all expected marketplace failures"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class InsufficientBalance(MarketError):
    """Raised when a debit exceeds the account's balance"""
    pass


class Exhausted(MarketError):
    """Raised when every edition of an item has been claimed"""
    pass


class NotOwner(MarketError):
    """Raised when the acting account does not own what it acts on"""
    pass


class NotFound(MarketError):
    """Raised when an account, item, listing or bid does not exist"""
    pass


class AlreadyInactive(NotFound):
    """Raised when a listing or bid exists but is no longer active"""
    pass


class Conflict(MarketError):
    """Raised when a concurrent mutation won the race"""
    pass


class InvalidOperation(MarketError):
    """Raised when a request is malformed or self-dealing"""
    pass


class ConfigError(MarketError):
    """Raised when configuration cannot be loaded"""
    pass


class ProofOracleError(Exception):
    """Raised by a proof oracle that cannot certify a descriptor"""
    pass


class InvariantViolation(RuntimeError):
    """Raised when internal state contradicts a ledger invariant"""
    pass
