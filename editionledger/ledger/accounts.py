"""
AccountLedger — per-account credit balances.

Thread-safe via one internal lock. The lock is held only for the
duration of a single balance operation, so it never nests inside
another component's lock.

transfer() applies a debit and its matching credit under the same lock
acquisition: no reader ever observes one without the other.
"""

import logging
import threading
from dataclasses import replace
from typing import Dict, Optional

from editionledger.core.exceptions import (
    InsufficientBalance,
    InvalidOperation,
    InvariantViolation,
    NotFound,
)
from editionledger.core.models import MAX_BALANCE, Account, is_credit_amount


logger = logging.getLogger(__name__)


class AccountLedger:

    def __init__(self) -> None:
        self._lock:     threading.Lock     = threading.Lock()
        self._accounts: Dict[str, Account] = {}

    # ── Accounts ──────────────────────────────────────────────

    def open_account(self, account_id: str, initial_balance: int = 0) -> Account:
        """
        Register an account supplied by the identity layer.
        Raises InvalidOperation if the id is empty, already open, or the
        initial balance is negative.
        """
        if not account_id or not isinstance(account_id, str):
            raise InvalidOperation("Account id must be a non-empty string")
        if initial_balance != 0 and not is_credit_amount(initial_balance):
            raise InvalidOperation(
                "Initial balance must be a non-negative integer",
                {"initial_balance": initial_balance},
            )
        with self._lock:
            if account_id in self._accounts:
                raise InvalidOperation("Account already exists", {"account_id": account_id})
            account = Account(account_id=account_id, balance=initial_balance)
            self._accounts[account_id] = account
            logger.info("opened account %s with balance %d", account_id, initial_balance)
            return replace(account)

    def exists(self, account_id: str) -> bool:
        with self._lock:
            return account_id in self._accounts

    def require(self, account_id: str) -> None:
        if not self.exists(account_id):
            raise NotFound("Account not found", {"account_id": account_id})

    def get(self, account_id: str) -> Optional[Account]:
        with self._lock:
            account = self._accounts.get(account_id)
            return replace(account) if account else None

    def balance_of(self, account_id: str) -> int:
        with self._lock:
            return self._get_locked(account_id).balance

    def balances(self) -> Dict[str, int]:
        """Consistent snapshot of every balance."""
        with self._lock:
            return {aid: acct.balance for aid, acct in self._accounts.items()}

    def total_supply(self) -> int:
        with self._lock:
            return sum(acct.balance for acct in self._accounts.values())

    # ── Mutation ──────────────────────────────────────────────

    def debit(self, account_id: str, amount: int) -> None:
        """Raises InsufficientBalance (nothing applied) if amount exceeds the balance."""
        self._check_amount(amount)
        with self._lock:
            self._debit_locked(self._get_locked(account_id), amount)

    def credit(self, account_id: str, amount: int) -> None:
        self._check_amount(amount)
        with self._lock:
            self._credit_locked(self._get_locked(account_id), amount)

    def transfer(self, payer_id: str, payee_id: str, amount: int) -> None:
        """
        Move amount from payer to payee as one indivisible step.
        Raises InsufficientBalance (nothing applied) if the payer is short.
        """
        self._check_amount(amount)
        with self._lock:
            payer = self._get_locked(payer_id)
            payee = self._get_locked(payee_id)
            self._debit_locked(payer, amount)
            try:
                self._credit_locked(payee, amount)
            except InvariantViolation:
                payer.balance += amount
                raise

    # ── Internal ──────────────────────────────────────────────

    def _get_locked(self, account_id: str) -> Account:
        account = self._accounts.get(account_id)
        if account is None:
            raise NotFound("Account not found", {"account_id": account_id})
        return account

    @staticmethod
    def _check_amount(amount: int) -> None:
        if not is_credit_amount(amount):
            raise InvalidOperation("Amount must be a positive integer", {"amount": amount})

    @staticmethod
    def _debit_locked(account: Account, amount: int) -> None:
        if amount > account.balance:
            raise InsufficientBalance(
                "Insufficient balance",
                {"account_id": account.account_id, "balance": account.balance, "required": amount},
            )
        account.balance -= amount

    @staticmethod
    def _credit_locked(account: Account, amount: int) -> None:
        new_balance = account.balance + amount
        if new_balance > MAX_BALANCE:
            logger.critical("balance overflow on account %s", account.account_id)
            raise InvariantViolation(
                f"Balance overflow on account {account.account_id}: "
                f"{account.balance} + {amount} exceeds {MAX_BALANCE}"
            )
        account.balance = new_balance
