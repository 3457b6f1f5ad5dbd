"""
Compensating-action journal.

Each applied step registers the action that undoes it. If the block
exits with an exception, the undo actions run newest first and the
original exception propagates. A failing undo means the ledger can no
longer be trusted, so it surfaces as InvariantViolation.

    with SettlementJournal("buy item-1") as journal:
        accounts.transfer(buyer, creator, price)
        journal.record(lambda: accounts.transfer(creator, buyer, price), "refund")
        ...
"""

import logging
from typing import Callable, List, Tuple

from editionledger.core.exceptions import InvariantViolation


logger = logging.getLogger(__name__)


class SettlementJournal:

    def __init__(self, label: str) -> None:
        self.label = label
        self._undo: List[Tuple[str, Callable[[], None]]] = []

    def record(self, undo: Callable[[], None], description: str) -> None:
        self._undo.append((description, undo))

    def __len__(self) -> int:
        return len(self._undo)

    def rollback(self) -> None:
        while self._undo:
            description, undo = self._undo.pop()
            try:
                undo()
            except Exception as exc:
                logger.critical(
                    "%s: compensation '%s' failed, ledger state is inconsistent: %s",
                    self.label, description, exc,
                )
                raise InvariantViolation(
                    f"{self.label}: compensation '{description}' failed: {exc}"
                ) from exc

    def __enter__(self) -> "SettlementJournal":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None and self._undo:
            logger.info("%s: rolling back %d step(s) after %s", self.label, len(self._undo), exc_type.__name__)
            self.rollback()
        self._undo.clear()
        return False
