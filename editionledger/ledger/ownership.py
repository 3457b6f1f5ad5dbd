"""
OwnershipRegistry — who owns each (item, edition) pair.

A record is created once, when its edition is first claimed. After that
only owner_id changes, and only through transfer().
"""

import threading
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from editionledger.core.exceptions import InvariantViolation, NotFound, NotOwner
from editionledger.core.models import OwnershipRecord
from editionledger.core.time import ledger_timestamp


EditionKey = Tuple[str, int]


class OwnershipRegistry:

    def __init__(self) -> None:
        self._lock:    threading.Lock                   = threading.Lock()
        self._records: Dict[EditionKey, OwnershipRecord] = {}

    def record_initial_ownership(self, item_id: str, edition_number: int, owner_id: str) -> OwnershipRecord:
        key = (item_id, edition_number)
        with self._lock:
            if key in self._records:
                raise InvariantViolation(
                    f"Edition {edition_number} of {item_id} already has an owner"
                )
            record = OwnershipRecord(item_id=item_id, edition_number=edition_number, owner_id=owner_id)
            self._records[key] = record
            return replace(record)

    def remove_initial_ownership(self, item_id: str, edition_number: int, owner_id: str) -> None:
        """Compensation for record_initial_ownership()."""
        key = (item_id, edition_number)
        with self._lock:
            record = self._records.get(key)
            if record is None or record.owner_id != owner_id:
                raise InvariantViolation(
                    f"Cannot remove ownership of edition {edition_number} of {item_id} "
                    f"for {owner_id}: record missing or owner changed"
                )
            del self._records[key]

    def transfer(self, item_id: str, edition_number: int, from_owner_id: str, to_owner_id: str) -> OwnershipRecord:
        """
        Raises NotFound if the edition has no record, NotOwner if it is
        held by someone other than from_owner_id.

        Returns the record as it was before the transfer.
        """
        key = (item_id, edition_number)
        with self._lock:
            record = self._records.get(key)
            if record is None:
                raise NotFound(
                    "Edition has no ownership record",
                    {"item_id": item_id, "edition_number": edition_number},
                )
            if record.owner_id != from_owner_id:
                raise NotOwner(
                    "Edition is not owned by the transferring account",
                    {"item_id": item_id, "edition_number": edition_number, "account_id": from_owner_id},
                )
            previous = replace(record)
            record.owner_id = to_owner_id
            record.acquired_at = ledger_timestamp()
            return previous

    def restore(self, previous: OwnershipRecord) -> None:
        """Compensation for transfer(): put back the record transfer() returned."""
        with self._lock:
            record = self._records.get((previous.item_id, previous.edition_number))
            if record is None:
                raise InvariantViolation(
                    f"Cannot restore edition {previous.edition_number} of {previous.item_id}: "
                    "record missing"
                )
            record.owner_id = previous.owner_id
            record.acquired_at = previous.acquired_at

    def owner_of(self, item_id: str, edition_number: int) -> Optional[str]:
        with self._lock:
            record = self._records.get((item_id, edition_number))
            return record.owner_id if record else None

    def holdings_of(self, owner_id: str) -> List[EditionKey]:
        with self._lock:
            return sorted(key for key, rec in self._records.items() if rec.owner_id == owner_id)

    def editions_owned(self, owner_id: str, item_id: str) -> List[int]:
        with self._lock:
            return sorted(
                edition for (iid, edition), rec in self._records.items()
                if iid == item_id and rec.owner_id == owner_id
            )

    def records_for(self, item_id: str) -> List[OwnershipRecord]:
        with self._lock:
            return [
                replace(rec)
                for (iid, _), rec in sorted(self._records.items())
                if iid == item_id
            ]

    def count_for(self, item_id: str) -> int:
        with self._lock:
            return sum(1 for (iid, _) in self._records if iid == item_id)
