"""
Timestamps for records, proofs and log entries.

Format: YYYY-MM-DDTHH:MM:SS.mmmZ, always UTC with millisecond precision.
Log entries are signed over this string, so it must never vary by host.
"""

from datetime import datetime, timezone


def ledger_timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")
