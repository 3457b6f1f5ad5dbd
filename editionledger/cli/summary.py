"""
editionledger/cli/summary.py

editionledger summary: transaction count, volume and per-kind breakdown.

Exit codes:
    0  Summary printed
    2  Error (file missing, malformed JSON, bad entry)
"""

import json
import sys
from collections import Counter
from pathlib import Path

import click

from editionledger.cli.output import Color, emit_error, header, row_info
from editionledger.ledger.log import (
    LogFormatError,
    proofs_path_for,
    read_log_file,
    read_proof_annotations,
)


@click.command(name="summary")
@click.argument("log", type=click.Path(exists=False))
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json"], case_sensitive=False),
    default="human",
    show_default=True,
)
def summary_command(log: str, fmt: str) -> None:
    """
    Summarize a transaction log and its proof annotations. Does not verify
    signatures; use `editionledger verify` for that.
    """
    fmt = fmt.lower()
    try:
        entries = read_log_file(Path(log))
        transactions = [e.as_transaction() for e in entries]
        proof_refs = read_proof_annotations(proofs_path_for(log))
    except (OSError, LogFormatError) as e:
        emit_error("editionledger_summary", str(e), fmt, False)
        sys.exit(2)
    except (KeyError, TypeError) as e:
        emit_error("editionledger_summary", f"Malformed transaction: {e}", fmt, False)
        sys.exit(2)

    by_kind = Counter(t.kind for t in transactions)
    volume = sum(t.price for t in transactions)
    uncertified = sum(
        1 for t in transactions if not t.is_certified and t.transaction_id not in proof_refs
    )

    if fmt == "json":
        click.echo(json.dumps({
            "editionledger_summary": {
                "log":                str(log),
                "total_transactions": len(transactions),
                "total_volume":       volume,
                "uncertified":        uncertified,
                "by_kind":            dict(sorted(by_kind.items())),
            }
        }, indent=2))
        return

    header("Transaction Log Summary")
    click.echo(row_info("Log", str(log)))
    click.echo(row_info("Transactions", f"{len(transactions):,}"))
    click.echo(row_info("Volume", f"{volume:,}"))
    click.echo(row_info("Uncertified", f"{uncertified:,}"))
    if by_kind:
        click.echo(row_info(
            "By kind",
            "  ".join(f"{Color.cyan(k)}: {v:,}" for k, v in sorted(by_kind.items())),
        ))
    click.echo()
