"""
editionledger/cli/verify.py

editionledger verify: transaction log verification.

Usage:
    editionledger verify <log>                  Human output (default)
    editionledger verify <log> --format json    Machine-readable JSON
    editionledger verify <log> --quiet          Exit code only

Exit codes:
    0  Log fully valid (sequence + chain + signatures)
    1  Log has violations
    2  Error (file missing, malformed JSON, bad entry)
"""

import json
import sys
from pathlib import Path
from typing import List

import click

from editionledger.cli.output import (
    BAR_LIGHT,
    Color,
    emit_error,
    header,
    row_fail,
    row_info,
    row_ok,
)
from editionledger.ledger.log import (
    GENESIS_HASH,
    LogEntry,
    LogFormatError,
    LogVerification,
    read_log_file,
    verify_entries,
)


@click.command(name="verify")
@click.argument("log", type=click.Path(exists=False))
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json"], case_sensitive=False),
    default="human",
    show_default=True,
    help="Output format: human (default) or json.",
)
@click.option(
    "--quiet",
    is_flag=True,
    default=False,
    help="Suppress all output. Use exit code only (0=valid, 1=invalid, 2=error).",
)
@click.option("--no-color", is_flag=True, default=False, help="Disable ANSI color output.")
def verify_command(log: str, fmt: str, quiet: bool, no_color: bool) -> None:
    """
    Verify a transaction log: sequence, causal chain, signatures.

    LOG is the path to a .jsonl transaction log.
    """
    Color.configure(not no_color)
    fmt = fmt.lower()
    log_path = Path(log)

    if not log_path.exists():
        emit_error("editionledger_verify", f"Log not found: {log}", fmt, quiet)
        sys.exit(2)

    try:
        entries = read_log_file(log_path)
    except (OSError, LogFormatError) as e:
        emit_error("editionledger_verify", str(e), fmt, quiet)
        sys.exit(2)

    result = verify_entries(entries)
    log_valid = bool(result)

    if quiet:
        sys.exit(0 if log_valid else 1)

    head = entries[-1].chain_hash() if entries else GENESIS_HASH
    if fmt == "json":
        _output_json(result, log_path, head, log_valid)
    else:
        _output_human(result, entries, log_path, head, log_valid)

    sys.exit(0 if log_valid else 1)


def _output_human(
    result:    LogVerification,
    entries:   List[LogEntry],
    log_path:  Path,
    head:      str,
    log_valid: bool,
) -> None:
    header("Transaction Log Verification")
    click.echo(row_info("Log", str(log_path)))
    click.echo(row_info("Entries", f"{result.total_entries:,}"))
    click.echo()

    if result.chain_valid:
        click.echo(row_ok("Chain", "intact, every causal hash matches"))
    else:
        click.echo(row_fail("Chain", Color.red(f"{len(result.violations)} violation(s)")))

    if result.invalid_signatures == 0:
        click.echo(row_ok("Signatures", f"{result.valid_signatures:,} / {result.total_entries:,} valid"))
    else:
        click.echo(row_fail(
            "Signatures",
            f"{result.valid_signatures:,} valid  " + Color.red(f"{result.invalid_signatures:,} INVALID"),
        ))

    if entries:
        click.echo(row_info("First entry", entries[0].timestamp))
        click.echo(row_info("Last entry", entries[-1].timestamp))
    click.echo(row_info("Chain head", Color.cyan(head[:16] + "..." + head[-8:])))
    click.echo()

    if result.violations:
        click.echo(f"  {BAR_LIGHT}")
        for violation in result.violations:
            click.echo(f"  {Color.red('-')} {violation}")
        click.echo(f"  {BAR_LIGHT}")
        click.echo()

    click.echo(f"  {BAR_LIGHT}")
    if log_valid:
        click.echo(Color.green(Color.bold("  VALID  ·  0 violations")))
    else:
        problems = len(result.violations) + result.invalid_signatures
        click.echo(Color.red(Color.bold(f"  INVALID  ·  {problems} problem(s)")))
    click.echo(f"  {BAR_LIGHT}")
    click.echo()


def _output_json(result: LogVerification, log_path: Path, head: str, log_valid: bool) -> None:
    out = {
        "editionledger_verify": {
            "log":                str(log_path),
            "total_entries":      result.total_entries,
            "log_valid":          log_valid,
            "chain_valid":        result.chain_valid,
            "chain_head_hash":    head,
            "valid_signatures":   result.valid_signatures,
            "invalid_signatures": result.invalid_signatures,
            "violation_count":    len(result.violations),
            "violations":         result.violations,
        }
    }
    click.echo(json.dumps(out, indent=2))
