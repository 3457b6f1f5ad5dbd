"""
editionledger/cli/__init__.py

EditionLedger CLI: root Click command group.

Registered in pyproject.toml as:

    [project.scripts]
    editionledger = "editionledger.cli:cli"

New commands live in their own module under editionledger/cli/ and are
added to the group below with cli.add_command().
"""

import logging

import click

from editionledger.cli.summary import summary_command
from editionledger.cli.verify import verify_command


@click.group()
@click.version_option(package_name="editionledger")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log at DEBUG level to stderr.")
def cli(verbose: bool) -> None:
    """
    EditionLedger: transaction log tooling.

    \b
    Commands:
      verify    Verify a transaction log: sequence, chain, signatures.
      summary   Count transactions and volume per kind.

    \b
    Quick start:
      editionledger verify market.jsonl
      editionledger verify market.jsonl --format json
      editionledger verify market.jsonl --quiet && echo "clean"
      editionledger summary market.jsonl
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


cli.add_command(verify_command)
cli.add_command(summary_command)
