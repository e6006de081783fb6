"""CLI entry point for the resilient batch deployer."""

from __future__ import annotations

import click

from resilient_deployer.cli.commands import (
    check_endpoint,
    failed_items,
    generate_items,
    normalize_recipients,
    show_summary,
)


@click.group()
def cli() -> None:
    """Resilient batch token deployer."""


cli.add_command(normalize_recipients)
cli.add_command(generate_items)
cli.add_command(failed_items)
cli.add_command(show_summary)
cli.add_command(check_endpoint)
