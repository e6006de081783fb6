"""CLI command implementations for the resilient batch deployer."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import click
from pydantic import TypeAdapter, ValidationError

from resilient_deployer.models.config import Config
from resilient_deployer.utils.logger import configure_logging


def _get_config() -> Config:
    """Load configuration from environment and .env file."""
    return Config()


def _setup(config: Config) -> None:
    configure_logging(config.log_level, json_output=config.log_format == "json")


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def _write_or_echo(payload: str, output: Path | None) -> None:
    if output is None:
        click.echo(payload)
        return
    output.write_text(payload + "\n", encoding="utf-8")
    click.echo(f"[SUCCESS] Wrote {output}")


def _fail(message: str) -> None:
    click.echo(f"[ERROR] {message}")
    raise click.exceptions.Exit(1)


# --- Reward allocation ---


@click.command()
@click.argument("recipients_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--default", "default_recipient", default=None, help="Address that absorbs any shortfall")
def normalize_recipients(recipients_file: Path, default_recipient: str | None) -> None:
    """Normalize a JSON list of reward recipients to a 100% split."""
    _setup(_get_config())

    from resilient_deployer.core.allocation import (
        normalize_recipients as normalize,
    )
    from resilient_deployer.core.allocation import validate_recipients
    from resilient_deployer.models.recipient import RewardRecipient

    try:
        recipients = TypeAdapter(list[RewardRecipient]).validate_python(_read_json(recipients_file))
    except (ValidationError, json.JSONDecodeError) as exc:
        _fail(f"Could not read recipients: {exc}")
        return

    normalized = normalize(recipients, default_recipient)

    for recipient in normalized:
        click.echo(f"  {recipient.address}: {recipient.allocation:g}%")

    validation = validate_recipients(normalized)
    if not validation.ok:
        click.echo(f"[ERROR] Validation failed ({len(validation.errors)}):")
        for error in validation.errors:
            click.echo(f"    - {error}")
        raise click.exceptions.Exit(1)
    click.echo("[SUCCESS] Allocation is valid")


# --- Batch item files ---


@click.command()
@click.argument("count", type=int)
@click.option("--name-prefix", required=True, help="Token name prefix, e.g. 'My Token'")
@click.option("--symbol-prefix", required=True, help="Token symbol prefix, e.g. 'MTK'")
@click.option("--first-number", default=1, type=int, help="Number of the first item")
@click.option("--admin", default=None, help="Token admin for every item")
@click.option("--recipient", default=None, help="Reward recipient for every item")
@click.option("--output", default=None, type=click.Path(dir_okay=False, path_type=Path))
def generate_items(
    count: int,
    name_prefix: str,
    symbol_prefix: str,
    first_number: int,
    admin: str | None,
    recipient: str | None,
    output: Path | None,
) -> None:
    """Generate a JSON file of numbered batch items."""
    _setup(_get_config())

    from resilient_deployer.core.errors import BatchValidationError
    from resilient_deployer.core.item_generation import generate_items as generate

    try:
        items = generate(
            count,
            name_prefix,
            symbol_prefix,
            first_number=first_number,
            token_admin=admin,
            reward_recipient=recipient,
        )
    except BatchValidationError as exc:
        _fail(str(exc))
        return

    payload = json.dumps([item.model_dump(exclude_none=True) for item in items], indent=2)
    _write_or_echo(payload, output)


@click.command()
@click.argument("summary_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("items_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--output", default=None, type=click.Path(dir_okay=False, path_type=Path))
def failed_items(summary_file: Path, items_file: Path, output: Path | None) -> None:
    """Extract the items that failed in a saved summary, for a retry run."""
    _setup(_get_config())

    from resilient_deployer.models.batch import BatchItem
    from resilient_deployer.services.batch_deployer import load_summary

    try:
        summary = load_summary(summary_file.read_bytes())
        items = TypeAdapter(list[BatchItem]).validate_python(_read_json(items_file))
    except (ValidationError, json.JSONDecodeError) as exc:
        _fail(f"Could not read input: {exc}")
        return

    indices = summary.failed_indices
    if not indices:
        click.echo("[INFO] No failed items in summary.")
        return
    if max(indices) >= len(items):
        _fail("Summary refers to items that are not in the item file")
        return

    payload = json.dumps(
        [items[i].model_dump(exclude_none=True) for i in indices],
        indent=2,
    )
    _write_or_echo(payload, output)


@click.command()
@click.argument("summary_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--output-format",
    default="summary",
    type=click.Choice(["summary", "json"]),
    help="Output format",
)
def show_summary(summary_file: Path, output_format: str) -> None:
    """Show counts, timing and failures of a saved batch summary."""
    _setup(_get_config())

    from resilient_deployer.core.batch_stats import batch_stats, format_batch_summary
    from resilient_deployer.services.batch_deployer import load_summary

    try:
        summary = load_summary(summary_file.read_bytes())
    except ValidationError as exc:
        _fail(f"Could not read summary: {exc}")
        return

    if output_format == "json":
        stats = batch_stats(summary)
        click.echo(
            json.dumps(
                {
                    "chain": summary.chain.value,
                    "total": summary.total,
                    "successful": summary.successful,
                    "failed": summary.failed,
                    "success_rate": stats.success_rate,
                    "average_seconds_per_item": stats.average_seconds_per_item,
                    "duration": stats.total_duration,
                    "failed_indices": summary.failed_indices,
                },
                indent=2,
            )
        )
    else:
        click.echo(format_batch_summary(summary))


# --- Connectivity ---


@click.command()
@click.argument("url")
@click.option("--retries", default=2, type=int, help="Retries after the first attempt")
@click.option("--timeout", default=10.0, type=float, help="Request timeout in seconds")
def check_endpoint(url: str, retries: int, timeout: float) -> None:
    """Probe a JSON-RPC endpoint with eth_chainId."""
    config = _get_config()
    _setup(config)

    from resilient_deployer.models.retry_profile import RetryProfile
    from resilient_deployer.services.executor import ResilientExecutor
    from resilient_deployer.services.health_checks import check_rpc_endpoint

    executor = ResilientExecutor(RetryProfile(**config.retry_profile_overrides()))
    health = check_rpc_endpoint(executor, url, timeout=timeout, overrides={"max_retries": retries})

    if health.healthy:
        click.echo(f"[SUCCESS] {url} is reachable (chain id {health.chain_id})")
    else:
        _fail(f"{url} is unreachable after {health.attempts} attempt(s): {health.error}")
