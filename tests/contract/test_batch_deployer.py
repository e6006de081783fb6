"""Contract tests for BatchDeployer against a scripted deploy client.

The client plays back exceptions and receipts in call order; sleeping is
recorded on a fake clock instead of blocking.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from resilient_deployer.core.errors import BatchValidationError, NetworkError
from resilient_deployer.models.batch import (
    BatchItem,
    BatchOptions,
    BatchSummary,
    Chain,
    DeployReceipt,
)
from resilient_deployer.models.recipient import RewardRecipient
from resilient_deployer.models.retry_profile import BackoffStrategy
from resilient_deployer.services.batch_deployer import (
    BatchDeployer,
    export_results,
    load_summary,
    validate_batch,
)

if TYPE_CHECKING:
    from tests.conftest import FakeClock, FakeDeployClient, SteppingNow

WALLET = "0x" + "1" * 40
ADMIN = "0x" + "a" * 40
RECIPIENT = "0x" + "b" * 40
OTHER = "0x" + "c" * 40
TOKEN = "0x" + "f" * 40


def _ok() -> DeployReceipt:
    return DeployReceipt(token_address=TOKEN, tx_hash="0xabc", explorer_url="https://basescan.org/tx/0xabc")


def _options(**overrides: Any) -> BatchOptions:
    values: dict[str, Any] = {"delay": 0.0, "retries": 2, "retry_delay": 5.0}
    values.update(overrides)
    return BatchOptions(**values)


@pytest.fixture
def deployer_for(clock: FakeClock, stepping_now: SteppingNow) -> Any:
    def build(client: FakeDeployClient) -> BatchDeployer:
        return BatchDeployer(client, sleep=clock.sleep, now=stepping_now, uniform=lambda low, high: high)

    return build


# ---------------------------------------------------------------------------
# Sequencing
# ---------------------------------------------------------------------------


class TestDeploySequencing:
    """Order, delays, resume and stop-on-error behavior."""

    def test_all_items_succeed(
        self,
        fake_client: FakeDeployClient,
        deployer_for: Any,
        clock: FakeClock,
        sample_items: list[BatchItem],
    ) -> None:
        summary = deployer_for(fake_client).deploy(sample_items, _options(delay=3.0))

        assert (summary.total, summary.successful, summary.failed) == (5, 5, 0)
        assert [r.index for r in summary.results] == [0, 1, 2, 3, 4]
        assert [r.symbol for r in summary.results] == ["TK0", "TK1", "TK2", "TK3", "TK4"]
        assert all(r.attempts == 1 for r in summary.results)
        # no delay after the last item
        assert clock.sleeps == [3.0, 3.0, 3.0, 3.0]
        assert summary.started_at < summary.ended_at

    def test_random_delay_added_to_fixed_delay(
        self,
        fake_client: FakeDeployClient,
        deployer_for: Any,
        clock: FakeClock,
        sample_items: list[BatchItem],
    ) -> None:
        options = _options(delay=1.0, random_delay_min=0.5, random_delay_max=2.0)
        deployer_for(fake_client).deploy(sample_items[:3], options)
        assert clock.sleeps == [3.0, 3.0]

    def test_stop_on_first_failure(
        self,
        make_client: type[FakeDeployClient],
        deployer_for: Any,
        clock: FakeClock,
        sample_items: list[BatchItem],
    ) -> None:
        client = make_client([_ok(), NetworkError("down"), NetworkError("down"), NetworkError("down")])
        summary = deployer_for(client).deploy(sample_items, _options(continue_on_error=False))

        assert len(summary.results) == 2
        assert (summary.successful, summary.failed) == (1, 1)
        failed = summary.results[1]
        assert failed.success is False
        assert failed.attempts == 3
        assert failed.error == "down"
        assert len(client.requests) == 4
        assert clock.sleeps == [5.0, 5.0]

    def test_continue_past_failure(
        self,
        make_client: type[FakeDeployClient],
        deployer_for: Any,
        sample_items: list[BatchItem],
    ) -> None:
        client = make_client([_ok(), NetworkError("down"), NetworkError("down"), NetworkError("down")])
        summary = deployer_for(client).deploy(sample_items, _options())

        assert summary.total == 5
        assert summary.failed_indices == [1]
        assert summary.successful == 4

    def test_start_index_resumes(
        self,
        fake_client: FakeDeployClient,
        deployer_for: Any,
        sample_items: list[BatchItem],
    ) -> None:
        progress: list[tuple[int, int]] = []
        options = _options(start_index=2, on_progress=lambda i, total, _r: progress.append((i, total)))
        summary = deployer_for(fake_client).deploy(sample_items, options)

        assert summary.total == 3
        assert [r.index for r in summary.results] == [2, 3, 4]
        assert [r.symbol for r in summary.results] == ["TK2", "TK3", "TK4"]
        assert progress == [(2, 5), (3, 5), (4, 5)]

    def test_chain_recorded_in_summary(
        self,
        fake_client: FakeDeployClient,
        deployer_for: Any,
        sample_items: list[BatchItem],
    ) -> None:
        summary = deployer_for(fake_client).deploy(sample_items[:1], _options(chain=Chain.ARBITRUM))
        assert (summary.chain, summary.chain_id) == (Chain.ARBITRUM, 42161)
        assert fake_client.requests[0].chain_id == 42161


# ---------------------------------------------------------------------------
# Per-item retries and callbacks
# ---------------------------------------------------------------------------


class TestItemRetries:
    """Attempt loop, backoff and callback ordering for one item."""

    def test_recovers_on_retry(
        self,
        make_client: type[FakeDeployClient],
        deployer_for: Any,
        clock: FakeClock,
    ) -> None:
        client = make_client([NetworkError("blip"), _ok()])
        summary = deployer_for(client).deploy([BatchItem(name="A", symbol="A")], _options())

        [result] = summary.results
        assert result.success is True
        assert result.attempts == 2
        assert result.token_address == TOKEN
        assert result.tx_hash == "0xabc"
        assert clock.sleeps == [5.0]

    def test_callbacks_fire_in_order(
        self,
        make_client: type[FakeDeployClient],
        deployer_for: Any,
    ) -> None:
        events: list[str] = []
        options = _options(
            on_error=lambda i, exc, item: events.append(f"error:{i}:{exc}:{item.symbol}"),
            on_retry=lambda i, attempt, item: events.append(f"retry:{i}:{attempt}"),
            on_progress=lambda i, total, result: events.append(f"progress:{i}:{result.success}"),
        )
        client = make_client([NetworkError("blip"), _ok()])
        deployer_for(client).deploy([BatchItem(name="A", symbol="AAA")], options)

        assert events == ["error:0:blip:AAA", "retry:0:1", "progress:0:True"]

    def test_zero_retries_means_single_attempt(
        self,
        make_client: type[FakeDeployClient],
        deployer_for: Any,
        clock: FakeClock,
    ) -> None:
        client = make_client([NetworkError("down"), _ok()])
        summary = deployer_for(client).deploy([BatchItem(name="A", symbol="A")], _options(retries=0))
        assert summary.results[0].attempts == 1
        assert summary.failed == 1
        assert clock.sleeps == []

    def test_exponential_item_backoff_is_clamped(
        self,
        make_client: type[FakeDeployClient],
        deployer_for: Any,
        clock: FakeClock,
    ) -> None:
        client = make_client([NetworkError("down")] * 4)
        options = _options(
            retries=3,
            retry_delay=1.0,
            retry_backoff=BackoffStrategy.EXPONENTIAL,
            max_retry_delay=3.0,
        )
        deployer_for(client).deploy([BatchItem(name="A", symbol="A")], options)
        assert clock.sleeps == [1.0, 2.0, 3.0]

    def test_failed_receipt_retries_without_error_callback(
        self,
        make_client: type[FakeDeployClient],
        deployer_for: Any,
    ) -> None:
        errors: list[int] = []
        client = make_client([DeployReceipt(success=False, error="execution reverted"), _ok()])
        summary = deployer_for(client).deploy(
            [BatchItem(name="A", symbol="A")], _options(on_error=lambda i, *_: errors.append(i))
        )
        assert summary.results[0].attempts == 2
        assert errors == []

    def test_receipt_without_address_is_a_failure(
        self,
        make_client: type[FakeDeployClient],
        deployer_for: Any,
    ) -> None:
        client = make_client([DeployReceipt(success=True)])
        summary = deployer_for(client).deploy([BatchItem(name="A", symbol="A")], _options(retries=0))
        assert summary.results[0].error == "Deploy failed - no token address"

    def test_receipt_error_message_kept(
        self,
        make_client: type[FakeDeployClient],
        deployer_for: Any,
    ) -> None:
        client = make_client([DeployReceipt(success=False, error="insufficient funds")])
        summary = deployer_for(client).deploy([BatchItem(name="A", symbol="A")], _options(retries=0))
        assert summary.results[0].error == "insufficient funds"

    def test_exception_without_message_uses_type_name(
        self,
        make_client: type[FakeDeployClient],
        deployer_for: Any,
    ) -> None:
        client = make_client([RuntimeError()])
        summary = deployer_for(client).deploy([BatchItem(name="A", symbol="A")], _options(retries=0))
        assert summary.results[0].error == "RuntimeError"


# ---------------------------------------------------------------------------
# Request construction
# ---------------------------------------------------------------------------


class TestDeployRequest:
    """Admin, recipient, allocation and metadata resolution per item."""

    def test_wallet_is_last_resort_admin_and_recipient(
        self,
        fake_client: FakeDeployClient,
        deployer_for: Any,
    ) -> None:
        summary = deployer_for(fake_client).deploy([BatchItem(name="A", symbol="A")], _options())
        [request] = fake_client.requests
        assert request.token_admin == WALLET
        assert [(r.address, r.allocation) for r in request.reward_recipients] == [(WALLET, 100)]
        assert summary.results[0].token_admin == WALLET

    def test_batch_defaults(self, fake_client: FakeDeployClient, deployer_for: Any) -> None:
        options = _options(default_token_admin=ADMIN, default_reward_recipient=RECIPIENT)
        summary = deployer_for(fake_client).deploy([BatchItem(name="A", symbol="A")], options)
        [request] = fake_client.requests
        assert request.token_admin == ADMIN
        assert [r.address for r in request.reward_recipients] == [RECIPIENT]
        assert summary.results[0].reward_recipient == RECIPIENT

    def test_item_values_win_over_defaults(
        self,
        fake_client: FakeDeployClient,
        deployer_for: Any,
    ) -> None:
        item = BatchItem(name="A", symbol="A", token_admin=OTHER, reward_recipient=OTHER)
        options = _options(default_token_admin=ADMIN, default_reward_recipient=RECIPIENT)
        deployer_for(fake_client).deploy([item], options)
        assert fake_client.requests[0].token_admin == OTHER

    def test_partial_allocation_remainder_goes_to_admin(
        self,
        fake_client: FakeDeployClient,
        deployer_for: Any,
    ) -> None:
        item = BatchItem(
            name="A", symbol="A", token_admin=ADMIN, reward_recipient=RECIPIENT, reward_allocation=70
        )
        deployer_for(fake_client).deploy([item], _options())
        shares = [(r.address, r.allocation) for r in fake_client.requests[0].reward_recipients]
        assert shares == [(RECIPIENT, 70), (ADMIN, 30)]

    def test_multiple_recipients_normalized(
        self,
        fake_client: FakeDeployClient,
        deployer_for: Any,
    ) -> None:
        item = BatchItem(
            name="A",
            symbol="A",
            reward_recipients=[
                RewardRecipient(address=ADMIN),
                RewardRecipient(address=RECIPIENT),
                RewardRecipient(address=OTHER),
            ],
        )
        deployer_for(fake_client).deploy([item], _options())
        allocations = [r.allocation for r in fake_client.requests[0].reward_recipients]
        assert allocations == [34, 33, 33]

    def test_invalid_allocation_fails_without_attempt(
        self,
        fake_client: FakeDeployClient,
        deployer_for: Any,
    ) -> None:
        item = BatchItem(
            name="A",
            symbol="A",
            reward_recipients=[
                RewardRecipient(address=ADMIN, allocation=60),
                RewardRecipient(address=RECIPIENT, allocation=50),
            ],
        )
        summary = deployer_for(fake_client).deploy([item, BatchItem(name="B", symbol="B")], _options())

        first = summary.results[0]
        assert first.success is False
        assert first.attempts == 0
        assert "Total allocation must equal 100%, got 110%" in (first.error or "")
        # only the second item reached the client
        assert len(fake_client.requests) == 1
        assert summary.results[1].success is True

    def test_invalid_recipient_address_fails_item(
        self,
        fake_client: FakeDeployClient,
        deployer_for: Any,
    ) -> None:
        item = BatchItem(name="A", symbol="A", reward_recipient="not-an-address")
        summary = deployer_for(fake_client).deploy([item], _options())
        assert summary.results[0].attempts == 0
        assert "invalid address" in (summary.results[0].error or "")

    def test_metadata_fees_and_mev(
        self,
        fake_client: FakeDeployClient,
        deployer_for: Any,
    ) -> None:
        item = BatchItem(name="Cat", symbol="CAT", image="QmCatImage", description="meow")
        deployer_for(fake_client).deploy([item], _options(fee_percent=10, mev=3))
        [request] = fake_client.requests
        assert request.image == "ipfs://QmCatImage"
        assert request.description == "meow"
        assert request.mev == 3
        assert (request.fees.type, request.fees.clanker_fee, request.fees.paired_fee) == ("static", 10, 10)

    def test_address_property(self, fake_client: FakeDeployClient, deployer_for: Any) -> None:
        assert deployer_for(fake_client).address == WALLET


# ---------------------------------------------------------------------------
# Validation, retry_failed and persistence
# ---------------------------------------------------------------------------


class TestBatchValidation:
    """Structural checks run before any deploy call."""

    def test_empty_batch(self, fake_client: FakeDeployClient, deployer_for: Any) -> None:
        with pytest.raises(BatchValidationError, match="At least 1 item is required"):
            deployer_for(fake_client).deploy([], _options())
        assert fake_client.requests == []

    def test_oversized_batch(self, fake_client: FakeDeployClient, deployer_for: Any) -> None:
        items = [BatchItem(name=f"T{i}", symbol=f"T{i}") for i in range(101)]
        with pytest.raises(BatchValidationError, match="Maximum 100 items per batch"):
            deployer_for(fake_client).deploy(items, _options())
        assert fake_client.requests == []

    def test_exactly_100_items_allowed(self) -> None:
        items = [BatchItem(name=f"T{i}", symbol=f"T{i}") for i in range(100)]
        validate_batch(items, _options())

    def test_start_index_past_end(self, sample_items: list[BatchItem]) -> None:
        with pytest.raises(BatchValidationError, match="start_index"):
            validate_batch(sample_items, _options(start_index=5))


class TestRetryFailed:
    """Re-running only the failed items of a previous summary."""

    def test_only_failed_items_are_redeployed(
        self,
        make_client: type[FakeDeployClient],
        deployer_for: Any,
        sample_items: list[BatchItem],
    ) -> None:
        client = make_client(
            [_ok(), NetworkError("down"), _ok(), NetworkError("down"), _ok()]
        )
        deployer = deployer_for(client)
        first = deployer.deploy(sample_items, _options(retries=0))
        assert first.failed_indices == [1, 3]

        second = deployer.retry_failed(first, sample_items, _options(start_index=4))

        assert second.total == 2
        assert second.successful == 2
        assert [r.symbol for r in second.results] == ["TK1", "TK3"]
        assert [r.index for r in second.results] == [0, 1]

    def test_nothing_failed_returns_same_summary(
        self,
        fake_client: FakeDeployClient,
        deployer_for: Any,
        sample_items: list[BatchItem],
    ) -> None:
        deployer = deployer_for(fake_client)
        summary = deployer.deploy(sample_items[:2], _options())
        assert deployer.retry_failed(summary, sample_items[:2]) is summary
        assert len(fake_client.requests) == 2

    def test_mismatched_item_list(
        self,
        make_client: type[FakeDeployClient],
        deployer_for: Any,
        sample_items: list[BatchItem],
    ) -> None:
        client = make_client([_ok(), _ok(), _ok(), _ok(), NetworkError("down")])
        deployer = deployer_for(client)
        summary = deployer.deploy(sample_items, _options(retries=0))
        with pytest.raises(BatchValidationError):
            deployer.retry_failed(summary, sample_items[:2])


class TestPersistence:
    """export_results and load_summary."""

    def test_round_trip(
        self,
        make_client: type[FakeDeployClient],
        deployer_for: Any,
        sample_items: list[BatchItem],
    ) -> None:
        client = make_client([_ok(), NetworkError("down")])
        summary = deployer_for(client).deploy(sample_items[:2], _options(retries=0))

        payload = export_results(summary)
        restored = load_summary(payload)

        assert isinstance(restored, BatchSummary)
        assert restored.model_dump() == summary.model_dump()
        assert restored.failed_indices == [1]
        assert '"duration_seconds"' in payload
