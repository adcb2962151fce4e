"""
Tests for the UI view derived from a sequence.
"""

from datetime import datetime, timedelta, timezone

import pytest

from txflow.core.errors import ErrorKind, user_message
from txflow.core.execution import ReceiptOutcome, Step, StepRole
from txflow.core.sequence import (
    PrepareFailed,
    RecheckStarted,
    ReceiptResolved,
    Sequence,
    Stage,
    StepDispatched,
    StepsPrepared,
    StepSubmitted,
    WalletFailed,
    describe,
    reduce,
    stage_label,
)
from txflow.core.sequence.labels import (
    QUEUE_UNSTAKE_HINT,
    RECHECKING_LABEL,
    TIMEOUT_WARNING,
    VALIDATION_TIMEOUT_WARNING,
)


HASH_1 = "0x" + "aa" * 32
HASH_2 = "0x" + "bb" * 32
NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def make_step(index, key, chain_id, role=StepRole.PRIMARY, label=None):
    return Step(
        id=f"step-{index}-{key}",
        role=role,
        to="0x" + "11" * 20,
        data="0x01",
        chain_id=chain_id,
        label=label or key.title(),
        key=key,
        requires_follow_up=role == StepRole.APPROVAL,
    )


def prepared(domain, action, steps):
    return reduce(Sequence(domain=domain, action=action), StepsPrepared(tuple(steps)))


def run_to(sequence, index, outcome, tx_hash=HASH_1):
    sequence = reduce(sequence, StepDispatched(index))
    sequence = reduce(sequence, StepSubmitted(index, tx_hash))
    return reduce(sequence, ReceiptResolved(index, outcome))


@pytest.fixture
def withdraw():
    return prepared(
        "lending",
        "withdraw",
        [make_step(0, "validation", 43114, StepRole.APPROVAL), make_step(1, "withdraw", 43114)],
    )


@pytest.fixture
def queue_unstake():
    return prepared(
        "staking",
        "unstake",
        [
            make_step(0, "approval", 1, StepRole.APPROVAL),
            make_step(1, "request", 1, label="Request withdrawal"),
        ],
    )


# =============================================================================
# Stage Labels
# =============================================================================


class TestStageLabel:
    """Test per-stage status labels"""

    @pytest.mark.parametrize(
        "stage,label",
        [
            (Stage.QUEUED, "Queued"),
            (Stage.AWAITING_WALLET, "Confirm in wallet"),
            (Stage.PENDING, "Pending"),
            (Stage.CONFIRMED, "Confirmed"),
            (Stage.TIMEOUT, "Submitted"),
            (Stage.FAILED, "Failed"),
        ],
    )
    def test_lending_labels(self, stage, label):
        assert stage_label(stage, "lending", "supply") == label

    def test_staking_labels(self):
        """Staking uses its own wording"""
        assert stage_label(Stage.PENDING, "staking", "stake") == "Pending confirmation"
        assert stage_label(Stage.FAILED, "staking", "stake") == "Transaction failed"
        assert stage_label(Stage.CONFIRMED, "staking", "stake") == "Confirmed"

    def test_queue_unstake_confirmed(self):
        """A confirmed queue unstake is only a submitted request"""
        assert stage_label(Stage.CONFIRMED, "staking", "unstake") == "Request submitted"
        assert stage_label(Stage.CONFIRMED, "staking", "unstake", "queue") == "Request submitted"
        assert stage_label(Stage.CONFIRMED, "staking", "unstake", "instant") == "Confirmed"


# =============================================================================
# Sequence View
# =============================================================================


class TestDescribe:
    """Test the derived sequence view"""

    def test_queued(self, withdraw):
        view = describe(withdraw, now=NOW)

        assert view.title == "Withdraw"
        assert view.stage == Stage.QUEUED
        assert view.status_label == "Queued"
        assert [step.label for step in view.steps] == ["Validation", "Withdraw"]
        assert not view.can_retry
        assert view.explorer_url is None

    def test_validation_timeout(self, withdraw):
        """A timed-out validation step warns against paying the fee twice"""
        sequence = run_to(withdraw, 0, ReceiptOutcome.TIMEOUT)

        view = describe(sequence, now=NOW)

        assert view.stage == Stage.TIMEOUT
        assert view.status_label == "Submitted"
        assert view.can_retry
        assert view.can_recheck
        assert view.warning == VALIDATION_TIMEOUT_WARNING
        assert view.explorer_url == f"https://snowtrace.io/tx/{HASH_1}"

    def test_primary_timeout(self, withdraw):
        sequence = run_to(withdraw, 0, ReceiptOutcome.CONFIRMED, HASH_1)
        sequence = run_to(sequence, 1, ReceiptOutcome.TIMEOUT, HASH_2)

        view = describe(sequence, now=NOW)

        assert view.warning == TIMEOUT_WARNING
        assert view.explorer_url == f"https://snowtrace.io/tx/{HASH_2}"
        assert [step.status_label for step in view.steps] == ["Confirmed", "Submitted"]

    def test_wrong_network(self, withdraw):
        """Wrong network offers a switch and retry"""
        sequence = reduce(withdraw, StepDispatched(0))
        sequence = reduce(sequence, WalletFailed(0, ErrorKind.WRONG_NETWORK, "Wallet is on chain 1"))

        view = describe(sequence, now=NOW)

        assert view.stage == Stage.FAILED
        assert view.can_switch_network
        assert view.can_retry
        assert not view.can_recheck
        assert view.error_message == user_message(ErrorKind.WRONG_NETWORK)
        assert view.warning == view.error_message

    def test_user_rejected(self, withdraw):
        sequence = reduce(withdraw, StepDispatched(0))
        sequence = reduce(sequence, WalletFailed(0, ErrorKind.USER_REJECTED, "Rejected"))

        view = describe(sequence, now=NOW)

        assert view.can_retry
        assert not view.can_switch_network
        assert view.error_message == user_message(ErrorKind.USER_REJECTED)
        assert view.warning is None

    @pytest.mark.parametrize("kind", [ErrorKind.WALLET_INCOMPATIBLE, ErrorKind.VALIDATION])
    def test_wallet_failure_without_retry(self, withdraw, kind):
        """Failures that need a different wallet or input offer no retry"""
        sequence = reduce(withdraw, StepDispatched(0))
        sequence = reduce(sequence, WalletFailed(0, kind, "failed"))

        view = describe(sequence, now=NOW)

        assert view.stage == Stage.FAILED
        assert not view.can_retry
        assert view.error_message == user_message(kind)

    def test_revert_without_retry(self, withdraw):
        sequence = run_to(withdraw, 0, ReceiptOutcome.FAILED)

        view = describe(sequence, now=NOW)

        assert view.stage == Stage.FAILED
        assert not view.can_retry
        assert not view.can_recheck
        assert view.error_message == user_message(ErrorKind.TRANSACTION_REVERTED)

    def test_invalid_input_without_retry(self):
        sequence = reduce(
            Sequence(domain="lending", action="supply"),
            PrepareFailed(ErrorKind.VALIDATION, "Amount must be positive"),
        )

        view = describe(sequence, now=NOW)

        assert view.stage == Stage.FAILED
        assert not view.can_retry

    def test_rechecking(self, withdraw):
        """While a recheck polls, neither retry nor another recheck is offered"""
        sequence = reduce(run_to(withdraw, 0, ReceiptOutcome.TIMEOUT), RecheckStarted(0))

        view = describe(sequence, now=NOW)

        assert view.stage == Stage.TIMEOUT
        assert view.status_label == RECHECKING_LABEL
        assert not view.can_retry
        assert not view.can_recheck
        assert view.warning == VALIDATION_TIMEOUT_WARNING

    def test_queue_unstake_confirmed(self, queue_unstake):
        """Only the request step reads as submitted; a hint explains the queue"""
        sequence = run_to(queue_unstake, 0, ReceiptOutcome.CONFIRMED, HASH_1)
        sequence = run_to(sequence, 1, ReceiptOutcome.CONFIRMED, HASH_2)

        view = describe(sequence, method="queue", now=NOW)

        assert view.stage == Stage.CONFIRMED
        assert [step.status_label for step in view.steps] == ["Confirmed", "Request submitted"]
        assert view.status_label == "Request submitted"
        assert view.hint == QUEUE_UNSTAKE_HINT
        assert view.explorer_url == f"https://etherscan.io/tx/{HASH_2}"
        assert not view.can_retry

    def test_staking_pending(self, queue_unstake):
        sequence = reduce(queue_unstake, StepDispatched(0))
        sequence = reduce(sequence, StepSubmitted(0, HASH_1))

        assert describe(sequence, now=NOW).status_label == "Pending confirmation"

    def test_rate_limited_prepare(self):
        """A rate-limited preparation shows a countdown and no retry yet"""
        sequence = reduce(
            Sequence(domain="lending", action="supply"),
            PrepareFailed(ErrorKind.RATE_LIMITED, "slow down", retry_not_before=NOW + timedelta(seconds=12)),
        )

        waiting = describe(sequence, now=NOW)
        ready = describe(sequence, now=NOW + timedelta(seconds=13))

        assert waiting.stage == Stage.FAILED
        assert waiting.status_label == "Failed"
        assert waiting.retry_in_seconds == 12
        assert not waiting.can_retry
        assert waiting.error_message == user_message(ErrorKind.RATE_LIMITED)
        assert ready.retry_in_seconds is None
        assert ready.can_retry

    def test_to_dict(self, withdraw):
        data = describe(run_to(withdraw, 0, ReceiptOutcome.TIMEOUT), now=NOW).to_dict()

        assert data["stage"] == "timeout"
        assert data["canRecheck"] is True
        assert data["steps"][0]["txHash"] == HASH_1
