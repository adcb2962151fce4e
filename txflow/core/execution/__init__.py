"""
Transaction Execution Layer

Provides the pieces that take one step from unsigned to final:
- Step / StepRole: the unsigned transaction and its role in a sequence
- TransactionBuilder: builds steps and wallet payloads, normalizes numbers
- WalletExecutor: submits a step through the connected wallet
- ReceiptWaiter: polls the chain for the step's receipt

Usage:
    from txflow.core.execution import WalletExecutor, ReceiptWaiter

    executor = WalletExecutor(wallet)
    tx_hash = await executor.execute(step)

    waiter = ReceiptWaiter()
    result = await waiter.wait_for_receipt(tx_hash, step.chain_id)
"""

from .models import (
    StepRole,
    Step,
    ReceiptOutcome,
    ReceiptPoll,
    ReceiptResult,
)

from .tx_builder import (
    DEFAULT_GAS_LIMIT,
    TransactionBuilder,
    is_address,
    is_tx_hash,
    to_hex_quantity,
)

from .wallet import (
    JsonRpcWallet,
    WalletExecutor,
    WalletProvider,
)

from .receipts import (
    ReceiptWaiter,
    receipt_succeeded,
)

__all__ = [
    # Models
    "StepRole",
    "Step",
    "ReceiptOutcome",
    "ReceiptPoll",
    "ReceiptResult",
    # Transaction Builder
    "DEFAULT_GAS_LIMIT",
    "TransactionBuilder",
    "is_address",
    "is_tx_hash",
    "to_hex_quantity",
    # Wallet
    "JsonRpcWallet",
    "WalletExecutor",
    "WalletProvider",
    # Receipts
    "ReceiptWaiter",
    "receipt_succeeded",
]
