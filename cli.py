#!/usr/bin/env python3
"""Simple CLI for running transaction sequences locally"""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, Optional

from txflow.config import settings
from txflow.core.errors import TxFlowError, user_message
from txflow.core.execution import JsonRpcWallet, ReceiptWaiter, WalletExecutor
from txflow.core.requests import get_request_builder
from txflow.core.sequence import Sequence, Sequencer, describe
from txflow.core.tracking import get_tracker
from txflow.logging_config import setup_logging
from txflow.providers.rpc import RpcProvider
from txflow.providers.tracker import TrackerClient


STAGE_ICONS = {
    "queued": "⏳",
    "awaiting_wallet": "✍️ ",
    "pending": "🔄",
    "confirmed": "✅",
    "failed": "❌",
    "timeout": "⌛",
}


def _params_from_args(args) -> Dict[str, Any]:
    params: Dict[str, Any] = {"amount": args.amount}
    if args.token:
        params["token"] = args.token
    if args.chain_id is not None:
        params["chain_id"] = args.chain_id
    if args.method:
        params["method"] = args.method
    if getattr(args, "from_address", None):
        params["wallet_address"] = args.from_address
    return params


def print_sequence(sequence: Sequence, method: Optional[str] = None) -> None:
    """Pretty print the current view of a sequence"""
    view = describe(sequence, method=method)
    icon = STAGE_ICONS.get(view.stage.value, "•")
    print(f"{icon} {view.title}: {view.status_label}")
    for step in view.steps:
        hash_str = f" {step.tx_hash}" if step.tx_hash else ""
        print(f"    - {step.label:<20} {step.status_label}{hash_str}")
    if view.warning:
        print(f"  ⚠️  {view.warning}")
    if view.hint:
        print(f"  ℹ️  {view.hint}")
    if view.error_message:
        print(f"  {view.error_message}")


async def cli_prepare(args) -> int:
    """Print the steps a backend prepares for an action"""
    builder = get_request_builder(args.domain)
    try:
        steps = await builder.prepare(args.action, _params_from_args(args))
    except TxFlowError as e:
        print(f"❌ {user_message(e.kind, e.message)} ({e.message})")
        return 1

    print(f"\n📋 {args.domain}/{args.action}: {len(steps)} step(s)")
    print("=" * 50)
    for step in steps:
        print(json.dumps(step.to_dict(), indent=2))
    return 0


async def cli_run(args) -> int:
    """Run a full sequence against a node-managed account"""
    builder = get_request_builder(args.domain)
    rpc = RpcProvider()
    chain_id = args.chain_id or builder.default_chain_id
    wallet = JsonRpcWallet(rpc, chain_id=chain_id, from_address=args.from_address)
    executor = WalletExecutor(wallet, from_address=args.from_address)
    waiter = ReceiptWaiter(rpc=rpc, timeout_seconds=args.timeout)

    sequencer = Sequencer(
        builder,
        args.action,
        _params_from_args(args),
        executor=executor,
        waiter=waiter,
        tracker=get_tracker(),
    )
    sequencer.subscribe(lambda sequence: print_sequence(sequence, args.method))

    try:
        sequence = await sequencer.start()
        while args.auto_retry > 0 and describe(sequence).can_retry:
            args.auto_retry -= 1
            print("🔁 Retrying current step...")
            await sequencer.retry()
            sequence = sequencer.sequence
    finally:
        sequencer.dispose()
        await rpc.close()

    tracked = await sequencer.get_tracked_transaction()
    if tracked:
        print(f"\n📌 Tracking id: {tracked.get('id')} ({tracked.get('status')})")
    return 0 if sequence.is_terminal else 1


async def cli_track(args) -> int:
    """Fetch a tracking record from the tracking service"""
    base_url = args.base_url or settings.tracker_url or f"http://{settings.host}:{settings.port}"
    client = TrackerClient(base_url=base_url)
    try:
        record = await client.get(args.tracking_id)
    except TxFlowError as e:
        print(f"❌ Error: {e.message}")
        return 1
    finally:
        await client.close()

    print(f"\n📌 {record.get('domain')}/{record.get('action')} on chain {record.get('chainId')}")
    print(f"Status: {record.get('status')}")
    for entry in record.get("txHashes", []):
        print(f" - {entry.get('type'):<12} {entry.get('status'):<8} {entry.get('hash')}")
    if record.get("errorCode"):
        print(f"Error: {record.get('errorCode')} {record.get('errorMessage') or ''}")
    return 0


def _add_action_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("domain", choices=["lending", "staking"], help="Product domain")
    parser.add_argument("action", help="Action, e.g. supply or unstake")
    parser.add_argument("--amount", required=True, help="Amount in token units")
    parser.add_argument("--token", help="Token address (lending)")
    parser.add_argument("--chain-id", type=int, help="Chain id (defaults to the domain's chain)")
    parser.add_argument("--method", choices=["queue", "instant"], help="Unstake method (staking)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="txflow CLI")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command")

    prepare_parser = subparsers.add_parser("prepare", help="Show the steps prepared for an action")
    _add_action_arguments(prepare_parser)
    prepare_parser.add_argument("--from", dest="from_address", help="Wallet address")

    run_parser = subparsers.add_parser("run", help="Run an action end-to-end with a node-managed account")
    _add_action_arguments(run_parser)
    run_parser.add_argument("--from", dest="from_address", required=True, help="Unlocked account on the node")
    run_parser.add_argument("--timeout", type=float, default=None, help="Receipt timeout in seconds")
    run_parser.add_argument("--auto-retry", type=int, default=0, help="Retry a failed or timed-out step N times")

    track_parser = subparsers.add_parser("track", help="Show a tracking record")
    track_parser.add_argument("tracking_id", help="Tracking record id")
    track_parser.add_argument("--base-url", help="Tracking service URL (default: TRACKER_URL)")

    return parser


async def main() -> int:
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    setup_logging(args.log_level, log_format="console")
    command = args.command.lower()

    if command == "prepare":
        return await cli_prepare(args)

    elif command == "run":
        return await cli_run(args)

    elif command == "track":
        return await cli_track(args)

    print(f"❌ Unknown command: {command}")
    parser.print_help()
    return 2


def _entrypoint() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    _entrypoint()
