#!/usr/bin/env python3
"""로컬 SQLite 지갑 DB 관리 스크립트

사용 예시:
    python scripts/manage_wallet.py init
    python scripts/manage_wallet.py add-user alice --ledger-account alice --balance 100
    python scripts/manage_wallet.py settle BLURT_DEPOSIT_ABCD1234_1700000000000 25 blurtok.treasury
    python scripts/manage_wallet.py show alice
"""

import argparse
import asyncio
import sys
from decimal import Decimal
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from adapters.db.backing_store import SQLiteBackingStore
from adapters.db.sqlite_adapter import SQLiteAdapter, init_schema
from adapters.models import Settlement
from core.constants import Paths
from core.utils.formatting import format_amount


async def cmd_init(store: SQLiteBackingStore, args: argparse.Namespace) -> None:
    print(f"Schema ready: {store.db.db_path}")


async def cmd_add_user(store: SQLiteBackingStore, args: argparse.Namespace) -> None:
    identity = await store.create_user(
        args.handle,
        display_name=args.display_name,
        email=args.email,
    )
    print(f"User: @{identity.handle} ({identity.account_id})")

    if args.ledger_account:
        account = await store.provision_account(
            identity.account_id,
            args.ledger_account,
            available_balance=Decimal(args.balance),
        )
        print(f"Ledger account: {account.ledger_account_id}, {format_amount(account.available_balance)}")


async def cmd_settle(store: SQLiteBackingStore, args: argparse.Namespace) -> None:
    inserted = await store.record_settlement(
        Settlement(
            memo=args.memo,
            amount=Decimal(args.amount),
            destination=args.destination,
            network_tx_id=args.tx_id or f"manual-{args.memo}",
            source=args.source,
        )
    )
    print("Settlement recorded" if inserted else "Settlement already recorded")


async def cmd_show(store: SQLiteBackingStore, args: argparse.Namespace) -> None:
    identity = await store.get_user_by_handle(args.handle)
    if identity is None:
        print(f"User not found: {args.handle}")
        return

    account = await store.get_account(identity.account_id)
    print(f"@{identity.handle} ({identity.account_id})")
    if account is None:
        print("  no ledger account")
    else:
        print(f"  available: {format_amount(account.available_balance)}")
        print(f"  reward:    {format_amount(account.reward_balance)}")

    transactions = await store.get_recent_transactions(identity.account_id, args.limit)
    print(f"\nRecent transactions ({len(transactions)}):")
    for tx in transactions:
        print(
            f"  - {tx.id}, {tx.type.value}, {tx.status.value}, "
            f"{format_amount(tx.amount)}, memo: {tx.memo}"
        )


COMMANDS = {
    "init": cmd_init,
    "add-user": cmd_add_user,
    "settle": cmd_settle,
    "show": cmd_show,
}


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="로컬 지갑 DB 관리")
    parser.add_argument("--db", type=Path, default=Paths.WALLET_DB, help="SQLite DB 경로")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="스키마 생성")

    add_user = sub.add_parser("add-user", help="사용자 생성")
    add_user.add_argument("handle")
    add_user.add_argument("--display-name")
    add_user.add_argument("--email")
    add_user.add_argument("--ledger-account", help="Blurt 계정 (지정 시 원장 행 생성)")
    add_user.add_argument("--balance", default="0")

    settle = sub.add_parser("settle", help="관측된 정산 기록")
    settle.add_argument("memo")
    settle.add_argument("amount")
    settle.add_argument("destination")
    settle.add_argument("--tx-id")
    settle.add_argument("--source", default="blurt")

    show = sub.add_parser("show", help="잔고/최근 트랜잭션 출력")
    show.add_argument("handle")
    show.add_argument("--limit", type=int, default=20)

    return parser.parse_args()


async def main() -> None:
    args = parse_args()
    args.db.parent.mkdir(parents=True, exist_ok=True)

    async with SQLiteAdapter(args.db) as db:
        await init_schema(db)
        await COMMANDS[args.command](SQLiteBackingStore(db), args)


if __name__ == "__main__":
    asyncio.run(main())
