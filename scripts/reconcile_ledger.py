#!/usr/bin/env python3
"""
Check the bulk fuel ledger: every account's stored balance must equal its
initial balance minus its fuel costs plus its adjustments.

Exits 0 when every account reconciles, 1 when any account is off, and 2
when the config is invalid, the database cannot be read or the requested
account does not exist.

Usage:
    python3 scripts/reconcile_ledger.py                    # all accounts
    python3 scripts/reconcile_ledger.py --account <uuid>   # one account
    python3 scripts/reconcile_ledger.py --config fleet.yaml
    python3 scripts/reconcile_ledger.py --database-url sqlite:///fleet.db
"""

import argparse
import json
import logging
import sys
from decimal import Decimal
from pathlib import Path
from uuid import UUID

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

W = 96


def _fmt(v: Decimal) -> str:
    from fleet_kernel.db.types import round_money

    return f"{round_money(v):,}"


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Reconcile bulk fuel account balances")
    p.add_argument("--config", type=Path, help="YAML file overriding the bundled defaults")
    p.add_argument("--database-url", help="Overrides database.url from the config")
    p.add_argument("--account", type=UUID, help="Reconcile a single account id")
    p.add_argument("--json", action="store_true", help="Emit one JSON object per account")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.disable(logging.WARNING)
    try:
        return _run(args)
    finally:
        logging.disable(logging.NOTSET)


def _run(args: argparse.Namespace) -> int:
    from sqlalchemy.exc import SQLAlchemyError

    from fleet_config import get_active_config
    from fleet_kernel.db.engine import get_session, init_engine_from_url, reset_engine
    from fleet_kernel.exceptions import AccountNotFoundError
    from fleet_kernel.selectors.ledger_selector import LedgerSelector

    try:
        config = get_active_config(args.config)
    except (FileNotFoundError, ValueError) as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 2

    db = config.database
    try:
        init_engine_from_url(
            args.database_url or db.url,
            echo=False,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            sqlite_busy_timeout=db.sqlite_busy_timeout,
        )
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 2

    session = get_session()
    try:
        selector = LedgerSelector(session)
        if args.account is not None:
            try:
                results = [selector.reconcile(args.account)]
            except AccountNotFoundError as exc:
                print(f"  ERROR: {exc}", file=sys.stderr)
                return 2
        else:
            results = selector.reconcile_all()
    except SQLAlchemyError as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 2
    finally:
        session.close()
        reset_engine()

    if args.json:
        for r in results:
            print(json.dumps({
                "account_id": str(r.account_id),
                "account_name": r.account_name,
                "initial_balance": str(r.initial_balance),
                "fuel_total": str(r.fuel_total),
                "adjustment_total": str(r.adjustment_total),
                "expected_balance": str(r.expected_balance),
                "stored_balance": str(r.stored_balance),
                "is_consistent": r.is_consistent,
            }))
    else:
        print()
        print("=" * W)
        print(f"  {'ACCOUNT':<30} {'INITIAL':>12} {'FUEL':>12} {'ADJUST':>10} "
              f"{'EXPECTED':>12} {'STORED':>12}  OK")
        print("-" * W)
        for r in results:
            print(
                f"  {r.account_name[:30]:<30} {_fmt(r.initial_balance):>12} "
                f"{_fmt(r.fuel_total):>12} {_fmt(r.adjustment_total):>10} "
                f"{_fmt(r.expected_balance):>12} {_fmt(r.stored_balance):>12}  "
                f"{'yes' if r.is_consistent else 'NO'}"
            )
        print("=" * W)

    bad = [r for r in results if not r.is_consistent]
    if not args.json:
        print(f"  {len(results)} account(s), {len(bad)} discrepancy(ies)")
        print()
    return 1 if bad else 0


if __name__ == "__main__":
    sys.exit(main())
