#!/usr/bin/env python3
"""
Compare every stored reward balance with the sum of its ledger entries.
Run from the project root: python -m scripts.reconcile_balances [--repair]
or: PYTHONPATH=. python scripts/reconcile_balances.py
"""
import argparse
import os
import sys

# project root on PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fleet_rewards.core.config import settings
from fleet_rewards.core.logging import configure_logging
from fleet_rewards.db.session import build_engine, build_session_factory
from fleet_rewards.ledger.store import LedgerStore


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Reconcile reward balances against the ledger")
    parser.add_argument(
        "--repair",
        action="store_true",
        help="reset drifted balances to their ledger sum",
    )
    args = parser.parse_args(argv)

    configure_logging()
    engine = build_engine(settings.database_url)
    db = build_session_factory(engine)()
    try:
        drifts = LedgerStore(db).reconcile(repair=args.repair)
        if not drifts:
            print("All reward balances match the ledger.")
            return 0
        print(f"{len(drifts)} account(s) drifted:\n")
        for d in drifts:
            print(f"  {d.user_id}: stored={d.stored_cents} ledger={d.ledger_cents} delta={d.delta_cents}")
        if args.repair:
            db.commit()
            print("\nRepaired.")
        return 1
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
