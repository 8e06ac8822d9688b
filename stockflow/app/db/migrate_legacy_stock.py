from __future__ import annotations

import argparse
import logging

from stockflow.app.core.config import Settings
from stockflow.app.db.session import Database
from stockflow.services.migration import migrate_legacy_stock


def run_migration(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Re-home legacy (pre-batch) stock into the LEGACY batch.")
    parser.add_argument("--actor", default="system:legacy-migration", help="actor id written to stock history")
    parser.add_argument("--batch-size", type=int, default=None, help="max legacy rows processed in this run")
    parser.add_argument("--location-id", type=int, default=None, help="PRODUCTION location owning the LEGACY batch")
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    database = Database(settings)
    try:
        report = migrate_legacy_stock(
            database,
            args.actor,
            batch_size=args.batch_size,
            location_id=args.location_id,
        )
    finally:
        database.dispose()

    print(
        f"MIGRATION OK: rows={report.rows_migrated} qty={report.quantity_migrated} "
        f"empty={report.skipped_empty} remaining={report.remaining} legacy_batch={report.legacy_batch_id}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(run_migration())
