"""Apply (or list) account store migrations."""

import argparse
from pathlib import Path
import sys

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from confluence_trader.cli import configure_logging
from confluence_trader.db.migrate import MigrationRunner


def main() -> None:
    parser = argparse.ArgumentParser(description="Account store migrations.")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL.")
    parser.add_argument("--pending", action="store_true", help="List pending migrations only.")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()
    configure_logging(args.log_level)

    runner = MigrationRunner(args.database_url)
    if args.pending:
        for migration in runner.pending():
            print(migration.label)
        return
    applied = runner.apply()
    print(f"Migrations applied to {args.database_url or 'DATABASE_URL'}: {applied or 'none pending'}")


if __name__ == "__main__":
    main()
