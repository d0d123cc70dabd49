#!/usr/bin/env python3
"""Run monthly bill generation or payment reminders outside the HTTP cron endpoints.

Usage:
    python scripts/run_billing.py generate --month 3 --year 2026
    python scripts/run_billing.py reminders
"""

from __future__ import annotations

import argparse
import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from strata.config import SessionLocal, settings  # noqa: E402
from strata.core.logging import configure_logging  # noqa: E402
from strata.services.billing import generate_monthly_bills  # noqa: E402
from strata.services.notifications import dispatcher  # noqa: E402
from strata.services.reminders import send_payment_reminders  # noqa: E402


def main() -> None:
    today = date.today()
    parser = argparse.ArgumentParser(description="Monthly billing jobs")
    parser.add_argument("job", choices=["generate", "reminders"])
    parser.add_argument("--month", type=int, default=today.month)
    parser.add_argument("--year", type=int, default=today.year)
    args = parser.parse_args()

    configure_logging(settings.log_level, json=settings.log_json)
    try:
        with SessionLocal() as session:
            if args.job == "generate":
                result = generate_monthly_bills(session, args.month, args.year)
                print(f"Created {result.count} bills for {args.month:02d}/{args.year}.")
            else:
                reminders = send_payment_reminders(session, args.month, args.year)
                print(
                    f"Sent {reminders.sent_count} reminders for {reminders.total_pending} pending bills "
                    f"({args.month:02d}/{args.year})."
                )
    finally:
        dispatcher.flush()
        dispatcher.shutdown()


if __name__ == "__main__":
    main()
