#!/usr/bin/env python3
"""
Marks every active loan that is past due as overdue and charges its
fine. Loans are also refreshed whenever they are read; running this
daily (e.g. from cron) charges fines as of the day after the due date
rather than as of the next read.
"""
import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from libris.core.api import LibrisAPI
from libris.core.db import SessionLocal
from libris.core.utils import to_utc, utcnow

logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(
        description="Mark past-due Libris loans overdue"
    )
    parser.add_argument(
        "--now",
        type=datetime.fromisoformat,
        default=None,
        help="Evaluate as of this ISO-8601 time instead of the current time"
    )
    parser.add_argument(
        "--user-id",
        type=int,
        default=None,
        help="Only sweep this user's loans"
    )
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)

    now = to_utc(args.now) if args.now else utcnow()
    db = SessionLocal()
    try:
        changed = LibrisAPI.refresh_overdue(db, now, user_id=args.user_id)
    finally:
        db.close()
    print(f"{changed} borrowings updated as of {now.isoformat()}")


if __name__ == "__main__":
    main()
