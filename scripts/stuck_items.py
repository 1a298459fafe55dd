import logging
import os
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine, select, update
from sqlalchemy.orm import Session

from app.logger import setup_logging
from app.models import Item

STUCK_RATIONALE = "Analysis failed: no AI result received"


def check_stuck_items(
    threshold_minutes: int = 15,
    mark_error: bool = False,
    db_url: str | None = None,
    now: datetime | None = None,
) -> int:
    """Report items left in ``analyzing`` longer than the threshold.

    With ``mark_error`` the stuck items are moved to ``error`` so the user
    sees a retry button instead of a spinner. Returns the number found.
    """
    db_url = db_url or os.getenv("DATABASE_URL", "sqlite:///./app.db")
    engine = create_engine(db_url, future=True)
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=threshold_minutes)

    with Session(engine) as db:
        rows = db.execute(
            select(Item.id, Item.updated_at).where(
                Item.status == "analyzing", Item.updated_at < cutoff
            )
        ).all()
        if not rows:
            logging.info("no stuck items")
            engine.dispose()
            return 0

        oldest = min(row.updated_at for row in rows)
        if oldest.tzinfo is None:
            oldest = oldest.replace(tzinfo=timezone.utc)
        logging.warning(
            "stuck items: count=%s oldest_age_min=%.1f",
            len(rows),
            (now - oldest).total_seconds() / 60,
        )
        if mark_error:
            db.execute(
                update(Item)
                .where(Item.id.in_([row.id for row in rows]), Item.status == "analyzing")
                .values(status="error", ai_rationale=STUCK_RATIONALE, updated_at=now)
            )
            db.commit()
            logging.info("marked %s item(s) as error", len(rows))
    engine.dispose()
    return len(rows)


def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(description="Find items stuck in AI analysis")
    parser.add_argument(
        "--threshold",
        type=int,
        default=15,
        help="minutes before an analyzing item counts as stuck",
    )
    parser.add_argument(
        "--mark-error",
        action="store_true",
        help="move stuck items to the error status",
    )
    args = parser.parse_args()

    setup_logging()
    check_stuck_items(args.threshold, args.mark_error)


if __name__ == "__main__":
    main()
