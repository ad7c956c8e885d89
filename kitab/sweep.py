"""Run the overdue reconciliation once: ``python -m kitab.sweep``.

Meant for cron or a platform scheduler; the API never runs it on its own.
"""

import logging

from kitab.models.database import SessionLocal
from kitab.services.errors import KitabServiceError
from kitab.services.status_policy import sweep_overdue

logger = logging.getLogger("kitab.sweep")


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    db = SessionLocal()
    try:
        changed = sweep_overdue(db)
    except KitabServiceError as exc:
        logger.error("Overdue sweep failed: %s", exc.message)
        return 1
    finally:
        db.close()
    logger.info("Flagged %s order(s) as overdue", len(changed))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
