"""
CLI entrypoint for the refresh-token reaper. The API also runs it on a schedule;
use this from cron when SCHEDULER_ENABLED=false, e.g.:

  python -m app.retention

Or hourly: 0 * * * * cd /path/to/taskify && .venv/bin/python -m app.retention
"""

import logging
import sys

from app.core.config import get_settings
from app.core.database import SessionLocal
from app.services.retention import purge_expired_refresh_tokens

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main() -> int:
    """Delete expired refresh tokens once."""
    settings = get_settings()
    db = SessionLocal()
    try:
        deleted = purge_expired_refresh_tokens(db, settings)
        logger.info("Retention completed: refresh_tokens_deleted=%s", deleted)
        return 0
    except Exception as e:
        logger.exception("Retention job failed: %s", e)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
