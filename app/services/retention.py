"""Data retention: delete refresh tokens whose expires_at has passed."""

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from app.models import RefreshToken

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)


def purge_expired_refresh_tokens(session: Session, settings: "Settings") -> int:
    """
    Delete expired refresh tokens and return how many rows were removed.

    Expired tokens are already rejected at refresh time; this only reclaims
    storage. Idempotent: safe to run repeatedly.
    """
    if not settings.REFRESH_TOKEN_REAPER_ENABLED:
        logger.info("Refresh token reaper is disabled (REFRESH_TOKEN_REAPER_ENABLED=false); skipping.")
        return 0

    cutoff = datetime.now(UTC)
    deleted_count = (
        session.query(RefreshToken)
        .filter(RefreshToken.expires_at <= cutoff)
        .delete(synchronize_session=False)
    )
    session.commit()

    if deleted_count > 0:
        logger.info(
            "Retention run: cutoff=%s, refresh_tokens_deleted=%s",
            cutoff.isoformat(),
            deleted_count,
        )
    return deleted_count
