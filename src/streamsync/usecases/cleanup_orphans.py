"""
Orphan cleanup sweeper.

Removes favorites and watch-history rows whose content id no longer resolves
to a content row (the content was pruned or its provider deleted). Runs as
its own low-priority job, never inline with a sync.
"""

from __future__ import annotations

import structlog
from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from ..domain.entities import Episode, Favorite, LiveChannel, Movie, Series, WatchHistory
from ..infra.uow import session
from ..shared.types import UserContentType

logger = structlog.get_logger(__name__)

# Content types each user table may reference, and the table resolving them
FAVORITE_TARGETS = {
    UserContentType.LIVE_CHANNEL: LiveChannel,
    UserContentType.MOVIE: Movie,
    UserContentType.SERIES: Series,
}
WATCH_HISTORY_TARGETS = {
    UserContentType.LIVE_CHANNEL: LiveChannel,
    UserContentType.MOVIE: Movie,
    UserContentType.EPISODE: Episode,
}


def _delete_orphans(db: Session, model: type, targets: dict[UserContentType, type]) -> int:
    removed = 0
    for content_type, target in targets.items():
        result = db.execute(
            delete(model)
            .where(
                model.content_type == content_type.value,
                model.content_id.not_in(select(target.id)),
            )
            .execution_options(synchronize_session=False)
        )
        removed += result.rowcount or 0
    return removed


def cleanup_orphaned_user_data(*, session_factory: sessionmaker | None = None) -> dict[str, int]:
    """Delete orphaned favorites and watch history; returns rows removed per table."""
    with session(session_factory) as db:
        favorites = _delete_orphans(db, Favorite, FAVORITE_TARGETS)
        watch_history = _delete_orphans(db, WatchHistory, WATCH_HISTORY_TARGETS)

    if favorites or watch_history:
        logger.info("orphans_removed", favorites=favorites, watch_history=watch_history)
    else:
        logger.debug("orphans_none_found")
    return {"favorites": favorites, "watch_history": watch_history}


__all__ = ["cleanup_orphaned_user_data", "FAVORITE_TARGETS", "WATCH_HISTORY_TARGETS"]
