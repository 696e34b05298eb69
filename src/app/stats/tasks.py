import dramatiq
from loguru import logger

from src.app.stats.recalculation import FullRecalculationDriver
from src.network.database import db


@dramatiq.actor(max_retries=3, time_limit=30 * 60 * 1000)
def recalculate_user_stats_task(user_id: str) -> None:
    """Rebuild every aggregate of a user off the request path"""
    # Shares the worker's session, opens one when run eagerly
    with db(commit_on_success=True):
        result = FullRecalculationDriver(db.session).recalculate(user_id=user_id)

    logger.info(
        'background recalculation finished',
        user_id=user_id,
        messages=result.messages_processed,
        aggregates=result.aggregates_produced,
    )
