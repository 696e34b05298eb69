"""
Rebuild aggregates from raw message stats.

Run on production:
    python -m scripts.recalculate_user_stats --user-id user-abc123
    python -m scripts.recalculate_user_stats --all

Aggregates are normally kept current by uploads, this is for a changed
timezone preference or after a manual data fix.
"""

import argparse

from loguru import logger

from src import setup
from src.common import context


def recalculate(user_ids: list[str], enqueue: bool) -> None:
    from src.app.stats.recalculation import FullRecalculationDriver
    from src.app.stats.tasks import recalculate_user_stats_task
    from src.network.database import db

    for user_id in user_ids:
        if enqueue:
            recalculate_user_stats_task.send(user_id)
            logger.info(f'  {user_id}: queued')
            continue

        with db(commit_on_success=True):
            result = FullRecalculationDriver(db.session).recalculate(user_id=user_id)
        logger.info(
            f'  {user_id}: {result.messages_processed} messages into {result.aggregates_produced} aggregates'
        )


def main():
    parser = argparse.ArgumentParser(description='Recalculate user stats aggregates')
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument('--user-id', action='append', dest='user_ids', help='May be passed more than once')
    target.add_argument('--all', action='store_true', help='Every user with an account')
    parser.add_argument('--enqueue', action='store_true', help='Hand off to the worker instead of running inline')
    args = parser.parse_args()

    setup.run()
    context.initialize(
        user_type=context.AppContextUserType.MANUAL,
        breadcrumb='recalculate_user_stats',
    )

    if args.all:
        from src.app.users.service import UserService
        from src.network.database import db

        with db():
            user_ids = UserService.factory().list_user_ids()
    else:
        user_ids = args.user_ids

    logger.info(f'Recalculating stats for {len(user_ids)} users')
    try:
        recalculate(user_ids=user_ids, enqueue=args.enqueue)
    finally:
        setup.teardown()
    logger.info('Recalculation complete')


if __name__ == '__main__':
    main()
