#!/usr/bin/env python3
"""
Create a user and print an API token for the CLI uploader.

    python -m scripts.create_user alice --display-name "Alice" --timezone Europe/Berlin
"""

import argparse

from loguru import logger

from src import setup
from src.common import context


def create_user(username: str, display_name: str | None, timezone: str, token_name: str) -> None:
    from src.app.users.domains import UserCreate
    from src.app.users.models import User
    from src.app.users.service import UserService
    from src.common.utils import is_valid_timezone
    from src.network.database import db

    if not is_valid_timezone(timezone):
        raise SystemExit(f'Unknown timezone: {timezone}')

    with db(commit_on_success=True):
        service = UserService.factory()
        user = User.get_or_none(username=username)
        if user is None:
            user = service.create_user(UserCreate(username=username, display_name=display_name), timezone=timezone)
            logger.info(f'Created user: {user.username} ({user.id})')
        else:
            logger.info(f'Using existing user: {user.username} ({user.id})')

        api_token = service.issue_api_token(user_id=user.id, name=token_name)

    print(f'user id:   {user.id}')
    print(f'api token: {api_token.token}')


def main():
    parser = argparse.ArgumentParser(description='Create a user with an API token')
    parser.add_argument('username')
    parser.add_argument('--display-name', default=None)
    parser.add_argument('--timezone', default='UTC')
    parser.add_argument('--token-name', default='cli')
    args = parser.parse_args()

    setup.run()
    context.initialize(
        user_type=context.AppContextUserType.MANUAL,
        breadcrumb='create_user',
    )
    try:
        create_user(
            username=args.username,
            display_name=args.display_name,
            timezone=args.timezone,
            token_name=args.token_name,
        )
    finally:
        setup.teardown()


if __name__ == '__main__':
    main()
