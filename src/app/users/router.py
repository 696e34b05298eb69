from fastapi import APIRouter, Depends, Query

from src.app.stats.constants import DeleteType
from src.app.stats.service import StatsDeletionService
from src.app.users.domains import AuthenticatedUser, DeleteUserResponse, UserPreferencesRead, UserPreferencesUpdate
from src.app.users.exceptions import InvalidDeleteType
from src.app.users.guards import authorize_path_user
from src.app.users.service import UserService

router = APIRouter()


@router.get('/user/{user_id}/preferences', response_model=UserPreferencesRead)
def get_preferences(
    user_id: str,
    user: AuthenticatedUser = Depends(authorize_path_user),
) -> UserPreferencesRead:
    return UserService.factory().get_preferences(user_id=user.id)


@router.put('/user/{user_id}/preferences', response_model=UserPreferencesRead)
def update_preferences(
    user_id: str,
    update: UserPreferencesUpdate,
    user: AuthenticatedUser = Depends(authorize_path_user),
) -> UserPreferencesRead:
    """
    A new timezone only moves daily boundaries of future writes, run a
    recalculation to rebucket history.
    """
    return UserService.factory().update_preferences(user_id=user.id, update=update)


@router.delete('/user/{user_id}', response_model=DeleteUserResponse)
def delete_user(
    user_id: str,
    type: str = Query(default=DeleteType.DATA.value),
    user: AuthenticatedUser = Depends(authorize_path_user),
) -> DeleteUserResponse:
    """
    `data` purges raw stats and aggregates, `account` also removes the user
    """
    if not DeleteType.has(type):
        raise InvalidDeleteType()

    purged = StatsDeletionService.factory().purge(user_id=user.id)
    if type == DeleteType.ACCOUNT.value:
        UserService.factory().delete_account(user_id=user.id)
        message = 'Account and all data deleted successfully'
    else:
        message = 'All user data deleted successfully'

    return DeleteUserResponse(
        success=True,
        message=message,
        messages_deleted=purged.messages_deleted,
        aggregates_deleted=purged.aggregates_deleted,
    )
