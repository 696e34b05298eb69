from json import JSONDecodeError

from fastapi import APIRouter, Depends, Header, Query, Request
from starlette.concurrency import run_in_threadpool

from src import settings
from src.app.stats.constants import Application
from src.app.stats.domains import (
    DeletePreviewResponse,
    DeleteStatsResponse,
    RecalculateStatsResponse,
    StatsExportResponse,
    UploadResponse,
)
from src.app.stats.exceptions import InvalidStatsQuery, UploadValidationError
from src.app.stats.service import (
    StatsDeletionService,
    StatsExportService,
    StatsRecalculationService,
    StatsUploadService,
)
from src.app.users.domains import AuthenticatedUser
from src.app.users.guards import authenticate_api_token, authorize_path_user

router = APIRouter()


@router.post('/upload-stats', response_model=UploadResponse)
async def upload_stats(
    request: Request,
    user: AuthenticatedUser = Depends(authenticate_api_token),
    x_timezone: str | None = Header(default=None, alias=settings.TIMEZONE_HEADER),
) -> UploadResponse:
    """
    Ingest a batch of per message stats from the CLI and refresh every
    aggregate bucket it touches. The whole batch is rejected on any invalid message.
    """
    try:
        payload = await request.json()
    except (JSONDecodeError, UnicodeDecodeError):
        raise UploadValidationError(message='Request body must be valid JSON')

    service = StatsUploadService.factory()
    return await run_in_threadpool(service.upload, user.id, payload, x_timezone)


@router.post('/user/{user_id}/recalculate-stats', response_model=RecalculateStatsResponse)
def recalculate_stats(
    user_id: str,
    user: AuthenticatedUser = Depends(authorize_path_user),
) -> RecalculateStatsResponse:
    """Rebuild all aggregates of the user from raw rows."""
    return StatsRecalculationService.factory().recalculate(user_id=user.id)


def _parse_applications(applications: str | None) -> list[str] | None:
    try:
        parsed = Application.parse_csv(applications)
    except ValueError:
        raise InvalidStatsQuery(message=f'Unknown application in: {applications}')
    return [str(application) for application in parsed] or None


@router.get('/user/{user_id}/stats/preview', response_model=DeletePreviewResponse)
def preview_stats_deletion(
    user_id: str,
    start_date: str | None = Query(default=None, alias='startDate'),
    end_date: str | None = Query(default=None, alias='endDate', description='Defaults to startDate'),
    applications: str | None = Query(default=None, description='Comma separated, defaults to all'),
    user: AuthenticatedUser = Depends(authorize_path_user),
) -> DeletePreviewResponse:
    """Count the raw stats a delete with the same parameters would remove."""
    service = StatsDeletionService.factory()
    start, end = service.parse_range(start_date, end_date or start_date)
    return service.preview(user_id=user.id, start=start, end=end, applications=_parse_applications(applications))


@router.delete('/user/{user_id}/stats', response_model=DeleteStatsResponse)
def delete_stats(
    user_id: str,
    start_date: str | None = Query(default=None, alias='startDate'),
    end_date: str | None = Query(default=None, alias='endDate'),
    applications: str | None = Query(default=None, description='Comma separated, defaults to all'),
    user: AuthenticatedUser = Depends(authorize_path_user),
) -> DeleteStatsResponse:
    """Delete raw stats in an inclusive date range and refresh the affected aggregates."""
    service = StatsDeletionService.factory()
    start, end = service.parse_range(start_date, end_date)
    return service.delete_range(user_id=user.id, start=start, end=end, applications=_parse_applications(applications))


@router.get('/stats/export', response_model=StatsExportResponse)
def export_stats(
    month: str | None = Query(default=None, description='YYYY-MM, every month when omitted'),
    user: AuthenticatedUser = Depends(authenticate_api_token),
) -> StatsExportResponse:
    """Token usage per application, day and model in the `splitrail stats` layout."""
    return StatsExportService.factory().export(user_id=user.id, month=month)
