from src.app.stats.aggregator import BucketAggregator
from src.app.stats.buckets import AffectedBucketTracker
from src.app.stats.constants import Application, Period
from src.app.stats.domains import BucketKey, MessageStatsUpload, RecalculationResult, UserStatsRead
from src.app.stats.exceptions import StorageError, UploadValidationError
from src.app.stats.ingestor import RawStatIngestor
from src.app.stats.models import MessageStats, UserStats
from src.app.stats.periods import PeriodBounds, bounds_for
from src.app.stats.recalculation import FullRecalculationDriver
from src.app.stats.service import (
    StatsDeletionService,
    StatsExportService,
    StatsRecalculationService,
    StatsUploadService,
)

__all__ = [
    # Models
    'MessageStats',
    'UserStats',
    # Domains
    'Application',
    'BucketKey',
    'MessageStatsUpload',
    'Period',
    'PeriodBounds',
    'RecalculationResult',
    'UserStatsRead',
    # Exceptions
    'StorageError',
    'UploadValidationError',
    # Components
    'AffectedBucketTracker',
    'BucketAggregator',
    'FullRecalculationDriver',
    'RawStatIngestor',
    'bounds_for',
    # Services
    'StatsDeletionService',
    'StatsExportService',
    'StatsRecalculationService',
    'StatsUploadService',
]
