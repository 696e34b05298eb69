from src.common.exceptions import APIException, InternalException


class UploadValidationError(APIException):
    """
    The batch was rejected as a whole, nothing was ingested
    """

    default_detail = 'Invalid stats upload'
    default_code = 'invalid_upload'


class InvalidStatsQuery(APIException):
    default_code = 'invalid_stats_query'


class StorageError(InternalException):
    """
    Wraps driver errors hit while writing stats. The message is the
    only thing a client sees.
    """

    default_detail = 'Failed to process stats'
    default_code = 'storage_failure'
