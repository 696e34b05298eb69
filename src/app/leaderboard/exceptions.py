from src.common.exceptions import APIException


class InvalidLeaderboardQuery(APIException):
    default_code = 'invalid_query'
