USER_PK_ABBREV = 'usr'
USER_PREFERENCES_PK_ABBREV = 'upref'
API_TOKEN_PK_ABBREV = 'tok'

DEFAULT_TIMEZONE = 'UTC'
DEFAULT_CURRENCY = 'USD'
DEFAULT_API_TOKEN_NAME = 'CLI token'
