import string
from math import ceil, log
from os import urandom
from typing import TypeAlias

# Create a NanoId type which is used for primary keys
# Examples: usr-XSqS5h9vFTSgP, mst-yb6GG995oiBf, ust-kwA4kDkqoS8V7
NanoIdType: TypeAlias = str

_ALPHANUMERIC = string.digits + string.ascii_letters


def generate_custom_nanoid(size: int = 8, char_pool: str | None = None) -> NanoIdType:
    """
    Generate a short random url safe id
    Entropy here -> https://zelark.github.io/nano-id-cc/
    """
    if char_pool is None:
        char_pool = _ALPHANUMERIC

    char_pool_len = len(char_pool)
    mask = 1
    if char_pool_len > 1:
        mask = (2 << int(log(char_pool_len - 1) / log(2))) - 1
    step = int(ceil(1.6 * mask * size / char_pool_len))

    id = ''
    # Only keep bytes that land inside the character pool
    while True:
        random_bytes = bytearray(urandom(step))
        for random_byte in random_bytes:
            index = random_byte & mask
            if index < char_pool_len:
                id += char_pool[index]
                if len(id) == size:
                    return id


class NanoId:
    """
    ID used as primary key
    """

    _CHAR_SIZE = 13
    _TOKEN_SIZE = 40

    @classmethod
    def gen(cls, abbrev: str | None = None) -> NanoIdType:
        nano_id = generate_custom_nanoid(size=cls._CHAR_SIZE, char_pool=_ALPHANUMERIC)
        if abbrev:
            nano_id = f'{abbrev}-{nano_id}'

        return nano_id

    @classmethod
    def gen_secret(cls, prefix: str = '') -> str:
        """
        Long random secret used for bearer tokens e.g. st_4fQ...
        """
        return f'{prefix}{generate_custom_nanoid(size=cls._TOKEN_SIZE, char_pool=_ALPHANUMERIC)}'
