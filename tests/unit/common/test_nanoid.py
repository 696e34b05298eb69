import string

from src.common.nanoid import NanoId, generate_custom_nanoid

ALPHANUMERIC = set(string.digits + string.ascii_letters)


def test_nanoid_length_without_abbrev():
    assert len(NanoId.gen()) == NanoId._CHAR_SIZE


def test_nanoid_prefixed_with_abbrev():
    nano_id = NanoId.gen(abbrev='mst')
    assert nano_id.startswith('mst-')
    assert len(nano_id) == NanoId._CHAR_SIZE + len('mst') + 1  # +1 for the hyphen


def test_nanoid_chars_in_pool():
    nano_id = NanoId.gen(abbrev='ust').split('-')[1]
    assert set(nano_id) <= ALPHANUMERIC


def test_nanoids_do_not_repeat():
    assert len({NanoId.gen() for _ in range(500)}) == 500


def test_custom_pool():
    assert set(generate_custom_nanoid(size=30, char_pool='ab')) <= {'a', 'b'}


def test_secret_carries_prefix():
    secret = NanoId.gen_secret(prefix='st_')
    assert secret.startswith('st_')
    assert len(secret) == NanoId._TOKEN_SIZE + len('st_')
