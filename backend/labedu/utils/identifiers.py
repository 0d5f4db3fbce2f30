import random
import string


def _random_block(length: int = 8) -> str:
    """
    Return a random string of uppercase letters and digits.
    """
    alphabet = string.ascii_uppercase + string.digits
    return "".join(random.choices(alphabet, k=length))


def generate_id(prefix: str = "ID") -> str:
    """
    Generate a short ID like 'MOD-1F2A9C3D' or 'ID-8K2L0P9Q'.

    Used by SQLAlchemy as a column default, so it must work when called
    with zero positional arguments.
    """
    block = _random_block(8)
    if prefix:
        return f"{prefix}-{block}"
    return block


def id_factory(prefix: str):
    """Column default that stamps a table-specific prefix on new ids."""

    def _factory() -> str:
        return generate_id(prefix)

    return _factory
