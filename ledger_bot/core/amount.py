import re

from ledger_bot.errors import InvalidAmount

_SEPARATORS = re.compile(r"[.,_ ]")
_DIGITS = re.compile(r"[0-9]+")


def parse_amount(raw: str) -> int:
    """Parse '50.000', '50,000', '50 000', '50_000' or '50000' into 50000.

    Raises InvalidAmount when anything other than digits remains after the
    separators are removed.
    """
    cleaned = _SEPARATORS.sub("", raw.strip())
    if not _DIGITS.fullmatch(cleaned):
        raise InvalidAmount(raw)
    return int(cleaned)


def half_share(amount: int) -> int:
    """Half of ``amount``, rounded half up."""
    return (amount + 1) // 2


def split_evenly(total: int, count: int) -> list[int]:
    """Split ``total`` into ``count`` integer shares that sum to ``total``.

    Every share is ``total // count`` except the first one, which also
    takes the remainder.
    """
    if count < 1:
        raise ValueError("count must be positive")
    base = total // count
    return [total - base * (count - 1)] + [base] * (count - 1)
