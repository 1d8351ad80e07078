"""Public loyalty card identifiers.

Cards are printed as ``#XXXX-D``: ``XXXX`` is the tenant-scoped enrollment
sequence zero-padded to four digits and ``D`` is a Luhn-style check digit so
staff and customers can catch transcription typos before a lookup is made.
The four digit body caps every tenant at 9999 members; going beyond that is a
hard failure rather than a wrap-around.
"""

from __future__ import annotations

import re

MIN_SEQUENCE = 1
MAX_SEQUENCE = 9999

_CARD_PATTERN = re.compile(r"#([0-9]{4})-([0-9])", re.ASCII)


class CardNumberCapacityError(ValueError):
    """Raised when a sequence cannot be represented as a card number."""

    def __init__(self, sequence: object) -> None:
        super().__init__(f"Card sequence must be between {MIN_SEQUENCE} and {MAX_SEQUENCE}, got {sequence!r}")
        self.sequence = sequence


def compute_check_digit(digits: str) -> int:
    """Compute the check digit for a string of ASCII digits."""

    total = 0
    for index, char in enumerate(reversed(digits)):
        value = int(char)
        if index % 2 == 1:
            value *= 2
            if value > 9:
                value -= 9
        total += value
    return (10 - total % 10) % 10


def encode(sequence: int) -> str:
    """Build the ``#XXXX-D`` card number for a sequence in [1, 9999]."""

    if isinstance(sequence, bool) or not isinstance(sequence, int):
        raise CardNumberCapacityError(sequence)
    if sequence < MIN_SEQUENCE or sequence > MAX_SEQUENCE:
        raise CardNumberCapacityError(sequence)
    body = f"{sequence:04d}"
    return f"#{body}-{compute_check_digit(body)}"


def validate(value: object) -> bool:
    """Return True when ``value`` is a well-formed card number with a valid check digit."""

    if not isinstance(value, str):
        return False
    match = _CARD_PATTERN.fullmatch(value)
    if match is None:
        return False
    body, check = match.groups()
    return compute_check_digit(body) == int(check)


def extract_sequence(card_number: str) -> int:
    """Return the enrollment sequence of a card number that passed :func:`validate`."""

    if not validate(card_number):
        raise ValueError(f"Invalid card number: {card_number!r}")
    return int(card_number[1:5])


__all__ = [
    "CardNumberCapacityError",
    "MAX_SEQUENCE",
    "MIN_SEQUENCE",
    "compute_check_digit",
    "encode",
    "extract_sequence",
    "validate",
]
