from __future__ import annotations

import pytest

from revisit_api.domain import card_number


def test_known_card_numbers() -> None:
    assert card_number.encode(1) == "#0001-9"
    assert card_number.encode(2) == "#0002-8"
    assert card_number.encode(5) == "#0005-5"


def test_every_sequence_validates_and_extracts() -> None:
    for sequence in range(card_number.MIN_SEQUENCE, card_number.MAX_SEQUENCE + 1):
        encoded = card_number.encode(sequence)
        assert len(encoded) == 7
        assert card_number.validate(encoded)
        assert card_number.extract_sequence(encoded) == sequence


@pytest.mark.parametrize("sequence", [0, -1, 10000, 1.0, "1", True, None])
def test_encode_rejects_out_of_range_and_non_integers(sequence) -> None:
    with pytest.raises(card_number.CardNumberCapacityError):
        card_number.encode(sequence)


def test_capacity_error_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        card_number.encode(10000)


@pytest.mark.parametrize(
    "value",
    [
        "",
        "0001-9",
        "#0001-8",
        "#001-9",
        "#00001-9",
        "#0001-9 ",
        " #0001-9",
        "#0001_9",
        "#0001-99",
        "#٠٠٠١-9",
        "#abcd-1",
        None,
        1,
        ["#0001-9"],
    ],
)
def test_validate_rejects_malformed_input_without_raising(value) -> None:
    assert card_number.validate(value) is False


def test_single_digit_typo_is_caught() -> None:
    valid = card_number.encode(1234)
    body = valid[1:5]
    for position in range(4):
        for replacement in "0123456789":
            if replacement == body[position]:
                continue
            typo = body[:position] + replacement + body[position + 1 :]
            assert not card_number.validate(f"#{typo}-{valid[-1]}")


def test_extract_sequence_requires_valid_card() -> None:
    with pytest.raises(ValueError):
        card_number.extract_sequence("#0001-0")
