import pytest

from rvkern.stdlib import atoi, itoa, strtok


@pytest.mark.parametrize("text, value", [("42", 42), ("-17", -17), ("0", 0)])
def test_atoi_parses_decimal(text, value):
    assert atoi(text) == value


def test_atoi_empty_and_bare_sign_are_zero():
    assert atoi("") == 0
    assert atoi("-") == 0


@pytest.mark.parametrize("n", [0, 1, 9, 10, 123456, -1, -98765, 2**31 - 1])
def test_itoa_atoi_round_trip(n):
    assert atoi(itoa(n, 10)) == n


@pytest.mark.parametrize("base", [2, 8, 16, 36])
@pytest.mark.parametrize("n", [1, 7, 255, 4096, 1_000_003])
def test_itoa_round_trips_through_int(n, base):
    assert int(itoa(n, base), base) == n


def test_itoa_zero():
    assert itoa(0, 2) == "0"


def test_itoa_hex_lowercase():
    assert itoa(255, 16) == "ff"


def test_itoa_negative_decimal_has_sign():
    assert itoa(-5, 10) == "-5"


def test_itoa_negative_non_decimal_is_unsigned():
    assert int(itoa(-1, 16), 16) == 2**32 - 1
    assert not itoa(-1, 16).startswith("-")


@pytest.mark.parametrize("base", [0, 1, 37])
def test_itoa_rejects_bad_base(base):
    with pytest.raises(ValueError):
        itoa(5, base)


def test_strtok_splits_on_spaces():
    assert list(strtok("a b c", " ")) == ["a", "b", "c"]


def test_strtok_adjacent_delimiters_give_empty_tokens():
    assert list(strtok("a,,b", ",")) == ["a", "", "b"]


def test_strtok_trailing_delimiter_gives_final_empty():
    assert list(strtok("a,b,", ",")) == ["a", "b", ""]


def test_strtok_any_of_several_delimiters():
    tokens = list(strtok("x;y,z", ",;"))
    assert tokens == ["x", "y", "z"]
    assert all("," not in t and ";" not in t for t in tokens)


def test_strtok_empty_text():
    assert list(strtok("", ",")) == [""]