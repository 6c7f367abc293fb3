"""Small string and number conversion helpers."""

from __future__ import annotations

from typing import Iterator

_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
_UINT32 = 1 << 32


def atoi(text: str) -> int:
    """Convert decimal text with an optional leading '-' to an integer.

    Characters are not validated: each one contributes its offset from '0'.
    """
    sign = 1
    if text.startswith("-"):
        sign = -1
        text = text[1:]
    result = 0
    for ch in text:
        result = result * 10 + (ord(ch) - ord("0"))
    return sign * result


def itoa(num: int, base: int = 10) -> str:
    """Render an integer in the given base with lower-case digits.

    Negative numbers get a '-' sign only in base 10; in other bases they are
    treated as unsigned 32-bit values.
    """
    if not 2 <= base <= len(_DIGITS):
        raise ValueError(f"base must be between 2 and {len(_DIGITS)}, got {base}")
    if num == 0:
        return "0"
    negative = num < 0 and base == 10
    if negative:
        num = -num
    elif num < 0:
        num %= _UINT32
    digits = []
    while num:
        num, rem = divmod(num, base)
        digits.append(_DIGITS[rem])
    if negative:
        digits.append("-")
    return "".join(reversed(digits))


def strtok(text: str, delimiters: str) -> Iterator[str]:
    """Yield the pieces of text separated by any single delimiter character.

    Every delimiter ends a token, so adjacent delimiters yield empty tokens,
    and the text after the last delimiter is always yielded.
    """
    token: list[str] = []
    for ch in text:
        if ch in delimiters:
            yield "".join(token)
            token.clear()
        else:
            token.append(ch)
    yield "".join(token)