"""Kernel error numbers, the error exception and panic."""

from __future__ import annotations

import enum
from typing import NoReturn, Optional


class ErrorCode(enum.IntEnum):
    """Error numbers reported by kernel services."""

    EINVAL = 1
    EBUSY = 2
    ENOTSUP = 3
    ENODEV = 4
    EIO = 5
    EBADFMT = 6
    ENOENT = 7
    EACCESS = 8
    EBADFD = 9
    EMFILE = 10


class KernelError(Exception):
    """A kernel operation failed with an error number."""

    def __init__(self, code: int, message: Optional[str] = None) -> None:
        self.code = ErrorCode(code)
        self.message = message or self.code.name
        super().__init__(self.message)


class Panic(Exception):
    """An unrecoverable kernel condition; the system would halt here."""

    def __init__(self, message: str = "") -> None:
        self.message = message
        super().__init__(message)


def panic(msg: Optional[str] = None) -> NoReturn:
    """Stop with an unrecoverable failure, carrying an optional message."""
    raise Panic(msg or "")