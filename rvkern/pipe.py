"""In-memory pipe passing one buffer of data at a time between threads."""

from __future__ import annotations

import threading
from typing import Optional

from .errors import ErrorCode, KernelError
from .io import IOInterface

PIPE_SIZE = 512
PIPE_WAIT_EMPTY = 8


class Pipe(IOInterface):
    """A single-buffer pipe.

    A write of up to PIPE_SIZE bytes waits until everything written before
    has been read. A read waits until data is present and returns up to
    ``size`` of the unread bytes.
    """

    def __init__(self) -> None:
        super().__init__()
        self._cond = threading.Condition()
        self._data = b""
        self._pos = 0

    @property
    def pending(self) -> int:
        """Number of written bytes not yet read."""
        return len(self._data) - self._pos

    def _release(self) -> None:
        with self._cond:
            self._data = b""
            self._pos = 0
            self._cond.notify_all()

    def read(self, size: int) -> bytes:
        """Block until data is available, then return up to size bytes of it."""
        if size > PIPE_SIZE:
            raise KernelError(ErrorCode.EINVAL, "read larger than pipe buffer")
        with self._cond:
            self._cond.wait_for(lambda: self.pending > 0)
            chunk = self._data[self._pos:self._pos + size]
            self._pos += len(chunk)
            if self.pending == 0:
                self._cond.notify_all()
            return chunk

    def write(self, data: bytes) -> int:
        """Block until the pipe is empty, then store data; return its length."""
        data = bytes(data)
        if len(data) > PIPE_SIZE:
            raise KernelError(ErrorCode.EINVAL, "write larger than pipe buffer")
        with self._cond:
            self._cond.wait_for(lambda: self.pending == 0)
            self._data = data
            self._pos = 0
            self._cond.notify_all()
        return len(data)

    def wait_empty(self) -> None:
        """Block until all written data has been read."""
        with self._cond:
            self._cond.wait_for(lambda: self.pending == 0)

    def ioctl(self, cmd: int, arg: Optional[int] = None) -> Optional[int]:
        """Only PIPE_WAIT_EMPTY is supported."""
        if cmd == PIPE_WAIT_EMPTY:
            self.wait_empty()
            return None
        raise KernelError(ErrorCode.ENOTSUP, f"unsupported ioctl {cmd}")