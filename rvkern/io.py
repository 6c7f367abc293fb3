"""Abstract I/O objects: devices, files and memory buffers behind one interface."""

from __future__ import annotations

import enum
from typing import Optional, Union

from .errors import ErrorCode, KernelError

LITERAL_BLOCK_SIZE = 4096


class IOCtl(enum.IntEnum):
    """Control command numbers understood by I/O objects."""

    GETLEN = 1
    SETLEN = 2
    GETPOS = 3
    SETPOS = 4
    FLUSH = 5
    GETBLKSZ = 6
    GETREFCNT = 7
    GETDENTRY = 8
    GETDENTRY_NUM = 9


def _to_byte(c: Union[str, int, bytes]) -> bytes:
    if isinstance(c, int):
        return bytes([c & 0xFF])
    if isinstance(c, str):
        return c.encode("latin-1")
    return bytes(c)


class IOInterface:
    """Base I/O object with reference counting and convenience helpers.

    Subclasses override ``read``, ``write`` and ``ioctl``; an operation that
    is not overridden raises ``KernelError(ENOTSUP)``. ``read`` may return
    fewer bytes than requested, and an empty result means end of file.
    ``write`` may write fewer bytes than given, and 0 means end of file.
    """

    def __init__(self) -> None:
        self.refcnt = 1

    def __enter__(self) -> "IOInterface":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _release(self) -> None:
        """Free the object's resources once the last reference is closed."""

    def ref(self) -> int:
        """Add a reference and return the new reference count."""
        self.refcnt += 1
        return self.refcnt

    def close(self) -> None:
        """Drop a reference; the object is released when none remain."""
        if self.refcnt > 0:
            self.refcnt -= 1
        if self.refcnt == 0:
            self._release()

    def read(self, size: int) -> bytes:
        """Read up to size bytes."""
        raise KernelError(ErrorCode.ENOTSUP)

    def write(self, data: bytes) -> int:
        """Write some of data and return how many bytes were written."""
        raise KernelError(ErrorCode.ENOTSUP)

    def ioctl(self, cmd: int, arg: Optional[int] = None) -> Optional[int]:
        """Run a control command; GET commands return their value."""
        raise KernelError(ErrorCode.ENOTSUP)

    def seek(self, pos: int) -> None:
        """Set the current position."""
        self.ioctl(IOCtl.SETPOS, pos)

    def read_full(self, size: int) -> bytes:
        """Read until size bytes are gathered or end of file is reached."""
        chunks: list[bytes] = []
        got = 0
        while got < size:
            chunk = self.read(size - got)
            if not chunk:
                break
            chunks.append(chunk)
            got += len(chunk)
        return b"".join(chunks)

    def write_all(self, data: bytes) -> int:
        """Write until all of data is written or end of file is reached."""
        view = memoryview(bytes(data))
        done = 0
        while done < len(view):
            count = self.write(bytes(view[done:]))
            if count == 0:
                break
            done += count
        return done

    def putc(self, c: Union[str, int, bytes]) -> int:
        """Write one character and return its byte value."""
        byte = _to_byte(c)
        if self.write_all(byte) == 0:
            raise KernelError(ErrorCode.EIO)
        return byte[0]

    def getc(self) -> int:
        """Read one character and return its byte value."""
        data = self.read(1)
        if not data:
            raise KernelError(ErrorCode.EIO)
        return data[0]

    def puts(self, text: str) -> None:
        """Write text followed by a newline."""
        self.write_all(text.encode("latin-1"))
        self.write_all(b"\n")

    def printf(self, fmt: str, *args: object) -> int:
        """Write %-formatted text character by character; return its length."""
        text = fmt % args
        for ch in text:
            self.putc(ch)
        return len(text)


class LiteralIO(IOInterface):
    """A block of memory used as a file of fixed size.

    Reading or writing at or past the end raises ``KernelError(EINVAL)``;
    requests that cross the end are cut short.
    """

    def __init__(self, buffer: Union[bytes, bytearray]) -> None:
        super().__init__()
        self.buffer = buffer if isinstance(buffer, bytearray) else bytearray(buffer)
        self.pos = 0

    @property
    def size(self) -> int:
        return len(self.buffer)

    def read(self, size: int) -> bytes:
        if self.pos >= self.size:
            raise KernelError(ErrorCode.EINVAL, "end of buffer")
        count = min(size, self.size - self.pos)
        data = bytes(self.buffer[self.pos:self.pos + count])
        self.pos += count
        return data

    def write(self, data: bytes) -> int:
        if self.pos >= self.size:
            raise KernelError(ErrorCode.EINVAL, "no space left")
        count = min(len(data), self.size - self.pos)
        self.buffer[self.pos:self.pos + count] = data[:count]
        self.pos += count
        return count

    def ioctl(self, cmd: int, arg: Optional[int] = None) -> Optional[int]:
        if cmd == IOCtl.GETLEN:
            return self.size
        if cmd == IOCtl.SETPOS:
            if arg is None:
                raise KernelError(ErrorCode.EINVAL, "position required")
            self.pos = arg
            return None
        if cmd == IOCtl.GETPOS:
            return self.pos
        if cmd == IOCtl.GETBLKSZ:
            return LITERAL_BLOCK_SIZE
        raise KernelError(ErrorCode.EINVAL, f"unsupported ioctl {cmd}")