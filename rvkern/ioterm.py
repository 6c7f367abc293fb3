"""Terminal I/O: line-ending normalisation and line editing over a raw device."""

from __future__ import annotations

from typing import Optional

from .errors import ErrorCode, KernelError
from .io import IOCtl, IOInterface

_CR = 0x0D
_LF = 0x0A
_BS = 0x08
_DEL = 0x7F
_BELL = 0x07
_ESCAPE = 0o133


class Terminal(IOInterface):
    """Wraps a raw I/O object with CRLF normalisation in both directions.

    Input: '\\r\\n', a lone '\\r' and a lone '\\n' each become one '\\n'.
    Output: a lone '\\r' or '\\n' is written as '\\r\\n'; '\\r\\n' passes as is.
    Closing the terminal closes the raw object.
    """

    def __init__(self, rawio: IOInterface) -> None:
        super().__init__()
        self.rawio = rawio
        self.cr_in = False
        self.cr_out = False

    def _release(self) -> None:
        self.rawio.close()

    def read(self, size: int) -> bytes:
        """Read at least one normalised byte; an empty result means end of file."""
        while True:
            chunk = self.rawio.read(size)
            if not chunk:
                return b""
            out = bytearray()
            for ch in chunk:
                if self.cr_in:
                    if ch == _CR:
                        out.append(_LF)
                    elif ch == _LF:
                        self.cr_in = False
                    else:
                        self.cr_in = False
                        out.append(ch)
                elif ch == _CR:
                    self.cr_in = True
                    out.append(_LF)
                else:
                    out.append(ch)
            # A chunk holding only the '\n' of a split '\r\n' yields nothing.
            if out:
                return bytes(out)

    def write(self, data: bytes) -> int:
        """Write data with normalised line endings; return input bytes consumed."""
        data = bytes(data)
        length = len(data)
        acc = 0
        wp = 0
        rp = 0
        while rp < length:
            ch = data[rp]
            rp += 1
            if ch == _CR:
                if rp < length and data[rp] == _LF:
                    self.cr_out = False
                    rp += 1
                else:
                    want = rp - wp
                    count = self.rawio.write_all(data[wp:rp])
                    acc += count
                    wp += count
                    if count < want:
                        return acc
                    self.rawio.putc(_LF)
                    self.cr_out = True
            elif ch == _LF:
                if self.cr_out:
                    # Second half of a '\r\n' split across two writes.
                    self.cr_out = False
                    wp += 1
                    acc += 1
                    continue
                if wp != rp - 1:
                    want = rp - 1 - wp
                    count = self.rawio.write_all(data[wp:rp - 1])
                    acc += count
                    wp += count
                    if count < want:
                        return acc
                self.rawio.putc(_CR)
                self.cr_out = False
            else:
                self.cr_out = False

        if rp != wp:
            acc += self.rawio.write_all(data[wp:rp])
        return acc

    def ioctl(self, cmd: int, arg: Optional[int] = None) -> Optional[int]:
        """Pass control commands to the raw object; seeking is not supported."""
        if cmd == IOCtl.SETPOS:
            raise KernelError(ErrorCode.ENOTSUP, "terminal cannot seek")
        return self.rawio.ioctl(cmd, arg)

    def getsn(self, n: int) -> str:
        """Read an echoed line with backspace editing, keeping at most n - 1 characters."""
        line = bytearray()
        room = n
        while True:
            c = self.getc()
            if c == _ESCAPE:
                self.cr_in = False
            elif c in (_CR, _LF):
                self.rawio.putc(_CR)
                self.rawio.putc(_LF)
                return line.decode("latin-1")
            elif c in (_BS, _DEL):
                if line:
                    line.pop()
                    room += 1
                    self.rawio.putc(_BS)
                    self.rawio.putc(" ")
                    self.rawio.putc(_BS)
                else:
                    self.rawio.putc(_BELL)
            elif room > 1:
                self.rawio.putc(c)
                line.append(c)
                room -= 1
            else:
                self.rawio.putc(_BELL)