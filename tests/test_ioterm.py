import pytest

from rvkern.errors import ErrorCode, KernelError
from rvkern.io import IOCtl, IOInterface, LiteralIO
from rvkern.ioterm import Terminal


class _Raw(IOInterface):
    """Raw device fed from a list of input chunks, recording all output."""

    def __init__(self, chunks=()):
        super().__init__()
        self.chunks = [bytes(c) for c in chunks]
        self.output = bytearray()
        self.released = False

    def read(self, size):
        if not self.chunks:
            return b""
        chunk = self.chunks[0]
        self.chunks[0] = chunk[size:]
        if not self.chunks[0]:
            self.chunks.pop(0)
        return chunk[:size]

    def write(self, data):
        self.output += data
        return len(data)

    def _release(self):
        self.released = True


def test_read_crlf_becomes_newline():
    term = Terminal(_Raw([b"a\r\nb"]))
    assert term.read(16) == b"a\nb"


def test_read_lone_cr_and_lf():
    assert Terminal(_Raw([b"x\ry"])).read(16) == b"x\ny"
    assert Terminal(_Raw([b"x\ny"])).read(16) == b"x\ny"


def test_read_repeated_cr():
    assert Terminal(_Raw([b"\r\r"])).read(16) == b"\n\n"


def test_read_crlf_split_across_reads():
    term = Terminal(_Raw([b"a\r", b"\nb"]))
    assert term.read(16) == b"a\n"
    assert term.read(16) == b"b"


def test_read_skips_chunk_holding_only_lf_after_cr():
    term = Terminal(_Raw([b"\r", b"\n", b"z"]))
    assert term.read(16) == b"\n"
    assert term.read(16) == b"z"


def test_read_end_of_file():
    assert Terminal(_Raw([])).read(4) == b""


def test_write_lone_lf():
    raw = _Raw()
    term = Terminal(raw)
    assert term.write(b"a\nb") == 3
    assert bytes(raw.output) == b"a\r\nb"


def test_write_crlf_unchanged():
    raw = _Raw()
    assert Terminal(raw).write(b"a\r\nb") == 4
    assert bytes(raw.output) == b"a\r\nb"


def test_write_lone_cr():
    raw = _Raw()
    assert Terminal(raw).write(b"x\ry") == 3
    assert bytes(raw.output) == b"x\r\ny"


def test_write_crlf_split_across_writes():
    raw = _Raw()
    term = Terminal(raw)
    assert term.write(b"\r") == 1
    assert term.write(b"\nq") == 2
    assert bytes(raw.output) == b"\r\nq"


def test_printf_through_terminal():
    raw = _Raw()
    term = Terminal(raw)
    assert term.printf("%d\n", 5) == 2
    assert bytes(raw.output) == b"5\r\n"


def test_ioctl_setpos_not_supported():
    term = Terminal(LiteralIO(b"abc"))
    with pytest.raises(KernelError) as info:
        term.ioctl(IOCtl.SETPOS, 0)
    assert info.value.code == ErrorCode.ENOTSUP


def test_ioctl_passes_through():
    term = Terminal(LiteralIO(b"abc"))
    assert term.ioctl(IOCtl.GETLEN) == 3


def test_getsn_with_backspace():
    raw = _Raw([b"ab\bc\r"])
    term = Terminal(raw)
    assert term.getsn(16) == "ac"
    assert bytes(raw.output) == b"ab\b \bc\r\n"


def test_getsn_limits_length_and_rings_bell():
    raw = _Raw([b"abcd\n"])
    assert Terminal(raw).getsn(3) == "ab"
    assert bytes(raw.output) == b"ab\a\a\r\n"


def test_getsn_delete_on_empty_line_rings_bell():
    raw = _Raw([b"\x7fk\r\n"])
    term = Terminal(raw)
    assert term.getsn(8) == "k"
    assert bytes(raw.output).startswith(b"\a")


def test_getsn_end_of_input_raises():
    with pytest.raises(KernelError) as info:
        Terminal(_Raw([b"ab"])).getsn(8)
    assert info.value.code == ErrorCode.EIO


def test_close_closes_raw():
    raw = _Raw()
    term = Terminal(raw)
    term.close()
    assert raw.released is True
    assert raw.refcnt == 0