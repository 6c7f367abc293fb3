import struct

import pytest

from rvkern.errors import ErrorCode, KernelError
from rvkern.io import IOCtl, LiteralIO
from rvkern.kfs import (
    BLOCK_SIZE,
    MAX_FILE_OPEN,
    MAX_INODES,
    BootBlock,
    DirEntry,
    FileSystem,
    Inode,
)

HELLO = b"Hello world! This file lives on the kernel test disk image.\n"
BIG = bytes(i % 251 for i in range(5000))
FILES = [
    ("helloworld.txt", HELLO, [0]),
    ("big", BIG, [3, 1]),
    ("empty", b"", []),
]
NUM_INODES = len(FILES)
DATA_BASE = BLOCK_SIZE + NUM_INODES * BLOCK_SIZE


def build_image(files):
    num_data = max(b for _, _, blocks in files for b in blocks) + 1
    boot = struct.pack("<III", len(files), len(files), num_data) + bytes(52)
    for inode, (name, _, _) in enumerate(files):
        boot += name.encode().ljust(32, b"\0") + struct.pack("<I", inode) + bytes(28)
    image = bytearray(boot.ljust(BLOCK_SIZE, b"\0"))
    for _, content, blocks in files:
        raw = struct.pack("<I", len(content)) + struct.pack(f"<{len(blocks)}I", *blocks)
        image += raw.ljust(BLOCK_SIZE, b"\0")
    data = bytearray(b"\xaa" * (num_data * BLOCK_SIZE))
    for _, content, blocks in files:
        for i, block in enumerate(blocks):
            chunk = content[i * BLOCK_SIZE:(i + 1) * BLOCK_SIZE]
            data[block * BLOCK_SIZE:block * BLOCK_SIZE + len(chunk)] = chunk
    return image + data


@pytest.fixture
def disk():
    return LiteralIO(build_image(FILES))


@pytest.fixture
def fs(disk):
    return FileSystem(disk)


def test_boot_block_from_bytes():
    boot = BootBlock.from_bytes(bytes(build_image(FILES)[:BLOCK_SIZE]))
    assert boot.num_dentry == 3
    assert boot.num_inodes == 3
    assert boot.num_data == 4
    assert boot.entries == (
        DirEntry("helloworld.txt", 0),
        DirEntry("big", 1),
        DirEntry("empty", 2),
    )


def test_inode_from_bytes():
    raw = struct.pack("<III", 5000, 3, 1)
    inode = Inode.from_bytes(raw)
    assert inode.byte_len == 5000
    assert inode.blocks[:3] == (3, 1, 0)
    assert len(inode.blocks) == MAX_INODES


def test_structures_round_trip():
    boot = BootBlock(2, 2, 5, (DirEntry("a", 0), DirEntry("b.txt", 1)))
    raw = boot.to_bytes()
    assert len(raw) == BLOCK_SIZE
    assert BootBlock.from_bytes(raw) == boot
    inode = Inode(10, (4, 2) + (0,) * (MAX_INODES - 2))
    assert len(inode.to_bytes()) == BLOCK_SIZE
    assert Inode.from_bytes(inode.to_bytes()) == inode


def test_dir_entry_name_too_long():
    with pytest.raises(ValueError):
        DirEntry("x" * 33, 0).to_bytes()


def test_open_missing_file(fs):
    with pytest.raises(KernelError) as err:
        fs.open("nothere")
    assert err.value.code == ErrorCode.ENOENT


def test_read_write_reopen_scenario(fs):
    f = fs.open("helloworld.txt")
    size = f.ioctl(IOCtl.GETLEN)
    assert size == len(HELLO)
    f.seek(0)
    assert f.read_full(size) == HELLO

    f.seek(0)
    data = b"Changed everything and the ultimate secret is 42\0"
    assert f.write_all(data) == len(data)

    f2 = fs.open("helloworld.txt")
    f2.seek(0)
    assert f2.read_full(size) == data + HELLO[len(data):]


def test_read_across_noncontiguous_blocks(fs):
    f = fs.open("big")
    assert f.read(5000) == BIG
    f.seek(4090)
    assert f.read(20) == BIG[4090:4110]
    assert f.ioctl(IOCtl.GETPOS) == 4110


def test_read_at_end_returns_empty(fs):
    f = fs.open("helloworld.txt")
    assert f.read(1000) == HELLO
    assert f.read(10) == b""
    assert fs.open("empty").read(5) == b""


def test_write_does_not_grow_file(fs):
    f = fs.open("helloworld.txt")
    f.seek(len(HELLO) - 3)
    assert f.write(b"abcdef") == 3
    assert f.write(b"more") == 0
    f.seek(0)
    assert f.read_full(100) == HELLO[:-3] + b"abc"


def test_write_across_blocks_reaches_disk(fs, disk):
    f = fs.open("big")
    f.seek(4094)
    assert f.write_all(b"WXYZ") == 4
    assert bytes(disk.buffer[DATA_BASE + 3 * BLOCK_SIZE + 4094:DATA_BASE + 4 * BLOCK_SIZE]) == b"WX"
    assert bytes(disk.buffer[DATA_BASE + BLOCK_SIZE:DATA_BASE + BLOCK_SIZE + 2]) == b"YZ"
    g = fs.open("big")
    assert g.read_full(5000) == BIG[:4094] + b"WXYZ" + BIG[4098:]


def test_setpos_limits(fs):
    f = fs.open("helloworld.txt")
    f.seek(len(HELLO))
    assert f.ioctl(IOCtl.GETPOS) == len(HELLO)
    with pytest.raises(KernelError) as err:
        f.seek(len(HELLO) + 1)
    assert err.value.code == ErrorCode.EINVAL


def test_ioctl_queries(fs):
    f = fs.open("big")
    assert f.ioctl(IOCtl.GETBLKSZ) == BLOCK_SIZE
    assert f.ioctl(IOCtl.GETDENTRY_NUM) == 3
    assert [e.name for e in f.ioctl(IOCtl.GETDENTRY)] == ["helloworld.txt", "big", "empty"]
    assert f.ioctl(IOCtl.GETREFCNT) == 1
    f.ref()
    assert f.ioctl(IOCtl.GETREFCNT) == 2


def test_unknown_ioctl(fs):
    f = fs.open("big")
    with pytest.raises(KernelError) as err:
        f.ioctl(IOCtl.FLUSH)
    assert err.value.code == ErrorCode.EINVAL


def test_refcount_and_close(fs):
    f = fs.open("helloworld.txt")
    f.ref()
    f.close()
    assert f.read(5) == HELLO[:5]
    f.close()
    assert fs.open_count == 0
    with pytest.raises(KernelError) as err:
        f.read(5)
    assert err.value.code == ErrorCode.ENOENT


def test_descriptor_table_limit(fs):
    files = [fs.open("empty") for _ in range(MAX_FILE_OPEN)]
    assert fs.open_count == MAX_FILE_OPEN
    with pytest.raises(KernelError) as err:
        fs.open("empty")
    assert err.value.code == ErrorCode.EMFILE
    files[0].close()
    reopened = fs.open("helloworld.txt")
    assert reopened.read(5) == b"Hello"


def test_context_manager_closes(fs):
    with fs.open("helloworld.txt") as f:
        assert f.read(5) == b"Hello"
    assert fs.open_count == 0
    assert f.is_open is False