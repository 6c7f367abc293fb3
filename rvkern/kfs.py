"""A flat, read-mostly file system stored on a block device.

Disk layout, in 4096-byte blocks: a boot block holding the directory, then
``num_inodes`` inode blocks, then the data blocks. Files have a fixed size
given by their inode; writes overwrite existing bytes and never grow a file.
"""

from __future__ import annotations

import struct
import threading
from dataclasses import dataclass
from typing import Optional

from .errors import ErrorCode, KernelError
from .io import IOCtl, IOInterface

BLOCK_SIZE = 4096
MAX_DIR_ENTRIES = 63
MAX_INODES = 1023
BOOT_RESERVED_SPACE_SZ = 52
MAX_FILE_NAME_LENGTH = 32
DENTRY_RESERVED_SPACE_SZ = 28
MAX_FILE_OPEN = 32

_DENTRY_SIZE = MAX_FILE_NAME_LENGTH + 4 + DENTRY_RESERVED_SPACE_SZ
_BOOT_HEADER = struct.Struct("<III")
_U32 = struct.Struct("<I")


def _pad_block(data: bytes) -> bytes:
    data = bytes(data[:BLOCK_SIZE])
    return data.ljust(BLOCK_SIZE, b"\0")


@dataclass(frozen=True)
class DirEntry:
    """A directory entry: a file name and the number of its inode."""

    name: str
    inode: int

    @classmethod
    def from_bytes(cls, data: bytes) -> "DirEntry":
        raw = bytes(data[:_DENTRY_SIZE]).ljust(_DENTRY_SIZE, b"\0")
        name = raw[:MAX_FILE_NAME_LENGTH].split(b"\0", 1)[0].decode("latin-1")
        (inode,) = _U32.unpack_from(raw, MAX_FILE_NAME_LENGTH)
        return cls(name, inode)

    def to_bytes(self) -> bytes:
        encoded = self.name.encode("latin-1")
        if len(encoded) > MAX_FILE_NAME_LENGTH:
            raise ValueError(f"file name longer than {MAX_FILE_NAME_LENGTH} bytes")
        return (
            encoded.ljust(MAX_FILE_NAME_LENGTH, b"\0")
            + _U32.pack(self.inode)
            + bytes(DENTRY_RESERVED_SPACE_SZ)
        )


@dataclass(frozen=True)
class BootBlock:
    """The first block of the disk: counts and the directory."""

    num_dentry: int
    num_inodes: int
    num_data: int
    entries: tuple[DirEntry, ...]

    @classmethod
    def from_bytes(cls, data: bytes) -> "BootBlock":
        raw = _pad_block(data)
        num_dentry, num_inodes, num_data = _BOOT_HEADER.unpack_from(raw, 0)
        base = _BOOT_HEADER.size + BOOT_RESERVED_SPACE_SZ
        count = min(num_dentry, MAX_DIR_ENTRIES)
        entries = tuple(
            DirEntry.from_bytes(raw[base + i * _DENTRY_SIZE:base + (i + 1) * _DENTRY_SIZE])
            for i in range(count)
        )
        return cls(num_dentry, num_inodes, num_data, entries)

    def to_bytes(self) -> bytes:
        if len(self.entries) > MAX_DIR_ENTRIES:
            raise ValueError(f"at most {MAX_DIR_ENTRIES} directory entries fit")
        out = _BOOT_HEADER.pack(self.num_dentry, self.num_inodes, self.num_data)
        out += bytes(BOOT_RESERVED_SPACE_SZ)
        out += b"".join(entry.to_bytes() for entry in self.entries)
        return _pad_block(out)


@dataclass(frozen=True)
class Inode:
    """A file's length in bytes and the numbers of its data blocks."""

    byte_len: int
    blocks: tuple[int, ...]

    @classmethod
    def from_bytes(cls, data: bytes) -> "Inode":
        raw = _pad_block(data)
        values = struct.unpack_from(f"<I{MAX_INODES}I", raw, 0)
        return cls(values[0], tuple(values[1:]))

    def to_bytes(self) -> bytes:
        if len(self.blocks) > MAX_INODES:
            raise ValueError(f"at most {MAX_INODES} data blocks fit in an inode")
        blocks = tuple(self.blocks) + (0,) * (MAX_INODES - len(self.blocks))
        return struct.pack(f"<I{MAX_INODES}I", self.byte_len, *blocks)


class File(IOInterface):
    """An open file; its position starts at 0 and its size is fixed."""

    def __init__(self, fs: "FileSystem", inode_num: int, size: int) -> None:
        super().__init__()
        self._fs = fs
        self.inode_num = inode_num
        self.size = size
        self.position = 0
        self.is_open = True

    def _release(self) -> None:
        self._fs._release(self)

    def _require_open(self, code: ErrorCode) -> None:
        if not self.is_open:
            raise KernelError(code, "file is not open")

    def read(self, size: int) -> bytes:
        """Read up to size bytes from the current position."""
        fs = self._fs
        with fs._lock:
            self._require_open(ErrorCode.ENOENT)
            inode = fs._load_inode(self.inode_num)
            block_index, offset = divmod(self.position, BLOCK_SIZE)
            if block_index == MAX_INODES:
                raise KernelError(ErrorCode.EINVAL, "position past last block")
            n = size
            if self.position + n > inode.byte_len:
                n = max(0, inode.byte_len - self.position)

            out = bytearray()
            while len(out) < n:
                if offset == BLOCK_SIZE:
                    block_index += 1
                    offset = 0
                    if block_index >= MAX_INODES:
                        raise KernelError(ErrorCode.EINVAL, "file is full")
                block = fs._read_block(inode.blocks[block_index])
                take = min(BLOCK_SIZE - offset, n - len(out))
                out += block[offset:offset + take]
                offset += take

            self.position += n
            return bytes(out)

    def write(self, data: bytes) -> int:
        """Overwrite bytes at the current position; files never grow."""
        data = bytes(data)
        fs = self._fs
        with fs._lock:
            self._require_open(ErrorCode.ENOENT)
            inode = fs._load_inode(self.inode_num)
            n = len(data)
            if self.position + n > inode.byte_len:
                n = max(0, inode.byte_len - self.position)
            block_index, offset = divmod(self.position, BLOCK_SIZE)

            done = 0
            while done < n:
                if offset == BLOCK_SIZE:
                    block_index += 1
                    offset = 0
                if block_index >= MAX_INODES:
                    raise KernelError(ErrorCode.EINVAL, "file is full")
                block_no = inode.blocks[block_index]
                block = bytearray(fs._read_block(block_no))
                take = min(BLOCK_SIZE - offset, n - done)
                block[offset:offset + take] = data[done:done + take]
                fs._write_block(block_no, bytes(block))
                done += take
                offset += take

            self.position += n
            return n

    def ioctl(self, cmd: int, arg: Optional[int] = None) -> Optional[object]:
        """Answer file control commands; GET commands return their value."""
        fs = self._fs
        with fs._lock:
            self._require_open(ErrorCode.ENOTSUP)
            if cmd == IOCtl.GETLEN:
                return self.size
            if cmd == IOCtl.SETPOS:
                if arg is None or arg > self.size:
                    raise KernelError(ErrorCode.EINVAL, "position beyond end of file")
                self.position = arg
                return None
            if cmd == IOCtl.GETPOS:
                return self.position
            if cmd == IOCtl.GETBLKSZ:
                return BLOCK_SIZE
            if cmd == IOCtl.GETREFCNT:
                return self.refcnt
            if cmd == IOCtl.GETDENTRY:
                return list(fs.boot_block.entries)
            if cmd == IOCtl.GETDENTRY_NUM:
                return fs.boot_block.num_dentry
            raise KernelError(ErrorCode.EINVAL, f"unsupported ioctl {cmd}")


class FileSystem:
    """A file system mounted on a block I/O object."""

    def __init__(self, blkio: IOInterface) -> None:
        self._lock = threading.RLock()
        self.blkio = blkio
        blkio.seek(0)
        self.boot_block = BootBlock.from_bytes(blkio.read_full(BLOCK_SIZE))
        self._open_files: list[Optional[File]] = [None] * MAX_FILE_OPEN

    @property
    def open_count(self) -> int:
        """Number of descriptors in use."""
        return sum(1 for f in self._open_files if f is not None)

    def open(self, name: str) -> File:
        """Open the file with the given name."""
        with self._lock:
            entry = next((e for e in self.boot_block.entries if e.name == name), None)
            if entry is None:
                raise KernelError(ErrorCode.ENOENT, f"{name}: file not found")
            try:
                slot = self._open_files.index(None)
            except ValueError:
                raise KernelError(ErrorCode.EMFILE, "too many open files") from None
            inode = self._load_inode(entry.inode)
            file = File(self, entry.inode, inode.byte_len)
            self._open_files[slot] = file
            return file

    def _release(self, file: File) -> None:
        with self._lock:
            file.is_open = False
            for slot, held in enumerate(self._open_files):
                if held is file:
                    self._open_files[slot] = None
                    return

    def _load_inode(self, inode_num: int) -> Inode:
        self.blkio.seek(BLOCK_SIZE + inode_num * BLOCK_SIZE)
        return Inode.from_bytes(self.blkio.read_full(BLOCK_SIZE))

    def _block_offset(self, block_no: int) -> int:
        return BLOCK_SIZE + self.boot_block.num_inodes * BLOCK_SIZE + block_no * BLOCK_SIZE

    def _read_block(self, block_no: int) -> bytes:
        self.blkio.seek(self._block_offset(block_no))
        return _pad_block(self.blkio.read_full(BLOCK_SIZE))

    def _write_block(self, block_no: int, data: bytes) -> None:
        self.blkio.seek(self._block_offset(block_no))
        self.blkio.write_all(data)