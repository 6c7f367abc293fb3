# rvkern

`rvkern` models the core services of a small RISC-V kernel in plain Python.
There is no hardware underneath it. Devices, disks and physical memory are
ordinary Python objects, so each part can be used and tested on its own.

## Modules

- `rvkern.errors`: the kernel error numbers (`ErrorCode`), the `KernelError`
  exception that carries one of them, and `panic`, which raises `Panic`.
- `rvkern.stdlib`: `atoi`, `itoa` and `strtok`. `atoi` does not validate
  characters. `itoa` signs negatives only in base 10 and treats them as
  unsigned 32-bit values in other bases. `strtok` is a generator that yields
  an empty token between adjacent delimiters.
- `rvkern.device`: `DeviceManager`, a table of named devices with a fixed
  capacity (16 by default). `register` returns the instance number, which
  counts from 0 per name. `open(name, instno)` calls the registered opener, or
  raises `KernelError(ENODEV)`.
- `rvkern.heap`: `BumpHeap`, which allocates small objects downward from the
  end of a region. Requests are rounded up to 16 bytes and may be at most one
  page. When the current block runs out it takes a page from a page source.
  `kfree` never makes memory reusable.
- `rvkern.console`: `Console`, character I/O over a serial port object that
  has `putc`/`getc`. It handles CR/LF in both directions, provides
  `getsn` line input with backspace editing, and `printf` and
  `labeled_printf` with `%`-style formatting.
- `rvkern.io`: the abstract `IOInterface`, which adds reference counting
  (`ref`, `close`, use as a context manager) and the helpers `seek`,
  `read_full`, `write_all`, `putc`, `getc`, `puts` and `printf`. `LiteralIO`
  lets a block of memory be used as a fixed-size file. `IOCtl` lists the
  control commands.
- `rvkern.ioterm`: `Terminal`, which wraps a raw I/O object and normalises
  line endings in both directions. Its `getsn` provides echoed line editing.
  It cannot seek.
- `rvkern.pipe`: `Pipe`, a single-buffer pipe of up to 512 bytes per write,
  safe to use between threads. A write waits until earlier data has been read,
  and a read waits until data is present.
- `rvkern.kfs`: a flat file system made of a boot block, inode blocks and
  data blocks (`BootBlock`, `Inode`, `DirEntry`), mounted by `FileSystem` on a
  block I/O object. `FileSystem.open(name)` returns a `File`. Files have the
  size given by their inode, and writes overwrite bytes but never grow a file.
  At most 32 files can be open at once.
- `rvkern.pagetable`: Sv39 page-table entries (`PageTableEntry`, `PteFlag`),
  simulated `PhysicalMemory` with a free-page pool, `walk_pt`, and the
  address helpers `leaf_pte`, `ptab_pte`, `vma_from_vpn`, `round_up`,
  `round_down` and `wellformed_vma`.
- `rvkern.addrspace`: `MemoryManager`, which maps pages and ranges, changes
  their flags, clones and reclaims address spaces, validates user pointers
  and strings, handles page faults in the user region, and reads and writes
  through the active space.
- `rvkern.elf`: `ElfHeader`, `ProgramHeader`, `phdr_flags_to_pte_flags` and
  `elf_load`. `elf_load` accepts only little-endian ELF64 images. It loads
  their `PT_LOAD` segments into a `MemoryManager` and returns the entry point.

Failures raise `KernelError` with an `ErrorCode`. Conditions that would halt
the kernel raise `Panic`.

## Example

```python
from rvkern.io import LiteralIO, IOCtl

lit = LiteralIO(bytearray(b"hello, world"))
lit.seek(7)
print(lit.read_full(5))               # b'world'
print(lit.ioctl(IOCtl.GETLEN, None))  # 12
```

## What it does not do

`rvkern` is a library only. It has no command and no interactive shell. It
does not schedule threads or processes, handle interrupts or drive real
devices. Loading an ELF image maps its segments and returns the entry point,
but nothing is executed. Disks and serial ports are whatever I/O objects you
supply. The file system cannot create, delete or grow files.

## Installing and testing

```
pip install .
pip install .[test]
pytest
```