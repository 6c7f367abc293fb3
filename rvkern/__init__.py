"""Core services of a small RISC-V kernel modelled in Python: errors, devices,
heap, console, I/O objects, terminals, pipes, a flat file system, Sv39 address
spaces and an ELF loader."""

__version__ = "0.1.0"