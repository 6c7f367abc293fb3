[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rvkern"
version = "0.1.0"
description = "Core services of a small RISC-V kernel modelled in Python: I/O objects, terminals, pipes, a flat file system, Sv39 page tables and an ELF loader"
requires-python = ">=3.10"
dependencies = []
keywords = ["kernel", "riscv", "sv39", "elf", "filesystem", "page-table", "simulation"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Education",
    "Topic :: System :: Operating System Kernels",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["rvkern"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
