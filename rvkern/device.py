"""Device manager: registry of named devices and their open functions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from .errors import ErrorCode, KernelError, panic

DEFAULT_CAPACITY = 16


@dataclass(frozen=True)
class _Device:
    name: str
    opener: Callable[[], Any]


class DeviceManager:
    """Keeps registered devices in order; instances of a name count from 0."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self.capacity = capacity
        self._devices: list[_Device] = []

    def __len__(self) -> int:
        return len(self._devices)

    def register(self, name: str, opener: Callable[[], Any]) -> int:
        """Register a device and return its instance number for that name."""
        if not name or opener is None:
            panic("ASSERTION FAILED")
        if len(self._devices) >= self.capacity:
            panic("Too many devices (increase NDEV)")
        instno = sum(1 for dev in self._devices if dev.name == name)
        self._devices.append(_Device(name, opener))
        return instno

    def open(self, name: str, instno: int = 0) -> Any:
        """Open the instno-th device registered under name."""
        matches = [dev for dev in self._devices if dev.name == name]
        if not 0 <= instno < len(matches):
            raise KernelError(ErrorCode.ENODEV, f"Device {name}{instno} not found")
        return matches[instno].opener()