"""Console with line-ending conversion on top of a serial port."""

from __future__ import annotations

import threading
from typing import Protocol


class SerialPort(Protocol):
    """The character device a console writes to and reads from."""

    def putc(self, c: str) -> None: ...

    def getc(self) -> str: ...


class Console:
    """Character console.

    Output turns lone '\\r' and '\\n' into '\\r\\n'; input turns '\\r' followed
    by any number of '\\n' into a single '\\n'. Set ``echo`` to have line input
    echoed back to the port.
    """

    echo = False

    def __init__(self, port: SerialPort) -> None:
        self._port = port
        self._out_prev = "\0"
        self._in_prev = "\0"
        self._lock = threading.RLock()

    def putchar(self, c: str) -> None:
        """Write one character, normalising line endings."""
        if c == "\r":
            self._port.putc("\r")
            self._port.putc("\n")
        else:
            if c == "\n" and self._out_prev != "\r":
                self._port.putc("\r")
            self._port.putc(c)
        self._out_prev = c

    def getchar(self) -> str:
        """Read one character, normalising line endings."""
        c = self._port.getc()
        while c == "\n" and self._in_prev == "\r":
            c = self._port.getc()
        self._in_prev = c
        return "\n" if c == "\r" else c

    def puts(self, text: str) -> None:
        """Write text followed by a newline."""
        with self._lock:
            for ch in text:
                self.putchar(ch)
            self.putchar("\n")

    def getsn(self, n: int) -> str:
        """Read a line with backspace editing, keeping at most n - 1 characters."""
        line: list[str] = []
        room = n
        while True:
            c = self.getchar()
            if c == "\r":
                continue
            if c == "\n":
                if self.echo:
                    self.putchar("\n")
                return "".join(line)
            if c in ("\b", "\x7f"):
                if line:
                    if self.echo:
                        for ch in "\b \b":
                            self.putchar(ch)
                    line.pop()
                    room += 1
            elif room > 1:
                if self.echo:
                    self.putchar(c)
                line.append(c)
                room -= 1
            elif self.echo:
                self.putchar("\a")

    def printf(self, fmt: str, *args: object) -> int:
        """Format with %-style formatting, write it, and return its length."""
        text = fmt % args
        with self._lock:
            for ch in text:
                self.putchar(ch)
        return len(text)

    def labeled_printf(
        self, label: str, filename: str, lineno: int, fmt: str, *args: object
    ) -> None:
        """Write 'label: file:line: message' followed by a newline."""
        with self._lock:
            self.printf("%s: %s:%d: ", label, filename, lineno)
            self.printf(fmt, *args)
            self.putchar("\n")