import sys
from abc import ABC, abstractmethod
from typing import Optional, TextIO


class IOHandler(ABC):
    """Abstracts the session's streams so it can be hosted in different frontends."""

    @abstractmethod
    def emit(self, text: str) -> None: ...

    @abstractmethod
    def write(self, text: str) -> None: ...

    @abstractmethod
    def error(self, message: str) -> None: ...

    @abstractmethod
    def prompt(self, text: str) -> None: ...


class ConsoleIO(IOHandler):
    """Output on stdout, diagnostics and prompts on stderr.

    Streams are resolved on every call unless given explicitly, so
    ``contextlib.redirect_stdout`` keeps working after construction.
    """

    def __init__(self, out: Optional[TextIO] = None, err: Optional[TextIO] = None):
        self._out = out
        self._err = err

    @property
    def out(self) -> TextIO:
        return self._out if self._out is not None else sys.stdout

    @property
    def err(self) -> TextIO:
        return self._err if self._err is not None else sys.stderr

    def emit(self, text: str) -> None:
        self.out.write(text if text.endswith("\n") else text + "\n")

    def write(self, text: str) -> None:
        self.out.write(text)
        self.out.flush()

    def error(self, message: str) -> None:
        self.err.write(f"Error:{message}\n")

    def prompt(self, text: str) -> None:
        self.err.write(text)
        self.err.flush()
