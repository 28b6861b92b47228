from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .ffi import LibraryManager
    from .interfaces import IOHandler


class HostRuntime:
    """Primitives implemented by the host and callable after an ``extern``."""

    def __init__(self, io: "IOHandler"):
        self.io = io

    def register_into(self, libraries: "LibraryManager") -> None:
        libraries.register_primitive("putchard", self.putchard, 1)
        libraries.register_primitive("printd", self.printd, 1)

    def putchard(self, x: float) -> float:
        self.io.write(chr(int(x)))
        return 0.0

    def printd(self, x: float) -> float:
        self.io.write(f"{x:f}\n")
        return 0.0
