import ctypes
import ctypes.util
import logging
import os
import sys
from typing import Any, Callable, Dict, List, Optional, Set

import llvmlite.binding as llvm

from .exceptions import LibraryError

logger = logging.getLogger(__name__)

# Process-wide: the JIT keeps only raw addresses, so callbacks must outlive
# the manager that registered them.
_CALLBACKS: List[Any] = []
# Names published by any session; the process symbol table is shared.
_PUBLISHED: Set[str] = set()


class LibraryManager:
    """Makes externally implemented primitives visible to JIT-compiled code.

    Everything registered here lands in the host process's symbol space,
    which is where the emission engine resolves calls it cannot satisfy
    from compiled definitions.
    """

    def __init__(self):
        self.libs: Dict[str, str] = {}

    def _library_filename(self, lib_name: str) -> str:
        if os.path.sep in lib_name or lib_name.lower().endswith((".dll", ".so", ".dylib")):
            return lib_name
        found = ctypes.util.find_library(lib_name)
        if found:
            return found
        if os.name == "nt":
            return f"{lib_name}.dll"
        if sys.platform == "darwin":
            return f"lib{lib_name}.dylib"
        return f"lib{lib_name}.so"

    def load_library(self, lib_name: str) -> str:
        filename = self._library_filename(lib_name)
        if filename in self.libs.values():
            return filename
        try:
            llvm.load_library_permanently(filename)
        except RuntimeError as e:
            raise LibraryError(f"Could not load library '{filename}': {e}")
        self.libs[lib_name] = filename
        logger.info("Loaded library %s", filename)
        return filename

    def load_all(self, lib_names: List[str]) -> None:
        for lib_name in lib_names:
            self.load_library(lib_name)

    def register_primitive(self, name: str, func: Callable[..., float], arity: int) -> None:
        prototype = ctypes.CFUNCTYPE(ctypes.c_double, *([ctypes.c_double] * arity))
        callback = prototype(func)
        _CALLBACKS.append(callback)
        llvm.add_symbol(name, ctypes.cast(callback, ctypes.c_void_p).value)
        logger.debug("Registered host primitive %s/%d", name, arity)

    def publish(self, name: str, address: int) -> None:
        llvm.add_symbol(name, address)
        _PUBLISHED.add(name)

    @staticmethod
    def is_published(name: str) -> bool:
        return name in _PUBLISHED

    @staticmethod
    def resolve(name: str) -> Optional[int]:
        return llvm.address_of_symbol(name)
