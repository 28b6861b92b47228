import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from .nodes import Prototype

SignatureTable = Dict[str, Prototype]

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(environ: Mapping[str, str], key: str, default: bool) -> bool:
    raw = environ.get(key)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


@dataclass
class SessionOptions:
    dump_ir: bool = True
    optimize: bool = False
    prompt: bool = False
    libraries: List[str] = field(default_factory=list)
    host_primitives: bool = True

    @classmethod
    def quiet(cls) -> "SessionOptions":
        return cls(dump_ir=False)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SessionOptions":
        environ = os.environ if environ is None else environ
        libs = environ.get("KALEIDO_LIBS", "")
        return cls(
            dump_ir=_env_flag(environ, "KALEIDO_DUMP_IR", True),
            optimize=_env_flag(environ, "KALEIDO_OPTIMIZE", False),
            prompt=_env_flag(environ, "KALEIDO_PROMPT", False),
            libraries=[lib for lib in libs.split(os.pathsep) if lib],
        )
