from .grammar import ANONYMOUS_FUNCTION, DEFAULT_BINOP_PRECEDENCE, KEYWORDS
from .exceptions import (
    KaleidoError,
    ParseError,
    UnknownNameError,
    ArityError,
    OperatorError,
    RedefinitionError,
    VerificationError,
    LibraryError,
)
from .interfaces import IOHandler, ConsoleIO
from .models import SessionOptions
from .nodes import Number, Variable, Binary, Call, If, For, Prototype, Function
from .lexer import Tokenizer, parse_number
from .parser import Parser
from .scope import NamedValueScope
from .ffi import LibraryManager
from .stdlib import HostRuntime
from .engine import CodeEmitter, CompiledHandle
from .codegen import Lowering
from .session import CompilerSession

__all__ = [
    "ANONYMOUS_FUNCTION",
    "DEFAULT_BINOP_PRECEDENCE",
    "KEYWORDS",
    "KaleidoError",
    "ParseError",
    "UnknownNameError",
    "ArityError",
    "OperatorError",
    "RedefinitionError",
    "VerificationError",
    "LibraryError",
    "IOHandler",
    "ConsoleIO",
    "SessionOptions",
    "Number",
    "Variable",
    "Binary",
    "Call",
    "If",
    "For",
    "Prototype",
    "Function",
    "Tokenizer",
    "parse_number",
    "Parser",
    "NamedValueScope",
    "LibraryManager",
    "HostRuntime",
    "CodeEmitter",
    "CompiledHandle",
    "Lowering",
    "CompilerSession",
]
