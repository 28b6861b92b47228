import logging
from typing import Dict, List, Optional, TextIO, Union

from llvmlite import ir

from .codegen import Lowering
from .engine import CodeEmitter
from .exceptions import KaleidoError, ParseError
from .ffi import LibraryManager
from .grammar import (
    ANONYMOUS_FUNCTION,
    DEFAULT_BINOP_PRECEDENCE,
    EOF_TOKEN,
    STATEMENT_SEPARATOR,
)
from .interfaces import ConsoleIO, IOHandler
from .lexer import Tokenizer
from .models import SessionOptions, SignatureTable
from .parser import Parser
from .scope import NamedValueScope
from .stdlib import HostRuntime

logger = logging.getLogger(__name__)


class CompilerSession:
    """Reads statements one at a time, compiles each and runs expressions at once.

    All state that outlives a single statement lives here: the operator
    precedence table, the signature table used to redeclare functions from
    earlier modules, the named-value scope, the open module and the
    emission engine holding every compiled definition.
    """

    def __init__(
        self,
        options: Optional[SessionOptions] = None,
        io_handler: Optional[IOHandler] = None,
    ):
        self.options = options if options is not None else SessionOptions()
        self.io = io_handler if io_handler is not None else ConsoleIO()
        self.precedence: Dict[str, int] = dict(DEFAULT_BINOP_PRECEDENCE)
        self.signatures: SignatureTable = {}
        self.scope = NamedValueScope()

        self.libraries = LibraryManager()
        self.emitter = CodeEmitter(self.libraries, optimize=self.options.optimize)
        if self.options.host_primitives:
            HostRuntime(self.io).register_into(self.libraries)
        self.libraries.load_all(self.options.libraries)

        self.lowering = Lowering(
            self.emitter.new_module,
            self.signatures,
            self.scope,
            verify=self.emitter.verify,
        )

    @property
    def module(self) -> ir.Module:
        return self.lowering.module

    def _report(self, error: KaleidoError) -> None:
        tok = error.token
        if tok is not None and tok.line is not None:
            logger.debug("%s at line %s, column %s", type(error).__name__, tok.line, tok.column)
        self.io.error(error.message)

    def _dump(self, value) -> None:
        if self.options.dump_ir:
            self.io.emit(str(value))

    # --- Statement handlers ---

    def handle_definition(self, parser: Parser) -> None:
        try:
            node = parser.parse_definition()
        except ParseError as e:
            self._report(e)
            parser.advance()
            return
        logger.info("Parsed a function definition.")
        try:
            fn = self.lowering.lower_function(node)
            self._dump(fn)
            self.emitter.add_definition(self.lowering.take_module())
        except KaleidoError as e:
            self._report(e)

    def handle_extern(self, parser: Parser) -> None:
        try:
            proto = parser.parse_extern()
        except ParseError as e:
            self._report(e)
            parser.advance()
            return
        logger.info("Parsed an extern")
        try:
            fn = self.lowering.declare_extern(proto)
        except KaleidoError as e:
            self._report(e)
            return
        self._dump(fn)

    def handle_top_level_expression(self, parser: Parser) -> Optional[float]:
        try:
            node = parser.parse_top_level_expr()
        except ParseError as e:
            self._report(e)
            parser.advance()
            return None
        logger.info("Parsed a top-level expr")
        try:
            fn = self.lowering.lower_function(node)
            self._dump(fn)
            with self.emitter.transient(self.lowering.take_module()) as handle:
                value = handle.lookup(ANONYMOUS_FUNCTION)()
        except KaleidoError as e:
            self._report(e)
            return None
        self.io.emit(f"Evaluated to {value:f}")
        return value

    # --- Driver ---

    def run(self, source: Union[TextIO, str]) -> List[float]:
        """Process statements until end of input; returns every evaluated value."""
        parser = Parser(Tokenizer(source), self.precedence)
        results: List[float] = []
        if self.options.prompt:
            self.io.prompt("ready> ")
        parser.advance()
        while True:
            tok = parser.current
            if tok.type == EOF_TOKEN:
                self.io.emit(str(self.module))
                return results
            if parser.at_char(STATEMENT_SEPARATOR):
                parser.advance()
                continue
            if tok.type == "DEF":
                self.handle_definition(parser)
            elif tok.type == "EXTERN":
                self.handle_extern(parser)
            else:
                value = self.handle_top_level_expression(parser)
                if value is not None:
                    results.append(value)
            if self.options.prompt:
                self.io.prompt("ready> ")
