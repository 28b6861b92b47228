from typing import Dict, List, Optional

from lark import Token

from .exceptions import ParseError
from .grammar import ANONYMOUS_FUNCTION, CHAR, IDENTIFIER, NUMBER
from .lexer import Tokenizer
from .nodes import (
    Binary,
    Call,
    Expr,
    For,
    Function,
    If,
    Number,
    Prototype,
    Variable,
)


class Parser:
    """Recursive-descent parser with precedence climbing for binary operators.

    The parser holds exactly one look-ahead token in ``current``. Every rule
    consumes the tokens belonging to it and leaves ``current`` on the first
    token past it. The precedence table is shared with the owning session
    and may be changed between statements.
    """

    def __init__(self, tokenizer: Tokenizer, precedence: Dict[str, int]):
        self.tokenizer = tokenizer
        self.precedence = precedence
        self.current: Optional[Token] = None

    def advance(self) -> Token:
        self.current = self.tokenizer.next_token()
        return self.current

    def at_char(self, ch: str) -> bool:
        return self.current.type == CHAR and self.current.value == ch

    def _error(self, message: str) -> ParseError:
        return ParseError(message, token=self.current)

    def token_precedence(self) -> int:
        tok = self.current
        if tok.type != CHAR or not tok.value.isascii():
            return -1
        prec = self.precedence.get(tok.value, -1)
        if prec <= 0:
            return -1
        return prec

    # --- Expressions ---

    def parse_number(self) -> Number:
        result = Number(self.current.value)
        self.advance()
        return result

    def parse_paren(self) -> Expr:
        self.advance()  # eat '('
        expr = self.parse_expression()
        if not self.at_char(")"):
            raise self._error("expected ')'")
        self.advance()
        return expr

    def parse_identifier_expr(self) -> Expr:
        name = self.current.value
        self.advance()
        if not self.at_char("("):
            return Variable(name)

        self.advance()  # eat '('
        args: List[Expr] = []
        if not self.at_char(")"):
            while True:
                args.append(self.parse_expression())
                if self.at_char(")"):
                    break
                if not self.at_char(","):
                    raise self._error("Expected ')' or ',' in argument list")
                self.advance()
        self.advance()  # eat ')'
        return Call(name, tuple(args))

    def parse_if(self) -> If:
        self.advance()  # eat 'if'
        cond = self.parse_expression()

        if self.current.type != "THEN":
            raise self._error("expected then")
        self.advance()
        then = self.parse_expression()

        if self.current.type != "ELSE":
            raise self._error("expected else")
        self.advance()
        otherwise = self.parse_expression()
        return If(cond, then, otherwise)

    def parse_for(self) -> For:
        self.advance()  # eat 'for'
        if self.current.type != IDENTIFIER:
            raise self._error("expected identifier after for")
        var = self.current.value
        self.advance()

        if not self.at_char("="):
            raise self._error("expected '=' after for")
        self.advance()

        start = self.parse_expression()
        if not self.at_char(","):
            raise self._error("expected ',' after for start value")
        self.advance()

        end = self.parse_expression()

        step = None
        if self.at_char(","):
            self.advance()
            step = self.parse_expression()

        if self.current.type != "IN":
            raise self._error("expected 'in' after for")
        self.advance()

        body = self.parse_expression()
        return For(var, start, end, step, body)

    def parse_primary(self) -> Expr:
        tok = self.current
        if tok.type == IDENTIFIER:
            return self.parse_identifier_expr()
        if tok.type == NUMBER:
            return self.parse_number()
        if self.at_char("("):
            return self.parse_paren()
        if tok.type == "IF":
            return self.parse_if()
        if tok.type == "FOR":
            return self.parse_for()
        raise self._error("unknown token when expecting an expression")

    def parse_bin_op_rhs(self, min_precedence: int, lhs: Expr) -> Expr:
        while True:
            prec = self.token_precedence()
            if prec < min_precedence:
                return lhs

            op = self.current.value
            self.advance()
            rhs = self.parse_primary()

            # If the operator after rhs binds tighter, let it take rhs first.
            if prec < self.token_precedence():
                rhs = self.parse_bin_op_rhs(prec + 1, rhs)

            lhs = Binary(op, lhs, rhs)

    def parse_expression(self) -> Expr:
        lhs = self.parse_primary()
        return self.parse_bin_op_rhs(0, lhs)

    # --- Top level ---

    def parse_prototype(self) -> Prototype:
        if self.current.type != IDENTIFIER:
            raise self._error("Expected function name in prototype")
        name = self.current.value
        self.advance()

        if not self.at_char("("):
            raise self._error("Expected '(' in prototype")

        params: List[str] = []
        while self.advance().type == IDENTIFIER:
            if self.current.value in params:
                raise self._error(f"Duplicate parameter '{self.current.value}' in prototype")
            params.append(self.current.value)
        if not self.at_char(")"):
            raise self._error("Expected ')' in prototype")
        self.advance()
        return Prototype(name, tuple(params))

    def parse_definition(self) -> Function:
        self.advance()  # eat 'def'
        proto = self.parse_prototype()
        return Function(proto, self.parse_expression())

    def parse_extern(self) -> Prototype:
        self.advance()  # eat 'extern'
        return self.parse_prototype()

    def parse_top_level_expr(self) -> Function:
        body = self.parse_expression()
        return Function(Prototype(ANONYMOUS_FUNCTION, ()), body)
