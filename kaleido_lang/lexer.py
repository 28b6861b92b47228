import io
import logging
import re
from typing import Iterator, TextIO, Union

from lark import Token

from .grammar import CHAR, EOF_TOKEN, IDENTIFIER, KEYWORDS, NUMBER

logger = logging.getLogger(__name__)

_NUMBER_PREFIX = re.compile(r"\d*\.?\d*")


def _is_alpha(ch: str) -> bool:
    return ch.isascii() and ch.isalpha()


def _is_alnum(ch: str) -> bool:
    return ch.isascii() and ch.isalnum()


def _is_digit(ch: str) -> bool:
    return ch.isascii() and ch.isdigit()


def parse_number(text: str) -> float:
    """Convert a greedy ``[0-9.]+`` run like C's ``strtod``.

    The longest valid prefix is used ("1.2.3" is 1.2) and text with no
    valid prefix (".", "..") becomes 0.0.
    """
    prefix = _NUMBER_PREFIX.match(text).group(0)
    if not any(_is_digit(c) for c in prefix):
        logger.debug("Malformed number %r coerced to 0.0", text)
        return 0.0
    if prefix != text:
        logger.debug("Malformed number %r truncated to %r", text, prefix)
    return float(prefix)


class Tokenizer:
    """Pulls characters from a text stream and produces one token per call.

    One character of look-ahead is buffered between calls, so the stream is
    never read past the end of the current token plus one character.
    """

    def __init__(self, source: Union[TextIO, str]):
        if isinstance(source, str):
            source = io.StringIO(source)
        self._stream = source
        self._last = " "
        self._pos = -1
        self._line = 1
        self._column = 0

    def _read(self) -> str:
        ch = self._stream.read(1)
        if ch:
            self._pos += 1
            if self._last == "\n":
                self._line += 1
                self._column = 1
            else:
                self._column += 1
        self._last = ch
        return ch

    def _token(self, type_: str, value, start: int, line: int, column: int) -> Token:
        return Token(type_, value, start_pos=start, line=line, column=column)

    def next_token(self) -> Token:
        while True:
            while self._last and self._last.isspace():
                self._read()

            start, line, column = self._pos, self._line, self._column

            if _is_alpha(self._last):
                ident = self._last
                while _is_alnum(self._read()):
                    ident += self._last
                return self._token(KEYWORDS.get(ident, IDENTIFIER), ident, start, line, column)

            if _is_digit(self._last) or self._last == ".":
                text = ""
                while _is_digit(self._last) or self._last == ".":
                    text += self._last
                    self._read()
                return self._token(NUMBER, parse_number(text), start, line, column)

            if self._last == "#":
                while self._read() not in ("", "\n", "\r"):
                    pass
                if self._last:
                    continue

            # End of input is sticky: do not read past it.
            if not self._last:
                return self._token(EOF_TOKEN, "", start, line, column)

            ch = self._last
            self._read()
            return self._token(CHAR, ch, start, line, column)

    def __iter__(self) -> Iterator[Token]:
        while True:
            tok = self.next_token()
            yield tok
            if tok.type == EOF_TOKEN:
                return
