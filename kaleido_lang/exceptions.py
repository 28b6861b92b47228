from typing import Any, Optional


class KaleidoError(Exception):
    """Base exception for the compiler and its JIT session."""

    def __init__(self, message: str, token: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.token = token


class ParseError(KaleidoError):
    """Raised when a token does not fit the grammar at the current point."""

    pass


class UnknownNameError(KaleidoError):
    """Raised for unknown variables, functions or unresolved symbols."""

    pass


class ArityError(KaleidoError):
    pass


class OperatorError(KaleidoError):
    pass


class RedefinitionError(KaleidoError):
    pass


class VerificationError(KaleidoError):
    """Raised when the emission engine rejects lowered IR as ill-formed."""

    pass


class LibraryError(KaleidoError):
    pass
