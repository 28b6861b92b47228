from dataclasses import dataclass
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Variable:
    name: str


@dataclass(frozen=True)
class Binary:
    op: str
    lhs: "Expr"
    rhs: "Expr"


@dataclass(frozen=True)
class Call:
    callee: str
    args: Tuple["Expr", ...]


@dataclass(frozen=True)
class If:
    cond: "Expr"
    then: "Expr"
    otherwise: "Expr"


@dataclass(frozen=True)
class For:
    var: str
    start: "Expr"
    end: "Expr"
    step: Optional["Expr"]
    body: "Expr"


Expr = Union[Number, Variable, Binary, Call, If, For]


@dataclass(frozen=True)
class Prototype:
    """A function's name and its parameter names; the arity is implied."""

    name: str
    params: Tuple[str, ...]

    @property
    def arity(self) -> int:
        return len(self.params)


@dataclass(frozen=True)
class Function:
    prototype: Prototype
    body: Expr
