"""Lexical and grammatical constants of the language.

    top        ::= definition | external | expression | ';'
    definition ::= 'def' prototype expression
    external   ::= 'extern' prototype
    prototype  ::= identifier '(' identifier* ')'
    expression ::= primary binoprhs
    binoprhs   ::= (binop primary)*
    primary    ::= identifierexpr | numberexpr | parenexpr | ifexpr | forexpr
    ifexpr     ::= 'if' expression 'then' expression 'else' expression
    forexpr    ::= 'for' identifier '=' expression ',' expression
                   (',' expression)? 'in' expression
"""

EOF_TOKEN = "EOF"
IDENTIFIER = "IDENTIFIER"
NUMBER = "NUMBER"
CHAR = "CHAR"

KEYWORDS = {
    "def": "DEF",
    "extern": "EXTERN",
    "if": "IF",
    "then": "THEN",
    "else": "ELSE",
    "for": "FOR",
    "in": "IN",
}

# 1 is the lowest precedence; anything <= 0 is not a binary operator.
DEFAULT_BINOP_PRECEDENCE = {
    "<": 10,
    ">": 10,
    "+": 20,
    "-": 20,
    "/": 40,
    "*": 40,
}

# Not expressible as a user identifier: identifiers are [a-zA-Z][a-zA-Z0-9]*.
ANONYMOUS_FUNCTION = "__anon_expr"

STATEMENT_SEPARATOR = ";"
