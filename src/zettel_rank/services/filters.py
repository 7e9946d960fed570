"""Filter expressions over frontmatter attributes.

Grammar (keywords are case-insensitive)::

    or_expr   := xor_expr ("or" xor_expr)*
    xor_expr  := and_expr ("xor" and_expr)*
    and_expr  := unary ("and" unary)*
    unary     := "not" unary | "(" or_expr ")" | predicate
    predicate := "has" KEY
               | KEY ("=" | "!=" | "<" | "<=" | ">" | ">=") VALUE
               | KEY "in" "[" VALUE ("," VALUE)* "]"
               | KEY "contains" VALUE
    VALUE     := quoted string | number | "true" | "false" | bare word

Examples::

    status = draft
    tags contains python and not has archived
    priority >= 2 xor (status in [done, "won't do"])
"""
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, Union

from zettel_rank.exceptions import QueryError
from zettel_rank.models.schema import (
    ArrayValue,
    BooleanValue,
    IntegerValue,
    MetaValue,
    Note,
    RealValue,
    StringValue,
)

KEYWORDS = {"and", "or", "xor", "not", "in", "contains", "has", "true", "false"}
COMPARISON_OPS = ("=", "!=", "<", "<=", ">", ">=")

_TOKEN_SPEC = [
    ("SPACE", r"\s+"),
    ("STRING", r'"(?:[^"\\]|\\.)*"|\'(?:[^\'\\]|\\.)*\''),
    ("OP", r"!=|<=|>=|=|<|>"),
    ("LPAREN", r"\("),
    ("RPAREN", r"\)"),
    ("LBRACKET", r"\["),
    ("RBRACKET", r"\]"),
    ("COMMA", r","),
    ("WORD", r"[^\s()\[\],=!<>\"']+"),
]
_TOKEN_RE = re.compile("|".join(f"(?P<{name}>{pattern})" for name, pattern in _TOKEN_SPEC))
_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    position: int


def tokenize_filter(expression: str) -> List[Token]:
    """Split a filter expression into tokens.

    Raises:
        QueryError: On characters that start no token, or an unterminated
            quoted string.
    """
    tokens: List[Token] = []
    pos = 0
    while pos < len(expression):
        match = _TOKEN_RE.match(expression, pos)
        if match is None:
            char = expression[pos]
            if char in "\"'":
                raise QueryError("Unterminated quoted string", expression, pos)
            raise QueryError(f"Unexpected character {char!r}", expression, pos)
        kind = match.lastgroup
        if kind != "SPACE":
            tokens.append(Token(kind, match.group(), pos))
        pos = match.end()
    return tokens


# ---------------------------------------------------------------------------
# Literals and comparisons
# ---------------------------------------------------------------------------

LiteralValue = Union[str, int, float, bool]


@dataclass(frozen=True)
class Literal:
    """A value written in a filter; ``text`` keeps the source spelling."""

    value: LiteralValue
    text: str


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _scalar_equals(meta: MetaValue, literal: Literal) -> bool:
    if isinstance(meta, BooleanValue):
        return isinstance(literal.value, bool) and meta.value == literal.value
    if isinstance(meta, (IntegerValue, RealValue)):
        return _is_number(literal.value) and meta.value == literal.value
    if isinstance(meta, StringValue):
        # Numbers and booleans compare by spelling against strings
        return meta.value == literal.text
    return False


def _equals(meta: MetaValue, literal: Literal) -> bool:
    if isinstance(meta, ArrayValue):
        return any(_equals(item, literal) for item in meta.value)
    return _scalar_equals(meta, literal)


_RANGE_OPS = {
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
}


def _range(meta: MetaValue, op: str, literal: Literal) -> bool:
    compare = _RANGE_OPS[op]
    if isinstance(meta, (IntegerValue, RealValue)) and _is_number(literal.value):
        return compare(meta.value, literal.value)
    if isinstance(meta, StringValue) and isinstance(literal.value, str):
        return compare(meta.value, literal.value)
    return False


def _contains(meta: MetaValue, literal: Literal) -> bool:
    if isinstance(meta, ArrayValue):
        return any(_equals(item, literal) for item in meta.value)
    if isinstance(meta, StringValue):
        return literal.text in meta.value
    return _scalar_equals(meta, literal)


# ---------------------------------------------------------------------------
# Expression tree
# ---------------------------------------------------------------------------


class Filter:
    """A predicate over notes."""

    def matches(self, note: Note) -> bool:
        raise NotImplementedError


def _lookup(note: Note, key: str) -> Optional[MetaValue]:
    # The derived title is queryable like a frontmatter one
    return note.display_metadata().get(key)


@dataclass(frozen=True)
class Compare(Filter):
    key: str
    op: str
    literal: Literal

    def matches(self, note: Note) -> bool:
        meta = _lookup(note, self.key)
        if meta is None:
            return False
        if self.op == "=":
            return _equals(meta, self.literal)
        if self.op == "!=":
            return not _equals(meta, self.literal)
        return _range(meta, self.op, self.literal)


@dataclass(frozen=True)
class In(Filter):
    key: str
    literals: Tuple[Literal, ...]

    def matches(self, note: Note) -> bool:
        meta = _lookup(note, self.key)
        return meta is not None and any(_equals(meta, lit) for lit in self.literals)


@dataclass(frozen=True)
class Contains(Filter):
    key: str
    literal: Literal

    def matches(self, note: Note) -> bool:
        meta = _lookup(note, self.key)
        return meta is not None and _contains(meta, self.literal)


@dataclass(frozen=True)
class Has(Filter):
    key: str

    def matches(self, note: Note) -> bool:
        return _lookup(note, self.key) is not None


@dataclass(frozen=True)
class Not(Filter):
    operand: Filter

    def matches(self, note: Note) -> bool:
        return not self.operand.matches(note)


@dataclass(frozen=True)
class And(Filter):
    operands: Tuple[Filter, ...]

    def matches(self, note: Note) -> bool:
        return all(operand.matches(note) for operand in self.operands)


@dataclass(frozen=True)
class Or(Filter):
    operands: Tuple[Filter, ...]

    def matches(self, note: Note) -> bool:
        return any(operand.matches(note) for operand in self.operands)


@dataclass(frozen=True)
class Xor(Filter):
    operands: Tuple[Filter, ...]

    def matches(self, note: Note) -> bool:
        result = False
        for operand in self.operands:
            result ^= operand.matches(note)
        return result


class MatchAll(Filter):
    """The empty filter."""

    def matches(self, note: Note) -> bool:
        return True


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, expression: str):
        self.expression = expression
        self.tokens = tokenize_filter(expression)
        self.index = 0

    def error(self, message: str, token: Optional[Token] = None) -> QueryError:
        position = token.position if token else len(self.expression)
        return QueryError(message, self.expression, position)

    def peek(self) -> Optional[Token]:
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def advance(self) -> Token:
        token = self.peek()
        if token is None:
            raise self.error("Unexpected end of expression")
        self.index += 1
        return token

    def at_keyword(self, word: str) -> bool:
        token = self.peek()
        return token is not None and token.kind == "WORD" and token.text.lower() == word

    def expect(self, kind: str, what: str) -> Token:
        token = self.peek()
        if token is None or token.kind != kind:
            raise self.error(f"Expected {what}", token)
        return self.advance()

    def parse(self) -> Filter:
        if not self.tokens:
            raise self.error("Empty filter expression")
        node = self.parse_or()
        token = self.peek()
        if token is not None:
            raise self.error(f"Unexpected {token.text!r}", token)
        return node

    def _binary(self, keyword: str, operand: Callable[[], Filter], node_type) -> Filter:
        operands = [operand()]
        while self.at_keyword(keyword):
            self.advance()
            operands.append(operand())
        return operands[0] if len(operands) == 1 else node_type(tuple(operands))

    def parse_or(self) -> Filter:
        return self._binary("or", self.parse_xor, Or)

    def parse_xor(self) -> Filter:
        return self._binary("xor", self.parse_and, Xor)

    def parse_and(self) -> Filter:
        return self._binary("and", self.parse_unary, And)

    def parse_unary(self) -> Filter:
        token = self.peek()
        if token is None:
            raise self.error("Expected a predicate")
        if self.at_keyword("not"):
            self.advance()
            return Not(self.parse_unary())
        if token.kind == "LPAREN":
            self.advance()
            node = self.parse_or()
            self.expect("RPAREN", "')'")
            return node
        return self.parse_predicate()

    def parse_key(self) -> str:
        token = self.peek()
        if token is not None and token.kind == "STRING":
            return _unquote(self.advance().text)
        if token is None or token.kind != "WORD":
            raise self.error("Expected a key", token)
        if token.text.lower() in KEYWORDS:
            raise self.error(f"Expected a key, got keyword {token.text!r}", token)
        return self.advance().text

    def parse_predicate(self) -> Filter:
        if self.at_keyword("has"):
            self.advance()
            return Has(self.parse_key())

        key = self.parse_key()
        token = self.peek()
        if token is not None and token.kind == "OP":
            op = self.advance().text
            return Compare(key, op, self.parse_value())
        if self.at_keyword("in"):
            self.advance()
            return In(key, self.parse_list())
        if self.at_keyword("contains"):
            self.advance()
            return Contains(key, self.parse_value())
        raise self.error(f"Expected an operator after {key!r}", token)

    def parse_list(self) -> Tuple[Literal, ...]:
        self.expect("LBRACKET", "'['")
        values = [self.parse_value()]
        while self.peek() is not None and self.peek().kind == "COMMA":
            self.advance()
            values.append(self.parse_value())
        self.expect("RBRACKET", "']'")
        return tuple(values)

    def parse_value(self) -> Literal:
        token = self.peek()
        if token is None:
            raise self.error("Expected a value")
        if token.kind == "STRING":
            self.advance()
            text = _unquote(token.text)
            return Literal(text, text)
        if token.kind != "WORD":
            raise self.error("Expected a value", token)
        self.advance()
        return _bare_literal(token.text)


def _unquote(text: str) -> str:
    return re.sub(r"\\(.)", r"\1", text[1:-1])


def _bare_literal(text: str) -> Literal:
    lowered = text.lower()
    if lowered in ("true", "false"):
        return Literal(lowered == "true", lowered)
    if _NUMBER_RE.match(text):
        if re.match(r"^[+-]?\d+$", text):
            return Literal(int(text), text)
        return Literal(float(text), text)
    return Literal(text, text)


def parse_filter(expression: str) -> Filter:
    """Parse one filter expression.

    Raises:
        QueryError: If the expression is not valid.
    """
    return _Parser(expression).parse()


def parse_filters(filters: Union[None, str, Sequence[str]]) -> Filter:
    """Parse one expression or a list of them; a list is AND-ed.

    ``None``, empty strings and an empty list match every note.

    Raises:
        QueryError: If any expression is not valid.
    """
    if filters is None:
        return MatchAll()
    if isinstance(filters, str):
        filters = [filters]
    parsed = [parse_filter(expr) for expr in filters if expr and expr.strip()]
    if not parsed:
        return MatchAll()
    return parsed[0] if len(parsed) == 1 else And(tuple(parsed))
