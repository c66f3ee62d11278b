"""Build filter expressions.

Filters are written in the subset of CEL used by Cloud Build notifier
configs, for example::

    build.status == Build.Status.SUCCESS
    build.substitutions["BRANCH_NAME"] == "main" && build.status in [Build.Status.FAILURE, Build.Status.TIMEOUT]

Expressions are compiled once at setup into a small tree of typed accessors
and evaluated per build.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, NoReturn

from notifier.core.errors import FilterEvaluationError, FilterSyntaxError
from notifier.models.build import Build, BuildStatus

_logger = logging.getLogger(__name__)

_TOKEN_PATTERN = re.compile(
    r"""
    (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
    |(?P<number>\d+)
    |(?P<op>==|!=|&&|\|\||!|\(|\)|\[|\]|,|\.)
    |(?P<ident>[A-Za-z_][A-Za-z0-9_]*)
    """,
    re.VERBOSE,
)
_ESCAPE_PATTERN = re.compile(r"\\(.)")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}

BUILD_FIELDS = frozenset(
    {"id", "project_id", "status", "log_url", "build_trigger_id", "substitutions", "tags"}
)
_MAP_FIELDS = frozenset({"substitutions"})
_KEYWORDS = {"true": True, "false": False, "null": None}


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    position: int


class _Node:
    def evaluate(self, build: Build) -> Any:  # pragma: no cover - interface
        raise NotImplementedError


@dataclass(frozen=True)
class _Literal(_Node):
    value: Any

    def evaluate(self, build: Build) -> Any:
        return self.value


@dataclass(frozen=True)
class _ListExpr(_Node):
    items: tuple[_Node, ...]

    def evaluate(self, build: Build) -> Any:
        return [item.evaluate(build) for item in self.items]


@dataclass(frozen=True)
class _FieldRef(_Node):
    name: str

    def evaluate(self, build: Build) -> Any:
        return getattr(build, self.name)


@dataclass(frozen=True)
class _Index(_Node):
    target: _Node
    key: _Node

    def evaluate(self, build: Build) -> Any:
        container = self.target.evaluate(build)
        key = self.key.evaluate(build)
        if isinstance(container, dict):
            if not isinstance(key, str):
                raise FilterEvaluationError(f"map keys must be strings, got {type(key).__name__}")
            if key not in container:
                raise FilterEvaluationError(f"no such key: {key!r}")
            return container[key]
        if isinstance(container, list):
            if not isinstance(key, int) or isinstance(key, bool) or not 0 <= key < len(container):
                raise FilterEvaluationError(f"invalid list index: {key!r}")
            return container[key]
        raise FilterEvaluationError(f"cannot index {type(container).__name__}")


@dataclass(frozen=True)
class _Not(_Node):
    operand: _Node

    def evaluate(self, build: Build) -> Any:
        return not _require_bool(self.operand.evaluate(build), "!")


@dataclass(frozen=True)
class _Logical(_Node):
    op: str
    left: _Node
    right: _Node

    def evaluate(self, build: Build) -> Any:
        left = _require_bool(self.left.evaluate(build), self.op)
        if self.op == "&&" and not left:
            return False
        if self.op == "||" and left:
            return True
        return _require_bool(self.right.evaluate(build), self.op)


@dataclass(frozen=True)
class _Compare(_Node):
    op: str
    left: _Node
    right: _Node

    def evaluate(self, build: Build) -> Any:
        left = self.left.evaluate(build)
        right = self.right.evaluate(build)
        if self.op == "==":
            return left == right
        if self.op == "!=":
            return left != right
        if not isinstance(right, (list, dict, str)):
            raise FilterEvaluationError(f"'in' needs a list, map or string, got {type(right).__name__}")
        if isinstance(right, (str, dict)) and not isinstance(left, str):
            raise FilterEvaluationError(f"'in' on a {type(right).__name__} needs a string operand")
        return left in right


def _require_bool(value: Any, op: str) -> bool:
    if not isinstance(value, bool):
        raise FilterEvaluationError(f"operator {op!r} needs booleans, got {type(value).__name__}")
    return value


def _unquote(text: str) -> str:
    return _ESCAPE_PATTERN.sub(lambda match: _ESCAPES.get(match.group(1), match.group(1)), text[1:-1])


def _tokenize(expression: str) -> list[_Token]:
    tokens: list[_Token] = []
    position = 0
    while position < len(expression):
        if expression[position].isspace():
            position += 1
            continue
        match = _TOKEN_PATTERN.match(expression, position)
        if not match:
            raise FilterSyntaxError("unexpected character", expression[position : position + 12], position)
        kind = match.lastgroup or "op"
        tokens.append(_Token(kind, match.group(), position))
        position = match.end()
    return tokens


class _Parser:
    def __init__(self, expression: str) -> None:
        self._expression = expression
        self._tokens = _tokenize(expression)
        self._index = 0

    def parse(self) -> _Node:
        if not self._tokens:
            raise FilterSyntaxError("empty expression", "", 0)
        node = self._or()
        if self._index < len(self._tokens):
            self._fail("unexpected token")
        return node

    def _peek(self) -> _Token | None:
        return self._tokens[self._index] if self._index < len(self._tokens) else None

    def _accept(self, *texts: str) -> _Token | None:
        token = self._peek()
        if token is not None and token.kind in ("op", "ident") and token.text in texts:
            self._index += 1
            return token
        return None

    def _expect(self, text: str) -> None:
        if not self._accept(text):
            self._fail(f"expected {text!r}")

    def _fail(self, message: str, token: _Token | None = None) -> NoReturn:
        token = token or self._peek()
        if token is None:
            raise FilterSyntaxError(f"{message} at end of expression", self._expression[-12:], len(self._expression))
        raise FilterSyntaxError(message, self._expression[token.position : token.position + 12], token.position)

    def _or(self) -> _Node:
        node = self._and()
        while self._accept("||"):
            node = _Logical("||", node, self._and())
        return node

    def _and(self) -> _Node:
        node = self._unary()
        while self._accept("&&"):
            node = _Logical("&&", node, self._unary())
        return node

    def _unary(self) -> _Node:
        if self._accept("!"):
            return _Not(self._unary())
        return self._comparison()

    def _comparison(self) -> _Node:
        left = self._operand()
        token = self._accept("==", "!=", "in")
        if token:
            return _Compare(token.text, left, self._operand())
        return left

    def _operand(self) -> _Node:
        token = self._peek()
        if token is None:
            self._fail("expected an operand")
        if token.kind == "string":
            self._index += 1
            return _Literal(_unquote(token.text))
        if token.kind == "number":
            self._index += 1
            return _Literal(int(token.text))
        if self._accept("("):
            node = self._or()
            self._expect(")")
            return node
        if self._accept("["):
            return self._list()
        if token.kind == "ident":
            if token.text in _KEYWORDS:
                self._index += 1
                return _Literal(_KEYWORDS[token.text])
            return self._path()
        self._fail("expected an operand", token)

    def _list(self) -> _Node:
        items: list[_Node] = []
        if not self._accept("]"):
            items.append(self._or())
            while self._accept(","):
                items.append(self._or())
            self._expect("]")
        return _ListExpr(tuple(items))

    def _ident(self) -> _Token:
        token = self._peek()
        if token is None or token.kind != "ident":
            self._fail("expected an identifier")
        self._index += 1
        return token

    def _path(self) -> _Node:
        root = self._ident()
        if root.text == "Build":
            return self._status_constant(root)
        if root.text != "build":
            self._fail(f"unknown identifier {root.text!r}", root)
        self._expect(".")
        field = self._ident()
        if field.text not in BUILD_FIELDS:
            self._fail(f"unknown build field {field.text!r}", field)
        node: _Node = _FieldRef(field.text)
        while True:
            if self._accept("["):
                key = self._or()
                self._expect("]")
                node = _Index(node, key)
            elif field.text in _MAP_FIELDS and self._accept("."):
                node = _Index(node, _Literal(self._ident().text))
            else:
                return node

    def _status_constant(self, root: _Token) -> _Node:
        self._expect(".")
        group = self._ident()
        if group.text != "Status":
            self._fail(f"unknown constant group {group.text!r}", group)
        self._expect(".")
        name = self._ident()
        if name.text not in BuildStatus.__members__:
            self._fail(f"unknown build status {name.text!r}", name)
        return _Literal(BuildStatus[name.text])


class EventFilter:
    """A compiled filter expression."""

    def __init__(self, expression: str, root: _Node) -> None:
        self.expression = expression
        self._root = root

    def evaluate(self, build: Build) -> bool:
        result = self._root.evaluate(build)
        if not isinstance(result, bool):
            raise FilterEvaluationError(f"filter produced {type(result).__name__}, not a boolean")
        return result

    def matches(self, build: Build) -> bool:
        try:
            return self.evaluate(build)
        except FilterEvaluationError as exc:
            _logger.warning("Filter %r could not be evaluated for build %s: %s", self.expression, build.id, exc)
            return False


def compile_filter(expression: str) -> EventFilter:
    """Compile ``expression`` or raise :class:`FilterSyntaxError`."""

    return EventFilter(expression, _Parser(expression).parse())

