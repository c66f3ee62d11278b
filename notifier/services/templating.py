"""Issue templates in the Go ``text/template`` dialect used by notifier configs.

Supported actions are field paths (``{{.Build.ProjectId}}``), the ``index``,
``eq``, ``ne`` and ``not`` functions, ``{{if}}``/``{{else if}}``/``{{else}}``/``{{end}}``
blocks, comments and the ``{{-``/``-}}`` trim markers. Field names are
written in CamelCase and resolve onto the snake_case attributes of the view.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import BaseModel, ValidationError

from notifier.core.errors import TemplateError
from notifier.models.build import IssuePayload, TemplateView

DEFAULT_ISSUE_TEMPLATE = """{
    "title": "Cloud Build [{{.Build.ProjectId}}]: {{.Build.Status}}",
    "body": "Cloud Build {{.Build.ProjectId}} {{.Build.BuildTriggerId}} status: **{{.Build.Status}}**\\n\\n[View Logs]({{.Build.LogUrl}}){{if index .Build.Substitutions "GH_COMMITTER_LOGIN"}}\\n\\nTriggered by @{{index .Build.Substitutions "GH_COMMITTER_LOGIN"}}{{end}}"
}
"""

UTM_CAMPAIGN = "google-cloud-build-notifiers"
UTM_SOURCE = "google-cloud-build"

_ACTION_PATTERN = re.compile(r"\{\{(-\s)?\s*(.*?)\s*(\s-)?\}\}", re.DOTALL)
_ARG_PATTERN = re.compile(r'\s*("(?:[^"\\]|\\.)*"|\d+|\.[A-Za-z0-9_.]*|[A-Za-z_][A-Za-z0-9_]*|\(|\))')
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def _snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _resolve_field(value: Any, name: str) -> Any:
    if value is None:
        raise TemplateError(f"nil pointer evaluating field {name}")
    if isinstance(value, Mapping):
        return value.get(name)
    attr = _snake(name)
    if isinstance(value, BaseModel):
        known = attr in type(value).model_fields
    else:
        known = not attr.startswith("_") and hasattr(value, attr) and not callable(getattr(value, attr))
    if not known:
        raise TemplateError(f"can't evaluate field {name} in type {type(value).__name__}")
    return getattr(value, attr)


def _format(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(_format(item) for item in value) + "]"
    return str(value)


def json_escape(text: str) -> str:
    return json.dumps(text)[1:-1]


def _fn_index(container: Any, *keys: Any) -> Any:
    for key in keys:
        if isinstance(container, Mapping):
            container = container.get(key)
        elif isinstance(container, (list, tuple)):
            if not isinstance(key, int) or not 0 <= key < len(container):
                raise TemplateError(f"index out of range: {key!r}")
            container = container[key]
        else:
            raise TemplateError(f"can't index item of type {type(container).__name__}")
    return container


def _fn_not(value: Any) -> bool:
    return not value


def _fn_eq(left: Any, *others: Any) -> bool:
    if not others:
        raise TemplateError("eq needs at least two arguments")
    return any(left == other for other in others)


def _fn_ne(left: Any, right: Any) -> bool:
    return left != right


_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "index": _fn_index,
    "not": _fn_not,
    "eq": _fn_eq,
    "ne": _fn_ne,
}


class _Expr:
    def evaluate(self, dot: Any) -> Any:  # pragma: no cover - interface
        raise NotImplementedError


@dataclass(frozen=True)
class _Const(_Expr):
    value: Any

    def evaluate(self, dot: Any) -> Any:
        return self.value


@dataclass(frozen=True)
class _Field(_Expr):
    path: tuple[str, ...]

    def evaluate(self, dot: Any) -> Any:
        value = dot
        for name in self.path:
            value = _resolve_field(value, name)
        return value


@dataclass(frozen=True)
class _Call(_Expr):
    name: str
    args: tuple[_Expr, ...]

    def evaluate(self, dot: Any) -> Any:
        values = [arg.evaluate(dot) for arg in self.args]
        try:
            return _FUNCTIONS[self.name](*values)
        except TypeError as exc:
            raise TemplateError(f"error calling {self.name}: {exc}") from exc


@dataclass
class _Text:
    text: str


@dataclass
class _Output:
    expr: _Expr


@dataclass
class _If:
    condition: _Expr
    then: list = field(default_factory=list)
    otherwise: list = field(default_factory=list)
    in_else: bool = False
    chained: bool = False


def _parse_expression(source: str) -> _Expr:
    tokens: list[str] = []
    position = 0
    source = source.strip()
    while position < len(source):
        match = _ARG_PATTERN.match(source, position)
        if not match:
            raise TemplateError(f"unexpected {source[position:position + 12]!r} in action {source!r}")
        tokens.append(match.group(1))
        position = match.end()
        while position < len(source) and source[position].isspace():
            position += 1
    expr, rest = _parse_command(tokens, source)
    if rest:
        raise TemplateError(f"unexpected {rest[0]!r} in action {source!r}")
    return expr


def _parse_command(tokens: list[str], source: str) -> tuple[_Expr, list[str]]:
    if not tokens:
        raise TemplateError(f"missing value in action {source!r}")
    head = tokens[0]
    if head in _FUNCTIONS:
        args: list[_Expr] = []
        rest = tokens[1:]
        while rest and rest[0] != ")":
            arg, rest = _parse_operand(rest, source)
            args.append(arg)
        return _Call(head, tuple(args)), rest
    return _parse_operand(tokens, source)


def _parse_operand(tokens: list[str], source: str) -> tuple[_Expr, list[str]]:
    head, rest = tokens[0], tokens[1:]
    if head == "(":
        expr, rest = _parse_command(rest, source)
        if not rest or rest[0] != ")":
            raise TemplateError(f"unclosed parenthesis in action {source!r}")
        return expr, rest[1:]
    if head.startswith('"'):
        try:
            return _Const(json.loads(head)), rest
        except ValueError as exc:
            raise TemplateError(f"bad string literal {head}") from exc
    if head.isdigit():
        return _Const(int(head)), rest
    if head.startswith("."):
        path = tuple(part for part in head.split(".") if part)
        return _Field(path), rest
    if head in ("true", "false"):
        return _Const(head == "true"), rest
    if head == "nil":
        return _Const(None), rest
    raise TemplateError(f"function {head!r} not defined")


def _parse(text: str) -> list:
    root: list = []
    stack: list[_If] = []

    def current() -> list:
        if not stack:
            return root
        block = stack[-1]
        return block.otherwise if block.in_else else block.then

    position = 0
    pending_trim = False
    for match in _ACTION_PATTERN.finditer(text):
        literal = text[position : match.start()]
        if pending_trim:
            literal = literal.lstrip()
        if match.group(1):
            literal = literal.rstrip()
        if literal:
            current().append(_Text(literal))
        position = match.end()
        pending_trim = bool(match.group(3))

        action = match.group(2)
        if action.startswith("/*"):
            if not action.endswith("*/"):
                raise TemplateError(f"unclosed comment {action!r}")
            continue
        keyword, _, remainder = action.replace("\n", " ").replace("\t", " ").partition(" ")
        remainder = remainder.strip()
        if keyword == "if":
            block = _If(_parse_expression(remainder))
            current().append(block)
            stack.append(block)
        elif keyword == "else":
            if not stack or stack[-1].in_else:
                raise TemplateError("unexpected {{else}}")
            stack[-1].in_else = True
            if remainder:
                chain_keyword, _, condition = remainder.partition(" ")
                if chain_keyword != "if":
                    raise TemplateError(f"unexpected {remainder!r} in {{{{else}}}}")
                block = _If(_parse_expression(condition), chained=True)
                current().append(block)
                stack.append(block)
        elif keyword == "end":
            if remainder:
                raise TemplateError(f"unexpected {remainder!r} in {{{{end}}}}")
            if not stack:
                raise TemplateError("unexpected {{end}}")
            while stack.pop().chained:
                pass
        else:
            current().append(_Output(_parse_expression(action)))

    tail = text[position:]
    if pending_trim:
        tail = tail.lstrip()
    if tail:
        current().append(_Text(tail))
    if "{{" in tail:
        raise TemplateError("unclosed action")
    if stack:
        raise TemplateError("unexpected EOF: missing {{end}}")
    return root


class IssueTemplate:
    """A compiled issue template."""

    def __init__(self, source: str) -> None:
        self.source = source
        self._nodes = _parse(source)

    def render_text(self, view: Any, escape: Callable[[str], str] | None = None) -> str:
        parts: list[str] = []
        self._execute(self._nodes, view, parts, escape)
        return "".join(parts)

    def render(self, view: TemplateView) -> IssuePayload:
        """Render the template and decode the JSON issue payload."""

        rendered = self.render_text(view, escape=json_escape)
        try:
            return IssuePayload.model_validate_json(rendered)
        except ValidationError as exc:
            raise TemplateError(f"template did not render a valid issue payload: {exc}") from exc

    def _execute(self, nodes: list, dot: Any, parts: list[str], escape: Callable[[str], str] | None) -> None:
        for node in nodes:
            if isinstance(node, _Text):
                parts.append(node.text)
            elif isinstance(node, _Output):
                value = _format(node.expr.evaluate(dot))
                parts.append(escape(value) if escape else value)
            elif isinstance(node, _If):
                branch = node.then if node.condition.evaluate(dot) else node.otherwise
                self._execute(branch, dot, parts, escape)


def compile_template(source: str) -> IssueTemplate:
    return IssueTemplate(source)


def render(template_text: str, view: TemplateView) -> IssuePayload:
    return compile_template(template_text).render(view)


def add_utm_params(url: str, medium: str = "http") -> str:
    """Tag a log URL with the notifier's UTM parameters."""

    if not url:
        return url
    parts = urlsplit(url)
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key not in ("utm_campaign", "utm_medium", "utm_source")
    ]
    query.extend(
        [("utm_campaign", UTM_CAMPAIGN), ("utm_medium", medium), ("utm_source", UTM_SOURCE)]
    )
    return urlunsplit(parts._replace(query=urlencode(query)))
