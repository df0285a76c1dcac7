"""URI templates with matching of concrete URIs back to variable values."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import unquote

# operator -> (first, separator, named)
_OPERATORS = {
    "": ("", ",", False),
    "+": ("", ",", False),
    "#": ("#", ",", False),
    ".": (".", ".", False),
    "/": ("/", "/", False),
    ";": (";", ";", True),
    "?": ("?", "&", True),
    "&": ("&", "&", True),
}
_RESERVED_OPERATORS = "=,!@|"
_UNRESERVED = r"A-Za-z0-9\-._~"
_RESERVED = r":/?#\[\]@!$&'()*+,;="
_PCT = r"%[0-9A-Fa-f]{2}"
_VARNAME = re.compile(r"(?:[A-Za-z0-9_]|%[0-9A-Fa-f]{2})(?:\.?(?:[A-Za-z0-9_]|%[0-9A-Fa-f]{2}))*")
_VARSPEC = re.compile(r"(?P<name>[^*:]+)(?:(?P<explode>\*)|:(?P<prefix>[1-9][0-9]{0,3}))?")


@dataclass(frozen=True)
class _VarSpec:
    name: str
    explode: bool = False
    max_length: Optional[int] = None


@dataclass(frozen=True)
class _Expression:
    operator: str
    variables: tuple[_VarSpec, ...]

    def pattern(self) -> str:
        first, sep, named = _OPERATORS[self.operator]
        chars = _UNRESERVED + (_RESERVED if self.operator in "+#" and self.operator else "")
        extras = re.escape("," + sep + ("=" if named else ""))
        content = f"(?:[{chars}{extras}]|{_PCT})*"
        if first:
            return f"(?:{re.escape(first)}({content}))?"
        return f"({content})"

    def extract(self, content: Optional[str], into: dict[str, list[str]]) -> None:
        if content is None:
            return
        first, sep, named = _OPERATORS[self.operator]
        if named:
            by_name = {spec.name: spec for spec in self.variables}
            for token in content.split(sep):
                if not token:
                    continue
                name, _, value = token.partition("=")
                if name in by_name:
                    into.setdefault(name, []).extend(unquote(v) for v in value.split(","))
            return
        if not first and not content:
            return
        if len(self.variables) == 1:
            spec = self.variables[0]
            splitter = sep if spec.explode else ","
            into[spec.name] = [unquote(v) for v in content.split(splitter)]
            return
        tokens = content.split(sep)
        last = len(self.variables) - 1
        for index, spec in enumerate(self.variables):
            if index >= len(tokens):
                break
            values = tokens[index:] if spec.explode and index == last else [tokens[index]]
            into[spec.name] = [unquote(v) for v in values]


def _parse_expression(body: str) -> _Expression:
    if not body:
        raise ValueError("empty expression in URI template")
    operator = ""
    if body[0] in _OPERATORS and body[0]:
        operator, body = body[0], body[1:]
    elif body[0] in _RESERVED_OPERATORS:
        raise ValueError(f"unsupported operator {body[0]!r} in URI template")
    specs = []
    for raw_spec in body.split(","):
        match = _VARSPEC.fullmatch(raw_spec)
        if match is None or not _VARNAME.fullmatch(match["name"]):
            raise ValueError(f"invalid variable specification {raw_spec!r}")
        prefix = match["prefix"]
        specs.append(
            _VarSpec(
                name=match["name"],
                explode=match["explode"] is not None,
                max_length=int(prefix) if prefix else None,
            )
        )
    return _Expression(operator, tuple(specs))


def _parse(raw: str) -> list[Union[str, _Expression]]:
    parts: list[Union[str, _Expression]] = []
    pos = 0
    while True:
        start = raw.find("{", pos)
        literal = raw[pos:] if start < 0 else raw[pos:start]
        if "}" in literal:
            raise ValueError(f"unmatched '}}' in URI template {raw!r}")
        if literal:
            parts.append(literal)
        if start < 0:
            return parts
        end = raw.find("}", start)
        if end < 0:
            raise ValueError(f"unclosed expression in URI template {raw!r}")
        if "{" in raw[start + 1 : end]:
            raise ValueError(f"nested '{{' in URI template {raw!r}")
        parts.append(_parse_expression(raw[start + 1 : end]))
        pos = end + 1


class URITemplate:
    """A parsed URI template that can match URIs and recover variable values."""

    def __init__(self, raw: str) -> None:
        self._raw = raw
        self._parts = _parse(raw)
        self._expressions = [part for part in self._parts if isinstance(part, _Expression)]
        pattern = "".join(
            part.pattern() if isinstance(part, _Expression) else re.escape(part)
            for part in self._parts
        )
        self._regex = re.compile(pattern)

    @property
    def raw(self) -> str:
        return self._raw

    @property
    def regex(self) -> re.Pattern:
        return self._regex

    @property
    def variables(self) -> tuple[str, ...]:
        return tuple(spec.name for expr in self._expressions for spec in expr.variables)

    def match(self, uri: str) -> Optional[dict[str, list[str]]]:
        """Return variable values for a matching URI, or None."""
        found = self._regex.fullmatch(uri)
        if found is None:
            return None
        values: dict[str, list[str]] = {}
        for expression, content in zip(self._expressions, found.groups()):
            expression.extract(content, values)
        return values

    def matches(self, uri: str) -> bool:
        return self._regex.fullmatch(uri) is not None

    def __str__(self) -> str:
        return self._raw

    def __repr__(self) -> str:
        return f"URITemplate({self._raw!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, URITemplate):
            return self._raw == other._raw
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._raw)