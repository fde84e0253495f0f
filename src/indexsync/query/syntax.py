"""Rendering of structured search conditions into index query strings.

Conditions use a small nested vocabulary::

    {"name": "escape"}                          # field matches a value
    {"name": ["escape", "fugitive"]}            # any of the values
    {"name": {"like": "esc%"}}                  # prefix match
    {"year": {"between": [1960, 1970]}}         # inclusive range
    {"name": {"!=": "escape"}}                  # negation
    {"-or": [{"name": "a"}, {"genre": "b"}]}    # explicit grouping
    {"-and": [...]}, {"-not": {...}}

Keys of one mapping are ANDed; a list at the top level is ORed. A plain
string is passed through untouched, and an empty condition matches
everything. Each index service supplies the syntax matching its grammar.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from indexsync.exceptions import QueryError

_WILDCARD_SUFFIX = re.compile(r"[%*]+$")


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, list | tuple | set):
        return list(value)
    return [value]


class QuerySyntax(ABC):
    """Renders structured conditions in one query grammar."""

    def where(self, condition: Any = None) -> str:
        """Render a condition as a query string."""
        if condition is None:
            return self.match_all()
        if isinstance(condition, str):
            return condition.strip() or self.match_all()
        rendered = self._render(condition)
        return rendered or self.match_all()

    def _render(self, condition: Any) -> str:
        if isinstance(condition, Mapping):
            return self._render_mapping(condition)
        if isinstance(condition, list | tuple):
            return self.join("OR", [self._render(item) for item in condition])
        if isinstance(condition, str):
            return condition
        raise QueryError(f"Unsupported condition type: {type(condition).__name__}")

    def _render_mapping(self, mapping: Mapping[str, Any]) -> str:
        parts = []
        for key, value in mapping.items():
            if key == "-and":
                parts.append(self.join("AND", [self._render(item) for item in _as_list(value)]))
            elif key == "-or":
                parts.append(self.join("OR", [self._render(item) for item in _as_list(value)]))
            elif key == "-not":
                parts.append(self.negate(self._render(value)))
            else:
                parts.append(self._render_field(key, value))
        return self.join("AND", parts)

    def _render_field(self, field: str, value: Any) -> str:
        if isinstance(value, Mapping):
            return self.join(
                "AND",
                [self._render_operator(field, op, operand) for op, operand in value.items()],
            )
        if isinstance(value, list | tuple | set):
            return self.join("OR", [self._render_value(field, item) for item in value])
        return self._render_value(field, value)

    def _render_value(self, field: str, value: Any) -> str:
        if value is None:
            raise QueryError(f"Cannot search field '{field}' for a null value")
        return self.term(field, value)

    def _render_operator(self, field: str, op: str, operand: Any) -> str:
        op = op.lower()
        if op in ("=", "==", "-is"):
            return self._render_field(field, operand)
        if op in ("!=", "<>", "-not"):
            return self.negate(self._render_field(field, operand))
        if op in ("in", "-in"):
            return self.join("OR", [self._render_value(field, item) for item in _as_list(operand)])
        if op in ("like", "-like"):
            pattern = str(operand)
            stem = _WILDCARD_SUFFIX.sub("", pattern)
            if not stem or "%" in stem or "*" in stem:
                raise QueryError(f"Only prefix patterns are supported, got '{pattern}'")
            return self.prefix(field, stem)
        if op in ("between", "-between"):
            bounds = _as_list(operand)
            if len(bounds) != 2:
                raise QueryError(f"'between' on '{field}' needs exactly two bounds")
            return self.range(field, bounds[0], bounds[1])
        raise QueryError(f"Unsupported operator '{op}' on field '{field}'")

    @abstractmethod
    def match_all(self) -> str:
        """Query matching every document."""
        ...

    @abstractmethod
    def term(self, field: str, value: Any) -> str: ...

    @abstractmethod
    def prefix(self, field: str, stem: str) -> str: ...

    @abstractmethod
    def range(self, field: str, low: Any, high: Any) -> str: ...

    @abstractmethod
    def join(self, op: str, parts: list[str]) -> str:
        """Combine parts with AND or OR, skipping empty parts."""
        ...

    @abstractmethod
    def negate(self, part: str) -> str: ...


_LUCENE_SPECIAL = re.compile(r'([+\-&|!(){}\[\]^"~*?:\\/])')


def lucene_escape(text: str) -> str:
    """Backslash-escape Lucene's special characters."""
    return _LUCENE_SPECIAL.sub(r"\\\1", text)


class LuceneSyntax(QuerySyntax):
    """Lucene query-parser grammar."""

    def match_all(self) -> str:
        return "*:*"

    def _literal(self, value: Any) -> str:
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, int | float):
            return str(value)
        escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'

    def term(self, field: str, value: Any) -> str:
        return f"{field}:{self._literal(value)}"

    def prefix(self, field: str, stem: str) -> str:
        if any(char.isspace() for char in stem):
            raise QueryError(f"Prefix patterns cannot contain whitespace, got '{stem}'")
        return f"{field}:{lucene_escape(stem)}*"

    def range(self, field: str, low: Any, high: Any) -> str:
        return f"{field}:[{self._literal(low)} TO {self._literal(high)}]"

    def join(self, op: str, parts: list[str]) -> str:
        parts = [part for part in parts if part]
        if not parts:
            return ""
        if len(parts) == 1:
            return parts[0]
        return "(" + f" {op} ".join(parts) + ")"

    def negate(self, part: str) -> str:
        return f"NOT {part}"


class _Negated(str):
    """A rendered clause that must be subtracted from a positive match."""

    inner: str

    def __new__(cls, inner: str) -> _Negated:
        rendered = super().__new__(cls, f"NOT {inner}")
        rendered.inner = inner
        return rendered


class FullTextSyntax(QuerySyntax):
    """Full-text grammar for SQL-backed indexes.

    Only the aggregate field is searchable there, so field names in a
    condition do not narrow the match; their values are still combined with
    the requested AND/OR/NOT structure. SQLite gets FTS5 MATCH expressions,
    PostgreSQL gets ``to_tsquery`` input.
    """

    def __init__(self, dialect: str = "sqlite") -> None:
        self._dialect = dialect

    @property
    def is_postgresql(self) -> bool:
        return self._dialect == "postgresql"

    def where(self, condition: Any = None) -> str:
        rendered = super().where(condition)
        if isinstance(rendered, _Negated):
            raise QueryError("A negated condition needs at least one positive term")
        return rendered

    def match_all(self) -> str:
        return ""

    def _words(self, value: Any) -> list[str]:
        return re.findall(r"\w+", str(value))

    def term(self, field: str, value: Any) -> str:
        if self.is_postgresql:
            words = self._words(value)
            if not words:
                raise QueryError(f"No searchable words in '{value}'")
            return words[0] if len(words) == 1 else "(" + " <-> ".join(words) + ")"
        escaped = str(value).replace('"', '""')
        return f'"{escaped}"'

    def prefix(self, field: str, stem: str) -> str:
        if self.is_postgresql:
            words = self._words(stem)
            if not words:
                raise QueryError(f"No searchable words in '{stem}'")
            words[-1] = f"{words[-1]}:*"
            return words[0] if len(words) == 1 else "(" + " <-> ".join(words) + ")"
        escaped = stem.replace('"', '""')
        return f'"{escaped}" *'

    def range(self, field: str, low: Any, high: Any) -> str:
        raise QueryError("Range conditions are not supported by full-text indexes")

    def join(self, op: str, parts: list[str]) -> str:
        parts = [part for part in parts if part]
        if not parts:
            return ""
        if self.is_postgresql:
            if len(parts) == 1:
                return parts[0]
            symbol = " & " if op == "AND" else " | "
            return "(" + symbol.join(parts) + ")"

        negatives = [part for part in parts if isinstance(part, _Negated)]
        positives = [part for part in parts if not isinstance(part, _Negated)]
        if negatives and op != "AND":
            raise QueryError("Negated conditions can only be combined with AND")
        if not positives:
            if len(negatives) == 1:
                return negatives[0]
            raise QueryError("A negated condition needs at least one positive term")
        rendered = positives[0] if len(positives) == 1 else "(" + f" {op} ".join(positives) + ")"
        for negative in negatives:
            rendered = f"({rendered} NOT {negative.inner})"
        return rendered

    def negate(self, part: str) -> str:
        if self.is_postgresql:
            return f"!{part}"
        return _Negated(part)
