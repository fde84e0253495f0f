"""In-process index service.

Keeps documents in dictionaries and evaluates the subset of the Lucene
grammar that :class:`~indexsync.query.syntax.LuceneSyntax` produces:

- ``field:term``, ``field:"a phrase"``, ``field:pre*``, ``field:[1 TO 5]``
- bare terms, searched in the index's default field
- ``AND`` / ``OR`` / ``NOT`` (also ``-clause``), parentheses, ``*:*``

Adjacent clauses are ANDed. Text fields match on lowercased word tokens;
keyword and sorted fields match the whole value exactly. Relevance is the
number of matched occurrences.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from typing import Any

from indexsync.core.types import Document, FieldKind, IndexDescriptor
from indexsync.exceptions import QueryError, RemoteIndexError
from indexsync.query.syntax import LuceneSyntax, QuerySyntax
from indexsync.services.base import IndexService, RemoteIndex, SearchHit, SearchResults

logger = logging.getLogger(__name__)

_QUOTED = r'"(?:[^"\\]|\\.)*"'
_TOKEN = re.compile(
    rf"""
    \s*(?:
        (?P<lparen>\() |
        (?P<rparen>\)) |
        (?P<minus>-(?=\S)) |
        (?P<clause>
            (?:(?P<field>[A-Za-z_][\w.]*|\*):)?
            (?:
                (?P<phrase>{_QUOTED}) |
                \[(?P<low>{_QUOTED}|[^\s\]]+)\s+TO\s+(?P<high>{_QUOTED}|[^\s\]]+)\] |
                (?P<term>(?:[^\s()"\\]|\\.)+)
            )
        )
    )
    """,
    re.VERBOSE,
)
_ESCAPE = re.compile(r"\\(.)")
_WORD = re.compile(r"\w+")
_OPERATORS = ("AND", "OR", "NOT")


@dataclass
class _Clause:
    field: str | None
    mode: str  # term, phrase, prefix, range, all
    value: Any = None
    high: Any = None


def _unquote(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] == '"':
        text = text[1:-1]
    return _ESCAPE.sub(r"\1", text)


def _tokenize(query: str) -> list[tuple[str, Any]]:
    tokens: list[tuple[str, Any]] = []
    position = 0
    query = query.rstrip()
    while position < len(query):
        match = _TOKEN.match(query, position)
        if match is None or match.end() == position:
            raise QueryError(f"Cannot parse query near: {query[position:]!r}")
        position = match.end()
        if match.group("lparen"):
            tokens.append(("lparen", None))
        elif match.group("rparen"):
            tokens.append(("rparen", None))
        elif match.group("minus"):
            tokens.append(("not", None))
        else:
            field = match.group("field")
            term = match.group("term")
            if field is None and term in _OPERATORS:
                tokens.append((term.lower(), None))
            elif match.group("phrase") is not None:
                tokens.append(("clause", _Clause(field, "phrase", _unquote(match.group("phrase")))))
            elif match.group("low") is not None:
                clause = _Clause(
                    field, "range", _unquote(match.group("low")), _unquote(match.group("high"))
                )
                tokens.append(("clause", clause))
            elif field == "*" and term == "*":
                tokens.append(("clause", _Clause(None, "all")))
            elif term.endswith("*") and not term.endswith("\\*"):
                tokens.append(("clause", _Clause(field, "prefix", _unquote(term[:-1]))))
            else:
                tokens.append(("clause", _Clause(field, "term", _unquote(term))))
    return tokens


class _Parser:
    """Recursive-descent parser producing a nested tuple tree."""

    def __init__(self, tokens: list[tuple[str, Any]]) -> None:
        self._tokens = tokens
        self._position = 0

    def _peek(self) -> str | None:
        if self._position < len(self._tokens):
            return self._tokens[self._position][0]
        return None

    def _next(self) -> tuple[str, Any]:
        token = self._tokens[self._position]
        self._position += 1
        return token

    def parse(self) -> tuple[Any, ...]:
        if not self._tokens:
            return ("clause", _Clause(None, "all"))
        node = self._parse_or()
        if self._peek() is not None:
            raise QueryError("Unbalanced parentheses in query")
        return node

    def _parse_or(self) -> tuple[Any, ...]:
        items = [self._parse_and()]
        while self._peek() == "or":
            self._next()
            items.append(self._parse_and())
        return items[0] if len(items) == 1 else ("or", items)

    def _parse_and(self) -> tuple[Any, ...]:
        items = [self._parse_unary()]
        while self._peek() not in (None, "rparen", "or"):
            if self._peek() == "and":
                self._next()
            items.append(self._parse_unary())
        return items[0] if len(items) == 1 else ("and", items)

    def _parse_unary(self) -> tuple[Any, ...]:
        if self._peek() == "not":
            self._next()
            return ("not", self._parse_unary())
        return self._parse_primary()

    def _parse_primary(self) -> tuple[Any, ...]:
        kind = self._peek()
        if kind == "lparen":
            self._next()
            node = self._parse_or()
            if self._peek() != "rparen":
                raise QueryError("Unbalanced parentheses in query")
            self._next()
            return node
        if kind == "clause":
            return self._next()
        raise QueryError(f"Unexpected token in query: {kind}")


def parse_query(query: str) -> tuple[Any, ...]:
    """Parse a Lucene-subset query string into a tree."""
    return _Parser(_tokenize(query)).parse()


def _as_number(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _phrase_count(tokens: list[str], words: list[str], prefix: bool = False) -> int:
    if not words:
        return 0
    count = 0
    width = len(words)
    for start in range(len(tokens) - width + 1):
        window = tokens[start : start + width]
        if window[:-1] != words[:-1]:
            continue
        last = window[-1]
        if last == words[-1] or (prefix and last.startswith(words[-1])):
            count += 1
    return count


class MemoryIndex(RemoteIndex):
    """Dictionary-backed index."""

    def __init__(self, descriptor: IndexDescriptor) -> None:
        super().__init__(descriptor)
        self._documents: dict[str, Document] = {}
        self._lock = threading.RLock()

    @property
    def default_field(self) -> str:
        return self.descriptor.properties.get("document.defaultfield", "all")

    def __len__(self) -> int:
        return len(self._documents)

    def get_document(self, identifier: Any) -> Document | None:
        with self._lock:
            document = self._documents.get(str(identifier))
            return document.model_copy(deep=True) if document else None

    def add_document(self, document: Document) -> None:
        key = self._key(document)
        with self._lock:
            if key in self._documents:
                raise RemoteIndexError(
                    f"Document '{key}' already exists in '{self.name}'",
                    index_name=self.name,
                    operation="add",
                )
            self._documents[key] = document.model_copy(deep=True)

    def update_document(self, document: Document) -> None:
        key = self._key(document)
        with self._lock:
            if key not in self._documents:
                raise RemoteIndexError(
                    f"Document '{key}' does not exist in '{self.name}'",
                    index_name=self.name,
                    operation="update",
                )
            self._documents[key] = document.model_copy(deep=True)

    def delete_document(self, identifier: Any) -> bool:
        with self._lock:
            return self._documents.pop(str(identifier), None) is not None

    def _key(self, document: Document) -> str:
        if document.identifier is None:
            raise RemoteIndexError(
                f"Document has no identifier for index '{self.name}'",
                index_name=self.name,
                operation="store",
            )
        return str(document.identifier)

    def search(
        self,
        query: str,
        page: int = 1,
        count: int = 10,
        sort: str | None = None,
    ) -> SearchResults:
        tree = parse_query(query)
        with self._lock:
            documents = list(self._documents.values())

        scored: list[tuple[Document, float]] = []
        for document in documents:
            matched, score = self._evaluate(tree, document)
            if matched:
                scored.append((document, score))

        if sort:
            descending = sort.startswith("-")
            sort_field = sort.lstrip("-")
            present = [item for item in scored if item[0].first(sort_field) is not None]
            missing = [item for item in scored if item[0].first(sort_field) is None]
            present.sort(key=lambda item: str(item[0].first(sort_field)), reverse=descending)
            scored = present + missing
        else:
            scored.sort(key=lambda item: -item[1])

        start = (max(page, 1) - 1) * count
        hits = [
            SearchHit(identifier=document.identifier, relevance=float(score))
            for document, score in scored[start : start + count]
        ]
        return SearchResults(hits=hits, total=len(scored))

    def _evaluate(self, node: tuple[Any, ...], document: Document) -> tuple[bool, float]:
        kind = node[0]
        if kind == "and":
            results = [self._evaluate(child, document) for child in node[1]]
            return all(m for m, _ in results), sum(s for _, s in results)
        if kind == "or":
            results = [self._evaluate(child, document) for child in node[1]]
            return any(m for m, _ in results), sum(s for m, s in results if m)
        if kind == "not":
            matched, _ = self._evaluate(node[1], document)
            return not matched, 0.0
        occurrences = self._occurrences(node[1], document)
        return occurrences > 0, float(occurrences)

    def _occurrences(self, clause: _Clause, document: Document) -> int:
        if clause.mode == "all":
            return 1
        field = clause.field or self.default_field
        values = document.get(field)
        if not values:
            return 0
        exact = document.kind_of(field) in (FieldKind.KEYWORD, FieldKind.SORTED)

        if clause.mode == "range":
            return sum(1 for value in values if self._in_range(value, clause.value, clause.high))

        if exact:
            if clause.mode == "prefix":
                return sum(1 for value in values if str(value).startswith(clause.value))
            return sum(1 for value in values if str(value) == clause.value)

        words = _WORD.findall(str(clause.value).lower())
        total = 0
        for value in values:
            tokens = _WORD.findall(str(value).lower())
            total += _phrase_count(tokens, words, prefix=clause.mode == "prefix")
        return total

    def _in_range(self, value: Any, low: str, high: str) -> bool:
        number, low_number, high_number = _as_number(value), _as_number(low), _as_number(high)
        if number is not None and low_number is not None and high_number is not None:
            return low_number <= number <= high_number
        return low <= str(value) <= high


class MemoryIndexService(IndexService):
    """Index service living entirely in process memory."""

    index_class: type[MemoryIndex] = MemoryIndex

    def __init__(self, name: str = "default") -> None:
        self._name = name
        self._indexes: dict[str, MemoryIndex] = {}
        self._lock = threading.Lock()
        self._syntax = LuceneSyntax()

    def __repr__(self) -> str:
        return f"MemoryIndexService({self._name!r})"

    @property
    def query_syntax(self) -> QuerySyntax:
        return self._syntax

    def get_index(self, name: str) -> MemoryIndex | None:
        with self._lock:
            return self._indexes.get(name)

    def create_index(self, descriptor: IndexDescriptor) -> MemoryIndex:
        with self._lock:
            if descriptor.name in self._indexes:
                raise RemoteIndexError(
                    f"Index '{descriptor.name}' already exists",
                    index_name=descriptor.name,
                    operation="create",
                )
            index = self.index_class(descriptor)
            self._indexes[descriptor.name] = index
        logger.info(f"Created in-memory index '{descriptor.name}'")
        return index

    def list_indexes(self) -> list[str]:
        with self._lock:
            return list(self._indexes)
