"""Rendering of search conditions into index query strings."""

from indexsync.query.syntax import FullTextSyntax, LuceneSyntax, QuerySyntax, lucene_escape

__all__ = ["QuerySyntax", "LuceneSyntax", "FullTextSyntax", "lucene_escape"]
