"""
mkdocs-unrealdoc — Unreal C++ API documentation and books for MkDocs.

Extracts documentation from ``///`` comments in Unreal-flavored C++ headers,
merges it with a tree of Markdown book pages, resolves snippets, proxies and
symbol cross-references, and renders the result as MkDocs pages or JSON.
"""

__version__ = "1.0.0"
