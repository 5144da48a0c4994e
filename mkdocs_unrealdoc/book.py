"""
Book tree builder.

A book is a directory of Markdown pages ordered by ``index.txt`` files::

    documentation.md      # optional landing page content
    index.txt             # one entry per line: ``name`` or ``name: Title``
    intro.md
    guides/
        index.txt         # required for every listed directory
        index.md          # optional, its first line titles the directory
        setup.md

Blank lines and ``#`` comments in ``index.txt`` are ignored.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum, auto

from .errors import BookError

log = logging.getLogger("mkdocs.plugins.unrealdoc")

BOOK_FILES = ("index.txt",)
ROOT_CONTENT = "documentation.md"


class PageKind(Enum):
    PAGE = auto()
    DIRECTORY = auto()


@dataclass
class BookPage:
    title: str
    content: str
    path: str
    source_kind: PageKind = PageKind.PAGE
    children: list[BookPage] = field(default_factory=list)
    rendered: str | None = None

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class BookTree:
    root_content: str | None = None
    pages: list[BookPage] = field(default_factory=list)
    root_rendered: str | None = None

    def walk(self):
        for page in self.pages:
            yield from page.walk()

    def __bool__(self):
        return bool(self.pages) or self.root_content is not None


def is_book_file(name):
    return name.endswith(".md") or name in BOOK_FILES


def _first_line_title(content):
    for line in content.splitlines():
        if line.strip():
            return line.strip().lstrip("#").strip()
    return ""


def _entries(content):
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        name, sep, title = line.partition(":")
        yield name.strip(), title.strip() if sep else ""


def _build_dir(files, prefix, warn):
    index = files.get(f"{prefix}index.txt")
    if index is None:
        raise BookError(prefix.rstrip("/") or ".", "missing index.txt")
    pages = []
    for name, title in _entries(index):
        path = f"{prefix}{name}"
        if name.endswith(".md"):
            content = files.get(path)
            if content is None:
                warn("missing-page", f"book page '{path}' listed in {prefix}index.txt does not exist", path)
                continue
            pages.append(
                BookPage(
                    title=_first_line_title(content) or title or name,
                    content=content,
                    path=path,
                )
            )
        else:
            landing = files.get(f"{path}/index.md", "")
            pages.append(
                BookPage(
                    title=_first_line_title(landing) or title or name,
                    content=landing,
                    path=f"{path}/index.md",
                    source_kind=PageKind.DIRECTORY,
                    children=_build_dir(files, f"{path}/", warn),
                )
            )
    return pages


def build_book(files, warn=None):
    """Build the BookTree from ``{book-relative path: content}``.

    *warn(code, message, path)* receives recoverable problems. A listed
    directory without its own ``index.txt`` raises BookError.
    """
    if warn is None:
        def warn(code, message, path):
            log.warning("unrealdoc: %s", message)

    tree = BookTree(root_content=files.get(ROOT_CONTENT))
    if "index.txt" in files:
        tree.pages = _build_dir(files, "", warn)
    return tree


def load_book(root):
    """Read every book file below *root* into a path mapping."""
    if not os.path.isdir(root):
        raise BookError(root, "not a directory")
    files = {}
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in sorted(filenames):
            if not is_book_file(name):
                continue
            full = os.path.join(dirpath, name)
            rel = os.path.relpath(full, root).replace(os.sep, "/")
            with open(full, "r", encoding="utf-8-sig") as f:
                files[rel] = f.read()
    return files
