"""
Input discovery and the parse -> aggregate -> resolve pipeline.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor

from .book import build_book, is_book_file
from .errors import UnrealDocError
from .parser import FileResult, parse_header
from .resolver import LinkContext, build_document

log = logging.getLogger("mkdocs.plugins.unrealdoc")

HEADER_EXTENSIONS = (".h", ".hpp", ".hh", ".hxx", ".inl")


def discover_inputs(input_dirs):
    """Walk *input_dirs* and split them into headers and book files.

    Returns ``(headers, book_files)``: a list of ``(path, display_name)``
    pairs and a ``{book-relative path: content}`` mapping. When two input
    directories carry the same book file, the first one wins.
    """
    headers = []
    book_files = {}
    for root in input_dirs:
        root = os.fspath(root)
        if not os.path.isdir(root):
            raise UnrealDocError(f"input directory not found: {root}")
        for dirpath, dirnames, fnames in os.walk(root):
            dirnames.sort()
            for fn in sorted(fnames):
                full = os.path.join(dirpath, fn)
                rel = os.path.relpath(full, root).replace(os.sep, "/")
                if os.path.splitext(fn)[1].lower() in HEADER_EXTENSIONS:
                    headers.append((full, rel))
                elif is_book_file(fn):
                    if rel in book_files:
                        log.debug("unrealdoc: %s shadowed by an earlier input directory", full)
                        continue
                    with open(full, "r", encoding="utf-8-sig") as f:
                        book_files[rel] = f.read()
    return headers, book_files


def parse_file(path, display_name=None):
    """Read and parse one header. Never raises; errors land on the result."""
    name = display_name or os.path.basename(path)
    try:
        # raw text, so scan errors can report byte offsets into the file
        with open(path, "r", encoding="utf-8", newline="") as f:
            text = f.read()
        return FileResult(path=path, result=parse_header(text, name))
    except (UnrealDocError, OSError, UnicodeDecodeError) as exc:
        log.debug("unrealdoc: failed to parse %s: %s", path, exc)
        return FileResult(path=path, error=exc)


def parse_files(headers, jobs=1):
    """Parse ``(path, display_name)`` pairs, on a thread pool when *jobs* > 1."""
    headers = list(headers)
    if jobs is None or jobs <= 1 or len(headers) <= 1:
        return [parse_file(path, name) for path, name in headers]
    with ThreadPoolExecutor(max_workers=jobs) as pool:
        # list() waits for every file before the merge starts
        return list(pool.map(lambda item: parse_file(*item), headers))


def run(input_dirs, settings=None, jobs=1, linker=None):
    """Discover, parse and resolve *input_dirs* into a Document."""
    headers, book_files = discover_inputs(input_dirs)
    log.info("unrealdoc: %d headers, %d book files", len(headers), len(book_files))
    results = parse_files(headers, jobs)

    context = LinkContext()
    book = build_book(book_files, context.warn)
    return build_document(results, book=book, settings=settings, context=context, linker=linker)
