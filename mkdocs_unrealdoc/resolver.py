"""
Symbol tree and two-pass resolver.

Pass 1 (``aggregate``) merges every file's symbol fragments into one tree
keyed by ``(kind, qualified path)`` and collects snippets and proxies.
Pass 2 (``Resolver.resolve``) runs once the tree is complete: it applies
proxy injections, renders source excerpts, and rewrites every doc comment
and book page against the tree.

Problems found during Pass 2 never abort the run. They are collected as
diagnostics on the LinkContext and logged together at the end.
"""

from __future__ import annotations

import copy
import dataclasses
import logging
from dataclasses import dataclass, field

from .book import BookTree
from .config import Settings
from .errors import Diagnostic, DuplicateNameError
from .markup import parse_markup, render_excerpt, render_markup
from .parser import Access, SymbolKind
from .renderer import symbol_url

log = logging.getLogger("mkdocs.plugins.unrealdoc")

REFERENCE_KINDS = {kind.name.lower(): kind for kind in SymbolKind}


class LinkContext:
    """Snippet and proxy tables plus the diagnostics of one run."""

    def __init__(self):
        self.snippets = {}
        self.proxies = {}
        self.diagnostics = []

    def add_snippet(self, snippet):
        first = self.snippets.get(snippet.name)
        if first is not None:
            raise DuplicateNameError("snippet", snippet.name, first.location, snippet.location)
        self.snippets[snippet.name] = snippet

    def add_proxy(self, proxy):
        first = self.proxies.get(proxy.name)
        if first is not None:
            raise DuplicateNameError("proxy", proxy.name, first.location, proxy.location)
        self.proxies[proxy.name] = proxy

    def warn(self, code, message, filename="", line=0):
        self.diagnostics.append(Diagnostic(code, message, filename, line))

    def report(self):
        for diagnostic in self.diagnostics:
            log.warning("unrealdoc: %s", diagnostic)


def _completeness(symbol):
    return (symbol.has_body, symbol.doc is not None)


_KEEP_ON_MERGE = ("children", "qualified_path", "injects")


class SymbolTree:
    def __init__(self):
        self.symbols = []
        self._index = {}
        self._parents = {}

    def __len__(self):
        return len(self._index)

    def insert(self, symbol, parent=None):
        """Add *symbol* under *parent*, merging with an existing equal key."""
        key = (symbol.kind, tuple(symbol.qualified_path))
        existing = self._index.get(key)
        children = symbol.children
        if existing is None:
            symbol.children = []
            self._index[key] = symbol
            self._parents[id(symbol)] = parent
            (parent.children if parent is not None else self.symbols).append(symbol)
            target = symbol
        else:
            self._merge(existing, symbol)
            target = existing
        for child in children:
            self.insert(child, target)
        return target

    @staticmethod
    def _merge(existing, incoming):
        for name in incoming.injects:
            if name not in existing.injects:
                existing.injects.append(name)
        if _completeness(incoming) > _completeness(existing):
            fallback = existing.doc
            for f in dataclasses.fields(existing):
                if f.name not in _KEEP_ON_MERGE:
                    setattr(existing, f.name, getattr(incoming, f.name))
            if existing.doc is None:
                existing.doc = fallback
        elif existing.doc is None and incoming.doc is not None:
            existing.doc = incoming.doc

    def find(self, kind, path):
        if isinstance(path, str):
            path = tuple(path.split("::"))
        return self._index.get((kind, tuple(path)))

    def parent(self, symbol):
        return self._parents.get(id(symbol))

    def page_of(self, symbol):
        """Top-level symbol whose page documents *symbol*."""
        parent = self.parent(symbol)
        while parent is not None:
            symbol, parent = parent, self.parent(parent)
        return symbol

    def walk(self, symbols=None):
        for symbol in self.symbols if symbols is None else symbols:
            yield symbol
            yield from self.walk(symbol.children)

    def sort(self):
        """Order top-level symbols and type members by name; enum values keep declaration order."""

        def _sort(symbols):
            symbols.sort(key=lambda s: s.name)
            for symbol in symbols:
                if symbol.kind is not SymbolKind.ENUM:
                    _sort(symbol.children)

        _sort(self.symbols)


def aggregate(results, context=None):
    """Pass 1: merge parsed files into a SymbolTree.

    *results* are FileResults; the first fatal error (in path order) is
    raised once every file has been looked at.
    """
    context = context if context is not None else LinkContext()
    tree = SymbolTree()
    ordered = sorted(results, key=lambda r: r.path)
    for item in ordered:
        if item.error is not None:
            raise item.error
    for item in ordered:
        result = item.result
        for symbol in result.symbols:
            tree.insert(symbol)
        for snippet in result.snippets:
            context.add_snippet(snippet)
        for proxy in result.proxies:
            context.add_proxy(proxy)
        context.diagnostics.extend(result.diagnostics)
    log.info("unrealdoc: %d files merged, %d symbols indexed", len(ordered), len(tree))
    return tree, context


def _repath(symbol, prefix):
    symbol.qualified_path = (*prefix, symbol.name)
    for child in symbol.children:
        _repath(child, symbol.qualified_path)


class Resolver:
    """Pass 2 over a complete SymbolTree."""

    def __init__(self, tree, context, linker=None):
        self.tree = tree
        self.context = context
        self.linker = linker or symbol_url

    def resolve(self, book=None):
        self._apply_injects()
        self._render_excerpts()
        for symbol in self.tree.walk():
            self._resolve_symbol(symbol)
        if book is not None:
            if book.root_content is not None:
                book.root_rendered = self.render(book.root_content, None, "documentation.md")
            for page in book.walk():
                page.rendered = self.render(page.content, None, page.path)
        self._check_unreferenced()
        self.tree.sort()
        self.context.report()

    def _apply_injects(self):
        for symbol in list(self.tree.walk()):
            for name in symbol.injects:
                proxy = self.context.proxies.get(name)
                if proxy is None:
                    self.context.warn(
                        "unresolved-proxy",
                        f"{symbol.path} injects unknown proxy '{name}'",
                        symbol.filename,
                        symbol.line,
                    )
                    continue
                proxy.referenced = True
                for member in proxy.symbols:
                    clone = copy.deepcopy(member)
                    _repath(clone, symbol.qualified_path)
                    clone.access = Access.PUBLIC
                    clone.filename = proxy.filename
                    clone.line = proxy.line
                    if clone.doc is None and proxy.doc is not None:
                        clone.doc = copy.deepcopy(proxy.doc)
                    self.tree.insert(clone, symbol)

    def _render_excerpts(self):
        used = set()
        for symbol in self.tree.walk():
            if symbol.source:
                symbol.excerpt = render_excerpt(symbol.source, self.context.proxies, used)
        for name in used:
            if name in self.context.proxies:
                self.context.proxies[name].referenced = True

    def _owner(self, symbol):
        """The symbol ``Self`` names inside *symbol*'s docs."""
        if symbol.is_type:
            return symbol
        return self.tree.parent(symbol) or symbol

    def _resolve_symbol(self, symbol):
        owner = self._owner(symbol)
        if symbol.doc is not None:
            symbol.doc.rendered = self.render(symbol.doc.text, owner, symbol.filename, symbol.line)
        for param in symbol.parameters:
            if param.doc is not None:
                param.doc.rendered = self.render(param.doc.text, owner, symbol.filename, symbol.line)

    def render(self, text, owner, filename="", line=0):
        """Resolve one markdown text; *owner* is what ``Self`` refers to."""
        if owner is not None:
            text = text.replace("$Self$", owner.name)

        def resolve_ref(kind, path):
            return self._link(kind, path, owner, filename, line)

        def resolve_snippet(name):
            snippet = self.context.snippets.get(name)
            if snippet is None:
                self.context.warn("unresolved-snippet", f"unknown snippet '{name}'", filename, line)
                return None
            snippet.referenced = True
            return snippet.body

        return render_markup(parse_markup(text), resolve_ref, resolve_snippet)

    def lookup(self, kind, segments):
        """Exact lookup, falling back to a direct child of the parent path."""
        target = self.tree.find(kind, segments)
        if target is None and len(segments) > 1:
            parent = self.tree.find(kind, segments[:-1])
            if parent is not None:
                target = next((c for c in parent.children if c.name == segments[-1]), None)
        return target

    def _link(self, kind_name, path, owner, filename, line):
        kind = REFERENCE_KINDS.get(kind_name)
        segments = tuple(path.split("::"))
        if segments[0] == "Self" and owner is not None:
            segments = (*owner.qualified_path, *segments[1:])
        target = self.lookup(kind, segments) if kind is not None else None
        if target is None:
            self.context.warn(
                "unresolved-reference",
                f"unresolved reference [{kind_name}: {path}]",
                filename,
                line,
            )
            return None
        return self.linker(self.tree.page_of(target), target), "::".join(segments)

    def _check_unreferenced(self):
        for snippet in self.context.snippets.values():
            if not snippet.referenced:
                self.context.warn(
                    "unreferenced-snippet",
                    f"snippet '{snippet.name}' is never embedded",
                    snippet.filename,
                    snippet.line,
                )
        for proxy in self.context.proxies.values():
            if not proxy.referenced:
                self.context.warn(
                    "unreferenced-proxy",
                    f"proxy '{proxy.name}' is never injected",
                    proxy.filename,
                    proxy.line,
                )


# ── Document ──


@dataclass
class Document:
    """The finished model handed to backends."""

    tree: SymbolTree
    context: LinkContext
    book: BookTree = field(default_factory=BookTree)
    settings: Settings = field(default_factory=Settings)

    @property
    def symbols(self):
        return self.tree.symbols

    @property
    def diagnostics(self):
        return self.context.diagnostics

    @property
    def snippets(self):
        return self.context.snippets

    @property
    def proxies(self):
        return self.context.proxies

    def find(self, kind, path):
        return self.tree.find(kind, path)

    def all_snippets(self):
        return sorted(self.context.snippets.values(), key=lambda s: s.name)

    def active_snippets(self):
        return [s for s in self.all_snippets() if s.referenced]

    def _visible(self, symbol):
        settings = self.settings
        if symbol.access is Access.PRIVATE and not settings.document_private:
            return None
        if symbol.access is Access.PROTECTED and not settings.document_protected:
            return None
        if symbol.kind is SymbolKind.ENUM:
            children = list(symbol.children)
            keep = settings.show_all or symbol.doc is not None
        else:
            children = [c for c in map(self._visible, symbol.children) if c is not None]
            keep = settings.show_all or symbol.doc is not None or (symbol.is_type and bool(children))
        if not keep:
            return None
        return dataclasses.replace(symbol, children=children)

    def navigable(self):
        """Visibility-filtered copies of the top-level symbols."""
        return [s for s in map(self._visible, self.tree.symbols) if s is not None]


def build_document(results, book=None, settings=None, context=None, linker=None):
    """Run both passes and return the Document."""
    tree, context = aggregate(results, context)
    book = book if book is not None else BookTree()
    Resolver(tree, context, linker).resolve(book)
    return Document(tree=tree, context=context, book=book, settings=settings or Settings())
