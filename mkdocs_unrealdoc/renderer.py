"""
Markdown renderer for the resolved documentation model.

Turns navigable symbols into reference pages (one per top-level symbol,
members anchored inside it), builds the reference and book listings and
the MkDocs nav structure. Cross-reference URLs produced by ``symbol_url``
are rooted at the docs directory; ``relativize_links`` rewrites them for
the page they end up on.
"""

from __future__ import annotations

import posixpath
import re

from .book import PageKind
from .parser import SymbolKind

_KIND_LABELS = {
    SymbolKind.ENUM: "Enum",
    SymbolKind.STRUCT: "Struct",
    SymbolKind.CLASS: "Class",
    SymbolKind.FUNCTION: "Function",
    SymbolKind.PROPERTY: "Property",
    SymbolKind.ENUM_VALUE: "Value",
}

_KIND_ANCHOR_PREFIX = {
    SymbolKind.ENUM: "enum",
    SymbolKind.STRUCT: "struct",
    SymbolKind.CLASS: "class",
    SymbolKind.FUNCTION: "func",
    SymbolKind.PROPERTY: "prop",
    SymbolKind.ENUM_VALUE: "enumval",
}

# reference sections, in page order
_KIND_SECTIONS = (
    (SymbolKind.ENUM, "enums", "Enums"),
    (SymbolKind.STRUCT, "structs", "Structs"),
    (SymbolKind.CLASS, "classes", "Classes"),
    (SymbolKind.FUNCTION, "functions", "Functions"),
    (SymbolKind.PROPERTY, "properties", "Properties"),
)
_KIND_DIRS = {kind: dirname for kind, dirname, _ in _KIND_SECTIONS}

_MEMBER_SECTIONS = (
    ((SymbolKind.ENUM, SymbolKind.STRUCT, SymbolKind.CLASS), "Types"),
    ((SymbolKind.PROPERTY,), "Properties"),
    ((SymbolKind.FUNCTION,), "Methods"),
)


def anchor_id(symbol, page=None):
    """Anchor of *symbol* on the page of *page* (its top-level ancestor)."""
    prefix = _KIND_ANCHOR_PREFIX.get(symbol.kind, "sym")
    if page is None:
        return f"{prefix}-{symbol.name}"
    rest = symbol.qualified_path[len(page.qualified_path) :]
    return f"{prefix}-{'-'.join(rest)}"


def page_uri(symbol, prefix=""):
    uri = f"reference/{_KIND_DIRS.get(symbol.kind, 'symbols')}/{symbol.name}.md"
    return f"{prefix.strip('/')}/{uri}" if prefix.strip("/") else uri


def symbol_url(page, symbol, prefix=""):
    """Docs-rooted link to *symbol*, documented on the page of *page*."""
    url = "/" + page_uri(page, prefix)
    if tuple(symbol.qualified_path) != tuple(page.qualified_path):
        url += "#" + anchor_id(symbol, page)
    return url


_ABS_LINK_RE = re.compile(r"\]\(/(?P<path>[^)\s#]*\.md)(?P<anchor>#[^)\s]*)?\)")


def relativize_links(markdown, current_uri):
    """Rewrite docs-rooted ``](/x/y.md#a)`` links relative to *current_uri*."""
    base = posixpath.dirname(current_uri) or "."

    def _sub(m):
        rel = posixpath.relpath(m.group("path"), base)
        return f"]({rel}{m.group('anchor') or ''})"

    return _ABS_LINK_RE.sub(_sub, markdown)


_XREF_LINK_RE = re.compile(r"\[(?P<label>`[^`\]]*`)\]\(/(?P<path>[^)\s#]*\.md)(?:#[^)\s]*)?\)")


def unlink_missing(markdown, pages, root):
    """Turn cross-references into pages under *root* that are not in *pages* into code text."""

    def _sub(m):
        path = m.group("path")
        if path.startswith(root) and path not in pages:
            return m.group("label")
        return m.group(0)

    return _XREF_LINK_RE.sub(_sub, markdown)


class RenderConfig:
    def __init__(
        self,
        *,
        prefix="",
        title="Documentation",
        header="",
        footer="",
        show_source=True,
    ):
        self.prefix = prefix.strip("/")
        self.title = title
        self.header = header
        self.footer = footer
        self.show_source = show_source

    def uri(self, path):
        return f"{self.prefix}/{path}" if self.prefix else path


def _heading(text, level):
    return f"{'#' * level} {text}"


def _code(text, language="cpp"):
    return [f"```{language}", text, "```", ""]


def _signature(symbol):
    if symbol.kind is SymbolKind.ENUM:
        values = ",\n".join(f"    {v.signature or v.name}" for v in symbol.children)
        head = symbol.signature or f"enum {symbol.name}"
        return f"{head}\n{{\n{values}\n}};" if values else f"{head};"
    sig = symbol.signature or symbol.name
    if symbol.template_params:
        params = ", ".join(f"typename {p}" if p else "typename" for p in symbol.template_params)
        sig = f"template <{params}>\n{sig}"
    return sig


def _specifiers(symbol):
    if not symbol.reflected:
        return []
    parts = ["**_Reflection-enabled_**", ""]
    plain = [(k, v) for k, v in symbol.meta if not k.lower().startswith("meta.")]
    meta = [(k.split(".", 1)[1], v) for k, v in symbol.meta if k.lower().startswith("meta.")]
    for title, pairs in (("Specifiers", plain), ("Meta Specifiers", meta)):
        if not pairs:
            continue
        parts.append(f"**{title}:**")
        parts.append("")
        for key, value in pairs:
            parts.append(f"- **{key}**" if value is None else f"- **{key}** = _{value}_")
        parts.append("")
    return parts


def _parameters(symbol):
    if not symbol.parameters:
        return []
    parts = ["**Arguments:**", ""]
    for param in symbol.parameters:
        decl = f"{param.type} {param.name}".strip()
        if param.default is not None:
            decl += f" = {param.default}"
        line = f"- `{decl}`" if param.name else f"- _Unnamed_ `{decl}`"
        if param.doc is not None:
            doc = str(param.doc).replace("\n", "\n  ")
            line += f": {doc}"
        parts.append(line)
    parts.append("")
    return parts


def render_symbol(symbol, page=None, level=1, cfg=None):
    """Markdown for one symbol and, recursively, its members."""
    if cfg is None:
        cfg = RenderConfig()
    page = page or symbol
    parts = []
    label = _KIND_LABELS.get(symbol.kind, "")
    if symbol is not page:
        parts += [f'<a id="{anchor_id(symbol, page)}"></a>', ""]
    parts.append(_heading(f"{label}: `{symbol.name}`", level))
    parts.append("")
    parts += _code(_signature(symbol))
    parts += _specifiers(symbol)
    if symbol.doc is not None:
        parts += [str(symbol.doc), ""]
    parts += _parameters(symbol)
    if symbol.kind is SymbolKind.ENUM:
        parts += _enum_values(symbol, page, level)
    else:
        for kinds, title in _MEMBER_SECTIONS:
            members = [c for c in symbol.children if c.kind in kinds]
            if not members:
                continue
            parts += ["---", "", _heading(title, level + 1), ""]
            for member in members:
                parts.append(render_symbol(member, page, min(level + 2, 6), cfg))
    if cfg.show_source and symbol is page and symbol.excerpt and symbol.kind is not SymbolKind.ENUM:
        parts += ["<details><summary>Source</summary>", ""]
        parts += _code(symbol.excerpt)
        parts += ["</details>", ""]
    return "\n".join(parts)


def _enum_values(symbol, page, level):
    if not symbol.children:
        return []
    parts = ["---", "", _heading("Values", level + 1), ""]
    for value in symbol.children:
        line = f'- <a id="{anchor_id(value, page)}"></a>`{value.name}`'
        if value.default_value is not None:
            line += f" = `{value.default_value}`"
        if value.doc is not None:
            line += ": " + str(value.doc).replace("\n", "\n  ")
        parts.append(line)
    parts.append("")
    return parts


def _by_section(symbols):
    for kind, dirname, title in _KIND_SECTIONS:
        members = [s for s in symbols if s.kind is kind]
        if members:
            yield dirname, title, members


def render_reference_index(symbols, cfg):
    parts = [_heading("C++ API Reference", 1), ""]
    for dirname, title, members in _by_section(symbols):
        parts += [_heading(title, 2), ""]
        parts += [f"- [`{s.name}`](/{page_uri(s, cfg.prefix)})" for s in members]
        parts.append("")
    return "\n".join(parts)


def _book_listing(page_path, children):
    base = posixpath.dirname(page_path) or "."
    return [f"- [{c.title}]({posixpath.relpath(c.path, base)})" for c in children]


def render_pages(document, cfg=None):
    """All generated pages of *document* as ``{uri: markdown}``."""
    if cfg is None:
        cfg = RenderConfig()
    pages = {}
    symbols = document.navigable()
    book = document.book

    index = [_heading(cfg.title, 1), ""]
    if book.root_content is not None:
        index += [book.root_rendered or book.root_content, ""]
    index += [_heading("Contents", 2), ""]
    if book.pages:
        index.append(f"- [Book](/{cfg.uri('book/index.md')})")
    index.append(f"- [C++ API Reference](/{cfg.uri('reference.md')})")
    pages[cfg.uri("index.md")] = "\n".join(index) + "\n"

    pages[cfg.uri("reference.md")] = render_reference_index(symbols, cfg)
    for dirname, title, members in _by_section(symbols):
        listing = [_heading(title, 1), ""]
        listing += [f"- [`{s.name}`](/{page_uri(s, cfg.prefix)})" for s in members]
        pages[cfg.uri(f"reference/{dirname}.md")] = "\n".join(listing) + "\n"
        for symbol in members:
            pages[page_uri(symbol, cfg.prefix)] = render_symbol(symbol, cfg=cfg)

    if book.pages:
        root = [_heading("Book", 1), "", _heading("Pages", 2), ""]
        root += _book_listing("index.md", book.pages)
        pages[cfg.uri("book/index.md")] = "\n".join(root) + "\n"
        for page in book.walk():
            content = page.rendered if page.rendered is not None else page.content
            if page.source_kind is PageKind.DIRECTORY:
                if not content.strip():
                    content = _heading(page.title, 1)
                content += "\n\n" + "\n".join([_heading("Pages", 2), "", *_book_listing(page.path, page.children)])
            pages[cfg.uri(f"book/{page.path}")] = content.rstrip("\n") + "\n"

    # filtered symbols keep their resolved links in the model but get no page
    reference_root = cfg.uri("reference/")
    for uri, content in pages.items():
        body = relativize_links(unlink_missing(content, pages, reference_root), uri)
        if cfg.header or cfg.footer:
            body = f"{cfg.header}\n{body}\n{cfg.footer}"
        pages[uri] = body
    return pages


def _book_nav(pages, cfg):
    nav = []
    for page in pages:
        uri = cfg.uri(f"book/{page.path}")
        if page.source_kind is PageKind.DIRECTORY:
            nav.append({page.title: [{"Overview": uri}, *_book_nav(page.children, cfg)]})
        else:
            nav.append({page.title: uri})
    return nav


def build_nav(document, cfg=None):
    """MkDocs nav entries for the generated pages."""
    if cfg is None:
        cfg = RenderConfig()
    nav = [{"Home": cfg.uri("index.md")}]
    if document.book.pages:
        nav.append({"Book": [{"Overview": cfg.uri("book/index.md")}, *_book_nav(document.book.pages, cfg)]})
    reference = [{"Overview": cfg.uri("reference.md")}]
    for dirname, title, members in _by_section(document.navigable()):
        entries = [{"Overview": cfg.uri(f"reference/{dirname}.md")}]
        entries += [{s.name: page_uri(s, cfg.prefix)} for s in members]
        reference.append({title: entries})
    nav.append({"C++ API Reference": reference})
    return nav
