"""
Markdown extension processing.

Handles the private syntax layered on top of doc comments, book pages and
header sources:

  - ``//// [snippet: name]`` ... ``//// [/snippet]`` named code examples
  - ``//// [proxy: name]`` ... ``//// [/proxy]`` display stand-ins for macros
  - ``//// [inject: name]`` points where a proxy replaces the next source line
  - ``//// [ignore]`` ... ``//// [/ignore]`` source hidden from excerpts
  - snippet embeds: a fenced block tagged ``snippet`` holding a snippet name
  - cross-references: ``[`kind: Path::To::Symbol`]()``

Directive lines all start with four slashes, so they are found by a plain
prefix match without tokenizing the surrounding C++ or Markdown.
"""

from __future__ import annotations

import re
import textwrap
from dataclasses import dataclass, field
from functools import cached_property

# ── Directive lines ──

_DIRECTIVE_START_RE = re.compile(r"^[ \t]*////[ \t]*\[[ \t]*/?[ \t]*(?:snippet|proxy|ignore|inject)\b")
_DIRECTIVE_RE = re.compile(
    r"^[ \t]*////[ \t]*\[(?P<closing>/)?(?P<directive>snippet|proxy|ignore|inject)"
    r"(?:[ \t]*:[ \t]*(?P<name>[\w.\-]+))?[ \t]*\][ \t]*$"
)
_PROXY_LINE_RE = re.compile(r"^[ \t]*//// ?")

SPAN_DIRECTIVES = ("snippet", "proxy", "ignore")


@dataclass(frozen=True)
class Directive:
    directive: str
    name: str = ""
    closing: bool = False
    offset: int = 0
    end: int = 0
    line: int = 0


def match_directive(line):
    """Return the Directive on a ``////`` line, or None for any other line.

    Raises ValueError when the line starts a known directive but does not
    finish it properly (missing bracket, missing or unexpected name).
    """
    if not _DIRECTIVE_START_RE.match(line):
        return None
    m = _DIRECTIVE_RE.match(line.rstrip("\r\n"))
    if not m:
        raise ValueError(f"unterminated markup directive: {line.strip()}")
    directive = m.group("directive")
    name = m.group("name") or ""
    closing = bool(m.group("closing"))
    if closing and (name or directive == "inject"):
        raise ValueError(f"malformed closing directive: {line.strip()}")
    if not closing and directive == "ignore" and name:
        raise ValueError(f"[ignore] takes no name: {line.strip()}")
    if not closing and directive != "ignore" and not name:
        raise ValueError(f"[{directive}] requires a name: {line.strip()}")
    return Directive(directive=directive, name=name, closing=closing)


# ── Definitions ──


@dataclass
class Snippet:
    name: str
    body: str
    filename: str = ""
    line: int = 0
    referenced: bool = False

    @property
    def location(self):
        return f"{self.filename}:{self.line}"


@dataclass
class Proxy:
    name: str
    body: str
    doc: DocBlock | None = None
    filename: str = ""
    line: int = 0
    symbols: list = field(default_factory=list)
    referenced: bool = False

    @property
    def location(self):
        return f"{self.filename}:{self.line}"


def _strip_blank_edges(lines):
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    return lines


def extract_definitions(text, directives, proxy_docs=None, filename=""):
    """Cut snippet and proxy bodies out of *text*.

    *directives* are the boundary marks reported by the scanner, in source
    order; span pairing has already been validated there.
    """
    proxy_docs = proxy_docs or {}
    snippets = []
    proxies = []
    opened = {}
    for mark in directives:
        if mark.directive not in ("snippet", "proxy"):
            continue
        if not mark.closing:
            opened[mark.directive] = mark
            continue
        start = opened.pop(mark.directive)
        raw = text[start.end : mark.offset]
        if mark.directive == "snippet":
            lines = _strip_blank_edges(raw.split("\n"))
            body = textwrap.dedent("\n".join(ln.rstrip() for ln in lines))
            snippets.append(Snippet(name=start.name, body=body, filename=filename, line=start.line))
        else:
            lines = [
                _PROXY_LINE_RE.sub("", ln).rstrip()
                for ln in raw.split("\n")
                if _PROXY_LINE_RE.match(ln)
            ]
            proxies.append(
                Proxy(
                    name=start.name,
                    body="\n".join(_strip_blank_edges(lines)),
                    doc=proxy_docs.get(start.name),
                    filename=filename,
                    line=start.line,
                )
            )
    return snippets, proxies


# ── Source excerpts ──


def render_excerpt(source, proxies=None, used=None):
    """Apply ignore/inject rules to a raw declaration excerpt.

    Snippet, proxy and ignore spans disappear with their markers. An inject
    marker and the next non-blank line (with its ``\\`` continuations) are
    replaced by the proxy body, indented like the marker. Unknown proxies
    leave the original code in place. Every inject name met is added to
    *used* when given.
    """
    proxies = proxies or {}
    out = []
    skipping = None
    hiding = False
    for line in source.split("\n"):
        try:
            mark = match_directive(line)
        except ValueError:
            mark = None
        if skipping:
            if mark and mark.closing and mark.directive == skipping:
                skipping = None
            continue
        if mark:
            if mark.directive in SPAN_DIRECTIVES and not mark.closing:
                skipping = mark.directive
            elif mark.directive == "inject":
                proxy = proxies.get(mark.name)
                if used is not None:
                    used.add(mark.name)
                if proxy is not None:
                    indent = line[: len(line) - len(line.lstrip())]
                    out.extend(indent + ln if ln else ln for ln in proxy.body.split("\n"))
                    hiding = True
            continue
        if hiding:
            if not line.strip():
                out.append(line)
                continue
            hiding = line.rstrip().endswith("\\")
            continue
        out.append(line)
    return "\n".join(out)


# ── Markdown tree ──


@dataclass
class TextNode:
    text: str


@dataclass
class CodeNode:
    text: str


@dataclass
class MathNode:
    text: str


@dataclass
class SnippetEmbed:
    name: str
    indent: str = ""
    trailing: str = ""


@dataclass
class CrossRefNode:
    kind: str
    path: str
    label: str


_MARKUP_RE = re.compile(
    r"(?P<embed>^(?P<indent>[ \t]*)```[ \t]*snippet[ \t]*\r?\n"
    r"[ \t]*(?P<snippet>[\w.\-]+)[ \t]*\r?\n"
    r"[ \t]*```[ \t]*(?P<trailing>\r?\n|\Z))"
    r"|(?P<fence>^[ \t]*(?P<ticks>`{3,}|~{3,})[^\n]*\n.*?^[ \t]*(?P=ticks)[ \t]*$)"
    r"|(?P<math>\$\$.+?\$\$|\\\[.+?\\\]|\\\(.+?\\\))"
    r"|(?P<xref>(?<!\\)\[`[ \t]*(?P<kind>\w+)[ \t]*:[ \t]*(?P<path>\w+(?:[ \t]*::[ \t]*\w+)*)"
    r"[ \t]*`\]\([ \t]*\))"
    r"|(?P<code>`[^`\n]+`)",
    re.MULTILINE | re.DOTALL,
)


def parse_markup(text):
    """Split markdown into text, verbatim and extension nodes, left to right."""
    nodes = []
    pos = 0
    for m in _MARKUP_RE.finditer(text):
        if m.start() > pos:
            nodes.append(TextNode(text[pos : m.start()]))
        if m.group("embed"):
            nodes.append(
                SnippetEmbed(
                    name=m.group("snippet"),
                    indent=m.group("indent"),
                    trailing=m.group("trailing"),
                )
            )
        elif m.group("fence") or m.group("code"):
            nodes.append(CodeNode(m.group(0)))
        elif m.group("math"):
            nodes.append(MathNode(m.group(0)))
        else:
            path = re.sub(r"\s*::\s*", "::", m.group("path"))
            nodes.append(
                CrossRefNode(
                    kind=m.group("kind"),
                    path=path,
                    label=m.group(0)[1 : m.group(0).index("]")],
                )
            )
        pos = m.end()
    if pos < len(text):
        nodes.append(TextNode(text[pos:]))
    return nodes


def render_markup(nodes, resolve_ref=None, resolve_snippet=None):
    """Print a markup tree back to markdown.

    *resolve_ref(kind, path)* returns ``(url, display)`` or None;
    *resolve_snippet(name)* returns the snippet body or None. Unresolved
    cross-references keep their label as plain code text; unresolved
    snippet embeds vanish.
    """
    parts = []
    for node in nodes:
        if isinstance(node, SnippetEmbed):
            body = resolve_snippet(node.name) if resolve_snippet else None
            if body is None:
                continue
            fence = node.indent + "```"
            lines = [node.indent + ln if ln else ln for ln in body.split("\n")]
            parts.append("\n".join([fence + "cpp", *lines, fence]) + node.trailing)
        elif isinstance(node, CrossRefNode):
            target = resolve_ref(node.kind, node.path) if resolve_ref else None
            if target is None:
                parts.append(node.label)
            else:
                url, display = target
                parts.append(f"[`{display}`]({url})")
        else:
            parts.append(node.text)
    return "".join(parts)


@dataclass
class DocBlock:
    """Markdown attached to a symbol, parameter or book page."""

    text: str
    rendered: str | None = None

    @cached_property
    def nodes(self):
        return parse_markup(self.text)

    @property
    def links(self):
        return [n for n in self.nodes if isinstance(n, CrossRefNode)]

    @property
    def embeds(self):
        return [n for n in self.nodes if isinstance(n, SnippetEmbed)]

    def __str__(self):
        return self.rendered if self.rendered is not None else self.text
