"""
Declaration parser for Unreal-flavored C++ headers.

Walks the scanner's event stream and builds per-file symbol fragments:
enums with their values, structs and classes with members, free functions
and properties, each with its doc comment, macro tag and template header.
Snippet and proxy bodies are cut out through the markup processor.

This is deliberately tolerant: a statement it cannot classify is skipped
with a ``skipped-declaration`` diagnostic and parsing goes on.
"""

from __future__ import annotations

import logging
import re
import textwrap
from dataclasses import dataclass, field
from enum import Enum, auto

from .errors import Diagnostic
from .markup import DocBlock, extract_definitions
from .scanner import EventKind, find_top_level, iter_top_level, normalize_source, parse_meta, scan, split_top_level

log = logging.getLogger("mkdocs.plugins.unrealdoc")


class SymbolKind(Enum):
    ENUM = auto()
    STRUCT = auto()
    CLASS = auto()
    FUNCTION = auto()
    PROPERTY = auto()
    ENUM_VALUE = auto()


TYPE_KINDS = (SymbolKind.ENUM, SymbolKind.STRUCT, SymbolKind.CLASS)


class Access(Enum):
    PUBLIC = auto()
    PROTECTED = auto()
    PRIVATE = auto()


class MacroTag(Enum):
    NONE = auto()
    UCLASS = auto()
    USTRUCT = auto()
    UENUM = auto()
    UFUNCTION = auto()
    UPROPERTY = auto()


@dataclass
class Parameter:
    name: str
    type: str
    default: str | None = None
    doc: DocBlock | None = None


@dataclass
class Symbol:
    kind: SymbolKind
    name: str
    qualified_path: tuple = ()
    access: Access = Access.PUBLIC
    template_params: tuple = ()
    macro_tag: MacroTag = MacroTag.NONE
    meta: tuple = ()
    doc: DocBlock | None = None
    children: list[Symbol] = field(default_factory=list)
    parameters: list[Parameter] = field(default_factory=list)
    signature: str = ""
    return_type: str = ""
    value_type: str = ""
    default_value: str | None = None
    bases: tuple = ()
    api: str = ""
    is_static: bool = False
    is_virtual: bool = False
    is_const: bool = False
    is_override: bool = False
    has_body: bool = False
    filename: str = ""
    line: int = 0
    source: str = ""
    excerpt: str = ""
    injects: list[str] = field(default_factory=list)

    @property
    def path(self):
        return "::".join(self.qualified_path)

    @property
    def is_type(self):
        return self.kind in TYPE_KINDS

    @property
    def reflected(self):
        return self.macro_tag is not MacroTag.NONE

    def members(self, kind):
        return [c for c in self.children if c.kind is kind]


@dataclass
class HeaderResult:
    filename: str
    symbols: list[Symbol]
    snippets: list = field(default_factory=list)
    proxies: list = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)


@dataclass(frozen=True)
class FileResult:
    """Outcome of parsing one input file: a result or the fatal error."""

    path: str
    result: HeaderResult | None = None
    error: Exception | None = None


# ── Statement patterns ──

_SILENT_KEYWORDS = {"using", "typedef", "friend", "static_assert", "template"}
_TRANSPARENT_RE = re.compile(r'^(?:inline\s+)?namespace\b|^extern\s+"C(?:\+\+)?"$')
_TYPE_KEYWORD_RE = re.compile(r"^(?:typedef\s+)?(?:class|struct|union|enum)\b")
_TYPE_DECL_RE = re.compile(
    r"^(?P<keyword>class|struct|enum\s+class|enum\s+struct|enum)\s+"
    r"(?P<prefix>(?:(?:alignas\s*\([^)]*\)|\[\[[^\]]*\]\]|[A-Z][A-Z0-9_]*)\s+)*)"
    r"(?P<name>\w+)\s*(?:final\s*)?(?::\s*(?P<bases>.*))?$",
    re.DOTALL,
)
_FUNC_NAME_RE = re.compile(r"(?P<name>~?\w+(?:\s*::\s*~?\w+)*|\boperator\b\s*\S+)\s*$")
_API_RE = re.compile(r"^[A-Z][A-Z0-9_]*_API$")
_MACRO_WORD_RE = re.compile(r"^(?:[A-Z][A-Z0-9]*_[A-Z0-9_]+|FORCEINLINE|FORCENOINLINE)$")
_FUNC_SPECIFIERS = {"virtual", "static", "inline", "explicit", "constexpr", "consteval", "extern"}
_PROP_SPECIFIERS = {"static", "mutable", "inline", "extern"}
_BUILTIN_WORDS = {
    "int", "char", "float", "double", "bool", "long", "short",
    "unsigned", "signed", "void", "auto", "const", "volatile",
}
_QUALIFIER_WORDS = {"const", "volatile", "struct", "class", "enum", "typename", "unsigned", "signed"}
_DECLARATOR_RE = re.compile(r"^(?P<type>.*[\s*&>])(?P<name>\w+)\s*(?P<array>(?:\[[^\]]*\]\s*)*)$", re.DOTALL)
_BRACE_INIT_RE = re.compile(r"^(?P<decl>.*?[\w\]])\s*(?P<init>\{.*\})$", re.DOTALL)
_UMETA_RE = re.compile(r"\bUMETA\s*\((?P<meta>.*)\)", re.DOTALL)


def _normalize(text):
    return " ".join(text.split())


def _clip(text, limit=60):
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _doc(lines):
    lines = list(lines)
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    return DocBlock("\n".join(lines)) if lines else None


def _assignment_index(text):
    for i, c in iter_top_level(text):
        if c != "=":
            continue
        prev = text[i - 1] if i else ""
        nxt = text[i + 1] if i + 1 < len(text) else ""
        if prev in "=!<>" or nxt == "=":
            continue
        if text[:i].rstrip().endswith("operator"):
            continue
        return i
    return -1


def _single_colon_index(text):
    for i, c in iter_top_level(text):
        if c == ":" and text[i - 1 : i] != ":" and text[i + 1 : i + 2] != ":":
            return i
    return -1


def _matching_paren(text, start):
    depth = 0
    for i in range(start, len(text)):
        if text[i] == "(":
            depth += 1
        elif text[i] == ")":
            depth -= 1
            if depth == 0:
                return i
    return len(text)


def _parse_declarator(text):
    """Split ``type name[N] = default`` into its parts, or None."""
    default = None
    eq = _assignment_index(text)
    if eq >= 0:
        default = text[eq + 1 :].strip()
        text = text[:eq].rstrip()
    else:
        m = _BRACE_INIT_RE.match(text)
        if m:
            text, default = m.group("decl"), m.group("init")
    colon = _single_colon_index(text)
    if colon >= 0:
        text = text[:colon].rstrip()
    m = _DECLARATOR_RE.match(text)
    if not m or m.group("name") in _BUILTIN_WORDS:
        return None
    if set(m.group("type").split()) <= _QUALIFIER_WORDS:
        return None
    array = "".join(m.group("array").split())
    return m.group("type").strip(), m.group("name"), array, default


def parse_parameter(text):
    m = _parse_declarator(text)
    if m is None:
        eq = _assignment_index(text)
        if eq >= 0:
            return Parameter(name="", type=text[:eq].strip(), default=text[eq + 1 :].strip())
        return Parameter(name="", type=text.strip())
    type_, name, array, default = m
    return Parameter(name=name, type=type_ + array, default=default)


@dataclass
class _Pending:
    doc: list = field(default_factory=list)
    param_docs: dict = field(default_factory=dict)
    tag: object = None
    template: tuple = ()
    start: int | None = None

    def mark(self, offset):
        if self.start is None:
            self.start = offset


# ── Parser ──


class _Parser:
    def __init__(self, text, events, filename):
        self.text = text
        self.events = events
        self.filename = filename
        self.pos = 0
        self.diagnostics = []
        self.proxy_docs = {}

    def warn(self, ev, message):
        self.diagnostics.append(Diagnostic("skipped-declaration", message, self.filename, ev.line))

    def parse(self):
        symbols = []
        self._scope(None, symbols, Access.PUBLIC)
        return symbols

    def _path(self, owner, name):
        return (*owner.qualified_path, name) if owner is not None else (name,)

    def _source(self, start, end):
        line_start = self.text.rfind("\n", 0, start) + 1
        return textwrap.dedent(self.text[line_start:end]).rstrip()

    def _peek(self):
        return self.events[self.pos] if self.pos < len(self.events) else None

    def _skip_body(self):
        """Consume events up to and including the brace closing the current block."""
        depth = 1
        while self.pos < len(self.events):
            ev = self.events[self.pos]
            self.pos += 1
            if ev.kind is EventKind.ENTER_BRACE:
                depth += 1
            elif ev.kind is EventKind.EXIT_BRACE:
                depth -= 1
                if depth == 0:
                    return ev
        return None

    def _scope(self, owner, out, access):
        pending = _Pending()
        while self.pos < len(self.events):
            ev = self.events[self.pos]
            self.pos += 1
            kind = ev.kind
            if kind is EventKind.EXIT_BRACE:
                return ev
            if kind is EventKind.BLANK_LINE:
                if pending.tag is None and not pending.template:
                    pending = _Pending()
            elif kind is EventKind.DOC_COMMENT_LINE:
                if ev.param_index is None:
                    pending.doc.append(ev.text)
                else:
                    pending.param_docs.setdefault(ev.param_index, []).append(ev.text)
            elif kind is EventKind.MACRO_TAG:
                pending.tag = ev
                pending.mark(ev.offset)
            elif kind is EventKind.TEMPLATE_HEADER:
                pending.template = ev.params
                pending.mark(ev.offset)
            elif kind is EventKind.ACCESS_SPECIFIER:
                access = Access[ev.text.upper()]
                pending = _Pending()
            elif kind is EventKind.DIRECTIVE:
                self._directive(ev, owner, pending)
            elif kind is EventKind.RAW_LINE:
                if ev.terminator == "{":
                    self._block(ev, owner, out, access, pending)
                else:
                    self._statement(ev, owner, out, access, pending)
                pending = _Pending()
            elif kind is EventKind.ENTER_BRACE:
                self._skip_body()
        return None

    def _directive(self, ev, owner, pending):
        mark = ev.directive
        if mark.closing:
            return
        if mark.directive == "proxy":
            doc = _doc(pending.doc)
            if doc is not None:
                self.proxy_docs[mark.name] = doc
            pending.doc.clear()
        elif mark.directive == "inject" and owner is not None:
            owner.injects.append(mark.name)

    # ── Blocks ──

    def _block(self, ev, owner, out, access, pending):
        self.pos += 1  # the ENTER_BRACE that follows
        stmt = _normalize(ev.text)
        if _TRANSPARENT_RE.match(stmt):
            self._scope(owner, out, access)
            return
        head = _TYPE_DECL_RE.match(stmt)
        if head:
            symbol = self._type(head, stmt, ev, owner, access, pending)
            symbol.has_body = True
            if symbol.kind is SymbolKind.ENUM:
                close = self._enum_body(symbol)
            else:
                member_access = Access.PUBLIC if symbol.reflected else Access.PRIVATE
                close = self._scope(symbol, symbol.children, member_access)
            end = close.offset + 1 if close is not None else len(self.text)
            end = self._declarator_tail(close, end)
            symbol.source = self._source(pending.start if pending.start is not None else ev.offset, end)
            out.append(symbol)
            return
        if not stmt or _TYPE_KEYWORD_RE.match(stmt):
            # anonymous blocks, unions and unnamed types
            self._skip_body()
            return
        symbol = self._function(stmt, ev, owner, access, pending)
        self._skip_body()
        if symbol is not None:
            symbol.has_body = True
            start = pending.start if pending.start is not None else ev.offset
            symbol.source = self._source(start, ev.end - 1)
            out.append(symbol)

    def _declarator_tail(self, close, end):
        # `};` or `} Instance;` right after a type body
        nxt = self._peek()
        if (
            close is not None
            and nxt is not None
            and nxt.kind is EventKind.RAW_LINE
            and nxt.terminator == ";"
            and nxt.line == close.line
        ):
            self.pos += 1
            return nxt.end
        if self.text[end : end + 1] == ";":
            return end + 1
        return end

    def _type(self, head, stmt, ev, owner, access, pending):
        keyword = head.group("keyword").split()[0]
        kind = {"class": SymbolKind.CLASS, "struct": SymbolKind.STRUCT, "enum": SymbolKind.ENUM}[keyword]
        prefix = head.group("prefix").split()
        api = " ".join(w for w in prefix if re.match(r"^[A-Z][A-Z0-9_]*$", w))
        bases = ()
        value_type = ""
        if head.group("bases"):
            if kind is SymbolKind.ENUM:
                value_type = head.group("bases").strip()
            else:
                bases = tuple(
                    re.sub(r"^(?:(?:public|protected|private|virtual)\s+)+", "", b)
                    for b in split_top_level(head.group("bases"))
                )
        tag = pending.tag
        return Symbol(
            kind=kind,
            name=head.group("name"),
            qualified_path=self._path(owner, head.group("name")),
            access=access,
            template_params=pending.template,
            macro_tag=MacroTag[tag.text] if tag is not None else MacroTag.NONE,
            meta=tag.meta if tag is not None else (),
            doc=_doc(pending.doc),
            signature=stmt,
            value_type=value_type,
            bases=bases,
            api=api,
            filename=self.filename,
            line=ev.line,
        )

    def _enum_body(self, enum):
        pending = []
        while self.pos < len(self.events):
            ev = self.events[self.pos]
            self.pos += 1
            if ev.kind is EventKind.EXIT_BRACE:
                return ev
            if ev.kind is EventKind.BLANK_LINE:
                pending = []
            elif ev.kind is EventKind.DOC_COMMENT_LINE:
                pending.append(ev.text)
            elif ev.kind is EventKind.ENTER_BRACE:
                self._skip_body()
            elif ev.kind is EventKind.RAW_LINE:
                for item in split_top_level(ev.text):
                    value = self._enum_value(enum, item, ev, pending)
                    if value is not None:
                        enum.children.append(value)
                    pending = []
        return None

    def _enum_value(self, enum, item, ev, doc_lines):
        meta = ()
        m = _UMETA_RE.search(item)
        if m:
            meta = parse_meta(m.group("meta"))
            item = item[: m.start()] + item[m.end() :]
        item = _normalize(item)
        default = None
        eq = _assignment_index(item)
        if eq >= 0:
            default = item[eq + 1 :].strip()
            item = item[:eq].strip()
        if not re.fullmatch(r"\w+", item):
            self.warn(ev, f"cannot parse enum value '{_clip(item)}' in {enum.name}")
            return None
        return Symbol(
            kind=SymbolKind.ENUM_VALUE,
            name=item,
            qualified_path=(*enum.qualified_path, item),
            access=Access.PUBLIC,
            meta=meta,
            doc=_doc(doc_lines),
            signature=item if default is None else f"{item} = {default}",
            default_value=default,
            filename=self.filename,
            line=ev.line,
        )

    # ── Statements ──

    def _statement(self, ev, owner, out, access, pending):
        stmt = _normalize(ev.text)
        if not stmt:
            return
        first = re.match(r"\w+", stmt)
        if first and first.group(0) in _SILENT_KEYWORDS:
            return
        if ev.terminator != ";":
            self.warn(ev, f"skipped unterminated declaration '{_clip(stmt)}'")
            return
        start = pending.start if pending.start is not None else ev.offset
        head = _TYPE_DECL_RE.match(stmt)
        if head:
            symbol = self._type(head, stmt, ev, owner, access, pending)
            symbol.source = self._source(start, ev.end)
            out.append(symbol)
            return
        paren = find_top_level(stmt, "(")
        eq = _assignment_index(stmt)
        if paren >= 0 and (eq < 0 or paren < eq):
            symbols = [self._function(stmt, ev, owner, access, pending)]
        else:
            symbols = self._properties(stmt, ev, owner, access, pending)
        for symbol in symbols:
            if symbol is not None:
                symbol.source = self._source(start, ev.end)
                out.append(symbol)

    def _function(self, stmt, ev, owner, access, pending):
        p = find_top_level(stmt, "(")
        if stmt[:p].rstrip().endswith("operator") and stmt[p : p + 2] == "()":
            p = stmt.find("(", p + 2)
        if p < 0:
            self.warn(ev, f"cannot parse function '{_clip(stmt)}'")
            return None
        head = stmt[:p].rstrip()
        close = _matching_paren(stmt, p)
        params_text = stmt[p + 1 : close]
        tail = stmt[close + 1 :].strip()
        m = _FUNC_NAME_RE.search(head)
        if not m:
            self.warn(ev, f"cannot parse function '{_clip(stmt)}'")
            return None
        name = re.sub(r"\s+", "", m.group("name"))
        if "::" in name:
            log.debug("unrealdoc: %s:%d: skipping out-of-line definition %s", self.filename, ev.line, name)
            return None

        flags = set()
        api = ""
        ret = []
        for word in head[: m.start()].split():
            if word in _FUNC_SPECIFIERS:
                flags.add(word)
            elif _API_RE.match(word):
                api = word
            elif not _MACRO_WORD_RE.match(word):
                ret.append(word)
        return_type = " ".join(ret)
        if not return_type and (owner is None or name.lstrip("~") != owner.name):
            self.warn(ev, f"skipped call-like statement '{_clip(stmt)}'")
            return None

        colon = _single_colon_index(tail)
        if colon >= 0:
            tail = tail[:colon].rstrip()
        qualifiers = tail.split("=")[0]

        parameters = []
        if params_text.strip() not in ("", "void"):
            for index, text in enumerate(split_top_level(params_text)):
                param = parse_parameter(text)
                param.doc = _doc(pending.param_docs.get(index, ()))
                parameters.append(param)

        tag = pending.tag
        return Symbol(
            kind=SymbolKind.FUNCTION,
            name=name,
            qualified_path=self._path(owner, name),
            access=access,
            template_params=pending.template,
            macro_tag=MacroTag[tag.text] if tag is not None else MacroTag.NONE,
            meta=tag.meta if tag is not None else (),
            doc=_doc(pending.doc),
            parameters=parameters,
            signature=f"{stmt[: close + 1]} {tail}".strip(),
            return_type=return_type,
            api=api,
            is_static="static" in flags,
            is_virtual="virtual" in flags,
            is_const=bool(re.search(r"\bconst\b", qualifiers)),
            is_override=bool(re.search(r"\b(?:override|final)\b", qualifiers)),
            filename=self.filename,
            line=ev.line,
        )

    def _properties(self, stmt, ev, owner, access, pending):
        declarators = split_top_level(stmt)
        first = _parse_declarator(declarators[0]) if declarators else None
        if first is None:
            self.warn(ev, f"skipped declaration '{_clip(stmt)}'")
            return []
        words = first[0].split()
        specifiers = {w for w in words if w in _PROP_SPECIFIERS}
        base_type = " ".join(w for w in words if w not in _PROP_SPECIFIERS and not _API_RE.match(w))
        plain_type = base_type.rstrip("*& ")

        symbols = []
        parsed = [first]
        for text in declarators[1:]:
            stars = re.match(r"[\s*&]*", text).group(0).replace(" ", "")
            rest = _parse_declarator(f"{plain_type} {stars}{text.lstrip('*& ')}")
            if rest is not None:
                parsed.append(rest)
        tag = pending.tag
        doc = _doc(pending.doc)
        for index, (type_, name, array, default) in enumerate(parsed):
            value_type = base_type if index == 0 else " ".join(type_.split())
            symbols.append(
                Symbol(
                    kind=SymbolKind.PROPERTY,
                    name=name,
                    qualified_path=self._path(owner, name),
                    access=access,
                    template_params=pending.template,
                    macro_tag=MacroTag[tag.text] if tag is not None else MacroTag.NONE,
                    meta=tag.meta if tag is not None else (),
                    doc=doc,
                    signature=stmt,
                    value_type=value_type + array,
                    default_value=default,
                    is_static="static" in specifiers,
                    filename=self.filename,
                    line=ev.line,
                )
            )
        return symbols


def _parse_events(text, events, filename):
    parser = _Parser(text, events, filename)
    symbols = parser.parse()
    return parser, symbols


def parse_header(text, filename=""):
    """Parse one header into a HeaderResult.

    Raises ScanError when the file cannot be scanned at all.
    """
    events = scan(text, filename)
    text = normalize_source(text)
    parser, symbols = _parse_events(text, events, filename)
    directives = [ev.directive for ev in events if ev.kind is EventKind.DIRECTIVE]
    snippets, proxies = extract_definitions(text, directives, parser.proxy_docs, filename)
    for proxy in proxies:
        proxy.symbols, problems = parse_members(proxy.body, filename)
        parser.diagnostics.extend(problems)
    log.debug("unrealdoc: parsed %s: %d symbols, %d snippets, %d proxies",
              filename or "<string>", len(symbols), len(snippets), len(proxies))
    return HeaderResult(
        filename=filename,
        symbols=symbols,
        snippets=snippets,
        proxies=proxies,
        diagnostics=parser.diagnostics,
    )


def parse_members(text, filename=""):
    """Parse a fragment of class body text (a proxy body) into members.

    Members come back public with paths relative to the future owner.
    """
    text = normalize_source(text)
    parser, symbols = _parse_events(text, scan(text, filename), filename)
    return symbols, parser.diagnostics
