"""
Lexical scanner for Unreal-flavored C++ headers.

Produces a flat, ordered list of structural events (braces, access
specifiers, macro tags, doc comment lines, template headers, raw statement
text, markup directive boundaries). It tracks brace, paren and template
angle depth separately, skips comments, string literals and preprocessor
lines, and never tries to understand C++ beyond that.
"""

from __future__ import annotations

import bisect
import re
from dataclasses import dataclass, replace
from enum import Enum, auto

from .errors import ScanError
from .markup import Directive, match_directive


class EventKind(Enum):
    ENTER_BRACE = auto()
    EXIT_BRACE = auto()
    ACCESS_SPECIFIER = auto()
    MACRO_TAG = auto()
    DOC_COMMENT_LINE = auto()
    TEMPLATE_HEADER = auto()
    RAW_LINE = auto()
    BLANK_LINE = auto()
    DIRECTIVE = auto()


@dataclass(frozen=True)
class Event:
    kind: EventKind
    offset: int
    line: int
    text: str = ""
    meta: tuple = ()
    params: tuple = ()
    terminator: str = ""
    param_index: int | None = None
    directive: Directive | None = None
    end: int = 0


MACRO_TAGS = ("UCLASS", "USTRUCT", "UENUM", "UFUNCTION", "UPROPERTY")
ACCESS_LEVELS = ("public", "protected", "private")

_BARE_MACRO_RE = re.compile(r"^[A-Z][A-Z0-9_]*\s*(?:\(.*\))?$", re.DOTALL)
_TYPE_HEAD_RE = re.compile(r"^(?:typedef\s+)?(?:class|struct|union|enum|namespace|extern)\b")
_ENUM_HEAD_RE = re.compile(r"^(?:typedef\s+)?enum\b")
_CTOR_INIT_RE = re.compile(r"\)\s*(?:(?:const|noexcept|override|final)\s*)*:(?!:)")
_BLOCK_KEYWORD_RE = re.compile(r"\b(?:else|do|try)$")
_NUMBER_TAIL_RE = re.compile(r"(?<![\w'])\d[\w']*$")
_RAW_STRING_PREFIX_RE = re.compile(r"(?:^|[^\w])(?:u8|u|U|L)?R$")
_NEWLINE_RE = re.compile(r"\r\n|\r|\n")


# ── Shared text helpers ──


def _opens_template(text, i):
    j = i - 1
    while j >= 0 and text[j] in " \t\n":
        j -= 1
    if j < 0 or not (text[j].isalnum() or text[j] == "_"):
        return False
    return not text[: j + 1].endswith("operator")


def _is_char_quote(text, i):
    # 1'000'000 uses the quote as a digit separator
    return not _NUMBER_TAIL_RE.search(text, max(0, i - 32), i)


def iter_top_level(text):
    """Yield ``(index, char)`` for characters outside brackets, template angles and quotes.

    Opening brackets are yielded themselves, closing ones are not.
    """
    depth = 0
    angle = 0
    quote = None
    for i, c in enumerate(text):
        if quote:
            if c == quote and text[i - 1] != "\\":
                quote = None
            continue
        if depth == 0 and angle == 0:
            yield i, c
        if c == '"' or (c == "'" and _is_char_quote(text, i)):
            quote = c
        elif c in "([{":
            depth += 1
        elif c in ")]}":
            depth = max(0, depth - 1)
        elif c == "<" and depth == 0 and _opens_template(text, i):
            angle += 1
        elif c == ">" and depth == 0 and angle:
            angle -= 1


def find_top_level(text, char):
    for i, c in iter_top_level(text):
        if c == char:
            return i
    return -1


def split_top_level(text, sep=","):
    """Split *text* on *sep* outside of brackets, template angles and quotes."""
    parts = []
    start = 0
    for i, c in iter_top_level(text):
        if c == sep:
            parts.append(text[start:i])
            start = i + 1
    parts.append(text[start:])
    return [p.strip() for p in parts if p.strip()]


def _unquote(value):
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


def parse_meta(text):
    """Parse macro arguments into ``(key, value)`` pairs.

    Bare flags get ``None``; nested ``Key = (...)`` groups are flattened
    with the outer key as a dotted prefix.
    """
    pairs = []
    for item in split_top_level(text):
        key, sep, value = item.partition("=")
        key = key.strip()
        value = value.strip()
        if not sep:
            pairs.append((key, None))
        elif value.startswith("(") and value.endswith(")"):
            pairs.extend((f"{key}.{k}", v) for k, v in parse_meta(value[1:-1]))
        else:
            pairs.append((key, _unquote(value)))
    return tuple(pairs)


def template_param_name(param):
    head = split_top_level(param, "=")
    words = re.findall(r"\w+", head[0]) if head else []
    if not words or words[-1] in ("typename", "class"):
        return ""
    return words[-1]


# ── Scanner ──


class _Scanner:
    def __init__(self, text, filename, raw=None):
        self.text = text
        self.raw = text if raw is None else raw
        self.filename = filename
        self.n = len(text)
        self.pos = 0
        self.events = []
        self.stack = []
        self.init = 0
        self.ignore_open = None
        self._line_starts = [0] + [m.end() for m in re.finditer("\n", text)]
        self._reset()

    def _reset(self):
        self.stmt = []
        self.stmt_start = None
        self.paren = 0
        self.angle = 0
        self.commas = 0

    def line_of(self, offset):
        return bisect.bisect_right(self._line_starts, offset)

    def error(self, offset, message):
        raise ScanError(self.filename, byte_offset(self.raw, offset), self.line_of(offset), message)

    def emit(self, kind, offset, **kw):
        self.events.append(Event(kind, offset, self.line_of(offset), **kw))

    def statement(self):
        return "".join(self.stmt).strip()

    def _append(self, s, offset):
        self.stmt.append(s)
        if self.stmt_start is None and s.strip():
            self.stmt_start = offset

    def flush(self, terminator, offset):
        text = self.statement()
        if text or terminator == "{":
            start = self.stmt_start if self.stmt_start is not None else offset
            self.emit(EventKind.RAW_LINE, start, text=text, terminator=terminator, end=offset + 1)
        self._reset()

    def _in_body(self):
        return any(kind == "body" for kind, _ in self.stack)

    def _in_enum(self):
        return bool(self.stack) and self.stack[-1][0] == "enum"

    def _line_end(self, pos):
        end = self.text.find("\n", pos)
        return self.n if end < 0 else end

    # ── Main loop ──

    def run(self):
        text = self.text
        while self.pos < self.n:
            if (self.pos == 0 or text[self.pos - 1] == "\n") and self._line():
                continue
            c = text[self.pos]
            nxt = text[self.pos + 1] if self.pos + 1 < self.n else ""
            if c == "/" and nxt == "/":
                self.pos = self._line_end(self.pos)
            elif c == "/" and nxt == "*":
                end = text.find("*/", self.pos + 2)
                if end < 0:
                    self.error(self.pos, "unterminated block comment")
                self._append(" ", self.pos)
                self.pos = end + 2
            elif c == '"' or (c == "'" and _is_char_quote(text, self.pos)):
                end = self._literal_end(self.pos)
                self._append(text[self.pos : end], self.pos)
                self.pos = end
            elif c == "{":
                self._open_brace()
            elif c == "}":
                self._close_brace()
            elif c == ";" and self.paren == 0 and self.init == 0:
                self.flush(";", self.pos)
                self.pos += 1
            elif c == "(":
                self._open_paren()
            elif c == ")":
                if self.paren:
                    self.paren -= 1
                    if not self.paren:
                        self.angle = 0
                self._char(c)
            elif c == "<":
                if self.paren == 0 and self.init == 0 and self.statement() == "template":
                    self._template()
                else:
                    if self.paren == 1 and _opens_template(text, self.pos):
                        self.angle += 1
                    self._char(c)
            elif c == ">":
                if self.paren and self.angle:
                    self.angle -= 1
                self._char(c)
            elif c == ",":
                if self.paren == 1 and self.angle == 0 and self.init == 0:
                    self.commas += 1
                self._char(c)
            elif c == ":" and self._access_specifier(nxt):
                pass
            elif c == "\n":
                self._newline()
            else:
                self._char(c)
        self._finish()
        return self.events

    def _char(self, c):
        self._append(c, self.pos)
        self.pos += 1

    def _finish(self):
        if self.ignore_open is not None:
            self.error(self.ignore_open.offset, "unterminated [ignore] span")
        if self.stack:
            self.error(self.stack[-1][1], "unclosed '{'")
        if self.statement():
            self.flush("", self.n)

    # ── Line-level constructs ──

    def _line(self):
        end = self._line_end(self.pos)
        line = self.text[self.pos : end]
        stripped = line.strip()
        nl = min(end + 1, self.n)
        if stripped.startswith("#"):
            self._skip_preprocessor()
            return True
        if stripped.startswith("////"):
            try:
                mark = match_directive(line)
            except ValueError as e:
                self.error(self.pos, str(e))
            if mark is None:
                self.pos = nl
            else:
                self._directive(replace(mark, offset=self.pos, end=nl, line=self.line_of(self.pos)))
            return True
        if stripped.startswith("///") and not stripped.startswith("///<"):
            self._doc_line(stripped[3:], nl)
            return True
        if not stripped and self.paren == 0 and self.init == 0 and not self.statement():
            self.emit(EventKind.BLANK_LINE, self.pos)
            self.pos = nl
            return True
        return False

    def _skip_preprocessor(self):
        while self.pos < self.n:
            end = self._line_end(self.pos)
            line = self.text[self.pos : end].rstrip()
            self.pos = min(end + 1, self.n)
            if not line.endswith("\\"):
                return

    def _doc_line(self, content, nl):
        if content.startswith(" "):
            content = content[1:]
        content = content.rstrip()
        if self.paren > 0:
            self.emit(EventKind.DOC_COMMENT_LINE, self.pos, text=content, param_index=self.commas)
        elif self.init == 0:
            if self.statement():
                self.flush("", self.pos)
            self.emit(EventKind.DOC_COMMENT_LINE, self.pos, text=content)
        self.pos = nl

    def _directive(self, mark):
        kind = mark.directive
        if mark.closing:
            if kind == "ignore" and self.ignore_open is not None:
                self.ignore_open = None
                self.emit(EventKind.DIRECTIVE, mark.offset, directive=mark, end=mark.end)
                self.pos = mark.end
                return
            self.error(mark.offset, f"closing [/{kind}] without matching opener")
        if kind == "ignore":
            if self.ignore_open is not None:
                self.error(mark.offset, "nested [ignore] span")
            self.ignore_open = mark
        self.emit(EventKind.DIRECTIVE, mark.offset, directive=mark, end=mark.end)
        self.pos = mark.end
        if kind in ("snippet", "proxy"):
            self._skip_span(mark)

    def _skip_span(self, opener):
        # Snippet and proxy contents are opaque: only look for the closer.
        while self.pos < self.n:
            end = self._line_end(self.pos)
            nl = min(end + 1, self.n)
            try:
                mark = match_directive(self.text[self.pos : end])
            except ValueError as e:
                self.error(self.pos, str(e))
            if mark is not None and mark.directive == opener.directive:
                if not mark.closing:
                    self.error(self.pos, f"nested [{opener.directive}] span")
                closer = replace(mark, offset=self.pos, end=nl, line=self.line_of(self.pos))
                self.emit(EventKind.DIRECTIVE, closer.offset, directive=closer, end=nl)
                self.pos = nl
                return
            self.pos = nl
        self.error(opener.offset, f"unterminated [{opener.directive}: {opener.name}] span")

    def _newline(self):
        if self.paren == 0 and self.init == 0 and not self._in_enum():
            stmt = self.statement()
            if stmt and _BARE_MACRO_RE.match(stmt):
                name = re.match(r"\w+", stmt).group(0)
                if name in MACRO_TAGS:
                    self.emit(EventKind.MACRO_TAG, self.stmt_start, text=name)
                self._reset()
        self._char("\n")

    # ── Brackets ──

    def _is_initializer(self):
        if self.paren > 0 or self.init > 0:
            return True
        if self._in_body():
            return False
        stmt = self.statement()
        if not stmt or _TYPE_HEAD_RE.match(stmt) or _BLOCK_KEYWORD_RE.search(stmt):
            return False
        if stmt.endswith("="):
            return True
        eq = re.search(r"(?<![=<>!])=(?!=)", stmt)
        paren = stmt.find("(")
        if eq and "operator" not in stmt and (paren < 0 or eq.start() < paren):
            return True
        if paren >= 0:
            return bool(_CTOR_INIT_RE.search(stmt)) and bool(re.search(r"[\w>]$", stmt))
        return True

    def _scope_kind(self, stmt):
        if self._in_body():
            return "body"
        if _ENUM_HEAD_RE.match(stmt):
            return "enum"
        if _TYPE_HEAD_RE.match(stmt):
            return "type"
        if "(" in stmt:
            return "body"
        return "block"

    def _open_brace(self):
        offset = self.pos
        if self._is_initializer():
            self.init += 1
            self.stack.append(("init", offset))
            self._append("{", offset)
        else:
            self.stack.append((self._scope_kind(self.statement()), offset))
            self.flush("{", offset)
            self.emit(EventKind.ENTER_BRACE, offset)
        self.pos += 1

    def _close_brace(self):
        offset = self.pos
        if not self.stack:
            self.error(offset, "unbalanced '}'")
        kind, _ = self.stack.pop()
        if kind == "init":
            self.init -= 1
            self._append("}", offset)
        else:
            if self.statement():
                self.flush("}", offset)
            self._reset()
            self.emit(EventKind.EXIT_BRACE, offset)
        self.pos += 1

    def _open_paren(self):
        if self.paren == 0 and self.init == 0:
            stmt = self.statement()
            if stmt in MACRO_TAGS:
                close = self._matching(self.pos, "(", ")")
                meta = parse_meta(self.text[self.pos + 1 : close])
                self.emit(EventKind.MACRO_TAG, self.stmt_start, text=stmt, meta=meta)
                self._reset()
                self.pos = close + 1
                return
        self.paren += 1
        self._char("(")

    def _template(self):
        close = self._matching(self.pos, "<", ">")
        raw = self.text[self.pos + 1 : close]
        params = tuple(template_param_name(p) for p in split_top_level(raw))
        self.emit(EventKind.TEMPLATE_HEADER, self.stmt_start, text=raw.strip(), params=params)
        self._reset()
        self.pos = close + 1

    def _access_specifier(self, nxt):
        if self.paren or self.init or nxt == ":":
            return False
        if self.pos and self.text[self.pos - 1] == ":":
            return False
        level = self.statement()
        if level not in ACCESS_LEVELS:
            return False
        self.emit(EventKind.ACCESS_SPECIFIER, self.stmt_start, text=level)
        self._reset()
        self.pos += 1
        return True

    def _matching(self, start, opener, closer):
        text = self.text
        depth = 0
        nested = 0
        i = start
        while i < self.n:
            c = text[i]
            if c == '"' or (c == "'" and _is_char_quote(text, i)):
                i = self._literal_end(i)
                continue
            if opener == "<" and c in "()":
                nested += 1 if c == "(" else -1
            elif nested == 0 and c == opener:
                depth += 1
            elif nested == 0 and c == closer:
                depth -= 1
                if depth == 0:
                    return i
            i += 1
        self.error(start, f"unbalanced '{opener}'")

    def _literal_end(self, start):
        text = self.text
        quote = text[start]
        if quote == '"' and _RAW_STRING_PREFIX_RE.search(text, max(0, start - 4), start):
            open_paren = text.find("(", start)
            if open_paren >= 0:
                delim = text[start + 1 : open_paren]
                close = text.find(")" + delim + '"', open_paren)
                if close >= 0:
                    return close + len(delim) + 2
            self.error(start, "unterminated raw string literal")
        i = start + 1
        while i < self.n:
            c = text[i]
            if c == "\\":
                i += 2
                continue
            if c == quote:
                return i + 1
            if c == "\n":
                break
            i += 1
        what = "string" if quote == '"' else "character"
        self.error(start, f"unterminated {what} literal")


def normalize_source(text):
    """Drop a leading byte order mark and use ``\\n`` line endings."""
    if text.startswith("\ufeff"):
        text = text[1:]
    return text.replace("\r\n", "\n").replace("\r", "\n")


def byte_offset(raw, offset):
    """UTF-8 byte offset in *raw* of character *offset* in its normalized form."""
    text = normalize_source(raw)
    line_start = text.rfind("\n", 0, offset) + 1
    line = text.count("\n", 0, line_start)
    raw_starts = [1 if raw.startswith("\ufeff") else 0]
    raw_starts += [m.end() for m in _NEWLINE_RE.finditer(raw)]
    head = raw[: raw_starts[line]].encode("utf-8")
    return len(head) + len(text[line_start:offset].encode("utf-8"))


def scan(text, filename=""):
    """Scan a header into the ordered list of events.

    Raises ScanError for unterminated spans, comments and literals and for
    unbalanced braces.
    """
    return _Scanner(normalize_source(text), filename, raw=text).run()
