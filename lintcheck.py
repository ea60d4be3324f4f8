#!/usr/bin/env python3
"""
lintcheck - Style rule enforcement for Scala-style sources

High-level goals:
- Tokenize source text losslessly (every character belongs to exactly one token)
- Build a minimal structural tree (declarations, parameter lists, match blocks, imports)
- Load rule configuration from YAML
- Evaluate independent style rules against tokens + tree
- Emit sorted, de-duplicated violations as text or JSON for CI

Like the rest of the tool chain this stays a single module; the banner
sections below follow the pipeline order.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Sequence, Set, Tuple
import argparse
import ast
import bisect
from concurrent.futures import ThreadPoolExecutor
import fnmatch
import functools
import json
import operator
import os
import re
import sys
import threading
import unicodedata

import yaml


__version__ = "0.1.0"

TOOL_NAME = "lintcheck"

SEVERITIES = ("error", "warning")


# ============================================================
# ======================= ERROR TYPES ========================
# ============================================================

class LintError(Exception):
    """Base class for every diagnostic lintcheck raises or records."""


class LexError(LintError):
    """
    Recorded (never raised) by the tokenizer when it meets an unterminated
    literal or comment, or a character it cannot classify.
    """

    def __init__(self, message: str, span: "Span") -> None:
        super().__init__(message)
        self.message = message
        self.span = span


class ParseError(LintError):
    """Recorded by the tree builder; the offending region becomes an opaque node."""

    def __init__(self, message: str, span: "Span") -> None:
        super().__init__(message)
        self.message = message
        self.span = span


class RuleFault(LintError):
    """An internal failure of one rule, isolated from every other rule."""

    def __init__(self, rule_id: str, cause: BaseException) -> None:
        super().__init__(f"rule failed: {type(cause).__name__}: {cause}")
        self.rule_id = rule_id
        self.cause = cause


class ConfigError(LintError):
    """Fatal for the run: raised before any source file is read."""

    def __init__(self, message: str, *, origin: Optional[str] = None, line: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.origin = origin
        self.line = line

    def __str__(self) -> str:
        where = self.origin or "<config>"
        if self.line is not None:
            where = f"{where}:{self.line}"
        return f"{where}: {self.message}"


# ============================================================
# ==================== SOURCE TEXT & SPANS ===================
# ============================================================

@dataclass(frozen=True, order=True)
class Span:
    """
    A region of source text. Lines and columns are 1-based; the end position
    is exclusive. Offsets index into the decoded text.
    """
    start_line: int
    start_col: int
    end_line: int
    end_col: int
    start_offset: int
    end_offset: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "line_start": self.start_line,
            "col_start": self.start_col,
            "line_end": self.end_line,
            "col_end": self.end_col,
        }


class SourceText:
    """
    Decoded source text plus a line table. All spans are created through
    `span()`, which clamps to the text bounds.
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self.line_starts: List[int] = [0]
        for index, char in enumerate(text):
            if char == "\n":
                self.line_starts.append(index + 1)

    def __len__(self) -> int:
        return len(self.text)

    @property
    def line_count(self) -> int:
        return len(self.line_starts)

    def position(self, offset: int) -> Tuple[int, int]:
        offset = max(0, min(offset, len(self.text)))
        line_index = bisect.bisect_right(self.line_starts, offset) - 1
        return line_index + 1, offset - self.line_starts[line_index] + 1

    def span(self, start: int, end: int) -> Span:
        start = max(0, min(start, len(self.text)))
        end = max(start, min(end, len(self.text)))
        start_line, start_col = self.position(start)
        end_line, end_col = self.position(end)
        return Span(start_line, start_col, end_line, end_col, start, end)

    def line_text(self, line_no: int) -> str:
        """Text of a 1-based line without its line terminator."""
        start = self.line_starts[line_no - 1]
        if line_no < len(self.line_starts):
            end = self.line_starts[line_no] - 1
        else:
            end = len(self.text)
        return self.text[start:end].rstrip("\r")

    def line_span(self, line_no: int, start_col: int = 1, end_col: Optional[int] = None) -> Span:
        base = self.line_starts[line_no - 1]
        if end_col is None:
            end_col = len(self.line_text(line_no)) + 1
        return self.span(base + start_col - 1, base + end_col - 1)


# ============================================================
# ========================= TOKENS ===========================
# ============================================================

IDENTIFIER = "identifier"
KEYWORD = "keyword"
OPERATOR = "operator"
LITERAL = "literal"
WHITESPACE = "whitespace"
COMMENT = "comment"
INVALID = "invalid"

TOKEN_KINDS = (IDENTIFIER, KEYWORD, OPERATOR, LITERAL, WHITESPACE, COMMENT, INVALID)

KEYWORDS = frozenset({
    "abstract", "case", "catch", "class", "def", "do", "else", "enum", "export",
    "extends", "false", "final", "finally", "for", "forSome", "given", "if",
    "implicit", "import", "lazy", "match", "new", "null", "object", "override",
    "package", "private", "protected", "return", "sealed", "super", "then",
    "this", "throw", "trait", "try", "true", "type", "val", "var", "while",
    "with", "yield",
})

_WHITESPACE_CHARS = frozenset(" \t\r\n\f")
_OPERATOR_CHARS = frozenset("!#%&*+-/:<=>?@\\^|~")
_DELIMITERS = frozenset("(){}[],;.")

_NUMBER_PATTERN = re.compile(
    r"0[xX][0-9a-fA-F_]+[lL]?"
    r"|(?:[0-9][0-9_]*(?:\.[0-9][0-9_]*)?|\.[0-9][0-9_]*)(?:[eE][+-]?[0-9]+)?[fFdDlL]?"
)


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    span: Span

    @property
    def is_trivia(self) -> bool:
        return self.kind in (WHITESPACE, COMMENT)

    @property
    def is_doc_comment(self) -> bool:
        return self.kind == COMMENT and self.text.startswith("/**") and not self.text.startswith("/**/")


def _is_ident_start(char: str) -> bool:
    return char.isalpha() or char in "_$"


def _is_ident_part(char: str) -> bool:
    return char.isalnum() or char in "_$"


def _is_operator_char(char: str) -> bool:
    if char in _OPERATOR_CHARS:
        return True
    return ord(char) > 127 and unicodedata.category(char) in ("Sm", "So")


class _Lexer:
    """
    Single pass over one SourceText. `run()` is a generator, so callers that
    stop early never pay for the rest of the file.
    """

    def __init__(self, source: SourceText) -> None:
        self.source = source
        self.text = source.text

    def run(self, errors: Optional[List[LexError]] = None) -> Iterator[Token]:
        text = self.text
        length = len(text)
        pos = 0
        while pos < length:
            start = pos
            char = text[pos]
            error: Optional[str] = None

            if char in _WHITESPACE_CHARS:
                kind = WHITESPACE
                while pos < length and text[pos] in _WHITESPACE_CHARS:
                    pos += 1
            elif text.startswith("//", pos):
                kind = COMMENT
                newline = text.find("\n", pos)
                pos = length if newline == -1 else newline
                if text[pos - 1:pos] == "\r":
                    pos -= 1
            elif text.startswith("/*", pos):
                kind = COMMENT
                pos, closed = self._scan_block_comment(pos)
                if not closed:
                    error = "unterminated block comment"
            elif char == '"':
                kind = LITERAL
                pos, closed = self._scan_string(pos, interpolated=False)
                if not closed:
                    error = "unterminated string literal"
            elif char == "`":
                kind = IDENTIFIER
                close = text.find("`", pos + 1)
                newline = text.find("\n", pos + 1)
                if close == -1 or (newline != -1 and newline < close):
                    pos = length if newline == -1 else newline
                    error = "unterminated backquoted identifier"
                else:
                    pos = close + 1
            elif char == "'":
                kind, pos, error = self._scan_quote(pos)
            elif char.isdigit() or (char == "." and text[pos + 1:pos + 2].isdigit()):
                match = _NUMBER_PATTERN.match(text, pos)
                if match and match.end() > pos:
                    kind = LITERAL
                    pos = match.end()
                else:
                    kind = INVALID
                    pos += 1
                    error = f"unexpected character {char!r}"
            elif _is_ident_start(char):
                pos = self._scan_identifier(pos)
                word = text[start:pos]
                if pos < length and text[pos] == '"' and word not in KEYWORDS:
                    kind = LITERAL
                    pos, closed = self._scan_string(pos, interpolated=True)
                    if not closed:
                        error = "unterminated string literal"
                else:
                    kind = KEYWORD if word in KEYWORDS else IDENTIFIER
            elif char in _DELIMITERS:
                kind = OPERATOR
                pos += 1
            elif _is_operator_char(char):
                kind = OPERATOR
                pos += 1
                while (
                    pos < length
                    and _is_operator_char(text[pos])
                    and not text.startswith("//", pos)
                    and not text.startswith("/*", pos)
                ):
                    pos += 1
            else:
                kind = INVALID
                pos += 1
                error = f"unexpected character {char!r}"

            span = self.source.span(start, pos)
            if error is not None and errors is not None:
                errors.append(LexError(error, span))
            yield Token(kind, text[start:pos], span)

    def _scan_identifier(self, pos: int) -> int:
        text = self.text
        length = len(text)
        pos += 1
        while pos < length and _is_ident_part(text[pos]):
            pos += 1
        # `unary_!`, `x_=`: an underscore may glue an operator suffix on.
        if text[pos - 1] == "_" and pos < length and _is_operator_char(text[pos]):
            while (
                pos < length
                and _is_operator_char(text[pos])
                and not text.startswith("//", pos)
                and not text.startswith("/*", pos)
            ):
                pos += 1
        return pos

    def _scan_block_comment(self, pos: int) -> Tuple[int, bool]:
        text = self.text
        length = len(text)
        depth = 0
        while pos < length:
            if text.startswith("/*", pos):
                depth += 1
                pos += 2
            elif text.startswith("*/", pos):
                depth -= 1
                pos += 2
                if depth == 0:
                    return pos, True
            else:
                pos += 1
        return length, False

    def _scan_string(self, pos: int, *, interpolated: bool) -> Tuple[int, bool]:
        """
        `pos` points at the opening quote. Single-line strings stop at the
        end of the line when unterminated; triple-quoted ones run to EOF.
        """
        text = self.text
        length = len(text)
        if text.startswith('"""', pos):
            close = text.find('"""', pos + 3)
            if close == -1:
                return length, False
            close += 3
            while close < length and text[close] == '"':
                close += 1
            return close, True

        pos += 1
        while pos < length:
            char = text[pos]
            if char == "\\" and pos + 1 < length and text[pos + 1] not in "\r\n":
                pos += 2
                continue
            if char == '"':
                return pos + 1, True
            if char in "\r\n":
                return pos, False
            if interpolated and text.startswith("$$", pos):
                pos += 2
                continue
            if interpolated and text.startswith("${", pos):
                pos = self._scan_splice(pos + 2)
                continue
            pos += 1
        return length, False

    def _scan_splice(self, pos: int) -> int:
        text = self.text
        length = len(text)
        depth = 1
        while pos < length:
            char = text[pos]
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return pos + 1
            elif char == '"':
                end, closed = self._scan_string(pos, interpolated=False)
                if not closed:
                    return end
                pos = end
                continue
            elif char in "\r\n":
                return pos
            pos += 1
        return length

    def _scan_quote(self, pos: int) -> Tuple[str, int, Optional[str]]:
        """Character literal, symbol literal, or a stray quote."""
        text = self.text
        length = len(text)
        nxt = text[pos + 1:pos + 2]
        if nxt == "\\":
            close = text.find("'", pos + 3)
            newline = text.find("\n", pos)
            if close != -1 and (newline == -1 or close < newline) and close - pos <= 8:
                return LITERAL, close + 1, None
            return LITERAL, pos + 2, "unterminated character literal"
        if nxt and nxt not in "\r\n'" and text[pos + 2:pos + 3] == "'":
            return LITERAL, pos + 3, None
        if nxt and _is_ident_start(nxt):
            end = pos + 2
            while end < length and _is_ident_part(text[end]):
                end += 1
            return LITERAL, end, None
        return INVALID, pos + 1, "unterminated character literal"


class TokenStream:
    """
    Lazy, restartable sequence of the tokens of one source text.

    Every iteration re-lexes from the beginning, so a stream can be walked any
    number of times and partially consumed without side effects. Token texts
    concatenate back to the original text.
    """

    def __init__(self, source: SourceText) -> None:
        self.source = source

    def __iter__(self) -> Iterator[Token]:
        return _Lexer(self.source).run()

    def scan(self) -> Tuple[Tuple[Token, ...], Tuple[LexError, ...]]:
        """Materialize every token along with the lexer diagnostics."""
        errors: List[LexError] = []
        tokens = tuple(_Lexer(self.source).run(errors))
        return tokens, tuple(errors)


def tokenize(text: str) -> TokenStream:
    return TokenStream(SourceText(text))


# ============================================================
# ====================== SYNTAX TREE =========================
# ============================================================

COMPILATION_UNIT = "compilation_unit"
CLASS_DECL = "class_decl"
OBJECT_DECL = "object_decl"
TRAIT_DECL = "trait_decl"
METHOD_DECL = "method_decl"
PARAMETER_LIST = "parameter_list"
MATCH_BLOCK = "match_block"
CASE_CLAUSE = "case_clause"
IMPORT_CLAUSE = "import_clause"
OPAQUE = "opaque"

NODE_KINDS = (
    COMPILATION_UNIT, CLASS_DECL, OBJECT_DECL, TRAIT_DECL, METHOD_DECL,
    PARAMETER_LIST, MATCH_BLOCK, CASE_CLAUSE, IMPORT_CLAUSE, OPAQUE,
)

TEMPLATE_KINDS = (CLASS_DECL, OBJECT_DECL, TRAIT_DECL)

_KIND_LABELS = {
    CLASS_DECL: "class",
    OBJECT_DECL: "object",
    TRAIT_DECL: "trait",
    METHOD_DECL: "method",
    PARAMETER_LIST: "parameter list",
    MATCH_BLOCK: "match block",
    CASE_CLAUSE: "case clause",
    IMPORT_CLAUSE: "import",
    OPAQUE: "unparsed region",
}

_TEMPLATE_KEYWORDS = {"class": CLASS_DECL, "object": OBJECT_DECL, "trait": TRAIT_DECL}

_MODIFIERS = frozenset({
    "abstract", "final", "implicit", "lazy", "override", "private", "protected",
    "sealed",
})
_SOFT_MODIFIERS = frozenset({"inline", "opaque", "open", "transparent", "infix"})

_CLOSERS = {"(": ")", "[": "]", "{": "}"}
_CLOSING = frozenset(_CLOSERS.values())

_CONTINUATION_WORDS = frozenset({
    ".", "match", "else", "catch", "finally", "yield", "with", "=>", "extends", "then", "do",
})
_CONTINUED_BY_KEYWORDS = frozenset({
    "if", "else", "while", "for", "yield", "do", "try", "match", "new", "throw", "with", "then",
})
_NOT_METHOD_NAMES = frozenset({"(", ")", "[", "]", "{", "}", ",", ";", ".", ":", "=", "=>", "@"})

_EMPTY_ATTRS: Mapping[str, Any] = MappingProxyType({})


@dataclass(frozen=True, eq=False)
class SyntaxNode:
    """
    One structural node. Children are owned exclusively by their parent;
    `first_token`/`last_token` index into the file's token tuple and include
    leading modifiers and annotations.
    """
    kind: str
    span: Span
    first_token: int
    last_token: int
    name: Optional[str] = None
    children: Tuple["SyntaxNode", ...] = ()
    attrs: Mapping[str, Any] = field(default_factory=lambda: _EMPTY_ATTRS)

    def walk(self) -> Iterator["SyntaxNode"]:
        """Pre-order traversal, self first."""
        stack: List[SyntaxNode] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def find(self, *kinds: str) -> List["SyntaxNode"]:
        return [node for node in self.walk() if node.kind in kinds]

    def attr(self, key: str, default: Any = None) -> Any:
        return self.attrs.get(key, default)

    @property
    def label(self) -> str:
        return _KIND_LABELS.get(self.kind, self.kind)


class _TreeBuilder:
    """
    Scan-style builder over the significant (non-trivia) tokens.

    It does not try to understand expressions: it recognises the constructs
    the style rules look at and skips everything else token by token, so any
    region it cannot make sense of only costs that region.
    """

    def __init__(self, tokens: Sequence[Token], source: SourceText) -> None:
        self.tokens = tokens
        self.source = source
        self.sig: List[int] = [index for index, tok in enumerate(tokens) if not tok.is_trivia]
        self.newline_before: List[bool] = []
        previous = -1
        for index in self.sig:
            gap = tokens[previous + 1:index]
            self.newline_before.append(previous >= 0 and any("\n" in tok.text for tok in gap))
            previous = index
        self.pos = 0
        self.errors: List[ParseError] = []
        self.package: Optional[str] = None

    # ----- cursor helpers -----

    def _at_end(self) -> bool:
        return self.pos >= len(self.sig)

    def _tok(self, pos: int) -> Optional[Token]:
        if 0 <= pos < len(self.sig):
            return self.tokens[self.sig[pos]]
        return None

    def _text(self, ahead: int = 0) -> str:
        tok = self._tok(self.pos + ahead)
        return tok.text if tok is not None else ""

    def _kind(self, ahead: int = 0) -> str:
        tok = self._tok(self.pos + ahead)
        return tok.kind if tok is not None else ""

    def _advance(self) -> None:
        self.pos += 1

    def _starts_case_clause(self) -> bool:
        return self._text() == "case" and self._text(1) not in ("class", "object")

    def _node(
        self,
        kind: str,
        start: int,
        end: int,
        *,
        name: Optional[str] = None,
        children: Sequence[SyntaxNode] = (),
        attrs: Optional[Dict[str, Any]] = None,
    ) -> SyntaxNode:
        end = min(max(end, start + 1), len(self.sig))
        first = self.sig[start]
        last = self.sig[end - 1]
        span = self.source.span(self.tokens[first].span.start_offset, self.tokens[last].span.end_offset)
        return SyntaxNode(
            kind=kind,
            span=span,
            first_token=first,
            last_token=last,
            name=name,
            children=tuple(children),
            attrs=MappingProxyType(dict(attrs or {})),
        )

    def _opaque(
        self,
        start: int,
        end: int,
        message: str,
        error_at: int,
        *,
        expected: str,
        children: Sequence[SyntaxNode] = (),
    ) -> SyntaxNode:
        tok = self._tok(error_at)
        if tok is not None:
            self.errors.append(ParseError(message, tok.span))
        return self._node(OPAQUE, start, end, children=children, attrs={"expected": expected})

    def _slice_text(self, start: int, end: int) -> str:
        if end <= start:
            return ""
        first = self.tokens[self.sig[start]].span.start_offset
        last = self.tokens[self.sig[end - 1]].span.end_offset
        return re.sub(r"\s+", " ", self.source.text[first:last]).strip()

    def _skip_balanced(self) -> bool:
        """Skip a bracketed group starting at the cursor; False when it never closes."""
        stack = [_CLOSERS[self._text()]]
        self._advance()
        while not self._at_end():
            text = self._text()
            if text in _CLOSERS:
                stack.append(_CLOSERS[text])
            elif text in _CLOSING:
                if text != stack[-1]:
                    return False
                stack.pop()
                if not stack:
                    self._advance()
                    return True
            self._advance()
        return False

    # ----- entry point -----

    def build(self) -> SyntaxNode:
        items = self._parse_items(closer=None, member=True)
        span = self.source.span(0, len(self.source.text))
        return SyntaxNode(
            kind=COMPILATION_UNIT,
            span=span,
            first_token=0,
            last_token=max(len(self.tokens) - 1, 0),
            children=tuple(items),
            attrs=MappingProxyType({"package": self.package}),
        )

    # ----- generic scanning -----

    def _parse_items(self, *, closer: Optional[str], member: bool, stop_at_case: bool = False) -> List[SyntaxNode]:
        items: List[SyntaxNode] = []
        while not self._at_end():
            text = self._text()
            if text in _CLOSING:
                if text == closer:
                    return items
                if closer in (")", "]") and text == "}":
                    return items
                items.append(self._opaque(
                    self.pos, self.pos + 1, f"unexpected '{text}'", self.pos, expected="balanced brackets",
                ))
                self._advance()
                continue
            if stop_at_case and self._starts_case_clause():
                return items
            items.extend(self._parse_item(member=member))
        return items

    def _parse_item(self, *, member: bool) -> List[SyntaxNode]:
        start = self.pos
        modifiers = self._skip_modifiers()
        text = self._text()

        if text == "import":
            return [self._parse_import(start)]
        if text == "package":
            return self._parse_package(start)
        if text in _TEMPLATE_KEYWORDS and self._kind() == KEYWORD:
            return [self._parse_template(start, modifiers, member=member)]
        if text == "def":
            return [self._parse_def(start, modifiers, member=member)]
        if self.pos > start:
            # modifiers in front of val/var/type: nothing structural to record
            return []
        if text == "{":
            return self._parse_brace_block()
        if text in ("(", "["):
            return self._parse_bracket_group()
        if text == "match" and self._text(1) == "{":
            return [self._parse_match_block(self.pos, partial=False)]
        self._advance()
        return []

    def _skip_modifiers(self) -> List[str]:
        """Skip annotations and modifiers, returning the modifier words seen."""
        modifiers: List[str] = []
        while not self._at_end():
            text = self._text()
            kind = self._kind()
            if kind == KEYWORD and text in _MODIFIERS:
                modifiers.append(text)
                self._advance()
                if text in ("private", "protected") and self._text() == "[":
                    self._skip_balanced()
            elif kind == KEYWORD and text == "case" and self._text(1) in ("class", "object"):
                modifiers.append(text)
                self._advance()
            elif kind == IDENTIFIER and text in _SOFT_MODIFIERS and self._text(1) in ("def", "class", "trait", "object", "val"):
                modifiers.append(text)
                self._advance()
            elif text == "@" and self._kind(1) == IDENTIFIER:
                self._skip_annotation()
            else:
                break
        return modifiers

    def _skip_annotation(self) -> None:
        self._advance()
        self._advance()
        while self._text() == "." and self._kind(1) == IDENTIFIER:
            self._advance()
            self._advance()
        while self._text() in ("(", "[") and not self.newline_before[self.pos]:
            if not self._skip_balanced():
                return

    def _parse_brace_block(self) -> List[SyntaxNode]:
        start = self.pos
        if self._text(1) == "case" and self._text(2) not in ("class", "object"):
            return [self._parse_match_block(start, partial=True)]
        self._advance()
        children = self._parse_items(closer="}", member=False)
        if self._text() == "}":
            self._advance()
            return children
        return [self._opaque(start, self.pos, "unclosed '{'", start, expected="block", children=children)]

    def _parse_bracket_group(self) -> List[SyntaxNode]:
        start = self.pos
        opener = self._text()
        closer = _CLOSERS[opener]
        self._advance()
        children = self._parse_items(closer=closer, member=False)
        if self._text() == closer:
            self._advance()
            return children
        return [self._opaque(start, self.pos, f"unclosed '{opener}'", start, expected="group", children=children)]

    def _continues_expression(self) -> bool:
        tok = self._tok(self.pos)
        prev = self._tok(self.pos - 1)
        if tok is None:
            return False
        if tok.text in _CONTINUATION_WORDS:
            return True
        if tok.kind == OPERATOR and tok.text not in _DELIMITERS and tok.text not in ("@", "#"):
            return True
        if prev is not None:
            if prev.kind == OPERATOR and prev.text not in (")", "]", "}", ";"):
                return True
            if prev.kind == KEYWORD and prev.text in _CONTINUED_BY_KEYWORDS:
                return True
        return False

    def _parse_expression(self) -> List[SyntaxNode]:
        """Scan one expression: up to a statement boundary at bracket depth zero."""
        nodes: List[SyntaxNode] = []
        first = True
        while not self._at_end():
            text = self._text()
            if text in _CLOSING or text == ";":
                break
            if not first and self.newline_before[self.pos] and not self._continues_expression():
                break
            if self._starts_case_clause():
                break
            if text == "{":
                nodes.extend(self._parse_brace_block())
            elif text in ("(", "["):
                nodes.extend(self._parse_bracket_group())
            elif text == "match" and self._text(1) == "{":
                nodes.append(self._parse_match_block(self.pos, partial=False))
            else:
                self._advance()
            first = False
        return nodes

    # ----- imports and packages -----

    def _parse_import(self, start: int) -> SyntaxNode:
        keyword = self.pos
        self._advance()
        clause_start = self.pos
        depth = 0
        while not self._at_end():
            text = self._text()
            if depth == 0 and (text == ";" or text in _CLOSING):
                break
            if depth == 0 and self.pos > clause_start and self.newline_before[self.pos]:
                break
            if text == "{":
                depth += 1
            elif text == "}":
                depth -= 1
            self._advance()
        paths = self._split_import_paths(clause_start, self.pos)
        if not paths:
            return self._opaque(start, self.pos, "expected a path after 'import'", keyword, expected=IMPORT_CLAUSE)
        return self._node(
            IMPORT_CLAUSE,
            start,
            self.pos,
            name=paths[0],
            attrs={"paths": tuple(paths), "keyword_token": self.sig[keyword]},
        )

    def _split_import_paths(self, start: int, end: int) -> List[str]:
        paths: List[str] = []
        depth = 0
        segment_start = start
        for pos in range(start, end + 1):
            text = self._tok(pos).text if pos < end and self._tok(pos) is not None else ","
            if text == "{":
                depth += 1
            elif text == "}":
                depth -= 1
            elif text == "," and depth == 0:
                if pos > segment_start:
                    paths.append(re.sub(r"\s*\.\s*", ".", self._slice_text(segment_start, pos)))
                segment_start = pos + 1
        return paths

    def _parse_package(self, start: int) -> List[SyntaxNode]:
        self._advance()
        if self._text() == "object":
            return [self._parse_template(start, [], member=True, package_object=True)]
        name_start = self.pos
        while self._kind() == IDENTIFIER or (self._text() == "." and self.pos > name_start):
            if self.pos > name_start and self.newline_before[self.pos]:
                break
            self._advance()
        name = self._slice_text(name_start, self.pos).replace(" ", "")
        if name and self.package is None:
            self.package = name
        if self._text() != "{":
            return []
        open_pos = self.pos
        self._advance()
        children = self._parse_items(closer="}", member=True)
        if self._text() == "}":
            self._advance()
            return children
        return [self._opaque(open_pos, self.pos, "unclosed '{' of package block", open_pos,
                             expected="package", children=children)]

    # ----- declarations -----

    def _parse_template(
        self,
        start: int,
        modifiers: List[str],
        *,
        member: bool,
        package_object: bool = False,
    ) -> SyntaxNode:
        keyword_pos = self.pos
        keyword = self._text()
        kind = _TEMPLATE_KEYWORDS[keyword]
        self._advance()

        if self._kind() != IDENTIFIER:
            children: List[SyntaxNode] = []
            while not self._at_end() and not self.newline_before[self.pos] and self._text() not in _CLOSING:
                if self._text() == "{":
                    children.extend(self._parse_brace_block())
                    break
                self._advance()
            return self._opaque(start, self.pos, f"expected a name after '{keyword}'", keyword_pos,
                                expected=kind, children=children)

        name_pos = self.pos
        name = self._text()
        self._advance()
        if self._text() == "[":
            self._skip_balanced()

        children = []
        while not self._at_end():
            text = self._text()
            if text == "(" and not self.newline_before[self.pos]:
                children.append(self._parse_parameter_list())
            elif self._kind() == KEYWORD and text in ("private", "protected") and not self.newline_before[self.pos]:
                self._skip_modifiers()
            elif text == "@" and self._kind(1) == IDENTIFIER and not self.newline_before[self.pos]:
                self._skip_annotation()
            else:
                break

        parents = self._parse_parents()

        body_brace: Optional[int] = None
        if self._text() == "{":
            body_brace = self.sig[self.pos]
            open_pos = self.pos
            self._advance()
            children.extend(self._parse_items(closer="}", member=True))
            if self._text() == "}":
                self._advance()
            else:
                return self._opaque(start, self.pos, f"unclosed '{{' of {_KIND_LABELS[kind]} '{name}'",
                                    open_pos, expected=kind, children=children)

        return self._node(
            kind,
            start,
            self.pos,
            name=name,
            children=children,
            attrs={
                "modifiers": tuple(modifiers),
                "parents": tuple(parents),
                "member": member,
                "name_token": self.sig[name_pos],
                "keyword_token": self.sig[keyword_pos],
                "body_brace": body_brace,
                "case": "case" in modifiers,
                "package_object": package_object,
            },
        )

    def _parse_parents(self) -> List[str]:
        parents: List[str] = []
        if self._text() != "extends":
            return parents
        self._advance()
        while not self._at_end():
            while self._text() == "@" and self._kind(1) == IDENTIFIER:
                self._skip_annotation()
            if self._kind() != IDENTIFIER:
                break
            name_start = self.pos
            self._advance()
            while self._text() == "." and self._kind(1) == IDENTIFIER:
                self._advance()
                self._advance()
            parents.append(self._slice_text(name_start, self.pos).replace(" ", ""))
            while self._text() in ("(", "[") and not self.newline_before[self.pos]:
                if not self._skip_balanced():
                    return parents
            if self._text() == "with":
                self._advance()
                continue
            break
        return parents

    def _parse_def(self, start: int, modifiers: List[str], *, member: bool) -> SyntaxNode:
        keyword_pos = self.pos
        self._advance()
        tok = self._tok(self.pos)
        valid_name = tok is not None and (
            tok.kind == IDENTIFIER
            or (tok.kind == OPERATOR and tok.text not in _NOT_METHOD_NAMES)
            or tok.text == "this"
        )
        if tok is None or not valid_name:
            while not self._at_end() and not self.newline_before[self.pos] and self._text() not in _CLOSING:
                self._advance()
            return self._opaque(start, self.pos, "expected a name after 'def'", keyword_pos, expected=METHOD_DECL)

        name_pos = self.pos
        name = tok.text
        self._advance()
        if self._text() == "[":
            self._skip_balanced()

        children: List[SyntaxNode] = []
        while self._text() == "(" and not self.newline_before[self.pos]:
            children.append(self._parse_parameter_list())

        has_return_type = False
        if self._text() == ":":
            has_return_type = True
            self._advance()
            self._skip_type()

        body_brace: Optional[int] = None
        has_body = False
        if self._text() == "=":
            has_body = True
            self._advance()
            if self._text() == "{":
                body_brace = self.sig[self.pos]
            children.extend(self._parse_expression())
        elif self._text() == "{":
            # procedure syntax
            has_body = True
            body_brace = self.sig[self.pos]
            children.extend(self._parse_brace_block())

        return self._node(
            METHOD_DECL,
            start,
            self.pos,
            name=name,
            children=children,
            attrs={
                "modifiers": tuple(modifiers),
                "member": member,
                "name_token": self.sig[name_pos],
                "keyword_token": self.sig[keyword_pos],
                "body_brace": body_brace,
                "abstract": not has_body,
                "has_return_type": has_return_type,
                "constructor": name == "this",
                "symbolic": tok.kind == OPERATOR or bool(re.search(r"[^\w$`]", name)),
                "backquoted": name.startswith("`"),
            },
        )

    def _skip_type(self) -> None:
        depth = 0
        start = self.pos
        while not self._at_end():
            text = self._text()
            if depth == 0:
                if text in ("=", "{", ";") or text in _CLOSING:
                    return
                if self.pos > start and self.newline_before[self.pos] and not self._continues_expression():
                    return
            if text in ("(", "["):
                depth += 1
            elif text in (")", "]"):
                depth -= 1
            self._advance()

    def _parse_parameter_list(self) -> SyntaxNode:
        start = self.pos
        self._advance()
        implicit = self._text() in ("implicit", "using")
        names: List[str] = []
        name_tokens: List[int] = []
        segment_start = self.pos
        depth = 0
        while not self._at_end():
            text = self._text()
            if depth == 0 and text in (")", ","):
                self._record_parameter(segment_start, self.pos, names, name_tokens)
                if text == ")":
                    self._advance()
                    return self._node(
                        PARAMETER_LIST,
                        start,
                        self.pos,
                        attrs={
                            "names": tuple(names),
                            "name_tokens": tuple(name_tokens),
                            "count": len(names),
                            "implicit": implicit,
                        },
                    )
                segment_start = self.pos + 1
            elif text in _CLOSERS:
                depth += 1
            elif text in _CLOSING:
                depth -= 1
                if depth < 0:
                    break
            self._advance()
        return self._opaque(start, self.pos, "unclosed '(' of parameter list", start, expected=PARAMETER_LIST)

    def _record_parameter(self, start: int, end: int, names: List[str], name_tokens: List[int]) -> None:
        for pos in range(start, end):
            tok = self._tok(pos)
            nxt = self._tok(pos + 1)
            if tok is None or nxt is None:
                return
            if tok.kind == IDENTIFIER and nxt.text == ":" and pos + 1 < end:
                names.append(tok.text)
                name_tokens.append(self.sig[pos])
                return

    # ----- pattern matching -----

    def _parse_match_block(self, start: int, *, partial: bool) -> SyntaxNode:
        if not partial:
            self._advance()
        open_pos = self.pos
        self._advance()
        children = self._parse_items(closer="}", member=False, stop_at_case=True)
        case_count = 0
        while self._starts_case_clause():
            children.append(self._parse_case_clause())
            case_count += 1
        if self._text() != "}":
            return self._opaque(start, self.pos, "unclosed '{' of match block", open_pos,
                                expected=MATCH_BLOCK, children=children)
        self._advance()
        return self._node(
            MATCH_BLOCK,
            start,
            self.pos,
            children=children,
            attrs={"partial": partial, "case_count": case_count},
        )

    def _parse_case_clause(self) -> SyntaxNode:
        start = self.pos
        self._advance()
        pattern_start = self.pos
        pattern_end: Optional[int] = None
        guard = False
        depth = 0
        while not self._at_end():
            text = self._text()
            if depth == 0:
                if text in ("=>", "⇒"):
                    break
                if text == "if" and pattern_end is None:
                    pattern_end = self.pos
                    guard = True
                if self._starts_case_clause() or text in _CLOSING:
                    break
            if text in _CLOSERS:
                depth += 1
            elif text in _CLOSING:
                depth -= 1
            self._advance()

        if pattern_end is None:
            pattern_end = self.pos
        pattern = self._slice_text(pattern_start, pattern_end)

        if self._text() not in ("=>", "⇒"):
            return self._opaque(start, self.pos, "expected '=>' in case clause", start, expected=CASE_CLAUSE)
        self._advance()
        children = self._parse_items(closer="}", member=False, stop_at_case=True)
        wildcard = pattern == "_" and not guard
        catch_all = not guard and bool(re.fullmatch(r"[a-z_][A-Za-z0-9_]*", pattern))
        return self._node(
            CASE_CLAUSE,
            start,
            self.pos,
            children=children,
            attrs={"pattern": pattern, "guard": guard, "wildcard": wildcard, "catch_all": catch_all},
        )


def build_tree(tokens: Sequence[Token], source: SourceText) -> Tuple[SyntaxNode, Tuple[ParseError, ...]]:
    """
    Build the compilation-unit tree for one file. Never raises on bad input:
    unparseable regions come back as opaque nodes plus ParseErrors.
    """
    builder = _TreeBuilder(tokens, source)
    root = builder.build()
    return root, tuple(builder.errors)


# ============================================================
# ===================== SUPPRESSIONS =========================
# ============================================================

_SUPPRESSION_PATTERN = re.compile(r"lintcheck:(off|on|ignore)\b([^\n]*)")
_RULE_ID_PATTERN = re.compile(r"[a-z0-9][a-z0-9_-]*")
_ALL_RULES = "*"


class Suppressions:
    """
    Inline suppression comments:

      // lintcheck:off [rule-id ...]    start a suppressed region
      // lintcheck:on [rule-id ...]     end it (no ids ends every open region)
      // lintcheck:ignore [rule-id ...] suppress the comment's own line

    Without ids a directive applies to all rules. Anything after `--` is a
    free-form reason.
    """

    def __init__(
        self,
        regions: Sequence[Tuple[str, int, Optional[int]]] = (),
        ignored_lines: Optional[Mapping[int, FrozenSet[str]]] = None,
    ) -> None:
        self.regions = tuple(regions)
        self.ignored_lines: Mapping[int, FrozenSet[str]] = MappingProxyType(dict(ignored_lines or {}))

    @classmethod
    def from_tokens(cls, tokens: Iterable[Token]) -> "Suppressions":
        regions: List[Tuple[str, int, Optional[int]]] = []
        open_regions: Dict[str, int] = {}
        ignored: Dict[int, Set[str]] = {}
        for tok in tokens:
            if tok.kind != COMMENT:
                continue
            for match in _SUPPRESSION_PATTERN.finditer(tok.text):
                directive = match.group(1)
                rule_ids = _parse_suppressed_ids(match.group(2))
                line = tok.span.start_line + tok.text.count("\n", 0, match.start())
                if directive == "ignore":
                    ignored.setdefault(line, set()).update(rule_ids or {_ALL_RULES})
                elif directive == "off":
                    for rule_id in rule_ids or [_ALL_RULES]:
                        open_regions.setdefault(rule_id, line)
                else:
                    closing = rule_ids or list(open_regions)
                    for rule_id in closing:
                        start = open_regions.pop(rule_id, None)
                        if start is not None:
                            regions.append((rule_id, start, line))
        for rule_id, start in open_regions.items():
            regions.append((rule_id, start, None))
        return cls(regions, {line: frozenset(ids) for line, ids in ignored.items()})

    def is_suppressed(self, rule_id: str, line: int) -> bool:
        ids = self.ignored_lines.get(line)
        if ids is not None and (rule_id in ids or _ALL_RULES in ids):
            return True
        for region_rule, start, end in self.regions:
            if region_rule not in (rule_id, _ALL_RULES):
                continue
            if start <= line and (end is None or line <= end):
                return True
        return False


def _parse_suppressed_ids(rest: str) -> List[str]:
    rest = rest.split("--", 1)[0]
    rest = rest.replace("*/", " ")
    ids: List[str] = []
    for word in re.split(r"[\s,]+", rest):
        if not word:
            continue
        if not _RULE_ID_PATTERN.fullmatch(word):
            break
        ids.append(word)
    return ids


# ============================================================
# ====================== FILE CONTEXT ========================
# ============================================================

@dataclass(frozen=True)
class FileContext:
    """
    Everything a rule may look at for one file. Built once per file and
    shared read-only by every rule evaluation.
    """
    path: str
    source: SourceText
    tokens: Tuple[Token, ...]
    tree: SyntaxNode
    lex_errors: Tuple[LexError, ...] = ()
    parse_errors: Tuple[ParseError, ...] = ()
    suppressions: Suppressions = field(default_factory=Suppressions)

    @property
    def text(self) -> str:
        return self.source.text

    def nodes(self, *kinds: str) -> Iterator[SyntaxNode]:
        for node in self.tree.walk():
            if not kinds or node.kind in kinds:
                yield node

    def tokens_of(self, kind: str) -> Iterator[Tuple[int, Token]]:
        for index, tok in enumerate(self.tokens):
            if tok.kind == kind:
                yield index, tok

    def node_text(self, node: SyntaxNode) -> str:
        return self.source.text[node.span.start_offset:node.span.end_offset]

    def previous_significant(self, index: int) -> Optional[int]:
        index -= 1
        while index >= 0:
            if not self.tokens[index].is_trivia:
                return index
            index -= 1
        return None

    def has_doc_comment(self, node: SyntaxNode) -> bool:
        """True when the trivia directly before the node holds a `/** */` comment."""
        index = node.first_token - 1
        while index >= 0:
            tok = self.tokens[index]
            if tok.kind == WHITESPACE:
                index -= 1
                continue
            if tok.kind == COMMENT:
                if tok.is_doc_comment:
                    return True
                # a suppression or plain line comment between doc and declaration
                index -= 1
                continue
            return False
        return False


def build_file_context(path: str, text: str) -> FileContext:
    source = SourceText(text)
    tokens, lex_errors = TokenStream(source).scan()
    tree, parse_errors = build_tree(tokens, source)
    return FileContext(
        path=path,
        source=source,
        tokens=tokens,
        tree=tree,
        lex_errors=lex_errors,
        parse_errors=parse_errors,
        suppressions=Suppressions.from_tokens(tokens),
    )


# ============================================================
# ======================= RULE MODELS ========================
# ============================================================

@dataclass(frozen=True)
class Finding:
    """A rule's raw result; the engine adds path and effective severity."""
    span: Span
    message: str


@dataclass(frozen=True)
class Violation:
    rule_id: str
    message: str
    path: str
    span: Span
    severity: str

    @property
    def sort_key(self) -> Tuple[Any, ...]:
        return (
            self.path,
            self.span.start_line,
            self.span.start_col,
            self.rule_id,
            self.span.end_line,
            self.span.end_col,
            self.message,
        )

    @property
    def dedupe_key(self) -> Tuple[str, str, Span]:
        return (self.rule_id, self.path, self.span)

    def format_text(self) -> str:
        return f"{self.path}:{self.span.start_line}:{self.span.start_col}: [{self.severity}] {self.rule_id}: {self.message}"


RuleCheck = Callable[[FileContext, Mapping[str, Any]], Iterable[Finding]]


@dataclass(frozen=True)
class Rule:
    """
    One checkable convention. `check` must be pure: given the same context
    and parameters it yields the same findings and touches nothing else.
    """
    id: str
    description: str
    severity: str
    check: RuleCheck
    defaults: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    tags: Tuple[str, ...] = ()


BUILTIN_RULES: Dict[str, Rule] = {}


def register_rule(
    rule_id: str,
    description: str,
    *,
    severity: str = "warning",
    tags: Sequence[str] = (),
    **defaults: Any,
) -> Callable[[RuleCheck], RuleCheck]:
    if severity not in SEVERITIES:
        raise ValueError(f"invalid severity {severity!r} for rule {rule_id}")

    def decorator(func: RuleCheck) -> RuleCheck:
        if rule_id in BUILTIN_RULES:
            raise ValueError(f"duplicate rule id {rule_id}")
        BUILTIN_RULES[rule_id] = Rule(
            id=rule_id,
            description=description,
            severity=severity,
            check=func,
            defaults=MappingProxyType(dict(defaults)),
            tags=tuple(tags),
        )
        return func

    return decorator


def _token_finding(ctx: FileContext, index: int, message: str) -> Finding:
    return Finding(ctx.tokens[index].span, message)


def _is_private(node: SyntaxNode) -> bool:
    modifiers = node.attr("modifiers", ())
    return "private" in modifiers or "protected" in modifiers


# ============================================================
# ===================== BUILT-IN RULES =======================
# ============================================================

# ----- diagnostics from the front end -----

@register_rule("lex-error", "Source text must tokenize cleanly.", severity="error", tags=("syntax",))
def check_lex_errors(ctx: FileContext, params: Mapping[str, Any]) -> Iterator[Finding]:
    for error in ctx.lex_errors:
        yield Finding(error.span, error.message)


@register_rule("parse-error", "Source structure must be parseable.", severity="warning", tags=("syntax",))
def check_parse_errors(ctx: FileContext, params: Mapping[str, Any]) -> Iterator[Finding]:
    for error in ctx.parse_errors:
        yield Finding(error.span, error.message)


# ----- formatting -----

@register_rule(
    "line-length",
    "Lines must not exceed the configured width.",
    tags=("formatting",),
    max=100,
    ignore_imports=True,
)
def check_line_length(ctx: FileContext, params: Mapping[str, Any]) -> Iterator[Finding]:
    limit = int(params["max"])
    for line_no in range(1, ctx.source.line_count + 1):
        line = ctx.source.line_text(line_no)
        if len(line) <= limit:
            continue
        if params["ignore_imports"] and line.lstrip().startswith("import "):
            continue
        yield Finding(
            ctx.source.line_span(line_no, limit + 1),
            f"line is {len(line)} characters long (max {limit})",
        )


@register_rule("no-tabs", "Indent and separate with spaces, never tabs.", severity="error", tags=("formatting",))
def check_no_tabs(ctx: FileContext, params: Mapping[str, Any]) -> Iterator[Finding]:
    for _, tok in ctx.tokens_of(WHITESPACE):
        for match in re.finditer(r"\t+", tok.text):
            start = tok.span.start_offset + match.start()
            yield Finding(ctx.source.span(start, start + len(match.group())), "tab character used as whitespace")


def _line_ends_after(ctx: FileContext, tok: Token) -> bool:
    end = tok.span.end_offset
    return end >= len(ctx.text) or ctx.text[end] in "\r\n"


@register_rule("trailing-whitespace", "Lines must not end with whitespace.", tags=("formatting",))
def check_trailing_whitespace(ctx: FileContext, params: Mapping[str, Any]) -> Iterator[Finding]:
    for tok in ctx.tokens:
        if tok.kind not in (WHITESPACE, COMMENT):
            continue
        for match in re.finditer(r"[ \t\f]+(?=\r?\n|\Z)", tok.text):
            if match.end() == len(tok.text) and not _line_ends_after(ctx, tok):
                continue
            start = tok.span.start_offset + match.start()
            yield Finding(ctx.source.span(start, start + len(match.group())), "trailing whitespace")


def _continuation_lines(ctx: FileContext) -> Set[int]:
    """Lines that begin inside a multi-line comment or literal."""
    lines: Set[int] = set()
    for tok in ctx.tokens:
        if tok.kind in (COMMENT, LITERAL, INVALID) and tok.span.end_line > tok.span.start_line:
            lines.update(range(tok.span.start_line + 1, tok.span.end_line + 1))
    return lines


@register_rule("indentation", "Indentation must be a multiple of the indent width.", tags=("formatting",), width=2)
def check_indentation(ctx: FileContext, params: Mapping[str, Any]) -> Iterator[Finding]:
    width = int(params["width"])
    skipped = _continuation_lines(ctx)
    for line_no in range(1, ctx.source.line_count + 1):
        if line_no in skipped:
            continue
        line = ctx.source.line_text(line_no)
        stripped = line.lstrip(" ")
        if not stripped.strip() or stripped.startswith("\t"):
            continue
        indent = len(line) - len(stripped)
        if indent % width:
            yield Finding(
                ctx.source.line_span(line_no, 1, indent + 1),
                f"indentation of {indent} spaces is not a multiple of {width}",
            )


@register_rule("file-end-newline", "Files must end with a newline.", tags=("formatting",))
def check_file_end_newline(ctx: FileContext, params: Mapping[str, Any]) -> Iterator[Finding]:
    text = ctx.text
    if text and not text.endswith("\n"):
        yield Finding(ctx.source.span(len(text) - 1, len(text)), "file does not end with a newline")


@register_rule("space-after-comma", "A comma must be followed by whitespace.", tags=("formatting",))
def check_space_after_comma(ctx: FileContext, params: Mapping[str, Any]) -> Iterator[Finding]:
    tokens = ctx.tokens
    for index, tok in ctx.tokens_of(OPERATOR):
        if tok.text != "," or index + 1 >= len(tokens):
            continue
        nxt = tokens[index + 1]
        if nxt.kind != WHITESPACE:
            yield _token_finding(ctx, index, "missing space after ','")


@register_rule(
    "brace-same-line",
    "The opening brace of a declaration body goes on the declaration's line.",
    tags=("formatting",),
)
def check_brace_same_line(ctx: FileContext, params: Mapping[str, Any]) -> Iterator[Finding]:
    for node in ctx.nodes(CLASS_DECL, OBJECT_DECL, TRAIT_DECL, METHOD_DECL):
        brace = node.attr("body_brace")
        if brace is None:
            continue
        previous = ctx.previous_significant(brace)
        if previous is None:
            continue
        if ctx.tokens[previous].span.end_line < ctx.tokens[brace].span.start_line:
            yield _token_finding(
                ctx,
                brace,
                f"opening brace of {node.label} '{node.name}' should be on the same line as its declaration",
            )


# ----- naming -----

@register_rule(
    "type-name-case",
    "Classes, traits and objects use UpperCamelCase names.",
    severity="error",
    tags=("naming",),
    pattern=r"^[A-Z][A-Za-z0-9]*$",
)
def check_type_name_case(ctx: FileContext, params: Mapping[str, Any]) -> Iterator[Finding]:
    pattern = re.compile(params["pattern"])
    for node in ctx.nodes(*TEMPLATE_KINDS):
        name = node.name or ""
        if node.attr("package_object") or name.startswith("`"):
            continue
        if not pattern.search(name):
            yield _token_finding(
                ctx,
                node.attr("name_token"),
                f"{node.label} name '{name}' does not match {params['pattern']}",
            )


@register_rule(
    "method-name-case",
    "Methods use lowerCamelCase names.",
    severity="error",
    tags=("naming",),
    pattern=r"^[a-z][A-Za-z0-9]*$",
)
def check_method_name_case(ctx: FileContext, params: Mapping[str, Any]) -> Iterator[Finding]:
    pattern = re.compile(params["pattern"])
    for node in ctx.nodes(METHOD_DECL):
        if node.attr("symbolic") or node.attr("backquoted") or node.attr("constructor"):
            continue
        name = node.name or ""
        if not pattern.search(name):
            yield _token_finding(
                ctx,
                node.attr("name_token"),
                f"method name '{name}' does not match {params['pattern']}",
            )


@register_rule(
    "parameter-name-case",
    "Parameters use lowerCamelCase names.",
    tags=("naming",),
    pattern=r"^[a-z][A-Za-z0-9]*$",
)
def check_parameter_name_case(ctx: FileContext, params: Mapping[str, Any]) -> Iterator[Finding]:
    pattern = re.compile(params["pattern"])
    for node in ctx.nodes(PARAMETER_LIST):
        for name, index in zip(node.attr("names", ()), node.attr("name_tokens", ())):
            if name == "_" or name.startswith("`"):
                continue
            if not pattern.search(name):
                yield _token_finding(ctx, index, f"parameter name '{name}' does not match {params['pattern']}")


# ----- imports -----

def _import_group(path: str, groups: Sequence[Any], project_prefixes: Sequence[str]) -> int:
    def matches(prefix: str) -> bool:
        return path == prefix or path.startswith(prefix + ".")

    if any(matches(prefix) for prefix in project_prefixes):
        return len(groups)
    wildcard_group: Optional[int] = None
    for index, group in enumerate(groups):
        prefixes = [group] if isinstance(group, str) else list(group)
        if "*" in prefixes:
            wildcard_group = index
        if any(prefix != "*" and matches(prefix) for prefix in prefixes):
            return index
    return wildcard_group if wildcard_group is not None else len(groups)


def _import_runs(ctx: FileContext) -> Iterator[List[SyntaxNode]]:
    """Consecutive import clauses that share a parent with only trivia between them."""
    for parent in ctx.tree.walk():
        run: List[SyntaxNode] = []
        for child in parent.children:
            if child.kind != IMPORT_CLAUSE:
                if run:
                    yield run
                run = []
                continue
            if run and any(not tok.is_trivia for tok in ctx.tokens[run[-1].last_token + 1:child.first_token]):
                yield run
                run = []
            run.append(child)
        if run:
            yield run


@register_rule(
    "import-ordering",
    "Imports are grouped (java/javax, scala, third party, project) and sorted within a group.",
    tags=("imports",),
    groups=(("java", "javax"), ("scala",), ("*",)),
    project_prefixes=(),
)
def check_import_ordering(ctx: FileContext, params: Mapping[str, Any]) -> Iterator[Finding]:
    groups = params["groups"]
    project_prefixes = params["project_prefixes"]
    for run in _import_runs(ctx):
        previous: Optional[Tuple[int, str]] = None
        for node in run:
            path = node.name or ""
            key = (_import_group(path, groups, project_prefixes), path)
            if previous is not None and key < previous:
                if key[0] != previous[0]:
                    message = f"import '{path}' belongs to an earlier group than '{previous[1]}'"
                else:
                    message = f"import '{path}' should come before '{previous[1]}'"
                yield Finding(node.span, message)
                continue
            previous = key


def _wildcard_base(path: str) -> Optional[str]:
    if path.endswith("._") or path.endswith(".*"):
        return path[:-2]
    if path.endswith("}") and ".{" in path:
        base, selectors = path.split(".{", 1)
        for selector in selectors[:-1].split(","):
            selector = selector.strip()
            if selector in ("_", "*") or selector.startswith("given"):
                return base
    return None


@register_rule("wildcard-import", "Import names explicitly instead of using wildcards.", tags=("imports",), allow=())
def check_wildcard_import(ctx: FileContext, params: Mapping[str, Any]) -> Iterator[Finding]:
    allowed = tuple(params["allow"])
    for node in ctx.nodes(IMPORT_CLAUSE):
        for path in node.attr("paths", ()):
            base = _wildcard_base(path)
            if base is None:
                continue
            if any(base == prefix or base.startswith(prefix + ".") for prefix in allowed):
                continue
            yield Finding(node.span, f"wildcard import '{path}'")


# ----- documentation -----

@register_rule(
    "public-doc",
    "Public members carry a /** */ doc comment.",
    tags=("documentation",),
    kinds=(CLASS_DECL, TRAIT_DECL, OBJECT_DECL, METHOD_DECL),
)
def check_public_doc(ctx: FileContext, params: Mapping[str, Any]) -> Iterator[Finding]:
    kinds = tuple(params["kinds"])
    for node in ctx.nodes(*kinds):
        if node.kind not in NODE_KINDS or not node.attr("member") or _is_private(node):
            continue
        if node.kind == METHOD_DECL and ("override" in node.attr("modifiers", ()) or node.attr("constructor")):
            continue
        if ctx.has_doc_comment(node):
            continue
        yield _token_finding(ctx, node.attr("name_token"), f"public {node.label} '{node.name}' has no doc comment")


# ----- code constructs -----

@register_rule("max-parameters", "Parameter lists stay short.", tags=("design",), max=6)
def check_max_parameters(ctx: FileContext, params: Mapping[str, Any]) -> Iterator[Finding]:
    limit = int(params["max"])
    for node in ctx.nodes(PARAMETER_LIST):
        count = node.attr("count", 0)
        if count > limit:
            yield Finding(node.span, f"parameter list has {count} parameters (max {limit})")


@register_rule("no-return", "Avoid explicit 'return'; the last expression is the result.", tags=("design",))
def check_no_return(ctx: FileContext, params: Mapping[str, Any]) -> Iterator[Finding]:
    for index, tok in ctx.tokens_of(KEYWORD):
        if tok.text == "return":
            yield _token_finding(ctx, index, "avoid explicit 'return'")


@register_rule("no-null", "Avoid 'null'; use Option.", tags=("design",))
def check_no_null(ctx: FileContext, params: Mapping[str, Any]) -> Iterator[Finding]:
    for index, tok in ctx.tokens_of(KEYWORD):
        if tok.text == "null":
            yield _token_finding(ctx, index, "avoid 'null'; use Option instead")


@register_rule(
    "match-wildcard-last",
    "A catch-all case must be the last case of its match.",
    severity="error",
    tags=("pattern-matching",),
)
def check_match_wildcard_last(ctx: FileContext, params: Mapping[str, Any]) -> Iterator[Finding]:
    for node in ctx.nodes(MATCH_BLOCK):
        cases = [child for child in node.children if child.kind == CASE_CLAUSE]
        for case in cases[:-1]:
            if case.attr("catch_all"):
                yield Finding(
                    case.span,
                    f"catch-all 'case {case.attr('pattern')}' is not the last case; later cases are unreachable",
                )


# ----- testing conventions -----

@register_rule(
    "test-suite-name",
    "Test classes are named after what they test, with a 'Suite' suffix.",
    tags=("testing",),
    parent_pattern=r"(Suite|Spec)(Like)?$",
    suffix="Suite",
)
def check_test_suite_name(ctx: FileContext, params: Mapping[str, Any]) -> Iterator[Finding]:
    pattern = re.compile(params["parent_pattern"])
    suffix = params["suffix"]
    for node in ctx.nodes(CLASS_DECL):
        if "abstract" in node.attr("modifiers", ()):
            continue
        parents = [parent.rsplit(".", 1)[-1] for parent in node.attr("parents", ())]
        if not any(pattern.search(parent) for parent in parents):
            continue
        if not (node.name or "").endswith(suffix):
            yield _token_finding(ctx, node.attr("name_token"), f"test class '{node.name}' should end with '{suffix}'")


# ============================================================
# ==================== EXPRESSION RULES ======================
# ============================================================

def _mark_safe_callable(func: Any) -> Any:
    setattr(func, "_lintcheck_safe_callable", True)
    return func


def _wrap_safe_callable(func: Any) -> Any:
    @functools.wraps(func)
    def _safe_wrapper(*args: Any, **kwargs: Any) -> Any:
        return func(*args, **kwargs)

    return _mark_safe_callable(_safe_wrapper)


def _matches(pattern: str, value: Any) -> bool:
    return value is not None and re.search(pattern, str(value)) is not None


def _startswith(value: Any, prefix: str) -> bool:
    return value is not None and str(value).startswith(prefix)


def _endswith(value: Any, suffix: str) -> bool:
    return value is not None and str(value).endswith(suffix)


_SAFE_BASE_CALLABLES: Dict[str, Any] = {
    "len": _wrap_safe_callable(len),
    "any": _wrap_safe_callable(any),
    "all": _wrap_safe_callable(all),
    "sum": _wrap_safe_callable(sum),
    "min": _wrap_safe_callable(min),
    "max": _wrap_safe_callable(max),
    "sorted": _wrap_safe_callable(sorted),
    "abs": _wrap_safe_callable(abs),
    "matches": _wrap_safe_callable(_matches),
    "startswith": _wrap_safe_callable(_startswith),
    "endswith": _wrap_safe_callable(_endswith),
}

# Methods of these value types may be called from expressions.
_SAFE_METHOD_OWNERS = (str, tuple, list, dict, MappingProxyType)

EXPRESSION_NAMES = frozenset({
    "node", "name", "kind", "attrs", "children", "text", "line_count", "path", "params",
}) | frozenset(_SAFE_BASE_CALLABLES)

_UNSAFE_ATTRIBUTES = frozenset({"format", "format_map"})

TEMPLATE_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


class ExpressionEvalError(LintError):
    """Raised when an expression uses an unsafe or invalid construct."""


class _SafeExpressionInterpreter:
    """
    Evaluates a restricted subset of Python expressions by walking the AST.
    Supports boolean logic, arithmetic, comparisons, attribute access, indexing,
    safe function calls, comprehensions and literals/containers.

    `compile()` validates an expression once, when configuration is loaded;
    `evaluate()` then runs the checked tree against one node's bindings.
    """

    _BIN_OPS = {
        ast.Add: operator.add,
        ast.Sub: operator.sub,
        ast.Mult: operator.mul,
        ast.Div: operator.truediv,
        ast.FloorDiv: operator.floordiv,
        ast.Mod: operator.mod,
    }
    _UNARY_OPS = {
        ast.Not: operator.not_,
        ast.USub: operator.neg,
        ast.UAdd: operator.pos,
    }
    _COMPARE_OPS = {
        ast.Eq: operator.eq,
        ast.NotEq: operator.ne,
        ast.Gt: operator.gt,
        ast.GtE: operator.ge,
        ast.Lt: operator.lt,
        ast.LtE: operator.le,
        ast.In: lambda left, right: left in right,
        ast.NotIn: lambda left, right: left not in right,
        ast.Is: operator.is_,
        ast.IsNot: operator.is_not,
    }
    _ALLOWED_NODES = (
        ast.Expression, ast.BoolOp, ast.And, ast.Or, ast.UnaryOp, ast.BinOp, ast.Compare,
        ast.IfExp, ast.Attribute, ast.Name, ast.Load, ast.Store, ast.Constant, ast.Call,
        ast.keyword, ast.Subscript, ast.Slice, ast.List, ast.Tuple, ast.Set, ast.Dict,
        ast.GeneratorExp, ast.ListComp, ast.SetComp, ast.comprehension,
    ) + tuple(_BIN_OPS) + tuple(_UNARY_OPS) + tuple(_COMPARE_OPS)

    def compile(self, expr: str) -> ast.Expression:
        expr = expr.strip()
        if not expr:
            raise ExpressionEvalError("empty expression")
        try:
            tree = ast.parse(expr, mode="eval")
        except SyntaxError as exc:
            raise ExpressionEvalError(f"invalid expression '{expr}': {exc.msg}") from exc

        bound = set(EXPRESSION_NAMES)
        for node in ast.walk(tree):
            if isinstance(node, ast.comprehension):
                bound.update(n.id for n in ast.walk(node.target) if isinstance(n, ast.Name))
        for node in ast.walk(tree):
            if not isinstance(node, self._ALLOWED_NODES):
                raise ExpressionEvalError(f"unsupported expression node: {type(node).__name__}")
            if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
                raise ExpressionEvalError("access to private attributes is not allowed")
            if isinstance(node, ast.Attribute) and node.attr in _UNSAFE_ATTRIBUTES:
                raise ExpressionEvalError(f"attribute '{node.attr}' is not allowed")
            if isinstance(node, ast.Name) and node.id not in bound:
                raise ExpressionEvalError(f"unknown identifier '{node.id}'")
        return tree

    def evaluate(self, tree: ast.Expression, env: Mapping[str, Any]) -> Any:
        return self._eval_node(tree.body, env)

    def _eval_node(self, node: ast.AST, env: Mapping[str, Any]) -> Any:
        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                result = True
                for value in node.values:
                    result = result and bool(self._eval_node(value, env))
                    if not result:
                        break
                return result
            result = False
            for value in node.values:
                result = result or bool(self._eval_node(value, env))
                if result:
                    break
            return result

        if isinstance(node, ast.UnaryOp):
            return self._UNARY_OPS[type(node.op)](self._eval_node(node.operand, env))

        if isinstance(node, ast.BinOp):
            left = self._eval_node(node.left, env)
            right = self._eval_node(node.right, env)
            return self._BIN_OPS[type(node.op)](left, right)

        if isinstance(node, ast.Compare):
            left = self._eval_node(node.left, env)
            for operator_node, comparator in zip(node.ops, node.comparators):
                right = self._eval_node(comparator, env)
                if not self._COMPARE_OPS[type(operator_node)](left, right):
                    return False
                left = right
            return True

        if isinstance(node, ast.IfExp):
            condition = self._eval_node(node.test, env)
            branch = node.body if condition else node.orelse
            return self._eval_node(branch, env)

        if isinstance(node, ast.Attribute):
            value = self._eval_node(node.value, env)
            attr_value = getattr(value, node.attr)
            if callable(attr_value) and not getattr(attr_value, "_lintcheck_safe_callable", False):
                if not isinstance(value, _SAFE_METHOD_OWNERS):
                    raise ExpressionEvalError(f"method '{node.attr}' is not callable from expressions")
                attr_value = _wrap_safe_callable(attr_value)
            return attr_value

        if isinstance(node, ast.Name):
            if node.id in env:
                return env[node.id]
            raise ExpressionEvalError(f"unknown identifier '{node.id}'")

        if isinstance(node, ast.Constant):
            return node.value

        if isinstance(node, ast.GeneratorExp):
            return self._comprehension_values(node.generators, env, node.elt)

        if isinstance(node, ast.ListComp):
            return list(self._comprehension_values(node.generators, env, node.elt))

        if isinstance(node, ast.SetComp):
            return set(self._comprehension_values(node.generators, env, node.elt))

        if isinstance(node, ast.Call):
            func_obj = self._eval_node(node.func, env)
            if not getattr(func_obj, "_lintcheck_safe_callable", False):
                raise ExpressionEvalError("call to unsafe function is not allowed")
            args = [self._eval_node(arg, env) for arg in node.args]
            kwargs = {kw.arg: self._eval_node(kw.value, env) for kw in node.keywords if kw.arg}
            return func_obj(*args, **kwargs)

        if isinstance(node, ast.Subscript):
            value = self._eval_node(node.value, env)
            return value[self._eval_slice(node.slice, env)]

        if isinstance(node, ast.List):
            return [self._eval_node(elt, env) for elt in node.elts]

        if isinstance(node, ast.Tuple):
            return tuple(self._eval_node(elt, env) for elt in node.elts)

        if isinstance(node, ast.Set):
            return {self._eval_node(elt, env) for elt in node.elts}

        if isinstance(node, ast.Dict):
            keys = [self._eval_node(k, env) for k in node.keys if k is not None]
            values = [self._eval_node(v, env) for v in node.values]
            return dict(zip(keys, values))

        raise ExpressionEvalError(f"unsupported expression node: {type(node).__name__}")

    def _eval_slice(self, slice_node: ast.AST, env: Mapping[str, Any]) -> Any:
        if isinstance(slice_node, ast.Slice):
            lower = self._eval_node(slice_node.lower, env) if slice_node.lower else None
            upper = self._eval_node(slice_node.upper, env) if slice_node.upper else None
            step = self._eval_node(slice_node.step, env) if slice_node.step else None
            return slice(lower, upper, step)
        return self._eval_node(slice_node, env)

    def _comprehension_values(
        self,
        generators: List[ast.comprehension],
        env: Mapping[str, Any],
        value_node: ast.AST,
    ) -> Iterator[Any]:
        def recurse(index: int, current_env: Dict[str, Any]) -> Iterator[Any]:
            if index == len(generators):
                yield self._eval_node(value_node, current_env)
                return
            comp = generators[index]
            for item in self._eval_node(comp.iter, current_env):
                new_env = dict(current_env)
                self._assign_target(new_env, comp.target, item)
                if all(bool(self._eval_node(condition, new_env)) for condition in comp.ifs):
                    yield from recurse(index + 1, new_env)

        return recurse(0, dict(env))

    def _assign_target(self, env: Dict[str, Any], target: ast.AST, value: Any) -> None:
        if isinstance(target, ast.Name):
            env[target.id] = value
            return
        if isinstance(target, (ast.Tuple, ast.List)):
            values = list(value)
            if len(target.elts) != len(values):
                raise ExpressionEvalError("comprehension target length mismatch")
            for subtarget, subvalue in zip(target.elts, values):
                self._assign_target(env, subtarget, subvalue)
            return
        raise ExpressionEvalError("unsupported comprehension target")


_INTERPRETER = _SafeExpressionInterpreter()


def _node_env(ctx: FileContext, node: SyntaxNode, params: Mapping[str, Any]) -> Dict[str, Any]:
    env: Dict[str, Any] = dict(_SAFE_BASE_CALLABLES)
    env.update(
        {
            "node": node,
            "name": node.name,
            "kind": node.kind,
            "attrs": node.attrs,
            "children": node.children,
            "text": ctx.node_text(node),
            "line_count": node.span.end_line - node.span.start_line + 1,
            "path": ctx.path,
            "params": params,
        }
    )
    return env


class _ExpressionCheck:
    """Check function behind a configured expression rule."""

    def __init__(
        self,
        scope: str,
        select: Optional[ast.Expression],
        assertion: ast.Expression,
        message: Sequence[Tuple[str, Optional[ast.Expression]]],
    ) -> None:
        self.scope = scope
        self.select = select
        self.assertion = assertion
        self.message = tuple(message)

    def __call__(self, ctx: FileContext, params: Mapping[str, Any]) -> Iterator[Finding]:
        for node in ctx.nodes(self.scope):
            env = _node_env(ctx, node, params)
            if self.select is not None and not _INTERPRETER.evaluate(self.select, env):
                continue
            if _INTERPRETER.evaluate(self.assertion, env):
                continue
            yield Finding(node.span, self._render(env))

    def _render(self, env: Mapping[str, Any]) -> str:
        parts: List[str] = []
        for literal, expr in self.message:
            parts.append(literal)
            if expr is not None:
                value = _INTERPRETER.evaluate(expr, env)
                parts.append("" if value is None else str(value))
        return "".join(parts)


def _compile_template(template: str) -> List[Tuple[str, Optional[ast.Expression]]]:
    """Split a `{{ expr }}` template into literal text and compiled expressions."""
    pieces: List[Tuple[str, Optional[ast.Expression]]] = []
    last = 0
    for match in TEMPLATE_PATTERN.finditer(template):
        pieces.append((template[last:match.start()], _INTERPRETER.compile(match.group(1))))
        last = match.end()
    pieces.append((template[last:], None))
    return pieces


def build_expression_rule(
    rule_id: str,
    *,
    scope: str,
    assertion: str,
    select: Optional[str] = None,
    message: Optional[str] = None,
    description: str = "",
    severity: str = "warning",
    params: Optional[Mapping[str, Any]] = None,
) -> Rule:
    """
    Compile a configured rule. Raises ExpressionEvalError for any expression
    that does not parse or uses a construct outside the safe subset.
    """
    if scope not in NODE_KINDS:
        raise ExpressionEvalError(f"unknown scope '{scope}' (expected one of: {', '.join(NODE_KINDS)})")
    check = _ExpressionCheck(
        scope,
        _INTERPRETER.compile(select) if select and select.strip() else None,
        _INTERPRETER.compile(assertion),
        _compile_template(message or f"{description or rule_id} ({{{{ kind }}}} '{{{{ name }}}}')"),
    )
    return Rule(
        id=rule_id,
        description=description or f"expression rule on {scope}",
        severity=severity,
        check=check,
        defaults=MappingProxyType(dict(params or {})),
        tags=("custom",),
    )


# ============================================================
# ===================== CONFIGURATION ========================
# ============================================================

CONFIG_FILENAMES = (".lintcheck.yaml", ".lintcheck.yml")
CONFIG_ENV_VAR = "LINTCHECK_CONFIG"
DEFAULT_EXTENSIONS = (".scala", ".sc")

_TOP_LEVEL_KEYS = ("extensions", "exclude", "jobs", "rules", "custom_rules")
_CUSTOM_RULE_KEYS = ("id", "description", "severity", "scope", "select", "assert", "message", "params")
_OFF_WORDS = ("off", "disable", "disabled")
_ON_WORDS = ("on", "enable", "enabled")


@dataclass(frozen=True)
class RuleSettings:
    enabled: bool = True
    severity: Optional[str] = None
    params: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


_DEFAULT_SETTINGS = RuleSettings()


@dataclass(frozen=True)
class Configuration:
    """Loaded once per run and never mutated afterwards."""
    rules: Mapping[str, RuleSettings] = field(default_factory=lambda: MappingProxyType({}))
    custom_rules: Tuple[Rule, ...] = ()
    extensions: Tuple[str, ...] = DEFAULT_EXTENSIONS
    exclude: Tuple[str, ...] = ()
    jobs: Optional[int] = None
    warnings: Tuple[str, ...] = ()
    origin: Optional[str] = None

    def settings_for(self, rule_id: str) -> RuleSettings:
        return self.rules.get(rule_id, _DEFAULT_SETTINGS)


class _MarkedDict(dict):
    """A YAML mapping that remembers the 1-based line of itself and of each key."""

    def __init__(self) -> None:
        super().__init__()
        self.start_line = 1
        self.key_lines: Dict[Any, int] = {}

    def line_of(self, key: Any) -> int:
        return self.key_lines.get(key, self.start_line)


class _ConfigLoader(yaml.SafeLoader):
    pass


def _construct_marked_mapping(loader: _ConfigLoader, node: yaml.MappingNode) -> _MarkedDict:
    loader.flatten_mapping(node)
    mapping = _MarkedDict()
    mapping.start_line = node.start_mark.line + 1
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=True)
        if not isinstance(key, (str, int, float, bool)) and key is not None:
            raise yaml.constructor.ConstructorError(
                "while constructing a mapping", node.start_mark,
                "found a non-scalar key", key_node.start_mark,
            )
        if key in mapping:
            raise yaml.constructor.ConstructorError(
                "while constructing a mapping", node.start_mark,
                f"found duplicate key {key!r}", key_node.start_mark,
            )
        mapping[key] = loader.construct_object(value_node, deep=True)
        mapping.key_lines[key] = key_node.start_mark.line + 1
    return mapping


_ConfigLoader.add_constructor(yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_marked_mapping)


class _ConfigParser:
    """Validates one loaded YAML document and turns it into a Configuration."""

    def __init__(self, origin: str) -> None:
        self.origin = origin
        self.warnings: List[str] = []

    def error(self, message: str, line: Optional[int]) -> ConfigError:
        return ConfigError(message, origin=self.origin, line=line)

    def warn(self, message: str, line: Optional[int]) -> None:
        where = self.origin if line is None else f"{self.origin}:{line}"
        self.warnings.append(f"{where}: {message}")

    def parse(self, data: Any) -> Configuration:
        if data is None:
            return Configuration(origin=self.origin)
        if not isinstance(data, _MarkedDict):
            raise self.error("configuration must be a mapping", 1)

        for key in data:
            if key not in _TOP_LEVEL_KEYS:
                self.warn(f"unknown configuration key '{key}'", data.line_of(key))

        extensions = self._string_list(data, "extensions", DEFAULT_EXTENSIONS)
        exclude = self._string_list(data, "exclude", ())
        jobs = data.get("jobs")
        if jobs is not None and (isinstance(jobs, bool) or not isinstance(jobs, int) or jobs < 1):
            raise self.error("'jobs' must be a positive integer", data.line_of("jobs"))

        custom_rules = self._custom_rules(data)
        catalogue: Dict[str, Rule] = dict(BUILTIN_RULES)
        catalogue.update((rule.id, rule) for rule in custom_rules)
        rules = self._rule_settings(data, catalogue)

        return Configuration(
            rules=MappingProxyType(rules),
            custom_rules=tuple(custom_rules),
            extensions=tuple(extensions),
            exclude=tuple(exclude),
            jobs=jobs,
            warnings=tuple(self.warnings),
            origin=self.origin,
        )

    def _string_list(self, data: _MarkedDict, key: str, default: Sequence[str]) -> List[str]:
        if key not in data:
            return list(default)
        value = data[key]
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise self.error(f"'{key}' must be a list of strings", data.line_of(key))
        return list(value)

    # ----- rules: -----

    def _rule_settings(self, data: _MarkedDict, catalogue: Mapping[str, Rule]) -> Dict[str, RuleSettings]:
        section = data.get("rules")
        if section is None:
            return {}
        if not isinstance(section, _MarkedDict):
            raise self.error("'rules' must be a mapping of rule id to settings", data.line_of("rules"))

        settings: Dict[str, RuleSettings] = {}
        for rule_id, value in section.items():
            line = section.line_of(rule_id)
            rule = catalogue.get(rule_id)
            if rule is None:
                self.warn(f"unknown rule id '{rule_id}'", line)
                continue
            settings[rule_id] = self._one_rule(rule, value, line)
        return settings

    def _one_rule(self, rule: Rule, value: Any, line: int) -> RuleSettings:
        if value is None:
            return RuleSettings()
        if isinstance(value, bool):
            return RuleSettings(enabled=value)
        if isinstance(value, str):
            word = value.strip().lower()
            if word in _OFF_WORDS:
                return RuleSettings(enabled=False)
            if word in _ON_WORDS:
                return RuleSettings()
            return RuleSettings(severity=self._severity(word, line))
        if not isinstance(value, _MarkedDict):
            raise self.error(
                f"settings for rule '{rule.id}' must be a mapping, a severity or on/off",
                line,
            )

        enabled = True
        severity: Optional[str] = None
        params: Dict[str, Any] = {}
        for key, item in value.items():
            key_line = value.line_of(key)
            if key == "enabled":
                if not isinstance(item, bool):
                    raise self.error(f"'enabled' of rule '{rule.id}' must be true or false", key_line)
                enabled = item
            elif key == "severity":
                severity = self._severity(item, key_line)
            elif key not in rule.defaults:
                self.warn(f"unknown parameter '{key}' for rule '{rule.id}'", key_line)
            else:
                params[key] = self._coerce_param(rule.id, key, item, rule.defaults[key], key_line)
        return RuleSettings(enabled=enabled, severity=severity, params=MappingProxyType(params))

    def _severity(self, value: Any, line: int) -> str:
        if not isinstance(value, str) or value.lower() not in SEVERITIES:
            raise self.error(f"invalid severity {value!r} (expected one of: {', '.join(SEVERITIES)})", line)
        return value.lower()

    def _coerce_param(self, rule_id: str, key: str, value: Any, default: Any, line: int) -> Any:
        where = f"parameter '{key}' of rule '{rule_id}'"
        if isinstance(default, bool):
            if not isinstance(value, bool):
                raise self.error(f"{where} must be true or false", line)
            return value
        if isinstance(default, int):
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise self.error(f"{where} must be a positive integer", line)
            return value
        if isinstance(default, str):
            if not isinstance(value, str):
                raise self.error(f"{where} must be a string", line)
            if key.endswith("pattern"):
                try:
                    re.compile(value)
                except re.error as exc:
                    raise self.error(f"{where} is not a valid regular expression: {exc}", line) from exc
            return value
        if isinstance(default, (tuple, list)):
            if isinstance(value, str):
                value = [value]
            if not isinstance(value, list):
                raise self.error(f"{where} must be a list", line)
            if rule_id in BUILTIN_RULES:
                self._check_string_items(where, value, default, line)
                if key == "kinds":
                    unknown = [kind for kind in value if kind not in NODE_KINDS]
                    if unknown:
                        raise self.error(f"{where} names unknown node kinds: {', '.join(unknown)}", line)
            return _freeze(value)
        return _freeze(value)

    def _check_string_items(self, where: str, value: List[Any], default: Sequence[Any], line: int) -> None:
        # Nested defaults (import groups) also take a list of strings per entry.
        nested = any(isinstance(item, (tuple, list)) for item in default)
        for item in value:
            if isinstance(item, str):
                continue
            if nested and isinstance(item, list) and all(isinstance(part, str) for part in item):
                continue
            expected = "strings or lists of strings" if nested else "strings"
            raise self.error(f"{where} must contain only {expected}, got {item!r}", line)

    # ----- custom_rules: -----

    def _custom_rules(self, data: _MarkedDict) -> List[Rule]:
        section = data.get("custom_rules")
        if section is None:
            return []
        if not isinstance(section, list):
            raise self.error("'custom_rules' must be a list", data.line_of("custom_rules"))

        rules: List[Rule] = []
        seen: Set[str] = set()
        for entry in section:
            if not isinstance(entry, _MarkedDict):
                raise self.error("each custom rule must be a mapping", data.line_of("custom_rules"))
            rule = self._custom_rule(entry)
            if rule.id in BUILTIN_RULES:
                raise self.error(f"custom rule id '{rule.id}' clashes with a built-in rule", entry.line_of("id"))
            if rule.id in seen:
                raise self.error(f"duplicate custom rule id '{rule.id}'", entry.line_of("id"))
            seen.add(rule.id)
            rules.append(rule)
        return rules

    def _custom_rule(self, entry: _MarkedDict) -> Rule:
        for key in entry:
            if key not in _CUSTOM_RULE_KEYS:
                self.warn(f"unknown custom rule key '{key}'", entry.line_of(key))

        rule_id = entry.get("id")
        if not isinstance(rule_id, str) or not _RULE_ID_PATTERN.fullmatch(rule_id):
            raise self.error("custom rule needs an 'id' of lowercase letters, digits, '-' or '_'", entry.line_of("id"))
        for key in ("scope", "assert"):
            if not isinstance(entry.get(key), str) or not entry[key].strip():
                raise self.error(f"custom rule '{rule_id}' needs a non-empty string '{key}'", entry.line_of(key))
        for key in ("description", "select", "message"):
            if key in entry and not isinstance(entry[key], str):
                raise self.error(f"'{key}' of custom rule '{rule_id}' must be a string", entry.line_of(key))
        params = entry.get("params") or {}
        if not isinstance(params, dict):
            raise self.error(f"'params' of custom rule '{rule_id}' must be a mapping", entry.line_of("params"))

        severity = self._severity(entry.get("severity", "warning"), entry.line_of("severity"))
        if entry["scope"] not in NODE_KINDS:
            raise self.error(
                f"custom rule '{rule_id}': unknown scope '{entry['scope']}' (expected one of: {', '.join(NODE_KINDS)})",
                entry.line_of("scope"),
            )
        for key, compile_one in (("select", _INTERPRETER.compile), ("assert", _INTERPRETER.compile),
                                 ("message", _compile_template)):
            if entry.get(key):
                try:
                    compile_one(entry[key])
                except ExpressionEvalError as exc:
                    raise self.error(f"custom rule '{rule_id}': {key}: {exc}", entry.line_of(key)) from exc

        return build_expression_rule(
            rule_id,
            scope=entry["scope"],
            assertion=entry["assert"],
            select=entry.get("select"),
            message=entry.get("message"),
            description=entry.get("description", ""),
            severity=severity,
            params={key: _freeze(value) for key, value in params.items()},
        )


def _freeze(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(_freeze(item) for item in value)
    if isinstance(value, dict):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    return value


def parse_config(text: str, origin: str = "<config>") -> Configuration:
    """
    Parse configuration YAML. Raises ConfigError (with the offending line)
    for malformed YAML or invalid values; unknown keys and rule ids are
    collected into `Configuration.warnings` instead.
    """
    try:
        data = yaml.load(text, Loader=_ConfigLoader)
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        line = mark.line + 1 if mark is not None else None
        problem = getattr(exc, "problem", None) or str(exc)
        raise ConfigError(f"malformed YAML: {problem}", origin=origin, line=line) from exc
    return _ConfigParser(origin).parse(data)


def load_config(path: str) -> Configuration:
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except OSError as exc:
        raise ConfigError(f"cannot read configuration: {exc.strerror or exc}", origin=path) from exc
    except UnicodeDecodeError as exc:
        raise ConfigError(f"configuration is not valid UTF-8: {exc.reason}", origin=path) from exc
    return parse_config(text, origin=path)


def discover_config_path(
    explicit: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    cwd: Optional[str] = None,
) -> Optional[str]:
    """`--config`, then $LINTCHECK_CONFIG, then a config file in the working directory."""
    if explicit:
        return explicit
    environ = os.environ if environ is None else environ
    from_env = environ.get(CONFIG_ENV_VAR, "").strip()
    if from_env:
        return from_env
    cwd = os.getcwd() if cwd is None else cwd
    for filename in CONFIG_FILENAMES:
        candidate = os.path.join(cwd, filename)
        if os.path.isfile(candidate):
            return candidate
    return None


# ============================================================
# ====================== RULE ENGINE =========================
# ============================================================

READ_ERROR_RULE = "read-error"


def _log(message: str) -> None:
    sys.stderr.write(f"[{TOOL_NAME}] {message}\n")


@dataclass(frozen=True)
class SourceFile:
    path: str
    text: str


@dataclass(frozen=True)
class ActiveRule:
    """A rule together with its effective severity and merged parameters."""
    rule: Rule
    severity: str
    params: Mapping[str, Any]

    @property
    def id(self) -> str:
        return self.rule.id


class CancellationToken:
    """Cooperative cancellation, checked between files and never mid-rule."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class RuleEngine:
    """
    The RuleEngine will:
    - resolve the active rules (built-ins + configured expression rules, minus disabled ones)
    - build one FileContext per source file
    - evaluate every active rule against it, isolating rules that fail
    - drop suppressed findings and stamp path + severity on the rest
    """

    def __init__(self, config: Optional[Configuration] = None, rules: Optional[Iterable[Rule]] = None) -> None:
        self.config = config or Configuration()
        catalogue: Dict[str, Rule] = {}
        for rule in (BUILTIN_RULES.values() if rules is None else rules):
            catalogue[rule.id] = rule
        for rule in self.config.custom_rules:
            catalogue[rule.id] = rule

        active: List[ActiveRule] = []
        for rule_id in sorted(catalogue):
            rule = catalogue[rule_id]
            settings = self.config.settings_for(rule_id)
            if not settings.enabled:
                continue
            params = dict(rule.defaults)
            params.update(settings.params)
            active.append(ActiveRule(rule, settings.severity or rule.severity, MappingProxyType(params)))
        self.active_rules: Tuple[ActiveRule, ...] = tuple(active)

    def check_source(self, source: SourceFile) -> List[Violation]:
        return self.check_context(build_file_context(source.path, source.text))

    def check_text(self, text: str, path: str = "<string>") -> List[Violation]:
        return self.check_source(SourceFile(path, text))

    def check_context(self, ctx: FileContext) -> List[Violation]:
        violations: List[Violation] = []
        for active in self.active_rules:
            violations.extend(self._evaluate(active, ctx))
        return violations

    def _evaluate(self, active: ActiveRule, ctx: FileContext) -> List[Violation]:
        try:
            found: List[Violation] = []
            for finding in active.rule.check(ctx, active.params):
                span = finding.span
                if not 0 <= span.start_offset <= span.end_offset <= len(ctx.source):
                    raise ValueError(f"span {span.start_offset}..{span.end_offset} outside the source text")
                if ctx.suppressions.is_suppressed(active.id, span.start_line):
                    continue
                found.append(Violation(active.id, finding.message, ctx.path, span, active.severity))
            return found
        except Exception as exc:
            fault = RuleFault(active.id, exc)
            return [Violation(active.id, str(fault), ctx.path, ctx.source.span(0, 0), "error")]

    def run(
        self,
        sources: Iterable[SourceFile],
        *,
        jobs: Optional[int] = None,
        cancel: Optional[CancellationToken] = None,
        report: Optional["Report"] = None,
    ) -> "Report":
        """
        Check every source, in parallel when `jobs` (or the configured jobs)
        is above one. Results are merged into a Report, which imposes the
        output order, so scheduling never shows in the output.
        """
        report = report if report is not None else Report(self.config.warnings)
        cancel = cancel or CancellationToken()
        sources = list(sources)
        jobs = jobs or self.config.jobs

        def task(source: SourceFile) -> Optional[List[Violation]]:
            if cancel.cancelled:
                return None
            return self.check_source(source)

        if jobs == 1 or len(sources) <= 1:
            for source in sources:
                result = task(source)
                if result is None:
                    break
                report.extend(result)
                report.files_checked += 1
        else:
            with ThreadPoolExecutor(max_workers=jobs, thread_name_prefix=TOOL_NAME) as pool:
                futures = [pool.submit(task, source) for source in sources]
                try:
                    for future in futures:
                        result = future.result()
                        if result is None:
                            continue
                        report.extend(result)
                        report.files_checked += 1
                except KeyboardInterrupt:
                    cancel.cancel()
                    for future in futures:
                        future.cancel()
                    raise

        report.cancelled = cancel.cancelled
        return report


# ============================================================
# =================== VIOLATION REPORTER =====================
# ============================================================

def violation_to_json_obj(v: Violation) -> Dict[str, Any]:
    """
    Convert a Violation into a JSON-friendly dict.
    Field order is explicit so the output stays stable over time.
    """
    location: Dict[str, Any] = {"file": v.path}
    location.update(v.span.to_dict())
    return {
        "rule_id": v.rule_id,
        "severity": v.severity,
        "message": v.message,
        "location": location,
    }


class Report:
    """Accumulates violations from any number of files; de-duplicates and orders them."""

    def __init__(self, warnings: Iterable[str] = ()) -> None:
        self._violations: Dict[Tuple[str, str, Span], Violation] = {}
        self.warnings: List[str] = list(warnings)
        self.files_checked = 0
        self.cancelled = False

    def add(self, violation: Violation) -> bool:
        key = violation.dedupe_key
        existing = self._violations.get(key)
        if existing is None or violation.sort_key < existing.sort_key:
            self._violations[key] = violation
        return existing is None

    def extend(self, violations: Iterable[Violation]) -> None:
        for violation in violations:
            self.add(violation)

    @property
    def violations(self) -> List[Violation]:
        return sorted(self._violations.values(), key=lambda v: v.sort_key)

    @property
    def counts(self) -> Dict[str, int]:
        counts = {severity: 0 for severity in SEVERITIES}
        for violation in self._violations.values():
            counts[violation.severity] += 1
        return counts

    @property
    def has_errors(self) -> bool:
        return self.counts["error"] > 0

    def summary(self) -> str:
        counts = self.counts
        files = f"{self.files_checked} file{'' if self.files_checked == 1 else 's'} checked"
        if not self._violations:
            return f"{files}: no violations"
        return (
            f"{files}: {counts['error']} error{'' if counts['error'] == 1 else 's'}, "
            f"{counts['warning']} warning{'' if counts['warning'] == 1 else 's'}"
        )

    def render_text(self) -> str:
        lines = [violation.format_text() for violation in self.violations]
        lines.append(self.summary())
        return "\n".join(lines) + "\n"

    def render_json(self) -> str:
        payload = {
            "tool": TOOL_NAME,
            "version": __version__,
            "files_checked": self.files_checked,
            "summary": self.counts,
            "warnings": list(self.warnings),
            "violations": [violation_to_json_obj(v) for v in self.violations],
        }
        return json.dumps(payload, indent=2, sort_keys=False) + "\n"

    def render(self, fmt: str) -> str:
        if fmt == "json":
            return self.render_json()
        return self.render_text()


# ============================================================
# =================== SOURCE COLLECTION ======================
# ============================================================

DEFAULT_EXCLUDE_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".bsp",
    ".bloop",
    ".metals",
    ".idea",
    ".vscode",
    "target",
    "node_modules",
}


def _is_excluded(path: str, patterns: Sequence[str]) -> bool:
    rel = path.replace(os.sep, "/")
    if rel.startswith("./"):
        rel = rel[2:]
    for pattern in patterns:
        if fnmatch.fnmatchcase(rel, pattern):
            return True
        if pattern.startswith("**/") and fnmatch.fnmatchcase(rel, pattern[3:]):
            return True
    return False


def iter_source_paths(paths: Iterable[str], extensions: Sequence[str], exclude: Sequence[str] = ()) -> Iterator[str]:
    """
    Expand files and directories into source file paths. Directories are
    walked in sorted order; explicitly named files are always yielded, even
    when they do not exist (reading them then reports the problem).
    """
    seen: Set[str] = set()
    for path in paths:
        if os.path.isdir(path):
            for dirpath, dirnames, filenames in os.walk(path):
                dirnames[:] = sorted(d for d in dirnames if d not in DEFAULT_EXCLUDE_DIRS)
                for filename in sorted(filenames):
                    if not filename.endswith(tuple(extensions)):
                        continue
                    full = os.path.join(dirpath, filename)
                    if full in seen or _is_excluded(full, exclude):
                        continue
                    seen.add(full)
                    yield full
        elif path not in seen:
            seen.add(path)
            yield path


def collect_sources(paths: Iterable[str], config: Configuration) -> Tuple[List[SourceFile], List[Violation]]:
    """
    Read every selected file up front. Unreadable files become `read-error`
    violations instead of aborting the run.
    """
    sources: List[SourceFile] = []
    failures: List[Violation] = []
    empty_span = SourceText("").span(0, 0)
    for path in iter_source_paths(paths, config.extensions, config.exclude):
        try:
            with open(path, "r", encoding="utf-8", newline="") as f:
                text = f.read()
        except (OSError, UnicodeDecodeError) as exc:
            reason = exc.strerror if isinstance(exc, OSError) and exc.strerror else str(exc)
            failures.append(Violation(READ_ERROR_RULE, f"cannot read file: {reason}", path, empty_span, "error"))
            continue
        sources.append(SourceFile(path, text))
    return sources, failures


# ============================================================
# ============================ CLI ===========================
# ============================================================

EXIT_OK = 0
EXIT_VIOLATIONS = 1
EXIT_CONFIG = 2
EXIT_CANCELLED = 130


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid positive integer: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"invalid positive integer: {value!r}")
    return number


def _format_rule_list(engine: RuleEngine, config: Configuration) -> str:
    active = {rule.id: rule for rule in engine.active_rules}
    catalogue: Dict[str, Rule] = dict(BUILTIN_RULES)
    catalogue.update((rule.id, rule) for rule in config.custom_rules)
    lines = []
    for rule_id in sorted(catalogue):
        entry = active.get(rule_id)
        status = entry.severity if entry is not None else "off"
        lines.append(f"{rule_id:<22} {status:<8} {catalogue[rule_id].description}")
    return "\n".join(lines) + "\n"


def _write_output(text: str, out: Optional[str]) -> None:
    if out:
        with open(out, "w", encoding="utf-8") as f:
            f.write(text)
    else:
        sys.stdout.write(text)


def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point.
    Intended usage:
      lintcheck src/ --config .lintcheck.yaml --format json --out report.json

    Exit codes: 0 no error-severity violations, 1 errors found, 2 bad
    configuration or usage, 130 cancelled.
    """
    parser = argparse.ArgumentParser(
        prog=TOOL_NAME,
        description="lintcheck: style rule enforcement for Scala sources",
    )
    parser.add_argument("paths", nargs="*", metavar="PATH", help="Files or directories to check.")
    parser.add_argument("--config", metavar="FILE", help=f"YAML configuration (default: ${CONFIG_ENV_VAR} or {CONFIG_FILENAMES[0]}).")
    parser.add_argument("--format", choices=("text", "json"), default="text", help="Output format.")
    parser.add_argument("--out", metavar="FILE", help="Write the report to this file instead of stdout.")
    parser.add_argument("--jobs", type=_positive_int, metavar="N", help="Number of files checked in parallel.")
    parser.add_argument("--list-rules", action="store_true", help="List the known rules and their status, then exit.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args(argv)
    if not args.paths and not args.list_rules:
        parser.error("at least one PATH is required")

    # 1. Load configuration; nothing is read before it validates
    config_path = discover_config_path(args.config)
    try:
        config = load_config(config_path) if config_path else Configuration()
    except ConfigError as exc:
        _log(f"error: {exc}")
        return EXIT_CONFIG

    emitted: Set[str] = set()
    for warning in config.warnings:
        if warning not in emitted:
            emitted.add(warning)
            _log(f"warning: {warning}")

    engine = RuleEngine(config)
    if args.list_rules:
        sys.stdout.write(_format_rule_list(engine, config))
        return EXIT_OK

    cancel = CancellationToken()
    try:
        # 2. Read sources
        sources, failures = collect_sources(args.paths, config)

        # 3. Run rule engine
        report = Report(config.warnings)
        report.extend(failures)
        engine.run(sources, jobs=args.jobs, cancel=cancel, report=report)
    except KeyboardInterrupt:
        cancel.cancel()
        _log("cancelled")
        return EXIT_CANCELLED

    if report.cancelled:
        _log("cancelled")
        return EXIT_CANCELLED

    # 4. Emit results
    try:
        _write_output(report.render(args.format), args.out)
    except OSError as exc:
        _log(f"error: cannot write {args.out}: {exc.strerror or exc}")
        return EXIT_CONFIG
    return EXIT_VIOLATIONS if report.has_errors else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
