"""Tolerant repair of almost-JSON text returned by the text-generation service.

Repair runs as one tokenizing pass that tracks quote, escape and bracket state
explicitly, followed by a rewrite of the token stream and, as a last resort,
a one-character fix at the strict parser's error offset. ``repair`` never
raises and is idempotent: repairing its own output returns it unchanged.
"""

import json
import logging
import re

logger = logging.getLogger(__name__)

FENCE = "```"

_FENCE_TAG = re.compile(r"[A-Za-z0-9_+.-]*[ \t]*\r?\n?")
_NUMBER = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?")
_LITERALS = {"true", "false", "null"}
_VALID_ESCAPES = set('"\\/bfnrt')
_HEX_DIGITS = set("0123456789abcdefABCDEF")
_STRING_TERMINATORS = set(',:}]"')
_WHITESPACE = set(" \t\r\n")
_CONTROL_ESCAPES = {"\b": "\\b", "\f": "\\f", "\n": "\\n", "\r": "\\r", "\t": "\\t"}
_CLOSER_FOR = {"{": "}", "[": "]"}

STRING = "string"
BARE = "bare"
PUNCT = "punct"


def is_control(ch: str) -> bool:
    """ASCII control characters, 0x00-0x1F and DEL."""
    code = ord(ch)
    return code < 0x20 or code == 0x7F


def closes_string(text: str, index: int) -> bool:
    """Decide whether the unescaped quote at ``index`` terminates a string.

    A quote only closes a string when the next non-whitespace character is
    structural (or the input ends). Any other quote is an unescaped quote
    inside the value, e.g. ``"use "nonReentrant" here"``.
    """
    j = index + 1
    n = len(text)
    while j < n and text[j] in _WHITESPACE:
        j += 1
    return j >= n or text[j] in _STRING_TERMINATORS


def find_string_end(text: str, start: int) -> tuple[int, bool]:
    """Find the closing quote of a string whose body begins at ``start``.

    Returns ``(index, terminated)``. ``index`` is the position of the closing
    quote, or ``len(text)`` when the input ends inside the string.
    """
    i = start
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == '"' and closes_string(text, i):
            return i, True
        i += 1
    return n, False


def repair_string_body(body: str) -> str:
    """Return ``body`` as the inside of a valid JSON string literal."""
    out: list[str] = []
    i = 0
    n = len(body)
    while i < n:
        ch = body[i]
        if ch == "\\":
            if i + 1 >= n:
                # Dangling escape at a truncation point
                break
            nxt = body[i + 1]
            if nxt in _VALID_ESCAPES:
                out.append(ch + nxt)
                i += 2
                continue
            if nxt == "u" and len(body) >= i + 6 and all(c in _HEX_DIGITS for c in body[i + 2 : i + 6]):
                out.append(body[i : i + 6])
                i += 6
                continue
            out.append("\\\\")
            i += 1
            continue
        if ch == '"':
            out.append('\\"')
        elif ord(ch) < 0x20:
            out.append(_CONTROL_ESCAPES.get(ch, f"\\u{ord(ch):04x}"))
        else:
            out.append(ch)
        i += 1
    return "".join(out)


def strip_code_fences(text: str) -> str:
    """Return the body of the first Markdown code fence wrapping the payload.

    A fence only counts as a wrapper when it opens before the first ``{``;
    fences quoted inside JSON string values are left alone.
    """
    start = text.find(FENCE)
    if start == -1:
        return text
    brace = text.find("{")
    if brace != -1 and brace < start:
        return text
    body_start = _FENCE_TAG.match(text, start + len(FENCE)).end()
    end = text.find(FENCE, body_start)
    if end == -1:
        return text[body_start:]
    return text[body_start:end]


def locate_object(text: str) -> str | None:
    """Slice from the first ``{`` to the last ``}``.

    Returns None when there is no ``{``. A truncated document without a
    closing brace keeps everything from the ``{`` onwards.
    """
    start = text.find("{")
    if start == -1:
        return None
    end = text.rfind("}")
    if end < start:
        return text[start:]
    return text[start : end + 1]


def tokenize(text: str) -> list[tuple[str, str]]:
    """Split text into strings, structural punctuation and bare runs.

    Strings come back as complete, valid JSON string literals. Control
    characters outside strings are dropped.
    """
    tokens: list[tuple[str, str]] = []
    bare: list[str] = []
    escape_pending = False
    i = 0
    n = len(text)

    def flush_bare() -> None:
        value = "".join(bare).strip()
        bare.clear()
        if value:
            tokens.append((BARE, value))

    while i < n:
        ch = text[i]
        if escape_pending:
            escape_pending = False
            if not is_control(ch):
                bare.append(ch)
            i += 1
            continue
        if ch == "\\":
            bare.append(ch)
            escape_pending = True
            i += 1
            continue
        if ch == '"':
            flush_bare()
            end, terminated = find_string_end(text, i + 1)
            tokens.append((STRING, '"' + repair_string_body(text[i + 1 : end]) + '"'))
            if not terminated:
                logger.debug("Closed string literal truncated at end of input")
            i = end + 1
            continue
        if ch in "{}[]:,":
            flush_bare()
            tokens.append((PUNCT, ch))
        elif ch in "\t\r\n":
            bare.append(" ")
        elif not is_control(ch):
            bare.append(ch)
        i += 1
    flush_bare()
    return tokens


def _bare_scalar(value: str) -> str:
    if value in _LITERALS or _NUMBER.fullmatch(value):
        return value
    return _bare_key(value)


def _bare_key(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == "'":
        value = value[1:-1]
    return json.dumps(value, ensure_ascii=False)


class _Rewriter:
    """Re-emit a token stream as structurally balanced JSON.

    Each open container tracks what it expects next. Object frames move
    through ``key -> colon -> value -> next``; array frames alternate between
    ``value`` and ``next``.
    """

    def __init__(self, tokens: list[tuple[str, str]]):
        self.tokens = tokens
        self.out: list[str] = []
        self.stack: list[list[str]] = []
        self.top_done = False

    def rewrite(self) -> str:
        for kind, value in self.tokens:
            if not self.stack:
                self._top_level(kind, value)
            elif self.stack[-1][0] == "{":
                self._in_object(kind, value)
            else:
                self._in_array(kind, value)
        self._finish()
        return "".join(self.out)

    def _top_level(self, kind: str, value: str) -> None:
        if not self.top_done:
            if kind == PUNCT and value in "{[":
                self._open(value)
            elif kind == STRING:
                self.out.append(value)
                self.top_done = True
            elif kind == BARE:
                self.out.append(_bare_scalar(value))
                self.top_done = True
        elif kind == PUNCT and value == "{":
            # Adjacent top-level objects: }{
            self.out.append(",")
            self._open(value)

    def _in_object(self, kind: str, value: str) -> None:
        frame = self.stack[-1]
        state = frame[1]
        if kind == PUNCT and value in "}]":
            if state == "colon":
                self.out.append(":null")
            elif state == "value":
                self.out.append("null")
            self._close()
            return
        if state == "key":
            if kind == STRING:
                self.out.append(value)
                frame[1] = "colon"
            elif kind == BARE:
                self.out.append(_bare_key(value))
                frame[1] = "colon"
            elif kind == PUNCT and value in "{[":
                # Member value without a key; left for the salvage tier
                frame[1] = "next"
                self._open(value)
        elif state == "colon":
            if kind == PUNCT and value == ":":
                self.out.append(":")
                frame[1] = "value"
            elif kind == PUNCT and value == ",":
                self.out.append(":null,")
                frame[1] = "key"
            else:
                self.out.append(":")
                frame[1] = "value"
                self._in_object(kind, value)
        elif state == "value":
            if kind == PUNCT and value == ",":
                self.out.append("null,")
                frame[1] = "key"
            elif kind != PUNCT or value in "{[":
                frame[1] = "next"
                self._emit_value(kind, value)
        else:
            if kind == PUNCT and value == ",":
                self.out.append(",")
                frame[1] = "key"
            elif kind != PUNCT or value in "{[":
                self.out.append(",")
                frame[1] = "key"
                self._in_object(kind, value)

    def _in_array(self, kind: str, value: str) -> None:
        frame = self.stack[-1]
        if kind == PUNCT and value in "}]":
            self._close()
            return
        if kind == PUNCT and value == ":":
            return
        if frame[1] == "value":
            if kind == PUNCT and value == ",":
                return
            frame[1] = "next"
            self._emit_value(kind, value)
        elif kind == PUNCT and value == ",":
            self.out.append(",")
            frame[1] = "value"
        else:
            self.out.append(",")
            frame[1] = "next"
            self._emit_value(kind, value)

    def _emit_value(self, kind: str, value: str) -> None:
        if kind == STRING:
            self.out.append(value)
        elif kind == BARE:
            self.out.append(_bare_scalar(value))
        else:
            self._open(value)

    def _open(self, opener: str) -> None:
        self.out.append(opener)
        self.stack.append([opener, "key" if opener == "{" else "value"])

    def _close(self) -> None:
        # Trailing comma before the closer, and mismatched closers are
        # rewritten to match the innermost open container.
        if self.out and self.out[-1].endswith(","):
            self.out[-1] = self.out[-1][:-1]
        opener, _ = self.stack.pop()
        self.out.append(_CLOSER_FOR[opener])
        if not self.stack:
            self.top_done = True

    def _finish(self) -> None:
        while self.stack:
            frame = self.stack[-1]
            if frame[0] == "{" and frame[1] == "colon":
                self.out.append(":null")
            elif frame[0] == "{" and frame[1] == "value":
                self.out.append("null")
            self._close()


def _parses(candidate: str) -> bool:
    try:
        json.loads(candidate)
    except (ValueError, RecursionError):
        return False
    return True


def fix_at_error_offset(candidate: str) -> str:
    """Try a comma insertion or a one-character deletion at the parse error."""
    try:
        json.loads(candidate)
        return candidate
    except json.JSONDecodeError as e:
        pos = e.pos
    except (ValueError, RecursionError):
        return candidate

    for attempt in (
        candidate[:pos] + "," + candidate[pos:],
        candidate[:pos] + candidate[pos + 1 :],
    ):
        if _parses(attempt):
            logger.debug(f"Repaired JSON with a local fix at offset {pos}")
            return attempt
    return candidate


def repair(text: str) -> str:
    """Normalize raw response text into a best-effort strict-JSON string.

    Args:
        text: Raw text, possibly fenced, wrapped in prose, truncated or
            otherwise malformed

    Returns:
        A string intended for ``json.loads``. Text with no ``{`` at all is
        returned trimmed and otherwise unchanged.
    """
    if not text:
        return ""

    body = strip_code_fences(text).strip()
    payload = locate_object(body)
    if payload is None:
        return body

    candidate = _Rewriter(tokenize(payload)).rewrite()
    return fix_at_error_offset(candidate)
