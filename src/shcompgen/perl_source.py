"""Read Perl data literals out of program source.

Completer programs declare their options as Perl data structures
(``$SPEC{main} = {...}``, ``GetOptions('foo=s' => \\$foo, ...)``). This
module turns those literals into Python values without running Perl:

- strings in every quote form (``'...'``, ``"..."``, ``q//``, ``qq//``,
  ``qw//`` and here-documents), numbers, barewords, ``=>`` auto-quoting;
- hashes become ``dict``, arrays and lists become ``list``;
- anything computed (``sub {...}``, variables, method calls, operators)
  becomes an :class:`Opaque` placeholder.

Parsing starts at a given offset and stops once the requested value is
complete, so code elsewhere in the file is never looked at.
"""

from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, TypeAlias

if TYPE_CHECKING:
    from collections.abc import Iterator

PerlValue: TypeAlias = "str | int | float | None | list[PerlValue] | dict[str, PerlValue] | Opaque"


class PerlSourceError(ValueError):
    """Raised when a literal cannot be parsed."""


class TokenType(StrEnum):
    STRING = "string"
    WORDS = "words"
    NUMBER = "number"
    BAREWORD = "bareword"
    VARIABLE = "variable"
    FATCOMMA = "fatcomma"
    COMMA = "comma"
    ARROW = "arrow"
    OPEN = "open"
    CLOSE = "close"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class Token:
    type: TokenType
    text: str
    pos: int
    value: object = None


@dataclass(frozen=True, slots=True)
class Opaque:
    """A value that only exists at run time (code, variables, expressions)."""

    text: str


_PAIRS = {"(": ")", "[": "]", "{": "}", "<": ">"}
_IDENT_RE = re.compile(r"[A-Za-z_]\w*(?:::\w+)*(?:::)?")
_NUMBER_RE = re.compile(r"0[xX][0-9a-fA-F_]+|\d[\d_]*(?:\.\d[\d_]*)?(?:[eE][+-]?\d+)?")
_VARIABLE_RE = re.compile(r"[$@%&]+(?:\{\^?\w+\}|::|\w+(?:::\w+)*|[^\s\w])")
_HEREDOC_RE = re.compile(r"""<<(~?)(?:"([^"\n]*)"|'([^'\n]*)'|([A-Za-z_]\w*))""")
_POD_END_RE = re.compile(r"^=cut\b.*$", re.MULTILINE)
_QUOTE_WORDS = frozenset({"q", "qq", "qw"})
_REGEX_WORDS = {"m": 1, "qr": 1, "s": 2, "tr": 2, "y": 2}
_DQ_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0", "e": "\x1b", "a": "\a"}


class Tokenizer:
    """Lazy tokenizer over Perl source starting at ``pos``."""

    def __init__(self, text: str, pos: int = 0) -> None:
        self.text = text
        self.pos = pos
        # Here-doc bodies: at ``_jump_at`` (the newline ending the line that
        # introduced them) continue at ``_resume_at`` (after the last body).
        self._jump_at: int | None = None
        self._resume_at: int | None = None

    def __iter__(self) -> Iterator[Token]:
        return self._tokens()

    def _error(self, message: str, pos: int) -> PerlSourceError:
        line = self.text.count("\n", 0, pos) + 1
        return PerlSourceError(f"{message} at line {line}")

    def _tokens(self) -> Iterator[Token]:  # noqa: C901, PLR0912 - one branch per token class
        text = self.text
        n = len(text)
        while self.pos < n:
            pos = self.pos
            c = text[pos]
            if pos == self._jump_at and self._resume_at is not None:
                self.pos = self._resume_at
                self._jump_at = self._resume_at = None
                continue
            if c.isspace():
                self.pos += 1
                continue
            if c == "#":
                end = text.find("\n", pos)
                self.pos = n if end == -1 else end
                continue
            if c == "=" and (pos == 0 or text[pos - 1] == "\n") and text[pos + 1 : pos + 2].isalpha():
                m = _POD_END_RE.search(text, pos)
                self.pos = n if m is None else m.end()
                continue
            two = text[pos : pos + 2]
            if two == "=>":
                self.pos += 2
                yield Token(TokenType.FATCOMMA, two, pos)
            elif two == "->":
                self.pos += 2
                yield Token(TokenType.ARROW, two, pos)
            elif c == ",":
                self.pos += 1
                yield Token(TokenType.COMMA, c, pos)
            elif c in "([{":
                self.pos += 1
                yield Token(TokenType.OPEN, c, pos)
            elif c in ")]}":
                self.pos += 1
                yield Token(TokenType.CLOSE, c, pos)
            elif c == "'":
                body, self.pos = self._delimited(pos + 1, "'")
                yield Token(TokenType.STRING, text[pos : self.pos], pos, _single_unescape(body, "'"))
            elif c == '"':
                body, self.pos = self._delimited(pos + 1, '"')
                yield Token(TokenType.STRING, text[pos : self.pos], pos, _double_unescape(body))
            elif two == "<<" and (m := _HEREDOC_RE.match(text, pos)):
                yield self._heredoc(m)
            elif c in "$@%&" and (m := _VARIABLE_RE.match(text, pos)):
                self.pos = m.end()
                yield Token(TokenType.VARIABLE, m.group(0), pos)
            elif c.isdigit():
                m = _NUMBER_RE.match(text, pos)
                assert m is not None  # noqa: S101 - a digit always matches
                self.pos = m.end()
                yield Token(TokenType.NUMBER, m.group(0), pos, _number(m.group(0)))
            elif c.isalpha() or c == "_":
                yield self._word(pos)
            else:
                self.pos += 1
                yield Token(TokenType.OTHER, c, pos)

    def _delimited(self, start: int, close: str, open_: str | None = None) -> tuple[str, int]:
        """Return (raw body, position after the closing delimiter)."""
        text = self.text
        depth = 1
        i = start
        while i < len(text):
            ch = text[i]
            if ch == "\\":
                i += 2
                continue
            if open_ is not None and ch == open_:
                depth += 1
            elif ch == close:
                depth -= 1
                if depth == 0:
                    return text[start:i], i + 1
            i += 1
        raise self._error("unterminated string", start)

    def _quote_like(self, start: int) -> tuple[str, int, str]:
        """Parse a ``q``-style body starting at its opening delimiter."""
        delim = self.text[start]
        if delim in _PAIRS:
            body, end = self._delimited(start + 1, _PAIRS[delim], delim)
        else:
            body, end = self._delimited(start + 1, delim)
        return body, end, delim

    def _word(self, pos: int) -> Token:
        text = self.text
        m = _IDENT_RE.match(text, pos)
        assert m is not None  # noqa: S101 - caller checked the first character
        word = m.group(0)
        after = m.end()
        delim_pos = after
        while delim_pos < len(text) and text[delim_pos] in " \t":
            delim_pos += 1
        delim = text[delim_pos : delim_pos + 1]
        is_quote = (
            (word in _QUOTE_WORDS or word in _REGEX_WORDS)
            and delim != ""
            and not delim.isalnum()
            and not delim.isspace()
            and delim not in ",;)}]"
            and text[delim_pos : delim_pos + 2] != "=>"
            and not (delim == "=" and word in _REGEX_WORDS)
        )
        if not is_quote:
            self.pos = after
            return Token(TokenType.BAREWORD, word, pos, word)
        if word in _QUOTE_WORDS:
            body, self.pos, _ = self._quote_like(delim_pos)
            raw = text[pos : self.pos]
            if word == "qw":
                return Token(TokenType.WORDS, raw, pos, body.split())
            value = _double_unescape(body) if word == "qq" else _single_unescape(body, delim)
            return Token(TokenType.STRING, raw, pos, value)
        # Regex-like operators are skipped as a single opaque token.
        _, end, opened = self._quote_like(delim_pos)
        if _REGEX_WORDS[word] == 2:  # noqa: PLR2004 - substitution has two parts
            if opened in _PAIRS:
                nxt = end
                while nxt < len(text) and text[nxt].isspace():
                    nxt += 1
                _, end, _ = self._quote_like(nxt)
            else:
                _, end = self._delimited(end, opened)
        while end < len(text) and text[end].isalpha():
            end += 1
        self.pos = end
        return Token(TokenType.OTHER, text[pos:end], pos)

    def _heredoc(self, m: re.Match[str]) -> Token:
        text = self.text
        indented = bool(m.group(1))
        tag = next(g for g in (m.group(2), m.group(3), m.group(4)) if g is not None)
        interpolate = m.group(3) is None
        line_end = text.find("\n", m.end()) if self._jump_at is None else self._jump_at
        if line_end == -1:
            raise self._error("here-document without body", m.start())
        body_start = self._resume_at if self._resume_at is not None else line_end + 1
        lines: list[str] = []
        cursor = body_start
        while True:
            if cursor >= len(text):
                raise self._error(f"here-document '{tag}' not terminated", m.start())
            nl = text.find("\n", cursor)
            line_stop = len(text) if nl == -1 else nl
            line = text[cursor:line_stop]
            cursor = line_stop + 1
            if (line.strip() if indented else line) == tag:
                if indented:
                    indent = line[: len(line) - len(line.lstrip())]
                    lines = [ln.removeprefix(indent) for ln in lines]
                break
            lines.append(line)
        self._jump_at = line_end
        self._resume_at = min(cursor, len(text))
        self.pos = m.end()
        body = "".join(f"{ln}\n" for ln in lines)
        return Token(TokenType.STRING, m.group(0), m.start(), _double_unescape(body) if interpolate else body)


def _single_unescape(body: str, delim: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body) and body[i + 1] in {"\\", delim, _PAIRS.get(delim, delim)}:
            out.append(body[i + 1])
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _double_unescape(body: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            nxt = body[i + 1]
            out.append(_DQ_ESCAPES.get(nxt, nxt))
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _number(raw: str) -> int | float:
    cleaned = raw.replace("_", "")
    if cleaned.lower().startswith("0x"):
        return int(cleaned, 16)
    if any(ch in cleaned for ch in ".eE"):
        return float(cleaned)
    return int(cleaned)


class _TokenStream:
    def __init__(self, tokens: Iterator[Token]) -> None:
        self._tokens = tokens
        self._buffer: deque[Token] = deque()

    def peek(self, offset: int = 0) -> Token | None:
        while len(self._buffer) <= offset:
            tok = next(self._tokens, None)
            if tok is None:
                return None
            self._buffer.append(tok)
        return self._buffer[offset]

    def next(self) -> Token:
        tok = self.peek()
        if tok is None:
            msg = "unexpected end of source"
            raise PerlSourceError(msg)
        return self._buffer.popleft()


def _is(tok: Token | None, kind: TokenType, text: str | None = None) -> bool:
    return tok is not None and tok.type is kind and (text is None or tok.text == text)


class LiteralParser:
    """Recursive-descent parser for Perl data literals."""

    def __init__(self, text: str, pos: int = 0) -> None:
        self.text = text
        self._stream = _TokenStream(iter(Tokenizer(text, pos)))

    def _at_boundary(self) -> bool:
        tok = self._stream.peek()
        return (
            tok is None
            or tok.type in {TokenType.COMMA, TokenType.FATCOMMA, TokenType.CLOSE}
            or _is(tok, TokenType.OTHER, ";")
        )

    def parse_value(self) -> PerlValue:
        """Parse one value; computed expressions become :class:`Opaque`."""
        start = self._stream.peek()
        if start is None:
            msg = "unexpected end of source"
            raise PerlSourceError(msg)
        value = self._primary()
        if isinstance(value, Opaque) or self._at_boundary():
            return value
        self._skip_expression()
        return Opaque(self._span(start))

    def _span(self, start: Token) -> str:
        nxt = self._stream.peek()
        end = len(self.text) if nxt is None else nxt.pos
        return self.text[start.pos : end].strip()

    def _primary(self) -> PerlValue:  # noqa: C901, PLR0911 - one branch per literal kind
        stream = self._stream
        tok = stream.peek()
        assert tok is not None  # noqa: S101 - parse_value checked
        if tok.type is TokenType.STRING:
            stream.next()
            value = str(tok.value)
            # 'a' . 'b' concatenation
            while _is(stream.peek(), TokenType.OTHER, ".") and _is(stream.peek(1), TokenType.STRING):
                stream.next()
                value += str(stream.next().value)
            return value
        if tok.type is TokenType.NUMBER:
            stream.next()
            return tok.value  # type: ignore[return-value]
        if tok.type is TokenType.WORDS:
            stream.next()
            return list(tok.value)  # type: ignore[call-overload]
        if _is(tok, TokenType.OPEN, "{"):
            stream.next()
            return _pairs_to_dict(self.parse_list("}"))
        if _is(tok, TokenType.OPEN, "["):
            stream.next()
            return self.parse_list("]")
        if _is(tok, TokenType.OPEN, "("):
            stream.next()
            return self.parse_list(")")
        if _is(tok, TokenType.OTHER, "-") and _is(stream.peek(1), TokenType.BAREWORD) and _is(
            stream.peek(2), TokenType.FATCOMMA
        ):
            stream.next()
            return f"-{stream.next().text}"
        if tok.type is TokenType.BAREWORD:
            return self._bareword(tok)
        if tok.type is TokenType.CLOSE:
            msg = f"unexpected '{tok.text}'"
            raise PerlSourceError(msg)
        self._skip_expression()
        return Opaque(self._span(tok))

    def _bareword(self, tok: Token) -> PerlValue:
        stream = self._stream
        nxt = stream.peek(1)
        if _is(nxt, TokenType.FATCOMMA):
            stream.next()
            return tok.text
        if tok.text == "undef" and not _is(nxt, TokenType.OPEN, "("):
            stream.next()
            return None
        if tok.text == "sub" and _is(nxt, TokenType.OPEN, "{"):
            stream.next()
            self._skip_balanced()
            return Opaque(self._span(tok))
        if _is(nxt, TokenType.ARROW) or _is(nxt, TokenType.OPEN, "(") or _is(nxt, TokenType.OTHER, ":"):
            self._skip_expression()
            return Opaque(self._span(tok))
        stream.next()
        return tok.text

    def _skip_balanced(self) -> None:
        stack: list[str] = []
        while True:
            tok = self._stream.next()
            if tok.type is TokenType.OPEN:
                stack.append(_PAIRS[tok.text])
            elif tok.type is TokenType.CLOSE:
                if not stack or stack.pop() != tok.text:
                    msg = f"unbalanced '{tok.text}'"
                    raise PerlSourceError(msg)
            if not stack:
                return

    def _skip_expression(self) -> None:
        while not self._at_boundary():
            if _is(self._stream.peek(), TokenType.OPEN):
                self._skip_balanced()
            else:
                self._stream.next()

    def parse_list(self, close: str) -> list[PerlValue]:
        """Parse list items up to ``close`` (already past the opener).

        Parenthesised sub-lists and ``qw`` lists are flattened as in Perl.
        """
        items: list[PerlValue] = []
        stream = self._stream
        while True:
            tok = stream.peek()
            if tok is None:
                msg = f"missing '{close}'"
                raise PerlSourceError(msg)
            if tok.type is TokenType.CLOSE:
                stream.next()
                if tok.text != close:
                    msg = f"expected '{close}', found '{tok.text}'"
                    raise PerlSourceError(msg)
                return items
            if tok.type in {TokenType.COMMA, TokenType.FATCOMMA} or _is(tok, TokenType.OTHER, ";"):
                stream.next()
                continue
            if tok.type is TokenType.WORDS:
                stream.next()
                items.extend(tok.value)  # type: ignore[arg-type]
                continue
            if _is(tok, TokenType.OPEN, "("):
                stream.next()
                items.extend(self.parse_list(")"))
                continue
            items.append(self.parse_value())


def _pairs_to_dict(items: list[PerlValue]) -> dict[str, PerlValue]:
    out: dict[str, PerlValue] = {}
    it = iter(items)
    for key in it:
        out[_key(key)] = next(it, None)
    return out


def _key(value: PerlValue) -> str:
    if isinstance(value, Opaque):
        return value.text
    return "" if value is None else str(value)


def parse_value_at(text: str, pos: int) -> PerlValue:
    """Parse the single value that starts at ``pos``."""
    return LiteralParser(text, pos).parse_value()


def parse_arguments_at(text: str, pos: int) -> list[PerlValue]:
    """Parse a call's argument list; ``pos`` points at (or before) its ``(``."""
    parser = LiteralParser(text, pos)
    tok = parser._stream.next()  # noqa: SLF001 - opener is consumed here
    if not _is(tok, TokenType.OPEN, "("):
        msg = f"expected '(' but found '{tok.text}'"
        raise PerlSourceError(msg)
    return parser.parse_list(")")


def pairs(items: list[PerlValue]) -> dict[str, PerlValue]:
    """Interpret a flat list as key/value pairs."""
    return _pairs_to_dict(items)


_SPEC_ASSIGN_RE = re.compile(r"""\$SPEC\{\s*(?:'([^']*)'|"([^"]*)"|([\w:]+))\s*\}\s*=(?!=)""")


def find_spec_assignment(text: str, name: str) -> PerlValue | None:
    """Return the value of the last ``$SPEC{name} = ...`` in ``text``.

    Only the requested assignment is parsed, so metadata of unrelated
    (possibly embedded) modules never has to be understood.
    """
    last: re.Match[str] | None = None
    for m in _SPEC_ASSIGN_RE.finditer(text):
        if next(g for g in m.groups() if g is not None) == name:
            last = m
    if last is None:
        return None
    return parse_value_at(text, last.end())


_END_OF_CODE_RE = re.compile(r"^__(?:END|DATA)__\s*$", re.MULTILINE)


def program_code(text: str) -> str:
    """Return the program text before any ``__END__``/``__DATA__`` section."""
    m = _END_OF_CODE_RE.search(text)
    return text if m is None else text[: m.start()]
