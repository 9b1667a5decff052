"""
Tokenizer for Ham source text.
"""
import re
from dataclasses import dataclass
from typing import Iterator, List, Tuple

from ham.ham_datatypes import LexError

KEYWORDS = frozenset({'fn', 'let', 'if', 'while', 'break', 'return', 'true', 'false'})

ESCAPES = {'n': '\n', 't': '\t', '"': '"', '\\': '\\'}

KIND_NAMES = {'IDENT': 'identifier', 'INT': 'integer', 'FLOAT': 'float', 'STRING': 'string'}

# Longest integer literal accepted; matches the host's int/str conversion limit.
MAX_INT_DIGITS = 4300


@dataclass(frozen=True)
class Token:
    kind: str       # KEYWORD, IDENT, INT, FLOAT, STRING, OP, PUNCT, EOF
    value: object   # keyword/identifier/operator text, or the literal's value
    offset: int
    line: int
    col: int
    text: str = ""

    @property
    def loc(self) -> dict:
        return {'line': self.line, 'col': self.col, 'offset': self.offset}

    def describe(self) -> str:
        if self.kind == 'EOF':
            return "end of input"
        if self.kind in ('OP', 'PUNCT', 'KEYWORD'):
            return f"'{self.value}'"
        return f"{KIND_NAMES.get(self.kind, self.kind.lower())} {self.text}"


class TokenSpec:
    """Ordered token patterns; earlier entries win on equal starts."""

    def __init__(self):
        self.specs: List[Tuple[str, str]] = [
            ('NEWLINE',      r'\n'),
            ('WS',           r'[ \t\r]+'),
            ('LINE_COMMENT', r'//[^\n]*'),
            ('FLOAT',        r'\d+\.\d+'),
            ('INT',          r'\d+'),
            ('STRING',       r'"(?:[^"\\\n]|\\.)*"'),
            ('NAME',         r'[A-Za-z_][A-Za-z0-9_]*'),
            ('OP',           r'==|!=|<=|>=|[+\-*/<>=.&]'),
            ('PUNCT',        r'[(){},]'),
            ('MISMATCH',     r'.'),
        ]

    def get_regex(self):
        return re.compile('|'.join(f'(?P<{k}>{p})' for k, p in self.specs))


_REGEX = TokenSpec().get_regex()


class Lexer:
    """A lazy, restartable token stream over one source text.

    Each iteration starts again from the beginning of the source and ends
    with a single EOF token. A LexError stops the stream at the first bad
    character.
    """

    def __init__(self, source: str):
        self.source = source

    def __iter__(self) -> Iterator[Token]:
        return self.tokens()

    def tokens(self) -> Iterator[Token]:
        line, line_start = 1, 0
        for m in _REGEX.finditer(self.source):
            kind = m.lastgroup
            text = m.group()
            start = m.start()
            col = start - line_start + 1

            if kind == 'NEWLINE':
                line += 1
                line_start = m.end()
                continue
            if kind in ('WS', 'LINE_COMMENT'):
                continue
            if kind == 'MISMATCH':
                if text == '"':
                    raise LexError("unterminated string literal", line, col)
                raise LexError(f"unexpected character {text!r}", line, col)

            yield self._make_token(kind, text, start, line, col)

        yield Token('EOF', None, len(self.source), line, len(self.source) - line_start + 1)

    def _make_token(self, kind: str, text: str, offset: int, line: int, col: int) -> Token:
        match kind:
            case 'INT':
                if len(text) > MAX_INT_DIGITS:
                    raise LexError(f"integer literal too long ({len(text)} digits, limit {MAX_INT_DIGITS})", line, col)
                return Token('INT', int(text), offset, line, col, text)
            case 'FLOAT':
                return Token('FLOAT', float(text), offset, line, col, text)
            case 'STRING':
                return Token('STRING', self._unescape(text[1:-1], line, col), offset, line, col, text)
            case 'NAME':
                tok_kind = 'KEYWORD' if text in KEYWORDS else 'IDENT'
                return Token(tok_kind, text, offset, line, col, text)
            case _:
                return Token(kind, text, offset, line, col, text)

    def _unescape(self, body: str, line: int, col: int) -> str:
        if '\\' not in body:
            return body
        out = []
        i = 0
        while i < len(body):
            ch = body[i]
            if ch == '\\':
                nxt = body[i + 1]
                if nxt not in ESCAPES:
                    raise LexError(f"unknown escape sequence '\\{nxt}'", line, col + i + 1)
                out.append(ESCAPES[nxt])
                i += 2
                continue
            out.append(ch)
            i += 1
        return ''.join(out)


def tokenize(source: str) -> List[Token]:
    """Lexes the whole source, returning every token including EOF."""
    return list(Lexer(source))

