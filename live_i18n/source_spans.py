"""
Single-pass tokenizer splitting generated source into code and quoted-literal spans.

Extraction and every rewrite pass work on the same span list, so they agree
on what counts as a literal, and rewritten output is stored as ``emitted``
spans that no later pass looks at again.
"""
import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

CODE = "code"
LITERAL = "literal"
EMITTED = "emitted"

QUOTES = ("'", '"')
# A quote run that reaches one of these before its closing quote is not a
# string literal (typically an apostrophe in JSX text such as "Don't").
_LITERAL_BREAKERS = frozenset("\n<>{}")


@dataclass
class Span:
    kind: str
    text: str
    start: int = -1

    @property
    def is_literal(self) -> bool:
        return self.kind == LITERAL

    @property
    def quote(self) -> str:
        return self.text[0] if self.is_literal else ""

    @property
    def value(self) -> str:
        """Literal body without the surrounding quotes."""
        return self.text[1:-1] if self.is_literal else self.text


def _scan_literal(source: str, start: int) -> Optional[int]:
    """Return the index just past the closing quote, or None if ``start`` does not open a literal."""
    quote = source[start]
    i = start + 1
    length = len(source)
    while i < length:
        char = source[i]
        if char == "\\":
            i += 2
            continue
        if char == quote:
            return i + 1
        if char in _LITERAL_BREAKERS:
            return None
        i += 1
    return None


def tokenize(source: str) -> List[Span]:
    """
    Split ``source`` into alternating code and literal spans.

    Joining the ``text`` of the returned spans reproduces ``source`` exactly.
    """
    spans: List[Span] = []
    code_start = 0
    i = 0
    length = len(source)
    while i < length:
        if source[i] in QUOTES:
            end = _scan_literal(source, i)
            if end is not None:
                if code_start < i:
                    spans.append(Span(CODE, source[code_start:i], code_start))
                spans.append(Span(LITERAL, source[i:end], i))
                code_start = i = end
                continue
        i += 1
    if code_start < length:
        spans.append(Span(CODE, source[code_start:], code_start))
    return spans


def render(spans: List[Span]) -> str:
    return "".join(span.text for span in spans)


def iter_literals(spans: List[Span]) -> Iterator[Tuple[int, Span]]:
    for index, span in enumerate(spans):
        if span.is_literal:
            yield index, span


def enclosing_line(source: str, offset: int) -> str:
    line_start = source.rfind("\n", 0, offset) + 1
    line_end = source.find("\n", offset)
    return source[line_start: line_end if line_end != -1 else len(source)]


def code_before(spans: List[Span], index: int) -> str:
    """Text of the code span right before ``index``; '' if there is none or it is not code."""
    if index > 0 and spans[index - 1].kind == CODE:
        return spans[index - 1].text
    return ""


def code_after(spans: List[Span], index: int) -> str:
    if index + 1 < len(spans) and spans[index + 1].kind == CODE:
        return spans[index + 1].text
    return ""


def trim_before(spans: List[Span], index: int, pattern: "re.Pattern[str]", replacement: str = "") -> None:
    """Replace the part of the preceding code span matched by ``pattern`` (anchored at its end)."""
    if index > 0 and spans[index - 1].kind == CODE:
        spans[index - 1].text = pattern.sub(replacement, spans[index - 1].text, count=1)


def trim_after(spans: List[Span], index: int, pattern: "re.Pattern[str]", replacement: str = "") -> None:
    if index + 1 < len(spans) and spans[index + 1].kind == CODE:
        spans[index + 1].text = pattern.sub(replacement, spans[index + 1].text, count=1)


def emit(spans: List[Span], index: int, text: str) -> None:
    """Replace the span at ``index`` with generated text that later passes must not touch."""
    spans[index] = Span(EMITTED, text, spans[index].start)
