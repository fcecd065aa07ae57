"""
Rewrites generated component source so that user-facing strings go through
the canonical ``i18n('key')`` call.

The passes run in a fixed order over one span list (see source_spans). Every
replacement turns the literal into an emitted span, so text produced by an
earlier pass is never matched again by a later one.
"""
import re
from dataclasses import dataclass, field
from typing import AbstractSet, Callable, Dict, List, Mapping, Optional

from live_i18n.logging_config import get_logger
from live_i18n.models import KEY_ALIASES, is_key_like
from live_i18n.source_spans import (
    Span,
    code_after,
    code_before,
    emit,
    iter_literals,
    render,
    tokenize,
    trim_after,
    trim_before,
)

logger = get_logger("rewriter")

CANONICAL_CALL = "i18n"
RAW_CALL = "t"
GUARDED_CALL_NAMES = (RAW_CALL, CANONICAL_CALL, "__i18n")

_TRAILING_WS = re.compile(r"\s*$")
_LEADING_WS = re.compile(r"^\s*")
_TEXT_NODE_OPEN = re.compile(r">\s*$")
_TEXT_NODE_CLOSE = re.compile(r"^\s*<")
_EXPR_OPEN = re.compile(r"\{\s*$")
_EXPR_CLOSE = re.compile(r"^\s*\}")
_OBJECT_KEY_COLON = re.compile(r"^\s*:")
_CALL_OPEN = re.compile(
    r"(?<![\w$])(?:" + "|".join(re.escape(name) for name in GUARDED_CALL_NAMES) + r")\(\s*$"
)
_RAW_CALL_OPEN = re.compile(r"(?<![\w$.])" + re.escape(RAW_CALL) + r"\(\s*$")
_CALL_CLOSE = re.compile(r"^\s*\)")
_ASSIGNMENT_WINDOW = 10


def canonical_call(key: str) -> str:
    return f"{CANONICAL_CALL}('{key}')"


def key_is_known(key: str, known_keys: AbstractSet[str]) -> bool:
    return key in known_keys


# Object fields whose key-shaped string value is rewritten by the prop-field
# pass, each with the check deciding whether a given key qualifies.
PROP_FIELD_RULES: Dict[str, Callable[[str, AbstractSet[str]], bool]] = {
    "label": key_is_known,
    "title": key_is_known,
    "description": key_is_known,
    "buttonText": key_is_known,
    "text": key_is_known,
    "placeholder": key_is_known,
    "name": key_is_known,
}


@dataclass
class RewriteReport:
    """Per-pass replacement counts for one rewrite."""
    text_nodes: int = 0
    expressions: int = 0
    bare_keys: int = 0
    raw_calls: int = 0
    prop_fields: int = 0
    keys_used: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.text_nodes + self.expressions + self.bare_keys + self.raw_calls + self.prop_fields

    def use(self, key: str) -> None:
        if key not in self.keys_used:
            self.keys_used.append(key)


class CodeRewriter:
    """
    Args:
        text_keys: English text -> key for literal replacement.
        key_references: Raw key as written in the source -> resolved key.
        known_keys: Keys present in the store (including ones about to be created).
        key_aliases: Legacy key -> canonical key.
        prop_field_rules: Field name -> applicability check for the prop-field pass.
    """

    def __init__(
        self,
        text_keys: Mapping[str, str],
        key_references: Optional[Mapping[str, str]] = None,
        known_keys: AbstractSet[str] = frozenset(),
        key_aliases: Optional[Mapping[str, str]] = None,
        prop_field_rules: Optional[Mapping[str, Callable[[str, AbstractSet[str]], bool]]] = None,
    ):
        self.text_keys = dict(text_keys)
        self.key_references = dict(key_references or {})
        self.known_keys = frozenset(known_keys)
        self.key_aliases = dict(KEY_ALIASES if key_aliases is None else key_aliases)
        self.prop_field_rules = dict(PROP_FIELD_RULES if prop_field_rules is None else prop_field_rules)
        self._prop_field_re = self._build_prop_field_re(self.prop_field_rules)
        self.report = RewriteReport()

    @staticmethod
    def _build_prop_field_re(rules: Mapping[str, object]) -> Optional["re.Pattern[str]"]:
        if not rules:
            return None
        names = "|".join(re.escape(name) for name in sorted(rules, key=len, reverse=True))
        return re.compile(r"(?<![\w$])(" + names + r")\s*:\s*$")

    def rewrite(self, source: str) -> str:
        """Apply every pass in order and return the rewritten source."""
        self.report = RewriteReport()
        spans = tokenize(source)
        self._rewrite_text_nodes(spans)
        self._rewrite_expression_literals(spans)
        self._rewrite_bare_keys(spans)
        self._rewrite_raw_calls(spans)
        self._rewrite_prop_fields(spans)
        logger.debug(
            "Rewrite replaced %d literal(s): %d text node(s), %d expression(s), %d bare key(s), "
            "%d raw call(s), %d prop field(s)",
            self.report.total, self.report.text_nodes, self.report.expressions,
            self.report.bare_keys, self.report.raw_calls, self.report.prop_fields,
        )
        return render(spans)

    def resolve_reference(self, raw_key: str) -> Optional[str]:
        """Resolved key for a key-shaped literal, or None when it is not a known key."""
        if raw_key in self.key_references:
            return self.key_references[raw_key]
        resolved = self.key_aliases.get(raw_key, raw_key)
        if raw_key in self.known_keys or resolved in self.known_keys:
            return resolved
        return None

    # Pass 1: > 'text' <
    def _rewrite_text_nodes(self, spans: List[Span]) -> None:
        for index, span in list(iter_literals(spans)):
            key = self.text_keys.get(span.value.strip())
            if key is None:
                continue
            if not (_TEXT_NODE_OPEN.search(code_before(spans, index))
                    and _TEXT_NODE_CLOSE.search(code_after(spans, index))):
                continue
            trim_before(spans, index, _TRAILING_WS)
            trim_after(spans, index, _LEADING_WS)
            emit(spans, index, f" {{{canonical_call(key)}}} ")
            self.report.text_nodes += 1
            self.report.use(key)

    # Pass 2: {'text'}
    def _rewrite_expression_literals(self, spans: List[Span]) -> None:
        for index, span in list(iter_literals(spans)):
            key = self.text_keys.get(span.value.strip())
            if key is None:
                continue
            if not (_EXPR_OPEN.search(code_before(spans, index))
                    and _EXPR_CLOSE.search(code_after(spans, index))):
                continue
            trim_before(spans, index, _EXPR_OPEN)
            trim_after(spans, index, _EXPR_CLOSE)
            emit(spans, index, f"{{{canonical_call(key)}}}")
            self.report.expressions += 1
            self.report.use(key)

    # Pass 3: 'namespace.key' anywhere
    def _rewrite_bare_keys(self, spans: List[Span]) -> None:
        for index, span in list(iter_literals(spans)):
            raw_key = span.value
            if not is_key_like(raw_key):
                continue
            if _CALL_OPEN.search(code_before(spans, index)):
                continue  # already the argument of a translation call
            if _OBJECT_KEY_COLON.search(code_after(spans, index)):
                continue  # object key, not a value
            key = self.resolve_reference(raw_key)
            if key is None:
                continue
            emit(spans, index, f"{{{canonical_call(key)}}}")
            self.report.bare_keys += 1
            self.report.use(key)

    # Pass 4: t('namespace.key')
    def _rewrite_raw_calls(self, spans: List[Span]) -> None:
        for index, span in list(iter_literals(spans)):
            raw_key = span.value
            if not is_key_like(raw_key):
                continue
            before = code_before(spans, index)
            after = code_after(spans, index)
            call_open = _RAW_CALL_OPEN.search(before)
            call_close = _CALL_CLOSE.search(after)
            if not (call_open and call_close):
                continue
            key = self.key_references.get(raw_key, raw_key)

            context_before = before[:call_open.start()]
            context_after = after[call_close.end():]
            in_expression = (
                context_before.rstrip().endswith("{")
                or context_after.lstrip().startswith("}")
                or "=" in context_before[-_ASSIGNMENT_WINDOW:]
            )
            spans[index - 1].text = context_before
            spans[index + 1].text = context_after
            call = canonical_call(key)
            emit(spans, index, call if in_expression else f"{{{call}}}")
            self.report.raw_calls += 1
            self.report.use(key)

    # Pass 5: label: 'namespace.key'
    def _rewrite_prop_fields(self, spans: List[Span]) -> None:
        if self._prop_field_re is None:
            return
        for index, span in list(iter_literals(spans)):
            raw_key = span.value
            if not is_key_like(raw_key):
                continue
            match = self._prop_field_re.search(code_before(spans, index))
            if not match:
                continue
            field_name = match.group(1)
            key = self.key_aliases.get(raw_key, raw_key)
            check = self.prop_field_rules[field_name]
            if not (check(raw_key, self.known_keys) or check(key, self.known_keys)):
                continue
            spans[index - 1].text = spans[index - 1].text[:match.start()] + f"{field_name}: "
            emit(spans, index, f"{{{canonical_call(key)}}}")
            self.report.prop_fields += 1
            self.report.use(key)


def rewrite_source(
    source: str,
    text_keys: Mapping[str, str],
    key_references: Optional[Mapping[str, str]] = None,
    known_keys: AbstractSet[str] = frozenset(),
) -> str:
    return CodeRewriter(text_keys, key_references, known_keys).rewrite(source)
