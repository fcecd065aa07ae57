"""Heuristic detection of user-facing text and key references in generated component source."""
import re
from typing import List, Optional, Set

from live_i18n.models import KEY_LIKE_PATTERN
from live_i18n.source_spans import enclosing_line, iter_literals, tokenize

# Body of a quoted run that may be UI text: letters, digits, space and a
# small punctuation set that includes '$' and '/' for prices such as "$19/mo".
CANDIDATE_BODY_RE = re.compile(r"[A-Za-z0-9 ,.!?:;\-$/]{2,80}")
HAS_LETTER_RE = re.compile(r"[A-Za-z]")

BANNED_LITERALS = frozenset({"react", "use client"})

# A literal on a line matching any of these is treated as code, not UI text.
CODE_LINE_PATTERNS = (
    re.compile(r"\b(?:className|href)="),
    re.compile(r"\bhttp\b"),
    re.compile(r"\bexport\s+(?:default\s+)?function"),
    re.compile(r"return\s+\{"),
)
IMPORT_LINE_PATTERNS = (
    re.compile(r"\bimport\b"),
    re.compile(r"\bfrom\b"),
)

TRANSLATION_CALL_NAMES = ("t", "i18n", "__i18n")
KEY_REFERENCE_RE = re.compile(
    r"(?<![\w$.])(?:" + "|".join(re.escape(name) for name in TRANSLATION_CALL_NAMES) + r")"
    r"\(\s*(['\"])(" + KEY_LIKE_PATTERN + r")\1\s*\)"
)

CODE_BLOCK_RE = re.compile(r"```(?:tsx?|jsx?|react)?\n([\s\S]*?)\n```")
COMPONENT_MARKERS = ("export default", "function", "const")

COMPONENT_NAME_PATTERNS = (
    re.compile(r"export\s+default\s+function\s+([A-Za-z0-9_]+)"),
    re.compile(r"function\s+([A-Za-z0-9_]+)\s*\("),
    re.compile(r"const\s+([A-Za-z0-9_]+)\s*=\s*\("),
    re.compile(r"export\s+default\s+([A-Za-z0-9_]+)"),
)


def is_code_line(line: str) -> bool:
    return any(pattern.search(line) for pattern in CODE_LINE_PATTERNS)


def is_import_line(line: str) -> bool:
    return any(pattern.search(line) for pattern in IMPORT_LINE_PATTERNS)


def extract_candidates(source: str) -> Set[str]:
    """
    Collect quoted literals that look like user-facing text.

    Args:
        source: Raw generated component source.

    Returns:
        A set of stripped candidate strings. Empty when nothing qualifies.
    """
    candidates: Set[str] = set()
    for _, span in iter_literals(tokenize(source)):
        body = span.value
        if not CANDIDATE_BODY_RE.fullmatch(body):
            continue
        text = body.strip()
        if len(text) < 2 or not HAS_LETTER_RE.search(text):
            continue
        if text.lower() in BANNED_LITERALS:
            continue
        line = enclosing_line(source, span.start)
        if is_code_line(line) or is_import_line(line):
            continue
        candidates.add(text)
    return candidates


def extract_key_references(source: str) -> List[str]:
    """Return dotted keys passed as literals to t(), i18n() or __i18n(), in order of first use."""
    seen = dict.fromkeys(match.group(2) for match in KEY_REFERENCE_RE.finditer(source))
    return list(seen)


def extract_component_code(reply: str) -> Optional[str]:
    """
    Pull the component source out of a model reply.

    The last fenced block wins, since a reply that iterates on a component
    shows the final version last. Blocks without anything that looks like a
    component definition are ignored.
    """
    blocks = CODE_BLOCK_RE.findall(reply)
    if not blocks:
        return None
    code = blocks[-1]
    if any(marker in code for marker in COMPONENT_MARKERS):
        return code
    return None


def derive_component_name(code: str) -> str:
    for pattern in COMPONENT_NAME_PATTERNS:
        match = pattern.search(code)
        if match and match.group(1):
            return match.group(1)
    if re.search(r"button", code, re.IGNORECASE):
        return "Button"
    if re.search(r"card", code, re.IGNORECASE):
        return "Card"
    if re.search(r"form", code, re.IGNORECASE):
        return "Form"
    return "Component"
