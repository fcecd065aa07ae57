"""
Runtime fallback resolution for preview code.

``resolve_fallback`` is the Python twin of the ``i18n`` function emitted into
every preview file by ``build_runtime_preamble``; both must agree on the
lookup order: current locale, English, derived label, raw key.
"""
import json
import re
from typing import Mapping, Optional

from live_i18n.rewriter import CANONICAL_CALL

CURRENT_TABLE_NAME = "__TX"
ENGLISH_TABLE_NAME = "__EN"

_DERIVABLE_KEY_RE = re.compile(r"^[A-Za-z]+(\.[A-Za-z0-9_]+)+$")


def derive_label(key: str) -> str:
    """Last key segment with underscores as spaces and the first letter upper-cased."""
    last = key.split(".")[-1].replace("_", " ")
    return last[:1].upper() + last[1:]


def resolve_fallback(
    key: str,
    current: Optional[Mapping[str, str]] = None,
    english: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Resolve ``key`` to a displayable string. Never raises.

    Args:
        key: Translation key as passed to ``i18n()``.
        current: Table for the active locale.
        english: English table.

    Returns:
        The first non-empty of: current value, English value, derived label
        (only for dotted keys), the key itself.
    """
    key = "" if key is None else str(key)
    value = (current or {}).get(key)
    if value:
        return value
    value = (english or {}).get(key)
    if value:
        return value
    if _DERIVABLE_KEY_RE.match(key):
        return derive_label(key)
    return key


def _js_table(table: Mapping[str, str]) -> str:
    # U+2028/U+2029 are legal in JSON but terminate lines in older JS engines.
    return (
        json.dumps(dict(table), ensure_ascii=False)
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )


def build_runtime_preamble(current: Mapping[str, str], english: Mapping[str, str]) -> str:
    """JavaScript defining the two lookup tables and the ``i18n`` resolver."""
    return (
        f"\nconst {CURRENT_TABLE_NAME} = {_js_table(current)};\n"
        f"const {ENGLISH_TABLE_NAME} = {_js_table(english)};\n"
        f"function {CANONICAL_CALL}(key) {{\n"
        f"  const k = String(key ?? '');\n"
        f"  const cur = {CURRENT_TABLE_NAME}[k];\n"
        f"  if (cur != null && String(cur).length > 0) return String(cur);\n"
        f"  const en = {ENGLISH_TABLE_NAME}[k];\n"
        f"  if (en != null && String(en).length > 0) return String(en);\n"
        f"  if (/^[A-Za-z]+(\\.[A-Za-z0-9_]+)+$/.test(k)) {{\n"
        f"    const last = k.split('.').pop().replace(/_/g, ' ');\n"
        f"    return last.charAt(0).toUpperCase() + last.slice(1);\n"
        f"  }}\n"
        f"  return k;\n"
        f"}}\n"
    )
