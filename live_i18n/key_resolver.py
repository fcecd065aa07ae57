"""Maps candidate text and explicit key references to stable translation keys."""
import re
from typing import Dict, Iterable, List, Mapping, Optional

from live_i18n.logging_config import get_logger
from live_i18n.models import KEY_ALIASES, TEXT_ALIASES, LocalizationEntry, NewKey, Resolution

logger = get_logger("resolver")

AUTO_KEY_PREFIX = "auto."
MAX_SLUG_LENGTH = 40

_NON_ALNUM_RUN_RE = re.compile(r"[^a-z0-9]+")


def slugify_text(text: str) -> str:
    """Lower-case, collapse non-alphanumeric runs into '.', trim dots, truncate."""
    slug = _NON_ALNUM_RUN_RE.sub(".", text.lower()).strip(".")
    return slug[:MAX_SLUG_LENGTH]


def mint_base_key(text: str) -> str:
    return f"{AUTO_KEY_PREFIX}{slugify_text(text)}"


def label_from_key(key: str) -> str:
    """English seed for a referenced key: last segment, underscores to spaces, words capitalized."""
    last = key.split(".")[-1].replace("_", " ")
    return re.sub(r"\b\w", lambda match: match.group(0).upper(), last)


class KeyResolver:
    """
    Resolves text to keys against a snapshot of the store.

    The resolver never writes to the store. Keys it has to invent are queued
    in ``pending`` (in discovery order) for the caller to persist, and are
    immediately visible to later lookups, so resolving the same text twice
    returns the same key.

    Args:
        entries: Current store contents.
        text_aliases: Lower-cased synonym text -> canonical key.
        key_aliases: Legacy key -> canonical key.
    """

    def __init__(
        self,
        entries: Iterable[LocalizationEntry],
        text_aliases: Optional[Mapping[str, str]] = None,
        key_aliases: Optional[Mapping[str, str]] = None,
    ):
        self.text_aliases = dict(TEXT_ALIASES if text_aliases is None else text_aliases)
        self.key_aliases = dict(KEY_ALIASES if key_aliases is None else key_aliases)
        self._english_by_key: Dict[str, str] = {}
        self._key_by_text: Dict[str, str] = {}
        self._key_by_lower_text: Dict[str, str] = {}
        self.pending: List[NewKey] = []
        for entry in entries:
            self._remember(entry.key, entry.en or "")

    @property
    def known_keys(self) -> List[str]:
        return list(self._english_by_key)

    def has_key(self, key: str) -> bool:
        return key in self._english_by_key

    def resolve(self, text: str) -> Resolution:
        """
        Resolve one candidate text.

        Order: alias table, exact English match, case-insensitive English
        match, then a newly minted ``auto.*`` key.
        """
        text = text.strip()
        lower = text.lower()

        alias = self.text_aliases.get(lower)
        if alias:
            return Resolution(alias)
        if text in self._key_by_text:
            return Resolution(self._key_by_text[text])
        if lower in self._key_by_lower_text:
            return Resolution(self._key_by_lower_text[lower])

        base = mint_base_key(text)
        key = base
        suffix = 1
        while key in self._english_by_key:
            if self._english_by_key[key].strip() == text:
                return Resolution(key)
            suffix += 1
            key = f"{base}.{suffix}"

        self._queue(key, text)
        logger.debug("Minted key '%s' for text '%s'", key, text)
        return Resolution(key, is_new=True)

    def resolve_key_reference(self, raw_key: str) -> Resolution:
        """
        Resolve a key the source already references explicitly.

        Legacy aliases are mapped to their canonical key. A key unknown to the
        store is queued with an English value derived from its last segment.
        """
        key = self.key_aliases.get(raw_key, raw_key)
        if key in self._english_by_key:
            return Resolution(key)
        self._queue(key, label_from_key(key))
        logger.debug("Queued referenced key '%s' missing from the store", key)
        return Resolution(key, is_new=True)

    def canonical_key(self, raw_key: str) -> Optional[str]:
        """Alias-resolved key if it (or the raw key) is known, else None."""
        key = self.key_aliases.get(raw_key, raw_key)
        if key in self._english_by_key or raw_key in self._english_by_key:
            return key
        return None

    def drain_pending(self) -> List[NewKey]:
        pending, self.pending = self.pending, []
        return pending

    def _queue(self, key: str, english: str) -> None:
        self.pending.append(NewKey(key=key, en=english))
        self._remember(key, english)

    def _remember(self, key: str, english: str) -> None:
        self._english_by_key[key] = english
        text = english.strip()
        if not text:
            return
        # First key in store order wins for duplicated English text.
        self._key_by_text.setdefault(text, key)
        self._key_by_lower_text.setdefault(text.lower(), key)
