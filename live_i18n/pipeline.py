"""
End-to-end localization of one generated component.

Order of work: extract candidates, resolve keys, rewrite, and only then
persist the new keys and start their translation. An exception in any of the
first three steps leaves the store untouched.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from live_i18n.auto_translate import AutoTranslateClient
from live_i18n.extractor import (
    derive_component_name,
    extract_candidates,
    extract_component_code,
    extract_key_references,
)
from live_i18n.key_resolver import KeyResolver
from live_i18n.logging_config import get_logger
from live_i18n.models import LocalizationEntry, NewKey
from live_i18n.rewriter import CodeRewriter
from live_i18n.store import TranslationStore, generate_entry_id

logger = get_logger("pipeline")


def known_text_keys(entries: Iterable[LocalizationEntry]) -> Dict[str, str]:
    """Stripped English text -> key for every stored entry. The first entry wins for duplicated text."""
    text_keys: Dict[str, str] = {}
    for entry in entries:
        text = (entry.en or "").strip()
        if text:
            text_keys.setdefault(text, entry.key)
    return text_keys


@dataclass
class LocalizationResult:
    source: str
    rewritten: str
    component_name: str
    text_keys: Dict[str, str] = field(default_factory=dict)
    key_references: Dict[str, str] = field(default_factory=dict)
    new_keys: List[NewKey] = field(default_factory=list)
    created: int = 0
    translation_task: Optional[asyncio.Task] = None

    @property
    def changed(self) -> bool:
        return self.rewritten != self.source


class LocalizationPipeline:
    """
    Args:
        store: Open translation store.
        auto_translator: Client that translates new keys in the background;
            None disables auto-translation.
        text_aliases: Overrides the default synonym table.
        key_aliases: Overrides the default legacy-key table.
    """

    def __init__(
        self,
        store: TranslationStore,
        auto_translator: Optional[AutoTranslateClient] = None,
        text_aliases: Optional[Mapping[str, str]] = None,
        key_aliases: Optional[Mapping[str, str]] = None,
    ):
        self.store = store
        self.auto_translator = auto_translator
        self.text_aliases = text_aliases
        self.key_aliases = key_aliases

    def plan(self, source: str) -> LocalizationResult:
        """Resolve and rewrite ``source`` without touching the store."""
        candidates = extract_candidates(source)
        references = extract_key_references(source)

        entries = self.store.get_all()
        resolver = KeyResolver(entries, self.text_aliases, self.key_aliases)
        # Stored English is rewritten wherever it appears; the candidate
        # line filters only decide which text gets a new key.
        text_keys = known_text_keys(entries)
        # Discovery order keeps minted collision suffixes stable between runs.
        for text in sorted(candidates, key=source.find):
            text_keys[text] = resolver.resolve(text).key
        key_references = {raw: resolver.resolve_key_reference(raw).key for raw in references}
        new_keys = resolver.drain_pending()

        rewriter = CodeRewriter(
            text_keys,
            key_references,
            known_keys=set(resolver.known_keys),
            key_aliases=resolver.key_aliases,
        )
        rewritten = rewriter.rewrite(source)
        logger.debug("Planned %d candidate(s), %d reference(s), %d new key(s)",
                     len(candidates), len(key_references), len(new_keys))
        return LocalizationResult(
            source=source,
            rewritten=rewritten,
            component_name=derive_component_name(source),
            text_keys=text_keys,
            key_references=key_references,
            new_keys=new_keys,
        )

    def persist(self, result: LocalizationResult) -> int:
        """Idempotently create the entries for ``result.new_keys``."""
        if not result.new_keys:
            return 0
        inserted = self.store.create_many(
            LocalizationEntry(id=generate_entry_id(), key=new_key.key, en=new_key.en)
            for new_key in result.new_keys
        )
        result.created = len(inserted)
        return result.created

    async def process_generated_code(self, source: str) -> LocalizationResult:
        """
        Localize one component source.

        Returns once the new keys are persisted; their translation continues
        in ``result.translation_task``.
        """
        result = self.plan(source)
        self.persist(result)
        if self.auto_translator is not None and result.new_keys:
            result.translation_task = self.auto_translator.schedule(result.new_keys)
        logger.info("Localized component '%s': %d new key(s), %d created",
                    result.component_name, len(result.new_keys), result.created)
        return result

    async def process_reply(self, reply: str) -> Optional[LocalizationResult]:
        """Localize the component in a model reply, or return None when the reply has no component code."""
        code = extract_component_code(reply)
        if code is None:
            logger.info("Model reply contains no component code")
            return None
        return await self.process_generated_code(code)
