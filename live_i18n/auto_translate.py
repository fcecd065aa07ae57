"""
Sends newly minted keys to the batch translation service and merges the
answers back into the store.

Overlapping operations are ordered by a sequence number taken when the
operation starts. A result that finishes after a newer operation has already
merged is stale: it may still fill locale fields that are empty, but it never
overwrites a value. Failures are reported, never retried.
"""
import asyncio
import itertools
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set

from tqdm.asyncio import tqdm

from live_i18n.errors import TranslationParseError, TranslationServiceError, TranslationTransportError
from live_i18n.logging_config import get_logger
from live_i18n.models import TARGET_LOCALES, LocalizationEntry, NewKey, TranslationBatch
from live_i18n.store import TranslationStore
from live_i18n.translation_service import BatchTranslationService, count_tokens

logger = get_logger("auto_translate")

DEFAULT_BACKFILL_CHUNK_SIZE = 50
DEFAULT_BACKFILL_TOKEN_BUDGET = 2000


@dataclass
class TranslateOutcome:
    """What one auto-translate operation did. ``warning`` is set whenever ``ok`` is False."""
    sequence: int
    requested: int
    merged: int = 0
    ok: bool = True
    stale: bool = False
    warning: Optional[str] = None


class AutoTranslateClient:
    """
    Args:
        store: Open translation store that receives the merged values.
        service: Batch translation service used for every provider call.
    """

    def __init__(self, store: TranslationStore, service: BatchTranslationService):
        self.store = store
        self.service = service
        self._sequence = itertools.count(1)
        self._latest_merged = 0
        self._tasks: Set[asyncio.Task] = set()

    @property
    def latest_merged_sequence(self) -> int:
        return self._latest_merged

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def schedule(self, new_keys: Sequence[NewKey]) -> Optional[asyncio.Task]:
        """Start ``translate_and_merge`` in the background. Returns None when there is nothing to do."""
        if not new_keys:
            return None
        task = asyncio.get_running_loop().create_task(self.translate_and_merge(list(new_keys)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> List[TranslateOutcome]:
        """Wait for every scheduled operation and return their outcomes."""
        outcomes = []
        while self._tasks:
            tasks = list(self._tasks)
            outcomes.extend(await asyncio.gather(*tasks))
            self._tasks.difference_update(tasks)
        return outcomes

    async def translate_and_merge(self, new_keys: Sequence[NewKey], fill_only: bool = False) -> TranslateOutcome:
        """
        Translate ``new_keys`` with one service call and merge the non-empty results.

        Args:
            new_keys: Keys with their English text.
            fill_only: Only write locale fields that are currently empty.

        Returns:
            The operation outcome. Service failures are logged and returned
            as a warning instead of raised.
        """
        sequence = next(self._sequence)
        outcome = TranslateOutcome(sequence=sequence, requested=len(new_keys))
        if not new_keys:
            return outcome

        try:
            batch = await self.service.translate(new_keys)
        except TranslationParseError as exc:
            return self._failed(outcome, f"Auto-translation failed: could not parse provider response ({exc.details or exc})")
        except TranslationTransportError as exc:
            return self._failed(outcome, f"Auto-translation failed: {exc}")
        except TranslationServiceError as exc:
            return self._failed(outcome, f"Auto-translation failed: {exc}")

        outcome.stale = sequence < self._latest_merged
        if outcome.stale:
            logger.info("Translation batch #%d finished after #%d; filling empty fields only",
                        sequence, self._latest_merged)
        outcome.merged = self.merge(new_keys, batch, fill_only=fill_only or outcome.stale)
        self._latest_merged = max(self._latest_merged, sequence)
        if outcome.merged:
            self.store.touch()
        logger.info("Translation batch #%d merged %d locale value(s) for %d key(s)",
                    sequence, outcome.merged, len(new_keys))
        return outcome

    def merge(self, new_keys: Iterable[NewKey], batch: TranslationBatch, fill_only: bool = False) -> int:
        """
        Write translated values for the exact English text of each key.

        Missing or empty results leave the field untouched. Returns the number
        of locale values written.
        """
        merged = 0
        for new_key in new_keys:
            entry = self.store.get_by_key(new_key.key)
            if entry is None:
                logger.warning("Key '%s' disappeared before its translations arrived", new_key.key)
                continue
            values: Dict[str, str] = {}
            for locale in TARGET_LOCALES:
                translated = batch.lookup(locale, new_key.en).strip()
                if not translated:
                    continue
                if fill_only and getattr(entry, locale):
                    continue
                values[locale] = translated
            if values and self.store.update_by_key(new_key.key, values):
                merged += len(values)
        return merged

    def _failed(self, outcome: TranslateOutcome, warning: str) -> TranslateOutcome:
        logger.warning(warning)
        outcome.ok = False
        outcome.warning = warning
        return outcome


def untranslated_entries(entries: Iterable[LocalizationEntry]) -> List[NewKey]:
    """Entries with English text and at least one empty target locale."""
    return [NewKey(key=entry.key, en=entry.en) for entry in entries
            if entry.en and entry.en.strip() and entry.missing_locales()]


def chunk_by_budget(items: Sequence[NewKey], chunk_size: int, token_budget: int,
                    model_name: str) -> List[List[NewKey]]:
    """
    Split ``items`` into chunks of at most ``chunk_size`` items whose English
    texts together stay under ``token_budget`` tokens. An item larger than the
    budget forms a chunk of its own.
    """
    chunks: List[List[NewKey]] = []
    current: List[NewKey] = []
    current_tokens = 0
    for item in items:
        tokens = count_tokens(item.en, model_name)
        if current and (len(current) >= chunk_size or current_tokens + tokens > token_budget):
            chunks.append(current)
            current, current_tokens = [], 0
        current.append(item)
        current_tokens += tokens
    if current:
        chunks.append(current)
    return chunks


async def backfill_untranslated(
    store: TranslationStore,
    service: BatchTranslationService,
    chunk_size: int = DEFAULT_BACKFILL_CHUNK_SIZE,
    token_budget: int = DEFAULT_BACKFILL_TOKEN_BUDGET,
    client: Optional[AutoTranslateClient] = None,
) -> List[TranslateOutcome]:
    """
    Translate every entry that still has empty target locales.

    Existing translations are never overwritten. Chunks run concurrently,
    bounded by the service's semaphore and rate limiter.
    """
    client = client or AutoTranslateClient(store, service)
    items = untranslated_entries(store.get_all())
    if not items:
        logger.info("Backfill: every entry is fully translated")
        return []

    chunks = chunk_by_budget(items, chunk_size, token_budget, service.model_name)
    logger.info("Backfill: %d key(s) in %d chunk(s)", len(items), len(chunks))
    tasks = [client.translate_and_merge(chunk, fill_only=True) for chunk in chunks]
    outcomes = []
    for coro in tqdm.as_completed(tasks, desc="Backfilling translations", unit="chunk"):
        outcomes.append(await coro)

    failed = [outcome for outcome in outcomes if not outcome.ok]
    if failed:
        logger.warning("Backfill: %d of %d chunk(s) failed", len(failed), len(outcomes))
    return outcomes
