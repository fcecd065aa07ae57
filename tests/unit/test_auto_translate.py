"""Unit tests for AutoTranslateClient merging, stale-result handling and backfill."""
import asyncio
import os
import tempfile
import unittest
from unittest.mock import AsyncMock, MagicMock

from live_i18n.auto_translate import (
    AutoTranslateClient,
    backfill_untranslated,
    chunk_by_budget,
    untranslated_entries,
)
from live_i18n.errors import TranslationParseError, TranslationTransportError
from live_i18n.models import LocalizationEntry, NewKey, TranslationBatch
from live_i18n.store import TranslationStore


def _batch(**locales):
    return TranslationBatch({locale: dict(values) for locale, values in locales.items()})


class AutoTranslateTestCase(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = TranslationStore(os.path.join(self.tmp.name, "localizations.json")).open()
        self.service = MagicMock()
        self.service.model_name = "gpt-4o-mini"
        self.service.translate = AsyncMock()
        self.client = AutoTranslateClient(self.store, self.service)

    async def asyncTearDown(self):
        self.store.close()
        self.tmp.cleanup()

    def _create(self, key, en, **locales):
        self.store.create(LocalizationEntry(id="", key=key, en=en, **locales))


class TestTranslateAndMerge(AutoTranslateTestCase):

    async def test_successful_merge_fills_only_answered_locales(self):
        self._create("auto.sign.up.free", "Sign up free")
        self.service.translate.return_value = _batch(es={"Sign up free": "Regístrate gratis"},
                                                     fr={"Sign up free": ""})

        outcome = await self.client.translate_and_merge([NewKey("auto.sign.up.free", "Sign up free")])

        entry = self.store.get_by_key("auto.sign.up.free")
        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.merged, 1)
        self.assertEqual(entry.es, "Regístrate gratis")
        self.assertEqual((entry.fr, entry.de, entry.ja, entry.zh), ("", "", "", ""))

    async def test_merge_bumps_version_and_notifies(self):
        self._create("auto.hello", "Hello")
        self.service.translate.return_value = _batch(de={"Hello": "Hallo"})
        seen = []
        self.store.add_mutation_hook(seen.append)

        await self.client.translate_and_merge([NewKey("auto.hello", "Hello")])

        self.assertGreaterEqual(len(seen), 2)
        self.assertEqual(seen[-1], self.store.version)

    async def test_merge_matches_exact_english_text(self):
        self._create("auto.hello", "Hello")
        self.service.translate.return_value = _batch(es={"hello": "hola"})

        outcome = await self.client.translate_and_merge([NewKey("auto.hello", "Hello")])

        self.assertEqual(outcome.merged, 0)
        self.assertEqual(self.store.get_by_key("auto.hello").es, "")

    async def test_transport_failure_is_reported_not_raised(self):
        self._create("auto.hello", "Hello")
        version = self.store.version
        self.service.translate.side_effect = TranslationTransportError("APIConnectionError: down")

        outcome = await self.client.translate_and_merge([NewKey("auto.hello", "Hello")])

        self.assertFalse(outcome.ok)
        self.assertIn("down", outcome.warning)
        self.assertEqual(self.store.version, version)
        self.service.translate.assert_awaited_once()

    async def test_parse_failure_is_reported_not_raised(self):
        self._create("auto.hello", "Hello")
        self.service.translate.side_effect = TranslationParseError("bad", raw_excerpt="oops", details="Expecting value")

        outcome = await self.client.translate_and_merge([NewKey("auto.hello", "Hello")])

        self.assertFalse(outcome.ok)
        self.assertIn("Expecting value", outcome.warning)

    async def test_deleted_key_is_skipped(self):
        self.service.translate.return_value = _batch(es={"Gone": "Ido"})
        outcome = await self.client.translate_and_merge([NewKey("auto.gone", "Gone")])
        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.merged, 0)


class TestOverlappingOperations(AutoTranslateTestCase):

    async def test_stale_result_never_overwrites_newer_merge(self):
        self._create("auto.get.started", "Get started")
        key = [NewKey("auto.get.started", "Get started")]
        release_first = asyncio.Event()

        async def slow_then_fast(items):
            if not release_first.is_set() and self.service.translate.await_count == 1:
                await release_first.wait()
                return _batch(es={"Get started": "Empieza (old)"}, fr={"Get started": "Commencer"})
            return _batch(es={"Get started": "Comenzar"})

        self.service.translate.side_effect = slow_then_fast

        first = self.client.schedule(key)
        await asyncio.sleep(0)
        second = self.client.schedule(key)
        newer = await second
        release_first.set()
        older = await first

        entry = self.store.get_by_key("auto.get.started")
        self.assertFalse(newer.stale)
        self.assertTrue(older.stale)
        self.assertEqual(entry.es, "Comenzar")
        self.assertEqual(entry.fr, "Commencer")
        self.assertLess(older.sequence, newer.sequence)

    async def test_wait_idle_collects_outcomes(self):
        self._create("auto.hello", "Hello")
        self.service.translate.return_value = _batch(es={"Hello": "Hola"})

        self.client.schedule([NewKey("auto.hello", "Hello")])
        outcomes = await self.client.wait_idle()

        self.assertEqual(len(outcomes), 1)
        self.assertEqual(self.client.pending_tasks, 0)

    async def test_schedule_without_keys(self):
        self.assertIsNone(self.client.schedule([]))


class TestBackfill(AutoTranslateTestCase):

    async def test_backfill_fills_missing_locales_only(self):
        self._create("auto.pricing", "Pricing", es="Precios (curated)")
        self.service.translate.return_value = _batch(
            es={"Pricing": "Precios"}, fr={"Pricing": "Tarifs"}, de={"Pricing": "Preise"},
            ja={"Pricing": "料金"}, zh={"Pricing": "价格"})

        outcomes = await backfill_untranslated(self.store, self.service, chunk_size=10, token_budget=1000)

        entry = self.store.get_by_key("auto.pricing")
        self.assertEqual(len(outcomes), 1)
        self.assertEqual(entry.es, "Precios (curated)")
        self.assertEqual(entry.fr, "Tarifs")
        self.assertEqual(entry.zh, "价格")
        sent = self.service.translate.call_args.args[0]
        self.assertEqual([item.key for item in sent], ["auto.pricing"])

    async def test_backfill_with_nothing_to_do(self):
        outcomes = await backfill_untranslated(self.store, self.service)
        self.assertEqual(outcomes, [])
        self.service.translate.assert_not_awaited()


def test_untranslated_entries_skips_complete_and_english_less():
    complete = LocalizationEntry(id="1", key="a.done", en="Done", es="x", fr="x", de="x", ja="x", zh="x")
    partial = LocalizationEntry(id="2", key="a.partial", en="Partial", es="x")
    blank = LocalizationEntry(id="3", key="a.blank", en="  ")

    assert untranslated_entries([complete, partial, blank]) == [NewKey("a.partial", "Partial")]


def test_chunk_by_budget_respects_count_and_tokens():
    items = [NewKey(f"k.n{i}", "word " * 10) for i in range(5)]

    by_count = chunk_by_budget(items, chunk_size=2, token_budget=10_000, model_name="gpt-4o-mini")
    assert [len(chunk) for chunk in by_count] == [2, 2, 1]

    oversized = chunk_by_budget(items[:2], chunk_size=10, token_budget=1, model_name="gpt-4o-mini")
    assert [len(chunk) for chunk in oversized] == [1, 1]
