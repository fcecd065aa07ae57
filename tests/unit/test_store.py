"""Unit tests for the translation store."""
import json
import os
from unittest.mock import patch

import pytest

from live_i18n.errors import (
    DuplicateKeyError,
    EntryNotFoundError,
    InvalidFieldError,
    SnapshotFormatError,
    StoreClosedError,
    UnsupportedLocaleError,
)
from live_i18n.models import SEED_ENTRIES, LocalizationEntry
from live_i18n.store import TranslationStore, next_version


def _entry(key, en="", **locales):
    return LocalizationEntry(id="", key=key, en=en, **locales)


class TestLifecycle:

    def test_open_seeds_essential_keys_and_persists(self, store, store_paths):
        assert store.has_key("navigation.home")
        assert store.has_key("button.submit")
        assert len(store.get_all()) == len(SEED_ENTRIES)

        with open(store_paths["snapshot"], encoding="utf-8") as snapshot_file:
            payload = json.load(snapshot_file)
        assert payload["version"] == store.version
        assert {item["key"] for item in payload["entries"]} == {item["key"] for item in SEED_ENTRIES}
        assert store.read_persisted_version() == store.version

    def test_reopen_restores_entries_and_adds_missing_seed_keys(self, store_paths):
        with TranslationStore(store_paths["snapshot"], seed=False) as first:
            first.create(_entry("hero.title", "Welcome"))
            version = first.version

        with TranslationStore(store_paths["snapshot"]) as second:
            assert second.get_by_key("hero.title").en == "Welcome"
            assert second.has_key("navigation.home")
            assert second.version > version

    def test_operations_require_open_store(self, store_paths):
        closed = TranslationStore(store_paths["snapshot"])
        with pytest.raises(StoreClosedError):
            closed.get_all()
        with pytest.raises(StoreClosedError):
            closed.create(_entry("a.b", "A"))

    def test_corrupt_snapshot_raises(self, store_paths):
        os.makedirs(os.path.dirname(store_paths["snapshot"]), exist_ok=True)
        with open(store_paths["snapshot"], "w", encoding="utf-8") as snapshot_file:
            snapshot_file.write("{not json")
        with pytest.raises(SnapshotFormatError):
            TranslationStore(store_paths["snapshot"]).open()

    def test_snapshot_failing_schema_raises(self, store_paths):
        os.makedirs(os.path.dirname(store_paths["snapshot"]), exist_ok=True)
        with open(store_paths["snapshot"], "w", encoding="utf-8") as snapshot_file:
            json.dump({"version": 3, "entries": [{"id": "x"}]}, snapshot_file)
        with pytest.raises(SnapshotFormatError):
            TranslationStore(store_paths["snapshot"]).open()


class TestCreate:

    def test_duplicate_create_is_a_noop(self, store):
        assert store.create(_entry("pricing.cta", "Buy now")) is True
        version = store.version
        assert store.create(_entry("pricing.cta", "Something else")) is False

        assert store.get_by_key("pricing.cta").en == "Buy now"
        assert store.version == version

    def test_create_many_commits_once(self, store):
        versions = []
        store.add_mutation_hook(versions.append)

        inserted = store.create_many([_entry("a.one", "One"), _entry("a.two", "Two"), _entry("a.one", "Again")])

        assert [entry.key for entry in inserted] == ["a.one", "a.two"]
        assert len(versions) == 1
        assert all(entry.id for entry in inserted)
        assert all(entry.created_at and entry.updated_at for entry in inserted)


class TestUpdate:

    def test_update_by_key_is_partial(self, store):
        store.create(_entry("promo.banner", "Big sale", fr="Grande vente", de="Großer Verkauf",
                            ja="大セール", zh="大促销"))

        assert store.update_by_key("promo.banner", {"es": "Gran venta"}) is True

        entry = store.get_by_key("promo.banner")
        assert entry.es == "Gran venta"
        assert entry.fr == "Grande vente"
        assert entry.de == "Großer Verkauf"
        assert entry.ja == "大セール"
        assert entry.zh == "大促销"

    def test_update_by_key_ignores_none_values(self, store):
        assert store.update_by_key("button.submit", {"es": None}) is False
        assert store.get_by_key("button.submit").es == "Enviar"

    def test_update_by_key_unknown_key_returns_false(self, store):
        assert store.update_by_key("missing.key", {"es": "x"}) is False

    def test_update_by_key_rejects_unsupported_locale(self, store):
        with pytest.raises(UnsupportedLocaleError):
            store.update_by_key("button.submit", {"pt": "Enviar"})

    def test_update_rejects_invalid_field(self, store):
        entry = store.get_by_key("button.submit")
        with pytest.raises(InvalidFieldError):
            store.update(entry.id, "created_at", "yesterday")

    def test_update_unknown_id(self, store):
        with pytest.raises(EntryNotFoundError):
            store.update("no-such-id", "en", "x")

    def test_update_renames_key(self, store):
        entry = store.get_by_key("button.next")
        store.update(entry.id, "key", "button.continue")

        assert not store.has_key("button.next")
        assert store.get_by_key("button.continue").en == "Next"

    def test_rename_to_existing_key_fails(self, store):
        entry = store.get_by_key("button.next")
        with pytest.raises(DuplicateKeyError):
            store.update(entry.id, "key", "button.back")


class TestReads:

    def test_get_all_is_ordered_by_key_and_detached(self, store):
        entries = store.get_all()
        assert [entry.key for entry in entries] == sorted(entry.key for entry in entries)

        entries[0].en = "mutated"
        assert store.get_all()[0].en != "mutated"

    def test_get_translations(self, store):
        store.create(_entry("auto.fresh", "Fresh"))
        spanish = store.get_translations("es")

        assert spanish["button.submit"] == "Enviar"
        assert spanish["auto.fresh"] == ""

    def test_get_translations_rejects_unsupported_locale(self, store):
        with pytest.raises(UnsupportedLocaleError):
            store.get_translations("pt")


class TestVersioning:

    def test_every_mutation_increments_version(self, store):
        seen = [store.version]
        store.create(_entry("v.one", "One"))
        seen.append(store.version)
        entry = store.get_by_key("v.one")
        store.update(entry.id, "es", "Uno")
        seen.append(store.version)
        store.update_by_key("v.one", {"fr": "Un"})
        seen.append(store.version)
        store.delete(entry.id)
        seen.append(store.version)
        store.touch()
        seen.append(store.version)

        assert seen == sorted(seen)
        assert len(set(seen)) == len(seen)

    def test_next_version_is_strictly_increasing(self):
        future = 10 ** 15
        assert next_version(future) == future + 1

    def test_delete_unknown_id(self, store):
        with pytest.raises(EntryNotFoundError):
            store.delete("no-such-id")


class TestPersistenceFailure:

    def test_failed_save_keeps_memory_state(self, store):
        with patch("live_i18n.store._atomic_write", side_effect=OSError("disk full")):
            store.create(_entry("offline.key", "Offline"))

        assert store.has_unsaved_changes
        assert store.get_by_key("offline.key").en == "Offline"

        store.touch()
        assert not store.has_unsaved_changes


class TestCrossProcess:

    def test_sync_from_disk_picks_up_other_writer(self, store_paths):
        with TranslationStore(store_paths["snapshot"]) as reader:
            with TranslationStore(store_paths["snapshot"]) as writer:
                writer.update_by_key("button.save", {"es": "Guardar cambios"})

                assert reader.get_by_key("button.save").es == "Guardar"
                assert reader.sync_from_disk() is True
                assert reader.get_by_key("button.save").es == "Guardar cambios"
                assert reader.sync_from_disk() is False
