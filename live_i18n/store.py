"""
Persisted key -> per-locale table.

The whole table is serialized as one JSON snapshot and replaced atomically on
every mutation, next to a small version file that observers in other
processes poll. A reader of the files therefore sees either the state before
a mutation or the state after it, never a mix.
"""
import json
import os
import tempfile
import time
import uuid
from typing import Callable, Dict, Iterable, List, Mapping, Optional

import jsonschema

from live_i18n.errors import (
    DuplicateKeyError,
    EntryNotFoundError,
    InvalidFieldError,
    SnapshotFormatError,
    StoreClosedError,
)
from live_i18n.logging_config import get_logger
from live_i18n.models import (
    SEED_ENTRIES,
    SUPPORTED_LOCALES,
    UPDATABLE_FIELDS,
    LocalizationEntry,
    utc_timestamp,
    validate_locale,
)

logger = get_logger("store")

SNAPSHOT_FORMAT = 1

_ENTRY_SCHEMA = {
    "type": "object",
    "required": ["id", "key"],
    "properties": {
        "id": {"type": "string"},
        "key": {"type": "string", "minLength": 1},
        **{code: {"type": ["string", "null"]} for code in SUPPORTED_LOCALES},
        "created_at": {"type": ["string", "null"]},
        "updated_at": {"type": ["string", "null"]},
    },
}

SNAPSHOT_SCHEMA = {
    "type": "object",
    "required": ["version", "entries"],
    "properties": {
        "format": {"type": "integer"},
        "version": {"type": "integer", "minimum": 0},
        "entries": {"type": "array", "items": _ENTRY_SCHEMA},
    },
}

MutationHook = Callable[[int], None]


def generate_entry_id() -> str:
    return uuid.uuid4().hex


def next_version(previous: int) -> int:
    """Timestamp-based version marker, forced strictly above ``previous``."""
    return max(time.time_ns() // 1_000_000, previous + 1)


def _atomic_write(path: str, content: str) -> None:
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    temp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode='w', delete=False, dir=directory, prefix='.tmp-', suffix='.json', encoding='utf-8'
        ) as temp_f:
            temp_path = temp_f.name
            temp_f.write(content)
            temp_f.flush()
            os.fsync(temp_f.fileno())
        os.replace(temp_path, path)
        temp_path = None
    finally:
        if temp_path and os.path.exists(temp_path):
            os.remove(temp_path)


class TranslationStore:
    """
    Owner of every LocalizationEntry and of the version marker.

    The store is an explicit handle: construct it once, call ``open()`` (or use
    it as a context manager) and pass it to whatever needs it. Operations on a
    store that is not open raise StoreClosedError.

    Args:
        snapshot_path: File holding the serialized table.
        version_path: File holding the version marker. Defaults to
            ``<snapshot_path>.version``.
        seed: Whether to add the essential navigation/button keys on open.
    """

    def __init__(self, snapshot_path: str, version_path: Optional[str] = None, seed: bool = True):
        self.snapshot_path = snapshot_path
        self.version_path = version_path or f"{snapshot_path}.version"
        self.seed = seed
        self._entries: Dict[str, LocalizationEntry] = {}
        self._ids_by_key: Dict[str, str] = {}
        self._version = 0
        self._open = False
        self._unsaved = False
        self._hooks: List[MutationHook] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def open(self) -> "TranslationStore":
        if self._open:
            return self
        if os.path.exists(self.snapshot_path):
            self._load_snapshot()
            logger.info("Loaded %d localization entries from '%s'", len(self._entries), self.snapshot_path)
        else:
            logger.info("No snapshot at '%s'; creating a new store", self.snapshot_path)
        self._open = True

        if self.seed:
            seeded = [
                self._build_entry(item) for item in SEED_ENTRIES
                if item["key"] not in self._ids_by_key
            ]
            if seeded:
                for entry in seeded:
                    if entry.id in self._entries:
                        entry.id = generate_entry_id()
                    self._insert(entry)
                logger.info("Seeded %d essential localization keys", len(seeded))
        # The version marker is created (or advanced) on initialization.
        self._commit()
        return self

    def close(self) -> None:
        if not self._open:
            return
        if self._unsaved:
            logger.warning("Closing store with unsaved changes; retrying save of '%s'", self.snapshot_path)
            self._save()
        self._open = False
        self._entries.clear()
        self._ids_by_key.clear()

    def __enter__(self) -> "TranslationStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def version(self) -> int:
        return self._version

    @property
    def has_unsaved_changes(self) -> bool:
        return self._unsaved

    def add_mutation_hook(self, hook: MutationHook) -> None:
        """Register a callable invoked with the new version after every mutation."""
        self._hooks.append(hook)

    def remove_mutation_hook(self, hook: MutationHook) -> None:
        if hook in self._hooks:
            self._hooks.remove(hook)

    # ------------------------------------------------------------------
    # Cross-process view
    # ------------------------------------------------------------------
    def read_persisted_version(self) -> Optional[int]:
        """Return the version marker currently on disk, or None if unreadable."""
        try:
            with open(self.version_path, 'r', encoding='utf-8') as version_file:
                return int(version_file.read().strip())
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.warning("Could not read version marker '%s': %s", self.version_path, exc)
            return None

    def sync_from_disk(self) -> bool:
        """
        Reload the snapshot if another process persisted a newer version.

        Returns:
            True if the in-memory table was replaced.
        """
        self._require_open()
        persisted = self.read_persisted_version()
        if persisted is None or persisted <= self._version:
            return False
        try:
            self._load_snapshot()
        except SnapshotFormatError:
            logger.exception("Ignoring unreadable snapshot written by another process")
            return False
        # The version file may run ahead of the snapshot's embedded marker.
        self._version = max(self._version, persisted)
        logger.debug("Reloaded store at version %d", self._version)
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_all(self) -> List[LocalizationEntry]:
        """Snapshot of every entry, ordered by key."""
        self._require_open()
        return [self._copy(entry) for entry in sorted(self._entries.values(), key=lambda e: e.key)]

    def get(self, entry_id: str) -> Optional[LocalizationEntry]:
        self._require_open()
        entry = self._entries.get(entry_id)
        return self._copy(entry) if entry else None

    def get_by_key(self, key: str) -> Optional[LocalizationEntry]:
        self._require_open()
        entry_id = self._ids_by_key.get(key)
        return self._copy(self._entries[entry_id]) if entry_id else None

    def has_key(self, key: str) -> bool:
        self._require_open()
        return key in self._ids_by_key

    def keys(self) -> List[str]:
        self._require_open()
        return sorted(self._ids_by_key)

    def get_translations(self, locale: str) -> Dict[str, str]:
        """Return key -> value for one locale. Untranslated keys map to ''."""
        validate_locale(locale)
        self._require_open()
        return {entry.key: getattr(entry, locale) or "" for entry in self._entries.values()}

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def create(self, entry: LocalizationEntry) -> bool:
        """
        Insert ``entry`` unless its key already exists.

        A duplicate key is silently ignored so that two rewrite passes that
        independently minted the same key do not fail each other.

        Returns:
            True if the entry was inserted.
        """
        return bool(self.create_many([entry]))

    def create_many(self, entries: Iterable[LocalizationEntry]) -> List[LocalizationEntry]:
        """Idempotently insert several entries as a single mutation. Returns the inserted ones."""
        self._require_open()
        inserted = []
        for entry in entries:
            if entry.key in self._ids_by_key:
                logger.debug("Key '%s' already exists; create ignored", entry.key)
                continue
            new_entry = self._copy(entry)
            if not new_entry.id or new_entry.id in self._entries:
                new_entry.id = generate_entry_id()
            now = utc_timestamp()
            new_entry.created_at = new_entry.created_at or now
            new_entry.updated_at = now
            self._insert(new_entry)
            inserted.append(self._copy(new_entry))
        if inserted:
            self._commit()
            logger.info("Created %d localization entr%s", len(inserted), "y" if len(inserted) == 1 else "ies")
        return inserted

    def update(self, entry_id: str, field: str, value: str) -> None:
        """Set one field of one entry. ``field`` must be 'key' or a supported locale."""
        if field not in UPDATABLE_FIELDS:
            raise InvalidFieldError(field)
        self._require_open()
        entry = self._entries.get(entry_id)
        if entry is None:
            raise EntryNotFoundError(entry_id)

        if field == "key":
            owner = self._ids_by_key.get(value)
            if owner is not None and owner != entry_id:
                raise DuplicateKeyError(value)
            del self._ids_by_key[entry.key]
            self._ids_by_key[value] = entry_id
        setattr(entry, field, value)
        entry.updated_at = utc_timestamp()
        self._commit()

    def update_by_key(self, key: str, values: Mapping[str, Optional[str]]) -> bool:
        """
        Update only the locale fields present in ``values``.

        Fields that are absent (or given as None) are left untouched, so a
        partial provider answer never erases earlier translations.

        Returns:
            True if an entry was changed.
        """
        provided = {}
        for locale, value in values.items():
            validate_locale(locale)
            if value is not None:
                provided[locale] = value
        self._require_open()

        entry_id = self._ids_by_key.get(key)
        if entry_id is None:
            logger.warning("update_by_key: no entry for key '%s'", key)
            return False
        if not provided:
            return False

        entry = self._entries[entry_id]
        for locale, value in provided.items():
            setattr(entry, locale, value)
        entry.updated_at = utc_timestamp()
        self._commit()
        return True

    def delete(self, entry_id: str) -> None:
        self._require_open()
        entry = self._entries.pop(entry_id, None)
        if entry is None:
            raise EntryNotFoundError(entry_id)
        del self._ids_by_key[entry.key]
        self._commit()

    def touch(self) -> int:
        """Advance the version marker without changing data, forcing observers to re-fetch."""
        self._require_open()
        self._commit()
        return self._version

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _require_open(self) -> None:
        if not self._open:
            raise StoreClosedError("Translation store is not open")

    @staticmethod
    def _copy(entry: LocalizationEntry) -> LocalizationEntry:
        return LocalizationEntry.from_dict(entry.to_dict())

    @staticmethod
    def _build_entry(item: Mapping[str, str]) -> LocalizationEntry:
        now = utc_timestamp()
        entry = LocalizationEntry.from_dict(dict(item))
        entry.created_at = now
        entry.updated_at = now
        return entry

    def _insert(self, entry: LocalizationEntry) -> None:
        self._entries[entry.id] = entry
        self._ids_by_key[entry.key] = entry.id

    def _load_snapshot(self) -> None:
        try:
            with open(self.snapshot_path, 'r', encoding='utf-8') as snapshot_file:
                payload = json.load(snapshot_file)
            jsonschema.validate(instance=payload, schema=SNAPSHOT_SCHEMA)
        except json.JSONDecodeError as exc:
            raise SnapshotFormatError(f"Snapshot '{self.snapshot_path}' is not valid JSON: {exc}") from exc
        except jsonschema.ValidationError as exc:
            raise SnapshotFormatError(
                f"Snapshot '{self.snapshot_path}' does not match the expected schema: {exc.message}"
            ) from exc

        entries: Dict[str, LocalizationEntry] = {}
        ids_by_key: Dict[str, str] = {}
        for item in payload["entries"]:
            entry = LocalizationEntry.from_dict(item)
            if entry.key in ids_by_key:
                logger.warning("Snapshot holds duplicate key '%s'; keeping the first entry", entry.key)
                continue
            entries[entry.id] = entry
            ids_by_key[entry.key] = entry.id
        self._entries = entries
        self._ids_by_key = ids_by_key
        self._version = max(self._version, payload["version"])

    def _commit(self) -> None:
        self._version = next_version(self._version)
        self._save()
        for hook in list(self._hooks):
            try:
                hook(self._version)
            except Exception:
                logger.exception("Mutation hook %r failed", hook)

    def _save(self) -> None:
        payload = {
            "format": SNAPSHOT_FORMAT,
            "version": self._version,
            "entries": [entry.to_dict() for entry in sorted(self._entries.values(), key=lambda e: e.key)],
        }
        try:
            _atomic_write(self.snapshot_path, json.dumps(payload, ensure_ascii=False, indent=2))
            _atomic_write(self.version_path, str(self._version))
        except (OSError, TypeError, ValueError) as exc:
            # State stays correct in memory; it becomes durable on the next successful save.
            self._unsaved = True
            logger.error("Failed to persist localization store to '%s': %s", self.snapshot_path, exc)
            return
        self._unsaved = False
