"""Exception hierarchy shared by the store, the rewrite pipeline and the translation service."""
from typing import Optional


class LiveI18nError(Exception):
    """Base class for every error raised by this package."""


class UnsupportedLocaleError(LiveI18nError, ValueError):
    def __init__(self, locale: str):
        super().__init__(f"Invalid locale: {locale}")
        self.locale = locale


class InvalidFieldError(LiveI18nError, ValueError):
    def __init__(self, field: str):
        super().__init__(f"Invalid field: {field}")
        self.field = field


class EntryNotFoundError(LiveI18nError, KeyError):
    def __init__(self, entry_id: str):
        super().__init__(entry_id)
        self.entry_id = entry_id

    def __str__(self) -> str:
        return f"No localization entry with id '{self.entry_id}'"


class StoreClosedError(LiveI18nError, RuntimeError):
    """Raised when a store operation is attempted before open() or after close()."""


class TranslationServiceError(LiveI18nError):
    """Base class for failures of the batch translation service."""


class InvalidTranslationRequestError(TranslationServiceError, ValueError):
    """The request payload does not carry a non-empty translations array."""


class TranslationTransportError(TranslationServiceError):
    """The provider could not be reached or answered with an API error."""


class TranslationParseError(TranslationServiceError):
    """
    The provider answered, but no usable JSON object could be read from the reply.

    ``raw_excerpt`` holds the first characters of the raw reply for diagnosis.
    """

    def __init__(self, message: str, raw_excerpt: str = "", details: Optional[str] = None):
        super().__init__(message)
        self.raw_excerpt = raw_excerpt
        self.details = details


class DuplicateKeyError(LiveI18nError, ValueError):
    """Renaming an entry to a key another entry already owns."""

    def __init__(self, key: str):
        super().__init__(f"Localization key already exists: {key}")
        self.key = key


class SnapshotFormatError(LiveI18nError):
    """The persisted snapshot exists but cannot be decoded or fails schema validation."""
