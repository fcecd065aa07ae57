"""Data model shared by every component: locales, entries, aliases and seed data."""
import re
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Dict, List, Optional

from live_i18n.errors import UnsupportedLocaleError

SUPPORTED_LOCALES = ("en", "es", "fr", "de", "ja", "zh")
SOURCE_LOCALE = "en"
TARGET_LOCALES = tuple(code for code in SUPPORTED_LOCALES if code != SOURCE_LOCALE)

# Fields accepted by TranslationStore.update(); anything else is rejected.
UPDATABLE_FIELDS = ("key",) + SUPPORTED_LOCALES

DEFAULT_LOCALE_NAMES: Dict[str, str] = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "ja": "Japanese",
    "zh": "Chinese",
}

# A quoted string of this shape is treated as a translation key reference.
KEY_LIKE_PATTERN = r"[A-Za-z]+(?:\.[A-Za-z0-9_]+)+"
KEY_LIKE_RE = re.compile(rf"^{KEY_LIKE_PATTERN}$")

# Synonym text (lower-cased) -> canonical key.
TEXT_ALIASES: Dict[str, str] = {
    "home": "navigation.home",
    "about": "navigation.about",
    "services": "navigation.services",
    "contact": "navigation.contact",
}

# Legacy key -> canonical key.
KEY_ALIASES: Dict[str, str] = {
    "social.home": "navigation.home",
    "social.about": "navigation.about",
    "social.services": "navigation.services",
    "social.contact": "navigation.contact",
}


def validate_locale(locale: str) -> str:
    """Return ``locale`` unchanged if it is supported, otherwise raise UnsupportedLocaleError."""
    if locale not in SUPPORTED_LOCALES:
        raise UnsupportedLocaleError(locale)
    return locale


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def is_key_like(value: str) -> bool:
    return bool(KEY_LIKE_RE.match(value))


@dataclass
class LocalizationEntry:
    """One translation key with a string per supported locale. Empty means untranslated."""
    id: str
    key: str
    en: str = ""
    es: str = ""
    fr: str = ""
    de: str = ""
    ja: str = ""
    zh: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def value_for(self, locale: str) -> str:
        return getattr(self, validate_locale(locale)) or ""

    def missing_locales(self) -> List[str]:
        """Target locales that still have no translation."""
        return [code for code in TARGET_LOCALES if not getattr(self, code)]

    def to_dict(self) -> Dict[str, Optional[str]]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Optional[str]]) -> "LocalizationEntry":
        values = {code: data.get(code) or "" for code in SUPPORTED_LOCALES}
        return cls(
            id=str(data["id"]),
            key=str(data["key"]),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
            **values,
        )


@dataclass(frozen=True)
class NewKey:
    """A key minted (or discovered) during one rewrite, waiting for persistence and translation."""
    key: str
    en: str

    def to_request_item(self) -> Dict[str, str]:
        return {"key": self.key, "en": self.en}


@dataclass
class Resolution:
    key: str
    is_new: bool = False


@dataclass
class TranslationBatch:
    """Parsed provider answer: locale -> {english text: translated text}."""
    translations: Dict[str, Dict[str, str]] = field(default_factory=dict)

    def lookup(self, locale: str, english_text: str) -> str:
        return self.translations.get(locale, {}).get(english_text) or ""


SEED_ENTRIES: List[Dict[str, str]] = [
    {"id": "nav-1", "key": "navigation.home", "en": "Home", "es": "Inicio", "fr": "Accueil",
     "de": "Startseite", "ja": "ホーム", "zh": "首页"},
    {"id": "nav-2", "key": "navigation.about", "en": "About", "es": "Acerca de", "fr": "À propos",
     "de": "Über uns", "ja": "概要", "zh": "关于我们"},
    {"id": "nav-3", "key": "navigation.services", "en": "Services", "es": "Servicios", "fr": "Services",
     "de": "Leistungen", "ja": "サービス", "zh": "服务"},
    {"id": "nav-4", "key": "navigation.contact", "en": "Contact", "es": "Contacto", "fr": "Contact",
     "de": "Kontakt", "ja": "お問い合わせ", "zh": "联系"},
    {"id": "nav-5", "key": "navigation.toggleMenu", "en": "Menu", "es": "Menú", "fr": "Menu",
     "de": "Menü", "ja": "メニュー", "zh": "菜单"},
    {"id": "btn-1", "key": "button.click_me", "en": "Click me", "es": "Haz clic", "fr": "Cliquez-moi",
     "de": "Klick mich", "ja": "クリックしてください", "zh": "点击我"},
    {"id": "btn-2", "key": "button.submit", "en": "Submit", "es": "Enviar", "fr": "Soumettre",
     "de": "Senden", "ja": "送信", "zh": "提交"},
    {"id": "btn-3", "key": "button.cancel", "en": "Cancel", "es": "Cancelar", "fr": "Annuler",
     "de": "Abbrechen", "ja": "キャンセル", "zh": "取消"},
    {"id": "btn-4", "key": "button.save", "en": "Save", "es": "Guardar", "fr": "Enregistrer",
     "de": "Speichern", "ja": "保存", "zh": "保存"},
    {"id": "btn-5", "key": "button.delete", "en": "Delete", "es": "Eliminar", "fr": "Supprimer",
     "de": "Löschen", "ja": "削除", "zh": "删除"},
    {"id": "btn-6", "key": "button.edit", "en": "Edit", "es": "Editar", "fr": "Modifier",
     "de": "Bearbeiten", "ja": "編集", "zh": "编辑"},
    {"id": "btn-7", "key": "button.back", "en": "Back", "es": "Atrás", "fr": "Retour",
     "de": "Zurück", "ja": "戻る", "zh": "返回"},
    {"id": "btn-8", "key": "button.next", "en": "Next", "es": "Siguiente", "fr": "Suivant",
     "de": "Weiter", "ja": "次へ", "zh": "下一步"},
]
