"""Builds the files handed to the sandboxed renderer and keeps them fresh as the store changes."""
import re
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional

from live_i18n.logging_config import get_logger
from live_i18n.models import SOURCE_LOCALE, validate_locale
from live_i18n.rewriter import canonical_call
from live_i18n.runtime import build_runtime_preamble
from live_i18n.store import TranslationStore
from live_i18n.sync import SyncBroadcaster

logger = get_logger("preview")

COMPONENT_FILE = "/Component.js"
APP_FILE = "/App.js"
DEFAULT_CHILDREN_KEY = "button.click_me"
REACT_IMPORT = "import React from 'react';"
HOOK_NAMES = ("useState", "useEffect")

_CHILDREN_CALL_RE = re.compile(r"children\s*[:=]\s*((?:__i18n|i18n)\(['\"][^'\"]+['\"]\))")
_CHILDREN_LITERAL_RE = re.compile(r"children\s*[:=]\s*['\"]([^'\"]+)['\"]")

_APP_TEMPLATE = """import React from 'react';
import Component from './Component';

export default function App() {{
  const demoProps = {{
    items: [
      {{ label: {home}, href: '#home' }},
      {{ label: {about}, href: '#about' }},
      {{ label: {services}, href: '#services' }},
      {{ label: {contact}, href: '#contact' }}
    ],
    children: {children},
    onClick: () => console.log('Button clicked!'),
    title: {title},
    description: {description},
    placeholder: {placeholder},
    text: {text},
    name: {name},
    value: {value},
    locale: '{locale}'
  }};

  try {{
    return (
      <div style={{{{ padding: '20px', fontFamily: 'system-ui, sans-serif' }}}}>
        <Component {{...demoProps}} />
      </div>
    );
  }} catch (error) {{
    return (
      <div style={{{{ padding: '20px', color: 'red' }}}}>
        <h3>Component Error</h3>
        <pre>{{error.toString()}}</pre>
      </div>
    );
  }}
}}"""


def prepare_component_source(code: str) -> str:
    """Make generated code importable as a module: React import plus any hooks it uses."""
    if "import React" not in code and "import * as React" not in code:
        code = f"{REACT_IMPORT}\n{code}"

    needed = [hook for hook in HOOK_NAMES if hook in code and f"{{ {hook}" not in code]
    if needed and REACT_IMPORT in code:
        code = code.replace(REACT_IMPORT, f"import React, {{ {', '.join(needed)} }} from 'react';", 1)
    return code


def demo_children(rewritten: str, text_keys: Mapping[str, str]) -> str:
    """Expression for the demo ``children`` prop, reusing the component's own default when it has one."""
    match = _CHILDREN_CALL_RE.search(rewritten)
    if match:
        return match.group(1)
    match = _CHILDREN_LITERAL_RE.search(rewritten)
    if match and match.group(1) in text_keys:
        return canonical_call(text_keys[match.group(1)])
    return canonical_call(DEFAULT_CHILDREN_KEY)


def build_demo_app(children: str, locale: str) -> str:
    return _APP_TEMPLATE.format(
        home=canonical_call("navigation.home"),
        about=canonical_call("navigation.about"),
        services=canonical_call("navigation.services"),
        contact=canonical_call("navigation.contact"),
        children=children,
        title=canonical_call("profile.title"),
        description=canonical_call("profile.description"),
        placeholder=canonical_call("form.placeholder"),
        text=canonical_call("demo.text"),
        name=canonical_call("demo.name"),
        value=canonical_call("demo.value"),
        locale=locale,
    )


@dataclass
class PreviewBundle:
    locale: str
    version: int
    files: Dict[str, str]

    @property
    def component(self) -> str:
        return self.files[COMPONENT_FILE]

    @property
    def app(self) -> str:
        return self.files[APP_FILE]


def build_preview_bundle(
    rewritten: str,
    current_map: Mapping[str, str],
    english_map: Mapping[str, str],
    locale: str,
    text_keys: Optional[Mapping[str, str]] = None,
    version: int = 0,
) -> PreviewBundle:
    """
    Assemble the component and demo app files, each followed by the runtime preamble.

    Args:
        rewritten: Component source after the rewrite passes.
        current_map: key -> value for ``locale``.
        english_map: key -> English value.
        locale: Active locale code.
        text_keys: English text -> key, used to map a literal ``children`` default.
        version: Store version the tables were read at.
    """
    validate_locale(locale)
    preamble = build_runtime_preamble(current_map, english_map)
    component = prepare_component_source(rewritten)
    app = build_demo_app(demo_children(component, text_keys or {}), locale)
    return PreviewBundle(
        locale=locale,
        version=version,
        files={COMPONENT_FILE: component + preamble, APP_FILE: app + preamble},
    )


class PreviewRefresher:
    """
    Rebuilds the preview bundle whenever the broadcaster reports a new store
    version or the active locale changes. Each rebuild re-reads the full
    current-locale and English tables from the store.
    """

    def __init__(
        self,
        store: TranslationStore,
        broadcaster: SyncBroadcaster,
        rewritten: str,
        locale: str = SOURCE_LOCALE,
        text_keys: Optional[Mapping[str, str]] = None,
        on_update: Optional[Callable[[PreviewBundle], None]] = None,
    ):
        self.store = store
        self.broadcaster = broadcaster
        self.rewritten = rewritten
        self.locale = validate_locale(locale)
        self.text_keys = dict(text_keys or {})
        self.on_update = on_update
        self.bundle: Optional[PreviewBundle] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    def attach(self) -> PreviewBundle:
        if self._unsubscribe is None:
            self._unsubscribe = self.broadcaster.subscribe(self._on_version)
        return self.refresh()

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def set_locale(self, locale: str) -> PreviewBundle:
        self.locale = validate_locale(locale)
        return self.refresh()

    def set_source(self, rewritten: str, text_keys: Optional[Mapping[str, str]] = None) -> PreviewBundle:
        self.rewritten = rewritten
        if text_keys is not None:
            self.text_keys = dict(text_keys)
        return self.refresh()

    def refresh(self) -> PreviewBundle:
        self.bundle = build_preview_bundle(
            self.rewritten,
            self.store.get_translations(self.locale),
            self.store.get_translations(SOURCE_LOCALE),
            self.locale,
            text_keys=self.text_keys,
            version=self.store.version,
        )
        logger.debug("Preview rebuilt for locale '%s' at version %d", self.locale, self.bundle.version)
        if self.on_update is not None:
            self.on_update(self.bundle)
        return self.bundle

    def _on_version(self, version: int) -> None:
        self.refresh()
