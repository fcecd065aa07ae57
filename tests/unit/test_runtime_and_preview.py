"""Unit tests for runtime fallback resolution and the preview bundle."""
import json

import pytest

from live_i18n.errors import UnsupportedLocaleError
from live_i18n.preview import (
    APP_FILE,
    COMPONENT_FILE,
    build_preview_bundle,
    demo_children,
    prepare_component_source,
)
from live_i18n.runtime import build_runtime_preamble, derive_label, resolve_fallback

CURRENT = {"button.submit": "Enviar", "auto.sign.up.free": ""}
ENGLISH = {"button.submit": "Submit", "auto.sign.up.free": "Sign up free"}


class TestResolveFallback:

    def test_current_locale_first(self):
        assert resolve_fallback("button.submit", CURRENT, ENGLISH) == "Enviar"

    def test_english_when_current_is_empty(self):
        assert resolve_fallback("auto.sign.up.free", CURRENT, ENGLISH) == "Sign up free"

    def test_derived_label_for_unknown_dotted_key(self):
        assert resolve_fallback("profile.first_name", CURRENT, ENGLISH) == "First name"

    def test_key_itself_otherwise(self):
        assert resolve_fallback("Plain text", CURRENT, ENGLISH) == "Plain text"
        assert resolve_fallback("9lives.x", CURRENT, ENGLISH) == "9lives.x"

    @pytest.mark.parametrize("key", ["", None, "a.", ".b", "a..b", "a.b-c"])
    def test_total_for_odd_input(self, key):
        result = resolve_fallback(key, None, None)
        assert isinstance(result, str)

    def test_derive_label(self):
        assert derive_label("navigation.toggleMenu") == "ToggleMenu"
        assert derive_label("form.email_address") == "Email address"


class TestRuntimePreamble:

    def test_tables_are_embedded_as_json(self):
        preamble = build_runtime_preamble({"greeting.hello": "こんにちは"}, {"greeting.hello": "Hello"})

        assert 'const __TX = {"greeting.hello": "こんにちは"};' in preamble
        assert 'const __EN = {"greeting.hello": "Hello"};' in preamble
        assert "function i18n(key)" in preamble

    def test_values_with_quotes_and_script_tags_stay_valid_json(self):
        value = "He said \"hi\" </script>'"
        preamble = build_runtime_preamble({"x.y": value}, {})
        table_line = next(line for line in preamble.splitlines() if line.startswith("const __TX"))
        payload = table_line[len("const __TX = "):-1]
        assert json.loads(payload) == {"x.y": value}

    def test_line_separators_are_escaped(self):
        preamble = build_runtime_preamble({"x.y": "a\u2028b"}, {})
        assert "\u2028" not in preamble
        assert "\\u2028" in preamble


class TestPrepareComponentSource:

    def test_adds_react_import(self):
        code = "export default function A() { return null; }"
        assert prepare_component_source(code).startswith("import React from 'react';\n")

    def test_adds_missing_hooks(self):
        code = "export default function A() { const [v] = useState(0); useEffect(() => {}, []); return v; }"
        prepared = prepare_component_source(code)
        assert prepared.startswith("import React, { useState, useEffect } from 'react';")

    def test_keeps_existing_hook_import(self):
        code = "import React, { useState } from 'react';\nfunction A() { useState(1); }"
        assert prepare_component_source(code) == code


class TestPreviewBundle:

    def test_bundle_has_component_and_app_with_preamble(self):
        rewritten = "export default function Cta() { return <button>{i18n('button.submit')}</button>; }"
        bundle = build_preview_bundle(rewritten, CURRENT, ENGLISH, "es", version=7)

        assert set(bundle.files) == {COMPONENT_FILE, APP_FILE}
        assert bundle.version == 7
        assert "import React from 'react';" in bundle.component
        assert "const __TX" in bundle.component
        assert "const __TX" in bundle.app
        assert "locale: 'es'" in bundle.app
        assert "label: i18n('navigation.home')" in bundle.app

    def test_unsupported_locale(self):
        with pytest.raises(UnsupportedLocaleError):
            build_preview_bundle("", {}, {}, "pt")

    def test_children_from_component_default_call(self):
        code = "function B({ children = i18n('auto.get.started') }) {}"
        assert demo_children(code, {}) == "i18n('auto.get.started')"

    def test_children_from_literal_default(self):
        code = "function B({ children = 'Get started' }) {}"
        assert demo_children(code, {"Get started": "auto.get.started"}) == "i18n('auto.get.started')"

    def test_children_default(self):
        assert demo_children("function B() {}", {}) == "i18n('button.click_me')"
