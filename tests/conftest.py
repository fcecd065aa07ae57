import json
import os
from unittest.mock import AsyncMock, MagicMock

import pytest

from live_i18n.store import TranslationStore


@pytest.fixture
def store_paths(tmp_path):
    """Snapshot and version file locations inside a per-test directory."""
    snapshot_path = os.path.join(tmp_path, "data", "localizations.json")
    return {"snapshot": snapshot_path, "version": f"{snapshot_path}.version"}


@pytest.fixture
def store(store_paths):
    """An open, seeded store that is closed after the test."""
    translation_store = TranslationStore(store_paths["snapshot"], store_paths["version"]).open()
    yield translation_store
    translation_store.close()


@pytest.fixture
def empty_store(store_paths):
    translation_store = TranslationStore(store_paths["snapshot"], store_paths["version"], seed=False).open()
    yield translation_store
    translation_store.close()


def make_chat_response(content):
    """Shape of an AsyncOpenAI chat completion, reduced to what the service reads."""
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


@pytest.fixture
def mock_openai_client():
    """AsyncOpenAI stand-in; ``.respond(reply)`` sets the reply to a dict (sent as JSON) or a raw string."""
    client = MagicMock()

    def respond(reply):
        content = reply if isinstance(reply, str) else json.dumps(reply, ensure_ascii=False)
        client.chat.completions.create = AsyncMock(return_value=make_chat_response(content))

    client.respond = respond
    respond({})
    return client


SIGNUP_COMPONENT = """import React from 'react';

export default function SignupCard({ onSubmit }) {
  const [email, setEmail] = useState('');
  return (
    <div className="card">
      <h2>{'Join our newsletter'}</h2>
      <button onClick={onSubmit}>{"Sign up free"}</button>
      <a href="https://example.com/terms">{t('footer.terms_of_service')}</a>
    </div>
  );
}
"""


@pytest.fixture
def signup_component():
    return SIGNUP_COMPONENT
