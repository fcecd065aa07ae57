"""
Batch translation service.

One provider call translates every English text of a batch into all target
locales. The reply is free-form model text, so it goes through fence
stripping, balanced-object extraction and schema validation before use.
"""
import asyncio
import json
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import jsonschema
import tiktoken
from aiolimiter import AsyncLimiter
from openai import (
    APIConnectionError,
    APIStatusError,
    RateLimitError,
    APITimeoutError,
    OpenAIError
)
from openai import AsyncOpenAI
from openai.types.chat import (
    ChatCompletionSystemMessageParam,
    ChatCompletionUserMessageParam
)

from live_i18n.errors import (
    InvalidTranslationRequestError,
    TranslationParseError,
    TranslationServiceError,
    TranslationTransportError,
)
from live_i18n.logging_config import get_logger
from live_i18n.models import DEFAULT_LOCALE_NAMES, TARGET_LOCALES, NewKey, TranslationBatch

logger = get_logger("translation_service")

DEFAULT_MODEL_NAME = "gpt-4o-mini"
DEFAULT_TEMPERATURE = 0.3
DEFAULT_TIMEOUT_SECONDS = 60.0
RAW_EXCERPT_LENGTH = 500

# Every target locale maps English text to its translation. Locales may be
# missing from a reply; merge treats them as "no result".
TRANSLATION_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        code: {"type": "object", "additionalProperties": {"type": ["string", "null"]}}
        for code in TARGET_LOCALES
    },
}

TRANSLATION_REQUEST_SCHEMA = {
    "type": "object",
    "required": ["translations"],
    "properties": {
        "translations": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["key", "en"],
                "properties": {
                    "key": {"type": "string", "minLength": 1},
                    "en": {"type": "string"},
                },
            },
        },
    },
}


def count_tokens(text: str, model_name: str = DEFAULT_MODEL_NAME) -> int:
    """Count the number of tokens in ``text`` for ``model_name``.

    ``tiktoken.encoding_for_model`` may need to download model data that is
    not cached, which fails without network access. In that case the ``gpt2``
    encoding bundled with ``tiktoken`` is used, and as a last resort a plain
    whitespace split.
    """

    try:
        encoding = tiktoken.encoding_for_model(model_name)
    except Exception:
        try:
            encoding = tiktoken.get_encoding("gpt2")
        except Exception:
            return len(text.split())

    try:
        return len(encoding.encode(text))
    except Exception:
        return len(text.split())


def strip_code_fence(text: str) -> str:
    """Remove a surrounding Markdown code fence (```json ... ```), if any."""
    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    lines = stripped.split("\n")
    lines.pop(0)
    if lines and lines[-1].strip() == "```":
        lines.pop()
    return "\n".join(lines)


def extract_json_object(text: str) -> str:
    """
    Return the first balanced ``{...}`` block of ``text``.

    Braces inside JSON strings are ignored, so translated values containing
    '{' or '}' do not cut the object short.

    Raises:
        TranslationParseError: If there is no opening brace or it is never closed.
    """
    start = text.find("{")
    if start == -1:
        raise TranslationParseError("No JSON object found in translation response",
                                    raw_excerpt=text[:RAW_EXCERPT_LENGTH])
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    raise TranslationParseError("Unbalanced JSON object in translation response",
                                raw_excerpt=text[:RAW_EXCERPT_LENGTH])


def parse_translation_response(raw_text: str, english_texts: Sequence[str]) -> TranslationBatch:
    """
    Turn the provider's reply into a TranslationBatch covering every target locale.

    Texts the provider skipped come back as '' so callers can tell "asked but
    not answered" apart from "not asked".

    Raises:
        TranslationParseError: If no valid JSON object of the expected shape can be read.
    """
    excerpt = raw_text[:RAW_EXCERPT_LENGTH]
    try:
        parsed = json.loads(extract_json_object(strip_code_fence(raw_text)))
        jsonschema.validate(instance=parsed, schema=TRANSLATION_RESPONSE_SCHEMA)
    except json.JSONDecodeError as json_exc:
        raise TranslationParseError("Failed to parse translation response", raw_excerpt=excerpt,
                                    details=str(json_exc)) from json_exc
    except jsonschema.ValidationError as schema_exc:
        raise TranslationParseError("Failed to parse translation response", raw_excerpt=excerpt,
                                    details=schema_exc.message) from schema_exc

    results: Dict[str, Dict[str, str]] = {}
    for locale in TARGET_LOCALES:
        answered = parsed.get(locale) or {}
        results[locale] = {text: answered.get(text) or "" for text in english_texts}
        # Keep extra pairs the provider returned; merge only looks up exact texts.
        for text, value in answered.items():
            results[locale].setdefault(text, value or "")
    return TranslationBatch(results)


def parse_request_payload(payload: Any) -> List[NewKey]:
    """Validate a ``{"translations": [{"key", "en"}]}`` request body."""
    try:
        jsonschema.validate(instance=payload, schema=TRANSLATION_REQUEST_SCHEMA)
    except jsonschema.ValidationError as exc:
        raise InvalidTranslationRequestError(
            f"Invalid request: translations array required ({exc.message})"
        ) from exc
    return [NewKey(key=item["key"], en=item["en"]) for item in payload["translations"]]


class BatchTranslationService:
    """
    Translates a batch of English UI strings into every target locale with one model call.

    Args:
        client: AsyncOpenAI client, or None to run without provider calls (dry run).
        model_name: Chat model used for the batch.
        rate_limiter: Shared request-rate limiter.
        semaphore: Shared cap on concurrent provider calls.
        locale_names: Locale code -> language name used in the prompt.
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI],
        model_name: str = DEFAULT_MODEL_NAME,
        rate_limiter: Optional[AsyncLimiter] = None,
        semaphore: Optional[asyncio.Semaphore] = None,
        locale_names: Optional[Mapping[str, str]] = None,
        temperature: float = DEFAULT_TEMPERATURE,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.client = client
        self.model_name = model_name
        self.rate_limiter = rate_limiter or AsyncLimiter(max_rate=60, time_period=60)
        self.semaphore = semaphore or asyncio.Semaphore(1)
        self.locale_names = dict(DEFAULT_LOCALE_NAMES if locale_names is None else locale_names)
        self.temperature = temperature
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> "BatchTranslationService":
        return cls(
            client=config.openai_client,
            model_name=config.model_name,
            rate_limiter=AsyncLimiter(max_rate=config.rate_limit, time_period=config.rate_period),
            semaphore=asyncio.Semaphore(config.max_concurrent_api_calls),
            locale_names=config.locale_names,
        )

    @property
    def dry_run(self) -> bool:
        return self.client is None

    def build_prompt(self, english_texts: Sequence[str]) -> str:
        names = [self.locale_names.get(code, code) for code in TARGET_LOCALES]
        language_list = ", ".join(names[:-1]) + f", and {names[-1]}"
        structure = ",\n".join(
            f'  "{code}": {{ "English text 1": "{self.locale_names.get(code, code)} translation 1", '
            f'"English text 2": "{self.locale_names.get(code, code)} translation 2" }}'
            for code in TARGET_LOCALES
        )
        numbered = "\n".join(f'{i}. {json.dumps(text, ensure_ascii=False)}'
                             for i, text in enumerate(english_texts, start=1))
        return f"""You are a professional translator. Translate the following English UI text strings into {language_list}.

Return ONLY a JSON object with this exact structure:
{{
{structure}
}}

Texts to translate:
{numbered}

Do not include any explanation, markdown formatting, or code blocks. Return ONLY the JSON."""

    async def complete(self, prompt: str) -> str:
        """
        Send one prompt to the provider and return the raw reply text.

        Raises:
            TranslationTransportError: On any provider API failure.
        """
        async with self.semaphore, self.rate_limiter:
            try:
                response = await self.client.chat.completions.create(
                    model=self.model_name,
                    messages=[
                        ChatCompletionSystemMessageParam(
                            role="system",
                            content="You translate short software UI strings and answer with JSON only."),
                        ChatCompletionUserMessageParam(role="user", content=prompt),
                    ],
                    temperature=self.temperature,
                    timeout=self.timeout,
                )
            except (RateLimitError, APITimeoutError, APIConnectionError, APIStatusError, OpenAIError) as api_exc:
                logger.error(f"API error occurred: {api_exc.__class__.__name__} - {api_exc}")
                raise TranslationTransportError(f"{api_exc.__class__.__name__}: {api_exc}") from api_exc
        content = response.choices[0].message.content
        return (content or "").strip()

    async def translate(self, items: Sequence[NewKey]) -> TranslationBatch:
        """
        Translate every ``items[i].en`` into all target locales.

        Raises:
            InvalidTranslationRequestError: If ``items`` is empty.
            TranslationTransportError: If the provider call fails.
            TranslationParseError: If the reply cannot be parsed.
        """
        if not items:
            raise InvalidTranslationRequestError("Invalid request: translations array required")
        english_texts = list(dict.fromkeys(item.en for item in items))

        if self.dry_run:
            logger.info("Dry run: skipping provider call for %d text(s)", len(english_texts))
            return TranslationBatch({locale: {text: "" for text in english_texts} for locale in TARGET_LOCALES})

        logger.info("Requesting translations for %d text(s) from '%s'", len(english_texts), self.model_name)
        raw_text = await self.complete(self.build_prompt(english_texts))
        try:
            batch = parse_translation_response(raw_text, english_texts)
        except TranslationParseError as exc:
            logger.error(f"Failed to parse translation response: {exc.details or exc}")
            logger.debug(f"Raw translation response:\n---\n{exc.raw_excerpt}\n---")
            raise
        logger.debug("Parsed translations for locales: %s", ", ".join(sorted(batch.translations)))
        return batch

    async def handle_request(self, payload: Any) -> Tuple[int, Dict[str, Any]]:
        """
        Serve one request of the batch-translation wire contract.

        Returns:
            ``(200, {"translations": {...}})`` on success, ``(400, {"error"})``
            for an invalid request, ``(500, {"error", "details"?})`` when the
            provider fails or its reply cannot be parsed.
        """
        try:
            items = parse_request_payload(payload)
            batch = await self.translate(items)
        except InvalidTranslationRequestError as exc:
            return 400, {"error": str(exc)}
        except TranslationParseError as exc:
            body = {"error": "Failed to parse translation response"}
            if exc.details or str(exc):
                body["details"] = exc.details or str(exc)
            return 500, body
        except TranslationServiceError as exc:
            return 500, {"error": str(exc) or "Translation failed"}
        return 200, {"translations": batch.translations}
