import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from live_i18n.app_config import AppConfig, load_app_config
from live_i18n.auto_translate import AutoTranslateClient, backfill_untranslated
from live_i18n.errors import LiveI18nError
from live_i18n.models import SUPPORTED_LOCALES
from live_i18n.pipeline import LocalizationPipeline
from live_i18n.preview import PreviewBundle, PreviewRefresher
from live_i18n.store import TranslationStore
from live_i18n.sync import SyncBroadcaster
from live_i18n.translation_service import BatchTranslationService

logger = logging.getLogger("live_i18n.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="live_i18n", description="Live localization for generated React components")
    parser.add_argument("--dry-run", action="store_true", help="Do not call the translation provider")
    subparsers = parser.add_subparsers(dest="command", required=True)

    localize = subparsers.add_parser("localize", help="Rewrite a component and create its translation keys")
    localize.add_argument("input", help="Component source file, or a model reply with --reply")
    localize.add_argument("--reply", action="store_true", help="Input is a model reply; use its last code block")
    localize.add_argument("--locale", choices=SUPPORTED_LOCALES, help="Locale of the written preview bundle")
    localize.add_argument("--out-dir", help="Folder to write the preview bundle to")
    localize.add_argument("--no-translate", action="store_true", help="Skip auto-translation of new keys")

    translations = subparsers.add_parser("translations", help="Print key -> value for one locale as JSON")
    translations.add_argument("locale", choices=SUPPORTED_LOCALES)

    subparsers.add_parser("backfill", help="Translate every entry that still has empty locales")

    set_value = subparsers.add_parser("set", help="Set one locale value of a key")
    set_value.add_argument("key")
    set_value.add_argument("locale", choices=SUPPORTED_LOCALES)
    set_value.add_argument("value")
    return parser


def _open_store(config: AppConfig) -> TranslationStore:
    return TranslationStore(config.store_path, config.version_path).open()


def _write_bundle(bundle: PreviewBundle, out_dir: str) -> None:
    for name, content in bundle.files.items():
        destination = Path(out_dir) / name.lstrip("/")
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(content, encoding="utf-8")
    logger.debug("Preview bundle version %d written to %s", bundle.version, out_dir)


async def _localize(args: argparse.Namespace, config: AppConfig, store: TranslationStore) -> int:
    text = Path(args.input).read_text(encoding="utf-8")
    auto_translator = None
    if not args.no_translate:
        auto_translator = AutoTranslateClient(store, BatchTranslationService.from_config(config))
    pipeline = LocalizationPipeline(store, auto_translator)

    result = await (pipeline.process_reply(text) if args.reply else pipeline.process_generated_code(text))
    if result is None:
        print("No component code found in the reply.", file=sys.stderr)
        return 1

    locale = args.locale or config.default_locale
    on_update = (lambda bundle: _write_bundle(bundle, args.out_dir)) if args.out_dir else None
    # The written preview follows every store version until translation settles.
    async with SyncBroadcaster.for_store(store, config.poll_interval) as broadcaster:
        refresher = PreviewRefresher(store, broadcaster, result.rewritten, locale,
                                     text_keys=result.text_keys, on_update=on_update)
        refresher.attach()
        if auto_translator is not None:
            for outcome in await auto_translator.wait_idle():
                if not outcome.ok:
                    print(f"[translate:warn] {outcome.warning}", file=sys.stderr)
        refresher.detach()

    if args.out_dir:
        print(f"[preview] written to: {args.out_dir} (version {refresher.bundle.version})")
    else:
        print(result.rewritten)

    print(json.dumps({
        "component": result.component_name,
        "new_keys": [new_key.key for new_key in result.new_keys],
        "version": store.version,
    }, indent=2))
    return 0


async def _backfill(config: AppConfig, store: TranslationStore) -> int:
    service = BatchTranslationService.from_config(config)
    outcomes = await backfill_untranslated(
        store,
        service,
        chunk_size=config.backfill_chunk_size,
        token_budget=config.max_model_tokens // 2,
    )
    merged = sum(outcome.merged for outcome in outcomes)
    failed = sum(1 for outcome in outcomes if not outcome.ok)
    print(f"[backfill] merged {merged} value(s); {failed} chunk(s) failed")
    return 1 if failed else 0


async def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_app_config(dry_run=True if args.dry_run else None)
    store = _open_store(config)
    try:
        if args.command == "localize":
            return await _localize(args, config, store)
        if args.command == "translations":
            print(json.dumps(store.get_translations(args.locale), ensure_ascii=False, indent=2))
            return 0
        if args.command == "backfill":
            return await _backfill(config, store)
        if args.command == "set":
            if not store.update_by_key(args.key, {args.locale: args.value}):
                print(f"No localization entry with key '{args.key}'", file=sys.stderr)
                return 1
            return 0
    except LiveI18nError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1
    finally:
        store.close()
    return 2


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)

