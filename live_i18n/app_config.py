"""Application configuration for the localization pipeline."""
import logging
import os
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, Any

import yaml
from dotenv import load_dotenv
from openai import AsyncOpenAI

from live_i18n.logging_config import setup_logger
from live_i18n.models import DEFAULT_LOCALE_NAMES, SOURCE_LOCALE, SUPPORTED_LOCALES


@dataclass
class AppConfig:
    """Application configuration dataclass."""
    # Core paths
    project_root: str
    store_path: str
    version_path: str

    # Model configuration
    model_name: str
    max_model_tokens: int

    # Processing settings
    dry_run: bool
    backfill_chunk_size: int
    max_concurrent_api_calls: int
    rate_limit: int
    rate_period: int

    # Sync settings
    poll_interval: float

    # Language configuration
    default_locale: str
    locale_names: Dict[str, str]

    # OpenAI client
    openai_client: Optional[AsyncOpenAI]


def _compute_project_root() -> str:
    """Compute the project root directory."""
    package_real_path = os.path.realpath(__file__)
    package_dir = os.path.dirname(package_real_path)
    return os.path.abspath(os.path.join(package_dir, os.pardir))


def _load_dotenv_files(project_root: str) -> None:
    """Load .env files from project root or docker directory."""
    dotenv_path_project_root = os.path.join(project_root, '.env')
    dotenv_path_docker_dir = os.path.join(project_root, 'docker', '.env')

    if os.path.exists(dotenv_path_project_root):
        load_dotenv(dotenv_path_project_root)
    elif os.path.exists(dotenv_path_docker_dir):
        load_dotenv(dotenv_path_docker_dir)


def _load_yaml_config(project_root: str) -> Dict[str, Any]:
    """Load the YAML configuration file, degrading to an empty dict on any problem."""
    # LIVE_I18N_CONFIG_FILE (possibly set from .env) overrides the default 'config.yaml'.
    default_config_path = os.path.join(project_root, 'config.yaml')
    config_file = os.environ.get('LIVE_I18N_CONFIG_FILE', default_config_path)

    if not os.path.isabs(config_file):
        config_file = os.path.abspath(config_file)

    config = {}
    try:
        if not os.path.exists(config_file):
            print(f"Warning: Configuration file '{config_file}' not found. Using default configuration.",
                  file=sys.stderr)
            print(f"Tip: Create a config.yaml file in '{project_root}' or set LIVE_I18N_CONFIG_FILE environment variable.",
                  file=sys.stderr)
            return config

        if not os.access(config_file, os.R_OK):
            print(f"Error: Configuration file '{config_file}' exists but is not readable. Check file permissions.",
                  file=sys.stderr)
            return config

        with open(config_file, 'r', encoding='utf-8') as config_file_stream:
            loaded_config = yaml.safe_load(config_file_stream)
            if loaded_config is None:
                print(f"Warning: Configuration file '{config_file}' is empty. Using default configuration.",
                      file=sys.stderr)
            elif isinstance(loaded_config, dict):
                config = loaded_config
                print(f"Successfully loaded configuration from: {config_file}", file=sys.stderr)
            else:
                print(f"Error: Configuration file '{config_file}' must contain a YAML dictionary. Using defaults.",
                      file=sys.stderr)

    except yaml.YAMLError as e:
        print(f"Error: Invalid YAML in configuration file '{config_file}': {e}", file=sys.stderr)
        print("Please check your YAML syntax. Using default configuration.", file=sys.stderr)
    except (OSError, IOError) as e:
        print(f"Error: Could not read configuration file '{config_file}': {e}", file=sys.stderr)
        print("Using default configuration.", file=sys.stderr)

    return config


def _setup_logger_from_config(config: Dict[str, Any]) -> logging.Logger:
    """Set up logger based on configuration."""
    log_config = config.get('logging', {})
    log_level_str = log_config.get('log_level', 'INFO').upper()
    log_file_path = log_config.get('log_file_path', 'logs/live_i18n.log')
    log_to_console = log_config.get('log_to_console', True)
    return setup_logger(log_level_str, log_file_path, log_to_console)


def _log_dotenv_status(logger: logging.Logger, project_root: str) -> None:
    """Log the status of .env file loading."""
    dotenv_path_project_root = os.path.join(project_root, '.env')
    dotenv_path_docker_dir = os.path.join(project_root, 'docker', '.env')

    if os.path.exists(dotenv_path_project_root):
        logger.info("Loaded environment variables from: %s", dotenv_path_project_root)
    elif os.path.exists(dotenv_path_docker_dir):
        logger.info("Loaded environment variables from: %s", dotenv_path_docker_dir)
    else:
        logger.info(
            "No .env file found in project root ('%s') or in docker/ ('%s'). Relying on system environment variables if any.",
            dotenv_path_project_root,
            dotenv_path_docker_dir
        )


def _build_locale_names(locales_list: List[Dict[str, str]], logger: logging.Logger) -> Dict[str, str]:
    """Display names for the fixed locale set, overridden by ``supported_locales`` entries."""
    locale_names = dict(DEFAULT_LOCALE_NAMES)

    for locale in locales_list:
        code = locale.get('code')
        name = locale.get('name')
        if not (code and name):
            continue
        if code not in SUPPORTED_LOCALES:
            logger.warning("Ignoring configured locale '%s': only %s are supported", code, ", ".join(SUPPORTED_LOCALES))
            continue
        locale_names[code] = name

    return locale_names


def _resolve_poll_interval(config: Dict[str, Any], logger: logging.Logger) -> float:
    """Poll interval in seconds. SYNC_POLL_INTERVAL_MS overrides ``sync.poll_interval_ms``."""
    default_ms = config.get('sync', {}).get('poll_interval_ms', 500)
    raw_ms = os.environ.get('SYNC_POLL_INTERVAL_MS', default_ms)
    try:
        interval_ms = int(raw_ms)
    except (TypeError, ValueError):
        logger.warning("Invalid poll interval '%s'; using 500 ms", raw_ms)
        interval_ms = 500
    if interval_ms <= 0:
        logger.warning("Poll interval must be positive, got %d ms; using 500 ms", interval_ms)
        interval_ms = 500
    return interval_ms / 1000.0


def _create_openai_client(dry_run: bool, logger: logging.Logger) -> Optional[AsyncOpenAI]:
    """Create OpenAI client if not in dry run mode."""
    if dry_run:
        logger.info("Running in dry-run mode, OpenAI client will not be initialized")
        return None

    api_key_from_env = os.environ.get('OPENAI_API_KEY')
    if not api_key_from_env:
        logger.critical("CRITICAL: OPENAI_API_KEY environment variable not found.")
        logger.critical("Please set OPENAI_API_KEY or enable dry_run mode in configuration.")
        logger.critical("For dry-run mode, set 'dry_run: true' in your config file.")
        sys.exit(1)

    if not api_key_from_env.startswith('sk-'):
        logger.warning("Warning: OPENAI_API_KEY does not start with 'sk-'. This may be invalid.")

    try:
        client = AsyncOpenAI(api_key=api_key_from_env)
        logger.info("OpenAI client initialized successfully")
        return client
    except Exception as e:
        logger.critical("Failed to initialize OpenAI client: %s", str(e))
        logger.critical("Please check your OPENAI_API_KEY and network connectivity.")
        sys.exit(1)


def load_app_config(dry_run: Optional[bool] = None) -> AppConfig:
    """
    Load application configuration from YAML file and environment variables.

    Args:
        dry_run: Overrides the ``dry_run`` setting of the config file when given.

    Returns:
        AppConfig: The loaded application configuration.
    """
    project_root = _compute_project_root()

    _load_dotenv_files(project_root)

    config = _load_yaml_config(project_root)

    logger = _setup_logger_from_config(config)

    _log_dotenv_status(logger, project_root)

    locale_names = _build_locale_names(config.get('supported_locales', []), logger)

    default_locale = config.get('default_locale', SOURCE_LOCALE)
    if default_locale not in SUPPORTED_LOCALES:
        logger.warning("Unsupported default_locale '%s'; falling back to '%s'", default_locale, SOURCE_LOCALE)
        default_locale = SOURCE_LOCALE

    if dry_run is None:
        dry_run = config.get('dry_run', False)
    model_name = os.environ.get('TRANSLATION_MODEL_NAME', config.get('model_name', 'gpt-4o-mini'))

    store_config = config.get('store', {})
    store_path = os.environ.get('LIVE_I18N_STORE_PATH', store_config.get('path', 'data/localizations.json'))
    if not os.path.isabs(store_path):
        store_path = os.path.join(project_root, store_path)
    version_path = store_config.get('version_path') or f"{store_path}.version"

    rate_limit_config = config.get('rate_limit', {})

    openai_client = _create_openai_client(dry_run, logger)

    return AppConfig(
        project_root=project_root,
        store_path=store_path,
        version_path=version_path,
        model_name=model_name,
        max_model_tokens=config.get('max_model_tokens', 4000),
        dry_run=dry_run,
        backfill_chunk_size=config.get('backfill_chunk_size', 50),
        max_concurrent_api_calls=config.get('max_concurrent_api_calls', 1),
        rate_limit=rate_limit_config.get('max_rate', 60),
        rate_period=rate_limit_config.get('time_period', 60),
        poll_interval=_resolve_poll_interval(config, logger),
        default_locale=default_locale,
        locale_names=locale_names,
        openai_client=openai_client
    )
