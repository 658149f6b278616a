"""Provides functions for loading and accessing configuration settings.

Supports loading from .env files, environment variables, and a dedicated
configuration file (~/.photostream/config.yaml). Dotted keys such as
`cloudinary.cloud_name` map to nested YAML sections and to the environment
variable `CLOUDINARY_CLOUD_NAME`.
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional, Dict

import yaml
from dotenv import load_dotenv

from photostream.domain.models.common import RateLimitRule

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".photostream"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"

DEFAULT_RATE_LIMIT_WINDOW_MS = 60_000
DEFAULT_RATE_LIMITS: Dict[str, int] = {
    "BATCH": 10,
    "BATCH_STATUS": 30,
    "UPDATE": 20,
    "DELETE": 20,
    "UPLOAD": 10,
}

_MISSING = object()

# --- Global Configuration Store ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}
_loaded = False


def load_configuration(config_file: Path = DEFAULT_CONFIG_FILE, env_file: Optional[Path] = None) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Environment Variables
    2. .env file
    3. YAML configuration file
    4. Default values passed to `get_config`

    Args:
        config_file: Path to the YAML configuration file.
        env_file: Path to the .env file (searches upwards from cwd if None).
    """
    global _config, _loaded
    if _loaded:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    # 1. YAML file (lowest priority)
    if config_file.exists():
        try:
            with open(config_file, 'r') as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(yaml_config)
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a dictionary.")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    # 2. .env file; override=False so real environment variables win
    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug("No .env file found at or above the current directory.")

    _loaded = True
    logger.info("Configuration loading process completed.")


def reset_configuration() -> None:
    """Forgets loaded file configuration so the next load re-reads it."""
    global _config, _loaded
    _config = {}
    _loaded = False


def _coerce(value: str) -> Any:
    if value.lower() == 'true':
        return True
    if value.lower() == 'false':
        return False
    try:
        if '.' in value:
            return float(value)
        return int(value)
    except (ValueError, TypeError):
        return value


def _lookup_nested(key: str) -> Any:
    if key in _config:
        return _config[key]
    node: Any = _config
    for part in key.split('.'):
        if not isinstance(node, dict) or part not in node:
            return _MISSING
        node = node[part]
    return node


def env_key_for(key: str) -> str:
    """Environment variable name for a dotted configuration key."""
    return key.upper().replace('.', '_').replace('-', '_')


def get_config(key: str, default: Any = None) -> Any:
    """
    Get a configuration value by key.

    Priority:
    1. Test configuration (if in testing mode)
    2. Environment variable
    3. YAML config
    4. Default value

    Args:
        key: The configuration key, e.g. 'rate_limit.backend'
        default: Default value if the key is not found

    Returns:
        The configuration value
    """
    if key in _test_config:
        return _test_config[key]

    env_key = env_key_for(key)
    if env_key in os.environ:
        return _coerce(os.environ[env_key])

    value = _lookup_nested(key)
    if value is not _MISSING:
        return value

    logger.debug(f"Config key '{key}' not found in environment or loaded config. Returning default: {default}")
    return default


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


# --- Convenience Functions ---

def get_environment() -> str:
    """Deployment environment name ('development', 'production', 'test')."""
    return str(get_config('app.env', None) or get_config('node_env', 'development'))


def is_development() -> bool:
    return get_environment() == 'development'


def get_cloudinary_credentials() -> Dict[str, Optional[str]]:
    """Returns cloud name, API key and secret for the media store."""
    creds = {}
    for name in ('cloud_name', 'api_key', 'api_secret'):
        value = get_config(f'cloudinary.{name}')
        creds[name] = str(value) if value is not None else None
    return creds


def get_webhook_secret() -> Optional[str]:
    secret = get_config('cloudinary.webhook_secret')
    return str(secret) if secret else None


def get_redis_url() -> Optional[str]:
    url = get_config('redis.url')
    return str(url) if url else None


def get_rate_limit_backend() -> str:
    """'memory' or 'redis'. Defaults to redis only when a Redis URL is configured."""
    backend = get_config('rate_limit.backend')
    if backend:
        return str(backend).lower()
    return 'redis' if get_redis_url() else 'memory'


def get_rate_limit_rules() -> Dict[str, RateLimitRule]:
    """Per-purpose limits, overridable with `rate_limit.<purpose>.requests`."""
    window_ms = int(get_config('rate_limit.window_ms', DEFAULT_RATE_LIMIT_WINDOW_MS))
    rules: Dict[str, RateLimitRule] = {}
    for purpose, default_limit in DEFAULT_RATE_LIMITS.items():
        limit = get_config(f'rate_limit.{purpose.lower()}.requests', default_limit)
        rules[purpose] = RateLimitRule(limit=int(limit), window_ms=window_ms)
    upload_limit = get_config('upload.rate_limit.requests')
    upload_window = get_config('upload.rate_limit.window_ms')
    if upload_limit is not None or upload_window is not None:
        rules['UPLOAD'] = RateLimitRule(
            limit=int(upload_limit or rules['UPLOAD']['limit']),
            window_ms=int(upload_window or window_ms),
        )
    return rules


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """
    Set configuration values for testing purposes.
    These values override any existing configuration.

    Args:
        config_dict: Dictionary of configuration values to set
    """
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")
