# Config - Configuration Loading
# YAML settings plus secrets from environment / secrets.env

"""
Config Module

Responsibilities:
- Load config/config.yaml (defaults when absent)
- Load secrets from config/secrets.env into the environment
- Overlay CHAINLINK_* environment variables
- Validate structure; report missing credentials as ConfigurationError
"""

import os
from copy import deepcopy
from pathlib import Path
from typing import List, Optional, Tuple, Union

import yaml
from dotenv import load_dotenv

from ..errors import ConfigurationError

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "config.yaml"
DEFAULT_ENV_FILE = PROJECT_ROOT / "config" / "secrets.env"

DEFAULT_CONFIG = {
    'websocket': {
        'url': "wss://ws.testnet-dataengine.chain.link/api/v1/ws",
        'reconnect_delay': 1,
        'max_reconnect_attempts': 5,
        'heartbeat_interval': 30,
        'open_timeout': 10,
        'close_timeout': 10,
    },
    'rest': {
        'base_url': "https://api.testnet-dataengine.chain.link",
        'timeout': 30,
    },
    'logging': {
        'level': "INFO",
    },
    'feeds': [],
    'demo': {
        'stream_seconds': 30,
    },
}

CREDENTIAL_ENV_VARS = {
    'api_key': 'CHAINLINK_API_KEY',
    'api_secret': 'CHAINLINK_API_SECRET',
}


def _merge(base: dict, override: dict) -> dict:
    merged = deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    env_file: Optional[Union[str, Path]] = None,
) -> dict:
    """
    Load configuration from files and environment

    Args:
        config_path: YAML file (config/config.yaml when omitted)
        env_file: dotenv file (config/secrets.env when omitted)

    Returns:
        Config dict with a 'credentials' section filled from the environment
    """
    load_dotenv(env_file or DEFAULT_ENV_FILE)

    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    config = deepcopy(DEFAULT_CONFIG)
    if path.exists():
        with open(path) as f:
            config = _merge(config, yaml.safe_load(f) or {})

    config['credentials'] = {
        key: os.getenv(env_var, '') for key, env_var in CREDENTIAL_ENV_VARS.items()
    }

    if os.getenv('CHAINLINK_WS_URL'):
        config['websocket']['url'] = os.getenv('CHAINLINK_WS_URL')
    if os.getenv('CHAINLINK_REST_URL'):
        config['rest']['base_url'] = os.getenv('CHAINLINK_REST_URL')
    if os.getenv('CHAINLINK_FEED_ID'):
        config['feeds'] = [f.strip() for f in os.getenv('CHAINLINK_FEED_ID').split(',') if f.strip()]

    return config


def validate_config(config: dict) -> Tuple[bool, List[str]]:
    """
    Validate config structure

    Returns:
        (is_valid, list of error messages)
    """
    errors = []

    ws = config.get('websocket', {})
    if not str(ws.get('url', '')).startswith(('ws://', 'wss://')):
        errors.append("Config error: websocket.url must start with ws:// or wss://")

    numeric_checks = [
        ('websocket.reconnect_delay', ws.get('reconnect_delay')),
        ('websocket.heartbeat_interval', ws.get('heartbeat_interval')),
        ('websocket.open_timeout', ws.get('open_timeout')),
        ('rest.timeout', config.get('rest', {}).get('timeout')),
    ]
    for key, value in numeric_checks:
        if value is not None and (not isinstance(value, (int, float)) or value <= 0):
            errors.append(f"Config error: {key} must be a positive number")

    attempts = ws.get('max_reconnect_attempts')
    if attempts is not None and (not isinstance(attempts, int) or attempts < 0):
        errors.append("Config error: websocket.max_reconnect_attempts must be a non-negative integer")

    feeds = config.get('feeds', [])
    if not isinstance(feeds, list) or not all(isinstance(f, str) for f in feeds):
        errors.append("Config error: feeds must be a list of feed id strings")

    return (len(errors) == 0, errors)


def require_credentials(config: dict) -> Tuple[str, str]:
    """
    Return (api_key, api_secret) or raise ConfigurationError

    Raises:
        ConfigurationError: naming every missing environment variable
    """
    credentials = config.get('credentials', {})
    missing = [
        env_var for key, env_var in CREDENTIAL_ENV_VARS.items()
        if not credentials.get(key)
    ]
    if missing:
        raise ConfigurationError(
            f"Missing credentials: set {', '.join(missing)} in config/secrets.env or the environment",
            missing=missing,
        )
    return credentials['api_key'], credentials['api_secret']
