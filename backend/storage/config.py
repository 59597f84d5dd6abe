"""Global app configuration (completion backend, sampling, chat defaults).

The API key is looked up in the OPENAI_API_KEY environment variable first
(.env is loaded by the app), then in the stored config.
"""

import json
import os
from pathlib import Path
from typing import Any

from .core import data_dir

API_KEY_ENV = "OPENAI_API_KEY"

_CONFIG_DEFAULTS: dict[str, Any] = {
    "provider_url": "https://api.openai.com",
    "api_key": "",
    "model": "gpt-3.5-turbo",
    "sampling": {
        "temperature": 0.5,
        "max_tokens": 100,
        "frequency_penalty": 0.0,
        "presence_penalty": 0.0,
    },
    "check_topics": False,
    "retry_delay": 0.5,
    "check_connection_on_start": True,
    "player_name": "Human",
}

_SCALAR_KEYS = (
    "provider_url",
    "api_key",
    "model",
    "check_topics",
    "retry_delay",
    "check_connection_on_start",
    "player_name",
)


def _config_path() -> Path:
    return data_dir() / "config.json"


def get_config() -> dict[str, Any]:
    """Read config, returning defaults merged with stored values."""
    config: dict[str, Any] = json.loads(json.dumps(_CONFIG_DEFAULTS))
    path = _config_path()
    if path.is_file():
        stored = json.loads(path.read_text())
        for key in _SCALAR_KEYS:
            if key in stored:
                config[key] = stored[key]
        if isinstance(stored.get("sampling"), dict):
            for key, value in stored["sampling"].items():
                if key in config["sampling"]:
                    config["sampling"][key] = value
    return config


def merge_config(fields: dict[str, Any]) -> dict[str, Any]:
    """Stored config with fields merged in. Nothing is written."""
    config = get_config()
    for key in _SCALAR_KEYS:
        if key in fields:
            config[key] = fields[key]
    if isinstance(fields.get("sampling"), dict):
        for key, value in fields["sampling"].items():
            if key in config["sampling"]:
                config["sampling"][key] = value
    return config


def save_config(config: dict[str, Any]) -> None:
    _config_path().write_text(json.dumps(config, indent=2))


def update_config(fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into config and persist. Returns full config."""
    config = merge_config(fields)
    save_config(config)
    return config


def get_api_key() -> str:
    """Credential accessor handed to the completion client."""
    return os.getenv(API_KEY_ENV, "") or get_config()["api_key"]


def public_config() -> dict[str, Any]:
    """Config as returned by the API: the stored key is never echoed back."""
    config = get_config()
    config["api_key_set"] = bool(get_api_key())
    del config["api_key"]
    return config
