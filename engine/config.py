import json
import os
from pathlib import Path
from typing import Optional

from engine.constants import DEFAULT_STORE_PATH

CONFIG_DIR = Path.home() / ".config" / "signal_engine"
CONFIG_FILE = CONFIG_DIR / "config.json"

STORE_PATH_ENV = "SIGNAL_ENGINE_STORE"
LLM_API_KEY_ENV = "ANTHROPIC_API_KEY"
EMBEDDING_API_KEY_ENV = "OPENAI_API_KEY"


def load_config() -> dict:
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r") as f:
            return json.load(f)
    except (OSError, ValueError):
        return {}


def save_config(key: str, value: str):
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    config = load_config()
    config[key] = value
    with open(CONFIG_FILE, "w") as f:
        json.dump(config, f, indent=2)


def get_store_path() -> Path:
    """Env var wins over the saved config, which wins over the default."""
    env_path = os.environ.get(STORE_PATH_ENV)
    if env_path:
        return Path(env_path)
    return Path(load_config().get("store_path") or DEFAULT_STORE_PATH)


def get_llm_api_key() -> Optional[str]:
    return os.environ.get(LLM_API_KEY_ENV) or load_config().get("anthropic_api_key")


def get_embedding_api_key() -> Optional[str]:
    return os.environ.get(EMBEDDING_API_KEY_ENV) or load_config().get(
        "openai_api_key"
    )
