from pathlib import Path

from engine import config
from engine.constants import DEFAULT_STORE_PATH


def test_config_workflow():
    # CONFIG_DIR/CONFIG_FILE are redirected to tmp_path by conftest
    assert config.load_config() == {}
    assert config.get_llm_api_key() is None

    config.save_config("anthropic_api_key", "from-config")
    assert config.CONFIG_FILE.exists()
    assert config.get_llm_api_key() == "from-config"

    config.save_config("store_path", "/data/store.json")
    assert config.load_config()["anthropic_api_key"] == "from-config"
    assert config.get_store_path() == Path("/data/store.json")


def test_env_overrides_config(monkeypatch):
    config.save_config("openai_api_key", "from-config")
    config.save_config("store_path", "/data/store.json")
    monkeypatch.setenv(config.EMBEDDING_API_KEY_ENV, "from-env")
    monkeypatch.setenv(config.STORE_PATH_ENV, "/env/store.json")

    assert config.get_embedding_api_key() == "from-env"
    assert config.get_store_path() == Path("/env/store.json")


def test_default_store_path():
    assert config.get_store_path() == Path(DEFAULT_STORE_PATH)


def test_load_corrupt_config():
    config.CONFIG_DIR.mkdir(parents=True)
    config.CONFIG_FILE.write_text("invalid json{")
    assert config.load_config() == {}
