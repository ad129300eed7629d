"""Tests for configuration, token storage and logging setup."""

import logging
import stat

from tidings.config import (
    DEFAULT_BASE_URL,
    get_config_path,
    get_db_path,
    load_api_token,
    load_config,
    save_token,
)
from tidings.log import setup_logging


def write_config(text: str) -> None:
    path = get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_defaults_without_a_config_file() -> None:
    config = load_config()

    assert config["remote"]["base_url"] == DEFAULT_BASE_URL
    assert config["sync"]["cache_ttl_seconds"] == 300
    assert config["sync"]["poll_attempts"] == 30


def test_config_file_is_merged_over_defaults() -> None:
    write_config('[remote]\nbase_url = "https://octobox.example.com/"\n\n[sync]\npoll_attempts = 5\n')

    config = load_config()

    assert config["remote"]["base_url"] == "https://octobox.example.com"
    assert config["remote"]["per_page"] == 100
    assert config["sync"]["poll_attempts"] == 5
    assert config["sync"]["poll_interval_seconds"] == 1.0


def test_env_url_wins(monkeypatch) -> None:
    write_config('[remote]\nbase_url = "https://from-file.example.com"\n')
    monkeypatch.setenv("TIDINGS_URL", "https://from-env.example.com/")

    assert load_config()["remote"]["base_url"] == "https://from-env.example.com"


def test_data_paths_follow_tidings_home(tmp_path) -> None:
    assert get_db_path() == tmp_path / "home" / "cache.db"


def test_token_lookup_order(monkeypatch) -> None:
    assert load_api_token() is None

    path = save_token("  from-file\n")
    assert load_api_token() == "from-file"
    assert stat.S_IMODE(path.stat().st_mode) == 0o600

    write_config('[remote]\napi_token = "from-config"\n')
    assert load_api_token() == "from-config"

    monkeypatch.setenv("TIDINGS_API_TOKEN", "from-env")
    assert load_api_token() == "from-env"


def test_setup_logging_writes_to_file(tmp_path, monkeypatch) -> None:
    logger = logging.getLogger("tidings")
    monkeypatch.setattr(logger, "handlers", [])
    log_path = tmp_path / "logs" / "debug.log"

    setup_logging(log_path, debug=True)
    logging.getLogger("tidings.sync").debug("phase change")
    for handler in logger.handlers:
        handler.flush()

    assert logger.level == logging.DEBUG
    assert "DEBUG: tidings.sync: phase change" in log_path.read_text(encoding="utf-8")

    for handler in logger.handlers:
        handler.close()
