from __future__ import annotations

import logging

import pytest

from protrack.core.config import Settings
from protrack.core.logging import configure_logging


def test_settings_parse_comma_separated_origins(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ALLOWED_ORIGINS", "http://a.test, http://b.test,")
    monkeypatch.setenv("LOG_LEVEL", " debug ")
    monkeypatch.setenv("EXPORT_CHUNK_SIZE", "250")

    settings = Settings(_env_file=None)

    assert settings.allowed_origins == ["http://a.test", "http://b.test"]
    assert settings.log_level == "DEBUG"
    assert settings.export_chunk_size == 250
    assert settings.default_page_size == 10


def test_configure_logging_is_idempotent() -> None:
    configure_logging("WARNING")
    configure_logging("DEBUG")

    logger = logging.getLogger("protrack")
    assert logger.level == logging.DEBUG
    assert [handler.get_name() for handler in logger.handlers].count("protrack") == 1
