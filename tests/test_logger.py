import logging

import pytest

from dbot.config.settings import settings
from dbot.src.utils.logger import LOG_FORMAT, get_logger, resolve_level


def test_explicit_level_wins():
    assert resolve_level(logging.ERROR) == logging.ERROR
    assert resolve_level("info") == logging.INFO


def test_unknown_level_name_rejected():
    with pytest.raises(ValueError):
        resolve_level("chatty")


def test_log_level_setting_overrides_env(monkeypatch):
    monkeypatch.setattr(settings, "ENV", "dev")
    monkeypatch.setattr(settings, "LOG_LEVEL", "ERROR")
    assert resolve_level() == logging.ERROR


@pytest.mark.parametrize("env, expected", [("dev", logging.DEBUG), ("prod", logging.WARNING)])
def test_env_decides_without_override(monkeypatch, env, expected):
    monkeypatch.setattr(settings, "LOG_LEVEL", None)
    monkeypatch.setattr(settings, "ENV", env)
    assert resolve_level() == expected


def test_get_logger_configures_once():
    logger = get_logger("dbot.tests.once", level="WARNING")
    again = get_logger("dbot.tests.once", level="DEBUG")

    assert again is logger
    assert len(logger.handlers) == 1
    assert logger.level == logging.WARNING
    assert logger.propagate is False
    assert logger.handlers[0].formatter._fmt == LOG_FORMAT
