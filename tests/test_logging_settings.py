"""Tests for logging settings parsing."""

import logging
from pathlib import Path

import pytest

from streamrelay.logging_settings import apply_logging_settings, parse_logging_settings

AREA_LOGGERS = (
    "streamrelay",
    "streamrelay.provider",
    "streamrelay.chat.streaming",
    "streamrelay.tools",
    "streamrelay.chat.streaming.tooling",
)


@pytest.fixture
def restore_levels():
    saved = {name: logging.getLogger(name).level for name in AREA_LOGGERS}
    yield
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)


def test_parse_logging_settings(tmp_path: Path) -> None:
    """Test parsing each area level."""
    config_file = tmp_path / "logging_settings.conf"
    config_file.write_text(
        """
# Test config
terminal = debug
stream = warning
tools = off
"""
    )

    settings = parse_logging_settings(config_file)

    assert settings.terminal_level == 10  # DEBUG
    assert settings.stream_level == 30  # WARNING
    assert settings.tools_level is None


def test_parse_logging_settings_defaults(tmp_path: Path) -> None:
    """Test default values when config file doesn't exist."""
    settings = parse_logging_settings(tmp_path / "nonexistent.conf")

    assert settings.terminal_level == 20
    assert settings.stream_level == 20
    assert settings.tools_level == 20


def test_parse_logging_settings_ignores_noise(tmp_path: Path) -> None:
    """Unknown keys, bad levels and stray lines fall back to defaults."""
    config_file = tmp_path / "logging_settings.conf"
    config_file.write_text("not a setting\nretention_hours = 5\nSTREAM = loud\ntools = Debug\n")

    settings = parse_logging_settings(config_file)

    assert settings.stream_level == 20
    assert settings.tools_level == 10


def test_apply_logging_settings(tmp_path: Path, restore_levels) -> None:
    config_file = tmp_path / "logging_settings.conf"
    config_file.write_text("terminal = warning\nstream = debug\ntools = off\n")

    apply_logging_settings(parse_logging_settings(config_file))

    assert logging.getLogger("streamrelay").level == logging.WARNING
    assert logging.getLogger("streamrelay.provider").level == logging.DEBUG
    assert logging.getLogger("streamrelay.chat.streaming").level == logging.DEBUG
    assert not logging.getLogger("streamrelay.tools").isEnabledFor(logging.CRITICAL)
