"""Helpers for parsing the simple logging settings file."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

_LEVEL_MAP: dict[str, int | None] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "off": None,
}

_DEFAULT_KEYS = ("terminal", "stream", "tools")
_DEFAULT_LEVEL = "info"

# Logger names each settings key controls.
_AREA_LOGGERS: dict[str, tuple[str, ...]] = {
    "terminal": ("streamrelay",),
    "stream": ("streamrelay.provider", "streamrelay.chat.streaming"),
    "tools": ("streamrelay.tools", "streamrelay.chat.streaming.tooling"),
}


@dataclass(frozen=True)
class LoggingSettings:
    terminal_level: int | None
    stream_level: int | None
    tools_level: int | None


def _normalize_level(value: str) -> str:
    return value.strip().lower()


def _resolve_level(value: str) -> int | None:
    return _LEVEL_MAP.get(_normalize_level(value), _LEVEL_MAP[_DEFAULT_LEVEL])


def parse_logging_settings(path: Path) -> LoggingSettings:
    """Parse the human-readable logging settings file."""

    levels: dict[str, int | None] = {
        key: _LEVEL_MAP[_DEFAULT_LEVEL] for key in _DEFAULT_KEYS
    }

    if path.exists():
        for raw_line in path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            key, value = (part.strip() for part in line.split("=", 1))
            normalized_key = key.lower()
            if normalized_key in _DEFAULT_KEYS:
                levels[normalized_key] = _resolve_level(value)

    return LoggingSettings(
        terminal_level=levels["terminal"],
        stream_level=levels["stream"],
        tools_level=levels["tools"],
    )


def apply_logging_settings(settings: LoggingSettings) -> None:
    """Set relay logger levels; ``off`` silences an area entirely."""

    levels = {
        "terminal": settings.terminal_level,
        "stream": settings.stream_level,
        "tools": settings.tools_level,
    }
    for key in _DEFAULT_KEYS:
        level = levels[key]
        for name in _AREA_LOGGERS[key]:
            target = logging.getLogger(name)
            if level is None:
                target.setLevel(logging.CRITICAL + 1)
            else:
                target.setLevel(level)


__all__ = ["LoggingSettings", "apply_logging_settings", "parse_logging_settings"]
