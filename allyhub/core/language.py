"""Process-global bot display language.

The Discord bot and any server-rendered text share one active language, held
in a single lock-guarded cell.

Lifecycle: initialised from config.BOT_LANGUAGE at import (falling back to
the first supported language if that value is invalid); updated only through
BotLanguage.set(); tests restore it with reset().
"""
from __future__ import annotations

import logging
import threading
from typing import Iterable, Tuple

from allyhub.core.config import BOT_LANGUAGE, SUPPORTED_LANGUAGES

logger = logging.getLogger(__name__)


def is_valid_language(lang: str) -> bool:
    return lang in SUPPORTED_LANGUAGES


class BotLanguage:
    """Thread-safe holder of the active bot language."""

    def __init__(self, initial: str, supported: Iterable[str] = SUPPORTED_LANGUAGES) -> None:
        self._lock = threading.RLock()
        self._supported: Tuple[str, ...] = tuple(supported)
        if initial not in self._supported:
            logger.warning("bot_language_invalid_initial value=%s fallback=%s", initial, self._supported[0])
            initial = self._supported[0]
        self._initial = initial
        self._value = initial

    def get(self) -> str:
        with self._lock:
            return self._value

    def set(self, lang: str) -> bool:
        """Switch the active language.

        Returns True only when the value actually changed; unsupported codes
        are ignored and return False.
        """
        lang = (lang or "").strip().lower()
        if lang not in self._supported:
            return False
        with self._lock:
            previous = self._value
            self._value = lang
        if previous == lang:
            return False
        logger.info("bot_language_changed", extra={"from": previous, "to": lang})
        return True

    def reset(self) -> None:
        with self._lock:
            self._value = self._initial


bot_language = BotLanguage(BOT_LANGUAGE)

__all__ = ["BotLanguage", "bot_language", "is_valid_language"]
