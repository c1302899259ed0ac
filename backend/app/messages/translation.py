"""Message translation: stub provider.

Provider ``none`` (the default) never translates. Provider ``stub`` tags
the text with the target language, which is enough to exercise the
per-member translation job end to end.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from app.config import TranslationSettings

logger = logging.getLogger(__name__)


@dataclass
class TranslationResult:
    text: str
    confidence: float
    source_language: Optional[str] = None


class TranslationService:
    def __init__(self, settings: TranslationSettings) -> None:
        self._provider = settings.provider

    @property
    def enabled(self) -> bool:
        return self._provider != "none"

    async def translate(self, content: str, target_language: str) -> Optional[TranslationResult]:
        """Translate ``content``; returns None when translation is disabled."""
        if not self.enabled:
            return None
        logger.debug("[Translation] stub translate -> %s", target_language)
        return TranslationResult(text=f"[{target_language}] {content}", confidence=0.5)
