"""
Detects English chat messages and translates them to Spanish before
retrieval, since the catalog and its embeddings are in Spanish.
"""

import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from langchain_core.language_models import BaseChatModel
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate

from catalog_assistant.core.config import settings
from catalog_assistant.models.timeutils import utcnow
from catalog_assistant.services.prompt_builder import ResponseProfile
from catalog_assistant.services.ttl_cache import TimedCache

logger = logging.getLogger(__name__)

SPANISH = "es"
ENGLISH = "en"
UNKNOWN = "unknown"

LANGUAGE_NAMES = {ENGLISH: "inglés"}

ENGLISH_INDICATORS = frozenset(
    {
        "the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
        "is", "are", "was", "were", "be", "been", "have", "had", "do", "does",
        "did", "will", "would", "could", "should", "can", "this", "that", "these",
        "those", "an", "as", "if", "when", "where", "why", "how", "what",
        "which", "who", "i", "you", "need", "want", "looking", "best", "outdoor",
        "weather", "station", "sensors", "data", "monitoring", "environmental",
        "temperature", "humidity", "pressure", "wind", "rain", "radiation",
        "measurement", "accuracy", "range", "specifications", "features",
        "installation", "maintenance", "calibration", "wireless",
        "battery", "power", "signal", "network", "connection",
    }
)

# share of indicator words above which a message is treated as English
ENGLISH_RATIO = 0.3

TRANSLATION_PROFILE = ResponseProfile(max_tokens=500, temperature=0.1, template="")

TRANSLATION_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            "Eres un traductor técnico especializado en equipos meteorológicos y "
            "sensores ambientales. Traduce el siguiente texto del inglés al español, "
            "manteniendo los términos técnicos, las especificaciones numéricas, las "
            "unidades de medida y los nombres de productos y marcas. Responde SOLO con "
            "la traducción, sin explicaciones adicionales.",
        ),
        ("human", "{text}"),
    ]
)


def is_english(text: str) -> bool:
    words = [re.sub(r"[^\w]", "", word) for word in (text or "").lower().split()]
    words = [word for word in words if word]
    if not words:
        return False
    hits = sum(1 for word in words if word in ENGLISH_INDICATORS)
    return hits / len(words) > ENGLISH_RATIO


@dataclass(frozen=True)
class TranslationResult:
    text: str
    detected_language: str = SPANISH
    was_translated: bool = False

    @property
    def source_language_name(self) -> Optional[str]:
        """Spanish name of the source language, only when a translation happened."""
        if not self.was_translated:
            return None
        return LANGUAGE_NAMES.get(self.detected_language, self.detected_language)


class TranslationCache(TimedCache):
    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(
            settings.TRANSLATION_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds,
            max_entries or settings.TRANSLATION_CACHE_MAX_ENTRIES,
            clock,
        )


class MessageTranslator:
    """
    Translates English messages to Spanish with the chat model. A failed or
    empty translation falls back to the original text and is not cached.
    """

    def __init__(
        self,
        llm_provider: Callable[[ResponseProfile], BaseChatModel],
        cache: Optional[TranslationCache] = None,
    ):
        self.llm_provider = llm_provider
        self.cache = cache if cache is not None else TranslationCache()

    async def translate_if_needed(self, text: str) -> TranslationResult:
        if not (text or "").strip():
            return TranslationResult(text=text, detected_language=UNKNOWN)
        if not is_english(text):
            return TranslationResult(text=text)

        key = hashlib.sha256(text.strip().encode("utf-8")).hexdigest()
        cached = self.cache.get(key)
        if cached is not None:
            return TranslationResult(text=cached, detected_language=ENGLISH, was_translated=True)

        try:
            chain = TRANSLATION_PROMPT | self.llm_provider(TRANSLATION_PROFILE) | StrOutputParser()
            translated = (await chain.ainvoke({"text": text})).strip()
        except Exception as e:
            logger.warning(f"⚠️ Falha na tradução, usando o texto original: {e}")
            return TranslationResult(text=text, detected_language=ENGLISH)

        if not translated:
            return TranslationResult(text=text, detected_language=ENGLISH)

        self.cache.put(key, translated)
        logger.info(f"🌐 Mensagem traduzida do inglês: '{text[:40]}' -> '{translated[:40]}'")
        return TranslationResult(text=translated, detected_language=ENGLISH, was_translated=True)
