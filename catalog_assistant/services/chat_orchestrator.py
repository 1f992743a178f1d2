import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from langchain_core.language_models import BaseChatModel
from langchain_core.output_parsers import StrOutputParser

from catalog_assistant.core.config import settings
from catalog_assistant.core.exceptions import GenerationError, InvalidRequestError
from catalog_assistant.models.schemas import ChatTurn, EntityType
from catalog_assistant.services.cascade import CascadeOptions, CascadeResult, FallbackCascade
from catalog_assistant.services.llm_factory import get_llm
from catalog_assistant.services.prompt_builder import (
    APOLOGY,
    CHAT_PROMPT,
    PROFILES,
    MessageKind,
    ResponseProfile,
    build_prompt_values,
    classify_message,
    is_greeting,
)
from catalog_assistant.services.response_cache import ChatResponseCache, chat_cache_key
from catalog_assistant.services.translation import MessageTranslator, TranslationResult

logger = logging.getLogger(__name__)

LLMProvider = Callable[[ResponseProfile], BaseChatModel]


def default_llm_provider(profile: ResponseProfile) -> BaseChatModel:
    return get_llm(temperature=profile.temperature, max_tokens=profile.max_tokens)


@dataclass
class ChatAnswer:
    text: str
    meta: Dict[str, Any] = field(default_factory=dict)
    translation: TranslationResult = field(default_factory=lambda: TranslationResult(text=""))


class ChatOrchestrator:
    """
    Answers one chat message: response cache -> translation -> retrieval (products and
    brands through the fallback cascade) -> classification -> prompt ->
    streamed LLM generation -> response cache.
    """

    def __init__(
        self,
        cascade: FallbackCascade,
        response_cache: ChatResponseCache,
        llm_provider: LLMProvider = default_llm_provider,
        translator: Optional[MessageTranslator] = None,
    ):
        self.cascade = cascade
        self.response_cache = response_cache
        self.llm_provider = llm_provider
        self.translator = translator if translator is not None else MessageTranslator(llm_provider)

    async def answer(
        self,
        message: str,
        history: Optional[Sequence[ChatTurn]] = None,
        source: str = "chat",
    ) -> ChatAnswer:
        message = (message or "").strip()
        if not message:
            raise InvalidRequestError("A message is required")
        history = list(history or [])

        key = chat_cache_key(message, history)
        cached = self.response_cache.get(key)
        if cached is not None:
            logger.info("🎯 Resposta obtida do cache de chat")
            text, translation = cached
            return ChatAnswer(text=text, meta={"cached": True}, translation=translation)

        started = time.perf_counter()
        translation = await self.translator.translate_if_needed(message)
        query = translation.text
        greeting = is_greeting(query)
        if greeting:
            products, brands = CascadeResult(), CascadeResult()
        else:
            products = await self.cascade.find_relevant(
                query,
                EntityType.PRODUCT,
                CascadeOptions(
                    threshold=settings.CHAT_PRODUCT_THRESHOLD,
                    limit=settings.CHAT_PRODUCT_LIMIT,
                    source=source,
                ),
            )
            brands = await self.cascade.find_relevant(
                query,
                EntityType.BRAND,
                CascadeOptions(
                    threshold=settings.CHAT_BRAND_THRESHOLD,
                    limit=settings.CHAT_BRAND_LIMIT,
                    source=source,
                ),
            )

        kind = classify_message(query, len(products.entities))
        meta: Dict[str, Any] = {
            "cached": False,
            "translated": translation.was_translated,
            "kind": kind.value,
            "product_tier": products.tier,
            "brand_tier": brands.tier,
            "products": len(products.entities),
            "brands": len(brands.entities),
            "empty_context": kind != MessageKind.GREETING
            and not products.entities
            and not brands.entities,
        }

        values = build_prompt_values(
            query,
            products.entities,
            brands.entities,
            history,
            kind,
            translated_from=translation.source_language_name,
        )
        try:
            text = await self._generate(PROFILES[kind], values)
        except GenerationError as e:
            logger.error(f"❌ Falha na geração da resposta: {e}")
            meta["fallback"] = True
            return ChatAnswer(text=APOLOGY, meta=meta, translation=translation)

        self.response_cache.put(key, (text, translation))
        meta["elapsed_ms"] = int((time.perf_counter() - started) * 1000)
        logger.info(
            f"💬 Resposta '{kind.value}' gerada com {meta['products']} produtos "
            f"e {meta['brands']} marcas em {meta['elapsed_ms']}ms"
        )
        return ChatAnswer(text=text, meta=meta, translation=translation)

    async def _generate(self, profile: ResponseProfile, values: Dict[str, str]) -> str:
        parts: List[str] = []
        try:
            chain = CHAT_PROMPT | self.llm_provider(profile) | StrOutputParser()
            async for chunk in chain.astream(values):
                if isinstance(chunk, str) and chunk:
                    parts.append(chunk)
        except Exception as e:
            raise GenerationError(str(e) or e.__class__.__name__) from e

        text = "".join(parts).strip()
        if not text:
            raise GenerationError("Empty response from the chat model")
        return text
