import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from catalog_assistant.core.exceptions import InvalidRequestError
from catalog_assistant.models.schemas import ChatTurn
from catalog_assistant.api.deps import get_chat_orchestrator
from catalog_assistant.services.chat_orchestrator import ChatOrchestrator
from catalog_assistant.services.prompt_builder import APOLOGY

logger = logging.getLogger(__name__)

router = APIRouter()

EMPTY_MESSAGE_RESPONSE = "Lo siento, no recibí ninguna consulta. ¿En qué puedo ayudarte?"


class TranslationInfo(BaseModel):
    wasTranslated: bool = False
    detectedLanguage: str = "es"


class ChatRequest(BaseModel):
    message: Optional[str] = None
    chatHistory: List[ChatTurn] = Field(default_factory=list)
    source: Optional[str] = None


class ChatResponse(BaseModel):
    response: str
    translationInfo: Optional[TranslationInfo] = None


@router.post("/message", response_model=ChatResponse)
async def chat_endpoint(
    request: ChatRequest,
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
):
    if not (request.message or "").strip():
        return JSONResponse(status_code=400, content={"response": EMPTY_MESSAGE_RESPONSE})

    try:
        answer = await orchestrator.answer(
            request.message, request.chatHistory, source=request.source or "chat"
        )
        return ChatResponse(
            response=answer.text,
            translationInfo=TranslationInfo(
                wasTranslated=answer.translation.was_translated,
                detectedLanguage=answer.translation.detected_language,
            ),
        )
    except InvalidRequestError:
        return JSONResponse(status_code=400, content={"response": EMPTY_MESSAGE_RESPONSE})
    except Exception as e:
        logger.error(f"Erro no Chat: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"response": APOLOGY})
