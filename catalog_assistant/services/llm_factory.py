from langchain_groq import ChatGroq
from langchain_google_genai import GoogleGenerativeAIEmbeddings
from catalog_assistant.core.config import settings


def get_llm(temperature: float = 0.2, max_tokens: int | None = None):
    """Retorna o modelo de Chat (Groq - Llama 3) com limite de tokens por resposta"""
    return ChatGroq(
        temperature=temperature,
        model=settings.CHAT_MODEL_NAME,
        max_tokens=max_tokens,
        groq_api_key=settings.GROQ_API_KEY,
    )


def get_embeddings():
    """Retorna o modelo de Embeddings (Google)"""
    return GoogleGenerativeAIEmbeddings(
        model=settings.EMBEDDING_MODEL_NAME,
        google_api_key=settings.GOOGLE_API_KEY,
    )
