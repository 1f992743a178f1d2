import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from catalog_assistant.api.v1 import chat, embeddings, search
from catalog_assistant.core.config import configure_logging, settings
from catalog_assistant.core.exceptions import InvalidRequestError
from catalog_assistant.core.rabbitmq import start_rabbitmq_consumer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup ---
    configure_logging()
    logger.info("🚀 Iniciando Catalog Assistant...")

    app.state.rabbitmq_connection = None
    if settings.RABBITMQ_URL:
        app.state.rabbitmq_connection = await start_rabbitmq_consumer()
    else:
        logger.info("RABBITMQ_URL não definido, consumer de catálogo desativado")

    yield

    # --- Shutdown ---
    logger.info("🛑 Desligando serviços...")
    if app.state.rabbitmq_connection is not None:
        try:
            await app.state.rabbitmq_connection.close()
            logger.info("🐰 Conexão RabbitMQ fechada.")
        except Exception as e:
            logger.error(f"Erro ao fechar RabbitMQ: {e}")


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InvalidRequestError)
async def invalid_request_handler(request: Request, exc: InvalidRequestError):
    return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})


# Rotas
app.include_router(chat.router, prefix=f"{settings.API_V1_STR}/chat", tags=["chat"])
app.include_router(
    embeddings.router, prefix=f"{settings.API_V1_STR}/embeddings", tags=["embeddings"]
)
app.include_router(search.router, prefix=f"{settings.API_V1_STR}/search", tags=["search"])


@app.get("/api/health")
def health_check():
    return {"status": "ok", "service": settings.PROJECT_NAME}
