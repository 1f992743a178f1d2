import json
import logging

import aio_pika
from aio_pika.abc import AbstractIncomingMessage

from catalog_assistant.core.config import settings
from catalog_assistant.core.database import SessionLocal
from catalog_assistant.models.schemas import EntityType
from catalog_assistant.services.embedding_provider import EmbeddingProvider
from catalog_assistant.services.embedding_store import EntityEmbeddingStore

logger = logging.getLogger(__name__)

# Main (onde o admin publica as mudanças do catálogo)
MAIN_EXCHANGE_NAME = "catalog.topic"
MAIN_QUEUE_NAME = "ai.catalog.embeddings.queue"
ROUTING_KEYS = [
    "product.created",
    "product.updated",
    "product.deactivated",
    "brand.created",
    "brand.updated",
    "brand.deactivated",
]

# Dead Letter
DLX_EXCHANGE_NAME = "catalog.dlx"
DLQ_QUEUE_NAME = "ai.catalog.embeddings.dlq"
DLQ_ROUTING_KEY = "dead.letter"


def parse_routing_key(routing_key: str | None) -> tuple[EntityType, str]:
    """'product.updated' -> (EntityType.PRODUCT, 'updated')"""
    entity, _, action = (routing_key or "").partition(".")
    return EntityType(entity), action


async def handle_catalog_event(store: EntityEmbeddingStore, routing_key: str, data: dict) -> int:
    """
    Applies one catalog change to the embedding store and returns the number
    of embeddings written or removed.
    """
    entity_type, action = parse_routing_key(routing_key)
    entity_id = int(data["id"])

    if action == "deactivated":
        try:
            return await store.delete_for_entity(entity_type, entity_id)
        except Exception as e:
            await store.db.rollback()
            logger.warning(f"⚠️ Não foi possível remover embeddings de {entity_type.value} {entity_id}: {e}")
            return 0

    results = await store.refresh_entity(entity_type, entity_id)
    return sum(1 for r in results if r.success)


async def process_message(message: AbstractIncomingMessage):
    async with message.process(ignore_processed=True):
        try:
            body = message.body.decode()
            try:
                data = json.loads(body)
            except json.JSONDecodeError:
                logger.error("JSON Inválido. Enviando para DLQ.")
                await message.nack(requeue=False)
                return

            logger.info(f"Recebido: {data.get('id', '?')} | Evento: {message.routing_key}")

            async with SessionLocal() as db:
                store = EntityEmbeddingStore(db, EmbeddingProvider())
                count = await handle_catalog_event(store, message.routing_key, data)

            logger.info(f"✅ Sucesso: {data.get('id')} ({count} embeddings)")

        except Exception as e:
            logger.error(f"❌ Erro processando msg: {e}", exc_info=True)
            # Requeue=False manda para a DLQ configurada na fila principal
            await message.nack(requeue=False)


async def start_rabbitmq_consumer():
    try:
        connection = await aio_pika.connect_robust(settings.RABBITMQ_URL)
        channel = await connection.channel()
        await channel.set_qos(prefetch_count=10)

        dlx = await channel.declare_exchange(
            DLX_EXCHANGE_NAME, aio_pika.ExchangeType.DIRECT, durable=True
        )
        dlq = await channel.declare_queue(DLQ_QUEUE_NAME, durable=True)
        await dlq.bind(dlx, routing_key=DLQ_ROUTING_KEY)

        main_exchange = await channel.declare_exchange(
            MAIN_EXCHANGE_NAME, aio_pika.ExchangeType.TOPIC, durable=True
        )
        main_queue = await channel.declare_queue(
            MAIN_QUEUE_NAME,
            durable=True,
            arguments={
                "x-dead-letter-exchange": DLX_EXCHANGE_NAME,
                "x-dead-letter-routing-key": DLQ_ROUTING_KEY,
            },
        )
        for key in ROUTING_KEYS:
            await main_queue.bind(main_exchange, routing_key=key)

        logger.info(f"Consumer ouvindo '{MAIN_QUEUE_NAME}' no exchange '{MAIN_EXCHANGE_NAME}'")

        await main_queue.consume(process_message)
        return connection

    except Exception as e:
        logger.critical(f"Erro fatal RabbitMQ: {e}")
        raise e
