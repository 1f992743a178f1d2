import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from catalog_assistant.core.config import settings
from catalog_assistant.core.exceptions import CatalogAssistantError
from catalog_assistant.services.semantic_search import SearchParams, SemanticSearchService
from catalog_assistant.services.similarity import dedupe_by_entity

logger = logging.getLogger(__name__)

RECOGNITION_FAILED_MESSAGE = (
    "Lo siento, no pude reconocer claramente el producto en la imagen. Por favor, "
    "intenta con una imagen más clara o describe el producto que buscas."
)


class MatchScenario(str, Enum):
    EXACT_MATCH = "exact_match"
    SIMILAR_PRODUCTS = "similar_products"
    NO_MATCH = "no_match"
    RECOGNITION_FAILED = "recognition_failed"


class ImageMatchOutcome(BaseModel):
    success: bool
    scenario: MatchScenario
    message: str
    product: Optional[Dict[str, Any]] = None
    similar_products: List[Dict[str, Any]] = Field(default_factory=list)


class ImageMatchService:
    """
    Looks up the product name produced by the image recognizer in the
    catalog and decides between an exact match, a few similar products or
    no match at all.
    """

    def __init__(self, search: SemanticSearchService):
        self.search = search

    async def match(self, product_name: Optional[str]) -> ImageMatchOutcome:
        name = (product_name or "").strip()
        if not name:
            return ImageMatchOutcome(
                success=False,
                scenario=MatchScenario.RECOGNITION_FAILED,
                message=RECOGNITION_FAILED_MESSAGE,
            )

        try:
            outcome = await self.search.search(
                SearchParams(
                    query=name,
                    scope="products",
                    threshold=settings.IMAGE_MATCH_SEARCH_THRESHOLD,
                    max_results=5,
                    source="image",
                )
            )
        except CatalogAssistantError as e:
            logger.error(f"❌ Erro buscando produto reconhecido '{name}': {e}")
            return ImageMatchOutcome(
                success=False,
                scenario=MatchScenario.RECOGNITION_FAILED,
                message="Error al buscar en la base de datos",
            )

        results = dedupe_by_entity(outcome.results)
        if results and results[0].similarity > settings.IMAGE_MATCH_EXACT_THRESHOLD:
            best = results[0].metadata
            return ImageMatchOutcome(
                success=True,
                scenario=MatchScenario.EXACT_MATCH,
                message=f"Producto encontrado: {best.get('name')}",
                product=best,
            )

        similar = [
            r.metadata
            for r in results[:2]
            if r.similarity > settings.IMAGE_MATCH_SIMILAR_THRESHOLD
        ]
        if similar:
            names = ", ".join(str(p.get("name")) for p in similar)
            return ImageMatchOutcome(
                success=True,
                scenario=MatchScenario.SIMILAR_PRODUCTS,
                message=f'No tenemos exactamente "{name}", pero tenemos productos similares: {names}',
                similar_products=similar,
            )

        return ImageMatchOutcome(
            success=True,
            scenario=MatchScenario.NO_MATCH,
            message=f'No tenemos el producto "{name}" ni productos similares en nuestro catálogo',
        )
