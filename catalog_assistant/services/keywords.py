"""
Lexical helpers for the keyword and domain-term retrieval tiers.

All matching is lowercase and accent-insensitive ("estacion" matches
"Estación"), and plain substring based.
"""

import re
import unicodedata
from typing import Any, Dict, Iterable, List

from catalog_assistant.models.schemas import EntityType, ProductAttributes
from catalog_assistant.services.json_visitor import JsonStringCollector

STOP_WORDS = frozenset(
    {
        # es
        "a", "al", "algo", "algun", "alguna", "algunos", "ante", "como", "con",
        "cual", "cuales", "cuando", "de", "del", "donde", "el", "ella", "en",
        "entre", "es", "esa", "ese", "eso", "esta", "este", "esto", "hay",
        "la", "las", "le", "les", "lo", "los", "mas", "me", "mi", "mis", "muy",
        "necesito", "no", "nos", "o", "para", "pero", "por", "que", "quiero",
        "se", "si", "sin", "sobre", "su", "sus", "tambien", "te", "tengo",
        "tiene", "tienen", "tu", "un", "una", "unas", "uno", "unos", "y", "ya",
        "busco", "hola", "gracias",
        # en
        "about", "an", "and", "are", "for", "from", "have", "how", "i", "in",
        "is", "it", "me", "my", "need", "of", "on", "or", "the", "to", "want",
        "what", "which", "with", "you",
    }
)

MIN_KEYWORD_LENGTH = 2
MAX_KEYWORD_LENGTH = 30

_TOKEN_SPLIT = re.compile(r"[\s\-_.,;:!?¡¿()\[\]{}\"'/\\|+*=<>#@&%$~`^]+")

# term (accent-folded) -> substrings searched for in entity text
DOMAIN_TERMS: Dict[str, List[str]] = {
    "estacion": ["estacion"],
    "meteorologica": ["meteorolog", "weather"],
    "meteorologia": ["meteorolog", "weather"],
    "clima": ["clima", "meteorolog", "weather"],
    "pluviometro": ["pluviometr", "lluvia", "rain"],
    "lluvia": ["lluvia", "pluviometr", "rain"],
    "anemometro": ["anemometr", "viento", "wind"],
    "viento": ["viento", "anemometr", "wind"],
    "temperatura": ["temperatura", "temperature", "termometr"],
    "humedad": ["humedad", "humidity", "higrometr"],
    "presion": ["presion", "barometr", "pressure"],
    "radiacion": ["radiacion", "solar", "radiation"],
    "sensor": ["sensor"],
    "datalogger": ["datalogger", "data logger", "registrador"],
    "registrador": ["registrador", "datalogger", "data logger"],
    "suelo": ["suelo", "soil"],
    "agua": ["agua", "water"],
}


def fold_accents(text: str) -> str:
    """Lowercases and strips combining marks (á -> a, ñ -> n)."""
    decomposed = unicodedata.normalize("NFKD", (text or "").lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def extract_keywords(query: str) -> List[str]:
    """
    Splits a query into search keywords, dropping stop-words, pure numbers
    and tokens outside 2..30 characters. Order of first appearance is kept.
    """
    keywords: List[str] = []
    for token in _TOKEN_SPLIT.split((query or "").lower()):
        if not token or token.isdigit():
            continue
        if not MIN_KEYWORD_LENGTH <= len(token) <= MAX_KEYWORD_LENGTH:
            continue
        if fold_accents(token) in STOP_WORDS:
            continue
        if token not in keywords:
            keywords.append(token)
    return keywords


def matched_domain_terms(query: str) -> List[str]:
    folded = fold_accents(query)
    return [term for term in DOMAIN_TERMS if term in folded]


def _join(values: Iterable[Any]) -> str:
    return " ".join(str(v) for v in values if v is not None and str(v).strip())


def searchable_text(entity: Dict[str, Any], entity_type: EntityType) -> str:
    """Every textual attribute of a catalog entity, folded into one string."""
    if entity_type == EntityType.PRODUCT:
        attributes = ProductAttributes.from_product(entity)
        parts = [
            entity.get("name"),
            entity.get("categoria"),
            entity.get("description"),
            entity.get("type"),
            _join(entity.get("tags") or []),
            _join(attributes.searchable_values()),
            _join(JsonStringCollector.collect(entity.get("product_data"))),
        ]
    else:
        parts = [
            entity.get("brand_name"),
            entity.get("title"),
            entity.get("category"),
            entity.get("content"),
            _join(entity.get("tags") or []),
            _join(JsonStringCollector.collect(entity.get("json_data"))),
        ]
    return fold_accents(_join(parts))


def headline_text(entity: Dict[str, Any], entity_type: EntityType) -> str:
    """Name plus description, used to order keyword hits."""
    if entity_type == EntityType.PRODUCT:
        return fold_accents(_join([entity.get("name"), entity.get("description")]))
    return fold_accents(
        _join([entity.get("brand_name"), entity.get("title"), entity.get("content")])
    )
