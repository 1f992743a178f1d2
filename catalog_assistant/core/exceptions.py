"""Error taxonomy shared by the retrieval, cache and chat layers."""


class CatalogAssistantError(Exception):
    """Base class for every error raised by this service."""


class ProviderUnavailableError(CatalogAssistantError):
    """An external AI provider failed, timed out or returned garbage."""


class EmbeddingProviderError(ProviderUnavailableError):
    """The embedding provider could not turn a text into a vector."""


class GenerationError(ProviderUnavailableError):
    """The LLM provider could not produce an answer."""


class MalformedCacheEntryError(CatalogAssistantError):
    """A cached row could not be decoded back into ranked results."""


class InvalidRequestError(CatalogAssistantError):
    """The caller sent an empty or otherwise unusable request."""
