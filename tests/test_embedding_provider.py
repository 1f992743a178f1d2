import math

import pytest
from google.api_core.exceptions import ResourceExhausted
from tenacity import wait_none

from catalog_assistant.core.exceptions import EmbeddingProviderError, InvalidRequestError
from catalog_assistant.services.embedding_provider import EmbeddingProvider, prepare_text

from conftest import FakeEmbeddings


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch):
    monkeypatch.setattr(EmbeddingProvider._embed_with_retry.retry, "wait", wait_none())


class TestPrepareText:
    def test_strips_and_truncates(self):
        assert prepare_text("  abcdef  ", 3) == "abc"

    def test_blank_text_is_rejected(self):
        with pytest.raises(InvalidRequestError):
            prepare_text("   ", 10)


class TestEmbeddingProvider:
    @pytest.mark.asyncio
    async def test_returns_vector_of_configured_dimension(self):
        fake = FakeEmbeddings({"hola": [0.1, 0.2, 0.3, 0.4]})
        provider = EmbeddingProvider(fake)

        vector = await provider.embed("  hola ")

        assert vector == [0.1, 0.2, 0.3, 0.4]
        assert fake.calls == ["hola"]

    @pytest.mark.asyncio
    async def test_input_is_truncated_before_submission(self):
        fake = FakeEmbeddings()
        provider = EmbeddingProvider(fake, max_chars=5)

        await provider.embed("abcdefghij")

        assert fake.calls == ["abcde"]

    @pytest.mark.asyncio
    async def test_wrong_dimension_is_a_provider_error(self):
        provider = EmbeddingProvider(FakeEmbeddings(default=[1.0, 0.0]))

        with pytest.raises(EmbeddingProviderError):
            await provider.embed("texto")

    @pytest.mark.asyncio
    async def test_non_finite_values_are_a_provider_error(self):
        provider = EmbeddingProvider(FakeEmbeddings(default=[1.0, math.nan, 0.0, 0.0]))

        with pytest.raises(EmbeddingProviderError):
            await provider.embed("texto")

    @pytest.mark.asyncio
    async def test_provider_exception_is_wrapped(self):
        fake = FakeEmbeddings()
        fake.fail_first = 1
        provider = EmbeddingProvider(fake)

        with pytest.raises(EmbeddingProviderError):
            await provider.embed("texto")
        assert len(fake.calls) == 1

    @pytest.mark.asyncio
    async def test_quota_errors_are_retried(self):
        fake = FakeEmbeddings()
        fake.fail_first = 2
        fake.fail_with = ResourceExhausted("quota exceeded")
        provider = EmbeddingProvider(fake)

        vector = await provider.embed("texto")

        assert len(vector) == 4
        assert len(fake.calls) == 3

    @pytest.mark.asyncio
    async def test_quota_errors_give_up_after_configured_attempts(self):
        fake = FakeEmbeddings()
        fake.fail_first = 10
        fake.fail_with = ResourceExhausted("quota exceeded")
        provider = EmbeddingProvider(fake)

        with pytest.raises(EmbeddingProviderError):
            await provider.embed("texto")
        assert len(fake.calls) == 3
