"""Behavioral tests for the query pipeline with an in-memory store and fake providers."""

import time
from unittest.mock import MagicMock, patch

import pytest

from help_assistant.core.capabilities import CAPABILITY_HEADER
from help_assistant.core.errors import AssistantError, ErrorCode, RequestAbandoned
from help_assistant.core.schemas_assistant import (
    AssistantQuery,
    RetrievedChunk,
    TokenUsage,
    UIContext,
)
from help_assistant.query.cache import build_cache_key, hash_query
from help_assistant.query.pipeline import AssistantPipeline, PipelineStage, determine_confidence
from help_assistant.query.prompt_assembler import NO_DOCUMENTS_TEXT
from tests.fakes.fake_store import FakeChatProvider, FakeEmbeddingProvider

SESSION = "session-1"
USER = "user-1"
CLOSE_SLOT_QUESTION = "¿Puedo cerrar un horario con reservas activas?"


@pytest.fixture
def usage_logger():
    return MagicMock()


@pytest.fixture
def pipeline(settings, fake_store, embedding_provider, chat_provider, usage_logger):
    return AssistantPipeline(
        settings=settings,
        store=fake_store,
        embedding_provider=embedding_provider,
        chat_provider=chat_provider,
        usage_logger=usage_logger,
    )


@pytest.fixture
def seeded_store(fake_store):
    fake_store.add_chunk(
        1,
        "Un horario con reservas activas no se puede cerrar. Cancela primero las reservas.",
        "appointments",
        similarity=0.82,
        section="Cerrar horario",
        heading="Cerrar horario",
        file_path="docs/llm-assistant/modules/appointments/slots.md",
    )
    fake_store.add_chunk(
        2,
        "Para crear horarios usa el botón Crear Horarios en la página de citas.",
        "appointments",
        similarity=0.78,
        section="Crear horario",
        file_path="docs/llm-assistant/modules/appointments/slots.md",
    )
    return fake_store


def _query(question: str = CLOSE_SLOT_QUESTION, path: str | None = "/appointments") -> AssistantQuery:
    return AssistantQuery(
        question=question,
        session_id=SESSION,
        user_id=USER,
        ui_context=UIContext(current_path=path) if path else None,
    )


def test_determine_confidence():
    def chunk(similarity):
        return RetrievedChunk(id=1, content="x", module="m", file_path="f", similarity=similarity)

    assert determine_confidence([]) == "none"
    assert determine_confidence([chunk(0.8), chunk(0.7)]) == "high"
    assert determine_confidence([chunk(0.6)]) == "medium"
    assert determine_confidence([chunk(0.7), chunk(0.4)]) == "low"


# ──────────────────────────────────────────────────────────────────────
# Happy path
# ──────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_cold_cache_reaches_model(pipeline, seeded_store, embedding_provider, chat_provider):
    stages: list[PipelineStage] = []

    response = await pipeline.process(_query(), on_stage=stages.append)

    assert PipelineStage.CALLING_MODEL in stages
    assert stages[0] == PipelineStage.VALIDATING
    assert stages[-1] == PipelineStage.DONE
    assert PipelineStage.ERROR not in stages
    assert response.cached is False
    assert "appointments" in response.modules_used
    assert response.answer == "Respuesta de prueba."
    assert response.confidence == "high"
    assert len(embedding_provider.calls) == 1
    assert len(chat_provider.calls) == 1


@pytest.mark.asyncio
async def test_stage_order(pipeline, seeded_store):
    stages: list[PipelineStage] = []

    await pipeline.process(_query(), on_stage=stages.append)

    assert stages == [
        PipelineStage.VALIDATING,
        PipelineStage.CACHE_CHECK,
        PipelineStage.EMBEDDING,
        PipelineStage.DETECTING_MODULES,
        PipelineStage.RETRIEVING,
        PipelineStage.DEDUPLICATING,
        PipelineStage.LOADING_MEMORY,
        PipelineStage.RENDERING_CAPABILITIES,
        PipelineStage.ASSEMBLING_PROMPT,
        PipelineStage.CALLING_MODEL,
        PipelineStage.FINALIZING,
        PipelineStage.DONE,
    ]


@pytest.mark.asyncio
async def test_sources_are_one_per_module_and_file(pipeline, seeded_store):
    response = await pipeline.process(_query())

    assert len(response.sources) == 1
    assert response.sources[0].module == "appointments"
    assert response.sources[0].file_path == "docs/llm-assistant/modules/appointments/slots.md"


@pytest.mark.asyncio
async def test_prompt_includes_capabilities_and_ui_context(pipeline, seeded_store, chat_provider):
    await pipeline.process(_query())

    system, user = chat_provider.calls[0]
    assert CAPABILITY_HEADER in system.content
    assert "ruta: /appointments" in system.content
    assert CLOSE_SLOT_QUESTION in user.content
    assert "[Doc 1]" in user.content


@pytest.mark.asyncio
async def test_repeat_request_is_served_from_cache(
    pipeline, seeded_store, embedding_provider, chat_provider
):
    first = await pipeline.process(_query())
    stages: list[PipelineStage] = []

    second = await pipeline.process(_query(), on_stage=stages.append)

    assert second.cached is True
    assert second.answer == first.answer
    assert second.sources == []
    assert second.confidence == "high"
    assert second.modules_used == first.modules_used
    assert stages == [PipelineStage.VALIDATING, PipelineStage.CACHE_CHECK, PipelineStage.DONE]
    assert len(embedding_provider.calls) == 1
    assert len(chat_provider.calls) == 1
    entry = seeded_store.cache[hash_query(build_cache_key(CLOSE_SLOT_QUESTION, "/appointments"))]
    assert entry["hit_count"] == 1


@pytest.mark.asyncio
async def test_same_question_from_other_path_caches_independently(pipeline, seeded_store, chat_provider):
    await pipeline.process(_query(path="/appointments"))
    response = await pipeline.process(_query(path="/dashboard/blog"))

    assert response.cached is False
    assert len(chat_provider.calls) == 2


@pytest.mark.asyncio
async def test_memory_updated_with_exchange(pipeline, seeded_store):
    await pipeline.process(_query())

    record = seeded_store.memory[SESSION]
    assert [t["content"] for t in record["turns"]] == [CLOSE_SLOT_QUESTION, "Respuesta de prueba."]
    assert record["active_module"] == "appointments"
    assert record["user_id"] == USER


@pytest.mark.asyncio
async def test_memory_included_in_next_prompt(pipeline, seeded_store, chat_provider):
    await pipeline.process(_query())
    await pipeline.process(_query(question="¿Y cómo creo uno nuevo?"))

    system = chat_provider.calls[1][0].content
    assert f"Usuario: {CLOSE_SLOT_QUESTION}" in system
    assert "Asistente: Respuesta de prueba." in system


@pytest.mark.asyncio
async def test_cache_entry_records_modules_and_chunks(pipeline, seeded_store):
    await pipeline.process(_query())

    entry = seeded_store.cache[hash_query(build_cache_key(CLOSE_SLOT_QUESTION, "/appointments"))]
    assert entry["modules_used"][0] == "appointments"
    assert sorted(entry["chunks_used"]) == [1, 2]
    assert entry["hit_count"] == 0


@pytest.mark.asyncio
async def test_usage_logged_in_background(pipeline, seeded_store, usage_logger):
    await pipeline.process(_query())
    await pipeline.wait_for_background_tasks()

    usage_logger.log.assert_called_once_with(
        USER,
        "assistant/chat",
        "fake-model",
        "fake",
        TokenUsage(prompt_tokens=120, completion_tokens=30, total_tokens=150),
    )


@pytest.mark.asyncio
async def test_question_is_trimmed(pipeline, seeded_store, embedding_provider):
    await pipeline.process(_query(question=f"   {CLOSE_SLOT_QUESTION}   "))
    assert embedding_provider.calls == [CLOSE_SLOT_QUESTION]


# ──────────────────────────────────────────────────────────────────────
# Retrieval fallback and empty results
# ──────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_filtered_retrieval_falls_back_to_unfiltered(pipeline, seeded_store, chat_provider):
    response = await pipeline.process(
        _query(question="¿Cómo publico un artículo en el blog?", path="/dashboard/blog")
    )

    filters = [args[3] for args in seeded_store.calls_to("search_chunks")]
    assert filters == [["blog"], None]
    assert response.modules_used[0] == "appointments"
    assert "blog" in response.modules_used
    assert "[Doc 1]" in chat_provider.calls[0][1].content


@pytest.mark.asyncio
async def test_pipeline_uses_retriever_fallback_once(pipeline, seeded_store):
    with patch.object(
        pipeline.retriever, "retrieve_with_fallback", wraps=pipeline.retriever.retrieve_with_fallback
    ) as fallback:
        await pipeline.process(
            _query(question="¿Cómo publico un artículo en el blog?", path="/dashboard/blog")
        )

    fallback.assert_called_once()
    assert fallback.call_args.args[1] == ["blog"]


@pytest.mark.asyncio
async def test_no_chunks_proceeds_with_placeholder(pipeline, fake_store, chat_provider):
    response = await pipeline.process(_query())

    assert response.confidence == "none"
    assert response.sources == []
    assert response.modules_used[0] == "appointments"
    assert chat_provider.calls[0][1].content.startswith(NO_DOCUMENTS_TEXT)


# ──────────────────────────────────────────────────────────────────────
# Validation
# ──────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
@pytest.mark.parametrize("question", ["", "   ", "\n\t"])
async def test_empty_question_rejected_before_network(
    pipeline, fake_store, embedding_provider, chat_provider, question
):
    stages: list[PipelineStage] = []

    with pytest.raises(AssistantError) as exc_info:
        await pipeline.process(_query(question=question), on_stage=stages.append)

    assert exc_info.value.code == ErrorCode.EMPTY_QUERY
    assert exc_info.value.status_code == 400
    assert stages == [PipelineStage.VALIDATING, PipelineStage.ERROR]
    assert fake_store.calls == []
    assert embedding_provider.calls == []
    assert chat_provider.calls == []


@pytest.mark.asyncio
async def test_too_long_question_rejected(pipeline, fake_store, embedding_provider):
    question = "¿Desafortunadamente " * 150

    with pytest.raises(AssistantError) as exc_info:
        await pipeline.process(_query(question=question))

    assert exc_info.value.code == ErrorCode.QUERY_TOO_LONG
    assert fake_store.calls == []
    assert embedding_provider.calls == []


# ──────────────────────────────────────────────────────────────────────
# Failures
# ──────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_embedding_failure_is_fatal(settings, seeded_store, chat_provider):
    pipeline = AssistantPipeline(
        settings,
        seeded_store,
        FakeEmbeddingProvider(error=RuntimeError("openai down")),
        chat_provider,
    )
    stages: list[PipelineStage] = []

    with pytest.raises(AssistantError) as exc_info:
        await pipeline.process(_query(), on_stage=stages.append)

    assert exc_info.value.code == ErrorCode.EMBEDDING_FAILED
    assert stages[-1] == PipelineStage.ERROR
    assert chat_provider.calls == []
    assert seeded_store.calls_to("search_chunks") == []


@pytest.mark.asyncio
async def test_embedding_timeout_reported_as_embedding_failure(settings, seeded_store, chat_provider):
    class SlowEmbeddingProvider(FakeEmbeddingProvider):
        def embed(self, text):
            time.sleep(0.3)
            return super().embed(text)

    fast_timeout = settings.model_copy(update={"EMBEDDING_TIMEOUT_SECONDS": 0.05})
    pipeline = AssistantPipeline(fast_timeout, seeded_store, SlowEmbeddingProvider(), chat_provider)

    with pytest.raises(AssistantError) as exc_info:
        await pipeline.process(_query())

    assert exc_info.value.code == ErrorCode.EMBEDDING_FAILED


@pytest.mark.asyncio
async def test_llm_failure_is_fatal_and_not_cached(settings, seeded_store, embedding_provider):
    pipeline = AssistantPipeline(
        settings,
        seeded_store,
        embedding_provider,
        FakeChatProvider(error=RuntimeError("rate limited upstream")),
    )
    stages: list[PipelineStage] = []

    with pytest.raises(AssistantError) as exc_info:
        await pipeline.process(_query(), on_stage=stages.append)

    assert exc_info.value.code == ErrorCode.LLM_FAILED
    assert exc_info.value.code != ErrorCode.EMBEDDING_FAILED
    assert PipelineStage.CALLING_MODEL in stages
    assert seeded_store.cache == {}
    assert seeded_store.memory == {}


@pytest.mark.asyncio
async def test_retrieval_failure_is_internal_error(pipeline, seeded_store, chat_provider):
    seeded_store.failing.add("search_chunks")

    with pytest.raises(AssistantError) as exc_info:
        await pipeline.process(_query())

    assert exc_info.value.code == ErrorCode.INTERNAL_ERROR
    assert chat_provider.calls == []


@pytest.mark.asyncio
async def test_module_detection_failure_is_not_fatal(pipeline, seeded_store):
    seeded_store.failing.add("search_module_summaries")

    response = await pipeline.process(_query())

    assert response.cached is False
    assert "appointments" in response.modules_used


@pytest.mark.asyncio
async def test_cache_write_failure_is_swallowed(pipeline, seeded_store):
    seeded_store.failing.add("upsert_cache_entry")

    response = await pipeline.process(_query())

    assert response.answer == "Respuesta de prueba."
    assert len(seeded_store.calls_to("upsert_cache_entry")) == 1
    assert seeded_store.memory[SESSION]


@pytest.mark.asyncio
async def test_memory_write_failure_is_swallowed(pipeline, seeded_store):
    seeded_store.failing.add("upsert_memory")

    response = await pipeline.process(_query())

    assert response.answer == "Respuesta de prueba."
    assert len(seeded_store.calls_to("upsert_memory")) == 1
    assert seeded_store.cache


@pytest.mark.asyncio
async def test_cache_lookup_failure_treated_as_miss(pipeline, seeded_store, chat_provider):
    seeded_store.failing.add("get_cache_entry")

    response = await pipeline.process(_query())

    assert response.cached is False
    assert len(chat_provider.calls) == 1


@pytest.mark.asyncio
async def test_disconnected_caller_abandons_request(pipeline, seeded_store, embedding_provider):
    async def disconnected() -> bool:
        return True

    stages: list[PipelineStage] = []
    with pytest.raises(RequestAbandoned):
        await pipeline.process(_query(), on_stage=stages.append, is_disconnected=disconnected)

    assert stages[-1] == PipelineStage.ERROR
    assert seeded_store.calls == []
    assert embedding_provider.calls == []


@pytest.mark.asyncio
async def test_disconnect_before_model_call_skips_generation(pipeline, seeded_store, chat_provider):
    probes = {"count": 0}

    async def disconnects_late() -> bool:
        probes["count"] += 1
        return probes["count"] > 4

    with pytest.raises(RequestAbandoned):
        await pipeline.process(_query(), is_disconnected=disconnects_late)

    assert chat_provider.calls == []


# ──────────────────────────────────────────────────────────────────────
# Maintenance operations
# ──────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_invalidate_cache_for_module(pipeline, seeded_store):
    await pipeline.process(_query())

    assert await pipeline.invalidate_cache("appointments") == 1
    response = await pipeline.process(_query())
    assert response.cached is False


@pytest.mark.asyncio
async def test_clear_memory(pipeline, seeded_store):
    await pipeline.process(_query())
    await pipeline.clear_memory(SESSION)
    assert SESSION not in seeded_store.memory


@pytest.mark.asyncio
async def test_status(pipeline, seeded_store):
    await pipeline.process(_query())

    status = await pipeline.get_status()

    assert status["chunks"] == 2
    assert status["cacheEntries"] == 1
    assert status["modules"] == 7


@pytest.mark.asyncio
async def test_detection_timeout_falls_back_to_boosted_keywords(pipeline, seeded_store):
    with patch.object(pipeline.detector, "detect", side_effect=TimeoutError()), patch.object(
        pipeline.detector, "detect_keywords_only", wraps=pipeline.detector.detect_keywords_only
    ) as keywords_only:
        response = await pipeline.process(_query(path=None))

    keywords_only.assert_called_once_with(CLOSE_SLOT_QUESTION)
    assert "appointments" in response.modules_used
