"""
Query pipeline: question in, grounded answer out.

Steps:
1. Validate input
2. Check cache (hit returns immediately)
3. Embed the question
4. Detect modules (UI path + keywords + embeddings)
5. Retrieve chunks, dropping the module filter when nothing matched
6. Deduplicate chunks
7. Load conversation memory
8. Render capability rules for the implicated modules
9. Assemble the prompt
10. Call the generative model
11. Confidence, sources, cache write-through and memory update

Store and embedding calls are blocking and run in worker threads. Every
outbound call is bounded by its configured timeout; a timeout is reported
as the failure kind of that step.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable

from help_assistant.core.capabilities import format_capability_map_for_prompt
from help_assistant.core.config import Settings
from help_assistant.core.embeddings import EmbeddingProvider, embed_text_async
from help_assistant.core.errors import ErrorCode, RequestAbandoned, create_error
from help_assistant.core.llm import ChatProvider
from help_assistant.core.llm_usage import LLMUsageLogger
from help_assistant.core.logging import get_logger, log_with_context
from help_assistant.core.modules import MODULE_DEFINITIONS, get_modules_from_path
from help_assistant.core.schemas_assistant import (
    AssistantQuery,
    AssistantResponse,
    ConfidenceLabel,
    ConversationMemory,
    DetectedModule,
    RetrievedChunk,
    TokenUsage,
)
from help_assistant.core.tokenizer import count_tokens
from help_assistant.db.assistant_store import AssistantStore
from help_assistant.query.cache import QueryCache, build_cache_key
from help_assistant.query.deduplicator import deduplicate_chunks
from help_assistant.query.memory import ConversationMemoryStore
from help_assistant.query.module_detector import ModuleDetector
from help_assistant.query.prompt_assembler import PromptBudgets, assemble_prompt, extract_sources
from help_assistant.query.retriever import ChunkRetriever

logger = get_logger(__name__)

USAGE_ENDPOINT = "assistant/chat"

StageCallback = Callable[["PipelineStage"], None]
DisconnectProbe = Callable[[], Awaitable[bool]]


class PipelineStage(str, Enum):
    """States a request moves through."""

    VALIDATING = "validating"
    CACHE_CHECK = "cache_check"
    EMBEDDING = "embedding"
    DETECTING_MODULES = "detecting_modules"
    RETRIEVING = "retrieving"
    DEDUPLICATING = "deduplicating"
    LOADING_MEMORY = "loading_memory"
    RENDERING_CAPABILITIES = "rendering_capabilities"
    ASSEMBLING_PROMPT = "assembling_prompt"
    CALLING_MODEL = "calling_model"
    FINALIZING = "finalizing"
    DONE = "done"
    ERROR = "error"


def determine_confidence(chunks: list[RetrievedChunk]) -> ConfidenceLabel:
    """Coarse label from the mean similarity of the final chunk set."""
    if not chunks:
        return "none"

    avg_similarity = sum(c.similarity for c in chunks) / len(chunks)
    if avg_similarity >= 0.75:
        return "high"
    if avg_similarity >= 0.6:
        return "medium"
    return "low"


def merge_module_ids(path_modules: list[str], detected: list[DetectedModule]) -> list[str]:
    """Path-derived modules first, then detections, without repeats."""
    merged: list[str] = []
    for module_id in path_modules + [m.module_id for m in detected]:
        if module_id not in merged:
            merged.append(module_id)
    return merged


def collect_modules_used(chunks: list[RetrievedChunk], implicated: list[str]) -> list[str]:
    """Distinct chunk modules in retrieval order, then implicated modules not yet listed."""
    modules: list[str] = []
    for module_id in [c.module for c in chunks] + implicated:
        if module_id not in modules:
            modules.append(module_id)
    return modules


class AssistantPipeline:
    """
    Orchestrates one question through retrieval, prompting and generation.

    Holds only provider and store handles; no per-request state survives
    between calls except the set of pending usage-logging tasks.
    """

    def __init__(
        self,
        settings: Settings,
        store: AssistantStore,
        embedding_provider: EmbeddingProvider,
        chat_provider: ChatProvider,
        usage_logger: LLMUsageLogger | None = None,
    ):
        self.settings = settings
        self.store = store
        self.embedding_provider = embedding_provider
        self.chat_provider = chat_provider
        self.usage_logger = usage_logger

        self.cache = QueryCache(store, settings)
        self.memory = ConversationMemoryStore(store, settings)
        self.detector = ModuleDetector(store, settings)
        self.retriever = ChunkRetriever(store, settings)
        self.budgets = PromptBudgets.from_settings(settings)

        self._background_tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _run_store(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking store call in a worker thread under the store timeout."""
        return await asyncio.wait_for(
            asyncio.to_thread(func, *args),
            timeout=self.settings.STORE_TIMEOUT_SECONDS,
        )

    @staticmethod
    def _enter(stage: PipelineStage, on_stage: StageCallback | None, session_id: str) -> None:
        logger.debug("Pipeline stage entered", extra={"session_id": session_id, "stage": stage.value})
        if on_stage is not None:
            on_stage(stage)

    @staticmethod
    async def _ensure_connected(is_disconnected: DisconnectProbe | None) -> None:
        if is_disconnected is not None and await is_disconnected():
            raise RequestAbandoned("Client disconnected")

    def _schedule_usage_log(self, account_id: str, usage: TokenUsage) -> None:
        if self.usage_logger is None:
            return

        task = asyncio.create_task(
            asyncio.to_thread(
                self.usage_logger.log,
                account_id,
                USAGE_ENDPOINT,
                self.chat_provider.model,
                self.chat_provider.name,
                usage,
            )
        )
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def wait_for_background_tasks(self) -> None:
        """Await pending usage-logging tasks (shutdown, tests)."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    async def process(
        self,
        query: AssistantQuery,
        on_stage: StageCallback | None = None,
        is_disconnected: DisconnectProbe | None = None,
    ) -> AssistantResponse:
        """
        Answer a question.

        Args:
            query: Question, session, user and optional UI context
            on_stage: Called with every stage entered, including ERROR
            is_disconnected: Awaitable probe; when it reports True the
                remaining network calls are abandoned

        Returns:
            AssistantResponse

        Raises:
            AssistantError: Validation, embedding, retrieval or model failure
            RequestAbandoned: The caller disconnected mid-request
        """
        try:
            return await self._process(query, on_stage, is_disconnected)
        except Exception:
            self._enter(PipelineStage.ERROR, on_stage, query.session_id)
            raise

    async def _process(
        self,
        query: AssistantQuery,
        on_stage: StageCallback | None,
        is_disconnected: DisconnectProbe | None,
    ) -> AssistantResponse:
        started = time.perf_counter()
        session_id = query.session_id
        current_path = query.ui_context.current_path if query.ui_context else None

        # --- Validate ---
        self._enter(PipelineStage.VALIDATING, on_stage, session_id)
        question = query.question.strip()
        if not question:
            raise create_error(ErrorCode.EMPTY_QUERY)
        if count_tokens(question) > self.settings.MAX_QUESTION_TOKENS:
            raise create_error(
                ErrorCode.QUERY_TOO_LONG,
                f"Question has {count_tokens(question)} tokens "
                f"(max {self.settings.MAX_QUESTION_TOKENS})",
            )

        # --- Cache ---
        self._enter(PipelineStage.CACHE_CHECK, on_stage, session_id)
        await self._ensure_connected(is_disconnected)
        cache_key = build_cache_key(question, current_path)
        cached = None
        try:
            cached = await self._run_store(self.cache.check, cache_key)
        except Exception as e:
            logger.warning(f"Cache lookup failed, continuing without cache: {e}")

        if cached is not None:
            self._enter(PipelineStage.DONE, on_stage, session_id)
            log_with_context(
                logger,
                logging.INFO,
                "Assistant answered from cache",
                session_id=session_id,
                cached=True,
                modules=cached.modules_used,
                hit_count=cached.hit_count,
                duration_ms=int((time.perf_counter() - started) * 1000),
            )
            return AssistantResponse(
                answer=cached.response,
                sources=[],
                confidence="high",
                cached=True,
                modules_used=cached.modules_used,
            )

        # --- Embed ---
        self._enter(PipelineStage.EMBEDDING, on_stage, session_id)
        await self._ensure_connected(is_disconnected)
        try:
            query_embedding = await asyncio.wait_for(
                embed_text_async(self.embedding_provider, question),
                timeout=self.settings.EMBEDDING_TIMEOUT_SECONDS,
            )
        except Exception as e:
            logger.error(f"Embedding generation failed: {e!r}")
            raise create_error(ErrorCode.EMBEDDING_FAILED, str(e) or repr(e)) from e

        # --- Detect modules ---
        self._enter(PipelineStage.DETECTING_MODULES, on_stage, session_id)
        await self._ensure_connected(is_disconnected)
        path_modules = get_modules_from_path(current_path)
        try:
            detected = await self._run_store(self.detector.detect, question, query_embedding)
        except Exception as e:
            logger.warning(f"Module detection failed, using keywords only: {e!r}")
            detected = self.detector.detect_keywords_only(question)
        implicated = merge_module_ids(path_modules, detected)

        # --- Retrieve ---
        self._enter(PipelineStage.RETRIEVING, on_stage, session_id)
        await self._ensure_connected(is_disconnected)
        try:
            chunks = await self._run_store(
                self.retriever.retrieve_with_fallback, query_embedding, implicated or None
            )
        except Exception as e:
            logger.error(f"Chunk retrieval failed: {e!r}")
            raise create_error(ErrorCode.INTERNAL_ERROR, f"Chunk retrieval failed: {e!r}") from e

        # --- Deduplicate ---
        self._enter(PipelineStage.DEDUPLICATING, on_stage, session_id)
        unique_chunks = deduplicate_chunks(chunks, self.settings.JACCARD_THRESHOLD)
        if not unique_chunks:
            log_with_context(
                logger,
                logging.INFO,
                "No relevant documentation found, answering with placeholder",
                session_id=session_id,
                code=ErrorCode.NO_CHUNKS_FOUND.value,
                modules=implicated,
            )

        # --- Memory ---
        self._enter(PipelineStage.LOADING_MEMORY, on_stage, session_id)
        await self._ensure_connected(is_disconnected)
        memory: ConversationMemory | None = None
        try:
            memory = await self._run_store(self.memory.load, session_id)
        except Exception as e:
            logger.warning(f"Memory load failed, continuing without memory: {e!r}")

        # --- Capabilities ---
        self._enter(PipelineStage.RENDERING_CAPABILITIES, on_stage, session_id)
        capability_text = format_capability_map_for_prompt(implicated)

        # --- Prompt ---
        self._enter(PipelineStage.ASSEMBLING_PROMPT, on_stage, session_id)
        messages = assemble_prompt(
            question=question,
            chunks=unique_chunks,
            memory=memory,
            capability_text=capability_text,
            ui_context=query.ui_context,
            budgets=self.budgets,
            locale=self.settings.ASSISTANT_LOCALE,
        )

        # --- Generate ---
        self._enter(PipelineStage.CALLING_MODEL, on_stage, session_id)
        await self._ensure_connected(is_disconnected)
        try:
            completion = await asyncio.wait_for(
                self.chat_provider.complete(
                    messages,
                    temperature=self.settings.LLM_TEMPERATURE,
                    max_tokens=self.settings.LLM_MAX_TOKENS,
                ),
                timeout=self.settings.LLM_TIMEOUT_SECONDS,
            )
        except Exception as e:
            logger.error(f"LLM call failed ({self.chat_provider.name}): {e!r}")
            raise create_error(ErrorCode.LLM_FAILED, str(e) or repr(e)) from e

        answer = completion.text
        if completion.usage is not None:
            self._schedule_usage_log(query.user_id, completion.usage)

        # --- Finalize ---
        self._enter(PipelineStage.FINALIZING, on_stage, session_id)
        confidence = determine_confidence(unique_chunks)
        sources = extract_sources(unique_chunks)
        modules_used = collect_modules_used(unique_chunks, implicated)
        chunk_ids = [c.id for c in unique_chunks]

        try:
            await self._run_store(self.cache.save, cache_key, answer, modules_used, chunk_ids)
        except Exception as e:
            logger.error(f"Cache save failed: {e!r}")

        try:
            await self._run_store(
                self.memory.update,
                session_id,
                query.user_id,
                question,
                answer,
                modules_used[0] if modules_used else None,
            )
        except Exception as e:
            logger.error(f"Memory update failed: {e!r}")

        self._enter(PipelineStage.DONE, on_stage, session_id)
        log_with_context(
            logger,
            logging.INFO,
            "Assistant answered",
            session_id=session_id,
            cached=False,
            modules=modules_used,
            chunks=len(unique_chunks),
            confidence=confidence,
            duration_ms=int((time.perf_counter() - started) * 1000),
        )

        return AssistantResponse(
            answer=answer,
            sources=sources,
            confidence=confidence,
            cached=False,
            modules_used=modules_used,
        )

    # ------------------------------------------------------------------
    # Maintenance operations
    # ------------------------------------------------------------------

    async def clear_memory(self, session_id: str) -> None:
        await self._run_store(self.memory.clear, session_id)

    async def invalidate_cache(self, module_id: str) -> int:
        return await self._run_store(self.cache.invalidate, module_id)

    async def clear_cache(self) -> int:
        return await self._run_store(self.cache.clear_all)

    async def get_status(self) -> dict[str, Any]:
        """Counts of indexed chunks, cache entries and catalog modules."""
        chunk_count, cache_count = await asyncio.gather(
            self._run_store(self.store.count_chunks),
            self._run_store(self.store.count_cache_entries),
        )
        return {
            "chunks": chunk_count,
            "cacheEntries": cache_count,
            "modules": len(MODULE_DEFINITIONS),
            "llmProvider": self.chat_provider.name,
            "llmModel": self.chat_provider.model,
        }
