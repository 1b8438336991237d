"""Hybrid module detection: keyword overlap plus module-summary embeddings."""

from help_assistant.core.config import Settings
from help_assistant.core.logging import get_logger
from help_assistant.core.modules import MODULE_DEFINITIONS
from help_assistant.core.schemas_assistant import DetectedModule, ModuleDefinition
from help_assistant.db.assistant_store import AssistantStore

logger = get_logger(__name__)

# Fraction of matched keywords is scaled by this before clipping to 1
KEYWORD_CONFIDENCE_SCALE = 5


def _sort_and_cap(modules: list[DetectedModule], limit: int) -> list[DetectedModule]:
    # sorted() is stable, so ties keep catalog / search order
    return sorted(modules, key=lambda m: m.confidence, reverse=True)[:limit]


def detect_modules_by_keywords(
    question: str,
    limit: int,
    catalog: list[ModuleDefinition] | None = None,
) -> list[DetectedModule]:
    """
    Score modules by case-insensitive keyword substring matches.

    Confidence is min(1, matches / total_keywords * 5), counting the
    module's keywords and every submodule keyword. Modules with no
    match are dropped.
    """
    lower = question.lower()
    detected: list[DetectedModule] = []

    for module in catalog if catalog is not None else MODULE_DEFINITIONS:
        keywords = module.all_keywords
        matches = sum(1 for kw in keywords if kw.lower() in lower)
        if matches == 0:
            continue

        confidence = min(1.0, (matches / max(1, len(keywords))) * KEYWORD_CONFIDENCE_SCALE)
        detected.append(
            DetectedModule(
                module_id=module.id,
                name=module.name,
                confidence=confidence,
                source="keyword",
            )
        )

    return _sort_and_cap(detected, limit)


class ModuleDetector:
    """Detects which application modules a question is about."""

    def __init__(self, store: AssistantStore, settings: Settings):
        self._store = store
        self.threshold = settings.MODULE_DETECTION_THRESHOLD
        self.max_modules = settings.MAX_MODULES_PER_QUERY
        self.keyword_boost = settings.MODULE_KEYWORD_BOOST

    def _boost(self, module: DetectedModule) -> DetectedModule:
        return module.model_copy(
            update={"confidence": min(1.0, module.confidence + self.keyword_boost)}
        )

    def detect_keywords_only(self, question: str) -> list[DetectedModule]:
        """Keyword pass alone, with the keyword boost applied as in detect()."""
        return [self._boost(m) for m in detect_modules_by_keywords(question, self.max_modules)]

    def detect_by_embedding(self, question_embedding: list[float]) -> list[DetectedModule]:
        """Similarity search against module summaries above the detection threshold."""
        rows = self._store.search_module_summaries(
            question_embedding, self.threshold, self.max_modules
        )
        return [
            DetectedModule(
                module_id=row["module_id"],
                name=row.get("name") or row["module_id"],
                confidence=min(1.0, max(0.0, float(row["similarity"]))),
                source="embedding",
            )
            for row in rows
        ]

    def detect(self, question: str, question_embedding: list[float]) -> list[DetectedModule]:
        """
        Merge keyword and embedding detections.

        A module found by both passes gets its embedding confidence plus the
        keyword boost and source "hybrid". Keyword-only modules also receive
        the boost. If the embedding pass fails, keyword results are used alone.

        Args:
            question: Raw user question
            question_embedding: Embedding of the same question

        Returns:
            At most MAX_MODULES_PER_QUERY modules, highest confidence first
        """
        keyword_modules = detect_modules_by_keywords(question, self.max_modules)

        try:
            embedding_modules = self.detect_by_embedding(question_embedding)
        except Exception as e:
            logger.warning(
                f"Embedding-based module detection failed, using keywords only: {e}",
                extra={"extra_data": {"keyword_modules": [m.module_id for m in keyword_modules]}},
            )
            embedding_modules = []

        merged: dict[str, DetectedModule] = {m.module_id: m for m in embedding_modules}

        for mod in keyword_modules:
            existing = merged.get(mod.module_id)
            if existing is not None:
                merged[mod.module_id] = existing.model_copy(
                    update={
                        "confidence": min(1.0, existing.confidence + self.keyword_boost),
                        "source": "hybrid",
                    }
                )
            else:
                merged[mod.module_id] = self._boost(mod)

        result = _sort_and_cap(list(merged.values()), self.max_modules)
        logger.debug(
            f"Detected modules: {[(m.module_id, round(m.confidence, 3), m.source) for m in result]}"
        )
        return result
