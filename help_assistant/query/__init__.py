"""Question-answering pipeline for the in-app help assistant.

This package provides:
- Hybrid module detection (keywords + module summary embeddings)
- Token-budgeted chunk retrieval with unfiltered fallback
- Near-duplicate chunk elimination
- Sliding-window conversation memory
- Content-addressed answer cache
- Prompt assembly under per-section token budgets
- The request orchestrator tying them together
"""

from help_assistant.query.pipeline import AssistantPipeline, PipelineStage, determine_confidence

__all__ = [
    "AssistantPipeline",
    "PipelineStage",
    "determine_confidence",
]
