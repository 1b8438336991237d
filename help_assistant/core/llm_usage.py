"""Token usage logger for generative-model calls."""

import logging

from supabase import Client

from help_assistant.core.schemas_assistant import TokenUsage

logger = logging.getLogger(__name__)

USAGE_TABLE = "llm_token_usage"

# Pricing per 1M tokens: (input, output)
MODEL_PRICING: dict[str, tuple[float, float]] = {
    # OpenAI
    "gpt-4o": (2.50, 10.0),
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4.1-mini": (0.40, 1.60),
    # Anthropic
    "claude-haiku-4-5-20251001": (0.80, 4.0),
    "claude-3-5-haiku-20241022": (0.80, 4.0),
    "claude-sonnet-4-5-20250929": (3.0, 15.0),
}


def _estimate_cost(model: str, tokens_input: int, tokens_output: int) -> float:
    """Estimate cost in USD based on model pricing."""
    pricing = MODEL_PRICING.get(model)
    if not pricing:
        # Try prefix match for model variants
        for key, val in MODEL_PRICING.items():
            if model.startswith(key.rsplit("-", 1)[0]):
                pricing = val
                break
    if not pricing:
        logger.warning(f"No pricing found for model '{model}', using $0")
        return 0.0

    input_rate, output_rate = pricing
    cost = (tokens_input * input_rate / 1_000_000) + (tokens_output * output_rate / 1_000_000)
    return round(cost, 6)


class LLMUsageLogger:
    """Persists per-account token usage. Never raises."""

    def __init__(self, client: Client):
        self._client = client

    def log(
        self,
        account_id: str,
        endpoint: str,
        model: str,
        provider: str,
        usage: TokenUsage,
    ) -> None:
        """Insert one usage row. Fire-and-forget."""
        try:
            estimated_cost = _estimate_cost(model, usage.prompt_tokens, usage.completion_tokens)

            row = {
                "account_id": account_id,
                "endpoint": endpoint,
                "model": model,
                "provider": provider,
                "prompt_tokens": usage.prompt_tokens,
                "completion_tokens": usage.completion_tokens,
                "total_tokens": usage.total_tokens,
                "estimated_cost_usd": estimated_cost,
            }
            self._client.table(USAGE_TABLE).insert(row).execute()

            logger.debug(
                f"LLM usage logged: {endpoint} model={model} "
                f"tokens={usage.prompt_tokens}+{usage.completion_tokens} "
                f"cost=${estimated_cost:.4f}"
            )
        except Exception as e:
            # Never fail the main operation due to logging
            logger.error(f"Failed to log LLM usage: {e}")
