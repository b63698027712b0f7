"""Per-call cost estimation for the usage log.

Only the LLM call carries a metered price; video search spends free
quota units and feeds are unauthenticated, so both record zero cost.
"""

from __future__ import annotations

from typing import Any

import structlog

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

# Approximate pricing per 1M tokens (input, output) in USD
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4o": (2.50, 10.00),
    "claude-haiku-3-5-20241022": (0.80, 4.00),
    "claude-sonnet-4-5-20250929": (3.00, 15.00),
    "gemini-1.5-flash": (0.075, 0.30),
}

_FALLBACK_PRICING = (5.0, 15.0)


def estimate_llm_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Estimate the USD cost of one completion.

    Args:
        model: Model identifier, with or without a ``provider/`` prefix.
        input_tokens: Prompt token count.
        output_tokens: Completion token count.

    Returns:
        Estimated cost in USD. Unknown models use a conservative rate.
    """
    bare = model.split("/", 1)[-1]
    if bare not in MODEL_PRICING:
        logger.debug("pricing_unknown_model", model=model)
    input_price, output_price = MODEL_PRICING.get(bare, _FALLBACK_PRICING)
    return (input_tokens * input_price + output_tokens * output_price) / 1_000_000


def token_usage(response: Any) -> tuple[int, int]:
    """Pull ``(prompt_tokens, completion_tokens)`` from a completion response."""
    usage = getattr(response, "usage", None)
    if usage is None:
        return 0, 0
    prompt = int(getattr(usage, "prompt_tokens", 0) or 0)
    completion = int(getattr(usage, "completion_tokens", 0) or 0)
    return prompt, completion
