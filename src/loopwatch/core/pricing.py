"""Approximate USD cost estimation from token usage."""

from __future__ import annotations

# Family -> (input, output) USD per million tokens
MODEL_PRICES: dict[str, tuple[float, float]] = {
    "opus": (15.0, 75.0),
    "sonnet": (3.0, 15.0),
    "haiku": (0.8, 4.0),
}

DEFAULT_FAMILY = "sonnet"

# Multipliers on the input price
CACHE_READ_FACTOR = 0.1
CACHE_WRITE_FACTOR = 1.25


def model_family(model: str) -> str:
    """Map a model identifier such as ``claude-opus-4-1`` to a price family."""
    lowered = model.lower()
    for family in MODEL_PRICES:
        if family in lowered:
            return family
    return DEFAULT_FAMILY


def estimate_cost(
    model: str,
    input_tokens: int = 0,
    output_tokens: int = 0,
    cache_read_tokens: int = 0,
    cache_creation_tokens: int = 0,
) -> float:
    """Estimate the cost of one usage record for the given model."""
    input_price, output_price = MODEL_PRICES[model_family(model)]
    total = (
        input_tokens * input_price
        + output_tokens * output_price
        + cache_read_tokens * input_price * CACHE_READ_FACTOR
        + cache_creation_tokens * input_price * CACHE_WRITE_FACTOR
    )
    return total / 1_000_000
