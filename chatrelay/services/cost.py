"""Token cost accounting over a static pricing table.

Prices are USD per one million tokens. Model names are matched
exactly first, then by the longest registered prefix (so dated model
snapshots such as ``gpt-4o-mini-2024-07-18`` price as their family),
then against a small set of locally hosted model families that cost
nothing.
"""

from dataclasses import dataclass

from chatrelay.services.response import TokenUsage


@dataclass(frozen=True)
class ModelPricing:
    """Input/output price in USD per million tokens."""

    input: float
    output: float

    @property
    def average(self) -> float:
        return (self.input + self.output) / 2


PRICING: dict[str, ModelPricing] = {
    # OpenAI GPT-4
    "gpt-4-turbo": ModelPricing(10.00, 30.00),
    "gpt-4-turbo-preview": ModelPricing(10.00, 30.00),
    "gpt-4-0125-preview": ModelPricing(10.00, 30.00),
    "gpt-4-1106-preview": ModelPricing(10.00, 30.00),
    "gpt-4": ModelPricing(30.00, 60.00),
    "gpt-4-0613": ModelPricing(30.00, 60.00),
    "gpt-4-32k": ModelPricing(60.00, 120.00),
    "gpt-4o": ModelPricing(2.50, 10.00),
    "gpt-4o-2024-11-20": ModelPricing(2.50, 10.00),
    "gpt-4o-2024-08-06": ModelPricing(2.50, 10.00),
    "gpt-4o-2024-05-13": ModelPricing(5.00, 15.00),
    "gpt-4o-mini": ModelPricing(0.15, 0.60),
    "gpt-4o-mini-2024-07-18": ModelPricing(0.15, 0.60),
    # OpenAI GPT-3.5
    "gpt-3.5-turbo": ModelPricing(0.50, 1.50),
    "gpt-3.5-turbo-0125": ModelPricing(0.50, 1.50),
    "gpt-3.5-turbo-1106": ModelPricing(1.00, 2.00),
    "gpt-3.5-turbo-16k": ModelPricing(3.00, 4.00),
    # OpenAI o1
    "o1": ModelPricing(15.00, 60.00),
    "o1-2024-12-17": ModelPricing(15.00, 60.00),
    "o1-preview": ModelPricing(15.00, 60.00),
    "o1-mini": ModelPricing(3.00, 12.00),
    # Anthropic
    "claude-3-5-sonnet": ModelPricing(3.00, 15.00),
    "claude-3-5-sonnet-20241022": ModelPricing(3.00, 15.00),
    "claude-3-5-sonnet-20240620": ModelPricing(3.00, 15.00),
    "claude-3-5-haiku": ModelPricing(1.00, 5.00),
    "claude-3-5-haiku-20241022": ModelPricing(1.00, 5.00),
    "claude-3-opus": ModelPricing(15.00, 75.00),
    "claude-3-opus-20240229": ModelPricing(15.00, 75.00),
    "claude-3-sonnet": ModelPricing(3.00, 15.00),
    "claude-3-sonnet-20240229": ModelPricing(3.00, 15.00),
    "claude-3-haiku": ModelPricing(0.25, 1.25),
    "claude-3-haiku-20240307": ModelPricing(0.25, 1.25),
    # Google Gemini
    "gemini-2.0-flash-exp": ModelPricing(0.00, 0.00),
    "gemini-1.5-pro": ModelPricing(1.25, 5.00),
    "gemini-1.5-flash": ModelPricing(0.075, 0.30),
    "gemini-1.5-flash-8b": ModelPricing(0.0375, 0.15),
    "gemini-pro": ModelPricing(0.50, 1.50),
    # xAI
    "grok-beta": ModelPricing(5.00, 15.00),
    "grok-2": ModelPricing(2.00, 10.00),
    "grok-2-1212": ModelPricing(2.00, 10.00),
    # Meta Llama (hosted)
    "llama-3.3-70b": ModelPricing(0.35, 0.40),
    "llama-3.1-405b": ModelPricing(0.50, 0.50),
    "llama-3.1-70b": ModelPricing(0.35, 0.40),
    "llama-3.1-8b": ModelPricing(0.05, 0.08),
    # DeepSeek
    "deepseek-chat": ModelPricing(0.14, 0.28),
    "deepseek-reasoner": ModelPricing(0.55, 2.19),
    # Local models
    "ollama": ModelPricing(0.00, 0.00),
}

LOCAL_MODEL_PATTERNS = ("llama", "mistral", "mixtral", "qwen", "codellama", "phi", "gemma")
HOSTED_MARKERS = ("together", "groq", "meta-")

PROVIDER_PREFIXES: dict[str, tuple[str, ...]] = {
    "openai": ("gpt-", "o1-"),
    "anthropic": ("claude-",),
    "google": ("gemini-",),
    "xai": ("grok-",),
    "meta": ("llama-",),
    "deepseek": ("deepseek-",),
    "ollama": ("ollama",),
}


def is_local_model(model: str) -> bool:
    """Whether ``model`` names a self-hosted family with no per-token price."""
    lowered = model.lower()
    if any(marker in lowered for marker in HOSTED_MARKERS):
        return False
    return any(pattern in lowered for pattern in LOCAL_MODEL_PATTERNS)


class CostCalculator:
    """Price token usage against ``PRICING``."""

    def __init__(self, pricing: dict[str, ModelPricing] | None = None) -> None:
        self._pricing = dict(PRICING if pricing is None else pricing)
        # Longest first so the most specific prefix wins
        self._prefixes = sorted(self._pricing, key=len, reverse=True)

    def pricing_for(self, model: str) -> ModelPricing | None:
        """Resolve pricing: exact, then longest prefix, then local fallback."""
        if model in self._pricing:
            return self._pricing[model]

        for prefix in self._prefixes:
            if model.startswith(prefix):
                return self._pricing[prefix]

        if is_local_model(model) and "ollama" in self._pricing:
            return self._pricing["ollama"]

        return None

    def has_pricing(self, model: str) -> bool:
        return self.pricing_for(model) is not None

    def supported_models(self) -> list[str]:
        return list(self._pricing)

    def estimate(self, prompt_tokens: int, completion_tokens: int, model: str) -> float:
        """Cost in USD for the given counts, 0.0 for an unpriced model."""
        pricing = self.pricing_for(model)
        if pricing is None:
            return 0.0
        cost = (
            prompt_tokens / 1_000_000 * pricing.input
            + completion_tokens / 1_000_000 * pricing.output
        )
        return round(cost, 6)

    def calculate(self, usage: TokenUsage, model: str) -> float:
        return self.estimate(usage.prompt_tokens, usage.completion_tokens, model)

    def calculate_batch(self, usages: list[TokenUsage], model: str) -> dict[str, float | int]:
        total_cost = 0.0
        prompt = completion = total = 0
        for usage in usages:
            total_cost += self.calculate(usage, model)
            prompt += usage.prompt_tokens
            completion += usage.completion_tokens
            total += usage.total_tokens
        return {
            "total_cost": round(total_cost, 6),
            "prompt_tokens": prompt,
            "completion_tokens": completion,
            "total_tokens": total,
        }

    def cheapest_model(self, provider: str) -> str | None:
        """Cheapest registered model for a provider by average price."""
        prefixes = PROVIDER_PREFIXES.get(provider.lower())
        if not prefixes:
            return None
        candidates = [m for m in self._pricing if m.startswith(prefixes)]
        if not candidates:
            return None
        return min(candidates, key=lambda m: self._pricing[m].average)

    @staticmethod
    def format_cost(cost: float) -> str:
        if cost < 0.01:
            return f"${cost:.6f}"
        if cost < 1.0:
            return f"${cost:.4f}"
        return f"${cost:.2f}"
