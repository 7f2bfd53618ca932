"""Model table, token pricing, and session cost tracking."""

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from termai.config import DEFAULT_MODELS_PATH
from termai.messages import TokenUsage
from termai.render import render_cost

logger = logging.getLogger(__name__)

FALLBACK_DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "claude": "claude-3-opus-20240229",
    "ollama": "llama3",
}

# Prices are USD per million tokens
BUILTIN_MODELS: dict[str, dict[str, Any]] = {
    "openai": {
        "default": "gpt-4o",
        "models": [
            {"name": "GPT-4o", "value": "gpt-4o", "pricing": {"input": 2.5, "output": 10.0}},
            {"name": "GPT-4o mini", "value": "gpt-4o-mini", "pricing": {"input": 0.15, "output": 0.6}},
            {"name": "GPT-4.1", "value": "gpt-4.1", "pricing": {"input": 2.0, "output": 8.0}},
            {"name": "GPT-4.1 mini", "value": "gpt-4.1-mini", "pricing": {"input": 0.4, "output": 1.6}},
        ],
    },
    "claude": {
        "default": "claude-3-opus-20240229",
        "models": [
            {"name": "Claude 3 Opus", "value": "claude-3-opus-20240229", "pricing": {"input": 15.0, "output": 75.0}},
            {"name": "Claude 3.5 Sonnet", "value": "claude-3-5-sonnet-20241022", "pricing": {"input": 3.0, "output": 15.0}},
            {"name": "Claude 3.5 Haiku", "value": "claude-3-5-haiku-20241022", "pricing": {"input": 0.8, "output": 4.0}},
        ],
    },
    "ollama": {
        "default": "llama3",
        "models": [
            {"name": "Llama 3", "value": "llama3", "pricing": {"input": 0.0, "output": 0.0}},
        ],
    },
}


@dataclass
class ModelPricing:
    input: float
    output: float


@dataclass
class ModelConfig:
    name: str
    value: str
    pricing: ModelPricing


class ModelCatalog:
    """Lookups over the per-provider model table."""

    def __init__(self, table: dict[str, dict[str, Any]] | None = None) -> None:
        self._table = table if table is not None else BUILTIN_MODELS

    @classmethod
    def load(cls, path: Path | None = None) -> "ModelCatalog":
        """Read the model table from TOML, falling back to the built-in table."""
        models_path = path or DEFAULT_MODELS_PATH
        if not models_path.exists():
            return cls()
        try:
            with open(models_path, "rb") as f:
                return cls(tomllib.load(f))
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning("Could not read models config %s: %s", models_path, e)
            return cls()

    def provider_models(self, provider: str) -> list[ModelConfig]:
        entry = self._table.get(provider) or {}
        return [_model_config(m) for m in entry.get("models", [])]

    def default_model(self, provider: str) -> str:
        entry = self._table.get(provider) or {}
        return entry.get("default") or FALLBACK_DEFAULT_MODELS.get(provider, "")

    def model_by_value(self, value: str) -> ModelConfig | None:
        for entry in self._table.values():
            for m in entry.get("models", []):
                if m.get("value") == value:
                    return _model_config(m)
        return None

    def calculate_cost(self, model: str, input_tokens: int, output_tokens: int) -> float:
        """Cost in USD; 0 for models without a pricing entry."""
        config = self.model_by_value(model)
        if config is None:
            return 0.0
        return (
            input_tokens / 1_000_000 * config.pricing.input
            + output_tokens / 1_000_000 * config.pricing.output
        )


def _model_config(raw: dict[str, Any]) -> ModelConfig:
    pricing = raw.get("pricing") or {}
    return ModelConfig(
        name=raw.get("name", raw["value"]),
        value=raw["value"],
        pricing=ModelPricing(
            input=float(pricing.get("input", 0.0)),
            output=float(pricing.get("output", 0.0)),
        ),
    )


class CostTracker:
    """Running token usage for one session. Only ever grows."""

    def __init__(self, model: str, catalog: ModelCatalog | None = None) -> None:
        self.catalog = catalog or ModelCatalog()
        self.usage = TokenUsage(model=model)

    def add(self, usage: TokenUsage) -> None:
        self.usage = self.usage + usage

    @property
    def total_cost(self) -> float:
        return self.catalog.calculate_cost(
            self.usage.model, self.usage.input_tokens, self.usage.output_tokens
        )

    def display(self, usage: TokenUsage | None = None, label: str = "Cost") -> None:
        """Render ``usage`` (or the running total) with its cost."""
        u = usage or self.usage
        cost = self.catalog.calculate_cost(u.model or self.usage.model, u.input_tokens, u.output_tokens)
        render_cost(u.input_tokens, u.output_tokens, cost, label=label)

    def display_total(self) -> None:
        self.display(label="Total session cost")
