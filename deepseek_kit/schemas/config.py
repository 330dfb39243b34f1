"""Client configuration and model registry schemas.

Loaded from ``config/defaults.toml``. ``ClientConfig`` holds endpoints,
timeouts and stream/cache tuning; each ``ModelConfig`` entry provides the
LiteLLM routing id, capability flags and cost data for one model.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ModelConfig(BaseModel):
    """Configuration for a single model in the registry."""

    model: str = Field(description="API model name (e.g. 'deepseek-chat')")
    litellm_model: str = Field(
        description="LiteLLM model identifier (e.g. 'deepseek/deepseek-chat')"
    )
    display_name: str = Field(description="Human-friendly model name for CLI output")
    api_key_env: str = Field(
        default="DEEPSEEK_API_KEY", description="Environment variable holding the API key"
    )
    context_window: int = Field(gt=0, description="Maximum context window size in tokens")
    max_output_tokens: int = Field(default=8192, gt=0)
    supports_tools: bool = Field(default=False, description="Whether function calling works")
    supports_json: bool = Field(default=False, description="Whether JSON mode works")
    supports_fim: bool = Field(default=False, description="Whether FIM completion works")
    supports_reasoning: bool = Field(
        default=False, description="Whether the model returns a reasoning trace"
    )
    supports_sampling: bool = Field(
        default=True,
        description="Whether temperature/top_p/penalties are honoured",
    )
    cost_input: float = Field(default=0.0, ge=0.0, description="Cost per 1M input tokens in USD")
    cost_output: float = Field(
        default=0.0, ge=0.0, description="Cost per 1M output tokens in USD"
    )


class StreamSettings(BaseModel):
    """Tuning for the interruptible stream consumer."""

    pause_poll_interval: float = Field(
        default=0.1, gt=0.0, le=5.0,
        description="Seconds between resume checks while paused",
    )
    default_boundary: str = Field(
        default="graceful", description="Boundary used by CLI cancellation"
    )


class ClientConfig(BaseModel):
    """Top-level client configuration."""

    base_url: str = Field(default="https://api.deepseek.com/v1")
    beta_url: str = Field(default="https://api.deepseek.com/beta")
    root_url: str = Field(default="https://api.deepseek.com")
    timeout: int = Field(default=120, gt=0, description="Request timeout in seconds")
    max_retries: int = Field(default=3, ge=1, le=10, description="Attempts per request")
    default_model: str = Field(default="deepseek-chat")
    cache_ttl: float = Field(default=600.0, gt=0.0, description="Result cache TTL in seconds")
    stream: StreamSettings = Field(default_factory=StreamSettings)
    models: dict[str, ModelConfig] = Field(default_factory=dict)

    def model_config_for(self, model: str) -> ModelConfig:
        """Return the registry entry for a model name, or a permissive default."""
        if model in self.models:
            return self.models[model]
        return ModelConfig(
            model=model,
            litellm_model=f"deepseek/{model}",
            display_name=model,
            context_window=65536,
        )
