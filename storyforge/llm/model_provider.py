"""Completion model factory.

``ModelSettings.from_env()`` resolves the provider, model id and generation
limits once; ``create_model`` turns them into the matching Strands model.
Bedrock is the default provider. Anthropic, OpenAI and Ollama are optional
extras imported lazily.

Model id resolution:
  1. ``STORYFORGE_MODEL_ID``
  2. ``{PROVIDER}_MODEL_ID`` (e.g. ``OPENAI_MODEL_ID``)
  3. ``DEFAULT_MODEL_IDS`` for the active provider

AWS credentials come from boto3's standard chain; ``AWS_REGION`` is required
for Bedrock.
"""

import importlib
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from botocore.config import Config
from strands.models.bedrock import BedrockModel

from storyforge.config import env_float, env_int

logger = logging.getLogger(__name__)


class LLMProvider(Enum):
    """Supported completion providers."""

    BEDROCK = "bedrock"
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    OLLAMA = "ollama"


DEFAULT_MODEL_IDS: dict[LLMProvider, str] = {
    LLMProvider.BEDROCK: "anthropic.claude-3-5-sonnet-20241022-v2:0",
    LLMProvider.ANTHROPIC: "claude-sonnet-4-20250514",
    LLMProvider.OPENAI: "gpt-4o",
    LLMProvider.OLLAMA: "llama3.1:70b",
}

# A 30-story backlog with notes and five criteria per story fits in 8000 tokens
DEFAULT_MAX_TOKENS = 8000
DEFAULT_TEMPERATURE = 0.2

# Extraction prompts carry the whole catalog and story set; completions take minutes
BEDROCK_READ_TIMEOUT = 300.0
BEDROCK_CONNECT_TIMEOUT = 60.0


def get_active_provider() -> LLMProvider:
    """Return the active provider from the ``LLM_PROVIDER`` env var.

    Raises:
        ValueError: If the env var value is not a recognised provider.
    """
    raw = os.getenv("LLM_PROVIDER", "bedrock").strip().lower()
    try:
        return LLMProvider(raw)
    except ValueError:
        valid = ", ".join(p.value for p in LLMProvider)
        raise ValueError(f"Unknown LLM_PROVIDER '{raw}'. Valid options: {valid}") from None


def resolve_model_id(provider: LLMProvider) -> str:
    for env_key in ("STORYFORGE_MODEL_ID", f"{provider.value.upper()}_MODEL_ID"):
        model_id = os.getenv(env_key, "").strip()
        if model_id:
            return model_id

    default_id = DEFAULT_MODEL_IDS[provider]
    logger.info("Using default model for %s: %s", provider.value, default_id)
    return default_id


@dataclass(frozen=True)
class ModelSettings:
    """Which model answers completions, and with what limits.

    Attributes:
        provider: Completion provider
        model_id: Provider-specific model identifier
        max_tokens: Maximum response tokens
        temperature: Sampling temperature
        region_name: AWS region (Bedrock only)
        read_timeout: Socket read timeout in seconds (Bedrock only)
    """

    provider: LLMProvider = LLMProvider.BEDROCK
    model_id: str = DEFAULT_MODEL_IDS[LLMProvider.BEDROCK]
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    region_name: str | None = None
    read_timeout: float = BEDROCK_READ_TIMEOUT

    @classmethod
    def from_env(cls) -> "ModelSettings":
        """Create settings from environment variables.

        Raises:
            ValueError: If a variable holds an invalid value.
        """
        provider = get_active_provider()
        return cls(
            provider=provider,
            model_id=resolve_model_id(provider),
            max_tokens=env_int("DEFAULT_MAX_TOKENS", DEFAULT_MAX_TOKENS),
            temperature=env_float("LLM_TEMPERATURE", DEFAULT_TEMPERATURE),
            region_name=os.getenv("AWS_REGION") or None,
            read_timeout=env_float("BEDROCK_READ_TIMEOUT", BEDROCK_READ_TIMEOUT),
        )


_PROVIDER_FACTORIES: dict[LLMProvider, Callable[[ModelSettings], Any]] = {}


def _register_provider(provider: LLMProvider):
    """Decorator to register a provider factory function."""

    def decorator(fn):
        _PROVIDER_FACTORIES[provider] = fn
        return fn

    return decorator


def _import_model_class(module_name: str, class_name: str, extra: str):
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ImportError(
            f"The {extra} provider is an optional extra. "
            f"Install it with: pip install 'storyforge[{extra}]'"
        ) from e
    return getattr(module, class_name)


def _api_key_args(env_key: str) -> dict | None:
    api_key = os.getenv(env_key)
    return {"api_key": api_key} if api_key else None


@_register_provider(LLMProvider.BEDROCK)
def _create_bedrock(settings: ModelSettings) -> BedrockModel:
    if not settings.region_name:
        raise ValueError("AWS_REGION is not set. Configure it in your .env file to use Bedrock.")

    # Transport-level retries only; a failed completion fails the run
    boto_config = Config(
        read_timeout=settings.read_timeout,
        connect_timeout=BEDROCK_CONNECT_TIMEOUT,
        retries={"max_attempts": 3, "mode": "standard"},
    )
    return BedrockModel(
        model_id=settings.model_id,
        region_name=settings.region_name,
        boto_client_config=boto_config,
        streaming=True,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
    )


@_register_provider(LLMProvider.ANTHROPIC)
def _create_anthropic(settings: ModelSettings):
    model_class = _import_model_class("strands.models.anthropic", "AnthropicModel", "anthropic")
    return model_class(
        client_args=_api_key_args("ANTHROPIC_API_KEY"),
        model_id=settings.model_id,
        max_tokens=settings.max_tokens,
        params={"temperature": settings.temperature},
    )


@_register_provider(LLMProvider.OPENAI)
def _create_openai(settings: ModelSettings):
    model_class = _import_model_class("strands.models.openai", "OpenAIModel", "openai")
    return model_class(
        client_args=_api_key_args("OPENAI_API_KEY"),
        model_id=settings.model_id,
        params={"max_tokens": settings.max_tokens, "temperature": settings.temperature},
    )


@_register_provider(LLMProvider.OLLAMA)
def _create_ollama(settings: ModelSettings):
    model_class = _import_model_class("strands.models.ollama", "OllamaModel", "ollama")
    return model_class(
        host=os.getenv("OLLAMA_HOST", "http://localhost:11434"),
        model_id=settings.model_id,
        max_tokens=settings.max_tokens,
        temperature=settings.temperature,
    )


def create_model(settings: ModelSettings | None = None):
    """Create a Strands model for ``settings`` (default: from the environment).

    Raises:
        ValueError: If the settings cannot be resolved or Bedrock has no region.
        ImportError: If an optional provider's extra is not installed.
    """
    settings = settings or ModelSettings.from_env()
    logger.info(
        "Creating %s model: model_id=%s, max_tokens=%s, temperature=%s",
        settings.provider.value,
        settings.model_id,
        settings.max_tokens,
        settings.temperature,
    )
    return _PROVIDER_FACTORIES[settings.provider](settings)
