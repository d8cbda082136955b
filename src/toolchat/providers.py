"""Catalog of OpenAI-compatible chat providers."""

from pydantic import BaseModel, Field


class ModelInfo(BaseModel):
    id: str
    name: str
    tags: list[str] = Field(default_factory=list)
    context_window: int | None = None
    note: str | None = None


class ProviderConfig(BaseModel):
    """Connection details for one OpenAI-compatible provider.

    Args:
        id: Registry key, also used for usage accounting.
        name: Display name used in user-facing messages.
        base_url: Root of the provider's OpenAI-compatible API.
        requires_key: Whether a credential must be supplied.
        supports_streaming: Whether chat completions can be streamed.
        supports_models_endpoint: Whether ``GET /models`` is available.
        extra_headers: Headers sent with every request.
        stream_usage: Ask for a trailing usage chunk on streamed requests.
        models: Known models, used when the provider can't list them.
    """

    id: str
    name: str
    base_url: str
    requires_key: bool = True
    supports_streaming: bool = True
    supports_models_endpoint: bool = False
    extra_headers: dict[str, str] = Field(default_factory=dict)
    stream_usage: bool = True
    models: list[ModelInfo] = Field(default_factory=list)


# Models that don't accept a system prompt.
NO_SYSTEM_PROMPT_MODELS = ("o1", "o1-mini")

# Models that only answer buffered requests.
NO_STREAMING_MODELS = ("o1",)


def _models(*specs) -> list[ModelInfo]:
    return [ModelInfo(id=i, name=n, tags=list(t), context_window=w) for i, n, t, w in specs]


BUILTIN_PROVIDERS: list[ProviderConfig] = [
    ProviderConfig(
        id="openai",
        name="OpenAI",
        base_url="https://api.openai.com/v1",
        supports_models_endpoint=True,
        models=_models(
            ("gpt-4o", "GPT-4o", ["vision"], 128000),
            ("gpt-4o-mini", "GPT-4o Mini", ["vision", "fast"], 128000),
            ("gpt-4.1", "GPT-4.1", ["vision"], 1000000),
            ("gpt-4.1-mini", "GPT-4.1 Mini", ["vision", "fast"], 1000000),
            ("o1", "o1", ["reasoning"], 200000),
            ("o1-mini", "o1 Mini", ["reasoning", "fast"], 128000),
            ("o3-mini", "o3 Mini", ["reasoning", "fast"], 200000),
        ),
    ),
    ProviderConfig(
        id="anthropic",
        name="Anthropic",
        base_url="https://api.anthropic.com/v1",
        extra_headers={"anthropic-version": "2023-06-01"},
        models=_models(
            ("claude-opus-4-5", "Claude Opus 4.5", ["vision", "long-context"], 200000),
            ("claude-sonnet-4-5", "Claude Sonnet 4.5", ["vision", "long-context"], 200000),
            ("claude-haiku-4-5", "Claude Haiku 4.5", ["vision", "fast"], 200000),
        ),
    ),
    ProviderConfig(
        id="gemini",
        name="Google Gemini",
        base_url="https://generativelanguage.googleapis.com/v1beta/openai/",
        models=_models(
            ("gemini-2.0-flash", "Gemini 2.0 Flash", ["vision", "fast"], 1000000),
            ("gemini-2.5-pro", "Gemini 2.5 Pro", ["reasoning", "vision", "long-context"], 2000000),
        ),
    ),
    ProviderConfig(
        id="mistral",
        name="Mistral",
        base_url="https://api.mistral.ai/v1",
        supports_models_endpoint=True,
        models=_models(
            ("mistral-large-latest", "Mistral Large", ["vision"], 128000),
            ("mistral-small-latest", "Mistral Small", ["fast"], 128000),
            ("codestral-latest", "Codestral", ["code"], 256000),
        ),
    ),
    ProviderConfig(
        id="xai",
        name="xAI (Grok)",
        base_url="https://api.x.ai/v1",
        supports_models_endpoint=True,
        models=_models(
            ("grok-3", "Grok 3", ["web-search"], 131072),
            ("grok-3-mini", "Grok 3 Mini", ["fast", "reasoning"], 131072),
        ),
    ),
    ProviderConfig(
        id="groq",
        name="Groq",
        base_url="https://api.groq.com/openai/v1",
        supports_models_endpoint=True,
        models=_models(
            ("llama-3.3-70b-versatile", "Llama 3.3 70B", ["fast"], 128000),
            ("deepseek-r1-distill-llama-70b", "DeepSeek R1 Llama 70B", ["reasoning", "fast"], 128000),
        ),
    ),
    ProviderConfig(
        id="cohere",
        name="Cohere",
        base_url="https://api.cohere.com/compatibility/v1",
        models=_models(
            ("command-r-plus", "Command R+", ["long-context"], 128000),
            ("command-r", "Command R", ["fast"], 128000),
        ),
    ),
    ProviderConfig(
        id="together",
        name="Together AI",
        base_url="https://api.together.xyz/v1",
        supports_models_endpoint=True,
        models=_models(
            ("meta-llama/Llama-3.3-70B-Instruct-Turbo", "Llama 3.3 70B Turbo", ["fast"], 131072),
            ("deepseek-ai/DeepSeek-R1", "DeepSeek R1", ["reasoning"], 65536),
        ),
    ),
    ProviderConfig(
        id="perplexity",
        name="Perplexity",
        base_url="https://api.perplexity.ai",
        models=_models(
            ("sonar", "Sonar", ["web-search", "fast"], 127072),
            ("sonar-pro", "Sonar Pro", ["web-search"], 200000),
        ),
    ),
    ProviderConfig(
        id="ollama",
        name="Ollama (Local)",
        base_url="http://localhost:11434/v1",
        requires_key=False,
        supports_models_endpoint=True,
        models=_models(
            ("llama3", "Llama 3", ["fast"], 8192),
            ("mistral", "Mistral 7B", ["fast"], 32768),
        ),
    ),
]

PROVIDER_MAP: dict[str, ProviderConfig] = {p.id: p for p in BUILTIN_PROVIDERS}


def supports_system_prompt(model_id: str) -> bool:
    return model_id not in NO_SYSTEM_PROMPT_MODELS


def supports_streaming(provider: ProviderConfig, model_id: str) -> bool:
    return provider.supports_streaming and model_id not in NO_STREAMING_MODELS
