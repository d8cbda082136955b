import logging
from collections.abc import AsyncIterable
from typing import Any

from openai import AsyncOpenAI

from toolchat.providers import ProviderConfig

logger = logging.getLogger(__name__)

# Local servers ignore the key but the client insists on one.
PLACEHOLDER_API_KEY = "ollama"


class ModelProvider:
    """Transport for one OpenAI-compatible provider.

    Subclass to plug in a different client; the session only relies on
    these three coroutines.
    """

    def __init__(self, config: ProviderConfig):
        self.config = config

    async def stream_complete(
            self,
            model: str,
            messages: list[dict],
            tools: list[dict] | None = None,
            **params: Any,
    ) -> AsyncIterable[Any]:
        raise NotImplementedError

    async def complete(
            self,
            model: str,
            messages: list[dict],
            tools: list[dict] | None = None,
            **params: Any,
    ) -> Any:
        raise NotImplementedError

    async def list_models(self) -> list[str]:
        raise NotImplementedError


class OpenAICompatibleProvider(ModelProvider):

    def __init__(
            self,
            config: ProviderConfig,
            api_key: str | None = None,
            max_retries: int = 0,
            timeout: float = 600.0,
    ):
        super().__init__(config)
        self.client = AsyncOpenAI(
            base_url=config.base_url,
            api_key=api_key or PLACEHOLDER_API_KEY,
            default_headers=config.extra_headers or None,
            max_retries=max_retries,
            timeout=timeout,
        )

    def _request(self, model, messages, tools, params) -> dict[str, Any]:
        request = {"model": model, "messages": messages, **params}
        if tools:
            request["tools"] = tools
            request["tool_choice"] = "auto"
        return request

    async def stream_complete(
            self,
            model: str,
            messages: list[dict],
            tools: list[dict] | None = None,
            **params: Any,
    ) -> AsyncIterable[Any]:
        logger.debug(f"Streaming {model} on {self.config.id}")
        request = self._request(model, messages, tools, params)
        if self.config.stream_usage:
            request["stream_options"] = {"include_usage": True}
        return await self.client.chat.completions.create(stream=True, **request)

    async def complete(
            self,
            model: str,
            messages: list[dict],
            tools: list[dict] | None = None,
            **params: Any,
    ) -> Any:
        logger.debug(f"Completing {model} on {self.config.id}")
        return await self.client.chat.completions.create(
            stream=False, **self._request(model, messages, tools, params)
        )

    async def list_models(self) -> list[str]:
        page = await self.client.models.list()
        return [m.id for m in page.data]
