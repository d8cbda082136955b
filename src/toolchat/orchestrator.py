import logging
from collections.abc import Iterable, Mapping

from toolchat.collaborators import (
    CredentialProvider,
    EnvCredentialProvider,
    InMemoryMessageSink,
    MessageSink,
    UsageLedger,
    UsageRecorder,
)
from toolchat.config import OrchestratorSettings
from toolchat.errors import status_code_of
from toolchat.provider import ModelProvider, OpenAICompatibleProvider
from toolchat.providers import PROVIDER_MAP, ModelInfo, ProviderConfig
from toolchat.session import ProviderFactory, Session, SessionOptions
from toolchat.tools import ToolDefinition

logger = logging.getLogger(__name__)


class Orchestrator:
    """Entry point for streaming, tool-augmented chat sessions.

    Sessions are keyed by id so several can run side by side (e.g. two
    models answering the same prompt); ``stop`` only touches the
    session it names.

    Args:
        providers: Provider registry, defaulting to the built-in catalog.
        credentials: Resolves API keys per provider.
        tools: Tools that sessions may enable by name.
        sink: Receives live assistant content.
        usage: Receives token counts per provider.
        settings: Round bound, sampling defaults and transport options.
        provider_factory: Builds the transport for a provider and key.
    """

    def __init__(
        self,
        providers: Mapping[str, ProviderConfig] | None = None,
        credentials: CredentialProvider | None = None,
        tools: Iterable[ToolDefinition] = (),
        sink: MessageSink | None = None,
        usage: UsageRecorder | None = None,
        settings: OrchestratorSettings | None = None,
        provider_factory: ProviderFactory | None = None,
    ):
        self.providers = dict(providers if providers is not None else PROVIDER_MAP)
        self.credentials = credentials or EnvCredentialProvider()
        self.tool_registry: dict[str, ToolDefinition] = {t.name: t for t in tools}
        self.sink = sink or InMemoryMessageSink()
        self.usage = usage or UsageLedger()
        self.settings = settings or OrchestratorSettings()
        self._provider_factory = provider_factory or self._default_provider
        self._sessions: dict[str, Session] = {}

    def _default_provider(self, config: ProviderConfig, api_key: str | None) -> ModelProvider:
        return OpenAICompatibleProvider(
            config,
            api_key,
            max_retries=self.settings.max_retries,
            timeout=self.settings.request_timeout,
        )

    def register_tool(self, tool_def: ToolDefinition) -> None:
        self.tool_registry[tool_def.name] = tool_def

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def _enabled_tools(self, names: list[str] | None) -> dict[str, ToolDefinition]:
        if not names:
            return {}
        enabled = {}
        for name in names:
            tool_def = self.tool_registry.get(name)
            if tool_def is None:
                logger.warning(f"Ignoring unknown tool {name!r}")
                continue
            enabled[name] = tool_def
        return enabled

    def _start(self, options: SessionOptions) -> Session:
        session = Session(
            options,
            providers=self.providers,
            credentials=self.credentials,
            provider_factory=self._provider_factory,
            tools=self._enabled_tools(options.enabled_tools),
            sink=self.sink,
            usage=self.usage,
            settings=self.settings,
        )
        task = session.start()
        self._sessions[session.id] = session
        task.add_done_callback(lambda _t: self._sessions.pop(session.id, None))
        return session

    def send_stream(self, options: SessionOptions) -> str:
        """Start a session in the background and return its id.

        Results are reported through the callbacks on *options*. Must be
        called from a running event loop.
        """
        return self._start(options).id

    async def run(self, options: SessionOptions) -> Session:
        """Start a session and wait until it reaches a terminal state."""
        return await self._start(options).wait()

    def stop(self, session_id: str | None = None) -> bool:
        """Cancel one session, or every active session when no id is given."""
        if session_id is not None:
            session = self._sessions.get(session_id)
            return session.cancel() if session is not None else False
        stopped = [s.cancel() for s in list(self._sessions.values())]
        return any(stopped)

    def session(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    @property
    def active_sessions(self) -> list[Session]:
        return list(self._sessions.values())

    # ------------------------------------------------------------------
    # Auxiliary operations
    # ------------------------------------------------------------------

    async def test_connection(self, provider_id: str, api_key: str | None) -> bool:
        """Probe whether *api_key* is accepted by the provider."""
        config = self.providers.get(provider_id)
        if config is None:
            return False

        provider = self._provider_factory(config, api_key or "test")
        try:
            if config.supports_models_endpoint:
                await provider.list_models()
            else:
                model = config.models[0].id if config.models else "test"
                await provider.complete(
                    model, [{"role": "user", "content": "Hi"}], max_tokens=1
                )
        except Exception as e:
            status = status_code_of(e)
            logger.info(f"Connection test for {provider_id} failed ({status}): {e}")
            # The key was accepted even if the probe model is unknown.
            return status in (400, 404)
        return True

    async def fetch_models(
        self, provider_id: str, api_key: str | None
    ) -> list[ModelInfo] | None:
        config = self.providers.get(provider_id)
        if config is None or not config.supports_models_endpoint:
            return None

        provider = self._provider_factory(config, api_key or "test")
        try:
            model_ids = await provider.list_models()
        except Exception as e:
            logger.warning(f"Could not list models for {provider_id}: {e}")
            return None
        return [ModelInfo(id=m, name=m) for m in model_ids]
