import logging
import os

from pydantic import BaseModel, Field

LOG_FORMAT = "%(asctime)s:%(name)s:%(levelname)s:%(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: int = logging.INFO, log_file: str | None = None) -> None:
    """Install the toolchat log format on the root logger."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
    )


class SamplingParams(BaseModel):
    """Sampling parameters sent with every completion request."""

    temperature: float = 0.7
    max_tokens: int = 2048
    top_p: float = 1.0
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0

    def to_request(self, streaming: bool = True) -> dict:
        # Models that can't stream also reject the sampling knobs.
        if not streaming:
            return {"max_tokens": self.max_tokens}
        return self.model_dump()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class OrchestratorSettings(BaseModel):
    """Runtime settings shared by every session of an orchestrator.

    Args:
        max_rounds: Maximum provider round-trips per session.
        parallel_tool_calls: Run a round's tool calls concurrently.
        request_timeout: Transport timeout in seconds.
        max_retries: Transport-level retries. Defaults to 0 since
            provider errors are surfaced, not retried.
        params: Default sampling parameters.
    """

    max_rounds: int = Field(default=8, ge=1)
    parallel_tool_calls: bool = True
    request_timeout: float = 600.0
    max_retries: int = Field(default=0, ge=0)
    params: SamplingParams = Field(default_factory=SamplingParams)

    @classmethod
    def from_env(cls) -> "OrchestratorSettings":
        defaults = cls()
        return cls(
            max_rounds=int(os.getenv("TOOLCHAT_MAX_ROUNDS", defaults.max_rounds)),
            parallel_tool_calls=_env_bool(
                "TOOLCHAT_PARALLEL_TOOL_CALLS", defaults.parallel_tool_calls
            ),
            request_timeout=float(
                os.getenv("TOOLCHAT_REQUEST_TIMEOUT", defaults.request_timeout)
            ),
            max_retries=int(os.getenv("TOOLCHAT_MAX_RETRIES", defaults.max_retries)),
        )
