"""Interfaces the orchestrator consumes, with simple implementations.

Credential storage, message rendering and usage accounting belong to
the caller. The in-memory classes here are enough for scripts and
tests.
"""

from __future__ import annotations

import os
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass


class CredentialProvider(ABC):
    @abstractmethod
    def get_key(self, provider_id: str) -> str | None:
        """Return the API key for *provider_id*, or ``None``."""


class MessageSink(ABC):
    """Receives live assistant content for rendering."""

    @abstractmethod
    def append(self, conversation_id: str, content: str) -> str:
        """Add a new assistant message and return its id."""

    @abstractmethod
    def update(self, conversation_id: str, message_id: str, content: str) -> None:
        """Replace the content of a previously appended message."""


class UsageRecorder(ABC):
    @abstractmethod
    def add_usage(self, provider_id: str, tokens: int) -> None:
        ...


class StaticCredentials(CredentialProvider):
    def __init__(self, keys: dict[str, str] | None = None):
        self._keys = dict(keys or {})

    def set_key(self, provider_id: str, key: str) -> None:
        self._keys[provider_id] = key

    def get_key(self, provider_id: str) -> str | None:
        return self._keys.get(provider_id) or None


class EnvCredentialProvider(StaticCredentials):
    """Explicit keys first, then ``{PROVIDER_ID}_API_KEY`` from the environment."""

    def get_key(self, provider_id: str) -> str | None:
        key = super().get_key(provider_id)
        if key:
            return key
        env_name = f"{provider_id.upper().replace('-', '_')}_API_KEY"
        return os.getenv(env_name) or None


@dataclass
class SinkMessage:
    id: str
    content: str


class InMemoryMessageSink(MessageSink):
    def __init__(self):
        self.conversations: dict[str, list[SinkMessage]] = defaultdict(list)

    def append(self, conversation_id: str, content: str) -> str:
        message = SinkMessage(id=uuid.uuid4().hex, content=content)
        self.conversations[conversation_id].append(message)
        return message.id

    def update(self, conversation_id: str, message_id: str, content: str) -> None:
        for message in self.conversations[conversation_id]:
            if message.id == message_id:
                message.content = content
                return
        raise KeyError(f"No message {message_id} in conversation {conversation_id}")

    def last(self, conversation_id: str) -> SinkMessage | None:
        messages = self.conversations.get(conversation_id)
        return messages[-1] if messages else None


class UsageLedger(UsageRecorder):
    def __init__(self):
        self.totals: dict[str, int] = defaultdict(int)

    def add_usage(self, provider_id: str, tokens: int) -> None:
        self.totals[provider_id] += tokens
