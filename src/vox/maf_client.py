"""Thin wrappers around Microsoft Agent Framework chat completion clients.

This module centralizes the integration with the Microsoft Agent Framework
(MAF) so the rest of the application can stay framework-agnostic. It loads
the appropriate client implementation at runtime based on the configured
provider and layers a small stateful :class:`ChatSession` on top of it, which
the conversational question provider uses to keep the interview history.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from importlib import import_module
from typing import Iterable, List, Optional, Sequence

from agent_framework import ChatMessage as MAFChatMessage, Role

from .config import ModelSettings
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


def _coerce_role(role: str) -> Role:
    try:
        return Role(role)
    except ValueError as exc:
        raise ValueError(
            "Unsupported role for MAF chat message: {role}".format(role=role)
        ) from exc


@dataclass(slots=True)
class ChatMessage:
    """Simple representation of a chat message compatible with this app."""

    role: str
    content: str


class MAFIntegrationError(ConfigurationError):
    """Raised when the MAF client cannot be initialized."""


class MAFChatClient:
    """Wrapper that dispatches chat completion calls through MAF clients."""

    def __init__(self, settings: ModelSettings) -> None:
        self._settings = settings
        self._client = self._create_client(settings)
        if settings.api_key and len(settings.api_key) > 4:
            logger.debug(
                "Using model API key ending in %s", settings.api_key[-4:]
            )

    @property
    def model(self) -> str:
        return self._settings.model

    @staticmethod
    def _create_client(settings: ModelSettings):
        provider = settings.provider.lower()
        try:
            if provider in {"azure-openai", "azure_openai", "azure"}:
                module = import_module("agent_framework.azure")
                client_cls = getattr(module, "AzureOpenAIChatClient")
                return client_cls(
                    api_key=settings.api_key,
                    deployment_name=settings.model,
                    endpoint=settings.endpoint,
                    api_version=settings.api_version,
                )
            if provider in {"openai", "oai"}:
                module = import_module("agent_framework.openai")
                client_cls = getattr(module, "OpenAIChatClient")
                return client_cls(
                    api_key=settings.api_key,
                    model_id=settings.model,
                    base_url=settings.endpoint,
                )
        except ModuleNotFoundError as exc:  # pragma: no cover - MAF runtime
            missing = exc.name or "a required dependency"
            raise MAFIntegrationError(
                "Microsoft Agent Framework dependency '{missing}' is missing. "
                "Reinstall the project dependencies (e.g. `pip install -e .`)."
                .format(missing=missing)
            ) from exc
        raise MAFIntegrationError(
            f"Unsupported MAF provider '{settings.provider}'."
        )

    @staticmethod
    def _merge_consecutive_roles(
        messages: Iterable[ChatMessage],
    ) -> List[ChatMessage]:
        """Combine adjacent messages that share the same role.

        The Microsoft Agent Framework templates expect user/assistant roles to
        alternate. A seeded session starts with system guidance and may be
        followed directly by a user turn, so adjacent messages with the same
        role are merged while keeping their order.
        """

        merged: List[ChatMessage] = []
        for message in messages:
            if merged and merged[-1].role == message.role:
                previous = merged[-1]
                previous.content = (
                    f"{previous.content}\n\n{message.content}".strip()
                )
                continue
            merged.append(
                ChatMessage(role=message.role, content=message.content)
            )
        return merged

    async def complete(self, messages: Iterable[ChatMessage]) -> ChatMessage:
        """Execute a chat completion call through the underlying MAF client."""

        merged_messages = self._merge_consecutive_roles(messages)
        payload: List[MAFChatMessage] = [
            MAFChatMessage(role=_coerce_role(msg.role), text=msg.content)
            for msg in merged_messages
        ]
        response = await self._client.get_response(messages=payload)
        return ChatMessage(role="assistant", content=response.text or "")

    async def generate(self, prompt: str) -> str:
        """Run a single stateless prompt and return the reply text."""

        reply = await self.complete([ChatMessage(role="user", content=prompt)])
        return reply.content

    def start_session(
        self,
        seed_history: Optional[Sequence[ChatMessage]] = None,
    ) -> "ChatSession":
        """Open a conversational session seeded with ``seed_history``."""

        return ChatSession(self, seed_history or ())


class ChatSession:
    """Conversation that remembers every exchanged turn.

    Each :meth:`send_message` call submits the full history plus the new user
    turn. The user turn and the reply are appended only after the call
    succeeds, so a failed request leaves the history untouched.
    """

    def __init__(
        self,
        client: MAFChatClient,
        seed_history: Sequence[ChatMessage],
    ) -> None:
        self._client = client
        self._history: List[ChatMessage] = [
            ChatMessage(role=message.role, content=message.content)
            for message in seed_history
        ]

    @property
    def history(self) -> List[ChatMessage]:
        return list(self._history)

    async def send_message(self, *parts: str) -> str:
        """Send ``parts`` as one user turn and return the assistant reply."""

        pending: List[ChatMessage] = []
        text = "\n\n".join(part for part in parts if part)
        if text:
            pending.append(ChatMessage(role="user", content=text))
        reply = await self._client.complete([*self._history, *pending])
        self._history.extend(pending)
        self._history.append(reply)
        return reply.content
