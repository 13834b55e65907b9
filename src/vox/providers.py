"""Question sources that drive an interview.

Two variants exist. :class:`StaticQuestionProvider` walks a fixed script and
never produces a summary. :class:`ConversationalQuestionProvider` keeps a
stateful chat session with the model and follows a small state machine:

``ACTIVE``
    Every call forwards the previous answer and asks the model for the next
    message. A reply carrying the termination token ends the interview with
    the trailing text as the inline summary. Reaching the question budget
    moves the provider to ``TERMINATING``.
``TERMINATING``
    One extra turn asks the model to summarize the conversation.
``TERMINATED``
    No more questions and no more network calls.

A transport failure while fetching a question stops the interview instead of
retrying, so the chat history never holds duplicate or reordered turns.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .config import (
    AppSettings,
    ModelSettings,
    ProviderKind,
    Topic,
    build_interviewer_prompt,
)
from .errors import ConfigurationError, ProviderError
from .maf_client import ChatMessage, ChatSession, MAFChatClient
from .models import TranscriptRecord
from .prompts import (
    CLOSING_SUMMARY_REQUEST,
    TERMINATION_TOKEN,
    build_structure_instruction,
    render_transcript_prompt,
)

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ModelSettings], MAFChatClient]


class QuestionProvider(ABC):
    """Produces interview questions one at a time."""

    kind: ProviderKind

    @abstractmethod
    async def next_question(self, previous_answer: str) -> Optional[str]:
        """Return the next question, or ``None`` once the interview is over."""

    @abstractmethod
    async def summarize(self, transcript: TranscriptRecord) -> str:
        """Summarize a completed transcript."""

    @property
    def inline_summary(self) -> Optional[str]:
        """Summary produced while terminating, if any."""
        return None


class StaticQuestionProvider(QuestionProvider):
    """Serves a fixed, ordered list of questions."""

    kind = ProviderKind.STATIC

    def __init__(self, questions: Iterable[str]) -> None:
        self._questions: Tuple[str, ...] = tuple(questions)
        self._cursor = 0

    @property
    def remaining(self) -> int:
        return len(self._questions) - self._cursor

    async def next_question(self, previous_answer: str) -> Optional[str]:
        if self._cursor >= len(self._questions):
            return None
        question = self._questions[self._cursor]
        self._cursor += 1
        return question

    async def summarize(self, transcript: TranscriptRecord) -> str:
        return ""


class ProviderState(str, Enum):
    """Lifecycle of a conversational provider."""

    ACTIVE = "active"
    TERMINATING = "terminating"
    TERMINATED = "terminated"


@dataclass(frozen=True, slots=True)
class TerminationSignal:
    """Outcome of scanning a model reply for the termination token."""

    complete: bool
    summary: Optional[str] = None


def parse_termination(text: str) -> TerminationSignal:
    """Detect the termination token and split off the trailing summary.

    Everything after the first occurrence of the token, trimmed, is the
    summary. Text before the token is discarded.
    """

    index = text.find(TERMINATION_TOKEN)
    if index < 0:
        return TerminationSignal(complete=False)
    trailing = text[index + len(TERMINATION_TOKEN):]
    return TerminationSignal(complete=True, summary=trailing.strip())


class ConversationalQuestionProvider(QuestionProvider):
    """Asks questions generated by a chat model session."""

    kind = ProviderKind.LLM

    def __init__(
        self,
        session: ChatSession,
        client: MAFChatClient,
        *,
        max_questions: int = 20,
    ) -> None:
        if max_questions < 1:
            raise ValueError("max_questions must be at least 1")
        self._session = session
        self._client = client
        self._max_questions = max_questions
        self._question_count = 0
        self._state = ProviderState.ACTIVE
        self._summary: Optional[str] = None

    @classmethod
    def start(
        cls,
        client: MAFChatClient,
        interviewer_prompt: str,
        *,
        max_questions: int = 20,
    ) -> "ConversationalQuestionProvider":
        """Open a seeded chat session and wrap it in a provider."""

        seed: List[ChatMessage] = [
            ChatMessage(
                role="system",
                content="\n\n".join(
                    [
                        interviewer_prompt,
                        build_structure_instruction(max_questions),
                    ]
                ),
            )
        ]
        session = client.start_session(seed)
        return cls(session, client, max_questions=max_questions)

    @property
    def state(self) -> ProviderState:
        return self._state

    @property
    def question_count(self) -> int:
        return self._question_count

    @property
    def max_questions(self) -> int:
        return self._max_questions

    @property
    def inline_summary(self) -> Optional[str]:
        return self._summary

    async def next_question(self, previous_answer: str) -> Optional[str]:
        if self._state is ProviderState.TERMINATED:
            return None
        if self._state is ProviderState.TERMINATING:
            await self._request_closing_summary(previous_answer)
            return None

        try:
            if previous_answer:
                reply = await self._session.send_message(previous_answer)
            else:
                reply = await self._session.send_message()
        except Exception as exc:  # noqa: BLE001 - any transport failure ends the run
            logger.warning(
                "Conversational service failed after %d questions: %s",
                self._question_count,
                exc,
            )
            self._state = ProviderState.TERMINATED
            return None

        signal = parse_termination(reply)
        if signal.complete:
            logger.info(
                "Interview completed by the model after %d questions.",
                self._question_count,
            )
            self._summary = signal.summary
            self._state = ProviderState.TERMINATED
            return None

        self._question_count += 1
        if self._question_count >= self._max_questions:
            logger.info(
                "Question budget of %d reached; requesting summary next.",
                self._max_questions,
            )
            self._state = ProviderState.TERMINATING
        return reply.strip()

    async def _request_closing_summary(self, previous_answer: str) -> None:
        try:
            reply = await self._session.send_message(
                previous_answer, CLOSING_SUMMARY_REQUEST
            )
        except Exception as exc:  # noqa: BLE001 - any transport failure ends the run
            logger.warning("Closing summary request failed: %s", exc)
        else:
            signal = parse_termination(reply)
            self._summary = signal.summary if signal.complete else reply.strip()
        finally:
            self._state = ProviderState.TERMINATED

    async def summarize(self, transcript: TranscriptRecord) -> str:
        prompt = render_transcript_prompt(transcript.as_pairs())
        try:
            reply = await self._client.generate(prompt)
        except Exception as exc:  # noqa: BLE001 - surfaced as ProviderError
            raise ProviderError(f"Summary request failed: {exc}") from exc
        text = reply.strip()
        if not text:
            raise ProviderError("Summary request returned no text.")
        return text


def build_question_provider(
    settings: AppSettings,
    topic: Topic,
    *,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    client_factory: ClientFactory = MAFChatClient,
) -> QuestionProvider:
    """Create the provider variant matching ``topic``."""

    if topic.provider is ProviderKind.STATIC:
        logger.debug(
            "Using static provider for topic '%s' with %d questions.",
            topic.id,
            len(topic.questions),
        )
        return StaticQuestionProvider(topic.questions)

    resolved_key = api_key or settings.model.api_key
    if not resolved_key:
        raise ConfigurationError(
            "A model API key is required for conversational topics. "
            "Pass --api-key or set VOX_MODEL_API_KEY."
        )
    model_settings = ModelSettings(
        provider=settings.model.provider,
        model=model or settings.model.model,
        endpoint=settings.model.endpoint,
        api_key=resolved_key,
        api_version=settings.model.api_version,
    )
    client = client_factory(model_settings)
    prompt = build_interviewer_prompt(topic.prompt, settings.interviewer_prompt)
    logger.debug(
        "Using conversational provider for topic '%s' with model %s.",
        topic.id,
        model_settings.model,
    )
    return ConversationalQuestionProvider.start(
        client,
        prompt,
        max_questions=settings.max_questions,
    )


def describe_topics(topics: Sequence[Topic]) -> List[str]:
    """Render one listing line per topic."""

    return [f" - {topic.id}: {topic.name}" for topic in topics]
