"""Registry correlating inbound chat messages with in-flight interviews."""

from __future__ import annotations

import asyncio
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional

from .errors import AnswerTimeoutError, InterviewInProgressError

logger = logging.getLogger(__name__)


def _answer_slot() -> "asyncio.Queue[str]":
    return asyncio.Queue(maxsize=1)


@dataclass(slots=True)
class InterviewSession:
    """Live interview for one respondent with a single-slot answer channel."""

    respondent_id: str
    answers: "asyncio.Queue[str]" = field(default_factory=_answer_slot)
    loop: Optional[asyncio.AbstractEventLoop] = None

    async def receive(self, timeout: Optional[float] = None) -> str:
        """Wait for the next answer, optionally giving up after ``timeout``."""

        if timeout is None:
            return await self.answers.get()
        try:
            return await asyncio.wait_for(self.answers.get(), timeout)
        except asyncio.TimeoutError as exc:
            raise AnswerTimeoutError(
                f"No answer from {self.respondent_id} within {timeout:g}s"
            ) from exc

    def offer(self, text: str) -> bool:
        """Place ``text`` in the answer slot without blocking."""

        try:
            self.answers.put_nowait(text)
        except asyncio.QueueFull:
            return False
        return True


class SessionRegistry:
    """Maps respondent identifiers to their single active session.

    The lock guards the mapping only and is never held while waiting for an
    answer, so one stalled respondent cannot block other sessions or the
    webhook handlers.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: Dict[str, InterviewSession] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def is_active(self, respondent_id: str) -> bool:
        with self._lock:
            return respondent_id in self._sessions

    def start_session(self, respondent_id: str) -> InterviewSession:
        """Register a new session or raise if one is already active."""

        try:
            loop: Optional[asyncio.AbstractEventLoop] = (
                asyncio.get_running_loop()
            )
        except RuntimeError:
            loop = None
        with self._lock:
            if respondent_id in self._sessions:
                raise InterviewInProgressError(respondent_id)
            session = InterviewSession(respondent_id=respondent_id, loop=loop)
            self._sessions[respondent_id] = session
        logger.info("Started interview session for %s", respondent_id)
        return session

    def deliver(self, respondent_id: str, text: str) -> bool:
        """Hand ``text`` to the respondent's waiting session, if any.

        Returns ``True`` when the message was queued. Messages for unknown
        respondents, or arriving while an earlier answer is still unread, are
        dropped.
        """

        with self._lock:
            session = self._sessions.get(respondent_id)
        if session is None:
            logger.debug("Discarding message from %s: no session", respondent_id)
            return False

        loop = session.loop
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if loop is not None and loop is not running and loop.is_running():
            loop.call_soon_threadsafe(self._offer, session, text)
            return True
        return self._offer(session, text)

    @staticmethod
    def _offer(session: InterviewSession, text: str) -> bool:
        if session.offer(text):
            return True
        logger.warning(
            "Dropping message from %s: previous answer not consumed yet",
            session.respondent_id,
        )
        return False

    def end_session(self, respondent_id: str) -> None:
        """Remove the session for ``respondent_id`` if present."""

        with self._lock:
            removed = self._sessions.pop(respondent_id, None)
        if removed is not None:
            logger.info("Ended interview session for %s", respondent_id)

    @contextmanager
    def session(self, respondent_id: str) -> Iterator[InterviewSession]:
        """Start a session and always end it when the block exits."""

        handle = self.start_session(respondent_id)
        try:
            yield handle
        finally:
            self.end_session(respondent_id)
