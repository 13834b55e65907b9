"""Interview orchestration shared by the terminal and chat front ends."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Optional

from .models import InterviewRecord, SummaryRecord, TranscriptRecord
from .providers import QuestionProvider
from .transcript_store import InterviewRepository

logger = logging.getLogger(__name__)


class InterviewUI(ABC):
    """Front end that collects answers and shows the final summary."""

    @abstractmethod
    async def ask(self, question: str) -> str:
        """Present ``question`` and wait for the respondent's answer."""

    @abstractmethod
    async def display_summary(
        self,
        transcript: TranscriptRecord,
        summary: str,
    ) -> None:
        """Show the completed transcript and its summary."""


@dataclass(slots=True)
class InterviewOutcome:
    """Result of a completed and persisted interview."""

    interview_id: str
    interview: InterviewRecord
    transcript: TranscriptRecord
    summary: str


@dataclass(slots=True)
class _PendingResult:
    interview: InterviewRecord
    transcript: TranscriptRecord
    summary: str


class InterviewOrchestrator:
    """Drives question/answer turns, then persists and displays the result.

    Questions and answers strictly alternate: a new question is requested only
    after the previous answer has been recorded. A UI failure aborts the run
    with nothing persisted. If persistence fails the collected transcript and
    summary stay on the orchestrator and :meth:`complete` can be retried; the
    summary is only shown once it has been saved.
    """

    def __init__(
        self,
        provider: QuestionProvider,
        ui: InterviewUI,
        repository: InterviewRepository,
    ) -> None:
        self._provider = provider
        self._ui = ui
        self._repository = repository
        self._pending: Optional[_PendingResult] = None

    @property
    def pending(self) -> bool:
        """Whether a finished interview is waiting to be persisted."""

        return self._pending is not None

    async def run(self, respondent_id: str, topic_id: str) -> InterviewOutcome:
        transcript = await self._conduct()
        summary = await self._resolve_summary(transcript)
        self._pending = _PendingResult(
            interview=InterviewRecord(
                user_id=respondent_id,
                project_id=topic_id,
            ),
            transcript=transcript,
            summary=summary,
        )
        return await self.complete()

    async def complete(self) -> InterviewOutcome:
        """Persist the finished interview and display its summary."""

        pending = self._pending
        if pending is None:
            raise RuntimeError("No finished interview is waiting to be saved.")
        interview_id = await asyncio.to_thread(
            self._repository.save,
            pending.interview,
            pending.transcript,
            SummaryRecord(text=pending.summary),
        )
        self._pending = None
        pending.transcript.interview_id = interview_id
        await self._ui.display_summary(pending.transcript, pending.summary)
        return InterviewOutcome(
            interview_id=interview_id,
            interview=replace(pending.interview, id=interview_id),
            transcript=pending.transcript,
            summary=pending.summary,
        )

    async def _conduct(self) -> TranscriptRecord:
        transcript = TranscriptRecord()
        previous_answer = ""
        while True:
            question = await self._provider.next_question(previous_answer)
            if question is None:
                break
            answer = await self._ui.ask(question)
            transcript.append(question, answer)
            previous_answer = answer
        logger.info("Question loop finished after %d turns.", len(transcript))
        return transcript

    async def _resolve_summary(self, transcript: TranscriptRecord) -> str:
        inline = self._provider.inline_summary
        if inline is not None:
            return inline
        return await self._provider.summarize(transcript)
