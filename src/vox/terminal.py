"""Terminal front end for interviews."""

from __future__ import annotations

from typing import Callable, Optional

from .errors import InterviewAborted
from .interview import InterviewUI
from .models import TranscriptRecord

SUMMARY_RULE = "--- Interview Summary ---"
CLOSING_RULE = "-------------------------"


class TerminalUI(InterviewUI):
    """Asks questions on stdout and reads answers from stdin."""

    def __init__(
        self,
        *,
        input_func: Optional[Callable[[str], str]] = None,
        output_func: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._input = input_func or input
        self._output = output_func or print

    async def ask(self, question: str) -> str:
        self._output("")
        self._output(question)
        try:
            answer = self._input("> ")  # noqa: PLW1514 - intentional CLI input
        except EOFError as exc:
            raise InterviewAborted("Input closed before the interview finished.") from exc
        return answer.strip()

    async def display_summary(
        self,
        transcript: TranscriptRecord,
        summary: str,
    ) -> None:
        self._output("")
        self._output(SUMMARY_RULE)
        for entry in transcript:
            self._output(f"Q: {entry.question}")
            self._output(f"A: {entry.answer}")
            self._output("")
        if summary:
            self._output(summary)
        self._output(CLOSING_RULE)
