from __future__ import annotations

import threading
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import pytest

from vox.config import AppSettings, ModelSettings, ProviderKind, SlackSettings, Topic
from vox.errors import RepositoryError
from vox.interview import InterviewUI
from vox.models import InterviewRecord, SummaryRecord, TranscriptRecord

VOX_ENV_VARS = (
    "VOX_CONFIG",
    "VOX_MODEL",
    "VOX_MODEL_PROVIDER",
    "VOX_MODEL_ENDPOINT",
    "VOX_MODEL_API_KEY",
    "VOX_MODEL_API_VERSION",
    "VOX_SLACK_BOT_TOKEN",
    "VOX_SLACK_SIGNING_SECRET",
    "VOX_DATA_DIR",
    "VOX_ARCHIVE_JSONL",
    "VOX_REDIS_URL",
    "VOX_MAX_QUESTIONS",
    "VOX_ANSWER_TIMEOUT",
    "VOX_OTLP_ENDPOINT",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Isolate config lookup from the developer machine."""

    for name in VOX_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config-home"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data-home"))
    return tmp_path


def make_settings(
    tmp_path: Path,
    topics: Sequence[Topic] = (),
    *,
    api_key: Optional[str] = "test-key-1234",
    max_questions: int = 20,
    answer_timeout: Optional[float] = None,
) -> AppSettings:
    return AppSettings(
        model=ModelSettings(
            provider="openai",
            model="gpt-4o-mini",
            endpoint=None,
            api_key=api_key,
            api_version=None,
        ),
        slack=SlackSettings(bot_token="xoxb-test", signing_secret="shh"),
        data_dir=tmp_path,
        archive_path=tmp_path / "interviews.jsonl",
        redis_url=None,
        max_questions=max_questions,
        answer_timeout=answer_timeout,
        topics=tuple(topics),
    )


def static_topic(topic_id: str = "onboarding", *questions: str) -> Topic:
    return Topic(
        id=topic_id,
        name=topic_id.title(),
        provider=ProviderKind.STATIC,
        questions=tuple(questions or ("q1", "q2")),
    )


class ScriptedSession:
    """Chat session double replaying canned replies."""

    def __init__(self, replies: Iterable[Union[str, Exception]]) -> None:
        self._replies = list(replies)
        self.calls: List[Tuple[str, ...]] = []

    async def send_message(self, *parts: str) -> str:
        self.calls.append(parts)
        if not self._replies:
            raise AssertionError("unexpected extra call to send_message")
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeModelClient:
    def __init__(self, reply: Union[str, Exception] = "A summary.") -> None:
        self._reply = reply
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if isinstance(self._reply, Exception):
            raise self._reply
        return self._reply


class ScriptedUI(InterviewUI):
    def __init__(self, answers: Iterable[Union[str, Exception]]) -> None:
        self._answers = list(answers)
        self.questions: List[str] = []
        self.displayed: List[Tuple[TranscriptRecord, str]] = []

    async def ask(self, question: str) -> str:
        self.questions.append(question)
        answer = self._answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def display_summary(
        self,
        transcript: TranscriptRecord,
        summary: str,
    ) -> None:
        self.displayed.append((transcript, summary))


class MemoryRepository:
    """Repository double that can fail a configurable number of saves."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.saved: List[Tuple[InterviewRecord, TranscriptRecord, SummaryRecord]] = []
        self.save_threads: List[int] = []

    def save(
        self,
        interview: InterviewRecord,
        transcript: TranscriptRecord,
        summary: SummaryRecord,
    ) -> str:
        self.save_threads.append(threading.get_ident())
        if self.failures:
            self.failures -= 1
            raise RepositoryError("disk full")
        interview_id = f"id-{len(self.saved) + 1}"
        self.saved.append((interview, transcript, summary))
        return interview_id
