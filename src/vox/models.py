"""Data records exchanged between the orchestrator and the repository."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple


@dataclass(frozen=True, slots=True)
class QuestionAndAnswer:
    """Container for a single question/answer pair."""

    question: str
    answer: str

    def to_dict(self) -> Dict[str, str]:
        return {"question": self.question, "answer": self.answer}


def _empty_entries() -> List[QuestionAndAnswer]:
    return []


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class InterviewRecord:
    """Metadata for a completed interview.

    ``id`` stays empty until the repository assigns an identity on save.
    """

    user_id: str
    project_id: str
    created_at: datetime = field(default_factory=_utcnow)
    id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "project_id": self.project_id,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InterviewRecord":
        return cls(
            id=str(data.get("id") or ""),
            user_id=str(data.get("user_id") or ""),
            project_id=str(data.get("project_id") or ""),
            created_at=parse_timestamp(str(data.get("created_at") or "")),
        )


@dataclass(slots=True)
class TranscriptRecord:
    """Ordered question/answer history of one interview (append-only)."""

    entries: List[QuestionAndAnswer] = field(default_factory=_empty_entries)
    interview_id: Optional[str] = None

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[QuestionAndAnswer]:
        return iter(self.entries)

    def append(self, question: str, answer: str) -> None:
        self.entries.append(QuestionAndAnswer(question=question, answer=answer))

    def as_pairs(self) -> List[Tuple[str, str]]:
        return [(entry.question, entry.answer) for entry in self.entries]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "interview_id": self.interview_id,
            "entries": [entry.to_dict() for entry in self.entries],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TranscriptRecord":
        entries: List[QuestionAndAnswer] = []
        raw_entries = data.get("entries")
        if isinstance(raw_entries, list):
            for item in raw_entries:
                if isinstance(item, dict):
                    entries.append(
                        QuestionAndAnswer(
                            question=str(item.get("question", "")),
                            answer=str(item.get("answer", "")),
                        )
                    )
        interview_id = data.get("interview_id")
        return cls(
            entries=entries,
            interview_id=str(interview_id) if interview_id else None,
        )


@dataclass(slots=True)
class SummaryRecord:
    """Generated summary text for one interview."""

    text: str
    interview_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"interview_id": self.interview_id, "text": self.text}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SummaryRecord":
        interview_id = data.get("interview_id")
        return cls(
            text=str(data.get("text") or ""),
            interview_id=str(interview_id) if interview_id else None,
        )


def parse_timestamp(value: str) -> datetime:
    cleaned = value
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(cleaned)
    except ValueError:
        return datetime.fromtimestamp(0, tz=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
