from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from vox.errors import InterviewNotFoundError, RepositoryError
from vox.models import InterviewRecord, SummaryRecord, TranscriptRecord
from vox.transcript_store import InterviewRepository


def _transcript(*pairs):
    transcript = TranscriptRecord()
    for question, answer in pairs:
        transcript.append(question, answer)
    return transcript


def test_save_assigns_identity_and_round_trips(tmp_path) -> None:
    repository = InterviewRepository(tmp_path / "data" / "interviews.jsonl")
    created = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    interview_id = repository.save(
        InterviewRecord(user_id="alice", project_id="onboarding", created_at=created),
        _transcript(("Q1", "A1")),
        SummaryRecord(text="This is a summary."),
    )

    assert interview_id
    interview = repository.get_interview(interview_id)
    assert interview == InterviewRecord(
        id=interview_id,
        user_id="alice",
        project_id="onboarding",
        created_at=created,
    )
    transcript = repository.get_transcript(interview_id)
    assert transcript.interview_id == interview_id
    assert transcript.as_pairs() == [("Q1", "A1")]
    summary = repository.get_summary(interview_id)
    assert summary.interview_id == interview_id
    assert summary.text == "This is a summary."


def test_save_writes_one_line_per_interview(tmp_path) -> None:
    path = tmp_path / "interviews.jsonl"
    repository = InterviewRepository(path)

    first = repository.save(
        InterviewRecord(user_id="u", project_id="p"),
        _transcript(("q", "a")),
        SummaryRecord(text=""),
    )
    second = repository.save(
        InterviewRecord(user_id="u", project_id="p"),
        _transcript(),
        SummaryRecord(text="s"),
    )

    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert first != second
    payload = json.loads(lines[0])
    assert payload["interview"]["id"] == first
    assert payload["transcript"] == {
        "interview_id": first,
        "entries": [{"question": "q", "answer": "a"}],
    }
    assert payload["summary"] == {"interview_id": first, "text": ""}


def test_save_does_not_mutate_caller_records(tmp_path) -> None:
    repository = InterviewRepository(tmp_path / "interviews.jsonl")
    interview = InterviewRecord(user_id="u", project_id="p")
    transcript = _transcript(("q", "a"))

    repository.save(interview, transcript, SummaryRecord(text=""))

    assert interview.id == ""
    assert transcript.interview_id is None


def test_missing_keys_raise_not_found(tmp_path) -> None:
    repository = InterviewRepository(tmp_path / "interviews.jsonl")

    with pytest.raises(InterviewNotFoundError) as excinfo:
        repository.get_interview("nope")
    assert str(excinfo.value) == "interview not found: nope"
    with pytest.raises(KeyError):
        repository.get_transcript("nope")
    with pytest.raises(InterviewNotFoundError):
        repository.get_summary("nope")


def test_list_interviews_orders_by_creation_time(tmp_path) -> None:
    repository = InterviewRepository(tmp_path / "interviews.jsonl")
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    later = repository.save(
        InterviewRecord(user_id="b", project_id="p", created_at=base + timedelta(days=1)),
        _transcript(),
        SummaryRecord(text=""),
    )
    earlier = repository.save(
        InterviewRecord(user_id="a", project_id="p", created_at=base),
        _transcript(),
        SummaryRecord(text=""),
    )

    records = repository.list_interviews()

    assert [record.id for record in records] == [earlier, later]


def test_timestamps_without_offset_are_read_as_utc(tmp_path) -> None:
    path = tmp_path / "interviews.jsonl"
    repository = InterviewRepository(path)
    saved = repository.save(
        InterviewRecord(
            user_id="a",
            project_id="p",
            created_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
        ),
        _transcript(),
        SummaryRecord(text=""),
    )
    row = {
        "interview": {
            "id": "hand-edited",
            "user_id": "b",
            "project_id": "p",
            "created_at": "2024-01-01T09:30:00",
        },
        "transcript": {"interview_id": "hand-edited", "entries": []},
        "summary": {"interview_id": "hand-edited", "text": ""},
    }
    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(row) + "\n")

    records = InterviewRepository(path).list_interviews()

    assert [record.id for record in records] == ["hand-edited", saved]
    assert records[0].created_at == datetime(2024, 1, 1, 9, 30, tzinfo=timezone.utc)


def test_list_interviews_empty_when_archive_missing(tmp_path) -> None:
    repository = InterviewRepository(tmp_path / "missing.jsonl")

    assert repository.list_interviews() == []


def test_malformed_archive_rows_are_skipped(tmp_path) -> None:
    path = tmp_path / "interviews.jsonl"
    repository = InterviewRepository(path)
    interview_id = repository.save(
        InterviewRecord(user_id="u", project_id="p"),
        _transcript(("q", "a")),
        SummaryRecord(text="s"),
    )
    with path.open("a", encoding="utf-8") as handle:
        handle.write("{not json\n")
        handle.write(json.dumps(["unexpected"]) + "\n")
        handle.write(json.dumps({"interview": {"user_id": "no id"}}) + "\n")

    fresh = InterviewRepository(path)

    assert [record.id for record in fresh.list_interviews()] == [interview_id]


def test_archive_written_by_another_repository_is_visible(tmp_path) -> None:
    path = tmp_path / "interviews.jsonl"
    reader = InterviewRepository(path)
    assert reader.list_interviews() == []

    writer = InterviewRepository(path)
    interview_id = writer.save(
        InterviewRecord(user_id="u", project_id="p"),
        _transcript(),
        SummaryRecord(text=""),
    )

    assert reader.get_interview(interview_id).user_id == "u"


def test_unwritable_archive_raises_repository_error(tmp_path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory", encoding="utf-8")
    repository = InterviewRepository(blocker / "interviews.jsonl")

    with pytest.raises(RepositoryError):
        repository.save(
            InterviewRecord(user_id="u", project_id="p"),
            _transcript(),
            SummaryRecord(text=""),
        )


def test_repository_is_a_context_manager(tmp_path) -> None:
    with InterviewRepository(tmp_path / "interviews.jsonl") as repository:
        assert repository.archive_path.name == "interviews.jsonl"
