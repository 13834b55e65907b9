from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from vox.cli import run_cli
from vox.models import InterviewRecord, SummaryRecord, TranscriptRecord
from vox.transcript_store import InterviewRepository

CONFIG = """
interviews:
  - id: onboarding
    name: Onboarding feedback
    provider: static
    questions: [q1, q2]
  - id: discovery
    name: Problem discovery
    provider: llm
    prompt: Dig in.
"""


@pytest.fixture
def archive(clean_env: Path, monkeypatch) -> Path:
    path = clean_env / "interviews.jsonl"
    monkeypatch.setenv("VOX_ARCHIVE_JSONL", str(path))
    (clean_env / ".vox.yaml").write_text(CONFIG, encoding="utf-8")
    return path


def _seed(path: Path) -> str:
    transcript = TranscriptRecord()
    transcript.append("Q1", "A1")
    return InterviewRepository(path).save(
        InterviewRecord(
            user_id="alice",
            project_id="onboarding",
            created_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        ),
        transcript,
        SummaryRecord(text="This is a summary."),
    )


def test_export_text_contains_transcript_and_summary(archive: Path, capsys) -> None:
    interview_id = _seed(archive)

    run_cli(["repository", "export", interview_id, "--format=text"])

    out = capsys.readouterr().out
    assert f"Interview ID: {interview_id}" in out
    assert "Q: Q1" in out
    assert "A: A1" in out
    assert "This is a summary." in out


def test_export_json_is_flattened(archive: Path, capsys) -> None:
    interview_id = _seed(archive)

    run_cli(["repository", "export", interview_id])

    document = json.loads(capsys.readouterr().out)
    assert document["id"] == interview_id
    assert document["user_id"] == "alice"
    assert document["project_id"] == "onboarding"
    assert document["entries"] == [{"question": "Q1", "answer": "A1"}]
    assert document["text"] == "This is a summary."


def test_export_unknown_format_fails(archive: Path, capsys) -> None:
    interview_id = _seed(archive)

    with pytest.raises(SystemExit) as excinfo:
        run_cli(["repository", "export", interview_id, "--format", "xml"])

    assert excinfo.value.code == 1
    assert "unknown format: xml" in capsys.readouterr().err


def test_view_shows_summary_by_default(archive: Path, capsys) -> None:
    interview_id = _seed(archive)

    run_cli(["repository", "view", interview_id])

    out = capsys.readouterr().out
    assert "User: alice" in out
    assert "--- Summary ---" in out
    assert "This is a summary." in out
    assert "Q: Q1" not in out


def test_view_full_shows_transcript(archive: Path, capsys) -> None:
    interview_id = _seed(archive)

    run_cli(["repository", "view", interview_id, "--full"])

    out = capsys.readouterr().out
    assert "--- Transcript ---" in out
    assert "Q: Q1\nA: A1" in out


def test_view_missing_interview_reports_error(archive: Path, capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        run_cli(["repository", "view", "does-not-exist"])

    assert excinfo.value.code == 1
    assert "interview not found: does-not-exist" in capsys.readouterr().err


def test_list_prints_table(archive: Path, capsys) -> None:
    interview_id = _seed(archive)

    run_cli(["repository", "list"])

    lines = capsys.readouterr().out.splitlines()
    assert lines[0].split() == ["ID", "User", "Project", "Created", "At"]
    assert lines[1].startswith(interview_id)
    assert "alice" in lines[1]


def test_list_without_interviews(archive: Path, capsys) -> None:
    run_cli(["repository", "list"])

    assert capsys.readouterr().out.strip() == "No interviews found."


def test_start_without_topic_lists_topics(archive: Path, capsys) -> None:
    run_cli(["start"])

    out = capsys.readouterr().out
    assert " - onboarding: Onboarding feedback" in out
    assert " - discovery: Problem discovery" in out


def test_start_with_unknown_topic_fails(archive: Path, capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        run_cli(["start", "--topic", "nope"])

    assert excinfo.value.code == 1
    assert "Error: topic 'nope' not found" in capsys.readouterr().err


def test_start_llm_topic_without_api_key_fails(archive: Path, capsys) -> None:
    with pytest.raises(SystemExit):
        run_cli(["start", "--topic", "discovery"])

    assert "API key" in capsys.readouterr().err


def test_start_runs_static_interview(archive: Path, monkeypatch, capsys) -> None:
    answers = iter(["a1", "a2"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))

    run_cli(["start", "--topic", "Onboarding", "--user", "carol"])

    out = capsys.readouterr().out
    assert "q1" in out and "q2" in out
    assert "--- Interview Summary ---" in out
    assert "Interview saved with id:" in out
    records = InterviewRepository(archive).list_interviews()
    assert [(record.user_id, record.project_id) for record in records] == [
        ("carol", "onboarding")
    ]


def test_serve_requires_slack_credentials(archive: Path, capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        run_cli(["serve"])

    assert excinfo.value.code == 1
    assert "Slack bot token" in capsys.readouterr().err


def test_debug_config_masks_secrets(archive: Path, monkeypatch, capsys) -> None:
    monkeypatch.setenv("VOX_MODEL_API_KEY", "sk-live-123456")

    run_cli(["debug", "config"])

    document = json.loads(capsys.readouterr().out)
    assert document["model"]["api_key"] == "****3456"
    assert [topic["id"] for topic in document["topics"]] == ["onboarding", "discovery"]
