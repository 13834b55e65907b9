"""Command-line utilities for browsing stored interviews."""

from __future__ import annotations

import argparse
import json
from typing import Any, Callable, Dict, List, Sequence

from .errors import VoxError
from .models import InterviewRecord, SummaryRecord, TranscriptRecord
from .transcript_store import InterviewRepository

CommandHandler = Callable[[InterviewRepository, argparse.Namespace], None]

EXPORT_FORMATS = ("json", "text")
LIST_HEADERS = ("ID", "User", "Project", "Created At")


def add_repository_parser(subparsers: Any) -> argparse.ArgumentParser:
    """Register the ``repository`` command group on ``subparsers``."""

    parser = subparsers.add_parser(
        "repository",
        help="Browse and export stored interviews",
    )
    commands = parser.add_subparsers(dest="repository_command")
    commands.required = True

    list_parser = commands.add_parser(
        "list",
        help="List all interviews in the repository",
    )
    list_parser.set_defaults(repository_func=_handle_list)

    view_parser = commands.add_parser("view", help="View a single interview")
    view_parser.add_argument("id", help="Interview identifier")
    view_parser.add_argument(
        "--full",
        action="store_true",
        help="Show the full transcript instead of the summary",
    )
    view_parser.set_defaults(repository_func=_handle_view)

    export_parser = commands.add_parser(
        "export",
        help="Export a single interview",
    )
    export_parser.add_argument("id", help="Interview identifier")
    export_parser.add_argument(
        "--format",
        default="json",
        help="The format to export the interview in (json, text)",
    )
    export_parser.set_defaults(repository_func=_handle_export)
    return parser


def run_repository_command(
    repository: InterviewRepository,
    args: argparse.Namespace,
) -> None:
    handler: CommandHandler = args.repository_func
    handler(repository, args)


def _handle_list(
    repository: InterviewRepository,
    args: argparse.Namespace,
) -> None:
    interviews = repository.list_interviews()
    if not interviews:
        print("No interviews found.")
        return
    rows = [
        (
            record.id,
            record.user_id,
            record.project_id,
            record.created_at.isoformat(),
        )
        for record in interviews
    ]
    for line in format_table(LIST_HEADERS, rows):
        print(line)


def _handle_view(
    repository: InterviewRepository,
    args: argparse.Namespace,
) -> None:
    interview = repository.get_interview(args.id)
    _print_header(interview)
    if args.full:
        transcript = repository.get_transcript(args.id)
        print("\n--- Transcript ---")
        _print_entries(transcript)
        print("------------------")
    else:
        summary = repository.get_summary(args.id)
        print("\n--- Summary ---")
        print(summary.text)
        print("---------------")


def _handle_export(
    repository: InterviewRepository,
    args: argparse.Namespace,
) -> None:
    export_format = str(args.format).lower()
    if export_format not in EXPORT_FORMATS:
        raise VoxError(f"unknown format: {args.format}")
    interview = repository.get_interview(args.id)
    transcript = repository.get_transcript(args.id)
    summary = repository.get_summary(args.id)

    if export_format == "json":
        print(json.dumps(export_document(interview, transcript, summary), indent=2))
        return
    print(render_text_export(interview, transcript, summary), end="")


def export_document(
    interview: InterviewRecord,
    transcript: TranscriptRecord,
    summary: SummaryRecord,
) -> Dict[str, Any]:
    """Flatten the three records of one interview into a single object."""

    document = interview.to_dict()
    document["entries"] = [entry.to_dict() for entry in transcript.entries]
    document["text"] = summary.text
    return document


def render_text_export(
    interview: InterviewRecord,
    transcript: TranscriptRecord,
    summary: SummaryRecord,
) -> str:
    lines = [
        f"Interview ID: {interview.id}",
        f"User: {interview.user_id}",
        f"Project: {interview.project_id}",
        f"Created At: {interview.created_at.isoformat()}",
        "",
        "--- Transcript ---",
    ]
    for entry in transcript.entries:
        lines.extend([f"Q: {entry.question}", f"A: {entry.answer}", ""])
    lines.extend(["--- Summary ---", summary.text])
    return "\n".join(lines) + "\n"


def format_table(
    headers: Sequence[str],
    rows: Sequence[Sequence[str]],
) -> List[str]:
    """Left-align ``rows`` under ``headers`` in padded columns."""

    widths = [len(header) for header in headers]
    for row in rows:
        for index, cell in enumerate(row):
            widths[index] = max(widths[index], len(cell))

    def _line(cells: Sequence[str]) -> str:
        return "  ".join(
            cell.ljust(widths[index]) for index, cell in enumerate(cells)
        ).rstrip()

    return [_line(headers), *(_line(row) for row in rows)]


def _print_header(interview: InterviewRecord) -> None:
    print(f"Interview ID: {interview.id}")
    print(f"User: {interview.user_id}")
    print(f"Project: {interview.project_id}")
    print(f"Created At: {interview.created_at.isoformat()}")


def _print_entries(transcript: TranscriptRecord) -> None:
    for entry in transcript.entries:
        print(f"Q: {entry.question}\nA: {entry.answer}\n")
