"""Prompt scaffolding for the conversational interviewer."""

from __future__ import annotations

from typing import Iterable, Tuple

TERMINATION_TOKEN = "INTERVIEW_COMPLETE"

INTERVIEW_STRUCTURE = (
    "You are to ask maximally one question at a time, and then wait for the "
    "user's response. Then, use the user's answer and the information "
    "supplied in the conversation so far to ask the next question.\n"
    f"When the interview is finished, reply with the token "
    f"{TERMINATION_TOKEN} followed by your summary of the conversation."
)

BUDGET_TEMPLATE = "You can ask up to {max_questions} questions in total."

CLOSING_SUMMARY_REQUEST = "Please summarize our conversation."

TRANSCRIPT_SUMMARY_PREAMBLE = (
    "Please summarize the following interview transcript:\n\n"
)


def build_structure_instruction(max_questions: int) -> str:
    """Return the fixed turn-taking rules with the question budget."""

    return "\n".join(
        [
            INTERVIEW_STRUCTURE,
            BUDGET_TEMPLATE.format(max_questions=max_questions),
        ]
    )


def render_transcript_prompt(entries: Iterable[Tuple[str, str]]) -> str:
    """Render question/answer pairs into a single summarization prompt."""

    body = "".join(
        f"Q: {question}\nA: {answer}\n\n" for question, answer in entries
    )
    return f"{TRANSCRIPT_SUMMARY_PREAMBLE}{body}"
