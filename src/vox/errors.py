"""Exception hierarchy shared by the interview runtime."""

from __future__ import annotations


class VoxError(RuntimeError):
    """Base class for errors reported to the invoking surface."""


class ConfigurationError(VoxError):
    """Raised for missing credentials, bad config files or provider kinds."""


class UnknownTopicError(ConfigurationError):
    """Raised when a topic identifier does not match any configured topic."""

    def __init__(self, topic_id: str) -> None:
        super().__init__(f"topic '{topic_id}' not found")
        self.topic_id = topic_id


class ProviderError(VoxError):
    """Raised when the conversational service fails an explicit request."""


class RepositoryError(VoxError):
    """Raised when interview data cannot be persisted or read."""


class InterviewNotFoundError(RepositoryError, KeyError):
    """Raised when a requested interview key is absent from the repository."""

    def __init__(self, kind: str, interview_id: str) -> None:
        super().__init__(f"{kind} not found: {interview_id}")
        self.kind = kind
        self.interview_id = interview_id

    def __str__(self) -> str:
        return f"{self.kind} not found: {self.interview_id}"


class InterviewInProgressError(VoxError):
    """Raised when a respondent already has an active interview session."""

    def __init__(self, respondent_id: str) -> None:
        super().__init__(
            f"interview already in progress for {respondent_id}"
        )
        self.respondent_id = respondent_id


class InterviewAborted(VoxError):
    """Raised by a UI when no answer can be obtained for a question."""


class AnswerTimeoutError(InterviewAborted):
    """Raised when a respondent does not answer within the configured time."""


class SlackAPIError(VoxError):
    """Raised when the chat platform rejects or fails a Web API call."""

    def __init__(self, method: str, error: str) -> None:
        super().__init__(f"Slack API call {method} failed: {error}")
        self.method = method
        self.error = error
