"""FastAPI entrypoint receiving Slack webhooks."""

from __future__ import annotations

import argparse
import asyncio
import logging
import shlex
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Coroutine, Dict, Optional, Set
from urllib.parse import parse_qs

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, ValidationError

from .config import AppSettings, Topic
from .errors import ConfigurationError, InterviewInProgressError, SlackAPIError, VoxError
from .interview import InterviewOrchestrator
from .providers import QuestionProvider, build_question_provider
from .sessions import InterviewSession, SessionRegistry
from .slack import SlackClient, SlackUI, verify_slack_signature
from .transcript_store import InterviewRepository

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[AppSettings, Topic], QuestionProvider]

IN_PROGRESS_MESSAGE = "You already have an interview in progress."


class SlackMessageEvent(BaseModel):
    """Inner ``event`` object of an Events API callback."""

    type: str
    user: Optional[str] = None
    text: Optional[str] = None
    channel: Optional[str] = None
    bot_id: Optional[str] = None
    subtype: Optional[str] = None


class SlackEventEnvelope(BaseModel):
    """Outer payload posted by the Slack Events API."""

    type: str
    token: Optional[str] = None
    challenge: Optional[str] = None
    event: Optional[SlackMessageEvent] = None


class SlashCommand(BaseModel):
    """Form fields of a slash-command invocation."""

    command: str = ""
    text: str = ""
    user_id: str
    channel_id: str


class CommandUsageError(Exception):
    """Raised when the slash-command text cannot be parsed."""


class _CommandParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise CommandUsageError(f"{self.format_usage()}{self.prog}: error: {message}")

    def exit(self, status: int = 0, message: Optional[str] = None) -> None:  # type: ignore[override]
        raise CommandUsageError(message or "")

    def print_help(self, file: Any = None) -> None:
        raise CommandUsageError(self.format_help())


def _build_command_parser() -> argparse.ArgumentParser:
    parser = _CommandParser(prog="interview", add_help=True)
    subparsers = parser.add_subparsers(dest="action")
    start = subparsers.add_parser("start", help="Start an interview.")
    start.add_argument("--topic", required=True, help="Topic identifier.")
    return parser


def parse_command_text(text: str) -> argparse.Namespace:
    """Parse ``interview start --topic <id>`` style slash-command text."""

    try:
        tokens = shlex.split(text)
    except ValueError as exc:
        raise CommandUsageError(str(exc)) from exc
    if tokens and tokens[0] == "interview":
        tokens = tokens[1:]
    parser = _build_command_parser()
    args = parser.parse_args(tokens)
    if args.action is None:
        raise CommandUsageError(parser.format_usage())
    return args


class InterviewRunner:
    """Keeps strong references to in-flight interview tasks."""

    def __init__(self) -> None:
        self._tasks: Set["asyncio.Task[None]"] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, None]) -> "asyncio.Task[None]":
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def shutdown(self) -> None:
        """Cancel in-flight interviews and wait for their cleanup to finish."""

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


def create_app(
    settings: AppSettings,
    repository: InterviewRepository,
    *,
    registry: Optional[SessionRegistry] = None,
    slack_client: Optional[SlackClient] = None,
    provider_factory: ProviderFactory = build_question_provider,
) -> FastAPI:
    """Create the FastAPI app serving the Slack event and command webhooks."""

    signing_secret = settings.slack.signing_secret
    if not signing_secret:
        raise ConfigurationError("A Slack signing secret is required.")
    owns_client = slack_client is None
    if slack_client is None:
        if not settings.slack.bot_token:
            raise ConfigurationError("A Slack bot token is required.")
        slack_client = SlackClient(settings.slack.bot_token)
    slack: SlackClient = slack_client
    sessions = registry or SessionRegistry()
    runner = InterviewRunner()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await runner.shutdown()
        if owns_client:
            await slack.aclose()

    app = FastAPI(title="Vox Interviews", lifespan=lifespan)
    app.state.registry = sessions
    app.state.runner = runner
    app.state.slack = slack

    async def _verified_body(request: Request) -> bytes:
        body = await request.body()
        if not verify_slack_signature(request.headers, body, signing_secret):
            logger.warning("Rejected Slack request with invalid signature.")
            raise HTTPException(status_code=401, detail="invalid signature")
        return body

    async def _reply(channel_id: str, user_id: str, text: str) -> None:
        try:
            await slack.post_ephemeral(channel_id, user_id, text)
        except SlackAPIError as exc:
            logger.error("Unable to send ephemeral reply to %s: %s", user_id, exc)

    async def _conduct(
        session: InterviewSession,
        provider: QuestionProvider,
        topic: Topic,
        channel_id: str,
    ) -> None:
        user_id = session.respondent_id
        try:
            dm_channel = await slack.open_direct_conversation(user_id)
            ui = SlackUI(
                slack,
                dm_channel,
                session,
                answer_timeout=settings.answer_timeout,
            )
            orchestrator = InterviewOrchestrator(provider, ui, repository)
            outcome = await orchestrator.run(user_id, topic.id)
            logger.info(
                "Interview %s for %s on topic '%s' completed.",
                outcome.interview_id,
                user_id,
                topic.id,
            )
        except asyncio.CancelledError:
            logger.warning("Interview for %s cancelled by server shutdown.", user_id)
            raise
        except VoxError as exc:
            logger.error("Interview for %s failed: %s", user_id, exc)
            await _reply(channel_id, user_id, f"Error: {exc}")
        except Exception:  # noqa: BLE001 # pylint: disable=broad-except
            logger.exception("Unexpected failure in interview for %s", user_id)
            await _reply(channel_id, user_id, "Error: the interview failed unexpectedly.")
        finally:
            sessions.end_session(user_id)

    @app.post("/slack/events")
    async def slack_events(request: Request) -> Dict[str, Any]:
        body = await _verified_body(request)
        try:
            envelope = SlackEventEnvelope.model_validate_json(body)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail="invalid event payload") from exc

        if envelope.type == "url_verification":
            return {"challenge": envelope.challenge or ""}

        event = envelope.event
        if envelope.type == "event_callback" and event is not None:
            if event.type == "message" and not event.bot_id and not event.subtype:
                if event.user and event.text is not None:
                    sessions.deliver(event.user, event.text)
        return {"ok": True}

    @app.post("/slack/commands")
    async def slack_commands(request: Request) -> Dict[str, Any]:
        body = await _verified_body(request)
        fields = {
            key: values[0]
            for key, values in parse_qs(body.decode("utf-8")).items()
        }
        try:
            command = SlashCommand.model_validate(fields)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail="invalid command payload") from exc

        try:
            args = parse_command_text(command.text)
        except CommandUsageError as exc:
            await _reply(command.channel_id, command.user_id, str(exc).strip())
            return {"ok": True}

        try:
            topic = settings.find_topic(args.topic)
        except ConfigurationError as exc:
            await _reply(command.channel_id, command.user_id, f"Error: {exc}")
            return {"ok": True}

        try:
            session = sessions.start_session(command.user_id)
        except InterviewInProgressError:
            await _reply(command.channel_id, command.user_id, IN_PROGRESS_MESSAGE)
            return {"ok": True}

        try:
            provider = provider_factory(settings, topic)
        except VoxError as exc:
            sessions.end_session(command.user_id)
            await _reply(command.channel_id, command.user_id, f"Error: {exc}")
            return {"ok": True}

        runner.spawn(_conduct(session, provider, topic, command.channel_id))
        return {"ok": True}

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"status": "ok", "active_sessions": len(sessions)}

    return app


def run_server(
    settings: AppSettings,
    repository: InterviewRepository,
    *,
    host: str = "0.0.0.0",
    port: int = 8080,
    provider_factory: ProviderFactory = build_question_provider,
    log_level: str = "info",
) -> None:
    """Start the webhook server."""

    app = create_app(
        settings,
        repository,
        provider_factory=provider_factory,
    )
    logger.info("Serving Slack webhooks on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_level=log_level)
