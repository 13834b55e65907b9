"""Command line entry-point for vox interviews."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import logging
import sys
from dataclasses import replace
from functools import partial
from pathlib import Path
from typing import Callable, List, Optional

from .config import AppSettings
from .errors import ConfigurationError, VoxError
from .interview import InterviewOrchestrator
from .observability import LOG_LEVELS, configure_logging, initialize_tracing
from .providers import build_question_provider, describe_topics
from .repository_cli import add_repository_parser, run_repository_command
from .server import run_server
from .terminal import TerminalUI
from .transcript_store import InterviewRepository

logger = logging.getLogger(__name__)

CommandHandler = Callable[[AppSettings, argparse.Namespace], None]


def _default_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "anonymous"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vox",
        description="Run structured interviews in the terminal or on Slack",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to the YAML config file (default: .vox.yaml lookup)",
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default="info",
        help="Logging verbosity (default: info)",
    )
    subparsers = parser.add_subparsers(dest="command")
    subparsers.required = True

    start_parser = subparsers.add_parser(
        "start",
        help="Start a new interview in the terminal",
    )
    start_parser.add_argument("--topic", help="The topic of the interview")
    start_parser.add_argument(
        "--api-key",
        help="API key for conversational topics (overrides VOX_MODEL_API_KEY)",
    )
    start_parser.add_argument(
        "--model",
        help="Model for conversational topics (overrides the config file)",
    )
    start_parser.add_argument(
        "--user",
        default=_default_user(),
        help="The user being interviewed (default: login name)",
    )
    start_parser.set_defaults(func=_handle_start)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Serve the Slack bot webhooks",
    )
    serve_parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host interface for the server (default: 0.0.0.0)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="Port for the server (default: 8080)",
    )
    serve_parser.add_argument(
        "--slack-bot-token",
        help="Slack bot token (overrides VOX_SLACK_BOT_TOKEN)",
    )
    serve_parser.add_argument(
        "--slack-signing-secret",
        help="Slack signing secret (overrides VOX_SLACK_SIGNING_SECRET)",
    )
    serve_parser.add_argument(
        "--api-key",
        help="API key for conversational topics (overrides VOX_MODEL_API_KEY)",
    )
    serve_parser.add_argument(
        "--model",
        help="Model for conversational topics (overrides the config file)",
    )
    serve_parser.set_defaults(func=_handle_serve)

    repository_parser = add_repository_parser(subparsers)
    repository_parser.set_defaults(func=_handle_repository)

    debug_parser = subparsers.add_parser("debug", help="Debugging helpers")
    debug_commands = debug_parser.add_subparsers(dest="debug_command")
    debug_commands.required = True
    config_parser = debug_commands.add_parser(
        "config",
        help="Print the resolved configuration with secrets masked",
    )
    config_parser.set_defaults(func=_handle_debug_config)
    return parser


def run_cli(argv: Optional[List[str]] = None) -> None:
    """Entry-point invoked from ``vox`` and ``python -m vox``."""

    args = _build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        settings = AppSettings.load(args.config)
        handler: CommandHandler = args.func
        handler(settings, args)
    except VoxError as exc:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        raise SystemExit(130) from None


def _handle_start(settings: AppSettings, args: argparse.Namespace) -> None:
    if not args.topic:
        print("Please specify a topic using --topic. Available topics:")
        for line in describe_topics(settings.topics):
            print(line)
        return

    topic = settings.find_topic(args.topic)
    provider = build_question_provider(
        settings,
        topic,
        api_key=args.api_key,
        model=args.model,
    )
    initialize_tracing()
    with InterviewRepository(settings.archive_path, settings.redis_url) as repo:
        orchestrator = InterviewOrchestrator(provider, TerminalUI(), repo)
        outcome = asyncio.run(orchestrator.run(args.user, topic.id))
    print(f"Interview saved with id: {outcome.interview_id}")


def _handle_serve(settings: AppSettings, args: argparse.Namespace) -> None:
    slack = replace(
        settings.slack,
        bot_token=args.slack_bot_token or settings.slack.bot_token,
        signing_secret=(
            args.slack_signing_secret or settings.slack.signing_secret
        ),
    )
    if not slack.bot_token:
        raise ConfigurationError(
            "A Slack bot token is required. Pass --slack-bot-token or set "
            "VOX_SLACK_BOT_TOKEN."
        )
    if not slack.signing_secret:
        raise ConfigurationError(
            "A Slack signing secret is required. Pass --slack-signing-secret "
            "or set VOX_SLACK_SIGNING_SECRET."
        )
    settings = replace(settings, slack=slack)
    initialize_tracing()
    provider_factory = partial(
        build_question_provider,
        api_key=args.api_key,
        model=args.model,
    )
    with InterviewRepository(settings.archive_path, settings.redis_url) as repo:
        run_server(
            settings,
            repo,
            host=args.host,
            port=args.port,
            provider_factory=provider_factory,
            log_level=args.log_level,
        )


def _handle_repository(settings: AppSettings, args: argparse.Namespace) -> None:
    with InterviewRepository(settings.archive_path, settings.redis_url) as repo:
        run_repository_command(repo, args)


def _handle_debug_config(
    settings: AppSettings,
    args: argparse.Namespace,
) -> None:
    print(json.dumps(settings.describe(), indent=2))


if __name__ == "__main__":  # pragma: no cover - manual execution hook
    run_cli()
