"""Configuration helpers for the vox interview runtime."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from importlib import import_module
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml

from .errors import ConfigurationError, UnknownTopicError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MAX_QUESTIONS = 20
DEFAULT_SYSTEM_PROMPT = "You are an interviewer."
CONFIG_FILENAME = ".vox.yaml"


class ProviderKind(str, Enum):
    """Available question sources for a topic."""

    STATIC = "static"
    LLM = "llm"

    @classmethod
    def from_string(cls, kind: str | None) -> "ProviderKind":
        """Normalize a provider name from the config file."""
        if not kind:
            raise ConfigurationError("Topic provider is required.")
        normalized = kind.strip().lower()
        # Older config files name the hosted model family directly.
        if normalized in {"gemini", "openai", "azure-openai", "maf"}:
            return cls.LLM
        for candidate in cls:
            if candidate.value == normalized:
                return candidate
        raise ConfigurationError(f"unknown provider '{kind}'")


@dataclass(frozen=True, slots=True)
class Topic:
    """An interview topic loaded from the config file."""

    id: str
    name: str
    provider: ProviderKind
    questions: Tuple[str, ...] = ()
    prompt: str = ""

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "Topic":
        topic_id = str(data.get("id") or "").strip()
        if not topic_id:
            raise ConfigurationError("Every interview topic needs an id.")
        provider = ProviderKind.from_string(
            str(data.get("provider") or "")
        )
        raw_questions = data.get("questions") or []
        if not isinstance(raw_questions, list):
            raise ConfigurationError(
                f"Topic '{topic_id}' questions must be a list."
            )
        questions = tuple(str(item) for item in raw_questions)
        if provider is ProviderKind.STATIC and not questions:
            logger.warning("Static topic '%s' has no questions.", topic_id)
        return cls(
            id=topic_id,
            name=str(data.get("name") or topic_id),
            provider=provider,
            questions=questions,
            prompt=str(data.get("prompt") or ""),
        )


@dataclass(slots=True)
class ModelSettings:
    """Holds model-related configuration for the runtime."""

    provider: str
    model: str
    endpoint: Optional[str]
    api_key: Optional[str]
    api_version: Optional[str]


@dataclass(slots=True)
class SlackSettings:
    """Credentials for the chat front end."""

    bot_token: Optional[str] = None
    signing_secret: Optional[str] = None


def _empty_topics() -> Tuple[Topic, ...]:
    return ()


@dataclass(slots=True)
class AppSettings:
    """Top-level settings loaded from the environment and the config file."""

    model: ModelSettings
    slack: SlackSettings
    data_dir: Path
    archive_path: Path
    redis_url: Optional[str]
    max_questions: int = DEFAULT_MAX_QUESTIONS
    answer_timeout: Optional[float] = None
    interviewer_prompt: Optional[str] = None
    topics: Tuple[Topic, ...] = field(default_factory=_empty_topics)
    config_path: Optional[Path] = None

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "AppSettings":
        """Load settings from the environment, .env file and YAML config."""
        _ensure_dotenv()
        path = _resolve_config_path(config_path)
        document = _read_config_file(path) if path else {}

        llm_section = _section(document, "providers", "llm")
        if not llm_section:
            llm_section = _section(document, "providers", "gemini")
        interviewer = llm_section.get("interviewer") or {}
        interviewer_prompt = None
        if isinstance(interviewer, dict):
            prompt_value = interviewer.get("prompt")
            if prompt_value:
                interviewer_prompt = str(prompt_value)

        model_name = (
            llm_section.get("model")
            or os.getenv("VOX_MODEL")
            or DEFAULT_MODEL
        )
        api_key = (
            os.getenv("VOX_MODEL_API_KEY")
            or llm_section.get("api_key")
            or None
        )
        model = ModelSettings(
            provider=os.getenv("VOX_MODEL_PROVIDER", "openai"),
            model=str(model_name),
            endpoint=os.getenv("VOX_MODEL_ENDPOINT"),
            api_key=str(api_key) if api_key else None,
            api_version=os.getenv("VOX_MODEL_API_VERSION"),
        )
        slack = SlackSettings(
            bot_token=os.getenv("VOX_SLACK_BOT_TOKEN") or None,
            signing_secret=os.getenv("VOX_SLACK_SIGNING_SECRET") or None,
        )

        data_dir = Path(
            os.getenv("VOX_DATA_DIR", str(_default_data_dir()))
        ).expanduser()
        archive_path = Path(
            os.getenv(
                "VOX_ARCHIVE_JSONL",
                str(data_dir / "interviews.jsonl"),
            )
        ).expanduser()
        redis_url = os.getenv("VOX_REDIS_URL", "").strip() or None

        max_questions_raw = os.getenv(
            "VOX_MAX_QUESTIONS", str(DEFAULT_MAX_QUESTIONS)
        )
        try:
            max_questions = int(max_questions_raw)
        except ValueError as exc:
            raise ConfigurationError(
                "VOX_MAX_QUESTIONS must be an integer"
            ) from exc
        if max_questions < 1:
            raise ConfigurationError("VOX_MAX_QUESTIONS must be at least 1")

        answer_timeout: Optional[float] = None
        timeout_raw = os.getenv("VOX_ANSWER_TIMEOUT", "").strip()
        if timeout_raw:
            try:
                answer_timeout = float(timeout_raw)
            except ValueError as exc:
                raise ConfigurationError(
                    "VOX_ANSWER_TIMEOUT must be a number of seconds"
                ) from exc
            if answer_timeout <= 0:
                answer_timeout = None

        return cls(
            model=model,
            slack=slack,
            data_dir=data_dir,
            archive_path=archive_path,
            redis_url=redis_url,
            max_questions=max_questions,
            answer_timeout=answer_timeout,
            interviewer_prompt=interviewer_prompt,
            topics=parse_topics(document.get("interviews")),
            config_path=path,
        )

    def find_topic(self, topic_id: str) -> Topic:
        """Return the topic whose id matches ``topic_id`` ignoring case."""
        needle = topic_id.strip().casefold()
        for topic in self.topics:
            if topic.id.casefold() == needle:
                return topic
        raise UnknownTopicError(topic_id)

    def describe(self) -> Dict[str, Any]:
        """Summarize the resolved configuration with secrets masked."""

        return {
            "config_path": str(self.config_path) if self.config_path else None,
            "model": {
                "provider": self.model.provider,
                "model": self.model.model,
                "endpoint": self.model.endpoint,
                "api_key": mask_secret(self.model.api_key),
                "api_version": self.model.api_version,
            },
            "slack": {
                "bot_token": mask_secret(self.slack.bot_token),
                "signing_secret": mask_secret(self.slack.signing_secret),
            },
            "data_dir": str(self.data_dir),
            "archive_path": str(self.archive_path),
            "redis_url": self.redis_url,
            "max_questions": self.max_questions,
            "answer_timeout": self.answer_timeout,
            "interviewer_prompt": self.interviewer_prompt,
            "topics": [
                {
                    "id": topic.id,
                    "name": topic.name,
                    "provider": topic.provider.value,
                    "questions": len(topic.questions),
                }
                for topic in self.topics
            ],
        }


def parse_topics(raw: Any) -> Tuple[Topic, ...]:
    """Build topics from the ``interviews`` list of the config file."""

    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigurationError("'interviews' must be a list of topics.")
    topics: List[Topic] = []
    for item in raw:
        if not isinstance(item, dict):
            raise ConfigurationError("Each interview topic must be a mapping.")
        topics.append(Topic.from_mapping(item))
    return tuple(topics)


def build_interviewer_prompt(
    topic_prompt: str,
    system_prompt: Optional[str] = None,
) -> str:
    """Combine the interviewer system prompt with a topic prompt."""

    return f"{system_prompt or DEFAULT_SYSTEM_PROMPT}\n\n{topic_prompt}"


def mask_secret(value: Optional[str]) -> Optional[str]:
    """Hide all but the last four characters of a credential."""

    if not value:
        return None
    if len(value) <= 4:
        return "****"
    return "****" + value[-4:]


def _default_data_dir() -> Path:
    base = os.getenv("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(base) / "vox"


def _candidate_config_paths() -> Sequence[Path]:
    config_home = os.getenv("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return (
        Path.cwd() / CONFIG_FILENAME,
        Path(config_home) / CONFIG_FILENAME,
        Path("/etc/vox") / CONFIG_FILENAME,
    )


def _resolve_config_path(explicit: Optional[Path]) -> Optional[Path]:
    if explicit is not None:
        if not explicit.exists():
            raise ConfigurationError(f"Config file not found: {explicit}")
        return explicit
    env_path = os.getenv("VOX_CONFIG")
    if env_path:
        path = Path(env_path).expanduser()
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        return path
    for candidate in _candidate_config_paths():
        if candidate.exists():
            return candidate
    return None


def _read_config_file(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            document = yaml.safe_load(handle)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(
            f"Unable to read config file {path}: {exc}"
        ) from exc
    logger.info("Using config file %s", path)
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ConfigurationError(f"Config file {path} must hold a mapping.")
    return document


def _section(document: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    current: Any = document
    for key in keys:
        if not isinstance(current, dict):
            return {}
        current = current.get(key)
    return current if isinstance(current, dict) else {}


def _ensure_dotenv() -> None:
    """Load dotenv variables and provide a helpful error if missing."""

    try:
        dotenv_module = import_module("dotenv")
    except ModuleNotFoundError as exc:  # pragma: no cover - optional dep
        raise ConfigurationError(
            "python-dotenv is required. Install with `pip install "
            "python-dotenv`."
        ) from exc

    load_dotenv = getattr(dotenv_module, "load_dotenv")
    load_dotenv()
