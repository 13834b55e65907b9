"""Slack front end: Web API client, request verification and chat UI."""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from typing import Any, Dict, Mapping, Optional

import httpx

from .errors import SlackAPIError
from .interview import InterviewUI
from .models import TranscriptRecord
from .sessions import InterviewSession

logger = logging.getLogger(__name__)

SLACK_API_BASE = "https://slack.com/api/"
SIGNATURE_VERSION = "v0"
MAX_REQUEST_AGE_SECONDS = 60 * 5
HTTP_TIMEOUT_SECONDS = 10.0


class SlackClient:
    """Minimal async client for the Slack Web API methods the bot uses."""

    def __init__(
        self,
        bot_token: str,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = SLACK_API_BASE,
    ) -> None:
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url,
            timeout=HTTP_TIMEOUT_SECONDS,
        )
        self._headers = {"Authorization": f"Bearer {bot_token}"}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def _call(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._http.post(
                method,
                json=payload,
                headers=self._headers,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise SlackAPIError(method, str(exc)) from exc
        except ValueError as exc:
            raise SlackAPIError(method, "invalid JSON response") from exc
        if not isinstance(data, dict) or not data.get("ok"):
            error = data.get("error") if isinstance(data, dict) else None
            raise SlackAPIError(method, str(error or "unknown_error"))
        return data

    async def post_message(self, channel_id: str, text: str) -> None:
        await self._call(
            "chat.postMessage",
            {"channel": channel_id, "text": text},
        )

    async def post_ephemeral(
        self,
        channel_id: str,
        user_id: str,
        text: str,
    ) -> None:
        await self._call(
            "chat.postEphemeral",
            {"channel": channel_id, "user": user_id, "text": text},
        )

    async def open_direct_conversation(self, user_id: str) -> str:
        """Open (or reuse) a direct message channel and return its id."""

        data = await self._call("conversations.open", {"users": user_id})
        channel = data.get("channel")
        channel_id = channel.get("id") if isinstance(channel, dict) else None
        if not channel_id:
            raise SlackAPIError("conversations.open", "missing channel id")
        return str(channel_id)


def verify_slack_signature(
    headers: Mapping[str, str],
    body: bytes,
    secret: str,
    now: Optional[float] = None,
) -> bool:
    """Check the ``X-Slack-Signature`` header of an inbound request.

    Requests older than five minutes are rejected to prevent replays.
    """

    timestamp = headers.get("x-slack-request-timestamp") or headers.get(
        "X-Slack-Request-Timestamp"
    )
    signature = headers.get("x-slack-signature") or headers.get(
        "X-Slack-Signature"
    )
    if not timestamp or not signature or not secret:
        return False
    try:
        issued_at = int(timestamp)
    except ValueError:
        return False
    current = time.time() if now is None else now
    if abs(current - issued_at) > MAX_REQUEST_AGE_SECONDS:
        logger.warning("Rejecting stale Slack request from %s", timestamp)
        return False
    base = f"{SIGNATURE_VERSION}:{timestamp}:".encode("utf-8") + body
    digest = hmac.new(secret.encode("utf-8"), base, hashlib.sha256).hexdigest()
    expected = f"{SIGNATURE_VERSION}={digest}"
    return hmac.compare_digest(expected, signature)


class SlackUI(InterviewUI):
    """Chat UI bound to one respondent's direct message channel."""

    def __init__(
        self,
        client: SlackClient,
        channel_id: str,
        session: InterviewSession,
        *,
        answer_timeout: Optional[float] = None,
    ) -> None:
        self._client = client
        self._channel_id = channel_id
        self._session = session
        self._answer_timeout = answer_timeout

    async def ask(self, question: str) -> str:
        await self._client.post_message(self._channel_id, question)
        answer = await self._session.receive(self._answer_timeout)
        return answer.strip()

    async def display_summary(
        self,
        transcript: TranscriptRecord,
        summary: str,
    ) -> None:
        lines = ["*Interview Summary*", ""]
        for entry in transcript:
            lines.append(f"*Q:* {entry.question}")
            lines.append(f"*A:* {entry.answer}")
            lines.append("")
        if summary:
            lines.append(summary)
        try:
            await self._client.post_message(self._channel_id, "\n".join(lines))
        except SlackAPIError as exc:
            logger.error(
                "Unable to post summary to %s: %s", self._channel_id, exc
            )
