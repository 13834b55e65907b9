"""Persistence for completed interviews.

Every saved interview is one JSONL line holding the interview metadata, the
transcript and the summary under a single generated identity. When a Redis URL
is configured the same records are mirrored into Redis for fast lookups; the
mirror is best effort and the JSONL archive stays the source of truth.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import replace
from pathlib import Path
from types import TracebackType
from typing import Any, Dict, List, Optional, Tuple, Type, cast
from uuid import uuid4

import redis
from redis import Redis
from redis.exceptions import RedisError

from .errors import InterviewNotFoundError, RepositoryError
from .models import InterviewRecord, SummaryRecord, TranscriptRecord

logger = logging.getLogger(__name__)

INDEX_KEY = "interviews:index"

StoredInterview = Tuple[InterviewRecord, TranscriptRecord, SummaryRecord]


class InterviewRepository:
    """Stores interviews in a JSONL archive and mirrors them into Redis."""

    def __init__(
        self,
        archive_path: Path,
        redis_url: Optional[str] = None,
    ) -> None:
        self._archive_path = archive_path
        self._redis_url = redis_url
        self._redis: Optional[Redis] = None
        self._json_cache: Optional[Dict[str, StoredInterview]] = None
        self._json_cache_stamp: Optional[Tuple[int, int]] = None
        self._write_lock = threading.Lock()

    def __enter__(self) -> "InterviewRepository":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        self.close()

    @property
    def archive_path(self) -> Path:
        """Return the filesystem path for the JSONL archive."""

        return self._archive_path

    def _get_redis(self) -> Optional[Redis]:
        if not self._redis_url:
            return None
        if self._redis is None:
            try:
                self._redis = redis.from_url(  # type: ignore[call-overload]
                    self._redis_url,
                    decode_responses=True,
                )
            except RedisError as exc:  # pragma: no cover - network guarded
                logger.warning("Redis connection failed: %s", exc)
                self._redis = None
        return self._redis

    def save(
        self,
        interview: InterviewRecord,
        transcript: TranscriptRecord,
        summary: SummaryRecord,
    ) -> str:
        """Persist the three records under a new identity and return it."""

        interview_id = str(uuid4())
        stored_interview = replace(interview, id=interview_id)
        stored_transcript = TranscriptRecord(
            entries=list(transcript.entries),
            interview_id=interview_id,
        )
        stored_summary = SummaryRecord(
            text=summary.text,
            interview_id=interview_id,
        )
        line = json.dumps(
            {
                "interview": stored_interview.to_dict(),
                "transcript": stored_transcript.to_dict(),
                "summary": stored_summary.to_dict(),
            },
            ensure_ascii=False,
        )
        with self._write_lock:
            try:
                self._archive_path.parent.mkdir(parents=True, exist_ok=True)
                with self._archive_path.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
                    handle.flush()
                    os.fsync(handle.fileno())
            except OSError as exc:
                raise RepositoryError(
                    f"Unable to write interview archive {self._archive_path}: {exc}"
                ) from exc
            self.refresh()
            logger.info(
                "Saved interview %s with %d entries.",
                interview_id,
                len(stored_transcript),
            )
            self._mirror_to_redis(stored_interview, stored_transcript, stored_summary)
        return interview_id

    def _mirror_to_redis(
        self,
        interview: InterviewRecord,
        transcript: TranscriptRecord,
        summary: SummaryRecord,
    ) -> None:
        client = self._get_redis()
        if not client:
            return
        interview_id = interview.id
        try:
            pipe = client.pipeline(transaction=True)
            pipe.set(
                f"interview:{interview_id}",
                json.dumps(interview.to_dict(), ensure_ascii=False),
            )
            pipe.set(
                f"transcript:{interview_id}",
                json.dumps(transcript.to_dict(), ensure_ascii=False),
            )
            pipe.set(
                f"summary:{interview_id}",
                json.dumps(summary.to_dict(), ensure_ascii=False),
            )
            pipe.zadd(
                INDEX_KEY,
                {interview_id: interview.created_at.timestamp()},
            )
            pipe.execute()
        except RedisError as exc:  # pragma: no cover - best effort
            logger.warning(
                "Redis persistence failed for %s: %s", interview_id, exc
            )

    def get_interview(self, interview_id: str) -> InterviewRecord:
        payload = self._fetch_from_redis("interview", interview_id)
        if payload is not None:
            return InterviewRecord.from_dict(payload)
        return self._get_stored("interview", interview_id)[0]

    def get_transcript(self, interview_id: str) -> TranscriptRecord:
        payload = self._fetch_from_redis("transcript", interview_id)
        if payload is not None:
            return TranscriptRecord.from_dict(payload)
        return self._get_stored("transcript", interview_id)[1]

    def get_summary(self, interview_id: str) -> SummaryRecord:
        payload = self._fetch_from_redis("summary", interview_id)
        if payload is not None:
            return SummaryRecord.from_dict(payload)
        return self._get_stored("summary", interview_id)[2]

    def list_interviews(self) -> List[InterviewRecord]:
        """Return every stored interview ordered by creation time."""

        records: Dict[str, InterviewRecord] = {
            key: stored[0] for key, stored in self._load_json_cache().items()
        }
        client = self._get_redis()
        if client:
            try:
                ids: List[str] = client.zrange(  # type: ignore[assignment]
                    INDEX_KEY, 0, -1
                )
            except RedisError as exc:  # pragma: no cover - redis failure path
                logger.warning("Failed to list Redis interviews: %s", exc)
                ids = []
            for interview_id in ids:
                if interview_id in records:
                    continue
                payload = self._fetch_from_redis("interview", interview_id)
                if payload is not None:
                    records[interview_id] = InterviewRecord.from_dict(payload)
        return sorted(records.values(), key=lambda record: record.created_at)

    def close(self) -> None:
        """Release the Redis connection, if one was opened."""

        if self._redis is not None:
            try:
                self._redis.close()
            except RedisError as exc:  # pragma: no cover - best effort
                logger.debug("Redis close failed: %s", exc)
            self._redis = None

    def refresh(self) -> None:
        """Reset the cached archive forcing a disk reload on next access."""

        self._json_cache = None
        self._json_cache_stamp = None

    def _fetch_from_redis(
        self,
        kind: str,
        interview_id: str,
    ) -> Optional[Dict[str, Any]]:
        client = self._get_redis()
        if not client:
            return None
        key = f"{kind}:{interview_id}"
        try:
            raw_value = client.get(key)
            if not raw_value:
                return None
            if isinstance(raw_value, bytes):
                raw_value = raw_value.decode("utf-8")
            payload = json.loads(str(raw_value))
        except (RedisError, json.JSONDecodeError) as exc:  # pragma: no cover
            logger.warning("Failed to retrieve %s from Redis: %s", key, exc)
            return None
        if not isinstance(payload, dict):
            return None
        return cast(Dict[str, Any], payload)

    def _get_stored(self, kind: str, interview_id: str) -> StoredInterview:
        stored = self._load_json_cache().get(interview_id)
        if stored is None:
            raise InterviewNotFoundError(kind, interview_id)
        return stored

    def _load_json_cache(self) -> Dict[str, StoredInterview]:
        path = self._archive_path
        if not path.exists():
            self._json_cache = {}
            self._json_cache_stamp = None
            return self._json_cache
        try:
            stat = path.stat()
        except OSError as exc:
            raise RepositoryError(
                f"Unable to read interview archive {path}: {exc}"
            ) from exc
        if (
            self._json_cache is not None
            and self._json_cache_stamp == (stat.st_mtime_ns, stat.st_size)
        ):
            return self._json_cache
        try:
            with path.open("r", encoding="utf-8") as handle:
                interviews = self._parse_jsonl(handle)
        except OSError as exc:
            raise RepositoryError(
                f"Unable to read interview archive {path}: {exc}"
            ) from exc
        self._json_cache = interviews
        self._json_cache_stamp = (stat.st_mtime_ns, stat.st_size)
        return interviews

    @staticmethod
    def _parse_jsonl(handle: Any) -> Dict[str, StoredInterview]:
        interviews: Dict[str, StoredInterview] = {}
        for raw_line in handle:
            text = raw_line.strip()
            if not text:
                continue
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError:
                logger.debug("Skipping malformed archive row: %s", text)
                continue
            if not isinstance(parsed, dict):
                continue
            data = cast(Dict[str, Any], parsed)
            interview_data = data.get("interview")
            if not isinstance(interview_data, dict):
                logger.debug("Skipping archive row without interview: %s", text)
                continue
            interview = InterviewRecord.from_dict(interview_data)
            if not interview.id:
                continue
            transcript_data = data.get("transcript")
            summary_data = data.get("summary")
            transcript = TranscriptRecord.from_dict(
                transcript_data if isinstance(transcript_data, dict) else {}
            )
            summary = SummaryRecord.from_dict(
                summary_data if isinstance(summary_data, dict) else {}
            )
            transcript.interview_id = interview.id
            summary.interview_id = interview.id
            interviews[interview.id] = (interview, transcript, summary)
        return interviews
