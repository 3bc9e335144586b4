"""
Generation job tracking on top of MemoryStore.

A job is a scalar status record plus a handful of append-only lists:

  generation:<id>              JSON {status, stage?, result?, error?}
  generation:<id>:status       progress messages shown to the user
  generation:<id>:images       preview artifacts {id, url}
  generation:<id>:thinking     model reasoning snapshots
  generation:<id>:code:<kind>  partial code (html | css | js | json)

One worker writes a job; any number of pollers read it. The poll_* methods
never raise, so a transient fault cannot stop a client's polling loop.
"""

import json
import logging
import os
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from store import MemoryStore

logger = logging.getLogger(__name__)

GENERATION_TTL_SECONDS: int = int(os.getenv("GENERATION_TTL_SECONDS", "3600"))
CODE_KINDS = ("html", "css", "js", "json")

_PARSE_ERROR_PREVIEW = {"id": "error", "url": "/placeholder.svg?text=ParseError"}


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = {JobStatus.COMPLETED.value, JobStatus.FAILED.value}


# ---------------------------------------------------------------------------
# Response models (camelCase on the wire)
# ---------------------------------------------------------------------------

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ImagePreview(CamelModel):
    id: str
    url: str


class GenerationUpdates(CamelModel):
    status_messages: List[str] = Field(default_factory=list)
    thinking: Optional[str] = None
    code_updates: Dict[str, str] = Field(default_factory=dict)
    image_preview_urls: List[ImagePreview] = Field(default_factory=list)
    is_complete: bool = False


class GenerationStatus(CamelModel):
    status: JobStatus
    stage: Optional[str] = None
    result: Any = None
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Tracker
# ---------------------------------------------------------------------------

class GenerationTracker:
    def __init__(self, store: MemoryStore, ttl_seconds: int = GENERATION_TTL_SECONDS) -> None:
        self._store = store
        self._ttl = ttl_seconds

    # ---- writes (generation worker) ---------------------------------------

    def start(self, job_id: str) -> None:
        """Register a freshly accepted job as pending."""
        self._write_record(job_id, {"status": JobStatus.PENDING.value})

    def record_progress(self, job_id: str, message: str) -> None:
        """Append a status message; the first one moves a pending job to processing."""
        self._store.rpush(_key(job_id, "status"), message)
        record = self._read_record(job_id)
        if record is None or record.get("status") == JobStatus.PENDING.value:
            self._write_record(job_id, {"status": JobStatus.PROCESSING.value})

    def record_preview(self, job_id: str, artifact_ref: str, preview_id: Optional[str] = None) -> None:
        """Append a partial result (e.g. an image URL) for watching clients."""
        if preview_id is None:
            preview_id = f"preview-{self._store.llen(_key(job_id, 'images')) + 1}"
        self._store.rpush(_key(job_id, "images"), json.dumps({"id": preview_id, "url": artifact_ref}))

    def record_thinking(self, job_id: str, text: str) -> None:
        self._store.rpush(_key(job_id, "thinking"), text)

    def record_code(self, job_id: str, kind: str, code: str) -> None:
        if kind not in CODE_KINDS:
            raise ValueError(f"Unknown code kind {kind!r}; expected one of {', '.join(CODE_KINDS)}")
        self._store.rpush(_key(job_id, "code", kind), code)

    def set_stage(self, job_id: str, stage: str) -> None:
        """Label the current sub-step of a running job. No-op once the job is terminal."""
        record = self._read_record(job_id) or {}
        if record.get("status") in TERMINAL_STATUSES:
            return
        self._write_record(job_id, {"status": JobStatus.PROCESSING.value, "stage": stage})

    def mark_complete(self, job_id: str, result: Any = None, message: Optional[str] = None) -> bool:
        """
        Move the job to `completed`. Returns False if it was already terminal,
        in which case only *message* (if any) is recorded.
        """
        if message:
            self._store.rpush(_key(job_id, "status"), message)
        if self._is_terminal(job_id):
            logger.debug("Job %s already terminal; ignoring completion", job_id)
            return False
        self._write_record(job_id, {"status": JobStatus.COMPLETED.value, "result": result})
        self._expire_job(job_id)
        return True

    def mark_failed(self, job_id: str, reason: str) -> bool:
        """Move the job to `failed`. Returns False if it was already terminal."""
        self._store.rpush(_key(job_id, "status"), f"Generation failed: {reason}")
        if self._is_terminal(job_id):
            logger.debug("Job %s already terminal; ignoring failure: %s", job_id, reason)
            return False
        self._write_record(job_id, {"status": JobStatus.FAILED.value, "error": reason})
        self._expire_job(job_id)
        return True

    # ---- reads (pollers) --------------------------------------------------

    def get_updates(self, job_id: str) -> GenerationUpdates:
        status_messages = self._store.lrange(_key(job_id, "status"), 0, -1)
        thinking = self._store.lrange(_key(job_id, "thinking"), -1, -1)

        code_updates: Dict[str, str] = {}
        for kind in CODE_KINDS:
            latest = self._store.lrange(_key(job_id, "code", kind), -1, -1)
            if latest and latest[0]:
                code_updates[kind] = latest[0]

        previews = [_parse_preview(item) for item in self._store.lrange(_key(job_id, "images"), 0, -1)]
        previews = [
            p for p in previews
            if isinstance(p, dict) and _non_empty_str(p.get("id")) and _non_empty_str(p.get("url"))
        ]

        record = self._read_record(job_id) or {}
        logger.debug(
            "Job %s: %d messages, %d previews, code kinds %s",
            job_id, len(status_messages), len(previews), sorted(code_updates),
        )
        return GenerationUpdates(
            status_messages=status_messages,
            thinking=thinking[0] if thinking else None,
            code_updates=code_updates,
            image_preview_urls=previews,
            is_complete=record.get("status") == JobStatus.COMPLETED.value,
        )

    def get_status(self, job_id: str) -> GenerationStatus:
        raw = self._store.get(_key(job_id))
        if raw is None:
            if self._store.llen(_key(job_id, "status")):
                return GenerationStatus(status=JobStatus.PROCESSING)
            return GenerationStatus(status=JobStatus.PENDING)

        try:
            record = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        except ValueError:
            logger.error("Unparseable status for job %s: %r", job_id, raw)
            return GenerationStatus(status=JobStatus.FAILED, error="Failed to parse stored status.")

        valid_statuses = {s.value for s in JobStatus}
        if not isinstance(record, dict) or record.get("status") not in valid_statuses:
            logger.error("Invalid status format for job %s: %r", job_id, raw)
            return GenerationStatus(status=JobStatus.FAILED, error="Invalid status format stored.")

        return GenerationStatus(
            status=record["status"],
            stage=record.get("stage"),
            result=record.get("result"),
            error=record.get("error"),
        )

    # ---- poll surface: never raises ---------------------------------------

    def poll_updates(self, job_id: str) -> GenerationUpdates:
        try:
            return self.get_updates(job_id)
        except Exception:
            logger.exception("Error getting generation updates for %s", job_id)
            return GenerationUpdates()

    def poll_status(self, job_id: str) -> GenerationStatus:
        try:
            return self.get_status(job_id)
        except Exception as exc:
            logger.exception("Error getting generation status for %s", job_id)
            return GenerationStatus(status=JobStatus.FAILED, error=f"Failed to retrieve status: {exc}")

    # ---- internals --------------------------------------------------------

    def _read_record(self, job_id: str) -> Optional[Dict[str, Any]]:
        raw = self._store.get(_key(job_id))
        if raw is None:
            return None
        try:
            record = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        except ValueError:
            return None
        return record if isinstance(record, dict) else None

    def _write_record(self, job_id: str, record: Dict[str, Any]) -> None:
        self._store.set(_key(job_id), json.dumps(record), ex=self._ttl)

    def _is_terminal(self, job_id: str) -> bool:
        record = self._read_record(job_id) or {}
        return record.get("status") in TERMINAL_STATUSES

    def _expire_job(self, job_id: str) -> None:
        for suffix in ("status", "images", "thinking"):
            self._store.expire(_key(job_id, suffix), self._ttl)
        for kind in CODE_KINDS:
            self._store.expire(_key(job_id, "code", kind), self._ttl)


def _key(job_id: str, *parts: str) -> str:
    return ":".join(("generation", job_id) + parts)


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def _parse_preview(item: Any) -> Any:
    if not isinstance(item, str):
        return item
    try:
        return json.loads(item)
    except ValueError:
        logger.error("Error parsing image preview JSON: %r", item)
        return dict(_PARSE_ERROR_PREVIEW)
