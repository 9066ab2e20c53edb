"""Pipeline event types for live progress reporting.

Each specifier's pipeline emits events to an observer callback so a terminal
UI (or a log) can follow it live.

Event Types:
    - StageEvent: The pipeline entered a new stage (locating, fetching, ...)
    - ProgressEvent: Byte-count progress while downloading
    - CompletionEvent: The specifier finished, successfully or not
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import structlog

from .models import Stage

logger = structlog.get_logger(__name__)


class EventType(str, Enum):
    """Types of pipeline events."""

    STAGE = "stage"
    PROGRESS = "progress"
    COMPLETION = "completion"


@dataclass(slots=True)
class PipelineEvent:
    """Base class for pipeline events.

    All events include:
    - event_type: The type of event
    - specifier: Canonical label of the specifier the event belongs to
    - timestamp: When the event was generated
    """

    event_type: EventType
    specifier: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "type": self.event_type.value,
            "specifier": self.specifier,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict())


@dataclass(slots=True)
class StageEvent(PipelineEvent):
    """The pipeline moved to a new stage.

    Attributes:
        stage: Stage entered
        message: Human-readable description, e.g. "downloading serde 1.0.0"
    """

    stage: Stage = Stage.PENDING
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        d = super(StageEvent, self).to_dict()
        d.update({"stage": self.stage.value, "message": self.message})
        return d


@dataclass(slots=True)
class ProgressEvent(PipelineEvent):
    """Download progress.

    Attributes:
        bytes_downloaded: Bytes received so far
        bytes_total: Total bytes, or None if the server did not say
    """

    bytes_downloaded: int = 0
    bytes_total: int | None = None

    @property
    def percent(self) -> float | None:
        if not self.bytes_total:
            return None
        return min(100.0, self.bytes_downloaded / self.bytes_total * 100)

    def to_dict(self) -> dict[str, Any]:
        d = super(ProgressEvent, self).to_dict()
        d["bytes_downloaded"] = self.bytes_downloaded
        # Only include non-None optional fields
        if self.bytes_total is not None:
            d["bytes_total"] = self.bytes_total
        return d


@dataclass(slots=True)
class CompletionEvent(PipelineEvent):
    """The specifier finished.

    Attributes:
        success: Whether the specifier succeeded
        message: Success message ("downloaded serde 1.0.0 to serde-1.0.0.crate")
            or the error message
        error_kind: Stable error kind when failed
        hint: Optional suggestion accompanying a failure
    """

    success: bool = False
    message: str = ""
    error_kind: str | None = None
    hint: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d = super(CompletionEvent, self).to_dict()
        d.update({"success": self.success, "message": self.message})
        if self.error_kind is not None:
            d["error_kind"] = self.error_kind
        if self.hint is not None:
            d["hint"] = self.hint
        return d


EventObserver = Callable[[PipelineEvent], None]


def emit(observer: EventObserver | None, event: PipelineEvent) -> None:
    """Deliver an event to an observer.

    Observer failures are logged and never break the pipeline.
    """
    if observer is None:
        return
    try:
        observer(event)
    except Exception:
        logger.exception("observer_failed", event_type=event.event_type.value)
