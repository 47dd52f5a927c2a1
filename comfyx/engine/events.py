"""Execution events pushed by the job engine and the envelope parser."""

import json
import logging
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ChannelState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"


class ProgressEvent(BaseModel):
    kind: Literal["progress"] = "progress"
    job_id: str | None = None
    node_id: str = ""
    value: int = 0
    max: int = 0

    @property
    def percent(self) -> float:
        """Completion in 0-100; 0 when max is unknown."""
        return self.value / self.max * 100 if self.max > 0 else 0.0


class CompletedEvent(BaseModel):
    kind: Literal["completed"] = "completed"
    job_id: str = ""


class FailedEvent(BaseModel):
    kind: Literal["failed"] = "failed"
    job_id: str = ""
    message: str = ""


ExecutionEvent = Annotated[
    Union[ProgressEvent, CompletedEvent, FailedEvent],
    Field(discriminator="kind"),
]


def parse_envelope(message: str | bytes) -> ProgressEvent | CompletedEvent | FailedEvent | None:
    """Map a ``{"type", "data"}`` envelope to an event.

    Returns None for unknown types and for anything that does not parse;
    neither is an error.
    """
    try:
        envelope = json.loads(message)
    except (TypeError, ValueError) as exc:
        logger.warning("Discarding unparsable channel message: %s", exc)
        return None
    if not isinstance(envelope, dict):
        return None

    kind = envelope.get("type")
    data = envelope.get("data")
    if not isinstance(data, dict):
        data = {}

    if kind == "progress":
        return ProgressEvent(
            job_id=_opt_str(data.get("prompt_id")),
            node_id=_opt_str(data.get("node")) or "",
            value=_int(data.get("value")),
            max=_int(data.get("max")),
        )
    if kind == "executed":
        return CompletedEvent(job_id=_opt_str(data.get("prompt_id")) or "")
    if kind == "execution_error":
        message_text = data.get("exception_message")
        if not isinstance(message_text, str):
            message_text = json.dumps(data)
        return FailedEvent(job_id=_opt_str(data.get("prompt_id")) or "", message=message_text)

    logger.debug("Ignoring channel message of type %r", kind)
    return None


def _opt_str(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (str, int)):
        return str(value)
    return None


def _int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    return 0
