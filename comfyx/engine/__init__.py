"""Job engine integration: REST facade, execution channel, registry, runner."""

from comfyx.engine.channel import ExecutionChannel, channel_url, process_client_id
from comfyx.engine.client import JobClient, OutputImage
from comfyx.engine.events import (
    ChannelState,
    CompletedEvent,
    ExecutionEvent,
    FailedEvent,
    ProgressEvent,
    parse_envelope,
)
from comfyx.engine.registry import NodeRegistry
from comfyx.engine.runner import JobResult, JobRunner

__all__ = [
    "ChannelState",
    "CompletedEvent",
    "ExecutionChannel",
    "ExecutionEvent",
    "FailedEvent",
    "JobClient",
    "JobResult",
    "JobRunner",
    "NodeRegistry",
    "OutputImage",
    "ProgressEvent",
    "channel_url",
    "parse_envelope",
    "process_client_id",
]
