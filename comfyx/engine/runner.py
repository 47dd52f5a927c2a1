"""Queue a workflow, follow it on the execution channel, collect its images."""

import asyncio
import json
import logging
from typing import Any, Callable

from pydantic import BaseModel, Field

from comfyx.engine.channel import ExecutionChannel
from comfyx.engine.client import JobClient, OutputImage
from comfyx.engine.events import ChannelState, CompletedEvent, FailedEvent, ProgressEvent
from comfyx.errors import ChannelError
from comfyx.workflow.converter import to_execution_form

logger = logging.getLogger(__name__)

_CHANNEL_CLOSED = object()


class JobResult(BaseModel):
    job_id: str
    event: CompletedEvent | FailedEvent
    images: list[OutputImage] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return isinstance(self.event, CompletedEvent)


class JobRunner:
    """Correlates channel events with jobs queued through a JobClient.

    Terminal events that carry no job id are attributed to the job being
    waited on; the engine omits it on some messages.
    """

    def __init__(
        self,
        client: JobClient,
        channel: ExecutionChannel,
        on_progress: Callable[[ProgressEvent], None] | None = None,
    ):
        self.client = client
        self.channel = channel
        self.on_progress = on_progress

    async def submit(self, workflow: dict[str, Any] | str) -> str | None:
        """Normalize *workflow* to execution form and queue it; return the job id."""
        document: Any = workflow
        if isinstance(workflow, str):
            try:
                document = json.loads(workflow)
            except ValueError as exc:
                logger.error("Workflow is not valid JSON: %s", exc)
                return None

        execution = to_execution_form(document)
        if execution is None:
            return None
        return await self.client.queue_prompt(execution, client_id=self.channel.client_id)

    async def wait(self, job_id: str, timeout: float | None = None) -> CompletedEvent | FailedEvent:
        """Wait for the first completion or failure event of *job_id*.

        Raises ChannelError if the channel closes before the job finishes.
        """
        queue: asyncio.Queue = asyncio.Queue()
        unsubscribe = self._listen(queue)
        try:
            return await asyncio.wait_for(self._terminal_event(queue, job_id), timeout)
        finally:
            unsubscribe()

    async def run(self, workflow: dict[str, Any] | str, timeout: float | None = None) -> JobResult | None:
        """Submit, wait, then list the job's output images. None if queueing failed."""
        # subscribe before queueing so a fast job cannot finish unseen
        queue: asyncio.Queue = asyncio.Queue()
        unsubscribe = self._listen(queue)
        try:
            job_id = await self.submit(workflow)
            if job_id is None:
                return None
            event = await asyncio.wait_for(self._terminal_event(queue, job_id), timeout)
        finally:
            unsubscribe()

        images: list[OutputImage] = []
        if isinstance(event, CompletedEvent):
            images = await self.client.list_output_images(job_id)
        else:
            logger.error("Job %s failed: %s", job_id, event.message)
        return JobResult(job_id=job_id, event=event, images=images)

    def _listen(self, queue: asyncio.Queue) -> Callable[[], None]:
        """Feed channel events, then a close marker on DISCONNECTED, into *queue*."""
        def on_state(state: ChannelState) -> None:
            if state is ChannelState.DISCONNECTED:
                queue.put_nowait(_CHANNEL_CLOSED)

        drop_events = self.channel.subscribe(queue.put_nowait)
        drop_state = self.channel.subscribe_state(on_state)
        if not self.channel.is_connected:
            queue.put_nowait(_CHANNEL_CLOSED)

        def unsubscribe() -> None:
            drop_events()
            drop_state()

        return unsubscribe

    async def _terminal_event(self, queue: asyncio.Queue, job_id: str) -> CompletedEvent | FailedEvent:
        while True:
            event = await queue.get()
            if event is _CHANNEL_CLOSED:
                logger.error("Channel closed while waiting for job %s", job_id)
                raise ChannelError(f"channel closed before job {job_id} finished")
            if isinstance(event, ProgressEvent):
                if self.on_progress is not None and event.job_id in (None, job_id):
                    self.on_progress(event)
                continue
            if event.job_id in ("", job_id):
                logger.info("Job %s finished: %s", job_id, event.kind)
                return event
