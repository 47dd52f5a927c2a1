"""Execution channel: the job engine's push stream of progress events.

One channel object owns at most one live connection. ``connect`` replaces any
previous session; ``disconnect`` may be called at any time, including while a
``connect`` is still opening, and always leaves the channel DISCONNECTED.
Each session has a generation number; work belonging to an older generation
(a late-opening connect, a receive loop that outlived its session) notices the
mismatch and backs out without touching the current state.
"""

import asyncio
import logging
import threading
import uuid
from inspect import iscoroutinefunction
from typing import Any, Awaitable, Callable

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from comfyx.engine.events import ChannelState, parse_envelope
from comfyx.errors import ChannelError

logger = logging.getLogger(__name__)

# The engine routes per-client messages by this id; keep it for the process.
_PROCESS_CLIENT_ID = uuid.uuid4().hex

Connector = Callable[[str], Awaitable[Any]]
EventCallback = Callable[[Any], Any]
StateCallback = Callable[[ChannelState], None]


def process_client_id() -> str:
    return _PROCESS_CLIENT_ID


def channel_url(base_url: str, client_id: str) -> str:
    """``http://host:port`` -> ``ws://host:port/ws?clientId=<id>``."""
    url = base_url.strip().rstrip("/")
    if url.startswith("https://"):
        url = "wss://" + url[len("https://"):]
    elif url.startswith("http://"):
        url = "ws://" + url[len("http://"):]
    elif not url.startswith(("ws://", "wss://")):
        url = "ws://" + url
    return f"{url}/ws?clientId={client_id}"


async def _default_connector(url: str) -> Any:
    # preview frames can exceed the library's 1 MiB default
    return await connect(url, max_size=None)


class ExecutionChannel:
    """Reconnectable WebSocket client publishing ExecutionEvents to subscribers."""

    def __init__(
        self,
        connector: Connector | None = None,
        client_id: str | None = None,
        close_timeout: float = 3.0,
    ):
        self._connector = connector or _default_connector
        self.client_id = client_id or _PROCESS_CLIENT_ID
        self.close_timeout = close_timeout

        self._state = ChannelState.DISCONNECTED
        self._conn: Any = None
        self._receiver: asyncio.Task | None = None
        self._generation = 0

        self._lock = threading.Lock()
        self._subscribers: list[EventCallback] = []
        self._state_subscribers: list[StateCallback] = []

    # Properties

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ChannelState.CONNECTED

    # Subscriptions

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        """Register *callback* (sync or async) for every event; returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: EventCallback) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def subscribe_state(self, callback: StateCallback) -> Callable[[], None]:
        with self._lock:
            self._state_subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._state_subscribers:
                    self._state_subscribers.remove(callback)

        return unsubscribe

    # Lifecycle

    async def connect(self, base_url: str) -> None:
        """Open a session against *base_url*, replacing any current one.

        Raises ChannelError when the transport cannot be opened; the channel
        is then DISCONNECTED.
        """
        await self.disconnect()

        self._generation += 1
        generation = self._generation
        url = channel_url(base_url, self.client_id)

        self._set_state(ChannelState.CONNECTING)
        logger.info("Channel connecting to %s", url)
        try:
            conn = await self._connector(url)
        except asyncio.CancelledError:
            if generation == self._generation:
                self._set_state(ChannelState.DISCONNECTED)
            raise
        except Exception as exc:
            logger.error("Channel connection to %s failed: %s", url, exc)
            if generation == self._generation:
                self._set_state(ChannelState.DISCONNECTED)
            raise ChannelError(f"could not connect to {url}: {exc}") from exc

        if generation != self._generation:
            logger.info("Connect to %s was superseded; closing the new connection", url)
            await self._close_transport(conn)
            return

        self._conn = conn
        self._set_state(ChannelState.CONNECTED)
        self._receiver = asyncio.create_task(self._receive_loop(conn, generation))
        logger.info("Channel connected")

    async def disconnect(self) -> None:
        """Close the current session, if any. Safe to call repeatedly."""
        self._generation += 1
        generation = self._generation
        conn, receiver = self._conn, self._receiver
        self._conn = None
        self._receiver = None

        if conn is None:
            self._set_state(ChannelState.DISCONNECTED)
            return

        self._set_state(ChannelState.CLOSING)
        current = asyncio.current_task()
        if receiver is not None and receiver is not current:
            receiver.cancel()

        await self._close_transport(conn)

        if receiver is not None and receiver is not current:
            await asyncio.wait([receiver])
        if generation == self._generation:
            self._set_state(ChannelState.DISCONNECTED)
        logger.info("Channel disconnected")

    async def wait_closed(self) -> None:
        """Wait until the current session's receive loop has ended."""
        receiver = self._receiver
        if receiver is not None:
            await asyncio.wait([receiver])

    # Internals

    async def _receive_loop(self, conn: Any, generation: int) -> None:
        try:
            while generation == self._generation:
                message = await conn.recv()
                if isinstance(message, bytes):
                    continue  # binary preview frames carry no envelope
                event = parse_envelope(message)
                if event is not None:
                    await self._publish(event)
        except asyncio.CancelledError:
            logger.debug("Channel receive loop cancelled")
            raise
        except ConnectionClosedOK:
            logger.info("Channel closed by server")
        except ConnectionClosed as exc:
            logger.warning("Channel connection dropped: %s", exc)
        except Exception as exc:
            logger.error("Channel receive error: %s", exc)

        if generation == self._generation:
            self._conn = None
            self._receiver = None
            self._set_state(ChannelState.DISCONNECTED)
            await self._close_transport(conn)

    async def _publish(self, event: Any) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                if iscoroutinefunction(callback):
                    await callback(event)
                else:
                    callback(event)
            except Exception:
                logger.exception("Error in channel subscriber %r", callback)

    async def _close_transport(self, conn: Any) -> None:
        try:
            await asyncio.wait_for(conn.close(), timeout=self.close_timeout)
        except asyncio.TimeoutError:
            logger.debug("Channel close handshake timed out after %.1fs", self.close_timeout)
            _abort(conn)
        except Exception as exc:
            logger.debug("Channel close failed (expected during shutdown): %s", exc)
            _abort(conn)

    def _set_state(self, state: ChannelState) -> None:
        if state is self._state:
            return
        logger.debug("Channel state %s -> %s", self._state.value, state.value)
        self._state = state
        with self._lock:
            listeners = list(self._state_subscribers)
        for callback in listeners:
            try:
                callback(state)
            except Exception:
                logger.exception("Error in channel state subscriber %r", callback)


def _abort(conn: Any) -> None:
    transport = getattr(conn, "transport", None)
    if transport is not None:
        transport.abort()
