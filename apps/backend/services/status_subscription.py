"""
Client side of the presentation status channel.

A ``PresentationSubscription`` follows one presentation until it reaches a
terminal status. It listens on the SSE channel first and falls back to
polling the plain read endpoint if the channel errors or ends early. Both
transports feed the same ``apply`` method, which is the only place local
state changes (last write wins by ``updated_at``).
"""

import asyncio
from contextlib import aclosing
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Protocol

import httpx
from pydantic import BaseModel

from agents import config
from models.presentation import PresentationStatus, TERMINAL_STATUSES
from setup_logging_optimized import get_logger
from utils.sse import SSEDecoder, SSEMessage

logger = get_logger(__name__)

Snapshot = Dict[str, Any]
Callback = Callable[[Snapshot], None]


class StatusTransport(Protocol):
    def stream(self, presentation_id: str) -> AsyncIterator[SSEMessage]: ...

    async def fetch(self, presentation_id: str) -> Optional[Snapshot]: ...


class HttpStatusTransport:
    """Talks to the presentation routes of a running API server."""

    def __init__(self, base_url: str, user_id: Optional[str] = None, timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.user_id = user_id
        self.timeout = timeout
        self._transport = transport

    def _params(self) -> Dict[str, str]:
        return {"user_id": self.user_id} if self.user_id else {}

    def _client(self, read_timeout: Optional[float]) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, read=read_timeout),
            transport=self._transport,
        )

    async def stream(self, presentation_id: str) -> AsyncIterator[SSEMessage]:
        # No read timeout: the server may stay quiet for a whole tick
        async with self._client(read_timeout=None) as client:
            async with client.stream("GET", f"/api/presentations/{presentation_id}/stream",
                                     params=self._params()) as response:
                response.raise_for_status()
                decoder = SSEDecoder()
                async for line in response.aiter_lines():
                    message = decoder.decode(line)
                    if message is not None:
                        yield message
                tail = decoder.flush()
                if tail is not None:
                    yield tail

    async def fetch(self, presentation_id: str) -> Optional[Snapshot]:
        async with self._client(read_timeout=self.timeout) as client:
            response = await client.get(f"/api/presentations/{presentation_id}", params=self._params())
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return response.json()


def _timestamp(snapshot: Snapshot) -> Optional[datetime]:
    value = snapshot.get("updated_at")
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def is_terminal(snapshot: Optional[Snapshot]) -> bool:
    return bool(snapshot) and snapshot.get("status") in TERMINAL_STATUSES


class PresentationSubscription:
    def __init__(
        self,
        presentation_id: str,
        transport: StatusTransport,
        on_update: Optional[Callback] = None,
        on_terminal: Optional[Callback] = None,
        poll_interval: float = None,
        initial: Optional[Snapshot] = None,
    ):
        self.presentation_id = presentation_id
        self.transport = transport
        self.on_update = on_update
        self.on_terminal = on_terminal
        self.poll_interval = config.STATUS_POLL_INTERVAL if poll_interval is None else poll_interval
        self.state: Optional[Snapshot] = initial
        self.closed = False
        self.mode = "idle"
        self._terminal_fired = False
        self._task: Optional[asyncio.Task] = None

    @property
    def terminal(self) -> bool:
        return is_terminal(self.state)

    def apply(self, snapshot: Snapshot) -> bool:
        """Reconcile one snapshot from either transport. Returns True if it was taken."""
        if self.state is not None:
            # A terminal status is final: no regression and no switch to the other one
            if self.terminal and snapshot.get("status") != self.state.get("status"):
                return False
            incoming, current = _timestamp(snapshot), _timestamp(self.state)
            if incoming is not None and current is not None and incoming < current:
                logger.debug(f"Ignoring stale snapshot for {self.presentation_id}")
                return False

        self.state = snapshot
        if self.on_update is not None:
            self.on_update(snapshot)
        if is_terminal(snapshot) and not self._terminal_fired:
            self._terminal_fired = True
            if self.on_terminal is not None:
                self.on_terminal(snapshot)
        return True

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"status-subscription-{self.presentation_id}")
        return self._task

    async def wait(self) -> None:
        if self._task is not None:
            await asyncio.wait([self._task])

    async def close(self) -> None:
        self.closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.wait([self._task])

    async def _run(self) -> None:
        try:
            if not self.terminal and not await self._listen():
                await self._poll()
        finally:
            self.closed = True
            self.mode = "closed"

    async def _listen(self) -> bool:
        """Push phase. Returns True once a terminal status has been applied."""
        self.mode = "stream"
        try:
            async with aclosing(self.transport.stream(self.presentation_id)) as messages:
                async for message in messages:
                    if message.event == "complete":
                        break
                    if message.event == "error":
                        logger.warning(f"Status channel for {self.presentation_id} reported an error: {message.data}")
                        return False
                    self.apply(message.json())
                    if self.terminal:
                        return True
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Status channel for {self.presentation_id} failed, falling back to polling: {e}")
            return False
        return self.terminal

    async def _poll(self) -> None:
        self.mode = "poll"
        logger.info(f"Polling presentation {self.presentation_id} every {self.poll_interval}s")
        while not self.terminal:
            await asyncio.sleep(self.poll_interval)
            try:
                snapshot = await self.transport.fetch(self.presentation_id)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Polling presentation {self.presentation_id} failed: {e}")
                continue
            if snapshot is None:
                logger.warning(f"Presentation {self.presentation_id} no longer exists, stopping subscription")
                return
            self.apply(snapshot)


def _as_snapshot(presentation: Any) -> Snapshot:
    if isinstance(presentation, BaseModel):
        return presentation.model_dump(mode="json")
    return dict(presentation)


class SubscriptionManager:
    """Keeps exactly one subscription per presentation that is still generating."""

    def __init__(self, transport: StatusTransport, on_update: Optional[Callback] = None,
                 on_terminal: Optional[Callback] = None, poll_interval: float = None):
        self.transport = transport
        self.on_update = on_update
        self.on_terminal = on_terminal
        self.poll_interval = poll_interval
        self._subscriptions: Dict[str, PresentationSubscription] = {}

    def active_ids(self) -> List[str]:
        return sorted(self._subscriptions)

    async def sync(self, presentations: Iterable[Any]) -> None:
        snapshots = {s["id"]: s for s in (_as_snapshot(p) for p in presentations)}
        generating = {
            pid for pid, s in snapshots.items() if s.get("status") == PresentationStatus.GENERATING.value
        }

        for pid in list(self._subscriptions):
            if pid not in generating:
                await self._subscriptions.pop(pid).close()

        for pid in sorted(generating - set(self._subscriptions)):
            subscription = PresentationSubscription(
                pid,
                self.transport,
                on_update=self.on_update,
                on_terminal=lambda snapshot, pid=pid: self._finished(pid, snapshot),
                poll_interval=self.poll_interval,
                initial=snapshots[pid],
            )
            self._subscriptions[pid] = subscription
            subscription.start().add_done_callback(
                lambda _task, pid=pid, subscription=subscription: self._forget(pid, subscription)
            )

    def _forget(self, presentation_id: str, subscription: PresentationSubscription) -> None:
        # Covers subscriptions that stop without a terminal status (record deleted)
        if self._subscriptions.get(presentation_id) is subscription:
            del self._subscriptions[presentation_id]

    def _finished(self, presentation_id: str, snapshot: Snapshot) -> None:
        self._subscriptions.pop(presentation_id, None)
        if self.on_terminal is not None:
            self.on_terminal(snapshot)

    async def close_all(self) -> None:
        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        for subscription in subscriptions:
            await subscription.close()
