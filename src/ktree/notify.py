"""Change notification for engine mutations.

The engine only knows the NotificationSink protocol. What sits behind it
(a WebSocket fan-out, a log line, nothing) is up to the caller:

    subscribers = Subscribers()
    subscribers.add(client)            # anything with .send(str)
    tree = KnowledgeTree(store, sink=subscribers)

Events: entry_added, entry_updated, entry_deleted, entry_moved.

Delivery is fire-and-forget. Every client gets a bounded queue drained by
its own daemon thread, so broadcast() never waits on a send. Subscribers
drops clients that raise, report themselves closed, fall ``max_pending``
messages behind, or spend longer than ``slow_after`` seconds in one send.
A client stuck inside send() is dropped on the next broadcast.
"""

from __future__ import annotations

import contextlib
import json
import logging
import queue
import threading
import time
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger("ktree.notify")

ENTRY_ADDED = "entry_added"
ENTRY_UPDATED = "entry_updated"
ENTRY_DELETED = "entry_deleted"
ENTRY_MOVED = "entry_moved"

_STOP = object()


@runtime_checkable
class NotificationSink(Protocol):
    def notify(self, event: str, payload: dict[str, Any]) -> None: ...


class Client(Protocol):
    def send(self, message: str) -> Any: ...


class NullSink:
    """Drops every event."""

    def notify(self, event: str, payload: dict[str, Any]) -> None:
        return None


class LogSink:
    """Writes one log line per event."""

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    def notify(self, event: str, payload: dict[str, Any]) -> None:
        path = payload.get("path")
        if event == ENTRY_MOVED:
            logger.log(self.level, "%s: %s -> %s", event, payload.get("old_path"), path)
        else:
            logger.log(self.level, "%s: %s", event, path)


class _Channel:
    """One client, its outbox, and the daemon thread that drains it."""

    def __init__(
        self,
        client: Client,
        slow_after: float | None,
        max_pending: int,
        on_drop: Callable[[Client, str], None],
    ) -> None:
        self.client = client
        self.slow_after = slow_after
        self.outbox: queue.Queue[Any] = queue.Queue(maxsize=max_pending)
        self.sending_since: float | None = None
        self.pending = 0                # offered, not yet handed to send()
        self.stopped = False
        self._pending_lock = threading.Lock()
        self._on_drop = on_drop
        self._thread = threading.Thread(target=self._run, daemon=True, name=f"ktree-notify-{id(client):x}")
        self._thread.start()

    def offer(self, message: str) -> bool:
        with self._pending_lock:
            try:
                self.outbox.put_nowait(message)
            except queue.Full:
                return False
            self.pending += 1
        return True

    def _done(self) -> None:
        with self._pending_lock:
            self.pending -= 1

    def stuck(self, now: float) -> bool:
        started = self.sending_since
        return self.slow_after is not None and started is not None and now - started > self.slow_after

    def idle(self) -> bool:
        return self.stopped or self.pending == 0

    def stop(self) -> None:
        self.stopped = True
        # A full outbox means the thread is busy; it sees `stopped` after this send.
        with contextlib.suppress(queue.Full):
            self.outbox.put_nowait(_STOP)

    def _run(self) -> None:
        while not self.stopped:
            message = self.outbox.get()
            if message is _STOP:
                return
            self.sending_since = started = time.monotonic()
            try:
                self.client.send(message)
            except Exception as exc:  # noqa: BLE001
                self._on_drop(self.client, f"send failed: {exc}")
                return
            else:
                if self.slow_after is not None and time.monotonic() - started > self.slow_after:
                    if not self.stopped:
                        self._on_drop(self.client, "slow")
                    return
            finally:
                self.sending_since = None
                self._done()


class Subscribers:
    """Registry of connected clients, fanned out to on every event."""

    def __init__(self, slow_after: float | None = 2.0, max_pending: int = 100) -> None:
        self.slow_after = slow_after
        self.max_pending = max_pending
        self._channels: dict[int, _Channel] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._channels)

    def __contains__(self, client: object) -> bool:
        return id(client) in self._channels

    def add(self, client: Client) -> None:
        with self._lock:
            if id(client) not in self._channels:
                self._channels[id(client)] = _Channel(client, self.slow_after, self.max_pending, self._drop)

    def remove(self, client: Client) -> None:
        with self._lock:
            channel = self._channels.pop(id(client), None)
        if channel is not None:
            channel.stop()

    def _drop(self, client: Client, reason: str) -> None:
        logger.info("dropping subscriber %r: %s", client, reason)
        self.remove(client)

    def broadcast(self, event: str, payload: dict[str, Any]) -> int:
        """Queue {"type": event, **payload} for every live client. Returns clients queued.

        Never blocks on a client's send.
        """
        with self._lock:
            channels = list(self._channels.values())
        if not channels:
            return 0

        message = json.dumps({"type": event, **payload}, default=str)
        now = time.monotonic()
        queued = 0
        for channel in channels:
            if getattr(channel.client, "closed", False):
                self._drop(channel.client, "closed")
            elif channel.stuck(now):
                self._drop(channel.client, f"send blocked for more than {self.slow_after}s")
            elif not channel.offer(message):
                self._drop(channel.client, f"more than {self.max_pending} messages behind")
            else:
                queued += 1
        return queued

    def notify(self, event: str, payload: dict[str, Any]) -> None:
        self.broadcast(event, payload)

    def flush(self, timeout: float = 5.0) -> bool:
        """Wait until every queued message has been handed to its client.

        Returns False if some client was still busy when timeout ran out.
        """
        deadline = time.monotonic() + timeout
        while True:
            with self._lock:
                channels = list(self._channels.values())
            if all(channel.idle() for channel in channels):
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(0.01)

    def close(self) -> None:
        """Drop every client and stop their delivery threads."""
        with self._lock:
            channels = list(self._channels.values())
            self._channels.clear()
        for channel in channels:
            channel.stop()
