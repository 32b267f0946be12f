"""ChangeRelay
--------------
Forwards committed movie changes to every open browser session as
`{"type": "movie-change", "data": <change event>}`.

Delivery is fire-and-forget: at most once, no acknowledgement, nothing
buffered for sessions that are not connected when the change happens.
A session that misses a message catches up on its next fetch.

Publishing never touches a socket. Each session gets a bounded outbox
and only that session's own handler thread writes to its socket, so
frames from concurrent commits cannot interleave and a slow browser
cannot hold up the request that committed.
"""
from __future__ import annotations

import json
import logging
import queue
import threading
from typing import Any, Dict, List, Tuple

from data_manager.data_manager_interface import DataManagerInterface
from data_manager.exceptions import ChangeFeedUnavailable

logger = logging.getLogger(__name__)

MESSAGE_TYPE = "movie-change"

# Messages held for one session before newer ones are dropped
OUTBOX_SIZE = 100


class ChangeRelay:
    """Tracks connected websocket sessions and broadcasts change events to them."""

    def __init__(self, outbox_size: int = OUTBOX_SIZE):
        self.outbox_size = outbox_size
        self._clients: Dict[Any, queue.Queue] = {}
        self._lock = threading.Lock()
        self._unsubscribe = None
        self.degraded = False

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def attach(self, data_manager: DataManagerInterface) -> bool:
        """Subscribe to the data manager's change notifications.

        Returns:
            bool: False if the backend has no change feed; the relay then
            stays silent and the rest of the app carries on without push updates.
        """
        try:
            self._unsubscribe = data_manager.watch(self.publish)
        except ChangeFeedUnavailable as exc:
            if not self.degraded:
                logger.warning(f"{exc} Real-time updates are disabled.")
            self.degraded = True
            return False
        logger.info("Change relay subscribed to movie changes")
        return True

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def register(self, client: Any) -> None:
        with self._lock:
            self._clients[client] = queue.Queue(maxsize=self.outbox_size)
        logger.info(f"WebSocket client connected ({self.client_count} open)")

    def unregister(self, client: Any) -> None:
        with self._lock:
            self._clients.pop(client, None)
        logger.info(f"WebSocket client disconnected ({self.client_count} open)")

    def publish(self, change) -> int:
        """Queue a change event for every connected session.

        Only movie changes are relayed. A session whose outbox is full
        misses the message.

        Returns:
            int: Number of sessions the message was queued for.
        """
        if getattr(change, "collection", "movies") != "movies":
            return 0

        data = change.to_dict() if hasattr(change, "to_dict") else change
        message = json.dumps({"type": MESSAGE_TYPE, "data": data}, default=str)

        with self._lock:
            outboxes: List[Tuple[Any, queue.Queue]] = list(self._clients.items())

        queued = 0
        for client, outbox in outboxes:
            try:
                outbox.put_nowait(message)
                queued += 1
            except queue.Full:
                logger.debug(f"Outbox full, dropping message for {client!r}")
        return queued

    def flush(self, client: Any) -> int:
        """Send everything queued for `client`. Call from the client's own thread.

        Errors raised by `client.send` propagate; the caller is expected to
        end the session and unregister it.

        Returns:
            int: Number of messages sent.
        """
        with self._lock:
            outbox = self._clients.get(client)
        if outbox is None:
            return 0

        sent = 0
        while True:
            try:
                message = outbox.get_nowait()
            except queue.Empty:
                return sent
            client.send(message)
            sent += 1
