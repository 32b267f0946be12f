"""Change notifications for the movies and users tables.

Rows touched by a flush are snapshotted into pending `ChangeEvent`s kept on
the session; once the transaction commits they are handed to every
subscriber. A rollback drops them, so subscribers only ever see writes the
store has confirmed.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import event

from models.models import Movie, User

logger = logging.getLogger(__name__)

_COLLECTIONS = {Movie: "movies", User: "users"}

ChangeCallback = Callable[["ChangeEvent"], None]


@dataclass(frozen=True)
class ChangeEvent:
    operation_type: str  # insert | update | delete
    collection: str
    document_key: Any
    full_document: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operationType": self.operation_type,
            "collection": self.collection,
            "documentKey": {"id": self.document_key},
            "fullDocument": self.full_document,
        }


class ChangeFeed:
    """
    Publishes committed inserts, updates and deletes made through a
    Flask-SQLAlchemy session bound to one engine.
    """

    def __init__(self, database, engine):
        self._database = database
        self._engine = engine
        self._subscribers: List[ChangeCallback] = []
        self._lock = threading.Lock()
        self._pending_key = f"change_feed.pending.{id(self)}"
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        event.listen(self._database.session, "after_flush", self._collect)
        event.listen(self._database.session, "after_commit", self._dispatch)
        event.listen(self._database.session, "after_rollback", self._discard)
        self._started = True
        logger.info("Change feed started")

    def stop(self) -> None:
        if not self._started:
            return
        event.remove(self._database.session, "after_flush", self._collect)
        event.remove(self._database.session, "after_commit", self._dispatch)
        event.remove(self._database.session, "after_rollback", self._discard)
        self._started = False

    def watch(self, callback: ChangeCallback) -> Callable[[], None]:
        """Subscribe to change events. Returns a function that unsubscribes."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _owns(self, session) -> bool:
        try:
            return session.get_bind() is self._engine
        except RuntimeError:
            # Outside an application context there is no engine to compare.
            return False

    def _collect(self, session, flush_context) -> None:
        if not self._owns(session):
            return

        pending = session.info.setdefault(self._pending_key, [])
        groups = (("insert", session.new), ("update", session.dirty), ("delete", session.deleted))
        for operation, objects in groups:
            for obj in objects:
                collection = _COLLECTIONS.get(type(obj))
                if collection is None:
                    continue
                if operation == "update" and not session.is_modified(obj):
                    continue
                document = None if operation == "delete" else obj.to_dict()
                pending.append(ChangeEvent(operation, collection, obj.id, document))

    def _dispatch(self, session) -> None:
        pending = session.info.pop(self._pending_key, None)
        if not pending:
            return

        with self._lock:
            subscribers = list(self._subscribers)

        for change in pending:
            logger.info(f"Detected change in {change.collection} collection: {change.operation_type}")
            for callback in subscribers:
                try:
                    callback(change)
                except Exception:
                    logger.exception(f"Change subscriber {callback!r} failed")

    def _discard(self, session) -> None:
        session.info.pop(self._pending_key, None)
