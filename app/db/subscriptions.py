"""
Live collection subscriptions over Postgres LISTEN/NOTIFY.

Every write in app.db.documents publishes the collection name on
CHANGE_CHANNEL. The change feed holds one dedicated listening connection and,
on each notification, re-reads the full snapshot for every subscriber of that
collection and hands it to the subscriber's callback.

Failure policy: read and transport errors are logged and swallowed; the
subscriber simply does not receive a snapshot, so whatever it last received
stays current. Subscribing never raises; if setup fails a no-op unsubscribe is
returned.
"""

import asyncio
import inspect
import itertools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import psycopg

from app.db.documents import CHANGE_CHANNEL, COLLECTIONS, NOTIFICATIONS, document_store
from app.db.pool import db_pool
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

Snapshot = list[dict[str, Any]]
SnapshotCallback = Callable[[Snapshot], Awaitable[None] | None]
Unsubscribe = Callable[[], None]

RECONNECT_DELAY_SECONDS = 2.0


def _noop() -> None:
    return None


@dataclass
class _Subscriber:
    collection: str
    load: Callable[[], Awaitable[Snapshot]]
    on_change: SnapshotCallback


class ChangeFeed:
    """Fan-out of collection change notifications to snapshot callbacks."""

    def __init__(self):
        self._subscribers: dict[int, _Subscriber] = {}
        self._ids = itertools.count(1)
        self._deliveries: set[asyncio.Task] = set()
        self._task: asyncio.Task | None = None
        self._connection: psycopg.AsyncConnection | None = None

    async def start(self) -> None:
        """Start the background listener task."""
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._listen_forever(), name="change-feed")
        logger.info("Change feed started", channel=CHANGE_CHANNEL)

    async def stop(self) -> None:
        """Stop listening and drop every subscriber."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        for delivery in list(self._deliveries):
            delivery.cancel()
        await self._close_connection()
        self._subscribers.clear()
        logger.info("Change feed stopped")

    def status(self) -> dict:
        return {
            "running": bool(self._task and not self._task.done()),
            "listening": self._connection is not None,
            "subscribers": len(self._subscribers),
        }

    def subscribe_to_collection(
        self, collection: str, on_change: SnapshotCallback
    ) -> Unsubscribe:
        """
        Deliver the full collection on every change.

        Returns:
            Unsubscribe callable (a no-op if the subscription could not be set up)
        """
        try:
            if collection not in COLLECTIONS:
                raise ValueError(f"Unknown collection '{collection}'")

            async def load() -> Snapshot:
                return await document_store.list_all(collection)

            return self._register(_Subscriber(collection, load, on_change))
        except Exception as e:
            logger.error("Failed to subscribe to collection", collection=collection, error=str(e))
            return _noop

    def subscribe_to_user_notifications(
        self, user_id: str, on_change: SnapshotCallback
    ) -> Unsubscribe:
        """Deliver a user's notifications, newest first, on every change."""
        try:

            async def load() -> Snapshot:
                rows = await document_store.query(NOTIFICATIONS, {"userId": user_id})
                return sort_newest_first(rows)

            return self._register(_Subscriber(NOTIFICATIONS, load, on_change))
        except Exception as e:
            logger.error("Failed to subscribe to notifications", user_id=user_id, error=str(e))
            return _noop

    def _register(self, subscriber: _Subscriber) -> Unsubscribe:
        # Initial snapshot, like the first delivery of any live query.
        # Raises outside a running loop, before anything is stored.
        delivery = asyncio.get_running_loop().create_task(self._deliver(subscriber))
        self._deliveries.add(delivery)
        delivery.add_done_callback(self._deliveries.discard)

        subscription_id = next(self._ids)
        self._subscribers[subscription_id] = subscriber

        def unsubscribe() -> None:
            self._subscribers.pop(subscription_id, None)

        logger.debug(
            "Subscriber registered",
            collection=subscriber.collection,
            subscription_id=subscription_id,
        )
        return unsubscribe

    async def dispatch(self, collection: str) -> None:
        """Re-deliver snapshots to every subscriber of a collection."""
        targets = [s for s in list(self._subscribers.values()) if s.collection == collection]
        for subscriber in targets:
            await self._deliver(subscriber)

    async def _deliver(self, subscriber: _Subscriber) -> None:
        try:
            snapshot = await subscriber.load()
        except Exception as e:
            logger.warning(
                "Snapshot read failed, keeping previous state",
                collection=subscriber.collection,
                error=str(e),
            )
            return

        try:
            result = subscriber.on_change(snapshot)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(
                "Subscriber callback failed", collection=subscriber.collection, error=str(e)
            )

    async def _listen_forever(self) -> None:
        while True:
            try:
                self._connection = await db_pool.listen_connection()
                await self._connection.execute(f"LISTEN {CHANGE_CHANNEL}")
                logger.debug("Listening for collection changes", channel=CHANGE_CHANNEL)

                async for notify in self._connection.notifies():
                    await self.dispatch(notify.payload)

            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "Change feed connection lost, reconnecting",
                    error=str(e),
                    error_type=type(e).__name__,
                    retry_in_s=RECONNECT_DELAY_SECONDS,
                )
                await self._close_connection()
                await asyncio.sleep(RECONNECT_DELAY_SECONDS)

    async def _close_connection(self) -> None:
        if self._connection is None:
            return
        try:
            await self._connection.close()
        except Exception as e:
            logger.warning("Error closing change feed connection", error=str(e))
        self._connection = None


def sort_newest_first(rows: Snapshot) -> Snapshot:
    """Order records by createdAt descending (ISO-8601 strings sort chronologically)."""
    return sorted(rows, key=lambda row: row.get("createdAt") or "", reverse=True)


change_feed = ChangeFeed()
