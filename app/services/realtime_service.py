"""
Live snapshot streaming to connected clients.

Each client session subscribes to the portal collections plus its own
notifications. Snapshots are narrowed to what the user may see before they
are queued for the socket: admins see everything, partners see all projects
and partner profiles (without other people's billing details), and only their
own applications, invoices and messages.
"""

import asyncio
from typing import Any

from app.db.documents import (
    APPLICATIONS,
    INVOICES,
    MESSAGES,
    NOTIFICATIONS,
    PROJECTS,
    USERS,
    document_store,
)
from app.db.subscriptions import Snapshot, Unsubscribe, change_feed
from app.infrastructure.observability.logging import get_logger
from app.models.domain.user_domain import PortalUser

logger = get_logger(__name__)

LIVE_COLLECTIONS = (USERS, PROJECTS, APPLICATIONS, INVOICES, MESSAGES)
PRIVATE_PROFILE_FIELDS = ("bankAccountInfo", "invoiceNumber")


async def visible_records(user: PortalUser, collection: str, records: Snapshot) -> Snapshot:
    if user.is_admin:
        return records

    if collection == USERS:
        return [
            r if r.get("id") == user.id else {k: v for k, v in r.items() if k not in PRIVATE_PROFILE_FIELDS}
            for r in records
        ]
    if collection in (APPLICATIONS, INVOICES):
        return [r for r in records if r.get("userId") == user.id]
    if collection == MESSAGES:
        own_projects = {
            row["id"] for row in await document_store.query(PROJECTS, {"assignedToUserId": user.id})
        }
        return [
            r
            for r in records
            if r.get("senderId") == user.id
            or r.get("receiverId") == user.id
            or (r.get("projectId") and r["projectId"] in own_projects)
        ]
    return records


class LiveSession:
    """Subscriptions for one connected client; events are read from `queue`."""

    def __init__(self, user: PortalUser):
        self.user = user
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._unsubscribes: list[Unsubscribe] = []

    def _callback(self, collection: str):
        async def on_change(records: Snapshot) -> None:
            visible = await visible_records(self.user, collection, records)
            await self.queue.put({"collection": collection, "records": visible})

        return on_change

    def open(self) -> None:
        for collection in LIVE_COLLECTIONS:
            self._unsubscribes.append(
                change_feed.subscribe_to_collection(collection, self._callback(collection))
            )
        self._unsubscribes.append(
            change_feed.subscribe_to_user_notifications(self.user.id, self._callback(NOTIFICATIONS))
        )
        logger.info("Live session opened", user_id=self.user.id)

    def close(self) -> None:
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes.clear()
        logger.info("Live session closed", user_id=self.user.id)
