"""
Document store over Supabase Postgres.

Each named collection is a table holding one JSONB document per row, keyed by
the document id (the id is also duplicated inside the document). Writes publish
the collection name on a NOTIFY channel so live subscribers can re-read the
collection snapshot; see app.db.subscriptions.

Write semantics:
    - fields whose value is None are stripped before every write
    - updates are partial JSONB merges with no read-before-write (last write wins)
    - inside `transaction()` reads can lock rows (`for_update=True`)
"""

import uuid
from collections.abc import AsyncGenerator, Iterable
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.types.json import Jsonb

from app.db.helpers import DatabaseError, execute_query, fetch_all, fetch_one, with_db_retry
from app.db.pool import db_pool
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

USERS = "users"
PROJECTS = "projects"
APPLICATIONS = "applications"
INVOICES = "invoices"
MESSAGES = "messages"
NOTIFICATIONS = "notifications"

COLLECTIONS = frozenset({USERS, PROJECTS, APPLICATIONS, INVOICES, MESSAGES, NOTIFICATIONS})

CHANGE_CHANNEL = "portal_changes"
TEMP_ID_PREFIX = "temp"

_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS {table} (
    id text PRIMARY KEY,
    data jsonb NOT NULL,
    created_at timestamptz NOT NULL DEFAULT now(),
    updated_at timestamptz NOT NULL DEFAULT now()
)
"""


class RecordNotFoundError(DatabaseError):
    """Raised when an update targets a document that does not exist."""

    def __init__(self, collection: str, record_id: str):
        super().__init__(
            f"{collection}/{record_id} does not exist", operation="update", recoverable=False
        )
        self.collection = collection
        self.record_id = record_id


def strip_undefined(record: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of the record without None-valued fields."""
    return {key: value for key, value in record.items() if value is not None}


def is_placeholder_id(record_id: Any) -> bool:
    """Client-side temporary ids are replaced by store-generated ones."""
    return not record_id or str(record_id).startswith(TEMP_ID_PREFIX)


def _table(collection: str) -> sql.Identifier:
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown collection '{collection}'")
    return sql.Identifier(collection)


class DocumentStore:
    """Create/update/query documents in named collections."""

    async def ensure_schema(self) -> None:
        """Create collection tables if they are missing."""
        for collection in sorted(COLLECTIONS):
            await execute_query(sql.SQL(_TABLE_DDL).format(table=_table(collection)))
        logger.info("Document collections ready", collections=sorted(COLLECTIONS))

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """One connection, one transaction; NOTIFYs are delivered on commit."""
        async with db_pool.transaction() as conn:
            yield conn

    async def create(
        self,
        collection: str,
        record: dict[str, Any],
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> dict[str, Any]:
        """
        Persist a new document.

        A real id on the record is used as the key (upsert). A missing or
        temporary id is replaced by a store-generated one, written back into
        the document.

        Returns:
            The persisted document, including its final id
        """
        cleaned = strip_undefined(record)
        table = _table(collection)

        if not is_placeholder_id(cleaned.get("id")):
            query = sql.SQL(
                "INSERT INTO {table} (id, data) VALUES (%s, %s) "
                "ON CONFLICT (id) DO UPDATE SET data = EXCLUDED.data, updated_at = now() "
                "RETURNING data"
            ).format(table=table)
            params = (str(cleaned["id"]), Jsonb(cleaned))
        else:
            cleaned.pop("id", None)
            query = sql.SQL(
                "WITH new_id AS (SELECT gen_random_uuid()::text AS id) "
                "INSERT INTO {table} (id, data) "
                "SELECT id, %s::jsonb || jsonb_build_object('id', id) FROM new_id "
                "RETURNING data"
            ).format(table=table)
            params = (Jsonb(cleaned),)

        row = await fetch_one(query, params, connection=connection)
        if not row:
            raise DatabaseError(f"Insert into {collection} returned no row", operation="create")

        await self._publish(collection, connection=connection)

        logger.debug("Document created", collection=collection, record_id=row["data"]["id"])
        return row["data"]

    async def update(
        self,
        collection: str,
        record_id: str,
        fields: dict[str, Any],
        *,
        remove: Iterable[str] = (),
        connection: psycopg.AsyncConnection | None = None,
    ) -> None:
        """
        Merge fields into an existing document.

        Raises:
            RecordNotFoundError: If the document does not exist
        """
        cleaned = strip_undefined(fields)
        cleaned.pop("id", None)
        removed = list(remove)
        query = sql.SQL(
            "UPDATE {table} SET data = (data || %s::jsonb) - %s::text[], updated_at = now() "
            "WHERE id = %s"
        ).format(table=_table(collection))

        affected = await execute_query(
            query, (Jsonb(cleaned), removed, record_id), connection=connection
        )
        if affected == 0:
            raise RecordNotFoundError(collection, record_id)

        await self._publish(collection, connection=connection)

        logger.debug(
            "Document updated",
            collection=collection,
            record_id=record_id,
            fields=sorted(cleaned),
            removed=removed,
        )

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def get(
        self,
        collection: str,
        record_id: str,
        *,
        for_update: bool = False,
        connection: psycopg.AsyncConnection | None = None,
    ) -> dict[str, Any] | None:
        """Fetch one document by id."""
        query = sql.SQL("SELECT data FROM {table} WHERE id = %s{lock}").format(
            table=_table(collection),
            lock=sql.SQL(" FOR UPDATE" if for_update else ""),
        )
        row = await fetch_one(query, (record_id,), connection=connection)
        return row["data"] if row else None

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def query(
        self,
        collection: str,
        equals: dict[str, Any] | None = None,
        *,
        for_update: bool = False,
        connection: psycopg.AsyncConnection | None = None,
    ) -> list[dict[str, Any]]:
        """
        Fetch documents whose fields equal the given values.

        Without filters the whole collection is returned, oldest first. Matching is
        JSON containment, so string values compare case-sensitively.
        """
        clauses = sql.SQL("")
        params: tuple = ()
        if equals:
            clauses = sql.SQL(" WHERE data @> %s::jsonb")
            params = (Jsonb(strip_undefined(equals)),)

        query = sql.SQL("SELECT data FROM {table}{where} ORDER BY created_at, id{lock}").format(
            table=_table(collection),
            where=clauses,
            lock=sql.SQL(" FOR UPDATE" if for_update else ""),
        )
        rows = await fetch_all(query, params, connection=connection)
        return [row["data"] for row in rows]

    async def list_all(self, collection: str) -> list[dict[str, Any]]:
        """Full snapshot of a collection."""
        return await self.query(collection)

    async def _publish(
        self, collection: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> None:
        await execute_query(
            "SELECT pg_notify(%s, %s)", (CHANGE_CHANNEL, collection), connection=connection
        )


def new_record_id(prefix: str) -> str:
    """Readable client-side id, e.g. inv3f9c..."""
    return f"{prefix}{uuid.uuid4().hex[:16]}"


document_store = DocumentStore()
