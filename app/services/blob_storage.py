"""
Blob storage on Supabase Storage.

Objects are uploaded with the service-role key and handed out as long-lived
signed URLs. When an upload fails, generated invoice documents can be kept in
Redis for a limited time instead (degraded mode: the link stops working once
the entry expires).
"""

from urllib.parse import quote

import httpx

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.services import redis_store

logger = get_logger(__name__)

REQUEST_TIMEOUT = 30  # seconds
SIGNED_URL_EXPIRES_IN = 365 * 24 * 3600


class StorageError(Exception):
    """Custom exception for blob storage operations."""

    def __init__(self, message: str, path: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.path = path
        self.status_code = status_code


def invoice_document_path(invoice_id: str) -> str:
    return f"invoices/{invoice_id}.pdf"


def attachment_path(message_id: str, filename: str) -> str:
    return f"messages/{message_id}/{filename}"


def _headers(content_type: str | None = None) -> dict[str, str]:
    key = settings.SUPABASE_SERVICE_ROLE_KEY
    headers = {"apikey": key, "Authorization": f"Bearer {key}"}
    if content_type:
        headers["Content-Type"] = content_type
    return headers


async def upload(path: str, data: bytes, content_type: str) -> str:
    """
    Upload (or overwrite) an object and return a signed download URL.

    Raises:
        StorageError: On any non-2xx response or transport failure
    """
    bucket = settings.SUPABASE_STORAGE_BUCKET
    base = settings.storage_url()
    object_path = quote(path)

    try:
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            response = await client.post(
                f"{base}/object/{bucket}/{object_path}",
                content=data,
                headers={**_headers(content_type), "x-upsert": "true"},
            )
            if not response.is_success:
                raise StorageError(
                    f"Upload failed (HTTP {response.status_code}): {response.text[:200]}",
                    path=path,
                    status_code=response.status_code,
                )

            response = await client.post(
                f"{base}/object/sign/{bucket}/{object_path}",
                json={"expiresIn": SIGNED_URL_EXPIRES_IN},
                headers=_headers("application/json"),
            )
            if not response.is_success:
                raise StorageError(
                    f"Signing failed (HTTP {response.status_code})",
                    path=path,
                    status_code=response.status_code,
                )
            signed = response.json().get("signedURL") or response.json().get("signedUrl")
    except httpx.RequestError as e:
        raise StorageError(f"Storage unreachable: {e}", path=path) from e

    if not signed:
        raise StorageError("Signing returned no URL", path=path)

    logger.info("Object uploaded", path=path, size_bytes=len(data))
    return signed if signed.startswith("http") else f"{base}{signed}"


def ephemeral_document_url(invoice_id: str) -> str:
    return f"/invoices/{invoice_id}/document"


async def keep_ephemeral(invoice_id: str, data: bytes) -> str:
    """Hold a document in Redis for EPHEMERAL_DOCUMENT_TTL_SECONDS; returns its local URL."""
    stored = await redis_store.save_bytes(
        redis_store.invoice_document_key(invoice_id), data, settings.EPHEMERAL_DOCUMENT_TTL_SECONDS
    )
    if not stored:
        logger.warning("Ephemeral document could not be stored", invoice_id=invoice_id)
    return ephemeral_document_url(invoice_id)


async def load_ephemeral(invoice_id: str) -> bytes | None:
    return await redis_store.load_bytes(redis_store.invoice_document_key(invoice_id))


async def store_invoice_document(invoice_id: str, data: bytes) -> str:
    """
    Persist a generated invoice PDF; falls back to the ephemeral copy.

    Returns:
        A URL the admin can open: signed storage URL, or the local
        ephemeral route in degraded mode
    """
    try:
        return await upload(invoice_document_path(invoice_id), data, "application/pdf")
    except StorageError as e:
        logger.warning(
            "Invoice upload failed, keeping ephemeral copy",
            invoice_id=invoice_id,
            error=str(e),
            status_code=e.status_code,
        )
        return await keep_ephemeral(invoice_id, data)
