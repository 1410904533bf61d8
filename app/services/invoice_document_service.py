"""
Invoice document generation through the n8n webhook.

The webhook receives the full invoice payload (partner billing profile,
client profile, line items, totals) and answers with the rendered PDF.
There is no automatic retry: callers decide whether to try again.
"""

from datetime import date

import httpx

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.models.domain.project_domain import compute_invoice_totals
from app.models.domain.user_domain import PortalUser, parse_bank_info
from app.utils.dates import payment_deadline

logger = get_logger(__name__)

# No client-side deadline on document generation; only connect is bounded
REQUEST_TIMEOUT = httpx.Timeout(None, connect=10.0)

PENDING_INVOICE_NUMBER = "T_PENDING"
LINE_ITEM_TAX_RATE = 0.10

CLIENT_PROFILE = {
    "name": "Pantheon株式会社",
    "postalCode": "103-0027",
    "address": "東京都中央区日本橋2-10-3 エグゼトゥール日本橋10階",
    "phoneNumber": "03-6281-8871",
    "contactPerson": "山本",
}


class InvoiceGenerationError(Exception):
    """The document webhook failed (non-2xx or unreachable)."""

    def __init__(self, message: str, invoice_id: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.invoice_id = invoice_id
        self.status_code = status_code


def build_invoice_payload(
    invoice_id: str,
    partner: PortalUser,
    project_title: str,
    amount: int,
    issued: date,
) -> dict:
    totals = compute_invoice_totals(amount)
    return {
        "invoiceId": invoice_id,
        "issueDate": issued.isoformat(),
        "paymentDeadline": payment_deadline(issued).isoformat(),
        "partner": {
            "id": partner.id,
            "name": partner.name,
            "email": partner.email,
            "postalCode": partner.postal_code or "",
            "address": partner.address or "",
            "phoneNumber": partner.phone_number or "",
            "invoiceNumber": partner.invoice_number or PENDING_INVOICE_NUMBER,
            "bankAccountInfo": parse_bank_info(partner.bank_account_info),
        },
        "client": dict(CLIENT_PROFILE),
        "items": [
            {
                "name": project_title,
                "quantity": 1,
                "unitPrice": amount,
                "taxRate": LINE_ITEM_TAX_RATE,
            }
        ],
        "totalAmount": totals.total_amount,
        "taxAmount": totals.tax_amount,
        "subTotal": totals.sub_total,
    }


async def generate_invoice_document(payload: dict) -> bytes:
    """
    POST the payload to the webhook and return the PDF bytes.

    Raises:
        InvoiceGenerationError: On non-2xx or transport failure
    """
    invoice_id = payload.get("invoiceId")

    try:
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            response = await client.post(settings.INVOICE_WEBHOOK_URL, json=payload)
    except httpx.RequestError as e:
        logger.error("Invoice webhook unreachable", invoice_id=invoice_id, error=str(e))
        raise InvoiceGenerationError(f"n8n connection failed: {e}", invoice_id) from e

    if not response.is_success:
        logger.error(
            "Invoice webhook failed",
            invoice_id=invoice_id,
            status_code=response.status_code,
            response_text=response.text[:200],
        )
        raise InvoiceGenerationError(
            f"n8n connection failed: {response.status_code}",
            invoice_id,
            status_code=response.status_code,
        )

    logger.info("Invoice document generated", invoice_id=invoice_id, size_bytes=len(response.content))
    return response.content
