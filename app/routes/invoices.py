"""
Invoice routes.

Issuing answers with the generated PDF itself so the partner can download it
right away; the durable URL travels in the X-Invoice-Url header.
"""

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.auth.verify import require_active, require_admin
from app.infrastructure.observability.logging import get_logger
from app.models.api.project_request import InvoiceStatusRequest, IssueInvoiceRequest
from app.models.domain.project_domain import Invoice
from app.models.domain.user_domain import PortalUser
from app.routes.errors import service_http_error
from app.services import blob_storage, workflow_service
from app.services.invoice_document_service import InvoiceGenerationError
from app.services.workflow_service import WorkflowError

logger = get_logger(__name__)

router = APIRouter(prefix="/invoices", tags=["invoices"])


def _pdf_response(invoice: Invoice, document: bytes, status_code: int = status.HTTP_200_OK) -> Response:
    return Response(
        content=document,
        status_code=status_code,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="invoice_{invoice.id}.pdf"',
            "X-Invoice-Id": invoice.id,
            "X-Invoice-Url": invoice.pdf_url or "",
        },
    )


@router.get("", response_model=list[Invoice])
async def list_invoices(user: PortalUser = Depends(require_active)):
    return await workflow_service.list_invoices(user)


@router.post("", status_code=status.HTTP_201_CREATED)
async def issue_invoice(request: IssueInvoiceRequest, user: PortalUser = Depends(require_active)):
    """Generate the invoice PDF via the webhook and record the invoice as billed."""
    try:
        invoice, document = await workflow_service.create_or_update_invoice(
            user, request.project_id, request.amount, request.invoice_id
        )
    except WorkflowError as e:
        raise service_http_error(e) from e
    except InvoiceGenerationError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "code": "GENERATION_FAILED",
                "message": "n8nワークフローの呼び出しに失敗しました。後ほど再試行してください。",
            },
        ) from e
    except Exception as e:
        logger.error("Invoice issuance failed", user_id=user.id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to issue invoice"
        ) from e

    return _pdf_response(invoice, document, status.HTTP_201_CREATED)


@router.put("/{invoice_id}/status", response_model=Invoice)
async def update_status(
    invoice_id: str, request: InvoiceStatusRequest, admin: PortalUser = Depends(require_admin)
):
    try:
        return await workflow_service.update_invoice_status(admin, invoice_id, request.status)
    except WorkflowError as e:
        raise service_http_error(e) from e


@router.get("/{invoice_id}/document")
async def get_document(invoice_id: str, user: PortalUser = Depends(require_active)):
    """Serve an invoice PDF kept in degraded (ephemeral) mode."""
    try:
        invoice = await workflow_service.get_invoice(user, invoice_id)
    except WorkflowError as e:
        raise service_http_error(e) from e

    document = await blob_storage.load_ephemeral(invoice_id)
    if document is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document expired")
    return _pdf_response(invoice, document)
