"""
Project / application / invoice workflow.

Every operation takes the acting user explicitly; toasts go to the actor,
notifications to the counterparty. Hire and invoice issuance write their
records inside one database transaction with the rows they depend on locked,
so concurrent admins cannot hire twice and observers never see a project in
progress without its invoice stub.
"""

from typing import Any

from app.db.documents import APPLICATIONS, INVOICES, MESSAGES, PROJECTS, document_store, new_record_id
from app.infrastructure.observability.logging import get_logger
from app.models.domain.messaging_domain import LINK_INVOICES, NotificationType, project_link
from app.models.domain.project_domain import (
    Application,
    ApplicationStatus,
    Invoice,
    InvoiceStatus,
    Project,
    ProjectStatus,
    Review,
)
from app.models.domain.user_domain import InvalidRecordError, PortalUser, decode
from app.services import blob_storage
from app.services.invoice_document_service import build_invoice_payload, generate_invoice_document
from app.services.notification_service import notify
from app.services.toast_service import push_toast
from app.services.user_service import get_admin_user_id
from app.utils.dates import today, today_iso

logger = get_logger(__name__)

_SERVER_PROJECT_FIELDS = frozenset(
    {"id", "status", "review", "assigned_to_user_id", "assignedToUserId", "created_at", "createdAt"}
)


class WorkflowError(Exception):
    """A workflow operation was refused or failed."""

    def __init__(self, message: str, code: str = "INVALID_STATE", entity_id: str | None = None):
        super().__init__(message)
        self.code = code
        self.entity_id = entity_id


def _require_admin(actor: PortalUser) -> None:
    if not actor.is_admin:
        raise WorkflowError("管理者のみ実行できる操作です。", "FORBIDDEN", actor.id)


async def _load_project(project_id: str, **kwargs) -> Project | None:
    row = await document_store.get(PROJECTS, project_id, **kwargs)
    return decode(Project, row, PROJECTS) if row else None


async def create_project(actor: PortalUser, fields: dict[str, Any]) -> Project:
    """Publish a new project in RECRUITING state."""
    _require_admin(actor)

    project = Project(
        **{k: v for k, v in fields.items() if k not in _SERVER_PROJECT_FIELDS},
        id=new_record_id("p"),
        status=ProjectStatus.RECRUITING,
        created_at=today_iso(),
    )
    await document_store.create(PROJECTS, project.to_record())
    await push_toast(
        actor.id, NotificationType.SUCCESS, "案件作成完了", f"「{project.title}」を公開しました。"
    )

    logger.info("Project created", project_id=project.id, actor_id=actor.id)
    return project


async def cancel_project(actor: PortalUser, project_id: str) -> None:
    _require_admin(actor)

    project = await _load_project(project_id)
    if project is None:
        raise WorkflowError("案件情報が見つかりません。", "NOT_FOUND", project_id)
    if project.status in (ProjectStatus.COMPLETED, ProjectStatus.CANCELLED):
        raise WorkflowError("この案件は中止できません。", "INVALID_STATE", project_id)

    await document_store.update(
        PROJECTS,
        project_id,
        {"status": ProjectStatus.CANCELLED.value},
        remove=["assignedToUserId"],
    )
    await push_toast(actor.id, NotificationType.INFO, "案件中止", f"「{project.title}」を中止しました。")

    if project.assigned_to_user_id:
        await notify(
            project.assigned_to_user_id,
            NotificationType.WARNING,
            "案件中止",
            f"案件「{project.title}」は中止されました。",
            project_link(project_id),
            actor_id=actor.id,
        )

    logger.info("Project cancelled", project_id=project_id, actor_id=actor.id)


async def apply_to_project(
    actor: PortalUser, project_id: str, message: str, quote_amount: int
) -> Application:
    """
    Submit an application for a recruiting project.

    Raises:
        WorkflowError: FORBIDDEN for restricted partners, NOT_FOUND,
            INVALID_STATE when not recruiting, DUPLICATE_APPLICATION
    """
    if actor.is_restricted:
        raise WorkflowError("承認済みのパートナーのみ応募できます。", "FORBIDDEN", actor.id)

    project = await _load_project(project_id)
    if project is None:
        raise WorkflowError("案件情報が見つかりません。", "NOT_FOUND", project_id)
    if project.status != ProjectStatus.RECRUITING:
        raise WorkflowError("この案件は募集を終了しています。", "INVALID_STATE", project_id)

    existing = await document_store.query(APPLICATIONS, {"projectId": project_id, "userId": actor.id})
    if existing:
        raise WorkflowError("この案件には既に応募済みです。", "DUPLICATE_APPLICATION", project_id)

    application = Application(
        id=new_record_id("a"),
        project_id=project_id,
        user_id=actor.id,
        status=ApplicationStatus.APPLIED,
        message=message,
        quote_amount=quote_amount,
        available_start_date=today_iso(),
        created_at=today_iso(),
        is_read=False,
    )
    await document_store.create(APPLICATIONS, application.to_record())

    await push_toast(actor.id, NotificationType.SUCCESS, "応募完了", "案件への応募が完了しました。")

    admin_id = await get_admin_user_id()
    if admin_id:
        await notify(
            admin_id,
            NotificationType.INFO,
            "案件への応募",
            f"{actor.name} さんが「{project.title}」に応募しました。",
            project_link(project_id),
            actor_id=actor.id,
        )

    logger.info(
        "Application submitted",
        application_id=application.id,
        project_id=project_id,
        user_id=actor.id,
        quote_amount=quote_amount,
    )
    return application


async def hire_applicant(
    actor: PortalUser, project_id: str, application_id: str, partner_id: str | None = None
) -> Invoice:
    """
    Hire one application; the project starts and an unbilled invoice stub is created.

    Runs in a single transaction: project in progress, application hired,
    every other open application rejected, invoice stub created.

    Raises:
        WorkflowError: NOT_FOUND, INVALID_STATE, WRITE_FAILED
    """
    _require_admin(actor)

    try:
        async with document_store.transaction() as conn:
            project_row = await document_store.get(
                PROJECTS, project_id, for_update=True, connection=conn
            )
            application_row = await document_store.get(
                APPLICATIONS, application_id, for_update=True, connection=conn
            )
            if not project_row or not application_row:
                raise WorkflowError("データが見つかりませんでした。", "NOT_FOUND", project_id)

            project = decode(Project, project_row, PROJECTS)
            application = decode(Application, application_row, APPLICATIONS)

            if application.project_id != project_id:
                raise WorkflowError("応募と案件が一致しません。", "INVALID_STATE", application_id)
            if partner_id and application.user_id != partner_id:
                raise WorkflowError("応募者が一致しません。", "INVALID_STATE", application_id)
            if project.status != ProjectStatus.RECRUITING:
                raise WorkflowError("募集中の案件ではありません。", "INVALID_STATE", project_id)
            if application.status != ApplicationStatus.APPLIED:
                raise WorkflowError("この応募は採用できません。", "INVALID_STATE", application_id)

            await document_store.update(
                PROJECTS,
                project_id,
                {"status": ProjectStatus.IN_PROGRESS.value, "assignedToUserId": application.user_id},
                connection=conn,
            )
            await document_store.update(
                APPLICATIONS,
                application_id,
                {"status": ApplicationStatus.HIRED.value},
                connection=conn,
            )

            # Status is compared after loading: containment matching is case-sensitive
            competing = await document_store.query(
                APPLICATIONS, {"projectId": project_id}, for_update=True, connection=conn
            )
            rejected = 0
            for row in competing:
                applied = str(row.get("status", "")).upper() == ApplicationStatus.APPLIED.value
                if applied and row["id"] != application_id:
                    await document_store.update(
                        APPLICATIONS,
                        row["id"],
                        {"status": ApplicationStatus.REJECTED.value},
                        connection=conn,
                    )
                    rejected += 1

            invoice = Invoice(
                id=new_record_id("inv"),
                project_id=project_id,
                user_id=application.user_id,
                amount=application.quote_amount or project.budget,
                status=InvoiceStatus.UNBILLED,
            )
            await document_store.create(INVOICES, invoice.to_record(), connection=conn)

    except WorkflowError as e:
        await push_toast(actor.id, NotificationType.ERROR, "エラー", str(e))
        raise
    except Exception as e:
        logger.error(
            "Error hiring applicant",
            project_id=project_id,
            application_id=application_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        await push_toast(actor.id, NotificationType.ERROR, "システムエラー", "採用処理中にエラーが発生しました。")
        raise WorkflowError("採用処理中にエラーが発生しました。", "WRITE_FAILED", project_id) from e

    await notify(
        application.user_id,
        NotificationType.SUCCESS,
        "採用決定",
        f"案件「{project.title}」に採用されました！",
        project_link(project_id),
        actor_id=actor.id,
    )
    await push_toast(actor.id, NotificationType.SUCCESS, "採用完了", "パートナーを採用し、案件を開始しました。")

    logger.info(
        "Applicant hired",
        project_id=project_id,
        application_id=application_id,
        user_id=application.user_id,
        invoice_id=invoice.id,
        rejected_count=rejected,
    )
    return invoice


def _check_reissue(actor: PortalUser, existing: Invoice, project_id: str) -> None:
    if not actor.is_admin and existing.user_id != actor.id:
        raise WorkflowError("この請求書は更新できません。", "FORBIDDEN", existing.id)
    if existing.project_id != project_id:
        raise WorkflowError("請求書と案件が一致しません。", "INVALID_STATE", existing.id)
    if existing.status == InvoiceStatus.PAID:
        raise WorkflowError("入金済みの請求書は再発行できません。", "INVALID_STATE", existing.id)


async def _load_invoice(invoice_id: str, **kwargs) -> Invoice:
    row = await document_store.get(INVOICES, invoice_id, **kwargs)
    if not row:
        raise WorkflowError("請求書が見つかりません。", "NOT_FOUND", invoice_id)
    return decode(Invoice, row, INVOICES)


async def create_or_update_invoice(
    actor: PortalUser, project_id: str, amount: int, invoice_id: str | None = None
) -> tuple[Invoice, bytes]:
    """
    Issue (or re-issue) an invoice for a project the actor works on.

    The document is generated by the webhook first; the invoice record is
    only written once a document exists.

    Returns:
        The billed invoice and the generated PDF bytes

    Raises:
        WorkflowError: NOT_FOUND / FORBIDDEN / INVALID_STATE (paid or foreign
            invoice) before generation
        InvoiceGenerationError: webhook failure (re-raised after the failure toast)
    """
    project = await _load_project(project_id)
    if project is None:
        await push_toast(actor.id, NotificationType.ERROR, "エラー", "案件情報が見つかりません。")
        raise WorkflowError("案件情報が見つかりません。", "NOT_FOUND", project_id)
    if not actor.is_admin and project.assigned_to_user_id != actor.id:
        raise WorkflowError("この案件の請求書は発行できません。", "FORBIDDEN", project_id)

    if invoice_id:
        # Checked again under the row lock below
        _check_reissue(actor, await _load_invoice(invoice_id), project_id)

    current_id = invoice_id or new_record_id("inv")
    issued = today()

    try:
        payload = build_invoice_payload(current_id, actor, project.title, amount, issued)
        document = await generate_invoice_document(payload)
        pdf_url = await blob_storage.store_invoice_document(current_id, document)

        async with document_store.transaction() as conn:
            if invoice_id:
                existing = await _load_invoice(invoice_id, for_update=True, connection=conn)
                _check_reissue(actor, existing, project_id)

                await document_store.update(
                    INVOICES,
                    invoice_id,
                    {
                        "amount": amount,
                        "issueDate": issued.isoformat(),
                        "status": InvoiceStatus.BILLED.value,
                        "pdfUrl": pdf_url,
                    },
                    connection=conn,
                )
                invoice = existing.model_copy(
                    update={
                        "amount": amount,
                        "issue_date": issued.isoformat(),
                        "status": InvoiceStatus.BILLED,
                        "pdf_url": pdf_url,
                    }
                )
            else:
                invoice = Invoice(
                    id=current_id,
                    project_id=project_id,
                    user_id=actor.id,
                    amount=amount,
                    issue_date=issued.isoformat(),
                    status=InvoiceStatus.BILLED,
                    pdf_url=pdf_url,
                )
                await document_store.create(INVOICES, invoice.to_record(), connection=conn)

    except Exception as e:
        logger.error(
            "Failed to create invoice",
            project_id=project_id,
            invoice_id=current_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        await push_toast(
            actor.id,
            NotificationType.ERROR,
            "発行失敗",
            "n8nワークフローの呼び出しに失敗しました。後ほど再試行してください。",
        )
        raise

    admin_id = await get_admin_user_id()
    if invoice_id:
        await push_toast(actor.id, NotificationType.SUCCESS, "請求書更新完了", "請求書を更新し、ダウンロードしました。")
        title, message = "請求書更新", f"{actor.name} さんが請求書を更新・発行しました。"
    else:
        await push_toast(actor.id, NotificationType.SUCCESS, "請求書発行完了", "請求書を作成し、ダウンロードしました。")
        title, message = "請求書発行", f"{actor.name} さんから新しい請求書が発行されました。"
    if admin_id:
        await notify(admin_id, NotificationType.INFO, title, message, LINK_INVOICES, actor_id=actor.id)

    logger.info(
        "Invoice issued",
        invoice_id=invoice.id,
        project_id=project_id,
        amount=amount,
        reissued=bool(invoice_id),
    )
    return invoice, document


async def update_invoice_status(actor: PortalUser, invoice_id: str, status: InvoiceStatus) -> Invoice:
    """Admin override of an invoice's status; Paid notifies the partner."""
    _require_admin(actor)

    row = await document_store.get(INVOICES, invoice_id)
    if not row:
        raise WorkflowError("請求書が見つかりません。", "NOT_FOUND", invoice_id)
    invoice = decode(Invoice, row, INVOICES)

    updates: dict[str, Any] = {"status": status.value}
    if status == InvoiceStatus.BILLED:
        updates["issueDate"] = today_iso()

    await document_store.update(INVOICES, invoice_id, updates)
    await push_toast(actor.id, NotificationType.INFO, "ステータス更新", "請求ステータスを更新しました。")

    if status == InvoiceStatus.PAID:
        await notify(
            invoice.user_id,
            NotificationType.SUCCESS,
            "入金確認",
            f"案件の報酬（¥{invoice.amount:,}）の入金が確認されました。",
            LINK_INVOICES,
            actor_id=actor.id,
        )

    logger.info("Invoice status updated", invoice_id=invoice_id, status=status.value)
    return invoice.model_copy(
        update={"status": status, "issue_date": updates.get("issueDate", invoice.issue_date)}
    )


async def complete_project(actor: PortalUser, project_id: str, score: int, comment: str) -> Project:
    """Close an in-progress project with the admin's review."""
    _require_admin(actor)

    project = await _load_project(project_id)
    if project is None:
        raise WorkflowError("案件情報が見つかりません。", "NOT_FOUND", project_id)
    if project.status != ProjectStatus.IN_PROGRESS:
        raise WorkflowError("進行中の案件のみ完了できます。", "INVALID_STATE", project_id)

    review = Review(score=score, comment=comment, created_at=today_iso())
    await document_store.update(
        PROJECTS,
        project_id,
        {"status": ProjectStatus.COMPLETED.value, "review": review.to_record()},
    )
    await push_toast(actor.id, NotificationType.SUCCESS, "完了処理", "案件を完了し、評価を送信しました。")

    if project.assigned_to_user_id:
        await notify(
            project.assigned_to_user_id,
            NotificationType.SUCCESS,
            "案件完了",
            "案件が完了としてマークされ、評価が登録されました。",
            project_link(project_id),
            actor_id=actor.id,
        )

    logger.info("Project completed", project_id=project_id, score=score)
    return project.model_copy(update={"status": ProjectStatus.COMPLETED, "review": review})


async def mark_project_read(actor: PortalUser, project_id: str) -> int:
    """
    Mark the project's incoming messages read (and, for admins, its applications).

    Returns:
        Number of records flipped

    Raises:
        WorkflowError: NOT_FOUND, FORBIDDEN for partners not assigned to the project
    """
    if not actor.is_admin:
        project = await _load_project(project_id)
        if project is None:
            raise WorkflowError("案件情報が見つかりません。", "NOT_FOUND", project_id)
        if project.assigned_to_user_id != actor.id:
            raise WorkflowError("この案件のメッセージは閲覧できません。", "FORBIDDEN", project_id)

    flipped = 0
    for row in await document_store.query(MESSAGES, {"projectId": project_id, "isRead": False}):
        if row.get("senderId") != actor.id:
            await document_store.update(MESSAGES, row["id"], {"isRead": True})
            flipped += 1

    if actor.is_admin:
        for row in await document_store.query(APPLICATIONS, {"projectId": project_id, "isRead": False}):
            await document_store.update(APPLICATIONS, row["id"], {"isRead": True})
            flipped += 1

    logger.debug("Project marked read", project_id=project_id, user_id=actor.id, count=flipped)
    return flipped


async def list_projects() -> list[Project]:
    projects = []
    for row in await document_store.list_all(PROJECTS):
        try:
            projects.append(decode(Project, row, PROJECTS))
        except InvalidRecordError:
            continue
    return projects


async def get_project(project_id: str) -> Project:
    project = await _load_project(project_id)
    if project is None:
        raise WorkflowError("案件情報が見つかりません。", "NOT_FOUND", project_id)
    return project


async def project_applications(
    actor: PortalUser, project_id: str
) -> list[tuple[Application, ApplicationStatus]]:
    """Applications of a project with their display status; partners see only their own."""
    project = await get_project(project_id)
    equals = {"projectId": project_id}
    if not actor.is_admin:
        equals["userId"] = actor.id

    applications = [
        decode(Application, row, APPLICATIONS)
        for row in await document_store.query(APPLICATIONS, equals)
    ]
    return [(a, a.display_status(project)) for a in applications]


async def list_invoices(actor: PortalUser) -> list[Invoice]:
    """Every invoice for admins, the partner's own otherwise."""
    if actor.is_admin:
        rows = await document_store.list_all(INVOICES)
    else:
        rows = await document_store.query(INVOICES, {"userId": actor.id})
    return [decode(Invoice, row, INVOICES) for row in rows]


async def get_invoice(actor: PortalUser, invoice_id: str) -> Invoice:
    row = await document_store.get(INVOICES, invoice_id)
    if not row:
        raise WorkflowError("請求書が見つかりません。", "NOT_FOUND", invoice_id)
    invoice = decode(Invoice, row, INVOICES)
    if not actor.is_admin and invoice.user_id != actor.id:
        raise WorkflowError("この請求書は閲覧できません。", "FORBIDDEN", invoice_id)
    return invoice
