"""
Tests for the portal domain models and their stored-record invariants.
"""

from datetime import date

import pytest
from pydantic import ValidationError

from app.models.domain.messaging_domain import Message, project_link
from app.models.domain.project_domain import (
    Application,
    ApplicationStatus,
    Project,
    ProjectStatus,
    compute_invoice_totals,
)
from app.models.domain.user_domain import (
    BankAccountInfo,
    InvalidRecordError,
    PortalUser,
    UserRole,
    UserStatus,
    decode,
    encode_bank_info,
    parse_bank_info,
)
from app.utils.dates import payment_deadline


def _project(**fields) -> Project:
    base = {"id": "p1", "title": "DX研修", "category": "LECTURER", "budget": 150000}
    return Project.model_validate({**base, **fields})


def test_role_and_status_accept_any_casing():
    user = PortalUser.model_validate(
        {"id": "u1", "email": "a@example.com", "role": "admin", "status": "Active"}
    )

    assert user.role == UserRole.ADMIN
    assert user.status == UserStatus.ACTIVE
    assert user.is_admin is True
    assert user.is_restricted is False


def test_unknown_status_is_a_decode_error():
    with pytest.raises(InvalidRecordError) as exc:
        decode(PortalUser, {"id": "u1", "email": "a@example.com", "status": "BANNED"}, "users")

    assert exc.value.record_id == "u1"
    assert exc.value.collection == "users"


def test_pending_partner_is_restricted():
    user = PortalUser(id="u1", email="a@example.com", role=UserRole.PARTNER, status=UserStatus.PENDING)
    assert user.is_restricted is True


def test_unknown_fields_survive_round_trip():
    record = {"id": "u1", "email": "a@example.com", "creatorRank": "gold"}
    user = PortalUser.model_validate(record)

    assert user.to_record()["creatorRank"] == "gold"


def test_to_record_uses_camel_case_and_drops_none():
    user = PortalUser(id="u1", email="a@example.com", job_portal_enabled=True)
    record = user.to_record()

    assert record["jobPortalEnabled"] is True
    assert "avatarUrl" not in record


def test_in_progress_project_requires_assignee():
    with pytest.raises(ValidationError):
        _project(status="IN_PROGRESS")


def test_recruiting_project_cannot_have_assignee():
    with pytest.raises(ValidationError):
        _project(status="RECRUITING", assignedToUserId="u1")


def test_completed_project_keeps_assignee():
    project = _project(status="COMPLETED", assignedToUserId="u1", review={"score": 5})
    assert project.assigned_to_user_id == "u1"
    assert project.review.score == 5


def test_review_score_is_bounded():
    with pytest.raises(ValidationError):
        _project(status="COMPLETED", assignedToUserId="u1", review={"score": 6})


def test_applied_row_reads_rejected_once_project_stops_recruiting():
    application = Application(id="a1", project_id="p1", user_id="u2")

    assert application.display_status(_project()) == ApplicationStatus.APPLIED
    assert (
        application.display_status(_project(status="IN_PROGRESS", assignedToUserId="u1"))
        == ApplicationStatus.REJECTED
    )


def test_hired_row_stays_hired():
    application = Application(id="a1", project_id="p1", user_id="u1", status=ApplicationStatus.HIRED)
    project = _project(status=ProjectStatus.COMPLETED, assignedToUserId="u1")

    assert application.display_status(project) == ApplicationStatus.HIRED


def test_message_needs_exactly_one_route():
    with pytest.raises(ValidationError):
        Message(id="m1", sender_id="u1", content="hi")
    with pytest.raises(ValidationError):
        Message(id="m1", sender_id="u1", project_id="p1", receiver_id="u2", content="hi")

    assert Message(id="m1", sender_id="u1", receiver_id="u2", content="hi").is_direct is True


def test_project_link_format():
    assert project_link("P1") == "PROJECT:P1"


def test_invoice_totals_round_down():
    totals = compute_invoice_totals(100000)
    assert (totals.sub_total, totals.tax_amount, totals.total_amount) == (100000, 10000, 110000)

    odd = compute_invoice_totals(12345)
    assert odd.tax_amount == 1234
    assert odd.total_amount == 13579


def test_invoice_totals_reject_negative_amount():
    with pytest.raises(ValueError):
        compute_invoice_totals(-1)


@pytest.mark.parametrize(
    "issued,deadline",
    [
        (date(2026, 1, 15), date(2026, 2, 28)),
        (date(2028, 1, 31), date(2028, 2, 29)),
        (date(2026, 12, 3), date(2027, 1, 31)),
        (date(2026, 3, 1), date(2026, 4, 30)),
    ],
)
def test_payment_deadline_is_end_of_next_month(issued, deadline):
    assert payment_deadline(issued) == deadline


def test_bank_info_is_stored_as_json_string():
    info = BankAccountInfo(bank_name="みずほ銀行", account_number="1234567", account_holder="ヤマダ")
    raw = encode_bank_info(info)

    assert isinstance(raw, str)
    assert parse_bank_info(raw)["bankName"] == "みずほ銀行"


def test_bank_info_legacy_text_is_returned_unmodified():
    assert parse_bank_info("三井住友 本店 1234567") == "三井住友 本店 1234567"
    assert parse_bank_info(None) == ""
