"""
User domain models.

Profiles are shared with a companion registration portal, so the stored shape
is camelCase JSON and may carry fields this service does not know about
(kept via extra="allow"). Role and status values are normalized here: casing
differences are accepted, anything outside the known set is a decode error.
"""

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class InvalidRecordError(Exception):
    """A stored record could not be decoded into its domain model."""

    def __init__(self, message: str, collection: str | None = None, record_id: str | None = None):
        super().__init__(message)
        self.collection = collection
        self.record_id = record_id


class CaseInsensitiveEnum(str, Enum):
    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.lower():
                    return member
        return None


class UserRole(CaseInsensitiveEnum):
    ADMIN = "ADMIN"
    PARTNER = "PARTNER"


class UserStatus(CaseInsensitiveEnum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    REJECTED = "REJECTED"


class ProjectCategory(CaseInsensitiveEnum):
    LECTURER = "LECTURER"
    DX_CONSULTING = "DX_CONSULTING"
    DEVELOPMENT = "DEVELOPMENT"


class PortalRecord(BaseModel):
    """Base for documents persisted as camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_record(self) -> dict[str, Any]:
        """JSON-ready document with None fields dropped."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


def decode(model: type[PortalRecord], record: dict[str, Any], collection: str | None = None):
    """Validate a stored record into its model, raising InvalidRecordError on failure."""
    try:
        return model.model_validate(record)
    except ValidationError as e:
        record_id = record.get("id") if isinstance(record, dict) else None
        logger.warning(
            "Stored record failed validation",
            collection=collection,
            record_id=record_id,
            error=str(e),
        )
        raise InvalidRecordError(
            f"Invalid {model.__name__} record: {e}", collection=collection, record_id=record_id
        ) from e


class BankAccountInfo(PortalRecord):
    bank_name: str = ""
    branch_name: str = ""
    account_type: str = "普通"
    account_number: str = ""
    account_holder: str = ""


def encode_bank_info(info: BankAccountInfo) -> str:
    """Serialize bank details to the JSON string stored on the profile."""
    return json.dumps(info.to_record(), ensure_ascii=False)


def parse_bank_info(raw: str | None) -> dict[str, Any] | str:
    """
    Parse the stored bank-info blob.

    Returns the structured fields when the blob is a JSON object, otherwise
    the raw string unmodified ('' when absent).
    """
    if not raw:
        return ""
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning("Failed to parse bank info", error=str(e))
        return raw
    if not isinstance(parsed, dict):
        return raw
    return parsed


class PortalUser(PortalRecord):
    """Profile record from the `users` collection."""

    id: str
    email: str
    name: str = ""
    role: UserRole = UserRole.PARTNER
    status: UserStatus = UserStatus.PENDING
    avatar_url: str | None = None
    created_at: str | None = None
    last_login_at: str | None = None
    job_portal_enabled: bool = False

    # Partner billing / profile attributes
    n8n_profile_url: str | None = None
    invoice_number: str | None = None
    bank_account_info: str | None = None
    experience_tags: list[str] = []
    self_introduction: str | None = None
    available_categories: list[ProjectCategory] = []
    portfolio_url: str | None = None
    phone_number: str | None = None
    postal_code: str | None = None
    address: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_restricted(self) -> bool:
        """Partners that are not Active may only use their own profile screen."""
        return self.role == UserRole.PARTNER and self.status != UserStatus.ACTIVE
