
from enum import Enum
from typing import List, Optional
from datetime import datetime, timezone
from sqlalchemy import Column, DateTime, Enum as SAEnum, Index, JSON, UniqueConstraint, text
from sqlalchemy.types import TypeDecorator
from sqlmodel import SQLModel, Field as ORMField

from .utils import utcnow


class Role(str, Enum):
    AGENCY = "Agency"
    STAFF = "Staff"
    INDIVIDUAL = "Individual"
    ADMIN = "Admin"  # operator token only, never stored on a User


class DocumentStatus(str, Enum):
    UPLOADED = "Uploaded"
    PENDING_REVIEW = "PendingReview"
    PENDING_SIGNATURE = "PendingSignature"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    SIGNED = "Signed"


class InvitationStatus(str, Enum):
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"
    EXPIRED = "Expired"


class RenewalStatus(str, Enum):
    PENDING = "Pending"
    NOTIFIED = "Notified"
    COMPLETED = "Completed"
    OVERDUE = "Overdue"


class NotificationType(str, Enum):
    SIGNATURE_REQUEST = "signature_request"
    DOCUMENT_SIGNED = "document_signed"
    INVITATION_ACCEPTED = "invitation_accepted"
    INVITATION_RECEIVED = "invitation_received"


class UtcDateTime(TypeDecorator):
    """Aware UTC in and out; naive values are refused before they reach the database."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime bound to a UTC column")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        # SQLite drops the offset on the way in
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def _utc_column(nullable: bool = False, index: bool = False) -> Column:
    return Column(UtcDateTime(), nullable=nullable, index=index)


def _enum_column(enum_cls, default) -> Column:
    # persist the value ("PendingSignature"), not the member name
    return Column(
        SAEnum(
            enum_cls,
            values_callable=lambda members: [m.value for m in members],
            native_enum=False,
            length=32,
        ),
        nullable=False,
        default=default,
    )


class User(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    username: str = ORMField(index=True, unique=True)
    email: str = ORMField(index=True, unique=True)
    role: Role = ORMField(sa_column=_enum_column(Role, Role.INDIVIDUAL))
    # tenant owner; null for Agencies and for standalone users
    agency_id: Optional[int] = ORMField(default=None, index=True)
    contact_number: Optional[str] = None
    address: Optional[str] = None
    is_active: bool = True
    created_at: datetime = ORMField(default_factory=utcnow, sa_column=_utc_column())


class Document(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    user_id: int = ORMField(index=True)
    # snapshot of the uploader's tenant at upload time
    agency_id: Optional[int] = ORMField(default=None, index=True)
    file_name: str
    file_url: str
    file_mime_type: str
    sha256: Optional[str] = None
    category: str
    expiration_date: Optional[datetime] = ORMField(default=None, sa_column=_utc_column(nullable=True))
    status: DocumentStatus = ORMField(
        default=DocumentStatus.UPLOADED,
        sa_column=_enum_column(DocumentStatus, DocumentStatus.UPLOADED),
    )
    signature_requester_id: Optional[int] = None
    signature_recipient_id: Optional[int] = None
    created_at: datetime = ORMField(default_factory=utcnow, sa_column=_utc_column())


class DocumentSigner(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("document_id", "signer_id", name="uq_document_signer"),)

    id: Optional[int] = ORMField(default=None, primary_key=True)
    document_id: int = ORMField(index=True)
    signer_id: int
    signed_at: datetime = ORMField(default_factory=utcnow, sa_column=_utc_column())


class Invitation(SQLModel, table=True):
    __table_args__ = (
        Index(
            "uq_invitation_pending",
            "agency_id",
            "recipient_email",
            unique=True,
            sqlite_where=text("status = 'Pending'"),
            postgresql_where=text("status = 'Pending'"),
        ),
    )

    id: Optional[int] = ORMField(default=None, primary_key=True)
    agency_id: int = ORMField(index=True)
    recipient_email: str = ORMField(index=True)
    # resolved once at send time, never re-resolved
    recipient_id: Optional[int] = None
    token: str = ORMField(unique=True, index=True)
    status: InvitationStatus = ORMField(
        default=InvitationStatus.PENDING,
        sa_column=_enum_column(InvitationStatus, InvitationStatus.PENDING),
    )
    message: Optional[str] = None
    expires_at: datetime = ORMField(sa_column=_utc_column())
    accepted_at: Optional[datetime] = ORMField(default=None, sa_column=_utc_column(nullable=True))
    created_at: datetime = ORMField(default_factory=utcnow, sa_column=_utc_column())


class Renewal(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    user_id: int = ORMField(index=True)
    agency_id: Optional[int] = ORMField(default=None, index=True)
    item_type: str
    item_name: str
    current_expiration_date: datetime = ORMField(sa_column=_utc_column(index=True))
    new_expiration_date: Optional[datetime] = ORMField(default=None, sa_column=_utc_column(nullable=True))
    document_id: Optional[int] = None
    status: RenewalStatus = ORMField(
        default=RenewalStatus.PENDING,
        sa_column=_enum_column(RenewalStatus, RenewalStatus.PENDING),
    )
    notification_sent: bool = False
    notes: Optional[str] = None
    created_at: datetime = ORMField(default_factory=utcnow, sa_column=_utc_column())


class Event(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    user_id: int = ORMField(index=True)
    agency_id: Optional[int] = ORMField(default=None, index=True)
    title: str
    description: str = ""
    start: datetime = ORMField(sa_column=_utc_column(index=True))
    end: datetime = ORMField(sa_column=_utc_column())
    all_day: bool = False
    location: Optional[str] = None
    attendees: List[int] = ORMField(default_factory=list, sa_column=Column(JSON, nullable=False, default=list))
    created_at: datetime = ORMField(default_factory=utcnow, sa_column=_utc_column())


class Notification(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    user_id: int = ORMField(index=True)
    type: NotificationType = ORMField(sa_column=_enum_column(NotificationType, None))
    message: str
    document_id: Optional[int] = None
    read: bool = False
    created_at: datetime = ORMField(default_factory=utcnow, sa_column=_utc_column())
