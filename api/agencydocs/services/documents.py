"""Document lifecycle and the e-signature sub-workflow.

Normal flow::

    Uploaded -> PendingReview | PendingSignature -> Approved | Rejected | Signed

``update_status`` is the agency's administrative override and may move a
document anywhere; every other transition is checked against ``NORMAL_FLOW``.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete as sa_delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..config import MAX_UPLOAD_BYTES
from ..errors import Conflict, Forbidden, Invalid, NotFound
from ..models import Document, DocumentSigner, DocumentStatus, Renewal, Role, User
from ..policy import (
    AGENCY_ONLY,
    ANY_USER,
    MEMBERS_ONLY,
    Actor,
    can_access,
    is_managing_agency,
    is_self,
    manages_user,
    require_access,
    require_role,
)
from ..storage import BlobStore
from ..utils import sha256_bytes, utcnow
from . import notifications
from .users import owned_set

logger = logging.getLogger(__name__)

ACCEPTED_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    }
)

NORMAL_FLOW = {
    DocumentStatus.UPLOADED: {DocumentStatus.PENDING_REVIEW, DocumentStatus.PENDING_SIGNATURE},
    DocumentStatus.PENDING_REVIEW: {
        DocumentStatus.PENDING_SIGNATURE,
        DocumentStatus.APPROVED,
        DocumentStatus.REJECTED,
    },
    DocumentStatus.PENDING_SIGNATURE: {
        DocumentStatus.PENDING_SIGNATURE,
        DocumentStatus.SIGNED,
        DocumentStatus.APPROVED,
        DocumentStatus.REJECTED,
    },
    DocumentStatus.APPROVED: set(),
    DocumentStatus.REJECTED: set(),
    DocumentStatus.SIGNED: set(),
}

# statuses that precede a signature request; a recipient is meaningless there
_PRE_SIGNATURE = {DocumentStatus.UPLOADED, DocumentStatus.PENDING_REVIEW}


def is_accepted_mime(mime_type: Optional[str]) -> bool:
    if not mime_type:
        return False
    return mime_type in ACCEPTED_MIME_TYPES or mime_type.startswith("image/")


def is_normal_transition(current: DocumentStatus, target: DocumentStatus) -> bool:
    return target in NORMAL_FLOW[current]


def _get(session: Session, document_id: int) -> Document:
    doc = session.get(Document, document_id)
    if not doc:
        raise NotFound("Document not found")
    return doc


def _tenant_for_upload(actor: Actor) -> Optional[int]:
    if actor.role == Role.AGENCY:
        return actor.id
    if actor.role == Role.STAFF:
        return actor.agency_id
    return None


def signers(session: Session, document_id: int) -> list[DocumentSigner]:
    return list(
        session.exec(
            select(DocumentSigner).where(DocumentSigner.document_id == document_id).order_by(DocumentSigner.id)
        ).all()
    )


def can_read(actor: Actor, doc: Document) -> bool:
    return can_access(actor, doc) or is_self(actor, doc.signature_recipient_id)


def upload(
    session: Session,
    blob_store: BlobStore,
    actor: Actor,
    file_name: str,
    data: bytes,
    mime_type: Optional[str],
    category: str,
    expiration_date: Optional[datetime] = None,
) -> Document:
    require_role(actor, ANY_USER, "upload documents")
    if not is_accepted_mime(mime_type):
        raise Invalid("Invalid file type. Only PDF, image, and Word documents are allowed.")
    if not data:
        raise Invalid("No file uploaded")
    if len(data) > MAX_UPLOAD_BYTES:
        raise Invalid(f"File exceeds the {MAX_UPLOAD_BYTES} byte upload limit")
    if not category or not category.strip():
        raise Invalid("Category is required")

    file_url = blob_store.put(data, file_name, content_type=mime_type, prefix=f"documents/{actor.id}")
    doc = Document(
        user_id=actor.id,
        agency_id=_tenant_for_upload(actor),
        file_name=file_name,
        file_url=file_url,
        file_mime_type=mime_type,
        sha256=sha256_bytes(data),
        category=category.strip(),
        expiration_date=expiration_date,
    )
    session.add(doc)
    try:
        session.commit()
    except Exception:
        session.rollback()
        try:
            blob_store.delete(file_url)
        except Exception:
            logger.exception("orphaned blob %s after failed upload commit", file_url, extra={"user_id": actor.id})
        raise
    session.refresh(doc)
    return doc


def list_documents(session: Session, actor: Actor) -> list[Document]:
    require_role(actor, ANY_USER, "list documents")
    owned = owned_set(session, actor)
    return list(
        session.exec(
            select(Document).where(Document.user_id.in_(owned)).order_by(Document.created_at.desc(), Document.id.desc())
        ).all()
    )


def get_document(session: Session, actor: Actor, document_id: int) -> Document:
    doc = _get(session, document_id)
    if not can_read(actor, doc):
        raise Forbidden("Not authorized to view this document")
    return doc


def read_file(session: Session, blob_store: BlobStore, actor: Actor, document_id: int) -> tuple[Document, bytes]:
    doc = get_document(session, actor, document_id)
    return doc, blob_store.get(doc.file_url)


def request_signature(
    session: Session,
    actor: Actor,
    document_id: int,
    recipient_id: Optional[int],
    message: Optional[str] = None,
) -> Document:
    require_role(actor, AGENCY_ONLY, "request signatures")
    doc = _get(session, document_id)

    # ownership follows the uploader's current tenant, not the snapshot
    owner = session.get(User, doc.user_id)
    if not (is_self(actor, doc.user_id) or (owner and manages_user(actor, owner))):
        raise Forbidden("Not authorized to request signature for this document (document not managed by your agency)")

    if recipient_id is None:
        raise Invalid("Recipient ID is required")
    recipient = session.get(User, recipient_id)
    if not recipient:
        raise NotFound("Signature recipient user not found")
    if recipient.id == actor.id:
        raise Invalid("You cannot request a signature from yourself")
    if recipient.role not in MEMBERS_ONLY:
        raise Invalid("Signature can only be requested from Staff or Individual users")
    if recipient.role == Role.STAFF and recipient.agency_id != actor.id:
        raise Forbidden("Staff recipient is not linked to your agency")

    if doc.status == DocumentStatus.PENDING_SIGNATURE:
        logger.warning(
            "signature re-requested; replacing requester %s / recipient %s",
            doc.signature_requester_id,
            doc.signature_recipient_id,
            extra={"document_id": doc.id, "user_id": actor.id},
        )
    elif not is_normal_transition(doc.status, DocumentStatus.PENDING_SIGNATURE):
        logger.info(
            "signature requested on %s document",
            doc.status.value,
            extra={"document_id": doc.id, "user_id": actor.id},
        )

    doc.status = DocumentStatus.PENDING_SIGNATURE
    doc.signature_requester_id = actor.id
    doc.signature_recipient_id = recipient.id
    session.add(doc)
    session.commit()
    session.refresh(doc)

    requester = session.get(User, actor.id)
    notifications.signature_requested(session, doc, requester, recipient, message)
    return doc


def mark_signed(session: Session, actor: Actor, document_id: int) -> Document:
    doc = _get(session, document_id)
    if not is_self(actor, doc.signature_recipient_id):
        raise Forbidden("You are not authorized to sign this document")
    if not is_normal_transition(doc.status, DocumentStatus.SIGNED):
        raise Conflict(f"Document cannot be signed while {doc.status.value}")

    result = session.exec(
        update(Document)
        .where(
            Document.id == doc.id,
            Document.status == DocumentStatus.PENDING_SIGNATURE,
            Document.signature_recipient_id == actor.id,
        )
        .values(status=DocumentStatus.SIGNED)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        session.rollback()
        raise Conflict("Document changed while signing; reload and retry")
    session.add(DocumentSigner(document_id=doc.id, signer_id=actor.id, signed_at=utcnow()))
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict("Document already signed by this user")
    session.refresh(doc)

    signer = session.get(User, actor.id)
    notifications.document_signed(session, doc, signer)
    return doc


def update_status(session: Session, actor: Actor, document_id: int, new_status: DocumentStatus) -> Document:
    require_role(actor, AGENCY_ONLY, "update document status")
    doc = _get(session, document_id)
    if not is_managing_agency(actor, doc):
        raise Forbidden("Not authorized to update this document status")

    if not is_normal_transition(doc.status, new_status):
        logger.info(
            "administrative status override %s -> %s",
            doc.status.value,
            new_status.value,
            extra={"document_id": doc.id, "user_id": actor.id},
        )
    doc.status = new_status
    if new_status in _PRE_SIGNATURE:
        doc.signature_requester_id = None
        doc.signature_recipient_id = None
    session.add(doc)
    session.commit()
    session.refresh(doc)
    return doc


def delete_document(session: Session, blob_store: BlobStore, actor: Actor, document_id: int):
    doc = _get(session, document_id)
    require_access(actor, doc, "document")

    # blob first: a failure here leaves the record intact and retryable
    blob_store.delete(doc.file_url)

    session.exec(sa_delete(DocumentSigner).where(DocumentSigner.document_id == doc.id))
    session.exec(
        update(Renewal)
        .where(Renewal.document_id == doc.id)
        .values(document_id=None)
        .execution_options(synchronize_session=False)
    )
    session.delete(doc)
    session.commit()
