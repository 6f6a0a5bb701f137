"""Credential renewal tracking."""
import logging
from datetime import timedelta
from typing import Optional

from sqlmodel import Session, select

from ..config import RENEWAL_WINDOW_DAYS, UPCOMING_RENEWALS_LIMIT
from ..errors import Forbidden, Invalid, NotFound
from ..models import Document, Renewal, RenewalStatus, Role, User
from ..policy import ANY_USER, Actor, can_access, is_self, manages_user, require_access, require_role
from ..utils import utcnow
from .users import owned_set

logger = logging.getLogger(__name__)

_EDITABLE = ("item_type", "item_name", "current_expiration_date", "new_expiration_date", "status", "notes", "notification_sent")
_NULLABLE = ("new_expiration_date", "notes")


def _get(session: Session, renewal_id: int) -> Renewal:
    renewal = session.get(Renewal, renewal_id)
    if not renewal:
        raise NotFound("Renewal record not found")
    return renewal


def _tenant_for(user: User) -> Optional[int]:
    if user.role == Role.AGENCY:
        return user.id
    if user.role == Role.STAFF:
        return user.agency_id
    return None


def _check_document_link(session: Session, actor: Actor, document_id: Optional[int]):
    if document_id is None:
        return
    doc = session.get(Document, document_id)
    if not doc or not (actor.role == Role.ADMIN or can_access(actor, doc)):
        raise Invalid("document_id must reference a document you can access")


def create_renewal(session: Session, actor: Actor, user_id: int, **fields) -> Renewal:
    target = session.get(User, user_id)
    if not target:
        raise NotFound("Target user for renewal not found")
    if not (actor.role == Role.ADMIN or is_self(actor, target.id) or manages_user(actor, target)):
        raise Forbidden("Not authorized to create renewals for this user")
    _check_document_link(session, actor, fields.get("document_id"))

    renewal = Renewal(
        user_id=target.id,
        agency_id=_tenant_for(target),
        item_type=fields["item_type"],
        item_name=fields["item_name"],
        current_expiration_date=fields["current_expiration_date"],
        new_expiration_date=fields.get("new_expiration_date"),
        document_id=fields.get("document_id"),
        status=fields.get("status") or RenewalStatus.PENDING,
        notes=fields.get("notes"),
    )
    session.add(renewal)
    session.commit()
    session.refresh(renewal)
    return renewal


def get_renewal(session: Session, actor: Actor, renewal_id: int) -> Renewal:
    renewal = _get(session, renewal_id)
    require_access(actor, renewal, "renewal record")
    return renewal


def update_renewal(session: Session, actor: Actor, renewal_id: int, changes: dict) -> Renewal:
    renewal = _get(session, renewal_id)
    require_access(actor, renewal, "renewal record")
    for key in _EDITABLE:
        if key in changes and changes[key] is None and key not in _NULLABLE:
            raise Invalid(f"{key} cannot be cleared")
    if "document_id" in changes:
        _check_document_link(session, actor, changes["document_id"])
        renewal.document_id = changes["document_id"]
    for key in _EDITABLE:
        if key in changes:
            setattr(renewal, key, changes[key])
    session.add(renewal)
    session.commit()
    session.refresh(renewal)
    return renewal


def delete_renewal(session: Session, actor: Actor, renewal_id: int):
    renewal = _get(session, renewal_id)
    if actor.role != Role.ADMIN and not can_access(actor, renewal):
        raise Forbidden("Not authorized to delete this renewal record")
    if actor.role == Role.ADMIN:
        logger.info("renewal deleted by operator", extra={"renewal_id": renewal.id})
    session.delete(renewal)
    session.commit()


def list_renewals(session: Session, actor: Actor) -> list[Renewal]:
    require_role(actor, ANY_USER, "list renewals")
    owned = owned_set(session, actor)
    return list(
        session.exec(
            select(Renewal).where(Renewal.user_id.in_(owned)).order_by(Renewal.current_expiration_date)
        ).all()
    )


def get_upcoming(session: Session, actor: Actor) -> list[Renewal]:
    """Next few renewals falling due inside the window, soonest first."""
    require_role(actor, ANY_USER, "view upcoming renewals")
    owned = owned_set(session, actor)
    now = utcnow()
    horizon = now + timedelta(days=RENEWAL_WINDOW_DAYS)
    return list(
        session.exec(
            select(Renewal)
            .where(
                Renewal.user_id.in_(owned),
                Renewal.current_expiration_date >= now,
                Renewal.current_expiration_date <= horizon,
                Renewal.status != RenewalStatus.COMPLETED,
            )
            .order_by(Renewal.current_expiration_date, Renewal.id)
            .limit(UPCOMING_RENEWALS_LIMIT)
        ).all()
    )
