"""Tenant-join invitations.

State machine::

    Pending -> Accepted | Rejected | Expired     (all terminal)

Every transition out of Pending is a conditional write on ``status`` so two
concurrent attempts on the same invitation cannot both win. Expiry is lazy:
an accept attempt past ``expires_at`` flips the row to Expired, and
``expire_stale_invitations`` does the same in bulk.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..config import INVITATION_TTL_HOURS
from ..errors import Conflict, ExpiredToken, Forbidden, NotFound
from ..models import Invitation, InvitationStatus, Role, User
from ..policy import AGENCY_ONLY, MEMBERS_ONLY, Actor, require_role
from ..utils import new_invitation_token, utcnow
from . import notifications
from .users import find_by_email, normalize_email

logger = logging.getLogger(__name__)


def _transition(session: Session, invitation_id: int, target: InvitationStatus, **values) -> bool:
    """Compare-and-set ``Pending -> target``; False when another writer got there first."""
    result = session.exec(
        update(Invitation)
        .where(Invitation.id == invitation_id, Invitation.status == InvitationStatus.PENDING)
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _expire_stale_for(session: Session, agency_id: int, email: str, now: datetime) -> int:
    result = session.exec(
        update(Invitation)
        .where(
            Invitation.agency_id == agency_id,
            Invitation.recipient_email == email,
            Invitation.status == InvitationStatus.PENDING,
            Invitation.expires_at <= now,
        )
        .values(status=InvitationStatus.EXPIRED)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def send_invitation(session: Session, actor: Actor, recipient_email: str, message: Optional[str] = None) -> Invitation:
    require_role(actor, AGENCY_ONLY, "send invitations")
    email = normalize_email(recipient_email)
    now = utcnow()

    existing = find_by_email(session, email)
    if existing:
        if existing.role == Role.AGENCY:
            raise Conflict("Cannot send invitation to another Agency user")
        if existing.agency_id == actor.id:
            raise Conflict("User with this email is already part of this agency")
        if existing.agency_id is not None:
            raise Conflict("User with this email is already part of another agency")

    if _expire_stale_for(session, actor.id, email, now):
        session.commit()
        logger.info("expired stale pending invitations for %s", email, extra={"user_id": actor.id})

    pending = session.exec(
        select(Invitation).where(
            Invitation.agency_id == actor.id,
            Invitation.recipient_email == email,
            Invitation.status == InvitationStatus.PENDING,
        )
    ).first()
    if pending:
        raise Conflict("A pending invitation to this email already exists from your agency")

    invitation = Invitation(
        agency_id=actor.id,
        recipient_email=email,
        recipient_id=existing.id if existing else None,
        token=new_invitation_token(),
        message=message,
        expires_at=now + timedelta(hours=INVITATION_TTL_HOURS),
    )
    session.add(invitation)
    try:
        session.commit()
    except IntegrityError:
        # uq_invitation_pending: a concurrent send won
        session.rollback()
        raise Conflict("A pending invitation to this email already exists from your agency")
    session.refresh(invitation)

    agency = session.get(User, actor.id)
    notifications.invitation_sent(session, invitation, agency)
    return invitation


def accept_invitation(session: Session, actor: Actor, token: str) -> tuple[Invitation, User]:
    require_role(actor, MEMBERS_ONLY, "accept invitations")
    invitation = session.exec(select(Invitation).where(Invitation.token == token)).first()
    if not invitation:
        raise NotFound("Invalid or expired invitation token")
    if invitation.status != InvitationStatus.PENDING:
        raise Conflict(f"Invitation has already been {invitation.status.value.lower()}")

    now = utcnow()
    if invitation.expires_at < now:
        if _transition(session, invitation.id, InvitationStatus.EXPIRED):
            session.commit()
            logger.info("invitation expired on accept attempt", extra={"invitation_id": invitation.id})
        else:
            session.rollback()
        raise ExpiredToken("Invitation has expired")

    user = session.get(User, actor.id)
    if not user:
        raise NotFound("Accepting user not found")
    if user.email != invitation.recipient_email:
        raise Forbidden("Your email does not match the invited email for this token")
    if invitation.recipient_id is not None and invitation.recipient_id != user.id:
        raise Forbidden("This invitation was not intended for your user ID")
    if user.agency_id is not None:
        if user.agency_id == invitation.agency_id:
            raise Conflict("You are already part of this agency")
        raise Conflict("You are already part of another agency. Cannot join a new one")

    # both writes commit together or not at all
    if not _transition(session, invitation.id, InvitationStatus.ACCEPTED, accepted_at=now):
        session.rollback()
        raise Conflict("Invitation is no longer pending")
    joined = session.exec(
        update(User)
        .where(User.id == user.id, User.agency_id.is_(None))
        .values(agency_id=invitation.agency_id)
        .execution_options(synchronize_session=False)
    )
    if joined.rowcount != 1:
        session.rollback()
        raise Conflict("You are already part of another agency. Cannot join a new one")
    session.commit()
    session.refresh(invitation)
    session.refresh(user)

    notifications.invitation_accepted(session, invitation, user)
    return invitation, user


def revoke_invitation(session: Session, actor: Actor, invitation_id: int) -> Invitation:
    require_role(actor, AGENCY_ONLY, "revoke invitations")
    invitation = session.get(Invitation, invitation_id)
    if not invitation:
        raise NotFound("Invitation not found")
    if invitation.agency_id != actor.id:
        raise Forbidden("Not authorized to revoke this invitation")
    if invitation.status != InvitationStatus.PENDING:
        raise Conflict(f"Invitation cannot be revoked. Current status: {invitation.status.value}")
    if not _transition(session, invitation.id, InvitationStatus.REJECTED):
        session.rollback()
        raise Conflict("Invitation is no longer pending")
    session.commit()
    session.refresh(invitation)
    return invitation


def list_sent(session: Session, actor: Actor) -> list[Invitation]:
    require_role(actor, AGENCY_ONLY, "view sent invitations")
    return list(
        session.exec(
            select(Invitation)
            .where(Invitation.agency_id == actor.id)
            .order_by(Invitation.created_at.desc(), Invitation.id.desc())
        ).all()
    )


def list_pending(session: Session, actor: Actor) -> list[Invitation]:
    require_role(actor, MEMBERS_ONLY, "view pending invitations")
    return list(
        session.exec(
            select(Invitation)
            .where(
                or_(Invitation.recipient_id == actor.id, Invitation.recipient_email == normalize_email(actor.email or "")),
                Invitation.status == InvitationStatus.PENDING,
                Invitation.expires_at > utcnow(),
            )
            .order_by(Invitation.created_at.desc())
        ).all()
    )


def expire_stale_invitations(session: Session, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    result = session.exec(
        update(Invitation)
        .where(Invitation.status == InvitationStatus.PENDING, Invitation.expires_at <= now)
        .values(status=InvitationStatus.EXPIRED)
        .execution_options(synchronize_session=False)
    )
    expired = result.rowcount
    session.commit()
    return expired
