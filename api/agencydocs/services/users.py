"""Identity and tenancy directory."""
import logging
from typing import Optional

from sqlalchemy import delete as sa_delete, func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..errors import Conflict, Forbidden, Invalid, NotFound
from ..models import Document, Event, Invitation, InvitationStatus, Notification, Renewal, Role, User
from ..policy import AGENCY_ONLY, DIRECTORY_VIEWERS, Actor, is_self, manages_user, owned_user_ids, require_role

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


def find_by_email(session: Session, email: str) -> Optional[User]:
    return session.exec(select(User).where(func.lower(User.email) == normalize_email(email))).first()


def tenant_member_ids(session: Session, agency_id: int) -> list[int]:
    return list(session.exec(select(User.id).where(User.agency_id == agency_id)).all())


def owned_set(session: Session, actor: Actor) -> set[int]:
    members = tenant_member_ids(session, actor.id) if actor.role == Role.AGENCY else []
    return owned_user_ids(actor, members)


def register(
    session: Session,
    username: str,
    email: str,
    role: Role,
    agency_id: Optional[int] = None,
    contact_number: Optional[str] = None,
    address: Optional[str] = None,
) -> User:
    if role == Role.ADMIN:
        raise Invalid("Admin accounts cannot be registered")
    email = normalize_email(email)
    username = username.strip()
    if not username:
        raise Invalid("Username is required")
    if find_by_email(session, email) or session.exec(select(User).where(User.username == username)).first():
        raise Conflict("User already exists")

    # only Staff join a tenant at registration; everyone else starts standalone
    tenant_id = None
    if role == Role.STAFF and agency_id is not None:
        agency = session.get(User, agency_id)
        if not agency or agency.role != Role.AGENCY:
            raise Invalid("agency_id must reference an existing Agency")
        tenant_id = agency.id

    user = User(
        username=username,
        email=email,
        role=role,
        agency_id=tenant_id,
        contact_number=contact_number,
        address=address,
    )
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict("User already exists")
    session.refresh(user)
    return user


def _require_profile_access(actor: Actor, user: User):
    if not (is_self(actor, user.id) or manages_user(actor, user)):
        raise Forbidden("Not authorized to access this user profile")


def get_profile(session: Session, actor: Actor, user_id: int) -> User:
    user = get_user(session, user_id)
    _require_profile_access(actor, user)
    return user


def update_profile(session: Session, actor: Actor, user_id: int, changes: dict) -> User:
    """Apply profile edits. ``role`` and ``agency_id`` are never accepted here."""
    user = get_user(session, user_id)
    _require_profile_access(actor, user)
    if "email" in changes and changes["email"] is not None:
        email = normalize_email(changes["email"])
        other = find_by_email(session, email)
        if other and other.id != user.id:
            raise Conflict("Email already in use")
        user.email = email
    if changes.get("username"):
        username = changes["username"].strip()
        other = session.exec(select(User).where(User.username == username)).first()
        if other and other.id != user.id:
            raise Conflict("Username already in use")
        user.username = username
    for key in ("contact_number", "address"):
        if key in changes:
            setattr(user, key, changes[key])
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict("Email or username already in use")
    session.refresh(user)
    return user


def list_agency_staff(session: Session, actor: Actor) -> list[User]:
    require_role(actor, AGENCY_ONLY, "view agency staff")
    return list(session.exec(select(User).where(User.agency_id == actor.id).order_by(User.id)).all())


def list_users(session: Session, actor: Actor) -> list[User]:
    """Operator sees everyone; an Agency sees its current members."""
    require_role(actor, DIRECTORY_VIEWERS, "list users")
    query = select(User).order_by(User.id)
    if actor.role == Role.AGENCY:
        query = query.where(User.agency_id == actor.id)
    return list(session.exec(query).all())


def delete_user(session: Session, actor: Actor, user_id: int):
    user = get_user(session, user_id)
    if not (is_self(actor, user.id) or manages_user(actor, user)):
        raise Forbidden("Not authorized to delete this user")
    # an agency_id must always name an existing Agency
    if user.role == Role.AGENCY and session.exec(select(User.id).where(User.agency_id == user.id)).first():
        raise Conflict("Agency still has members; remove them first")
    # stored files are released through document deletion, never orphaned here
    if session.exec(select(Document.id).where(Document.user_id == user.id)).first():
        raise Conflict("User still owns documents; delete them first")

    session.exec(sa_delete(Event).where(Event.user_id == user.id))
    session.exec(sa_delete(Renewal).where(Renewal.user_id == user.id))
    session.exec(sa_delete(Notification).where(Notification.user_id == user.id))
    if user.role == Role.AGENCY:
        session.exec(
            update(Invitation)
            .where(Invitation.agency_id == user.id, Invitation.status == InvitationStatus.PENDING)
            .values(status=InvitationStatus.REJECTED)
            .execution_options(synchronize_session=False)
        )
    session.delete(user)
    session.commit()
    if not is_self(actor, user_id):
        logger.info("member removed by agency", extra={"user_id": user_id})
