"""Authorization decisions.

Everything here is a pure function of the actor and the record in hand; callers
load records first (so a missing record is reported as ``NotFound`` before any
ownership check) and then ask this module whether the actor may proceed.

Two visibility rules coexist:

* item access (``can_access``) compares against the record's own ``agency_id``,
  which is a snapshot taken when the record was created;
* list access (``owned_user_ids``) filters by the *current* membership of the
  agency, so a listing always follows who is on staff right now.
"""
from typing import Iterable, Optional, Protocol

from pydantic import BaseModel, ConfigDict

from .errors import Forbidden
from .models import Role


class Actor(BaseModel):
    """The authenticated caller of one request."""

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None  # None only for the operator (Admin) token
    role: Role
    email: Optional[str] = None
    agency_id: Optional[int] = None


class TenantScoped(Protocol):
    user_id: int
    agency_id: Optional[int]


AGENCY_ONLY = frozenset({Role.AGENCY})
MEMBERS_ONLY = frozenset({Role.STAFF, Role.INDIVIDUAL})
ANY_USER = frozenset({Role.AGENCY, Role.STAFF, Role.INDIVIDUAL})
DIRECTORY_VIEWERS = frozenset({Role.AGENCY, Role.ADMIN})


def is_self(actor: Actor, owner_id: Optional[int]) -> bool:
    return actor.id is not None and owner_id is not None and actor.id == owner_id


def is_managing_agency(actor: Actor, resource: TenantScoped) -> bool:
    return (
        actor.role == Role.AGENCY
        and resource.agency_id is not None
        and resource.agency_id == actor.id
    )


def can_access(actor: Actor, resource: TenantScoped) -> bool:
    return is_self(actor, resource.user_id) or is_managing_agency(actor, resource)


def manages_user(actor: Actor, user) -> bool:
    """Agency actor whose tenant the given user currently belongs to."""
    return actor.role == Role.AGENCY and user.agency_id is not None and user.agency_id == actor.id


def require_role(actor: Actor, allowed: Iterable[Role], action: str = "perform this action"):
    if actor.role not in allowed:
        raise Forbidden(f"User role {actor.role.value} is not authorized to {action}")


def require_access(actor: Actor, resource: TenantScoped, what: str):
    if not can_access(actor, resource):
        raise Forbidden(f"Not authorized to access this {what}")


def owned_user_ids(actor: Actor, member_ids: Iterable[int]) -> set[int]:
    """Owned set: the actor itself, plus current tenant members for an Agency.

    ``member_ids`` are the ids of users whose ``agency_id`` is the actor; it is
    ignored for non-Agency actors.
    """
    if actor.id is None:
        return set()
    owned = {actor.id}
    if actor.role == Role.AGENCY:
        owned.update(member_ids)
    return owned
