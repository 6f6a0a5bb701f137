"""Calendar entries scoped like documents. No external calendar sync."""
from sqlmodel import Session, select

from ..errors import Invalid, NotFound
from ..models import Event, Role
from ..policy import ANY_USER, Actor, require_access, require_role
from .users import owned_set

_EDITABLE = ("title", "description", "start", "end", "all_day", "location", "attendees")
_NULLABLE = ("location",)


def _get(session: Session, event_id: int) -> Event:
    event = session.get(Event, event_id)
    if not event:
        raise NotFound("Event not found")
    return event


def _check_window(event: Event):
    if event.end < event.start:
        raise Invalid("Event end must not be before its start")


def create_event(session: Session, actor: Actor, **fields) -> Event:
    require_role(actor, ANY_USER, "create events")
    if actor.role == Role.AGENCY:
        agency_id = actor.id
    elif actor.role == Role.STAFF:
        agency_id = actor.agency_id
    else:
        agency_id = None
    event = Event(
        user_id=actor.id,
        agency_id=agency_id,
        title=fields["title"],
        description=fields.get("description") or "",
        start=fields["start"],
        end=fields["end"],
        all_day=bool(fields.get("all_day")),
        location=fields.get("location"),
        attendees=list(fields.get("attendees") or []),
    )
    _check_window(event)
    session.add(event)
    session.commit()
    session.refresh(event)
    return event


def list_events(session: Session, actor: Actor) -> list[Event]:
    require_role(actor, ANY_USER, "list events")
    owned = owned_set(session, actor)
    return list(session.exec(select(Event).where(Event.user_id.in_(owned)).order_by(Event.start)).all())


def get_event(session: Session, actor: Actor, event_id: int) -> Event:
    event = _get(session, event_id)
    require_access(actor, event, "event")
    return event


def update_event(session: Session, actor: Actor, event_id: int, changes: dict) -> Event:
    event = _get(session, event_id)
    require_access(actor, event, "event")
    for key in _EDITABLE:
        if key in changes and changes[key] is None and key not in _NULLABLE:
            raise Invalid(f"{key} cannot be cleared")
    for key in _EDITABLE:
        if key in changes:
            setattr(event, key, list(changes[key]) if key == "attendees" else changes[key])
    _check_window(event)
    session.add(event)
    session.commit()
    session.refresh(event)
    return event


def delete_event(session: Session, actor: Actor, event_id: int):
    event = _get(session, event_id)
    require_access(actor, event, "event")
    session.delete(event)
    session.commit()
