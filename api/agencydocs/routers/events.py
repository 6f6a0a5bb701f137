from fastapi import APIRouter, Depends, status
from sqlmodel import Session
from ..auth import resolve_actor
from ..db import get_session
from ..policy import Actor
from ..schemas import EventCreate, EventUpdate
from ..services import events as svc

router = APIRouter()

@router.post("", status_code=status.HTTP_201_CREATED)
def create_event(payload: EventCreate, session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    return svc.create_event(session, actor, **payload.model_dump())

@router.get("")
def list_events(session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    return svc.list_events(session, actor)

@router.get("/{event_id}")
def get_event(event_id: int, session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    return svc.get_event(session, actor, event_id)

@router.put("/{event_id}")
def update_event(
    event_id: int,
    payload: EventUpdate,
    session: Session = Depends(get_session),
    actor: Actor = Depends(resolve_actor),
):
    return svc.update_event(session, actor, event_id, payload.model_dump(exclude_unset=True))

@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_event(event_id: int, session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    svc.delete_event(session, actor, event_id)
