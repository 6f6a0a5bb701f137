from datetime import datetime
from typing import Optional
from urllib.parse import quote
from fastapi import APIRouter, Depends, File, Form, Response, UploadFile, status
from sqlmodel import Session
from ..auth import resolve_actor
from ..db import get_session
from ..errors import Invalid
from ..models import Document
from ..policy import Actor
from ..schemas import DocumentStatusUpdate, SignatureRequest
from ..services import documents as svc
from ..storage import BlobStore, get_blob_store
from ..utils import as_utc

router = APIRouter()

def _serialize_document(session: Session, doc: Document):
    return {
        "id": doc.id,
        "user_id": doc.user_id,
        "agency_id": doc.agency_id,
        "file_name": doc.file_name,
        "file_url": doc.file_url,
        "file_mime_type": doc.file_mime_type,
        "sha256": doc.sha256,
        "category": doc.category,
        "expiration_date": doc.expiration_date,
        "status": doc.status.value,
        "signature_requester_id": doc.signature_requester_id,
        "signature_recipient_id": doc.signature_recipient_id,
        "signed_by": [
            {"signer_id": s.signer_id, "signed_at": s.signed_at} for s in svc.signers(session, doc.id)
        ],
        "created_at": doc.created_at,
    }

def _content_disposition(file_name: str, document_id: int) -> str:
    # header values must be latin-1; the real name travels in filename*
    fallback = file_name.encode("ascii", "ignore").decode("ascii")
    fallback = "".join("_" if c in '"\\;' or ord(c) < 32 else c for c in fallback).strip()
    if not fallback.lstrip("."):
        fallback = f"document-{document_id}"
    return f'attachment; filename="{fallback}"; filename*=UTF-8\'\'{quote(file_name, safe="")}'

def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return as_utc(datetime.fromisoformat(value))
    except ValueError:
        raise Invalid("expiration_date must be an ISO-8601 date")

@router.post("", status_code=status.HTTP_201_CREATED)
async def upload_document(
    file: UploadFile = File(...),
    category: str = Form(...),
    expiration_date: Optional[str] = Form(default=None),
    session: Session = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store),
    actor: Actor = Depends(resolve_actor),
):
    data = await file.read()
    doc = svc.upload(
        session,
        blob_store,
        actor,
        file_name=file.filename or "document",
        data=data,
        mime_type=file.content_type,
        category=category,
        expiration_date=_parse_date(expiration_date),
    )
    return _serialize_document(session, doc)

@router.get("")
def list_documents(session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    return [_serialize_document(session, d) for d in svc.list_documents(session, actor)]

@router.get("/{document_id}")
def get_document(document_id: int, session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    return _serialize_document(session, svc.get_document(session, actor, document_id))

@router.get("/{document_id}/file")
def download_document(
    document_id: int,
    session: Session = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store),
    actor: Actor = Depends(resolve_actor),
):
    doc, content = svc.read_file(session, blob_store, actor, document_id)
    return Response(
        content=content,
        media_type=doc.file_mime_type,
        headers={"Content-Disposition": _content_disposition(doc.file_name, doc.id)},
    )

@router.post("/{document_id}/request-signature")
def request_signature(
    document_id: int,
    payload: SignatureRequest,
    session: Session = Depends(get_session),
    actor: Actor = Depends(resolve_actor),
):
    doc = svc.request_signature(session, actor, document_id, payload.recipient_id, payload.message)
    return _serialize_document(session, doc)

@router.put("/{document_id}/mark-signed")
def mark_signed(document_id: int, session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    return _serialize_document(session, svc.mark_signed(session, actor, document_id))

@router.put("/{document_id}/status")
def update_status(
    document_id: int,
    payload: DocumentStatusUpdate,
    session: Session = Depends(get_session),
    actor: Actor = Depends(resolve_actor),
):
    return _serialize_document(session, svc.update_status(session, actor, document_id, payload.status))

@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_document(
    document_id: int,
    session: Session = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store),
    actor: Actor = Depends(resolve_actor),
):
    svc.delete_document(session, blob_store, actor, document_id)
