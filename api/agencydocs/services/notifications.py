"""Notification sink and inbox.

Everything that fans out from a committed operation (inbox rows, email) goes
through ``emit`` and ``send_mail_quietly``; both swallow and log their own
failures so the primary operation is never rolled back or failed by them.
"""
import logging
from html import escape
from typing import Optional

from sqlalchemy import update
from sqlmodel import Session, select

from ..config import WEB_BASE_URL
from ..email import format_sender_name, send_email
from ..errors import Forbidden, NotFound
from ..models import Document, Invitation, Notification, NotificationType, User
from ..policy import ANY_USER, Actor, require_role

logger = logging.getLogger(__name__)


def emit(
    session: Session,
    user_id: int,
    type_: NotificationType,
    message: str,
    document_id: Optional[int] = None,
) -> Optional[Notification]:
    note = Notification(user_id=user_id, type=type_, message=message, document_id=document_id)
    try:
        session.add(note)
        session.commit()
        session.refresh(note)
    except Exception:
        session.rollback()
        logger.exception(
            "failed to record %s notification",
            type_.value,
            extra={"user_id": user_id, "document_id": document_id},
        )
        return None
    return note


def send_mail_quietly(to: str, subject: str, body: str, html_body: Optional[str] = None, **kwargs) -> bool:
    try:
        return bool(send_email(to, subject, body, html_body=html_body, **kwargs))
    except Exception:
        logger.exception("failed to send email %r to %s", subject, to)
        return False


def _card(title: str, lines: list[str], link: Optional[str] = None, link_label: str = "Open") -> str:
    paragraphs = "\n".join(
        f'      <p style="font-size: 14px; color: #1e293b; line-height: 1.5;">{escape(line)}</p>' for line in lines
    )
    button = ""
    if link:
        link_html = escape(link)
        button = f"""
      <div style="margin: 24px 0;">
        <a href="{link_html}" style="display: inline-block; background: #2563eb; color: #fff; padding: 12px 24px; border-radius: 999px; text-decoration: none; font-weight: 600;">
          {escape(link_label)}
        </a>
      </div>
      <p style="font-size: 12px; color: #64748b;">If the button doesn&apos;t work, copy this link into your browser:<br /><a href="{link_html}">{link_html}</a></p>"""
    return f"""
<html>
  <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif; background: #f5f6f8; padding: 24px;">
    <div style="max-width: 520px; margin: 0 auto; background: #ffffff; border-radius: 12px; padding: 24px; box-shadow: 0 10px 25px rgba(15,23,42,0.08);">
      <h2 style="margin-top: 0; font-size: 20px; color: #0f172a;">{escape(title)}</h2>
{paragraphs}{button}
    </div>
  </body>
</html>
"""


# ---------- events ----------

def signature_requested(session: Session, document: Document, requester: User, recipient: User, message: Optional[str]):
    text = f"Signature requested for document: {document.file_name}."
    if message:
        text = f"{text} Message: {message}"
    emit(session, recipient.id, NotificationType.SIGNATURE_REQUEST, text, document_id=document.id)

    link = f"{WEB_BASE_URL}/documents/{document.id}"
    lines = [f"{requester.username} asked you to review and sign “{document.file_name}”."]
    if message:
        lines.append(message)
    send_mail_quietly(
        recipient.email,
        f"Signature Requested: {document.file_name}",
        "\n\n".join(lines + [f"Open document: {link}"]),
        html_body=_card("Signature requested", lines, link, "Review & Sign"),
        sender_name=format_sender_name(requester.username),
        reply_to=requester.email,
    )


def document_signed(session: Session, document: Document, signer: User):
    if not document.signature_requester_id:
        return
    text = f'Document "{document.file_name}" has been signed by {signer.username}.'
    emit(session, document.signature_requester_id, NotificationType.DOCUMENT_SIGNED, text, document_id=document.id)
    requester = session.get(User, document.signature_requester_id)
    if requester:
        send_mail_quietly(
            requester.email,
            f"Signed: {document.file_name}",
            text,
            html_body=_card("Document signed", [text], f"{WEB_BASE_URL}/documents/{document.id}"),
        )


def invitation_sent(session: Session, invitation: Invitation, agency: User):
    link = f"{WEB_BASE_URL}/invitations/accept?token={invitation.token}"
    lines = [f"{agency.username} invited you to join their agency."]
    if invitation.message:
        lines.append(invitation.message)
    lines.append(f"This invitation expires at {invitation.expires_at:%Y-%m-%d %H:%M} UTC.")
    if invitation.recipient_id:
        emit(
            session,
            invitation.recipient_id,
            NotificationType.INVITATION_RECEIVED,
            f"{agency.username} invited you to join their agency.",
        )
    send_mail_quietly(
        invitation.recipient_email,
        f"Invitation to join {agency.username}",
        "\n\n".join(lines + [f"Accept invitation: {link}"]),
        html_body=_card("You're invited", lines, link, "Accept invitation"),
        sender_name=format_sender_name(agency.username),
        reply_to=agency.email,
    )


def invitation_accepted(session: Session, invitation: Invitation, member: User):
    emit(
        session,
        invitation.agency_id,
        NotificationType.INVITATION_ACCEPTED,
        f"Invitation to {member.username or member.email} has been accepted.",
    )


# ---------- inbox ----------

def _get_own(session: Session, actor: Actor, notification_id: int) -> Notification:
    note = session.get(Notification, notification_id)
    if not note:
        raise NotFound("Notification not found")
    if note.user_id != actor.id:
        raise Forbidden("Not authorized to access this notification")
    return note


def list_for(session: Session, actor: Actor) -> list[Notification]:
    require_role(actor, ANY_USER, "view notifications")
    return session.exec(
        select(Notification)
        .where(Notification.user_id == actor.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
    ).all()


def mark_read(session: Session, actor: Actor, notification_id: int) -> Notification:
    note = _get_own(session, actor, notification_id)
    note.read = True
    session.add(note)
    session.commit()
    session.refresh(note)
    return note


def clear_all(session: Session, actor: Actor) -> int:
    result = session.exec(
        update(Notification)
        .where(Notification.user_id == actor.id, Notification.read == False)  # noqa: E712
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    cleared = result.rowcount
    session.commit()
    return cleared


def delete(session: Session, actor: Actor, notification_id: int):
    note = _get_own(session, actor, notification_id)
    session.delete(note)
    session.commit()
