
import logging
from sqlmodel import SQLModel, create_engine, Session
from sqlalchemy import text, inspect
from sqlalchemy.exc import NoSuchTableError
from .config import DATABASE_URL

logger = logging.getLogger(__name__)

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=False, pool_pre_ping=True, connect_args=_connect_args)

def init_db():
    from .models import User, Document, DocumentSigner, Invitation, Renewal, Event, Notification
    SQLModel.metadata.create_all(engine)
    _ensure_invitation_pending_index()

def get_session():
    with Session(engine) as session:
        yield session


def _ensure_invitation_pending_index():
    # create_all skips indexes on tables that already existed
    inspector = inspect(engine)
    try:
        indexes = inspector.get_indexes("invitation")
    except NoSuchTableError:
        return
    if any(idx.get("name") == "uq_invitation_pending" for idx in indexes):
        return
    with engine.begin() as conn:
        duplicates = conn.execute(
            text(
                "SELECT agency_id, recipient_email FROM invitation WHERE status = 'Pending' "
                "GROUP BY agency_id, recipient_email HAVING COUNT(*) > 1"
            )
        ).fetchall()
        if duplicates:
            pairs = ", ".join(f"{row[0]}:{row[1]}" for row in duplicates)
            logger.warning(
                "duplicate pending invitations detected; resolve before enforcing uniqueness: %s",
                pairs,
            )
            return
        conn.execute(
            text(
                "CREATE UNIQUE INDEX IF NOT EXISTS uq_invitation_pending "
                "ON invitation(agency_id, recipient_email) WHERE status = 'Pending'"
            )
        )
