"""Flip every Pending invitation past its expiry to Expired.

Run periodically: ``python -m agencydocs.scripts.expire_invitations``.
"""
import logging
from sqlmodel import Session

from .. import db
from ..logging_config import configure_logging
from ..services.invitations import expire_stale_invitations

logger = logging.getLogger(__name__)


def run() -> int:
    with Session(db.engine) as session:
        count = expire_stale_invitations(session)
    logger.info("expired %d stale invitations", count)
    return count


if __name__ == "__main__":
    configure_logging()
    db.init_db()
    run()
