"""Unit of work — the CRM's transaction boundary.

Every write in crm_service runs inside ``atomic()``: the entity mutation
and its Activity rows are staged on the session and committed together.
Any failure rolls back the whole unit, so a status change is never
persisted without its Activity or the other way round.

    with atomic():
        lead.status = "quoted"
        record_activity(...)
"""

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from contractor_crm.errors import StoreError
from contractor_crm.extensions import db

logger = logging.getLogger(__name__)


@contextmanager
def atomic():
    """Commit everything staged in the block, or nothing.

    Raises:
        StoreError: If the database rejects the flush or commit.
        Any exception raised inside the block is re-raised after rollback.
    """
    try:
        yield db.session
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Transaction rolled back: {e}")
        raise StoreError() from e
    except Exception:
        db.session.rollback()
        raise
