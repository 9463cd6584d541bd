"""
Transaction helper for service-layer writes.
"""

import logging
from contextlib import contextmanager

from .models import db

logger = logging.getLogger(__name__)


@contextmanager
def transaction():
    """
    Commit the session when the block finishes, roll back on any error.

    Every balance mutation of a service call happens inside one block, so
    a validation error raised halfway leaves no partial update behind.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.debug("Transaction rolled back")
        raise
