import logging

from subsync.db.session import engine
from subsync.db.base import Base

logger = logging.getLogger(__name__)


def init_db():
    """Create any missing tables straight from the models (development path)."""
    import subsync.db.models  # noqa: F401  registers all tables on Base.metadata

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured")
