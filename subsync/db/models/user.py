import uuid

from sqlalchemy import Column, String, DateTime
from subsync.core.timeutils import utcnow
from subsync.db.base import Base


class User(Base):
    """Account owner. Rows are written by the auth service; this API only reads them."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: uuid.uuid4().hex)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
