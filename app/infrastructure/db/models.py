"""
Database Models (SQLAlchemy ORM)
Single key-value table backing every per-user store
"""

from sqlalchemy import Column, DateTime, LargeBinary, String

from app.infrastructure.db.database import Base
from app.utils.time import utc_now_naive


class KVEntryModel(Base):
    """Namespaced key ("<store-type>:<user_id>") to JSON bytes"""
    __tablename__ = "kv_entry"

    key = Column(String(255), primary_key=True)
    value = Column(LargeBinary, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=utc_now_naive, onupdate=utc_now_naive)
