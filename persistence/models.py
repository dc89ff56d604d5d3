from sqlalchemy import Column, DateTime, String, Text, func

from .db import Base


class StorageItemModel(Base):
    """One persisted client-side value (auth tokens, sign-in state, preferences)."""

    __tablename__ = "client_storage"

    key = Column(String(128), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
