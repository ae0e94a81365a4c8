"""
SQLAlchemy ORM models for persistence.
"""
from datetime import datetime
from sqlalchemy import Column, DateTime, Float, Integer, String

from db import Base


class MediaMetaORM(Base):
    __tablename__ = "media_meta"

    filename = Column(String, primary_key=True, index=True)
    media_id = Column(Integer, nullable=False, default=-1)
    address = Column(String, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    display_count = Column(Integer, nullable=False, default=0)
    last_viewed_at = Column(DateTime, default=datetime.utcnow, nullable=True)
