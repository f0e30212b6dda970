"""Database models for the registration store."""
from typing import Optional

from sqlalchemy import Column, Integer, String, DateTime, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from config import settings
from database import Base


class UserData(Base):
    """A registered connection (manifest) URL."""
    __tablename__ = 'user_data'

    id = Column(Integer, primary_key=True, autoincrement=True)
    connection_url = Column(String(2000), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<UserData(id={self.id}, connection_url='{self.connection_url}')>"


def register_connection(db: Session, connection_url: str) -> UserData:
    """Store a connection URL unless it is already registered."""
    existing = db.execute(
        select(UserData).where(UserData.connection_url == connection_url)
    ).scalar_one_or_none()

    if existing:
        return existing

    row = UserData(connection_url=connection_url)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def get_active_connection(db: Session) -> Optional[str]:
    """
    Return the most recently registered connection URL.

    Falls back to ``settings.manifest_url`` when nothing is registered.
    """
    row = db.execute(
        select(UserData).order_by(UserData.id.desc()).limit(1)
    ).scalar_one_or_none()

    if row:
        return row.connection_url
    return settings.manifest_url
