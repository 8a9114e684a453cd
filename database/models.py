"""
SQLAlchemy ORM models for credentials and session tokens.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    username = Column(String(64), primary_key=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    session_tokens = relationship("SessionToken", back_populates="user", cascade="all, delete-orphan")


class SessionToken(Base):
    """Opaque bearer token; only the SHA-256 of the raw value is stored."""

    __tablename__ = "session_tokens"

    token_hash = Column(String(64), primary_key=True)
    username = Column(String(64), ForeignKey("users.username", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    expires_at = Column(DateTime(timezone=True), nullable=False)

    user = relationship("User", back_populates="session_tokens")

    __table_args__ = (
        Index("ix_session_tokens_username", "username"),
    )
