"""SQLAlchemy models for users and outstanding action tokens."""
from __future__ import annotations

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from .session import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(Text, nullable=False, default="")
    email_verified_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    action_tokens = relationship("ActionTokenRecord", back_populates="user", cascade="all,delete-orphan")


class ActionTokenRecord(Base):
    __tablename__ = "action_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token_hash = Column(String(64), unique=True, nullable=False)
    subject_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    action_kind = Column(String(32), nullable=False)
    # "<subject_id>:<kind>" while the token is neither consumed nor invalidated, NULL afterwards.
    live_key = Column(String(96), unique=True, nullable=True)
    issued_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    consumed_at = Column(DateTime(timezone=True), nullable=True)
    invalidated_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="action_tokens")

    __table_args__ = (
        Index("ix_action_tokens_subject_kind", "subject_id", "action_kind"),
        Index("ix_action_tokens_expires_at", "expires_at"),
    )
