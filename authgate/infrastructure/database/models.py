"""
SQLAlchemy database models.
Part of Infrastructure layer - persistence models.
"""
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, JSON, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
import uuid
from authgate.infrastructure.database.session import Base


class UserModel(Base):
    """
    User database model (SQLAlchemy ORM).
    Maps to the 'users' table.
    """

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=True, index=True)  # null for anonymous users
    display_name = Column(String(255), nullable=False, default="")
    locale = Column(String(2), nullable=False)
    default_role = Column(String(255), nullable=False)
    avatar_url = Column(String(1024), nullable=False, default="")
    is_anonymous = Column(Boolean, default=False, nullable=False)
    disabled = Column(Boolean, default=False, nullable=False)
    email_verified = Column(Boolean, default=False, nullable=False)
    password_hash = Column(String(255), nullable=True)
    ticket = Column(String(255), nullable=True, index=True)
    ticket_expires_at = Column(DateTime, nullable=True)
    active_mfa_type = Column(String(50), nullable=True)
    meta = Column(JSON, nullable=False, default=dict)  # custom register data
    last_seen = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    roles = relationship("UserRoleModel", back_populates="user", cascade="all, delete-orphan")
    refresh_tokens = relationship("RefreshTokenModel", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<UserModel(id={self.id}, email={self.email}, default_role={self.default_role})>"


class UserRoleModel(Base):
    """
    Role a user may assume.
    Maps to the 'user_roles' table.
    """

    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("UserModel", back_populates="roles")

    def __repr__(self) -> str:
        return f"<UserRoleModel(user_id={self.user_id}, role={self.role})>"


class RefreshTokenModel(Base):
    """
    Refresh token storage. Only the SHA-256 hash of the token is kept.
    Maps to the 'refresh_tokens' table.
    """

    __tablename__ = "refresh_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("UserModel", back_populates="refresh_tokens")

    def __repr__(self) -> str:
        return f"<RefreshTokenModel(id={self.id}, user_id={self.user_id})>"
