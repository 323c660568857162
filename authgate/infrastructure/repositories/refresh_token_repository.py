"""
Refresh token repository for database operations.
Part of Infrastructure layer.
"""
import uuid
from typing import Optional
from uuid import UUID
from sqlalchemy.orm import Session

from authgate.domain.entities.session import RefreshToken
from authgate.infrastructure.database.models import RefreshTokenModel


class RefreshTokenRepository:
    """Repository for refresh token persistence."""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def build(user_id: UUID, refresh_token: RefreshToken) -> RefreshTokenModel:
        """Build an unsaved token row, for callers that commit it together with other rows."""
        return RefreshTokenModel(
            id=uuid.uuid4(),
            user_id=user_id,
            token_hash=refresh_token.token_hash,
            expires_at=refresh_token.expires_at,
        )

    def create(self, user_id: UUID, refresh_token: RefreshToken) -> UUID:
        """
        Create a new refresh token.

        Args:
            user_id: User ID
            refresh_token: Generated token; only its hash is stored

        Returns:
            ID of the created token row
        """
        db_token = self.build(user_id, refresh_token)
        self.db.add(db_token)
        self.db.commit()
        return db_token.id

    def get_by_hash(self, token_hash: str) -> Optional[RefreshTokenModel]:
        """
        Get refresh token by its hash.

        Returns:
            RefreshTokenModel if found, None otherwise
        """
        return self.db.query(RefreshTokenModel).filter(
            RefreshTokenModel.token_hash == token_hash
        ).first()
