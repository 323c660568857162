"""
User repository for database operations.
Part of Infrastructure layer.
"""
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from authgate.core.exceptions import UserAlreadyExistsError
from authgate.domain.entities.session import RefreshToken
from authgate.domain.entities.user import User
from authgate.infrastructure.database.models import UserModel, UserRoleModel
from authgate.infrastructure.repositories.refresh_token_repository import RefreshTokenRepository


class UserRepository:
    """
    Repository for User entity database operations.
    Implements the AuthStore contract used by the AuthController.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_user(self, user: User) -> User:
        """
        Create a new user and its roles in the database.

        Args:
            user: User domain entity

        Returns:
            Created user domain entity

        Raises:
            UserAlreadyExistsError: If a user with the email already exists
        """
        db_user = self._to_model(user)
        self.db.add(db_user)
        self._commit(user.email)
        self.db.refresh(db_user)
        return self._to_domain(db_user)

    def create_user_with_refresh_token(self, user: User, refresh_token: RefreshToken) -> Tuple[User, UUID]:
        """
        Create a user, its roles and its first refresh token in one transaction.

        Returns:
            Tuple of (created user, refresh token ID)

        Raises:
            UserAlreadyExistsError: If a user with the email already exists
        """
        db_user = self._to_model(user)
        db_token = RefreshTokenRepository.build(db_user.id, refresh_token)
        self.db.add(db_user)
        self.db.add(db_token)
        self._commit(user.email)
        self.db.refresh(db_user)
        return self._to_domain(db_user), db_token.id

    def insert_refresh_token(self, user_id: UUID, refresh_token: RefreshToken) -> UUID:
        return RefreshTokenRepository(self.db).create(user_id, refresh_token)

    def find_user_by_email(self, email: str) -> Optional[User]:
        """
        Get user by email address.

        Args:
            email: User's email address

        Returns:
            User domain entity if found, None otherwise
        """
        db_user = (
            self.db.query(UserModel)
            .filter(UserModel.email == email.lower().strip())
            .first()
        )
        return self._to_domain(db_user) if db_user else None

    def get_user_roles(self, user_id: UUID) -> List[str]:
        rows = (
            self.db.query(UserRoleModel.role)
            .filter(UserRoleModel.user_id == user_id)
            .order_by(UserRoleModel.role)
            .all()
        )
        return [row.role for row in rows]

    def update_last_seen(self, user_id: UUID) -> datetime:
        db_user = self._get_model(user_id)
        db_user.last_seen = datetime.utcnow()
        self.db.commit()
        return db_user.last_seen

    def update_user_ticket(self, user_id: UUID, ticket: str, expires_at: datetime) -> UUID:
        db_user = self._get_model(user_id)
        db_user.ticket = ticket
        db_user.ticket_expires_at = expires_at
        self.db.commit()
        return db_user.id

    def _get_model(self, user_id: UUID) -> UserModel:
        db_user = self.db.query(UserModel).filter(UserModel.id == user_id).first()
        if not db_user:
            raise ValueError(f"User with ID {user_id} not found")
        return db_user

    def _commit(self, email: Optional[str]) -> None:
        """Commit a new user; only a clash on the email becomes UserAlreadyExistsError."""
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if email is not None and self.find_user_by_email(email) is not None:
                raise UserAlreadyExistsError(email) from e
            raise

    @staticmethod
    def _to_model(user: User) -> UserModel:
        return UserModel(
            id=user.id,
            email=user.email,
            display_name=user.display_name,
            locale=user.locale,
            default_role=user.default_role,
            avatar_url=user.avatar_url,
            is_anonymous=user.is_anonymous,
            disabled=user.disabled,
            email_verified=user.email_verified,
            password_hash=user.password_hash,
            ticket=user.ticket,
            ticket_expires_at=user.ticket_expires_at,
            active_mfa_type=user.active_mfa_type,
            meta=user.metadata,
            created_at=user.created_at,
            updated_at=user.updated_at,
            roles=[UserRoleModel(role=role) for role in user.roles],
        )

    @staticmethod
    def _to_domain(db_user: UserModel) -> User:
        """
        Convert database model to domain entity.

        Args:
            db_user: UserModel database object

        Returns:
            User domain entity
        """
        return User(
            id=db_user.id,
            email=db_user.email,
            display_name=db_user.display_name,
            locale=db_user.locale,
            default_role=db_user.default_role,
            roles=sorted(role.role for role in db_user.roles),
            avatar_url=db_user.avatar_url,
            is_anonymous=db_user.is_anonymous,
            disabled=db_user.disabled,
            email_verified=db_user.email_verified,
            password_hash=db_user.password_hash,
            ticket=db_user.ticket,
            ticket_expires_at=db_user.ticket_expires_at,
            active_mfa_type=db_user.active_mfa_type,
            metadata=dict(db_user.meta or {}),
            last_seen=db_user.last_seen,
            created_at=db_user.created_at,
            updated_at=db_user.updated_at,
        )
