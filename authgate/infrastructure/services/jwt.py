"""
JWT token service for authentication.
Part of Infrastructure layer.

Access tokens carry Hasura-style claims so downstream GraphQL permissions
can read the user id and roles.
"""
import hashlib
import secrets
from datetime import datetime, timedelta
from typing import List, Optional

from jose import JWTError, jwt

from authgate.core.config import Settings
from authgate.domain.entities.session import AccessToken, RefreshToken
from authgate.domain.entities.user import User

CLAIMS_NAMESPACE = "https://hasura.io/jwt/claims"


def hash_refresh_token(token: str) -> str:
    """SHA-256 hex digest of a refresh token, the only form that is stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class JWTIssuer:
    """Signs access tokens and generates refresh tokens."""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        access_token_expire_minutes: int = 15,
        refresh_token_expire_days: int = 30,
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.access_token_expire_minutes = access_token_expire_minutes
        self.refresh_token_expire_days = refresh_token_expire_days

    @classmethod
    def from_settings(cls, settings: Settings) -> "JWTIssuer":
        return cls(
            secret_key=settings.SECRET_KEY,
            algorithm=settings.ALGORITHM,
            access_token_expire_minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES,
            refresh_token_expire_days=settings.REFRESH_TOKEN_EXPIRE_DAYS,
        )

    def create_access_token(
        self,
        user_id: str,
        roles: List[str],
        default_role: str,
        is_anonymous: bool = False,
    ) -> str:
        """
        Create a JWT access token for a user.

        Args:
            user_id: User's UUID as string
            roles: Roles the user may assume
            default_role: Role used when the request names none
            is_anonymous: Whether the user signed in anonymously

        Returns:
            Encoded JWT token string
        """
        now = datetime.utcnow()
        payload = {
            "sub": user_id,
            "iat": now,
            "exp": now + timedelta(minutes=self.access_token_expire_minutes),
            CLAIMS_NAMESPACE: {
                "x-hasura-allowed-roles": roles,
                "x-hasura-default-role": default_role,
                "x-hasura-user-id": user_id,
                "x-hasura-user-is-anonymous": str(is_anonymous).lower(),
            },
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode_access_token(self, token: str) -> Optional[dict]:
        """
        Decode and verify a JWT access token.

        Returns:
            Decoded payload dict if valid, None otherwise
        """
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError:
            return None

    def issue_access_token(self, user: User, roles: List[str]) -> AccessToken:
        token = self.create_access_token(
            user_id=str(user.id),
            roles=roles,
            default_role=user.default_role,
            is_anonymous=user.is_anonymous,
        )
        return AccessToken(value=token, expires_in=self.access_token_expire_minutes * 60)

    def new_refresh_token(self) -> RefreshToken:
        """Create a secure refresh token."""
        token = secrets.token_urlsafe(64)
        return RefreshToken(
            token=token,
            token_hash=hash_refresh_token(token),
            expires_at=datetime.utcnow() + timedelta(days=self.refresh_token_expire_days),
        )
