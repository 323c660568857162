"""
Session value objects returned by sign-in and sign-up flows.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from authgate.domain.entities.user import User


@dataclass(frozen=True)
class RefreshToken:
    """A freshly generated refresh token. Only the hash is persisted."""

    token: str
    token_hash: str
    expires_at: datetime


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_in: int  # seconds


@dataclass(frozen=True)
class Session:
    access_token: str
    access_token_expires_in: int
    refresh_token: str
    refresh_token_id: UUID
    user: User


@dataclass(frozen=True)
class MfaChallenge:
    """Returned instead of a session when the user must complete TOTP."""

    ticket: str
    user_id: UUID
    expires_at: Optional[datetime] = None
