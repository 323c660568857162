"""
Collaborator contracts consumed by the AuthController.

Storage, email delivery, breach checking and token signing live outside the
core; these protocols are the only surface the use cases depend on.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol, Tuple, runtime_checkable
from uuid import UUID

from authgate.domain.entities.session import AccessToken, RefreshToken
from authgate.domain.entities.user import User


@runtime_checkable
class AuthStore(Protocol):
    """
    User storage.

    Implementations must enforce email uniqueness and make every call
    atomic; create_user_with_refresh_token is a single transaction.
    """

    def find_user_by_email(self, email: str) -> Optional[User]:
        ...

    def get_user_roles(self, user_id: UUID) -> List[str]:
        ...

    def create_user(self, user: User) -> User:
        ...

    def create_user_with_refresh_token(self, user: User, refresh_token: RefreshToken) -> Tuple[User, UUID]:
        ...

    def insert_refresh_token(self, user_id: UUID, refresh_token: RefreshToken) -> UUID:
        ...

    def update_last_seen(self, user_id: UUID) -> datetime:
        ...

    def update_user_ticket(self, user_id: UUID, ticket: str, expires_at: datetime) -> UUID:
        ...


@dataclass(frozen=True)
class EmailLinkData:
    """Template data for emails carrying an action link."""

    link: str
    email: str
    display_name: str
    ticket: str
    redirect_to: str
    server_url: str


@runtime_checkable
class Emailer(Protocol):
    """Email delivery. Each method raises on failure."""

    def send_email_verification(self, to: str, locale: str, data: EmailLinkData) -> None:
        ...

    def send_magic_link(self, to: str, locale: str, data: EmailLinkData) -> None:
        ...

    def send_password_reset(self, to: str, locale: str, data: EmailLinkData) -> None:
        ...


@runtime_checkable
class BreachChecker(Protocol):
    def is_password_breached(self, password: str) -> bool:
        ...


@runtime_checkable
class TokenIssuer(Protocol):
    def issue_access_token(self, user: User, roles: List[str]) -> AccessToken:
        ...

    def new_refresh_token(self) -> RefreshToken:
        ...
