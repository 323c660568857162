"""
User domain entity.
Part of Domain layer - contains business logic and rules.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

ANONYMOUS_ROLE = "anonymous"


class TicketType:
    """Link type a ticket was issued for, sent as the ``type`` link parameter."""

    EMAIL_VERIFY = "emailVerify"
    PASSWORDLESS = "signinPasswordless"
    PASSWORD_RESET = "passwordReset"
    MFA_TOTP = "mfaTotp"


TICKET_LIFETIMES = {
    TicketType.EMAIL_VERIFY: timedelta(days=30),
    TicketType.PASSWORDLESS: timedelta(hours=1),
    TicketType.PASSWORD_RESET: timedelta(hours=1),
    TicketType.MFA_TOTP: timedelta(minutes=5),
}


@dataclass
class Ticket:
    """A one-time UUID authorising a follow-up action."""

    value: str
    type: str
    expires_at: datetime

    @classmethod
    def issue(cls, ticket_type: str) -> "Ticket":
        return cls(
            value=str(uuid4()),
            type=ticket_type,
            expires_at=datetime.utcnow() + TICKET_LIFETIMES[ticket_type],
        )


@dataclass
class User:
    """
    User domain entity representing a user in the system.
    This is a pure domain object with business rules.
    """

    id: UUID
    email: Optional[str]
    display_name: str
    locale: str
    default_role: str
    created_at: datetime
    updated_at: datetime
    roles: List[str] = field(default_factory=list)
    avatar_url: str = ""
    is_anonymous: bool = False
    disabled: bool = False
    email_verified: bool = False
    password_hash: Optional[str] = None
    ticket: Optional[str] = None
    ticket_expires_at: Optional[datetime] = None
    active_mfa_type: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    last_seen: Optional[datetime] = None

    @classmethod
    def create(
        cls,
        email: Optional[str],
        locale: str,
        default_role: str,
        roles: List[str],
        display_name: Optional[str] = None,
        avatar_url: str = "",
        password_hash: Optional[str] = None,
        ticket: Optional[Ticket] = None,
        disabled: bool = False,
        is_anonymous: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "User":
        """
        Factory method to create a new user.
        Enforces business rules at creation time.
        """
        if not is_anonymous and not email:
            raise ValueError("Only anonymous users can be created without an email")

        if default_role not in roles:
            raise ValueError(f"Default role {default_role} must be one of the user roles")

        now = datetime.utcnow()
        return cls(
            id=uuid4(),
            email=email.lower().strip() if email else None,
            display_name=display_name if display_name is not None else (email or ""),
            locale=locale,
            default_role=default_role,
            roles=list(roles),
            avatar_url=avatar_url,
            is_anonymous=is_anonymous,
            disabled=disabled,
            email_verified=False,
            password_hash=password_hash,
            ticket=ticket.value if ticket else None,
            ticket_expires_at=ticket.expires_at if ticket else None,
            metadata=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )

    def has_password(self) -> bool:
        return self.password_hash is not None

    def requires_mfa(self) -> bool:
        return self.active_mfa_type == "totp"
