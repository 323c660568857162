"""
Authentication use cases.
Part of Application layer - orchestrates business logic.

Each use case receives an already validated and discriminated request.
Errors raised by collaborators that are already AuthErrors (for example a
uniqueness failure from storage) propagate unchanged; anything else is
logged and surfaced as an opaque CollaboratorFailure.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, TypeVar, Union
from urllib.parse import urlencode

from authgate.application.protocols import AuthStore, BreachChecker, EmailLinkData, Emailer, TokenIssuer
from authgate.core.exceptions import (
    AuthError,
    CollaboratorFailure,
    EmailNotVerifiedError,
    FieldError,
    InvalidCredentialsError,
    OperationNotAllowedError,
    PolicyRejection,
    UserDisabledError,
)
from authgate.core.policy import PolicyConfig
from authgate.domain.entities.session import MfaChallenge, Session
from authgate.domain.entities.user import ANONYMOUS_ROLE, Ticket, TicketType, User
from authgate.infrastructure.services.password import hash_password, verify_password
from authgate.presentation.schemas.auth import (
    AnonymousLogin,
    ForgotPasswordRequest,
    MagicLinkLogin,
    MagicLinkRegister,
    RegularLogin,
    RegularRegister,
    ResendConfirmationRequest,
    UserDataFields,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class AuthDependencies:
    """Collaborators and policy shared by every use case."""

    store: AuthStore
    emailer: Emailer
    breach_checker: BreachChecker
    token_issuer: TokenIssuer
    policy: PolicyConfig
    gravatar_url: Callable[[str], str]


class AuthUseCase:
    """Base for use cases: collaborator calls and shared helpers."""

    def __init__(self, deps: AuthDependencies):
        self.deps = deps
        self.policy = deps.policy

    def _call(self, operation: str, func: Callable[..., T], *args: Any) -> T:
        try:
            return func(*args)
        except AuthError:
            raise
        except Exception as e:
            logger.error(f"{operation} failed: {e}", exc_info=True)
            raise CollaboratorFailure(operation) from e

    def _roles(self, request: UserDataFields) -> tuple[List[str], str]:
        roles = list(request.allowed_roles or self.policy.default_allowed_roles)
        return roles, request.default_role or self.policy.default_role

    def _new_user(
        self,
        request: Union[RegularRegister, MagicLinkRegister],
        ticket: Ticket,
        password_hash: Optional[str] = None,
    ) -> User:
        roles, default_role = self._roles(request)
        return User.create(
            email=request.email,
            locale=request.locale,
            default_role=default_role,
            roles=roles,
            avatar_url=self.deps.gravatar_url(request.email),
            password_hash=password_hash,
            ticket=ticket,
            disabled=self.policy.disable_new_users,
            metadata=request.custom_register_data,
        )

    def _link_data(self, user: User, ticket: str, ticket_type: str, redirect_to: Optional[str] = None) -> EmailLinkData:
        redirect_to = redirect_to or self.policy.redirect_url_success
        query = urlencode({"ticket": ticket, "type": ticket_type, "redirectTo": redirect_to})
        return EmailLinkData(
            link=f"{self.policy.server_url}/verify?{query}",
            email=user.email or "",
            display_name=user.display_name,
            ticket=ticket,
            redirect_to=redirect_to,
            server_url=self.policy.server_url,
        )

    def _rotate_ticket(self, user: User, ticket_type: str) -> Ticket:
        ticket = Ticket.issue(ticket_type)
        self._call("update_user_ticket", self.deps.store.update_user_ticket, user.id, ticket.value, ticket.expires_at)
        return ticket

    def _session(self, user: User, roles: List[str], refresh_token, refresh_token_id) -> Session:
        access_token = self._call("issue_access_token", self.deps.token_issuer.issue_access_token, user, roles)
        return Session(
            access_token=access_token.value,
            access_token_expires_in=access_token.expires_in,
            refresh_token=refresh_token.token,
            refresh_token_id=refresh_token_id,
            user=user,
        )

    def _check_signup_allowed(self) -> None:
        if self.policy.disable_signup:
            raise OperationNotAllowedError("Sign up is disabled", "signup-disabled")


class SignUpEmailPasswordUseCase(AuthUseCase):
    """
    Use case for registering a new user with email and password.

    The user row is created atomically, together with its first refresh
    token when email verification is not required. A verification email
    is sent unless new users start disabled.
    """

    def execute(self, request: RegularRegister) -> Optional[Session]:
        """
        Register a new local user.

        Args:
            request: Validated regular register request

        Returns:
            Session if the user may sign in immediately, None otherwise

        Raises:
            PolicyRejection: If the password appears in a known breach
            UserAlreadyExistsError: If storage reports the email as taken
            CollaboratorFailure: If storage, breach check or email fails
        """
        self._check_signup_allowed()

        if self.policy.password_hibp_enabled:
            breached = self._call("is_password_breached", self.deps.breach_checker.is_password_breached, request.password)
            if breached:
                raise PolicyRejection([FieldError("password", "password.breached", "has been found in a data breach")])

        ticket = Ticket.issue(TicketType.EMAIL_VERIFY)
        user = self._new_user(request, ticket, password_hash=hash_password(request.password))

        session = None
        if self.policy.require_email_verification or self.policy.disable_new_users:
            created = self._call("create_user", self.deps.store.create_user, user)
        else:
            refresh_token = self._call("new_refresh_token", self.deps.token_issuer.new_refresh_token)
            created, refresh_token_id = self._call(
                "create_user_with_refresh_token",
                self.deps.store.create_user_with_refresh_token,
                user,
                refresh_token,
            )
            session = self._session(created, created.roles or user.roles, refresh_token, refresh_token_id)

        if not self.policy.disable_new_users:
            data = self._link_data(created, ticket.value, TicketType.EMAIL_VERIFY)
            self._call("send_email_verification", self.deps.emailer.send_email_verification, created.email, created.locale, data)

        logger.info(f"User signed up with email and password: {created.id}")
        return session


class SignUpMagicLinkUseCase(AuthUseCase):
    """Use case for passwordless registration. Emails a sign-in link."""

    def execute(self, request: MagicLinkRegister) -> None:
        self._check_signup_allowed()

        ticket = Ticket.issue(TicketType.PASSWORDLESS)
        user = self._call("create_user", self.deps.store.create_user, self._new_user(request, ticket))

        if not self.policy.disable_new_users:
            data = self._link_data(user, ticket.value, TicketType.PASSWORDLESS)
            self._call("send_magic_link", self.deps.emailer.send_magic_link, user.email, user.locale, data)

        logger.info(f"User signed up with magic link: {user.id}")


class SignInEmailPasswordUseCase(AuthUseCase):
    """
    Use case for user login with email/password.
    Validates credentials and returns a session, or an MFA challenge.
    """

    def execute(self, request: RegularLogin) -> Union[Session, MfaChallenge]:
        """
        Authenticate user with email and password.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password
            UserDisabledError: If the account is disabled
            EmailNotVerifiedError: If verification is required and pending
        """
        user = self._call("find_user_by_email", self.deps.store.find_user_by_email, request.email)
        if user is None or not user.has_password():
            logger.warning("Sign in rejected: invalid email or password")
            raise InvalidCredentialsError()

        if user.disabled:
            logger.warning(f"Sign in rejected: user {user.id} is disabled")
            raise UserDisabledError()

        if self.policy.require_email_verification and not user.email_verified:
            raise EmailNotVerifiedError()

        if not verify_password(request.password, user.password_hash):
            logger.warning(f"Sign in rejected: wrong password for user {user.id}")
            raise InvalidCredentialsError()

        if user.requires_mfa():
            ticket = self._rotate_ticket(user, TicketType.MFA_TOTP)
            return MfaChallenge(ticket=ticket.value, user_id=user.id, expires_at=ticket.expires_at)

        roles = self._call("get_user_roles", self.deps.store.get_user_roles, user.id)
        refresh_token = self._call("new_refresh_token", self.deps.token_issuer.new_refresh_token)
        refresh_token_id = self._call("insert_refresh_token", self.deps.store.insert_refresh_token, user.id, refresh_token)
        user.last_seen = self._call("update_last_seen", self.deps.store.update_last_seen, user.id)
        return self._session(user, roles, refresh_token, refresh_token_id)


class SignInMagicLinkUseCase(AuthUseCase):
    """
    Use case for passwordless login.

    Unknown emails are signed up on the fly unless sign up is disabled.
    """

    def execute(self, request: MagicLinkLogin) -> None:
        user = self._call("find_user_by_email", self.deps.store.find_user_by_email, request.email)

        if user is None:
            if self.policy.disable_signup:
                raise InvalidCredentialsError()
            register = MagicLinkRegister.model_construct(
                email=request.email,
                locale=self.policy.default_locale,
                allowed_roles=None,
                default_role=None,
                custom_register_data=None,
            )
            SignUpMagicLinkUseCase(self.deps).execute(register)
            return

        if user.disabled:
            raise UserDisabledError()

        ticket = self._rotate_ticket(user, TicketType.PASSWORDLESS)
        data = self._link_data(user, ticket.value, TicketType.PASSWORDLESS)
        self._call("send_magic_link", self.deps.emailer.send_magic_link, user.email, user.locale, data)


class SignInAnonymousUseCase(AuthUseCase):
    """Use case for anonymous sessions: user and refresh token in one call."""

    def execute(self, request: AnonymousLogin) -> Session:
        if not self.policy.anonymous_users_enabled:
            raise OperationNotAllowedError("Anonymous users are disabled", "disabled-endpoint")

        user = User.create(
            email=None,
            locale=request.locale,
            default_role=ANONYMOUS_ROLE,
            roles=[ANONYMOUS_ROLE],
            display_name="Anonymous User",
            is_anonymous=True,
        )
        refresh_token = self._call("new_refresh_token", self.deps.token_issuer.new_refresh_token)
        created, refresh_token_id = self._call(
            "create_user_with_refresh_token",
            self.deps.store.create_user_with_refresh_token,
            user,
            refresh_token,
        )
        return self._session(created, [ANONYMOUS_ROLE], refresh_token, refresh_token_id)


class ForgotPasswordUseCase(AuthUseCase):
    """
    Use case for requesting a password reset link.
    Unknown emails are ignored so the response does not reveal accounts.
    """

    def execute(self, request: ForgotPasswordRequest) -> None:
        user = self._call("find_user_by_email", self.deps.store.find_user_by_email, request.email)
        if user is None or user.disabled:
            logger.info("Password reset requested for unknown or disabled account")
            return

        ticket = self._rotate_ticket(user, TicketType.PASSWORD_RESET)
        data = self._link_data(user, ticket.value, TicketType.PASSWORD_RESET)
        self._call("send_password_reset", self.deps.emailer.send_password_reset, user.email, user.locale, data)


class SendVerificationEmailUseCase(AuthUseCase):
    """Use case for resending the email verification link."""

    def execute(self, request: ResendConfirmationRequest) -> None:
        user = self._call("find_user_by_email", self.deps.store.find_user_by_email, request.email)
        if user is None or user.email_verified:
            logger.info("Verification email not resent: unknown or already verified account")
            return

        ticket = self._rotate_ticket(user, TicketType.EMAIL_VERIFY)
        data = self._link_data(user, ticket.value, TicketType.EMAIL_VERIFY)
        self._call("send_email_verification", self.deps.emailer.send_email_verification, user.email, user.locale, data)
