"""
AuthController: the single entry point of the authentication core.

Built once per process from Settings and the collaborators. Requests come in
either as raw payloads (handle_sign_up / handle_sign_in run the whole
validate, discriminate, execute pipeline) or as already validated requests.
"""
import logging
from typing import Any, Optional, Union

from authgate.application.protocols import AuthStore, BreachChecker, Emailer, TokenIssuer
from authgate.application.use_cases.auth_use_cases import (
    AuthDependencies,
    ForgotPasswordUseCase,
    SendVerificationEmailUseCase,
    SignInAnonymousUseCase,
    SignInEmailPasswordUseCase,
    SignInMagicLinkUseCase,
    SignUpEmailPasswordUseCase,
    SignUpMagicLinkUseCase,
)
from authgate.core.config import Settings
from authgate.core.exceptions import ConfigurationError, FieldError, SchemaViolation
from authgate.core.policy import PolicyConfig
from authgate.domain.entities.session import MfaChallenge, Session
from authgate.domain.flows import LoginFlow, RegisterFlow, classify_login, classify_register
from authgate.infrastructure.services.gravatar import gravatar_url_func
from authgate.presentation.schemas.auth import (
    AnonymousLogin,
    ForgotPasswordRequest,
    LoginRequest,
    MagicLinkLogin,
    MagicLinkRegister,
    RegisterRequest,
    RegularLogin,
    RegularRegister,
    ResendConfirmationRequest,
)
from authgate.presentation.schemas.registry import RequestKind, SchemaRegistry

logger = logging.getLogger(__name__)


class AuthController:
    """
    Coordinates validation, flow discrimination and the auth use cases.

    Holds only read-only state (policy, schema registry, collaborators), so a
    single instance can serve concurrent requests.
    """

    def __init__(
        self,
        store: AuthStore,
        emailer: Emailer,
        breach_checker: BreachChecker,
        token_issuer: TokenIssuer,
        settings: Settings,
    ):
        """
        Args:
            store: User storage
            emailer: Email delivery
            breach_checker: Breached password lookup
            token_issuer: Access and refresh token issuance
            settings: Application settings carrying the tenant policy

        Raises:
            ConfigurationError: If the policy settings cannot be turned into a validator
        """
        try:
            self.policy = PolicyConfig.from_settings(settings)
        except ConfigurationError as e:
            logger.error(f"Error creating validator: {e.message}")
            raise ConfigurationError(f"error creating validator: {e.message}") from e

        self.validator = SchemaRegistry(self.policy)
        self._deps = AuthDependencies(
            store=store,
            emailer=emailer,
            breach_checker=breach_checker,
            token_issuer=token_issuer,
            policy=self.policy,
            gravatar_url=gravatar_url_func(
                self.policy.gravatar_enabled,
                self.policy.gravatar_default,
                self.policy.gravatar_rating,
            ),
        )

    def validate(self, kind: RequestKind, payload: Any):
        return self.validator.validate(kind, payload)

    def handle_sign_up(self, payload: Any) -> Optional[Session]:
        """Validate a raw register payload and run the matching sign up flow."""
        return self.sign_up(self.validator.validate_register(payload))

    def handle_sign_in(self, payload: Any) -> Optional[Union[Session, MfaChallenge]]:
        """Validate a raw login payload and run the matching sign in flow."""
        return self.sign_in(self.validator.validate_login(payload))

    def sign_up(self, request: RegisterRequest) -> Optional[Session]:
        flow = classify_register(request)
        if flow is RegisterFlow.REGULAR:
            return self.sign_up_email_password(request)
        if flow is RegisterFlow.MAGIC_LINK:
            self.sign_up_magic_link(request)
            return None
        raise SchemaViolation([FieldError("payload", "payload.flow", "does not match any sign up flow")])

    def sign_in(self, request: LoginRequest) -> Optional[Union[Session, MfaChallenge]]:
        flow = classify_login(request)
        if flow is LoginFlow.REGULAR:
            return self.sign_in_email_password(request)
        if flow is LoginFlow.MAGIC_LINK:
            self.sign_in_magic_link(request)
            return None
        if flow is LoginFlow.ANONYMOUS:
            return self.sign_in_anonymous(request)
        raise SchemaViolation([FieldError("payload", "payload.flow", "does not match any sign in flow")])

    def sign_up_email_password(self, request: RegularRegister) -> Optional[Session]:
        return SignUpEmailPasswordUseCase(self._deps).execute(request)

    def sign_up_magic_link(self, request: MagicLinkRegister) -> None:
        SignUpMagicLinkUseCase(self._deps).execute(request)

    def sign_in_email_password(self, request: RegularLogin) -> Union[Session, MfaChallenge]:
        return SignInEmailPasswordUseCase(self._deps).execute(request)

    def sign_in_magic_link(self, request: MagicLinkLogin) -> None:
        SignInMagicLinkUseCase(self._deps).execute(request)

    def sign_in_anonymous(self, request: AnonymousLogin) -> Session:
        return SignInAnonymousUseCase(self._deps).execute(request)

    def forgot_password(self, request: ForgotPasswordRequest) -> None:
        ForgotPasswordUseCase(self._deps).execute(request)

    def send_verification_email(self, request: ResendConfirmationRequest) -> None:
        SendVerificationEmailUseCase(self._deps).execute(request)
