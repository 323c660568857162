"""
Schema registry: one request schema, or an ordered set of alternatives,
per request kind.

Validation runs every field rule and reports all violations at once.
Alternatives are tried in declared order and the first match wins; they
are mutually exclusive by field set, so at most one can match.
"""
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from authgate.core.exceptions import FieldError, SchemaViolation
from authgate.core.policy import PolicyConfig
from authgate.domain import flows
from authgate.presentation.schemas import auth

logger = logging.getLogger(__name__)

# pydantic error types mapped onto rule codes
ERROR_CODES = {
    "missing": "required",
    "extra_forbidden": "unknown",
    "literal_error": "only",
    "string_type": "base",
    "bool_type": "base",
    "bool_parsing": "base",
    "dict_type": "base",
    "list_type": "base",
    "model_type": "base",
    "model_attributes_type": "base",
}


class RequestKind(str, Enum):
    REGISTER = "register"
    LOGIN = "login"
    DEANONYMIZE = "deanonymize"
    REGISTER_USER_DATA = "register-user-data"
    RESET_PASSWORD_WITH_TICKET = "reset-password-with-ticket"
    CHANGE_PASSWORD = "change-password"
    EMAIL_RESET = "email-reset"
    LOGOUT = "logout"
    MFA = "mfa"
    FORGOT_PASSWORD = "forgot-password"
    VERIFY = "verify"
    TOTP = "totp"
    MAGIC_LINK_QUERY = "magic-link-query"
    WHITELIST_QUERY = "whitelist-query"
    PROVIDER_QUERY = "provider-query"
    PROVIDER_CALLBACK_QUERY = "provider-callback-query"
    LOCALE = "locale"
    RESEND_CONFIRMATION = "resend-confirmation"


SCHEMAS: Dict[RequestKind, Tuple[Type[BaseModel], ...]] = {
    RequestKind.REGISTER: (auth.RegularRegister, auth.MagicLinkRegister),
    RequestKind.LOGIN: (auth.RegularLogin, auth.MagicLinkLogin, auth.AnonymousLogin),
    RequestKind.DEANONYMIZE: (auth.DeanonymizeRequest,),
    RequestKind.REGISTER_USER_DATA: (auth.RegisterUserDataRequest,),
    RequestKind.RESET_PASSWORD_WITH_TICKET: (auth.ResetPasswordWithTicketRequest,),
    RequestKind.CHANGE_PASSWORD: (auth.ChangePasswordRequest,),
    RequestKind.EMAIL_RESET: (auth.EmailResetRequest,),
    RequestKind.LOGOUT: (auth.LogoutRequest,),
    RequestKind.MFA: (auth.MfaRequest,),
    RequestKind.FORGOT_PASSWORD: (auth.ForgotPasswordRequest,),
    RequestKind.VERIFY: (auth.VerifyRequest,),
    RequestKind.TOTP: (auth.TotpRequest,),
    RequestKind.MAGIC_LINK_QUERY: (auth.MagicLinkQuery,),
    RequestKind.WHITELIST_QUERY: (auth.WhitelistQuery,),
    RequestKind.PROVIDER_QUERY: (auth.ProviderQuery,),
    RequestKind.PROVIDER_CALLBACK_QUERY: (auth.ProviderCallbackQuery,),
    RequestKind.LOCALE: (auth.LocaleRequest,),
    RequestKind.RESEND_CONFIRMATION: (auth.ResendConfirmationRequest,),
}

# Picks the alternative whose errors are reported when nothing matches.
CLASSIFIERS: Dict[RequestKind, Callable[[Any], Optional[Enum]]] = {
    RequestKind.REGISTER: flows.classify_register,
    RequestKind.LOGIN: flows.classify_login,
}


def field_errors(exc: ValidationError) -> List[FieldError]:
    """Translate pydantic errors into field errors coded "<field path>.<rule>"."""
    errors = []
    for error in exc.errors(include_url=False):
        field = ".".join(str(part) for part in error["loc"]) or "payload"
        rule = ERROR_CODES.get(error["type"], error["type"])
        errors.append(FieldError(field=field, code=f"{field}.{rule}", message=error["msg"]))
    return errors


class SchemaRegistry:
    """
    Validates raw payloads against the schema registered for a request kind.

    Constructed once per process with the tenant policy; holds no other state.
    """

    def __init__(self, policy: PolicyConfig):
        self.policy = policy
        self._context = {"policy": policy}

    def validate(self, kind: RequestKind, payload: Any) -> BaseModel:
        """
        Validate a payload and return the typed request.

        Args:
            kind: Request kind selecting the schema
            payload: Raw decoded body or query mapping

        Returns:
            Instance of the first matching schema

        Raises:
            SchemaViolation: With every field error of the relevant schema
        """
        alternatives = SCHEMAS[kind]
        failures: Dict[Type[BaseModel], ValidationError] = {}

        for schema in alternatives:
            try:
                return schema.model_validate(payload, context=self._context)
            except ValidationError as exc:
                failures[schema] = exc

        reported = self._reported_alternative(kind, alternatives, payload)
        violation = SchemaViolation.of(field_errors(failures[reported]))
        logger.debug(f"{kind.value} payload rejected: {violation.codes}")
        raise violation

    @staticmethod
    def _reported_alternative(
        kind: RequestKind,
        alternatives: Tuple[Type[BaseModel], ...],
        payload: Any,
    ) -> Type[BaseModel]:
        classify = CLASSIFIERS.get(kind)
        if classify is not None:
            flow = classify(payload)
            for schema in alternatives:
                if getattr(schema, "flow", None) == flow:
                    return schema
        return alternatives[0]

    def validate_register(self, payload: Any) -> auth.RegisterRequest:
        return self.validate(RequestKind.REGISTER, payload)

    def validate_login(self, payload: Any) -> auth.LoginRequest:
        return self.validate(RequestKind.LOGIN, payload)
