"""
Pydantic schemas for authentication requests.
Part of Presentation layer - request models.

Policy-dependent rules read the tenant PolicyConfig from the validation
context, so these models must be validated through SchemaRegistry.
"""
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from authgate.domain import rules
from authgate.domain.flows import LoginFlow, RegisterFlow

Email = Annotated[str, rules.policy_rule(rules.email_format, rules.allowed_email_domain)]
Password = Annotated[str, rules.policy_rule(rules.password_min, rules.password_max)]
Locale = Annotated[str, rules.policy_rule(rules.locale_length)]
Ticket = Annotated[str, rules.policy_rule(rules.uuid_v4)]
Code = Annotated[str, rules.policy_rule(rules.code_length)]
RedirectUrl = Annotated[str, rules.policy_rule(rules.allowed_redirect_url)]
StateToken = Annotated[str, rules.policy_rule(rules.uuid_any)]
CustomValue = Annotated[Any, rules.policy_rule(rules.custom_field_value)]
CustomRegisterData = Annotated[Dict[str, CustomValue], rules.policy_key_rule(rules.custom_field_keys)]
Roles = Annotated[List[str], rules.policy_rule(rules.allowed_roles)]


class RequestSchema(BaseModel):
    """Base for request schemas: camelCase on the wire, unknown fields rejected."""

    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class LocaleDefaults(RequestSchema):
    """Fills an absent locale with the tenant default."""

    locale: Optional[Locale] = None

    @model_validator(mode="after")
    def _default_locale(self, info: ValidationInfo):
        if self.locale is None:
            self.locale = rules.get_policy(info).default_locale
        return self


class UserDataFields(RequestSchema):
    allowed_roles: Optional[Roles] = None
    default_role: Optional[str] = Field(default=None, validate_default=True)
    custom_register_data: Optional[CustomRegisterData] = None

    @field_validator("default_role")
    @classmethod
    def _default_role_allowed(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        """The default role, given or inherited from the tenant, must be one of the allowed roles."""
        if "allowed_roles" not in info.data:
            # allowedRoles itself failed validation
            return value
        policy = rules.get_policy(info)
        allowed = info.data["allowed_roles"] or policy.default_allowed_roles
        if (value or policy.default_role) not in allowed:
            raise PydanticCustomError("notAllowed", "must be one of the allowed roles")
        return value


class RegularRegister(UserDataFields, LocaleDefaults):
    """Sign up with email and password."""

    flow: ClassVar[RegisterFlow] = RegisterFlow.REGULAR

    email: Email
    password: Password


class MagicLinkRegister(UserDataFields, LocaleDefaults):
    """Passwordless sign up; a magic link is emailed."""

    flow: ClassVar[RegisterFlow] = RegisterFlow.MAGIC_LINK

    email: Email


RegisterRequest = Union[RegularRegister, MagicLinkRegister]


class RegularLogin(RequestSchema):
    flow: ClassVar[LoginFlow] = LoginFlow.REGULAR

    email: Email
    password: Password


class MagicLinkLogin(RequestSchema):
    flow: ClassVar[LoginFlow] = LoginFlow.MAGIC_LINK

    email: Email


class AnonymousLogin(LocaleDefaults):
    flow: ClassVar[LoginFlow] = LoginFlow.ANONYMOUS

    anonymous: Literal[True]


LoginRequest = Union[RegularLogin, MagicLinkLogin, AnonymousLogin]


class DeanonymizeRequest(RequestSchema):
    email: Email
    password: Password


class RegisterUserDataRequest(UserDataFields):
    pass


class ResetPasswordWithTicketRequest(RequestSchema):
    ticket: Ticket
    new_password: Optional[Password] = None


class ChangePasswordRequest(RequestSchema):
    old_password: Optional[Password] = None
    new_password: Optional[Password] = None


class EmailResetRequest(RequestSchema):
    new_email: Email


class LogoutRequest(RequestSchema):
    all: Optional[bool] = None


class MfaRequest(RequestSchema):
    code: Code


class ForgotPasswordRequest(RequestSchema):
    email: Email


class VerifyRequest(RequestSchema):
    ticket: Ticket


class TotpRequest(RequestSchema):
    code: Code
    ticket: Ticket


class MagicLinkQuery(RequestSchema):
    token: str
    action: Literal["log-in", "register"]


class WhitelistQuery(LocaleDefaults):
    email: Email
    invite: bool = False


class ProviderQuery(RequestSchema):
    """Redirect URLs default to the tenant success/error URLs when absent."""

    redirect_url_success: Optional[RedirectUrl] = None
    redirect_url_failure: Optional[RedirectUrl] = None
    jwt_token: Optional[str] = None

    @model_validator(mode="after")
    def _default_redirects(self, info: ValidationInfo):
        policy = rules.get_policy(info)
        if self.redirect_url_success is None:
            self.redirect_url_success = policy.redirect_url_success
        if self.redirect_url_failure is None:
            self.redirect_url_failure = policy.redirect_url_error
        return self


class ProviderCallbackQuery(RequestSchema):
    """Providers append their own query parameters, so unknown fields pass through."""

    model_config = ConfigDict(extra="allow")

    state: StateToken


class LocaleRequest(LocaleDefaults):
    pass


class ResendConfirmationRequest(RequestSchema):
    email: Email
