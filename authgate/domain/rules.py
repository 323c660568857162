"""
Field validation rules.

Each rule is a pure function of (value, policy) that returns the value or
raises PydanticCustomError. The error type is the rule's failure code and
ends up as the suffix of the field error code, e.g. "password.min".
Rules are composed onto schema fields with policy_rule().
"""
from typing import Any, Callable
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit, urlunsplit
from uuid import UUID

from email_validator import EmailNotValidError, validate_email
from pydantic import AfterValidator, ValidationError, ValidationInfo, ValidatorFunctionWrapHandler, WrapValidator
from pydantic_core import PydanticCustomError

from authgate.core.exceptions import ConfigurationError
from authgate.core.policy import PolicyConfig

Rule = Callable[[Any, PolicyConfig], Any]

DEFAULT_PORTS = {"http": 80, "https": 443}
CUSTOM_FIELD_TYPES = (str, int, float, bool, dict)


def password_min(value: str, policy: PolicyConfig) -> str:
    if len(value) < policy.min_password_length:
        raise PydanticCustomError(
            "min",
            "length must be at least {limit} characters long",
            {"limit": policy.min_password_length},
        )
    return value


def password_max(value: str, policy: PolicyConfig) -> str:
    if len(value) > policy.max_password_length:
        raise PydanticCustomError(
            "max",
            "length must be less than or equal to {limit} characters long",
            {"limit": policy.max_password_length},
        )
    return value


def email_format(value: str, policy: PolicyConfig) -> str:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        raise PydanticCustomError("email", "must be a valid email")
    return value


def allowed_email_domain(value: str, policy: PolicyConfig) -> str:
    """
    Reject emails that do not end with one of the allowed domains.

    This is a plain suffix match: "notexample.com" passes an allow-list
    of "example.com". Configure "@example.com" to pin an exact domain.
    """
    if policy.allowed_email_domains:
        lower_value = value.lower()
        if not any(lower_value.endswith(domain) for domain in policy.allowed_email_domains):
            raise PydanticCustomError("allowedDomains", "is not in an authorised domain")
    return value


def normalize_url(url: str) -> str:
    """
    Normalize a URL for equivalence checks.

    Lower-cases scheme and host, drops default ports and the trailing
    slash, decodes the path and sorts query parameters.

    Raises:
        ValueError: If the port is not a valid number
    """
    url = url.strip()
    if url.startswith("//"):
        url = "http:" + url
    elif "://" not in url:
        url = "http://" + url

    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    port = parts.port
    netloc = host if port is None or port == DEFAULT_PORTS.get(scheme) else f"{host}:{port}"
    if parts.username:
        userinfo = parts.username if parts.password is None else f"{parts.username}:{parts.password}"
        netloc = f"{userinfo}@{netloc}"

    path = unquote(parts.path).rstrip("/")
    query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))
    return urlunsplit((scheme, netloc, path, query, parts.fragment))


def urls_equivalent(first: str, second: str) -> bool:
    try:
        return normalize_url(first) == normalize_url(second)
    except ValueError:
        return False


def allowed_redirect_url(value: str, policy: PolicyConfig) -> str:
    if not any(urls_equivalent(value, allowed) for allowed in policy.allowed_redirect_urls):
        raise PydanticCustomError("allowedRedirectUrls", "is not an authorised redirect url")
    return value


def locale_length(value: str, policy: PolicyConfig) -> str:
    if len(value) != 2:
        raise PydanticCustomError("length", "length must be {limit} characters long", {"limit": 2})
    return value


def code_length(value: str, policy: PolicyConfig) -> str:
    if len(value) != 6:
        raise PydanticCustomError("length", "length must be {limit} characters long", {"limit": 6})
    return value


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise PydanticCustomError("guid", "must be a valid GUID")


def uuid_any(value: str, policy: PolicyConfig) -> str:
    _parse_uuid(value)
    return value


def uuid_v4(value: str, policy: PolicyConfig) -> str:
    if _parse_uuid(value).version != 4:
        raise PydanticCustomError("guid", "must be a valid GUID")
    return value


def custom_field_value(value: Any, policy: PolicyConfig) -> Any:
    """Custom register values are scalars, objects, or flat arrays of those."""
    if isinstance(value, list):
        if all(isinstance(item, CUSTOM_FIELD_TYPES) for item in value):
            return value
    elif isinstance(value, CUSTOM_FIELD_TYPES):
        return value
    raise PydanticCustomError(
        "alternatives",
        "must be a string, number, boolean, object or an array of those",
    )


def custom_field_keys(value: dict, policy: PolicyConfig) -> dict:
    unknown = sorted(set(value) - policy.custom_register_fields)
    if unknown:
        raise PydanticCustomError(
            "unknown",
            "contains fields that are not allowed: {keys}",
            {"keys": ", ".join(unknown)},
        )
    return value


def allowed_roles(value: list, policy: PolicyConfig) -> list:
    forbidden = [role for role in value if role not in policy.default_allowed_roles]
    if forbidden:
        raise PydanticCustomError(
            "notAllowed",
            "contains roles that are not allowed: {roles}",
            {"roles": ", ".join(forbidden)},
        )
    return value


def get_policy(info: ValidationInfo) -> PolicyConfig:
    policy = (info.context or {}).get("policy")
    if not isinstance(policy, PolicyConfig):
        raise ConfigurationError("validation requires a PolicyConfig in the validation context")
    return policy


def policy_rule(*rules: Rule) -> AfterValidator:
    """Compose rules into a pydantic validator, applied in order."""

    def validate(value: Any, info: ValidationInfo) -> Any:
        policy = get_policy(info)
        for rule in rules:
            value = rule(value, policy)
        return value

    return AfterValidator(validate)


def policy_key_rule(rule: Rule) -> WrapValidator:
    """
    Check the keys of a mapping while its values are validated.

    A key error is reported together with the value errors instead of only
    once every value is valid.
    """

    def validate(value: Any, handler: ValidatorFunctionWrapHandler, info: ValidationInfo) -> Any:
        key_error = None
        if isinstance(value, dict):
            try:
                rule(value, get_policy(info))
            except PydanticCustomError as e:
                key_error = e
        if key_error is None:
            return handler(value)

        try:
            handler(value)
        except ValidationError as e:
            line_errors = [
                {"type": PydanticCustomError(error["type"], error["msg"]), "loc": error["loc"], "input": error["input"]}
                for error in e.errors()
            ]
            line_errors.append({"type": key_error, "loc": (), "input": value})
            raise ValidationError.from_exception_data(e.title, line_errors)
        raise key_error

    return WrapValidator(validate)
