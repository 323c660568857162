"""
Tenant policy configuration.

PolicyConfig is the parsed, read-only form of Settings that validation rules
and use cases receive explicitly. It is built once at startup; anything that
cannot be turned into a working rule set raises ConfigurationError.
"""
import re
from dataclasses import dataclass
from typing import Tuple
from urllib.parse import urlsplit

from authgate.core.config import Settings
from authgate.core.exceptions import ConfigurationError

MAX_PASSWORD_LENGTH = 128

_DOMAIN_SUFFIX = re.compile(r"^[a-z0-9@][a-z0-9.@-]*$")
_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class PolicyConfig:
    """Read-only policy shared by every request."""

    min_password_length: int
    allowed_email_domains: Tuple[str, ...]
    allowed_redirect_urls: Tuple[str, ...]
    custom_register_fields: frozenset
    default_locale: str
    redirect_url_success: str
    redirect_url_error: str
    default_role: str
    default_allowed_roles: Tuple[str, ...]
    require_email_verification: bool = False
    disable_new_users: bool = False
    disable_signup: bool = False
    anonymous_users_enabled: bool = False
    password_hibp_enabled: bool = False
    gravatar_enabled: bool = True
    gravatar_default: str = "blank"
    gravatar_rating: str = "g"
    server_url: str = "http://localhost:4000"
    max_password_length: int = MAX_PASSWORD_LENGTH

    @classmethod
    def from_settings(cls, settings: Settings) -> "PolicyConfig":
        """
        Parse settings into a policy.

        Raises:
            ConfigurationError: If any policy value is malformed
        """
        if not 1 <= settings.MIN_PASSWORD_LENGTH <= MAX_PASSWORD_LENGTH:
            raise ConfigurationError(
                f"MIN_PASSWORD_LENGTH must be between 1 and {MAX_PASSWORD_LENGTH}, "
                f"got {settings.MIN_PASSWORD_LENGTH}"
            )

        if len(settings.DEFAULT_LOCALE) != 2:
            raise ConfigurationError(f"DEFAULT_LOCALE must be 2 characters, got {settings.DEFAULT_LOCALE!r}")

        if settings.DEFAULT_ROLE not in settings.DEFAULT_ALLOWED_ROLES:
            raise ConfigurationError(
                f"DEFAULT_ROLE {settings.DEFAULT_ROLE!r} is not in DEFAULT_ALLOWED_ROLES"
            )

        return cls(
            min_password_length=settings.MIN_PASSWORD_LENGTH,
            allowed_email_domains=parse_email_domains(settings.ALLOWED_EMAIL_DOMAINS),
            allowed_redirect_urls=parse_redirect_urls(settings.ALLOWED_REDIRECT_URLS),
            custom_register_fields=parse_custom_fields(settings.CUSTOM_REGISTER_FIELDS),
            default_locale=settings.DEFAULT_LOCALE,
            redirect_url_success=settings.REDIRECT_URL_SUCCESS,
            redirect_url_error=settings.REDIRECT_URL_ERROR,
            default_role=settings.DEFAULT_ROLE,
            default_allowed_roles=tuple(settings.DEFAULT_ALLOWED_ROLES),
            require_email_verification=settings.REQUIRE_EMAIL_VERIFICATION,
            disable_new_users=settings.DISABLE_NEW_USERS,
            disable_signup=settings.DISABLE_SIGNUP,
            anonymous_users_enabled=settings.ANONYMOUS_USERS_ENABLED,
            password_hibp_enabled=settings.PASSWORD_HIBP_ENABLED,
            gravatar_enabled=settings.GRAVATAR_ENABLED,
            gravatar_default=settings.GRAVATAR_DEFAULT,
            gravatar_rating=settings.GRAVATAR_RATING,
            server_url=settings.SERVER_URL.rstrip("/"),
        )


def parse_email_domains(raw: str) -> Tuple[str, ...]:
    """
    Parse the comma separated domain allow-list.

    An empty string means no restriction. Empty entries ("a.com,,b.com")
    and entries with characters that cannot end an email address are
    rejected.
    """
    if not raw.strip():
        return ()

    domains = []
    for entry in raw.split(","):
        domain = entry.strip().lower()
        if not domain or not _DOMAIN_SUFFIX.match(domain):
            raise ConfigurationError(f"ALLOWED_EMAIL_DOMAINS contains an invalid entry: {entry!r}")
        domains.append(domain)
    return tuple(domains)


def parse_redirect_urls(urls: list[str]) -> Tuple[str, ...]:
    """Every allowed redirect URL must be absolute (scheme and host)."""
    for url in urls:
        parts = urlsplit(url)
        if not parts.scheme or not parts.netloc:
            raise ConfigurationError(f"ALLOWED_REDIRECT_URLS contains a non-absolute URL: {url!r}")
    return tuple(urls)


def parse_custom_fields(names: list[str]) -> frozenset:
    seen = set()
    for name in names:
        if not _FIELD_NAME.match(name):
            raise ConfigurationError(f"CUSTOM_REGISTER_FIELDS contains an invalid field name: {name!r}")
        if name in seen:
            raise ConfigurationError(f"CUSTOM_REGISTER_FIELDS contains a duplicate field: {name!r}")
        seen.add(name)
    return frozenset(seen)
