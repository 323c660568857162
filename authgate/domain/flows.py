"""
Flow discrimination for register and login requests.

Register and login payloads carry no type tag; the variant is decided by
which fields are present. The predicates accept either a raw mapping or a
validated request model, so the same rules pick the schema to report
errors against and the use case to dispatch to.
"""
from enum import Enum
from typing import Any, Mapping, Optional


class RegisterFlow(str, Enum):
    REGULAR = "regular"
    MAGIC_LINK = "magic-link"


class LoginFlow(str, Enum):
    REGULAR = "regular"
    MAGIC_LINK = "magic-link"
    ANONYMOUS = "anonymous"


def _present(body: Any, field: str) -> bool:
    if isinstance(body, Mapping):
        return body.get(field) is not None
    return getattr(body, field, None) is not None


def is_regular_register(body: Any) -> bool:
    return _present(body, "email") and _present(body, "password")


def is_magic_link_register(body: Any) -> bool:
    return _present(body, "email") and not _present(body, "password")


def is_regular_login(body: Any) -> bool:
    return _present(body, "email") and _present(body, "password")


def is_magic_link_login(body: Any) -> bool:
    return _present(body, "email") and not _present(body, "password")


def is_anonymous_login(body: Any) -> bool:
    return _present(body, "anonymous")


def classify_register(body: Any) -> Optional[RegisterFlow]:
    """Classify a register body, regular before magic link. None if neither applies."""
    if is_regular_register(body):
        return RegisterFlow.REGULAR
    if is_magic_link_register(body):
        return RegisterFlow.MAGIC_LINK
    return None


def classify_login(body: Any) -> Optional[LoginFlow]:
    """Classify a login body: regular, then magic link, then anonymous."""
    if is_regular_login(body):
        return LoginFlow.REGULAR
    if is_magic_link_login(body):
        return LoginFlow.MAGIC_LINK
    if is_anonymous_login(body):
        return LoginFlow.ANONYMOUS
    return None
