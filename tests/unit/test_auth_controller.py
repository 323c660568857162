"""
Unit tests for the AuthController flows over in-memory collaborators.
"""
from urllib.parse import parse_qs, urlsplit

import pytest

from authgate.core.exceptions import (
    CollaboratorFailure,
    ConfigurationError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    OperationNotAllowedError,
    PolicyRejection,
    SchemaViolation,
    UserAlreadyExistsError,
    UserDisabledError,
)
from authgate.domain.entities.session import MfaChallenge, Session
from authgate.domain.entities.user import TicketType
from authgate.infrastructure.services.jwt import CLAIMS_NAMESPACE
from authgate.infrastructure.services.password import verify_password
from authgate.presentation.schemas.auth import MagicLinkLogin
from authgate.presentation.schemas.registry import RequestKind

PASSWORD = "correct-horse-battery"


def link_params(data):
    return {key: values[0] for key, values in parse_qs(urlsplit(data.link).query).items()}


def test_invalid_policy_fails_construction(make_controller):
    """Bad policy settings stop the controller from being built."""
    with pytest.raises(ConfigurationError, match="error creating validator"):
        make_controller(MIN_PASSWORD_LENGTH=0)


def test_regular_sign_up_creates_user_atomically_and_sends_one_email(controller, store, emailer, token_issuer):
    """Regular sign up stores user and refresh token in one call and emails once."""
    session = controller.handle_sign_up({"email": "Alice@Example.com", "password": PASSWORD})

    assert isinstance(session, Session)
    assert store.call_names == ["create_user_with_refresh_token"]
    assert len(emailer.sent) == 1

    kind, to, locale, data = emailer.sent[0]
    assert kind == "email-verify"
    assert to == "alice@example.com"
    assert locale == "en"
    assert data.link.startswith("https://auth.example.com/verify?")
    assert link_params(data)["type"] == TicketType.EMAIL_VERIFY
    assert link_params(data)["ticket"] == store.users["alice@example.com"].ticket

    user = session.user
    assert user.email == "alice@example.com"
    assert user.roles == ["user", "me"]
    assert verify_password(PASSWORD, user.password_hash)

    claims = token_issuer.decode_access_token(session.access_token)[CLAIMS_NAMESPACE]
    assert claims["x-hasura-user-id"] == str(user.id)
    assert claims["x-hasura-default-role"] == "user"
    assert session.refresh_token_id in store.refresh_tokens


def test_sign_up_with_minimum_length_eight(make_controller, store, emailer):
    """An eight character minimum accepts a longer password."""
    controller = make_controller(MIN_PASSWORD_LENGTH=8)

    controller.handle_sign_up({"email": "a@b.com", "password": "longenough123", "locale": "en"})

    assert store.call_names == ["create_user_with_refresh_token"]
    assert [(sent[0], sent[1]) for sent in emailer.sent] == [("email-verify", "a@b.com")]


def test_sign_up_requiring_verification_returns_no_session(make_controller, store, emailer):
    """Pending verification creates the user without a session."""
    controller = make_controller(REQUIRE_EMAIL_VERIFICATION=True)

    result = controller.handle_sign_up({"email": "alice@example.com", "password": PASSWORD})

    assert result is None
    assert store.call_names == ["create_user"]
    assert [sent[0] for sent in emailer.sent] == ["email-verify"]


def test_sign_up_with_new_users_disabled_sends_nothing(make_controller, store, emailer):
    """Disabled new users are stored disabled and get no email."""
    controller = make_controller(DISABLE_NEW_USERS=True)

    assert controller.handle_sign_up({"email": "alice@example.com", "password": PASSWORD}) is None
    assert store.users["alice@example.com"].disabled is True
    assert emailer.sent == []


def test_sign_up_disabled(make_controller, store):
    """Sign up is refused before any storage call when disabled."""
    controller = make_controller(DISABLE_SIGNUP=True)

    with pytest.raises(OperationNotAllowedError) as exc_info:
        controller.handle_sign_up({"email": "alice@example.com", "password": PASSWORD})

    assert exc_info.value.status_code == 403
    assert store.calls == []


def test_short_password_makes_no_collaborator_calls(controller, store, emailer, breach_checker):
    """Validation failures never reach a collaborator."""
    with pytest.raises(SchemaViolation) as exc_info:
        controller.handle_sign_up({"email": "alice@example.com", "password": "short"})

    assert exc_info.value.codes == ["password.min"]
    assert store.calls == []
    assert emailer.sent == []
    assert breach_checker.calls == []


def test_duplicate_email_passes_through(controller, store, emailer):
    """A taken email surfaces as a conflict and sends no second email."""
    controller.handle_sign_up({"email": "alice@example.com", "password": PASSWORD})

    with pytest.raises(UserAlreadyExistsError) as exc_info:
        controller.handle_sign_up({"email": "ALICE@example.com", "password": PASSWORD})

    assert exc_info.value.status_code == 409
    assert len(emailer.sent) == 1


def test_storage_uniqueness_error_is_not_wrapped(controller, store):
    """The store's own uniqueness error is raised as is."""
    error = UserAlreadyExistsError("alice@example.com")
    store.create_error = error

    with pytest.raises(UserAlreadyExistsError) as exc_info:
        controller.handle_sign_up({"email": "alice@example.com", "password": PASSWORD})

    assert exc_info.value is error


def test_breached_password_is_policy_rejection(make_controller, store, breach_checker):
    """A breached password is rejected before anything is stored."""
    controller = make_controller(PASSWORD_HIBP_ENABLED=True)
    breach_checker.breached = True

    with pytest.raises(PolicyRejection) as exc_info:
        controller.handle_sign_up({"email": "alice@example.com", "password": PASSWORD})

    assert exc_info.value.codes == ["password.breached"]
    assert breach_checker.calls == [PASSWORD]
    assert store.calls == []


def test_breach_check_skipped_when_disabled(controller, breach_checker):
    """The breach checker is not consulted unless enabled."""
    controller.handle_sign_up({"email": "alice@example.com", "password": PASSWORD})

    assert breach_checker.calls == []


def test_email_failure_becomes_collaborator_failure(controller, emailer):
    """A failing emailer is reported as an opaque collaborator failure."""
    cause = RuntimeError("smtp down")
    emailer.error = cause

    with pytest.raises(CollaboratorFailure) as exc_info:
        controller.handle_sign_up({"email": "alice@example.com", "password": PASSWORD})

    assert exc_info.value.operation == "send_email_verification"
    assert exc_info.value.message == "Internal server error"
    assert exc_info.value.__cause__ is cause


def test_custom_register_data_and_roles_reach_the_user(make_controller, store):
    """Custom data and requested roles are stored on the new user."""
    controller = make_controller(CUSTOM_REGISTER_FIELDS=["company"])

    controller.handle_sign_up({
        "email": "alice@example.com",
        "password": PASSWORD,
        "allowedRoles": ["me"],
        "defaultRole": "me",
        "customRegisterData": {"company": "Acme"},
    })

    user = store.users["alice@example.com"]
    assert user.metadata == {"company": "Acme"}
    assert user.roles == ["me"]
    assert user.default_role == "me"


def test_narrowed_roles_must_include_the_default_role(controller, store):
    """Roles outside the request's allowedRoles are never granted."""
    with pytest.raises(SchemaViolation) as exc_info:
        controller.handle_sign_up({
            "email": "alice@example.com",
            "password": PASSWORD,
            "allowedRoles": ["me"],
        })

    assert exc_info.value.codes == ["defaultRole.notAllowed"]
    assert store.calls == []


def test_magic_link_sign_up(controller, store, emailer):
    """Passwordless sign up stores no password and emails a magic link."""
    assert controller.handle_sign_up({"email": "bob@example.com", "locale": "nl"}) is None

    assert store.call_names == ["create_user"]
    assert store.users["bob@example.com"].password_hash is None
    kind, to, locale, data = emailer.sent[0]
    assert (kind, to, locale) == ("signin-passwordless", "bob@example.com", "nl")
    assert link_params(data)["type"] == TicketType.PASSWORDLESS


def test_regular_sign_in(controller, store):
    """Sign in loads roles, stores a refresh token and records last seen."""
    controller.handle_sign_up({"email": "alice@example.com", "password": PASSWORD})
    store.calls.clear()

    session = controller.handle_sign_in({"email": "alice@example.com", "password": PASSWORD})

    assert isinstance(session, Session)
    assert store.call_names == [
        "find_user_by_email",
        "get_user_roles",
        "insert_refresh_token",
        "update_last_seen",
    ]
    assert session.user.last_seen is not None


@pytest.mark.parametrize("payload", [
    {"email": "alice@example.com", "password": "wrong-password"},
    {"email": "nobody@example.com", "password": PASSWORD},
])
def test_sign_in_with_bad_credentials(controller, payload):
    """Unknown email and wrong password fail the same way."""
    controller.handle_sign_up({"email": "alice@example.com", "password": PASSWORD})

    with pytest.raises(InvalidCredentialsError) as exc_info:
        controller.handle_sign_in(payload)

    assert exc_info.value.status_code == 401


def test_sign_in_disabled_user(controller, store):
    """Disabled users cannot sign in."""
    controller.handle_sign_up({"email": "alice@example.com", "password": PASSWORD})
    store.users["alice@example.com"].disabled = True

    with pytest.raises(UserDisabledError):
        controller.handle_sign_in({"email": "alice@example.com", "password": PASSWORD})


def test_sign_in_unverified_user(make_controller):
    """Unverified users cannot sign in when verification is required."""
    controller = make_controller(REQUIRE_EMAIL_VERIFICATION=True)
    controller.handle_sign_up({"email": "alice@example.com", "password": PASSWORD})

    with pytest.raises(EmailNotVerifiedError):
        controller.handle_sign_in({"email": "alice@example.com", "password": PASSWORD})


def test_sign_in_with_mfa_returns_challenge(controller, store):
    """MFA users get a challenge ticket instead of a session."""
    controller.handle_sign_up({"email": "alice@example.com", "password": PASSWORD})
    user = store.users["alice@example.com"]
    user.active_mfa_type = "totp"
    store.calls.clear()

    challenge = controller.handle_sign_in({"email": "alice@example.com", "password": PASSWORD})

    assert isinstance(challenge, MfaChallenge)
    assert challenge.user_id == user.id
    assert user.ticket == challenge.ticket
    assert store.call_names == ["find_user_by_email", "update_user_ticket"]


def test_anonymous_sign_in_disabled(controller, store):
    """Anonymous sign in is refused unless enabled."""
    with pytest.raises(OperationNotAllowedError):
        controller.handle_sign_in({"anonymous": True})

    assert store.calls == []


def test_anonymous_sign_in(make_controller, store, token_issuer):
    """Anonymous sign in creates an emailless user with the anonymous role."""
    controller = make_controller(ANONYMOUS_USERS_ENABLED=True)

    session = controller.handle_sign_in({"anonymous": True, "locale": "nl"})

    assert store.call_names == ["create_user_with_refresh_token"]
    assert session.user.is_anonymous is True
    assert session.user.email is None
    assert session.user.locale == "nl"
    claims = token_issuer.decode_access_token(session.access_token)[CLAIMS_NAMESPACE]
    assert claims["x-hasura-user-is-anonymous"] == "true"
    assert claims["x-hasura-allowed-roles"] == ["anonymous"]


def test_magic_link_sign_in_for_unknown_email_signs_up(controller, store, emailer):
    """An unknown email on magic link sign in registers the user."""
    assert controller.handle_sign_in({"email": "new@example.com"}) is None

    assert store.call_names == ["find_user_by_email", "create_user"]
    assert store.users["new@example.com"].locale == "en"
    assert [sent[0] for sent in emailer.sent] == ["signin-passwordless"]


def test_magic_link_sign_in_with_signup_disabled(make_controller, store, emailer):
    """An unknown email is rejected when sign up is disabled."""
    controller = make_controller(DISABLE_SIGNUP=True)

    with pytest.raises(InvalidCredentialsError):
        controller.handle_sign_in({"email": "new@example.com"})

    assert emailer.sent == []


def test_magic_link_sign_in_rotates_ticket(controller, store, emailer):
    """Each magic link sign in issues a fresh ticket."""
    controller.handle_sign_up({"email": "bob@example.com"})
    first_ticket = store.users["bob@example.com"].ticket

    controller.sign_in_magic_link(controller.validate(RequestKind.LOGIN, {"email": "bob@example.com"}))

    user = store.users["bob@example.com"]
    assert user.ticket != first_ticket
    assert link_params(emailer.sent[-1][3])["ticket"] == user.ticket


def test_sign_in_with_unclassifiable_request(controller):
    """A request matching no flow is a schema violation."""
    with pytest.raises(SchemaViolation) as exc_info:
        controller.sign_in(MagicLinkLogin.model_construct(email=None))

    assert exc_info.value.codes == ["payload.flow"]


def test_forgot_password(controller, store, emailer):
    """Forgot password emails a reset link carrying a fresh ticket."""
    controller.handle_sign_up({"email": "alice@example.com", "password": PASSWORD})
    emailer.sent.clear()

    controller.forgot_password(controller.validate(RequestKind.FORGOT_PASSWORD, {"email": "alice@example.com"}))

    kind, to, _, data = emailer.sent[0]
    assert (kind, to) == ("password-reset", "alice@example.com")
    assert link_params(data)["ticket"] == store.users["alice@example.com"].ticket
    assert link_params(data)["type"] == TicketType.PASSWORD_RESET


def test_forgot_password_for_unknown_email_is_silent(controller, emailer):
    """Unknown emails get no reset email and no error."""
    controller.forgot_password(controller.validate(RequestKind.FORGOT_PASSWORD, {"email": "nobody@example.com"}))

    assert emailer.sent == []


def test_send_verification_email(controller, store, emailer):
    """Verification emails are resent only while unverified."""
    controller.handle_sign_up({"email": "alice@example.com", "password": PASSWORD})
    emailer.sent.clear()

    resend = controller.validate(RequestKind.RESEND_CONFIRMATION, {"email": "alice@example.com"})
    controller.send_verification_email(resend)
    assert [sent[0] for sent in emailer.sent] == ["email-verify"]

    store.users["alice@example.com"].email_verified = True
    controller.send_verification_email(resend)
    assert len(emailer.sent) == 1


def test_storage_failure_becomes_collaborator_failure(controller, store):
    """A failing store is reported with the failed operation and its cause."""
    def broken(email):
        raise ConnectionError("database unavailable")

    store.find_user_by_email = broken

    with pytest.raises(CollaboratorFailure) as exc_info:
        controller.forgot_password(controller.validate(RequestKind.FORGOT_PASSWORD, {"email": "alice@example.com"}))

    assert exc_info.value.operation == "find_user_by_email"
    assert isinstance(exc_info.value.__cause__, ConnectionError)
