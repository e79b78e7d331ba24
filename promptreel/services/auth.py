from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import HTTPException

from promptreel.core.settings import S
from promptreel.metrics import SIGNUPS, record_auth_event
from promptreel.models import User
from promptreel.services import cognito
from promptreel.services.profiles import enrich_user
from promptreel.services.store import error_code
from promptreel.services.subscriptions import reconcile_on_signup

if TYPE_CHECKING:
    from promptreel.services.names import NameCache

logger = logging.getLogger(__name__)

GENERIC_AUTH_ERROR = "Authentication failed. Please try again."

AUTH_ERROR_MESSAGES: Dict[str, str] = {
    "NotAuthorizedException": "Incorrect email or password",
    "UserNotConfirmedException": "Email not confirmed. Check your inbox.",
    "UsernameExistsException": "This email is already registered",
    "InvalidPasswordException": "Password is too weak",
    "UserNotFoundException": "User not found",
    "CodeMismatchException": "Invalid confirmation code",
    "ExpiredCodeException": "Confirmation code expired. Request a new one.",
    "LimitExceededException": "Too many attempts. Try again in a few minutes.",
    "TooManyRequestsException": "Too many attempts. Try again in a few minutes.",
    "InvalidParameterException": "Invalid email or password format",
    "CodeDeliveryFailureException": "Could not deliver the confirmation code",
    "UserLambdaValidationException": "Sign-up is not allowed for this email",
}


def translate_auth_error(exc: Exception) -> str:
    return AUTH_ERROR_MESSAGES.get(error_code(exc) or "", GENERIC_AUTH_ERROR)


@dataclass(frozen=True)
class AuthResult:
    user: Optional[User] = None
    error: Optional[str] = None
    needs_confirmation: bool = False
    tokens: Optional[Dict[str, Any]] = None

    def public(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "user": self.user.public() if self.user else None,
            "error": self.error,
            "needs_confirmation": self.needs_confirmation,
        }
        if self.tokens:
            out["tokens"] = self.tokens
        return out


def sign_up(
    email: str,
    password: str,
    name: str,
    phone: Optional[str] = None,
    *,
    names: Optional["NameCache"] = None,
) -> AuthResult:
    try:
        resp = cognito.cognito_sign_up(email, password, name, phone)
    except (ClientError, BotoCoreError) as exc:
        logger.info("sign-up for %s rejected: %s", email, exc)
        SIGNUPS.labels(outcome="rejected").inc()
        return AuthResult(error=translate_auth_error(exc))

    user_id = resp.get("UserSub")
    if not user_id:
        SIGNUPS.labels(outcome="failed").inc()
        return AuthResult(error="Could not create user")

    profile = reconcile_on_signup(user_id, email, name, names=names)
    user = User(id=user_id, email=email, name=name)
    if profile.data:
        user = user.with_profile(profile.data)
    SIGNUPS.labels(outcome="created").inc()
    logger.info("user %s signed up (subscriber=%s)", user_id, user.is_subscriber)
    return AuthResult(user=user, needs_confirmation=not resp.get("UserConfirmed", False))


def current_user_from_token(access_token: str, *, names: Optional["NameCache"] = None) -> User:
    attrs = cognito.cognito_get_user(access_token)
    user = User(id=attrs.get("sub", ""), email=attrs.get("email", ""), name=attrs.get("name") or None)
    return enrich_user(user, names=names)


def sign_in(email: str, password: str, *, names: Optional["NameCache"] = None) -> AuthResult:
    try:
        tokens = cognito.cognito_sign_in(email, password)
        access_token = tokens.get("AccessToken")
        if not access_token:
            # Challenges (MFA, new password) are not supported by this client.
            record_auth_event("login_failure")
            return AuthResult(error=GENERIC_AUTH_ERROR)
        user = current_user_from_token(access_token, names=names)
    except (ClientError, BotoCoreError) as exc:
        record_auth_event("login_failure")
        return AuthResult(error=translate_auth_error(exc))
    record_auth_event("login_success")
    return AuthResult(
        user=user,
        tokens={
            "access_token": access_token,
            "id_token": tokens.get("IdToken"),
            "refresh_token": tokens.get("RefreshToken"),
            "expires_in": tokens.get("ExpiresIn"),
        },
    )


def sign_out(access_token: str) -> Optional[str]:
    try:
        cognito.cognito_sign_out(access_token)
    except (ClientError, BotoCoreError) as exc:
        return translate_auth_error(exc)
    return None


def reset_password(email: str) -> Optional[str]:
    try:
        cognito.cognito_forgot_password(email)
    except (ClientError, BotoCoreError) as exc:
        logger.info("password reset for %s failed: %s", email, exc)
        return translate_auth_error(exc)
    return None


def confirm_reset_password(email: str, code: str, new_password: str) -> Optional[str]:
    try:
        cognito.cognito_confirm_forgot_password(email, code, new_password)
    except (ClientError, BotoCoreError) as exc:
        return translate_auth_error(exc)
    return None


def get_current_user(access_token: str, *, names: Optional["NameCache"] = None) -> AuthResult:
    try:
        return AuthResult(user=current_user_from_token(access_token, names=names))
    except (ClientError, BotoCoreError) as exc:
        return AuthResult(error=translate_auth_error(exc))


async def bootstrap_session(
    access_token: Optional[str],
    *,
    names: Optional["NameCache"] = None,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """Resolve the signed-in user, completing as logged out past the deadline."""
    if not access_token:
        return {"user": None, "timed_out": False}
    limit = S.auth_bootstrap_timeout_seconds if timeout is None else timeout
    try:
        result = await asyncio.wait_for(
            asyncio.to_thread(get_current_user, access_token, names=names),
            timeout=limit,
        )
    except asyncio.TimeoutError:
        logger.warning("session bootstrap exceeded %.1fs, continuing logged out", limit)
        return {"user": None, "timed_out": True}
    except HTTPException as exc:
        return {"user": None, "timed_out": False, "error": exc.detail}
    if result.error or result.user is None:
        return {"user": None, "timed_out": False, "error": result.error}
    return {"user": result.user.public(), "timed_out": False}
