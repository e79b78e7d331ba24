from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from promptreel.core.normalize import clean_email
from promptreel.core.settings import S
from promptreel.core.tables import T
from promptreel.metrics import record_subscription_change
from promptreel.services import profiles
from promptreel.services.cognito import attributes_to_dict, cognito_list_users_by_email
from promptreel.services.store import DbResult, ddb_query_eq

if TYPE_CHECKING:
    from promptreel.services.names import NameCache

logger = logging.getLogger(__name__)

APPROVED = "approved"
CANCELLED = "cancelled"


def find_user_by_email(email: str) -> Optional[Dict[str, Any]]:
    """Look an auth identity up by email.

    Only the first page of the user directory is examined. Raises on
    Cognito or botocore errors.
    """
    wanted = clean_email(email)
    for user in cognito_list_users_by_email(wanted):
        attrs = attributes_to_dict(user.get("Attributes"))
        if clean_email(attrs.get("email")) == wanted:
            return {"id": attrs.get("sub") or user.get("Username"), "email": wanted, "attributes": attrs}
    return None


def update_subscription_status(user_id: str, is_subscriber: bool, *, names: Optional["NameCache"] = None) -> DbResult:
    return profiles.update_profile(user_id, {"is_subscriber": is_subscriber}, names=names)


def check_subscription_status(user_id: str) -> bool:
    found = profiles.get_profile(user_id)
    if not found.ok or not found.data:
        return False
    return bool(found.data.get("is_subscriber", False))


def set_subscription_by_email(email: str, active: bool, *, names: Optional["NameCache"] = None) -> Dict[str, Any]:
    email = clean_email(email)
    verb = "activated" if active else "deactivated"
    if not email:
        return {"success": False, "message": "No email on event"}
    try:
        user = find_user_by_email(email)
    except (ClientError, BotoCoreError) as exc:
        logger.error("user lookup for %s failed: %s", email, exc)
        record_subscription_change("webhook", active, "lookup_failed")
        return {"success": False, "message": f"User lookup failed: {exc}"}

    if not user:
        logger.info("no user with email %s; subscription left untouched", email)
        record_subscription_change("webhook", active, "user_not_found")
        return {"success": False, "message": f"User with email {email} not found"}

    result = update_subscription_status(user["id"], active, names=names)
    if not result.ok:
        logger.error("subscription update for %s failed: %s", user["id"], result.error)
        record_subscription_change("webhook", active, "update_failed")
        return {"success": False, "message": f"Subscription update failed: {result.error}", "user_id": user["id"]}

    logger.info("subscription %s for %s (%s)", verb, email, user["id"])
    record_subscription_change("webhook", active, "success")
    return {"success": True, "message": f"Subscription {verb} for {email}", "user_id": user["id"]}


def activate_subscription_by_email(email: str, *, names: Optional["NameCache"] = None) -> Dict[str, Any]:
    return set_subscription_by_email(email, True, names=names)


def deactivate_subscription_by_email(email: str, *, names: Optional["NameCache"] = None) -> Dict[str, Any]:
    return set_subscription_by_email(email, False, names=names)


def check_email_has_payments(email: str) -> bool:
    email = clean_email(email)
    if not email:
        return False
    try:
        rows = ddb_query_eq(T.payments, S.payments_email_index, "email", email)
    except (ClientError, BotoCoreError) as exc:
        logger.error("payment lookup for %s failed: %s", email, exc)
        return False

    decisive = [r for r in rows if r.get("event_kind") in (APPROVED, CANCELLED)]
    if not decisive:
        return False
    decisive.sort(key=lambda r: str(r.get("created_at") or ""))
    return decisive[-1].get("event_kind") == APPROVED


def reconcile_on_signup(user_id: str, email: str, name: str, *, names: Optional["NameCache"] = None) -> DbResult:
    has_payments = check_email_has_payments(email)
    existing = profiles.get_profile(user_id)
    if existing.data:
        if bool(existing.data.get("is_subscriber")) == has_payments:
            return existing
        result = update_subscription_status(user_id, has_payments, names=names)
    else:
        result = profiles.create_profile(user_id, name, is_subscriber=has_payments, names=names)
    outcome = "success" if result.ok else "failed"
    record_subscription_change("signup", has_payments, outcome)
    if not result.ok:
        logger.error("signup reconciliation for %s failed: %s", user_id, result.error)
    return result
