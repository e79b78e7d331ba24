from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from promptreel.core.tables import T
from promptreel.core.time import now_iso
from promptreel.models import User, extract_user_name
from promptreel.services.store import (
    CONDITION_FAILED,
    DbResult,
    db_result,
    ddb_get,
    ddb_put,
    ddb_update_fields,
    error_code,
    error_message,
)

if TYPE_CHECKING:
    from promptreel.services.names import NameCache

logger = logging.getLogger(__name__)

MUTABLE_FIELDS = ("name", "is_subscriber")


def _storage_failure(action: str, user_id: str, exc: Exception) -> DbResult:
    logger.warning("profile %s failed for %s: %s", action, user_id, exc)
    return DbResult(None, error_message(exc), error_code(exc))


def create_profile(
    user_id: str,
    name: str,
    *,
    is_subscriber: bool = False,
    names: Optional["NameCache"] = None,
) -> DbResult:
    ts = now_iso()
    item = {
        "id": user_id,
        "name": name,
        "is_subscriber": bool(is_subscriber),
        "created_at": ts,
        "updated_at": ts,
    }
    try:
        ddb_put(T.profiles, item, condition_expression="attribute_not_exists(id)")
    except ClientError as exc:
        if error_code(exc) == CONDITION_FAILED:
            return DbResult(None, "Profile already exists", CONDITION_FAILED)
        return _storage_failure("create", user_id, exc)
    except BotoCoreError as exc:
        return _storage_failure("create", user_id, exc)
    if names is not None:
        names.invalidate(user_id)
    logger.info("profile created for %s (subscriber=%s)", user_id, item["is_subscriber"])
    return DbResult(item)


@db_result
def get_profile(user_id: str) -> Optional[Dict[str, Any]]:
    return ddb_get(T.profiles, user_id)


def update_profile(user_id: str, updates: Dict[str, Any], *, names: Optional["NameCache"] = None) -> DbResult:
    fields = {k: v for k, v in updates.items() if k in MUTABLE_FIELDS}
    if not fields:
        return DbResult(None, "No profile fields to update")
    if "is_subscriber" in fields:
        fields["is_subscriber"] = bool(fields["is_subscriber"])
    fields["updated_at"] = now_iso()
    try:
        item = ddb_update_fields(T.profiles, user_id, fields)
    except ClientError as exc:
        if error_code(exc) == CONDITION_FAILED:
            return DbResult(None, "Profile not found", CONDITION_FAILED)
        return _storage_failure("update", user_id, exc)
    except BotoCoreError as exc:
        return _storage_failure("update", user_id, exc)
    if names is not None:
        names.invalidate(user_id)
    return DbResult(item)


def ensure_profile(user_id: str, email: str, name: Optional[str] = None, *, names: Optional["NameCache"] = None) -> DbResult:
    existing = get_profile(user_id)
    if not existing.ok or existing.data:
        return existing
    created = create_profile(user_id, name or email.split("@")[0] or "User", names=names)
    if created.code == CONDITION_FAILED:
        # Created concurrently by another request.
        return get_profile(user_id)
    return created


def enrich_user(user: User, *, names: Optional["NameCache"] = None) -> User:
    """Overlay the stored profile on an authenticated identity.

    Creates the profile when it is missing. Storage failures leave the
    identity untouched; this never raises.
    """
    found = get_profile(user.id)
    if found.data:
        if names is not None:
            names.invalidate(user.id)
        return user.with_profile(found.data)
    if not found.ok:
        logger.info("keeping basic identity for %s: %s", user.id, found.error)
        return user
    created = create_profile(
        user.id,
        extract_user_name(user),
        is_subscriber=user.is_subscriber,
        names=names,
    )
    if created.data:
        return user.with_profile(created.data)
    logger.warning("could not create profile for %s: %s", user.id, created.error)
    return user


def get_full_user_profile(user: User, *, names: Optional["NameCache"] = None) -> DbResult:
    found = ensure_profile(user.id, user.email, user.name, names=names)
    if not found.ok:
        return found
    if not found.data:
        return DbResult(None, "Profile not found")
    return DbResult(user.with_profile(found.data))
