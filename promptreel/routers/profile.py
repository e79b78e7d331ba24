from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from promptreel.auth.deps import get_current_identity, get_current_user
from promptreel.core.normalize import normalize_name
from promptreel.models import ProfilePatchReq, User
from promptreel.services.audit import audit_event
from promptreel.services.names import NameCache, NameResolver, get_name_cache
from promptreel.services.profiles import get_full_user_profile, update_profile
from promptreel.services.subscriptions import check_subscription_status

router = APIRouter(prefix="/api", tags=["profile"])


@router.get("/profile")
def get_profile(user: User = Depends(get_current_user), names: NameCache = Depends(get_name_cache)):
    found = get_full_user_profile(user, names=names)
    if not found.ok:
        raise HTTPException(500, found.error)
    return {"profile": found.data.public()}


@router.patch("/profile")
def patch_profile(
    req: Request,
    body: ProfilePatchReq,
    user: User = Depends(get_current_user),
    names: NameCache = Depends(get_name_cache),
):
    name = normalize_name(body.name)
    updated = update_profile(user.id, {"name": name}, names=names)
    if not updated.ok:
        raise HTTPException(404 if updated.error == "Profile not found" else 500, updated.error)
    audit_event("profile_update", user.id, req, outcome="success")
    return {
        "profile": user.with_profile(updated.data).public(),
        "display_name": NameResolver(names).refresh(user.id),
    }


@router.get("/profile/subscription")
def get_subscription(identity: User = Depends(get_current_identity)):
    return {"user_id": identity.id, "is_subscriber": check_subscription_status(identity.id)}


@router.get("/users/{user_id}/name")
def get_user_name(
    user_id: str,
    user: User = Depends(get_current_user),
    names: NameCache = Depends(get_name_cache),
):
    return {"user_id": user_id, "name": NameResolver(names).resolve(user_id, user)}
