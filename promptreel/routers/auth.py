from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from promptreel.auth.deps import optional_bearer_token
from promptreel.core.normalize import normalize_email, normalize_name
from promptreel.models import (
    PasswordResetConfirmReq,
    PasswordResetReq,
    SignInReq,
    SignOutReq,
    SignUpReq,
)
from promptreel.services import auth
from promptreel.services.audit import audit_event
from promptreel.services.names import NameCache, get_name_cache

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/signup")
def signup(req: Request, body: SignUpReq, names: NameCache = Depends(get_name_cache)):
    email = normalize_email(body.email)
    name = normalize_name(body.name)
    result = auth.sign_up(email, body.password, name, body.phone, names=names)
    if result.error:
        audit_event("signup", None, req, outcome="failure", reason=result.error)
        raise HTTPException(400, result.error)
    audit_event("signup", result.user.id, req, outcome="success", is_subscriber=result.user.is_subscriber)
    return result.public()


@router.post("/signin")
def signin(req: Request, body: SignInReq, names: NameCache = Depends(get_name_cache)):
    email = normalize_email(body.email)
    result = auth.sign_in(email, body.password, names=names)
    if result.error:
        audit_event("login", None, req, outcome="failure")
        raise HTTPException(401, result.error)
    audit_event("login", result.user.id, req, outcome="success")
    return result.public()


@router.post("/signout")
def signout(req: Request, body: SignOutReq):
    error = auth.sign_out(body.access_token)
    if error:
        raise HTTPException(400, error)
    audit_event("logout", None, req, outcome="success")
    return {"ok": True}


@router.post("/password-reset")
def password_reset(req: Request, body: PasswordResetReq):
    email = normalize_email(body.email)
    error = auth.reset_password(email)
    if error:
        raise HTTPException(400, error)
    audit_event("password_reset_requested", None, req, outcome="success")
    return {"ok": True, "message": "If the email is registered, a reset code was sent."}


@router.post("/password-reset/confirm")
def password_reset_confirm(req: Request, body: PasswordResetConfirmReq):
    email = normalize_email(body.email)
    error = auth.confirm_reset_password(email, body.confirmation_code.strip(), body.new_password)
    if error:
        raise HTTPException(400, error)
    audit_event("password_reset_confirmed", None, req, outcome="success")
    return {"ok": True}


@router.get("/session")
async def session(req: Request, names: NameCache = Depends(get_name_cache)):
    return await auth.bootstrap_session(optional_bearer_token(req), names=names)
