from __future__ import annotations

import base64
import json
from functools import lru_cache
from typing import Any, Dict, Optional

import jwt
import requests
from fastapi import Depends, HTTPException, Request

from promptreel.core.settings import S
from promptreel.models import User
from promptreel.services.names import NameCache, get_name_cache
from promptreel.services.profiles import enrich_user


def _cognito_enabled() -> bool:
    return bool(S.cognito_user_pool_id and S.cognito_app_client_id)


def _cognito_issuer() -> str:
    region = S.cognito_region or S.aws_region
    return f"https://cognito-idp.{region}.amazonaws.com/{S.cognito_user_pool_id}"


@lru_cache(maxsize=1)
def _cognito_jwks() -> Dict[str, Any]:
    url = f"{_cognito_issuer()}/.well-known/jwks.json"
    resp = requests.get(url, timeout=10)
    resp.raise_for_status()
    return resp.json()


def _resolve_cognito_key(kid: str) -> Dict[str, Any]:
    keys = _cognito_jwks().get("keys", [])
    for key in keys:
        if key.get("kid") == kid:
            return key
    raise HTTPException(401, "Unknown Cognito key id")


def _decode_cognito_token(token: str) -> Dict[str, Any]:
    try:
        header = jwt.get_unverified_header(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(401, "Invalid token header") from exc

    key = _resolve_cognito_key(header.get("kid", ""))
    public_key = jwt.algorithms.RSAAlgorithm.from_jwk(json.dumps(key))
    # ID tokens carry `aud`; access tokens carry `client_id` instead.
    expected_use = S.cognito_expected_token_use
    try:
        payload = jwt.decode(
            token,
            public_key,
            algorithms=["RS256"],
            audience=S.cognito_app_client_id if expected_use == "id" else None,
            issuer=_cognito_issuer(),
            options={"verify_aud": expected_use == "id"},
        )
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(401, "Token expired") from exc
    except jwt.PyJWTError as exc:
        raise HTTPException(401, "Invalid token") from exc

    token_use = payload.get("token_use")
    if expected_use and token_use != expected_use:
        raise HTTPException(401, "Unexpected token use")
    if expected_use == "access" and payload.get("client_id") != S.cognito_app_client_id:
        raise HTTPException(401, "Token issued for another client")

    return payload


def _decode_jwt_claims(token: str) -> Dict[str, Any]:
    if token.count(".") != 2:
        return {}
    _, payload, _ = token.split(".", 2)
    if not payload:
        return {}
    padding = "=" * (-len(payload) % 4)
    try:
        decoded = base64.urlsafe_b64decode(payload + padding)
        data = json.loads(decoded.decode("utf-8"))
    except (ValueError, json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def extract_bearer_token(auth_header: Optional[str]) -> str:
    if not auth_header:
        raise HTTPException(401, "Missing Authorization header")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(401, "Invalid Authorization header")
    return token.strip()


def optional_bearer_token(request: Request) -> Optional[str]:
    auth = request.headers.get("authorization", "")
    scheme, _, token = auth.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _user_from_claims(claims: Dict[str, Any], fallback_sub: str = "") -> User:
    sub = claims.get("sub") or claims.get("cognito:username") or claims.get("username") or fallback_sub
    if not sub or not str(sub).strip():
        raise HTTPException(401, "Token missing subject")
    return User(
        id=str(sub),
        email=str(claims.get("email") or ""),
        name=claims.get("name") or claims.get("preferred_username") or None,
    )


def get_current_identity(request: Request) -> User:
    """
    Authenticated caller as a bare identity (no profile data yet).

    With Cognito configured the bearer token must be a valid pool token.
    Dev fallback: `x-user-sub` header, or `Authorization: Bearer <user_id | unsigned jwt>`.
    """
    if _cognito_enabled() and isinstance(request, Request):
        auth_header = request.headers.get("authorization", "")
        if not auth_header.lower().startswith("bearer "):
            raise HTTPException(401, "Missing bearer token")
        token = auth_header.split(" ", 1)[1].strip()
        return _user_from_claims(_decode_cognito_token(token))

    fallback_user = request.headers.get("x-user-sub")
    if fallback_user:
        return User(
            id=fallback_user,
            email=request.headers.get("x-user-email", ""),
            name=request.headers.get("x-user-name") or None,
        )

    token = extract_bearer_token(request.headers.get("authorization", ""))
    return _user_from_claims(_decode_jwt_claims(token), fallback_sub=token)


def get_current_user(
    identity: User = Depends(get_current_identity),
    names: NameCache = Depends(get_name_cache),
) -> User:
    """Authenticated caller with the stored profile (name, subscriber flag) applied."""
    return enrich_user(identity, names=names)
