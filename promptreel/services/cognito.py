from __future__ import annotations

from typing import Any, Dict, List, Optional

import boto3
from fastapi import HTTPException

from promptreel.core.settings import S


def _cognito_region() -> str:
    region = S.cognito_region or S.aws_region
    if not region:
        raise HTTPException(500, "Cognito region not configured")
    return region


def _cognito_client_id() -> str:
    if not S.cognito_app_client_id:
        raise HTTPException(500, "Cognito app client id not configured")
    return S.cognito_app_client_id


def _cognito_pool_id() -> str:
    if not S.cognito_user_pool_id:
        raise HTTPException(500, "Cognito user pool id not configured")
    return S.cognito_user_pool_id


def cognito_client():
    return boto3.client("cognito-idp", region_name=_cognito_region())


def attributes_to_dict(attrs: Optional[List[Dict[str, str]]]) -> Dict[str, str]:
    return {a["Name"]: a.get("Value", "") for a in (attrs or []) if "Name" in a}


def cognito_sign_up(email: str, password: str, name: str, phone: Optional[str] = None) -> Dict[str, Any]:
    attrs = [{"Name": "email", "Value": email}, {"Name": "name", "Value": name}]
    if phone:
        attrs.append({"Name": "phone_number", "Value": phone})
    return cognito_client().sign_up(
        ClientId=_cognito_client_id(),
        Username=email,
        Password=password,
        UserAttributes=attrs,
    )


def cognito_sign_in(email: str, password: str) -> Dict[str, Any]:
    resp = cognito_client().initiate_auth(
        ClientId=_cognito_client_id(),
        AuthFlow="USER_PASSWORD_AUTH",
        AuthParameters={"USERNAME": email, "PASSWORD": password},
    )
    return resp.get("AuthenticationResult") or {}


def cognito_get_user(access_token: str) -> Dict[str, str]:
    resp = cognito_client().get_user(AccessToken=access_token)
    attrs = attributes_to_dict(resp.get("UserAttributes"))
    attrs.setdefault("sub", resp.get("Username", ""))
    return attrs


def cognito_sign_out(access_token: str) -> Dict[str, Any]:
    return cognito_client().global_sign_out(AccessToken=access_token)


def cognito_forgot_password(username: str) -> Dict[str, Any]:
    client = cognito_client()
    kwargs: Dict[str, Any] = {"ClientId": _cognito_client_id(), "Username": username}
    if S.password_reset_redirect_url:
        kwargs["ClientMetadata"] = {"redirect_to": S.password_reset_redirect_url}
    return client.forgot_password(**kwargs)


def cognito_confirm_forgot_password(username: str, code: str, new_password: str) -> Dict[str, Any]:
    client = cognito_client()
    return client.confirm_forgot_password(
        ClientId=_cognito_client_id(),
        Username=username,
        ConfirmationCode=code,
        Password=new_password,
    )


def cognito_list_users_by_email(email: str) -> List[Dict[str, Any]]:
    # First page only; Cognito caps a page at 60 users.
    limit = max(1, min(S.user_lookup_page_size, 60))
    escaped = email.replace("\\", "\\\\").replace('"', '\\"')
    resp = cognito_client().list_users(
        UserPoolId=_cognito_pool_id(),
        Filter=f'email = "{escaped}"',
        Limit=limit,
    )
    return resp.get("Users", [])
