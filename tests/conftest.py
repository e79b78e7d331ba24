from __future__ import annotations

import re
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from botocore.exceptions import ClientError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from promptreel.core.settings import S
from promptreel.core.tables import T
from promptreel.models import User
from promptreel.services.names import NameCache


def client_error(code: str, message: str = "", op: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message or code}}, op)


class FakeTable:
    """In-memory stand-in for a DynamoDB table keyed by ``id``."""

    def __init__(self, items: Optional[List[Dict[str, Any]]] = None) -> None:
        self.items: Dict[str, Dict[str, Any]] = {}
        self.fail_with: Optional[str] = None
        self.calls: List[str] = []
        for item in items or []:
            self.items[item["id"]] = dict(item)

    def _check(self, op: str) -> None:
        self.calls.append(op)
        if self.fail_with:
            raise client_error(self.fail_with, f"{op} failed", op)

    def get_item(self, *, Key: Dict[str, str], **_: Any) -> Dict[str, Any]:
        self._check("get_item")
        item = self.items.get(Key["id"])
        return {"Item": dict(item)} if item else {}

    def put_item(self, *, Item: Dict[str, Any], ConditionExpression: Optional[str] = None, **_: Any) -> Dict[str, Any]:
        self._check("put_item")
        exists = Item["id"] in self.items
        if ConditionExpression == "attribute_not_exists(id)" and exists:
            raise client_error("ConditionalCheckFailedException", "The conditional request failed", "PutItem")
        self.items[Item["id"]] = dict(Item)
        return {}

    def update_item(
        self,
        *,
        Key: Dict[str, str],
        UpdateExpression: str,
        ExpressionAttributeNames: Dict[str, str],
        ExpressionAttributeValues: Dict[str, Any],
        ConditionExpression: Optional[str] = None,
        **_: Any,
    ) -> Dict[str, Any]:
        self._check("update_item")
        item_id = Key["id"]
        if ConditionExpression == "attribute_exists(id)" and item_id not in self.items:
            raise client_error("ConditionalCheckFailedException", "The conditional request failed", "UpdateItem")
        item = self.items.setdefault(item_id, {"id": item_id})
        for name_ref, value_ref in re.findall(r"(#\w+) = (:\w+)", UpdateExpression):
            item[ExpressionAttributeNames[name_ref]] = ExpressionAttributeValues[value_ref]
        return {"Attributes": dict(item)}

    def delete_item(self, *, Key: Dict[str, str], **_: Any) -> Dict[str, Any]:
        self._check("delete_item")
        self.items.pop(Key["id"], None)
        return {}

    def query(
        self,
        *,
        IndexName: str,
        ExpressionAttributeNames: Dict[str, str],
        ExpressionAttributeValues: Dict[str, Any],
        **_: Any,
    ) -> Dict[str, Any]:
        self._check("query")
        attr = ExpressionAttributeNames["#k"]
        value = ExpressionAttributeValues[":v"]
        return {"Items": [dict(i) for i in self.items.values() if i.get(attr) == value]}

    def scan(self, *, Limit: Optional[int] = None, **_: Any) -> Dict[str, Any]:
        self._check("scan")
        items = [dict(i) for i in self.items.values()]
        return {"Items": items[:Limit] if Limit else items}


TABLE_FIELDS = ("profiles", "videos", "comments", "payments", "webhook_log")


@pytest.fixture
def tables():
    original = {name: getattr(T, name) for name in TABLE_FIELDS}
    fakes = {name: FakeTable() for name in TABLE_FIELDS}
    for name, fake in fakes.items():
        object.__setattr__(T, name, fake)
    yield fakes
    for name, table in original.items():
        object.__setattr__(T, name, table)


@pytest.fixture
def backend_settings():
    keys = ("aws_region", "cognito_user_pool_id", "cognito_app_client_id", "audit_log_enabled")
    original = {k: getattr(S, k) for k in keys}
    object.__setattr__(S, "aws_region", "us-east-1")
    object.__setattr__(S, "cognito_user_pool_id", "us-east-1_pool")
    object.__setattr__(S, "cognito_app_client_id", "client-123")
    object.__setattr__(S, "audit_log_enabled", False)
    yield S
    for k, v in original.items():
        object.__setattr__(S, k, v)


@pytest.fixture
def names():
    return NameCache()


@pytest.fixture
def cognito_users(monkeypatch):
    """Directory of Cognito users served to the email lookup."""
    from promptreel.services import subscriptions

    users: List[Dict[str, Any]] = []

    def list_users_by_email(email: str) -> List[Dict[str, Any]]:
        return [
            {
                "Username": u["sub"],
                "Attributes": [{"Name": "sub", "Value": u["sub"]}, {"Name": "email", "Value": u["email"]}],
            }
            for u in users
        ]

    monkeypatch.setattr(subscriptions, "cognito_list_users_by_email", list_users_by_email)
    return users


def make_user(user_id: str = "user-0001", **kwargs: Any) -> User:
    kwargs.setdefault("email", f"{user_id}@example.com")
    return User(id=user_id, **kwargs)
