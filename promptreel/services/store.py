from __future__ import annotations

import functools
import json
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional

from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

MISSING_TABLE = "ResourceNotFoundException"
CONDITION_FAILED = "ConditionalCheckFailedException"


class DbResult(NamedTuple):
    """Outcome of a data-access call; storage failures land in ``error``."""

    data: Any
    error: Optional[str] = None
    code: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def missing_table(self) -> bool:
        return self.code == MISSING_TABLE


def error_code(exc: Exception) -> Optional[str]:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code")
    return None


def error_message(exc: Exception) -> str:
    if isinstance(exc, ClientError):
        err = exc.response.get("Error", {})
        return err.get("Message") or err.get("Code") or str(exc)
    return str(exc) or exc.__class__.__name__


def db_result(fn: Callable[..., Any]) -> Callable[..., DbResult]:
    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> DbResult:
        try:
            return DbResult(fn(*args, **kwargs))
        except (ClientError, BotoCoreError) as exc:
            logger.warning("%s failed: %s", fn.__name__, exc)
            return DbResult(None, error_message(exc), error_code(exc))
    return wrapper


def to_dynamo(value: Any) -> Any:
    # DynamoDB rejects floats; route everything through Decimal.
    return json.loads(json.dumps(value, default=str), parse_float=Decimal)


def ddb_get(table: Any, item_id: str) -> Optional[Dict[str, Any]]:
    return table.get_item(Key={"id": item_id}).get("Item")


def ddb_put(table: Any, item: Dict[str, Any], *, condition_expression: Optional[str] = None) -> None:
    kwargs: Dict[str, Any] = {"Item": item}
    if condition_expression:
        kwargs["ConditionExpression"] = condition_expression
    table.put_item(**kwargs)


def ddb_update_fields(table: Any, item_id: str, fields: Dict[str, Any], *, must_exist: bool = True) -> Dict[str, Any]:
    sets = []
    names: Dict[str, str] = {}
    values: Dict[str, Any] = {}
    for i, (key, value) in enumerate(fields.items()):
        names[f"#k{i}"] = key
        values[f":v{i}"] = value
        sets.append(f"#k{i} = :v{i}")
    kwargs: Dict[str, Any] = {
        "Key": {"id": item_id},
        "UpdateExpression": "SET " + ", ".join(sets),
        "ExpressionAttributeNames": names,
        "ExpressionAttributeValues": values,
        "ReturnValues": "ALL_NEW",
    }
    if must_exist:
        kwargs["ConditionExpression"] = "attribute_exists(id)"
    return table.update_item(**kwargs).get("Attributes", {})


def ddb_delete(table: Any, item_id: str) -> None:
    table.delete_item(Key={"id": item_id})


def ddb_query_eq(table: Any, index_name: str, attr: str, value: Any, *, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    kwargs: Dict[str, Any] = {
        "IndexName": index_name,
        "KeyConditionExpression": "#k = :v",
        "ExpressionAttributeNames": {"#k": attr},
        "ExpressionAttributeValues": {":v": value},
    }
    if limit:
        kwargs["Limit"] = limit
    items: List[Dict[str, Any]] = []
    while True:
        resp = table.query(**kwargs)
        items.extend(resp.get("Items", []))
        last = resp.get("LastEvaluatedKey")
        if not last or (limit and len(items) >= limit):
            return items
        kwargs["ExclusiveStartKey"] = last


def ddb_scan_all(table: Any) -> List[Dict[str, Any]]:
    kwargs: Dict[str, Any] = {}
    items: List[Dict[str, Any]] = []
    while True:
        resp = table.scan(**kwargs)
        items.extend(resp.get("Items", []))
        last = resp.get("LastEvaluatedKey")
        if not last:
            return items
        kwargs["ExclusiveStartKey"] = last


def matches(item: Dict[str, Any], where: Dict[str, Any]) -> bool:
    return all(item.get(k) == v for k, v in where.items())


def sort_by_created(items: Iterable[Dict[str, Any]], *, newest_first: bool = False) -> List[Dict[str, Any]]:
    return sorted(items, key=lambda x: str(x.get("created_at") or ""), reverse=newest_first)


@db_result
def check_table(table: Any) -> int:
    return len(table.scan(Limit=1).get("Items", []))
