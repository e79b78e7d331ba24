"""Payment-gateway webhook pipeline.

A delivery is parsed (JSON object, else URL-encoded form), classified into
either a :class:`PaymentEvent` or a :class:`TableMutation`, and then handled.
Gateways redeliver on any non-2xx answer, so ingestion is at-least-once:
every delivery appends a row, and each row carries a ``dedupe_key`` (hash of
the raw body) for downstream de-duplication. The subscriber flag write is
idempotent.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union
from urllib.parse import parse_qsl

from botocore.exceptions import BotoCoreError, ClientError

from promptreel.core.crypto import new_id, sha256_str
from promptreel.core.normalize import clean_email
from promptreel.core.settings import S
from promptreel.core.tables import T
from promptreel.core.time import now_iso
from promptreel.metrics import WEBHOOK_FAILURES
from promptreel.services.store import (
    CONDITION_FAILED,
    ddb_delete,
    ddb_put,
    ddb_scan_all,
    ddb_update_fields,
    error_code,
    error_message,
    matches,
    to_dynamo,
)
from promptreel.services.subscriptions import (
    activate_subscription_by_email,
    deactivate_subscription_by_email,
)

if TYPE_CHECKING:
    from promptreel.services.names import NameCache

logger = logging.getLogger(__name__)

PAYMENT_KEYS = frozenset({"evento", "transacao", "produto", "status", "compra", "payment", "order"})
TABLE_ACTIONS = ("insert", "update", "delete")
EMAIL_CONTAINERS = ("compra", "payment", "order", "customer", "buyer")

DEFAULT_EVENT_TYPE = "desconhecido"
DEFAULT_STATUS = "pendente"


class WebhookError(Exception):
    def __init__(self, status_code: int, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.extra = extra

    def body(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message, **self.extra}


class EventKind(str, Enum):
    APPROVED = "approved"
    CANCELLED = "cancelled"
    PENDING = "pending"
    UNKNOWN = "unknown"


_KIND_WORDS = (
    (EventKind.APPROVED, frozenset({"aprovada", "aprovado", "approved", "completed", "paid"})),
    (EventKind.CANCELLED, frozenset({"cancelada", "cancelado", "cancelled", "canceled"})),
    (EventKind.PENDING, frozenset({"pendente", "pending"})),
)
_NEGATIONS = frozenset({"not", "no", "nao", "não"})
_WORD_RE = re.compile(r"[^\W_]+")


def event_kind(event_type: Optional[str]) -> EventKind:
    """Classify an event type by whole words; a negated word does not count."""
    words = _WORD_RE.findall((event_type or "").lower())
    for kind, vocabulary in _KIND_WORDS:
        for i, word in enumerate(words):
            if word in vocabulary and (i == 0 or words[i - 1] not in _NEGATIONS):
                return kind
    return EventKind.UNKNOWN


@dataclass(frozen=True)
class PaymentEvent:
    id: str
    event_type: str
    kind: EventKind
    product: str
    transaction_id: str
    email: str
    status: str
    event_timestamp: str
    raw_payload: Dict[str, Any]
    dedupe_key: str
    created_at: str

    def to_item(self) -> Dict[str, Any]:
        item: Dict[str, Any] = {
            "id": self.id,
            "event_type": self.event_type,
            "event_kind": self.kind.value,
            "product": self.product,
            "transaction_id": self.transaction_id,
            "status": self.status,
            "event_timestamp": self.event_timestamp,
            "raw_payload": json.dumps(self.raw_payload, default=str),
            "dedupe_key": self.dedupe_key,
            "created_at": self.created_at,
        }
        # Index key attributes cannot be empty strings.
        if self.email:
            item["email"] = self.email
        return item


@dataclass(frozen=True)
class TableMutation:
    table: str
    action: str
    data: Optional[Dict[str, Any]] = None
    where: Optional[Dict[str, Any]] = field(default=None)


WebhookRequest = Union[PaymentEvent, TableMutation]


def parse_body(raw: str) -> Dict[str, Any]:
    echo = raw[: S.webhook_echo_chars] + ("..." if len(raw) > S.webhook_echo_chars else "")
    if not raw.strip():
        raise WebhookError(400, "Empty request body", received=echo)
    try:
        payload = json.loads(raw)
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        return payload
    try:
        pairs = parse_qsl(raw.strip(), keep_blank_values=True, strict_parsing=True)
    except ValueError:
        pairs = []
    if not pairs:
        raise WebhookError(400, "Invalid data format", received=echo)
    return dict(pairs)


def is_payment_payload(payload: Dict[str, Any]) -> bool:
    return bool(PAYMENT_KEYS & set(payload.keys()))


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def _first_text(payload: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = _text(payload.get(key))
        if value:
            return value
    return ""


def _find_email(payload: Dict[str, Any], depth: int = 2) -> str:
    email = _text(payload.get("email"))
    if email:
        return clean_email(email)
    if depth <= 0:
        return ""
    for key in EMAIL_CONTAINERS:
        nested = payload.get(key)
        if isinstance(nested, dict):
            email = _find_email(nested, depth - 1)
            if email:
                return email
    return ""


def normalize_payment_event(payload: Dict[str, Any], raw: str = "") -> PaymentEvent:
    event_type = _first_text(payload, "evento", "event", "event_type", "type")
    status = _text(payload.get("status"))
    return PaymentEvent(
        id=new_id(),
        event_type=event_type or DEFAULT_EVENT_TYPE,
        kind=event_kind(event_type),
        product=_first_text(payload, "produto", "product"),
        transaction_id=_first_text(payload, "transacao", "transaction_id", "transaction"),
        email=_find_email(payload),
        status=status or DEFAULT_STATUS,
        event_timestamp=_first_text(payload, "data", "date", "event_date") or now_iso(),
        raw_payload=payload,
        dedupe_key=sha256_str(raw or json.dumps(payload, sort_keys=True, default=str)),
        created_at=now_iso(),
    )


def parse_table_mutation(payload: Dict[str, Any]) -> TableMutation:
    table = _text(payload.get("table"))
    if not table:
        raise WebhookError(400, "Missing required field: table")
    if table not in T.by_name():
        raise WebhookError(400, f"Unknown table: {table}")

    action = (_text(payload.get("action")) or "insert").lower()
    if action not in TABLE_ACTIONS:
        raise WebhookError(400, f"Unsupported action: {action}")

    data = payload.get("data")
    where = payload.get("where")
    if action in ("insert", "update") and (not isinstance(data, dict) or not data):
        raise WebhookError(400, f"Missing required field: data (required for {action})")
    if action in ("update", "delete") and (not isinstance(where, dict) or not where):
        raise WebhookError(400, f"Missing required field: where (required for {action})")
    if action == "update" and not [k for k in data if k != "id"]:
        raise WebhookError(400, "data must contain fields other than id")
    return TableMutation(
        table=table,
        action=action,
        data=data if isinstance(data, dict) else None,
        where=where if isinstance(where, dict) else None,
    )


def classify_payload(payload: Dict[str, Any], raw: str = "") -> WebhookRequest:
    if is_payment_payload(payload):
        return normalize_payment_event(payload, raw)
    return parse_table_mutation(payload)


def _fallback_row(event: PaymentEvent, reason: str) -> Dict[str, Any]:
    row = {
        "id": new_id(),
        "source": "payment_event",
        "reason": reason[:500],
        "event_id": event.id,
        "event_type": event.event_type,
        "raw_payload": json.dumps(event.raw_payload, default=str),
        "dedupe_key": event.dedupe_key,
        "created_at": now_iso(),
    }
    if event.email:
        row["email"] = event.email
    return row


def persist_payment_event(event: PaymentEvent) -> str:
    """Append the event; returns the name of the table that took it.

    Falls back to the generic webhook log when the payments write fails.
    Raises only when both writes fail.
    """
    try:
        ddb_put(T.payments, event.to_item())
        return "payments"
    except (ClientError, BotoCoreError) as exc:
        WEBHOOK_FAILURES.labels(stage="persist").inc()
        logger.error("storing payment event %s failed, using webhook log: %s", event.id, exc)
        ddb_put(T.webhook_log, _fallback_row(event, error_message(exc)))
        return "webhook_log"


def dispatch_payment_event(event: PaymentEvent, *, names: Optional["NameCache"] = None) -> Optional[Dict[str, Any]]:
    """Apply the subscription side effect of an event. Never raises."""
    try:
        if event.kind is EventKind.APPROVED:
            return activate_subscription_by_email(event.email, names=names)
        if event.kind is EventKind.CANCELLED:
            return deactivate_subscription_by_email(event.email, names=names)
        if event.kind is EventKind.PENDING:
            logger.info("pending payment for %s, no subscription change", event.email or "<no email>")
        else:
            logger.info("ignoring webhook event type %r", event.event_type)
        return None
    except Exception as exc:
        WEBHOOK_FAILURES.labels(stage="dispatch").inc()
        logger.exception("subscription side effect for event %s failed", event.id)
        return {"success": False, "message": f"Subscription update failed: {exc}"}


def _target_ids(table: Any, where: Dict[str, Any]) -> List[str]:
    if set(where.keys()) == {"id"}:
        return [str(where["id"])]
    return [str(item["id"]) for item in ddb_scan_all(table) if "id" in item and matches(item, where)]


def apply_table_mutation(mutation: TableMutation, *, names: Optional["NameCache"] = None) -> Dict[str, Any]:
    table = T.by_name()[mutation.table]

    def touched(item_id: str) -> None:
        # Display names are derived from profile rows.
        if names is not None and mutation.table == "profiles":
            names.invalidate(item_id)

    if mutation.action == "insert":
        item = to_dynamo(dict(mutation.data or {}))
        item.setdefault("id", new_id())
        item.setdefault("created_at", now_iso())
        ddb_put(table, item)
        touched(str(item["id"]))
        return {"affected": 1, "data": item}

    where = to_dynamo(mutation.where or {})
    affected = 0
    if mutation.action == "update":
        fields = to_dynamo({k: v for k, v in (mutation.data or {}).items() if k != "id"})
        rows = []
        for item_id in _target_ids(table, where):
            try:
                rows.append(ddb_update_fields(table, item_id, fields))
            except ClientError as exc:
                if error_code(exc) != CONDITION_FAILED:
                    raise
                continue
            touched(item_id)
            affected += 1
        return {"affected": affected, "data": rows}

    for item_id in _target_ids(table, where):
        ddb_delete(table, item_id)
        touched(item_id)
        affected += 1
    return {"affected": affected, "data": None}
