from __future__ import annotations

import logging
from typing import Any, Dict

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from promptreel.core.tables import require_backend
from promptreel.core.time import now_iso
from promptreel.metrics import WEBHOOK_EVENTS, WEBHOOK_FAILURES
from promptreel.services.audit import audit_event
from promptreel.services.names import NameCache, get_name_cache
from promptreel.services.store import error_message
from promptreel.services.webhook import (
    EventKind,
    PaymentEvent,
    TableMutation,
    WebhookError,
    apply_table_mutation,
    classify_payload,
    dispatch_payment_event,
    parse_body,
    persist_payment_event,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhook"])

EVENT_MESSAGES = {
    EventKind.APPROVED: "Approved payment recorded",
    EventKind.CANCELLED: "Cancelled payment recorded",
    EventKind.PENDING: "Pending payment recorded; no subscription change",
    EventKind.UNKNOWN: "Event recorded; no action for this event type",
}


def _handle_payment_event(req: Request, event: PaymentEvent, names: NameCache) -> Dict[str, Any]:
    stored_in = persist_payment_event(event)
    WEBHOOK_EVENTS.labels(kind="payment_event", event_kind=event.kind.value).inc()

    body: Dict[str, Any] = {
        "success": True,
        "message": EVENT_MESSAGES[event.kind],
        "kind": "payment_event",
        "event_id": event.id,
        "event_type": event.event_type,
        "event_kind": event.kind.value,
        "email": event.email or None,
        "stored_in": stored_in,
    }
    subscription = dispatch_payment_event(event, names=names)
    if subscription is not None:
        body["subscription"] = subscription
    body["processed_at"] = now_iso()

    audit_event(
        "webhook_payment_event",
        (subscription or {}).get("user_id"),
        req,
        outcome="success",
        event_kind=event.kind.value,
        event_type=event.event_type,
        stored_in=stored_in,
        subscription_updated=bool(subscription and subscription.get("success")),
    )
    return body


def _handle_table_mutation(mutation: TableMutation, names: NameCache) -> Dict[str, Any]:
    try:
        result = apply_table_mutation(mutation, names=names)
    except (ClientError, BotoCoreError) as exc:
        WEBHOOK_FAILURES.labels(stage="table_mutation").inc()
        logger.error("%s on %s failed: %s", mutation.action, mutation.table, exc)
        raise WebhookError(500, "Storage error", details=error_message(exc)) from exc
    WEBHOOK_EVENTS.labels(kind="table_mutation", event_kind=mutation.action).inc()
    return {
        "success": True,
        "message": f"{mutation.action} on {mutation.table} applied",
        "kind": "table_mutation",
        "table": mutation.table,
        "action": mutation.action,
        "affected": result["affected"],
        "data": result["data"],
        "processed_at": now_iso(),
    }


def _process_delivery(req: Request, raw: str, names: NameCache):
    try:
        payload = parse_body(raw)
        parsed = classify_payload(payload, raw)
        require_backend()
        if isinstance(parsed, PaymentEvent):
            return _handle_payment_event(req, parsed, names)
        return _handle_table_mutation(parsed, names)
    except WebhookError as exc:
        if exc.status_code < 500:
            WEBHOOK_FAILURES.labels(stage="validation").inc()
            logger.info("webhook rejected: %s", exc.message)
        return JSONResponse(exc.body(), status_code=exc.status_code)
    except HTTPException as exc:
        logger.error("webhook unavailable: %s", exc.detail)
        return JSONResponse({"success": False, "error": exc.detail}, status_code=exc.status_code)
    except Exception:
        WEBHOOK_FAILURES.labels(stage="unexpected").inc()
        logger.exception("webhook processing failed")
        return JSONResponse({"success": False, "error": "Internal server error"}, status_code=500)


@router.post("/api/webhook")
async def receive_webhook(req: Request, names: NameCache = Depends(get_name_cache)):
    raw = (await req.body()).decode("utf-8", errors="replace")
    return await run_in_threadpool(_process_delivery, req, raw, names)


def _method_not_allowed() -> JSONResponse:
    return JSONResponse(
        {"success": False, "error": "Method not allowed", "message": "This endpoint only accepts POST"},
        status_code=405,
        headers={"Allow": "POST"},
    )


@router.get("/api/webhook")
async def webhook_get():
    return _method_not_allowed()


@router.put("/api/webhook")
async def webhook_put():
    return _method_not_allowed()


@router.delete("/api/webhook")
async def webhook_delete():
    return _method_not_allowed()
