from __future__ import annotations

import json
from typing import Any, Dict, Optional

from promptreel.core.normalize import client_ip_from_request
from promptreel.core.settings import S
from promptreel.core.time import now_ts


def audit_event(event: str, user_sub: Optional[str], request=None, **fields: Any) -> None:
    """One JSON line per security- or billing-relevant event, written to stdout."""
    if not S.audit_log_enabled:
        return
    payload: Dict[str, Any] = {"event": event, "user_sub": user_sub, "ts": now_ts(), **fields}
    if request is not None:
        payload["ip"] = client_ip_from_request(request)
        payload["user_agent"] = request.headers.get("user-agent", "")[:256]
    print(json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str))
