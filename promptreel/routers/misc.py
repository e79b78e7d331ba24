from __future__ import annotations

from fastapi import APIRouter

from promptreel.core.settings import S
from promptreel.core.tables import T
from promptreel.core.time import now_iso
from promptreel.services.store import check_table

router = APIRouter(tags=["misc"])

@router.get("/api/ping")
async def ping():
    return {"ok": True}

@router.get("/api/diagnostics/database")
def database_diagnostics():
    missing = S.missing_backend_settings()
    if missing:
        return {"ok": False, "configured": False, "missing": missing, "tables": {}, "checked_at": now_iso()}
    tables = {}
    for name, table in T.by_name().items():
        checked = check_table(table)
        tables[name] = {"ok": checked.ok, "error": checked.error, "code": checked.code}
    return {
        "ok": all(t["ok"] for t in tables.values()),
        "configured": True,
        "missing": [],
        "tables": tables,
        "checked_at": now_iso(),
    }
