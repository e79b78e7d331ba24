from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from fastapi import HTTPException

from .aws import ddb
from .settings import S

@dataclass(frozen=True)
class Tables:
    profiles: Any
    videos: Any
    comments: Any
    payments: Any
    webhook_log: Any

    def by_name(self) -> Dict[str, Any]:
        return {
            "profiles": self.profiles,
            "videos": self.videos,
            "comments": self.comments,
            "payments": self.payments,
            "webhook_log": self.webhook_log,
        }

T = Tables(
    profiles=ddb.Table(S.profiles_table_name),
    videos=ddb.Table(S.videos_table_name),
    comments=ddb.Table(S.comments_table_name),
    payments=ddb.Table(S.payments_table_name),
    webhook_log=ddb.Table(S.webhook_log_table_name),
)


def require_backend() -> None:
    missing = S.missing_backend_settings()
    if missing:
        raise HTTPException(500, "Backend not configured: missing " + ", ".join(missing))
