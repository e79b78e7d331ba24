from __future__ import annotations

import hashlib
import uuid


def sha256_str(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def new_id() -> str:
    return str(uuid.uuid4())
