from __future__ import annotations

import re
from typing import Optional

from fastapi import HTTPException

YOUTUBE_URL_RE = re.compile(r"^(https?://)?(www\.)?(youtube\.com/watch\?v=|youtu\.be/)([a-zA-Z0-9_-]{11})")
YOUTUBE_ID_RE = re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/)([^&\n?#]+)")

PROMPT_PREVIEW_CHARS = 80


def client_ip_from_request(req) -> str:
    xff = req.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    return req.client.host if req.client else "0.0.0.0"


def clean_email(s: Optional[str]) -> str:
    return (s or "").strip().lower()


def normalize_email(s: str) -> str:
    s = clean_email(s)
    if "@" not in s or len(s) > 254:
        raise HTTPException(400, "Invalid email")
    return s


def normalize_name(s: Optional[str], *, max_len: int = 80) -> str:
    name = (s or "").strip()
    if not name:
        raise HTTPException(400, "Name required")
    if len(name) > max_len:
        raise HTTPException(400, f"Name too long (max {max_len})")
    return name


def normalize_youtube_url(s: str) -> str:
    url = (s or "").strip()
    if not YOUTUBE_URL_RE.match(url):
        raise HTTPException(400, "Invalid YouTube URL")
    return url


def youtube_video_id(url: str) -> Optional[str]:
    m = YOUTUBE_ID_RE.search(url or "")
    return m.group(1) if m else None


def youtube_embed_url(url: str) -> Optional[str]:
    video_id = youtube_video_id(url)
    if not video_id:
        return None
    return f"https://www.youtube-nocookie.com/embed/{video_id}?rel=0&modestbranding=1&controls=1"


def prompt_preview(prompt: str) -> str:
    if len(prompt) > PROMPT_PREVIEW_CHARS:
        return prompt[:PROMPT_PREVIEW_CHARS] + "..."
    return prompt


def placeholder_name(user_id: str) -> str:
    return f"User {user_id[-4:]}"
