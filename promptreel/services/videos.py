from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from promptreel.core.crypto import new_id
from promptreel.core.normalize import prompt_preview, youtube_embed_url
from promptreel.core.tables import T
from promptreel.core.time import now_iso
from promptreel.models import VideoOut
from promptreel.services.store import db_result, ddb_get, ddb_put, ddb_scan_all, sort_by_created

logger = logging.getLogger(__name__)


@db_result
def create_video(user_id: str, youtube_url: str, prompt: str) -> Dict[str, Any]:
    item = {
        "id": new_id(),
        "user_id": user_id,
        "youtube_url": youtube_url,
        "prompt": prompt,
        "created_at": now_iso(),
    }
    ddb_put(T.videos, item)
    logger.info("video %s posted by %s", item["id"], user_id)
    return item


@db_result
def list_videos() -> List[Dict[str, Any]]:
    return sort_by_created(ddb_scan_all(T.videos), newest_first=True)


@db_result
def get_video(video_id: str) -> Optional[Dict[str, Any]]:
    return ddb_get(T.videos, video_id)


def video_out(item: Dict[str, Any], user_name: str) -> VideoOut:
    prompt = str(item.get("prompt") or "")
    url = str(item.get("youtube_url") or "")
    return VideoOut(
        id=item["id"],
        user_id=item["user_id"],
        user_name=user_name,
        youtube_url=url,
        embed_url=youtube_embed_url(url),
        prompt=prompt,
        prompt_preview=prompt_preview(prompt),
        created_at=item.get("created_at"),
    )
