from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from promptreel.auth.deps import get_current_user
from promptreel.core.normalize import normalize_youtube_url
from promptreel.core.settings import S
from promptreel.models import CommentCreateReq, User, VideoCreateReq
from promptreel.services import comments as comment_store
from promptreel.services import videos as video_store
from promptreel.services.audit import audit_event
from promptreel.services.comments import CommentThread
from promptreel.services.names import NameCache, NameResolver, get_name_cache

router = APIRouter(prefix="/api", tags=["videos"])

MAX_PROMPT_CHARS = 5000
MAX_COMMENT_CHARS = 2000


def _load_video(video_id: str):
    found = video_store.get_video(video_id)
    if not found.ok:
        raise HTTPException(500, found.error)
    if not found.data:
        raise HTTPException(404, "Video not found")
    return found.data


@router.get("/videos")
def list_videos(user: User = Depends(get_current_user), names: NameCache = Depends(get_name_cache)):
    found = video_store.list_videos()
    if not found.ok:
        raise HTTPException(500, found.error)
    rows = found.data or []
    total = len(rows)
    locked = not user.is_subscriber and total > S.preview_video_limit
    if not user.is_subscriber:
        rows = rows[: S.preview_video_limit]
    resolved = NameResolver(names).resolve_many((row["user_id"] for row in rows), user)
    return {
        "videos": [video_store.video_out(row, resolved[row["user_id"]]).model_dump() for row in rows],
        "total": total,
        "locked": locked,
        "is_subscriber": user.is_subscriber,
    }


@router.post("/videos")
def create_video(
    req: Request,
    body: VideoCreateReq,
    user: User = Depends(get_current_user),
    names: NameCache = Depends(get_name_cache),
):
    if not user.is_subscriber:
        raise HTTPException(403, "Only subscribers can post videos")
    url = normalize_youtube_url(body.youtube_url)
    prompt = body.prompt.strip()
    if not prompt:
        raise HTTPException(400, "Prompt required")
    if len(prompt) > MAX_PROMPT_CHARS:
        raise HTTPException(400, f"Prompt too long (max {MAX_PROMPT_CHARS} characters)")
    created = video_store.create_video(user.id, url, prompt)
    if not created.ok:
        raise HTTPException(500, created.error)
    audit_event("video_posted", user.id, req, outcome="success", video_id=created.data["id"])
    name = NameResolver(names).resolve(user.id, user)
    return {"video": video_store.video_out(created.data, name).model_dump()}


@router.get("/videos/{video_id}")
def get_video(video_id: str, user: User = Depends(get_current_user), names: NameCache = Depends(get_name_cache)):
    video = _load_video(video_id)
    name = NameResolver(names).resolve(video["user_id"], user)
    return {"video": video_store.video_out(video, name).model_dump()}


@router.get("/videos/{video_id}/comments")
def list_video_comments(
    video_id: str,
    user: User = Depends(get_current_user),
    names: NameCache = Depends(get_name_cache),
):
    thread = CommentThread(video_id, NameResolver(names), user)
    comments = thread.load()
    if thread.error:
        raise HTTPException(500, thread.error)
    return {
        "video_id": video_id,
        "state": thread.state.value,
        "comments": [c.model_dump() for c in comments],
    }


@router.post("/videos/{video_id}/comments")
def add_comment(
    req: Request,
    video_id: str,
    body: CommentCreateReq,
    user: User = Depends(get_current_user),
    names: NameCache = Depends(get_name_cache),
):
    text = body.text.strip()
    if not text:
        raise HTTPException(400, "Comment text required")
    if len(text) > MAX_COMMENT_CHARS:
        raise HTTPException(400, f"Comment too long (max {MAX_COMMENT_CHARS} characters)")
    _load_video(video_id)

    parent_id = (body.parent_id or "").strip() or None
    if parent_id:
        parent = comment_store.get_comment(parent_id)
        if not parent.ok:
            raise HTTPException(500, parent.error)
        if not parent.data or parent.data.get("video_id") != video_id:
            raise HTTPException(400, "Parent comment not found on this video")

    created = comment_store.create_comment(video_id, user.id, text, parent_id)
    if not created.ok:
        raise HTTPException(500, created.error)
    audit_event("comment_posted", user.id, req, outcome="success", video_id=video_id, reply=bool(parent_id))
    row = created.data
    return {
        "comment": {
            "id": row["id"],
            "text": row["text"],
            "user_id": row["user_id"],
            "user_name": NameResolver(names).resolve(user.id, user),
            "created_at": row["created_at"],
            "parent_id": row.get("parent_id"),
            "replies": [],
        }
    }


@router.delete("/comments/{comment_id}")
def delete_comment(req: Request, comment_id: str, user: User = Depends(get_current_user)):
    found = comment_store.get_comment(comment_id)
    if not found.ok:
        raise HTTPException(500, found.error)
    if not found.data:
        raise HTTPException(404, "Comment not found")
    if found.data.get("user_id") != user.id:
        raise HTTPException(403, "You can only delete your own comments")
    deleted = comment_store.delete_comment(comment_id)
    if not deleted.ok:
        raise HTTPException(500, deleted.error)
    audit_event("comment_deleted", user.id, req, outcome="success", comment_id=comment_id)
    return {"ok": True}
