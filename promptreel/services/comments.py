from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from promptreel.core.crypto import new_id
from promptreel.core.normalize import placeholder_name
from promptreel.core.settings import S
from promptreel.core.tables import T
from promptreel.core.time import now_iso
from promptreel.models import CommentOut, User
from promptreel.services.names import NameResolver
from promptreel.services.store import (
    DbResult,
    db_result,
    ddb_delete,
    ddb_get,
    ddb_put,
    ddb_query_eq,
    sort_by_created,
)

logger = logging.getLogger(__name__)


@db_result
def create_comment(video_id: str, user_id: str, text: str, parent_id: Optional[str] = None) -> Dict[str, Any]:
    item: Dict[str, Any] = {
        "id": new_id(),
        "video_id": video_id,
        "user_id": user_id,
        "text": text,
        "created_at": now_iso(),
    }
    if parent_id:
        item["parent_id"] = parent_id
    ddb_put(T.comments, item)
    return item


@db_result
def list_comments(video_id: str) -> List[Dict[str, Any]]:
    rows = ddb_query_eq(T.comments, S.comments_video_index, "video_id", video_id)
    return sort_by_created(rows)


@db_result
def get_comment(comment_id: str) -> Optional[Dict[str, Any]]:
    return ddb_get(T.comments, comment_id)


@db_result
def delete_comment(comment_id: str) -> None:
    ddb_delete(T.comments, comment_id)


def _thread_root(row: Dict[str, Any], by_id: Mapping[str, Dict[str, Any]], position: Mapping[str, int]) -> Dict[str, Any]:
    path = [row]
    while path[-1].get("parent_id"):
        parent = by_id.get(path[-1]["parent_id"])
        if parent is None:
            return path[-1]
        if parent in path:
            # Parent links loop; the oldest row of the loop leads the thread.
            loop = path[path.index(parent):]
            return min(loop, key=lambda r: position[r["id"]])
        path.append(parent)
    return path[-1]


def build_comment_tree(rows: List[Dict[str, Any]], names: Mapping[str, str]) -> List[CommentOut]:
    """Fold flat comment rows into roots with one level of replies.

    A reply to a reply is attached to the root of its thread, and a reply
    whose parent no longer exists becomes a root. Every row appears exactly
    once, in chronological order within its level.
    """
    ordered = sort_by_created(rows)
    by_id = {row["id"]: row for row in ordered}
    position = {row["id"]: i for i, row in enumerate(ordered)}
    nodes: Dict[str, CommentOut] = {}
    for row in ordered:
        nodes[row["id"]] = CommentOut(
            id=row["id"],
            text=row.get("text") or "",
            user_id=row["user_id"],
            user_name=names.get(row["user_id"]) or placeholder_name(row["user_id"]),
            created_at=row.get("created_at"),
            parent_id=row.get("parent_id"),
        )

    roots: List[CommentOut] = []
    for row in ordered:
        root = _thread_root(row, by_id, position)
        if root["id"] == row["id"]:
            roots.append(nodes[row["id"]])
        else:
            nodes[root["id"]].replies.append(nodes[row["id"]])
    return roots


class LoadState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class CommentThread:
    """Comments of one video for one viewing session."""

    def __init__(
        self,
        video_id: str,
        resolver: NameResolver,
        viewer: Optional[User] = None,
        *,
        fetch: Optional[Callable[[str], DbResult]] = None,
    ) -> None:
        self.video_id = video_id
        self.resolver = resolver
        self.viewer = viewer
        self.state = LoadState.IDLE
        self.comments: List[CommentOut] = []
        self.error: Optional[str] = None
        self._fetch = fetch or list_comments

    def load(self) -> List[CommentOut]:
        if self.state is LoadState.LOADED:
            return self.comments
        self.state = LoadState.LOADING
        self.error = None
        result = self._fetch(self.video_id)
        if not result.ok:
            logger.warning("loading comments for %s failed: %s", self.video_id, result.error)
            self.state = LoadState.FAILED
            self.error = result.error
            return []
        rows = result.data or []
        names = self.resolver.resolve_many((row["user_id"] for row in rows), self.viewer)
        self.comments = build_comment_tree(rows, names)
        self.state = LoadState.LOADED
        return self.comments
