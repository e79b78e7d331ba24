from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, Optional

from fastapi import Request

from promptreel.core.normalize import placeholder_name
from promptreel.metrics import NAME_CACHE_LOOKUPS
from promptreel.models import User, extract_user_name
from promptreel.services import profiles
from promptreel.services.store import DbResult

logger = logging.getLogger(__name__)


class NameCache:
    """Display names keyed by user id.

    Entries never expire; profile create/update paths call ``invalidate``.
    One instance lives on ``app.state`` for the lifetime of the process.
    """

    def __init__(self) -> None:
        self._names: Dict[str, str] = {}

    def get(self, user_id: str) -> Optional[str]:
        return self._names.get(user_id)

    def set(self, user_id: str, name: str) -> None:
        self._names[user_id] = name

    def invalidate(self, user_id: str) -> None:
        if self._names.pop(user_id, None) is not None:
            logger.debug("name cache invalidated for %s", user_id)

    def clear(self) -> None:
        self._names.clear()

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._names

    def __len__(self) -> int:
        return len(self._names)


class NameResolver:
    def __init__(
        self,
        cache: NameCache,
        *,
        fetch_profile: Optional[Callable[[str], DbResult]] = None,
        create_profile: Optional[Callable[..., DbResult]] = None,
    ) -> None:
        self.cache = cache
        self._fetch_profile = fetch_profile or profiles.get_profile
        self._create_profile = create_profile or profiles.create_profile

    def resolve(self, user_id: str, viewer: Optional[User] = None) -> str:
        if viewer is not None and viewer.id == user_id:
            # Local to this viewer; the shared cache only holds stored names.
            return viewer.name or (viewer.email.split("@")[0] if viewer.email else "") or "You"
        return self.name_for_id(user_id, caller=viewer)

    def resolve_many(self, user_ids: Iterable[str], viewer: Optional[User] = None) -> Dict[str, str]:
        return {user_id: self.resolve(user_id, viewer) for user_id in dict.fromkeys(user_ids)}

    def name_for_id(self, user_id: str, caller: Optional[User] = None) -> str:
        cached = self.cache.get(user_id)
        if cached is not None:
            NAME_CACHE_LOOKUPS.labels(result="hit").inc()
            return cached
        NAME_CACHE_LOOKUPS.labels(result="miss").inc()

        found = self._fetch_profile(user_id)
        if found.data:
            name = found.data.get("name") or placeholder_name(user_id)
            self.cache.set(user_id, name)
            return name

        if found.missing_table:
            logger.warning("profiles table missing, using placeholder for %s", user_id)
            name = placeholder_name(user_id)
            self.cache.set(user_id, name)
            return name

        if not found.ok:
            # Transient failure: answer with the placeholder but let the next call retry.
            return placeholder_name(user_id)

        if caller is not None and caller.id == user_id:
            name = extract_user_name(caller)
            created = self._create_profile(user_id, name, is_subscriber=False, names=self.cache)
            if created.data:
                name = created.data.get("name") or name
            else:
                logger.warning("auto-provision failed for %s: %s", user_id, created.error)
            self.cache.set(user_id, name)
            return name

        name = placeholder_name(user_id)
        self.cache.set(user_id, name)
        return name

    def refresh(self, user_id: str, viewer: Optional[User] = None) -> str:
        self.cache.invalidate(user_id)
        return self.resolve(user_id, viewer)


def get_name_cache(request: Request) -> NameCache:
    return request.app.state.name_cache
