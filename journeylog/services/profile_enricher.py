import asyncio
import logging
from typing import Dict, Iterable, Optional

from pymongo.errors import PyMongoError

from journeylog.errors import NotFoundError, TransientIOError
from journeylog.schemas.profile import Profile

logger = logging.getLogger(__name__)


class _InFlight:

    def __init__(self, task: asyncio.Task) -> None:
        self.task = task
        self.waiters = 0


class ProfileEnricher:
    """Session-scoped profile cache with one outstanding lookup per user id.

    Concurrent ``resolve`` calls for the same uncached user share a single
    lookup task. Lookups that fail or find nothing resolve to the fallback
    profile, which stays cached for the session so a broken user record is
    not queried again. Timeouts also resolve to the fallback but are not
    cached, so the next call retries.
    """

    def __init__(self, user_repo, lookup_timeout: Optional[float] = None) -> None:
        self._user_repo = user_repo
        self._lookup_timeout = lookup_timeout
        self._cache: Dict[str, Profile] = {}
        self._inflight: Dict[str, _InFlight] = {}

    def cached(self, user_id: str) -> Optional[Profile]:
        return self._cache.get(user_id)

    @property
    def pending(self) -> int:
        return len(self._inflight)

    async def resolve(self, user_id: str) -> Profile:
        profile = self._cache.get(user_id)
        if profile is not None:
            return profile

        inflight = self._inflight.get(user_id)
        if inflight is None:
            inflight = _InFlight(asyncio.create_task(self._lookup(user_id)))
            self._inflight[user_id] = inflight

        inflight.waiters += 1
        try:
            # shield so one cancelled caller does not cancel the lookup for the others
            return await asyncio.shield(inflight.task)
        except asyncio.CancelledError:
            if inflight.waiters == 1 and not inflight.task.done():
                inflight.task.cancel()
                if self._inflight.get(user_id) is inflight:
                    del self._inflight[user_id]
            raise
        finally:
            inflight.waiters -= 1

    async def resolve_many(self, user_ids: Iterable[str]) -> Dict[str, Profile]:
        unique = list(dict.fromkeys(user_ids))
        profiles = await asyncio.gather(*(self.resolve(user_id) for user_id in unique))
        return dict(zip(unique, profiles))

    async def _lookup(self, user_id: str) -> Profile:
        cache = True
        try:
            if self._lookup_timeout:
                profile = await asyncio.wait_for(self._user_repo.get_profile(user_id), self._lookup_timeout)
            else:
                profile = await self._user_repo.get_profile(user_id)
        except NotFoundError:
            logger.warning("Profile %s not found, using fallback", user_id)
            profile = Profile.fallback(user_id)
        except asyncio.TimeoutError:
            logger.warning("Profile lookup for %s timed out, using fallback", user_id)
            profile = Profile.fallback(user_id)
            cache = False
        except (TransientIOError, PyMongoError):
            logger.warning("Profile lookup for %s failed, using fallback", user_id, exc_info=True)
            profile = Profile.fallback(user_id)
        finally:
            inflight = self._inflight.get(user_id)
            if inflight is not None and inflight.task is asyncio.current_task():
                del self._inflight[user_id]
        if cache:
            self._cache[user_id] = profile
        return profile

    async def close(self) -> None:
        """Cancel outstanding lookups and drop the cache."""
        tasks = [inflight.task for inflight in self._inflight.values()]
        self._inflight.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._cache.clear()
