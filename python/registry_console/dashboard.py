"""
Read-side views: repository list, global stats, per-repository dashboard and
image lists. Results are cached for `dashboard.cache_ttl` seconds and dropped
whenever a deletion emits the refresh signal.
"""

import asyncio
from typing import Any, Dict, List, Optional

from registry_console.cache_utils import TTLCache, cache_key
from registry_console.error_utils import ValidationError
from registry_console.format_utils import format_bytes
from registry_console.logging_utils import get_logger
from registry_console.registry_client import RegistryApiClient

logger = get_logger(__name__)

IMAGE_LIST_KINDS = ("all", "most-downloaded", "largest")


def filter_repositories(repositories: List[str], search: Optional[str]) -> List[str]:
    """Case-insensitive substring match; an empty search returns everything"""
    if not search:
        return list(repositories)
    needle = search.lower()
    return [repo for repo in repositories if needle in repo.lower()]


class DashboardService:
    def __init__(self, client: RegistryApiClient, cache_ttl: float = 300, top_limit: int = 5,
                 list_limit: int = 10):
        self.client = client
        self.top_limit = top_limit
        self.list_limit = list_limit
        self._cache = TTLCache(ttl_seconds=cache_ttl, max_size=256)

    async def repositories(self, search: Optional[str] = None) -> List[str]:
        key = cache_key("repositories")
        repos = self._cache.get(key)
        if repos is None:
            repos = await self.client.list_repositories()
            self._cache.set(key, repos)
        return filter_repositories(repos, search)

    async def global_stats(self, limit: Optional[int] = 20) -> Dict[str, Any]:
        """Global totals with `topRepositoriesBySize` cut to `limit` (None = all)"""
        if limit is not None and limit <= 0:
            raise ValidationError(f"limit must be positive, got: {limit}")

        key = cache_key("global-stats")
        stats = self._cache.get(key)
        if stats is None:
            stats = await self.client.get_global_stats()
            self._cache.set(key, stats)

        data = stats.to_api()
        if limit is not None:
            data["topRepositoriesBySize"] = data["topRepositoriesBySize"][:limit]
        data["totalSizeDisplay"] = format_bytes(stats.total_size)
        return data

    async def repository_stats(self, repository: str, limit: Optional[int] = None) -> Dict[str, Any]:
        """Totals plus the most recently pulled and largest images of one repository"""
        limit = limit or self.top_limit
        key = cache_key("stats", repository, limit=limit)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        images, most_downloaded, largest = await asyncio.gather(
            self.client.list_images(repository),
            self.client.most_downloaded(repository, limit),
            self.client.largest(repository, limit),
        )
        total_size = sum(image.size_bytes for image in images)
        stats = {
            "repository": repository,
            "totalImages": len(images),
            "totalSize": total_size,
            "totalSizeDisplay": format_bytes(total_size),
            "mostDownloaded": [image.to_display() for image in most_downloaded],
            "largest": [image.to_display() for image in largest],
        }
        self._cache.set(key, stats)
        return stats

    async def image_list(self, repository: str, kind: str = "all",
                         limit: Optional[int] = None) -> List[Dict[str, Any]]:
        if kind not in IMAGE_LIST_KINDS:
            raise ValidationError(
                f"Unknown image list type: {kind}",
                suggestions=[f"Use one of: {', '.join(IMAGE_LIST_KINDS)}"],
            )
        limit = limit or self.list_limit
        key = cache_key("images", repository, kind, limit=limit)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        if kind == "most-downloaded":
            images = await self.client.most_downloaded(repository, limit)
        elif kind == "largest":
            images = await self.client.largest(repository, limit)
        else:
            images = await self.client.list_images(repository)

        result = [image.to_display() for image in images]
        self._cache.set(key, result)
        return result

    def invalidate(self, repository: Optional[str] = None) -> None:
        """Refresh-signal subscriber. Global views are always dropped."""
        if repository is None:
            self._cache.clear()
            return
        removed = self._cache.invalidate_prefix(cache_key("stats", repository) + "|")
        removed += self._cache.invalidate_prefix(cache_key("images", repository) + "|")
        self._cache.remove(cache_key("repositories"))
        self._cache.remove(cache_key("global-stats"))
        logger.debug(f"Dropped {removed} cached views for {repository}")
