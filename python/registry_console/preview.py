"""Preview engine: which images of a repository qualify for deletion by age"""

from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Tuple

from registry_console.format_utils import format_bytes, utc_now
from registry_console.logging_utils import get_logger
from registry_console.models import ImageRecord, PreviewResult
from registry_console.registry_client import RegistryApiClient

logger = get_logger(__name__)


def deletion_cutoff(threshold_days: int, now: datetime) -> datetime:
    return now - timedelta(days=threshold_days)


def is_deletion_candidate(image: ImageRecord, cutoff: datetime) -> bool:
    """Images never pulled are not candidates; push time is not used as a fallback."""
    return image.last_pull_at is not None and image.last_pull_at < cutoff


def select_candidates(
    images: Iterable[ImageRecord], threshold_days: int, now: datetime
) -> Tuple[ImageRecord, ...]:
    cutoff = deletion_cutoff(threshold_days, now)
    return tuple(image for image in images if is_deletion_candidate(image, cutoff))


class PreviewEngine:
    """Fetches a repository's full image list and filters it by last pull time"""

    def __init__(self, client: RegistryApiClient, clock: Optional[Callable[[], datetime]] = None):
        self.client = client
        self.clock = clock or utc_now

    async def preview(self, repository: str, threshold_days: int) -> PreviewResult:
        """Compute the deletion candidates for `repository`.

        Args:
            repository: Repository name
            threshold_days: Positive age cutoff in days (already coerced by the caller)

        Returns:
            PreviewResult with the frozen candidate set

        Raises:
            FetchError: if the image list cannot be fetched
            ValueError: if threshold_days is not a positive integer
        """
        if isinstance(threshold_days, bool) or not isinstance(threshold_days, int) or threshold_days <= 0:
            raise ValueError(f"threshold_days must be a positive integer, got: {threshold_days!r}")

        images = await self.client.list_images(repository)
        now = self.clock()
        candidates = select_candidates(images, threshold_days, now)
        total_bytes = sum(image.size_bytes for image in candidates)
        never_pulled = sum(1 for image in images if image.last_pull_at is None)

        logger.info(
            f"Preview {repository}: {len(candidates)}/{len(images)} images not pulled in "
            f"{threshold_days} days ({format_bytes(total_bytes)})"
        )
        if never_pulled:
            logger.debug(f"Preview {repository}: {never_pulled} never-pulled images excluded")

        return PreviewResult(
            repository=repository,
            threshold_days=threshold_days,
            candidates=candidates,
            total_bytes=total_bytes,
            computed_at=now,
        )
