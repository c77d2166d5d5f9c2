"""
Data model for the registry console.

ImageRecord and GlobalStats mirror the registry API's JSON shapes (camelCase
on the wire, snake_case here). PreviewResult and DeletionOutcome are derived
values and are frozen once built.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from registry_console.error_utils import FatalDeletionError, PartialDeletionError
from registry_console.format_utils import format_absolute_date, format_bytes, pluralize
from registry_console.logging_utils import get_logger

# RFC 3339 fractions come with any precision (Go trims trailing zeros and keeps
# nanoseconds); older fromisoformat only takes exactly three or six digits
_FRACTION_RE = re.compile(r"\.(\d+)")

logger = get_logger(__name__)


def _normalise_fraction(match: "re.Match") -> str:
    return "." + match.group(1)[:6].ljust(6, "0")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an API timestamp into an aware UTC datetime.

    Accepts ISO/RFC 3339 strings (with 'Z' or an offset, any fractional
    precision) and epoch milliseconds. Naive values are taken as UTC.

    Returns:
        datetime or None if the value is empty or unparseable
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    elif isinstance(value, str):
        text = _FRACTION_RE.sub(_normalise_fraction, value.strip()).replace("Z", "+00:00").replace("z", "+00:00")
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning(f"Ignoring unparseable timestamp: {value!r}")
            return None
    else:
        logger.warning(f"Ignoring timestamp of unexpected type {type(value).__name__}: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class ImageRecord:
    """One image within a repository. `digest` is the deletion key."""

    digest: str
    tag: Optional[str] = None
    size_bytes: int = 0
    pushed_at: Optional[datetime] = None
    last_pull_at: Optional[datetime] = None
    repository: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ImageRecord":
        digest = data.get("imageDigest")
        if not digest:
            raise ValueError(f"Image record without imageDigest: {data!r}")
        return cls(
            digest=digest,
            tag=data.get("imageTag") or None,
            size_bytes=max(int(data.get("imageSize") or 0), 0),
            pushed_at=parse_timestamp(data.get("imagePushedAt")),
            last_pull_at=parse_timestamp(data.get("lastPullDate")),
            repository=data.get("repositoryName") or None,
        )

    def to_api(self) -> Dict[str, Any]:
        return {
            "repositoryName": self.repository,
            "imageDigest": self.digest,
            "imageTag": self.tag,
            "imageSize": self.size_bytes,
            "imagePushedAt": _isoformat(self.pushed_at),
            "lastPullDate": _isoformat(self.last_pull_at),
        }

    def to_display(self) -> Dict[str, Any]:
        """API shape plus preformatted fields for tables"""
        data = self.to_api()
        data["displayTag"] = self.tag or "untagged"
        data["displaySize"] = format_bytes(self.size_bytes)
        data["displayLastPull"] = format_absolute_date(self.last_pull_at)
        return data


@dataclass(frozen=True)
class RepositoryStats:
    name: str
    size: int
    image_count: int

    def to_api(self) -> Dict[str, Any]:
        return {"name": self.name, "size": self.size, "imageCount": self.image_count}


@dataclass(frozen=True)
class GlobalStats:
    total_repositories: int
    total_images: int
    total_size: int
    top_repositories_by_size: Tuple[RepositoryStats, ...] = ()

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "GlobalStats":
        top = data.get("topRepositoriesBySize") or []
        return cls(
            total_repositories=int(data.get("totalRepositories") or 0),
            total_images=int(data.get("totalImages") or 0),
            total_size=int(data.get("totalSize") or 0),
            top_repositories_by_size=tuple(
                RepositoryStats(
                    name=repo.get("name", ""),
                    size=int(repo.get("size") or 0),
                    image_count=int(repo.get("imageCount") or 0),
                )
                for repo in top
            ),
        )

    def to_api(self) -> Dict[str, Any]:
        return {
            "totalRepositories": self.total_repositories,
            "totalImages": self.total_images,
            "totalSize": self.total_size,
            "topRepositoriesBySize": [repo.to_api() for repo in self.top_repositories_by_size],
        }


@dataclass(frozen=True)
class PreviewResult:
    """Images that qualify for deletion at `threshold_days`, frozen when computed"""

    repository: str
    threshold_days: int
    candidates: Tuple[ImageRecord, ...]
    total_bytes: int
    computed_at: datetime

    @property
    def digests(self) -> Tuple[str, ...]:
        return tuple(image.digest for image in self.candidates)

    @property
    def count(self) -> int:
        return len(self.candidates)

    def is_empty(self) -> bool:
        return not self.candidates

    def to_api(self) -> Dict[str, Any]:
        return {
            "repository": self.repository,
            "thresholdDays": self.threshold_days,
            "count": self.count,
            "totalBytes": self.total_bytes,
            "totalSize": format_bytes(self.total_bytes),
            "computedAt": _isoformat(self.computed_at),
            "candidates": [image.to_display() for image in self.candidates],
        }


class DeletionStatus(Enum):
    FULL = "full"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True)
class DeletionFailure:
    """One image the backend could not delete. Synthetic failures have no digest."""

    digest: Optional[str]
    reason: str

    def to_api(self) -> Dict[str, Any]:
        return {"digest": self.digest, "reason": self.reason}


def classify_deletion(requested: int, deleted: int, failures: Iterable[DeletionFailure]) -> DeletionStatus:
    """Full iff everything requested was deleted with no failures; Failed iff nothing was deleted"""
    if deleted <= 0:
        return DeletionStatus.FAILED
    if deleted >= requested and not tuple(failures):
        return DeletionStatus.FULL
    return DeletionStatus.PARTIAL


@dataclass(frozen=True)
class DeletionOutcome:
    """Result of one commit attempt. Replaced, never updated, by a later attempt."""

    repository: str
    requested: int
    deleted: int
    failures: Tuple[DeletionFailure, ...] = ()
    message: Optional[str] = None
    status: DeletionStatus = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "status", classify_deletion(self.requested, self.deleted, self.failures))

    @property
    def failed_count(self) -> int:
        """Failures reported by the backend, or the shortfall when it reported none"""
        if self.status is DeletionStatus.FULL:
            return 0
        if self.status is DeletionStatus.FAILED:
            return self.requested
        return len(self.failures) or max(self.requested - self.deleted, 0)

    def summary(self) -> str:
        """One-line description of what was attempted and what happened"""
        if self.status is DeletionStatus.FULL:
            return f"Successfully deleted {pluralize(self.deleted, 'image')} from {self.repository}"
        if self.status is DeletionStatus.PARTIAL:
            return (
                f"Only {self.deleted} out of {self.requested} images were deleted from {self.repository}. "
                f"{pluralize(self.failed_count, 'image')} failed."
            )
        reason = self.failures[0].reason if self.failures else (self.message or "no images were deleted")
        return f"Failed to delete {pluralize(self.requested, 'image')} from {self.repository}: {reason}"

    def raise_for_status(self) -> None:
        """Raise PartialDeletionError / FatalDeletionError unless the deletion was complete"""
        if self.status is DeletionStatus.PARTIAL:
            raise PartialDeletionError(
                self.summary(),
                self,
                suggestions=["Preview again to see which images remain, then retry the deletion"],
            )
        if self.status is DeletionStatus.FAILED:
            raise FatalDeletionError(
                self.summary(),
                self,
                suggestions=["Check the registry API logs and permissions, then preview and retry"],
            )

    def to_api(self) -> Dict[str, Any]:
        return {
            "repository": self.repository,
            "status": self.status.value,
            "requested": self.requested,
            "deleted": self.deleted,
            "failed": self.failed_count,
            "failures": [failure.to_api() for failure in self.failures],
            "message": self.message,
            "summary": self.summary(),
        }
