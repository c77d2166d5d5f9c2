"""
Commit engine: deletes an exact digest set and decodes the backend's answer.

The registry API answers a deletion with one of three shapes:

    200  {"message", "deleted"}                    everything requested went
    206  {"message", "deleted", "errors": [...]}   some digests failed
    4xx/5xx  {"error"}                             nothing was deleted

decode_deletion_response() turns any of them into a DeletionOutcome once, so
nothing downstream looks at status codes again. Transport failures and
timeouts become a Failed outcome as well. Nothing here retries.
"""

import re
from typing import Any, List, Optional, Sequence

from registry_console.error_utils import FetchError, ValidationError
from registry_console.format_utils import pluralize
from registry_console.logging_utils import get_logger
from registry_console.models import DeletionFailure, DeletionOutcome, DeletionStatus
from registry_console.registry_client import BackendResponse, RegistryApiClient

logger = get_logger(__name__)

HTTP_OK = 200
HTTP_PARTIAL_CONTENT = 206

# The registry API reports per-image failures as plain strings
_FAILURE_TEXT_RE = re.compile(r"^Failed to delete image (?P<digest>\S+): (?P<reason>.*)$", re.DOTALL)


def _to_int(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def parse_failure(entry: Any) -> DeletionFailure:
    """Decode one entry of a 206 `errors` list (object or backend string)"""
    if isinstance(entry, dict):
        reason = entry.get("reason") or entry.get("error") or entry.get("message") or "unknown error"
        return DeletionFailure(digest=entry.get("digest") or None, reason=str(reason))

    text = str(entry)
    match = _FAILURE_TEXT_RE.match(text)
    if match:
        return DeletionFailure(digest=match.group("digest"), reason=match.group("reason"))
    return DeletionFailure(digest=None, reason=text)


def decode_deletion_response(repository: str, requested: int, response: BackendResponse) -> DeletionOutcome:
    body = response.body if isinstance(response.body, dict) else {}
    message: Optional[str] = body.get("message")

    if response.status_code == HTTP_OK:
        return DeletionOutcome(
            repository=repository,
            requested=requested,
            deleted=_to_int(body.get("deleted")),
            message=message,
        )

    if response.status_code == HTTP_PARTIAL_CONTENT:
        failures = tuple(parse_failure(entry) for entry in body.get("errors") or [])
        return DeletionOutcome(
            repository=repository,
            requested=requested,
            deleted=_to_int(body.get("deleted")),
            failures=failures,
            message=message,
        )

    error = body.get("error") or f"Registry API returned HTTP {response.status_code}"
    return DeletionOutcome(
        repository=repository,
        requested=requested,
        deleted=0,
        failures=(DeletionFailure(digest=None, reason=str(error)),),
        message=str(error),
    )


class CommitEngine:
    """Sends explicit digest lists to the registry API"""

    def __init__(self, client: RegistryApiClient):
        self.client = client

    async def commit(self, repository: str, digests: Sequence[str], days_old: int) -> DeletionOutcome:
        """Delete exactly `digests` through the delete-by-date endpoint.

        `days_old` is the threshold the digests were previewed with; the
        backend honors the digest list and does not re-filter by date.
        """
        frozen = self._freeze(digests)
        logger.info(f"Deleting {pluralize(len(frozen), 'image')} from {repository} (older than {days_old} days)")
        try:
            response = await self.client.delete_by_date(repository, days_old, frozen)
        except FetchError as e:
            return self._transport_failure(repository, frozen, e)
        return self._log(decode_deletion_response(repository, len(frozen), response))

    async def delete_images(self, repository: str, digests: Sequence[str]) -> DeletionOutcome:
        """Delete exactly `digests` through the plain delete endpoint"""
        frozen = self._freeze(digests)
        logger.info(f"Deleting {pluralize(len(frozen), 'image')} from {repository}")
        try:
            response = await self.client.delete_images(repository, frozen)
        except FetchError as e:
            return self._transport_failure(repository, frozen, e)
        return self._log(decode_deletion_response(repository, len(frozen), response))

    @staticmethod
    def _freeze(digests: Sequence[str]) -> List[str]:
        frozen = list(dict.fromkeys(digests))
        if not frozen:
            raise ValidationError("No images selected for deletion")
        return frozen

    @staticmethod
    def _transport_failure(repository: str, digests: Sequence[str], error: FetchError) -> DeletionOutcome:
        logger.error(f"Deletion request for {repository} did not complete: {error.message}")
        return DeletionOutcome(
            repository=repository,
            requested=len(digests),
            deleted=0,
            failures=(DeletionFailure(digest=None, reason=error.message),),
            message=error.message,
        )

    @staticmethod
    def _log(outcome: DeletionOutcome) -> DeletionOutcome:
        if outcome.status is DeletionStatus.FULL:
            logger.info(f"✓ {outcome.summary()}")
        elif outcome.status is DeletionStatus.PARTIAL:
            logger.warning(f"⚠️  {outcome.summary()}")
            for failure in outcome.failures:
                logger.warning(f"   {failure.digest or '-'}: {failure.reason}")
        else:
            logger.error(outcome.summary())
        return outcome
