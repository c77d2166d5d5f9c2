"""
Async client for the registry REST API.

Read endpoints return decoded models and raise FetchError on transport
failures or non-success statuses. The two delete endpoints return the raw
status and JSON body instead: their 200/206/error branching is decoded in
exactly one place, the commit engine.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import httpx

from registry_console.error_utils import FetchError, create_backend_connection_error
from registry_console.logging_utils import get_logger
from registry_console.models import GlobalStats, ImageRecord

logger = get_logger(__name__)


@dataclass(frozen=True)
class BackendResponse:
    """Status code and parsed JSON body (None when the body was not JSON)"""

    status_code: int
    body: Any


class RegistryApiClient:
    """Thin async wrapper around the registry API endpoints"""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )

    async def __aenter__(self) -> "RegistryApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Transport ──────────────────────────────────────────────────────────────

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {type(e).__name__}: {e}")
            raise create_backend_connection_error(self.base_url, e) from e

    @staticmethod
    def _parse_body(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    def _expect_json(self, response: httpx.Response, action: str) -> Any:
        """Return the JSON body of a successful response, else raise FetchError"""
        body = self._parse_body(response)
        if response.is_success and body is not None:
            return body

        if isinstance(body, dict) and body.get("error"):
            message = f"Failed to {action}: {body['error']}"
        elif response.is_success:
            message = f"Failed to {action}: response was not valid JSON"
        else:
            message = f"Failed to {action}: HTTP {response.status_code}"
        raise FetchError(message, status_code=response.status_code, url=str(response.request.url))

    @staticmethod
    def _decode_images(data: Any, action: str) -> List[ImageRecord]:
        try:
            return [ImageRecord.from_api(item) for item in data]
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning(f"Malformed image record while trying to {action}: {e}")
            raise FetchError(
                f"Failed to {action}: malformed record ({e})",
                suggestions=["Check that the registry API version matches this console"],
            ) from e

    # ── Reads ──────────────────────────────────────────────────────────────────

    async def list_repositories(self) -> List[str]:
        response = await self._request("GET", "/api/repositories")
        return list(self._expect_json(response, "fetch repositories") or [])

    async def get_global_stats(self) -> GlobalStats:
        response = await self._request("GET", "/api/global-stats")
        data = self._expect_json(response, "fetch global stats")
        try:
            return GlobalStats.from_api(data)
        except (AttributeError, TypeError, ValueError) as e:
            raise FetchError(f"Failed to fetch global stats: malformed response ({e})") from e

    async def list_images(self, repository: str) -> List[ImageRecord]:
        """Full, unpaginated image listing for one repository"""
        response = await self._request("GET", "/api/images", params={"repository": repository})
        data = self._expect_json(response, "fetch images") or []
        return self._decode_images(data, "fetch images")

    async def most_downloaded(self, repository: str, limit: int = 10) -> List[ImageRecord]:
        """Images ordered by most recent pull"""
        response = await self._request(
            "GET", "/api/images/most-downloaded", params={"repository": repository, "limit": limit}
        )
        data = self._expect_json(response, "fetch most downloaded images") or []
        return self._decode_images(data, "fetch most downloaded images")

    async def largest(self, repository: str, limit: int = 10) -> List[ImageRecord]:
        response = await self._request(
            "GET", "/api/images/largest", params={"repository": repository, "limit": limit}
        )
        data = self._expect_json(response, "fetch largest images") or []
        return self._decode_images(data, "fetch largest images")

    async def health(self) -> Dict[str, Any]:
        response = await self._request("GET", "/health")
        return self._expect_json(response, "check registry API health")

    # ── Deletes (raw responses) ────────────────────────────────────────────────

    async def delete_images(self, repository: str, digests: Sequence[str]) -> BackendResponse:
        payload = {"repositoryName": repository, "imageDigests": list(digests)}
        response = await self._request("POST", "/api/images/delete", json=payload)
        return BackendResponse(response.status_code, self._parse_body(response))

    async def delete_by_date(
        self, repository: str, days_old: int, digests: Optional[Sequence[str]] = None
    ) -> BackendResponse:
        """Delete by age; when `digests` is given the backend deletes exactly those"""
        payload: Dict[str, Any] = {"repositoryName": repository, "daysOld": days_old}
        if digests is not None:
            payload["imageDigests"] = list(digests)
        response = await self._request("POST", "/api/images/delete-by-date", json=payload)
        return BackendResponse(response.status_code, self._parse_body(response))
