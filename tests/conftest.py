"""
Pytest configuration file.

Sets up the Python path so test files can import from the python/ directory,
and provides an in-memory registry API served through httpx.MockTransport.
"""
import json
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

# Add python directory to path for all tests
_python_dir = Path(__file__).parent.parent / 'python'
_python_dir_abs = str(_python_dir.absolute())
if _python_dir_abs not in sys.path:
    sys.path.insert(0, _python_dir_abs)

os.environ.setdefault("SKIP_CONFIG_VALIDATION", "true")


def iso_days_ago(days: Optional[float]) -> Optional[str]:
    if days is None:
        return None
    moment = datetime.now(timezone.utc) - timedelta(days=days)
    return moment.isoformat().replace("+00:00", "Z")


class FakeRegistry:
    """Registry API double: serves images from memory and records deletion requests"""

    def __init__(self):
        self.images: Dict[str, List[Dict[str, Any]]] = {}
        self.requests: List[Tuple[str, str, Any]] = []
        self.delete_response: Optional[Tuple[int, Any]] = None
        self.read_failure: Optional[Tuple[int, Any]] = None
        self.raise_on_delete: Optional[Exception] = None

    def add_image(self, repository: str, digest: str, size: int = 1024, tag: Optional[str] = "latest",
                  pulled_days_ago: Optional[float] = None, pushed_days_ago: float = 400) -> None:
        self.images.setdefault(repository, []).append({
            "repositoryName": repository,
            "imageDigest": digest,
            "imageTag": tag or "",
            "imageSize": size,
            "imagePushedAt": iso_days_ago(pushed_days_ago),
            "lastPullDate": iso_days_ago(pulled_days_ago),
        })

    def deletion_requests(self) -> List[Tuple[str, Any]]:
        return [(path, body) for method, path, body in self.requests if method == "POST"]

    def _delete(self, repository: str, digests: List[str]) -> httpx.Response:
        if self.raise_on_delete is not None:
            raise self.raise_on_delete
        if self.delete_response is not None:
            status, body = self.delete_response
            return httpx.Response(status, json=body)
        remaining = [i for i in self.images.get(repository, []) if i["imageDigest"] not in digests]
        deleted = len(self.images.get(repository, [])) - len(remaining)
        self.images[repository] = remaining
        return httpx.Response(200, json={"message": f"Successfully deleted {deleted} images", "deleted": deleted})

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = None
        if request.content:
            body = json.loads(request.content)
        self.requests.append((request.method, request.url.path, body))

        path = request.url.path
        repository = request.url.params.get("repository")
        limit = int(request.url.params.get("limit", "10"))

        if request.method == "POST":
            if path in ("/api/images/delete", "/api/images/delete-by-date"):
                return self._delete(body["repositoryName"], body.get("imageDigests") or [])
            return httpx.Response(404, json={"error": "not found"})

        if self.read_failure is not None and path != "/health":
            status, payload = self.read_failure
            return httpx.Response(status, json=payload)

        if path == "/health":
            return httpx.Response(200, json={"status": "healthy"})
        if path == "/api/repositories":
            return httpx.Response(200, json=sorted(self.images))
        if path == "/api/global-stats":
            top = sorted(
                ({"name": name, "size": sum(i["imageSize"] for i in imgs), "imageCount": len(imgs)}
                 for name, imgs in self.images.items()),
                key=lambda r: r["size"], reverse=True,
            )
            return httpx.Response(200, json={
                "totalRepositories": len(self.images),
                "totalImages": sum(r["imageCount"] for r in top),
                "totalSize": sum(r["size"] for r in top),
                "topRepositoriesBySize": top,
            })
        if path == "/api/images":
            return httpx.Response(200, json=self.images.get(repository, []))
        if path == "/api/images/most-downloaded":
            pulled = [i for i in self.images.get(repository, []) if i["lastPullDate"]]
            pulled.sort(key=lambda i: i["lastPullDate"], reverse=True)
            return httpx.Response(200, json=pulled[:limit])
        if path == "/api/images/largest":
            largest = sorted(self.images.get(repository, []), key=lambda i: i["imageSize"], reverse=True)
            return httpx.Response(200, json=largest[:limit])
        return httpx.Response(404, json={"error": "not found"})


@pytest.fixture
def registry():
    return FakeRegistry()


@pytest.fixture
def transport(registry):
    return httpx.MockTransport(registry.handler)


@pytest.fixture
def fast_config():
    """Default configuration with every workflow delay set to zero"""
    from registry_console.config_manager import ConfigManager

    cm = ConfigManager(config_file="/nonexistent/config.yaml", validate=False)
    cm.config["api"]["url"] = "http://registry.test"
    cm.config["delete_by_date"].update({"settle_delay": 0, "display_delay": 0, "refresh_delay": 0})
    return cm
