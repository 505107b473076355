"""Shared fixtures: an in-memory content host speaking the contents API."""

import base64
import hashlib
import json
from urllib.parse import unquote

import httpx
import pytest

from storesync.cache import LocalCache
from storesync.config import Config, ContentsConfig, SyncConfig
from storesync.remote import RemoteStoreAdapter


def git_blob_sha(data: bytes) -> str:
    """Version identifier the way git computes it for a blob."""
    return hashlib.sha1(b"blob %d\0" % len(data) + data).hexdigest()


class FakeContentsHost:
    """Minimal git-backed contents API.

    Files are stored as raw bytes; every accepted PUT appends a commit.
    PUT requires the current blob sha for existing files, like the real
    host does.
    """

    def __init__(self, owner: str = "acme", repo: str = "store"):
        self.prefix = f"/repos/{owner}/{repo}/contents/"
        self.files: dict[str, bytes] = {}
        self.commits: list[dict] = []
        self.requests: list[httpx.Request] = []
        self.queued_statuses: list[int] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(lambda request: self.handler(request))

    def seed(self, path: str, document) -> str:
        """Place a document directly, returning its version."""
        data = json.dumps(document, indent=2).encode("utf-8")
        self.files[path] = data
        return git_blob_sha(data)

    def document(self, path: str):
        return json.loads(self.files[path].decode("utf-8"))

    def version(self, path: str) -> str:
        return git_blob_sha(self.files[path])

    def requests_by_method(self, method: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if self.queued_statuses:
            status = self.queued_statuses.pop(0)
            return httpx.Response(status, json={"message": f"Injected failure {status}"})

        if not request.url.path.startswith(self.prefix):
            return httpx.Response(404, json={"message": "Not Found"})
        path = unquote(request.url.path[len(self.prefix):])

        if request.method == "GET":
            return self._get(path)
        if request.method == "PUT":
            return self._put(path, json.loads(request.content))
        return httpx.Response(405, json={"message": "Method Not Allowed"})

    def _get(self, path: str) -> httpx.Response:
        data = self.files.get(path)
        if data is None:
            return httpx.Response(404, json={"message": "Not Found"})

        encoded = base64.b64encode(data).decode("ascii")
        # The real host wraps base64 payloads at 60 columns
        wrapped = "\n".join(encoded[i:i + 60] for i in range(0, len(encoded), 60))
        return httpx.Response(
            200,
            json={
                "name": path.rsplit("/", 1)[-1],
                "path": path,
                "sha": git_blob_sha(data),
                "encoding": "base64",
                "content": wrapped,
            },
        )

    def _put(self, path: str, body: dict) -> httpx.Response:
        current = self.files.get(path)
        sha = body.get("sha")

        if current is not None and not sha:
            return httpx.Response(
                422,
                json={"message": 'Invalid request.\n\n"sha" wasn\'t supplied.'},
            )
        if current is not None and sha != git_blob_sha(current):
            return httpx.Response(409, json={"message": f"{path} does not match {sha}"})
        if current is None and sha:
            return httpx.Response(409, json={"message": f"{path} does not match {sha}"})

        data = base64.b64decode(body["content"])
        self.files[path] = data
        commit_sha = hashlib.sha1(
            f"{len(self.commits)}:{body.get('message')}".encode("utf-8")
        ).hexdigest()
        self.commits.append({
            "sha": commit_sha,
            "message": body.get("message"),
            "branch": body.get("branch"),
            "path": path,
        })

        return httpx.Response(
            201 if current is None else 200,
            json={
                "content": {"path": path, "sha": git_blob_sha(data)},
                "commit": {"sha": commit_sha, "message": body.get("message")},
            },
        )


@pytest.fixture
def host():
    """Create an empty fake content host."""
    return FakeContentsHost()


@pytest.fixture
def contents_config():
    """Complete content host configuration with fast retries."""
    return ContentsConfig(
        owner="acme",
        repo="store",
        token="test-token",
        max_retries=2,
        retry_backoff_seconds=0,
    )


@pytest.fixture
def adapter(contents_config, host):
    """Create an adapter talking to the fake host."""
    return RemoteStoreAdapter(contents_config, transport=host.transport)


@pytest.fixture
def config(contents_config):
    """Full application config around the fake host."""
    return Config(
        contents=contents_config,
        sync=SyncConfig(site_url="http://storefront.test", cache_path=":memory:"),
    )


@pytest.fixture
def cache():
    """Create an in-memory LocalCache."""
    cache = LocalCache(":memory:")
    cache.connect()
    yield cache
    cache.close()
