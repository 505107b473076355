"""Tests for the remote store adapter and contents client."""

import base64
import json

import httpx
import pytest

from storesync.config import ContentsConfig
from storesync.errors import (
    ConfigurationError,
    ConflictError,
    NetworkError,
    NotFoundError,
    SerializationError,
    StoreError,
)
from storesync.remote import ContentsClient, RemoteStoreAdapter
from storesync.remote.adapter import decode_content, encode_content

from conftest import git_blob_sha

PATH = "public/settings.json"


class TestContentEncoding:
    """Tests for base64 JSON payload helpers."""

    def test_encode_is_pretty_json(self):
        """Test that encoded content is indented JSON."""
        encoded = encode_content({"branding": {"name": "X"}})
        text = base64.b64decode(encoded).decode("utf-8")

        assert text == json.dumps({"branding": {"name": "X"}}, indent=2)

    def test_encode_keeps_unicode(self):
        """Test that non-ASCII text is stored as UTF-8, not escaped."""
        encoded = encode_content({"currency": "₹"})
        text = base64.b64decode(encoded).decode("utf-8")

        assert "₹" in text

    def test_encode_rejects_unserializable(self):
        """Test that non-JSON values raise SerializationError."""
        with pytest.raises(SerializationError):
            encode_content({"when": object()})

    def test_decode_rejects_non_object(self):
        """Test that a JSON array is not accepted as a document."""
        data = {"encoding": "base64", "content": base64.b64encode(b"[1, 2]").decode()}

        with pytest.raises(SerializationError):
            decode_content(data)

    def test_decode_rejects_invalid_json(self):
        """Test that garbage content raises SerializationError."""
        data = {"encoding": "base64", "content": base64.b64encode(b"{nope").decode()}

        with pytest.raises(SerializationError):
            decode_content(data)

    def test_decode_rejects_unknown_encoding(self):
        """Test that only base64 payloads are decoded."""
        with pytest.raises(SerializationError):
            decode_content({"encoding": "none", "content": ""})


class TestContentsClient:
    """Tests for the HTTP layer."""

    def test_contents_url(self, contents_config):
        """Test URL construction for a document path."""
        client = ContentsClient(contents_config)

        assert client.contents_url("public/settings.json") == (
            "/repos/acme/store/contents/public/settings.json"
        )
        assert client.contents_url("/a b.json") == "/repos/acme/store/contents/a%20b.json"

    @pytest.mark.asyncio
    async def test_get_sends_auth_and_branch(self, contents_config, host):
        """Test that reads carry credentials and the branch ref."""
        host.seed(PATH, {"a": 1})
        client = ContentsClient(contents_config, transport=host.transport)

        await client.get_file(PATH)

        request = host.requests[0]
        assert request.headers["authorization"] == "Bearer test-token"
        assert request.headers["accept"] == "application/vnd.github.v3+json"
        assert request.headers["user-agent"] == "storesync"
        assert request.url.params["ref"] == "main"
        await client.close()

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, contents_config, host):
        """Test that a 404 is reported as absence."""
        client = ContentsClient(contents_config, transport=host.transport)

        assert await client.get_file(PATH) is None

    @pytest.mark.asyncio
    async def test_get_server_error_is_retried(self, contents_config, host):
        """Test that a transient 5xx on read is retried."""
        host.seed(PATH, {"a": 1})
        host.queued_statuses = [503]
        client = ContentsClient(contents_config, transport=host.transport)

        data = await client.get_file(PATH)

        assert data["sha"] == host.version(PATH)
        assert len(host.requests) == 2

    @pytest.mark.asyncio
    async def test_put_server_error_not_retried(self, contents_config, host):
        """Test that a 5xx on write is reported, not replayed."""
        host.queued_statuses = [502]
        client = ContentsClient(contents_config, transport=host.transport)

        with pytest.raises(StoreError) as exc_info:
            await client.put_file(PATH, {"message": "m", "content": "e30="})

        assert exc_info.value.status_code == 502
        assert len(host.requests) == 1

    @pytest.mark.asyncio
    async def test_put_missing_sha_is_conflict(self, contents_config, host):
        """Test that the host's 422 about a missing sha maps to ConflictError."""
        host.seed(PATH, {"a": 1})
        client = ContentsClient(contents_config, transport=host.transport)

        with pytest.raises(ConflictError):
            await client.put_file(PATH, {"message": "m", "content": "e30="})

    @pytest.mark.asyncio
    async def test_put_validation_error_is_store_error(self, contents_config):
        """Test that a 422 unrelated to the version is a plain StoreError."""

        def handler(request):
            return httpx.Response(422, json={"message": "content is not valid Base64"})

        client = ContentsClient(contents_config, transport=httpx.MockTransport(handler))

        with pytest.raises(StoreError) as exc_info:
            await client.put_file(PATH, {"message": "m", "content": "!!"})

        assert not isinstance(exc_info.value, ConflictError)
        assert exc_info.value.status_code == 422


class TestRemoteStoreAdapterRead:
    """Tests for reading documents."""

    @pytest.mark.asyncio
    async def test_read_returns_content_and_version(self, adapter, host):
        """Test reading a seeded document."""
        version = host.seed(PATH, {"branding": {"name": "X"}})

        document = await adapter.read()

        assert document.content == {"branding": {"name": "X"}}
        assert document.version == version
        assert document.path == PATH

    @pytest.mark.asyncio
    async def test_read_missing_raises_not_found(self, adapter):
        """Test that an absent document raises NotFoundError."""
        with pytest.raises(NotFoundError) as exc_info:
            await adapter.read()

        assert exc_info.value.kind == "not_found"

    @pytest.mark.asyncio
    async def test_read_corrupt_raises_serialization(self, adapter, host):
        """Test that undecodable content raises SerializationError."""
        host.files[PATH] = b"not json"

        with pytest.raises(SerializationError):
            await adapter.read()

    @pytest.mark.asyncio
    async def test_read_network_failure(self, contents_config):
        """Test that connection failures become NetworkError after retries."""
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("unreachable", request=request)

        adapter = RemoteStoreAdapter(contents_config, transport=httpx.MockTransport(handler))

        with pytest.raises(NetworkError):
            await adapter.read()

        assert len(calls) == contents_config.max_retries


class TestRemoteStoreAdapterWrite:
    """Tests for guarded writes and updates."""

    @pytest.mark.asyncio
    async def test_update_creates_missing_document(self, adapter, host):
        """Test that the first update creates the file without a version."""
        result = await adapter.update({"branding": {"name": "X"}})

        assert result.created is True
        assert result.version == host.version(PATH)
        assert result.commit == host.commits[0]["sha"]
        assert host.document(PATH) == {"branding": {"name": "X"}}
        assert "sha" not in json.loads(host.requests_by_method("PUT")[0].content)

    @pytest.mark.asyncio
    async def test_update_overwrites_with_probed_version(self, adapter, host):
        """Test that an update probes the current version and writes against it."""
        old_version = host.seed(PATH, {"v": 1})

        result = await adapter.update({"v": 2})

        put_body = json.loads(host.requests_by_method("PUT")[0].content)
        assert put_body["sha"] == old_version
        assert put_body["branch"] == "main"
        assert put_body["message"].startswith("Update settings via admin panel - ")
        assert result.created is False
        assert host.document(PATH) == {"v": 2}

    @pytest.mark.asyncio
    async def test_write_empty_version_creates(self, adapter, host):
        """Test that an empty expected version is treated as a create."""
        result = await adapter.write({"v": 1}, expected_version="")

        assert result.created is True
        assert "sha" not in json.loads(host.requests_by_method("PUT")[0].content)
        assert host.document(PATH) == {"v": 1}

    @pytest.mark.asyncio
    async def test_update_round_trip(self, adapter):
        """Test that read after update returns the written document."""
        document = {"countries": {"india": {"currency": {"symbol": "₹"}}}, "list": [1, 2]}

        result = await adapter.update(document)
        read_back = await adapter.read()

        assert read_back.content == document
        assert read_back.version == result.version

    @pytest.mark.asyncio
    async def test_sequential_versions_conflict(self, adapter, host):
        """Test that writing against a superseded version fails without overwriting."""
        v1 = (await adapter.update({"doc": 1})).version
        v2 = (await adapter.update({"doc": 2}, expected_version=v1)).version
        assert v2 != v1

        with pytest.raises(ConflictError) as exc_info:
            await adapter.update({"doc": 3}, expected_version=v1)

        assert exc_info.value.expected_version == v1
        assert exc_info.value.current_version == v2
        assert host.document(PATH) == {"doc": 2}
        assert len(host.commits) == 2

    @pytest.mark.asyncio
    async def test_write_with_stale_version_conflicts(self, adapter, host):
        """Test that the host's own version check surfaces as ConflictError."""
        stale = host.seed(PATH, {"v": 1})
        host.seed(PATH, {"v": 2})

        with pytest.raises(ConflictError):
            await adapter.write({"v": 3}, expected_version=stale)

        assert host.document(PATH) == {"v": 2}

    @pytest.mark.asyncio
    async def test_update_overwrites_corrupt_document(self, adapter, host):
        """Test that an undecodable stored document can be replaced."""
        host.files[PATH] = b"{broken"
        broken_version = git_blob_sha(b"{broken")

        await adapter.update({"fixed": True})

        assert json.loads(host.requests_by_method("PUT")[0].content)["sha"] == broken_version
        assert host.document(PATH) == {"fixed": True}

    @pytest.mark.asyncio
    async def test_custom_commit_message(self, adapter, host):
        """Test that an explicit commit message is used."""
        await adapter.update({"a": 1}, message="Reset to defaults")

        assert host.commits[0]["message"] == "Reset to defaults"

    @pytest.mark.asyncio
    async def test_write_unserializable_makes_no_request(self, adapter, host):
        """Test that encoding failures happen before the write is sent."""
        with pytest.raises(SerializationError):
            await adapter.write({"bad": {1, 2}})

        assert host.requests_by_method("PUT") == []


class TestRemoteStoreAdapterConfiguration:
    """Tests for missing configuration."""

    @pytest.mark.asyncio
    async def test_write_without_credentials_makes_no_request(self, host):
        """Test that an unconfigured adapter fails before any network call."""
        adapter = RemoteStoreAdapter(ContentsConfig(), transport=host.transport)

        with pytest.raises(ConfigurationError) as exc_info:
            await adapter.update({"branding": {"name": "X"}})

        assert set(exc_info.value.missing) == {"owner", "repo", "token"}
        assert len(host.requests) == 0

    @pytest.mark.asyncio
    async def test_partial_config_reports_missing_fields(self, host):
        """Test that only the unset fields are reported."""
        config = ContentsConfig(owner="acme", repo="store")
        adapter = RemoteStoreAdapter(config, transport=host.transport)

        with pytest.raises(ConfigurationError) as exc_info:
            await adapter.write({"a": 1})

        assert exc_info.value.missing == ["token"]
        assert exc_info.value.status_code == 500
        assert len(host.requests) == 0

    @pytest.mark.asyncio
    async def test_read_without_credentials(self, host):
        """Test that reads are also gated on configuration."""
        adapter = RemoteStoreAdapter(ContentsConfig(), transport=host.transport)

        with pytest.raises(ConfigurationError):
            await adapter.read()

        assert host.requests == []
