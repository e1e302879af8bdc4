"""
Tests for the upload client's split, retry and completion behaviour.
"""

import json

import httpx
import pytest

from filevault.client import UploadClient, UploadFailed
from filevault.models import UploadState


def parse_multipart_fields(request: httpx.Request) -> dict:
    """Pull the plain form fields out of a multipart request body."""
    content_type = request.headers["content-type"]
    boundary = content_type.split("boundary=")[1].encode()
    fields = {}
    for part in request.content.split(b"--" + boundary):
        if b"\r\n\r\n" not in part:
            continue
        headers, _, body = part.partition(b"\r\n\r\n")
        body = body.rstrip(b"\r\n")
        name = headers.split(b'name="')[1].split(b'"')[0].decode()
        if b"filename=" in headers:
            fields[name] = body
        else:
            fields[name] = body.decode()
    return fields


class FakeServer:
    """In-memory stand-in for the upload API."""

    def __init__(self, fail_plan=None):
        # chunk index -> list of status codes (or "drop") to answer before succeeding
        self.fail_plan = {k: list(v) for k, v in (fail_plan or {}).items()}
        self.chunks = {}
        self.chunk_attempts = []
        self.completions = []
        self.small_uploads = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/files/chunk/":
            fields = parse_multipart_fields(request)
            index = int(fields["chunkIndex"])
            self.chunk_attempts.append(index)
            plan = self.fail_plan.get(index)
            if plan:
                outcome = plan.pop(0)
                if outcome == "drop":
                    raise httpx.ConnectError("connection reset", request=request)
                return httpx.Response(outcome, json={"code": outcome})
            self.chunks[index] = fields["file"]
            return httpx.Response(200, json={"status": "ok"})
        if path == "/api/files/complete/":
            body = json.loads(request.content)
            self.completions.append(body)
            data = b"".join(self.chunks[i] for i in range(body["totalChunks"]))
            return httpx.Response(200, json={
                "id": "f1",
                "original_filename": body["originalFilename"],
                "file_type": "application/octet-stream",
                "size": len(data),
                "uploaded_at": "2024-01-01T00:00:00",
                "file": "/api/files/f1/download/",
                "content": data.decode(),
            })
        if path == "/api/files/":
            self.small_uploads += 1
            return httpx.Response(200, json={"id": "small", "size": 3})
        return httpx.Response(404)


def make_client(server, **kwargs):
    sleeps = []
    client = UploadClient(
        "http://test/api",
        transport=httpx.MockTransport(server.handler),
        sleep=sleeps.append,
        **kwargs,
    )
    return client, sleeps


class TestUploadClient:
    """Test chunked upload with bounded retry."""

    def test_small_file_uses_direct_path(self):
        server = FakeServer()
        client, _ = make_client(server, chunk_size=4)
        record = client.upload_bytes(b"abc", "a.txt")
        assert record["id"] == "small"
        assert server.small_uploads == 1
        assert server.chunk_attempts == []

    def test_file_at_threshold_uses_direct_path(self):
        server = FakeServer()
        client, _ = make_client(server, chunk_size=3)
        client.upload_bytes(b"abc", "a.txt")
        assert server.small_uploads == 1

    def test_large_file_is_split_and_completed(self):
        server = FakeServer()
        client, sleeps = make_client(server, chunk_size=3)
        progress = []
        record = client.upload_bytes(
            b"AAABBBCC", "big.txt", file_id="fid", on_progress=lambda fid, pct: progress.append(pct)
        )
        assert server.chunks == {0: b"AAA", 1: b"BBB", 2: b"CC"}
        assert server.completions == [
            {"fileId": "fid", "originalFilename": "big.txt", "totalChunks": 3}
        ]
        assert record["content"] == "AAABBBCC"
        assert progress == [33, 67, 100, 100]
        assert sleeps == []
        assert client.states["fid"] == UploadState.SUCCEEDED
        assert not client.is_pending("fid")

    def test_transient_failures_are_retried_with_backoff(self):
        server = FakeServer(fail_plan={1: [503, "drop"]})
        client, sleeps = make_client(server, chunk_size=2, max_retries=3, backoff_seconds=1.0)
        record = client.upload_bytes(b"aabbcc", "f.bin", file_id="fid")
        assert server.chunk_attempts == [0, 1, 1, 1, 2]
        assert sleeps == [2.0, 4.0]
        assert record["content"] == "aabbcc"

    def test_retries_exhausted(self):
        server = FakeServer(fail_plan={0: [500, 500, 500]})
        client, sleeps = make_client(server, chunk_size=2, max_retries=3)
        with pytest.raises(UploadFailed) as exc_info:
            client.upload_bytes(b"aabb", "f.bin", file_id="fid")
        assert exc_info.value.chunk_index == 0
        assert exc_info.value.attempts == 3
        assert len(sleeps) == 2
        assert server.completions == []
        assert client.states["fid"] == UploadState.FAILED

    def test_client_errors_are_not_retried(self):
        server = FakeServer(fail_plan={0: [409]})
        client, sleeps = make_client(server, chunk_size=2)
        with pytest.raises(UploadFailed):
            client.upload_bytes(b"aabb", "f.bin")
        assert server.chunk_attempts == [0]
        assert sleeps == []

    def test_pending_state_is_tracked_per_file(self):
        server = FakeServer()
        client, _ = make_client(server, chunk_size=2)
        seen = []
        client.upload_bytes(
            b"aabb", "f.bin", file_id="one",
            on_progress=lambda fid, pct: seen.append((client.is_pending("one"), client.is_pending("two"))),
        )
        assert seen[0] == (True, False)
        assert not client.is_pending("one")
