"""
Upload client for the FileVault server.

Files at or below the chunk size go through the direct upload endpoint.
Larger files are split into fixed-size chunks, each posted with bounded
retry and exponential backoff, then completed with a single call.
"""

import argparse
import logging
import math
import sys
import time
import uuid
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import httpx

from filevault.config import settings
from filevault.models import UploadState

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int], None]


class UploadFailed(Exception):
    """A chunk could not be delivered within the retry budget."""

    def __init__(self, filename: str, chunk_index: int, attempts: int, cause: Exception):
        super().__init__(
            f"Failed to upload chunk {chunk_index} of {filename} after {attempts} attempts: {cause}"
        )
        self.filename = filename
        self.chunk_index = chunk_index
        self.attempts = attempts
        self.cause = cause


class UploadClient:
    """Client for chunked and direct file uploads."""

    def __init__(self, base_url: str = "http://localhost:8000/api",
                 chunk_size: int = settings.chunk_size_bytes,
                 max_retries: int = settings.max_chunk_retries,
                 backoff_seconds: float = settings.retry_backoff_seconds,
                 timeout: float = settings.request_timeout_seconds,
                 transport: Optional[httpx.BaseTransport] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.chunk_size = chunk_size
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._client = httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)
        # upload state per file id, so pending checks never compare unrelated fields
        self.states: Dict[str, UploadState] = {}

    def close(self):
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def is_pending(self, file_id: str) -> bool:
        return self.states.get(file_id) in (UploadState.ATTEMPTING, UploadState.RETRYING)

    def upload_file(self, path: Union[str, Path], file_id: Optional[str] = None,
                    on_progress: Optional[ProgressCallback] = None) -> dict:
        """
        Upload a file, choosing the direct or chunked path by size.

        Args:
            path: File to upload
            file_id: Session id to use for a chunked upload (random if omitted)
            on_progress: Called with (file_id, percent) after each chunk

        Returns:
            The server's FileRecord as a dict
        """
        path = Path(path)
        data = path.read_bytes()
        return self.upload_bytes(data, path.name, file_id=file_id, on_progress=on_progress)

    def upload_bytes(self, data: bytes, filename: str, file_id: Optional[str] = None,
                     on_progress: Optional[ProgressCallback] = None) -> dict:
        file_id = file_id or str(uuid.uuid4())
        self.states[file_id] = UploadState.ATTEMPTING
        try:
            if len(data) <= self.chunk_size:
                record = self._upload_small(data, filename)
            else:
                record = self._upload_chunked(data, filename, file_id, on_progress)
        except Exception:
            self.states[file_id] = UploadState.FAILED
            raise
        self.states[file_id] = UploadState.SUCCEEDED
        if on_progress:
            on_progress(file_id, 100)
        return record

    def _upload_small(self, data: bytes, filename: str) -> dict:
        response = self._client.post("/files/", files={"file": (filename, data)})
        response.raise_for_status()
        return response.json()

    def _upload_chunked(self, data: bytes, filename: str, file_id: str,
                        on_progress: Optional[ProgressCallback]) -> dict:
        total_chunks = math.ceil(len(data) / self.chunk_size)
        logger.info(f"Uploading {filename} as {total_chunks} chunks (session {file_id})")

        for chunk_index in range(total_chunks):
            start = chunk_index * self.chunk_size
            chunk = data[start:start + self.chunk_size]
            self._send_chunk(file_id, chunk_index, total_chunks, filename, chunk)
            if on_progress:
                on_progress(file_id, round((chunk_index + 1) * 100 / total_chunks))

        response = self._client.post("/files/complete/", json={
            "fileId": file_id,
            "originalFilename": filename,
            "totalChunks": total_chunks,
        })
        response.raise_for_status()
        return response.json()

    def _send_chunk(self, file_id: str, chunk_index: int, total_chunks: int,
                    filename: str, chunk: bytes) -> None:
        attempts = 0
        while True:
            try:
                response = self._client.post(
                    "/files/chunk/",
                    data={
                        "fileId": file_id,
                        "chunkIndex": str(chunk_index),
                        "totalChunks": str(total_chunks),
                        "originalFilename": filename,
                    },
                    files={"file": (filename, chunk)},
                )
                response.raise_for_status()
                self.states[file_id] = UploadState.ATTEMPTING
                return
            except httpx.HTTPStatusError as e:
                # 4xx means the chunk itself is bad; resending cannot help
                if e.response.status_code < 500:
                    raise UploadFailed(filename, chunk_index, attempts + 1, e) from e
                error = e
            except httpx.TransportError as e:
                error = e

            attempts += 1
            if attempts >= self.max_retries:
                raise UploadFailed(filename, chunk_index, attempts, error) from error
            self.states[file_id] = UploadState.RETRYING
            delay = self.backoff_seconds * (2 ** attempts)
            logger.warning(
                f"Chunk {chunk_index} of {filename} failed ({error}); retry {attempts} in {delay:.1f}s"
            )
            self._sleep(delay)

    def list_files(self) -> List[dict]:
        response = self._client.get("/files/")
        response.raise_for_status()
        return response.json()

    def delete_file(self, file_id: str) -> None:
        response = self._client.delete(f"/files/{file_id}/")
        response.raise_for_status()

    def download_file(self, file_id: str, dest: Union[str, Path]) -> Path:
        dest = Path(dest)
        with self._client.stream("GET", f"/files/{file_id}/download/") as response:
            response.raise_for_status()
            with open(dest, "wb") as f:
                for block in response.iter_bytes():
                    f.write(block)
        return dest


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="FileVault upload client")
    parser.add_argument("--server", default="http://localhost:8000/api", help="API base URL")
    sub = parser.add_subparsers(dest="command", required=True)

    upload = sub.add_parser("upload", help="Upload one or more files")
    upload.add_argument("paths", nargs="+")
    sub.add_parser("list", help="List stored files")
    delete = sub.add_parser("delete", help="Delete a stored file")
    delete.add_argument("file_id")
    download = sub.add_parser("download", help="Download a stored file")
    download.add_argument("file_id")
    download.add_argument("dest")

    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, settings.log_level.upper()))

    with UploadClient(args.server) as client:
        try:
            if args.command == "upload":
                for path in args.paths:
                    record = client.upload_file(
                        path, on_progress=lambda fid, pct: print(f"\r{path}: {pct}%", end="")
                    )
                    print(f"\n✓ {record['original_filename']} -> {record['id']} ({record['size']} bytes)")
            elif args.command == "list":
                for record in client.list_files():
                    print(f"{record['id']}  {record['size']:>12}  {record['uploaded_at']}  {record['original_filename']}")
            elif args.command == "delete":
                client.delete_file(args.file_id)
                print(f"✓ Deleted {args.file_id}")
            elif args.command == "download":
                dest = client.download_file(args.file_id, args.dest)
                print(f"✓ Saved to {dest}")
        except (UploadFailed, httpx.HTTPError) as e:
            print(f"✗ {e}", file=sys.stderr)
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
