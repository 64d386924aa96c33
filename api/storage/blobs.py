"""
Durable blob storage.

A put is one atomic replace of the whole value for a key: readers see either
the previous blob or the new one, never a partial write.

Backends:
- local:    one file per key under BLOB_DIRECTORY (temp file + os.replace)
- postgres: one row per key in `blobs` (single upsert statement)
"""

from __future__ import annotations

import asyncio
import mimetypes
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

from core import config, db


class BlobStoreError(RuntimeError):
    pass


@dataclass(frozen=True)
class Blob:
    key: str
    body: bytes
    content_type: str


class BlobStore(Protocol):
    async def put(self, key: str, body: bytes, *, content_type: str) -> None: ...

    async def get(self, key: str) -> Blob | None: ...


def _validate_key(key: str) -> str:
    if not key or not key.strip():
        raise BlobStoreError("Blob key is empty.")
    return key


def _local_filename(key: str) -> str:
    """
    Map a blob key to a single path segment inside the blob directory.

    Separators are percent-encoded, and a leading dot is encoded so keys can
    never name `.`, `..` or a hidden temp file.
    """
    name = quote(key, safe="")
    if name.startswith("."):
        name = "%2E" + name[1:]
    return name


class LocalBlobStore:
    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self.directory = Path(directory)

    async def put(self, key: str, body: bytes, *, content_type: str) -> None:
        key = _validate_key(key)
        await asyncio.to_thread(self._write, key, _local_filename(key), body)

    async def get(self, key: str) -> Blob | None:
        key = _validate_key(key)
        path = self.directory / _local_filename(key)
        try:
            body = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None
        content_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
        return Blob(key=key, body=body, content_type=content_type)

    def _write(self, key: str, filename: str, body: bytes) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            # Temp file in the same directory so os.replace stays on one filesystem.
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-")
        except OSError as exc:
            raise BlobStoreError(f"Could not prepare blob {key}: {exc}") from exc

        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(body)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.directory / filename)
        except OSError as exc:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise BlobStoreError(f"Could not write blob {key}: {exc}") from exc


class PostgresBlobStore:
    async def put(self, key: str, body: bytes, *, content_type: str) -> None:
        key = _validate_key(key)
        await db.execute(
            """
            INSERT INTO blobs (key, body, content_type)
            VALUES ($1, $2, $3)
            ON CONFLICT (key) DO UPDATE
            SET body = EXCLUDED.body,
                content_type = EXCLUDED.content_type,
                updated_at = now()
            """,
            key,
            body,
            content_type,
        )

    async def get(self, key: str) -> Blob | None:
        key = _validate_key(key)
        row = await db.fetch_one(
            "SELECT key, body, content_type FROM blobs WHERE key = $1",
            key,
        )
        if row is None:
            return None
        return Blob(key=str(row["key"]), body=bytes(row["body"]), content_type=str(row["content_type"]))


def get_blob_store() -> BlobStore:
    if config.blob_backend() == "postgres":
        return PostgresBlobStore()
    return LocalBlobStore(config.blob_directory())
