"""
Streams a session directory to the client as a zip and reclaims it afterwards.
"""

import asyncio
import logging
import zipfile
from pathlib import Path
from typing import List

import aiofiles
from aiohttp import web

from config import ARCHIVE_CHUNK_SIZE, ARCHIVE_FILENAME
from errors import ArchiveNotFoundError
from sessions import SessionStore
from utils import format_file_size, list_directory_files

logger = logging.getLogger(__name__)


class _ChunkSink:
    """Write-only file object that buffers zip output until drained."""

    def __init__(self) -> None:
        self._chunks: List[bytes] = []

    def write(self, data: bytes) -> int:
        self._chunks.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


class ArchivePackager:
    """Serves ``GET /download/{session_id}``."""

    def __init__(self, store: SessionStore, chunk_size: int = ARCHIVE_CHUNK_SIZE):
        self.store = store
        self.chunk_size = chunk_size

    async def stream(self, request: web.Request, session_id: str) -> web.StreamResponse:
        directory = self.store.path_for(session_id)
        if directory is None:
            raise ArchiveNotFoundError(f"Session {session_id} expired or invalid")

        files = list_directory_files(directory)
        response = web.StreamResponse(
            headers={
                "Content-Type": "application/zip",
                "Content-Disposition": f'attachment; filename="{ARCHIVE_FILENAME}"',
            }
        )
        await response.prepare(request)

        written = 0
        try:
            written = await self._write_zip(response, files)
            await response.write_eof()
        except (ConnectionError, asyncio.CancelledError):
            logger.warning("Archive stream for session %s aborted; directory kept", session_id)
            raise

        logger.info(
            "Streamed %s file(s) for session %s (%s)",
            len(files),
            session_id,
            format_file_size(written),
        )
        self.store.remove(session_id)
        return response

    async def _write_zip(self, response: web.StreamResponse, files: List[Path]) -> int:
        sink = _ChunkSink()
        written = 0

        # Entries are flattened to their file names.
        with zipfile.ZipFile(sink, mode="w", compression=zipfile.ZIP_DEFLATED) as archive:
            for path in files:
                info = zipfile.ZipInfo.from_file(path, arcname=path.name)
                info.compress_type = zipfile.ZIP_DEFLATED
                with archive.open(info, mode="w") as entry:
                    async with aiofiles.open(path, "rb") as source:
                        while True:
                            chunk = await source.read(self.chunk_size)
                            if not chunk:
                                break
                            entry.write(chunk)
                            written += await self._flush(response, sink)
                written += await self._flush(response, sink)

        written += await self._flush(response, sink)
        return written

    @staticmethod
    async def _flush(response: web.StreamResponse, sink: _ChunkSink) -> int:
        data = sink.drain()
        if data:
            await response.write(data)
        return len(data)
