"""
Per-connection session directories and the TTL reaper that reclaims them.
"""

import asyncio
import logging
import os
import time
import uuid
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional

from config import DOWNLOADS_DIR, REAPER_INTERVAL_SECONDS, SESSION_TTL_SECONDS
from models import Session
from utils import is_valid_session_id, remove_directory

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


class SessionStore:
    """Owns one working directory per client connection under a common root."""

    def __init__(
        self,
        root: Path = DOWNLOADS_DIR,
        ttl_seconds: float = SESSION_TTL_SECONDS,
        clock: Clock = time.time,
    ):
        self.root = Path(root)
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.sessions: Dict[str, Session] = {}
        self.root.mkdir(parents=True, exist_ok=True)

    def create(self, session_id: Optional[str] = None) -> Session:
        """Create the directory for a new connection."""
        session_id = session_id or uuid.uuid4().hex
        if not is_valid_session_id(session_id):
            raise ValueError(f"Invalid session id: {session_id!r}")

        directory = self.root / session_id
        directory.mkdir(parents=True, exist_ok=True)
        session = Session(id=session_id, directory=directory, created_at=self.clock())
        self.sessions[session_id] = session
        logger.info("Session %s created at %s", session_id, directory)
        return session

    def ensure(self, session_id: str) -> Path:
        """Return the session directory, recreating it if it was reclaimed."""
        session = self.sessions.get(session_id)
        if session is None or not session.directory.is_dir():
            session = self.create(session_id)
        return session.directory

    def path_for(self, session_id: str) -> Optional[Path]:
        """Existing directory for ``session_id`` or None."""
        if not is_valid_session_id(session_id):
            return None
        directory = self.root / session_id
        return directory if directory.is_dir() else None

    def remove(self, session_id: str) -> bool:
        self.sessions.pop(session_id, None)
        if not is_valid_session_id(session_id):
            return False
        return remove_directory(self.root / session_id)

    def created_at(self, directory: Path) -> float:
        """Creation time of a session directory."""
        session = self.sessions.get(directory.name)
        if session is not None:
            return session.created_at
        # Left over from an earlier process; fall back to the filesystem.
        return os.stat(directory).st_mtime

    def reap(self) -> List[str]:
        """Delete every session directory older than the TTL."""
        cutoff = self.clock() - self.ttl_seconds
        removed: List[str] = []
        try:
            entries = list(self.root.iterdir())
        except OSError:
            logger.warning("Cannot list downloads root %s", self.root, exc_info=True)
            return removed

        for entry in entries:
            if not entry.is_dir():
                continue
            try:
                if self.created_at(entry) >= cutoff:
                    continue
            except OSError:
                continue
            if self.remove(entry.name):
                removed.append(entry.name)
                logger.info("Deleted old session: %s", entry.name)
        return removed


class SessionReaper:
    """Background task that periodically runs ``SessionStore.reap``."""

    def __init__(
        self,
        store: SessionStore,
        interval_seconds: float = REAPER_INTERVAL_SECONDS,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.store = store
        self.interval_seconds = interval_seconds
        self.sleep = sleep
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())

    async def run(self) -> None:
        while True:
            await self.sleep(self.interval_seconds)
            try:
                self.store.reap()
            except Exception:
                logger.exception("Session reaper sweep failed")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
