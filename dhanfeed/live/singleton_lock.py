"""
Cross-process guard against running two feeds with the same credentials.

The lock is an advisory exclusive flock on a file whose name is derived from a
hash of the credentials, so the token never appears on disk. The holder's PID
is written into the file for diagnosis.

Usage:
    with SingletonLock(settings.access_token, settings.client_id):
        client.start()
        ...
"""

from __future__ import annotations

import fcntl
import hashlib
import logging
import os
from pathlib import Path
from typing import IO, Optional, Union

from dhanfeed.live.errors import SingletonLockError

logger = logging.getLogger(__name__)

DEFAULT_LOCK_DIR = Path("tmp")


def lock_key(token: str, client_id: str) -> str:
    """Stable, one-way identifier for a credential pair."""
    return hashlib.sha256(f"{client_id}:{token}".encode("utf-8")).hexdigest()[:12]


class SingletonLock:
    """Exclusive per-credential lock file."""

    def __init__(
        self,
        token: str,
        client_id: str,
        lock_dir: Optional[Union[str, Path]] = None,
    ) -> None:
        directory = Path(lock_dir) if lock_dir is not None else DEFAULT_LOCK_DIR
        self._path = directory / f"dhanfeed_ws_{lock_key(token, client_id)}.lock"
        self._fh: Optional[IO[str]] = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def held(self) -> bool:
        return self._fh is not None

    def acquire(self) -> bool:
        """
        Take the lock and record this process's PID.

        Raises:
            SingletonLockError: If another holder has the lock; carries its PID
        """
        if self._fh is not None:
            return True

        self._path.parent.mkdir(parents=True, exist_ok=True)
        fh = open(self._path, "a+", encoding="utf-8")
        try:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            fh.seek(0)
            pid = fh.read().strip() or "unknown"
            fh.close()
            raise SingletonLockError(
                f"Another feed is already running with these credentials (pid {pid})",
                pid=pid,
                path=str(self._path),
                component="SingletonLock",
            ) from None
        except Exception:
            fh.close()
            raise

        fh.seek(0)
        fh.truncate()
        fh.write(str(os.getpid()))
        fh.flush()
        os.fsync(fh.fileno())
        self._fh = fh
        logger.info(f"Acquired feed lock {self._path}")
        return True

    def release(self) -> None:
        """Unlock and delete the lock file; safe to call when not held."""
        fh = self._fh
        if fh is None:
            return
        self._fh = None
        try:
            fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
        finally:
            fh.close()
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass
        logger.info(f"Released feed lock {self._path}")

    def __enter__(self) -> "SingletonLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
