# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Install Locks

Single responsibility: named, time-boxed mutual exclusion for library installs.

Every lock is a lease: it is released by its holder or expires after
max_occupation_time, so a crashed or hung holder cannot block a library
forever. Waiters give up after the acquisition timeout.

Providers:
- InProcessLockProvider: asyncio based, valid for a single process
- FileLockProvider: lease files guarded by fcntl.flock, valid across
  processes sharing the lock directory
"""

import asyncio
import fcntl
import json
import logging
import os
import time
import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Dict, Optional

from ..core.errors import InstallLockTimeout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockHandle:
    """Proof of ownership returned by acquire()"""
    name: str
    token: str
    acquired_at: float
    expires_at: float


class LockProvider(ABC):
    """Pluggable lock capability; implementations may be distributed."""

    @abstractmethod
    async def acquire(
        self,
        name: str,
        max_occupation_time: float,
        timeout: float
    ) -> Optional[LockHandle]:
        """
        Acquire the named lock.

        Args:
            name: Lock name
            max_occupation_time: Seconds after which the lock expires on its own
            timeout: Seconds to wait for the lock

        Returns:
            A handle, or None if the lock could not be acquired within timeout
        """

    @abstractmethod
    async def release(self, handle: LockHandle) -> None:
        """Release a held lock. Releasing an expired lock is a no-op."""

    @asynccontextmanager
    async def hold(
        self,
        name: str,
        max_occupation_time: float,
        timeout: float
    ) -> AsyncIterator[LockHandle]:
        """
        Hold the named lock for the duration of the block.

        Raises:
            InstallLockTimeout: If the lock could not be acquired in time
        """
        handle = await self.acquire(name, max_occupation_time, timeout)
        if handle is None:
            raise InstallLockTimeout(name, timeout)
        try:
            yield handle
        finally:
            await self.release(handle)


class InProcessLockProvider(LockProvider):
    """Lease locks kept in memory of the current process"""

    def __init__(self):
        self._holders: Dict[str, LockHandle] = {}
        self._condition = asyncio.Condition()

    def _now(self) -> float:
        return time.monotonic()

    async def acquire(
        self,
        name: str,
        max_occupation_time: float,
        timeout: float
    ) -> Optional[LockHandle]:
        deadline = self._now() + timeout

        async with self._condition:
            while True:
                now = self._now()
                holder = self._holders.get(name)

                if holder is not None and holder.expires_at <= now:
                    logger.warning(f"Lock {name} exceeded its max occupation time and was released")
                    del self._holders[name]
                    holder = None

                if holder is None:
                    handle = LockHandle(
                        name=name,
                        token=uuid.uuid4().hex,
                        acquired_at=now,
                        expires_at=now + max_occupation_time
                    )
                    self._holders[name] = handle
                    return handle

                remaining = deadline - now
                if remaining <= 0:
                    return None

                # Wake up on release, on holder expiry or on our own deadline
                try:
                    await asyncio.wait_for(
                        self._condition.wait(),
                        timeout=min(remaining, holder.expires_at - now)
                    )
                except asyncio.TimeoutError:
                    pass

    async def release(self, handle: LockHandle) -> None:
        async with self._condition:
            holder = self._holders.get(handle.name)
            if holder is None or holder.token != handle.token:
                logger.warning(f"Lock {handle.name} was released after it had expired")
                return
            del self._holders[handle.name]
            self._condition.notify_all()

    def is_locked(self, name: str) -> bool:
        holder = self._holders.get(name)
        return holder is not None and holder.expires_at > self._now()


class FileLockProvider(LockProvider):
    """
    Lease files in a shared directory.

    Each lock is a JSON file <lock_dir>/<name>.lock holding the owner token
    and a wall-clock expiry. Reading and replacing lease files happens under
    an exclusive flock on <lock_dir>/.guard so that two processes cannot both
    take over an expired lease.
    """

    GUARD_FILENAME = ".guard"

    def __init__(self, lock_dir: str, poll_interval: float = 0.05):
        self.lock_dir = Path(lock_dir)
        self.lock_dir.mkdir(parents=True, exist_ok=True)
        self.poll_interval = poll_interval

    def _lease_path(self, name: str) -> Path:
        return self.lock_dir / f"{name}.lock"

    def _try_acquire(self, name: str, max_occupation_time: float) -> Optional[LockHandle]:
        lease_path = self._lease_path(name)
        with open(self.lock_dir / self.GUARD_FILENAME, "a+") as guard:
            fcntl.flock(guard.fileno(), fcntl.LOCK_EX)
            try:
                now = time.time()
                if lease_path.exists():
                    try:
                        lease = json.loads(lease_path.read_text())
                    except (json.JSONDecodeError, OSError) as e:
                        logger.warning(f"Discarding unreadable lease file {lease_path}: {e}")
                        lease = None
                    if lease is not None and lease.get("expires_at", 0) > now:
                        return None
                    if lease is not None:
                        logger.warning(
                            f"Lock {name} held by pid {lease.get('pid')} exceeded its max occupation time"
                        )

                handle = LockHandle(
                    name=name,
                    token=uuid.uuid4().hex,
                    acquired_at=now,
                    expires_at=now + max_occupation_time
                )
                tmp_path = self.lock_dir / f"{name}.lock.tmp"
                tmp_path.write_text(json.dumps({
                    "token": handle.token,
                    "pid": os.getpid(),
                    "acquired_at": handle.acquired_at,
                    "expires_at": handle.expires_at,
                }))
                os.replace(tmp_path, lease_path)
                return handle
            finally:
                fcntl.flock(guard.fileno(), fcntl.LOCK_UN)

    def _release(self, handle: LockHandle) -> None:
        lease_path = self._lease_path(handle.name)
        with open(self.lock_dir / self.GUARD_FILENAME, "a+") as guard:
            fcntl.flock(guard.fileno(), fcntl.LOCK_EX)
            try:
                try:
                    lease = json.loads(lease_path.read_text())
                except (FileNotFoundError, json.JSONDecodeError):
                    lease = None
                if lease is None or lease.get("token") != handle.token:
                    logger.warning(f"Lock {handle.name} was released after it had expired")
                    return
                lease_path.unlink()
            finally:
                fcntl.flock(guard.fileno(), fcntl.LOCK_UN)

    async def acquire(
        self,
        name: str,
        max_occupation_time: float,
        timeout: float
    ) -> Optional[LockHandle]:
        deadline = time.monotonic() + timeout
        while True:
            handle = await asyncio.to_thread(self._try_acquire, name, max_occupation_time)
            if handle is not None:
                return handle
            if time.monotonic() >= deadline:
                return None
            await asyncio.sleep(self.poll_interval)

    async def release(self, handle: LockHandle) -> None:
        await asyncio.to_thread(self._release, handle)
