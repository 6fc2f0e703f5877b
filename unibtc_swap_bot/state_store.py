"""
Persistence of notification targets and the reconciliation checkpoint.

The whole state lives in one small JSON file. It gets rewritten after every
pass that saw swaps, so writes go through a temp file and a rename to keep a
crash from leaving a truncated checkpoint behind. Operators edit the same file
by hand to add Bark devices, which is why it is watched and reloaded.
"""

import asyncio
import json
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import structlog
from pydantic import ValidationError

from .config import config
from .models import PersistedState

logger = structlog.get_logger()


class ReadWriteLock:
    """Many readers or a single writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self):
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class StateStore:
    """
    Owner of the persisted state.

    Accessors hold the field lock only for a single read or write. File I/O
    is serialized separately so a hot reload can never interleave with a
    checkpoint save.
    """

    def __init__(
        self,
        path: Optional[str] = None,
        default_state: Optional[PersistedState] = None,
    ):
        """
        Args:
            path: Location of the JSON state file
            default_state: State written when the file is missing or corrupt
        """
        self.path = Path(path or config.state_file)
        self._default_state = default_state or PersistedState(
            notification_targets=list(config.default_notification_targets),
            last_block_number=config.seed_block_number,
            recent_tx_hashes=list(config.seed_tx_hashes),
        )
        self._state = self._default_state.model_copy(deep=True)
        self._lock = ReadWriteLock()
        self._io_lock = threading.Lock()
        self._last_seen_mtime: Optional[int] = None

    # Loading and saving

    def load(self) -> PersistedState:
        """Read the state file, falling back to the default when unusable."""
        with self._io_lock:
            try:
                state = self._read_file()
            except FileNotFoundError:
                logger.warning("State file missing, using default", path=str(self.path))
                state = None
            except (OSError, ValueError) as e:
                logger.error(
                    "State file unreadable, using default",
                    path=str(self.path),
                    error=str(e),
                )
                self._quarantine()
                state = None

            if state is None:
                state = self._default_state.model_copy(deep=True)
                self._replace_state(state)
                try:
                    self._write_file(state)
                except OSError as e:
                    logger.error("Could not persist default state", error=str(e))
            else:
                self._replace_state(state)
                self._last_seen_mtime = self._current_mtime()

        logger.info(
            "Loaded state",
            path=str(self.path),
            last_block_number=state.last_block_number,
            targets=len(state.notification_targets),
        )
        return self.snapshot()

    def reload(self) -> bool:
        """
        Re-read the file after an external edit.

        Unlike `load`, a broken file here keeps the in-memory state: the
        operator is probably halfway through editing it.
        """
        with self._io_lock:
            mtime = self._current_mtime()
            if mtime is None or mtime == self._last_seen_mtime:
                return False
            try:
                state = self._read_file()
            except (OSError, ValueError) as e:
                logger.error(
                    "Ignoring unreadable state file edit",
                    path=str(self.path),
                    error=str(e),
                )
                self._last_seen_mtime = mtime
                return False
            self._replace_state(state)
            self._last_seen_mtime = mtime

        logger.info(
            "State file modified, reloaded",
            last_block_number=state.last_block_number,
            targets=len(state.notification_targets),
        )
        return True

    def save(self):
        """Atomically rewrite the state file with the current state."""
        state = self.snapshot()
        with self._io_lock:
            self._write_file(state)
        logger.debug("Saved state", last_block_number=state.last_block_number)

    async def watch(self, interval: Optional[float] = None):
        """Poll the state file for external modifications until cancelled."""
        interval = interval or config.state_watch_interval
        logger.info("Watching state file", path=str(self.path), interval=interval)
        while True:
            await asyncio.sleep(interval)
            try:
                self.reload()
            except Exception as e:
                logger.error("State watcher error", error=str(e))

    def _read_file(self) -> PersistedState:
        with open(self.path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        try:
            return PersistedState.model_validate(raw)
        except ValidationError as e:
            raise ValueError(f"invalid state document: {e}") from e

    def _write_file(self, state: PersistedState):
        payload = json.dumps(
            state.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False
        )
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=directory
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload + "\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
        self._last_seen_mtime = self._current_mtime()

    def _quarantine(self):
        """Keep a copy of a corrupt file before it gets overwritten."""
        try:
            os.replace(self.path, self.path.with_name(self.path.name + ".corrupt"))
        except OSError as e:
            logger.warning("Could not move corrupt state file aside", error=str(e))

    def _current_mtime(self) -> Optional[int]:
        try:
            return self.path.stat().st_mtime_ns
        except FileNotFoundError:
            return None

    def _replace_state(self, state: PersistedState):
        with self._lock.write():
            self._state = state

    # Accessors

    def snapshot(self) -> PersistedState:
        with self._lock.read():
            return self._state.model_copy(deep=True)

    def get_notification_targets(self) -> list[str]:
        with self._lock.read():
            return list(self._state.notification_targets)

    def get_last_block_number(self) -> str:
        with self._lock.read():
            return self._state.last_block_number

    def get_recent_tx_hashes(self) -> set[str]:
        with self._lock.read():
            return set(self._state.recent_tx_hashes)

    def set_last_block_number(self, block_number: str):
        if not block_number.isdigit():
            raise ValueError(f"not a block number: {block_number!r}")
        with self._lock.write():
            self._state.last_block_number = block_number

    def set_recent_tx_hashes(self, tx_hashes: list[str]):
        with self._lock.write():
            self._state.recent_tx_hashes = list(dict.fromkeys(tx_hashes))
