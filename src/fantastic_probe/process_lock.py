"""Advisory file locks for single-instance scanning and serialized uploads."""

import fcntl
import os
from pathlib import Path


class ProcessLock:
    """Exclusive flock on a lock file. Usable as a context manager."""

    def __init__(self, lock_file: Path, *, blocking: bool = False) -> None:
        self.lock_file = lock_file
        self.blocking = blocking
        self.lock_fd: int | None = None

    def acquire(self) -> bool:
        """Try to acquire exclusive lock. Returns True if successful."""
        flags = fcntl.LOCK_EX if self.blocking else fcntl.LOCK_EX | fcntl.LOCK_NB
        try:
            self.lock_file.parent.mkdir(parents=True, exist_ok=True)
            self.lock_fd = os.open(str(self.lock_file), os.O_CREAT | os.O_WRONLY)
            fcntl.flock(self.lock_fd, flags)
            # Write our PID to the lock file for informational purposes
            os.ftruncate(self.lock_fd, 0)
            os.write(self.lock_fd, str(os.getpid()).encode())
            os.fsync(self.lock_fd)
            return True
        except OSError:
            if self.lock_fd is not None:
                os.close(self.lock_fd)
                self.lock_fd = None
            return False

    def release(self) -> None:
        """Release the lock."""
        if self.lock_fd is not None:
            try:
                fcntl.flock(self.lock_fd, fcntl.LOCK_UN)
                os.close(self.lock_fd)
            except OSError:
                pass
            finally:
                self.lock_fd = None

    @property
    def is_held(self) -> bool:
        return self.lock_fd is not None

    def __enter__(self) -> "ProcessLock":
        if not self.acquire():
            msg = f"Could not acquire lock {self.lock_file}"
            raise BlockingIOError(msg)
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()
