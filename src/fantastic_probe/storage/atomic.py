"""Atomic file writes: readers see either the old file or the complete new one."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any


def atomic_write_text(path: Path, content: str, *, mode: int | None = None) -> None:
    """Write ``content`` to a temp file beside ``path`` and rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def atomic_write_json(path: Path, data: Any, *, mode: int | None = None) -> None:
    """Serialize ``data`` first, so encoding errors never touch the filesystem."""
    content = json.dumps(data, ensure_ascii=False, separators=(",", ":"))
    atomic_write_text(path, content, mode=mode)
