from __future__ import annotations

import os
import secrets
from pathlib import Path


def temp_path_for(target: Path) -> Path:
    """Unique sibling of ``target``; same directory so the rename stays on one filesystem."""
    return target.with_name(f"{target.name}.tmp-{os.getpid()}-{secrets.token_hex(8)}")


def atomic_write_bytes(target: Path, data: bytes, mode: int = 0o644) -> Path:
    """Write ``data`` next to ``target`` and rename it into place in one step.

    Readers of ``target`` see either the previous content or ``data``, never
    a truncated mix. If the temporary write fails the target is untouched
    and the error propagates.
    """
    tmp = temp_path_for(target)
    fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    os.replace(tmp, target)
    return target


def atomic_write_text(target: Path, text: str, encoding: str = "utf-8", mode: int = 0o644) -> Path:
    return atomic_write_bytes(target, text.encode(encoding), mode=mode)
