from __future__ import annotations
import base64
import binascii
import json
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

_MAX_BYTES = 256_000


@dataclass
class LogChunk:
    entries: List[str]
    cursor: str
    truncated: bool


def log_id_for(path: Path) -> str:
    # applier.log -> applier, applier.log.1 -> applier.1
    name = path.name
    return name[:-4] if name.endswith(".log") else name.replace(".log.", ".")


def resolve_log(logs_dir: Path, log_id: str) -> Optional[Path]:
    for p in logs_dir.glob("*.log*"):
        if p.is_file() and log_id_for(p) == log_id:
            return p
    return None


def list_logs(logs_dir: Path) -> List[dict]:
    if not logs_dir.is_dir():
        return []
    out = []
    for p in sorted(logs_dir.glob("*.log*")):
        if not p.is_file():
            continue
        st = p.stat()
        out.append({"id": log_id_for(p), "name": p.name, "size_bytes": st.st_size, "modified": int(st.st_mtime)})
    return out


def _cursor(pos: int) -> str:
    return base64.urlsafe_b64encode(json.dumps({"pos": pos}).encode("utf-8")).decode("ascii")


def _cursor_pos(cursor: str) -> int:
    try:
        return int(json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))["pos"])
    except (binascii.Error, ValueError, KeyError, TypeError):
        return 0


def read_tail(path: Path, tail_lines: int = 200) -> LogChunk:
    size = path.stat().st_size
    with path.open("rb") as f:
        f.seek(max(0, size - _MAX_BYTES))
        lines = f.read().decode("utf-8", errors="replace").splitlines()
    kept = lines[-tail_lines:] if tail_lines > 0 else []
    return LogChunk(entries=kept, cursor=_cursor(size), truncated=len(kept) < len(lines))


def read_from_cursor(path: Path, cursor: str, max_lines: int = 200) -> LogChunk:
    size = path.stat().st_size
    pos = _cursor_pos(cursor)
    if pos > size:
        # rotated or truncated since the cursor was issued
        pos = 0
    with path.open("rb") as f:
        f.seek(pos)
        raw = f.read(_MAX_BYTES)

    # only hand out complete lines; a trailing partial line is re-read next time
    complete = raw[: raw.rfind(b"\n") + 1] if b"\n" in raw else b""
    if not complete and len(raw) >= _MAX_BYTES:
        complete = raw
    lines = complete.splitlines(keepends=True)
    kept = lines[:max_lines]
    consumed = sum(len(l) for l in kept)
    entries = [l.rstrip(b"\r\n").decode("utf-8", errors="replace") for l in kept]
    return LogChunk(entries=entries, cursor=_cursor(pos + consumed), truncated=len(kept) < len(lines))
