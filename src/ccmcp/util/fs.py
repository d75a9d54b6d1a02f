from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

# Prefix for in-flight temp files; directory scans must ignore them.
TMP_PREFIX = "."


def atomic_write_text(path: Path, text: str, *, encoding: str = "utf-8") -> None:
    """Write via temp file + os.replace so readers never see a partial document."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=TMP_PREFIX + path.name + ".", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            f.write(text)
        os.replace(tmp, path)
    finally:
        try:
            if os.path.exists(tmp):
                os.unlink(tmp)
        except OSError:
            pass


def atomic_write_json(path: Path, obj: Dict[str, Any], *, indent: int = 2) -> None:
    atomic_write_text(path, json.dumps(obj, ensure_ascii=False, indent=indent) + "\n")


def load_json_object(path: Path) -> Optional[Dict[str, Any]]:
    """Return the JSON object stored at `path`, or None.

    Missing files, unreadable files and non-object payloads all map to None;
    callers polling a shared directory treat that as "not there yet".
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return None
    try:
        obj = json.loads(raw)
    except ValueError:
        return None
    return obj if isinstance(obj, dict) else None


def remove_file(path: Path) -> bool:
    """Delete `path` if present. Returns True only when this call removed it."""
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False
