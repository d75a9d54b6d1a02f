from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional


def ccmcp_home() -> Path:
    """Config home (settings.yaml lives here)."""
    env = os.environ.get("CCMCP_HOME", "").strip()
    if env:
        return Path(env).expanduser().resolve()
    return (Path.home() / ".ccmcp").resolve()


def default_storage_dir() -> Path:
    return Path(tempfile.gettempdir()) / "mcp_manager"


def storage_dir(configured: Optional[str] = None) -> Path:
    """Root of the shared mailbox.

    Both the stdio process and the operator console must resolve the same
    directory; callers pass the already env-merged setting.
    """
    if configured and str(configured).strip():
        return Path(str(configured).strip()).expanduser()
    return default_storage_dir()


def requests_dir(root: Path) -> Path:
    return root / "requests"


def responses_dir(root: Path) -> Path:
    return root / "responses"
