from __future__ import annotations

import argparse
from typing import Optional

import uvicorn

from ...kernel.settings import get_settings
from ...util.obslog import setup_root_json_logging


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="ccmcp console", description="ccmcp operator console (FastAPI)")
    parser.add_argument("--host", default="127.0.0.1", help="Bind host (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8849, help="Bind port (default: 8849)")
    parser.add_argument("--log-level", default="info", help="Uvicorn log level (default: info)")
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_root_json_logging(component="console", level=settings.log_level)

    try:
        uvicorn.run(
            "ccmcp.ports.web.app:create_app",
            factory=True,
            host=str(args.host),
            port=int(args.port),
            log_level=str(args.log_level),
        )
    except (KeyboardInterrupt, SystemExit):
        pass
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
