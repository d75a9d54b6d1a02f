"""Audible alert trigger for new feedback requests.

Sound playback itself is outside ccmcp; we either run a configured command
(e.g. `["paplay", "/usr/share/sounds/freedesktop/stereo/message.oga"]`) or ring
the terminal bell. Always fire-and-forget.
"""
from __future__ import annotations

import logging
import subprocess
import sys
from typing import Callable, List, Optional, Sequence, TextIO

logger = logging.getLogger("ccmcp.alert")

AlertTrigger = Callable[[], None]


def _noop() -> None:
    return None


def command_alert(argv: Sequence[str]) -> AlertTrigger:
    cmd: List[str] = [str(x) for x in argv]

    def _fire() -> None:
        try:
            subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            logger.warning("alert command failed: %s", e)

    return _fire


def bell_alert(stream: Optional[TextIO] = None) -> AlertTrigger:
    def _fire() -> None:
        out = stream or sys.stderr
        try:
            out.write("\a")
            out.flush()
        except (OSError, ValueError):
            pass

    return _fire


def build_alert(*, enabled: bool, command: Sequence[str] = ()) -> AlertTrigger:
    if not enabled:
        return _noop
    if command:
        return command_alert(command)
    return bell_alert()
