from __future__ import annotations
import ctypes
import os
import subprocess
import sys
from typing import List, Optional
from .errors import ElevationRequired
from .logging_setup import get_logger

log = get_logger("sysconf.applier.elevation")


def is_admin() -> bool:
    if sys.platform == "win32":
        try:
            return ctypes.windll.shell32.IsUserAnAdmin() != 0
        except (AttributeError, OSError):
            return False
    return hasattr(os, "geteuid") and os.geteuid() == 0


def relaunch_as_admin(argv: Optional[List[str]] = None) -> bool:
    """Re-run the current command through UAC. Returns True if the elevated process was started."""
    if sys.platform != "win32":
        return False
    params = subprocess.list2cmdline(list(argv if argv is not None else sys.argv))
    rc = ctypes.windll.shell32.ShellExecuteW(None, "runas", sys.executable, params, None, 1)
    # ShellExecuteW returns a value > 32 on success
    if rc <= 32:
        log.error("Elevation request was refused or failed (code=%s)", rc)
        return False
    return True


def ensure_admin() -> None:
    if not is_admin():
        raise ElevationRequired("Administrator rights are required to apply plans")
