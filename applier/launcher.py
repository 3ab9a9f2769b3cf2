#!/usr/bin/env python3
"""
System Configuration Applier launcher.

Entry point for double-click use on Windows: a real `run` asks for elevation
through UAC first, everything else goes straight to the CLI.
"""

import sys
from typing import List, Optional

from sysconf_applier.cli import main as cli_main
from sysconf_applier.elevation import is_admin, relaunch_as_admin
from sysconf_applier.logging_setup import get_logger

logger = get_logger("sysconf.applier.launcher")


def needs_elevation(argv: List[str]) -> bool:
    return bool(argv) and argv[0] == "run" and "--dry-run" not in argv and not is_admin()


def main(argv: Optional[List[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    if needs_elevation(argv):
        logger.info("Not elevated; requesting administrator rights")
        if relaunch_as_admin([__file__, *argv]):
            # the elevated copy does the work
            return 0
    return cli_main(argv)


if __name__ == "__main__":
    sys.exit(main())
