"""
Uninstall command lines as stored in `UninstallString` registry values.

Grammar: either a double-quoted executable path followed by arguments, or an
unquoted executable ending at the first whitespace. Everything after the
executable is the argument string.
"""

from __future__ import annotations
import shlex
from typing import Iterable, Optional, Tuple
from .errors import InvalidTargetError
from .models import Action, Policy, run_external_command


def split_command_line(cmd: str) -> Tuple[str, str]:
    text = (cmd or "").strip()
    if not text:
        raise InvalidTargetError("Empty uninstall command line")
    if text.startswith('"'):
        end = text.find('"', 1)
        if end == -1:
            raise InvalidTargetError(f"Unterminated quote in {cmd!r}")
        exe = text[1:end]
        rest = text[end + 1:]
    else:
        parts = text.split(None, 1)
        exe = parts[0]
        rest = parts[1] if len(parts) > 1 else ""
    if not exe.strip():
        raise InvalidTargetError(f"No executable in {cmd!r}")
    return exe, rest.strip()


def split_arguments(args: str) -> Tuple[str, ...]:
    # Windows quoting: keep quotes off the tokens but do not treat backslashes as escapes
    return tuple(t[1:-1] if len(t) >= 2 and t[0] == t[-1] == '"' else t
                 for t in shlex.split(args, posix=False))


def uninstall_action(cmd: str, silent_args: Iterable[str] = (), *, policy: Policy = Policy.best_effort,
                     timeout: Optional[float] = None, name: Optional[str] = None) -> Action:
    exe, rest = split_command_line(cmd)
    args = split_arguments(rest) + tuple(silent_args)
    return run_external_command(exe, *args, timeout=timeout, policy=policy, name=name or f"uninstall {exe}")
