from __future__ import annotations
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import List, Protocol
import psutil
from ..errors import AccessDeniedError
from ..logging_setup import get_logger

log = get_logger("sysconf.applier.proc")


@dataclass(frozen=True)
class ProcessInfo:
    pid: int
    name: str


def name_matches(pattern: str, name: str) -> bool:
    """
    Case-insensitive glob match. A bare name without wildcards or extension
    also matches its `.exe` image ("notepad" matches "notepad.exe").
    """
    p = pattern.strip().lower()
    n = (name or "").lower()
    if fnmatchcase(n, p):
        return True
    if not any(c in p for c in "*?[") and "." not in p:
        return n == f"{p}.exe"
    return False


class ProcessTable(Protocol):
    def find(self, pattern: str) -> List[ProcessInfo]:
        ...

    def kill(self, proc: ProcessInfo) -> None:
        ...


class PsutilProcessTable:
    def __init__(self, wait_timeout: float = 5.0):
        self.wait_timeout = wait_timeout

    def find(self, pattern: str) -> List[ProcessInfo]:
        found = []
        for proc in psutil.process_iter(["pid", "name"]):
            name = proc.info.get("name") or ""
            if name_matches(pattern, name):
                found.append(ProcessInfo(pid=proc.info["pid"], name=name))
        return found

    def kill(self, proc: ProcessInfo) -> None:
        try:
            p = psutil.Process(proc.pid)
            p.kill()
            psutil.wait_procs([p], timeout=self.wait_timeout)
        except psutil.NoSuchProcess:
            log.debug("Process %s (pid=%s) already gone", proc.name, proc.pid)
        except psutil.AccessDenied as e:
            raise AccessDeniedError(f"Access denied killing {proc.name} (pid={proc.pid})") from e
