from __future__ import annotations
import subprocess
import sys
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence
from ..errors import ExternalCommandFailed, NotFoundError
from ..logging_setup import get_logger

log = get_logger("sysconf.applier.proc")

# keep console windows of child tools hidden on Windows
CREATE_NO_WINDOW = 0x08000000 if sys.platform == "win32" else 0
DETACHED_PROCESS = 0x00000008 if sys.platform == "win32" else 0


@dataclass
class CommandResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def output_tail(self) -> str:
        text = "\n".join(s for s in (self.stdout, self.stderr) if s)
        return text[-2000:]


@dataclass
class ProcessHandle:
    name: str
    proc: subprocess.Popen


class CommandRunner(Protocol):
    def run(self, cmd: Sequence[str], *, timeout: Optional[float] = None) -> CommandResult:
        ...

    def spawn(self, name: str, cmd: Sequence[str]) -> int:
        ...


class SubprocessRunner:
    """Runs external tools hidden, either blocking with captured output or detached."""

    def __init__(self):
        self.handles: List[ProcessHandle] = []

    def run(self, cmd: Sequence[str], *, timeout: Optional[float] = None) -> CommandResult:
        cmd = [str(c) for c in cmd]
        log.info("Running: %s", " ".join(cmd))
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, errors="replace",
                                  timeout=timeout, creationflags=CREATE_NO_WINDOW)
        except FileNotFoundError as e:
            raise NotFoundError(f"Executable not found: {cmd[0]}") from e
        except subprocess.TimeoutExpired as e:
            raise ExternalCommandFailed(f"{cmd[0]} timed out after {timeout}s") from e
        if proc.stdout:
            log.debug("stdout: %s", proc.stdout[-4000:])
        if proc.stderr:
            log.debug("stderr: %s", proc.stderr[-4000:])
        return CommandResult(returncode=proc.returncode, stdout=(proc.stdout or "").strip(),
                             stderr=(proc.stderr or "").strip())

    def spawn(self, name: str, cmd: Sequence[str]) -> int:
        self._prune()
        cmd = [str(c) for c in cmd]
        log.info("Starting %s (detached): %s", name, " ".join(cmd))
        try:
            proc = subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL,
                                    stdin=subprocess.DEVNULL, close_fds=True,
                                    creationflags=CREATE_NO_WINDOW | DETACHED_PROCESS)
        except FileNotFoundError as e:
            raise NotFoundError(f"Executable not found: {cmd[0]}") from e
        self.handles.append(ProcessHandle(name=name, proc=proc))
        return proc.pid

    def status(self) -> dict:
        """Tracked detached processes; finished ones are reported once, then dropped."""
        out = {h.name: {"pid": h.proc.pid, "returncode": h.proc.poll()} for h in self.handles}
        self._prune()
        return out

    def _prune(self) -> None:
        # poll() also reaps exited children on POSIX
        self.handles = [h for h in self.handles if h.proc.poll() is None]


def powershell(runner: CommandRunner, script: str, *, executable: str = "powershell.exe",
               timeout: Optional[float] = None) -> CommandResult:
    cmd = [executable, "-NoProfile", "-NonInteractive", "-ExecutionPolicy", "Bypass", "-Command", script]
    return runner.run(cmd, timeout=timeout)


def ps_quote(value: str) -> str:
    """Quote a string as a PowerShell single-quoted literal."""
    return "'" + value.replace("'", "''") + "'"
