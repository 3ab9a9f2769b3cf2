from __future__ import annotations
import json
from dataclasses import dataclass
from typing import List, Optional, Protocol
from ..errors import AccessDeniedError, ExternalCommandFailed
from ..logging_setup import get_logger
from .commands import CommandResult, CommandRunner, SubprocessRunner, powershell, ps_quote

log = get_logger("sysconf.applier.packages")

_ACCESS_DENIED_MARKERS = ("access is denied", "0x80070005", "accessdenied")


@dataclass(frozen=True)
class PackageInfo:
    name: str
    full_name: str


class PackageStore(Protocol):
    def find(self, pattern: str) -> List[PackageInfo]:
        ...

    def remove(self, package: PackageInfo) -> None:
        ...


class AppxPackageStore:
    """AppX packages of every user profile, queried and removed through PowerShell."""

    def __init__(self, runner: Optional[CommandRunner] = None, *, executable: str = "powershell.exe",
                 timeout: Optional[float] = 300.0):
        self.runner = runner or SubprocessRunner()
        self.executable = executable
        self.timeout = timeout

    def _ps(self, script: str) -> CommandResult:
        return powershell(self.runner, script, executable=self.executable, timeout=self.timeout)

    def find(self, pattern: str) -> List[PackageInfo]:
        script = (
            f"Get-AppxPackage -AllUsers -Name {ps_quote(pattern)} | "
            "Select-Object Name, PackageFullName | ConvertTo-Json -Compress"
        )
        res = self._ps(script)
        _raise_for(res, f"Get-AppxPackage {pattern}")
        return parse_package_listing(res.stdout)

    def remove(self, package: PackageInfo) -> None:
        log.info("Removing package %s", package.full_name)
        res = self._ps(f"Remove-AppxPackage -Package {ps_quote(package.full_name)} -AllUsers")
        _raise_for(res, f"Remove-AppxPackage {package.full_name}")


def _raise_for(res: CommandResult, what: str) -> None:
    if res.returncode == 0:
        return
    lowered = res.stderr.lower()
    if any(m in lowered for m in _ACCESS_DENIED_MARKERS):
        raise AccessDeniedError(f"{what}: access denied")
    raise ExternalCommandFailed(f"{what} failed (rc={res.returncode})", exit_code=res.returncode,
                                output=res.output_tail)


def parse_package_listing(stdout: str) -> List[PackageInfo]:
    """ConvertTo-Json yields nothing, a single object or a list depending on the match count."""
    text = (stdout or "").strip()
    if not text:
        return []
    data = json.loads(text)
    if isinstance(data, dict):
        data = [data]
    out = []
    seen = set()
    for item in data:
        full = item.get("PackageFullName") or ""
        if not full or full in seen:
            continue
        seen.add(full)
        out.append(PackageInfo(name=item.get("Name") or full, full_name=full))
    return out
