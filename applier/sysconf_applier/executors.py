"""
Executors: one per ActionKind.

Every executor answers two questions about an Action: does the system already
hold the desired state (`is_satisfied`), and if not, make it so (`apply`).
Targets that are already absent are a valid end state for delete/stop style
kinds and never raise.
"""

from __future__ import annotations
import os
import re
import shutil
import stat
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from .backends.commands import CommandRunner, SubprocessRunner
from .backends.packages import AppxPackageStore, PackageStore
from .backends.processes import ProcessTable, PsutilProcessTable
from .backends.registry import RegistryBackend, WinRegistry, parse_registry_path
from .errors import ApplierError, ExternalCommandFailed, InvalidTargetError, classify_error
from .logging_setup import get_logger
from .models import Action, ActionKind, CommandSpec, RegistryValue
from .report import ItemOutcome, Outcome

log = get_logger("sysconf.applier.exec")


@dataclass
class ApplyResult:
    detail: str = ""
    items: List[ItemOutcome] = field(default_factory=list)


class PartialFailure(ApplierError):
    """Some matches of a fan-out action failed; `items` holds every per-match outcome."""

    def __init__(self, message: str, items: List[ItemOutcome]):
        super().__init__(message)
        self.items = items
        failed = [i for i in items if i.error_code is not None]
        if failed:
            self.code = failed[0].error_code


class ActionExecutor:
    kind: ActionKind

    def is_satisfied(self, action: Action) -> bool:
        raise NotImplementedError

    def apply(self, action: Action) -> ApplyResult:
        raise NotImplementedError


class SetRegistryValueExecutor(ActionExecutor):
    kind = ActionKind.set_registry_value

    def __init__(self, registry: RegistryBackend):
        self.registry = registry

    def is_satisfied(self, action: Action) -> bool:
        desired: RegistryValue = action.desired_state
        current = self.registry.read_value(parse_registry_path(action.target), action.value_name)
        if current is None:
            return False
        value_type, data = current
        return value_type == desired.value_type and data == desired.value

    def apply(self, action: Action) -> ApplyResult:
        desired: RegistryValue = action.desired_state
        path = parse_registry_path(action.target)
        if not path.subkey:
            raise InvalidTargetError(f"Cannot write values directly under hive {path}")
        self.registry.write_value(path, action.value_name, desired.value_type, desired.value)
        return ApplyResult(detail=f"{path}\\{action.value_name} = {desired.value!r} ({desired.value_type.value})")


class DeleteRegistryKeyExecutor(ActionExecutor):
    kind = ActionKind.delete_registry_key

    def __init__(self, registry: RegistryBackend):
        self.registry = registry

    def is_satisfied(self, action: Action) -> bool:
        return not self.registry.key_exists(parse_registry_path(action.target))

    def apply(self, action: Action) -> ApplyResult:
        path = parse_registry_path(action.target)
        if not path.subkey:
            raise InvalidTargetError(f"Refusing to delete registry hive root {path}")
        try:
            self.registry.delete_key(path)
        except FileNotFoundError:
            return ApplyResult(detail=f"{path} already absent")
        return ApplyResult(detail=f"deleted {path}")


class StopProcessExecutor(ActionExecutor):
    kind = ActionKind.stop_process

    def __init__(self, processes: ProcessTable):
        self.processes = processes

    def is_satisfied(self, action: Action) -> bool:
        return not self.processes.find(action.target)

    def apply(self, action: Action) -> ApplyResult:
        items: List[ItemOutcome] = []
        for proc in self.processes.find(action.target):
            label = f"{proc.name} (pid={proc.pid})"
            try:
                self.processes.kill(proc)
                items.append(ItemOutcome(label, Outcome.applied, "killed"))
            except Exception as e:
                log.warning("Could not stop %s: %s", label, e)
                items.append(ItemOutcome(label, Outcome.failed_recoverable, str(e), classify_error(e)))
        _raise_on_partial(items, f"stop {action.target}")
        return ApplyResult(detail=f"stopped {len(items)} process(es)", items=items)


class RemovePackageExecutor(ActionExecutor):
    kind = ActionKind.remove_package

    def __init__(self, packages: PackageStore):
        self.packages = packages

    def is_satisfied(self, action: Action) -> bool:
        return not self.packages.find(action.target)

    def apply(self, action: Action) -> ApplyResult:
        items: List[ItemOutcome] = []
        for pkg in self.packages.find(action.target):
            try:
                self.packages.remove(pkg)
                items.append(ItemOutcome(pkg.full_name, Outcome.applied, "removed"))
            except Exception as e:
                log.warning("Could not remove package %s: %s", pkg.full_name, e)
                items.append(ItemOutcome(pkg.full_name, Outcome.failed_recoverable, str(e), classify_error(e)))
        _raise_on_partial(items, f"remove {action.target}")
        return ApplyResult(detail=f"removed {len(items)} package(s)", items=items)


def _raise_on_partial(items: List[ItemOutcome], what: str) -> None:
    failed = [i for i in items if i.outcome.failed]
    if failed:
        raise PartialFailure(f"{what}: {len(failed)} of {len(items)} failed", items)


_UNRESOLVED = re.compile(r"\$\{[A-Za-z_][A-Za-z0-9_]*\}")


def _check_resolved(text: str) -> str:
    # ${VAR} the plan environment did not define
    m = _UNRESOLVED.search(text)
    if m:
        raise InvalidTargetError(f"Unresolved variable {m.group(0)} in {text!r}")
    return text


def _clear_readonly(func, path, _exc) -> None:
    # read-only files block rmtree on Windows
    if not os.path.exists(path):
        return
    os.chmod(path, stat.S_IWRITE)
    func(path)


class DeletePathExecutor(ActionExecutor):
    kind = ActionKind.delete_path

    def is_satisfied(self, action: Action) -> bool:
        return not os.path.lexists(_check_resolved(action.target))

    def apply(self, action: Action) -> ApplyResult:
        p = Path(_check_resolved(action.target))
        try:
            if p.is_symlink() or not p.is_dir():
                try:
                    p.unlink()
                except PermissionError:
                    os.chmod(p, stat.S_IWRITE)
                    p.unlink()
            else:
                if sys.version_info >= (3, 12):
                    shutil.rmtree(p, onexc=_clear_readonly)
                else:
                    shutil.rmtree(p, onerror=_clear_readonly)
        except FileNotFoundError:
            return ApplyResult(detail=f"{p} already absent")
        return ApplyResult(detail=f"deleted {p}")


class EnsureDirectoryExecutor(ActionExecutor):
    kind = ActionKind.ensure_directory

    def is_satisfied(self, action: Action) -> bool:
        p = Path(_check_resolved(action.target))
        if p.exists() and not p.is_dir():
            raise InvalidTargetError(f"{p} exists and is not a directory")
        return p.is_dir()

    def apply(self, action: Action) -> ApplyResult:
        p = Path(_check_resolved(action.target))
        try:
            p.mkdir(parents=True, exist_ok=True)
        except FileExistsError as e:
            raise InvalidTargetError(f"{p} exists and is not a directory") from e
        return ApplyResult(detail=f"created {p}")


class RunExternalCommandExecutor(ActionExecutor):
    kind = ActionKind.run_external_command

    def __init__(self, runner: CommandRunner, default_timeout: Optional[float] = None):
        self.runner = runner
        self.default_timeout = default_timeout

    def is_satisfied(self, action: Action) -> bool:
        return False

    def apply(self, action: Action) -> ApplyResult:
        spec: CommandSpec = action.desired_state
        cmd = [_check_resolved(c) for c in (action.target, *spec.args)]
        if spec.detach:
            pid = self.runner.spawn(action.label, cmd)
            return ApplyResult(detail=f"started detached (pid={pid})")

        res = self.runner.run(cmd, timeout=spec.timeout or self.default_timeout)
        if res.returncode not in spec.ok_exit_codes:
            raise ExternalCommandFailed(f"{action.target} exited with rc={res.returncode}",
                                        exit_code=res.returncode, output=res.output_tail)
        return ApplyResult(detail=f"rc={res.returncode}")


Executors = Dict[ActionKind, ActionExecutor]


def build_executors(*, registry: Optional[RegistryBackend] = None,
                    processes: Optional[ProcessTable] = None,
                    packages: Optional[PackageStore] = None,
                    commands: Optional[CommandRunner] = None,
                    command_timeout: Optional[float] = None,
                    powershell: str = "powershell.exe") -> Executors:
    registry = registry or WinRegistry()
    commands = commands or SubprocessRunner()
    processes = processes or PsutilProcessTable()
    packages = packages or AppxPackageStore(commands, executable=powershell)
    executors: Tuple[ActionExecutor, ...] = (
        SetRegistryValueExecutor(registry),
        DeleteRegistryKeyExecutor(registry),
        StopProcessExecutor(processes),
        RemovePackageExecutor(packages),
        DeletePathExecutor(),
        RunExternalCommandExecutor(commands, default_timeout=command_timeout),
        EnsureDirectoryExecutor(),
    )
    return {e.kind: e for e in executors}
