"""
Shared fixtures: in-memory stand-ins for the registry, process table,
AppX package store and command runner, so executors run on any OS.
"""

from fnmatch import fnmatchcase
from typing import Dict, List, Optional, Set, Tuple

import pytest

from sysconf_applier.backends.commands import CommandResult
from sysconf_applier.backends.packages import PackageInfo
from sysconf_applier.backends.processes import ProcessInfo, name_matches
from sysconf_applier.backends.registry import RegistryPath
from sysconf_applier.errors import AccessDeniedError
from sysconf_applier.executors import build_executors


def _key(path: RegistryPath) -> Tuple[str, str]:
    return path.hive, path.subkey.lower()


class FakeRegistry:
    def __init__(self):
        self.keys: Set[Tuple[str, str]] = set()
        self.values: Dict[Tuple[str, str], Dict[str, tuple]] = {}
        self.denied: Set[Tuple[str, str]] = set()
        self.writes = 0

    def _check(self, path: RegistryPath) -> None:
        if _key(path) in self.denied:
            raise PermissionError(13, "Access is denied", str(path))

    def read_value(self, path, name):
        return self.values.get(_key(path), {}).get(name.lower())

    def add_key(self, path):
        parts = path.subkey.split("\\")
        for i in range(1, len(parts) + 1):
            self.keys.add((path.hive, "\\".join(parts[:i]).lower()))

    def write_value(self, path, name, value_type, data):
        self._check(path)
        self.add_key(path)
        self.values.setdefault(_key(path), {})[name.lower()] = (value_type, data)
        self.writes += 1

    def key_exists(self, path):
        return _key(path) in self.keys

    def delete_key(self, path):
        self._check(path)
        hive, sub = _key(path)
        doomed = {k for k in self.keys if k[0] == hive and (k[1] == sub or k[1].startswith(sub + "\\"))}
        self.keys -= doomed
        for k in doomed:
            self.values.pop(k, None)


class FakeProcessTable:
    def __init__(self, *names: str):
        self.procs: List[ProcessInfo] = [ProcessInfo(pid=1000 + i, name=n) for i, n in enumerate(names)]
        self.protected: Set[int] = set()
        self.killed: List[ProcessInfo] = []

    def start(self, name: str) -> ProcessInfo:
        proc = ProcessInfo(pid=2000 + len(self.procs) + len(self.killed), name=name)
        self.procs.append(proc)
        return proc

    def find(self, pattern):
        return [p for p in self.procs if name_matches(pattern, p.name)]

    def kill(self, proc):
        if proc.pid in self.protected:
            raise AccessDeniedError(f"Access denied killing {proc.name}")
        if proc in self.procs:
            self.procs.remove(proc)
            self.killed.append(proc)


class FakePackageStore:
    def __init__(self, *names: str):
        self.installed: List[PackageInfo] = [
            PackageInfo(name=n, full_name=f"{n}_1.0.0.0_x64__8wekyb3d8bbwe") for n in names
        ]
        self.failures: Dict[str, Exception] = {}
        self.removed: List[PackageInfo] = []

    def install(self, name: str) -> PackageInfo:
        pkg = PackageInfo(name=name, full_name=f"{name}_1.0.0.0_x64__8wekyb3d8bbwe")
        self.installed.append(pkg)
        return pkg

    def find(self, pattern):
        return [p for p in self.installed if fnmatchcase(p.name.lower(), pattern.lower())]

    def remove(self, package):
        err = self.failures.get(package.name)
        if err is not None:
            raise err
        self.installed.remove(package)
        self.removed.append(package)


class FakeCommandRunner:
    def __init__(self, returncode: int = 0):
        self.returncode = returncode
        self.calls: List[Tuple[List[str], Optional[float]]] = []
        self.spawned: List[List[str]] = []

    def run(self, cmd, *, timeout=None):
        self.calls.append((list(cmd), timeout))
        return CommandResult(returncode=self.returncode, stdout="", stderr="boom" if self.returncode else "")

    def spawn(self, name, cmd):
        self.spawned.append(list(cmd))
        return 4242


@pytest.fixture
def registry():
    return FakeRegistry()


@pytest.fixture
def processes():
    return FakeProcessTable()


@pytest.fixture
def packages():
    return FakePackageStore()


@pytest.fixture
def commands():
    return FakeCommandRunner()


@pytest.fixture
def executors(registry, processes, packages, commands):
    return build_executors(registry=registry, processes=processes, packages=packages, commands=commands)
