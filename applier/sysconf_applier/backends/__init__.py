"""
OS primitives the executors are built on: registry, processes, AppX packages
and external commands. Each has a Protocol so executors can run against fakes.
"""

from .commands import CommandResult, CommandRunner, SubprocessRunner
from .packages import AppxPackageStore, PackageInfo, PackageStore
from .processes import ProcessInfo, ProcessTable, PsutilProcessTable
from .registry import RegistryBackend, RegistryPath, WinRegistry, parse_registry_path

__all__ = [
    "CommandResult", "CommandRunner", "SubprocessRunner",
    "AppxPackageStore", "PackageInfo", "PackageStore",
    "ProcessInfo", "ProcessTable", "PsutilProcessTable",
    "RegistryBackend", "RegistryPath", "WinRegistry", "parse_registry_path",
]
