from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple
from ..errors import InvalidTargetError, ApplierError
from ..models import ValueType

try:  # Windows-only; other platforms get fakes or a clear failure per action
    import winreg  # type: ignore
except ImportError:  # pragma: no cover - not available on Linux runners
    winreg = None  # type: ignore

HIVE_ALIASES: Dict[str, str] = {
    "HKLM": "HKLM", "HKEY_LOCAL_MACHINE": "HKLM",
    "HKCU": "HKCU", "HKEY_CURRENT_USER": "HKCU",
    "HKCR": "HKCR", "HKEY_CLASSES_ROOT": "HKCR",
    "HKU": "HKU", "HKEY_USERS": "HKU",
    "HKCC": "HKCC", "HKEY_CURRENT_CONFIG": "HKCC",
}


@dataclass(frozen=True)
class RegistryPath:
    hive: str
    subkey: str

    def __str__(self) -> str:
        return f"{self.hive}\\{self.subkey}" if self.subkey else self.hive

    @property
    def parent(self) -> "RegistryPath":
        return RegistryPath(self.hive, self.subkey.rpartition("\\")[0])


def parse_registry_path(path: str) -> RegistryPath:
    """
    Accepts `HKLM\\Software\\X`, `HKLM:\\Software\\X`, long hive names and `/` separators.
    """
    cleaned = (path or "").strip().replace("/", "\\")
    if not cleaned:
        raise InvalidTargetError("Empty registry path")
    head, _, rest = cleaned.partition("\\")
    hive = HIVE_ALIASES.get(head.rstrip(":").upper())
    if hive is None:
        raise InvalidTargetError(f"Unsupported registry hive in {path!r}")
    parts = [p for p in rest.split("\\") if p]
    return RegistryPath(hive, "\\".join(parts))


class RegistryBackend(Protocol):
    def read_value(self, path: RegistryPath, name: str) -> Optional[Tuple[Optional[ValueType], Any]]:
        ...

    def write_value(self, path: RegistryPath, name: str, value_type: ValueType, data: Any) -> None:
        ...

    def key_exists(self, path: RegistryPath) -> bool:
        ...

    def delete_key(self, path: RegistryPath) -> None:
        ...


class WinRegistry:
    """RegistryBackend over winreg, always addressing the 64-bit view."""

    def __init__(self):
        self._available = winreg is not None

    def _require(self) -> None:
        if not self._available:
            raise ApplierError("Windows registry is not available on this platform")

    def _hive(self, path: RegistryPath):
        return {
            "HKLM": winreg.HKEY_LOCAL_MACHINE,
            "HKCU": winreg.HKEY_CURRENT_USER,
            "HKCR": winreg.HKEY_CLASSES_ROOT,
            "HKU": winreg.HKEY_USERS,
            "HKCC": winreg.HKEY_CURRENT_CONFIG,
        }[path.hive]

    def _types(self) -> Dict[ValueType, int]:
        return {
            ValueType.dword: winreg.REG_DWORD,
            ValueType.qword: winreg.REG_QWORD,
            ValueType.string: winreg.REG_SZ,
            ValueType.expand_string: winreg.REG_EXPAND_SZ,
            ValueType.multi_string: winreg.REG_MULTI_SZ,
            ValueType.binary: winreg.REG_BINARY,
        }

    def read_value(self, path: RegistryPath, name: str) -> Optional[Tuple[Optional[ValueType], Any]]:
        self._require()
        try:
            with winreg.OpenKey(self._hive(path), path.subkey, 0,
                                winreg.KEY_READ | winreg.KEY_WOW64_64KEY) as key:
                data, reg_type = winreg.QueryValueEx(key, name)
        except FileNotFoundError:
            return None
        by_reg = {v: k for k, v in self._types().items()}
        vt = by_reg.get(reg_type)
        if vt == ValueType.multi_string:
            data = tuple(data or ())
        return vt, data

    def write_value(self, path: RegistryPath, name: str, value_type: ValueType, data: Any) -> None:
        self._require()
        if value_type == ValueType.multi_string:
            data = list(data)
        # CreateKeyEx creates every missing intermediate key
        with winreg.CreateKeyEx(self._hive(path), path.subkey, 0,
                                winreg.KEY_WRITE | winreg.KEY_WOW64_64KEY) as key:
            winreg.SetValueEx(key, name, 0, self._types()[value_type], data)

    def key_exists(self, path: RegistryPath) -> bool:
        self._require()
        try:
            with winreg.OpenKey(self._hive(path), path.subkey, 0,
                                winreg.KEY_READ | winreg.KEY_WOW64_64KEY):
                return True
        except FileNotFoundError:
            return False

    def delete_key(self, path: RegistryPath) -> None:
        self._require()
        if not path.subkey:
            raise InvalidTargetError(f"Refusing to delete registry hive root {path}")
        self._delete_tree(self._hive(path), path.subkey)

    def _delete_tree(self, hive, subkey: str) -> None:
        access = winreg.KEY_READ | winreg.KEY_WRITE | winreg.KEY_WOW64_64KEY
        try:
            with winreg.OpenKey(hive, subkey, 0, access) as key:
                while True:
                    try:
                        child = winreg.EnumKey(key, 0)
                    except OSError:
                        break
                    self._delete_tree(hive, f"{subkey}\\{child}")
            winreg.DeleteKeyEx(hive, subkey, winreg.KEY_WOW64_64KEY, 0)
        except FileNotFoundError:
            return
