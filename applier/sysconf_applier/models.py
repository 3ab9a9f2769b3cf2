from __future__ import annotations
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union
from pydantic import (
    BaseModel, ConfigDict, Field, ValidationInfo, field_serializer, field_validator, model_validator,
)


class ActionKind(str, Enum):
    set_registry_value = "set_registry_value"
    delete_registry_key = "delete_registry_key"
    stop_process = "stop_process"
    remove_package = "remove_package"
    delete_path = "delete_path"
    run_external_command = "run_external_command"
    ensure_directory = "ensure_directory"


class Policy(str, Enum):
    required = "required"
    best_effort = "best_effort"


class ValueType(str, Enum):
    dword = "dword"
    qword = "qword"
    string = "string"
    expand_string = "expand_string"
    multi_string = "multi_string"
    binary = "binary"


_INT_LIMITS = {ValueType.dword: 2 ** 32 - 1, ValueType.qword: 2 ** 64 - 1}


def _coerce_registry_data(value_type: ValueType, value: Any) -> Any:
    if value_type in _INT_LIMITS:
        if isinstance(value, bool):
            raise ValueError("boolean is not a valid integer registry value")
        if isinstance(value, str):
            value = int(value, 0)
        if not isinstance(value, int):
            raise ValueError(f"{value_type.value} expects an integer, got {type(value).__name__}")
        if not 0 <= value <= _INT_LIMITS[value_type]:
            raise ValueError(f"{value} out of range for {value_type.value}")
        return value
    if value_type in (ValueType.string, ValueType.expand_string):
        if not isinstance(value, str):
            raise ValueError(f"{value_type.value} expects a string")
        return value
    if value_type == ValueType.multi_string:
        if isinstance(value, str) or not all(isinstance(v, str) for v in value):
            raise ValueError("multi_string expects a list of strings")
        return tuple(value)
    # binary: hex string, list of ints or raw bytes
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, int):
        raise ValueError("binary expects a hex string or a list of byte values")
    if isinstance(value, str):
        return bytes.fromhex(value.replace(" ", ""))
    return bytes(value)


class RegistryValue(BaseModel):
    """Typed payload for SetRegistryValue; data is normalised to the python type winreg uses."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    value_type: ValueType = ValueType.dword
    value: Union[int, str, bytes, Tuple[str, ...]]

    @model_validator(mode="before")
    @classmethod
    def _normalise(cls, data: Any) -> Any:
        if isinstance(data, dict) and "value" in data:
            vt = ValueType(data.get("value_type", ValueType.dword))
            data = {**data, "value_type": vt, "value": _coerce_registry_data(vt, data["value"])}
        return data

    @field_serializer("value", when_used="json")
    def _value_json(self, value: Any) -> Any:
        # hex is the form plan files use for binary data
        return value.hex() if isinstance(value, bytes) else value


class CommandSpec(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    args: Tuple[str, ...] = ()
    detach: bool = False
    timeout: Optional[float] = Field(default=None, gt=0)
    ok_exit_codes: Tuple[int, ...] = (0,)


_PAYLOAD_BY_KIND = {
    ActionKind.set_registry_value: RegistryValue,
    ActionKind.run_external_command: CommandSpec,
}


class Action(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: ActionKind
    target: str = Field(..., min_length=1)
    value_name: Optional[str] = None
    desired_state: Optional[Union[RegistryValue, CommandSpec]] = Field(default=None, validate_default=True)
    policy: Policy = Policy.best_effort
    name: Optional[str] = None

    @field_validator("desired_state", mode="before")
    @classmethod
    def _payload_for_kind(cls, v: Any, info: ValidationInfo) -> Any:
        payload_cls = _PAYLOAD_BY_KIND.get(info.data.get("kind"))
        if payload_cls is CommandSpec and v is None:
            return CommandSpec()
        if payload_cls is None or v is None or isinstance(v, payload_cls):
            return v
        return payload_cls.model_validate(v)

    @model_validator(mode="after")
    def _check_shape(self) -> "Action":
        expected = _PAYLOAD_BY_KIND.get(self.kind)
        if expected is RegistryValue:
            if not isinstance(self.desired_state, RegistryValue):
                raise ValueError("set_registry_value requires desired_state {value_type, value}")
            if self.value_name is None:
                raise ValueError("set_registry_value requires value_name ('' for the default value)")
        elif expected is None and self.desired_state is not None:
            raise ValueError(f"{self.kind.value} takes no desired_state")
        return self

    @property
    def label(self) -> str:
        if self.name:
            return self.name
        if self.value_name is not None:
            return f"{self.kind.value}:{self.target}\\{self.value_name}"
        return f"{self.kind.value}:{self.target}"

    @property
    def required(self) -> bool:
        return self.policy == Policy.required


class Plan(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1)
    description: str = ""
    actions: Tuple[Action, ...] = ()

    def summary(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "actions": len(self.actions),
            "required": sum(1 for a in self.actions if a.required),
        }


# ---------------- composition helpers ----------------

def set_registry_value(path: str, value_name: str, value: Any, value_type: ValueType = ValueType.dword,
                       *, policy: Policy = Policy.best_effort, name: Optional[str] = None) -> Action:
    return Action(kind=ActionKind.set_registry_value, target=path, value_name=value_name,
                  desired_state={"value_type": value_type, "value": value}, policy=policy, name=name)


def delete_registry_key(path: str, *, policy: Policy = Policy.best_effort, name: Optional[str] = None) -> Action:
    return Action(kind=ActionKind.delete_registry_key, target=path, policy=policy, name=name)


def stop_process(pattern: str, *, policy: Policy = Policy.best_effort, name: Optional[str] = None) -> Action:
    return Action(kind=ActionKind.stop_process, target=pattern, policy=policy, name=name)


def remove_package(pattern: str, *, policy: Policy = Policy.best_effort, name: Optional[str] = None) -> Action:
    return Action(kind=ActionKind.remove_package, target=pattern, policy=policy, name=name)


def delete_path(path: str, *, policy: Policy = Policy.best_effort, name: Optional[str] = None) -> Action:
    return Action(kind=ActionKind.delete_path, target=path, policy=policy, name=name)


def ensure_directory(path: str, *, policy: Policy = Policy.best_effort, name: Optional[str] = None) -> Action:
    return Action(kind=ActionKind.ensure_directory, target=path, policy=policy, name=name)


def run_external_command(command: str, *args: str, detach: bool = False, timeout: Optional[float] = None,
                         ok_exit_codes: Tuple[int, ...] = (0,), policy: Policy = Policy.best_effort,
                         name: Optional[str] = None) -> Action:
    spec = CommandSpec(args=tuple(args), detach=detach, timeout=timeout, ok_exit_codes=ok_exit_codes)
    return Action(kind=ActionKind.run_external_command, target=command, desired_state=spec,
                  policy=policy, name=name)
