from __future__ import annotations
import subprocess
from enum import Enum
from typing import Optional

from pydantic import ValidationError


class ErrorCode(str, Enum):
    not_found = "not_found"
    access_denied = "access_denied"
    invalid_target = "invalid_target"
    external_command_failed = "external_command_failed"
    unknown = "unknown"


class ApplierError(Exception):
    code: ErrorCode = ErrorCode.unknown


class NotFoundError(ApplierError):
    code = ErrorCode.not_found


class AccessDeniedError(ApplierError):
    code = ErrorCode.access_denied


class InvalidTargetError(ApplierError):
    code = ErrorCode.invalid_target


class ExternalCommandFailed(ApplierError):
    code = ErrorCode.external_command_failed

    def __init__(self, message: str, *, exit_code: Optional[int] = None, output: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.output = output


class PlanConfigError(ApplierError):
    """Plan file could not be read, parsed or validated."""
    code = ErrorCode.invalid_target


class ElevationRequired(ApplierError):
    code = ErrorCode.access_denied


def classify_error(exc: BaseException) -> ErrorCode:
    if isinstance(exc, ApplierError):
        return exc.code
    if isinstance(exc, FileNotFoundError):
        return ErrorCode.not_found
    if isinstance(exc, PermissionError):
        return ErrorCode.access_denied
    if isinstance(exc, (ValueError, ValidationError)):
        return ErrorCode.invalid_target
    if isinstance(exc, subprocess.TimeoutExpired):
        return ErrorCode.external_command_failed
    return ErrorCode.unknown
