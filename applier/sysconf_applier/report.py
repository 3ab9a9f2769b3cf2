from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from .errors import ErrorCode
from .models import Action


class Outcome(str, Enum):
    applied = "applied"
    already_satisfied = "already_satisfied"
    failed_recoverable = "failed_recoverable"
    failed_fatal = "failed_fatal"

    @property
    def failed(self) -> bool:
        return self in (Outcome.failed_recoverable, Outcome.failed_fatal)


class RunState(str, Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    aborted = "aborted"


@dataclass(frozen=True)
class ItemOutcome:
    """Outcome for one match of a fan-out action (e.g. one package of a pattern)."""
    name: str
    outcome: Outcome
    detail: str = ""
    error_code: Optional[ErrorCode] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "outcome": self.outcome.value,
            "detail": self.detail,
            "error_code": self.error_code.value if self.error_code else None,
        }


@dataclass(frozen=True)
class ReportEntry:
    action: Action
    outcome: Outcome
    detail: str = ""
    error_code: Optional[ErrorCode] = None
    items: Tuple[ItemOutcome, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.label,
            "kind": self.action.kind.value,
            "target": self.action.target,
            "policy": self.action.policy.value,
            "outcome": self.outcome.value,
            "detail": self.detail,
            "error_code": self.error_code.value if self.error_code else None,
            "items": [i.to_dict() for i in self.items],
        }


@dataclass(frozen=True)
class Report:
    plan_name: str
    state: RunState
    entries: Tuple[ReportEntry, ...] = field(default_factory=tuple)

    @property
    def success(self) -> bool:
        return not any(e.outcome == Outcome.failed_fatal for e in self.entries)

    def counts(self) -> Dict[Outcome, int]:
        out = {o: 0 for o in Outcome}
        for e in self.entries:
            out[e.outcome] += 1
        return out

    def failures(self) -> List[ReportEntry]:
        return [e for e in self.entries if e.outcome.failed]

    def outcome_of(self, label: str) -> Optional[Outcome]:
        for e in self.entries:
            if e.action.label == label:
                return e.outcome
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan": self.plan_name,
            "state": self.state.value,
            "success": self.success,
            "counts": {k.value: v for k, v in self.counts().items()},
            "entries": [e.to_dict() for e in self.entries],
        }
