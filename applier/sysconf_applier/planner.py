from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Mapping
from .errors import classify_error
from .executors import ActionExecutor
from .models import ActionKind, Plan


@dataclass
class PlanAction:
    action: str
    target: str
    detail: str
    policy: str
    will_change: bool
    severity: str = "info"  # info|warn|error

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PlanPreview:
    plan: str
    ok: bool
    actions: List[PlanAction]
    notes: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan": self.plan,
            "ok": self.ok,
            "actions": [a.to_dict() for a in self.actions],
            "notes": list(self.notes),
        }


def preview(plan: Plan, executors: Mapping[ActionKind, ActionExecutor]) -> PlanPreview:
    """Run only the idempotence checks; nothing is changed on the system."""
    actions: List[PlanAction] = []
    notes: List[str] = []
    ok = True
    for a in plan.actions:
        ex = executors.get(a.kind)
        try:
            if ex is None:
                raise LookupError(f"no executor for {a.kind.value}")
            satisfied = ex.is_satisfied(a)
        except Exception as e:
            severity = "error" if a.required else "warn"
            if a.required:
                ok = False
            actions.append(PlanAction(a.kind.value, a.target, f"check failed ({classify_error(e).value}): {e}",
                                      a.policy.value, True, severity))
            continue
        if a.kind == ActionKind.run_external_command:
            detail = "always runs"
        else:
            detail = "already in desired state" if satisfied else "would apply"
        actions.append(PlanAction(a.kind.value, a.target, detail, a.policy.value, not satisfied))

    if any(a.kind == ActionKind.run_external_command for a in plan.actions):
        notes.append("External commands cannot be checked and always run.")
    if len(plan.actions) > 1:
        notes.append("Checks reflect the current system; later actions may depend on earlier ones.")
    return PlanPreview(plan=plan.name, ok=ok, actions=actions, notes=notes)
