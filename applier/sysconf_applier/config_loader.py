from __future__ import annotations
import json
import re
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from pydantic import ValidationError
from .errors import PlanConfigError
from .logging_setup import get_logger
from .models import Plan

log = get_logger("sysconf.applier.config")

_VAR = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def expand_vars(data: Any, env: Mapping[str, str]) -> Any:
    """Replace ${VAR} in every string of a JSON tree; unknown variables stay as written."""
    if isinstance(data, str):
        return _VAR.sub(lambda m: env.get(m.group(1), m.group(0)), data)
    if isinstance(data, list):
        return [expand_vars(v, env) for v in data]
    if isinstance(data, dict):
        return {k: expand_vars(v, env) for k, v in data.items()}
    return data


def load_json(path: Path) -> Dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise PlanConfigError(f"Cannot read plan file {path}: {e}") from e
    if not isinstance(data, dict):
        raise PlanConfigError(f"{path}: plan root must be an object")
    return data


def parse_plan(data: Dict[str, Any], *, env: Optional[Mapping[str, str]] = None, source: str = "<memory>") -> Plan:
    try:
        plan = Plan.model_validate(expand_vars(data, env or {}))
    except ValidationError as e:
        raise PlanConfigError(f"{source}: invalid plan: {e}") from e
    missing = sorted({m.group(1) for a in plan.actions for m in _VAR.finditer(a.target)})
    if missing:
        log.warning("%s: undefined variable(s) %s; actions using them will fail", source, ", ".join(missing))
    return plan


def load_plan(path: Path, *, env: Optional[Mapping[str, str]] = None) -> Plan:
    log.debug("Loading plan: %s", path)
    return parse_plan(load_json(path), env=env, source=str(path))


def load_plans(directory: Path, *, env: Optional[Mapping[str, str]] = None) -> Dict[str, Plan]:
    plans: Dict[str, Plan] = {}
    for p in sorted(directory.glob("*.json")):
        plan = load_plan(p, env=env)
        if plan.name in plans:
            raise PlanConfigError(f"Duplicate plan name {plan.name!r} in {p}")
        plans[plan.name] = plan
    log.info("Loaded %d plan(s) from %s", len(plans), directory)
    return plans


def builtin_plans(*, env: Optional[Mapping[str, str]] = None) -> Dict[str, Plan]:
    plans: Dict[str, Plan] = {}
    root = resources.files("sysconf_applier") / "plans"
    for entry in sorted(root.iterdir(), key=lambda e: e.name):
        if not entry.name.endswith(".json"):
            continue
        try:
            data = json.loads(entry.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise PlanConfigError(f"Bundled plan {entry.name} is not valid JSON: {e}") from e
        plan = parse_plan(data, env=env, source=entry.name)
        plans[plan.name] = plan
    return plans
