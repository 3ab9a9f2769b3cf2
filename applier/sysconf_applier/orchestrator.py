from __future__ import annotations
import os
from typing import Dict, List, Mapping, Optional
from .config_loader import builtin_plans, load_plans
from .errors import PlanConfigError
from .executors import Executors, build_executors
from .logging_setup import get_logger
from .models import Plan
from .planner import PlanPreview, preview
from .report import Report
from .runner import PlanRunner
from .settings import Settings

log = get_logger("sysconf.applier.orch")


def plan_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Variables available to ${VAR} references in plan files (names upper-cased as on Windows)."""
    src = os.environ if environ is None else environ
    env = {k.upper(): v for k, v in src.items()}
    if "PROGRAMFILES(X86)" in env:
        env.setdefault("PROGRAMFILES_X86", env["PROGRAMFILES(X86)"])
    return env


class Orchestrator:
    def __init__(self, settings: Settings, *, executors: Optional[Executors] = None,
                 environ: Optional[Mapping[str, str]] = None):
        self.settings = settings
        self.env = plan_env(environ)
        self._executors = executors
        self._plans: Optional[Dict[str, Plan]] = None

    @property
    def executors(self) -> Executors:
        if self._executors is None:
            self._executors = build_executors(
                command_timeout=self.settings.command_timeout,
                powershell=self.settings.powershell,
            )
        return self._executors

    @property
    def plans(self) -> Dict[str, Plan]:
        if self._plans is None:
            plans = builtin_plans(env=self.env)
            if self.settings.plans_dir:
                if not self.settings.plans_dir.is_dir():
                    raise PlanConfigError(f"Plans directory not found: {self.settings.plans_dir}")
                # plans from the directory override bundled ones with the same name
                plans.update(load_plans(self.settings.plans_dir, env=self.env))
            self._plans = plans
        return self._plans

    def get_plan(self, name: str) -> Plan:
        try:
            return self.plans[name]
        except KeyError:
            raise PlanConfigError(f"Unknown plan {name!r}; known: {sorted(self.plans)}") from None

    def list_plans(self) -> List[dict]:
        return [p.summary() for p in self.plans.values()]

    def check(self, plan: Plan) -> PlanPreview:
        return preview(plan, self.executors)

    def run(self, plan: Plan) -> Report:
        return PlanRunner(self.executors).execute(plan)
