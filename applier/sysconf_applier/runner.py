from __future__ import annotations
from typing import List, Mapping
from .errors import ApplierError, classify_error
from .executors import ActionExecutor, ApplyResult
from .logging_setup import get_logger
from .models import Action, ActionKind, Plan
from .report import Outcome, Report, ReportEntry, RunState

log = get_logger("sysconf.applier.runner")


class PlanRunner:
    """
    Applies a Plan's actions strictly in declared order, one at a time.

    Each action is checked first and only applied when not already satisfied.
    Failures never escape `execute`: they become Report entries. A failing
    `required` action aborts the rest of its plan; a `best_effort` one is
    recorded and the run continues.
    """

    def __init__(self, executors: Mapping[ActionKind, ActionExecutor]):
        self.executors = dict(executors)
        self.state = RunState.pending

    def execute(self, plan: Plan) -> Report:
        self.state = RunState.running
        entries: List[ReportEntry] = []
        log.info("Plan %s: %d action(s)", plan.name, len(plan.actions))

        for idx, action in enumerate(plan.actions, start=1):
            entry = self._run_action(action)
            entries.append(entry)
            self._log_entry(plan, idx, entry)
            if entry.outcome == Outcome.failed_fatal:
                self.state = RunState.aborted
                skipped = len(plan.actions) - idx
                if skipped:
                    log.error("Plan %s aborted; %d remaining action(s) not executed", plan.name, skipped)
                break
        else:
            self.state = RunState.completed

        report = Report(plan_name=plan.name, state=self.state, entries=tuple(entries))
        counts = report.counts()
        log.info(
            "Plan %s %s: applied=%d satisfied=%d recoverable=%d fatal=%d",
            plan.name, self.state.value, counts[Outcome.applied], counts[Outcome.already_satisfied],
            counts[Outcome.failed_recoverable], counts[Outcome.failed_fatal],
        )
        return report

    def _run_action(self, action: Action) -> ReportEntry:
        executor = self.executors.get(action.kind)
        try:
            if executor is None:
                raise ApplierError(f"No executor registered for {action.kind.value}")
            if executor.is_satisfied(action):
                return ReportEntry(action, Outcome.already_satisfied, "already in desired state")
            result: ApplyResult = executor.apply(action)
        except Exception as e:
            outcome = Outcome.failed_fatal if action.required else Outcome.failed_recoverable
            return ReportEntry(action, outcome, str(e) or type(e).__name__, classify_error(e),
                               tuple(getattr(e, "items", ()) or ()))
        return ReportEntry(action, Outcome.applied, result.detail, None, tuple(result.items))

    @staticmethod
    def _log_entry(plan: Plan, idx: int, entry: ReportEntry) -> None:
        prefix = f"[{plan.name} {idx}/{len(plan.actions)}] {entry.action.label}"
        if entry.outcome == Outcome.failed_fatal:
            log.error("%s: FAILED (required, %s) %s", prefix, entry.error_code.value, entry.detail)
        elif entry.outcome == Outcome.failed_recoverable:
            log.warning("%s: failed (best effort, %s) %s", prefix, entry.error_code.value, entry.detail)
        else:
            log.info("%s: %s", prefix, entry.outcome.value)


def execute(plan: Plan, executors: Mapping[ActionKind, ActionExecutor]) -> Report:
    return PlanRunner(executors).execute(plan)
