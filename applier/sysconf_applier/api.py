from __future__ import annotations
from typing import Optional
from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel
from . import __version__
from .elevation import ensure_admin
from .errors import ElevationRequired, PlanConfigError
from .log_reader import list_logs, read_from_cursor, read_tail, resolve_log
from .models import Plan
from .orchestrator import Orchestrator
from .settings import Settings

class ActionResult(BaseModel):
    ok: bool
    detail: str | None = None
    data: dict | None = None

def create_app(settings: Settings, orch: Optional[Orchestrator] = None) -> FastAPI:
    app = FastAPI(title="System Configuration Applier API", version=__version__)
    orch = orch or Orchestrator(settings)
    logs_dir = settings.log_dir

    def _plan(name: str) -> Plan:
        try:
            return orch.get_plan(name)
        except PlanConfigError:
            raise HTTPException(status_code=404, detail="plan_not_found")

    @app.get("/health")
    def health():
        return {"ok": True, "version": __version__}

    @app.get("/plans")
    def plans():
        return {"ok": True, "plans": orch.list_plans()}

    @app.get("/plans/{name}")
    def get_plan(name: str):
        return _plan(name).model_dump(mode="json")

    @app.get("/plans/{name}/check")
    def check(name: str):
        # idempotence checks only; no side effects
        return orch.check(_plan(name)).to_dict()

    @app.post("/plans/{name}/run", response_model=ActionResult)
    def run(name: str, dry_run: bool = Query(default=False, description="If true: only check, change nothing")):
        plan = _plan(name)
        if dry_run:
            p = orch.check(plan).to_dict()
            return ActionResult(ok=p["ok"], detail="dry-run", data=p)
        if settings.require_admin:
            try:
                ensure_admin()
            except ElevationRequired:
                raise HTTPException(status_code=403, detail="elevation_required")
        report = orch.run(plan)
        return ActionResult(ok=report.success, detail=report.state.value, data=report.to_dict())

    @app.get("/logs")
    def logs():
        return {"ok": True, "logs": list_logs(logs_dir)}

    @app.get("/logs/{log_id}")
    def get_log(
        log_id: str,
        tail: int = Query(default=200, ge=0, le=5000),
        cursor: str | None = None,
        max_lines: int = Query(default=200, ge=1, le=5000),
    ):
        path = resolve_log(logs_dir, log_id) if logs_dir.is_dir() else None
        if path is None:
            raise HTTPException(status_code=404, detail="log_not_found")

        chunk = read_from_cursor(path, cursor, max_lines=max_lines) if cursor else read_tail(path, tail)
        return {
            "ok": True,
            "id": log_id,
            "cursor": chunk.cursor,
            "entries": [{"n": i + 1, "line": line} for i, line in enumerate(chunk.entries)],
            "truncated": chunk.truncated,
        }
    return app
