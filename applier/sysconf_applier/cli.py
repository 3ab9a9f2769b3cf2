from __future__ import annotations
import argparse
import json
from pathlib import Path
from typing import List
import uvicorn
from .settings import Settings
from .logging_setup import setup_logging, get_logger
from .orchestrator import Orchestrator
from .config_loader import load_plan
from .elevation import ensure_admin
from .errors import ElevationRequired, PlanConfigError
from .fetch import DownloadError, download, filename_from_url
from .models import Plan
from .api import create_app

log = get_logger("sysconf.applier.cli")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_NOT_ELEVATED = 3


def _dump(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _collect_plans(orch: Orchestrator, names: List[str], files: List[str]) -> List[Plan]:
    plans = [orch.get_plan(n) for n in names]
    plans += [load_plan(Path(f), env=orch.env) for f in files]
    return plans


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="sysconf-applier")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("list", help="List known plans as JSON")

    show_p = sub.add_parser("show", help="Print a plan as JSON")
    show_p.add_argument("plan")

    check_p = sub.add_parser("check", help="Dry-run: report which actions would change the system")
    check_p.add_argument("plans", nargs="*", default=[])
    check_p.add_argument("--file", action="append", default=[], help="Plan JSON file (repeatable)")

    run_p = sub.add_parser("run", help="Apply plans in order and print their reports")
    run_p.add_argument("plans", nargs="*", default=[])
    run_p.add_argument("--file", action="append", default=[], help="Plan JSON file (repeatable)")
    run_p.add_argument("--dry-run", action="store_true", help="Same as 'check'; nothing is changed")

    fetch_p = sub.add_parser("fetch", help="Download a file and verify its SHA-256")
    fetch_p.add_argument("url")
    fetch_p.add_argument("dest", nargs="?", help="Target path (default: download dir / URL basename)")
    fetch_p.add_argument("--sha256")

    api_p = sub.add_parser("api", help="Run REST API (FastAPI)")
    api_p.add_argument("--host", default="127.0.0.1")
    api_p.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    settings = Settings()
    setup_logging(settings)
    orch = Orchestrator(settings)

    try:
        if args.cmd == "list":
            _dump(orch.list_plans())
            return EXIT_OK

        if args.cmd == "show":
            _dump(orch.get_plan(args.plan).model_dump(mode="json"))
            return EXIT_OK

        if args.cmd in ("check", "run"):
            plans = _collect_plans(orch, args.plans, args.file)
            if not plans:
                parser.error(f"{args.cmd}: no plans given")

            if args.cmd == "check" or args.dry_run:
                previews = [orch.check(p).to_dict() for p in plans]
                _dump(previews)
                return EXIT_OK if all(p["ok"] for p in previews) else EXIT_FAILED

            if settings.require_admin:
                ensure_admin()
            reports = [orch.run(p) for p in plans]
            _dump([r.to_dict() for r in reports])
            return EXIT_OK if all(r.success for r in reports) else EXIT_FAILED

        if args.cmd == "fetch":
            dest = Path(args.dest) if args.dest else settings.download_dir / filename_from_url(args.url)
            path = download(args.url, dest, sha256=args.sha256)
            _dump({"ok": True, "path": str(path)})
            return EXIT_OK

        if args.cmd == "api":
            app = create_app(settings, orch)
            uvicorn.run(app, host=args.host, port=args.port, log_level=settings.log_level.lower())
            return EXIT_OK
    except ElevationRequired as e:
        log.error("%s", e)
        return EXIT_NOT_ELEVATED
    except (PlanConfigError, DownloadError) as e:
        log.error("%s", e)
        return EXIT_FAILED

    return EXIT_USAGE
