"""
Command line entry point: run, explain or validate a flow.
"""
import argparse
import asyncio
import json
import logging
import os
import re
import sys
from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from quoteflow.orchestrator.explain import explain_flow, validate_flow
from quoteflow.orchestrator.runner import FlowRunner
from quoteflow.utils.errors import FlowError, RunError
from quoteflow.utils.loader import flow_stem, load_catalog, load_flow, load_json, load_lead
from quoteflow.utils.schema import RunOptions

logger = logging.getLogger("quoteflow")


def platform_env_prefix(platform: str) -> str:
    return re.sub(r"[^A-Z0-9]", "_", platform.upper())


def resolve_credentials(platform: str, env: Mapping[str, str],
                        username: Optional[str] = None,
                        password: Optional[str] = None) -> Dict[str, str]:
    """
    Explicit values win, then <PLATFORM>_USERNAME / <PLATFORM>_PASSWORD,
    then FLOW_USERNAME / FLOW_PASSWORD.
    """
    prefix = platform_env_prefix(platform)
    credentials = {
        "username": username or env.get(f"{prefix}_USERNAME") or env.get("FLOW_USERNAME"),
        "password": password or env.get(f"{prefix}_PASSWORD") or env.get("FLOW_PASSWORD"),
    }
    return {k: v for k, v in credentials.items() if v}


def find_flow_file(flows_dir: Path, slug: str) -> Optional[Path]:
    """Search flows_dir recursively for a flow whose slug (or file stem) matches."""
    if not flows_dir.is_dir():
        return None
    for path in sorted(flows_dir.rglob("*.json")):
        if flow_stem(path) == slug:
            return path
        try:
            data = load_json(path)
        except (OSError, ValueError):
            continue
        if isinstance(data, dict) and data.get("slug") == slug:
            return path
    return None


def _resolve_inputs(args):
    flow_arg = Path(args.flow)
    flow_path = flow_arg if flow_arg.suffix == ".json" or flow_arg.exists() else find_flow_file(Path(args.flows_dir), args.flow)
    if flow_path is None or not flow_path.exists():
        raise FlowError(f"Flow not found: {args.flow} (searched {args.flows_dir})")
    flow = load_flow(flow_path)

    fields_path = Path(args.fields) if args.fields else Path(args.fields_dir) / f"{flow.platform}.json"
    if not fields_path.exists():
        raise FlowError(f"Field definitions not found: {fields_path}")
    catalog = load_catalog(fields_path)
    lead = load_lead(args.lead) if args.lead else {}
    return flow, catalog, lead


def cmd_run(args) -> int:
    flow, catalog, lead = _resolve_inputs(args)
    credentials = resolve_credentials(flow.platform, os.environ, args.username, args.password)
    if len(credentials) < 2:
        prefix = platform_env_prefix(flow.platform)
        logger.error("Credentials not found for platform '%s'. Set %s_USERNAME/%s_PASSWORD or "
                     "FLOW_USERNAME/FLOW_PASSWORD in .env, or pass --username/--password.",
                     flow.platform, prefix, prefix)
        return 1

    options = RunOptions(
        mode=args.mode,
        dom=args.dom,
        a11y=args.a11y,
        keep_open=args.keep_open,
        out_root=args.out_root,
        chrome=args.chrome,
        video=args.video,
        slow_mo=args.slow_mo,
    )
    logger.info("Platform: %s | Flow: %s | User: %s*** | Mode: %s",
                flow.platform, flow.slug, credentials["username"][:3], options.mode)

    runner = FlowRunner(flow, catalog, lead=lead, credentials=credentials, options=options)
    try:
        asyncio.run(runner.run())
    except RunError as e:
        logger.error("Run failed: %s", e)
        return 1
    print(f"Run {runner.run_id} succeeded: {runner.run_dir}")
    return 0


def cmd_explain(args) -> int:
    flow, catalog, lead = _resolve_inputs(args)
    credentials = resolve_credentials(flow.platform, os.environ, args.username, args.password)
    if credentials.get("password"):
        credentials["password"] = "***"
    report = explain_flow(flow, catalog, lead, credentials)
    print(json.dumps(report, indent=2, ensure_ascii=False, default=str))
    return 0


def cmd_validate(args) -> int:
    flow, catalog, _ = _resolve_inputs(args)
    problems = validate_flow(flow, catalog)
    for problem in problems:
        print(problem)
    if problems:
        return 1
    print(f"{flow.slug}: {len(flow.steps)} steps OK")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="quoteflow", description="Replay declarative form-filling flows with Playwright")
    parser.add_argument("--log-level", default=os.environ.get("QUOTEFLOW_LOG_LEVEL", "INFO"),
                        help="Logging level (default: INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_inputs(p):
        p.add_argument("flow", help="Flow JSON path or flow slug")
        p.add_argument("--lead", help="Lead JSON file")
        p.add_argument("--fields", help="Field catalog JSON (default: <fields-dir>/<platform>.json)")
        p.add_argument("--flows-dir", default="data/flows", help="Where to look up flow slugs")
        p.add_argument("--fields-dir", default="data/field-definitions", help="Where catalogs live")
        p.add_argument("--username", help="Platform username (overrides .env)")
        p.add_argument("--password", help="Platform password (overrides .env)")

    run = sub.add_parser("run", help="Execute a flow in a browser")
    add_inputs(run)
    run.add_argument("--mode", choices=["headless", "visible", "dev", "dev_private"], default="headless")
    run.add_argument("--dom", choices=["none", "all", "steps", "errors"], default="errors")
    run.add_argument("--a11y", action="store_true", help="Also capture ARIA snapshots with DOM dumps")
    run.add_argument("--keep-open", action="store_true", help="Leave the browser open after success")
    run.add_argument("--out-root", default="data/runs")
    run.add_argument("--chrome", help="Chrome/Chromium executable path")
    run.add_argument("--video", action="store_true")
    run.add_argument("--slow-mo", type=int, default=None)
    run.set_defaults(handler=cmd_run)

    explain = sub.add_parser("explain", help="Show how each step resolves, without a browser")
    add_inputs(explain)
    explain.set_defaults(handler=cmd_explain)

    validate = sub.add_parser("validate", help="Check that every field reference resolves")
    add_inputs(validate)
    validate.set_defaults(handler=cmd_validate)
    return parser


def main(argv=None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    try:
        return args.handler(args)
    except (FlowError, ValidationError, ValueError, OSError) as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
