#!/usr/bin/env python3
"""
flowprobe CLI
Usage: python scan.py https://example.com [--pages 20] [--plans plans.json] [--headful]
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError as ConfigError

from flowprobe.config import Credentials, ScanConfig
from flowprobe.core.pipeline import StaticPlanner, run_probe
from flowprobe.core.report import print_report
from flowprobe.errors import FlowprobeError
from flowprobe.models.types import IssuePriority


def main():
    parser = argparse.ArgumentParser(
        description="flowprobe: crawl a website, run user workflows and report what is broken",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  python scan.py https://example.com\n"
               "  python scan.py https://myapp.com --pages 10 --plans plans.json\n"
               "  python scan.py https://dashboard.app --plans login.json --email me@x.com --password ...",
    )
    parser.add_argument("url", help="Website URL to probe")
    parser.add_argument("--pages", type=int, default=50, help="Max pages to crawl (default: 50, 0 = hard cap of 500)")
    parser.add_argument("--concurrency", type=int, default=3, help="Pages crawled in parallel (default: 3)")
    parser.add_argument("--exclude", action="append", default=[], help="URL pattern to skip (repeatable, * wildcards)")
    parser.add_argument("--plans", type=Path, help="JSON file with a list of workflow plans to execute")
    parser.add_argument("--hint", action="append", default=[], help="Workflow hint passed to the planner (repeatable)")
    parser.add_argument("--email", help="Login email for login workflows")
    parser.add_argument("--password", help="Login password for login workflows")
    parser.add_argument("--no-spa", action="store_true", help="Skip client-side route discovery")
    parser.add_argument("--headful", action="store_true", help="Run the browser visibly")
    parser.add_argument("--json", action="store_true", help="Output results as JSON instead of tables")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if bool(args.email) != bool(args.password):
        parser.error("--email and --password must be given together")

    credentials = None
    if args.email and args.password:
        credentials = Credentials(email=args.email, password=args.password)

    try:
        config = ScanConfig(
            url=args.url,
            max_pages=args.pages,
            max_concurrency=args.concurrency,
            exclude_patterns=args.exclude,
            headless=not args.headful,
            credentials=credentials,
            hints=args.hint,
            discover_spa_routes=not args.no_spa,
        )
    except ConfigError as e:
        print(f"\n  Invalid configuration: {e.errors()[0].get('msg', e)}")
        sys.exit(2)

    planner = None
    if args.plans:
        try:
            planner = StaticPlanner.from_dicts(json.loads(args.plans.read_text()))
        except (OSError, ValueError, KeyError) as e:
            print(f"\n  Could not read plans from {args.plans}: {e}")
            sys.exit(2)

    if not args.json:
        print(f"\n  flowprobe probing {config.url}")
        print(f"  Max pages: {config.max_pages} | Concurrency: {config.max_concurrency}", end="")
        print(f" | Plans: {len(planner.plans) if planner else 0}")
        print()

    result = asyncio.run(run_scan(config, planner, None if args.json else _cli_progress))

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print_report(result)

    sys.exit(_exit_code(result))


def _exit_code(result) -> int:
    """Non-zero when a workflow failed or high-priority issues remain."""
    failed = any(w.overall_status == "failed" for w in result.artifact.workflow_results)
    high = any(i.priority == IssuePriority.HIGH for i in result.issues)
    return 1 if failed or high else 0


def _cli_progress(event_type: str, data: dict):
    if event_type == "visiting_page":
        print(f"   [{data.get('page_number', '?')}/{data.get('total_discovered', '?')}] Visiting {data.get('url', '')[:80]}")
    elif event_type == "elements_found":
        print(f"         Found {data.get('forms', 0)} forms, {data.get('buttons', 0)} buttons, {data.get('links', 0)} links")
    elif event_type == "broken_link":
        print(f"         [LINK {data.get('status', 0)}] {data.get('url', '')[:80]}")
    elif event_type == "page_failed":
        retry = " (will retry)" if data.get("will_retry") else ""
        print(f"         [FAILED] {data.get('url', '')[:60]}: {data.get('error', '')[:60]}{retry}")
    elif event_type == "spa_detected":
        print(f"   SPA detected: {data.get('framework', '')}, {data.get('routes', 0)} client-side routes")
    elif event_type == "plans_ready":
        print(f"\n   {data.get('count', 0)} workflows to run")
    elif event_type == "workflow_started":
        print(f"   [Workflow: {data.get('workflow', '')}] {data.get('steps', 0)} steps")
    elif event_type == "step_completed":
        error = f" - {data['error'][:60]}" if data.get("error") else ""
        print(f"   [Workflow: {data.get('workflow', '')}] Step {data.get('step_index', 0) + 1}: "
              f"{data.get('action', '')} {data.get('status', '').upper()}{error}")
    elif event_type == "dead_button":
        print(f"         [DEAD BUTTON] {data.get('selector', '')[:80]}")
    elif event_type == "broken_form":
        print(f"         [BROKEN FORM] {data.get('form', '')[:80]}")
    elif event_type == "workflow_completed":
        print(f"   [Workflow: {data.get('workflow', '')}] {data.get('status', '').upper()} ({data.get('duration_ms', 0)}ms)")
    elif event_type == "probe_complete":
        print(f"\n   Done: {data.get('pages', 0)} pages, {data.get('workflows', 0)} workflows, "
              f"{data.get('issues', 0)} issues, score {data.get('score', 0)}\n")


async def run_scan(config: ScanConfig, planner, on_progress):
    try:
        return await run_probe(config, planner=planner, on_progress=on_progress)
    except FlowprobeError as e:
        print(f"\n  Error during probe: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
