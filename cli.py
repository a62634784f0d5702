#!/usr/bin/env python3
"""
Command-line entry point for one-off pipeline runs.

    python cli.py stage
    python cli.py publish [--skip-staging]
    python cli.py reprocess ABC123
    python cli.py renew-watch
"""

import argparse
import json
import logging
import sys

from settings import ConfigError, load_settings
from workflows.listing_workflows import (
    build_pipeline,
    reprocess_product,
    run_process_approved_workflow,
    run_renew_watch_workflow,
    run_stage_drafts_workflow,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Stage and publish storefront listings")
    parser.add_argument("--log-level", type=str, default=None, help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("stage", help="Stage drafts for every product key in storage")

    publish = sub.add_parser("publish", help="Stage drafts, then publish approved rows")
    publish.add_argument("--skip-staging", action="store_true", help="Publish only")

    reprocess = sub.add_parser("reprocess", help="Publish a single approved row")
    reprocess.add_argument("key", type=str, help="Product key (e.g., ABC123)")

    sub.add_parser("renew-watch", help="Renew the Drive change-notification channel")
    return parser


def run_command(args, pipeline) -> int:
    """Run one subcommand, print its JSON result and return the exit code."""
    if args.command == "stage":
        result = run_stage_drafts_workflow(pipeline)
        failed = result.get("errors", 0) > 0
    elif args.command == "publish":
        result = run_process_approved_workflow(pipeline, {"skip_staging": args.skip_staging})
        failed = result["errors"] > 0
    elif args.command == "reprocess":
        status, body = reprocess_product(pipeline, args.key)
        result = dict(body, status_code=status)
        failed = status != 200
    else:
        result = run_renew_watch_workflow(pipeline)
        failed = not result.get("ok")

    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 1 if failed else 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    level = (args.log_level or settings.log_level).upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format="%(asctime)s %(levelname)s %(message)s")

    try:
        return run_command(args, build_pipeline(settings))
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
