#!/usr/bin/env python3
"""Reconcile a declaration against a device and print what to apply.

Usage:
    declarative-onboarding DECLARATION --host HOST --username USER [--summary]

Environment variables:
    DO_PASSWORD         Device password (see --password-env)
    DO_SETTINGS         Settings file
    DO_LOG_LEVEL        Console log level
"""
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import httpx
import yaml

from .config.settings import Settings
from .config_engine import ConfigEngine, summarize_reconcile
from .config_store import FileSnapshotStore
from .devices import DeviceConfig, RestDevice
from .errors import OnboardingError
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def load_declaration(path: Path) -> dict[str, Any]:
    """Load a declaration from a JSON or YAML file."""
    text = path.read_text()
    if path.suffix.lower() == ".json":
        return json.loads(text)
    return yaml.safe_load(text)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="declarative-onboarding",
        description="Reconcile a declaration against the live configuration of a device",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Print the merged document to hand to the apply handlers
    declarative-onboarding onboard.yaml --host 10.0.0.5 --username admin

    # Show which classes would change
    declarative-onboarding onboard.json --host 10.0.0.5 --username admin --summary

Environment:
    DO_PASSWORD    Device password
    DO_SETTINGS    Settings file (classes of truth, concurrency, state dir)
""",
    )
    parser.add_argument(
        "declaration",
        type=Path,
        help="Declaration file (YAML or JSON)",
    )
    parser.add_argument(
        "--host",
        required=True,
        help="Device management address",
    )
    parser.add_argument(
        "--username",
        required=True,
        help="Device user",
    )
    parser.add_argument(
        "--password-env",
        default="DO_PASSWORD",
        help="Environment variable holding the password (default: DO_PASSWORD)",
    )
    parser.add_argument(
        "--state-dir",
        type=Path,
        help="Where original-config snapshots are kept (default: from settings)",
    )
    parser.add_argument(
        "--settings",
        type=Path,
        help="Settings file (default: DO_SETTINGS or the search paths)",
    )
    parser.add_argument(
        "--no-verify",
        action="store_true",
        help="Do not verify the device TLS certificate",
    )
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Print a change summary instead of the merged document",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


async def run(args: argparse.Namespace) -> str:
    settings = Settings.load(args.settings)
    declaration = load_declaration(args.declaration)

    device = RestDevice(
        args.host,
        DeviceConfig(
            host=args.host,
            username=args.username,
            password_env=args.password_env,
            verify_ssl=not args.no_verify,
        ),
    )
    store = FileSnapshotStore(args.state_dir or settings.state_dir)
    engine = ConfigEngine(device, settings, store=store)

    processed = await engine.process(declaration)
    if args.summary:
        return summarize_reconcile(processed.result)
    return yaml.safe_dump(processed.merged, default_flow_style=False, sort_keys=False)


def main() -> int:
    """Main entry point for the CLI."""
    args = build_parser().parse_args()
    setup_logging(logging.DEBUG if args.verbose else None)

    if not args.declaration.exists():
        logger.error(f"Declaration file not found: {args.declaration}")
        return 1

    try:
        output = asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except (OnboardingError, httpx.HTTPError, OSError, ValueError, yaml.YAMLError) as e:
        logger.error(f"Onboarding failed: {e}")
        return 1

    print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
