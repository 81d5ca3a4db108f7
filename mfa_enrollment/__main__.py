"""Command-line helper to inspect enrollment policies."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from . import POLICY_PROPERTIES, parse_policy


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="MFA Enrollment policy inspector")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--properties", help="JSON file with raw policy properties to resolve")
    group.add_argument("--describe", action="store_true", help="List every supported property")
    args = parser.parse_args(argv)
    if args.properties:
        path = Path(args.properties)
        try:
            raw = json.loads(path.read_text())
        except (OSError, ValueError) as exc:
            parser.error(f"cannot read {path}: {exc}")
        if not isinstance(raw, dict):
            parser.error(f"{path} must contain a JSON object")
        args.raw = raw
    return args


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    if args.describe:
        print(json.dumps([prop.model_dump() for prop in POLICY_PROPERTIES], indent=2))
        return
    policy = parse_policy(args.raw)
    print(json.dumps(policy.model_dump(mode="json"), indent=2))


if __name__ == "__main__":
    main()
